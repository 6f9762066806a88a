# Copyright 2021 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#      http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
"""
Coordinate-format sparse matrices with a fixed number of stored entries.

The transfer operators are allocated once with their final number of stored
entries and afterwards only have the contents of existing slots rewritten.
`SparseOperator` therefore exposes its three parallel arrays (`rows`, `cols`,
`values`) directly and never grows or shrinks them. Conversion to SciPy is
provided for the external linear-solve stage.
"""

import dataclasses
from typing import Tuple

import numpy as np
import scipy.sparse

Array = np.ndarray


@dataclasses.dataclass(eq=False)
class SparseOperator:
  """
  A COO sparse matrix whose shape and stored-entry count are fixed.

  Duplicate `(row, col)` pairs are allowed; as in any COO matrix they add up.

  Attributes:
    rows: Row index of every stored entry, int64.
    cols: Column index of every stored entry, int64.
    values: Value of every stored entry, float64.
    shape: Declared `(num_rows, num_cols)`.
  """
  rows: Array
  cols: Array
  values: Array
  shape: Tuple[int, int]

  def __post_init__(self):
    self.rows = np.asarray(self.rows, dtype=np.int64)
    self.cols = np.asarray(self.cols, dtype=np.int64)
    self.values = np.asarray(self.values, dtype=np.float64)
    self.shape = (int(self.shape[0]), int(self.shape[1]))
    if not (self.rows.shape == self.cols.shape == self.values.shape) or self.rows.ndim != 1:
      raise ValueError(
          'rows, cols and values must be 1D arrays of equal length, got '
          f'{self.rows.shape}, {self.cols.shape} and {self.values.shape}')

  @classmethod
  def allocate(cls, shape: Tuple[int, int], nnz: int) -> 'SparseOperator':
    """Creates an operator with `nnz` zero-valued entries at `(0, 0)`."""
    return cls(np.zeros(nnz, dtype=np.int64), np.zeros(nnz, dtype=np.int64),
               np.zeros(nnz, dtype=np.float64), shape)

  @property
  def nnz(self) -> int:
    """Number of stored entries (explicit zeros included)."""
    return int(self.values.size)

  def check_indices(self):
    """Raises `ValueError` if any stored entry lies outside `shape`."""
    if self.nnz == 0:
      return
    if (self.rows.min() < 0 or self.rows.max() >= self.shape[0] or
        self.cols.min() < 0 or self.cols.max() >= self.shape[1]):
      raise ValueError(f'sparse operator has entries outside its shape {self.shape}')

  def transpose(self) -> 'SparseOperator':
    """
    Returns the transpose, with entries sorted by row and then column.

    The sort is stable, so entries sharing a `(row, col)` pair keep their
    relative order and a double transpose reproduces the same matrix.
    """
    order = np.lexsort((self.rows, self.cols))
    return SparseOperator(self.cols[order], self.rows[order],
                          self.values[order], (self.shape[1], self.shape[0]))

  def to_scipy(self) -> scipy.sparse.coo_matrix:
    return scipy.sparse.coo_matrix((self.values, (self.rows, self.cols)),
                                   shape=self.shape)

  def toarray(self) -> Array:
    return self.to_scipy().toarray()

  def copy(self) -> 'SparseOperator':
    return SparseOperator(self.rows.copy(), self.cols.copy(),
                          self.values.copy(), self.shape)
