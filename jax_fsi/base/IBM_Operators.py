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
Sparse transfer operators between the staggered grid and the markers.

Two operators are maintained:

- `QT`, shape `(numP + 2N, numUV)`. Its first `numP` rows hold the discrete
  divergence (the transpose of the pressure gradient) and do not depend on
  the markers. Row `numP + k` regularizes the x-velocity onto marker `k` and
  row `numP + N + k` the y-velocity.
- `E`, shape `(2N, numUV)`, the interpolation of grid velocities onto the
  markers. Its rows equal the marker rows of `QT`.

Both are kept together with their transposes `Q` and `ET`.

The structure is fixed once by `generate()`. Every marker owns twelve slots
per velocity component, at

    `base + c * 12 N + 12 k + s`

for component `c`, marker `k` and neighbour `s`, with `base = 2 numUV` in
`QT` (right after the gradient block) and `0` in `E`. `update()` only
rewrites the columns and values of those slots, so the per-marker work is
independent and can run on any execution backend.

For the x-velocity the neighbours are the faces `i = I-2 .. I+1` on the rows
`j = J-1 .. J+1` around the marker's cell `(I, J)`; for the y-velocity they
are `i = I-1 .. I+1` on `j = J-2 .. J+1`. With a kernel of support `1.5 h`
these contain every face with a nonzero weight. Neighbours that fall outside
the velocity unknowns keep their slot with a clamped column and a zero value.
"""

import functools
from typing import Optional, Tuple

import numpy as np

from jax_fsi import backends
from jax_fsi.base import convolution_functions
from jax_fsi.base import grids
from jax_fsi.base import particle_class
from jax_fsi.base.sparse_operators import SparseOperator
from jax_fsi.config import FSIConfig
from jax_fsi.utils.exceptions import StaleStateError
from jax_fsi.utils.exceptions import StructuralMismatch
from jax_fsi.utils.logger import get_logger
from jax_fsi.utils.logger import log_timing

logger = get_logger(__name__)

Array = np.ndarray

STENCIL_SIZE = 12

# Neighbour offsets (di, dj) in slot order: j is the outer loop, i the inner.
_U_DI = np.tile(np.arange(-2, 2), 3)
_U_DJ = np.repeat(np.arange(-1, 2), 4)
_V_DI = np.tile(np.arange(-1, 2), 4)
_V_DJ = np.repeat(np.arange(-2, 2), 3)


def qt_dimensions(nx: int, ny: int, n: int) -> Tuple[int, int, int]:
  """Returns `(rows, cols, nnz)` of `QT` for an `nx` x `ny` grid and `n` markers."""
  num_uv = (nx - 1) * ny + nx * (ny - 1)
  return nx * ny + 2 * n, num_uv, 4 * nx * ny - 2 * (nx + ny) + 24 * n


def e_dimensions(nx: int, ny: int, n: int) -> Tuple[int, int, int]:
  """Returns `(rows, cols, nnz)` of `E`."""
  num_uv = (nx - 1) * ny + nx * (ny - 1)
  return 2 * n, num_uv, 2 * STENCIL_SIZE * n


def gradient_block(grid: grids.Grid) -> Tuple[Array, Array, Array]:
  """
  Entries of the position-independent rows of `QT`.

  Pressure cells are visited in row-major order. Each contributes `+1` for
  the x-face on its left, `-1` on its right, `+1` for the y-face below and
  `-1` above; faces on the domain boundary are not unknowns and are omitted.

  Returns:
    `(rows, cols, values)`, each of length `2 * grid.num_uv`.
  """
  nx, ny = grid.shape
  j, i = np.divmod(np.arange(grid.num_p), nx)
  cols = np.stack([
      j * (nx - 1) + i - 1,
      j * (nx - 1) + i,
      grid.num_u + (j - 1) * nx + i,
      grid.num_u + j * nx + i,
  ], axis=1)
  mask = np.stack([i > 0, i < nx - 1, j > 0, j < ny - 1], axis=1)
  values = np.broadcast_to(np.array([1.0, -1.0, 1.0, -1.0]), cols.shape)
  rows = np.broadcast_to(np.arange(grid.num_p)[:, None], cols.shape)
  return rows[mask], cols[mask], values[mask]


def marker_stencil(xp, k, x, y, dx, dy, xB, yB, I, J, *, delta):
  """
  Columns and weights of marker `k` for both velocity components.

  This is the per-marker kernel handed to `ExecutionBackend.parallel_for`,
  so it is written against the array namespace `xp` and uses no Python
  control flow on array values.

  Args:
    xp: Array namespace, `numpy` or `jax.numpy`.
    k: Marker index.
    x, y: Grid node coordinates.
    dx, dy: Grid spacings.
    xB, yB: Marker coordinates of the selected state.
    I, J: Cell indices of the markers.
    delta: Discrete delta function `delta(xp, r, h)`.

  Returns:
    A tuple `(cols, values)`, both of shape `(2, 12)`; row 0 is the
    x-velocity stencil and row 1 the y-velocity stencil.
  """
  nx = x.shape[0] - 1
  ny = y.shape[0] - 1
  num_u = (nx - 1) * ny
  Ib, Jb = I[k], J[k]
  xk, yk = xB[k], yB[k]
  hx, hy = dx[Ib], dy[Jb]

  # x-velocity u(i, j) sits at (x[i + 1], centre of row j).
  i = Ib + _U_DI
  j = Jb + _U_DJ
  valid = (i >= 0) & (i <= nx - 2) & (j >= 0) & (j <= ny - 1)
  i = xp.clip(i, 0, nx - 2)
  j = xp.clip(j, 0, ny - 1)
  u_cols = j * (nx - 1) + i
  u_vals = (delta(xp, x[i + 1] - xk, hx) *
            delta(xp, 0.5 * (y[j] + y[j + 1]) - yk, hy))
  u_vals = xp.where(valid, u_vals, 0.0)

  # y-velocity v(i, j) sits at (centre of column i, y[j + 1]).
  i = Ib + _V_DI
  j = Jb + _V_DJ
  valid = (i >= 0) & (i <= nx - 1) & (j >= 0) & (j <= ny - 2)
  i = xp.clip(i, 0, nx - 1)
  j = xp.clip(j, 0, ny - 2)
  v_cols = num_u + j * nx + i
  v_vals = (delta(xp, 0.5 * (x[i] + x[i + 1]) - xk, hx) *
            delta(xp, y[j + 1] - yk, hy))
  v_vals = xp.where(valid, v_vals, 0.0)

  return xp.stack([u_cols, v_cols]), xp.stack([u_vals, v_vals])


class OperatorBuilder:
  """
  Builds `QT` and `E` once and refreshes their marker entries after moves.

  The builder owns the operator storage. Marker state is read from the
  `BoundaryMarkerSet` and never modified.

  Args:
    grid: The staggered grid.
    markers: The initialised marker set.
    backend: Execution backend for the per-marker stencils. Defaults to the
      sequential backend. Fixed for the lifetime of the builder.
    kernel: Name of the discrete delta function.
  """

  def __init__(self, grid: grids.Grid,
               markers: particle_class.BoundaryMarkerSet,
               backend: Optional[backends.ExecutionBackend] = None,
               kernel: str = 'roma'):
    if grid.nx < 2 or grid.ny < 2:
      raise ValueError(f'operators need at least 2x2 cells, got {grid.shape}')
    self.grid = grid
    self.markers = markers
    self.backend = backend if backend is not None else backends.create_backend()
    self.kernel_name = kernel
    self._kernel = functools.partial(
        marker_stencil, delta=convolution_functions.get_delta_function(kernel))
    self._num_markers: Optional[int] = None
    self._QT: Optional[SparseOperator] = None
    self._E: Optional[SparseOperator] = None
    self._Q: Optional[SparseOperator] = None
    self._ET: Optional[SparseOperator] = None

  @property
  def QT(self) -> SparseOperator:
    return self._require(self._QT)

  @property
  def Q(self) -> SparseOperator:
    return self._require(self._Q)

  @property
  def E(self) -> SparseOperator:
    return self._require(self._E)

  @property
  def ET(self) -> SparseOperator:
    return self._require(self._ET)

  @property
  def num_markers(self) -> Optional[int]:
    """Marker count the structure was generated for, None before `generate()`."""
    return self._num_markers

  def _require(self, op):
    if op is None:
      raise StructuralMismatch(None, self.markers.total_points,
                               component='OperatorBuilder')
    return op

  def generate(self):
    """
    Allocates the operators and fills their position-independent entries.

    Sizes follow `qt_dimensions` and `e_dimensions`. The divergence rows and
    the marker row indices are written here once; marker columns and values
    are then filled by `update()`.
    """
    nx, ny = self.grid.shape
    n = self.markers.total_points
    with log_timing(logger, 'generateQT'):
      qt_rows, num_uv, qt_nnz = qt_dimensions(nx, ny, n)
      e_rows, _, e_nnz = e_dimensions(nx, ny, n)
      QT = SparseOperator.allocate((qt_rows, num_uv), qt_nnz)
      E = SparseOperator.allocate((e_rows, num_uv), e_nnz)

      base = 2 * self.grid.num_uv
      rows, cols, values = gradient_block(self.grid)
      QT.rows[:base], QT.cols[:base], QT.values[:base] = rows, cols, values

      # Marker k of component c fills row c * N + k of E.
      marker_rows = np.repeat(np.arange(2 * n), STENCIL_SIZE)
      E.rows[:] = marker_rows
      QT.rows[base:] = self.grid.num_p + marker_rows

    self._QT, self._E = QT, E
    self._num_markers = n
    logger.info('Generated QT %s (nnz=%d) and E %s (nnz=%d) for %d markers',
                QT.shape, QT.nnz, E.shape, E.nnz, n)
    self.update(False)

  def update(self, is_substep: bool = False):
    """
    Refreshes the marker entries of `QT` and `E` and both transposes.

    Args:
      is_substep: Read the sub-iteration coordinates instead of the current
        ones.

    Raises:
      StaleStateError: `is_substep` is set without populated substep
        buffers, or the cell indices or bounding boxes are out of date for
        the selected coordinates.
      StructuralMismatch: `generate()` was not called or the number of
        markers changed since.
      IndexOutOfDomain: a marker's cell lies outside its body's bounding box.
    """
    source = particle_class.SUBSTEP if is_substep else particle_class.CURRENT
    if is_substep and not self.markers.has_substeps:
      raise StaleStateError('update operators from substep coordinates',
                            'substep buffers are not populated',
                            component='OperatorBuilder')
    n = self.markers.total_points
    if self._num_markers is None or n != self._num_markers:
      raise StructuralMismatch(self._num_markers, n, component='OperatorBuilder')
    self.markers.require_fresh(source, 'update operators')
    self.markers.verify_bounding_boxes()

    with log_timing(logger, 'updateQT'):
      if n > 0:
        xB, yB = self.markers.coordinates(source)
        arrays = self.grid.arrays(self.backend)
        cols, values = self.backend.parallel_for(
            self._kernel, n,
            (arrays.x, arrays.y, arrays.dx, arrays.dy, xB, yB,
             self.markers.I, self.markers.J))
        # (N, 2, 12) -> component-major slot order.
        cols = cols.transpose(1, 0, 2).reshape(-1)
        values = values.transpose(1, 0, 2).reshape(-1)
        base = 2 * self.grid.num_uv
        self._QT.cols[base:], self._QT.values[base:] = cols, values
        self._E.cols[:], self._E.values[:] = cols, values

    with log_timing(logger, 'transposeQT'):
      self._Q = self._QT.transpose()
    with log_timing(logger, 'transposeE'):
      self._ET = self._E.transpose()
    logger.debug('Updated operators from %s coordinates', source)


def create_operator_builder(config: FSIConfig, grid: grids.Grid,
                            markers: particle_class.BoundaryMarkerSet
                           ) -> OperatorBuilder:
  """Creates an `OperatorBuilder` with the backend and kernel from `config`."""
  backend = backends.create_backend(
      config.backend, precision=config.precision,
      shard_across_devices=config.shard_across_devices)
  return OperatorBuilder(grid, markers, backend=backend, kernel=config.kernel)
