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
Abstract execution backend.

An execution backend provides exactly one computational primitive: a
"parallel-for over markers". The per-marker algorithm is written once as a
kernel

    `kernel(xp, k, *operands) -> tuple of arrays`

where `xp` is the backend's array namespace and `k` the marker index. The
backend evaluates it for `k = 0 .. count - 1` and stacks the results along a
new leading axis. Kernels must not write to shared state; every marker's
result lands in its own row of the output, which is what makes any
evaluation order, and any degree of parallelism, give the same answer.

The operands are borrowed for the duration of the call. Backends may convert
them to their own array type but never keep a reference afterwards.
"""

import abc
from typing import Any, Callable, Dict, Sequence, Tuple

import numpy as np

Kernel = Callable[..., Tuple[Any, ...]]


class ExecutionBackend(abc.ABC):
  """Base class of the sequential and data-parallel marker backends."""

  def __init__(self, precision: str = 'float64', **kwargs):
    """
    Args:
      precision: Floating point precision, `'float32'` or `'float64'`.
      **kwargs: Backend-specific options.
    """
    if precision not in ('float32', 'float64'):
      raise ValueError(f"precision must be 'float32' or 'float64', got {precision!r}")
    self.precision = precision
    self.options = kwargs
    self._setup_backend()

  def _setup_backend(self):
    """Backend-specific initialization."""

  @property
  @abc.abstractmethod
  def name(self) -> str:
    """Backend name identifier."""

  @property
  @abc.abstractmethod
  def array_module(self):
    """The array namespace handed to kernels (`numpy` or `jax.numpy`)."""

  @abc.abstractmethod
  def asarray(self, a):
    """Converts `a` to the backend's array type."""

  def to_numpy(self, a) -> np.ndarray:
    return np.asarray(a)

  def parallel_for(self, kernel: Kernel, count: int,
                   operands: Sequence[Any]) -> Tuple[np.ndarray, ...]:
    """
    Evaluates `kernel` for every marker index in `range(count)`.

    Args:
      kernel: Function `kernel(xp, k, *operands)` returning a tuple of arrays
        with the same shapes for every `k`.
      count: Number of markers, at least 1.
      operands: Arrays shared by all markers, borrowed for this call.

    Returns:
      A tuple of NumPy arrays; entry `n` has shape `(count,) + shape_n`.
    """
    if count < 1:
      raise ValueError(f'parallel_for needs at least one index, got {count}')
    return tuple(self.to_numpy(out) for out in
                 self._parallel_for(kernel, int(count), tuple(operands)))

  @abc.abstractmethod
  def _parallel_for(self, kernel: Kernel, count: int,
                    operands: Tuple[Any, ...]) -> Tuple[Any, ...]:
    """Backend implementation of `parallel_for`."""

  def get_device_info(self) -> Dict[str, Any]:
    return {'backend': self.name, 'precision': self.precision}

  def __repr__(self):
    return f'{type(self).__name__}(precision={self.precision!r})'
