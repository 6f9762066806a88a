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
Discrete delta functions used by the immersed boundary transfer operators.

The transfer between the Eulerian grid and the Lagrangian markers is a
discrete convolution with a regularized delta function. In two dimensions the
kernel is separable:

    `δ_h(x - X, y - Y) = δ_h(x - X) * δ_h(y - Y)`

Every kernel here has compact support of at most `1.5 h`. That bound is what
lets the operator builder visit a fixed 3x4 (or 4x3) neighbourhood of velocity
unknowns per marker and still capture every nonzero weight.

The functions take the array namespace `xp` (`numpy` or `jax.numpy`) as their
first argument. The same code therefore runs inside a plain NumPy loop and
inside `jax.vmap`, and both execution backends produce the same numbers. The
kernels are written with `where` instead of Python branches so they stay
traceable by JAX.
"""

from typing import Any, Callable, Dict

DeltaFunction = Callable[[Any, Any, Any], Any]


def delta_roma(xp, r, h):
  """
  The three-point delta function of Roma, Peskin & Berger (1999).

  It has support `|r| <= 1.5 h`, satisfies the zeroth and first moment
  conditions and integrates to one over the grid.

  Args:
    xp: Array namespace (`numpy` or `jax.numpy`).
    r: Signed distance between a grid point and the marker.
    h: Local grid spacing.

  Returns:
    The kernel weight, including the `1 / h` normalisation.
  """
  q = xp.abs(r) / h
  # The square-root arguments are clamped so that branches discarded by
  # `where` never produce NaN (NumPy would warn, JAX would poison gradients).
  inner = (1.0 + xp.sqrt(xp.maximum(1.0 - 3.0 * q * q, 0.0))) / (3.0 * h)
  outer = (5.0 - 3.0 * q
           - xp.sqrt(xp.maximum(1.0 - 3.0 * (1.0 - q) ** 2, 0.0))) / (6.0 * h)
  return xp.where(q > 1.5, 0.0, xp.where(q > 0.5, outer, inner))


def delta_hat(xp, r, h):
  """Two-point hat function, `(1 - |r|/h) / h` for `|r| <= h`."""
  q = xp.abs(r) / h
  return xp.where(q <= 1.0, (1.0 - q) / h, 0.0)


# Support half-width of each kernel, in units of the local grid spacing.
KERNEL_SUPPORT: Dict[str, float] = {
    'roma': 1.5,
    'hat': 1.0,
}

_KERNELS: Dict[str, DeltaFunction] = {
    'roma': delta_roma,
    'hat': delta_hat,
}


def get_delta_function(name: str) -> DeltaFunction:
  try:
    return _KERNELS[name]
  except KeyError:
    raise ValueError(
        f'Unknown delta function {name!r}; available: {sorted(_KERNELS)}'
    ) from None


def kernel_support(name: str) -> float:
  get_delta_function(name)
  return KERNEL_SUPPORT[name]
