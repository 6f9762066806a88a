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
Description of the staggered Cartesian grid the markers live on.

The grid itself is set up by the surrounding flow solver; this module only
describes it in the form the operator builder consumes:

- node coordinate arrays `x` (length `nx + 1`) and `y` (length `ny + 1`),
  which may be non-uniformly spaced,
- the spacing arrays `dx` and `dy`,
- the counts of the staggered unknowns.

The unknowns are arranged on a MAC (marker-and-cell) layout. Pressure sits at
cell centres, x-velocity on the interior vertical faces and y-velocity on the
interior horizontal faces::

      y[j+1] +-----v(i,j)-----+
             |                |
          u(i-1,j)  p(i,j)  u(i,j)
             |                |
        y[j] +----v(i,j-1)----+
            x[i]            x[i+1]

Velocity unknowns are numbered u first, `j * (nx - 1) + i`, then v,
`numU + j * nx + i`. Pressure unknowns are numbered `j * nx + i`.
"""
from __future__ import annotations

import collections
import dataclasses
import numbers
import operator
from typing import Any, Optional, Sequence, Tuple, Union

import numpy as np

Array = np.ndarray

# The node and spacing arrays converted for a particular execution backend.
GridArrays = collections.namedtuple('GridArrays', ['x', 'y', 'dx', 'dy'])


@dataclasses.dataclass(init=False, frozen=True, eq=False)
class Grid:
  """
  Describes the nodes, spacing and unknown counts of a 2D staggered grid.

  The grid is immutable. Provide `shape` together with either `step` or
  `domain` for a uniform grid, or provide explicit `nodes` for a stretched
  one.

  Attributes:
    shape: Number of cells `(nx, ny)`.
    x: Node x-coordinates, shape `(nx + 1,)`, strictly increasing.
    y: Node y-coordinates, shape `(ny + 1,)`, strictly increasing.
  """
  shape: Tuple[int, int]
  x: Array
  y: Array

  def __init__(
      self,
      shape: Optional[Sequence[int]] = None,
      step: Optional[Union[float, Sequence[float]]] = None,
      domain: Optional[Union[float, Sequence[Tuple[float, float]]]] = None,
      nodes: Optional[Tuple[Sequence[float], Sequence[float]]] = None,
  ):
    if nodes is not None:
      if shape is not None or step is not None or domain is not None:
        raise TypeError('Cannot combine `nodes` with `shape`, `step` or `domain`')
      if len(nodes) != 2:
        raise ValueError(f'nodes must be an (x, y) pair, got {len(nodes)} arrays')
      x, y = (np.array(n, dtype=np.float64) for n in nodes)
    else:
      if shape is None:
        raise TypeError('Grid requires either `shape` or `nodes`')
      shape = tuple(operator.index(s) for s in shape)
      if len(shape) != 2:
        raise ValueError(f'only 2D grids are supported, got shape {shape}')
      if step is not None and domain is not None:
        raise TypeError('Cannot provide both `step` and `domain` to Grid constructor')
      elif domain is not None:
        if isinstance(domain, numbers.Number):
          domain = ((0, domain),) * 2
        elif len(domain) != 2:
          raise ValueError(f'length of domain does not match ndim: {len(domain)} vs 2')
        domain = tuple((float(lower), float(upper)) for lower, upper in domain)
      else:
        if step is None: step = 1.0
        if isinstance(step, numbers.Number):
          step = (step,) * 2
        elif len(step) != 2:
          raise ValueError(f'length of step does not match ndim: {len(step)} vs 2')
        domain = tuple((0.0, float(s * n)) for s, n in zip(step, shape))
      x, y = (np.linspace(lower, upper, n + 1)
              for (lower, upper), n in zip(domain, shape))

    for name, nodes_ in (('x', x), ('y', y)):
      if nodes_.ndim != 1 or nodes_.size < 2:
        raise ValueError(f'{name} nodes must be a 1D array with at least 2 entries')
      if not np.all(np.diff(nodes_) > 0):
        raise ValueError(f'{name} nodes must be strictly increasing')

    x.setflags(write=False)
    y.setflags(write=False)
    object.__setattr__(self, 'shape', (x.size - 1, y.size - 1))
    object.__setattr__(self, 'x', x)
    object.__setattr__(self, 'y', y)
    object.__setattr__(self, '_arrays', {})

  @property
  def ndim(self) -> int:
    return 2

  @property
  def nx(self) -> int:
    return self.shape[0]

  @property
  def ny(self) -> int:
    return self.shape[1]

  @property
  def dx(self) -> Array:
    """Cell widths along x, shape `(nx,)`."""
    return np.diff(self.x)

  @property
  def dy(self) -> Array:
    """Cell heights along y, shape `(ny,)`."""
    return np.diff(self.y)

  @property
  def domain(self) -> Tuple[Tuple[float, float], Tuple[float, float]]:
    return ((float(self.x[0]), float(self.x[-1])),
            (float(self.y[0]), float(self.y[-1])))

  @property
  def is_uniform(self) -> bool:
    return bool(np.allclose(self.dx, self.dx[0]) and np.allclose(self.dy, self.dy[0]))

  # --- Staggered unknown counts ---
  @property
  def num_u(self) -> int:
    """Number of x-velocity unknowns, `(nx - 1) * ny`."""
    return (self.nx - 1) * self.ny

  @property
  def num_v(self) -> int:
    """Number of y-velocity unknowns, `nx * (ny - 1)`."""
    return self.nx * (self.ny - 1)

  @property
  def num_uv(self) -> int:
    return self.num_u + self.num_v

  @property
  def num_p(self) -> int:
    """Number of pressure unknowns, `nx * ny`."""
    return self.nx * self.ny

  def cell_centers(self, axis: int) -> Array:
    nodes = self.x if axis == 0 else self.y
    return 0.5 * (nodes[:-1] + nodes[1:])

  def arrays(self, backend: Any = None) -> GridArrays:
    """
    Returns the node and spacing arrays in a backend's array type.

    With no backend the read-only NumPy arrays are returned. Otherwise the
    arrays are converted once with `backend.asarray` and cached under the
    backend's name and precision, so a device copy is made a single time per
    grid and backends of different precision never share one.
    """
    if backend is None:
      return GridArrays(self.x, self.y, self.dx, self.dy)
    key = (backend.name, backend.precision)
    cache = self._arrays
    if key not in cache:
      cache[key] = GridArrays(*(backend.asarray(a) for a in (
          self.x, self.y, self.dx, self.dy)))
    return cache[key]

  def find_cells(self, coords: Array, axis: int) -> Tuple[Array, Array]:
    """
    Locates the cell along `axis` that contains each coordinate.

    A coordinate `c` belongs to cell `i` when `nodes[i] <= c < nodes[i + 1]`.
    The search works for any strictly increasing node array.

    Args:
      coords: 1D array of marker coordinates along `axis`.
      axis: 0 for x, 1 for y.

    Returns:
      A tuple `(indices, outside)`. `outside` flags coordinates that are not
      inside the domain (including NaN); their entry in `indices` is
      meaningless and must not be used.
    """
    nodes = self.x if axis == 0 else self.y
    coords = np.asarray(coords, dtype=np.float64)
    # NaN compares False on both sides, so diverged markers count as outside.
    inside = (coords >= nodes[0]) & (coords < nodes[-1])
    indices = np.searchsorted(nodes, coords, side='right') - 1
    indices = np.clip(indices, 0, nodes.size - 2).astype(np.int64)
    return indices, ~inside
