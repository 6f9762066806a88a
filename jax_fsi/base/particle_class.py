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
State of the immersed bodies and their Lagrangian boundary markers.

The markers of all bodies are stored back to back in flat arrays (a structure
of arrays). Each `Body` records where its markers start (`offset`) and how
many there are (`num_points`), so the markers of body `b` are
`arrays[body.offset:body.offset + body.num_points]`. This flat layout is what
the operator builder iterates over: marker `k` owns a fixed set of slots in
the sparse operators regardless of which body it belongs to.

Besides the current state (positions, velocities, forces) the marker set
keeps two snapshots used by the sub-iterations of the fluid-structure
coupling: state `k` (the latest accepted trial) and state `k + 1` (the trial
just computed). A per-marker `converged` flag reports whether the two agree
within tolerance; the outer controller decides what to do about it.

Marker coordinates change only through the methods of `BoundaryMarkerSet`.
Every change bumps a version counter for the coordinate source that was
written (`'current'` or `'substep'`). Cell indices and bounding boxes
remember the version they were computed for, which lets the operator builder
refuse to run on stale indices.
"""

import dataclasses
import math
from typing import List, Optional, Tuple

import numpy as np

from jax_fsi.base import convolution_functions
from jax_fsi.base import grids
from jax_fsi.base import kinematics
from jax_fsi.config import FSIConfig
from jax_fsi.utils.exceptions import ConfigurationError
from jax_fsi.utils.exceptions import IndexOutOfDomain
from jax_fsi.utils.exceptions import StaleStateError
from jax_fsi.utils.logger import get_logger

logger = get_logger(__name__)

Array = np.ndarray

CURRENT = 'current'
SUBSTEP = 'substep'
SOURCES = (CURRENT, SUBSTEP)


@dataclasses.dataclass
class Body:
  """
  One immersed body: a named, contiguous group of markers.

  Attributes:
    name: Label used in log and error messages.
    num_points: Number of markers of this body.
    offset: Index of the body's first marker in the flat marker arrays.
    law: The motion law driving the body.
    center: Centre of the reference geometry.
    xmin, xmax, ymin, ymax: Padded coordinate extent of the body.
    start_i, start_j: First cell of the bounding box along x and y.
    num_cells_x, num_cells_y: Number of cells in the bounding box.
    displacement: Committed displacement of the centre from `center`.
    center_velocity: Committed velocity of the body centre. Written once per
      motion-law evaluation and read-only everywhere else.
    trial_displacement, trial_center_velocity: Latest sub-iteration values,
      committed by `BoundaryMarkerSet.end_substeps`.
  """
  name: str
  num_points: int
  offset: int
  law: kinematics.MotionLaw
  center: Tuple[float, float]
  xmin: float = math.nan
  xmax: float = math.nan
  ymin: float = math.nan
  ymax: float = math.nan
  start_i: int = 0
  start_j: int = 0
  num_cells_x: int = 0
  num_cells_y: int = 0
  displacement: Tuple[float, float] = (0.0, 0.0)
  center_velocity: Tuple[float, float] = (0.0, 0.0)
  trial_displacement: Tuple[float, float] = (0.0, 0.0)
  trial_center_velocity: Tuple[float, float] = (0.0, 0.0)

  @property
  def moving(self) -> bool:
    return self.law.moving

  @property
  def markers(self) -> slice:
    """Slice selecting this body's markers in the flat arrays."""
    return slice(self.offset, self.offset + self.num_points)

  def contains_cells(self, I: Array, J: Array) -> Array:
    """Boolean mask of the cells `(I, J)` that lie inside the bounding box."""
    return ((I >= self.start_i) & (I < self.start_i + self.num_cells_x) &
            (J >= self.start_j) & (J < self.start_j + self.num_cells_y))


class BoundaryMarkerSet:
  """
  Owns per-marker and per-body state of all immersed bodies.

  Typical use within one outer time step::

      markers.update(config, grid, time)      # moves bodies, refreshes indices
      builder.update()                        # refreshes operator values

  or, when the coupling is sub-iterated::

      markers.begin_substeps(config, grid)
      while not markers.all_converged:
        markers.set_forces(fx, fy)            # from the external solve
        markers.update(config, grid, time, substep=True)
        builder.update(is_substep=True)
      markers.end_substeps(config, grid)
  """

  def __init__(self):
    self.bodies: List[Body] = []
    self.total_points = 0
    self.has_substeps = False
    self._versions = {source: 0 for source in SOURCES}
    self._indexed: Optional[Tuple[str, int]] = None
    self._boxed: Optional[Tuple[str, int]] = None
    self._allocate(0)

  def _allocate(self, n: int):
    zeros = lambda: np.zeros(n, dtype=np.float64)
    # Reference and current geometry.
    self.X, self.Y = zeros(), zeros()
    # Length of the reference segment from each marker to the next one of its
    # body, closing the outline.
    self.ds = zeros()
    self.x, self.y = zeros(), zeros()
    # Containing cell of every marker.
    self.I = np.zeros(n, dtype=np.int64)
    self.J = np.zeros(n, dtype=np.int64)
    # Velocity, current force and force of the previous solve.
    self.uB, self.vB = zeros(), zeros()
    self.force_x, self.force_y = zeros(), zeros()
    self.force_x_old, self.force_y_old = zeros(), zeros()
    # Sub-iteration snapshots k and k + 1.
    self.xk, self.yk, self.xkp1, self.ykp1 = zeros(), zeros(), zeros(), zeros()
    self.uBk, self.vBk, self.uBkp1, self.vBkp1 = zeros(), zeros(), zeros(), zeros()
    self.fXk, self.fYk, self.fXkp1, self.fYkp1 = zeros(), zeros(), zeros(), zeros()
    self.converged = np.zeros(n, dtype=bool)

  # --- Derived quantities ---
  @property
  def num_bodies(self) -> int:
    return len(self.bodies)

  @property
  def num_points(self) -> Array:
    return np.array([b.num_points for b in self.bodies], dtype=np.int64)

  @property
  def offsets(self) -> Array:
    return np.array([b.offset for b in self.bodies], dtype=np.int64)

  @property
  def bodies_move(self) -> bool:
    return any(b.moving for b in self.bodies)

  @property
  def all_converged(self) -> bool:
    return bool(np.all(self.converged))

  def coordinates(self, source: str = CURRENT) -> Tuple[Array, Array]:
    """
    Returns the `(x, y)` marker coordinates of the requested state.

    Args:
      source: `'current'` for the committed positions or `'substep'` for
        the sub-iteration state `k`.

    Raises:
      StaleStateError: `source` is `'substep'` but no sub-iteration is active.
    """
    if source == CURRENT:
      return self.x, self.y
    if source == SUBSTEP:
      if not self.has_substeps:
        raise StaleStateError('read substep coordinates',
                              'substep buffers are not populated',
                              component='BoundaryMarkerSet')
      return self.xk, self.yk
    raise ValueError(f'unknown coordinate source {source!r}; expected one of {SOURCES}')

  def body_force(self, index: int) -> Tuple[float, float]:
    """Total force on body `index`, the sum over its markers."""
    s = self.bodies[index].markers
    return float(self.force_x[s].sum()), float(self.force_y[s].sum())

  # --- Lifecycle ---
  def initialise(self, config: FSIConfig, grid: grids.Grid):
    """
    Sets up bodies and markers from the configuration.

    Markers start on their reference geometry with zero force. The initial
    velocity is the body's `initial_velocity`, except for prescribed motion
    laws, whose velocity at `t = 0` is used instead. Cell indices and
    bounding boxes are computed before returning.

    Raises:
      ConfigurationError: a body's `num_points` disagrees with the length of
        its coordinate data.
      IndexOutOfDomain: a marker lies outside the grid.
    """
    bodies = []
    offset = 0
    for n, body_config in enumerate(config.bodies):
      for axis in ('x', 'y'):
        coords = getattr(body_config, axis)
        if len(coords) != body_config.num_points:
          raise ConfigurationError(
              f'bodies[{n}].{axis}', f'{len(coords)} coordinates',
              expected=f'{body_config.num_points} (num_points)',
              component='BoundaryMarkerSet')
      law = kinematics.create_motion_law(body_config.motion)
      bodies.append(Body(
          name=body_config.name or f'body{n}',
          num_points=body_config.num_points,
          offset=offset,
          law=law,
          center=(float(np.mean(body_config.x)), float(np.mean(body_config.y))),
          center_velocity=tuple(body_config.initial_velocity)))
      offset += body_config.num_points

    self.bodies = bodies
    self.total_points = offset
    self._allocate(offset)
    for body, body_config in zip(bodies, config.bodies):
      s = body.markers
      self.X[s] = body_config.x
      self.Y[s] = body_config.y
      self.ds[s] = np.hypot(np.roll(self.X[s], -1) - self.X[s],
                            np.roll(self.Y[s], -1) - self.Y[s])
      self.uB[s], self.vB[s] = body_config.initial_velocity
    self.x[:] = self.X
    self.y[:] = self.Y

    for body in bodies:
      if body.law.prescribed:
        kin = body.law.evaluate(self._body_state(body), 0.0, config.dt)
        s = body.markers
        self.uB[s], self.vB[s] = kin.u, kin.v
        body.center_velocity = kin.center_velocity
      body.trial_displacement = body.displacement
      body.trial_center_velocity = body.center_velocity

    self.has_substeps = False
    for source in SOURCES:
      self._versions[source] += 1
    logger.info('Initialised %d bodies with %d markers (moving: %s)',
                self.num_bodies, self.total_points, self.bodies_move)

    self.calculate_cell_indices(grid)
    self.calculate_bounding_boxes(config, grid)

  def calculate_cell_indices(self, grid: grids.Grid, source: str = CURRENT):
    """
    Stores the index `(I, J)` of the cell containing every marker.

    Raises:
      IndexOutOfDomain: some marker lies outside the grid. The previous
        indices are left untouched and remain marked stale.
    """
    x, y = self.coordinates(source)
    I, outside_x = grid.find_cells(x, axis=0)
    J, outside_y = grid.find_cells(y, axis=1)
    outside = outside_x | outside_y
    if outside.any():
      raise IndexOutOfDomain(np.flatnonzero(outside), 'grid',
                             extent=grid.domain, component='BoundaryMarkerSet')
    self.I, self.J = I, J
    self._indexed = (source, self._versions[source])
    self._boxed = None

  def calculate_bounding_boxes(self, config: FSIConfig, grid: grids.Grid,
                               source: str = CURRENT):
    """
    Stores the padded extent and cell-index range of every body.

    The extent of the body's markers is padded by the support half-width of
    the configured delta function, measured in the largest grid spacing, and
    clipped to the domain.

    Raises:
      StaleStateError: cell indices are not up to date for `source`.
    """
    stamp = (source, self._versions[source])
    if self._indexed != stamp:
      raise StaleStateError('calculate bounding boxes',
                            f'cell indices are out of date for the {source} coordinates',
                            component='BoundaryMarkerSet')
    x, y = self.coordinates(source)
    support = convolution_functions.kernel_support(config.kernel)
    pad_x = support * float(grid.dx.max())
    pad_y = support * float(grid.dy.max())
    (x_lo, x_hi), (y_lo, y_hi) = grid.domain

    for body in self.bodies:
      s = body.markers
      body.xmin = max(float(x[s].min()) - pad_x, x_lo)
      body.xmax = min(float(x[s].max()) + pad_x, x_hi)
      body.ymin = max(float(y[s].min()) - pad_y, y_lo)
      body.ymax = min(float(y[s].max()) + pad_y, y_hi)
      # Cell search clips the upper edge of the domain into the last cell.
      (i0, i1), _ = grid.find_cells(np.array([body.xmin, body.xmax]), axis=0)
      (j0, j1), _ = grid.find_cells(np.array([body.ymin, body.ymax]), axis=1)
      body.start_i, body.num_cells_x = int(i0), int(i1 - i0 + 1)
      body.start_j, body.num_cells_y = int(j0), int(j1 - j0 + 1)
    self._boxed = stamp

  def require_fresh(self, source: str, operation: str):
    """Raises `StaleStateError` unless indices and boxes match `source`."""
    stamp = (source, self._versions[source])
    if self._indexed != stamp:
      raise StaleStateError(operation,
                            f'cell indices are out of date for the {source} coordinates',
                            component='BoundaryMarkerSet')
    if self._boxed != stamp:
      raise StaleStateError(operation,
                            f'bounding boxes are out of date for the {source} coordinates',
                            component='BoundaryMarkerSet')

  def verify_bounding_boxes(self):
    """Raises `IndexOutOfDomain` if a marker's cell is outside its body's box."""
    for body in self.bodies:
      s = body.markers
      inside = body.contains_cells(self.I[s], self.J[s])
      if not inside.all():
        raise IndexOutOfDomain(
            np.flatnonzero(~inside) + body.offset,
            f'bounding box of {body.name}',
            extent=(body.start_i, body.num_cells_x, body.start_j, body.num_cells_y),
            component='BoundaryMarkerSet')

  def set_forces(self, force_x: Array, force_y: Array):
    """Stores new marker forces, keeping the previous ones as `force_*_old`."""
    force_x = np.asarray(force_x, dtype=np.float64)
    force_y = np.asarray(force_y, dtype=np.float64)
    if force_x.shape != (self.total_points,) or force_y.shape != (self.total_points,):
      raise ValueError(
          f'forces must have shape ({self.total_points},), '
          f'got {force_x.shape} and {force_y.shape}')
    self.force_x_old[:] = self.force_x
    self.force_y_old[:] = self.force_y
    self.force_x[:] = force_x
    self.force_y[:] = force_y

  def _body_state(self, body: Body) -> kinematics.BodyState:
    s = body.markers
    return kinematics.BodyState(
        X=self.X[s], Y=self.Y[s], x=self.x[s], y=self.y[s],
        u=self.uB[s], v=self.vB[s],
        force_x=self.force_x[s], force_y=self.force_y[s],
        center=body.center, displacement=body.displacement,
        center_velocity=body.center_velocity)

  def update(self, config: FSIConfig, grid: grids.Grid, time: float,
             substep: bool = False):
    """
    Advances the bodies to `time` with their motion laws.

    Outside a sub-iteration the new state is written to the current arrays.
    Inside one (`substep=True`) it is written to snapshot `k + 1`, every
    marker's `converged` flag is set by comparing the `k + 1` and `k`
    velocities against `config.substep_tolerance`, and `k + 1` becomes the
    new `k`. The motion laws always start from the committed state, so
    repeated sub-iterations refine the same step with newer forces.

    Cell indices and bounding boxes are recomputed for the written state.

    Raises:
      StaleStateError: `substep` is set but `begin_substeps` was not called.
      IndexOutOfDomain: a body moved outside the grid.
    """
    if substep and not self.has_substeps:
      raise StaleStateError('update substep state',
                            'begin_substeps() has not been called',
                            component='BoundaryMarkerSet')
    if not substep and not self.bodies_move:
      return

    if substep:
      self.fXkp1[:] = self.force_x
      self.fYkp1[:] = self.force_y

    for body in self.bodies:
      s = body.markers
      if not body.moving:
        if substep:
          self.xkp1[s], self.ykp1[s] = self.xk[s], self.yk[s]
          self.uBkp1[s], self.vBkp1[s] = self.uBk[s], self.vBk[s]
        continue
      kin = body.law.evaluate(self._body_state(body), time, config.dt)
      if substep:
        self.xkp1[s], self.ykp1[s] = kin.x, kin.y
        self.uBkp1[s], self.vBkp1[s] = kin.u, kin.v
        body.trial_displacement = kin.displacement
        body.trial_center_velocity = kin.center_velocity
      else:
        self.x[s], self.y[s] = kin.x, kin.y
        self.uB[s], self.vB[s] = kin.u, kin.v
        body.displacement = kin.displacement
        body.center_velocity = kin.center_velocity

    if substep:
      tol = config.substep_tolerance
      self.converged[:] = ((np.abs(self.uBkp1 - self.uBk) <= tol) &
                           (np.abs(self.vBkp1 - self.vBk) <= tol))
      self.xk[:], self.yk[:] = self.xkp1, self.ykp1
      self.uBk[:], self.vBk[:] = self.uBkp1, self.vBkp1
      self.fXk[:], self.fYk[:] = self.fXkp1, self.fYkp1
      source = SUBSTEP
      logger.debug('Substep update at t=%g: %d/%d markers converged', time,
                   int(self.converged.sum()), self.total_points)
    else:
      source = CURRENT
      logger.debug('Moved bodies to t=%g', time)

    self._versions[source] += 1
    self.calculate_cell_indices(grid, source)
    self.calculate_bounding_boxes(config, grid, source)

  def begin_substeps(self, config: FSIConfig, grid: grids.Grid):
    """Populates snapshots `k` and `k + 1` from the committed state."""
    self.xk[:], self.yk[:] = self.x, self.y
    self.xkp1[:], self.ykp1[:] = self.x, self.y
    self.uBk[:], self.vBk[:] = self.uB, self.vB
    self.uBkp1[:], self.vBkp1[:] = self.uB, self.vB
    self.fXk[:], self.fYk[:] = self.force_x, self.force_y
    self.fXkp1[:], self.fYkp1[:] = self.force_x, self.force_y
    self.converged[:] = False
    for body in self.bodies:
      body.trial_displacement = body.displacement
      body.trial_center_velocity = body.center_velocity
    self.has_substeps = True
    self._versions[SUBSTEP] += 1
    self.calculate_cell_indices(grid, SUBSTEP)
    self.calculate_bounding_boxes(config, grid, SUBSTEP)

  def end_substeps(self, config: FSIConfig, grid: grids.Grid):
    """
    Commits snapshot `k` as the current state and discards the snapshots.

    Committing without convergence is allowed, since the caller owns that
    decision, but it is logged as a warning.
    """
    if not self.has_substeps:
      raise StaleStateError('end substeps', 'substep buffers are not populated',
                            component='BoundaryMarkerSet')
    if not self.all_converged:
      logger.warning('Committing substep state with %d unconverged markers',
                     int((~self.converged).sum()))
    self.x[:], self.y[:] = self.xk, self.yk
    self.uB[:], self.vB[:] = self.uBk, self.vBk
    for body in self.bodies:
      body.displacement = body.trial_displacement
      body.center_velocity = body.trial_center_velocity
    self.has_substeps = False
    self._versions[CURRENT] += 1
    self.calculate_cell_indices(grid, CURRENT)
    self.calculate_bounding_boxes(config, grid, CURRENT)
