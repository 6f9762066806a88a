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
Body-motion laws and the registry that selects them from configuration.

A motion law is a pluggable policy that, given the committed state of one
body, the latest forces on its markers, the time and the step size, returns
the new marker positions and velocities together with the body's centre
displacement and centre velocity.

This module holds the protocol, the registry and the prescribed
("kinematically-driven") laws, where the motion is an input of the simulation:

- `static`: the body never moves.
- `rigid_translation`: constant-velocity translation.
- `oscillating`: heaving and pitching, following the sinusoidal displacement
  and rotation functions used for flapping foils.

Force-driven laws, where motion is an output of the coupled solution, live in
`particle_motion` and register themselves here.
"""

import abc
import dataclasses
from typing import Callable, Dict, Tuple, Type

import numpy as np

from jax_fsi.config import MotionConfig
from jax_fsi.utils.exceptions import ConfigurationError

Array = np.ndarray


@dataclasses.dataclass(frozen=True)
class BodyState:
  """
  Read-only view of one body handed to a motion law.

  The arrays are slices of the marker set's storage, borrowed for the
  duration of the call. Laws must not keep references to them.
  """
  X: Array                 # reference x-coordinates
  Y: Array                 # reference y-coordinates
  x: Array                 # committed x-coordinates
  y: Array                 # committed y-coordinates
  u: Array                 # committed x-velocities
  v: Array                 # committed y-velocities
  force_x: Array           # latest x-force on each marker
  force_y: Array           # latest y-force on each marker
  center: Tuple[float, float]           # reference centre
  displacement: Tuple[float, float]     # committed centre displacement
  center_velocity: Tuple[float, float]  # committed centre velocity


@dataclasses.dataclass(frozen=True)
class BodyKinematics:
  """New marker positions and velocities produced by a motion law."""
  x: Array
  y: Array
  u: Array
  v: Array
  displacement: Tuple[float, float]
  center_velocity: Tuple[float, float]


class MotionLaw(abc.ABC):
  """Base class of all body-motion laws."""

  # Static laws let the marker set skip position updates entirely.
  moving: bool = True
  # Prescribed laws also define the velocity the body starts with.
  prescribed: bool = False

  def __init__(self, config: MotionConfig):
    self.config = config

  @abc.abstractmethod
  def evaluate(self, state: BodyState, time: float, dt: float) -> BodyKinematics:
    """Returns the body kinematics at `time`, advancing by `dt` if needed."""


_MOTION_LAWS: Dict[str, Type[MotionLaw]] = {}


def register_motion_law(kind: str) -> Callable[[Type[MotionLaw]], Type[MotionLaw]]:
  """Class decorator registering a motion law under a configuration name."""
  def decorator(cls):
    _MOTION_LAWS[kind] = cls
    return cls
  return decorator


def available_motion_laws() -> Tuple[str, ...]:
  return tuple(sorted(_MOTION_LAWS))


def create_motion_law(config: MotionConfig) -> MotionLaw:
  """Instantiates the motion law named by `config.kind`."""
  try:
    cls = _MOTION_LAWS[config.kind]
  except KeyError:
    raise ConfigurationError(
        'motion.kind', config.kind,
        expected=f'one of {available_motion_laws()}',
        component='kinematics') from None
  return cls(config)


@register_motion_law('static')
class StaticBody(MotionLaw):
  """A body held fixed at its current position."""

  moving = False

  def evaluate(self, state, time, dt):
    return BodyKinematics(
        x=state.x.copy(), y=state.y.copy(),
        u=np.zeros_like(state.u), v=np.zeros_like(state.v),
        displacement=state.displacement,
        center_velocity=(0.0, 0.0))


@register_motion_law('rigid_translation')
class RigidTranslation(MotionLaw):
  """Translation with the constant velocity `config.velocity`."""

  prescribed = True

  def evaluate(self, state, time, dt):
    U, V = self.config.velocity
    displacement = (U * time, V * time)
    return BodyKinematics(
        x=state.X + displacement[0], y=state.Y + displacement[1],
        u=np.full_like(state.X, U), v=np.full_like(state.Y, V),
        displacement=displacement,
        center_velocity=(U, V))


def displacement(amplitude, frequency, phase, t):
  """
  Sinusoidal heave displacement and its time derivative.

  Args:
    amplitude: Peak-to-peak amplitude `A0` per axis.
    frequency: Oscillation frequency `f`.
    phase: Phase offset in radians.
    t: The current simulation time.

  Returns:
    A pair `(d, d_dot)` of 2-element arrays, with `d = A0 / 2 cos(2 pi f t + phase)`.
  """
  A0 = np.asarray(amplitude, dtype=np.float64)
  omega = 2 * np.pi * frequency
  d = A0 / 2 * np.cos(omega * t + phase)
  d_dot = -A0 / 2 * omega * np.sin(omega * t + phase)
  return d, d_dot


def rotation(alpha0, beta, frequency, phi, t):
  """Pitch angle `alpha0 + beta sin(2 pi f t + phi)` and its rate."""
  omega = 2 * np.pi * frequency
  alpha = alpha0 + beta * np.sin(omega * t + phi)
  alpha_dot = beta * omega * np.cos(omega * t + phi)
  return alpha, alpha_dot


@register_motion_law('oscillating')
class Oscillation(MotionLaw):
  """
  Prescribed heaving and pitching motion.

  The reference geometry is rotated about its reference centre by the pitch
  angle and then shifted by the heave displacement. The heave is measured
  from its value at `t = 0`, so the body starts on its reference geometry.
  Marker velocities follow from the rigid-body relation
  `u = d_dot - alpha_dot * (y - yc)`, `v = d_dot + alpha_dot * (x - xc)`.
  """

  prescribed = True

  def evaluate(self, state, time, dt):
    cfg = self.config
    d, d_dot = displacement(cfg.amplitude, cfg.frequency, cfg.phase, time)
    d0, _ = displacement(cfg.amplitude, cfg.frequency, cfg.phase, 0.0)
    d = d - d0
    alpha, alpha_dot = rotation(cfg.pitch_mean, cfg.pitch_amplitude,
                                cfg.frequency, cfg.pitch_phase, time)
    alpha0, _ = rotation(cfg.pitch_mean, cfg.pitch_amplitude,
                         cfg.frequency, cfg.pitch_phase, 0.0)
    angle = alpha - alpha0

    xc, yc = state.center
    rx, ry = state.X - xc, state.Y - yc
    cos_a, sin_a = np.cos(angle), np.sin(angle)
    # Position relative to the moving centre.
    px = cos_a * rx - sin_a * ry
    py = sin_a * rx + cos_a * ry

    return BodyKinematics(
        x=xc + d[0] + px, y=yc + d[1] + py,
        u=d_dot[0] - alpha_dot * py, v=d_dot[1] + alpha_dot * px,
        displacement=(float(d[0]), float(d[1])),
        center_velocity=(float(d_dot[0]), float(d_dot[1])))
