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
Validated configuration for immersed bodies and operator construction.

The models only validate individual fields (types, ranges, allowed names).
Cross-checks between a body's declared point count and its coordinate data
are performed by `BoundaryMarkerSet.initialise`, which reports them as
`ConfigurationError`.
"""

from __future__ import annotations

from typing import List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

MotionKind = Literal['static', 'rigid_translation', 'oscillating',
                     'spring_mounted']
KernelName = Literal['roma', 'hat']
BackendName = Literal['sequential', 'parallel']


class MotionConfig(BaseModel):
  """
  Parameters of a body-motion law.

  Only the fields relevant to `kind` are read:

  - `rigid_translation`: `velocity`.
  - `oscillating`: `amplitude`, `frequency`, `phase`, `pitch_mean`,
    `pitch_amplitude`, `pitch_phase`.
  - `spring_mounted`: `mass`, `stiffness`, `damping`, `free_axes`.
  """

  kind: MotionKind = Field('static', description='Motion-law identifier')
  velocity: Tuple[float, float] = Field(
      (0.0, 0.0), description='Constant translation velocity (u, v)')
  amplitude: Tuple[float, float] = Field(
      (0.0, 0.0), description='Peak-to-peak heave amplitude per axis')
  frequency: float = Field(0.0, ge=0.0, description='Oscillation frequency')
  phase: float = Field(0.0, description='Heave phase offset in radians')
  pitch_mean: float = Field(0.0, description='Mean pitch angle in radians')
  pitch_amplitude: float = Field(0.0, description='Pitch amplitude in radians')
  pitch_phase: float = Field(0.0, description='Pitch phase offset in radians')
  mass: float = Field(1.0, gt=0.0, description='Body mass')
  stiffness: float = Field(0.0, ge=0.0, description='Spring stiffness')
  damping: float = Field(0.0, ge=0.0, description='Linear damping coefficient')
  free_axes: Tuple[bool, bool] = Field(
      (False, True), description='Axes along which the spring body may move')

  model_config = ConfigDict(extra='forbid')


class BodyConfig(BaseModel):
  """Geometry, initial velocity and motion law of one immersed body."""

  name: Optional[str] = Field(None, description='Label used in log messages')
  num_points: int = Field(..., ge=1, description='Number of boundary markers')
  x: List[float] = Field(..., description='Reference x-coordinates')
  y: List[float] = Field(..., description='Reference y-coordinates')
  initial_velocity: Tuple[float, float] = Field(
      (0.0, 0.0), description='Initial rigid velocity (u, v) of every marker')
  motion: MotionConfig = Field(default_factory=MotionConfig)

  model_config = ConfigDict(extra='forbid')


class FSIConfig(BaseModel):
  """Top-level configuration consumed by the marker set and operator builder."""

  bodies: List[BodyConfig] = Field(default_factory=list)
  dt: float = Field(0.01, gt=0.0, description='Outer time step')
  kernel: KernelName = Field('roma', description='Discrete delta function')
  backend: BackendName = Field(
      'sequential', description='Per-marker execution backend')
  precision: Literal['float32', 'float64'] = Field(
      'float64', description='Floating point precision of the execution backend')
  shard_across_devices: bool = Field(
      False, description='Split markers across local devices with pmap')
  substep_tolerance: float = Field(
      1e-5, gt=0.0, description='Velocity change below which a marker converged')

  model_config = ConfigDict(validate_assignment=True)
