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
Force-driven equations of motion for rigid immersed bodies.

Here the motion of a body is an outcome of the coupled solution rather than
an input. The body is a rigid mass mounted on a linear spring and damper
along each of its free axes (the classic vortex-induced-vibration setup):

    `m a = F - c v - k d`

where `F` is the total fluid force on the body, obtained by summing the
forces on its markers, `d` is the displacement of the body centre from its
reference position and `v` its velocity.

The equation is advanced with the same semi-implicit Euler scheme used for
the mass-carrying markers of deformable particles: the velocity is updated
first and the new velocity moves the body.

During the sub-iterations of a time step the law is re-evaluated from the
same committed state with successively better force estimates. The marker
set compares consecutive trial velocities to decide convergence.
"""

import numpy as np

from jax_fsi.base import kinematics


@kinematics.register_motion_law('spring_mounted')
class SpringMountedBody(kinematics.MotionLaw):
  """Rigid body on a spring-damper, free to move along `config.free_axes`."""

  def evaluate(self, state, time, dt):
    cfg = self.config
    free = np.asarray(cfg.free_axes, dtype=bool)

    total_force = np.array([state.force_x.sum(), state.force_y.sum()])
    d = np.asarray(state.displacement, dtype=np.float64)
    vel = np.asarray(state.center_velocity, dtype=np.float64)

    accel = (total_force - cfg.damping * vel - cfg.stiffness * d) / cfg.mass
    new_vel = np.where(free, vel + dt * accel, 0.0)
    new_d = np.where(free, d + dt * new_vel, d)

    return kinematics.BodyKinematics(
        x=state.X + new_d[0], y=state.Y + new_d[1],
        u=np.full_like(state.X, new_vel[0]), v=np.full_like(state.Y, new_vel[1]),
        displacement=(float(new_d[0]), float(new_d[1])),
        center_velocity=(float(new_vel[0]), float(new_vel[1])))
