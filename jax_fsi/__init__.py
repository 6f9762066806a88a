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
This `__init__.py` file makes `jax_fsi` a Python package.

`jax_fsi` is the operator-construction core of an immersed boundary
fluid-structure interaction solver. A fixed staggered Cartesian grid is
coupled to one or more moving bodies, each discretized by Lagrangian boundary
markers. The package keeps the state of the markers, locates them on the
grid, and builds the sparse transfer operators between grid velocities and
marker quantities that an external solver consumes.

The per-marker stencil work runs on an interchangeable execution backend:
a NumPy loop or a JAX `vmap`/`pmap` dispatch that produces the same values.
"""

# Error types and logging helpers used by every other module.
import jax_fsi.utils

# Pydantic models describing the bodies, their motion and the numerics.
import jax_fsi.config

# Sequential and data-parallel evaluators of the per-marker stencil.
import jax_fsi.backends

# Grid description, delta kernels, marker state, motion laws and operators.
import jax_fsi.base
