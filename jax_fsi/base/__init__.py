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
This `__init__.py` file makes the `jax_fsi.base` directory a Python package.

Importing the modules here allows `from jax_fsi.base import grids` and
registers the built-in motion laws.
"""

# --- Immersed boundary state and operators ---

# Bodies and the flat marker arrays (`BoundaryMarkerSet`).
import jax_fsi.base.particle_class

# Builds and refreshes the sparse transfer operators `QT` and `E`.
import jax_fsi.base.IBM_Operators

# Coordinate-format sparse matrices with a fixed number of entries.
import jax_fsi.base.sparse_operators


# --- Motion laws ---

# Motion-law protocol, registry and the prescribed laws.
import jax_fsi.base.kinematics

# Force-driven motion; importing it registers `spring_mounted`.
import jax_fsi.base.particle_motion


# --- Foundations ---

# The staggered grid description (`Grid`).
import jax_fsi.base.grids

# Discrete delta functions for the transfer operators.
import jax_fsi.base.convolution_functions
