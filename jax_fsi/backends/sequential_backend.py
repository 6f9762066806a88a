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
"""Sequential backend: a plain loop over markers with NumPy."""

import numpy as np

from jax_fsi.backends.base_backend import ExecutionBackend


class SequentialBackend(ExecutionBackend):
  """Evaluates the per-marker kernel one marker at a time on the host."""

  def _setup_backend(self):
    self.dtype = np.float32 if self.precision == 'float32' else np.float64

  @property
  def name(self) -> str:
    return 'sequential'

  @property
  def array_module(self):
    return np

  def asarray(self, a):
    a = np.asarray(a)
    if np.issubdtype(a.dtype, np.floating):
      return a.astype(self.dtype, copy=False)
    return a

  def _parallel_for(self, kernel, count, operands):
    operands = tuple(self.asarray(op) for op in operands)
    results = [kernel(np, k, *operands) for k in range(count)]
    return tuple(np.stack(parts) for parts in zip(*results))
