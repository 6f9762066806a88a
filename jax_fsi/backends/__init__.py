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
Execution backends for the per-marker stencil computation.

- `sequential`: NumPy loop over markers on the host.
- `parallel`: JAX `vmap` + `jit`, optionally sharded across devices with `pmap`.

Both evaluate the same kernel and must agree to round-off. The backend is
chosen once, when the operator builder is constructed, never per call.
"""

from typing import Tuple

from jax_fsi.backends.base_backend import ExecutionBackend
from jax_fsi.backends.parallel_backend import ParallelBackend
from jax_fsi.backends.sequential_backend import SequentialBackend
from jax_fsi.utils.exceptions import ConfigurationError
from jax_fsi.utils.logger import get_logger

logger = get_logger(__name__)

_BACKENDS = {}
_DEFAULT_BACKEND = 'sequential'


def register_backend(name: str, backend_class):
  """Registers an `ExecutionBackend` subclass under `name`."""
  _BACKENDS[name] = backend_class


def get_available_backends() -> Tuple[str, ...]:
  return tuple(sorted(_BACKENDS))


def create_backend(backend_name: str = None, **kwargs) -> ExecutionBackend:
  """
  Creates an execution backend.

  Args:
    backend_name: `'sequential'`, `'parallel'` or None for the default.
    **kwargs: Passed to the backend constructor (`precision`,
      `shard_across_devices`).

  Raises:
    ConfigurationError: unknown backend name.
  """
  if backend_name is None:
    backend_name = _DEFAULT_BACKEND
  if backend_name not in _BACKENDS:
    raise ConfigurationError('backend', backend_name,
                             expected=f'one of {get_available_backends()}',
                             component='backends')
  backend = _BACKENDS[backend_name](**kwargs)
  logger.info('Using %s execution backend', backend_name)
  return backend


register_backend('sequential', SequentialBackend)
register_backend('parallel', ParallelBackend)
