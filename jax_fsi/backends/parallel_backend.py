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
Data-parallel backend built on JAX.

The per-marker kernel is vectorized over all markers with `jax.vmap` and
compiled with `jax.jit`. With `shard_across_devices=True` the markers are
additionally split into one chunk per local device and the chunks run in
parallel under `jax.pmap`, the same manual data parallelism used for the
surface convolutions: the index range is padded up to a multiple of the
device count, padded indices repeat the last marker, and the padding is
dropped from the gathered result.

Compiled functions are cached per kernel object, so a builder that reuses
one kernel pays the tracing cost once.
"""

import functools

import jax
import jax.numpy as jnp
import numpy as np

from jax_fsi.backends.base_backend import ExecutionBackend
from jax_fsi.utils.logger import get_logger

logger = get_logger(__name__)


class ParallelBackend(ExecutionBackend):
  """Evaluates the per-marker kernel for all markers at once with JAX."""

  def __init__(self, precision: str = 'float64',
               shard_across_devices: bool = False, **kwargs):
    self.shard_across_devices = shard_across_devices
    super().__init__(precision=precision, **kwargs)

  def _setup_backend(self):
    # 64-bit mode is a process-wide JAX switch shared by every backend. It is
    # only ever switched on; a float32 backend gets its precision from the
    # dtype of its operands instead.
    jax.config.update('jax_enable_x64', True)
    self.dtype = jnp.float64 if self.precision == 'float64' else jnp.float32
    self._compiled = {}
    logger.debug('JAX backend on %d local device(s), precision=%s',
                 jax.local_device_count(), self.precision)

  @property
  def name(self) -> str:
    return 'parallel'

  @property
  def array_module(self):
    return jnp

  def asarray(self, a):
    if isinstance(a, jax.Array):
      return a
    a = np.asarray(a)
    if np.issubdtype(a.dtype, np.floating):
      return jnp.asarray(a, dtype=self.dtype)
    return jnp.asarray(a)

  def _compile(self, kernel, num_operands):
    key = (kernel, num_operands)
    if key not in self._compiled:
      in_axes = (0,) + (None,) * num_operands
      batched = jax.vmap(functools.partial(kernel, jnp), in_axes=in_axes)
      if self.shard_across_devices:
        self._compiled[key] = jax.pmap(batched, in_axes=in_axes)
      else:
        self._compiled[key] = jax.jit(batched)
    return self._compiled[key]

  def _parallel_for(self, kernel, count, operands):
    operands = tuple(self.asarray(op) for op in operands)
    fn = self._compile(kernel, len(operands))
    if not self.shard_across_devices:
      return fn(jnp.arange(count), *operands)

    divider = jax.local_device_count()
    n = -(-count // divider)
    indices = jnp.minimum(jnp.arange(divider * n), count - 1).reshape(divider, n)
    mapped = fn(indices, *operands)
    return tuple(out.reshape((divider * n,) + out.shape[2:])[:count]
                 for out in mapped)

  def get_device_info(self):
    info = super().get_device_info()
    info['devices'] = [str(d) for d in jax.local_devices()]
    info['sharded'] = self.shard_across_devices
    return info
