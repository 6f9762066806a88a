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
Logging setup for `jax_fsi`.

All modules obtain their logger through `get_logger(__name__)`. Handlers are
attached once, to the `jax_fsi` package logger, so that child loggers simply
propagate to it. `configure_logging` changes the level or adds a log file for
the whole package; `log_timing` wraps a block and reports its wall time at
DEBUG level, which is how operator generation, refresh and transposition are
timed.
"""

from __future__ import annotations

import contextlib
import logging
import sys
import threading
import time
from pathlib import Path
from typing import Iterator, Optional, Union

PACKAGE_LOGGER = 'jax_fsi'
_FORMAT = '%(asctime)s - %(name)-28s - %(levelname)-8s - %(message)s'
_DATEFMT = '%Y-%m-%d %H:%M:%S'

_lock = threading.Lock()


def _package_logger() -> logging.Logger:
  return logging.getLogger(PACKAGE_LOGGER)


def configure_logging(
    level: Union[str, int] = 'INFO',
    log_file_path: Optional[Union[str, Path]] = None,
    include_location: bool = False,
    stream=None,
) -> logging.Logger:
  """
  Configures the `jax_fsi` package logger.

  Existing handlers installed by a previous call are replaced, so the
  function can be called again to change settings.

  Args:
    level: Logging level name or number.
    log_file_path: Optional file that receives a copy of every record.
    include_location: Append `[file:line]` to each record.
    stream: Console stream, defaults to `sys.stdout`.

  Returns:
    The package logger.
  """
  if isinstance(level, str):
    level = getattr(logging, level.upper())

  fmt = _FORMAT + (' [%(filename)s:%(lineno)d]' if include_location else '')
  formatter = logging.Formatter(fmt, datefmt=_DATEFMT)

  with _lock:
    logger = _package_logger()
    for handler in list(logger.handlers):
      logger.removeHandler(handler)
      handler.close()
    logger.setLevel(level)

    console = logging.StreamHandler(stream or sys.stdout)
    console.setFormatter(formatter)
    console.setLevel(level)
    logger.addHandler(console)

    if log_file_path is not None:
      log_file_path = Path(log_file_path)
      log_file_path.parent.mkdir(parents=True, exist_ok=True)
      file_handler = logging.FileHandler(log_file_path)
      file_handler.setFormatter(formatter)
      file_handler.setLevel(level)
      logger.addHandler(file_handler)

    logger.propagate = False
  return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
  """Returns a logger below the `jax_fsi` namespace."""
  if name is None:
    name = PACKAGE_LOGGER
  elif not (name == PACKAGE_LOGGER or name.startswith(PACKAGE_LOGGER + '.')):
    name = f'{PACKAGE_LOGGER}.{name}'
  return logging.getLogger(name)


@contextlib.contextmanager
def log_timing(logger: logging.Logger, label: str) -> Iterator[None]:
  """Logs the wall time spent inside the block at DEBUG level."""
  start = time.perf_counter()
  try:
    yield
  finally:
    if logger.isEnabledFor(logging.DEBUG):
      logger.debug('%s took %.3f ms', label,
                   (time.perf_counter() - start) * 1e3)
