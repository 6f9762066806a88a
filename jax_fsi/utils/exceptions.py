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
Exception classes for the operator-construction core.

Every error raised by `jax_fsi` is fatal to the enclosing time step. The core
never retries: it reports what went wrong, attaches enough diagnostic data for
the calling driver to decide how to recover (abort, reduce the time step,
re-mesh), and lets the exception propagate.

The hierarchy is:

-   `FSIError`: base class, formats component name, suggestion and diagnostics
    into the message.
-   `ConfigurationError`: the body/point description is inconsistent.
-   `IndexOutOfDomain`: a marker left the grid or its body's bounding box.
    This usually signals a diverging simulation.
-   `StaleStateError`: an operation was invoked on marker state that has not
    been refreshed (indices, bounding boxes, substep snapshots).
-   `StructuralMismatch`: the marker count changed after the operator
    structure was generated.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Sequence


class FSIError(Exception):
  """
  Base exception for `jax_fsi` errors.

  Attributes:
    component: Name of the component that raised the error.
    suggested_action: Optional hint for the calling driver.
    diagnostic_data: Key/value pairs describing the failing state.
  """

  def __init__(
      self,
      message: str,
      component: Optional[str] = None,
      suggested_action: Optional[str] = None,
      diagnostic_data: Optional[Dict[str, Any]] = None,
  ):
    self.component = component or 'jax_fsi'
    self.suggested_action = suggested_action
    self.diagnostic_data = diagnostic_data or {}

    full_message = f'[{self.component}] {message}'
    if self.suggested_action:
      full_message += f'\nSuggestion: {self.suggested_action}'
    if self.diagnostic_data:
      full_message += '\nDiagnostic Information:'
      for key, value in self.diagnostic_data.items():
        full_message += f'\n   - {key}: {value}'

    super().__init__(full_message)


class ConfigurationError(FSIError):
  """Raised when the body configuration is inconsistent with itself."""

  def __init__(
      self,
      parameter_name: str,
      provided_value: Any,
      expected: Optional[str] = None,
      component: Optional[str] = None,
  ):
    self.parameter_name = parameter_name
    self.provided_value = provided_value
    diagnostic_data = {
        'parameter': parameter_name,
        'provided_value': str(provided_value),
    }
    if expected is not None:
      diagnostic_data['expected'] = expected
    super().__init__(
        f"Invalid configuration for parameter '{parameter_name}'",
        component=component,
        suggested_action='Check the body definitions in the configuration',
        diagnostic_data=diagnostic_data,
    )


def _summarise(indices: Sequence[int], limit: int = 10) -> str:
  shown = ', '.join(str(i) for i in list(indices)[:limit])
  if len(indices) > limit:
    shown += f', ... ({len(indices)} total)'
  return shown


class IndexOutOfDomain(FSIError):
  """
  Raised when markers lie outside the grid or outside their body's box.

  This is never corrected silently. A marker leaving the domain means the
  coupled solution is diverging and the driver has to react.
  """

  def __init__(
      self,
      marker_indices: Sequence[int],
      region: str,
      extent: Optional[Any] = None,
      component: Optional[str] = None,
  ):
    self.marker_indices = [int(i) for i in marker_indices]
    self.region = region
    diagnostic_data = {
        'markers': _summarise(self.marker_indices),
        'region': region,
    }
    if extent is not None:
      diagnostic_data['extent'] = extent
    super().__init__(
        f'{len(self.marker_indices)} marker(s) outside the {region}',
        component=component,
        suggested_action='Reduce the time step or enlarge the domain',
        diagnostic_data=diagnostic_data,
    )


class StaleStateError(FSIError):
  """Raised when an operation needs marker state that is out of date."""

  def __init__(
      self,
      operation_attempted: str,
      reason: str,
      component: Optional[str] = None,
  ):
    self.operation_attempted = operation_attempted
    self.reason = reason
    super().__init__(
        f'Cannot {operation_attempted}: {reason}',
        component=component,
        suggested_action=(
            'Call calculate_cell_indices() then calculate_bounding_boxes() '
            'after every position change'),
    )


class StructuralMismatch(FSIError):
  """Raised when marker state no longer matches the generated structure."""

  def __init__(
      self,
      expected_markers: Optional[int],
      actual_markers: int,
      component: Optional[str] = None,
  ):
    self.expected_markers = expected_markers
    self.actual_markers = actual_markers
    if expected_markers is None:
      message = 'Operator structure has not been generated'
      suggestion = 'Call generate() before update()'
    else:
      message = (f'Marker count changed from {expected_markers} to '
                 f'{actual_markers} after structural generation')
      suggestion = 'Regenerate the operators for the new marker set'
    super().__init__(
        message,
        component=component,
        suggested_action=suggestion,
        diagnostic_data={
            'expected_markers': expected_markers,
            'actual_markers': actual_markers,
        },
    )
