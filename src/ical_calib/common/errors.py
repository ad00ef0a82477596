"""Error taxonomy for the calibration engine.

Every error raised by a session operation derives from CalibrationError so
that the service facade can report it without terminating the process.
Acceptance failures (cost above the caller's threshold) are returned as a
result, not raised.
"""

from __future__ import annotations

from typing import Sequence, Tuple


class CalibrationError(Exception):
    """Base class for all calibration errors."""


class ConfigurationError(CalibrationError, ValueError):
    """Camera/target description is unreadable, unparsable or inconsistent."""


class UnresolvedReferenceError(ConfigurationError):
    """A stereo-right camera names a left camera that is not registered."""
    
    def __init__(self, camera_name: str, missing_name: str):
        super().__init__(
            f"camera '{camera_name}' references left stereo camera "
            f"'{missing_name}' which is not registered"
        )
        self.camera_name = camera_name
        self.missing_name = missing_name


class ParameterBlockError(CalibrationError, KeyError):
    """A parameter block was requested that is not registered or was released."""
    
    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message
        return str(self.args[0]) if self.args else ""


class StateOrderError(CalibrationError):
    """An operation was invoked before its prerequisite step."""


class ObservationMismatchError(CalibrationError):
    """A camera's observations do not cover every target point exactly once."""
    
    def __init__(
        self,
        camera_name: str,
        found: int,
        expected: int,
        duplicates: Sequence[Tuple[str, int]] = (),
    ):
        message = (
            f"camera '{camera_name}': target locator could not find all targets, "
            f"found {found} out of {expected}"
        )
        if duplicates:
            message += ", repeated points: " + ", ".join(
                f"{target_name}[{point_id}]" for target_name, point_id in duplicates
            )
        super().__init__(message)
        self.camera_name = camera_name
        self.found = found
        self.expected = expected
        self.duplicates = list(duplicates)


class AcquisitionTimeoutError(CalibrationError, TimeoutError):
    """The observation collector did not complete within the allowed time."""


class AcquisitionCancelledError(CalibrationError):
    """Observation acquisition was cancelled by the caller."""


class ConvergenceError(CalibrationError):
    """The nonlinear solver did not converge."""
