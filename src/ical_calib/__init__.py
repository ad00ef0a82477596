"""ICAL Calibration Kit.

A calibration engine that recovers camera intrinsics/distortion and the
relative poses of cameras and calibration targets from accumulated
observations, by solving a nonlinear least-squares problem.
"""

__version__ = "0.1.0"
__author__ = "ICAL Calibration Team"

from ical_calib.session.session import CalibrationSession, RunResult
from ical_calib.session.service import CalibrationService

__all__ = [
    "__version__",
    "CalibrationSession",
    "CalibrationService",
    "RunResult",
]
