"""Calibration session: residual builder, solve orchestrator, state machine and service."""

from ical_calib.session.orchestrator import (
    CameraResult,
    RunResult,
    SolveOrchestrator,
    TargetResult,
)
from ical_calib.session.residuals import CameraCollectResult, ResidualBuilder
from ical_calib.session.session import CalibrationSession, CollectReport, SessionState
from ical_calib.session.service import CalibrationService

__all__ = [
    "CameraResult",
    "RunResult",
    "SolveOrchestrator",
    "TargetResult",
    "CameraCollectResult",
    "ResidualBuilder",
    "CalibrationSession",
    "CollectReport",
    "SessionState",
    "CalibrationService",
]
