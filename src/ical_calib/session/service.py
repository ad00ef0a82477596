"""Request/response facade over a calibration session.

Every operation returns a response object instead of raising, and calls
are serialized so that one session has a single writer.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ical_calib.common.errors import CalibrationError
from ical_calib.common.logging import get_logger
from ical_calib.session.orchestrator import RunResult
from ical_calib.session.session import CalibrationSession, CollectReport

logger = get_logger(__name__)


@dataclass
class StartResponse:
    success: bool
    message: str = ""


@dataclass
class CollectResponse:
    success: bool
    message: str = ""
    report: Optional[CollectReport] = None


@dataclass
class RunResponse:
    """Run outcome; final_cost_per_observation is set whenever the solver converged."""
    
    success: bool
    message: str = ""
    final_cost_per_observation: Optional[float] = None
    result: Optional[RunResult] = None


@dataclass
class SaveResponse:
    success: bool
    message: str = ""
    path: Optional[str] = None


@dataclass
class ServiceLog:
    """Ordered record of the operations served."""
    
    entries: List[Dict[str, Any]] = field(default_factory=list)
    
    def record(self, operation: str, success: bool, message: str) -> None:
        self.entries.append({"operation": operation, "success": success, "message": message})


class CalibrationService:
    """Serialized Start / CollectObservations / Run / Save operations.
    
    Example:
        >>> service = CalibrationService(session)
        >>> service.start()
        >>> service.collect_observations()
        >>> response = service.run(0.25)
        >>> if response.success:
        ...     service.save()
    """
    
    def __init__(self, session: CalibrationSession):
        self.session = session
        self.history = ServiceLog()
        self._lock = threading.Lock()
    
    def start(self) -> StartResponse:
        with self._lock:
            try:
                self.session.start()
            except CalibrationError as e:
                logger.error(f"start failed: {e}")
                return self._respond("start", StartResponse(False, str(e)))
            return self._respond("start", StartResponse(True, "session started"))
    
    def collect_observations(
        self,
        scene_id: int = 0,
        cancel_event: Optional[threading.Event] = None,
    ) -> CollectResponse:
        with self._lock:
            try:
                report = self.session.collect_observations(scene_id, cancel_event)
            except CalibrationError as e:
                logger.error(str(e))
                return self._respond("collect_observations", CollectResponse(False, str(e)))
            
            success = report.observations_added > 0 and not report.cancelled
            if success:
                message = f"added {report.observations_added} observation(s)"
            else:
                message = "; ".join(report.errors) or "no observations added"
            return self._respond(
                "collect_observations", CollectResponse(success, message, report)
            )
    
    def run(self, allowable_cost_per_observation: Optional[float] = None) -> RunResponse:
        with self._lock:
            try:
                result = self.session.run(allowable_cost_per_observation)
            except CalibrationError as e:
                logger.error(str(e))
                return self._respond("run", RunResponse(False, str(e)))
            return self._respond("run", RunResponse(
                success=result.success,
                message=result.message,
                final_cost_per_observation=result.final_cost_per_observation,
                result=result,
            ))
    
    def save(self, path: Optional[str] = None) -> SaveResponse:
        with self._lock:
            try:
                written = self.session.save(path)
            except (CalibrationError, OSError) as e:
                logger.error(f"save failed: {e}")
                return self._respond("save", SaveResponse(False, str(e)))
            return self._respond("save", SaveResponse(
                True, "camera parameters saved", str(written) if written else None,
            ))
    
    def _respond(self, operation: str, response):
        self.history.record(operation, response.success, response.message)
        return response
