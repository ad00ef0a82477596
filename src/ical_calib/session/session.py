"""Calibration session state machine.

A session sequences Start -> Collect-Observations (repeatable) -> Run ->
Save over one rig of cameras and targets:

- ``start()`` discards the previous problem, clears the registry and
  registers every camera and target again;
- ``collect_observations()`` asks every camera for the current scene's
  correspondences and appends their residuals to the problem;
- ``run()`` solves the accumulated problem and judges the normalized cost;
- ``save()`` publishes and writes the current camera parameters.

Calls made out of order raise StateOrderError and leave the session as it was.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from ical_calib.common.errors import (
    AcquisitionCancelledError,
    CalibrationError,
    ConfigurationError,
    ConvergenceError,
    ObservationMismatchError,
    StateOrderError,
)
from ical_calib.common.logging import get_logger
from ical_calib.io.cameras import load_cameras, save_cameras
from ical_calib.io.config import SessionConfig
from ical_calib.io.targets import load_targets
from ical_calib.model.camera import Camera
from ical_calib.model.target import Target
from ical_calib.optimization.blocks import STATIC_SCENE_ID, ParameterBlockRegistry
from ical_calib.optimization.problem import CalibrationProblem
from ical_calib.session.orchestrator import RunResult, SolveOrchestrator
from ical_calib.session.residuals import CameraCollectResult, ResidualBuilder

logger = get_logger(__name__)

__all__ = ["SessionState", "CollectReport", "CalibrationSession", "RunResult"]


class SessionState(Enum):
    """Lifecycle state of a session."""
    
    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    OBSERVATIONS_ADDED = "observations_added"
    SOLVED = "solved"
    SOLVE_FAILED = "solve_failed"


@dataclass
class CollectReport:
    """Outcome of one collect_observations() call.
    
    Attributes:
        scene_id: Scene the observations were collected for.
        cameras: Per-camera outcome, in camera order.
        observations_added: Observations added to the problem by this call.
        cancelled: Whether the call was cancelled before every camera ran.
    """
    
    scene_id: int
    cameras: List[CameraCollectResult] = field(default_factory=list)
    observations_added: int = 0
    cancelled: bool = False
    
    @property
    def num_accepted(self) -> int:
        return sum(1 for c in self.cameras if c.accepted)
    
    @property
    def errors(self) -> List[str]:
        return [c.error for c in self.cameras if c.error]
    
    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "scene_id": self.scene_id,
            "observations_added": self.observations_added,
            "cancelled": self.cancelled,
            "cameras": [c.to_dict() for c in self.cameras],
        }


class CalibrationSession:
    """One calibration session over a rig of cameras and targets.
    
    The session owns the parameter block registry and the live problem.
    Cameras and targets are configuration: they outlive the session's
    problems and are reused by every start().
    
    Example:
        >>> session = CalibrationSession(cameras, targets)
        >>> session.start()
        >>> session.collect_observations()
        >>> result = session.run(allowable_cost_per_observation=0.25)
        >>> session.save("cameras_calibrated.yaml")
    """
    
    def __init__(
        self,
        cameras: Optional[Sequence[Camera]] = None,
        targets: Optional[Sequence[Target]] = None,
        config: Optional[SessionConfig] = None,
    ):
        self.config = config or SessionConfig()
        self.cameras: List[Camera] = list(cameras or [])
        self.targets: List[Target] = list(targets or [])
        self.registry = ParameterBlockRegistry()
        
        self._problem: Optional[CalibrationProblem] = None
        self._total_observations = 0
        self._state = SessionState.UNINITIALIZED
    
    @property
    def state(self) -> SessionState:
        return self._state
    
    @property
    def problem(self) -> Optional[CalibrationProblem]:
        return self._problem
    
    @property
    def total_observations(self) -> int:
        return self._total_observations
    
    def load_configuration(self) -> None:
        """Load cameras and targets from the configured description files.
        
        A file that cannot be loaded is logged and leaves its list empty.
        """
        try:
            self.cameras = load_cameras(self.config.camera_path)
        except ConfigurationError as e:
            logger.error(f"Failed to load cameras: {e}")
            self.cameras = []
        
        try:
            self.targets = load_targets(self.config.target_path)
        except ConfigurationError as e:
            logger.error(f"Failed to load targets: {e}")
            self.targets = []
    
    def start(self) -> None:
        """Discard any prior problem and begin a new one.
        
        Raises:
            ConfigurationError: If the cameras/targets cannot be registered,
                e.g. a right stereo camera names an unknown left camera. The
                session is left uninitialized.
        """
        self._problem = None
        self._total_observations = 0
        self.registry.clear_cameras_targets()
        self._state = SessionState.UNINITIALIZED
        
        self.registry.init_blocks(self.cameras, self.targets, STATIC_SCENE_ID)
        
        self._problem = CalibrationProblem()
        self._state = SessionState.INITIALIZED
        logger.info(
            f"Session started with {len(self.cameras)} camera(s), "
            f"{len(self.targets)} target(s), {len(self.registry)} parameter block(s)"
        )
    
    def collect_observations(
        self,
        scene_id: int = STATIC_SCENE_ID,
        cancel_event: Optional[threading.Event] = None,
    ) -> CollectReport:
        """Collect every camera's observations for one scene.
        
        A camera whose acquisition fails or reports the wrong number of
        points contributes nothing; the other cameras are still processed.
        Cancellation skips the remaining cameras.
        
        Args:
            scene_id: Scene of the observations. Moving cameras and targets
                get pose blocks for this scene on demand.
            cancel_event: Optional event that abandons pending acquisitions.
            
        Returns:
            CollectReport with per-camera outcomes.
            
        Raises:
            StateOrderError: If start() has not been called, or a run has
                finished since the last start().
        """
        if self._state == SessionState.UNINITIALIZED or self._problem is None:
            raise StateOrderError("must call start service")
        if self._state in (SessionState.SOLVED, SessionState.SOLVE_FAILED):
            raise StateOrderError(
                f"cannot collect in state {self._state.value}, must call start service"
            )
        
        for camera in self.cameras:
            if camera.is_moving:
                self.registry.add_moving_camera(camera, scene_id)
        for target in self.targets:
            if target.is_moving:
                self.registry.add_moving_target(target, scene_id)
        
        builder = ResidualBuilder(
            self.registry,
            residual_cost_model=self.config.residual_cost_model,
            observer_cost_model=self.config.observer_cost_model,
            timeout_s=self.config.observation_timeout_s,
            poll_interval_s=self.config.poll_interval_s,
        )
        report = CollectReport(scene_id=scene_id)
        
        for camera in self.cameras:
            try:
                result = builder.add_observations(
                    self._problem, camera, self.targets, scene_id, cancel_event,
                )
            except AcquisitionCancelledError as e:
                logger.warning(f"{camera.camera_name}: {e}")
                report.cameras.append(CameraCollectResult(camera.camera_name, error=str(e)))
                report.cancelled = True
                break
            except ObservationMismatchError as e:
                logger.error(str(e))
                report.cameras.append(CameraCollectResult(
                    camera.camera_name, found=e.found, expected=e.expected, error=str(e),
                ))
                continue
            except CalibrationError as e:
                logger.error(f"{camera.camera_name}: {e}")
                report.cameras.append(CameraCollectResult(camera.camera_name, error=str(e)))
                continue
            
            report.cameras.append(result)
            report.observations_added += result.found
            self._total_observations += result.found
        
        if report.observations_added > 0:
            self._state = SessionState.OBSERVATIONS_ADDED
        
        logger.info(
            f"Scene {scene_id}: {report.num_accepted}/{len(self.cameras)} camera(s) accepted, "
            f"{self._total_observations} observation(s) total"
        )
        return report
    
    def run(self, allowable_cost_per_observation: Optional[float] = None) -> RunResult:
        """Solve the accumulated problem.
        
        Args:
            allowable_cost_per_observation: Acceptance threshold; defaults
                to the configured value.
                
        Returns:
            RunResult; success is False when the cost exceeds the threshold.
            
        Raises:
            StateOrderError: If start() or collect_observations() is missing.
            ConvergenceError: If the solver did not converge.
        """
        if self._state == SessionState.UNINITIALIZED or self._problem is None:
            raise StateOrderError("must call start service")
        if self._total_observations <= 0:
            raise StateOrderError("must call observations service at least once")
        
        if allowable_cost_per_observation is None:
            allowable_cost_per_observation = self.config.allowable_cost_per_observation
        
        orchestrator = SolveOrchestrator(self.config.solver)
        try:
            result = orchestrator.run(
                self._problem,
                self.registry,
                self._total_observations,
                allowable_cost_per_observation,
            )
        except ConvergenceError:
            self._state = SessionState.SOLVE_FAILED
            raise
        
        self._state = SessionState.SOLVED if result.success else SessionState.SOLVE_FAILED
        return result
    
    def save(self, path: Optional[Path | str] = None) -> Optional[Path]:
        """Publish the current intrinsics and optionally write the cameras.
        
        Args:
            path: Output camera YAML; defaults to the configured output file.
            
        Returns:
            Path of the written file, or None when no file was written.
        """
        for camera in self.cameras:
            if camera.camera_observer is not None:
                camera.camera_observer.push_camera_info(camera.camera_parameters)
        
        output = Path(path) if path is not None else self.config.output_camera_path
        if output is None:
            logger.info("Camera info pushed, no output file configured")
            return None
        
        return save_cameras(self.cameras, output)
