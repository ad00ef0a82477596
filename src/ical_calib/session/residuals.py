"""Residual builder.

Turns the correspondences one camera reports for the current scene into
cost terms of the live calibration problem.
"""

from __future__ import annotations

import threading
from collections import Counter
from dataclasses import dataclass
from typing import Any, Dict, Optional, Sequence

from ical_calib.common.errors import (
    CalibrationError,
    ConfigurationError,
    ObservationMismatchError,
)
from ical_calib.common.logging import get_logger
from ical_calib.model.camera import Camera
from ical_calib.model.observation import CostModel, Roi
from ical_calib.model.target import Target
from ical_calib.observer.interface import wait_for_observations
from ical_calib.optimization.blocks import ParameterBlockRegistry
from ical_calib.optimization.costs import create_cost_function
from ical_calib.optimization.problem import CalibrationProblem

logger = get_logger(__name__)


@dataclass
class CameraCollectResult:
    """Outcome of collecting one camera's observations.
    
    Attributes:
        camera_name: Camera the observations came from.
        found: Number of observations the collector reported.
        expected: Number of points over all registered targets.
        accepted: Whether residuals were added for this camera.
        error: Diagnostic message when the camera was rejected.
    """
    
    camera_name: str
    found: int = 0
    expected: int = 0
    accepted: bool = False
    error: Optional[str] = None
    
    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "camera_name": self.camera_name,
            "found": self.found,
            "expected": self.expected,
            "accepted": self.accepted,
            "error": self.error,
        }


class ResidualBuilder:
    """Adds one camera's observations to a calibration problem.
    
    Args:
        registry: Registry supplying the parameter blocks.
        residual_cost_model: Cost model of the residuals added to the problem.
        observer_cost_model: Cost model selector handed to the observer.
        timeout_s: Maximum wait for one acquisition.
        poll_interval_s: Delay between acquisition completion checks.
    """
    
    def __init__(
        self,
        registry: ParameterBlockRegistry,
        residual_cost_model: CostModel = CostModel.CIRCLE_CAMERA_REPRJ_ERROR_WITH_DISTORTION_PK,
        observer_cost_model: CostModel = CostModel.CAMERA_REPRJ_ERROR_WITH_DISTORTION,
        timeout_s: float = 10.0,
        poll_interval_s: float = 0.01,
    ):
        self.registry = registry
        self.residual_cost_model = residual_cost_model
        self.observer_cost_model = observer_cost_model
        self.timeout_s = timeout_s
        self.poll_interval_s = poll_interval_s
    
    def add_observations(
        self,
        problem: CalibrationProblem,
        camera: Camera,
        targets: Sequence[Target],
        scene_id: int = 0,
        cancel_event: Optional[threading.Event] = None,
    ) -> CameraCollectResult:
        """Acquire one camera's observations and add their residuals.
        
        All observations of the camera are added, or none of them.
        
        Args:
            problem: Live problem receiving the residuals.
            camera: Camera to acquire from.
            targets: Targets to look for.
            scene_id: Scene the observations belong to.
            cancel_event: Optional event that abandons the acquisition wait.
            
        Returns:
            CameraCollectResult with found/expected counts.
            
        Raises:
            ConfigurationError: If the camera has no observer.
            ObservationMismatchError: If the point count differs from the
                number of target points, or a point is reported twice.
            AcquisitionTimeoutError: If the acquisition does not complete.
            AcquisitionCancelledError: If cancel_event is set while waiting.
        """
        observer = camera.camera_observer
        if observer is None:
            raise ConfigurationError(f"Camera '{camera.camera_name}' has no observation collector")
        
        params = camera.camera_parameters
        roi = Roi.full_image(params.width, params.height)
        
        observer.clear_targets()
        observer.clear_observations()
        for target in targets:
            observer.add_target(target, roi, self.observer_cost_model)
        
        observer.trigger_camera()
        wait_for_observations(
            observer,
            timeout_s=self.timeout_s,
            poll_interval_s=self.poll_interval_s,
            cancel_event=cancel_event,
        )
        
        observations = observer.get_observations()
        expected = sum(target.num_points for target in targets)
        found = len(observations)
        logger.info(f"{camera.camera_name}: found {found} observations")
        
        if found != expected:
            raise ObservationMismatchError(camera.camera_name, found, expected)
        
        counts = Counter((obs.target.target_name, obs.point_id) for obs in observations)
        duplicates = sorted(key for key, count in counts.items() if count > 1)
        if duplicates:
            raise ObservationMismatchError(camera.camera_name, len(counts), expected, duplicates)
        
        intrinsics_block = self.registry.intrinsics_block(camera.camera_name)
        bindings = []
        for obs in observations:
            target = obs.target
            try:
                point = target.point(obs.point_id)
            except IndexError as e:
                raise CalibrationError(f"{camera.camera_name}: {e}") from e
            cost = create_cost_function(
                self.residual_cost_model,
                obs.image_x,
                obs.image_y,
                target.circle_diameter,
                point,
            )
            pose_block = self.registry.target_pose_block(target.target_name, scene_id)
            bindings.append((cost, pose_block))
        
        # Bind only once every observation resolved, so a bad one adds nothing
        for cost, pose_block in bindings:
            problem.add_residual_block(cost, intrinsics_block, pose_block)
        
        return CameraCollectResult(
            camera_name=camera.camera_name,
            found=found,
            expected=expected,
            accepted=True,
        )
