"""Synthetic observation collector.

Projects the known points of every registered target through a
ground-truth camera model, producing noiseless (or noisy) correspondences.
Used by the simulator, the CLI and the tests.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Tuple

import cv2
import numpy as np
from numpy.typing import NDArray

from ical_calib.common.logging import get_logger
from ical_calib.model.camera import CameraParameters
from ical_calib.model.observation import CostModel, Observation, Roi
from ical_calib.model.target import Target
from ical_calib.observer.interface import CameraObserver
from ical_calib.optimization.costs import project_circle_center

logger = get_logger(__name__)


class SyntheticCameraObserver(CameraObserver):
    """Camera observer backed by a ground-truth projection.
    
    Example:
        >>> observer = SyntheticCameraObserver("cam", true_params)
        >>> observer.set_target_pose("board", true_pose)
        >>> camera.camera_observer = observer
    """
    
    def __init__(
        self,
        camera_name: str,
        true_parameters: CameraParameters,
        target_poses: Optional[Dict[str, NDArray[np.float64]]] = None,
        noise_px: float = 0.0,
        seed: Optional[int] = None,
        polls_until_done: int = 0,
        never_complete: bool = False,
        drop_points: int = 0,
        shuffle: bool = False,
    ):
        """Initialize the observer.
        
        Args:
            camera_name: Name of the camera this observer serves.
            true_parameters: Ground-truth intrinsics used for projection.
            target_poses: Ground-truth target-to-camera pose per target name.
            noise_px: Standard deviation of Gaussian pixel noise.
            seed: Random seed for noise and shuffling.
            polls_until_done: Number of observations_done() calls that
                return False after each trigger.
            never_complete: Never report completion (acquisition hang).
            drop_points: Number of detections to drop from each acquisition.
            shuffle: Report detections in random order.
        """
        self.camera_name = camera_name
        self.true_parameters = true_parameters
        self.target_poses: Dict[str, NDArray[np.float64]] = {
            name: np.asarray(pose, dtype=np.float64).copy()
            for name, pose in (target_poses or {}).items()
        }
        self.noise_px = noise_px
        self.polls_until_done = polls_until_done
        self.never_complete = never_complete
        self.drop_points = drop_points
        self.shuffle = shuffle
        self.pushed_camera_info: List[CameraParameters] = []
        self.trigger_count = 0
        
        self._rng = np.random.default_rng(seed)
        self._targets: List[Tuple[Target, Roi, CostModel]] = []
        self._observations: List[Observation] = []
        self._pending_polls = 0
        self._triggered = False
    
    def set_target_pose(self, target_name: str, pose: NDArray[np.float64]) -> None:
        """Set the ground-truth pose used for the next acquisitions."""
        self.target_poses[target_name] = np.asarray(pose, dtype=np.float64).copy()
    
    def clear_targets(self) -> None:
        self._targets = []
    
    def clear_observations(self) -> None:
        self._observations = []
    
    def add_target(self, target: Target, roi: Roi, cost_model: CostModel) -> None:
        self._targets.append((target, roi, cost_model))
    
    def trigger_camera(self) -> None:
        self.trigger_count += 1
        self._triggered = True
        self._pending_polls = self.polls_until_done
        self._observations = self._detect()
    
    def observations_done(self) -> bool:
        if not self._triggered or self.never_complete:
            return False
        if self._pending_polls > 0:
            self._pending_polls -= 1
            return False
        return True
    
    def get_observations(self) -> List[Observation]:
        return list(self._observations)
    
    def push_camera_info(self, camera_parameters: CameraParameters) -> None:
        self.pushed_camera_info.append(
            CameraParameters(
                camera_parameters.pb_intrinsics.copy(),
                camera_parameters.width,
                camera_parameters.height,
            )
        )
    
    def _detect(self) -> List[Observation]:
        observations: List[Observation] = []
        
        for target, roi, cost_model in self._targets:
            pose = self.target_poses.get(target.target_name)
            if pose is None:
                logger.debug(f"{self.camera_name}: no ground truth pose for {target.target_name}")
                continue
            
            image_points = self._project(target, pose)
            for point_id, (u, v) in enumerate(image_points):
                if not (np.isfinite(u) and np.isfinite(v)) or not roi.contains(u, v):
                    continue
                if self.noise_px > 0:
                    u += self._rng.normal(0.0, self.noise_px)
                    v += self._rng.normal(0.0, self.noise_px)
                observations.append(Observation(
                    camera_name=self.camera_name,
                    target=target,
                    point_id=point_id,
                    image_x=float(u),
                    image_y=float(v),
                    cost_model=cost_model,
                ))
        
        if self.drop_points > 0:
            observations = observations[:max(0, len(observations) - self.drop_points)]
        if self.shuffle:
            order = self._rng.permutation(len(observations))
            observations = [observations[i] for i in order]
        
        return observations
    
    def _project(self, target: Target, pose: NDArray[np.float64]) -> NDArray[np.float64]:
        intrinsics = self.true_parameters.pb_intrinsics
        
        if target.circle_diameter > 0:
            return np.array([
                project_circle_center(intrinsics, pose, point, target.circle_diameter)
                for point in target.pts
            ])
        
        # Points behind the camera are not detectable
        R = cv2.Rodrigues(pose[:3].reshape(3, 1))[0]
        depth = target.pts @ R[2] + pose[5]
        
        projected, _ = cv2.projectPoints(
            target.pts.reshape(-1, 1, 3),
            pose[:3].reshape(3, 1),
            pose[3:].reshape(3, 1),
            self.true_parameters.to_camera_matrix(),
            self.true_parameters.distortion_coeffs(),
        )
        projected = projected.reshape(-1, 2)
        projected[depth <= 0] = np.nan
        return projected
