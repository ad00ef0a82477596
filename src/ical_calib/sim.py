"""Simulated calibration rigs.

The loaded camera and target descriptions are taken as ground truth. A
simulated rig keeps a copy of that truth, perturbs the cameras' and
targets' own parameters to form the solver's initial guess, and attaches
a SyntheticCameraObserver to every camera.

Every camera observes a target under the same target pose block, so the
ground-truth target pose of a scene is shared by all cameras.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
from numpy.typing import NDArray
from scipy.spatial.transform import Rotation

from ical_calib.common.logging import get_logger
from ical_calib.common.transforms import matrix_to_pose, pose_difference, pose_to_matrix
from ical_calib.model.camera import Camera, CameraParameters
from ical_calib.model.target import Target
from ical_calib.observer.synthetic import SyntheticCameraObserver
from ical_calib.optimization.blocks import ParameterBlockRegistry

logger = get_logger(__name__)


@dataclass
class SimulationConfig:
    """Configuration for a simulated rig.
    
    Attributes:
        num_scenes: Number of scenes to collect.
        noise_px: Standard deviation of detection noise (pixels).
        perturb_rotation: Standard deviation of the initial pose rotation error (radians).
        perturb_translation: Standard deviation of the initial pose translation error.
        perturb_intrinsics: Relative standard deviation of the initial fx, fy, cx, cy error.
        scene_rotation_deg: Maximum tilt of a moving target between scenes (degrees).
        scene_translation: Maximum shift of a moving target between scenes.
        seed: Random seed.
    """
    num_scenes: int = 1
    noise_px: float = 0.0
    perturb_rotation: float = 0.0
    perturb_translation: float = 0.0
    perturb_intrinsics: float = 0.0
    scene_rotation_deg: float = 10.0
    scene_translation: float = 0.05
    seed: Optional[int] = None


@dataclass
class SimulatedRig:
    """A rig with known ground truth.
    
    Attributes:
        cameras: Cameras holding the perturbed initial guess.
        targets: Targets holding the perturbed initial guess.
        true_intrinsics: Ground-truth intrinsics per camera name.
        true_target_poses: Ground-truth target poses per (target name, scene).
        observers: Synthetic observer per camera name.
    """
    cameras: List[Camera]
    targets: List[Target]
    true_intrinsics: Dict[str, CameraParameters]
    true_target_poses: Dict[Tuple[str, int], NDArray[np.float64]]
    observers: Dict[str, SyntheticCameraObserver] = field(default_factory=dict)
    
    def true_target_pose(self, target: Target, scene_id: int) -> NDArray[np.float64]:
        key = (target.target_name, scene_id if target.is_moving else 0)
        return self.true_target_poses[key]
    
    def set_scene(self, scene_id: int) -> None:
        """Point every observer at the ground truth of one scene."""
        for observer in self.observers.values():
            for target in self.targets:
                observer.set_target_pose(target.target_name, self.true_target_pose(target, scene_id))
    
    def intrinsics_errors(self) -> Dict[str, NDArray[np.float64]]:
        """Current minus true intrinsics per camera."""
        return {
            camera.camera_name: (
                camera.camera_parameters.pb_intrinsics
                - self.true_intrinsics[camera.camera_name].pb_intrinsics
            )
            for camera in self.cameras
        }
    
    def target_pose_errors(
        self,
        registry: ParameterBlockRegistry,
    ) -> Dict[Tuple[str, int], Tuple[float, float]]:
        """Rotation (rad) and translation error of every registered target pose block."""
        errors = {}
        for block in registry.target_pose_blocks():
            truth = self.true_target_poses.get((block.owner, block.scene_id))
            if truth is not None:
                errors[(block.owner, block.scene_id)] = pose_difference(block.values, truth)
        return errors


def perturb_pose(
    pose: NDArray[np.float64],
    rng: np.random.Generator,
    rotation_sigma: float,
    translation_sigma: float,
) -> NDArray[np.float64]:
    """Apply a random rotation and translation error to a pose vector."""
    rotation = Rotation.from_rotvec(pose[:3])
    if rotation_sigma > 0:
        rotation = Rotation.from_rotvec(rng.normal(0.0, rotation_sigma, 3)) * rotation
    
    perturbed = np.empty(6, dtype=np.float64)
    perturbed[:3] = rotation.as_rotvec()
    perturbed[3:] = pose[3:]
    if translation_sigma > 0:
        perturbed[3:] += rng.normal(0.0, translation_sigma, 3)
    return perturbed


def generate_scene_pose(
    base_pose: NDArray[np.float64],
    rng: np.random.Generator,
    rotation_deg: float = 10.0,
    translation: float = 0.05,
) -> NDArray[np.float64]:
    """Move a target pose by a random tilt about its own origin and a random shift."""
    angles = rng.uniform(-rotation_deg, rotation_deg, 3)
    tilt = np.eye(4)
    tilt[:3, :3] = Rotation.from_euler("xyz", angles, degrees=True).as_matrix()
    
    T = pose_to_matrix(base_pose) @ tilt
    T[:3, 3] += rng.uniform(-translation, translation, 3)
    return matrix_to_pose(T)


def _perturb_intrinsics(
    parameters: CameraParameters,
    rng: np.random.Generator,
    relative_sigma: float,
) -> None:
    if relative_sigma <= 0:
        return
    # fx, fy, cx, cy only; distortion starts from the configured values
    scale = 1.0 + rng.normal(0.0, relative_sigma, 4)
    parameters.pb_intrinsics[:4] *= scale


def build_simulated_rig(
    cameras: Sequence[Camera],
    targets: Sequence[Target],
    config: SimulationConfig,
) -> SimulatedRig:
    """Build a simulated rig from ground-truth cameras and targets.
    
    The cameras' and targets' parameters are perturbed in place to become
    the initial guess, and each camera gets a synthetic observer.
    
    Args:
        cameras: Cameras holding the true intrinsics.
        targets: Targets holding the true poses.
        config: Simulation configuration.
        
    Returns:
        SimulatedRig set to scene 0.
    """
    rng = np.random.default_rng(config.seed)
    
    true_intrinsics = {
        camera.camera_name: CameraParameters(
            camera.camera_parameters.pb_intrinsics.copy(),
            camera.camera_parameters.width,
            camera.camera_parameters.height,
        )
        for camera in cameras
    }
    
    true_target_poses: Dict[Tuple[str, int], NDArray[np.float64]] = {}
    for target in targets:
        base = target.pose.pb_pose.copy()
        true_target_poses[(target.target_name, 0)] = base
        if target.is_moving:
            for scene_id in range(1, config.num_scenes):
                true_target_poses[(target.target_name, scene_id)] = generate_scene_pose(
                    base, rng, config.scene_rotation_deg, config.scene_translation,
                )
    
    for camera in cameras:
        if not camera.fixed_intrinsics:
            _perturb_intrinsics(camera.camera_parameters, rng, config.perturb_intrinsics)
    for target in targets:
        target.pose.pb_pose[:] = perturb_pose(
            target.pose.pb_pose, rng, config.perturb_rotation, config.perturb_translation,
        )
    
    observers = {}
    for index, camera in enumerate(cameras):
        observer = SyntheticCameraObserver(
            camera.camera_name,
            true_intrinsics[camera.camera_name],
            noise_px=config.noise_px,
            seed=None if config.seed is None else config.seed + index + 1,
        )
        camera.camera_observer = observer
        observers[camera.camera_name] = observer
    
    rig = SimulatedRig(
        cameras=list(cameras),
        targets=list(targets),
        true_intrinsics=true_intrinsics,
        true_target_poses=true_target_poses,
        observers=observers,
    )
    rig.set_scene(0)
    
    logger.info(
        f"Simulated rig: {len(cameras)} camera(s), {len(targets)} target(s), "
        f"{config.num_scenes} scene(s)"
    )
    return rig
