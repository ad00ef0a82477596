"""Parameter block registry.

The registry owns the authoritative set of optimization parameter blocks
for the cameras and targets of one calibration session:

- a static camera has one intrinsics block and one pose block;
- a moving camera has one intrinsics block and one pose block per scene;
- a static target has one pose block;
- a moving target has one pose block per scene.

Blocks of static entities alias the entity's own storage, so solving
updates the loaded configuration in place. Pose blocks of moving entities
are per-scene copies seeded from the configured pose.

Exactly one block exists per (entity, effective scene); registering the
same key again reuses the existing block. Clearing the registry
invalidates every block it handed out.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

import numpy as np
from numpy.typing import NDArray

from ical_calib.common.errors import (
    ConfigurationError,
    ParameterBlockError,
    UnresolvedReferenceError,
)
from ical_calib.common.logging import get_logger
from ical_calib.model.camera import Camera
from ical_calib.model.target import Target

logger = get_logger(__name__)

STATIC_SCENE_ID = 0


class BlockKind(Enum):
    """What a parameter block parameterizes."""
    
    INTRINSICS = "intrinsics"
    POSE = "pose"


@dataclass(eq=False)
class ParameterBlock:
    """A mutable numeric vector the solver is allowed to adjust.
    
    Attributes:
        name: Unique block name, e.g. ``camera/left/pose@3``.
        kind: Intrinsics or pose.
        owner: Name of the owning camera or target.
        scene_id: Scene the block belongs to (0 for static entities).
        values: Storage mutated in place by the solver.
        constant: Whether the solver must hold the block fixed.
        valid: False once the registry that created it has been cleared.
    """
    
    name: str
    kind: BlockKind
    owner: str
    scene_id: int
    values: NDArray[np.float64]
    constant: bool = False
    valid: bool = True
    
    @property
    def size(self) -> int:
        return int(self.values.shape[0])
    
    def snapshot(self) -> NDArray[np.float64]:
        """Copy of the current values."""
        return self.values.copy()


def _block_name(entity: str, owner: str, kind: BlockKind, scene_id: int) -> str:
    return f"{entity}/{owner}/{kind.value}@{scene_id}"


class ParameterBlockRegistry:
    """Registry of camera and target parameter blocks.
    
    Example:
        >>> registry = ParameterBlockRegistry()
        >>> registry.add_static_camera(camera)
        >>> registry.add_moving_target(target, scene_id=2)
        >>> block = registry.target_pose_block(target.target_name, scene_id=2)
    """
    
    def __init__(self) -> None:
        self._cameras: Dict[str, Camera] = {}
        self._targets: Dict[str, Target] = {}
        self._intrinsics_blocks: Dict[str, ParameterBlock] = {}
        self._camera_pose_blocks: Dict[Tuple[str, int], ParameterBlock] = {}
        self._target_pose_blocks: Dict[Tuple[str, int], ParameterBlock] = {}
    
    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------
    
    def add_static_camera(self, camera: Camera) -> bool:
        """Register the single block set of a static camera.
        
        Returns:
            True if blocks were created, False if the camera was already registered.
            
        Raises:
            ConfigurationError: If another camera with the same name is registered,
                or the camera is already registered as moving.
        """
        if not self._check_camera(camera, moving=False):
            logger.warning(f"Static camera '{camera.camera_name}' already registered")
            return False
        
        self._register_camera(camera)
        self._camera_pose_blocks[(camera.camera_name, STATIC_SCENE_ID)] = ParameterBlock(
            name=_block_name("camera", camera.camera_name, BlockKind.POSE, STATIC_SCENE_ID),
            kind=BlockKind.POSE,
            owner=camera.camera_name,
            scene_id=STATIC_SCENE_ID,
            values=camera.pose.pb_pose,
        )
        return True
    
    def add_moving_camera(self, camera: Camera, scene_id: int) -> bool:
        """Register the pose block of a moving camera for one scene.
        
        Repeated calls with the same scene reuse the existing block.
        
        Returns:
            True if a new pose block was created.
        """
        self._check_camera(camera, moving=True)
        
        key = (camera.camera_name, int(scene_id))
        if key in self._camera_pose_blocks:
            return False
        
        if camera.camera_name not in self._cameras:
            self._register_camera(camera)
        
        self._camera_pose_blocks[key] = ParameterBlock(
            name=_block_name("camera", camera.camera_name, BlockKind.POSE, int(scene_id)),
            kind=BlockKind.POSE,
            owner=camera.camera_name,
            scene_id=int(scene_id),
            values=camera.pose.pb_pose.copy(),
        )
        return True
    
    def add_static_target(self, target: Target) -> bool:
        """Register the single pose block of a static target.
        
        Returns:
            True if the block was created, False if already registered.
        """
        if not self._check_target(target, moving=False):
            logger.warning(f"Static target '{target.target_name}' already registered")
            return False
        
        self._targets[target.target_name] = target
        self._target_pose_blocks[(target.target_name, STATIC_SCENE_ID)] = ParameterBlock(
            name=_block_name("target", target.target_name, BlockKind.POSE, STATIC_SCENE_ID),
            kind=BlockKind.POSE,
            owner=target.target_name,
            scene_id=STATIC_SCENE_ID,
            values=target.pose.pb_pose,
        )
        return True
    
    def add_moving_target(self, target: Target, scene_id: int) -> bool:
        """Register the pose block of a moving target for one scene.
        
        Returns:
            True if a new pose block was created.
        """
        self._check_target(target, moving=True)
        
        key = (target.target_name, int(scene_id))
        if key in self._target_pose_blocks:
            return False
        
        self._targets[target.target_name] = target
        self._target_pose_blocks[key] = ParameterBlock(
            name=_block_name("target", target.target_name, BlockKind.POSE, int(scene_id)),
            kind=BlockKind.POSE,
            owner=target.target_name,
            scene_id=int(scene_id),
            values=target.pose.pb_pose.copy(),
        )
        return True
    
    def add_camera(self, camera: Camera, scene_id: int = STATIC_SCENE_ID) -> bool:
        """Register a camera as static or moving according to its flag."""
        if camera.is_moving:
            return self.add_moving_camera(camera, scene_id)
        return self.add_static_camera(camera)
    
    def add_target(self, target: Target, scene_id: int = STATIC_SCENE_ID) -> bool:
        """Register a target as static or moving according to its flag."""
        if target.is_moving:
            return self.add_moving_target(target, scene_id)
        return self.add_static_target(target)
    
    def init_blocks(
        self,
        cameras: Iterable[Camera],
        targets: Iterable[Target],
        scene_id: int = STATIC_SCENE_ID,
    ) -> None:
        """Register every camera and target, then resolve stereo pairs.
        
        Raises:
            UnresolvedReferenceError: If a right stereo camera names an
                unknown left camera.
        """
        for camera in cameras:
            self.add_camera(camera, scene_id)
        for target in targets:
            self.add_target(target, scene_id)
        self.resolve_stereo_pairs()
    
    def resolve_stereo_pairs(self) -> None:
        """Link every right stereo camera to its left camera by name.
        
        Raises:
            UnresolvedReferenceError: If the left camera is not registered.
        """
        for camera in self._cameras.values():
            if not camera.is_right_stereo_camera:
                continue
            
            left = None
            if camera.left_stereo_camera_name:
                left = self.get_camera_by_name(camera.left_stereo_camera_name)
            if left is None or left is camera:
                camera.left_stereo_camera = None
                raise UnresolvedReferenceError(
                    camera.camera_name, str(camera.left_stereo_camera_name)
                )
            camera.left_stereo_camera = left
            logger.debug(f"Linked stereo pair {left.camera_name} <- {camera.camera_name}")
    
    def clear_cameras_targets(self) -> None:
        """Discard all block bookkeeping, keeping the Camera/Target objects intact."""
        for block in self.blocks():
            block.valid = False
        
        self._cameras.clear()
        self._targets.clear()
        self._intrinsics_blocks.clear()
        self._camera_pose_blocks.clear()
        self._target_pose_blocks.clear()
    
    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------
    
    def get_camera_by_name(self, name: str) -> Optional[Camera]:
        """Get a registered camera, or None."""
        return self._cameras.get(name)
    
    def get_target_by_name(self, name: str) -> Optional[Target]:
        """Get a registered target, or None."""
        return self._targets.get(name)
    
    def intrinsics_block(self, camera_name: str) -> ParameterBlock:
        """Get the intrinsics block of a camera.
        
        Raises:
            ParameterBlockError: If the camera is not registered.
        """
        try:
            return self._intrinsics_blocks[camera_name]
        except KeyError:
            raise ParameterBlockError(
                f"No intrinsics block registered for camera '{camera_name}'"
            ) from None
    
    def camera_pose_block(self, camera_name: str, scene_id: int = STATIC_SCENE_ID) -> ParameterBlock:
        """Get the pose block of a camera at a scene (ignored for static cameras).
        
        Raises:
            ParameterBlockError: If no block is registered for the key.
        """
        camera = self._cameras.get(camera_name)
        key = (camera_name, self._effective_scene(camera, scene_id))
        try:
            return self._camera_pose_blocks[key]
        except KeyError:
            raise ParameterBlockError(
                f"No pose block registered for camera '{camera_name}' at scene {key[1]}"
            ) from None
    
    def target_pose_block(self, target_name: str, scene_id: int = STATIC_SCENE_ID) -> ParameterBlock:
        """Get the pose block of a target at a scene (ignored for static targets).
        
        Raises:
            ParameterBlockError: If no block is registered for the key.
        """
        target = self._targets.get(target_name)
        key = (target_name, self._effective_scene(target, scene_id))
        try:
            return self._target_pose_blocks[key]
        except KeyError:
            raise ParameterBlockError(
                f"No pose block registered for target '{target_name}' at scene {key[1]}"
            ) from None
    
    @property
    def cameras(self) -> List[Camera]:
        return list(self._cameras.values())
    
    @property
    def targets(self) -> List[Target]:
        return list(self._targets.values())
    
    def camera_pose_blocks(self) -> List[ParameterBlock]:
        return list(self._camera_pose_blocks.values())
    
    def target_pose_blocks(self) -> List[ParameterBlock]:
        return list(self._target_pose_blocks.values())
    
    def blocks(self) -> List[ParameterBlock]:
        """All registered blocks in registration order."""
        return (
            list(self._intrinsics_blocks.values())
            + list(self._camera_pose_blocks.values())
            + list(self._target_pose_blocks.values())
        )
    
    def __len__(self) -> int:
        return (
            len(self._intrinsics_blocks)
            + len(self._camera_pose_blocks)
            + len(self._target_pose_blocks)
        )
    
    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    
    @staticmethod
    def _effective_scene(entity, scene_id: int) -> int:
        if entity is not None and not entity.is_moving:
            return STATIC_SCENE_ID
        return int(scene_id)
    
    def _register_camera(self, camera: Camera) -> None:
        self._cameras[camera.camera_name] = camera
        self._intrinsics_blocks[camera.camera_name] = ParameterBlock(
            name=_block_name("camera", camera.camera_name, BlockKind.INTRINSICS, STATIC_SCENE_ID),
            kind=BlockKind.INTRINSICS,
            owner=camera.camera_name,
            scene_id=STATIC_SCENE_ID,
            values=camera.camera_parameters.pb_intrinsics,
            constant=camera.fixed_intrinsics,
        )
    
    def _check_camera(self, camera: Camera, moving: bool) -> bool:
        """Return False if this camera is already registered as static."""
        if camera.is_moving != moving:
            raise ConfigurationError(
                f"Camera '{camera.camera_name}' is {_kind(camera.is_moving)}, "
                f"cannot register it as {_kind(moving)}"
            )
        existing = self._cameras.get(camera.camera_name)
        if existing is None:
            return True
        if existing is not camera:
            raise ConfigurationError(f"Duplicate camera name '{camera.camera_name}'")
        return moving
    
    def _check_target(self, target: Target, moving: bool) -> bool:
        """Return False if this target is already registered as static."""
        if target.is_moving != moving:
            raise ConfigurationError(
                f"Target '{target.target_name}' is {_kind(target.is_moving)}, "
                f"cannot register it as {_kind(moving)}"
            )
        existing = self._targets.get(target.target_name)
        if existing is None:
            return True
        if existing is not target:
            raise ConfigurationError(f"Duplicate target name '{target.target_name}'")
        return moving


def _kind(moving: bool) -> str:
    return "moving" if moving else "static"
