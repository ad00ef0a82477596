"""Camera entity.

A Camera is configuration loaded once at startup. Its intrinsic parameters
and pose are kept in numpy vectors so that parameter blocks can alias them
and the solver updates them in place.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, TYPE_CHECKING

import numpy as np
from numpy.typing import NDArray

from ical_calib.model.pose import Pose6d

if TYPE_CHECKING:
    from ical_calib.observer.interface import CameraObserver

# [fx, fy, cx, cy, k1, k2, k3, p1, p2]
INTRINSICS_SIZE = 9
INTRINSIC_NAMES = ("fx", "fy", "cx", "cy", "k1", "k2", "k3", "p1", "p2")


@dataclass
class CameraParameters:
    """Camera intrinsic parameters.
    
    Attributes:
        pb_intrinsics: Parameter-block vector [fx, fy, cx, cy, k1, k2, k3, p1, p2].
        width: Image width (pixels).
        height: Image height (pixels).
    """
    
    pb_intrinsics: NDArray[np.float64]
    width: int
    height: int
    
    def __post_init__(self) -> None:
        self.pb_intrinsics = (
            np.asarray(self.pb_intrinsics, dtype=np.float64).reshape(INTRINSICS_SIZE).copy()
        )
    
    @classmethod
    def create(
        cls,
        fx: float,
        fy: float,
        cx: float,
        cy: float,
        width: int,
        height: int,
        k1: float = 0.0,
        k2: float = 0.0,
        k3: float = 0.0,
        p1: float = 0.0,
        p2: float = 0.0,
    ) -> "CameraParameters":
        return cls(np.array([fx, fy, cx, cy, k1, k2, k3, p1, p2]), int(width), int(height))
    
    @property
    def focal_length_x(self) -> float:
        return float(self.pb_intrinsics[0])
    
    @property
    def focal_length_y(self) -> float:
        return float(self.pb_intrinsics[1])
    
    @property
    def center_x(self) -> float:
        return float(self.pb_intrinsics[2])
    
    @property
    def center_y(self) -> float:
        return float(self.pb_intrinsics[3])
    
    @property
    def distortion_k1(self) -> float:
        return float(self.pb_intrinsics[4])
    
    @property
    def distortion_k2(self) -> float:
        return float(self.pb_intrinsics[5])
    
    @property
    def distortion_k3(self) -> float:
        return float(self.pb_intrinsics[6])
    
    @property
    def distortion_p1(self) -> float:
        return float(self.pb_intrinsics[7])
    
    @property
    def distortion_p2(self) -> float:
        return float(self.pb_intrinsics[8])
    
    def to_camera_matrix(self) -> NDArray[np.float64]:
        """Convert to 3x3 camera matrix K."""
        return np.array([
            [self.focal_length_x, 0, self.center_x],
            [0, self.focal_length_y, self.center_y],
            [0, 0, 1]
        ], dtype=np.float64)
    
    def to_projection_matrix(self) -> NDArray[np.float64]:
        """3x4 projection matrix [K | 0]."""
        return np.hstack([self.to_camera_matrix(), np.zeros((3, 1))])
    
    def distortion_coeffs(self) -> NDArray[np.float64]:
        """Distortion in OpenCV order [k1, k2, p1, p2, k3]."""
        return np.array([
            self.distortion_k1, self.distortion_k2,
            self.distortion_p1, self.distortion_p2,
            self.distortion_k3,
        ], dtype=np.float64)
    
    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        data: Dict[str, Any] = {
            name: float(value) for name, value in zip(INTRINSIC_NAMES, self.pb_intrinsics)
        }
        data["width"] = self.width
        data["height"] = self.height
        return data


@dataclass(eq=False)
class Camera:
    """A camera of the rig.
    
    Identity is the camera name. Instances compare by object identity so
    that stereo links and registry lookups can be checked with ``is``.
    
    Attributes:
        camera_name: Unique camera name.
        camera_parameters: Intrinsics (aliased by the intrinsics block).
        pose: Camera extrinsics (aliased by the static pose block).
        is_moving: Whether the camera gets a fresh pose per scene.
        is_right_stereo_camera: Whether this is the right camera of a stereo pair.
        left_stereo_camera_name: Name of the left camera when right-stereo.
        left_stereo_camera: Non-owning link set by stereo resolution.
        fixed_intrinsics: Hold the intrinsics constant during the solve.
        camera_observer: Observation collector bound to this camera.
    """
    
    camera_name: str
    camera_parameters: CameraParameters
    pose: Pose6d = field(default_factory=Pose6d)
    is_moving: bool = False
    is_right_stereo_camera: bool = False
    left_stereo_camera_name: Optional[str] = None
    left_stereo_camera: Optional["Camera"] = field(default=None, repr=False)
    fixed_intrinsics: bool = False
    camera_observer: Optional["CameraObserver"] = field(default=None, repr=False)
    
    @property
    def name(self) -> str:
        return self.camera_name
    
    def to_dict(self) -> Dict[str, Any]:
        """Convert to the camera description format."""
        data: Dict[str, Any] = {
            "name": self.camera_name,
            "is_moving": self.is_moving,
            "is_right_stereo_camera": self.is_right_stereo_camera,
        }
        if self.left_stereo_camera_name is not None:
            data["left_stereo_camera_name"] = self.left_stereo_camera_name
        data["fixed_intrinsics"] = self.fixed_intrinsics
        data["intrinsics"] = self.camera_parameters.to_dict()
        data["pose"] = self.pose.to_dict()
        return data
