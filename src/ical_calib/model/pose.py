"""Mutable 6-dof pose storage."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict

import numpy as np
from numpy.typing import NDArray

from ical_calib.common.logging import format_vector, get_logger
from ical_calib.common.transforms import POSE_SIZE, pose_to_matrix

logger = get_logger(__name__)


@dataclass
class Pose6d:
    """A pose held in a parameter-block vector.
    
    Attributes:
        pb_pose: [ax, ay, az, x, y, z]; angle-axis rotation then translation.
            The array is mutated in place by the solver.
    """
    
    pb_pose: NDArray[np.float64] = field(
        default_factory=lambda: np.zeros(POSE_SIZE, dtype=np.float64)
    )
    
    def __post_init__(self) -> None:
        self.pb_pose = np.asarray(self.pb_pose, dtype=np.float64).reshape(POSE_SIZE).copy()
    
    @property
    def angle_axis(self) -> NDArray[np.float64]:
        return self.pb_pose[:3]
    
    @property
    def position(self) -> NDArray[np.float64]:
        return self.pb_pose[3:]
    
    def to_matrix(self) -> NDArray[np.float64]:
        """Get the 4x4 homogeneous transform."""
        return pose_to_matrix(self.pb_pose)
    
    def copy(self) -> "Pose6d":
        return Pose6d(self.pb_pose.copy())
    
    def show(self, label: str) -> None:
        """Log the pose."""
        logger.info(f"{label}: angle_axis={format_vector(self.angle_axis)} "
                    f"position={format_vector(self.position)}")
    
    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        ax, ay, az, x, y, z = (float(v) for v in self.pb_pose)
        return {"ax": ax, "ay": ay, "az": az, "x": x, "y": y, "z": z}
    
    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Pose6d":
        """Create from dictionary."""
        return cls(np.array([
            data.get("ax", 0.0), data.get("ay", 0.0), data.get("az", 0.0),
            data.get("x", 0.0), data.get("y", 0.0), data.get("z", 0.0),
        ], dtype=np.float64))
