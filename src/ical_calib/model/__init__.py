"""Entity model: cameras, targets and observations."""

from ical_calib.model.camera import (
    Camera,
    CameraParameters,
    INTRINSICS_SIZE,
)
from ical_calib.model.pose import Pose6d
from ical_calib.model.target import (
    Target,
    CircleGridParameters,
    generate_circle_grid_points,
)
from ical_calib.model.observation import (
    CostModel,
    Observation,
    Roi,
)

__all__ = [
    "Camera",
    "CameraParameters",
    "INTRINSICS_SIZE",
    "Pose6d",
    "Target",
    "CircleGridParameters",
    "generate_circle_grid_points",
    "CostModel",
    "Observation",
    "Roi",
]
