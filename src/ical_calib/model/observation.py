"""Observations and the collector-facing value types."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from ical_calib.model.target import Target


class CostModel(Enum):
    """Residual cost models."""
    
    CAMERA_REPRJ_ERROR_WITH_DISTORTION = "camera_reprj_error_with_distortion"
    CIRCLE_CAMERA_REPRJ_ERROR_WITH_DISTORTION_PK = "circle_camera_reprj_error_with_distortion_pk"
    
    @classmethod
    def parse(cls, value: "str | CostModel") -> "CostModel":
        """Parse a cost model from its name.
        
        Raises:
            ValueError: If the name is not a known cost model.
        """
        if isinstance(value, CostModel):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            known = ", ".join(m.value for m in cls)
            raise ValueError(f"Unknown cost model '{value}' (expected one of: {known})") from None


@dataclass
class Roi:
    """Image region of interest in pixels."""
    
    x_min: int
    y_min: int
    x_max: int
    y_max: int
    
    @classmethod
    def full_image(cls, width: int, height: int) -> "Roi":
        return cls(0, 0, int(width), int(height))
    
    def contains(self, x: float, y: float) -> bool:
        return self.x_min <= x <= self.x_max and self.y_min <= y <= self.y_max


@dataclass
class Observation:
    """One detected correspondence of a target point in a camera image.
    
    Attributes:
        camera_name: Name of the observing camera.
        target: The observed target.
        point_id: Index of the detected point in ``target.pts``.
        image_x: Measured image x (pixels).
        image_y: Measured image y (pixels).
        cost_model: Cost model the target was registered with.
    """
    
    camera_name: str
    target: Target
    point_id: int
    image_x: float
    image_y: float
    cost_model: CostModel = CostModel.CAMERA_REPRJ_ERROR_WITH_DISTORTION
