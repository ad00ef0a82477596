"""Calibration target entity.

Targets carry an ordered list of 3-D points fixed in the target frame and
a pose that maps target points into the observing camera frame.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import numpy as np
from numpy.typing import NDArray

from ical_calib.model.pose import Pose6d


@dataclass
class CircleGridParameters:
    """Circle-grid geometry.
    
    Attributes:
        circle_diameter: Diameter of each circle (target units, e.g. meters).
        rows: Number of grid rows (0 when points are given explicitly).
        cols: Number of grid columns.
        spacing: Center-to-center distance between neighbouring circles.
    """
    
    circle_diameter: float = 0.0
    rows: int = 0
    cols: int = 0
    spacing: float = 0.0
    
    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "circle_diameter": self.circle_diameter,
            "rows": self.rows,
            "cols": self.cols,
            "spacing": self.spacing,
        }


def generate_circle_grid_points(rows: int, cols: int, spacing: float) -> NDArray[np.float64]:
    """Generate row-major circle centers on the z=0 plane of the target.
    
    Args:
        rows: Number of rows (along y).
        cols: Number of columns (along x).
        spacing: Center-to-center distance.
        
    Returns:
        (rows*cols)x3 array of points.
        
    Raises:
        ValueError: If the grid is empty or the spacing is not positive.
    """
    if rows <= 0 or cols <= 0:
        raise ValueError(f"Circle grid needs positive rows/cols, got {rows}x{cols}")
    if spacing <= 0:
        raise ValueError(f"Circle grid spacing must be positive, got {spacing}")
    
    ys, xs = np.mgrid[0:rows, 0:cols]
    points = np.zeros((rows * cols, 3), dtype=np.float64)
    points[:, 0] = xs.ravel() * spacing
    points[:, 1] = ys.ravel() * spacing
    return points


@dataclass(eq=False)
class Target:
    """A calibration target.
    
    Attributes:
        target_name: Unique target name.
        pts: Nx3 array of calibration points in the target frame.
        pose: Target pose (aliased by the static pose block).
        circle_grid_parameters: Circle geometry used by the circle cost model.
        is_moving: Whether the target gets a fresh pose per scene.
        pub_rviz_vis: Visualization flag, carried through configuration only.
    """
    
    target_name: str
    pts: NDArray[np.float64]
    pose: Pose6d = field(default_factory=Pose6d)
    circle_grid_parameters: CircleGridParameters = field(default_factory=CircleGridParameters)
    is_moving: bool = False
    pub_rviz_vis: bool = False
    
    def __post_init__(self) -> None:
        self.pts = np.asarray(self.pts, dtype=np.float64).reshape(-1, 3)
    
    @property
    def name(self) -> str:
        return self.target_name
    
    @property
    def num_points(self) -> int:
        return int(self.pts.shape[0])
    
    @property
    def circle_diameter(self) -> float:
        return float(self.circle_grid_parameters.circle_diameter)
    
    def point(self, point_id: int) -> NDArray[np.float64]:
        """Get one target point by index.
        
        Raises:
            IndexError: If the index is outside the target's point list.
        """
        if point_id < 0 or point_id >= self.num_points:
            raise IndexError(
                f"Point {point_id} out of range for target '{self.target_name}' "
                f"with {self.num_points} points"
            )
        return self.pts[point_id]
    
    @classmethod
    def from_circle_grid(
        cls,
        target_name: str,
        rows: int,
        cols: int,
        spacing: float,
        circle_diameter: float,
        pose: Optional[Pose6d] = None,
        is_moving: bool = False,
    ) -> "Target":
        """Create a target whose points are a regular circle grid."""
        return cls(
            target_name=target_name,
            pts=generate_circle_grid_points(rows, cols, spacing),
            pose=pose or Pose6d(),
            circle_grid_parameters=CircleGridParameters(
                circle_diameter=circle_diameter, rows=rows, cols=cols, spacing=spacing,
            ),
            is_moving=is_moving,
        )
    
    def to_dict(self) -> Dict[str, Any]:
        """Convert to the target description format."""
        return {
            "name": self.target_name,
            "is_moving": self.is_moving,
            "pub_rviz_vis": self.pub_rviz_vis,
            "circle_diameter": self.circle_diameter,
            "pose": self.pose.to_dict(),
            "points": self.pts.tolist(),
        }
