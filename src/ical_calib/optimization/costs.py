"""Reprojection cost models.

Each cost term binds one camera intrinsics block
``[fx, fy, cx, cy, k1, k2, k3, p1, p2]`` and one target pose block
``[ax, ay, az, x, y, z]`` (target -> camera), and yields a 2-element
residual: predicted minus measured image location.

Two models are available:

- CameraReprjErrorWithDistortion: projects the known target point.
- CircleCameraReprjErrorWithDistortionPK: projects the center of the
  ellipse that a circle of the given diameter, centered on the known point
  and lying in the target plane, forms in the image. The circle's image is
  the conic H^-T C H^-1 with H = [r1 r2 Pc]; its center is the pole of the
  line at infinity, H C* H^T e3, which for a circle of radius r evaluates to

      c = Pc_z * Pc - r^2 * (R_20 * r1 + R_21 * r2)

  A zero diameter reduces to the point model.

Residuals of many terms sharing the same blocks are evaluated together by
``evaluate_batch``; the problem groups terms for that purpose.
"""

from __future__ import annotations

from typing import Sequence, Tuple, Type

import numpy as np
from numpy.typing import NDArray

from ical_calib.common.transforms import POSE_SIZE, pose_rotation_and_translation
from ical_calib.model.camera import INTRINSICS_SIZE
from ical_calib.model.observation import CostModel


def _distort_and_scale(
    intrinsics: NDArray[np.float64],
    x: NDArray[np.float64],
    y: NDArray[np.float64],
) -> NDArray[np.float64]:
    fx, fy, cx, cy, k1, k2, k3, p1, p2 = intrinsics
    
    r2 = x * x + y * y
    radial = 1.0 + r2 * (k1 + r2 * (k2 + r2 * k3))
    xd = x * radial + 2.0 * p1 * x * y + p2 * (r2 + 2.0 * x * x)
    yd = y * radial + p1 * (r2 + 2.0 * y * y) + 2.0 * p2 * x * y
    
    return np.stack([fx * xd + cx, fy * yd + cy], axis=-1)


def project_points(
    intrinsics: NDArray[np.float64],
    pose: NDArray[np.float64],
    points: NDArray[np.float64],
) -> NDArray[np.float64]:
    """Project Nx3 target points to Nx2 distorted pixel coordinates."""
    return project_circle_centers(intrinsics, pose, points, 0.0)


def project_circle_centers(
    intrinsics: NDArray[np.float64],
    pose: NDArray[np.float64],
    points: NDArray[np.float64],
    circle_diameter: "float | NDArray[np.float64]",
) -> NDArray[np.float64]:
    """Project Nx3 circle centers to Nx2 ellipse centers in pixels.
    
    Args:
        intrinsics: Intrinsics block.
        pose: Target-to-camera pose block.
        points: Nx3 circle centers in the target frame.
        circle_diameter: Scalar or per-point diameter.
        
    Returns:
        Nx2 array; rows whose center lies on the camera plane are NaN.
    """
    points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
    R, t = pose_rotation_and_translation(pose)
    camera_points = points @ R.T + t
    
    radius_sq = (0.5 * np.asarray(circle_diameter, dtype=np.float64)) ** 2
    normal_offset = R[2, 0] * R[:, 0] + R[2, 1] * R[:, 1]
    centers = (
        camera_points[:, 2:3] * camera_points
        - np.reshape(radius_sq, (-1, 1)) * normal_offset
    )
    
    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        x = centers[:, 0] / centers[:, 2]
        y = centers[:, 1] / centers[:, 2]
        projected = _distort_and_scale(intrinsics, x, y)
    projected[np.abs(centers[:, 2]) < 1e-12] = np.nan
    return projected


def project_circle_center(
    intrinsics: NDArray[np.float64],
    pose: NDArray[np.float64],
    point: NDArray[np.float64],
    circle_diameter: float,
) -> NDArray[np.float64]:
    """Project a single circle center; see project_circle_centers."""
    return project_circle_centers(intrinsics, pose, point, circle_diameter)[0]


class CameraReprjErrorWithDistortion:
    """Reprojection error of a known target point through a distorted pinhole."""
    
    cost_model = CostModel.CAMERA_REPRJ_ERROR_WITH_DISTORTION
    num_residuals = 2
    parameter_block_sizes: Tuple[int, int] = (INTRINSICS_SIZE, POSE_SIZE)
    
    def __init__(self, image_x: float, image_y: float, point: NDArray[np.float64]):
        self.image_x = float(image_x)
        self.image_y = float(image_y)
        self.point = np.asarray(point, dtype=np.float64).reshape(3).copy()
    
    @classmethod
    def create(cls, image_x: float, image_y: float, point: NDArray[np.float64]):
        return cls(image_x, image_y, point)
    
    @property
    def diameter(self) -> float:
        return 0.0
    
    def __call__(
        self,
        intrinsics: NDArray[np.float64],
        pose: NDArray[np.float64],
    ) -> NDArray[np.float64]:
        return self.evaluate_batch(intrinsics, pose, *self.stack([self]))
    
    @staticmethod
    def stack(
        costs: Sequence["CameraReprjErrorWithDistortion"],
    ) -> Tuple[NDArray[np.float64], NDArray[np.float64], NDArray[np.float64]]:
        """Stack the constants of several terms into (points, observed, diameters)."""
        points = np.array([c.point for c in costs], dtype=np.float64).reshape(-1, 3)
        observed = np.array([(c.image_x, c.image_y) for c in costs], dtype=np.float64).reshape(-1, 2)
        diameters = np.array([c.diameter for c in costs], dtype=np.float64)
        return points, observed, diameters
    
    @staticmethod
    def evaluate_batch(
        intrinsics: NDArray[np.float64],
        pose: NDArray[np.float64],
        points: NDArray[np.float64],
        observed: NDArray[np.float64],
        diameters: NDArray[np.float64],
    ) -> NDArray[np.float64]:
        """Flattened residuals of stacked terms bound to the same pair of blocks."""
        predicted = project_circle_centers(intrinsics, pose, points, diameters)
        return (predicted - observed).ravel()


class CircleCameraReprjErrorWithDistortionPK(CameraReprjErrorWithDistortion):
    """Reprojection error of a circle's ellipse center, point known."""
    
    cost_model = CostModel.CIRCLE_CAMERA_REPRJ_ERROR_WITH_DISTORTION_PK
    
    def __init__(
        self,
        image_x: float,
        image_y: float,
        circle_diameter: float,
        point: NDArray[np.float64],
    ):
        super().__init__(image_x, image_y, point)
        self.circle_diameter = float(circle_diameter)
    
    @classmethod
    def create(cls, image_x: float, image_y: float, circle_diameter: float, point: NDArray[np.float64]):
        return cls(image_x, image_y, circle_diameter, point)
    
    @property
    def diameter(self) -> float:
        return self.circle_diameter


COST_FUNCTIONS = {
    CostModel.CAMERA_REPRJ_ERROR_WITH_DISTORTION: CameraReprjErrorWithDistortion,
    CostModel.CIRCLE_CAMERA_REPRJ_ERROR_WITH_DISTORTION_PK: CircleCameraReprjErrorWithDistortionPK,
}


def create_cost_function(
    cost_model: CostModel,
    image_x: float,
    image_y: float,
    circle_diameter: float,
    point: NDArray[np.float64],
) -> CameraReprjErrorWithDistortion:
    """Build a cost term of the requested model."""
    cost_class: Type[CameraReprjErrorWithDistortion] = COST_FUNCTIONS[cost_model]
    
    if cost_class is CircleCameraReprjErrorWithDistortionPK:
        return CircleCameraReprjErrorWithDistortionPK.create(image_x, image_y, circle_diameter, point)
    
    return cost_class.create(image_x, image_y, point)
