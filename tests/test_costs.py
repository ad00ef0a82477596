"""Tests for reprojection cost models."""

from __future__ import annotations

import cv2
import pytest
import numpy as np
from numpy.testing import assert_array_almost_equal

from ical_calib.model.observation import CostModel
from ical_calib.optimization.costs import (
    CameraReprjErrorWithDistortion,
    CircleCameraReprjErrorWithDistortionPK,
    create_cost_function,
    project_circle_centers,
    project_points,
)
from ical_calib.common.transforms import apply_pose


def _fit_conic_center(points_2d: np.ndarray) -> np.ndarray:
    """Center of the conic through the given image points."""
    x, y = points_2d[:, 0], points_2d[:, 1]
    A = np.stack([x * x, x * y, y * y, x, y, np.ones_like(x)], axis=1)
    _, _, vt = np.linalg.svd(A)
    a, b, c, d, e, _ = vt[-1]
    return np.linalg.solve(np.array([[2 * a, b], [b, 2 * c]]), [-d, -e])


class TestProjection:
    """Tests for the projection functions."""
    
    def test_center_point_projects_to_principal_point(self, sample_intrinsics):
        """A point on the optical axis lands on the principal point."""
        pose = np.array([0.0, 0.0, 0.0, 0.0, 0.0, 1.0])
        projected = project_points(sample_intrinsics.pb_intrinsics, pose, np.zeros((1, 3)))
        
        assert_array_almost_equal(projected, [[320.0, 240.0]])
    
    def test_matches_opencv_with_distortion(self, true_target_pose, square_points):
        """The distortion model agrees with cv2.projectPoints."""
        intrinsics = np.array([480.0, 470.0, 315.0, 245.0, -0.12, 0.05, -0.01, 0.002, -0.003])
        
        expected, _ = cv2.projectPoints(
            square_points.reshape(-1, 1, 3),
            true_target_pose[:3].reshape(3, 1),
            true_target_pose[3:].reshape(3, 1),
            np.array([[480.0, 0, 315.0], [0, 470.0, 245.0], [0, 0, 1]]),
            np.array([-0.12, 0.05, 0.002, -0.003, -0.01]),
        )
        projected = project_points(intrinsics, true_target_pose, square_points)
        
        assert_array_almost_equal(projected, expected.reshape(-1, 2), decimal=6)
    
    def test_near_zero_rotation_matches_opencv(self, square_points):
        """Rotations at and below numerical noise project like cv2.projectPoints."""
        intrinsics = np.array([480.0, 470.0, 315.0, 245.0, -0.12, 0.05, -0.01, 0.002, -0.003])
        for rvec in ([0.0, 0.0, 0.0], [1e-14, -2e-14, 0.0], [1e-7, 0.0, 3e-7]):
            pose = np.array(rvec + [-0.05, -0.04, 0.5])
            expected, _ = cv2.projectPoints(
                square_points.reshape(-1, 1, 3),
                pose[:3].reshape(3, 1),
                pose[3:].reshape(3, 1),
                np.array([[480.0, 0, 315.0], [0, 470.0, 245.0], [0, 0, 1]]),
                np.array([-0.12, 0.05, 0.002, -0.003, -0.01]),
            )
            
            projected = project_points(intrinsics, pose, square_points)
            
            assert_array_almost_equal(projected, expected.reshape(-1, 2), decimal=6)
    
    def test_point_on_camera_plane_is_nan(self, sample_intrinsics):
        """A point with zero depth cannot be projected."""
        pose = np.zeros(6)
        projected = project_points(sample_intrinsics.pb_intrinsics, pose, np.array([[0.1, 0.0, 0.0]]))
        
        assert np.all(np.isnan(projected))
    
    def test_zero_diameter_is_point_projection(self, sample_intrinsics, true_target_pose, square_points):
        """Circle model with zero diameter reduces to the point model."""
        intrinsics = sample_intrinsics.pb_intrinsics
        assert_array_almost_equal(
            project_circle_centers(intrinsics, true_target_pose, square_points, 0.0),
            project_points(intrinsics, true_target_pose, square_points),
        )
    
    def test_fronto_parallel_circle_center_is_point(self, sample_intrinsics):
        """Without tilt the ellipse center is the projected circle center."""
        pose = np.array([0.0, 0.0, 0.0, 0.05, -0.02, 0.4])
        points = np.array([[0.02, 0.03, 0.0]])
        
        assert_array_almost_equal(
            project_circle_centers(sample_intrinsics.pb_intrinsics, pose, points, 0.05),
            project_points(sample_intrinsics.pb_intrinsics, pose, points),
        )
    
    def test_tilted_circle_center_matches_conic_fit(self):
        """The ellipse center matches a conic fitted to the projected rim."""
        intrinsics = np.array([1.0, 1.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0])
        pose = np.array([0.6, -0.4, 0.1, 0.05, 0.02, 0.3])
        center = np.array([0.03, -0.02, 0.0])
        diameter = 0.08
        
        angles = np.linspace(0, 2 * np.pi, 72, endpoint=False)
        rim = center + 0.5 * diameter * np.stack(
            [np.cos(angles), np.sin(angles), np.zeros_like(angles)], axis=1
        )
        camera_rim = apply_pose(pose, rim)
        image_rim = camera_rim[:, :2] / camera_rim[:, 2:3]
        
        expected = _fit_conic_center(image_rim)
        predicted = project_circle_centers(intrinsics, pose, center[None, :], diameter)[0]
        point_only = project_points(intrinsics, pose, center[None, :])[0]
        
        assert_array_almost_equal(predicted, expected, decimal=8)
        assert np.linalg.norm(predicted - point_only) > 1e-5


class TestCostFunctions:
    """Tests for the cost term classes."""
    
    def test_residual_is_predicted_minus_measured(self, sample_intrinsics, true_target_pose):
        """Residual is zero at the exact projection and signed otherwise."""
        point = np.array([0.05, 0.02, 0.0])
        u, v = project_points(sample_intrinsics.pb_intrinsics, true_target_pose, point[None, :])[0]
        
        exact = CameraReprjErrorWithDistortion.create(u, v, point)
        shifted = CameraReprjErrorWithDistortion.create(u + 1.0, v - 2.0, point)
        
        assert_array_almost_equal(exact(sample_intrinsics.pb_intrinsics, true_target_pose), [0, 0])
        assert_array_almost_equal(shifted(sample_intrinsics.pb_intrinsics, true_target_pose), [-1.0, 2.0])
    
    def test_block_sizes(self):
        """Cost terms bind a 9-value intrinsics and a 6-value pose block."""
        assert CameraReprjErrorWithDistortion.parameter_block_sizes == (9, 6)
        assert CircleCameraReprjErrorWithDistortionPK.num_residuals == 2
    
    def test_batch_matches_single(self, sample_intrinsics, true_target_pose, square_points):
        """Stacked evaluation equals per-term evaluation."""
        costs = [
            CircleCameraReprjErrorWithDistortionPK.create(300.0 + i, 200.0 - i, 0.01, p)
            for i, p in enumerate(square_points)
        ]
        intrinsics = sample_intrinsics.pb_intrinsics
        
        batch = CameraReprjErrorWithDistortion.evaluate_batch(
            intrinsics, true_target_pose, *CameraReprjErrorWithDistortion.stack(costs)
        )
        single = np.concatenate([c(intrinsics, true_target_pose) for c in costs])
        
        assert_array_almost_equal(batch, single)
    
    def test_create_cost_function_dispatch(self):
        """The factory builds the requested model."""
        point = np.array([0.0, 0.0, 0.0])
        circle = create_cost_function(
            CostModel.CIRCLE_CAMERA_REPRJ_ERROR_WITH_DISTORTION_PK, 1.0, 2.0, 0.02, point,
        )
        plain = create_cost_function(
            CostModel.CAMERA_REPRJ_ERROR_WITH_DISTORTION, 1.0, 2.0, 0.02, point,
        )
        
        assert isinstance(circle, CircleCameraReprjErrorWithDistortionPK)
        assert circle.diameter == 0.02
        assert type(plain) is CameraReprjErrorWithDistortion
        assert plain.diameter == 0.0
    
    def test_cost_model_parse(self):
        """Cost models parse from their names."""
        assert CostModel.parse("CAMERA_REPRJ_ERROR_WITH_DISTORTION") is CostModel.CAMERA_REPRJ_ERROR_WITH_DISTORTION
        with pytest.raises(ValueError, match="Unknown cost model"):
            CostModel.parse("nope")
