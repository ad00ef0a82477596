"""Tests for pose and SE(3) transformation utilities."""

from __future__ import annotations

import cv2
import pytest
import numpy as np
from numpy.testing import assert_array_almost_equal
from scipy.spatial.transform import Rotation

from ical_calib.common.transforms import (
    make_transform,
    pose_to_matrix,
    matrix_to_pose,
    apply_pose,
    pose_rotation_and_translation,
    pose_difference,
)
from ical_calib.model.pose import Pose6d


class TestMakeTransform:
    """Tests for make_transform."""
    
    def test_make_transform_layout(self):
        """Rotation and translation land in the expected blocks."""
        R = Rotation.from_euler("z", 90, degrees=True).as_matrix()
        T = make_transform(R, [1, 2, 3])
        
        assert_array_almost_equal(T[:3, :3], R)
        assert_array_almost_equal(T[:3, 3], [1, 2, 3])
        assert_array_almost_equal(T[3], [0, 0, 0, 1])
    
    def test_make_transform_invalid_shape(self):
        """Invalid shapes raise errors."""
        with pytest.raises(ValueError):
            make_transform(np.eye(4), [0, 0, 0])
        with pytest.raises(ValueError):
            make_transform(np.eye(3), [0, 0])


class TestPoseVectors:
    """Tests for pose vector conversions."""
    
    def test_zero_pose_is_identity(self):
        """A zero pose vector is the identity transform."""
        assert_array_almost_equal(pose_to_matrix(np.zeros(6)), np.eye(4))
    
    def test_matrix_to_pose_round_trip(self):
        """Converting back and forth preserves the pose."""
        pose = np.array([0.3, -0.1, 0.2, 0.05, 0.1, 0.8])
        assert_array_almost_equal(matrix_to_pose(pose_to_matrix(pose)), pose)
    
    def test_pose_to_matrix_wrong_size(self):
        """A pose vector must have six elements."""
        with pytest.raises(ValueError):
            pose_to_matrix(np.zeros(7))
    
    def test_apply_pose_single_and_batch(self):
        """Single points and point arrays transform consistently."""
        pose = np.array([0.0, 0.0, np.pi / 2, 1.0, 0.0, 0.0])
        single = apply_pose(pose, np.array([1.0, 0.0, 0.0]))
        batch = apply_pose(pose, np.array([[1.0, 0.0, 0.0], [0.0, 1.0, 0.0]]))
        
        assert_array_almost_equal(single, [1.0, 1.0, 0.0])
        assert_array_almost_equal(batch, [[1.0, 1.0, 0.0], [0.0, 0.0, 0.0]])
    
    def test_rotation_matches_opencv_rodrigues(self):
        """Pose rotations agree with cv2.Rodrigues, including tiny angles."""
        for rvec in ([0.3, -0.2, 0.1], [0.0, 0.0, 0.0], [1e-14, 0.0, 0.0], [2.5, 0.4, -1.0]):
            pose = np.array(rvec + [0.1, 0.2, 0.3])
            R, t = pose_rotation_and_translation(pose)
            expected, _ = cv2.Rodrigues(np.array(rvec, dtype=np.float64))
            
            assert_array_almost_equal(R, expected)
            assert_array_almost_equal(t, [0.1, 0.2, 0.3])


class TestPoseDifference:
    """Tests for pose_difference."""
    
    def test_identical_poses(self):
        """Identical poses have zero error."""
        pose = np.array([0.1, 0.2, 0.3, 1.0, 2.0, 3.0])
        rot, trans = pose_difference(pose, pose)
        
        assert rot == pytest.approx(0.0, abs=1e-12)
        assert trans == pytest.approx(0.0, abs=1e-12)
    
    def test_known_difference(self):
        """Rotation error is the angle between the rotations."""
        a = np.array([0.0, 0.0, 0.0, 0.0, 0.0, 0.0])
        b = np.array([0.0, 0.0, 0.1, 0.3, 0.4, 0.0])
        rot, trans = pose_difference(a, b)
        
        assert rot == pytest.approx(0.1)
        assert trans == pytest.approx(0.5)


class TestPose6d:
    """Tests for the Pose6d storage."""
    
    def test_to_matrix_and_dict(self):
        pose = Pose6d(np.array([0.0, 0.0, np.pi / 2, 1.0, 2.0, 3.0]))
        
        T = pose.to_matrix()
        assert_array_almost_equal(T[:3, 3], [1.0, 2.0, 3.0])
        assert_array_almost_equal(T[:3, 0], [0.0, 1.0, 0.0])
        assert Pose6d.from_dict(pose.to_dict()).pb_pose.tolist() == pose.pb_pose.tolist()
    
    def test_copy_is_independent(self):
        pose = Pose6d()
        clone = pose.copy()
        clone.pb_pose[5] = 1.0
        
        assert pose.pb_pose[5] == 0.0
