"""Pose and SE(3) transformation utilities.

Poses are stored in parameter blocks as 6-vectors

    [ax, ay, az, x, y, z]

where (ax, ay, az) is an angle-axis rotation vector and (x, y, z) the
translation. The 4x4 homogeneous form T_A_B maps a point p_B in frame B to
frame A:

    p_A = T_A_B @ p_B

For a target pose block, B is the target frame and A the observing camera.

Example:
    >>> import numpy as np
    >>> from ical_calib.common.transforms import pose_to_matrix, apply_pose
    >>> 
    >>> pose = np.array([0.0, 0.0, 0.0, 0.0, 0.0, 1.0])
    >>> points = apply_pose(pose, np.array([[0.1, 0.0, 0.0]]))
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray
from scipy.spatial.transform import Rotation
from typing import Tuple

POSE_SIZE = 6


def make_transform(R: NDArray[np.float64], t: NDArray[np.float64]) -> NDArray[np.float64]:
    """Create a 4x4 transformation matrix from rotation and translation.
    
    Args:
        R: 3x3 rotation matrix.
        t: 3-element translation vector.
        
    Returns:
        4x4 transformation matrix.
    """
    R = np.asarray(R, dtype=np.float64)
    t = np.asarray(t, dtype=np.float64).flatten()
    
    if R.shape != (3, 3):
        raise ValueError(f"Expected 3x3 rotation matrix, got {R.shape}")
    if t.shape != (3,):
        raise ValueError(f"Expected 3-element translation, got {t.shape}")
    
    T = np.eye(4, dtype=np.float64)
    T[:3, :3] = R
    T[:3, 3] = t
    
    return T


def pose_to_matrix(pose: NDArray[np.float64]) -> NDArray[np.float64]:
    """Convert a 6-element pose vector to a 4x4 transformation matrix.
    
    Args:
        pose: [ax, ay, az, x, y, z] angle-axis rotation and translation.
        
    Returns:
        4x4 transformation matrix.
        
    Raises:
        ValueError: If the pose does not have 6 elements.
    """
    pose = np.asarray(pose, dtype=np.float64).flatten()
    
    if pose.shape != (POSE_SIZE,):
        raise ValueError(f"Expected {POSE_SIZE}-element pose, got {pose.shape}")
    
    R = Rotation.from_rotvec(pose[:3]).as_matrix()
    return make_transform(R, pose[3:])


def matrix_to_pose(T: NDArray[np.float64]) -> NDArray[np.float64]:
    """Convert a 4x4 transformation matrix to a 6-element pose vector."""
    T = np.asarray(T, dtype=np.float64)
    
    if T.shape != (4, 4):
        raise ValueError(f"Expected 4x4 matrix, got {T.shape}")
    
    rvec = Rotation.from_matrix(T[:3, :3]).as_rotvec()
    return np.concatenate([rvec, T[:3, 3]])


def pose_rotation_and_translation(
    pose: NDArray[np.float64],
) -> Tuple[NDArray[np.float64], NDArray[np.float64]]:
    """Split a pose vector into a 3x3 rotation matrix and a translation."""
    pose = np.asarray(pose, dtype=np.float64)
    return Rotation.from_rotvec(pose[:3]).as_matrix(), pose[3:6]


def apply_pose(
    pose: NDArray[np.float64],
    points: NDArray[np.float64],
) -> NDArray[np.float64]:
    """Transform Nx3 points by a pose vector (R @ p + t).
    
    Args:
        pose: 6-element pose vector.
        points: Nx3 (or 3,) array of points.
        
    Returns:
        Transformed points with the same shape as the input.
    """
    R, t = pose_rotation_and_translation(pose)
    points = np.asarray(points, dtype=np.float64)
    
    if points.ndim == 1:
        return R @ points + t
    
    return points @ R.T + t


def pose_difference(
    pose_a: NDArray[np.float64],
    pose_b: NDArray[np.float64],
) -> Tuple[float, float]:
    """Compute the rotation (rad) and translation distance between two poses.
    
    Returns:
        Tuple of (rotation_error_rad, translation_error).
    """
    pose_a = np.asarray(pose_a, dtype=np.float64)
    pose_b = np.asarray(pose_b, dtype=np.float64)
    
    R_a = Rotation.from_rotvec(pose_a[:3])
    R_b = Rotation.from_rotvec(pose_b[:3])
    rotation_error = float((R_a.inv() * R_b).magnitude())
    translation_error = float(np.linalg.norm(pose_a[3:] - pose_b[3:]))
    
    return rotation_error, translation_error
