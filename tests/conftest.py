"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Dict, Any

import pytest
import numpy as np

# Add src to path for development testing
src_path = Path(__file__).parent.parent / "src"
if src_path.exists():
    sys.path.insert(0, str(src_path))

from ical_calib.model.camera import Camera, CameraParameters
from ical_calib.model.pose import Pose6d
from ical_calib.model.target import Target
from ical_calib.observer.synthetic import SyntheticCameraObserver


@pytest.fixture
def config_path() -> Path:
    """Path to the config directory."""
    return Path(__file__).parent.parent / "configs"


@pytest.fixture
def sample_intrinsics() -> CameraParameters:
    """640x480 camera, fx=fy=500, centered principal point, no distortion."""
    return CameraParameters.create(fx=500.0, fy=500.0, cx=320.0, cy=240.0, width=640, height=480)


@pytest.fixture
def true_target_pose() -> np.ndarray:
    """Target half a meter in front of the camera, slightly tilted."""
    return np.array([0.1, -0.05, 0.02, -0.05, -0.04, 0.5])


@pytest.fixture
def square_points() -> np.ndarray:
    """Four coplanar target points."""
    return np.array([
        [0.0, 0.0, 0.0],
        [0.1, 0.0, 0.0],
        [0.1, 0.08, 0.0],
        [0.0, 0.08, 0.0],
    ])


def make_camera(name: str = "cam", **kwargs) -> Camera:
    """Create a camera with the sample intrinsics."""
    params = CameraParameters.create(fx=500.0, fy=500.0, cx=320.0, cy=240.0, width=640, height=480)
    return Camera(camera_name=name, camera_parameters=params, **kwargs)


def make_target(name: str = "board", points=None, pose=None, **kwargs) -> Target:
    """Create a target with four points (or the given ones)."""
    if points is None:
        points = [[0.0, 0.0, 0.0], [0.1, 0.0, 0.0], [0.1, 0.08, 0.0], [0.0, 0.08, 0.0]]
    return Target(
        target_name=name,
        pts=np.asarray(points, dtype=np.float64),
        pose=Pose6d(pose) if pose is not None else Pose6d(),
        **kwargs,
    )


@pytest.fixture
def static_rig(sample_intrinsics, true_target_pose, square_points):
    """One static camera with fixed intrinsics and one static four-point target.
    
    The observer sees the target at its true pose; the target's own pose
    holds a perturbed initial guess.
    """
    camera = Camera(
        camera_name="cam",
        camera_parameters=CameraParameters(
            sample_intrinsics.pb_intrinsics.copy(), 640, 480,
        ),
        fixed_intrinsics=True,
    )
    initial_pose = true_target_pose + np.array([0.02, -0.02, 0.01, 0.01, -0.01, 0.03])
    target = Target(target_name="board", pts=square_points, pose=Pose6d(initial_pose))
    camera.camera_observer = SyntheticCameraObserver(
        "cam", sample_intrinsics, target_poses={"board": true_target_pose},
    )
    return camera, target


@pytest.fixture
def sample_camera_data() -> Dict[str, Any]:
    """Sample camera description file contents."""
    return {
        "cameras": [
            {
                "name": "left",
                "is_moving": False,
                "intrinsics": {
                    "fx": 500.0, "fy": 500.0, "cx": 320.0, "cy": 240.0,
                    "k1": 0.01, "k2": 0.0, "k3": 0.0, "p1": 0.0, "p2": 0.0,
                    "width": 640, "height": 480,
                },
                "pose": {"ax": 0.0, "ay": 0.0, "az": 0.0, "x": 0.0, "y": 0.0, "z": 0.0},
            },
            {
                "name": "right",
                "is_right_stereo_camera": True,
                "left_stereo_camera_name": "left",
                "fixed_intrinsics": True,
                "intrinsics": {
                    "fx": 510.0, "fy": 505.0, "cx": 322.0, "cy": 238.0,
                    "width": 640, "height": 480,
                },
            },
        ]
    }


@pytest.fixture
def sample_target_data() -> Dict[str, Any]:
    """Sample target description file contents."""
    return {
        "targets": [
            {
                "name": "board",
                "circle_diameter": 0.01,
                "points": [[0.0, 0.0, 0.0], [0.1, 0.0, 0.0], [0.1, 0.08, 0.0], [0.0, 0.08, 0.0]],
                "pose": {"ax": 0.0, "ay": 0.0, "az": 0.0, "x": -0.05, "y": -0.04, "z": 0.5},
            },
            {
                "name": "grid",
                "is_moving": True,
                "circle_diameter": 0.015,
                "circle_grid": {"rows": 3, "cols": 4, "spacing": 0.03},
            },
        ]
    }


@pytest.fixture
def temp_output_dir(tmp_path: Path) -> Path:
    """Temporary output directory for tests."""
    output_dir = tmp_path / "output"
    output_dir.mkdir()
    return output_dir
