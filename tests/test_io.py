"""Tests for camera/target descriptions, session config and report export."""

from __future__ import annotations

import json

import pytest
import yaml
import numpy as np
from numpy.testing import assert_array_almost_equal

from ical_calib.common.errors import ConfigurationError
from ical_calib.io.cameras import load_cameras, parse_cameras, save_cameras
from ical_calib.io.config import SessionConfig
from ical_calib.io.export import export_run_report_json
from ical_calib.io.targets import load_targets
from ical_calib.model.observation import CostModel
from ical_calib.optimization.solver import LinearSolverType, TerminationType
from ical_calib.session.orchestrator import CameraResult, RunResult, TargetResult


def _write_yaml(path, data):
    with open(path, "w") as f:
        yaml.dump(data, f)
    return path


class TestLoadCameras:
    """Tests for load_cameras."""
    
    def test_load_sample(self, tmp_path, sample_camera_data):
        cameras = load_cameras(_write_yaml(tmp_path / "cameras.yaml", sample_camera_data))
        
        left, right = cameras
        assert left.camera_name == "left"
        assert left.camera_parameters.distortion_k1 == pytest.approx(0.01)
        assert (left.camera_parameters.width, left.camera_parameters.height) == (640, 480)
        assert right.is_right_stereo_camera
        assert right.left_stereo_camera_name == "left"
        assert right.left_stereo_camera is None
        assert right.fixed_intrinsics
        assert right.camera_parameters.distortion_k2 == 0.0
    
    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            load_cameras(tmp_path / "missing.yaml")
    
    def test_unparsable_file(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("cameras: [unclosed")
        
        with pytest.raises(ConfigurationError):
            load_cameras(path)
    
    def test_missing_required_field(self, sample_camera_data):
        del sample_camera_data["cameras"][0]["intrinsics"]["fx"]
        
        with pytest.raises(ConfigurationError, match="fx"):
            parse_cameras(sample_camera_data)
    
    def test_duplicate_names(self, sample_camera_data):
        sample_camera_data["cameras"][1]["name"] = "left"
        
        with pytest.raises(ConfigurationError, match="Duplicate"):
            parse_cameras(sample_camera_data)
    
    def test_right_camera_needs_left_name(self, sample_camera_data):
        del sample_camera_data["cameras"][1]["left_stereo_camera_name"]
        
        with pytest.raises(ConfigurationError, match="left_stereo_camera_name"):
            parse_cameras(sample_camera_data)
    
    def test_static_and_moving_sections(self, sample_camera_data):
        left, right = sample_camera_data["cameras"]
        cameras = parse_cameras({"static_cameras": [left], "moving_cameras": [right]})
        
        assert [c.is_moving for c in cameras] == [False, True]
    
    def test_save_and_reload(self, tmp_path, sample_camera_data):
        cameras = parse_cameras(sample_camera_data)
        cameras[0].camera_parameters.pb_intrinsics[0] = 512.5
        cameras[0].pose.pb_pose[5] = 0.25
        
        path = save_cameras(cameras, tmp_path / "out" / "cameras.yaml")
        reloaded = load_cameras(path)
        
        assert reloaded[0].camera_parameters.focal_length_x == pytest.approx(512.5)
        assert reloaded[0].pose.pb_pose[5] == pytest.approx(0.25)
        assert reloaded[1].left_stereo_camera_name == "left"
        assert reloaded[1].fixed_intrinsics


class TestLoadTargets:
    """Tests for load_targets."""
    
    def test_load_sample(self, tmp_path, sample_target_data):
        board, grid = load_targets(_write_yaml(tmp_path / "targets.yaml", sample_target_data))
        
        assert board.num_points == 4
        assert board.circle_diameter == pytest.approx(0.01)
        assert board.pose.pb_pose[5] == pytest.approx(0.5)
        assert not board.is_moving
        
        assert grid.is_moving
        assert grid.num_points == 12
        assert_array_almost_equal(grid.point(5), [0.03, 0.03, 0.0])
        assert grid.circle_grid_parameters.rows == 3
    
    def test_needs_points_or_grid(self, tmp_path):
        path = _write_yaml(tmp_path / "targets.yaml", {"targets": [{"name": "empty"}]})
        
        with pytest.raises(ConfigurationError, match="points"):
            load_targets(path)
    
    def test_bad_points_shape(self, tmp_path):
        path = _write_yaml(tmp_path / "targets.yaml", {"targets": [{"name": "t", "points": [[0, 0]]}]})
        
        with pytest.raises(ConfigurationError):
            load_targets(path)
    
    def test_bad_grid(self, tmp_path):
        data = {"targets": [{"name": "t", "circle_grid": {"rows": 0, "cols": 3, "spacing": 0.1}}]}
        
        with pytest.raises(ConfigurationError):
            load_targets(_write_yaml(tmp_path / "targets.yaml", data))
    
    def test_empty_file(self, tmp_path):
        path = tmp_path / "targets.yaml"
        path.write_text("")
        
        with pytest.raises(ConfigurationError):
            load_targets(path)


class TestSessionConfig:
    """Tests for SessionConfig."""
    
    def test_defaults(self):
        config = SessionConfig()
        
        assert config.residual_cost_model == CostModel.CIRCLE_CAMERA_REPRJ_ERROR_WITH_DISTORTION_PK
        assert config.observer_cost_model == CostModel.CAMERA_REPRJ_ERROR_WITH_DISTORTION
        assert config.observation_timeout_s == 10.0
        assert config.output_camera_path is None
    
    def test_from_yaml(self, config_path):
        config = SessionConfig.from_yaml(config_path / "session.yaml")
        
        assert config.camera_file == "cameras.yaml"
        assert config.solver.linear_solver_type == LinearSolverType.DENSE_SCHUR
        assert config.output_camera_path.name == "cameras_calibrated.yaml"
    
    def test_round_trip(self):
        config = SessionConfig(yaml_file_path="cfg", allowable_cost_per_observation=0.3)
        
        assert SessionConfig.from_dict(config.to_dict()) == config
    
    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            SessionConfig.from_yaml(tmp_path / "missing.yaml")
    
    def test_unknown_cost_model(self):
        with pytest.raises(ValueError):
            SessionConfig.from_dict({"residual_cost_model": "nope"})


class TestExport:
    """Tests for export_run_report_json."""
    
    def test_export_report(self, temp_output_dir):
        result = RunResult(
            success=True,
            initial_cost_per_observation=2.0,
            final_cost_per_observation=0.1,
            allowable_cost_per_observation=0.5,
            total_observations=4,
            termination_type=TerminationType.CONVERGENCE,
            cameras=[CameraResult(
                camera_name="cam",
                camera_matrix=np.eye(3).tolist(),
                distortion=[0.0] * 5,
                projection_matrix=np.eye(3, 4).tolist(),
                pose=[0.0] * 6,
                reprojection_rmse=0.2,
                num_observations=4,
            )],
            targets=[TargetResult("board", 0, [0.0] * 6)],
        )
        
        path = export_run_report_json(result, temp_output_dir / "report.json", {"seed": 1})
        
        with open(path) as f:
            report = json.load(f)
        
        assert report["result"]["success"] is True
        assert report["result"]["termination_type"] == "convergence"
        assert report["result"]["cameras"][0]["camera_name"] == "cam"
        assert report["result"]["targets"][0]["scene_id"] == 0
        assert report["additional_info"] == {"seed": 1}
