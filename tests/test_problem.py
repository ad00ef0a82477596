"""Tests for the live calibration problem."""

from __future__ import annotations

import pytest
import numpy as np
from numpy.testing import assert_array_almost_equal

from ical_calib.common.errors import ParameterBlockError
from ical_calib.optimization.blocks import BlockKind, ParameterBlock, ParameterBlockRegistry
from ical_calib.optimization.costs import CameraReprjErrorWithDistortion, project_points
from ical_calib.optimization.problem import CalibrationProblem

from conftest import make_camera, make_target


@pytest.fixture
def registry_with_rig(true_target_pose):
    registry = ParameterBlockRegistry()
    camera = make_camera()
    target = make_target(pose=true_target_pose)
    registry.init_blocks([camera], [target])
    return registry, camera, target


def _add_exact_residuals(problem, registry, camera, target, offset=0.0):
    intrinsics = registry.intrinsics_block(camera.camera_name)
    pose = registry.target_pose_block(target.target_name)
    projected = project_points(intrinsics.values, pose.values, target.pts)
    for (u, v), point in zip(projected, target.pts):
        cost = CameraReprjErrorWithDistortion.create(u + offset, v, point)
        problem.add_residual_block(cost, intrinsics, pose)


class TestAssembly:
    """Tests for residual block assembly."""
    
    def test_counts(self, registry_with_rig):
        """Residual and parameter counts follow the bound blocks."""
        registry, camera, target = registry_with_rig
        problem = CalibrationProblem()
        _add_exact_residuals(problem, registry, camera, target)
        
        assert problem.num_residual_blocks == 4
        assert problem.num_residuals == 8
        assert problem.num_parameters == 15
        assert problem.num_residual_blocks_for(registry.intrinsics_block("cam")) == 4
        assert problem.num_residual_blocks_for(registry.camera_pose_block("cam")) == 0
    
    def test_released_block_rejected(self, registry_with_rig):
        """A block released by clearing the registry cannot be bound."""
        registry, camera, target = registry_with_rig
        intrinsics = registry.intrinsics_block("cam")
        pose = registry.target_pose_block("board")
        registry.clear_cameras_targets()
        
        cost = CameraReprjErrorWithDistortion.create(0.0, 0.0, target.pts[0])
        with pytest.raises(ParameterBlockError):
            CalibrationProblem().add_residual_block(cost, intrinsics, pose)
    
    def test_block_size_mismatch_rejected(self, registry_with_rig):
        """Blocks must match the cost term's sizes."""
        registry, camera, target = registry_with_rig
        cost = CameraReprjErrorWithDistortion.create(0.0, 0.0, target.pts[0])
        pose = registry.target_pose_block("board")
        
        with pytest.raises(ValueError):
            CalibrationProblem().add_residual_block(cost, pose, pose)


class TestParameters:
    """Tests for the flat parameter layout."""
    
    def test_constant_blocks_excluded(self, registry_with_rig):
        """Constant blocks are not part of the parameter vector."""
        registry, camera, target = registry_with_rig
        problem = CalibrationProblem()
        _add_exact_residuals(problem, registry, camera, target)
        
        problem.set_parameter_block_constant(registry.intrinsics_block("cam"))
        assert problem.num_parameters == 6
        assert_array_almost_equal(problem.gather_parameters(), target.pose.pb_pose)
        
        problem.set_parameter_block_variable(registry.intrinsics_block("cam"))
        assert problem.num_parameters == 15
    
    def test_scatter_writes_in_place(self, registry_with_rig):
        """Scattering updates the entity storage through the aliased blocks."""
        registry, camera, target = registry_with_rig
        problem = CalibrationProblem()
        _add_exact_residuals(problem, registry, camera, target)
        storage = target.pose.pb_pose
        
        x = problem.gather_parameters()
        x[-1] += 0.25
        problem.scatter_parameters(x)
        
        assert target.pose.pb_pose is storage
        assert target.pose.pb_pose[5] == pytest.approx(0.75)
    
    def test_scatter_wrong_length(self, registry_with_rig):
        """A vector of the wrong length is rejected."""
        registry, camera, target = registry_with_rig
        problem = CalibrationProblem()
        _add_exact_residuals(problem, registry, camera, target)
        
        with pytest.raises(ValueError):
            problem.scatter_parameters(np.zeros(3))


class TestEvaluation:
    """Tests for residual evaluation."""
    
    def test_exact_observations_have_zero_cost(self, registry_with_rig):
        """Exact observations give zero residuals."""
        registry, camera, target = registry_with_rig
        problem = CalibrationProblem()
        _add_exact_residuals(problem, registry, camera, target)
        
        assert problem.cost() == pytest.approx(0.0, abs=1e-18)
    
    def test_cost_is_half_sum_of_squares(self, registry_with_rig):
        """Cost follows the 0.5 * sum(r^2) convention."""
        registry, camera, target = registry_with_rig
        problem = CalibrationProblem()
        _add_exact_residuals(problem, registry, camera, target, offset=2.0)
        
        # four residuals of (-2, 0)
        assert problem.cost() == pytest.approx(0.5 * 4 * 4.0)
    
    def test_evaluate_does_not_mutate_blocks(self, registry_with_rig):
        """Evaluating at another vector leaves the blocks untouched."""
        registry, camera, target = registry_with_rig
        problem = CalibrationProblem()
        _add_exact_residuals(problem, registry, camera, target)
        before = target.pose.pb_pose.copy()
        
        x = problem.gather_parameters()
        x[-1] += 0.1
        assert problem.cost(x) > 0
        assert_array_almost_equal(target.pose.pb_pose, before)
    
    def test_residuals_by_camera(self, registry_with_rig):
        """Residuals are grouped by the intrinsics block owner."""
        registry, camera, target = registry_with_rig
        problem = CalibrationProblem()
        _add_exact_residuals(problem, registry, camera, target, offset=1.0)
        
        grouped = problem.residuals_by_camera()
        assert list(grouped) == ["cam"]
        assert grouped["cam"].shape == (4, 2)
        assert_array_almost_equal(grouped["cam"][:, 0], -1.0)


class TestSparsity:
    """Tests for the Jacobian sparsity pattern."""
    
    def test_sparsity_follows_bindings(self):
        """Each residual touches only its own blocks."""
        intrinsics = ParameterBlock("cam/i", BlockKind.INTRINSICS, "cam", 0,
                                    np.array([500.0, 500.0, 320.0, 240.0, 0, 0, 0, 0, 0]))
        pose_a = ParameterBlock("a/pose", BlockKind.POSE, "a", 1, np.array([0, 0, 0, 0, 0, 1.0]))
        pose_b = ParameterBlock("a/pose", BlockKind.POSE, "a", 2, np.array([0, 0, 0, 0, 0, 1.0]))
        
        problem = CalibrationProblem()
        point = np.zeros(3)
        problem.add_residual_block(CameraReprjErrorWithDistortion(320.0, 240.0, point), intrinsics, pose_a)
        problem.add_residual_block(CameraReprjErrorWithDistortion(320.0, 240.0, point), intrinsics, pose_b)
        
        sparsity = problem.jacobian_sparsity().toarray()
        assert sparsity.shape == (4, 21)
        assert sparsity[:2, :9].all() and sparsity[:2, 9:15].all()
        assert not sparsity[:2, 15:].any()
        assert not sparsity[2:, 9:15].any() and sparsity[2:, 15:].all()
