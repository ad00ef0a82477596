"""Solve orchestrator.

Runs the solver over the accumulated problem, normalizes the cost by the
number of observations, applies the caller's acceptance threshold and
assembles per-camera and per-target results.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import numpy as np

from ical_calib.common.errors import ConvergenceError, StateOrderError
from ical_calib.common.logging import get_logger, log_vector
from ical_calib.metrics.reprojection import compute_camera_reprojection_metrics
from ical_calib.model.pose import Pose6d
from ical_calib.optimization.blocks import ParameterBlockRegistry
from ical_calib.optimization.problem import CalibrationProblem
from ical_calib.optimization.solver import SolverOptions, SolverSummary, TerminationType, solve

logger = get_logger(__name__)


@dataclass
class CameraResult:
    """Calibrated parameters of one camera.
    
    Attributes:
        camera_name: Camera name.
        camera_matrix: 3x3 camera matrix K (row-major nested lists).
        distortion: Distortion in OpenCV order [k1, k2, p1, p2, k3].
        projection_matrix: 3x4 projection matrix [K | 0].
        pose: Camera pose block values [ax, ay, az, x, y, z].
        reprojection_rmse: RMS reprojection error (pixels), None without residuals.
        num_observations: Number of observations of this camera.
    """
    
    camera_name: str
    camera_matrix: List[List[float]]
    distortion: List[float]
    projection_matrix: List[List[float]]
    pose: List[float]
    reprojection_rmse: Optional[float] = None
    num_observations: int = 0
    
    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "camera_name": self.camera_name,
            "camera_matrix": self.camera_matrix,
            "distortion": self.distortion,
            "projection_matrix": self.projection_matrix,
            "pose": self.pose,
            "reprojection_rmse": self.reprojection_rmse,
            "num_observations": self.num_observations,
        }


@dataclass
class TargetResult:
    """Solved pose of one target pose block."""
    
    target_name: str
    scene_id: int
    pose: List[float]
    
    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {"target_name": self.target_name, "scene_id": self.scene_id, "pose": self.pose}


@dataclass
class RunResult:
    """Outcome of one run.
    
    Attributes:
        success: Whether the normalized final cost met the threshold.
        initial_cost_per_observation: Initial cost / total observations.
        final_cost_per_observation: Final cost / total observations.
        allowable_cost_per_observation: Threshold the run was judged against.
        total_observations: Observation count used for normalization.
        termination_type: How the solver stopped.
        iterations: Solver iterations.
        cameras: Per-camera results.
        targets: Per-target-block results.
        message: Human readable outcome.
    """
    
    success: bool
    initial_cost_per_observation: float
    final_cost_per_observation: float
    allowable_cost_per_observation: float
    total_observations: int
    termination_type: TerminationType
    iterations: int = 0
    cameras: List[CameraResult] = field(default_factory=list)
    targets: List[TargetResult] = field(default_factory=list)
    message: str = ""
    
    def camera(self, name: str) -> Optional[CameraResult]:
        """Get the result of a camera by name."""
        for result in self.cameras:
            if result.camera_name == name:
                return result
        return None
    
    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "success": self.success,
            "initial_cost_per_observation": self.initial_cost_per_observation,
            "final_cost_per_observation": self.final_cost_per_observation,
            "allowable_cost_per_observation": self.allowable_cost_per_observation,
            "total_observations": self.total_observations,
            "termination_type": self.termination_type.value,
            "iterations": self.iterations,
            "message": self.message,
            "cameras": [c.to_dict() for c in self.cameras],
            "targets": [t.to_dict() for t in self.targets],
        }


class SolveOrchestrator:
    """Solves the accumulated problem and judges the outcome.
    
    Example:
        >>> orchestrator = SolveOrchestrator(SolverOptions())
        >>> result = orchestrator.run(problem, registry, total_observations, 0.25)
    """
    
    def __init__(self, options: Optional[SolverOptions] = None):
        self.options = options or SolverOptions()
    
    def run(
        self,
        problem: CalibrationProblem,
        registry: ParameterBlockRegistry,
        total_observations: int,
        allowable_cost_per_observation: float,
    ) -> RunResult:
        """Solve and apply the acceptance test.
        
        The parameter blocks hold the solver's last iterate afterwards,
        whatever the outcome.
        
        Args:
            problem: Problem holding at least one residual.
            registry: Registry whose blocks the problem references.
            total_observations: Number of observations added since start.
            allowable_cost_per_observation: Acceptance threshold.
            
        Returns:
            RunResult; success is False when the normalized final cost
            exceeds the threshold.
            
        Raises:
            StateOrderError: If there are no observations.
            ConvergenceError: If the solver did not converge.
        """
        if total_observations <= 0 or problem.num_residual_blocks == 0:
            raise StateOrderError("must call observations service at least once")
        
        summary = solve(problem, self.options)
        logger.debug(summarize(summary))
        
        if summary.termination_type != TerminationType.CONVERGENCE:
            logger.error(f"Solver did not converge ({summary.termination_type.value}): {summary.message}")
            raise ConvergenceError(
                f"solver did not converge ({summary.termination_type.value}): {summary.message}"
            )
        
        initial_cost = summary.initial_cost / total_observations
        final_cost = summary.final_cost / total_observations
        logger.info(
            f"Solved: initial cost per observation {initial_cost:.6g}, "
            f"final cost per observation {final_cost:.6g} ({summary.iterations} iterations)"
        )
        
        cameras = self._camera_results(problem, registry)
        targets = self._target_results(registry)
        
        success = final_cost <= allowable_cost_per_observation
        if success:
            message = "calibration accepted"
        else:
            message = (
                f"allowable cost exceeded: {final_cost:.6g} > "
                f"{allowable_cost_per_observation:.6g}"
            )
            logger.error(message)
        
        return RunResult(
            success=success,
            initial_cost_per_observation=initial_cost,
            final_cost_per_observation=final_cost,
            allowable_cost_per_observation=float(allowable_cost_per_observation),
            total_observations=int(total_observations),
            termination_type=summary.termination_type,
            iterations=summary.iterations,
            cameras=cameras,
            targets=targets,
            message=message,
        )
    
    @staticmethod
    def _camera_results(
        problem: CalibrationProblem,
        registry: ParameterBlockRegistry,
    ) -> List[CameraResult]:
        metrics = compute_camera_reprojection_metrics(problem)
        results = []
        
        for camera in registry.cameras:
            params = camera.camera_parameters
            K = params.to_camera_matrix()
            distortion = params.distortion_coeffs()
            P = params.to_projection_matrix()
            
            log_vector(logger, "camera_matrix", camera.camera_name, K.ravel())
            log_vector(logger, "distortion", camera.camera_name, distortion)
            log_vector(logger, "projection_matrix", camera.camera_name, P.ravel())
            
            camera_metrics = metrics.get(camera.camera_name)
            results.append(CameraResult(
                camera_name=camera.camera_name,
                camera_matrix=K.tolist(),
                distortion=distortion.tolist(),
                projection_matrix=P.tolist(),
                pose=np.asarray(camera.pose.pb_pose, dtype=float).tolist(),
                reprojection_rmse=camera_metrics.rmse if camera_metrics else None,
                num_observations=camera_metrics.num_points if camera_metrics else 0,
            ))
        
        return results
    
    @staticmethod
    def _target_results(registry: ParameterBlockRegistry) -> List[TargetResult]:
        results = []
        for block in registry.target_pose_blocks():
            Pose6d(block.values).show(f"target {block.owner} scene {block.scene_id}")
            results.append(TargetResult(
                target_name=block.owner,
                scene_id=block.scene_id,
                pose=block.values.tolist(),
            ))
        return results


def summarize(summary: SolverSummary) -> str:
    """One-line description of a solver summary."""
    return (
        f"{summary.termination_type.value}: cost {summary.initial_cost:.6g} -> "
        f"{summary.final_cost:.6g} in {summary.iterations} iterations"
    )
