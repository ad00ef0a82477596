"""Nonlinear least-squares solver adapter.

Runs scipy's trust-region reflective least-squares solver over a
CalibrationProblem and reports a summary with initial/final cost and a
termination type. The final iterate is written back into the problem's
parameter blocks in place.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List

import numpy as np
from scipy.optimize import least_squares

from ical_calib.common.logging import get_logger
from ical_calib.optimization.problem import CalibrationProblem

logger = get_logger(__name__)


class LinearSolverType(Enum):
    """Strategy for the trust-region subproblem."""
    
    DENSE_SCHUR = "dense_schur"
    DENSE_QR = "dense_qr"
    SPARSE_SCHUR = "sparse_schur"


class TerminationType(Enum):
    """How the solver stopped."""
    
    CONVERGENCE = "convergence"
    NO_CONVERGENCE = "no_convergence"
    FAILURE = "failure"


@dataclass
class SolverOptions:
    """Solver configuration.
    
    Attributes:
        linear_solver_type: Dense strategies solve the trust-region step
            exactly on the dense Jacobian; sparse_schur uses LSMR on the
            block-sparse Jacobian.
        max_num_iterations: Cap on residual evaluations.
        function_tolerance: Relative cost change tolerance.
        parameter_tolerance: Relative parameter change tolerance.
        gradient_tolerance: Gradient norm tolerance.
        minimizer_progress_to_stdout: Print per-iteration progress.
    """
    
    linear_solver_type: LinearSolverType = LinearSolverType.DENSE_SCHUR
    max_num_iterations: int = 2000
    function_tolerance: float = 1e-10
    parameter_tolerance: float = 1e-10
    gradient_tolerance: float = 1e-10
    minimizer_progress_to_stdout: bool = False
    
    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SolverOptions":
        """Create from dictionary."""
        return cls(
            linear_solver_type=LinearSolverType(
                str(data.get("linear_solver_type", "dense_schur")).lower()
            ),
            max_num_iterations=int(data.get("max_num_iterations", 2000)),
            function_tolerance=float(data.get("function_tolerance", 1e-10)),
            parameter_tolerance=float(data.get("parameter_tolerance", 1e-10)),
            gradient_tolerance=float(data.get("gradient_tolerance", 1e-10)),
            minimizer_progress_to_stdout=bool(data.get("minimizer_progress_to_stdout", False)),
        )
    
    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "linear_solver_type": self.linear_solver_type.value,
            "max_num_iterations": self.max_num_iterations,
            "function_tolerance": self.function_tolerance,
            "parameter_tolerance": self.parameter_tolerance,
            "gradient_tolerance": self.gradient_tolerance,
            "minimizer_progress_to_stdout": self.minimizer_progress_to_stdout,
        }


@dataclass
class SolverSummary:
    """Outcome of a solve.
    
    Attributes:
        initial_cost: Cost at the starting point (0.5 * sum r^2).
        final_cost: Cost at the final iterate.
        termination_type: Convergence, no convergence or failure.
        iterations: Number of Jacobian evaluations (outer iterations).
        num_parameters: Number of free parameters.
        num_residuals: Number of scalar residuals.
        reached_iteration_limit: Whether the evaluation cap stopped the solver.
        message: Solver status message.
        cost_history: Cost at every residual evaluation.
    """
    
    initial_cost: float
    final_cost: float
    termination_type: TerminationType
    iterations: int = 0
    num_parameters: int = 0
    num_residuals: int = 0
    reached_iteration_limit: bool = False
    message: str = ""
    cost_history: List[float] = field(default_factory=list)
    
    @property
    def converged(self) -> bool:
        return self.termination_type == TerminationType.CONVERGENCE


def _termination_from_status(status: int, initial_cost: float, final_cost: float) -> TerminationType:
    if status > 0:
        return TerminationType.CONVERGENCE
    if status == 0:
        # Evaluation cap reached: keep the result when the cost went down
        if final_cost < initial_cost:
            return TerminationType.CONVERGENCE
        return TerminationType.NO_CONVERGENCE
    return TerminationType.FAILURE


def solve(problem: CalibrationProblem, options: SolverOptions) -> SolverSummary:
    """Solve a calibration problem in place.
    
    Args:
        problem: Problem with at least one residual block.
        options: Solver options.
        
    Returns:
        SolverSummary of the run. On FAILURE the parameter blocks keep
        their pre-solve values.
    """
    x0 = problem.gather_parameters()
    initial_cost = problem.cost()
    
    if x0.size == 0:
        logger.warning("No free parameters, nothing to optimize")
        return SolverSummary(
            initial_cost=initial_cost,
            final_cost=initial_cost,
            termination_type=TerminationType.CONVERGENCE,
            num_residuals=problem.num_residuals,
            message="no free parameters",
        )
    
    cost_history: List[float] = []
    
    def residual_function(x):
        residuals = problem.evaluate(x)
        cost_history.append(0.5 * float(residuals @ residuals))
        return residuals
    
    kwargs: Dict[str, Any] = {
        "method": "trf",
        "x_scale": "jac",
        "loss": "linear",
        "ftol": options.function_tolerance,
        "xtol": options.parameter_tolerance,
        "gtol": options.gradient_tolerance,
        "max_nfev": options.max_num_iterations,
        "verbose": 2 if options.minimizer_progress_to_stdout else 0,
    }
    if options.linear_solver_type == LinearSolverType.SPARSE_SCHUR:
        kwargs["tr_solver"] = "lsmr"
        kwargs["jac_sparsity"] = problem.jacobian_sparsity()
    else:
        kwargs["tr_solver"] = "exact"
    
    logger.debug(
        f"Solving {problem.num_residuals} residuals over {x0.size} parameters "
        f"({options.linear_solver_type.value})"
    )
    
    try:
        result = least_squares(residual_function, x0, **kwargs)
    except (ValueError, np.linalg.LinAlgError) as e:
        logger.error(f"Optimization failed: {e}")
        return SolverSummary(
            initial_cost=initial_cost,
            final_cost=initial_cost,
            termination_type=TerminationType.FAILURE,
            num_parameters=int(x0.size),
            num_residuals=problem.num_residuals,
            message=str(e),
            cost_history=cost_history,
        )
    
    problem.scatter_parameters(result.x)
    final_cost = float(result.cost)
    termination = _termination_from_status(result.status, initial_cost, final_cost)
    
    return SolverSummary(
        initial_cost=initial_cost,
        final_cost=final_cost,
        termination_type=termination,
        iterations=int(result.njev or 0),
        num_parameters=int(x0.size),
        num_residuals=problem.num_residuals,
        reached_iteration_limit=result.status == 0,
        message=str(result.message),
        cost_history=cost_history,
    )
