"""Optimization layer: parameter blocks, cost terms, problem and solver."""

from ical_calib.optimization.blocks import (
    BlockKind,
    ParameterBlock,
    ParameterBlockRegistry,
)
from ical_calib.optimization.costs import (
    CameraReprjErrorWithDistortion,
    CircleCameraReprjErrorWithDistortionPK,
    create_cost_function,
    project_points,
    project_circle_centers,
)
from ical_calib.optimization.problem import (
    CalibrationProblem,
    ResidualBlock,
)
from ical_calib.optimization.solver import (
    LinearSolverType,
    SolverOptions,
    SolverSummary,
    TerminationType,
    solve,
)

__all__ = [
    "BlockKind",
    "ParameterBlock",
    "ParameterBlockRegistry",
    "CameraReprjErrorWithDistortion",
    "CircleCameraReprjErrorWithDistortionPK",
    "create_cost_function",
    "project_points",
    "project_circle_centers",
    "CalibrationProblem",
    "ResidualBlock",
    "LinearSolverType",
    "SolverOptions",
    "SolverSummary",
    "TerminationType",
    "solve",
]
