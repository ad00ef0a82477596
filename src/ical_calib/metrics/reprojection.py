"""Reprojection error statistics.

Errors are the Euclidean pixel distances between predicted and measured
image locations of each observation.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict

import numpy as np
from numpy.typing import NDArray

from ical_calib.optimization.problem import CalibrationProblem


@dataclass
class ReprojectionMetrics:
    """Reprojection error metrics.
    
    Attributes:
        rmse: Root mean square error (pixels).
        median: Median error (pixels).
        max: Maximum error (pixels).
        std: Standard deviation (pixels).
        num_points: Number of observations used.
    """
    
    rmse: float
    median: float
    max: float
    std: float
    num_points: int
    
    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "rmse": self.rmse,
            "median": self.median,
            "max": self.max,
            "std": self.std,
            "num_points": self.num_points,
        }


def compute_reprojection_metrics(residuals: NDArray[np.float64]) -> ReprojectionMetrics:
    """Compute statistics from Nx2 residuals (predicted - measured).
    
    Non-finite rows are ignored. With no valid rows every statistic is inf.
    """
    residuals = np.asarray(residuals, dtype=np.float64).reshape(-1, 2)
    errors = np.linalg.norm(residuals, axis=1)
    errors = errors[np.isfinite(errors)]
    
    if len(errors) == 0:
        inf = float("inf")
        return ReprojectionMetrics(rmse=inf, median=inf, max=inf, std=inf, num_points=0)
    
    return ReprojectionMetrics(
        rmse=float(np.sqrt(np.mean(errors ** 2))),
        median=float(np.median(errors)),
        max=float(np.max(errors)),
        std=float(np.std(errors)),
        num_points=int(len(errors)),
    )


def compute_camera_reprojection_metrics(
    problem: CalibrationProblem,
) -> Dict[str, ReprojectionMetrics]:
    """Per-camera reprojection metrics at the problem's current block values."""
    return {
        name: compute_reprojection_metrics(residuals)
        for name, residuals in problem.residuals_by_camera().items()
    }
