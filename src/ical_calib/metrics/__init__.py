"""Calibration quality metrics."""

from ical_calib.metrics.reprojection import (
    ReprojectionMetrics,
    compute_reprojection_metrics,
    compute_camera_reprojection_metrics,
)

__all__ = [
    "ReprojectionMetrics",
    "compute_reprojection_metrics",
    "compute_camera_reprojection_metrics",
]
