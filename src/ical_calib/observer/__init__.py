"""Observation collectors bound to cameras."""

from ical_calib.observer.interface import (
    CameraObserver,
    wait_for_observations,
)
from ical_calib.observer.synthetic import SyntheticCameraObserver

__all__ = [
    "CameraObserver",
    "wait_for_observations",
    "SyntheticCameraObserver",
]
