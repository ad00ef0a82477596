"""Observation collector interface.

A camera observer acquires an image, locates the registered targets in it
and reports 2-D/3-D correspondences. Acquisition is asynchronous: callers
trigger it and then wait for ``observations_done()``.
"""

from __future__ import annotations

import threading
import time
from abc import ABC, abstractmethod
from typing import List, Optional

from ical_calib.common.errors import AcquisitionCancelledError, AcquisitionTimeoutError
from ical_calib.common.logging import get_logger
from ical_calib.model.camera import CameraParameters
from ical_calib.model.observation import CostModel, Observation, Roi
from ical_calib.model.target import Target

logger = get_logger(__name__)


class CameraObserver(ABC):
    """Abstract observation collector for one camera."""
    
    @abstractmethod
    def clear_targets(self) -> None:
        """Forget every target registered with add_target."""
    
    @abstractmethod
    def clear_observations(self) -> None:
        """Drop observations retained from a previous acquisition."""
    
    @abstractmethod
    def add_target(self, target: Target, roi: Roi, cost_model: CostModel) -> None:
        """Register a target to look for inside the region of interest."""
    
    @abstractmethod
    def trigger_camera(self) -> None:
        """Start an acquisition."""
    
    @abstractmethod
    def observations_done(self) -> bool:
        """Whether the last triggered acquisition has completed."""
    
    @abstractmethod
    def get_observations(self) -> List[Observation]:
        """Get the observations of the last completed acquisition."""
    
    def push_camera_info(self, camera_parameters: CameraParameters) -> None:
        """Publish updated intrinsics to the camera driver.
        
        The default does nothing; drivers that keep their own camera info
        override it.
        """


def wait_for_observations(
    observer: CameraObserver,
    timeout_s: float,
    poll_interval_s: float = 0.01,
    cancel_event: Optional[threading.Event] = None,
) -> None:
    """Block until the observer reports completion.
    
    Args:
        observer: Triggered camera observer.
        timeout_s: Maximum time to wait in seconds.
        poll_interval_s: Delay between completion checks.
        cancel_event: Optional event; when set the wait is abandoned.
        
    Raises:
        AcquisitionTimeoutError: If acquisition does not complete in time.
        AcquisitionCancelledError: If cancel_event is set while waiting.
    """
    deadline = time.monotonic() + timeout_s
    
    while not observer.observations_done():
        if cancel_event is not None and cancel_event.is_set():
            raise AcquisitionCancelledError("observation acquisition cancelled")
        if time.monotonic() >= deadline:
            raise AcquisitionTimeoutError(
                f"observations not completed within {timeout_s:.3f} s"
            )
        time.sleep(poll_interval_s)
