"""IO utilities: camera/target descriptions, session config and reports."""

from ical_calib.io.cameras import load_cameras, parse_cameras, save_cameras
from ical_calib.io.config import SessionConfig
from ical_calib.io.export import export_run_report_json
from ical_calib.io.targets import load_targets

__all__ = [
    # Descriptions
    "load_cameras",
    "parse_cameras",
    "save_cameras",
    "load_targets",
    # Config
    "SessionConfig",
    # Export
    "export_run_report_json",
]
