"""Export of calibration run reports."""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, TYPE_CHECKING

from ical_calib.common.logging import get_logger

if TYPE_CHECKING:
    from ical_calib.session.orchestrator import RunResult

logger = get_logger(__name__)


def export_run_report_json(
    result: "RunResult",
    output_path: Path | str,
    additional_info: Optional[Dict[str, Any]] = None,
) -> Path:
    """Export a detailed report of one run as JSON.
    
    Args:
        result: Result of CalibrationSession.run().
        output_path: Path to write the JSON file.
        additional_info: Optional additional information to include.
        
    Returns:
        Path to the written file.
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    
    report: Dict[str, Any] = {
        "report_version": "1.0",
        "generated_at": datetime.now().isoformat(),
        "result": result.to_dict(),
    }
    
    if additional_info:
        report["additional_info"] = additional_info
    
    with open(output_path, "w") as f:
        json.dump(report, f, indent=2)
    
    logger.info(f"Exported run report to {output_path}")
    return output_path
