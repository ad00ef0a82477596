"""Target description files.

Expected file format:

```yaml
targets:
  - name: board
    is_moving: false
    pub_rviz_vis: false
    circle_diameter: 0.01
    pose: {ax: 0.0, ay: 0.0, az: 0.0, x: -0.05, y: -0.05, z: 0.6}
    points:
      - [0.0, 0.0, 0.0]
      - [0.1, 0.0, 0.0]
  - name: grid
    is_moving: true
    circle_diameter: 0.015
    circle_grid: {rows: 5, cols: 7, spacing: 0.03}
```

A target gives either an explicit ``points`` list or a ``circle_grid``
from which row-major points on the z=0 plane are generated.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, List

import numpy as np
import yaml

from ical_calib.common.errors import ConfigurationError
from ical_calib.common.logging import get_logger
from ical_calib.model.pose import Pose6d
from ical_calib.model.target import CircleGridParameters, Target, generate_circle_grid_points

logger = get_logger(__name__)


def load_targets(path: Path | str) -> List[Target]:
    """Load targets from a YAML file.
    
    Raises:
        ConfigurationError: If the file is missing, unparsable or invalid.
    """
    path = Path(path)
    
    if not path.exists():
        raise ConfigurationError(f"Target file not found: {path}")
    
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to read target file {path}: {e}") from e
    
    if not isinstance(data, dict) or not data.get("targets"):
        raise ConfigurationError(f"No targets defined in {path} (expected a 'targets' list)")
    
    targets = []
    names = set()
    for index, item in enumerate(data["targets"]):
        target = _parse_target(item, index)
        if target.target_name in names:
            raise ConfigurationError(f"Duplicate target name '{target.target_name}'")
        names.add(target.target_name)
        targets.append(target)
    
    logger.info(f"Loaded {len(targets)} target(s) from {path}")
    return targets


def _parse_target(data: Any, index: int) -> Target:
    if not isinstance(data, dict):
        raise ConfigurationError(f"Target entry {index} is not a mapping")
    
    name = data.get("name") or data.get("target_name")
    if not name:
        raise ConfigurationError(f"Target entry {index} has no name")
    
    try:
        diameter = float(data.get("circle_diameter", 0.0))
        grid = data.get("circle_grid")
        
        if data.get("points") is not None:
            points = np.asarray(data["points"], dtype=np.float64)
            if points.ndim != 2 or points.shape[1] != 3 or len(points) == 0:
                raise ConfigurationError(
                    f"Target '{name}' points must be a non-empty list of [x, y, z]"
                )
            grid_parameters = CircleGridParameters(circle_diameter=diameter)
        elif isinstance(grid, dict):
            rows = int(grid["rows"])
            cols = int(grid["cols"])
            spacing = float(grid["spacing"])
            points = generate_circle_grid_points(rows, cols, spacing)
            grid_parameters = CircleGridParameters(
                circle_diameter=diameter, rows=rows, cols=cols, spacing=spacing,
            )
        else:
            raise ConfigurationError(f"Target '{name}' needs 'points' or 'circle_grid'")
        
        pose = Pose6d.from_dict(data.get("pose") or {})
    except (KeyError, TypeError, ValueError) as e:
        if isinstance(e, ConfigurationError):
            raise
        raise ConfigurationError(f"Invalid definition for target '{name}': {e}") from e
    
    if diameter < 0:
        raise ConfigurationError(f"Target '{name}' circle_diameter must be >= 0")
    
    return Target(
        target_name=str(name),
        pts=points,
        pose=pose,
        circle_grid_parameters=grid_parameters,
        is_moving=bool(data.get("is_moving", False)),
        pub_rviz_vis=bool(data.get("pub_rviz_vis", False)),
    )
