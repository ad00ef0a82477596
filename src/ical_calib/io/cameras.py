"""Camera description files.

Expected file format:

```yaml
cameras:
  - name: left
    is_moving: false
    fixed_intrinsics: false
    intrinsics:
      fx: 500.0
      fy: 500.0
      cx: 320.0
      cy: 240.0
      k1: 0.0
      k2: 0.0
      k3: 0.0
      p1: 0.0
      p2: 0.0
      width: 640
      height: 480
    pose: {ax: 0.0, ay: 0.0, az: 0.0, x: 0.0, y: 0.0, z: 0.0}
  - name: right
    is_right_stereo_camera: true
    left_stereo_camera_name: left
    intrinsics: {...}
```

Entries may also be split into ``static_cameras`` and ``moving_cameras``
lists, in which case the list decides the moving flag.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Sequence

import yaml

from ical_calib.common.errors import ConfigurationError
from ical_calib.common.logging import get_logger
from ical_calib.model.camera import Camera, CameraParameters
from ical_calib.model.pose import Pose6d

logger = get_logger(__name__)


def load_cameras(path: Path | str) -> List[Camera]:
    """Load cameras from a YAML file.
    
    Args:
        path: Path to the camera description file.
        
    Returns:
        Loaded cameras in file order.
        
    Raises:
        ConfigurationError: If the file is missing, unparsable or invalid.
    """
    path = Path(path)
    
    if not path.exists():
        raise ConfigurationError(f"Camera file not found: {path}")
    
    try:
        with open(path, "r") as f:
            data = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to read camera file {path}: {e}") from e
    
    if not isinstance(data, dict):
        raise ConfigurationError(f"Empty or malformed camera file: {path}")
    
    cameras = parse_cameras(data)
    logger.info(f"Loaded {len(cameras)} camera(s) from {path}")
    return cameras


def parse_cameras(data: Dict[str, Any]) -> List[Camera]:
    """Parse cameras from a loaded description dictionary.
    
    Raises:
        ConfigurationError: If an entry is invalid or a name repeats.
    """
    entries: List[tuple] = []
    for item in data.get("cameras") or []:
        entries.append((item, None))
    for item in data.get("static_cameras") or []:
        entries.append((item, False))
    for item in data.get("moving_cameras") or []:
        entries.append((item, True))
    
    if not entries:
        raise ConfigurationError("No cameras defined (expected a 'cameras' list)")
    
    cameras = []
    names = set()
    for index, (item, moving) in enumerate(entries):
        camera = _parse_camera(item, index, moving)
        if camera.camera_name in names:
            raise ConfigurationError(f"Duplicate camera name '{camera.camera_name}'")
        names.add(camera.camera_name)
        cameras.append(camera)
    
    return cameras


def _parse_camera(data: Any, index: int, moving) -> Camera:
    if not isinstance(data, dict):
        raise ConfigurationError(f"Camera entry {index} is not a mapping")
    
    name = data.get("name") or data.get("camera_name")
    if not name:
        raise ConfigurationError(f"Camera entry {index} has no name")
    
    intrinsics = data.get("intrinsics")
    if not isinstance(intrinsics, dict):
        raise ConfigurationError(f"Missing 'intrinsics' section for camera '{name}'")
    
    for field in ("fx", "fy", "cx", "cy", "width", "height"):
        if field not in intrinsics:
            raise ConfigurationError(f"Missing required field '{field}' in '{name}' intrinsics")
    
    try:
        parameters = CameraParameters.create(
            fx=float(intrinsics["fx"]),
            fy=float(intrinsics["fy"]),
            cx=float(intrinsics["cx"]),
            cy=float(intrinsics["cy"]),
            width=int(intrinsics["width"]),
            height=int(intrinsics["height"]),
            k1=float(intrinsics.get("k1", 0.0)),
            k2=float(intrinsics.get("k2", 0.0)),
            k3=float(intrinsics.get("k3", 0.0)),
            p1=float(intrinsics.get("p1", 0.0)),
            p2=float(intrinsics.get("p2", 0.0)),
        )
        pose = Pose6d.from_dict(data.get("pose") or {})
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid numeric value for camera '{name}': {e}") from e
    
    is_right = bool(data.get("is_right_stereo_camera", False))
    left_name = data.get("left_stereo_camera_name")
    if is_right and not left_name:
        raise ConfigurationError(
            f"Camera '{name}' is a right stereo camera but names no left_stereo_camera_name"
        )
    
    return Camera(
        camera_name=str(name),
        camera_parameters=parameters,
        pose=pose,
        is_moving=bool(data.get("is_moving", False)) if moving is None else moving,
        is_right_stereo_camera=is_right,
        left_stereo_camera_name=str(left_name) if left_name else None,
        fixed_intrinsics=bool(data.get("fixed_intrinsics", False)),
    )


def save_cameras(cameras: Sequence[Camera], output_path: Path | str) -> Path:
    """Write cameras to a YAML file in the load format.
    
    Args:
        cameras: Cameras to write.
        output_path: Path of the YAML file.
        
    Returns:
        Path to the written file.
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    
    with open(output_path, "w") as f:
        yaml.dump(
            {"cameras": [camera.to_dict() for camera in cameras]},
            f,
            default_flow_style=False,
            sort_keys=False,
        )
    
    logger.info(f"Saved {len(cameras)} camera(s) to {output_path}")
    return output_path
