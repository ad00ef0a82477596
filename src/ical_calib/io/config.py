"""Session configuration.

Example ``session.yaml``:

```yaml
yaml_file_path: ./config
camera_file: cameras.yaml
target_file: targets.yaml
output_camera_file: cameras_calibrated.yaml
residual_cost_model: circle_camera_reprj_error_with_distortion_pk
observation_timeout_s: 10.0
allowable_cost_per_observation: 0.25
solver:
  linear_solver_type: dense_schur
  max_num_iterations: 2000
```
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from ical_calib.model.observation import CostModel
from ical_calib.optimization.solver import SolverOptions


@dataclass
class SessionConfig:
    """Configuration of a calibration session.
    
    Attributes:
        yaml_file_path: Directory holding the camera and target files.
        camera_file: Camera description file (relative to yaml_file_path).
        target_file: Target description file (relative to yaml_file_path).
        output_camera_file: Where save() writes calibrated cameras (optional).
        residual_cost_model: Cost model of the residuals added to the problem.
        observer_cost_model: Cost model selector handed to the observers.
        observation_timeout_s: Maximum wait for one camera's acquisition.
        poll_interval_s: Delay between acquisition completion checks.
        allowable_cost_per_observation: Default acceptance threshold for run().
        solver: Solver options.
    """
    
    yaml_file_path: str = ""
    camera_file: str = "cameras.yaml"
    target_file: str = "targets.yaml"
    output_camera_file: Optional[str] = None
    residual_cost_model: CostModel = CostModel.CIRCLE_CAMERA_REPRJ_ERROR_WITH_DISTORTION_PK
    observer_cost_model: CostModel = CostModel.CAMERA_REPRJ_ERROR_WITH_DISTORTION
    observation_timeout_s: float = 10.0
    poll_interval_s: float = 0.01
    allowable_cost_per_observation: float = 1.0
    solver: SolverOptions = field(default_factory=SolverOptions)
    
    @property
    def camera_path(self) -> Path:
        return Path(self.yaml_file_path) / self.camera_file
    
    @property
    def target_path(self) -> Path:
        return Path(self.yaml_file_path) / self.target_file
    
    @property
    def output_camera_path(self) -> Optional[Path]:
        if not self.output_camera_file:
            return None
        return Path(self.yaml_file_path) / self.output_camera_file
    
    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SessionConfig":
        """Create from dictionary."""
        return cls(
            yaml_file_path=str(data.get("yaml_file_path", "")),
            camera_file=data.get("camera_file", "cameras.yaml"),
            target_file=data.get("target_file", "targets.yaml"),
            output_camera_file=data.get("output_camera_file"),
            residual_cost_model=CostModel.parse(
                data.get("residual_cost_model", CostModel.CIRCLE_CAMERA_REPRJ_ERROR_WITH_DISTORTION_PK)
            ),
            observer_cost_model=CostModel.parse(
                data.get("observer_cost_model", CostModel.CAMERA_REPRJ_ERROR_WITH_DISTORTION)
            ),
            observation_timeout_s=float(data.get("observation_timeout_s", 10.0)),
            poll_interval_s=float(data.get("poll_interval_s", 0.01)),
            allowable_cost_per_observation=float(data.get("allowable_cost_per_observation", 1.0)),
            solver=SolverOptions.from_dict(data.get("solver") or {}),
        )
    
    @classmethod
    def from_yaml(cls, path: Path | str) -> "SessionConfig":
        """Load from a YAML file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
        
        return cls.from_dict(data)
    
    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "yaml_file_path": self.yaml_file_path,
            "camera_file": self.camera_file,
            "target_file": self.target_file,
            "output_camera_file": self.output_camera_file,
            "residual_cost_model": self.residual_cost_model.value,
            "observer_cost_model": self.observer_cost_model.value,
            "observation_timeout_s": self.observation_timeout_s,
            "poll_interval_s": self.poll_interval_s,
            "allowable_cost_per_observation": self.allowable_cost_per_observation,
            "solver": self.solver.to_dict(),
        }
