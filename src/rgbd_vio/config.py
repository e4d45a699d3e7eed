"""Configuration for the visual-inertial fusion node.

Example YAML:

    inertial:
      orientation_stamp: own      # or "gyro"
      max_samples: 4000
    calibration:
      path: calib/oak-d.yaml
      alpha_scaling: -1.0
      boards:
        - name: MY-BOARD
          match: prefix
          rows: [[1, 0, 0, 0.01], [0, 1, 0, 0.0], [0, 0, 1, 0.0]]
    features_enabled: true
    estimator_params:
      min_inliers: 20
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import numpy as np
import yaml

from .frontend.pose import SE3
from .fusion.calibration import BoardExtrinsic, BoardMatch
from .fusion.inertial_aligner import OrientationStampPolicy


@dataclass
class InertialConfig:
    """Inertial buffering options."""

    orientation_stamp: OrientationStampPolicy = OrientationStampPolicy.OWN
    max_samples: int | None = 4000  # Per-series cap, None = unbounded


@dataclass
class CalibrationConfig:
    """Calibration gate options."""

    path: Path | None = None  # Calibration YAML for YamlCalibrationStore
    alpha_scaling: float = -1.0  # < 0 keeps native intrinsics
    boards: list[BoardExtrinsic] = field(default_factory=list)  # Extra table entries


@dataclass
class FusionConfig:
    """Top-level node configuration."""

    inertial: InertialConfig = field(default_factory=InertialConfig)
    calibration: CalibrationConfig = field(default_factory=CalibrationConfig)
    estimator_params: dict[str, Any] = field(default_factory=dict)
    features_enabled: bool = True

    @classmethod
    def from_yaml(cls, path: str | Path) -> FusionConfig:
        """Load configuration from a YAML file.

        Relative calibration paths are resolved against the file's directory.

        Raises:
            FileNotFoundError: If the file doesn't exist
            ValueError: If the content is invalid
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        config = cls.from_dict(data)
        calib_path = config.calibration.path
        if calib_path is not None and not calib_path.is_absolute():
            config.calibration.path = path.parent / calib_path
        return config

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FusionConfig:
        """Build configuration from a parsed mapping.

        Raises:
            ValueError: If a value is invalid
        """
        if not isinstance(data, dict):
            raise ValueError(f"Config must be a mapping, got {type(data).__name__}")

        inertial_data = data.get("inertial") or {}
        stamp = inertial_data.get("orientation_stamp", "own")
        try:
            orientation_stamp = OrientationStampPolicy(str(stamp).lower())
        except ValueError as e:
            raise ValueError(
                f"Invalid orientation_stamp '{stamp}', expected 'own' or 'gyro'"
            ) from e

        max_samples = inertial_data.get("max_samples", 4000)
        inertial = InertialConfig(
            orientation_stamp=orientation_stamp,
            max_samples=None if max_samples is None else int(max_samples),
        )

        calib_data = data.get("calibration") or {}
        calib_path = calib_data.get("path")
        calibration = CalibrationConfig(
            path=Path(calib_path) if calib_path is not None else None,
            alpha_scaling=float(calib_data.get("alpha_scaling", -1.0)),
            boards=[_parse_board(entry) for entry in calib_data.get("boards") or []],
        )

        return cls(
            inertial=inertial,
            calibration=calibration,
            estimator_params=dict(data.get("estimator_params") or {}),
            features_enabled=bool(data.get("features_enabled", True)),
        )


def _parse_board(entry: dict[str, Any]) -> BoardExtrinsic:
    """Parse one board table entry."""
    name = entry.get("name")
    if not isinstance(name, str) or not name:
        raise ValueError(f"Board entry needs a name: {entry}")

    try:
        match = BoardMatch(str(entry.get("match", "exact")).lower())
    except ValueError as e:
        raise ValueError(f"Invalid match '{entry.get('match')}' for board {name}") from e

    rows = np.asarray(entry.get("rows"), dtype=np.float64)
    if rows.shape != (3, 4):
        raise ValueError(f"Board {name} rows must be 3x4, got shape {rows.shape}")

    return BoardExtrinsic(name=name, transform=SE3.from_matrix(rows), match=match)
