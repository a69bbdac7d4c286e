"""Configuration: load ttc.yaml into typed dataclasses."""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path

import numpy as np
import yaml

from .transforms import compose_projection, is_valid_se3


@dataclass
class AssociationConfig:
    shrink_factor: float = 0.10    # fraction of each box dimension trimmed
    outlier_ratio: float = 1.5     # keep matches with displacement < ratio * mean


@dataclass
class ClusterConfig:
    tolerance_m: float = 0.05
    min_size: int = 30
    max_size: int = 25000


@dataclass
class LidarTTCConfig:
    lane_width_m: float = 4.0      # ego lane, centred on the sensor


@dataclass
class CropConfig:
    min_x_m: float = 2.0
    max_x_m: float = 20.0
    max_y_m: float = 2.0
    min_z_m: float = -1.5
    max_z_m: float = -0.9
    min_r: float = 0.1


@dataclass
class CameraTTCConfig:
    min_dist_px: float = 100.0
    epsilon: float = float(np.finfo(np.float64).eps)


@dataclass
class PipelineConfig:
    max_workers: int = 1           # 1 = run per-region work inline


@dataclass
class Calibration:
    P_rect: np.ndarray   # (3, 4) intrinsic
    R_rect: np.ndarray   # (4, 4) rectification
    RT: np.ndarray       # (4, 4) extrinsic, range sensor -> camera

    @property
    def projection(self) -> np.ndarray:
        """(3, 4) composite intrinsic @ rectification @ extrinsic."""
        return compose_projection(self.P_rect, self.R_rect, self.RT)


@dataclass
class TTCConfig:
    frame_rate_hz: float
    calibration: Calibration
    data_buffer_size: int = 2
    association: AssociationConfig = field(default_factory=AssociationConfig)
    clustering: ClusterConfig = field(default_factory=ClusterConfig)
    lidar_ttc: LidarTTCConfig = field(default_factory=LidarTTCConfig)
    crop: CropConfig = field(default_factory=CropConfig)
    camera_ttc: CameraTTCConfig = field(default_factory=CameraTTCConfig)
    pipeline: PipelineConfig = field(default_factory=PipelineConfig)


def _pad_to_4x4(M: np.ndarray, name: str) -> np.ndarray:
    """Accept 3x3 / 3x4 / 4x4 and return the homogeneous 4x4 form."""
    if M.shape == (4, 4):
        return M
    T = np.eye(4, dtype=np.float64)
    if M.shape == (3, 3):
        T[:3, :3] = M
    elif M.shape == (3, 4):
        T[:3, :] = M
    else:
        raise ValueError(f"{name} must be 3x3, 3x4 or 4x4, got {M.shape}")
    return T


def parse_calibration(raw: dict) -> Calibration:
    P_rect = np.asarray(raw["P_rect"], dtype=np.float64)
    if P_rect.shape != (3, 4):
        raise ValueError(f"P_rect must be 3x4, got {P_rect.shape}")
    R_rect = _pad_to_4x4(np.asarray(raw.get("R_rect", np.eye(3)), dtype=np.float64), "R_rect")
    RT = _pad_to_4x4(np.asarray(raw["RT"], dtype=np.float64), "RT")
    return Calibration(P_rect=P_rect, R_rect=R_rect, RT=RT)


def _validate(cfg: TTCConfig) -> None:
    """Validate config values. Raises ValueError on bad input."""
    if cfg.frame_rate_hz <= 0:
        raise ValueError(f"Frame rate must be positive, got {cfg.frame_rate_hz}")
    if cfg.data_buffer_size < 2:
        raise ValueError(f"Data buffer must hold at least 2 frames, got {cfg.data_buffer_size}")
    a, cl, cam = cfg.association, cfg.clustering, cfg.camera_ttc
    if not (0.0 <= a.shrink_factor < 1.0):
        raise ValueError(f"Bad shrink factor: {a.shrink_factor} (need 0 <= f < 1)")
    if a.outlier_ratio <= 0:
        raise ValueError(f"Bad outlier ratio: {a.outlier_ratio}")
    if cl.tolerance_m <= 0 or cl.min_size < 1 or cl.max_size < cl.min_size:
        raise ValueError(
            f"Bad cluster band: tol={cl.tolerance_m}, min={cl.min_size}, max={cl.max_size}")
    if cfg.lidar_ttc.lane_width_m <= 0:
        raise ValueError(f"Lane width must be positive, got {cfg.lidar_ttc.lane_width_m}")
    c = cfg.crop
    if not (c.max_x_m > c.min_x_m and c.max_z_m > c.min_z_m and c.max_y_m > 0):
        raise ValueError(f"Bad crop box: x=[{c.min_x_m}, {c.max_x_m}], "
                         f"z=[{c.min_z_m}, {c.max_z_m}], |y|<={c.max_y_m}")
    if cam.min_dist_px < 0 or cam.epsilon < 0:
        raise ValueError(f"Bad camera ratio filter: min_dist={cam.min_dist_px}, eps={cam.epsilon}")
    if cfg.pipeline.max_workers < 1:
        raise ValueError(f"max_workers must be >= 1, got {cfg.pipeline.max_workers}")
    # Calibrated extrinsics are only orthonormal to a few decimals.
    if not is_valid_se3(cfg.calibration.RT, atol=1e-4):
        raise ValueError("Extrinsic RT is not a rigid transform")


def _section(cls, raw: dict, name: str):
    """Build one section dataclass; unknown keys are rejected by name."""
    values = raw.get(name) or {}
    unknown = sorted(set(values) - {f.name for f in fields(cls)})
    if unknown:
        raise ValueError(f"Unknown key(s) in {name}: {', '.join(map(str, unknown))}")
    return cls(**values)


def config_from_dict(raw: dict) -> TTCConfig:
    """Build and validate a TTCConfig from an already parsed mapping."""
    cfg = TTCConfig(
        frame_rate_hz=float(raw["frame_rate_hz"]),
        calibration=parse_calibration(raw["calibration"]),
        data_buffer_size=int(raw.get("data_buffer_size", 2)),
        association=_section(AssociationConfig, raw, "association"),
        clustering=_section(ClusterConfig, raw, "clustering"),
        lidar_ttc=_section(LidarTTCConfig, raw, "lidar_ttc"),
        crop=_section(CropConfig, raw, "crop"),
        camera_ttc=_section(CameraTTCConfig, raw, "camera_ttc"),
        pipeline=_section(PipelineConfig, raw, "pipeline"),
    )
    _validate(cfg)
    return cfg


def load_config(path: str | Path) -> TTCConfig:
    """Load ttc.yaml and return a fully typed TTCConfig."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    with open(path) as f:
        raw = yaml.safe_load(f)
    return config_from_dict(raw)
