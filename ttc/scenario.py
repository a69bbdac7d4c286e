"""Synthetic closing-vehicle sequence for acceptance checks and demos.

Scene in the range-sensor frame (x forward, y left, z up):
- a lead vehicle in the ego lane whose rear face closes at a constant speed,
  with a few isolated spurious returns in front of it
- a parked vehicle in the neighbouring lane, approached at ego speed

Keypoints are sampled on both rear faces, projected through the calibrated
projection at every frame and matched by index between frames, with a few
deliberately wrong matches mixed in. Region ids carry no identity across
frames: the two boxes swap ids on odd frames.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

from .transforms import (
    compose_projection,
    extrinsic_from_mounts,
    intrinsic_matrix,
    pose_to_matrix,
    project_points,
    transform_points,
)
from .types import Correspondence, DetectionRegion, Frame, Rect

# Sensor mounts on the ego base (x forward, y left, z up; m, rad).
_LIDAR_MOUNT = (0.0, 0.0, 1.73, 0.0, 0.0, 0.0)
_CAMERA_MOUNT = (0.27, 0.0, 1.65, 0.0, 0.0, 0.0)
_CAMERA_INTRINSICS = (721.5377, 721.5377, 609.5593, 172.854)   # fx, fy, cx, cy

# Rear-face geometry (m), relative to the range sensor.
_BODY_HALF_WIDTH_M = 0.9
_BODY_Z_RANGE_M = (-1.7, -0.2)
_LIDAR_HALF_WIDTH_M = 0.75
_LIDAR_Z_RANGE_M = (-1.5, -0.9)
_LIDAR_GRID_STEP_M = 0.03
_LIDAR_DEPTH_JITTER_M = 0.002
_FEATURE_HALF_WIDTH_M = 0.8
_FEATURE_Z_RANGE_M = (-1.6, -0.3)
_PARKED_Y_M = -3.5


@dataclass
class ScenarioConfig:
    n_frames: int = 5
    frame_rate_hz: float = 10.0
    lead_start_x_m: float = 8.0
    closing_speed_mps: float = 2.0
    parked_start_x_m: float = 15.0
    ego_speed_mps: float = 5.0
    n_features: int = 60          # per vehicle
    n_lidar_outliers: int = 5
    n_bad_matches: int = 4        # per frame pair
    pixel_noise_px: float = 0.1
    seed: int = 0


@dataclass
class Scenario:
    frames: list[Frame]
    lead_x_m: list[float]          # true lead rear distance per frame
    lead_ids: list[int]            # lead box id per frame
    parked_ids: list[int]
    true_ttc_s: list[float] = field(default_factory=list)  # per pair, range frame


def default_projection() -> np.ndarray:
    """(3, 4) range-sensor → pixel projection for a roof lidar and forward camera.

    Built from the two mount poses and a KITTI-like pinhole; the rectifying
    rotation is the identity.
    """
    RT = extrinsic_from_mounts(pose_to_matrix(*_LIDAR_MOUNT), pose_to_matrix(*_CAMERA_MOUNT))
    return compose_projection(intrinsic_matrix(*_CAMERA_INTRINSICS), np.eye(4), RT)


def _face_pose(x: float, y_center: float) -> np.ndarray:
    """T_lidar_face: rear-face frame (origin at its centre line) in the range frame."""
    return pose_to_matrix(x, y_center, 0.0, 0.0, 0.0, 0.0)


def _rear_face_grid(x: float, rng: np.random.Generator) -> np.ndarray:
    ys = np.arange(-_LIDAR_HALF_WIDTH_M, _LIDAR_HALF_WIDTH_M + 1e-9, _LIDAR_GRID_STEP_M)
    zs = np.arange(_LIDAR_Z_RANGE_M[0], _LIDAR_Z_RANGE_M[1] + 1e-9, _LIDAR_GRID_STEP_M)
    yy, zz = np.meshgrid(ys, zs)
    n = yy.size
    local = np.column_stack([
        rng.uniform(0.0, _LIDAR_DEPTH_JITTER_M, n), yy.ravel(), zz.ravel(),
    ])
    pts = np.empty((n, 4), dtype=np.float64)
    pts[:, :3] = transform_points(_face_pose(x, 0.0), local)
    pts[:, 3] = rng.uniform(0.2, 0.9, n)
    return pts


def _spurious_returns(x: float, n: int, rng: np.random.Generator) -> np.ndarray:
    """Isolated returns in front of the rear face (dust, spray)."""
    pts = np.empty((n, 4), dtype=np.float64)
    pts[:, 0] = x - rng.uniform(0.3, 1.0, n)
    pts[:, 1] = rng.uniform(-0.5, 0.5, n)
    pts[:, 2] = rng.uniform(-1.4, -1.0, n)
    pts[:, 3] = rng.uniform(0.2, 0.9, n)
    return pts


def _box_for_face(P: np.ndarray, x: float, y_center: float) -> Rect:
    corners = np.array([
        [0.0, s * _BODY_HALF_WIDTH_M, z]
        for s in (-1.0, 1.0) for z in _BODY_Z_RANGE_M
    ])
    uv, _ = project_points(P, transform_points(_face_pose(x, y_center), corners))
    u0, v0 = uv.min(axis=0)
    u1, v1 = uv.max(axis=0)
    return Rect(float(u0), float(v0), float(u1 - u0), float(v1 - v0))


def _face_features(n: int, rng: np.random.Generator) -> np.ndarray:
    """(n, 3) feature anchors in the rear-face frame."""
    y = rng.uniform(-_FEATURE_HALF_WIDTH_M, _FEATURE_HALF_WIDTH_M, n)
    z = rng.uniform(_FEATURE_Z_RANGE_M[0], _FEATURE_Z_RANGE_M[1], n)
    return np.column_stack([np.zeros(n), y, z])


def build_scenario(P: np.ndarray | None = None, cfg: ScenarioConfig | None = None) -> Scenario:
    """Generate cfg.n_frames frames through the (3, 4) projection P.

    P defaults to default_projection().
    """
    if P is None:
        P = default_projection()
    cfg = cfg or ScenarioConfig()
    rng = np.random.default_rng(cfg.seed)
    dt = 1.0 / cfg.frame_rate_hz

    lead_anchor = _face_features(cfg.n_features, rng)
    parked_anchor = _face_features(cfg.n_features, rng)
    n_feat = 2 * cfg.n_features

    frames: list[Frame] = []
    lead_x: list[float] = []
    lead_ids: list[int] = []
    parked_ids: list[int] = []
    for i in range(cfg.n_frames):
        t = i * dt
        x_lead = cfg.lead_start_x_m - cfg.closing_speed_mps * t
        x_parked = cfg.parked_start_x_m - cfg.ego_speed_mps * t

        feats_3d = np.vstack([
            transform_points(_face_pose(x_lead, 0.0), lead_anchor),
            transform_points(_face_pose(x_parked, _PARKED_Y_M), parked_anchor),
        ])
        kpts, _ = project_points(P, feats_3d)
        kpts = kpts + rng.normal(0.0, cfg.pixel_noise_px, kpts.shape)

        lidar = np.vstack([
            _rear_face_grid(x_lead, rng),
            _spurious_returns(x_lead, cfg.n_lidar_outliers, rng),
        ])

        lead_id, parked_id = (0, 1) if i % 2 == 0 else (1, 0)
        regions = [
            DetectionRegion(box_id=lead_id, roi=_box_for_face(P, x_lead, 0.0),
                            class_id=2, confidence=0.9),
            DetectionRegion(box_id=parked_id, roi=_box_for_face(P, x_parked, _PARKED_Y_M),
                            class_id=2, confidence=0.8),
        ]

        matches: list[Correspondence] = []
        if i > 0:
            matches = [Correspondence(k, k) for k in range(n_feat)]
            bad_prev = rng.integers(0, n_feat, cfg.n_bad_matches)
            bad_curr = rng.integers(0, n_feat, cfg.n_bad_matches)
            matches += [Correspondence(int(p), int(c)) for p, c in zip(bad_prev, bad_curr)]

        frames.append(Frame(keypoints=kpts, regions=regions, lidar_points=lidar,
                            timestamp_s=t, matches=matches))
        lead_x.append(x_lead)
        lead_ids.append(lead_id)
        parked_ids.append(parked_id)

    true_ttc = [x / cfg.closing_speed_mps for x in lead_x[1:]]
    return Scenario(frames=frames, lead_x_m=lead_x, lead_ids=lead_ids,
                    parked_ids=parked_ids, true_ttc_s=true_ttc)
