"""Range-based TTC: crop, cluster, track the closest in-lane return.

Constant-velocity model between two scans:

    v   = (x_prev - x_curr) / dt
    TTC = x_curr / v
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from .clustering import cluster_points
from .config import ClusterConfig, CropConfig, LidarTTCConfig
from .types import as_points


@dataclass
class LidarTTCStats:
    n_prev: int
    n_curr: int
    n_prev_clustered: int
    n_curr_clustered: int
    n_prev_lane: int
    n_curr_lane: int
    min_x_prev: float | None
    min_x_curr: float | None
    reason: str = "ok"    # "ok", "no_points" or "no_motion"


@dataclass
class ObjectExtent:
    n_points: int
    x_min: float | None    # closest forward distance (m)
    y_width: float | None  # lateral extent (m)


def crop_lidar_points(points: np.ndarray, crop: CropConfig) -> np.ndarray:
    """Keep returns inside the forward box and above the reflectivity floor.

    Points without a reflectivity value (r is NaN) skip the floor.
    """
    pts = as_points(points)
    x, y, z, r = pts[:, 0], pts[:, 1], pts[:, 2], pts[:, 3]
    keep = ((x >= crop.min_x_m) & (x <= crop.max_x_m) &
            (np.abs(y) <= crop.max_y_m) &
            (z >= crop.min_z_m) & (z <= crop.max_z_m) &
            ((r >= crop.min_r) | np.isnan(r)))
    return pts[keep]


def lane_points(points: np.ndarray, lane_width: float) -> np.ndarray:
    pts = as_points(points)
    return pts[np.abs(pts[:, 1]) < lane_width / 2.0]


def closest_in_lane_x(points: np.ndarray, lane_width: float) -> float | None:
    """Smallest forward coordinate among in-lane points, None if there are none."""
    lane = lane_points(points, lane_width)
    if lane.shape[0] == 0:
        return None
    return float(lane[:, 0].min())


def object_extent(points: np.ndarray) -> ObjectExtent:
    pts = as_points(points)
    if pts.shape[0] == 0:
        return ObjectExtent(0, None, None)
    return ObjectExtent(
        n_points=int(pts.shape[0]),
        x_min=float(pts[:, 0].min()),
        y_width=float(pts[:, 1].max() - pts[:, 1].min()),
    )


def compute_ttc_lidar(
    points_prev: np.ndarray,
    points_curr: np.ndarray,
    frame_rate: float,
    lane_cfg: LidarTTCConfig | None = None,
    cluster_cfg: ClusterConfig | None = None,
) -> tuple[float, LidarTTCStats]:
    """TTC from two range-point sets of the same object.

    Returns NaN when either set has no clustered in-lane point and +inf when
    the closest distance did not change.
    """
    lane_cfg = lane_cfg or LidarTTCConfig()
    cluster_cfg = cluster_cfg or ClusterConfig()
    dt = 1.0 / frame_rate

    prev = as_points(points_prev)
    curr = as_points(points_curr)
    band = (cluster_cfg.tolerance_m, cluster_cfg.min_size, cluster_cfg.max_size)
    prev_c = cluster_points(prev, *band)
    curr_c = cluster_points(curr, *band)

    min_x_prev = closest_in_lane_x(prev_c, lane_cfg.lane_width_m)
    min_x_curr = closest_in_lane_x(curr_c, lane_cfg.lane_width_m)

    stats = LidarTTCStats(
        n_prev=prev.shape[0], n_curr=curr.shape[0],
        n_prev_clustered=prev_c.shape[0], n_curr_clustered=curr_c.shape[0],
        n_prev_lane=lane_points(prev_c, lane_cfg.lane_width_m).shape[0],
        n_curr_lane=lane_points(curr_c, lane_cfg.lane_width_m).shape[0],
        min_x_prev=min_x_prev, min_x_curr=min_x_curr,
    )

    if min_x_prev is None or min_x_curr is None:
        stats.reason = "no_points"
        return float("nan"), stats
    if min_x_prev == min_x_curr:
        stats.reason = "no_motion"
        return float("inf"), stats
    return min_x_curr / ((min_x_prev - min_x_curr) / dt), stats
