"""Associate range points and keypoint correspondences with detection regions."""

from __future__ import annotations

from typing import Sequence

import numpy as np

from .numba_kernels import count_enclosing_boxes
from .transforms import project_points
from .types import Correspondence, DetectionRegion, as_points, correspondence_array


def cluster_lidar_with_roi(
    regions: Sequence[DetectionRegion],
    lidar_points: np.ndarray,
    P: np.ndarray,
    shrink_factor: float,
) -> np.ndarray:
    """Assign each range point to the single region whose shrunken box holds it.

    Points inside zero or several shrunken boxes, and points whose projection
    is degenerate, are not assigned. Assigned points are appended to
    region.lidar_points. Returns the owning region index per point (-1 when
    unassigned).
    """
    if not (0.0 <= shrink_factor < 1.0):
        raise ValueError(f"Shrink factor must be in [0, 1), got {shrink_factor}")
    pts = as_points(lidar_points)
    n = pts.shape[0]
    owner = np.full(n, -1, dtype=np.int64)
    if n == 0 or not regions:
        return owner

    uv, valid = project_points(P, pts)
    # Shrinking trims boundary returns that usually belong to the background
    # or to a neighbouring object.
    boxes = np.array([reg.roi.shrink(shrink_factor).as_array() for reg in regions],
                     dtype=np.float64)
    counts = np.empty(n, dtype=np.int32)
    count_enclosing_boxes(uv, valid, boxes, counts, owner)

    for b, reg in enumerate(regions):
        mine = pts[owner == b]
        if mine.shape[0] == 0:
            continue
        reg.lidar_points = np.concatenate([as_points(reg.lidar_points), mine])
    return owner


def match_displacements(kpts_prev: np.ndarray, kpts_curr: np.ndarray,
                        idx: np.ndarray) -> np.ndarray:
    """Euclidean pixel displacement of each [prev_idx, curr_idx] row."""
    if idx.shape[0] == 0:
        return np.zeros(0, dtype=np.float64)
    delta = kpts_curr[idx[:, 1], :2] - kpts_prev[idx[:, 0], :2]
    return np.hypot(delta[:, 0], delta[:, 1])


def cluster_kpt_matches_with_roi(
    region: DetectionRegion,
    kpts_prev: np.ndarray,
    kpts_curr: np.ndarray,
    matches: Sequence[Correspondence],
    outlier_ratio: float = 1.5,
) -> list[Correspondence]:
    """Attach to region the matches whose current keypoint lies in its box.

    Matches whose displacement is not strictly below outlier_ratio times the
    mean displacement are dropped. The mean is taken once over all enclosed
    matches before anything is removed. With no enclosed matches the region
    gets an empty list.
    """
    kpts_prev = np.asarray(kpts_prev, dtype=np.float64)
    kpts_curr = np.asarray(kpts_curr, dtype=np.float64)
    matches = list(matches)
    idx = correspondence_array(matches)
    if idx.shape[0] == 0:
        region.matches = []
        return region.matches

    inside = region.roi.contains_many(kpts_curr[idx[:, 1]])
    enclosed = [m for m, keep in zip(matches, inside) if keep]
    if not enclosed:
        region.matches = []
        return region.matches

    dist = match_displacements(kpts_prev, kpts_curr, idx[inside])
    threshold = outlier_ratio * float(dist.mean())
    keep = dist < threshold
    region.matches = [m for m, k in zip(enclosed, keep) if k]
    return region.matches
