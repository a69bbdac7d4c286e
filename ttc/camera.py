"""Camera-based TTC from the relative scale change of matched keypoints.

For a pinhole camera the distance between two points on a fronto-parallel
object scales with 1/depth, so

    ratio = d_curr / d_prev = Z_prev / Z_curr
    TTC   = -dT / (1 - ratio)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np

from .config import CameraTTCConfig
from .numba_kernels import pairwise_distance_ratios
from .types import Correspondence, correspondence_array


@dataclass
class CameraTTCStats:
    n_matches: int
    n_pairs: int
    n_ratios: int
    median_ratio: float | None


def median(values: np.ndarray) -> float:
    """Standard median: mean of the two central values for even counts."""
    vals = np.sort(np.asarray(values, dtype=np.float64))
    n = vals.size
    if n == 0:
        raise ValueError("median of an empty sequence")
    mid = n // 2
    if n % 2 == 1:
        return float(vals[mid])
    return float((vals[mid - 1] + vals[mid]) / 2.0)


def distance_ratios(
    kpts_prev: np.ndarray,
    kpts_curr: np.ndarray,
    matches: Sequence[Correspondence],
    cfg: CameraTTCConfig | None = None,
) -> np.ndarray:
    """Surviving distCurr / distPrev ratios over all unordered match pairs."""
    cfg = cfg or CameraTTCConfig()
    idx = correspondence_array(matches)
    k = idx.shape[0]
    if k < 2:
        return np.zeros(0, dtype=np.float64)
    pts_prev = np.ascontiguousarray(np.asarray(kpts_prev, dtype=np.float64)[idx[:, 0], :2])
    pts_curr = np.ascontiguousarray(np.asarray(kpts_curr, dtype=np.float64)[idx[:, 1], :2])
    out = np.empty(k * (k - 1) // 2, dtype=np.float64)
    n = pairwise_distance_ratios(pts_prev, pts_curr, float(cfg.min_dist_px),
                                 float(cfg.epsilon), out)
    return out[:n].copy()


def compute_ttc_camera(
    kpts_prev: np.ndarray,
    kpts_curr: np.ndarray,
    matches: Sequence[Correspondence],
    frame_rate: float,
    cfg: CameraTTCConfig | None = None,
) -> tuple[float, CameraTTCStats]:
    """TTC from the median distance ratio of a region's matches.

    NaN when no pair passes the distance filter, +inf when the median ratio
    is exactly 1 (no scale change).
    """
    matches = list(matches)
    k = len(matches)
    ratios = distance_ratios(kpts_prev, kpts_curr, matches, cfg)
    stats = CameraTTCStats(n_matches=k, n_pairs=k * (k - 1) // 2,
                           n_ratios=int(ratios.size), median_ratio=None)
    if ratios.size == 0:
        return float("nan"), stats

    # Median rather than mean: mismatched pairs give a long-tailed ratio
    # distribution.
    med = median(ratios)
    stats.median_ratio = med
    dT = 1.0 / frame_rate
    if med == 1.0:
        return float("inf"), stats
    return -dT / (1.0 - med), stats
