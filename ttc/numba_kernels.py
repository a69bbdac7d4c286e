"""Numba-accelerated kernels for region assignment and distance ratios."""

from __future__ import annotations

import math
import time

import numba as nb
import numpy as np


# ---------------------------------------------------------------------------
# Region assignment: count enclosing rectangles per projected point
# ---------------------------------------------------------------------------

@nb.njit(cache=True)
def count_enclosing_boxes(
    uv: np.ndarray,        # (N, 2) float64 pixel coordinates
    valid: np.ndarray,     # (N,) bool, False for degenerate projections
    boxes: np.ndarray,     # (B, 4) float64 [x, y, width, height]
    counts_out: np.ndarray,  # (N,) int32
    owner_out: np.ndarray,   # (N,) int64
) -> int:  # number of points owned by exactly one box
    """For every point, count the rectangles that contain it.

    owner_out[i] is the index of the enclosing box when exactly one box
    contains point i, else -1. Containment is half-open: x <= u < x + w.
    """
    N = uv.shape[0]
    B = boxes.shape[0]
    n_owned = 0
    for i in range(N):
        counts_out[i] = 0
        owner_out[i] = -1
        if not valid[i]:
            continue
        u = uv[i, 0]
        v = uv[i, 1]
        last = -1
        for b in range(B):
            x0 = boxes[b, 0]
            y0 = boxes[b, 1]
            if u >= x0 and u < x0 + boxes[b, 2] and v >= y0 and v < y0 + boxes[b, 3]:
                counts_out[i] += 1
                last = b
        if counts_out[i] == 1:
            owner_out[i] = last
            n_owned += 1
    return n_owned


# ---------------------------------------------------------------------------
# Camera TTC: pairwise distance ratios between matched keypoints
# ---------------------------------------------------------------------------

@nb.njit(cache=True)
def pairwise_distance_ratios(
    pts_prev: np.ndarray,   # (K, 2) float64, previous-frame keypoints
    pts_curr: np.ndarray,   # (K, 2) float64, current-frame keypoints (same order)
    min_dist: float,
    eps: float,
    ratios_out: np.ndarray,  # (K*(K-1)/2,) float64
) -> int:  # number of ratios written
    """distCurr / distPrev for every unordered pair i < j.

    A pair contributes only if distPrev > eps and distCurr >= min_dist.
    """
    K = pts_prev.shape[0]
    n = 0
    for i in range(K - 1):
        for j in range(i + 1, K):
            dxc = pts_curr[i, 0] - pts_curr[j, 0]
            dyc = pts_curr[i, 1] - pts_curr[j, 1]
            dxp = pts_prev[i, 0] - pts_prev[j, 0]
            dyp = pts_prev[i, 1] - pts_prev[j, 1]
            dist_curr = math.sqrt(dxc * dxc + dyc * dyc)
            dist_prev = math.sqrt(dxp * dxp + dyp * dyp)
            if dist_prev > eps and dist_curr >= min_dist:
                ratios_out[n] = dist_curr / dist_prev
                n += 1
    return n


# ---------------------------------------------------------------------------
# Warmup
# ---------------------------------------------------------------------------

def warmup_numba() -> float:
    """Compile all kernels on tiny inputs. Returns elapsed seconds."""
    t0 = time.perf_counter()

    dummy_uv = np.zeros((4, 2), dtype=np.float64)
    dummy_valid = np.ones(4, dtype=np.bool_)
    dummy_boxes = np.array([[-1.0, -1.0, 2.0, 2.0]], dtype=np.float64)
    dummy_counts = np.empty(4, dtype=np.int32)
    dummy_owner = np.empty(4, dtype=np.int64)
    count_enclosing_boxes(dummy_uv, dummy_valid, dummy_boxes, dummy_counts, dummy_owner)

    dummy_prev = np.arange(8, dtype=np.float64).reshape(4, 2)
    dummy_curr = dummy_prev * 1.1
    dummy_ratios = np.empty(6, dtype=np.float64)
    pairwise_distance_ratios(dummy_prev, dummy_curr, 0.0, 1e-12, dummy_ratios)

    dt = time.perf_counter() - t0
    print(f"  Numba warmup: {dt:.1f}s")
    return dt
