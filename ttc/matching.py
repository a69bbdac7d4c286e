"""Match detection regions between consecutive frames by keypoint votes."""

from __future__ import annotations

from typing import Sequence

import numpy as np

from .types import Correspondence, DetectionRegion, Frame, correspondence_array


def _containment(regions: Sequence[DetectionRegion], pts: np.ndarray) -> np.ndarray:
    """(R, K) bool: region r's box contains point k."""
    if not regions:
        return np.zeros((0, pts.shape[0]), dtype=bool)
    return np.stack([reg.roi.contains_many(pts) for reg in regions])


def tally_matrix(
    matches: Sequence[Correspondence],
    prev_regions: Sequence[DetectionRegion],
    curr_regions: Sequence[DetectionRegion],
    kpts_prev: np.ndarray,
    kpts_curr: np.ndarray,
) -> np.ndarray:
    """(n_prev, n_curr) counts of matches routed from prev box p into curr box c.

    A match inside several current boxes votes for each of them.
    """
    idx = correspondence_array(matches)
    n_prev, n_curr = len(prev_regions), len(curr_regions)
    if idx.shape[0] == 0:
        return np.zeros((n_prev, n_curr), dtype=np.int64)
    in_prev = _containment(prev_regions, np.asarray(kpts_prev, dtype=np.float64)[idx[:, 0], :2])
    in_curr = _containment(curr_regions, np.asarray(kpts_curr, dtype=np.float64)[idx[:, 1], :2])
    return in_prev.astype(np.int64) @ in_curr.astype(np.int64).T


def match_bounding_boxes(
    matches: Sequence[Correspondence],
    prev_frame: Frame,
    curr_frame: Frame,
) -> dict[int, int]:
    """Map each previous box id to the current box id with the most votes.

    Ties go to the lowest current box id. Previous boxes without any vote
    are left out of the mapping.
    """
    prev_regions = prev_frame.regions
    # Sorting by id makes argmax's first-maximum rule the lowest-id tie-break.
    curr_regions = sorted(curr_frame.regions, key=lambda reg: reg.box_id)
    tally = tally_matrix(matches, prev_regions, curr_regions,
                         prev_frame.keypoints, curr_frame.keypoints)

    bb_matches: dict[int, int] = {}
    for p, prev_reg in enumerate(prev_regions):
        row = tally[p]
        if row.size == 0 or row.max() == 0:
            continue
        bb_matches[prev_reg.box_id] = curr_regions[int(np.argmax(row))].box_id
    return bb_matches
