"""Frame-pair TTC pipeline.

Per incoming frame: crop range points, assign them to regions.
Per frame pair: match regions, then for every matched pair filter the
current region's keypoint matches and run both TTC estimators.
"""

from __future__ import annotations

from collections import deque
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Sequence

import numpy as np

from .association import cluster_kpt_matches_with_roi, cluster_lidar_with_roi
from .camera import CameraTTCStats, compute_ttc_camera
from .config import TTCConfig
from .lidar import (
    LidarTTCStats,
    ObjectExtent,
    compute_ttc_lidar,
    crop_lidar_points,
    object_extent,
)
from .matching import match_bounding_boxes
from .types import Correspondence, Frame, empty_points


@dataclass
class ObjectTTC:
    prev_id: int
    curr_id: int
    ttc_lidar: float               # NaN: no estimate, inf: no relative motion
    ttc_camera: float
    n_matches: int                 # keypoint matches kept for the current region
    lidar_stats: LidarTTCStats | None   # None when a region had no range points
    camera_stats: CameraTTCStats
    extent: ObjectExtent


@dataclass
class FramePairResult:
    bb_matches: dict[int, int]
    objects: list[ObjectTTC] = field(default_factory=list)

    def for_current(self, curr_id: int) -> ObjectTTC | None:
        for obj in self.objects:
            if obj.curr_id == curr_id:
                return obj
        return None


class TTCPipeline:
    """Holds calibration, config and the two-frame buffer."""

    def __init__(self, cfg: TTCConfig):
        self.cfg = cfg
        self.P = cfg.calibration.projection
        self.buffer: deque[Frame] = deque(maxlen=cfg.data_buffer_size)

    def prepare_frame(self, frame: Frame) -> Frame:
        """Crop range points and distribute them over the frame's regions.

        Region point sets are rebuilt from scratch, so preparing a frame
        again does not duplicate returns.
        """
        frame.lidar_points = crop_lidar_points(frame.lidar_points, self.cfg.crop)
        for reg in frame.regions:
            reg.lidar_points = empty_points()
        cluster_lidar_with_roi(frame.regions, frame.lidar_points, self.P,
                               self.cfg.association.shrink_factor)
        return frame

    def _estimate(self, prev: Frame, curr: Frame, prev_id: int, curr_id: int) -> ObjectTTC:
        cfg = self.cfg
        prev_reg = prev.region(prev_id)
        curr_reg = curr.region(curr_id)

        ttc_lidar = float("nan")
        lidar_stats = None
        # Range TTC only when both boxes actually carry returns.
        if prev_reg.lidar_points.shape[0] > 0 and curr_reg.lidar_points.shape[0] > 0:
            ttc_lidar, lidar_stats = compute_ttc_lidar(
                prev_reg.lidar_points, curr_reg.lidar_points, cfg.frame_rate_hz,
                cfg.lidar_ttc, cfg.clustering,
            )

        ttc_camera, camera_stats = compute_ttc_camera(
            prev.keypoints, curr.keypoints, curr_reg.matches,
            cfg.frame_rate_hz, cfg.camera_ttc,
        )
        return ObjectTTC(
            prev_id=prev_id, curr_id=curr_id,
            ttc_lidar=ttc_lidar, ttc_camera=ttc_camera,
            n_matches=len(curr_reg.matches),
            lidar_stats=lidar_stats, camera_stats=camera_stats,
            extent=object_extent(curr_reg.lidar_points),
        )

    def process_frame_pair(self, prev: Frame, curr: Frame,
                           matches: Sequence[Correspondence] | None = None) -> FramePairResult:
        """Match regions, then estimate lidar and camera TTC per matched pair."""
        matches = list(curr.matches if matches is None else matches)
        bb_matches = match_bounding_boxes(matches, prev, curr)
        result = FramePairResult(bb_matches=bb_matches)
        if not bb_matches:
            return result

        # Several previous boxes may vote for the same current box; filter its
        # matches once before the per-region work fans out.
        for curr_id in sorted(set(bb_matches.values())):
            cluster_kpt_matches_with_roi(curr.region(curr_id), prev.keypoints,
                                         curr.keypoints, matches,
                                         self.cfg.association.outlier_ratio)

        pairs = sorted(bb_matches.items())
        workers = self.cfg.pipeline.max_workers
        if workers <= 1 or len(pairs) == 1:
            result.objects = [self._estimate(prev, curr, p, c) for p, c in pairs]
        else:
            with ThreadPoolExecutor(max_workers=workers) as pool:
                futures = [pool.submit(self._estimate, prev, curr, p, c) for p, c in pairs]
                result.objects = [f.result() for f in futures]
        return result

    def push(self, frame: Frame) -> FramePairResult | None:
        """Prepare and buffer a frame; process it against its predecessor."""
        self.buffer.append(self.prepare_frame(frame))
        if len(self.buffer) < 2:
            return None
        return self.process_frame_pair(self.buffer[-2], self.buffer[-1])


def finite_or_none(value: float) -> float | None:
    """Convenience for consumers that treat NaN / inf as 'no estimate'."""
    return float(value) if np.isfinite(value) else None
