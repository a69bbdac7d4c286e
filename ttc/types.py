"""Frame, region and correspondence containers shared by every stage."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

import numpy as np

# Column layout of a range point row: x forward, y left, z up, reflectivity.
RANGE_POINT_FIELDS = ("x", "y", "z", "r")


def empty_points() -> np.ndarray:
    return np.zeros((0, len(RANGE_POINT_FIELDS)), dtype=np.float64)


def as_points(points) -> np.ndarray:
    """Coerce input to an (N, 4) float64 array.

    (N, 3) input has no reflectivity; its r column is NaN (not measured).
    """
    arr = np.asarray(points, dtype=np.float64)
    if arr.size == 0:
        return empty_points()
    if arr.ndim != 2 or arr.shape[1] not in (3, 4):
        raise ValueError(f"Range points must be (N, 3) or (N, 4), got {arr.shape}")
    if arr.shape[1] == 3:
        arr = np.hstack([arr, np.full((arr.shape[0], 1), np.nan)])
    return arr


@dataclass(frozen=True)
class RangePoint:
    x: float
    y: float
    z: float
    r: float = float("nan")    # NaN when the sensor reports no reflectivity

    def to_array(self) -> np.ndarray:
        return np.array([self.x, self.y, self.z, self.r], dtype=np.float64)

    @classmethod
    def from_row(cls, row) -> "RangePoint":
        return cls(*(float(v) for v in row[:4]))


@dataclass(frozen=True)
class Correspondence:
    prev_idx: int    # index into the previous frame's keypoints
    curr_idx: int    # index into the current frame's keypoints


def correspondence_array(matches: Iterable[Correspondence]) -> np.ndarray:
    """(K, 2) int64 array of [prev_idx, curr_idx] rows."""
    rows = [(m.prev_idx, m.curr_idx) for m in matches]
    if not rows:
        return np.zeros((0, 2), dtype=np.int64)
    return np.asarray(rows, dtype=np.int64)


@dataclass(frozen=True)
class Rect:
    """Axis-aligned pixel rectangle with half-open containment."""

    x: float
    y: float
    width: float
    height: float

    def contains(self, u: float, v: float) -> bool:
        return self.x <= u < self.x + self.width and self.y <= v < self.y + self.height

    def contains_many(self, uv: np.ndarray) -> np.ndarray:
        """Vectorized contains over (N, 2) pixel coordinates."""
        u, v = uv[:, 0], uv[:, 1]
        return ((u >= self.x) & (u < self.x + self.width) &
                (v >= self.y) & (v < self.y + self.height))

    def shrink(self, factor: float) -> "Rect":
        """Shrink toward the center; each side moves in by factor * dim / 2."""
        return Rect(
            x=self.x + factor * self.width / 2.0,
            y=self.y + factor * self.height / 2.0,
            width=self.width * (1.0 - factor),
            height=self.height * (1.0 - factor),
        )

    def as_array(self) -> np.ndarray:
        return np.array([self.x, self.y, self.width, self.height], dtype=np.float64)


@dataclass
class DetectionRegion:
    box_id: int
    roi: Rect
    class_id: int = -1
    confidence: float = 0.0
    lidar_points: np.ndarray = field(default_factory=empty_points)       # (K, 4)
    matches: list[Correspondence] = field(default_factory=list)


@dataclass
class Frame:
    keypoints: np.ndarray                     # (M, 2) float64 pixel locations
    regions: list[DetectionRegion]
    lidar_points: np.ndarray                  # (N, 4) float64, vehicle frame
    timestamp_s: float | None = None
    # Correspondences from the previous frame's keypoints into this frame's.
    matches: list[Correspondence] = field(default_factory=list)

    def region(self, box_id: int) -> DetectionRegion:
        for reg in self.regions:
            if reg.box_id == box_id:
                return reg
        raise KeyError(f"No region with id {box_id}")
