"""Euclidean cluster extraction for range-point outlier removal.

Two points are linked when their distance is <= tolerance; clusters are the
transitive closure of that relation (connected components of the radius
graph), not grid buckets.
"""

from __future__ import annotations

import numpy as np
from scipy.sparse import coo_matrix
from scipy.sparse.csgraph import connected_components
from scipy.spatial import cKDTree


def _check_band(tolerance: float, min_size: int, max_size: int) -> None:
    if tolerance <= 0:
        raise ValueError(f"Cluster tolerance must be positive, got {tolerance}")
    if min_size < 1 or max_size < min_size:
        raise ValueError(f"Bad cluster size band: min={min_size}, max={max_size}")


def label_components(xyz: np.ndarray, tolerance: float) -> np.ndarray:
    """Connected-component label per point under the radius relation."""
    n = xyz.shape[0]
    if n == 0:
        return np.zeros(0, dtype=np.int64)
    tree = cKDTree(xyz)
    pairs = tree.query_pairs(r=tolerance, output_type="ndarray")
    graph = coo_matrix(
        (np.ones(pairs.shape[0], dtype=np.int8), (pairs[:, 0], pairs[:, 1])),
        shape=(n, n),
    )
    _, labels = connected_components(graph, directed=False)
    return labels.astype(np.int64)


def extract_clusters(points: np.ndarray, tolerance: float,
                     min_size: int, max_size: int) -> list[np.ndarray]:
    """Index arrays of clusters whose size lies in [min_size, max_size].

    Largest cluster first; equal sizes ordered by their lowest point index.
    """
    _check_band(tolerance, min_size, max_size)
    pts = np.asarray(points, dtype=np.float64)
    if pts.shape[0] == 0:
        return []
    labels = label_components(pts[:, :3], tolerance)
    sizes = np.bincount(labels)

    clusters = []
    for label in np.nonzero((sizes >= min_size) & (sizes <= max_size))[0]:
        # nonzero returns ascending indices, so idx[0] is the first member.
        clusters.append(np.nonzero(labels == label)[0])
    clusters.sort(key=lambda idx: (-idx.size, int(idx[0])))
    return clusters


def cluster_mask(points: np.ndarray, tolerance: float,
                 min_size: int, max_size: int) -> np.ndarray:
    """Boolean mask of points that belong to a retained cluster."""
    _check_band(tolerance, min_size, max_size)
    pts = np.asarray(points, dtype=np.float64)
    n = pts.shape[0]
    if n == 0:
        return np.zeros(0, dtype=bool)
    labels = label_components(pts[:, :3], tolerance)
    sizes = np.bincount(labels)
    keep = (sizes >= min_size) & (sizes <= max_size)
    return keep[labels]


def cluster_points(points: np.ndarray, tolerance: float,
                   min_size: int, max_size: int) -> np.ndarray:
    """Points of all retained clusters, concatenated in input order.

    Only the first three columns enter the distance; any extra columns
    (reflectivity) are carried through unchanged.
    """
    pts = np.asarray(points, dtype=np.float64)
    if pts.size == 0:
        return pts.reshape(0, pts.shape[1] if pts.ndim == 2 else 4)
    if pts.ndim != 2 or pts.shape[1] < 3:
        raise ValueError(f"Points must be (N, >=3), got {pts.shape}")
    return pts[cluster_mask(pts, tolerance, min_size, max_size)]
