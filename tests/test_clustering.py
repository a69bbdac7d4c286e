"""Tests for ttc.clustering — Euclidean cluster extraction."""

import numpy as np
import pytest

from ttc.clustering import cluster_mask, cluster_points, extract_clusters


def _block(origin, n_side, step=0.01):
    """n_side x n_side grid in the y/z plane at x = origin[0]."""
    ys, zs = np.meshgrid(np.arange(n_side) * step, np.arange(n_side) * step)
    pts = np.zeros((ys.size, 4))
    pts[:, 0] = origin[0]
    pts[:, 1] = origin[1] + ys.ravel()
    pts[:, 2] = origin[2] + zs.ravel()
    pts[:, 3] = 0.5
    return pts


def test_empty_input_returns_empty():
    out = cluster_points(np.zeros((0, 4)), 0.05, 30, 25000)
    assert out.shape == (0, 4)
    assert extract_clusters(np.zeros((0, 4)), 0.05, 30, 25000) == []


def test_isolated_points_are_dropped():
    block = _block((8.0, 0.0, -1.2), 6)           # 36 pts
    strays = np.array([[7.0, 0.1, -1.1, 0.3], [7.5, -0.4, -1.3, 0.3]])
    out = cluster_points(np.vstack([block, strays]), 0.05, 30, 25000)
    np.testing.assert_allclose(out, block)


def test_chain_links_transitively():
    # 35 points 0.04 apart: endpoints are 1.36 apart but one cluster.
    chain = np.zeros((35, 3))
    chain[:, 0] = 5.0 + 0.04 * np.arange(35)
    out = cluster_points(chain, 0.05, 30, 25000)
    assert out.shape[0] == 35


def test_distance_equal_to_tolerance_links():
    pts = np.array([[0.0, 0.0, 0.0], [0.5, 0.0, 0.0]])
    assert cluster_points(pts, 0.5, 2, 10).shape[0] == 2
    assert cluster_points(pts, 0.49, 2, 10).shape[0] == 0


def test_min_size_boundary():
    exact = _block((5.0, 0.0, 0.0), 1)
    exact = np.vstack([exact + [0.01 * i, 0, 0, 0] for i in range(5)])      # 5 pts
    short = np.vstack([exact[:4] + [0, 3.0, 0, 0]])                        # 4 pts
    out = cluster_points(np.vstack([exact, short]), 0.05, 5, 100)
    np.testing.assert_allclose(out, exact)


def test_max_size_boundary():
    big = _block((5.0, 0.0, 0.0), 3)        # 9 pts
    small = _block((5.0, 2.0, 0.0), 2)      # 4 pts
    pts = np.vstack([big, small])
    assert cluster_points(pts, 0.05, 2, 9).shape[0] == 13
    np.testing.assert_allclose(cluster_points(pts, 0.05, 2, 8), small)


def test_idempotent_on_own_output():
    rng = np.random.default_rng(3)
    cloud = np.vstack([
        _block((8.0, -0.5, -1.4), 8, step=0.03),
        _block((8.2, 0.6, -1.4), 6, step=0.03),
        rng.uniform([6, -1, -1.5, 0], [9, 1, -0.9, 1], size=(40, 4)),
    ])
    once = cluster_points(cloud, 0.05, 30, 25000)
    twice = cluster_points(once, 0.05, 30, 25000)
    np.testing.assert_array_equal(once, twice)


def test_reflectivity_rides_along():
    block = _block((8.0, 0.0, -1.2), 6)
    block[:, 3] = np.linspace(0.1, 0.9, block.shape[0])
    out = cluster_points(block, 0.05, 30, 25000)
    np.testing.assert_allclose(out[:, 3], block[:, 3])


def test_extract_clusters_largest_first():
    small = _block((5.0, 0.0, 0.0), 2)     # 4 pts, indices 0..3
    big = _block((5.0, 2.0, 0.0), 3)       # 9 pts, indices 4..12
    clusters = extract_clusters(np.vstack([small, big]), 0.05, 2, 100)
    assert [c.size for c in clusters] == [9, 4]
    np.testing.assert_array_equal(clusters[0], np.arange(4, 13))


def test_cluster_mask_matches_points():
    block = _block((8.0, 0.0, -1.2), 6)
    pts = np.vstack([[[6.0, 0.0, -1.0, 0.2]], block])
    mask = cluster_mask(pts, 0.05, 30, 25000)
    assert not mask[0]
    assert mask[1:].all()


@pytest.mark.parametrize("tol,lo,hi", [(0.0, 1, 10), (0.05, 0, 10), (0.05, 10, 5)])
def test_bad_band_raises(tol, lo, hi):
    with pytest.raises(ValueError):
        cluster_points(_block((5.0, 0.0, 0.0), 2), tol, lo, hi)
