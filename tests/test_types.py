"""Tests for ttc.types — rectangles and point containers."""

import numpy as np
import pytest

from ttc.types import Correspondence, RangePoint, Rect, as_points, correspondence_array


def test_rect_contains_is_half_open():
    r = Rect(10, 20, 30, 40)
    assert r.contains(10, 20)
    assert not r.contains(40, 30)
    assert not r.contains(20, 60)
    np.testing.assert_array_equal(
        r.contains_many(np.array([[10, 20], [39.9, 59.9], [40, 30]])), [True, True, False])


def test_rect_shrink_toward_center():
    r = Rect(0, 0, 100, 50).shrink(0.2)
    assert (r.x, r.y, r.width, r.height) == pytest.approx((10, 5, 80, 40))
    assert Rect(3, 4, 5, 6).shrink(0.0) == Rect(3, 4, 5, 6)


def test_as_points_pads_reflectivity():
    pts = as_points([[1.0, 2.0, 3.0]])
    np.testing.assert_allclose(pts[:, :3], [[1.0, 2.0, 3.0]])
    assert np.isnan(pts[0, 3])
    assert as_points([]).shape == (0, 4)
    with pytest.raises(ValueError):
        as_points(np.zeros((2, 2)))


def test_range_point_roundtrip_through_row():
    p = RangePoint(8.0, -0.5, -1.2, 0.3)
    assert RangePoint.from_row(p.to_array()) == p


def test_correspondence_array():
    idx = correspondence_array([Correspondence(3, 1), Correspondence(3, 1)])
    np.testing.assert_array_equal(idx, [[3, 1], [3, 1]])
    assert correspondence_array([]).shape == (0, 2)
