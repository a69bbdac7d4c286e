"""Tests for ttc.pipeline — end-to-end on the synthetic closing sequence."""

import math
from pathlib import Path

import numpy as np
import pytest

from ttc.config import load_config
from ttc.pipeline import TTCPipeline, finite_or_none
from ttc.scenario import ScenarioConfig, build_scenario, default_projection
from ttc.types import Correspondence, DetectionRegion, Frame, Rect

CONFIG_PATH = Path(__file__).resolve().parents[1] / "ttc.yaml"


@pytest.fixture
def cfg():
    return load_config(CONFIG_PATH)


def _run(cfg, n_frames=4):
    # Frames are mutated by prepare_frame, so each run gets a fresh scenario.
    scenario = build_scenario(cfg.calibration.projection, ScenarioConfig(n_frames=n_frames))
    pipeline = TTCPipeline(cfg)
    results = [pipeline.push(frame) for frame in scenario.frames]
    return scenario, pipeline, results


def test_first_frame_has_no_pair(cfg):
    _, pipeline, results = _run(cfg, n_frames=3)
    assert results[0] is None
    assert all(r is not None for r in results[1:])
    assert len(pipeline.buffer) == 2


def test_boxes_are_matched_across_id_swaps(cfg):
    scenario, _, results = _run(cfg)
    for k, res in enumerate(results[1:], start=1):
        assert res.bb_matches[scenario.lead_ids[k - 1]] == scenario.lead_ids[k]
        assert res.bb_matches[scenario.parked_ids[k - 1]] == scenario.parked_ids[k]


def test_lead_vehicle_ttc_close_to_truth(cfg):
    scenario, _, results = _run(cfg)
    for k, res in enumerate(results[1:], start=1):
        lead = res.for_current(scenario.lead_ids[k])
        truth = scenario.true_ttc_s[k - 1]
        assert lead.ttc_lidar == pytest.approx(truth, rel=0.02)
        assert lead.ttc_camera == pytest.approx(truth, rel=0.15)
        # Spurious returns ahead of the rear face are not the closest point.
        assert lead.lidar_stats.min_x_curr == pytest.approx(scenario.lead_x_m[k], abs=0.01)
        assert lead.extent.n_points > 0
        assert lead.n_matches > 0


def test_xyz_only_range_points_give_finite_lidar_ttc(cfg):
    scenario = build_scenario(cfg.calibration.projection, ScenarioConfig(n_frames=3))
    for frame in scenario.frames:
        frame.lidar_points = frame.lidar_points[:, :3]
    pipeline = TTCPipeline(cfg)
    results = [pipeline.push(frame) for frame in scenario.frames]
    for k, res in enumerate(results[1:], start=1):
        lead = res.for_current(scenario.lead_ids[k])
        assert math.isfinite(lead.ttc_lidar)
        assert lead.ttc_lidar == pytest.approx(scenario.true_ttc_s[k - 1], rel=0.02)


def test_default_projection_scenario(cfg):
    scenario = build_scenario(default_projection(), ScenarioConfig(n_frames=3))
    pipeline = TTCPipeline(cfg)
    pipeline.P = default_projection()
    results = [pipeline.push(frame) for frame in scenario.frames]
    for k, res in enumerate(results[1:], start=1):
        assert res.bb_matches[scenario.lead_ids[k - 1]] == scenario.lead_ids[k]
        lead = res.for_current(scenario.lead_ids[k])
        assert lead.ttc_lidar == pytest.approx(scenario.true_ttc_s[k - 1], rel=0.02)
        assert lead.ttc_camera == pytest.approx(scenario.true_ttc_s[k - 1], rel=0.15)


def test_prepare_frame_twice_does_not_duplicate_points(cfg):
    scenario = build_scenario(cfg.calibration.projection, ScenarioConfig(n_frames=1))
    frame = scenario.frames[0]
    pipeline = TTCPipeline(cfg)
    pipeline.prepare_frame(frame)
    counts = [reg.lidar_points.shape[0] for reg in frame.regions]
    pipeline.prepare_frame(frame)
    assert [reg.lidar_points.shape[0] for reg in frame.regions] == counts
    assert counts[0] > 0


def test_region_without_range_points_has_nan_lidar_ttc(cfg):
    scenario, _, results = _run(cfg, n_frames=2)
    parked = results[1].for_current(scenario.parked_ids[1])
    assert math.isnan(parked.ttc_lidar)
    assert parked.lidar_stats is None
    assert finite_or_none(parked.ttc_lidar) is None


def test_thread_pool_matches_inline(cfg):
    _, _, inline = _run(cfg)
    cfg.pipeline.max_workers = 4
    _, _, pooled = _run(cfg)
    for a, b in zip(inline[1:], pooled[1:]):
        assert a.bb_matches == b.bb_matches
        for oa, ob in zip(a.objects, b.objects):
            assert (oa.prev_id, oa.curr_id) == (ob.prev_id, ob.curr_id)
            np.testing.assert_equal(oa.ttc_lidar, ob.ttc_lidar)
            np.testing.assert_equal(oa.ttc_camera, ob.ttc_camera)


def test_unmatched_frames_give_empty_result(cfg):
    pipeline = TTCPipeline(cfg)
    kpts = np.array([[10.0, 10.0], [500.0, 300.0]])
    prev = Frame(kpts, [DetectionRegion(0, Rect(0, 0, 50, 50))], np.zeros((0, 4)))
    curr = Frame(kpts.copy(), [DetectionRegion(0, Rect(0, 0, 50, 50))], np.zeros((0, 4)))
    # The only match leaves the previous box, so nothing is mapped.
    res = pipeline.process_frame_pair(prev, curr, [Correspondence(0, 1)])
    assert res.bb_matches == {}
    assert res.objects == []


def test_matched_region_without_data_reports_sentinels(cfg):
    pipeline = TTCPipeline(cfg)
    kpts = np.array([[10.0, 10.0]])
    prev = Frame(kpts, [DetectionRegion(3, Rect(0, 0, 50, 50))], np.zeros((0, 4)))
    curr = Frame(kpts.copy(), [DetectionRegion(8, Rect(0, 0, 50, 50))], np.zeros((0, 4)))
    res = pipeline.process_frame_pair(prev, curr, [Correspondence(0, 0)])
    assert res.bb_matches == {3: 8}
    obj = res.objects[0]
    assert math.isnan(obj.ttc_lidar)
    # One match cannot form a pair.
    assert math.isnan(obj.ttc_camera)
