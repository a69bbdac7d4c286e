"""Quick acceptance checks for the TTC pipeline on a synthetic sequence.

Usage:  python -m ttc.validate --config ttc.yaml
"""
from __future__ import annotations

import argparse
import math
import sys

import numpy as np

from .config import load_config
from .pipeline import TTCPipeline
from .scenario import ScenarioConfig, build_scenario
from .transforms import project_point

# Relative error allowed against the synthetic ground truth.
_LIDAR_TOL = 0.05
_CAMERA_TOL = 0.20


def run_validation(config_path: str) -> bool:
    """Run acceptance gates. Returns True if all pass."""
    cfg = load_config(config_path)
    fails = 0

    def check(ok: bool, name: str, detail: str = ""):
        nonlocal fails
        tag = "PASS" if ok else "FAIL"
        if not ok:
            fails += 1
        print(f"  [{tag}] {name}" + (f" - {detail}" if detail else ""))

    # -- Calibration --
    print("\n-- Calibration --")
    P = cfg.calibration.projection
    check(P.shape == (3, 4), "Projection shape", str(P.shape))
    # A point straight ahead should land near the principal point.
    u, v = project_point(P, [20.0, 0.0, 0.0])
    cx, cy = cfg.calibration.P_rect[0, 2], cfg.calibration.P_rect[1, 2]
    check(abs(u - cx) < 50 and abs(v - cy) < 50, "Forward axis near image center",
          f"u={u:.1f} v={v:.1f}")

    # -- Synthetic sequence --
    print("\n-- Synthetic sequence --")
    scn_cfg = ScenarioConfig(frame_rate_hz=cfg.frame_rate_hz)
    scenario = build_scenario(P, scn_cfg)
    pipeline = TTCPipeline(cfg)
    results = [pipeline.push(frame) for frame in scenario.frames]
    check(results[0] is None, "First frame yields no pair")
    pair_results = results[1:]
    check(len(pair_results) == scn_cfg.n_frames - 1, "Pair count", str(len(pair_results)))

    # -- Per pair --
    for k, res in enumerate(pair_results, start=1):
        print(f"\n-- Pair {k - 1}->{k} --")
        prev_lead, curr_lead = scenario.lead_ids[k - 1], scenario.lead_ids[k]
        prev_parked, curr_parked = scenario.parked_ids[k - 1], scenario.parked_ids[k]
        check(res.bb_matches.get(prev_lead) == curr_lead, "Lead box matched",
              f"{prev_lead}->{res.bb_matches.get(prev_lead)}")
        check(res.bb_matches.get(prev_parked) == curr_parked, "Parked box matched",
              f"{prev_parked}->{res.bb_matches.get(prev_parked)}")

        lead = res.for_current(curr_lead)
        if lead is None:
            check(False, "Lead object present")
            continue
        truth = scenario.true_ttc_s[k - 1]
        err = abs(lead.ttc_lidar - truth) / truth if math.isfinite(lead.ttc_lidar) else np.inf
        check(err < _LIDAR_TOL, "Lidar TTC", f"{lead.ttc_lidar:.2f}s vs {truth:.2f}s")
        err = abs(lead.ttc_camera - truth) / truth if math.isfinite(lead.ttc_camera) else np.inf
        check(err < _CAMERA_TOL, "Camera TTC", f"{lead.ttc_camera:.2f}s vs {truth:.2f}s")
        check(lead.lidar_stats is not None
              and lead.lidar_stats.n_curr_clustered < lead.lidar_stats.n_curr,
              "Spurious returns removed by clustering")

        parked = res.for_current(curr_parked)
        check(parked is not None and math.isnan(parked.ttc_lidar),
              "Parked car has no lidar estimate")

    # -- Summary --
    print(f"\n  {'PASS' if fails == 0 else 'FAIL'}: {fails} failures")
    return fails == 0


def main():
    p = argparse.ArgumentParser(description="Validate TTC core")
    p.add_argument("--config", default="ttc.yaml")
    args = p.parse_args()
    sys.exit(0 if run_validation(args.config) else 1)


if __name__ == "__main__":
    main()
