import numpy as np
from dataclasses import dataclass
from typing import Optional

from .clustering import cluster_lidar_with_roi, cluster_kpt_matches_with_roi
from .configs import (LIDAR_SHRINK, KPT_SHRINK, FLOW_OUTLIER_RATIO, LANE_WIDTH_M,
                      MIN_BASELINE_PX, DEFAULT_FRAME_RATE)
from .matching import assign_track_ids, best_matches_from_votes, box_vote_table
from .structures import find_box
from .ttc import compute_ttc_lidar, compute_ttc_camera


@dataclass
class TTCParams:
    frame_rate:         float = DEFAULT_FRAME_RATE  # Hz
    lidar_shrink:       float = LIDAR_SHRINK
    kpt_shrink:         float = KPT_SHRINK
    flow_outlier_ratio: float = FLOW_OUTLIER_RATIO
    lane_width:         float = LANE_WIDTH_M        # m
    min_baseline_px:    float = MIN_BASELINE_PX
    verbose:            bool = False


@dataclass
class TTCResult:
    prev_box_id: int
    curr_box_id: int
    track_id: Optional[int]
    ttc_lidar: float
    ttc_camera: float
    n_lidar_prev: int
    n_lidar_curr: int
    n_kpt_matches: int


def cluster_frame_lidar(frame, calib, params=TTCParams()):
    """Bin the frame's LiDAR scan into its detection boxes (once per frame)."""
    cluster_lidar_with_roi(frame.bounding_boxes, frame.lidar_points, params.lidar_shrink, calib)


def process_frame_pair(prev_frame, curr_frame, calib, params=TTCParams(), cluster_lidar=True):
    """
    One tick of the TTC core.

    prev_frame is expected to have had its LiDAR clustered on the previous
    tick. With cluster_lidar=True the current scan is clustered here; pass
    False when the caller already did it.

    Fills curr_frame.bb_matches, the track ids and the keypoint membership of
    every matched current box, and returns one TTCResult per matched pair.
    Pairs without LiDAR points on either side get a NaN ttc_lidar but still
    a camera TTC.
    """
    assert params.frame_rate > 0, f"frame rate must be positive, got {params.frame_rate}"
    if cluster_lidar:
        cluster_frame_lidar(curr_frame, calib, params)

    votes = box_vote_table(curr_frame.kpt_matches, prev_frame, curr_frame)
    curr_frame.bb_matches = best_matches_from_votes(votes, prev_frame, curr_frame)
    assign_track_ids(curr_frame.bb_matches, prev_frame, curr_frame, votes=votes)

    results = []
    for prev_id, curr_id in curr_frame.bb_matches.items():
        prev_box = find_box(prev_frame.bounding_boxes, prev_id)
        curr_box = find_box(curr_frame.bounding_boxes, curr_id)
        ttc_lidar = compute_ttc_lidar(prev_box.lidar_points, curr_box.lidar_points,
                                      params.frame_rate, lane_width=params.lane_width,
                                      verbose=params.verbose)

        # several previous boxes may map onto the same current box
        if not curr_box.kpt_matches:
            cluster_kpt_matches_with_roi(curr_box, prev_frame.keypoints, curr_frame.keypoints,
                                         curr_frame.kpt_matches,
                                         shrink_factor=params.kpt_shrink,
                                         outlier_ratio=params.flow_outlier_ratio,
                                         verbose=params.verbose)
        ttc_camera = compute_ttc_camera(prev_frame.keypoints, curr_frame.keypoints,
                                        curr_box.kpt_matches, params.frame_rate,
                                        min_dist=params.min_baseline_px)

        results.append(TTCResult(
            prev_box_id=prev_id, curr_box_id=curr_id, track_id=curr_box.track_id,
            ttc_lidar=float(ttc_lidar), ttc_camera=float(ttc_camera),
            n_lidar_prev=len(prev_box.lidar_points), n_lidar_curr=len(curr_box.lidar_points),
            n_kpt_matches=len(curr_box.kpt_matches),
        ))

    if params.verbose:
        with_lidar = sum(bool(r.n_lidar_prev and r.n_lidar_curr) for r in results)
        finite = sum(np.isfinite(r.ttc_lidar) and np.isfinite(r.ttc_camera) for r in results)
        print(f"[DEBUG] frame {curr_frame.frame_id}: {len(curr_frame.bb_matches)} box matches, "
              f"{with_lidar} with LiDAR, {finite} with both TTCs defined")
    return results
