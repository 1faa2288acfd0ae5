import numpy as np

from .configs import LANE_WIDTH_M, MIN_BASELINE_PX
from .structures import keypoints_to_array, lidar_to_array, match_indices


def compute_ttc_lidar(lidar_points_prev, lidar_points_curr, frame_rate,
                      lane_width=LANE_WIDTH_M, verbose=False):
    """
    TTC from the closing of the mean longitudinal distance of the ego-lane
    points (|y| < lane_width / 2) between two frames.

    Returns NaN when either lane set is empty or the target is not approaching.
    """
    assert frame_rate > 0, f"frame rate must be positive, got {frame_rate}"
    prev = lidar_to_array(lidar_points_prev)
    curr = lidar_to_array(lidar_points_curr)
    half = lane_width / 2.0
    px = prev[np.abs(prev[:, 1]) < half, 0]
    cx = curr[np.abs(curr[:, 1]) < half, 0]
    if px.size == 0 or cx.size == 0:
        return np.nan

    mean_px = float(np.mean(px))
    mean_cx = float(np.mean(cx))
    if verbose:
        print(f"[DEBUG] lidar mean x: prev {mean_px:.3f} m ({px.size} pts), "
              f"curr {mean_cx:.3f} m ({cx.size} pts)")

    closing = mean_px - mean_cx
    if closing <= 0:
        return np.nan
    dt = 1.0 / frame_rate
    return mean_cx * dt / closing


def distance_ratios(kpts_prev, kpts_curr, kpt_matches, min_dist=MIN_BASELINE_PX):
    """
    Ratios d_curr / d_prev over all unordered pairs of matches, keeping pairs
    with d_prev > eps and d_curr >= min_dist.
    """
    q, t = match_indices(kpt_matches, len(kpts_prev), len(kpts_curr))
    if q.size < 2:
        return np.empty(0)
    prev_pts = keypoints_to_array(kpts_prev)[q]
    curr_pts = keypoints_to_array(kpts_curr)[t]

    i, j = np.triu_indices(q.size, k=1)
    d_curr = np.linalg.norm(curr_pts[i] - curr_pts[j], axis=1)
    d_prev = np.linalg.norm(prev_pts[i] - prev_pts[j], axis=1)
    ok = (d_prev > np.finfo(np.float64).eps) & (d_curr >= min_dist)
    return d_curr[ok] / d_prev[ok]


def compute_ttc_camera(kpts_prev, kpts_curr, kpt_matches, frame_rate,
                       min_dist=MIN_BASELINE_PX):
    """
    Monocular TTC from the median ratio of pairwise keypoint distances
    (current over previous), i.e. the scale change of a rigid target.

    Returns NaN when no pair passes the baseline gate or the median ratio is 1.
    Negative values mean the target is receding.
    """
    assert frame_rate > 0, f"frame rate must be positive, got {frame_rate}"
    ratios = distance_ratios(kpts_prev, kpts_curr, kpt_matches, min_dist)
    if ratios.size == 0:
        return np.nan

    med_ratio = float(np.median(ratios))
    if med_ratio == 1.0:
        return np.nan
    dt = 1.0 / frame_rate
    return -dt / (1.0 - med_ratio)
