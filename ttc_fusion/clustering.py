import numpy as np

from lidar_projection.project_lidar import project_lidar_points
from .configs import KPT_SHRINK, FLOW_OUTLIER_RATIO
from .structures import keypoints_to_array, lidar_to_array, match_indices


def shrink_roi(roi, shrink_factor):
    """Inset (x, y, w, h) by shrink_factor/2 of its size on every side."""
    x, y, w, h = roi
    s = shrink_factor
    return (x + s * w / 2.0, y + s * h / 2.0, w * (1 - s), h * (1 - s))


def roi_contains(roi, u, v):
    x, y, w, h = roi
    return (x <= u < x + w) and (y <= v < y + h)


def rois_contain(rois, uv):
    """
    Containment table for many points against many ROIs.

    rois: (M,4) x, y, w, h; uv: (N,2). Returns (N,M) bool.
    NaN coordinates are contained in nothing.
    """
    rois = np.asarray(rois, dtype=np.float64).reshape(-1, 4)
    uv = np.asarray(uv, dtype=np.float64).reshape(-1, 2)
    u = uv[:, 0:1]
    v = uv[:, 1:2]
    x, y = rois[:, 0][None, :], rois[:, 1][None, :]
    x2, y2 = x + rois[:, 2][None, :], y + rois[:, 3][None, :]
    return (u >= x) & (u < x2) & (v >= y) & (v < y2)


def cluster_lidar_with_roi(bounding_boxes, lidar_points, shrink_factor, calib):
    """
    Attach each LiDAR point to the one box whose shrunken ROI encloses its
    projection. Points enclosed by no box or by several boxes are dropped.
    Mutates bounding_boxes[*].lidar_points.
    """
    assert 0.0 <= shrink_factor < 1.0, f"shrink factor must be in [0, 1), got {shrink_factor}"
    if not bounding_boxes or not lidar_points:
        return

    uv, _ = project_lidar_points(lidar_to_array(lidar_points), calib)
    rois = [shrink_roi(b.roi, shrink_factor) for b in bounding_boxes]
    inside = rois_contain(rois, uv)

    unique = np.flatnonzero(inside.sum(axis=1) == 1)
    owners = np.argmax(inside[unique], axis=1)
    for i, j in zip(unique, owners):
        bounding_boxes[j].lidar_points.append(lidar_points[i])


def cluster_kpt_matches_with_roi(bounding_box, kpts_prev, kpts_curr, kpt_matches,
                                 shrink_factor=KPT_SHRINK, outlier_ratio=FLOW_OUTLIER_RATIO,
                                 verbose=False):
    """
    Associate a current-frame box with the keypoint matches it contains.

    A match qualifies when its current keypoint lies inside the box ROI
    shrunk by shrink_factor. Qualifying matches whose flow magnitude
    |curr - prev| is not below outlier_ratio * mean flow are rejected.
    Survivors are appended to bounding_box.kpt_matches, and their current
    keypoints to bounding_box.keypoints, in input order.
    """
    q, t = match_indices(kpt_matches, len(kpts_prev), len(kpts_curr))
    if q.size == 0:
        return
    prev_pts = keypoints_to_array(kpts_prev)[q]
    curr_pts = keypoints_to_array(kpts_curr)[t]

    roi = shrink_roi(bounding_box.roi, shrink_factor)
    in_roi = rois_contain([roi], curr_pts)[:, 0]
    n_roi = int(in_roi.sum())
    if n_roi == 0:
        if verbose:
            print(f"[DEBUG] box {bounding_box.box_id}: no matches inside shrunk ROI")
        return

    flow = np.linalg.norm(curr_pts - prev_pts, axis=1)
    mean_flow = float(flow[in_roi].mean())
    keep = in_roi & (flow < outlier_ratio * mean_flow)

    for i in np.flatnonzero(keep):
        bounding_box.keypoints.append(kpts_curr[t[i]])
        bounding_box.kpt_matches.append(kpt_matches[i])

    if verbose:
        print(f"[DEBUG] box {bounding_box.box_id}: mean flow {mean_flow:.2f} px, "
              f"{n_roi} matches before filtering, {int(keep.sum())} after")
