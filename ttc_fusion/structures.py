# ttc_fusion/structures.py
"""
Per-frame data model of the TTC core.

Boxes own their membership lists. Keypoints and matches are referenced by
index into the owning frame's arrays, never by object, so match tables can be
dumped to .npz as plain integer arrays.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np


@dataclass(frozen=True)
class LidarPoint:
    x: float   # forward (m)
    y: float   # left (m)
    z: float   # up (m)
    r: float = 0.0  # reflectivity, 0..1


@dataclass(frozen=True)
class Keypoint:
    pt: Tuple[float, float]
    size: float = 0.0
    angle: float = -1.0
    response: float = 0.0
    octave: int = 0


@dataclass(frozen=True)
class Match:
    query_idx: int   # into previous frame keypoints
    train_idx: int   # into current frame keypoints
    distance: float = 0.0


@dataclass
class BoundingBox:
    box_id: int
    roi: Tuple[float, float, float, float]   # x, y, width, height (px)
    class_id: int = -1
    confidence: float = 0.0
    track_id: Optional[int] = None
    lidar_points: List[LidarPoint] = field(default_factory=list)
    keypoints: List[Keypoint] = field(default_factory=list)
    kpt_matches: List[Match] = field(default_factory=list)


@dataclass
class Frame:
    frame_id: int = 0
    keypoints: List[Keypoint] = field(default_factory=list)
    bounding_boxes: List[BoundingBox] = field(default_factory=list)
    lidar_points: List[LidarPoint] = field(default_factory=list)
    kpt_matches: List[Match] = field(default_factory=list)   # prev -> this frame
    bb_matches: Dict[int, int] = field(default_factory=dict)  # prev box_id -> box_id


@dataclass(frozen=True, eq=False)
class Calibration:
    """
    Rectified camera projection, rectifying rotation and LiDAR->camera
    extrinsics, as stored in the KITTI calibration files.
    """
    P_rect: np.ndarray          # 3x4
    R_rect: np.ndarray          # 4x4
    T_velo_to_cam: np.ndarray   # 4x4

    def __post_init__(self):
        P = np.asarray(self.P_rect, dtype=np.float64)
        R = np.asarray(self.R_rect, dtype=np.float64)
        T = np.asarray(self.T_velo_to_cam, dtype=np.float64)
        assert P.shape == (3, 4), f"P_rect must be 3x4, got {P.shape}"
        assert R.shape == (4, 4), f"R_rect must be 4x4, got {R.shape}"
        assert T.shape == (4, 4), f"T_velo_to_cam must be 4x4, got {T.shape}"
        # frozen dataclass: bypass __setattr__ to store the normalised arrays
        object.__setattr__(self, "P_rect", P)
        object.__setattr__(self, "R_rect", R)
        object.__setattr__(self, "T_velo_to_cam", T)

    @property
    def projection(self) -> np.ndarray:
        """Full 3x4 chain P_rect @ R_rect @ T_velo_to_cam."""
        return self.P_rect @ self.R_rect @ self.T_velo_to_cam


def keypoints_to_array(keypoints: List[Keypoint]) -> np.ndarray:
    if not keypoints:
        return np.empty((0, 2), dtype=np.float64)
    return np.array([kp.pt for kp in keypoints], dtype=np.float64)


def lidar_to_array(points: List[LidarPoint]) -> np.ndarray:
    """(N,4) array of x, y, z, r."""
    if not points:
        return np.empty((0, 4), dtype=np.float64)
    return np.array([(p.x, p.y, p.z, p.r) for p in points], dtype=np.float64)


def lidar_from_array(arr: np.ndarray) -> List[LidarPoint]:
    arr = np.asarray(arr, dtype=np.float64)
    if arr.size == 0:
        return []
    assert arr.ndim == 2 and arr.shape[1] in (3, 4), f"expected (N,3|4) LiDAR array, got {arr.shape}"
    if arr.shape[1] == 3:
        return [LidarPoint(float(x), float(y), float(z)) for x, y, z in arr]
    return [LidarPoint(float(x), float(y), float(z), float(r)) for x, y, z, r in arr]


def match_indices(matches: List[Match], n_prev: int, n_curr: int):
    """
    Split matches into (query, train) index arrays, asserting that every index
    refers into the previous / current keypoint arrays.
    """
    if not matches:
        return np.empty(0, dtype=np.int64), np.empty(0, dtype=np.int64)
    idx = np.array([(m.query_idx, m.train_idx) for m in matches], dtype=np.int64)
    q, t = idx[:, 0], idx[:, 1]
    assert q.min() >= 0 and q.max() < n_prev, f"queryIdx out of range [0, {n_prev})"
    assert t.min() >= 0 and t.max() < n_curr, f"trainIdx out of range [0, {n_curr})"
    return q, t


def find_box(boxes: List[BoundingBox], box_id: int) -> Optional[BoundingBox]:
    for b in boxes:
        if b.box_id == box_id:
            return b
    return None
