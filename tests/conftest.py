import numpy as np
import pytest

from ttc_fusion.structures import BoundingBox, Calibration, Frame, Keypoint, LidarPoint, Match

FOCAL = 1000.0
CENTER = 500.0


def make_calibration(f=FOCAL, cx=CENTER, cy=CENTER):
    """Pinhole camera looking along LiDAR +x: u = f*(-y)/x + cx, v = f*(-z)/x + cy."""
    P = np.array([[f, 0, cx, 0],
                  [0, f, cy, 0],
                  [0, 0, 1, 0]], dtype=np.float64)
    T = np.array([[0, -1, 0, 0],
                  [0, 0, -1, 0],
                  [1, 0, 0, 0],
                  [0, 0, 0, 1]], dtype=np.float64)
    return Calibration(P_rect=P, R_rect=np.eye(4), T_velo_to_cam=T)


def target_frame(frame_id, distance, n_kpts=8, radius_at_8m=100.0):
    """
    A rear face 1 m x 1 m at `distance` metres, seen through make_calibration(),
    with keypoints on a circle whose radius scales with 1/distance, and a
    second, empty detection off to the side.
    """
    frame = Frame(frame_id=frame_id)
    grid = np.linspace(-0.5, 0.5, 5)
    frame.lidar_points = [LidarPoint(distance, y, z, 0.5) for y in grid for z in grid]

    radius = radius_at_8m * 8.0 / distance
    angles = np.arange(n_kpts) * 2 * np.pi / n_kpts
    frame.keypoints = [Keypoint(pt=(CENTER + radius * np.cos(a), CENTER + radius * np.sin(a)))
                       for a in angles]
    frame.bounding_boxes = [
        BoundingBox(box_id=0, roi=(300.0, 300.0, 400.0, 400.0), class_id=2, confidence=0.9),
        BoundingBox(box_id=1, roi=(800.0, 100.0, 100.0, 100.0), class_id=2, confidence=0.6),
    ]
    return frame


@pytest.fixture
def calib():
    return make_calibration()


@pytest.fixture
def approach_pair():
    """Target closing from 8.0 m to 7.5 m between frames; matches are the identity."""
    prev = target_frame(0, 8.0)
    curr = target_frame(1, 7.5)
    curr.kpt_matches = [Match(i, i) for i in range(len(curr.keypoints))]
    return prev, curr
