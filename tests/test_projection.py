import numpy as np
import pytest
import yaml

from lidar_projection.project_lidar import (crop_lidar_points, load_calibration, project,
                                            project_lidar_points)
from ttc_fusion.structures import Calibration, LidarPoint


def test_project_point_on_axis_hits_principal_point(calib):
    u, v = project(LidarPoint(10.0, 0.0, 0.0), calib)
    assert u == pytest.approx(500.0)
    assert v == pytest.approx(500.0)


def test_project_left_and_up_moves_left_and_up(calib):
    u, v = project(LidarPoint(10.0, 1.0, 0.5), calib)
    assert u == pytest.approx(500.0 - 100.0)
    assert v == pytest.approx(500.0 - 50.0)


def test_project_zero_depth_does_not_raise(calib):
    u, v = project(LidarPoint(0.0, 1.0, 0.0), calib)
    assert not np.isfinite(u)


def test_vectorised_projection_matches_single_point(calib):
    rng = np.random.default_rng(7)
    xyz = np.column_stack([rng.uniform(2, 30, 50), rng.uniform(-3, 3, 50), rng.uniform(-2, 1, 50)])
    uv, depth = project_lidar_points(xyz, calib)
    for (x, y, z), (u, v) in zip(xyz, uv):
        su, sv = project(LidarPoint(x, y, z), calib)
        assert u == pytest.approx(su)
        assert v == pytest.approx(sv)
    assert np.allclose(depth, xyz[:, 0])


def test_vectorised_projection_marks_points_behind_camera(calib):
    uv, depth = project_lidar_points(np.array([[-5.0, 0.0, 0.0], [5.0, 0.0, 0.0]]), calib)
    assert np.all(np.isnan(uv[0]))
    assert np.all(np.isfinite(uv[1]))


def test_calibration_rejects_bad_shapes():
    with pytest.raises(AssertionError):
        Calibration(P_rect=np.eye(3), R_rect=np.eye(4), T_velo_to_cam=np.eye(4))
    with pytest.raises(AssertionError):
        Calibration(P_rect=np.zeros((3, 4)), R_rect=np.eye(3), T_velo_to_cam=np.eye(4))


def test_load_calibration_full_matrices(tmp_path, calib):
    path = tmp_path / "calib.yaml"
    path.write_text(yaml.safe_dump({
        "P_rect": calib.P_rect.tolist(),
        "R_rect": calib.R_rect.tolist(),
        "T_velo_to_cam": calib.T_velo_to_cam.tolist(),
    }))
    loaded = load_calibration(str(path))
    assert np.allclose(loaded.projection, calib.projection)


def test_load_calibration_from_rotation_translation(tmp_path, calib):
    path = tmp_path / "calib.yaml"
    path.write_text(yaml.safe_dump({
        "P_rect": calib.P_rect.ravel().tolist(),
        "R_rect": np.eye(3).tolist(),
        "R": calib.T_velo_to_cam[:3, :3].tolist(),
        "t": [0.0, 0.0, 0.0],
    }))
    loaded = load_calibration(str(path))
    assert loaded.R_rect.shape == (4, 4)
    assert np.allclose(loaded.T_velo_to_cam, calib.T_velo_to_cam)


def test_load_calibration_errors(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_calibration(str(tmp_path / "missing.yaml"))

    path = tmp_path / "bad.yaml"
    path.write_text(yaml.safe_dump({"P_rect": [1, 2, 3], "R_rect": np.eye(4).tolist(),
                                    "T_velo_to_cam": np.eye(4).tolist()}))
    with pytest.raises(ValueError):
        load_calibration(str(path))

    path.write_text(yaml.safe_dump({"P_rect": np.zeros((3, 4)).tolist(), "R_rect": np.eye(4).tolist()}))
    with pytest.raises(ValueError):
        load_calibration(str(path))


def test_crop_keeps_only_ego_corridor():
    keep = LidarPoint(8.0, 0.5, -1.2, 0.5)
    points = [
        keep,
        LidarPoint(-8.0, 0.5, -1.2, 0.5),   # behind
        LidarPoint(25.0, 0.5, -1.2, 0.5),   # too far
        LidarPoint(8.0, 3.0, -1.2, 0.5),    # outside lane
        LidarPoint(8.0, 0.5, -1.7, 0.5),    # road surface
        LidarPoint(8.0, 0.5, -1.2, 0.01),   # weak return
    ]
    assert crop_lidar_points(points) == [keep]
    assert crop_lidar_points([]) == []


def test_projection_cli_writes_overlay(tmp_path, calib, monkeypatch):
    import sys
    import cv2
    from lidar_projection.project_lidar import main

    calib_path = tmp_path / "calib.yaml"
    calib_path.write_text(yaml.safe_dump({
        "P_rect": calib.P_rect.tolist(),
        "R_rect": calib.R_rect.tolist(),
        "T_velo_to_cam": calib.T_velo_to_cam.tolist(),
    }))
    image_path = tmp_path / "frame.png"
    cv2.imwrite(str(image_path), np.zeros((1000, 1000, 3), dtype=np.uint8))
    scan_path = tmp_path / "scan.npy"
    np.save(str(scan_path), np.array([[8.0, 0.0, -1.2, 0.5], [10.0, 0.5, -1.0, 0.5]]))
    out_path = tmp_path / "out" / "overlay.png"

    monkeypatch.setattr(sys, "argv", ["project_lidar", "--scan", str(scan_path),
                                      "--calib_yaml", str(calib_path),
                                      "--image", str(image_path), "--out", str(out_path)])
    main()

    overlay = cv2.imread(str(out_path))
    assert overlay is not None
    assert overlay[650, 500].any()     # (8, 0, -1.2) lands on (500, 650)
