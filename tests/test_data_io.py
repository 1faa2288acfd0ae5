import numpy as np
import pytest
import yaml

from ttc_fusion.data_io import (frame_id_from_name, load_frame_bundle, load_lidar_scan,
                                load_params, save_frame_bundle)
from ttc_fusion.pipeline import TTCParams
from ttc_fusion.structures import Frame


def test_frame_id_from_name():
    assert frame_id_from_name("/data/frames/000012.npz") == 12
    assert frame_id_from_name("scan.npz") == -1


def test_load_kitti_bin_scan(tmp_path):
    arr = np.array([[8.0, 0.1, -1.0, 0.3], [12.0, -0.4, -1.1, 0.7]], dtype=np.float32)
    path = tmp_path / "0000.bin"
    arr.tofile(str(path))
    points = load_lidar_scan(str(path))
    assert len(points) == 2
    assert points[1].x == pytest.approx(12.0)
    assert points[1].r == pytest.approx(0.7)


def test_load_npy_scan_and_errors(tmp_path):
    path = tmp_path / "scan.npy"
    np.save(str(path), np.array([[5.0, 0.0, -1.0]]))
    points = load_lidar_scan(str(path))
    assert points[0].r == 0.0

    with pytest.raises(FileNotFoundError):
        load_lidar_scan(str(tmp_path / "nope.bin"))
    bad = tmp_path / "scan.xyz"
    bad.write_text("1 2 3")
    with pytest.raises(ValueError):
        load_lidar_scan(str(bad))
    odd = tmp_path / "odd.bin"
    np.zeros(5, dtype=np.float32).tofile(str(odd))
    with pytest.raises(ValueError):
        load_lidar_scan(str(odd))


def test_frame_bundle_survives_save_and_load(tmp_path, approach_pair):
    _, curr = approach_pair
    curr.bounding_boxes[1].box_id = 7
    path = tmp_path / "frames" / "000001.npz"
    save_frame_bundle(curr, str(path))

    loaded = load_frame_bundle(str(path))
    assert loaded.frame_id == 1
    assert [b.box_id for b in loaded.bounding_boxes] == [0, 7]
    assert loaded.bounding_boxes[0].roi == pytest.approx(curr.bounding_boxes[0].roi)
    assert loaded.bounding_boxes[0].class_id == 2
    assert len(loaded.keypoints) == len(curr.keypoints)
    assert loaded.kpt_matches == curr.kpt_matches
    assert len(loaded.lidar_points) == 25
    assert loaded.bounding_boxes[0].lidar_points == []


def test_frame_bundle_file_is_released_after_load(tmp_path, approach_pair, monkeypatch):
    _, curr = approach_pair
    path = tmp_path / "000001.npz"
    save_frame_bundle(curr, str(path))

    opened = []
    real_load = np.load

    def recording_load(*args, **kwargs):
        npz = real_load(*args, **kwargs)
        opened.append(npz)
        return npz

    monkeypatch.setattr(np, "load", recording_load)
    loaded = load_frame_bundle(str(path))
    assert len(opened) == 1
    assert opened[0].zip is None and opened[0].fid is None

    # arrays were copied out before the archive closed
    path.unlink()
    save_frame_bundle(Frame(frame_id=9), str(path))
    assert len(loaded.keypoints) == len(curr.keypoints)
    assert len(loaded.lidar_points) == 25


def test_minimal_bundle_gets_defaults(tmp_path):
    path = tmp_path / "3.npz"
    np.savez(str(path), keypoints=np.zeros((0, 2)), boxes=np.array([[0, 0, 10, 10]]))
    frame = load_frame_bundle(str(path))
    assert frame.bounding_boxes[0].box_id == 0
    assert frame.bounding_boxes[0].class_id == -1
    assert frame.lidar_points == [] and frame.kpt_matches == []

    np.savez(str(path), boxes=np.array([[0, 0, 10, 10]]))
    with pytest.raises(ValueError):
        load_frame_bundle(str(path))


def test_load_params_overrides_defaults(tmp_path):
    path = tmp_path / "params.yaml"
    path.write_text(yaml.safe_dump({"frame_rate": 20.0, "lane_width": 3.5}))
    params = load_params(str(path))
    assert params.frame_rate == 20.0
    assert params.lane_width == 3.5
    assert params.kpt_shrink == TTCParams().kpt_shrink

    path.write_text(yaml.safe_dump({"frame_rte": 20.0}))
    with pytest.raises(ValueError):
        load_params(str(path))
