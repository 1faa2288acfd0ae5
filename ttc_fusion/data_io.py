# ttc_fusion/data_io.py
import os, re
from dataclasses import fields

import numpy as np
import yaml

from .pipeline import TTCParams
from .structures import (BoundingBox, Frame, Keypoint, Match, keypoints_to_array,
                         lidar_from_array, lidar_to_array)

_DIGITS = re.compile(r'(\d+)')


def frame_id_from_name(name: str) -> int:
    """First integer in a filename: '000012.npz' -> 12. Falls back to -1."""
    m = _DIGITS.search(os.path.basename(name))
    return int(m.group(1)) if m else -1


def load_lidar_scan(path):
    """
    Read a LiDAR scan into LidarPoints.
    .bin: KITTI velodyne, float32 x, y, z, reflectivity
    .pcd/.ply: via open3d (reflectivity not available, set to 0)
    .npy: (N,3) or (N,4) array
    """
    if not os.path.exists(path):
        raise FileNotFoundError(path)
    ext = os.path.splitext(path)[1].lower()
    if ext == ".bin":
        arr = np.fromfile(path, dtype=np.float32)
        if arr.size % 4 != 0:
            raise ValueError(f"{path}: size is not a multiple of 4 floats")
        arr = arr.reshape(-1, 4)
    elif ext in (".pcd", ".ply"):
        import open3d as o3d
        pcd = o3d.io.read_point_cloud(path)
        arr = np.asarray(pcd.points, dtype=np.float64)
    elif ext == ".npy":
        arr = np.load(path)
    else:
        raise ValueError(f"unsupported LiDAR format: {ext}")
    if arr.ndim != 2 or arr.shape[1] not in (3, 4):
        raise ValueError(f"{path}: expected (N,3) or (N,4) points, got {arr.shape}")
    return lidar_from_array(arr)


def load_frame_bundle(npz_path):
    """
    Build a Frame from one observation bundle.

    Arrays:
        keypoints (N,2)      image positions
        boxes (M,4)          x, y, w, h
        box_ids (M,)         optional, defaults to 0..M-1
        class_ids (M,)       optional
        confidences (M,)     optional
        lidar (K,3|4)        optional, already forward-filtered
        matches (L,2)        optional, (queryIdx into previous frame, trainIdx)
    """
    if not os.path.exists(npz_path):
        raise FileNotFoundError(npz_path)
    with np.load(npz_path) as npz:
        data = {k: np.array(npz[k]) for k in npz.files}
    if "keypoints" not in data or "boxes" not in data:
        raise ValueError(f"{npz_path}: bundle needs 'keypoints' and 'boxes'")

    kp = np.asarray(data["keypoints"], dtype=np.float64).reshape(-1, 2)
    boxes = np.asarray(data["boxes"], dtype=np.float64).reshape(-1, 4)
    M = boxes.shape[0]
    box_ids = data["box_ids"] if "box_ids" in data else np.arange(M)
    class_ids = data["class_ids"] if "class_ids" in data else np.full(M, -1)
    confs = data["confidences"] if "confidences" in data else np.zeros(M)

    frame = Frame(frame_id=frame_id_from_name(npz_path))
    frame.keypoints = [Keypoint(pt=(float(u), float(v))) for u, v in kp]
    frame.bounding_boxes = [
        BoundingBox(box_id=int(box_ids[i]), roi=tuple(float(c) for c in boxes[i]),
                    class_id=int(class_ids[i]), confidence=float(confs[i]))
        for i in range(M)
    ]
    if "lidar" in data:
        frame.lidar_points = lidar_from_array(data["lidar"])
    if "matches" in data:
        m = np.asarray(data["matches"], dtype=np.int64).reshape(-1, 2)
        frame.kpt_matches = [Match(int(qi), int(ti)) for qi, ti in m]
    return frame


def save_frame_bundle(frame, npz_path):
    os.makedirs(os.path.dirname(npz_path) or ".", exist_ok=True)
    np.savez_compressed(
        npz_path,
        keypoints=keypoints_to_array(frame.keypoints),
        boxes=np.array([b.roi for b in frame.bounding_boxes], dtype=np.float64).reshape(-1, 4),
        box_ids=np.array([b.box_id for b in frame.bounding_boxes], dtype=np.int64),
        class_ids=np.array([b.class_id for b in frame.bounding_boxes], dtype=np.int64),
        confidences=np.array([b.confidence for b in frame.bounding_boxes], dtype=np.float64),
        lidar=lidar_to_array(frame.lidar_points),
        matches=np.array([(m.query_idx, m.train_idx) for m in frame.kpt_matches],
                         dtype=np.int64).reshape(-1, 2),
    )


def load_params(params_yaml):
    """TTCParams with defaults overridden by a YAML mapping."""
    if not os.path.exists(params_yaml):
        raise FileNotFoundError(params_yaml)
    with open(params_yaml, "r") as f:
        cfg = yaml.safe_load(f) or {}
    if not isinstance(cfg, dict):
        raise ValueError(f"{params_yaml}: root must be a mapping")
    known = {f.name for f in fields(TTCParams)}
    unknown = sorted(set(cfg) - known)
    if unknown:
        raise ValueError(f"{params_yaml}: unknown keys {unknown}")
    return TTCParams(**cfg)
