import argparse, os, yaml
import numpy as np
import cv2

from ttc_fusion import configs
from ttc_fusion.structures import Calibration, LidarPoint, lidar_to_array


def _as_matrix(value, shape, name):
    a = np.array(value, dtype=np.float64)
    if a.size != shape[0] * shape[1]:
        raise ValueError(f"{name}: expected {shape[0]}x{shape[1]} values, got {a.size}")
    return a.reshape(shape)


def load_calibration(calib_yaml):
    """
    Load camera/LiDAR calibration from YAML.

    Keys:
        P_rect: 3x4 rectified projection matrix
        R_rect: 4x4 rectifying rotation (3x3 accepted, padded to 4x4)
        T_velo_to_cam: 4x4 LiDAR->camera transform,
            or R (3x3) and t (3) to assemble it

    Returns:
        Calibration
    """
    if not os.path.exists(calib_yaml):
        raise FileNotFoundError(calib_yaml)
    with open(calib_yaml, "r") as f:
        cal = yaml.safe_load(f)
    if not isinstance(cal, dict):
        raise ValueError(f"{calib_yaml}: calibration root must be a mapping")

    for key in ("P_rect", "R_rect"):
        if key not in cal:
            raise ValueError(f"{calib_yaml}: missing key '{key}'")
    P = _as_matrix(cal["P_rect"], (3, 4), "P_rect")

    R_rect = np.array(cal["R_rect"], dtype=np.float64)
    if R_rect.size == 9:
        R4 = np.eye(4)
        R4[:3, :3] = R_rect.reshape(3, 3)
        R_rect = R4
    else:
        R_rect = _as_matrix(R_rect, (4, 4), "R_rect")

    if "T_velo_to_cam" in cal:
        T = _as_matrix(cal["T_velo_to_cam"], (4, 4), "T_velo_to_cam")
    elif "R" in cal and "t" in cal:
        T = np.eye(4)
        T[:3, :3] = _as_matrix(cal["R"], (3, 3), "R")
        T[:3, 3] = _as_matrix(cal["t"], (3, 1), "t").ravel()
    else:
        raise ValueError(f"{calib_yaml}: need 'T_velo_to_cam' or 'R' and 't'")

    return Calibration(P_rect=P, R_rect=R_rect, T_velo_to_cam=T)


def project(p: LidarPoint, calib: Calibration):
    """
    Project one LiDAR point into pixel coordinates.

    Y = P_rect * R_rect * T_velo_to_cam * [x, y, z, 1]^T, (u, v) = (Y0/Y2, Y1/Y2).
    Undefined (inf/nan) when Y2 == 0; callers drop such points.
    """
    X = np.array([p.x, p.y, p.z, 1.0])
    Y = calib.projection @ X
    with np.errstate(divide="ignore", invalid="ignore"):
        u = Y[0] / Y[2]
        v = Y[1] / Y[2]
    return float(u), float(v)


def project_lidar_points(xyz, calib: Calibration):
    """
    Vectorised projection of (N,3+) LiDAR coordinates.

    Returns:
        uv: (N,2) pixel coordinates, NaN where the point is not in front of
            the camera (Y2 <= 0)
        depth: (N,) Y2, the camera-frame depth
    """
    xyz = np.asarray(xyz, dtype=np.float64)
    if xyz.size == 0:
        return np.empty((0, 2)), np.empty((0,))
    X = np.hstack([xyz[:, :3], np.ones((xyz.shape[0], 1))])   # Nx4
    Y = (calib.projection @ X.T).T                              # Nx3
    depth = Y[:, 2]
    uv = np.full((xyz.shape[0], 2), np.nan)
    front = depth > 0
    uv[front] = Y[front, :2] / depth[front, None]
    return uv, depth


def crop_lidar_points(points,
                      min_x=configs.CROP_MIN_X, max_x=configs.CROP_MAX_X,
                      max_y=configs.CROP_MAX_Y,
                      min_z=configs.CROP_MIN_Z, max_z=configs.CROP_MAX_Z,
                      min_r=configs.CROP_MIN_R):
    """
    Keep points ahead of the sensor inside the ego corridor (road surface
    removed via the z band) with a usable reflectivity.
    """
    arr = lidar_to_array(points)
    if arr.shape[0] == 0:
        return []
    x, y, z, r = arr.T
    keep = ((x >= min_x) & (x <= max_x) & (x > 0) &
            (np.abs(y) <= max_y) &
            (z >= min_z) & (z <= max_z) &
            (r >= min_r))
    return [p for p, k in zip(points, keep) if k]


def visualize_projection(img, uv_points, ranges):
    """Draw projected points coloured by forward range (red = near)."""
    H, W = img.shape[:2]
    result = img.copy()
    finite = np.all(np.isfinite(uv_points), axis=1)
    inside = finite.copy()
    inside[finite] = ((uv_points[finite, 0] >= 0) & (uv_points[finite, 0] < W) &
                      (uv_points[finite, 1] >= 0) & (uv_points[finite, 1] < H))
    if np.sum(inside) == 0:
        return result

    uv_inside = uv_points[inside]
    r_inside = ranges[inside]
    r_min, r_max = np.percentile(r_inside, [5, 95])
    r_norm = np.clip((r_inside - r_min) / (r_max - r_min + 1e-6), 0, 1)
    # JET maps low values to blue; invert so close points come out red
    colors = cv2.applyColorMap(((1.0 - r_norm) * 255).astype(np.uint8), cv2.COLORMAP_JET)
    for (u, v), color in zip(uv_inside.astype(int), colors):
        cv2.circle(result, (int(u), int(v)), 2, color[0].tolist(), -1)
    return result


def main():
    from ttc_fusion.data_io import load_lidar_scan

    ap = argparse.ArgumentParser(description="Project a LiDAR scan into the camera image")
    ap.add_argument("--scan", required=True, help="LiDAR scan (.bin KITTI or .pcd)")
    ap.add_argument("--calib_yaml", required=True, help="Calibration YAML (P_rect, R_rect, T_velo_to_cam)")
    ap.add_argument("--image", required=True, help="Camera image file")
    ap.add_argument("--out", required=True, help="Output overlay image")
    ap.add_argument("--no_crop", action="store_true", help="Project the full scan instead of the ego corridor")
    args = ap.parse_args()

    print("[INFO] Loading calibration...")
    calib = load_calibration(args.calib_yaml)
    print(f"[INFO] Projection chain:\n{calib.projection}")

    img = cv2.imread(args.image)
    if img is None:
        raise FileNotFoundError(f"Could not load image: {args.image}")
    H, W = img.shape[:2]
    print(f"[INFO] Image size: {H}x{W}")

    points = load_lidar_scan(args.scan)
    print(f"[INFO] Loaded {len(points)} LiDAR points")
    if not args.no_crop:
        points = crop_lidar_points(points)
        print(f"[INFO] After cropping: {len(points)} points")
    else:
        points = [p for p in points if p.x > 0]
    if not points:
        print("[WARNING] No points left to project")
        return

    arr = lidar_to_array(points)
    uv, _ = project_lidar_points(arr, calib)
    overlay = visualize_projection(img, uv, arr[:, 0])

    os.makedirs(os.path.dirname(args.out) or ".", exist_ok=True)
    cv2.imwrite(args.out, overlay)
    print(f"[OK] Saved overlay to: {args.out}")


if __name__ == "__main__":
    main()
