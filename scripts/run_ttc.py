import argparse, os, glob
import numpy as np
import pandas as pd

from lidar_projection.project_lidar import load_calibration, crop_lidar_points
from ttc_fusion.data_io import load_frame_bundle, load_params
from ttc_fusion.pipeline import TTCParams, cluster_frame_lidar, process_frame_pair


def plot_ttc(df, out_png):
    import matplotlib
    matplotlib.use("Agg")
    import matplotlib.pyplot as plt

    plt.figure(figsize=(10, 5))
    for track_id, g in df.groupby("track_id"):
        plt.plot(g["frame"], g["ttc_lidar"], "o-", label=f"LiDAR #{track_id}")
        plt.plot(g["frame"], g["ttc_camera"], "s--", label=f"Camera #{track_id}")
    plt.xlabel("Frame", fontsize=12)
    plt.ylabel("TTC (s)", fontsize=12)
    plt.grid(alpha=0.3)
    plt.legend()
    plt.tight_layout()
    plt.savefig(out_png, dpi=150)
    plt.close()


def main():
    ap = argparse.ArgumentParser(description="LiDAR and camera TTC for consecutive frame bundles")
    ap.add_argument("--frames", required=True, help="Directory of per-frame .npz bundles")
    ap.add_argument("--calib_yaml", required=True, help="Calibration YAML (P_rect, R_rect, T_velo_to_cam)")
    ap.add_argument("--params_yaml", default=None, help="Optional TTCParams overrides")
    ap.add_argument("--frame_rate", type=float, default=None, help="Override frame rate (Hz)")
    ap.add_argument("--crop", action="store_true", help="Apply the ego-corridor crop to each scan")
    ap.add_argument("--out_dir", default="data/ttc_out", help="Output directory")
    ap.add_argument("--plot", action="store_true", help="Also save a TTC-over-frames plot")
    ap.add_argument("--verbose", action="store_true")
    args = ap.parse_args()

    params = load_params(args.params_yaml) if args.params_yaml else TTCParams()
    if args.frame_rate is not None:
        params.frame_rate = args.frame_rate
    if args.verbose:
        params.verbose = True

    print("[INFO] Loading calibration...")
    calib = load_calibration(args.calib_yaml)

    paths = sorted(glob.glob(os.path.join(args.frames, "*.npz")))
    if len(paths) < 2:
        print(f"[WARNING] Need at least two frames, found {len(paths)} in {args.frames}")
        return
    print(f"[INFO] {len(paths)} frames, frame rate {params.frame_rate} Hz")

    rows = []
    prev = None
    for path in paths:
        curr = load_frame_bundle(path)
        if args.crop:
            curr.lidar_points = crop_lidar_points(curr.lidar_points)
        cluster_frame_lidar(curr, calib, params)

        if prev is not None:
            results = process_frame_pair(prev, curr, calib, params, cluster_lidar=False)
            for r in results:
                rows.append({"frame": curr.frame_id, **vars(r)})
                print(f"{curr.frame_id}: track {r.track_id} box {r.prev_box_id}->{r.curr_box_id} "
                      f"TTC lidar={r.ttc_lidar:.2f}s camera={r.ttc_camera:.2f}s")
            if not results:
                print(f"{curr.frame_id}: no matched boxes")
        prev = curr

    os.makedirs(args.out_dir, exist_ok=True)
    df = pd.DataFrame(rows, columns=["frame", "prev_box_id", "curr_box_id", "track_id",
                                     "ttc_lidar", "ttc_camera", "n_lidar_prev",
                                     "n_lidar_curr", "n_kpt_matches"])
    csv_path = os.path.join(args.out_dir, "ttc.csv")
    df.to_csv(csv_path, index=False)
    print(f"[OK] Saved {len(df)} rows to: {csv_path}")

    if args.plot and len(df):
        png_path = os.path.join(args.out_dir, "ttc.png")
        plot_ttc(df.replace([np.inf, -np.inf], np.nan), png_path)
        print(f"[OK] Saved plot to: {png_path}")


if __name__ == "__main__":
    main()
