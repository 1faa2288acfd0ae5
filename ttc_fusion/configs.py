LIDAR_SHRINK = 0.10        # inset of each box before LiDAR containment test
KPT_SHRINK = 0.15          # inset of each box before keypoint containment test
FLOW_OUTLIER_RATIO = 1.3   # keep matches with flow < ratio * mean flow in box
LANE_WIDTH_M = 4.0         # ego lane is |y| < LANE_WIDTH_M / 2
MIN_BASELINE_PX = 100.0    # min current-frame keypoint distance for a ratio
DEFAULT_FRAME_RATE = 10.0  # Hz, KITTI sequences

# caller-side forward crop of raw scans (metres, sensor frame)
CROP_MIN_X, CROP_MAX_X = 2.0, 20.0
CROP_MAX_Y = 2.0
CROP_MIN_Z, CROP_MAX_Z = -1.5, -0.9
CROP_MIN_R = 0.1

# top view
TOPVIEW_WORLD_SIZE = (4.0, 20.0)    # (width, height) in metres
TOPVIEW_IMAGE_SIZE = (2000, 2000)   # (width, height) in pixels
TOPVIEW_LINE_SPACING = 2.0          # metres between distance markers
