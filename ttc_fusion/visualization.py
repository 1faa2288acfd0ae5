import cv2
import numpy as np

from .configs import TOPVIEW_WORLD_SIZE, TOPVIEW_IMAGE_SIZE, TOPVIEW_LINE_SPACING


def _box_color(box_id):
    # stable pseudo-random colour per box id
    rng = np.random.default_rng(box_id)
    return tuple(int(c) for c in rng.integers(0, 150, size=3))


def render_top_view(bounding_boxes, world_size=TOPVIEW_WORLD_SIZE, image_size=TOPVIEW_IMAGE_SIZE,
                    line_spacing=TOPVIEW_LINE_SPACING, window_name=None):
    """
    Bird's-eye view of the LiDAR points clustered into each box.

    world_size: (width, height) in metres, x forward up the image, y left.
    image_size: (width, height) in pixels.
    Text placement is tuned for a 2000x2000 image.
    If window_name is given the image is also shown and the call waits for a key.
    """
    world_w, world_h = world_size
    img_w, img_h = image_size
    topview = np.full((img_h, img_w, 3), 255, dtype=np.uint8)

    for box in bounding_boxes:
        if not box.lidar_points:
            continue
        color = _box_color(box.box_id)
        xw = np.array([p.x for p in box.lidar_points])
        yw = np.array([p.y for p in box.lidar_points])

        ys = ((-xw * img_h / world_h) + img_h).astype(int)
        xs = ((-yw * img_w / world_w) + img_w / 2).astype(int)
        for x, y in zip(xs, ys):
            cv2.circle(topview, (int(x), int(y)), 4, color, -1)

        top, bottom = int(ys.min()), int(ys.max())
        left, right = int(xs.min()), int(xs.max())
        cv2.rectangle(topview, (left, top), (right, bottom), (0, 0, 0), 2)

        str1 = f"id={box.box_id}, #pts={len(box.lidar_points)}"
        str2 = f"xmin={xw.min():2.2f} m, yw={yw.max() - yw.min():2.2f} m"
        cv2.putText(topview, str1, (left - 250, bottom + 50), cv2.FONT_ITALIC, 0.5, color)
        cv2.putText(topview, str2, (left - 250, bottom + 125), cv2.FONT_ITALIC, 0.5, color)

    n_markers = int(np.floor(world_h / line_spacing))
    for i in range(n_markers):
        y = int((-(i * line_spacing) * img_h / world_h) + img_h)
        cv2.line(topview, (0, y), (img_w, y), (255, 0, 0))

    if window_name:
        cv2.namedWindow(window_name, 1)
        cv2.imshow(window_name, topview)
        cv2.waitKey(0)
    return topview


def overlay_ttc(image, bounding_boxes, results):
    """Draw matched boxes with their LiDAR / camera TTC on the camera image."""
    overlay = image.copy()
    by_box = {r.curr_box_id: r for r in results}
    font = cv2.FONT_HERSHEY_SIMPLEX
    font_scale = 0.5
    thickness = 1
    pad = 2

    for box in bounding_boxes:
        x, y, w, h = box.roi
        x1, y1, x2, y2 = int(x), int(y), int(x + w), int(y + h)
        res = by_box.get(box.box_id)
        color = (0, 255, 0) if res is not None else (128, 128, 128)
        cv2.rectangle(overlay, (x1, y1), (x2, y2), color, 2)
        if res is None:
            continue

        label = f"L:{res.ttc_lidar:.1f}s C:{res.ttc_camera:.1f}s"
        if res.track_id is not None:
            label = f"#{res.track_id} " + label
        (label_w, label_h), _ = cv2.getTextSize(label, font, font_scale, thickness)
        cv2.rectangle(overlay, (x1, y1 - label_h - 2 * pad), (x1 + label_w + 2 * pad, y1), (0, 0, 0), -1)
        cv2.putText(overlay, label, (x1 + pad, y1 - pad), font, font_scale, (255, 255, 255), thickness)

    return overlay
