import numpy as np

from .clustering import rois_contain
from .structures import find_box, keypoints_to_array, match_indices


def box_vote_table(matches, prev_frame, curr_frame):
    """
    Count, for every (previous box, current box) pair, the keypoint matches
    whose previous keypoint lies in the previous box and whose current
    keypoint lies in the current box. A match falling in several boxes votes
    for every combination. Full (unshrunk) ROIs are used.

    Returns:
        (P, C) int array indexed like prev_frame / curr_frame bounding_boxes
    """
    P = len(prev_frame.bounding_boxes)
    C = len(curr_frame.bounding_boxes)
    counts = np.zeros((P, C), dtype=np.int64)
    if P == 0 or C == 0 or not matches:
        return counts

    q, t = match_indices(matches, len(prev_frame.keypoints), len(curr_frame.keypoints))
    prev_pts = keypoints_to_array(prev_frame.keypoints)[q]
    curr_pts = keypoints_to_array(curr_frame.keypoints)[t]

    in_prev = rois_contain([b.roi for b in prev_frame.bounding_boxes], prev_pts)   # (L,P)
    in_curr = rois_contain([b.roi for b in curr_frame.bounding_boxes], curr_pts)   # (L,C)
    # matches outside every box on either side contribute an all-zero outer product
    counts += in_prev.T.astype(np.int64) @ in_curr.astype(np.int64)
    return counts


def match_bounding_boxes(matches, prev_frame, curr_frame):
    """
    Pair each previous box with the current box sharing the most keypoint
    matches. Ties go to the earliest current box; previous boxes without any
    supporting match are left out.

    Returns:
        dict prev box_id -> curr box_id
    """
    return best_matches_from_votes(box_vote_table(matches, prev_frame, curr_frame),
                                   prev_frame, curr_frame)


def best_matches_from_votes(counts, prev_frame, curr_frame):
    """Row-wise argmax of a box_vote_table, keyed by box_id, empty rows dropped."""
    best_matches = {}
    for i, row in enumerate(counts):
        if row.size == 0 or row.max() == 0:
            continue
        j = int(np.argmax(row))
        best_matches[prev_frame.bounding_boxes[i].box_id] = curr_frame.bounding_boxes[j].box_id
    return best_matches


def assign_track_ids(bb_matches, prev_frame, curr_frame, votes=None):
    """
    Carry track identities across a box correspondence.

    When several previous boxes map onto the same current box, the one with
    the most shared matches in `votes` (a box_vote_table) hands over its
    track; without votes, or on equal votes, the earliest previous box wins.
    """
    owner = {}   # curr box_id -> (votes, prev box_id)
    prev_index = {b.box_id: i for i, b in enumerate(prev_frame.bounding_boxes)}
    curr_index = {b.box_id: j for j, b in enumerate(curr_frame.bounding_boxes)}
    for prev_id, curr_id in bb_matches.items():
        if prev_id not in prev_index or curr_id not in curr_index:
            continue
        n = int(votes[prev_index[prev_id], curr_index[curr_id]]) if votes is not None else 0
        if curr_id not in owner or n > owner[curr_id][0]:
            owner[curr_id] = (n, prev_id)

    for curr_id, (_, prev_id) in owner.items():
        prev_box = find_box(prev_frame.bounding_boxes, prev_id)
        curr_box = find_box(curr_frame.bounding_boxes, curr_id)
        if prev_box is None or curr_box is None:
            continue
        curr_box.track_id = prev_box.track_id if prev_box.track_id is not None else prev_box.box_id
