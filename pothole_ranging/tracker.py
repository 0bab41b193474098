# tracker.py
"""SORT multi-object tracker: one 7-state Kalman filter per box, IoU matching."""
from __future__ import annotations

from typing import List, Sequence, Tuple

import numpy as np
from filterpy.kalman import KalmanFilter
from scipy.optimize import linear_sum_assignment

from pothole_ranging.common import Detection, TrackedBox
from pothole_ranging.config import TrackerConfig


# ------------------------------------------------------------------ #
#   B O X   C O N V E R S I O N S
# ------------------------------------------------------------------ #
def bbox_to_z(bbox: Sequence[float]) -> np.ndarray:
    """(x1, y1, x2, y2) → [u, v, s, r]ᵀ (centre, area, aspect ratio)."""
    x1, y1, x2, y2 = bbox[:4]
    w = x2 - x1
    h = y2 - y1
    return np.array([[x1 + w / 2.0], [y1 + h / 2.0], [w * h], [w / float(h)]])


def x_to_bbox(x: np.ndarray) -> Tuple[float, float, float, float]:
    u, v, s, r = (float(val) for val in x[:4, 0])
    w = np.sqrt(max(s * r, 0.0))
    h = s / w if w > 0 else 0.0
    return u - w / 2.0, v - h / 2.0, u + w / 2.0, v + h / 2.0


def iou_matrix(boxes_a: np.ndarray, boxes_b: np.ndarray) -> np.ndarray:
    """Pairwise IoU between (N, 4) and (M, 4) corner-form arrays."""
    if len(boxes_a) == 0 or len(boxes_b) == 0:
        return np.zeros((len(boxes_a), len(boxes_b)))
    a = boxes_a[:, None, :]
    b = boxes_b[None, :, :]
    xx1 = np.maximum(a[..., 0], b[..., 0])
    yy1 = np.maximum(a[..., 1], b[..., 1])
    xx2 = np.minimum(a[..., 2], b[..., 2])
    yy2 = np.minimum(a[..., 3], b[..., 3])
    inter = np.maximum(0.0, xx2 - xx1) * np.maximum(0.0, yy2 - yy1)
    area_a = (a[..., 2] - a[..., 0]) * (a[..., 3] - a[..., 1])
    area_b = (b[..., 2] - b[..., 0]) * (b[..., 3] - b[..., 1])
    union = area_a + area_b - inter
    return np.where(union > 0, inter / np.where(union > 0, union, 1.0), 0.0)


# ------------------------------------------------------------------ #
#   S I N G L E   T R A C K
# ------------------------------------------------------------------ #
class KalmanBoxTrack:
    def __init__(self, bbox: Sequence[float], track_id: int, cfg: TrackerConfig):
        # Constant velocity on centre and area, constant aspect ratio
        self.kf = KalmanFilter(dim_x=7, dim_z=4)
        self.kf.F = np.array(
            [
                [1, 0, 0, 0, 1, 0, 0],
                [0, 1, 0, 0, 0, 1, 0],
                [0, 0, 1, 0, 0, 0, 1],
                [0, 0, 0, 1, 0, 0, 0],
                [0, 0, 0, 0, 1, 0, 0],
                [0, 0, 0, 0, 0, 1, 0],
                [0, 0, 0, 0, 0, 0, 1],
            ],
            dtype=float,
        )
        self.kf.H = np.hstack([np.eye(4), np.zeros((4, 3))])

        # Measurement noise (R): area / ratio are noisier than the centre
        mvar = cfg.measurement_noise_std**2
        self.kf.R = np.eye(4) * mvar
        self.kf.R[2:, 2:] *= 10.0

        # Process noise (Q)
        pvar = cfg.process_noise_std**2
        self.kf.Q = np.eye(7) * pvar
        self.kf.Q[-1, -1] *= 0.01
        self.kf.Q[4:, 4:] *= 0.01

        # Initial covariance: velocities unobserved
        self.kf.P = np.eye(7) * 10.0
        self.kf.P[4:, 4:] = np.eye(3) * cfg.initial_velocity_error_std**2

        self.kf.x[:4] = bbox_to_z(bbox)

        self.track_id = track_id
        self.time_since_update = 0
        self.hits = 0
        self.hit_streak = 0
        self.age = 0

    def predict(self) -> Tuple[float, float, float, float]:
        # Keep the area non-negative
        if self.kf.x[6, 0] + self.kf.x[2, 0] <= 0:
            self.kf.x[6, 0] = 0.0
        self.kf.predict()
        self.age += 1
        if self.time_since_update > 0:
            self.hit_streak = 0
        self.time_since_update += 1
        return self.bbox()

    def update(self, bbox: Sequence[float]) -> None:
        self.time_since_update = 0
        self.hits += 1
        self.hit_streak += 1
        self.kf.update(bbox_to_z(bbox))

    def bbox(self) -> Tuple[float, float, float, float]:
        return x_to_bbox(self.kf.x)


# ------------------------------------------------------------------ #
#   M U L T I   T R A C K E R
# ------------------------------------------------------------------ #
class SortTracker:
    def __init__(self, cfg: TrackerConfig):
        self.cfg = cfg
        self.tracks: List[KalmanBoxTrack] = []
        self.frame_count = 0
        self._id_counter = 0

    def _next_id(self) -> int:
        self._id_counter += 1
        return self._id_counter

    def reset(self) -> None:
        """Forget every track (IDs keep counting up)."""
        self.tracks = []
        self.frame_count = 0

    def _associate(
        self, dets: np.ndarray, preds: np.ndarray
    ) -> Tuple[List[Tuple[int, int]], List[int], List[int]]:
        if len(preds) == 0:
            return [], list(range(len(dets))), []
        if len(dets) == 0:
            return [], [], list(range(len(preds)))

        iou = iou_matrix(dets, preds)
        rows, cols = linear_sum_assignment(-iou)

        matches = []
        unmatched_dets = set(range(len(dets)))
        unmatched_trks = set(range(len(preds)))
        for d, t in zip(rows, cols):
            if iou[d, t] < self.cfg.iou_threshold:
                continue
            matches.append((int(d), int(t)))
            unmatched_dets.discard(d)
            unmatched_trks.discard(t)
        return matches, sorted(unmatched_dets), sorted(unmatched_trks)

    def update(self, detections: Sequence[Detection]) -> List[TrackedBox]:
        """Feed one frame of detections (may be empty) and return live tracks."""
        self.frame_count += 1

        # Predict, dropping tracks whose state blew up
        preds = []
        alive = []
        for trk in self.tracks:
            box = trk.predict()
            if np.all(np.isfinite(box)):
                preds.append(box)
                alive.append(trk)
        self.tracks = alive
        pred_arr = np.asarray(preds, dtype=float).reshape(-1, 4)

        det_arr = np.asarray(
            [(d.x1, d.y1, d.x2, d.y2) for d in detections], dtype=float
        ).reshape(-1, 4)
        # Degenerate boxes have no aspect ratio
        keep = (det_arr[:, 2] > det_arr[:, 0]) & (det_arr[:, 3] > det_arr[:, 1])
        det_arr = det_arr[keep]

        matches, new_dets, _ = self._associate(det_arr, pred_arr)
        for d, t in matches:
            self.tracks[t].update(det_arr[d])
        for d in new_dets:
            self.tracks.append(KalmanBoxTrack(det_arr[d], self._next_id(), self.cfg))

        out: List[TrackedBox] = []
        for trk in self.tracks:
            if trk.time_since_update < 1 and (
                trk.hit_streak >= self.cfg.min_hits
                or self.frame_count <= self.cfg.min_hits
            ):
                x1, y1, x2, y2 = trk.bbox()
                out.append(TrackedBox(x1, y1, x2, y2, trk.track_id))

        self.tracks = [
            t for t in self.tracks if t.time_since_update <= self.cfg.max_age
        ]
        return out
