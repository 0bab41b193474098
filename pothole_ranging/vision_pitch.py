# vision_pitch.py
"""Vision pitch sources: ``estimate(frame) -> PitchEstimate``."""
from __future__ import annotations

import math
from typing import Optional, Sequence, Tuple

import cv2
import numpy as np

from pothole_ranging.common import (
    CameraIntrinsics,
    ConfigurationError,
    PitchEstimate,
)
from pothole_ranging.config import VisionPitchConfig

NO_UPDATE = PitchEstimate(theta_rad=0.0, confidence=0.0)

Segment = Tuple[float, float, float, float]


# ------------------------------------------------------------------ #
#   G E O M E T R Y   H E L P E R S
# ------------------------------------------------------------------ #
def pitch_from_horizon_row(v_horizon: float, intrinsics: CameraIntrinsics) -> float:
    """Inverse of v_h = cy − fy·tanθ."""
    return math.atan((intrinsics.cy - v_horizon) / intrinsics.fy)


def vanishing_point(segments: Sequence[Segment]) -> Optional[Tuple[float, float]]:
    """
    Least-squares intersection of the infinite lines through ``segments``.

    Each segment contributes its unit normal (a, b) and offset d so that
    a·x + b·y = d, and the point minimising the summed squared distances is
    solved from AᵀA·p = Aᵀd; returns None when fewer than two usable segments are
    given or they are (numerically) parallel.
    """
    rows = []
    rhs = []
    for x1, y1, x2, y2 in segments:
        a, b = y2 - y1, x1 - x2
        norm = math.hypot(a, b)
        if norm < 1e-9:
            continue
        a, b = a / norm, b / norm
        rows.append((a, b))
        rhs.append(a * x1 + b * y1)
    if len(rows) < 2:
        return None

    A = np.asarray(rows, dtype=np.float64)
    d = np.asarray(rhs, dtype=np.float64)
    normal = A.T @ A
    if abs(np.linalg.det(normal)) < 1e-9:
        return None
    x, y = np.linalg.solve(normal, A.T @ d)
    if not (math.isfinite(x) and math.isfinite(y)):
        return None
    return float(x), float(y)


# ------------------------------------------------------------------ #
#   S O U R C E S
# ------------------------------------------------------------------ #
class NullVisionPitch:
    """No vision pitch available: always confidence 0, which the fuser skips."""

    def estimate(self, frame_bgr: np.ndarray) -> PitchEstimate:
        return NO_UPDATE


class VanishingPointPitch:
    """
    Pitch from the vanishing point of lane markings.

    Lane edges are found with Canny + probabilistic Hough in the lower part of
    the frame, split into left (negative slope) and right (positive slope)
    families, and intersected in a least-squares sense. The vanishing row is
    taken as the horizon row.
    """

    def __init__(self, config: VisionPitchConfig, intrinsics: CameraIntrinsics):
        self.config = config
        self.K = intrinsics

    def _detect_segments(self, frame_bgr: np.ndarray) -> np.ndarray:
        cfg = self.config
        gray = cv2.cvtColor(frame_bgr, cv2.COLOR_BGR2GRAY) if frame_bgr.ndim == 3 else frame_bgr
        blurred = cv2.GaussianBlur(gray, (5, 5), 0)
        edges = cv2.Canny(blurred, cfg.canny_low, cfg.canny_high)

        top = int(edges.shape[0] * cfg.roi_top_fraction)
        edges[:top, :] = 0

        lines = cv2.HoughLinesP(
            edges,
            rho=1,
            theta=np.pi / 180,
            threshold=cfg.hough_threshold,
            minLineLength=cfg.min_line_length_px,
            maxLineGap=cfg.max_line_gap_px,
        )
        if lines is None:
            return np.empty((0, 4), dtype=np.float64)
        return lines.reshape(-1, 4).astype(np.float64)

    def split_lanes(
        self, segments: np.ndarray, img_w: int
    ) -> Tuple[list, list]:
        """Keep lane-like slopes and split into (left, right) families."""
        left, right = [], []
        mid = img_w / 2.0
        for x1, y1, x2, y2 in segments:
            if x2 == x1:
                continue
            slope = (y2 - y1) / (x2 - x1)
            if not self.config.min_abs_slope <= abs(slope) <= self.config.max_abs_slope:
                continue
            cx = (x1 + x2) / 2.0
            if slope < 0 and cx < mid:
                left.append((x1, y1, x2, y2))
            elif slope > 0 and cx > mid:
                right.append((x1, y1, x2, y2))
        return left, right

    def estimate(self, frame_bgr: np.ndarray) -> PitchEstimate:
        if frame_bgr is None or frame_bgr.size == 0:
            return NO_UPDATE
        h, w = frame_bgr.shape[:2]

        left, right = self.split_lanes(self._detect_segments(frame_bgr), w)
        need = self.config.min_lines_per_side
        if len(left) < need or len(right) < need:
            return NO_UPDATE

        vp = vanishing_point(left + right)
        if vp is None:
            return NO_UPDATE
        _, v_vp = vp
        if not -h <= v_vp <= h:
            return NO_UPDATE

        support = min(len(left), len(right))
        confidence = self.config.max_confidence * min(1.0, support / (2.0 * need))
        return PitchEstimate(pitch_from_horizon_row(v_vp, self.K), confidence)


def build_vision_pitch(config: VisionPitchConfig, intrinsics: CameraIntrinsics):
    """Pick the vision pitch source named by ``config.method``."""
    if config.method == "none":
        return NullVisionPitch()
    if config.method == "vanishing":
        return VanishingPointPitch(config, intrinsics)
    raise ConfigurationError(f"unknown vision pitch method {config.method!r}")
