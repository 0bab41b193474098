# ground_projector.py
"""Flat-ground back-projection of a contact pixel into metric (D, X).

For a pinhole camera pitched down by θ at height H above a flat road, a pixel
(u, v) on the road maps to

    D = H·cosθ / (sinθ + y_n·cosθ)        X = D·x_n

with x_n = (u − cx)/fx and y_n = (v − cy)/fy.  sinθ, cosθ and H·cosθ are
cached per frame so a query costs a couple of multiply/divides.
"""
from __future__ import annotations

import math
from typing import Tuple

from pothole_ranging.common import CameraIntrinsics, Projection

_THETA_EPS = 1e-6
_DENOM_EPS = 1e-4


def contact_point(
    bbox: Tuple[float, float, float, float], img_h: int, bias_px: float = 2.0
) -> Tuple[float, float]:
    """
    Bottom-centre of an (x, y, w, h) box nudged ``bias_px`` below the box
    bottom (detectors tend to crop the object extent), kept inside the image.
    """
    x, y, w, h = bbox
    return x + w * 0.5, min(img_h - 1, y + h - 1 + bias_px)


class GroundProjector:
    # ------------------------------------------------------------------ #
    #   I N I T
    # ------------------------------------------------------------------ #
    def __init__(self, intrinsics: CameraIntrinsics):
        self.K = intrinsics
        self.H = intrinsics.mount_height_m

        # Cache starts consistent with θ = 0
        self._cached_theta = 0.0
        self._cached_sin = 0.0
        self._cached_cos = 1.0
        self._cached_h_cos = self.H

    @property
    def cached_theta(self) -> float:
        return self._cached_theta

    # ------------------------------------------------------------------ #
    #   T R I G   C A C H E
    # ------------------------------------------------------------------ #
    def update_theta_cache(self, theta_rad: float) -> None:
        """Call once per frame, before any ``distance_from_pixel``."""
        if not math.isfinite(theta_rad):
            # Poisoned cache: every query fails the denominator guard
            self._cached_theta = theta_rad
            self._cached_sin = self._cached_cos = self._cached_h_cos = math.nan
            return
        if (
            not math.isfinite(self._cached_theta)
            or abs(theta_rad - self._cached_theta) > _THETA_EPS
        ):
            self._cached_theta = theta_rad
            self._cached_sin = math.sin(theta_rad)
            self._cached_cos = math.cos(theta_rad)
            self._cached_h_cos = self.H * self._cached_cos

    # ------------------------------------------------------------------ #
    #   Q U E R I E S
    # ------------------------------------------------------------------ #
    def distance_from_pixel(
        self,
        px: Tuple[float, float],
        d_min: float = 0.5,
        d_max: float = 200.0,
        x_max: float = 50.0,
    ) -> Projection:
        """
        Back-project ``px`` onto the road using the cached pitch.

        Returns an invalid ``Projection`` for pixels at or above the horizon
        (or a degenerate pitch). Results are clamped to the trusted strip
        [d_min, d_max] × [−x_max, x_max]; clamping still counts as valid.
        """
        u, v = px
        yn = (v - self.K.cy) / self.K.fy
        xn = (u - self.K.cx) / self.K.fx

        denom = self._cached_sin + yn * self._cached_cos
        if not denom > _DENOM_EPS:
            return Projection.invalid()

        d = self._cached_h_cos / denom
        if not math.isfinite(d) or d < 0:
            return Projection.invalid()

        x = d * xn

        d = max(d_min, min(d_max, d))
        x = max(-x_max, min(x_max, x))
        return Projection(d, x, True)

    def horizon_row(self) -> float:
        """Image row where the road plane meets infinity for the cached θ."""
        return self.K.cy - self.K.fy * math.tan(self._cached_theta)

    def estimate_area_m2(
        self, w_px: float, h_px: float, distance_m: float, img_h: int,
        model: str = "legacy",
    ) -> float:
        """
        Rough physical footprint of a box at ``distance_m``.

        ``legacy`` keeps the historical D / (img_h / 2) metres-per-pixel scale
        that the dashboard was tuned against; ``pinhole`` uses the focal
        lengths instead (w·h·D² / (fx·fy)).
        """
        if model == "pinhole":
            return w_px * h_px * distance_m * distance_m / (self.K.fx * self.K.fy)
        if img_h <= 0:
            return 0.0
        scale = distance_m / (img_h * 0.5)
        return (w_px * scale) * (h_px * scale)
