# common.py
"""Objects that are shared across multiple modules."""
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Optional, Tuple


class ConfigurationError(ValueError):
    """Raised when a component is built with parameters it cannot run with."""


@dataclass(frozen=True)
class CameraIntrinsics:
    """
    Pinhole model in pixels plus the mounting height of the optical centre
    above the road plane (metres).
    """
    fx: float
    fy: float
    cx: float
    cy: float
    mount_height_m: float

    def __post_init__(self) -> None:
        if not (self.fx > 0 and self.fy > 0):
            raise ConfigurationError(
                f"focal lengths must be positive (fx={self.fx}, fy={self.fy})"
            )
        if not self.mount_height_m > 0:
            raise ConfigurationError(
                f"mount height must be positive (H={self.mount_height_m})"
            )
        if not all(math.isfinite(v) for v in (self.fx, self.fy, self.cx, self.cy, self.mount_height_m)):
            raise ConfigurationError("intrinsics must be finite")


@dataclass(frozen=True)
class Detection:
    """Raw detector output in image coordinates (corner form)."""
    x1: float
    y1: float
    x2: float
    y2: float
    confidence: float
    class_id: int = 0


@dataclass(frozen=True)
class TrackedBox:
    """A tracker output: box corners plus a stable integer ID."""
    x1: float
    y1: float
    x2: float
    y2: float
    track_id: int

    def as_xywh(self) -> Tuple[int, int, int, int]:
        """Integer (x, y, w, h) with corners rounded to the nearest pixel."""
        ix1, iy1 = int(round(self.x1)), int(round(self.y1))
        ix2, iy2 = int(round(self.x2)), int(round(self.y2))
        return ix1, iy1, ix2 - ix1, iy2 - iy1


@dataclass(frozen=True)
class PitchEstimate:
    """Pitch evidence from a vision source; confidence 0 means "no update"."""
    theta_rad: float
    confidence: float


@dataclass(frozen=True)
class ImuSample:
    """
    One reading from the inertial source.

    ``theta_abs_rad`` is the accelerometer tilt, ``None`` when the sensor
    does not provide one.
    """
    gyro_pitch_rate: float = 0.0
    theta_abs_rad: Optional[float] = None
    stationary: bool = False
    accel_reliable: bool = False


@dataclass(frozen=True)
class Projection:
    """Result of a ground back-projection; ``valid`` is False on bad geometry."""
    distance_m: float
    lateral_m: float
    valid: bool

    @classmethod
    def invalid(cls) -> "Projection":
        return cls(0.0, 0.0, False)


@dataclass(frozen=True)
class PotholeReport:
    """Per-detection output pushed downstream."""
    track_id: int
    distance_m: float
    lateral_m: float
    size_m2: float
    frame: int
    theta_deg: float
    timestamp_ms: int
    bbox_px: Optional[Tuple[int, int, int, int]] = None
    contact_px: Optional[Tuple[float, float]] = None
