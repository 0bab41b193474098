# config.py
"""Typed configuration blobs for the whole system."""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import List, Optional

from pothole_ranging.common import CameraIntrinsics, ConfigurationError


# ----------------------- Video ----------------------
@dataclass
class VideoConfig:
    source: str = "0"              # file path, or a device index given as digits
    loop: bool = True              # rewind at end of file
    target_fps: float = 30.0       # 0 disables pacing
    buffer_size: int = 1
    max_reopens: int = 5


# --------------------- Detector ---------------------
@dataclass
class DetectorConfig:
    model_path: str = "best.pt"
    min_confidence: float = 0.5
    iou_threshold: float = 0.4
    input_size: int = 640
    min_bbox_size_px: int = 4
    class_ids: Optional[List[int]] = None   # None keeps every class
    device: Optional[str] = None            # "cpu", "cuda:0", ... (None = auto)


# ---------------------- Tracker ---------------------
@dataclass
class TrackerConfig:
    max_age: int = 30
    min_hits: int = 3
    iou_threshold: float = 0.3
    measurement_noise_std: float = 1.0
    process_noise_std: float = 1.0
    initial_velocity_error_std: float = 100.0


# ------------------- Camera model -------------------
@dataclass
class CameraModelConfig:
    fx: float = 600.0
    fy: float = 600.0
    cx: float = 320.0
    cy: float = 240.0
    mount_height_m: float = 1.50
    contact_bias_px: float = 2.0
    d_min_m: float = 0.5
    d_max_m: float = 200.0
    x_max_m: float = 50.0
    size_model: str = "legacy"     # "legacy" or "pinhole"

    def validate(self) -> None:
        if not self.d_min_m < self.d_max_m:
            raise ConfigurationError(
                f"d_min_m ({self.d_min_m}) must be below d_max_m ({self.d_max_m})"
            )
        if not self.x_max_m > 0:
            raise ConfigurationError(f"x_max_m must be positive ({self.x_max_m})")
        if self.size_model not in ("legacy", "pinhole"):
            raise ConfigurationError(f"unknown size model {self.size_model!r}")
        self.intrinsics()

    def intrinsics(self) -> CameraIntrinsics:
        return CameraIntrinsics(
            fx=self.fx,
            fy=self.fy,
            cx=self.cx,
            cy=self.cy,
            mount_height_m=self.mount_height_m,
        )


# ---------------------- Fuser -----------------------
@dataclass
class FuserConfig:
    alpha: float = 0.985
    theta_init_deg: float = 15.0
    absolute_weight: float = 0.3
    bias_learn_rate: float = 0.002

    @property
    def theta_init_rad(self) -> float:
        return math.radians(self.theta_init_deg)

    def validate(self) -> None:
        if not 0.0 < self.alpha < 1.0:
            raise ConfigurationError(f"alpha must lie in (0, 1), got {self.alpha}")
        if not math.isfinite(self.theta_init_deg):
            raise ConfigurationError("theta_init_deg must be finite")


# ----------------------- IMU ------------------------
@dataclass
class ImuConfig:
    port: Optional[str] = None     # e.g. "/dev/ttyUSB0"; None = no IMU
    baudrate: int = 115_200
    timeout: float = 0.0           # non-blocking reads
    reconnect_cooldown_s: float = 15.0


# ------------------- Vision pitch -------------------
@dataclass
class VisionPitchConfig:
    method: str = "none"           # "none" or "vanishing"
    canny_low: int = 50
    canny_high: int = 150
    hough_threshold: int = 40
    min_line_length_px: int = 40
    max_line_gap_px: int = 20
    min_abs_slope: float = 0.3
    max_abs_slope: float = 3.0
    roi_top_fraction: float = 0.5  # ignore rows above this fraction of the height
    min_lines_per_side: int = 2
    max_confidence: float = 0.9


# --------------------- Streamer ---------------------
@dataclass
class StreamerConfig:
    enabled: bool = True
    endpoint_url: str = "http://localhost:5001/webhook"
    timeout_s: float = 1.0
    batch: bool = True
    max_workers: int = 2
    max_in_flight: int = 8         # queued + running POSTs; extra frames are dropped


# -------------------- Processor ---------------------
@dataclass
class DisplayConfig:
    enabled: bool = True
    window_name: str = "YOLO + SORT + Distance"
    window_size: List[int] = field(default_factory=lambda: [1280, 720])
    progress_every_n_frames: int = 30
