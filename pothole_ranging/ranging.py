# ranging.py
"""Per-frame glue: fuser → trig cache → contact-pixel back-projection."""
from __future__ import annotations

import math
import time
from typing import List, Optional, Sequence

from pothole_ranging.common import (
    ImuSample,
    PitchEstimate,
    PotholeReport,
    TrackedBox,
)
from pothole_ranging.config import CameraModelConfig, FuserConfig
from pothole_ranging.ground_projector import GroundProjector, contact_point
from pothole_ranging.pitch_fuser import PitchFuser

_NO_IMU = ImuSample()


class RangingCore:
    """Owns one pitch fuser and one ground projector for the life of a stream."""

    def __init__(self, camera_cfg: CameraModelConfig, fuser_cfg: FuserConfig):
        camera_cfg.validate()
        fuser_cfg.validate()
        self.camera_cfg = camera_cfg
        self.fuser_cfg = fuser_cfg

        self.fuser = PitchFuser(alpha=fuser_cfg.alpha)
        self.fuser.initialize(fuser_cfg.theta_init_rad)
        self.projector = GroundProjector(camera_cfg.intrinsics())

    # ------------------------------------------------------------------ #
    #   L I F E C Y C L E
    # ------------------------------------------------------------------ #
    def reset(self) -> None:
        """Re-seed θ with the configured initial pitch (e.g. on video loop)."""
        self.fuser.initialize(self.fuser_cfg.theta_init_rad)

    @property
    def theta_rad(self) -> float:
        return self.fuser.theta

    @property
    def theta_deg(self) -> float:
        return math.degrees(self.fuser.theta)

    # ------------------------------------------------------------------ #
    #   P I T C H
    # ------------------------------------------------------------------ #
    def update_pitch(
        self,
        dt: float,
        imu: Optional[ImuSample] = None,
        vision: Optional[PitchEstimate] = None,
    ) -> float:
        """Advance the fuser for one frame and refresh the trig cache once."""
        imu = imu or _NO_IMU
        self.fuser.propagate(imu.gyro_pitch_rate, dt)

        if imu.stationary and imu.accel_reliable:
            theta_abs = (
                imu.theta_abs_rad
                if imu.theta_abs_rad is not None
                else self.fuser_cfg.theta_init_rad
            )
            self.fuser.absolute_update(theta_abs, self.fuser_cfg.absolute_weight)
            self.fuser.learn_bias(imu.gyro_pitch_rate, self.fuser_cfg.bias_learn_rate)

        if vision is not None and vision.confidence > 0:
            self.fuser.vision_update(vision.theta_rad, vision.confidence)

        theta = self.fuser.theta
        self.projector.update_theta_cache(theta)
        return theta

    # ------------------------------------------------------------------ #
    #   R A N G I N G
    # ------------------------------------------------------------------ #
    def locate(
        self,
        tracks: Sequence[TrackedBox],
        img_h: int,
        frame_index: int,
        timestamp_ms: Optional[int] = None,
    ) -> List[PotholeReport]:
        """Back-project every track against the current cache; drop failures."""
        cfg = self.camera_cfg
        if timestamp_ms is None:
            timestamp_ms = int(time.time() * 1000)
        theta_deg = self.theta_deg

        reports: List[PotholeReport] = []
        for trk in tracks:
            x, y, w, h = trk.as_xywh()
            contact = contact_point((x, y, w, h), img_h, cfg.contact_bias_px)
            proj = self.projector.distance_from_pixel(
                contact, cfg.d_min_m, cfg.d_max_m, cfg.x_max_m
            )
            if not proj.valid:
                continue
            size = self.projector.estimate_area_m2(
                w, h, proj.distance_m, img_h, cfg.size_model
            )
            reports.append(
                PotholeReport(
                    track_id=trk.track_id,
                    distance_m=proj.distance_m,
                    lateral_m=proj.lateral_m,
                    size_m2=size,
                    frame=frame_index,
                    theta_deg=theta_deg,
                    timestamp_ms=timestamp_ms,
                    bbox_px=(x, y, w, h),
                    contact_px=contact,
                )
            )
        return reports

    def process_frame(
        self,
        dt: float,
        tracks: Sequence[TrackedBox],
        img_h: int,
        frame_index: int,
        imu: Optional[ImuSample] = None,
        vision: Optional[PitchEstimate] = None,
        timestamp_ms: Optional[int] = None,
    ) -> List[PotholeReport]:
        self.update_pitch(dt, imu, vision)
        return self.locate(tracks, img_h, frame_index, timestamp_ms)
