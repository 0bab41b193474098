# processor.py
"""Video → detector → tracker → pitch fusion → ranging → webhook glue.

Live tuning
-----------
Edit ``runtime_params.json`` while the program runs; recognised keys are
``contact_bias_px``, ``absolute_weight``, ``bias_learn_rate``, ``d_min_m``,
``d_max_m``, ``x_max_m``, ``stationary``, ``accel_reliable`` and
``stream_enabled``. ``stationary`` / ``accel_reliable`` override the IMU
flags (set them to ``null`` to hand control back to the sensor).
"""
from __future__ import annotations

import dataclasses
import time
import traceback
from typing import List, Optional, Sequence, Set

import cv2
import numpy as np
import serial

from pothole_ranging.camera import VideoSource
from pothole_ranging.common import ImuSample, PotholeReport, TrackedBox
from pothole_ranging.config import (
    CameraModelConfig,
    DetectorConfig,
    DisplayConfig,
    FuserConfig,
    ImuConfig,
    StreamerConfig,
    TrackerConfig,
    VideoConfig,
    VisionPitchConfig,
)
from pothole_ranging.detector import YoloPotholeDetector
from pothole_ranging.helpers import FrameClock, FramePacer, RateMeter
from pothole_ranging.imu import NullImu, SerialImu
from pothole_ranging.live_tuning import RuntimeParamWatcher
from pothole_ranging.ranging import RangingCore
from pothole_ranging.streamer import DistanceStreamer
from pothole_ranging.tracker import SortTracker
from pothole_ranging.vision_pitch import build_vision_pitch

_KEY_ESC = 27


def _track_colors(n: int = 100) -> List[tuple]:
    rng = np.random.default_rng(n)
    return [tuple(int(c) for c in rgb) for rgb in rng.integers(0, 255, size=(n, 3))]


class PotholeProcessor:
    """The main high-level orchestrator."""

    # ------------------------------------------------------------------ #
    #   I N I T
    # ------------------------------------------------------------------ #
    def __init__(
        self,
        video_cfg: VideoConfig,
        detector_cfg: DetectorConfig,
        tracker_cfg: TrackerConfig,
        camera_cfg: CameraModelConfig,
        fuser_cfg: FuserConfig,
        imu_cfg: ImuConfig,
        vision_cfg: VisionPitchConfig,
        streamer_cfg: StreamerConfig,
        display_cfg: DisplayConfig,
        *,
        runtime_params_path: str = "runtime_params.json",
        detector=None,
    ):
        # Config blobs --------------------------------------------------
        self.video_cfg = video_cfg
        self.detector_cfg = detector_cfg
        self.tracker_cfg = tracker_cfg
        self.camera_cfg = camera_cfg
        self.fuser_cfg = fuser_cfg
        self.imu_cfg = imu_cfg
        self.vision_cfg = vision_cfg
        self.streamer_cfg = streamer_cfg
        self.display_cfg = display_cfg

        # Core pipeline objects ----------------------------------------
        self.core = RangingCore(camera_cfg, fuser_cfg)
        self.video = VideoSource(video_cfg)
        self.detector = detector or YoloPotholeDetector(detector_cfg)
        self.tracker = SortTracker(tracker_cfg)
        self.vision = build_vision_pitch(vision_cfg, camera_cfg.intrinsics())
        self.streamer = DistanceStreamer(streamer_cfg)

        # IMU -----------------------------------------------------------
        self.imu = NullImu() if not imu_cfg.port else SerialImu(
            imu_cfg.port, imu_cfg.baudrate, imu_cfg.timeout
        )
        self.imu_ok = isinstance(self.imu, NullImu)
        self.last_imu_error = 0.0
        self.stationary_override: Optional[bool] = None
        self.accel_reliable_override: Optional[bool] = None

        # Timing & stats ------------------------------------------------
        self.clock = FrameClock()
        self.pacer = FramePacer(video_cfg.target_fps)
        self.rate = RateMeter()
        self.frame_index = 0
        self.total_frames = 0
        self.cam_reopens = 0
        self.start_time = time.time()
        self.reported_ids: Set[int] = set()
        self.last_tracks: List[TrackedBox] = []
        self.last_reports: List[PotholeReport] = []
        self.last_valid_frame: Optional[np.ndarray] = None
        self.colors = _track_colors()

        # Live tuning ---------------------------------------------------
        self.param_watcher = RuntimeParamWatcher(runtime_params_path)
        self._apply_runtime_params(initial=True)

    # ------------------------------------------------------------------ #
    #   L I V E   T U N I N G
    # ------------------------------------------------------------------ #
    def _apply_runtime_params(self, *, initial: bool = False) -> None:
        """Push JSON parameters into the camera / fuser / streamer configs."""
        w = self.param_watcher
        cam = self.camera_cfg

        bias = w.get_float("contact_bias_px")
        if bias is not None and bias >= 0:
            cam.contact_bias_px = bias

        d_min = w.get_float("d_min_m")
        d_max = w.get_float("d_max_m")
        d_min = cam.d_min_m if d_min is None else d_min
        d_max = cam.d_max_m if d_max is None else d_max
        if 0 <= d_min < d_max:
            cam.d_min_m, cam.d_max_m = d_min, d_max
        else:
            print(f"[Runtime] Ignoring distance range [{d_min}, {d_max}]")

        x_max = w.get_float("x_max_m")
        if x_max is not None and x_max > 0:
            cam.x_max_m = x_max

        weight = w.get_float("absolute_weight")
        if weight is not None:
            self.fuser_cfg.absolute_weight = min(1.0, max(0.0, weight))
        rate = w.get_float("bias_learn_rate")
        if rate is not None:
            self.fuser_cfg.bias_learn_rate = min(1.0, max(0.0, rate))

        self.stationary_override = w.get_bool("stationary")
        self.accel_reliable_override = w.get_bool("accel_reliable")

        stream = w.get_bool("stream_enabled")
        if stream is not None:
            self.streamer_cfg.enabled = stream

        if not initial:
            print("[Runtime] Parameters updated.")

    # ------------------------------------------------------------------ #
    #   S E T U P / C L E A N U P
    # ------------------------------------------------------------------ #
    def setup(self) -> bool:
        if not self.video.open():
            return False
        self.cam_reopens = 0

        if isinstance(self.imu, SerialImu):
            try:
                self.imu.open()
                self.imu_ok = True
                print(f"[IMU] Connected: {self.imu!r}")
            except (serial.SerialException, OSError) as exc:
                print(f"[IMU] Init error: {exc}")
                self.imu_ok = False
                self.last_imu_error = time.time()

        if self.display_cfg.enabled:
            cv2.namedWindow(self.display_cfg.window_name, cv2.WINDOW_NORMAL)
            cv2.resizeWindow(self.display_cfg.window_name, *self.display_cfg.window_size)

        self.start_time = time.time()
        self.clock.reset()
        print("[Processor] Setup complete – press ESC or 'q' to quit.")
        return True

    def cleanup(self) -> None:
        print("[Processor] Cleaning up…")
        self.video.release()
        self.detector.close()
        try:
            self.imu.close()
        except (serial.SerialException, OSError) as exc:
            print(f"[IMU] Close failed: {exc}")
        self.streamer.close(wait=False)
        if self.display_cfg.enabled:
            cv2.destroyAllWindows()

        elapsed = max(time.time() - self.start_time, 1e-9)
        print("[Processor] Tracking complete")
        print(f"  Frames processed : {self.total_frames}")
        print(f"  Total time       : {elapsed:.1f} s")
        print(f"  Average FPS      : {self.total_frames / elapsed:.2f}")
        print(f"  Posts sent/failed: {self.streamer.sent}/{self.streamer.failed}")

    # ------------------------------------------------------------------ #
    #   I M U
    # ------------------------------------------------------------------ #
    def _poll_imu(self, now: float) -> ImuSample:
        if not self.imu_ok and now - self.last_imu_error > self.imu_cfg.reconnect_cooldown_s:
            try:
                self.imu.open()
                self.imu_ok = self.imu.is_open()
            except (serial.SerialException, OSError):
                self.last_imu_error = now

        sample = ImuSample()
        if self.imu_ok:
            try:
                sample = self.imu.poll()
            except (serial.SerialException, OSError, RuntimeError) as exc:
                print(f"[IMU] Read error: {exc}")
                self.imu_ok = False
                self.last_imu_error = now
                try:
                    self.imu.close()
                except (serial.SerialException, OSError):
                    pass

        if self.stationary_override is not None:
            sample = dataclasses.replace(sample, stationary=self.stationary_override)
        if self.accel_reliable_override is not None:
            sample = dataclasses.replace(sample, accel_reliable=self.accel_reliable_override)
        return sample

    # ------------------------------------------------------------------ #
    #   D R A W I N G   U T I L S
    # ------------------------------------------------------------------ #
    def _draw_overlay(
        self,
        img: np.ndarray,
        tracks: Sequence[TrackedBox],
        reports: Sequence[PotholeReport],
    ) -> None:
        by_id = {r.track_id: r for r in reports}
        img_h = img.shape[0]

        for trk in tracks:
            x, y, w, h = trk.as_xywh()
            color = self.colors[trk.track_id % len(self.colors)]
            cv2.rectangle(img, (x, y), (x + w, y + h), color, 2)

            label = f"ID:{trk.track_id}"
            rpt = by_id.get(trk.track_id)
            if rpt is not None:
                label += f"|{int(rpt.distance_m + 0.5)}m"
                cx, cy = map(int, rpt.contact_px)
                cv2.circle(img, (cx, cy), 3, (0, 255, 0), -1)

            (tw, th), _ = cv2.getTextSize(label, cv2.FONT_HERSHEY_SIMPLEX, 0.5, 1)
            ty = y - 5 if y - 5 >= th else y + th + 5
            cv2.rectangle(img, (x, ty - th - 3), (x + tw + 4, ty + 2), color, cv2.FILLED)
            cv2.putText(img, label, (x + 2, ty), cv2.FONT_HERSHEY_SIMPLEX, 0.5, (255, 255, 255), 1)

        v_h = self.core.projector.horizon_row()
        if 0 <= v_h < img_h:
            cv2.line(img, (0, int(v_h)), (img.shape[1] - 1, int(v_h)), (255, 128, 0), 1)

        total = self.video.frame_count or "?"
        hud = (
            f"Frame: {self.frame_index}/{total} | Tracks: {len(tracks)} "
            f"| theta: {self.core.theta_deg:.2f} deg | Streaming: {len(reports)} potholes"
        )
        cv2.putText(img, hud, (10, 30), cv2.FONT_HERSHEY_SIMPLEX, 0.7, (0, 255, 0), 2)
        cv2.putText(
            img,
            f"FPS:{self.rate.fps:.1f} Proc:{self.rate.proc_ms_avg:.1f}ms",
            (10, 60),
            cv2.FONT_HERSHEY_SIMPLEX,
            0.6,
            (0, 255, 0),
            1,
        )

    # ------------------------------------------------------------------ #
    #   F R A M E   P R O C E S S I N G
    # ------------------------------------------------------------------ #
    def _restart_stream(self) -> None:
        """Video looped: start over with fresh tracks and the initial pitch."""
        print("[Processor] End of video reached, looping back to start")
        self.frame_index = 0
        self.tracker.reset()
        self.core.reset()
        self.clock.reset()

    def handle_frame(self, bgr: np.ndarray, now: Optional[float] = None) -> List[PotholeReport]:
        """Run one BGR frame through pitch fusion, detection, tracking and ranging."""
        now = time.time() if now is None else now
        self.frame_index += 1
        self.total_frames += 1

        dt = self.clock.tick()
        imu = self._poll_imu(now)
        vision = self.vision.estimate(bgr)
        self.core.update_pitch(dt, imu, vision)

        detections = self.detector.detect(bgr)
        tracks = self.tracker.update(detections)
        reports = self.core.locate(
            tracks, bgr.shape[0], self.frame_index, int(now * 1000)
        )
        self.streamer.publish(reports, self.frame_index, self.core.theta_deg)

        for r in reports:
            if r.track_id not in self.reported_ids:
                self.reported_ids.add(r.track_id)
                print(
                    f"[Processor] Pothole #{r.track_id} at frame {r.frame}: "
                    f"D={r.distance_m:.2f} m, X={r.lateral_m:+.2f} m, "
                    f"~{r.size_m2:.3f} m²"
                )

        self.last_tracks = tracks
        self.last_reports = reports
        return reports

    def _process_frame(self) -> bool:
        """Returns False if the caller should exit the main loop."""
        if self.param_watcher.maybe_reload():
            self._apply_runtime_params()

        ts, frame = self.video.read()
        if frame is None:
            if self.video.is_opened() and self.video.is_file:
                if self.video_cfg.loop and self.video.rewind():
                    self._restart_stream()
                    return True
                return False

            # Device dropped out: try to reopen a few times
            if self.cam_reopens >= self.video_cfg.max_reopens:
                print("[Video] Giving up after repeated reopen failures")
                return False
            if self.video.open():
                self.cam_reopens = 0
            else:
                self.cam_reopens += 1
            if self.display_cfg.enabled and self.last_valid_frame is not None:
                disp = self.last_valid_frame.copy()
                cv2.putText(disp, "Video Err", (50, 50), cv2.FONT_HERSHEY_SIMPLEX, 0.8, (0, 0, 255), 2)
                cv2.imshow(self.display_cfg.window_name, disp)
            time.sleep(0.05)
            return True

        # Ensure BGR
        if frame.ndim == 2 or (frame.ndim == 3 and frame.shape[2] == 1):
            bgr = cv2.cvtColor(frame, cv2.COLOR_GRAY2BGR)
        elif frame.ndim == 3 and frame.shape[2] == 4:
            bgr = cv2.cvtColor(frame, cv2.COLOR_BGRA2BGR)
        else:
            bgr = frame

        tic = time.time()
        reports = self.handle_frame(bgr, ts)
        self.rate.add((time.time() - tic) * 1000.0)

        every = self.display_cfg.progress_every_n_frames
        if every > 0 and self.frame_index % every == 0:
            total = self.video.frame_count
            pct = f" ({self.frame_index * 100 // total}%)" if total else ""
            print(
                f"[Processor] Progress: {self.frame_index}/{total or '?'}{pct} "
                f"| FPS: {self.rate.fps:.2f} | theta: {self.core.theta_deg:.2f} deg"
            )

        if self.display_cfg.enabled:
            self.last_valid_frame = bgr
            out = bgr.copy()
            self._draw_overlay(out, self.last_tracks, reports)
            cv2.imshow(self.display_cfg.window_name, out)
        return True

    # ------------------------------------------------------------------ #
    #   R U N   L O O P
    # ------------------------------------------------------------------ #
    def _wait_for_key(self) -> int:
        if self.pacer.frame_time_ms > 0:
            wait = self.pacer.wait_ms()
        else:
            wait = 1
        if self.display_cfg.enabled:
            key = cv2.waitKey(wait) & 0xFF
        else:
            time.sleep(wait / 1000.0)
            key = -1
        self.pacer.mark()
        return key

    def run(self) -> None:
        if not self.setup():
            self.cleanup()
            return

        try:
            while True:
                if not self._process_frame():
                    break
                key = self._wait_for_key()
                if key in (_KEY_ESC, ord("q")):
                    print("\n[Processor] Exit requested.")
                    break
        except KeyboardInterrupt:
            print("\n[Processor] Stopped by user.")
        except Exception as exc:                           # noqa: BLE001
            print(f"[Processor] Main loop error: {exc}")
            traceback.print_exc()
        finally:
            self.cleanup()
