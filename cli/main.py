# main.py
"""
Entry-point for the pothole ranging pipeline.

    python -m cli.main --video road.mp4 --model best.pt --h_m 1.5 --theta_init_deg 15

Live-tuning
-----------
While the program is running you can edit ``runtime_params.json``; contact
bias, distance window, absolute-update weight, bias learning rate, the
stationary / accel-reliable flags and streaming on/off take effect on the
next frame.  See ``pothole_ranging/processor.py`` for the key names.
"""
from __future__ import annotations

import argparse
import sys
from typing import Optional, Sequence, Tuple

from pothole_ranging.common import ConfigurationError
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
from pothole_ranging.processor import PotholeProcessor


# ────────────────────────────────────────────────────────────────────────────
#   A R G U M E N T S
# ────────────────────────────────────────────────────────────────────────────
def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        description="YOLO + SORT pothole tracking with pitch-fused ground distance"
    )
    src = p.add_argument_group("input")
    src.add_argument("-v", "--video", required=True,
                     help="video file path or camera index")
    src.add_argument("-m", "--model", default="best.pt", help="YOLO weights")
    src.add_argument("--conf", type=float, default=0.5, help="detector confidence")
    src.add_argument("--no-loop", action="store_true", help="stop at end of file")
    src.add_argument("--fps", type=float, default=30.0, help="pacing target (0 = off)")

    cam = p.add_argument_group("camera model")
    cam.add_argument("--fx", type=float, default=600.0, help="fx (pixels)")
    cam.add_argument("--fy", type=float, default=600.0, help="fy (pixels)")
    cam.add_argument("--cx", type=float, default=320.0, help="cx (pixels)")
    cam.add_argument("--cy", type=float, default=240.0, help="cy (pixels)")
    cam.add_argument("--h_m", type=float, default=1.50, help="camera height H in metres")
    cam.add_argument("--contact-bias", type=float, default=2.0,
                     help="pixels below the box bottom used as contact point")
    cam.add_argument("--size-model", choices=("legacy", "pinhole"), default="legacy")

    pitch = p.add_argument_group("pitch")
    pitch.add_argument("--theta_init_deg", type=float, default=15.0,
                       help="initial pitch in degrees")
    pitch.add_argument("--alpha", type=float, default=0.985,
                       help="vision blend constant, in (0, 1)")
    pitch.add_argument("--imu-port", default=None, help="serial port of the IMU")
    pitch.add_argument("--imu-baud", type=int, default=115_200)
    pitch.add_argument("--vision", choices=("none", "vanishing"), default="none",
                       help="vision pitch source")

    out = p.add_argument_group("output")
    out.add_argument("--server", default="http://localhost:5001/webhook",
                     help="webhook receiving detections")
    out.add_argument("--no-stream", action="store_true")
    out.add_argument("--single", action="store_true",
                     help="one POST per detection instead of per frame")
    out.add_argument("--no-display", action="store_true", help="run headless")
    out.add_argument("--runtime-params", default="runtime_params.json")
    return p


def configs_from_args(args: argparse.Namespace) -> Tuple:
    """Map parsed options onto the config blobs (degrees stay degrees here)."""
    video = VideoConfig(source=args.video, loop=not args.no_loop, target_fps=args.fps)
    detector = DetectorConfig(model_path=args.model, min_confidence=args.conf)
    tracker = TrackerConfig()
    camera = CameraModelConfig(
        fx=args.fx,
        fy=args.fy,
        cx=args.cx,
        cy=args.cy,
        mount_height_m=args.h_m,
        contact_bias_px=args.contact_bias,
        size_model=args.size_model,
    )
    fuser = FuserConfig(alpha=args.alpha, theta_init_deg=args.theta_init_deg)
    imu = ImuConfig(port=args.imu_port, baudrate=args.imu_baud)
    vision = VisionPitchConfig(method=args.vision)
    streamer = StreamerConfig(
        enabled=not args.no_stream, endpoint_url=args.server, batch=not args.single
    )
    display = DisplayConfig(enabled=not args.no_display)

    camera.validate()
    fuser.validate()
    return video, detector, tracker, camera, fuser, imu, vision, streamer, display


# ────────────────────────────────────────────────────────────────────────────
#   M A I N
# ────────────────────────────────────────────────────────────────────────────
def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        cfgs = configs_from_args(args)
    except ConfigurationError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2
    video, detector, tracker, camera, fuser, imu, vision, streamer, display = cfgs

    # ------------------------ Banner ----------------------
    print("=" * 50)
    print("Running Inference + Distance + Real-time Stream")
    print("=" * 50)
    print(f"Video: {video.source} (loop={video.loop})")
    print(f"Model: {detector.model_path} (conf={detector.min_confidence})")
    print(f"fx={camera.fx} fy={camera.fy} cx={camera.cx} cy={camera.cy}")
    print(f"H={camera.mount_height_m} m, theta_init={fuser.theta_init_deg} deg, alpha={fuser.alpha}")
    print(f"IMU: {imu.port or 'DISABLED'}, vision pitch: {vision.method}")
    if streamer.enabled:
        print(f"Streaming to: {streamer.endpoint_url} ({'batch' if streamer.batch else 'single'})")
    else:
        print("Streaming: DISABLED")
    print("=" * 50)

    # ------------------------ Run -------------------------
    PotholeProcessor(
        video, detector, tracker, camera, fuser, imu, vision, streamer, display,
        runtime_params_path=args.runtime_params,
    ).run()
    print("Main program finished.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
