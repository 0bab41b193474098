# camera.py
"""cv2.VideoCapture over a recorded drive (file) or a live device index."""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Optional, Tuple

import cv2
import numpy as np

from pothole_ranging.config import VideoConfig


@dataclass(frozen=True)
class StreamInfo:
    width: int = 0
    height: int = 0
    fps: float = 0.0
    frame_count: int = 0      # 0 for live devices


class VideoSource:
    def __init__(self, config: VideoConfig) -> None:
        self.config = config
        self.info = StreamInfo()
        self._cap: Optional[cv2.VideoCapture] = None

    @property
    def is_file(self) -> bool:
        return not self.config.source.isdigit()

    @property
    def frame_count(self) -> int:
        return self.info.frame_count

    @property
    def position(self) -> int:
        """Index of the next frame a file source will decode."""
        if self._cap is None:
            return 0
        return int(self._cap.get(cv2.CAP_PROP_POS_FRAMES))

    # ------------------------------------------------------------------ #
    #   O P E N / C L O S E
    # ------------------------------------------------------------------ #
    def open(self) -> bool:
        """(Re)open the source; the previous capture is kept if this fails."""
        src = self.config.source
        cap = cv2.VideoCapture(src if self.is_file else int(src))
        if not cap.isOpened():
            print(f"[Video] Could not open source {src!r}")
            cap.release()
            return False

        if not self.is_file and self.config.buffer_size > 0:
            cap.set(cv2.CAP_PROP_BUFFERSIZE, self.config.buffer_size)

        info = StreamInfo(
            width=int(cap.get(cv2.CAP_PROP_FRAME_WIDTH)),
            height=int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT)),
            fps=float(cap.get(cv2.CAP_PROP_FPS) or 0.0),
            frame_count=max(0, int(cap.get(cv2.CAP_PROP_FRAME_COUNT))) if self.is_file else 0,
        )
        if info.width <= 0 or info.height <= 0:
            print(f"[Video] {src!r} reports no resolution, closing it")
            cap.release()
            return False

        self.release()
        self._cap, self.info = cap, info
        kind = f"{info.frame_count} frames" if self.is_file else "live"
        print(f"[Video] {src}: {info.width}x{info.height} @ {info.fps:.1f} FPS ({kind})")
        return True

    def release(self) -> None:
        if self._cap is not None:
            self._cap.release()
            self._cap = None

    def is_opened(self) -> bool:
        return self._cap is not None and self._cap.isOpened()

    # ------------------------------------------------------------------ #
    #   F R A M E S
    # ------------------------------------------------------------------ #
    def read(self) -> Tuple[float, Optional[np.ndarray]]:
        """(wall-clock seconds, frame); frame is None at end of file or on a dropped device."""
        ts = time.time()
        if self._cap is None:
            return ts, None
        ok, frame = self._cap.read()
        if not ok or frame is None or frame.size == 0:
            return ts, None
        return ts, frame

    def rewind(self) -> bool:
        """Seek a file source back to frame 0."""
        if self._cap is None or not self.is_file:
            return False
        return bool(self._cap.set(cv2.CAP_PROP_POS_FRAMES, 0))
