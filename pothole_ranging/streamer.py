# streamer.py
"""Fire-and-forget JSON push of pothole reports to the dashboard webhook."""
from __future__ import annotations

import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Optional, Sequence

import requests

from pothole_ranging.common import PotholeReport
from pothole_ranging.config import StreamerConfig


def _now_ms() -> int:
    return int(time.time() * 1000)


def single_payload(report: PotholeReport) -> Dict[str, Any]:
    return {
        "track_id": report.track_id,
        "distance_m": round(report.distance_m, 2),
        "lateral_m": round(report.lateral_m, 2),
        "frame": report.frame,
        "theta_deg": round(report.theta_deg, 2),
        "timestamp_ms": report.timestamp_ms,
    }


def batch_payload(
    reports: Sequence[PotholeReport],
    frame: int,
    theta_deg: float,
    timestamp_ms: Optional[int] = None,
) -> Dict[str, Any]:
    return {
        "frame": frame,
        "theta_deg": round(theta_deg, 2),
        "detections": [
            {
                "id": r.track_id,
                "d": round(r.distance_m, 2),
                "x": round(r.lateral_m, 2),
                "size": round(r.size_m2, 4),
            }
            for r in reports
        ],
        "timestamp_ms": _now_ms() if timestamp_ms is None else timestamp_ms,
    }


class DistanceStreamer:
    """
    Posts value copies of reports on a small worker pool. Network failures
    never reach the frame loop; they are only counted (first one printed).
    """

    def __init__(self, config: StreamerConfig, session: Optional[requests.Session] = None):
        self.config = config
        self._session = session or requests.Session()
        self._session.headers.update({"Content-Type": "application/json"})
        self._pool = ThreadPoolExecutor(
            max_workers=max(1, config.max_workers), thread_name_prefix="stream"
        )
        self._slots = threading.BoundedSemaphore(max(1, config.max_in_flight))
        self._lock = threading.Lock()
        self.sent = 0
        self.failed = 0
        self.dropped = 0

    # ------------------ Public API -------------------
    def send_detection(self, report: PotholeReport) -> None:
        self._submit(single_payload(report))

    def send_batch(
        self,
        reports: Sequence[PotholeReport],
        frame: int,
        theta_deg: float,
        timestamp_ms: Optional[int] = None,
    ) -> None:
        if not reports:
            return
        self._submit(batch_payload(reports, frame, theta_deg, timestamp_ms))

    def publish(self, reports: Sequence[PotholeReport], frame: int, theta_deg: float) -> None:
        """Send a frame's reports in the configured mode."""
        if not self.config.enabled or not reports:
            return
        if self.config.batch:
            self.send_batch(reports, frame, theta_deg, reports[0].timestamp_ms)
        else:
            for r in reports:
                self.send_detection(r)

    def close(self, wait: bool = True) -> None:
        self._pool.shutdown(wait=wait)
        self._session.close()

    # ----------------- Internal core -----------------
    def _submit(self, payload: Dict[str, Any]) -> None:
        if not self._slots.acquire(blocking=False):
            # Endpoint is not keeping up: drop instead of queueing stale frames
            with self._lock:
                self.dropped += 1
                self.failed += 1
                first = self.dropped == 1
            if first:
                print(f"[Stream] {self.config.endpoint_url} is falling behind, dropping posts")
            return
        try:
            future = self._pool.submit(self._post_json, payload)
        except RuntimeError:
            self._slots.release()
            return
        future.add_done_callback(lambda _: self._slots.release())

    def _post_json(self, payload: Dict[str, Any]) -> bool:
        try:
            resp = self._session.post(
                self.config.endpoint_url, json=payload, timeout=self.config.timeout_s
            )
            resp.raise_for_status()
        except requests.RequestException as exc:
            with self._lock:
                self.failed += 1
                first = self.failed == 1
            if first:
                print(f"[Stream] POST to {self.config.endpoint_url} failed: {exc}")
            return False
        with self._lock:
            self.sent += 1
        return True

    def __enter__(self) -> "DistanceStreamer":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
