# imu.py
"""Serial inertial source speaking a one-line ASCII protocol.

Each reading is a single line:

    IMU <gyro_pitch_rate_rad_s> <theta_abs_rad|nan> <stationary 0/1> <accel_ok 0/1>
"""
from __future__ import annotations

import math
import re
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import serial

from pothole_ranging.common import ImuSample


# ------------------- Exceptions / patterns -------------------
class ImuProtocolError(RuntimeError):
    """Raised when the sensor sends a line that does not follow the protocol."""


_NUM = r"[-+]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][-+]?\d+)?|nan|NaN"
_LINE_BYTES = 128
_IMU_LINE = re.compile(
    rf"^IMU\s+({_NUM})\s+({_NUM})\s+([01])\s+([01])$"
)


def parse_imu_line(line: str) -> ImuSample:
    m = _IMU_LINE.match(line.strip())
    if not m:
        raise ImuProtocolError(f"Unexpected IMU line: {line!r}")
    gyro = float(m.group(1))
    theta_abs = float(m.group(2))
    return ImuSample(
        gyro_pitch_rate=gyro,
        theta_abs_rad=theta_abs if math.isfinite(theta_abs) else None,
        stationary=m.group(3) == "1",
        accel_reliable=m.group(4) == "1",
    )


# ------------------ Internal dataclass -------------------
@dataclass
class _SerialCfg:
    port: str
    baudrate: int = 115_200
    timeout: float = 0.0


# ---------------------- Sources ----------------------
class NullImu:
    """No inertial hardware: ω = 0 and both flags false, so θ coasts."""

    def open(self) -> None:
        pass

    def close(self) -> None:
        pass

    def is_open(self) -> bool:
        return True

    def poll(self) -> ImuSample:
        return ImuSample()


class SerialImu:
    """Non-blocking reader that keeps the most recent sample."""

    def __init__(
        self,
        port: str | Path,
        baudrate: int = 115_200,
        timeout: float = 0.0,
        *,
        max_lines_per_poll: int = 256,
    ):
        self._cfg = _SerialCfg(str(port), baudrate, timeout)
        self._max_lines = max_lines_per_poll
        self._max_buf = max_lines_per_poll * _LINE_BYTES
        self._ser: Optional[serial.Serial] = None
        self._lock = threading.Lock()
        self._buf = b""
        self.latest = ImuSample()
        self.bad_lines = 0

    # ---------------- Serial plumbing ----------------
    def open(self) -> None:
        if self._ser and self._ser.is_open:
            return
        self._ser = serial.Serial(
            port=self._cfg.port,
            baudrate=self._cfg.baudrate,
            timeout=self._cfg.timeout,
            bytesize=serial.EIGHTBITS,
            parity=serial.PARITY_NONE,
            stopbits=serial.STOPBITS_ONE,
        )
        time.sleep(0.2)
        if self._ser.is_open:
            self._ser.reset_input_buffer()
        self._buf = b""

    def close(self) -> None:
        if self._ser and self._ser.is_open:
            self._ser.close()
        self._ser = None

    def is_open(self) -> bool:
        return bool(self._ser and self._ser.is_open)

    # ------------------ Public API -------------------
    def poll(self) -> ImuSample:
        """
        Drain whatever the port has buffered and return the newest valid
        sample (or the previous one if nothing new arrived). Malformed lines
        are counted and skipped; serial errors propagate to the caller.
        """
        if not self.is_open():
            raise RuntimeError("Serial port is not open")
        with self._lock:
            waiting = self._ser.in_waiting
            if waiting:
                self._buf += self._ser.read(waiting)
            *lines, self._buf = self._buf.split(b"\n")
            if len(self._buf) > self._max_buf:
                # No newline for too long: keep only the tail
                self._buf = self._buf[-self._max_buf:]
                self.bad_lines += 1
            for raw in lines[-self._max_lines:]:
                line = raw.decode(errors="replace").strip()
                if not line:
                    continue
                try:
                    self.latest = parse_imu_line(line)
                except ImuProtocolError:
                    self.bad_lines += 1
            return self.latest

    # ---------------- Context / repr ---------------
    def __enter__(self) -> "SerialImu":
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "open" if self.is_open() else "closed"
        return f"<SerialImu port={self._cfg.port!r} ({state})>"
