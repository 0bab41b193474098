# pitch_fuser.py
"""Complementary filter for camera pitch against the road plane.

Three kinds of evidence arrive at different rates:

* gyro pitch rate (high rate, precise over short intervals, drifts),
* accelerometer tilt (absolute, only trustworthy when stationary),
* vision pitch (horizon / vanishing point) with a caller confidence.

θ is in radians, positive when the optical axis tilts down toward the road.
The filter never raises once built: non-finite inputs are dropped and every
weight is clamped to [0, 1].
"""
from __future__ import annotations

import math

from pothole_ranging.common import ConfigurationError


def _clamp01(v: float) -> float:
    return 0.0 if v < 0.0 else (1.0 if v > 1.0 else v)


def _finite(*values: float) -> bool:
    return all(math.isfinite(v) for v in values)


class PitchFuser:
    DEFAULT_ALPHA = 0.985
    DEFAULT_BIAS_LEARN_RATE = 0.002

    # ------------------------------------------------------------------ #
    #   I N I T
    # ------------------------------------------------------------------ #
    def __init__(self, alpha: float = DEFAULT_ALPHA):
        if not (isinstance(alpha, (int, float)) and 0.0 < alpha < 1.0):
            raise ConfigurationError(f"alpha must lie in (0, 1), got {alpha!r}")
        self.alpha = float(alpha)
        self._theta = 0.0
        self._bias = 0.0
        self._initialized = False

    # ------------------------------------------------------------------ #
    #   S T A T E
    # ------------------------------------------------------------------ #
    @property
    def theta(self) -> float:
        """Current pitch estimate (the last seed before initialization)."""
        return self._theta

    @property
    def bias(self) -> float:
        return self._bias

    @property
    def initialized(self) -> bool:
        return self._initialized

    # ------------------------------------------------------------------ #
    #   U P D A T E S
    # ------------------------------------------------------------------ #
    def initialize(self, theta0: float) -> None:
        """Seed θ, typically from averaged accelerometer tilt at standstill."""
        if not _finite(theta0):
            return
        self._theta = float(theta0)
        self._initialized = True

    def propagate(self, gyro_pitch_rate: float, dt: float) -> None:
        """Integrate the bias-compensated gyro rate over ``dt`` seconds."""
        if not self._initialized or not _finite(gyro_pitch_rate, dt):
            return
        self._theta += (gyro_pitch_rate - self._bias) * dt

    def absolute_update(self, theta_abs: float, weight: float = 0.2) -> None:
        """Blend toward accelerometer tilt; meant for the stationary regime."""
        if not _finite(theta_abs, weight):
            return
        if not self._initialized:
            self.initialize(theta_abs)
            return
        w = _clamp01(weight)
        self._theta = w * theta_abs + (1.0 - w) * self._theta

    def vision_update(self, theta_vis: float, confidence: float) -> None:
        """
        Blend toward a vision pitch with mixing coefficient a = α^(1 − c).

        Note the direction: c = 1 gives a = 1, so a fully "confident"
        estimate leaves θ untouched, while c = 0 still moves θ by (1 − α).
        Callers that mean "confidence" in the usual sense get the opposite
        weighting; the behaviour is kept for compatibility with the
        downstream tuning.
        """
        if not _finite(theta_vis, confidence):
            return
        if not self._initialized:
            self.initialize(theta_vis)
            return
        a = self.alpha ** (1.0 - _clamp01(confidence))
        self._theta = a * self._theta + (1.0 - a) * theta_vis

    def learn_bias(
        self, gyro_pitch_rate: float, learn_rate: float = DEFAULT_BIAS_LEARN_RATE
    ) -> None:
        """Track the gyro bias; only call while stationary with a calm accelerometer."""
        if not _finite(gyro_pitch_rate, learn_rate):
            return
        eta = _clamp01(learn_rate)
        self._bias = (1.0 - eta) * self._bias + eta * gyro_pitch_rate

    def __repr__(self) -> str:
        state = "init" if self._initialized else "uninit"
        return (
            f"<PitchFuser theta={math.degrees(self._theta):.3f}deg "
            f"bias={self._bias:.5f}rad/s alpha={self.alpha} ({state})>"
        )
