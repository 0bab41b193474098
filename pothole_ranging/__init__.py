"""Pothole ranging package – re-export high-level API."""
from .common import (                                  # noqa: F401
    CameraIntrinsics, ConfigurationError, ImuSample, PitchEstimate,
    PotholeReport, Projection, TrackedBox,
)
from .config import (                                  # noqa: F401
    CameraModelConfig, DetectorConfig, DisplayConfig, FuserConfig,
    ImuConfig, StreamerConfig, TrackerConfig, VideoConfig, VisionPitchConfig,
)
from .ground_projector import GroundProjector, contact_point  # noqa: F401
from .pitch_fuser import PitchFuser                    # noqa: F401
from .ranging import RangingCore                       # noqa: F401
