from .math import HIGH_SEVERITY_KMH, KMH_PER_PX_PER_S, round_half_up, severity_for, speed_kmh
from .tracker import MotionTracker, TrackerConfig, TrackerOutput, advance, build_violation

__all__ = [
    "HIGH_SEVERITY_KMH",
    "KMH_PER_PX_PER_S",
    "MotionTracker",
    "TrackerConfig",
    "TrackerOutput",
    "advance",
    "build_violation",
    "round_half_up",
    "severity_for",
    "speed_kmh",
]
