from .config import load_yaml, merge_dicts, resolve_path, section
from .logging import setup_logging
from .settings import DetectionSettings, SettingsStore
from .types import FrameBuffer, MotionSample, PointXY, Severity, TrackState, ViolationEvent

__all__ = [
    "DetectionSettings",
    "FrameBuffer",
    "MotionSample",
    "PointXY",
    "SettingsStore",
    "Severity",
    "TrackState",
    "ViolationEvent",
    "load_yaml",
    "merge_dicts",
    "resolve_path",
    "section",
    "setup_logging",
]
