from .capture import CaptureManager, CaptureManagerConfig, CaptureState, CaptureStatus, CaptureTimeouts
from .errors import (
    AcquisitionTimeout,
    CaptureError,
    DeviceInUse,
    DeviceNotFound,
    PermissionDenied,
    SourceError,
    classify_error,
)
from .sources import DEFAULT_CAPTURE_CONFIGS, CaptureConfig, FileOpener, OpenCvOpener, OpenCvSource, SourceOpener, VideoSource

__all__ = [
    "AcquisitionTimeout",
    "CaptureConfig",
    "CaptureError",
    "CaptureManager",
    "CaptureManagerConfig",
    "CaptureState",
    "CaptureStatus",
    "CaptureTimeouts",
    "DEFAULT_CAPTURE_CONFIGS",
    "DeviceInUse",
    "DeviceNotFound",
    "FileOpener",
    "OpenCvOpener",
    "OpenCvSource",
    "PermissionDenied",
    "SourceError",
    "SourceOpener",
    "VideoSource",
    "classify_error",
]
