from __future__ import annotations

from typing import Literal, Optional

CaptureErrorKind = Literal["permission_denied", "device_not_found", "device_in_use", "timeout", "generic"]


class SourceError(RuntimeError):
    """Raised by source openers with a short identifying ``name``.

    ``name`` plays the role of a platform error code ("NotFoundError",
    "NotReadableError", ...) so that failures from different backends can be
    classified the same way.
    """

    def __init__(self, name: str, message: str) -> None:
        super().__init__(message)
        self.name = str(name)


class CaptureError(RuntimeError):
    kind: CaptureErrorKind = "generic"
    title: str = "Connection Refused"
    remedy: str = "Optical link could not be established. Retry the connection."

    def __init__(self, message: str = "", cause: Optional[BaseException] = None) -> None:
        super().__init__(message or self.remedy)
        self.cause = cause


class PermissionDenied(CaptureError):
    kind: CaptureErrorKind = "permission_denied"
    title = "Permission Denied"
    remedy = "Allow camera access for this process, then retry."


class DeviceNotFound(CaptureError):
    kind: CaptureErrorKind = "device_not_found"
    title = "Camera Not Found"
    remedy = "No matching video source was found. Check that the camera is connected."


class DeviceInUse(CaptureError):
    kind: CaptureErrorKind = "device_in_use"
    title = "Camera Already in Use"
    remedy = "Another application is using the camera. Close it and retry."


class AcquisitionTimeout(CaptureError):
    kind: CaptureErrorKind = "timeout"
    title = "Request Timed Out"
    remedy = "The camera failed to respond in time. Retry, possibly with a different configuration."


_PERMISSION_NAMES = {"NotAllowedError", "PermissionDeniedError", "PermissionError"}
_NOT_FOUND_NAMES = {"NotFoundError", "DevicesNotFoundError", "FileNotFoundError"}
_IN_USE_NAMES = {"NotReadableError", "TrackStartError"}


def error_name(exc: BaseException) -> str:
    name = getattr(exc, "name", None)
    if isinstance(name, str) and name:
        return name
    return type(exc).__name__


def classify_error(exc: Optional[BaseException]) -> CaptureError:
    """Map the last acquisition failure onto exactly one CaptureError kind."""
    if exc is None:
        return CaptureError("No capture configuration could be attempted")
    if isinstance(exc, CaptureError):
        return exc
    name = error_name(exc)
    msg = str(exc)

    if name in _PERMISSION_NAMES or "permission" in msg.lower():
        return PermissionDenied(msg, cause=exc)
    if name in _NOT_FOUND_NAMES:
        return DeviceNotFound(msg, cause=exc)
    if name in _IN_USE_NAMES or "Could not start video source" in msg:
        return DeviceInUse(msg, cause=exc)
    if isinstance(exc, TimeoutError) or "Timeout" in msg:
        return AcquisitionTimeout(msg or "Timeout starting video source", cause=exc)
    return CaptureError(msg, cause=exc)
