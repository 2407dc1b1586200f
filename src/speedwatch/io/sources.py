from __future__ import annotations

import logging
import os
import queue
import sys
import threading
from dataclasses import dataclass
from typing import Any, Dict, Literal, Optional, Protocol, Tuple, Union

import cv2
import numpy as np

from speedwatch.io.errors import SourceError

Facing = Literal["environment", "user", "any"]

logger = logging.getLogger("speedwatch.io.sources")


@dataclass(frozen=True)
class CaptureConfig:
    """One candidate set of acquisition parameters.

    ``device`` is a camera index or a URI/path understood by OpenCV. ``None``
    means "any available source": indices ``0..probe_devices-1`` are tried in
    order. ``width``/``height`` are requests, not guarantees.
    """

    name: str
    facing: Facing = "any"
    device: Optional[Union[int, str]] = None
    width: int = 0
    height: int = 0
    probe_devices: int = 4

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "CaptureConfig":
        device = d.get("device")
        if isinstance(device, str) and device.strip().isdigit():
            device = int(device.strip())
        facing = str(d.get("facing", "any")).lower()
        if facing not in {"environment", "user", "any"}:
            raise ValueError(f"Unknown capture facing: {facing}")
        return CaptureConfig(
            name=str(d.get("name", facing)),
            facing=facing,  # type: ignore[arg-type]
            device=device,
            width=int(d.get("width", 0)),
            height=int(d.get("height", 0)),
            probe_devices=int(d.get("probe_devices", 4)),
        )


DEFAULT_CAPTURE_CONFIGS: Tuple[CaptureConfig, ...] = (
    CaptureConfig(name="environment_hd", facing="environment", device=0, width=1280, height=720),
    CaptureConfig(name="user", facing="user", device=1),
    CaptureConfig(name="any", facing="any", device=None),
)


class VideoSource(Protocol):
    def frame_size(self) -> Tuple[int, int]:
        """(width, height); (0, 0) until the source reports usable dimensions."""
        ...

    def read(self) -> Optional[np.ndarray]:
        """Latest BGR frame, or None when no new frame is available."""
        ...

    def release(self) -> None:
        ...


class SourceOpener(Protocol):
    def open(self, cfg: CaptureConfig) -> VideoSource:
        """Blocking open; raises on failure."""
        ...


class OpenCvSource:
    """OpenCV capture drained by a background reader thread.

    The thread blocks on ``cap.read()`` and keeps only the newest frame, so
    :meth:`read` returns immediately with that frame, or None if nothing new
    arrived since the previous call.
    """

    def __init__(self, cap: cv2.VideoCapture, label: str) -> None:
        self._cap: Optional[cv2.VideoCapture] = cap
        self.label = label
        self._lock = threading.Lock()
        self._latest: Optional[np.ndarray] = None
        self._size = (int(cap.get(cv2.CAP_PROP_FRAME_WIDTH) or 0), int(cap.get(cv2.CAP_PROP_FRAME_HEIGHT) or 0))
        self._eof = False
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._reader, name=f"capture-{label}", daemon=True)
        self._thread.start()

    @property
    def ended(self) -> bool:
        return self._eof and self._latest is None

    def frame_size(self) -> Tuple[int, int]:
        with self._lock:
            return self._size

    def read(self) -> Optional[np.ndarray]:
        with self._lock:
            frame, self._latest = self._latest, None
        return frame

    def release(self) -> None:
        self._stop.set()
        if self._thread is not threading.current_thread():
            self._thread.join(timeout=1.0)
        if self._thread.is_alive():
            # still inside cap.read(); the reader releases on exit
            return
        self._release_cap()

    def _reader(self) -> None:
        try:
            while not self._stop.is_set():
                cap = self._cap
                if cap is None:
                    return
                ok, frame = cap.read()
                if not ok or frame is None:
                    logger.info("Video source %s stopped delivering frames", self.label)
                    self._eof = True
                    return
                self._publish(frame)
        finally:
            if self._stop.is_set():
                self._release_cap()

    def _publish(self, frame: np.ndarray) -> None:
        h, w = frame.shape[:2]
        with self._lock:
            self._latest = frame
            self._size = (int(w), int(h))

    def _release_cap(self) -> None:
        with self._lock:
            cap, self._cap = self._cap, None
        if cap is not None:
            cap.release()
            logger.debug("Released video source: %s", self.label)


class OpenCvOpener:
    def __init__(self, buffer_size: int = 1) -> None:
        self._buffer_size = int(buffer_size)

    def open(self, cfg: CaptureConfig) -> VideoSource:
        if cfg.device is None:
            last: Optional[BaseException] = None
            for idx in range(max(1, int(cfg.probe_devices))):
                try:
                    return self._open_device(idx, cfg)
                except (SourceError, PermissionError) as e:
                    last = e
            if isinstance(last, PermissionError):
                raise last
            raise SourceError("NotFoundError", f"No video source available (probed {cfg.probe_devices} devices)")
        return self._open_device(cfg.device, cfg)

    def _open_device(self, device: Union[int, str], cfg: CaptureConfig) -> VideoSource:
        if isinstance(device, int):
            self._check_device_node(device)
        cap = cv2.VideoCapture(device)
        if not cap.isOpened():
            cap.release()
            if isinstance(device, str) and not device.startswith(("rtsp://", "http://", "https://")) and not os.path.exists(device):
                raise SourceError("NotFoundError", f"Requested device not found: {device}")
            raise SourceError("NotReadableError", f"Could not start video source: {device}")

        try:
            cap.set(cv2.CAP_PROP_BUFFERSIZE, self._buffer_size)
        except cv2.error as e:
            logger.debug("Backend ignores CAP_PROP_BUFFERSIZE for %s: %s", device, e)
        if cfg.width > 0 and cfg.height > 0:
            cap.set(cv2.CAP_PROP_FRAME_WIDTH, float(cfg.width))
            cap.set(cv2.CAP_PROP_FRAME_HEIGHT, float(cfg.height))
        logger.info("Opened video source %s (%s)", device, cfg.name)
        return OpenCvSource(cap, label=str(device))

    def _check_device_node(self, index: int) -> None:
        if not sys.platform.startswith("linux"):
            return
        node = f"/dev/video{index}"
        if not os.path.exists(node):
            raise SourceError("NotFoundError", f"Requested device not found: {node}")
        if not os.access(node, os.R_OK | os.W_OK):
            raise PermissionError(f"Permission denied for {node}")


class FileOpener:
    """Opens a recorded video for every configuration; useful for replays."""

    def __init__(self, path: str, realtime: bool = True) -> None:
        self._path = path
        self._realtime = bool(realtime)

    def open(self, cfg: CaptureConfig) -> VideoSource:
        if not os.path.exists(self._path):
            raise SourceError("NotFoundError", f"Video file not found: {self._path}")
        cap = cv2.VideoCapture(self._path)
        if not cap.isOpened():
            cap.release()
            raise SourceError("NotReadableError", f"Could not start video source: {self._path}")
        fps = cap.get(cv2.CAP_PROP_FPS)
        logger.info("Opened video file %s (%s)", self._path, cfg.name)
        return _PacedFileSource(cap, self._path, float(fps) if fps and fps > 1e-3 else 30.0, self._realtime)


class _PacedFileSource(OpenCvSource):
    # Queues every decoded frame; with realtime pacing the reader waits one
    # frame period between reads.
    def __init__(self, cap: cv2.VideoCapture, label: str, fps: float, realtime: bool, buffer_frames: int = 8) -> None:
        self._period_s = 1.0 / fps if realtime else 0.0
        self._frames: "queue.Queue[np.ndarray]" = queue.Queue(maxsize=max(1, int(buffer_frames)))
        super().__init__(cap, label)

    @property
    def ended(self) -> bool:
        return self._eof and self._frames.empty()

    def read(self) -> Optional[np.ndarray]:
        try:
            return self._frames.get_nowait()
        except queue.Empty:
            return None

    def _publish(self, frame: np.ndarray) -> None:
        h, w = frame.shape[:2]
        with self._lock:
            self._size = (int(w), int(h))
        while not self._stop.is_set():
            try:
                self._frames.put(frame, timeout=0.1)
                break
            except queue.Full:
                continue
        if self._period_s > 0.0:
            self._stop.wait(self._period_s)
