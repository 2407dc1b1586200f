from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Literal, Optional, Tuple

import numpy as np

from speedwatch.io.errors import CaptureError, SourceError, classify_error
from speedwatch.io.sources import DEFAULT_CAPTURE_CONFIGS, CaptureConfig, OpenCvOpener, SourceOpener, VideoSource

CaptureState = Literal["idle", "acquiring", "active", "failed"]

logger = logging.getLogger("speedwatch.io.capture")


@dataclass(frozen=True)
class CaptureTimeouts:
    acquire_s: float = 8.0
    metadata_s: float = 5.0
    metadata_poll_s: float = 0.05


@dataclass(frozen=True)
class CaptureManagerConfig:
    attempts: Tuple[CaptureConfig, ...]
    timeouts: CaptureTimeouts

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "CaptureManagerConfig":
        raw_attempts = d.get("attempts")
        if raw_attempts is None:
            attempts = DEFAULT_CAPTURE_CONFIGS
        else:
            if not isinstance(raw_attempts, list) or not raw_attempts:
                raise ValueError("capture.attempts must be a non-empty list")
            attempts = tuple(CaptureConfig.from_dict(dict(a)) for a in raw_attempts)
        t = d.get("timeouts", {}) or {}
        return CaptureManagerConfig(
            attempts=attempts,
            timeouts=CaptureTimeouts(
                acquire_s=float(t.get("acquire_s", 8.0)),
                metadata_s=float(t.get("metadata_s", 5.0)),
                metadata_poll_s=float(t.get("metadata_poll_s", 0.05)),
            ),
        )


@dataclass(frozen=True)
class CaptureStatus:
    state: CaptureState
    attempt: Optional[str] = None
    frame_size: Tuple[int, int] = (0, 0)
    error: Optional[CaptureError] = None


class _Superseded(Exception):
    pass


class CaptureManager:
    """Owns the single live video source.

    ``start()`` walks the configured attempts in order, most specific first,
    and keeps the first one that opens and reports usable dimensions. Every
    ``start()``/``stop()`` bumps a generation counter; an acquisition that
    completes under an older generation is released instead of becoming
    active. Reset listeners run whenever a session ends or a new one becomes
    active, so downstream state never spans two sessions.
    """

    def __init__(self, cfg: Optional[CaptureManagerConfig] = None, opener: Optional[SourceOpener] = None) -> None:
        self._cfg = cfg or CaptureManagerConfig(attempts=DEFAULT_CAPTURE_CONFIGS, timeouts=CaptureTimeouts())
        self._opener: SourceOpener = opener or OpenCvOpener()
        self._state: CaptureState = "idle"
        self._source: Optional[VideoSource] = None
        self._attempt: Optional[str] = None
        self._error: Optional[CaptureError] = None
        self._generation = 0
        self._reset_listeners: List[Callable[[], None]] = []

    @property
    def state(self) -> CaptureState:
        return self._state

    @property
    def status(self) -> CaptureStatus:
        return CaptureStatus(state=self._state, attempt=self._attempt, frame_size=self.frame_size, error=self._error)

    @property
    def frame_size(self) -> Tuple[int, int]:
        if self._source is None:
            return (0, 0)
        return self._source.frame_size()

    @property
    def source_ended(self) -> bool:
        return bool(getattr(self._source, "ended", False))

    def add_reset_listener(self, fn: Callable[[], None]) -> None:
        self._reset_listeners.append(fn)

    async def start(self) -> bool:
        self.stop()
        self._generation += 1
        gen = self._generation
        self._state = "acquiring"
        self._error = None
        last_exc: Optional[BaseException] = None

        for cfg in self._cfg.attempts:
            if gen != self._generation:
                return False
            self._attempt = cfg.name
            logger.info("Acquiring video source: attempt=%s facing=%s device=%s", cfg.name, cfg.facing, cfg.device)
            try:
                source = await self._acquire(cfg, gen)
            except _Superseded:
                logger.info("Acquisition superseded: attempt=%s", cfg.name)
                return False
            except asyncio.CancelledError:
                if gen == self._generation:
                    self._generation += 1
                    self._state = "idle"
                    self._attempt = None
                raise
            except Exception as e:
                last_exc = e
                logger.warning("Capture attempt %s failed: %s: %s", cfg.name, type(e).__name__, e)
                continue

            self._source = source
            self._state = "active"
            w, h = source.frame_size()
            logger.info("Video source active: attempt=%s size=%dx%d", cfg.name, w, h)
            self._notify_reset()
            return True

        if gen != self._generation:
            return False
        self._error = classify_error(last_exc)
        self._state = "failed"
        logger.error("All capture attempts failed (%s): %s", self._error.kind, self._error)
        return False

    def stop(self) -> None:
        self._generation += 1
        if self._state == "idle" and self._source is None:
            return
        was = self._state
        self._release_source()
        self._state = "idle"
        self._attempt = None
        self._notify_reset()
        logger.info("Capture stopped (was %s)", was)

    def read_frame(self) -> Optional[np.ndarray]:
        if self._state != "active" or self._source is None:
            return None
        return self._source.read()

    async def _acquire(self, cfg: CaptureConfig, gen: int) -> VideoSource:
        loop = asyncio.get_running_loop()
        fut = loop.run_in_executor(None, self._opener.open, cfg)
        try:
            source = await asyncio.wait_for(asyncio.shield(fut), timeout=self._cfg.timeouts.acquire_s)
        except asyncio.TimeoutError:
            fut.add_done_callback(_release_late)
            raise SourceError("TimeoutError", "Timeout starting video source")
        except asyncio.CancelledError:
            fut.add_done_callback(_release_late)
            raise

        if gen != self._generation:
            _release_quietly(source)
            raise _Superseded()

        try:
            await asyncio.wait_for(self._wait_for_dimensions(source, gen), timeout=self._cfg.timeouts.metadata_s)
        except asyncio.TimeoutError:
            _release_quietly(source)
            raise SourceError("TimeoutError", "Timeout waiting for video metadata")
        except BaseException:
            _release_quietly(source)
            raise
        return source

    async def _wait_for_dimensions(self, source: VideoSource, gen: int) -> None:
        poll = max(0.001, float(self._cfg.timeouts.metadata_poll_s))
        while True:
            if gen != self._generation:
                raise _Superseded()
            w, h = source.frame_size()
            if w > 0 and h > 0:
                return
            await asyncio.sleep(poll)

    def _release_source(self) -> None:
        src = self._source
        self._source = None
        if src is not None:
            _release_quietly(src)

    def _notify_reset(self) -> None:
        for fn in self._reset_listeners:
            fn()


def _release_quietly(source: VideoSource) -> None:
    try:
        source.release()
    except Exception:
        logger.exception("Failed to release video source")


def _release_late(fut: "asyncio.Future[VideoSource]") -> None:
    # An abandoned open finished after its caller gave up on it.
    if fut.cancelled() or fut.exception() is not None:
        return
    logger.info("Releasing video source that resolved after its attempt was abandoned")
    _release_quietly(fut.result())

