from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Optional

import cv2
import numpy as np

from speedwatch.io.capture import CaptureManager, CaptureManagerConfig
from speedwatch.io.sources import SourceOpener
from speedwatch.motion.differencer import DifferencerConfig, FrameDifferencer
from speedwatch.output.feed import ViolationFeed
from speedwatch.output.notifier import Notifier, create_notifier
from speedwatch.output.overlay import DisplaySurface, OverlayRenderer
from speedwatch.output.sinks import ViolationSinks
from speedwatch.speed_estimation.tracker import MotionTracker, TrackerConfig
from speedwatch.utils.config import resolve_path, section
from speedwatch.utils.settings import DetectionSettings, SettingsStore
from speedwatch.utils.types import FrameBuffer, MotionSample, ViolationEvent


logger = logging.getLogger("speedwatch.pipeline.monitor")


@dataclass(frozen=True)
class MonitorPipelineConfig:
    capture: Dict[str, Any]
    differencer: Dict[str, Any]
    tracker: Dict[str, Any]
    output: Dict[str, Any]
    base_dir: str
    tick_hz: float = 60.0
    opener: Optional[SourceOpener] = None
    settings: Optional[SettingsStore] = None

    @staticmethod
    def from_dict(d: Dict[str, Any], base_dir: str, opener: Optional[SourceOpener] = None, settings: Optional[SettingsStore] = None) -> "MonitorPipelineConfig":
        return MonitorPipelineConfig(
            capture=section(d, "capture"),
            differencer=section(d, "differencer"),
            tracker=section(d, "tracker"),
            output=section(d, "output"),
            base_dir=base_dir,
            tick_hz=float(section(d, "runtime").get("tick_hz", 60.0)),
            opener=opener,
            settings=settings,
        )


@dataclass(frozen=True)
class TickResult:
    frame_index: int
    timestamp_s: float
    sample: Optional[MotionSample]
    speed_kmh: int
    detections: int
    event: Optional[ViolationEvent] = None


class MonitorPipeline:
    """Capture -> differencer -> tracker -> overlay, one frame per tick.

    All frame and track state is mutated from :meth:`tick` on the event loop
    thread. ``start``/``stop`` go through the capture manager, which resets
    the differencer baseline and the tracker whenever a session begins or
    ends.
    """

    def __init__(self, cfg: MonitorPipelineConfig) -> None:
        self._cfg = cfg
        self._capture = CaptureManager(CaptureManagerConfig.from_dict(cfg.capture), opener=cfg.opener)
        self._differencer = FrameDifferencer(DifferencerConfig.from_dict(cfg.differencer))
        self._tracker = MotionTracker(TrackerConfig.from_dict(cfg.tracker))
        self._settings = cfg.settings or SettingsStore(DetectionSettings())

        feed_cfg = section(cfg.output, "feed")
        self._feed = ViolationFeed(max_len=int(feed_cfg.get("max_len", 200)))
        self._notifier: Notifier = create_notifier(section(cfg.output, "notifier"))
        self._sinks = ViolationSinks.from_dict(section(cfg.output, "sinks"), cfg.base_dir)

        self._overlay_cfg = section(cfg.output, "overlay")
        self._overlay = OverlayRenderer.from_dict(self._overlay_cfg)
        self._surface = DisplaySurface()
        self._video_writer: Optional[cv2.VideoWriter] = None
        self._window = str(self._overlay_cfg.get("window_name", "speedwatch"))

        self._frame_index = 0
        self._stop_requested = False
        self._capture.add_reset_listener(self._reset_session)

    @property
    def capture(self) -> CaptureManager:
        return self._capture

    @property
    def tracker(self) -> MotionTracker:
        return self._tracker

    @property
    def differencer(self) -> FrameDifferencer:
        return self._differencer

    @property
    def feed(self) -> ViolationFeed:
        return self._feed

    @property
    def surface(self) -> DisplaySurface:
        return self._surface

    @property
    def settings(self) -> SettingsStore:
        return self._settings

    async def start(self) -> bool:
        self._stop_requested = False
        ok = await self._capture.start()
        if not ok:
            err = self._capture.status.error
            if err is not None:
                logger.error("%s: %s", err.title, err.remedy)
        return ok

    def stop(self) -> None:
        self._stop_requested = True
        self._capture.stop()

    def purge(self) -> None:
        self._tracker.reset_counter()

    def tick(self, now_s: Optional[float] = None) -> Optional[TickResult]:
        if self._capture.state != "active":
            return None
        frame_bgr = self._capture.read_frame()
        if frame_bgr is None:
            return None
        t = time.monotonic() if now_s is None else float(now_s)

        w, h = self._capture.frame_size
        if self._surface.ensure_size(w, h):
            logger.info("Display surface resized to %dx%d", w, h)

        frame = FrameBuffer.from_bgr(frame_bgr, t)
        sample = self._differencer.update(frame)
        settings = self._settings.current(t)
        out = self._tracker.update(sample, settings.speed_threshold_kmh)
        if out.event is not None:
            self._emit(out.event)

        result = TickResult(
            frame_index=self._frame_index,
            timestamp_s=t,
            sample=sample,
            speed_kmh=out.speed_kmh,
            detections=self._tracker.detections,
            event=out.event,
        )
        self._frame_index += 1

        if bool(self._overlay_cfg.get("enabled", True)):
            canvas = self._surface.present(frame_bgr)
            marker = sample
            if sample is not None:
                marker = replace(sample, centroid_xy=self._surface.to_canvas(sample.centroid_xy, (frame.width, frame.height)))
            self._overlay.draw(canvas, marker, out.speed_kmh, result.detections, out.event, settings.speed_threshold_kmh)
            self._display(canvas)
        return result

    async def run(self, max_ticks: Optional[int] = None) -> None:
        interval = 1.0 / max(1.0, float(self._cfg.tick_hz))
        ticks = 0
        if not await self.start():
            return
        try:
            while self._capture.state == "active" and not self._stop_requested:
                self.tick()
                ticks += 1
                if max_ticks is not None and ticks >= max_ticks:
                    break
                if self._capture.source_ended:
                    logger.info("Video source ended after %d frames", self._frame_index)
                    break
                await asyncio.sleep(interval)
        finally:
            self._capture.stop()
            self._close_outputs()

    def _emit(self, event: ViolationEvent) -> None:
        self._feed.push(event)
        self._notifier.notify_violation(event)
        try:
            self._sinks.write(event)
        except OSError:
            logger.exception("Failed to record violation %s", event.id)

    def _display(self, canvas: np.ndarray) -> None:
        if bool(self._overlay_cfg.get("write_video", False)):
            self._write_overlay_frame(canvas)
        if bool(self._overlay_cfg.get("show", False)):
            cv2.imshow(self._window, canvas)
            if cv2.waitKey(1) & 0xFF == ord("q"):
                logger.info("Quit requested from display window")
                self.stop()

    def _write_overlay_frame(self, canvas: np.ndarray) -> None:
        path = resolve_path(str(self._overlay_cfg.get("video_path", "outputs/overlay.mp4")), self._cfg.base_dir)
        if self._video_writer is None:
            Path(path).parent.mkdir(parents=True, exist_ok=True)
            h, w = canvas.shape[:2]
            fourcc = cv2.VideoWriter_fourcc(*"mp4v")
            self._video_writer = cv2.VideoWriter(path, fourcc, float(self._overlay_cfg.get("video_fps", 30.0)), (w, h))
            if not self._video_writer.isOpened():
                self._video_writer = None
                raise RuntimeError(f"Failed to open video writer: {path}")
        self._video_writer.write(canvas)

    def _close_outputs(self) -> None:
        if self._video_writer is not None:
            self._video_writer.release()
        self._video_writer = None
        self._sinks.close()
        self._notifier.close()
        if bool(self._overlay_cfg.get("show", False)):
            try:
                cv2.destroyWindow(self._window)
            except cv2.error as e:
                logger.debug("Display window already closed: %s", e)

    def _reset_session(self) -> None:
        self._differencer.reset()
        self._tracker.reset()
        self._surface.clear()
        if self._capture.state != "active":
            self._sinks.close()
