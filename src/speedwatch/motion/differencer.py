from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import numpy as np

from speedwatch.utils.types import FrameBuffer, MotionSample


logger = logging.getLogger("speedwatch.motion.differencer")

# Calibration constants. The stride trades accuracy for throughput; none of
# these values has a physical derivation.
SAMPLE_STRIDE = 8
PIXEL_DIFF_THRESHOLD = 50
MIN_CHANGED_SAMPLES = 100


@dataclass(frozen=True)
class DifferencerConfig:
    stride: int = SAMPLE_STRIDE
    pixel_threshold: int = PIXEL_DIFF_THRESHOLD
    min_changed: int = MIN_CHANGED_SAMPLES

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "DifferencerConfig":
        cfg = DifferencerConfig(
            stride=int(d.get("stride", SAMPLE_STRIDE)),
            pixel_threshold=int(d.get("pixel_threshold", PIXEL_DIFF_THRESHOLD)),
            min_changed=int(d.get("min_changed", MIN_CHANGED_SAMPLES)),
        )
        if cfg.stride < 1:
            raise ValueError("differencer.stride must be >= 1")
        return cfg


@dataclass(frozen=True)
class DiffResult:
    changed: int
    sum_x: float
    sum_y: float

    def centroid_xy(self) -> Optional[tuple[float, float]]:
        if self.changed <= 0:
            return None
        return (self.sum_x / self.changed, self.sum_y / self.changed)


def diff_frames(prev: FrameBuffer, curr: FrameBuffer, stride: int = SAMPLE_STRIDE, pixel_threshold: int = PIXEL_DIFF_THRESHOLD) -> DiffResult:
    """Compare every ``stride``-th pixel of two equally sized frames.

    Pixels are visited in row-major order over the flattened image, so with a
    width that is not a multiple of ``stride`` the sampled columns shift from
    row to row. A pixel counts as changed when |dR| + |dG| + |dB| exceeds
    ``pixel_threshold``; alpha is ignored.
    """
    if not prev.same_size(curr):
        raise ValueError(f"Frame size mismatch: {prev.width}x{prev.height} vs {curr.width}x{curr.height}")
    step = max(1, int(stride))
    a = curr.pixels.reshape(-1, 4)[::step, :3].astype(np.int16)
    b = prev.pixels.reshape(-1, 4)[::step, :3].astype(np.int16)
    delta = np.abs(a - b).sum(axis=1)
    hits = np.flatnonzero(delta > int(pixel_threshold)) * step
    if hits.size == 0:
        return DiffResult(changed=0, sum_x=0.0, sum_y=0.0)
    xs = hits % curr.width
    ys = hits // curr.width
    return DiffResult(changed=int(hits.size), sum_x=float(xs.sum()), sum_y=float(ys.sum()))


class FrameDifferencer:
    """Finds the centroid of the changed region between consecutive frames.

    Holds the previous frame as the baseline. A frame whose size differs from
    the baseline is adopted as the new baseline without a comparison.
    """

    def __init__(self, cfg: Optional[DifferencerConfig] = None) -> None:
        self._cfg = cfg or DifferencerConfig()
        self._prev: Optional[FrameBuffer] = None
        self.last_changed = 0

    @property
    def config(self) -> DifferencerConfig:
        return self._cfg

    @property
    def has_baseline(self) -> bool:
        return self._prev is not None

    def update(self, frame: FrameBuffer) -> Optional[MotionSample]:
        prev = self._prev
        self._prev = frame
        self.last_changed = 0
        if prev is None:
            return None
        if not prev.same_size(frame):
            logger.info("Frame size changed %dx%d -> %dx%d; resetting baseline", prev.width, prev.height, frame.width, frame.height)
            return None

        res = diff_frames(prev, frame, stride=self._cfg.stride, pixel_threshold=self._cfg.pixel_threshold)
        self.last_changed = res.changed
        centroid = res.centroid_xy()
        if centroid is None or res.changed <= self._cfg.min_changed:
            return None
        return MotionSample(centroid_xy=centroid, timestamp_s=frame.timestamp_s, confidence=res.changed)

    def reset(self) -> None:
        self._prev = None
        self.last_changed = 0
