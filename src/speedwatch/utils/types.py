from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional, Tuple

import cv2
import numpy as np

PointXY = Tuple[float, float]
Severity = Literal["low", "medium", "high"]
ViolationCategory = Literal["speeding", "red_light", "wrong_way", "invalid_plate"]


@dataclass(frozen=True)
class FrameBuffer:
    """One capture tick's pixels, RGBA, 4 bytes per pixel."""

    width: int
    height: int
    pixels: np.ndarray
    timestamp_s: float

    @staticmethod
    def from_rgba(pixels: np.ndarray, timestamp_s: float) -> "FrameBuffer":
        arr = np.asarray(pixels, dtype=np.uint8)
        if arr.ndim != 3 or arr.shape[2] != 4:
            raise ValueError(f"Expected an HxWx4 RGBA array, got shape {arr.shape}")
        arr = arr.copy()
        arr.setflags(write=False)
        return FrameBuffer(width=int(arr.shape[1]), height=int(arr.shape[0]), pixels=arr, timestamp_s=float(timestamp_s))

    @staticmethod
    def from_bgr(frame_bgr: np.ndarray, timestamp_s: float) -> "FrameBuffer":
        rgba = cv2.cvtColor(frame_bgr, cv2.COLOR_BGR2RGBA)
        rgba.setflags(write=False)
        return FrameBuffer(width=int(rgba.shape[1]), height=int(rgba.shape[0]), pixels=rgba, timestamp_s=float(timestamp_s))

    def same_size(self, other: "FrameBuffer") -> bool:
        return self.width == other.width and self.height == other.height


@dataclass(frozen=True)
class MotionSample:
    centroid_xy: PointXY
    timestamp_s: float
    confidence: int


@dataclass(frozen=True)
class TrackState:
    last: Optional[MotionSample] = None
    last_violation_s: Optional[float] = None
    detections: int = 0


@dataclass(frozen=True)
class ViolationEvent:
    id: str
    category: ViolationCategory
    severity: Severity
    timestamp_s: float
    wall_time: str
    location: str
    details: str
    speed_kmh: int
