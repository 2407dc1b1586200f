from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import cv2
import numpy as np

from speedwatch.utils.types import MotionSample, PointXY, ViolationEvent

ColorBGR = Tuple[int, int, int]


class DisplaySurface:
    """BGR canvas kept at the active source's reported dimensions."""

    def __init__(self) -> None:
        self._image: Optional[np.ndarray] = None

    @property
    def size(self) -> Tuple[int, int]:
        if self._image is None:
            return (0, 0)
        h, w = self._image.shape[:2]
        return (int(w), int(h))

    @property
    def image(self) -> Optional[np.ndarray]:
        return self._image

    def ensure_size(self, width: int, height: int) -> bool:
        """Reallocate the canvas if the dimensions changed. Returns True on resize."""
        w, h = int(width), int(height)
        if w <= 0 or h <= 0 or self.size == (w, h):
            return False
        self._image = np.zeros((h, w, 3), dtype=np.uint8)
        return True

    def present(self, frame_bgr: np.ndarray) -> np.ndarray:
        fh, fw = frame_bgr.shape[:2]
        canvas = self._image
        if canvas is None:
            canvas = np.zeros((fh, fw, 3), dtype=np.uint8)
            self._image = canvas
        h, w = canvas.shape[:2]
        if (fw, fh) != (w, h):
            frame_bgr = cv2.resize(frame_bgr, (w, h), interpolation=cv2.INTER_LINEAR)
        np.copyto(canvas, frame_bgr)
        return canvas

    def to_canvas(self, xy: PointXY, frame_size: Tuple[int, int]) -> PointXY:
        """Map a point in frame pixels onto the canvas, which may be sized differently."""
        fw, fh = frame_size
        w, h = self.size
        if fw <= 0 or fh <= 0 or w <= 0 or h <= 0:
            return xy
        return (float(xy[0]) * w / fw, float(xy[1]) * h / fh)

    def clear(self) -> None:
        self._image = None


def _parse_color(v: Any, default: ColorBGR) -> ColorBGR:
    if isinstance(v, (list, tuple)) and len(v) == 3:
        try:
            return (int(v[0]), int(v[1]), int(v[2]))
        except (TypeError, ValueError):
            return default
    return default


@dataclass
class OverlayRenderer:
    marker_color_bgr: ColorBGR = (246, 130, 59)
    ok_color_bgr: ColorBGR = (129, 185, 16)
    alert_color_bgr: ColorBGR = (68, 68, 239)
    marker_radius: int = 50
    banner_height: int = 150
    banner_alpha: float = 0.4

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "OverlayRenderer":
        return OverlayRenderer(
            marker_color_bgr=_parse_color(d.get("marker_color_bgr"), (246, 130, 59)),
            ok_color_bgr=_parse_color(d.get("ok_color_bgr"), (129, 185, 16)),
            alert_color_bgr=_parse_color(d.get("alert_color_bgr"), (68, 68, 239)),
            marker_radius=int(d.get("marker_radius", 50)),
            banner_height=int(d.get("banner_height", 150)),
            banner_alpha=float(d.get("banner_alpha", 0.4)),
        )

    def draw(
        self,
        img: np.ndarray,
        sample: Optional[MotionSample],
        speed_kmh: int,
        detections: int,
        event: Optional[ViolationEvent],
        threshold_kmh: float,
    ) -> np.ndarray:
        h, w = img.shape[:2]
        if sample is not None:
            cx, cy = int(round(sample.centroid_xy[0])), int(round(sample.centroid_xy[1]))
            cv2.circle(img, (cx, cy), int(self.marker_radius), self.marker_color_bgr, 4)
            cv2.putText(
                img, "TARGET_LOCK", (cx + int(self.marker_radius) + 10, cy), cv2.FONT_HERSHEY_SIMPLEX, 0.8, self.marker_color_bgr, 2
            )

        speed_color = self.alert_color_bgr if speed_kmh > threshold_kmh else self.ok_color_bgr
        speed_label = f"{int(speed_kmh)} KM/H"
        (tw, _), _ = cv2.getTextSize(speed_label, cv2.FONT_HERSHEY_SIMPLEX, 1.0, 2)
        cv2.putText(img, speed_label, (max(0, w - tw - 20), 40), cv2.FONT_HERSHEY_SIMPLEX, 1.0, speed_color, 2)

        count_label = f"DETECTIONS {int(detections)}"
        (cw, _), _ = cv2.getTextSize(count_label, cv2.FONT_HERSHEY_SIMPLEX, 0.8, 2)
        cv2.putText(img, count_label, (max(0, w - cw - 20), max(20, h - 20)), cv2.FONT_HERSHEY_SIMPLEX, 0.8, (255, 255, 255), 2)

        if event is not None:
            self._flash(img, event)
        return img

    def _flash(self, img: np.ndarray, event: ViolationEvent) -> None:
        h, w = img.shape[:2]
        band = img[: min(h, max(1, int(self.banner_height))), :w]
        red = np.empty_like(band)
        red[:] = (0, 0, 255)
        a = max(0.0, min(1.0, float(self.banner_alpha)))
        band[:] = cv2.addWeighted(red, a, band, 1.0 - a, 0.0)
        cv2.putText(img, "VIOLATION LOGGED", (40, 90), cv2.FONT_HERSHEY_SIMPLEX, 1.6, (255, 255, 255), 3)
        cv2.putText(img, f"{event.speed_kmh} km/h {event.severity.upper()}", (40, 130), cv2.FONT_HERSHEY_SIMPLEX, 0.8, (255, 255, 255), 2)
