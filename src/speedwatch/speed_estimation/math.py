from __future__ import annotations

import math
from typing import Optional, Tuple

from speedwatch.utils.types import Severity

# km/h reported per pixel/second of centroid motion. A fixed heuristic with no
# camera calibration behind it: the result is a relative indicator, not a
# real-world speed.
KMH_PER_PX_PER_S = 0.12
HIGH_SEVERITY_KMH = 80


def round_half_up(value: float) -> int:
    return int(math.floor(float(value) + 0.5))


def pixel_displacement(p0: Tuple[float, float], p1: Tuple[float, float]) -> float:
    return float(math.hypot(float(p1[0] - p0[0]), float(p1[1] - p0[1])))


def speed_kmh(p0: Tuple[float, float], p1: Tuple[float, float], dt_s: float, scale: float = KMH_PER_PX_PER_S) -> Optional[int]:
    """Direction-free speed estimate between two centroids ``dt_s`` apart."""
    if dt_s <= 0.0:
        return None
    return round_half_up(pixel_displacement(p0, p1) / float(dt_s) * float(scale))


def severity_for(speed: float, high_above_kmh: float = HIGH_SEVERITY_KMH) -> Severity:
    return "high" if speed > high_above_kmh else "medium"
