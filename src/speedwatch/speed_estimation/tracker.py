from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from speedwatch.motion.differencer import MIN_CHANGED_SAMPLES
from speedwatch.speed_estimation.math import HIGH_SEVERITY_KMH, KMH_PER_PX_PER_S, severity_for, speed_kmh
from speedwatch.utils.types import MotionSample, TrackState, ViolationEvent


logger = logging.getLogger("speedwatch.speed_estimation.tracker")


@dataclass(frozen=True)
class TrackerConfig:
    scale_kmh_per_px_s: float = KMH_PER_PX_PER_S
    cooldown_s: float = 3.0
    high_severity_kmh: float = HIGH_SEVERITY_KMH
    min_confidence: int = MIN_CHANGED_SAMPLES
    max_sample_gap_s: float = 0.0
    location: str = "Enforcement Zone 4"

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "TrackerConfig":
        return TrackerConfig(
            scale_kmh_per_px_s=float(d.get("scale_kmh_per_px_s", KMH_PER_PX_PER_S)),
            cooldown_s=max(0.0, float(d.get("cooldown_s", 3.0))),
            high_severity_kmh=float(d.get("high_severity_kmh", HIGH_SEVERITY_KMH)),
            min_confidence=int(d.get("min_confidence", MIN_CHANGED_SAMPLES)),
            max_sample_gap_s=max(0.0, float(d.get("max_sample_gap_s", 0.0))),
            location=str(d.get("location", "Enforcement Zone 4")),
        )


@dataclass(frozen=True)
class TrackerOutput:
    speed_kmh: int
    event: Optional[ViolationEvent] = None


def advance(
    state: TrackState,
    sample: Optional[MotionSample],
    threshold_kmh: float,
    cfg: TrackerConfig,
    wall_time: Optional[datetime] = None,
) -> Tuple[TrackState, TrackerOutput]:
    """One tracker step: (state, sample) -> (state', output).

    ``sample`` is None on ticks without trusted motion; those leave the state
    untouched and read zero speed. The sample's own timestamp is the clock for
    both the speed delta and the cooldown.
    """
    if sample is None or sample.confidence <= cfg.min_confidence:
        return state, TrackerOutput(speed_kmh=0)

    prev = state.last
    now_s = float(sample.timestamp_s)
    if prev is not None and cfg.max_sample_gap_s > 0.0 and now_s - prev.timestamp_s > cfg.max_sample_gap_s:
        prev = None
    if prev is None:
        return replace(state, last=sample), TrackerOutput(speed_kmh=0)

    v = speed_kmh(prev.centroid_xy, sample.centroid_xy, now_s - prev.timestamp_s, scale=cfg.scale_kmh_per_px_s)
    if v is None:
        # Non-increasing timestamps carry no velocity information.
        return replace(state, last=sample), TrackerOutput(speed_kmh=0)

    next_state = replace(state, last=sample)
    if v <= threshold_kmh:
        return next_state, TrackerOutput(speed_kmh=v)
    if state.last_violation_s is not None and now_s - state.last_violation_s < cfg.cooldown_s:
        return next_state, TrackerOutput(speed_kmh=v)

    event = build_violation(v, now_s, cfg, wall_time=wall_time)
    next_state = replace(next_state, last_violation_s=now_s, detections=state.detections + 1)
    return next_state, TrackerOutput(speed_kmh=v, event=event)


def build_violation(speed: int, timestamp_s: float, cfg: TrackerConfig, wall_time: Optional[datetime] = None) -> ViolationEvent:
    wt = wall_time or datetime.now()
    return ViolationEvent(
        id=f"v-{int(wt.timestamp() * 1000)}-{uuid.uuid4().hex[:6]}",
        category="speeding",
        severity=severity_for(speed, cfg.high_severity_kmh),
        timestamp_s=float(timestamp_s),
        wall_time=wt.strftime("%H:%M:%S"),
        location=cfg.location,
        details=f"Velocity Violation: {speed} km/h recorded.",
        speed_kmh=int(speed),
    )


class MotionTracker:
    """Single-writer holder of :class:`TrackState` around :func:`advance`."""

    def __init__(self, cfg: Optional[TrackerConfig] = None) -> None:
        self._cfg = cfg or TrackerConfig()
        self._state = TrackState()
        self._speed_kmh = 0

    @property
    def state(self) -> TrackState:
        return self._state

    @property
    def speed_kmh(self) -> int:
        return self._speed_kmh

    @property
    def detections(self) -> int:
        return self._state.detections

    def update(self, sample: Optional[MotionSample], threshold_kmh: float) -> TrackerOutput:
        self._state, out = advance(self._state, sample, threshold_kmh, self._cfg)
        self._speed_kmh = out.speed_kmh
        if out.event is not None:
            logger.warning(
                "Speeding violation: %d km/h (threshold %.1f) severity=%s id=%s",
                out.event.speed_kmh,
                threshold_kmh,
                out.event.severity,
                out.event.id,
            )
        return out

    def reset(self) -> None:
        self._state = TrackState()
        self._speed_kmh = 0

    def reset_counter(self) -> None:
        self._state = replace(self._state, detections=0)
