from datetime import datetime

from speedwatch.speed_estimation.math import round_half_up, severity_for, speed_kmh
from speedwatch.speed_estimation.tracker import MotionTracker, TrackerConfig, advance
from speedwatch.utils.types import MotionSample, TrackState


def _sample(x: float, y: float, t: float, confidence: int = 400) -> MotionSample:
    return MotionSample(centroid_xy=(x, y), timestamp_s=t, confidence=confidence)


def test_speed_is_direction_free() -> None:
    a = (10.0, 20.0)
    b = (70.0, 100.0)
    assert speed_kmh(a, b, 0.25) == speed_kmh(b, a, 0.25)
    assert speed_kmh(a, b, 0.25) == round_half_up(100.0 / 0.25 * 0.12)


def test_speed_rejects_non_positive_dt() -> None:
    assert speed_kmh((0.0, 0.0), (10.0, 0.0), 0.0) is None
    assert speed_kmh((0.0, 0.0), (10.0, 0.0), -1.0) is None


def test_round_half_up() -> None:
    assert round_half_up(0.5) == 1
    assert round_half_up(2.5) == 3
    assert round_half_up(2.49) == 2


def test_severity_boundary() -> None:
    assert severity_for(80) == "medium"
    assert severity_for(81) == "high"


def test_first_sample_reports_zero_and_is_recorded() -> None:
    cfg = TrackerConfig()
    s = _sample(10.0, 10.0, 1.0)
    st, out = advance(TrackState(), s, 40.0, cfg)
    assert out.speed_kmh == 0
    assert out.event is None
    assert st.last == s


def test_slow_shift_reports_speed_without_violation() -> None:
    cfg = TrackerConfig()
    st, _ = advance(TrackState(), _sample(100.0, 100.0, 1.0), 40.0, cfg)
    st, out = advance(st, _sample(100.0, 200.0, 1.5), 40.0, cfg)
    assert out.speed_kmh == 24
    assert out.event is None
    assert st.detections == 0


def test_fast_shift_emits_high_violation() -> None:
    cfg = TrackerConfig()
    wall = datetime(2024, 1, 1, 12, 30, 5)
    st, _ = advance(TrackState(), _sample(100.0, 100.0, 1.0), 40.0, cfg)
    st, out = advance(st, _sample(200.0, 100.0, 1.1), 40.0, cfg, wall_time=wall)
    assert out.speed_kmh == 120
    assert out.event is not None
    assert out.event.severity == "high"
    assert out.event.category == "speeding"
    assert out.event.location == "Enforcement Zone 4"
    assert out.event.details == "Velocity Violation: 120 km/h recorded."
    assert out.event.wall_time == "12:30:05"
    assert st.detections == 1
    assert st.last_violation_s == 1.1
    assert st.last is not None and st.last.centroid_xy == (200.0, 100.0)


def test_severity_via_tracker_at_boundary() -> None:
    cfg = TrackerConfig()
    st, _ = advance(TrackState(), _sample(0.0, 0.0, 0.0), 40.0, cfg)
    _, out = advance(st, _sample(200.0, 0.0, 0.3), 40.0, cfg)
    assert out.speed_kmh == 80
    assert out.event is not None and out.event.severity == "medium"

    st, _ = advance(TrackState(), _sample(0.0, 0.0, 0.0), 40.0, cfg)
    _, out = advance(st, _sample(337.5, 0.0, 0.5), 40.0, cfg)
    assert out.speed_kmh == 81
    assert out.event is not None and out.event.severity == "high"


def test_speed_equal_to_threshold_does_not_fire() -> None:
    cfg = TrackerConfig()
    st, _ = advance(TrackState(), _sample(0.0, 0.0, 0.0), 24.0, cfg)
    _, out = advance(st, _sample(0.0, 100.0, 0.5), 24.0, cfg)
    assert out.speed_kmh == 24
    assert out.event is None


def test_cooldown_spaces_violations() -> None:
    cfg = TrackerConfig()
    st = TrackState()
    fired = []
    last_violation = None
    for i in range(100):
        t = i * 0.1
        x = 0.0 if i % 2 == 0 else 200.0
        st, out = advance(st, _sample(x, 0.0, t), 40.0, cfg)
        if out.event is not None:
            fired.append(out.event.timestamp_s)
        if last_violation is not None:
            assert st.last_violation_s is not None and st.last_violation_s >= last_violation
        last_violation = st.last_violation_s
    assert len(fired) >= 3
    for a, b in zip(fired, fired[1:]):
        assert b - a >= 3.0 - 1e-9
    assert st.detections == len(fired)


def test_low_confidence_sample_is_ignored() -> None:
    cfg = TrackerConfig()
    st, _ = advance(TrackState(), _sample(0.0, 0.0, 0.0), 40.0, cfg)
    st2, out = advance(st, _sample(500.0, 0.0, 0.1, confidence=100), 40.0, cfg)
    assert out.speed_kmh == 0
    assert st2 == st


def test_missing_sample_keeps_history() -> None:
    cfg = TrackerConfig()
    st, _ = advance(TrackState(), _sample(0.0, 0.0, 0.0), 40.0, cfg)
    st2, out = advance(st, None, 40.0, cfg)
    assert out.speed_kmh == 0
    assert st2 is st
    _, out = advance(st2, _sample(0.0, 100.0, 0.5), 40.0, cfg)
    assert out.speed_kmh == 24


def test_non_increasing_timestamp_reads_zero() -> None:
    cfg = TrackerConfig()
    st, _ = advance(TrackState(), _sample(0.0, 0.0, 1.0), 40.0, cfg)
    st, out = advance(st, _sample(100.0, 0.0, 1.0), 40.0, cfg)
    assert out.speed_kmh == 0
    assert st.last is not None and st.last.centroid_xy == (100.0, 0.0)


def test_max_sample_gap_drops_stale_history() -> None:
    cfg = TrackerConfig.from_dict({"max_sample_gap_s": 1.0})
    st, _ = advance(TrackState(), _sample(0.0, 0.0, 0.0), 40.0, cfg)
    st, out = advance(st, _sample(1000.0, 0.0, 2.0), 40.0, cfg)
    assert out.speed_kmh == 0
    assert out.event is None
    assert st.last is not None and st.last.timestamp_s == 2.0


def test_tracker_reads_threshold_per_update() -> None:
    tr = MotionTracker()
    tr.update(_sample(0.0, 0.0, 0.0), 40.0)
    out = tr.update(_sample(0.0, 100.0, 0.5), 40.0)
    assert out.event is None
    out = tr.update(_sample(0.0, 0.0, 1.0), 20.0)
    assert out.event is not None
    assert out.event.severity == "medium"
    assert tr.speed_kmh == 24
    assert tr.detections == 1


def test_tracker_reset_and_purge() -> None:
    tr = MotionTracker(TrackerConfig(cooldown_s=0.0))
    tr.update(_sample(0.0, 0.0, 0.0), 40.0)
    tr.update(_sample(200.0, 0.0, 0.1), 40.0)
    assert tr.detections == 1

    tr.reset_counter()
    assert tr.detections == 0
    assert tr.state.last is not None

    tr.reset()
    assert tr.state == TrackState()
    assert tr.speed_kmh == 0
