import csv
import json
import logging
import threading
import time

import numpy as np
import pytest

from speedwatch.output import notifier as notifier_mod
from speedwatch.output.feed import ViolationFeed
from speedwatch.output.notifier import HttpWebhookNotifier, LogNotifier, create_notifier
from speedwatch.output.overlay import DisplaySurface, OverlayRenderer
from speedwatch.output.sinks import CsvSink, ViolationSinks
from speedwatch.utils.types import MotionSample, ViolationEvent


def _event(i: int, severity: str = "medium", speed: int = 55) -> ViolationEvent:
    return ViolationEvent(
        id=f"v-{i}",
        category="speeding",
        severity=severity,  # type: ignore[arg-type]
        timestamp_s=float(i),
        wall_time="10:00:00",
        location="Enforcement Zone 4",
        details=f"Velocity Violation: {speed} km/h recorded.",
        speed_kmh=speed,
    )


def test_feed_prepends_and_bounds() -> None:
    feed = ViolationFeed(max_len=3)
    for i in range(5):
        feed.push(_event(i, severity="high" if i % 2 else "medium"))
    assert [e.id for e in feed.items()] == ["v-4", "v-3", "v-2"]
    assert feed.latest() is not None and feed.latest().id == "v-4"
    assert feed.items(limit=1)[0].id == "v-4"
    assert feed.counts_by_severity() == {"medium": 2, "high": 1}
    feed.clear()
    assert len(feed) == 0
    assert feed.latest() is None


def test_sinks_write_csv_and_jsonl(tmp_path) -> None:
    sinks = ViolationSinks.from_dict(
        {
            "csv": {"enabled": True, "path": "out/v.csv"},
            "jsonl": {"enabled": True, "path": "out/v.jsonl"},
        },
        base_dir=str(tmp_path),
    )
    sinks.open()
    sinks.write(_event(1, severity="high", speed=120))
    sinks.write(_event(2))
    sinks.close()

    with open(tmp_path / "out" / "v.csv", newline="", encoding="utf-8") as f:
        rows = list(csv.DictReader(f))
    assert [r["id"] for r in rows] == ["v-1", "v-2"]
    assert rows[0]["severity"] == "high"
    assert rows[0]["speed_kmh"] == "120"

    lines = (tmp_path / "out" / "v.jsonl").read_text(encoding="utf-8").splitlines()
    first = json.loads(lines[0])
    assert first["type"] == "speeding"
    assert first["details"] == "Velocity Violation: 120 km/h recorded."


def test_disabled_sinks_are_noops(tmp_path) -> None:
    sinks = ViolationSinks.from_dict({}, base_dir=str(tmp_path))
    sinks.open()
    sinks.write(_event(1))
    sinks.close()
    assert list(tmp_path.iterdir()) == []


def test_create_notifier() -> None:
    assert isinstance(create_notifier({}), LogNotifier)
    n = create_notifier({"type": "http", "http": {"url": "http://localhost:9/hook", "headers": {"X-Key": "k"}}})
    assert isinstance(n, HttpWebhookNotifier)
    assert n.headers == {"X-Key": "k"}
    with pytest.raises(ValueError):
        create_notifier({"type": "http", "http": {}})
    with pytest.raises(ValueError):
        create_notifier({"type": "pager"})


def test_log_notifier_emits_record(caplog) -> None:
    with caplog.at_level(logging.WARNING, logger="speedwatch.output.notifier"):
        LogNotifier().notify_violation(_event(3, severity="high", speed=99))
    assert "v-3" in caplog.text
    assert "99 km/h" in caplog.text


def test_surface_tracks_source_size() -> None:
    s = DisplaySurface()
    assert s.size == (0, 0)
    assert s.ensure_size(64, 48)
    assert not s.ensure_size(64, 48)
    assert s.size == (64, 48)
    out = s.present(np.full((24, 32, 3), 255, dtype=np.uint8))
    assert out.shape == (48, 64, 3)
    assert int(out.min()) == 255
    s.clear()
    assert s.image is None


def test_overlay_draws_marker_and_flash() -> None:
    r = OverlayRenderer()
    img = np.zeros((240, 320, 3), dtype=np.uint8)
    sample = MotionSample(centroid_xy=(160.0, 180.0), timestamp_s=0.0, confidence=400)
    r.draw(img, sample, speed_kmh=10, detections=0, event=None, threshold_kmh=40.0)
    # circle outline 50px left of the centroid
    assert img[180, 110:115].any()
    assert not img[5, 5].any()

    img2 = np.zeros((240, 320, 3), dtype=np.uint8)
    r.draw(img2, None, speed_kmh=120, detections=1, event=_event(1, "high", 120), threshold_kmh=40.0)
    assert img2[5, 5, 2] > 80
    assert img2[200, 5].sum() == 0


def test_csv_reopen_continues_file(tmp_path) -> None:
    sink = CsvSink(str(tmp_path / "v.csv"))
    sink.open()
    sink.write(_event(1))
    sink.close()
    sink.open()
    sink.write(_event(2))
    sink.close()
    with open(tmp_path / "v.csv", newline="", encoding="utf-8") as f:
        rows = list(csv.DictReader(f))
    assert [r["id"] for r in rows] == ["v-1", "v-2"]


def test_sinks_open_on_first_write(tmp_path) -> None:
    sinks = ViolationSinks.from_dict({"jsonl": {"enabled": True, "path": "v.jsonl"}}, base_dir=str(tmp_path))
    assert sinks.jsonl is not None and not sinks.jsonl.is_open
    sinks.write(_event(7))
    assert sinks.jsonl.is_open
    sinks.close()
    assert json.loads((tmp_path / "v.jsonl").read_text(encoding="utf-8"))["id"] == "v-7"


class _Response:
    def __enter__(self) -> "_Response":
        return self

    def __exit__(self, *exc) -> bool:
        return False

    def read(self, n: int = -1) -> bytes:
        return b""


def test_webhook_posts_from_background_worker(monkeypatch) -> None:
    gate = threading.Event()
    posted = []

    def fake_urlopen(req, timeout):
        gate.wait(5.0)
        posted.append((json.loads(req.data.decode("utf-8")), req.get_header("X-key")))
        return _Response()

    monkeypatch.setattr(notifier_mod.urllib.request, "urlopen", fake_urlopen)
    n = HttpWebhookNotifier(url="http://hook.invalid/violations", headers={"X-Key": "k"})

    t0 = time.monotonic()
    n.notify_violation(_event(1))
    n.notify_violation(_event(2))
    assert time.monotonic() - t0 < 0.5
    assert posted == []

    gate.set()
    n.close()
    assert [p["id"] for p, _ in posted] == ["v-1", "v-2"]
    assert posted[0][1] == "k"


def test_surface_allocates_on_first_present_and_maps_points() -> None:
    s = DisplaySurface()
    out = s.present(np.full((24, 32, 3), 9, dtype=np.uint8))
    assert s.size == (32, 24)
    assert int(out.max()) == 9
    assert s.to_canvas((8.0, 6.0), (32, 24)) == (8.0, 6.0)
    s.ensure_size(64, 48)
    assert s.to_canvas((8.0, 6.0), (32, 24)) == (16.0, 12.0)
