import os

import pytest

from speedwatch.utils.config import merge_dicts, section
from speedwatch.utils.settings import DetectionSettings, SettingsStore


def _write(path, threshold: float, interval: float = 5.0) -> None:
    path.write_text(
        f"detection:\n  speed_threshold_kmh: {threshold}\n  update_interval_s: {interval}\n",
        encoding="utf-8",
    )


def test_defaults_and_validation() -> None:
    s = DetectionSettings.from_dict({})
    assert s.speed_threshold_kmh == 40.0
    assert s.update_interval_s == 5.0
    with pytest.raises(ValueError):
        DetectionSettings.from_dict({"speed_threshold_kmh": -1})
    with pytest.raises(ValueError):
        DetectionSettings.from_dict({"update_interval_s": 0})


def test_update_replaces_only_given_fields() -> None:
    store = SettingsStore()
    out = store.update(speed_threshold_kmh=60)
    assert out.speed_threshold_kmh == 60.0
    assert out.update_interval_s == 5.0
    assert store.current() is out
    with pytest.raises(ValueError):
        store.update(speed_threshold_kmh=-5)
    assert store.current().speed_threshold_kmh == 60.0


def test_file_change_is_picked_up_after_interval(tmp_path) -> None:
    cfg = tmp_path / "monitor.yaml"
    _write(cfg, 40.0)
    store = SettingsStore(path=str(cfg))
    assert store.current(0.0).speed_threshold_kmh == 40.0

    _write(cfg, 70.0)
    st = os.stat(cfg)
    os.utime(cfg, (st.st_atime, st.st_mtime + 10))

    # not re-checked before the interval elapses
    assert store.current(1.0).speed_threshold_kmh == 40.0
    assert store.current(5.0).speed_threshold_kmh == 70.0


def test_invalid_file_keeps_previous_settings(tmp_path) -> None:
    cfg = tmp_path / "monitor.yaml"
    _write(cfg, 55.0)
    store = SettingsStore(path=str(cfg))
    assert store.current(0.0).speed_threshold_kmh == 55.0

    cfg.write_text("detection: [unclosed\n", encoding="utf-8")
    st = os.stat(cfg)
    os.utime(cfg, (st.st_atime, st.st_mtime + 10))
    assert store.current(10.0).speed_threshold_kmh == 55.0

    cfg.write_text("detection:\n  speed_threshold_kmh: -3\n", encoding="utf-8")
    os.utime(cfg, (st.st_atime, st.st_mtime + 20))
    assert store.current(20.0).speed_threshold_kmh == 55.0


def test_missing_file_keeps_initial_settings(tmp_path) -> None:
    store = SettingsStore(DetectionSettings(speed_threshold_kmh=33.0), path=str(tmp_path / "absent.yaml"))
    assert store.current(0.0).speed_threshold_kmh == 33.0


def test_section_and_merge() -> None:
    cfg = {"a": {"x": 1, "y": {"z": 2}}, "b": 3}
    assert section(cfg, "missing") == {}
    with pytest.raises(ValueError):
        section(cfg, "b")
    merged = merge_dicts(cfg, {"a": {"y": {"w": 4}}, "b": 5})
    assert merged == {"a": {"x": 1, "y": {"z": 2, "w": 4}}, "b": 5}
    assert cfg["b"] == 3
