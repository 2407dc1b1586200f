from __future__ import annotations

import logging
import os
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import yaml

from speedwatch.utils.config import load_yaml, section


logger = logging.getLogger("speedwatch.utils.settings")


@dataclass(frozen=True)
class DetectionSettings:
    speed_threshold_kmh: float = 40.0
    update_interval_s: float = 5.0

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "DetectionSettings":
        s = DetectionSettings(
            speed_threshold_kmh=float(d.get("speed_threshold_kmh", 40.0)),
            update_interval_s=float(d.get("update_interval_s", 5.0)),
        )
        if s.speed_threshold_kmh < 0.0:
            raise ValueError("speed_threshold_kmh must be >= 0")
        if s.update_interval_s <= 0.0:
            raise ValueError("update_interval_s must be > 0")
        return s


class SettingsStore:
    """Holds the operator-editable detection settings.

    Consumers call :meth:`current` every tick instead of caching values, so a
    change made through :meth:`update` or by editing the backing YAML file is
    picked up on the next tick. The file is re-checked at most once per
    ``update_interval_s`` and only re-read when its mtime changed. A file that
    fails to parse keeps the previous settings.
    """

    def __init__(self, initial: Optional[DetectionSettings] = None, path: Optional[str] = None) -> None:
        self._lock = threading.Lock()
        self._settings = initial or DetectionSettings()
        self._path = path
        self._mtime: Optional[float] = None
        self._next_check_s = 0.0
        if path is not None:
            self._reload(force=True)

    @property
    def path(self) -> Optional[str]:
        return self._path

    def current(self, now_s: Optional[float] = None) -> DetectionSettings:
        if self._path is not None:
            t = time.monotonic() if now_s is None else float(now_s)
            if t >= self._next_check_s:
                self._next_check_s = t + self._settings.update_interval_s
                self._reload(force=False)
        with self._lock:
            return self._settings

    def update(self, **changes: Any) -> DetectionSettings:
        with self._lock:
            merged = {
                "speed_threshold_kmh": self._settings.speed_threshold_kmh,
                "update_interval_s": self._settings.update_interval_s,
            }
            merged.update(changes)
            self._settings = DetectionSettings.from_dict(merged)
            logger.info(
                "Detection settings updated: threshold=%.1f km/h interval=%.1f s",
                self._settings.speed_threshold_kmh,
                self._settings.update_interval_s,
            )
            return self._settings

    def _reload(self, force: bool) -> None:
        path = self._path
        if path is None:
            return
        try:
            mtime = os.path.getmtime(path)
        except OSError:
            logger.warning("Settings file not found: %s", path)
            return
        if not force and self._mtime is not None and mtime == self._mtime:
            return
        try:
            data = section(load_yaml(path), "detection")
            loaded = DetectionSettings.from_dict(data)
        except (OSError, ValueError, yaml.YAMLError) as e:
            logger.error("Ignoring invalid settings file %s: %s", path, e)
            return
        self._mtime = mtime
        with self._lock:
            changed = loaded != self._settings
            self._settings = loaded
        if changed:
            logger.info("Loaded detection settings from %s: threshold=%.1f km/h", path, loaded.speed_threshold_kmh)
