from __future__ import annotations

import csv
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import IO, Any, Dict, List, Optional

from speedwatch.output.notifier import event_payload
from speedwatch.utils.config import resolve_path
from speedwatch.utils.types import ViolationEvent

CSV_FIELDS = ["id", "type", "severity", "timestamp", "timestamp_s", "location", "speed_kmh", "details"]

logger = logging.getLogger("speedwatch.output.sinks")


def _ensure_parent(path: str) -> None:
    Path(path).parent.mkdir(parents=True, exist_ok=True)


@dataclass
class CsvSink:
    path: str
    append: bool = False
    _f: Optional[IO[str]] = field(default=None, repr=False)
    _w: Optional[csv.DictWriter] = field(default=None, repr=False)
    _opened_before: bool = field(default=False, repr=False)

    @property
    def is_open(self) -> bool:
        return self._f is not None

    def open(self) -> None:
        _ensure_parent(self.path)
        # a reopen within the same process continues the file
        append = self.append or self._opened_before
        write_header = not append or not Path(self.path).exists() or Path(self.path).stat().st_size == 0
        self._f = open(self.path, "a" if append else "w", newline="", encoding="utf-8")
        self._w = csv.DictWriter(self._f, fieldnames=CSV_FIELDS)
        self._opened_before = True
        if write_header:
            self._w.writeheader()

    def write(self, event: ViolationEvent) -> None:
        if self._w is None or self._f is None:
            raise RuntimeError("CsvSink not opened")
        row = event_payload(event)
        self._w.writerow({k: row[k] for k in CSV_FIELDS})
        self._f.flush()

    def close(self) -> None:
        if self._f is not None:
            self._f.close()
        self._f = None
        self._w = None


@dataclass
class JsonlSink:
    path: str
    append: bool = True
    _f: Optional[IO[str]] = field(default=None, repr=False)
    _opened_before: bool = field(default=False, repr=False)

    @property
    def is_open(self) -> bool:
        return self._f is not None

    def open(self) -> None:
        _ensure_parent(self.path)
        append = self.append or self._opened_before
        self._f = open(self.path, "a" if append else "w", encoding="utf-8")
        self._opened_before = True

    def write(self, event: ViolationEvent) -> None:
        if self._f is None:
            raise RuntimeError("JsonlSink not opened")
        self._f.write(json.dumps(event_payload(event), ensure_ascii=False) + "\n")
        self._f.flush()

    def close(self) -> None:
        if self._f is not None:
            self._f.close()
        self._f = None


@dataclass
class ViolationSinks:
    """Record sinks for emitted violations.

    Files are opened on the first write of a session and closed when the
    session stops; a later session appends to what the earlier one wrote.
    """

    csv: Optional[CsvSink] = None
    jsonl: Optional[JsonlSink] = None

    @staticmethod
    def from_dict(d: Dict[str, Any], base_dir: Optional[str] = None) -> "ViolationSinks":
        csv_cfg = dict(d.get("csv", {}) or {})
        jsonl_cfg = dict(d.get("jsonl", {}) or {})
        return ViolationSinks(
            csv=CsvSink(resolve_path(str(csv_cfg.get("path", "outputs/violations.csv")), base_dir), append=bool(csv_cfg.get("append", False)))
            if bool(csv_cfg.get("enabled", False))
            else None,
            jsonl=JsonlSink(resolve_path(str(jsonl_cfg.get("path", "outputs/violations.jsonl")), base_dir), append=bool(jsonl_cfg.get("append", True)))
            if bool(jsonl_cfg.get("enabled", False))
            else None,
        )

    def _active(self) -> List[Any]:
        return [s for s in (self.csv, self.jsonl) if s is not None]

    def open(self) -> None:
        for s in self._active():
            if not s.is_open:
                s.open()
                logger.info("Opened violation sink %s", s.path)

    def write(self, event: ViolationEvent) -> None:
        self.open()
        for s in self._active():
            s.write(event)

    def close(self) -> None:
        for s in self._active():
            s.close()
