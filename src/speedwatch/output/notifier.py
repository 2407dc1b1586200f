from __future__ import annotations

import json
import logging
import queue
import threading
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol

from speedwatch.utils.types import ViolationEvent


logger = logging.getLogger("speedwatch.output.notifier")


class Notifier(Protocol):
    def notify_violation(self, event: ViolationEvent) -> None:
        ...

    def close(self) -> None:
        ...


def event_payload(event: ViolationEvent) -> Dict[str, Any]:
    return {
        "id": event.id,
        "type": event.category,
        "severity": event.severity,
        "timestamp": event.wall_time,
        "timestamp_s": event.timestamp_s,
        "location": event.location,
        "details": event.details,
        "speed_kmh": event.speed_kmh,
    }


@dataclass
class LogNotifier(Notifier):
    level: str = "WARNING"

    def notify_violation(self, event: ViolationEvent) -> None:
        lvl = getattr(logging, str(self.level).upper(), logging.WARNING)
        logger.log(
            lvl,
            "VIOLATION id=%s type=%s severity=%s v=%d km/h location=%s t=%.3f",
            event.id,
            event.category,
            event.severity,
            event.speed_kmh,
            event.location,
            event.timestamp_s,
        )

    def close(self) -> None:
        pass


@dataclass
class HttpWebhookNotifier(Notifier):
    """POSTs each violation as JSON from a background worker thread.

    ``notify_violation`` only enqueues, so a slow endpoint never stalls the
    frame loop. When ``max_pending`` events are queued, new ones are dropped
    with a warning.
    """

    url: str
    headers: Dict[str, str]
    timeout_s: float = 2.0
    max_pending: int = 100
    _queue: "queue.Queue[Optional[ViolationEvent]]" = field(default_factory=queue.Queue, repr=False)
    _worker: Optional[threading.Thread] = field(default=None, repr=False)

    def notify_violation(self, event: ViolationEvent) -> None:
        if self._worker is None or not self._worker.is_alive():
            self._worker = threading.Thread(target=self._drain, name="webhook-notifier", daemon=True)
            self._worker.start()
        if self._queue.qsize() >= max(1, int(self.max_pending)):
            logger.warning("Webhook backlog full; dropping violation %s", event.id)
            return
        self._queue.put(event)

    def close(self, timeout_s: float = 5.0) -> None:
        worker = self._worker
        if worker is None or not worker.is_alive():
            return
        self._queue.put(None)
        worker.join(timeout=timeout_s)
        if worker.is_alive():
            logger.warning("Webhook worker still busy after %.1f s; %d events pending", timeout_s, self._queue.qsize())
        self._worker = None

    def post(self, event: ViolationEvent) -> None:
        data = json.dumps(event_payload(event), ensure_ascii=False).encode("utf-8")
        req = urllib.request.Request(self.url, data=data, method="POST")
        req.add_header("Content-Type", "application/json")
        for k, v in self.headers.items():
            if k.lower() == "content-type":
                continue
            req.add_header(str(k), str(v))
        try:
            with urllib.request.urlopen(req, timeout=float(self.timeout_s)) as resp:
                _ = resp.read(1)
        except (urllib.error.URLError, OSError):
            logger.exception("Failed to POST violation %s to webhook", event.id)

    def _drain(self) -> None:
        while True:
            event = self._queue.get()
            if event is None:
                return
            self.post(event)


def create_notifier(cfg: Dict[str, Any]) -> Notifier:
    t = str(cfg.get("type", "log")).lower()
    if t == "log":
        return LogNotifier(level=str(cfg.get("level", "WARNING")))
    if t == "http":
        http = dict(cfg.get("http", {}) or {})
        url = str(http.get("url", ""))
        if not url:
            raise ValueError("notifier.http.url is required when notifier.type=http")
        headers = http.get("headers", {}) or {}
        if not isinstance(headers, dict):
            raise ValueError("notifier.http.headers must be a dict")
        return HttpWebhookNotifier(
            url=url,
            headers={str(k): str(v) for k, v in headers.items()},
            timeout_s=float(http.get("timeout_s", 2.0)),
            max_pending=int(http.get("max_pending", 100)),
        )
    raise ValueError(f"Unknown notifier.type: {t}")
