from __future__ import annotations

import threading
from collections import deque
from typing import Deque, Dict, List, Optional

from speedwatch.utils.types import ViolationEvent


class ViolationFeed:
    """Newest-first log of emitted violations, bounded to ``max_len`` entries."""

    def __init__(self, max_len: int = 200) -> None:
        self._items: Deque[ViolationEvent] = deque(maxlen=max(1, int(max_len)))
        self._lock = threading.Lock()

    def push(self, event: ViolationEvent) -> None:
        with self._lock:
            self._items.appendleft(event)

    def items(self, limit: Optional[int] = None) -> List[ViolationEvent]:
        with self._lock:
            out = list(self._items)
        return out if limit is None else out[: max(0, int(limit))]

    def latest(self) -> Optional[ViolationEvent]:
        with self._lock:
            return self._items[0] if self._items else None

    def counts_by_severity(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for ev in self.items():
            counts[ev.severity] = counts.get(ev.severity, 0) + 1
        return counts

    def clear(self) -> None:
        with self._lock:
            self._items.clear()

    def __len__(self) -> int:
        return len(self._items)
