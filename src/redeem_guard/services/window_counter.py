"""Fixed-window event counters keyed by arbitrary strings."""

from __future__ import annotations

import math
import time
from collections.abc import Callable
from dataclasses import dataclass, replace
from threading import Lock

Clock = Callable[[], float]


@dataclass(frozen=True)
class WindowEntry:
    """Snapshot of one key's counter.

    Timestamps are seconds from the counter's clock. `count` is always at least 1
    and `last_event` never precedes `window_start`.
    """

    key: str
    count: int
    window_start: float
    last_event: float


class WindowCounter:
    """Count events per key within fixed windows that reset on expiry.

    Windows are anchored at the first event for a key and reset once
    ``now - window_start`` exceeds the window length, so bursts straddling a
    boundary can reach twice the nominal rate.
    """

    def __init__(self, window_seconds: float, *, clock: Clock | None = None) -> None:
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.window_seconds = float(window_seconds)
        self._clock = clock or time.time
        self._entries: dict[str, WindowEntry] = {}
        self._lock = Lock()

    def record(self, key: str) -> WindowEntry:
        """Record one event for `key` and return the updated entry."""
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or now - entry.window_start > self.window_seconds:
                entry = WindowEntry(key=key, count=1, window_start=now, last_event=now)
            else:
                entry = replace(entry, count=entry.count + 1, last_event=max(now, entry.window_start))
            self._entries[key] = entry
            return entry

    def get(self, key: str) -> WindowEntry | None:
        """Return the live entry for `key`, ignoring expired windows."""
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
        if entry is None or now - entry.window_start > self.window_seconds:
            return None
        return entry

    def retry_after(self, entry: WindowEntry, now: float | None = None) -> int:
        """Return whole seconds until the entry's window closes (at least 1)."""
        current = self._clock() if now is None else now
        remaining = self.window_seconds - (current - entry.window_start)
        return max(1, math.ceil(remaining))

    def sweep(self, now: float | None = None) -> int:
        """Drop entries whose window has fully elapsed; return how many were removed."""
        current = self._clock() if now is None else now
        with self._lock:
            expired = [
                key
                for key, entry in self._entries.items()
                if current - entry.window_start > self.window_seconds
            ]
            for key in expired:
                del self._entries[key]
        return len(expired)

    def reset(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
