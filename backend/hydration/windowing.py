"""
windowing.py — Time-Bounded Rolling pH Window
==============================================

pH sensor readings are noisy from one second to the next, so the pipeline
reports the mean of the last few seconds rather than the latest value.

How it works:
    1. Each pH value is appended with its timestamp.
    2. Entries older than (inserted timestamp − duration) are evicted
       from the front.
    3. If the buffer still holds more than ``capacity`` entries, the
       oldest are evicted until it fits.
    4. average() is the mean of what remains, rounded to 2 decimals,
       or the neutral pH 7.0 when the buffer is empty.

Both bounds are enforced after every push, so readers never observe a
buffer that violates them. The continuous ingestion thread pushes while
HTTP handlers read stats, so every access goes through one lock and
readers work on a copy taken under it.
"""

import logging
import threading
from collections import deque
from datetime import datetime, timedelta
from typing import Optional

import numpy as np

from . import config

logger = logging.getLogger("hydration.windowing")


class PhWindow:
    """
    Rolling pH buffer bounded by duration and capacity.

    Attributes:
        duration_seconds (float): Maximum age of an entry relative to the
            most recently inserted timestamp.
        capacity (int): Hard limit on resident entries.
        _entries (deque[tuple[float, datetime]]): (value, timestamp) pairs,
            oldest first. Guarded by ``_lock``.
    """

    def __init__(self, duration_seconds: float = None, capacity: int = None):
        """
        Args:
            duration_seconds: Window length. Defaults to config.PH_WINDOW_SECONDS.
            capacity: Maximum entries. Defaults to config.PH_WINDOW_CAPACITY.
        """
        self.duration_seconds = duration_seconds or config.PH_WINDOW_SECONDS
        self.capacity = capacity or config.PH_WINDOW_CAPACITY
        self._entries: deque = deque()
        self._lock = threading.Lock()

    def push(self, value: float, timestamp: datetime) -> None:
        """
        Append a pH value and evict stale and overflow entries.

        Args:
            value: pH reading.
            timestamp: Capture time of the reading.
        """
        cutoff = timestamp - timedelta(seconds=self.duration_seconds)
        with self._lock:
            self._entries.append((float(value), timestamp))
            while self._entries and self._entries[0][1] < cutoff:
                self._entries.popleft()
            while len(self._entries) > self.capacity:
                self._entries.popleft()
            size = len(self._entries)

        logger.debug(f"pH window updated: {size} values, latest pH: {value:.2f}")

    def _snapshot(self) -> list:
        with self._lock:
            return list(self._entries)

    @staticmethod
    def _mean(entries: list) -> float:
        if not entries:
            return config.NEUTRAL_PH
        values = np.fromiter((v for v, _ in entries), dtype=np.float64, count=len(entries))
        return round(float(values.mean()), 2)

    @staticmethod
    def _span(entries: list) -> float:
        if len(entries) < 2:
            return 0.0
        return (entries[-1][1] - entries[0][1]).total_seconds()

    def average(self) -> float:
        """Mean pH of the window rounded to 2 decimals, neutral 7.0 when empty."""
        return self._mean(self._snapshot())

    def time_span_seconds(self) -> float:
        """Seconds between the oldest and newest resident entry."""
        return self._span(self._snapshot())

    @property
    def latest_timestamp(self) -> Optional[datetime]:
        with self._lock:
            return self._entries[-1][1] if self._entries else None

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def stats(self) -> dict:
        """Read-only snapshot for diagnostics, consistent across its fields."""
        entries = self._snapshot()
        return {
            "average": self._mean(entries),
            "size": len(entries),
            "time_span": self._span(entries),
            "values": [v for v, _ in entries],
        }

    def reset(self) -> None:
        """Clear the window, e.g. after recalibrating the pH sensor."""
        with self._lock:
            self._entries.clear()
        logger.info("pH window reset")
