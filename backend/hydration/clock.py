"""
clock.py — Wall Clock with Cancellable Sleeps
==============================================

Every wait in the pipeline (reconnection backoff, the one-shot collection
window, synthetic sample pacing) goes through a clock object so it can be
cancelled on shutdown and replaced by a fake clock in tests.
"""

import threading
from datetime import datetime, timezone
from typing import Optional


class SystemClock:
    """Real-time clock backed by threading.Event waits."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def sleep(self, seconds: float, cancel: Optional[threading.Event] = None) -> bool:
        """
        Wait for ``seconds`` or until ``cancel`` is set.

        Returns:
            True if the full delay elapsed, False if it was cancelled.
        """
        if seconds <= 0:
            return not (cancel is not None and cancel.is_set())
        if cancel is None:
            cancel = threading.Event()
        return not cancel.wait(timeout=seconds)
