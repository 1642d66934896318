"""Shared fakes: a manual clock, scripted serial links and recording collaborators."""

from datetime import datetime, timedelta, timezone

import pytest

from backend.hydration.errors import LinkError

T0 = datetime(2025, 3, 1, 8, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Clock whose time only moves when told to; sleeps return instantly."""

    def __init__(self, start=T0):
        self.current = start
        self.sleeps = []

    def now(self):
        return self.current

    def advance(self, seconds):
        self.current += timedelta(seconds=seconds)

    def sleep(self, seconds, cancel=None):
        if cancel is not None and cancel.is_set():
            return False
        self.sleeps.append(seconds)
        self.advance(seconds)
        return True


class FakeLink:
    """
    Scripted link. Each readline() pops the next scripted item (a line, or
    an exception to raise) and advances the clock by ``line_interval``.
    """

    def __init__(self, lines=(), clock=None, line_interval=0.5,
                 fail_open=False, unplug_when_empty=False):
        self.lines = list(lines)
        self.clock = clock
        self.line_interval = line_interval
        self.fail_open = fail_open
        self.unplug_when_empty = unplug_when_empty
        self.is_open = False
        self.written = []

    def open(self):
        if self.fail_open:
            raise LinkError("port busy")
        self.is_open = True

    def readline(self):
        if not self.is_open:
            raise LinkError("port closed")
        if self.clock is not None:
            self.clock.advance(self.line_interval)
        if self.lines:
            item = self.lines.pop(0)
            if isinstance(item, Exception):
                raise item
            return item
        if self.unplug_when_empty:
            raise LinkError("device unplugged")
        return ""

    def write_line(self, text):
        self.written.append(text)

    def close(self):
        self.is_open = False


class LinkFactory:
    """Hands out the given links in order, then links that fail to open."""

    def __init__(self, *links):
        self.links = list(links)
        self.calls = []

    def __call__(self, port, baudrate):
        self.calls.append((port, baudrate))
        if self.links:
            return self.links.pop(0)
        return FakeLink(fail_open=True)


class RecordingStore:
    def __init__(self, fail=False):
        self.records = []
        self.fail = fail

    def save(self, record):
        if self.fail:
            raise ConnectionError("store offline")
        self.records.append(record)
        return f"reading_{len(self.records)}"

    def recent_labeled(self, since):
        return list(self.records)


class RecordingNotifier:
    def __init__(self):
        self.calls = []
        self.readings = []
        self.cluster_updates = []

    def publish_reading(self, reading):
        self.readings.append(reading)

    def notify(self, reading, alerts):
        self.calls.append((reading, alerts))

    def publish_clusters_updated(self, clusters):
        self.cluster_updates.append(list(clusters))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return RecordingStore()


@pytest.fixture
def notifier():
    return RecordingNotifier()
