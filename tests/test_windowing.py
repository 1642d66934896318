import threading
from datetime import timedelta

import pytest

from backend.hydration.windowing import PhWindow
from tests.conftest import T0


def at(seconds):
    return T0 + timedelta(seconds=seconds)


def test_empty_window_reports_neutral_ph():
    window = PhWindow()
    assert window.average() == 7.0
    assert window.stats() == {"average": 7.0, "size": 0, "time_span": 0.0, "values": []}


def test_average_is_mean_rounded_to_two_decimals():
    window = PhWindow(duration_seconds=10, capacity=100)
    for i, value in enumerate([6.11, 6.52, 7.04]):
        window.push(value, at(i))

    assert window.average() == round((6.11 + 6.52 + 7.04) / 3, 2)


def test_stale_entries_are_evicted_on_next_push():
    window = PhWindow(duration_seconds=10, capacity=100)
    window.push(4.0, at(0))
    window.push(4.2, at(3))
    window.push(8.0, at(12))

    assert len(window) == 2
    assert window.stats()["values"] == [4.2, 8.0]
    assert window.average() == 6.1


def test_entry_exactly_at_window_edge_is_kept():
    window = PhWindow(duration_seconds=10, capacity=100)
    window.push(6.0, at(0))
    window.push(7.0, at(10))
    assert len(window) == 2


def test_capacity_is_never_exceeded_even_within_duration():
    window = PhWindow(duration_seconds=60, capacity=5)
    for i in range(12):
        window.push(float(i), at(0))
        assert len(window) <= 5

    assert window.stats()["values"] == [7.0, 8.0, 9.0, 10.0, 11.0]


def test_stats_report_time_span():
    window = PhWindow(duration_seconds=10, capacity=100)
    window.push(6.5, at(1))
    window.push(6.7, at(4.5))

    stats = window.stats()
    assert stats["size"] == 2
    assert stats["time_span"] == pytest.approx(3.5)
    assert window.latest_timestamp == at(4.5)


def test_reset_clears_window():
    window = PhWindow()
    window.push(5.5, at(0))
    window.reset()
    assert len(window) == 0
    assert window.average() == 7.0


def test_concurrent_push_and_read_stay_consistent():
    window = PhWindow(duration_seconds=3600, capacity=50)
    stop = threading.Event()
    errors = []

    def writer():
        i = 0
        while not stop.is_set():
            window.push(6.0 + (i % 10) / 10, at(i * 0.01))
            i += 1

    def reader():
        try:
            for _ in range(2000):
                stats = window.stats()
                assert stats["size"] == len(stats["values"]) <= 50
                assert 6.0 <= window.average() <= 7.0
                window.time_span_seconds()
        except Exception as e:
            errors.append(e)

    threads = [threading.Thread(target=writer), threading.Thread(target=reader)]
    for t in threads:
        t.start()
    threads[1].join()
    stop.set()
    threads[0].join()

    assert errors == []
    assert len(window) <= 50
