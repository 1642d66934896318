import threading
from datetime import timedelta
from types import SimpleNamespace

import pytest

from backend.hydration.classifier import ClusterClassifier
from backend.hydration.errors import EmptyCollection, LinkError
from backend.hydration.gateway import (
    CONNECTED,
    DISCONNECTED,
    IDLE,
    AcquisitionGateway,
    average_samples,
)
from backend.hydration.models import NormalizedColor, RawSample
from backend.hydration.synthetic import SyntheticSource
from tests.conftest import T0, FakeLink, LinkFactory

GOOD_LINE = "PH:6.8,R:255,G:250,B:205"


def make_gateway(clock, factory, **kwargs):
    kwargs.setdefault("auto_detect", False)
    kwargs.setdefault("synthetic", SyntheticSource(seed=7))
    return AcquisitionGateway(port="/dev/ttyFAKE", baudrate=9600,
                              link_factory=factory, clock=clock, **kwargs)


@pytest.fixture
def classifier(clock):
    c = ClusterClassifier(clock=clock)
    c.initialize()
    return c


def test_initialize_opens_link(clock):
    link = FakeLink(clock=clock)
    gateway = make_gateway(clock, LinkFactory(link))

    assert gateway.state == IDLE
    assert gateway.initialize() is True
    assert gateway.state == CONNECTED
    assert gateway.is_connected()
    assert gateway.connection_info() == {
        "connected": True, "state": CONNECTED, "port": "/dev/ttyFAKE", "baud_rate": 9600,
    }


def test_initialize_failure_leaves_gateway_disconnected(clock):
    gateway = make_gateway(clock, LinkFactory())

    assert gateway.initialize() is False
    assert gateway.state == DISCONNECTED
    assert not gateway.is_connected()
    assert clock.sleeps == []


def test_reinitialize_closes_previous_link(clock):
    first = FakeLink(clock=clock)
    second = FakeLink(clock=clock)
    factory = LinkFactory(first, second)
    gateway = make_gateway(clock, factory)

    assert gateway.initialize() is True
    assert gateway.initialize() is True

    assert not first.is_open
    assert second.is_open
    assert gateway._link is second
    assert gateway.state == CONNECTED
    assert len(factory.calls) == 2


def test_failed_reinitialize_releases_old_link(clock):
    first = FakeLink(clock=clock)
    gateway = make_gateway(clock, LinkFactory(first))

    gateway.initialize()
    assert gateway.initialize() is False

    assert not first.is_open
    assert gateway._link is None
    assert gateway.state == DISCONNECTED


def test_auto_detect_prefers_known_board(clock):
    ports = [
        SimpleNamespace(device="/dev/ttyS0", manufacturer=None, description="n/a", vid=None),
        SimpleNamespace(device="/dev/ttyUSB0", manufacturer="wch.cn",
                        description="USB-SERIAL CH340", vid=0x1A86),
    ]
    factory = LinkFactory(FakeLink(clock=clock))
    gateway = make_gateway(clock, factory, auto_detect=True, port_lister=lambda: ports)

    assert gateway.initialize()
    assert factory.calls == [("/dev/ttyUSB0", 9600)]


def test_auto_detect_falls_back_to_configured_port(clock):
    ports = [SimpleNamespace(device="/dev/ttyS0", manufacturer=None, description="", vid=None)]
    factory = LinkFactory(FakeLink(clock=clock))
    gateway = make_gateway(clock, factory, auto_detect=True, port_lister=lambda: ports)

    gateway.initialize()
    assert factory.calls == [("/dev/ttyFAKE", 9600)]


def test_reconnect_gives_up_after_bounded_attempts(clock):
    factory = LinkFactory(FakeLink(clock=clock))
    gateway = make_gateway(clock, factory)
    gateway.initialize()

    assert gateway.reconnect() is False
    assert gateway.state == DISCONNECTED
    assert clock.sleeps == [5.0] * 5
    assert len(factory.calls) == 1 + 5


def test_reconnect_succeeds_within_bound(clock):
    factory = LinkFactory(FakeLink(clock=clock), FakeLink(fail_open=True),
                          FakeLink(fail_open=True), FakeLink(clock=clock))
    gateway = make_gateway(clock, factory)
    gateway.initialize()

    assert gateway.reconnect() is True
    assert gateway.state == CONNECTED
    assert clock.sleeps == [5.0] * 3


def test_reconnect_is_cancelled_by_close(clock):
    gateway = make_gateway(clock, LinkFactory(FakeLink(clock=clock)))
    gateway.initialize()
    gateway.close()

    assert gateway.reconnect() is False
    assert gateway.state == DISCONNECTED
    assert clock.sleeps == []


def test_read_sample_drops_garbage(clock):
    link = FakeLink(["boot banner", GOOD_LINE], clock=clock)
    gateway = make_gateway(clock, LinkFactory(link))
    gateway.initialize()

    assert gateway.read_sample() is None
    sample = gateway.read_sample()
    assert sample.color == NormalizedColor(255, 250, 205)
    assert sample.captured_at == clock.now()


def test_run_stops_when_link_cannot_be_restored(clock):
    link = FakeLink([GOOD_LINE, "???", GOOD_LINE], clock=clock, unplug_when_empty=True)
    gateway = make_gateway(clock, LinkFactory(link))
    gateway.initialize()
    received = []

    gateway.run(received.append, threading.Event())

    assert len(received) == 2
    assert gateway.state == DISCONNECTED
    assert not link.is_open


def test_run_survives_a_failing_handler(clock):
    link = FakeLink([GOOD_LINE, GOOD_LINE], clock=clock, unplug_when_empty=True)
    gateway = make_gateway(clock, LinkFactory(link))
    gateway.initialize()
    calls = []

    def handler(sample):
        calls.append(sample)
        raise ValueError("downstream failure")

    gateway.run(handler)
    assert len(calls) == 2


def test_run_honours_stop_event(clock):
    gateway = make_gateway(clock, LinkFactory(FakeLink([GOOD_LINE], clock=clock)))
    gateway.initialize()
    stop = threading.Event()
    stop.set()
    received = []

    gateway.run(received.append, stop)
    assert received == []


def test_synthetic_feed_delivers_until_stopped(clock):
    gateway = make_gateway(clock, LinkFactory())
    stop = threading.Event()
    received = []

    def handler(sample):
        received.append(sample)
        if len(received) == 3:
            stop.set()

    gateway.run_synthetic(handler, stop_event=stop)

    assert len(received) == 3
    assert clock.sleeps == [2.0, 2.0]
    assert [s.captured_at for s in received] == [
        T0, T0 + timedelta(seconds=2), T0 + timedelta(seconds=4),
    ]


def test_synthetic_feed_honours_custom_interval(clock):
    gateway = make_gateway(clock, LinkFactory())
    stop = threading.Event()
    received = []

    def handler(sample):
        received.append(sample)
        if len(received) == 2:
            stop.set()

    gateway.run_synthetic(handler, stop_event=stop, interval=0.5)

    assert clock.sleeps == [0.5]


def test_synthetic_feed_stops_on_empty_scenario_table(clock):
    gateway = make_gateway(clock, LinkFactory(), synthetic=SyntheticSource(scenarios=[]))
    received = []

    gateway.run_synthetic(received.append, stop_event=threading.Event())

    assert received == []
    assert clock.sleeps == []


def test_synthetic_feed_yields_to_connected_device(clock):
    gateway = make_gateway(clock, LinkFactory(FakeLink(clock=clock)))
    gateway.initialize()
    received = []

    gateway.run_synthetic(received.append, stop_event=threading.Event())

    assert received == []


def test_synthetic_feed_survives_a_failing_handler(clock):
    gateway = make_gateway(clock, LinkFactory())
    stop = threading.Event()
    calls = []

    def handler(sample):
        calls.append(sample)
        if len(calls) == 2:
            stop.set()
        raise ValueError("boom")

    gateway.run_synthetic(handler, stop_event=stop)

    assert len(calls) == 2


def test_synthetic_feed_ends_on_close(clock):
    gateway = make_gateway(clock, LinkFactory())
    received = []

    def handler(sample):
        received.append(sample)
        gateway.close()

    gateway.run_synthetic(handler)

    assert len(received) == 1


def test_collect_from_device_covers_the_window(clock):
    link = FakeLink([GOOD_LINE] * 20, clock=clock, line_interval=0.5)
    gateway = make_gateway(clock, LinkFactory(link))
    gateway.initialize()

    samples = gateway.collect()

    assert len(samples) == 10
    assert gateway.state == CONNECTED
    assert len(link.lines) == 10


def test_collect_writes_request_command(clock):
    link = FakeLink([GOOD_LINE] * 20, clock=clock, line_interval=0.5)
    gateway = make_gateway(clock, LinkFactory(link), request_command="READ",
                           poll_interval=1.0)
    gateway.initialize()

    gateway.collect()
    assert link.written == ["READ"] * 5


def test_link_lost_mid_collection_keeps_partial_samples(clock):
    first = FakeLink([GOOD_LINE, GOOD_LINE, LinkError("unplugged")], clock=clock)
    second = FakeLink(clock=clock)
    gateway = make_gateway(clock, LinkFactory(first, second))
    gateway.initialize()

    samples = gateway.collect()

    assert len(samples) == 2
    assert gateway.state == CONNECTED
    assert gateway._link is second


def test_comprehensive_reading_from_device(clock, classifier):
    link = FakeLink([GOOD_LINE] * 20, clock=clock)
    gateway = make_gateway(clock, LinkFactory(link))
    gateway.initialize()

    result = gateway.comprehensive_reading(classifier)

    assert result.success
    assert result.data["source"] == "device"
    assert result.data["score"] == 2
    assert result.data["sample_count"] == 10
    assert result.data["averaged_reading"]["ph"] == 6.8
    assert result.data["recommendations"] == ["Very good hydration level."]
    assert result.sample.color == NormalizedColor(255, 250, 205)
    assert "sample" not in result.to_dict()


def test_comprehensive_reading_falls_back_to_synthetic(clock, classifier):
    gateway = make_gateway(clock, LinkFactory())
    gateway.initialize()

    result = gateway.comprehensive_reading(classifier)

    assert result.success
    assert result.data["source"] == "synthetic"
    assert result.data["sample_count"] == 10
    assert 1 <= result.data["score"] <= 10
    assert 0.0 <= result.data["confidence"] <= 1.0
    assert sum(clock.sleeps) == pytest.approx(5.0)


def test_empty_scenario_table_reports_failure(clock, classifier):
    gateway = make_gateway(clock, LinkFactory(), synthetic=SyntheticSource(scenarios=[]))

    result = gateway.comprehensive_reading(classifier)

    assert result.success is False
    assert "No readings" in result.error
    assert result.data is None


def test_comprehensive_reading_without_clusters_fails_cleanly(clock):
    gateway = make_gateway(clock, LinkFactory())

    result = gateway.comprehensive_reading(ClusterClassifier(clock=clock))
    assert result.success is False
    assert "clusters" in result.error


def test_send_command_requires_connection(clock):
    link = FakeLink(clock=clock)
    gateway = make_gateway(clock, LinkFactory(link))

    with pytest.raises(LinkError):
        gateway.send_command("CAL")

    gateway.initialize()
    gateway.send_command("CAL")
    assert link.written == ["CAL"]


def test_close_releases_link(clock):
    link = FakeLink(clock=clock)
    gateway = make_gateway(clock, LinkFactory(link))
    gateway.initialize()

    gateway.close()
    assert gateway.state == IDLE
    assert not link.is_open


def test_average_samples_rounds_and_counts():
    samples = [
        RawSample(6.5, NormalizedColor(250, 240, 200), T0),
        RawSample(7.0, NormalizedColor(251, 241, 201), T0),
        RawSample(7.2, NormalizedColor(251, 243, 204), T0),
    ]
    averaged = average_samples(samples, T0)

    assert averaged.acidity == 6.9
    assert averaged.color == NormalizedColor(251, 241, 202)
    assert averaged.metadata == {"sample_count": 3}


def test_average_samples_rejects_empty_input():
    with pytest.raises(EmptyCollection):
        average_samples([], T0)
