"""
gateway.py — Acquisition Gateway (Serial Link State Machine)
=============================================================

Owns the link to the sensor board and everything that can go wrong with
it. Acquisition runs in one of these modes:

    Continuous mode   run() reads line after line, parses each into a
                      RawSample and hands it to a handler. Unparseable
                      lines are logged and dropped.
    One-shot mode     comprehensive_reading() takes exclusive control of
                      the link for a fixed window (5 s), averages what it
                      collected and classifies the result. Without a
                      device it falls back to synthetic readings.
    Synthetic feed    run_synthetic() hands the handler one synthetic
                      reading every few seconds while no device is
                      attached, for device-less demos.

States:
    IDLE          — constructed, nothing opened yet
    CONNECTING    — opening the port (first attempt or reconnection)
    CONNECTED     — link open, continuous reads allowed
    COLLECTING    — a one-shot window holds the link exclusively
    DISCONNECTED  — open failed or reconnection exhausted; terminal until
                    initialize() is called again

Transition logic:
    A link error in either mode triggers reconnect(): up to
    MAX_RECONNECT_ATTEMPTS opens, RECONNECT_DELAY_SECONDS apart. All
    waits go through the injected clock and stop early on close().
"""

import logging
import threading
from datetime import timedelta
from typing import Callable, Optional

import numpy as np

from . import config
from .alerts import recommendations_for
from .clock import SystemClock
from .errors import EmptyCollection, LinkError, NotInitialized
from .link import SerialLink, detect_device_port
from .models import NormalizedColor, RawSample, ReadingResult
from .synthetic import SyntheticSource
from .wire import try_parse_line

logger = logging.getLogger("hydration.gateway")

# State constants
IDLE = "IDLE"
CONNECTING = "CONNECTING"
CONNECTED = "CONNECTED"
COLLECTING = "COLLECTING"
DISCONNECTED = "DISCONNECTED"


def average_samples(samples: list[RawSample], captured_at) -> RawSample:
    """
    Average several readings into one representative reading.

    pH is rounded to 2 decimals; colour channels are rounded and clamped
    back into [0, 255].

    Raises:
        EmptyCollection: If ``samples`` is empty.
    """
    if not samples:
        raise EmptyCollection("No readings were collected during the window")

    ph = float(np.mean([s.acidity for s in samples]))
    channels = np.array([[s.color.r, s.color.g, s.color.b] for s in samples],
                        dtype=np.float64).mean(axis=0)
    rgb = np.clip(np.floor(channels + 0.5), 0, 255).astype(int)

    averaged = RawSample(
        acidity=round(ph, 2),
        color=NormalizedColor(r=int(rgb[0]), g=int(rgb[1]), b=int(rgb[2])),
        captured_at=captured_at,
        metadata={"sample_count": len(samples)},
    )
    logger.info(f"Averaged {len(samples)} readings: pH={averaged.acidity}, "
                f"RGB=({averaged.color.r},{averaged.color.g},{averaged.color.b})")
    return averaged


class AcquisitionGateway:
    """
    Serial connection lifecycle plus continuous and one-shot acquisition.

    The link is a single-reader, single-writer resource guarded by
    ``_link_lock``; a one-shot collection holds it for its whole window,
    continuous reads take it one line at a time.

    Usage:
        gateway = AcquisitionGateway(auto_detect=True)
        gateway.initialize()
        gateway.run(orchestrator.process, stop_event)
    """

    def __init__(self, port: str = None, baudrate: int = None,
                 auto_detect: bool = None,
                 max_reconnect_attempts: int = None,
                 reconnect_delay: float = None,
                 collection_window: float = None,
                 poll_interval: float = None,
                 request_command: str = None,
                 synthetic: SyntheticSource = None,
                 synthetic_count: int = None,
                 link_factory: Callable = None,
                 port_lister: Callable = None,
                 clock=None):
        """
        Every argument defaults to its config value when omitted.

        Args:
            poll_interval: Spacing of sample requests / synthetic samples.
            request_command: Line written to ask the board for a sample.
            synthetic: Fallback reading source when no device is attached.
            link_factory: ``(port, baudrate) -> link``; defaults to SerialLink.
            port_lister: Port enumerator used by auto-detection.
            clock: Provides now() and cancellable sleep().
        """
        self.port = port or config.SERIAL_PORT
        self.baudrate = baudrate or config.SERIAL_BAUD_RATE
        self.auto_detect = config.SERIAL_AUTO_DETECT if auto_detect is None else auto_detect
        self.max_reconnect_attempts = (config.MAX_RECONNECT_ATTEMPTS
                                       if max_reconnect_attempts is None
                                       else max_reconnect_attempts)
        self.reconnect_delay = (config.RECONNECT_DELAY_SECONDS
                                if reconnect_delay is None else reconnect_delay)
        self.collection_window = collection_window or config.COLLECTION_WINDOW_SECONDS
        self.poll_interval = poll_interval or config.COLLECTION_POLL_SECONDS
        self.request_command = (config.SAMPLE_REQUEST_COMMAND
                                if request_command is None else request_command)
        self.synthetic = synthetic or SyntheticSource()
        self.synthetic_count = (config.SYNTHETIC_SAMPLE_COUNT
                                if synthetic_count is None else synthetic_count)
        self.link_factory = link_factory or SerialLink
        self.port_lister = port_lister
        self.clock = clock or SystemClock()

        self._state = IDLE
        self._link = None
        self._link_lock = threading.Lock()
        self._shutdown = threading.Event()

    # ── State ─────────────────────────────────────────────────────

    @property
    def state(self) -> str:
        return self._state

    @property
    def _lock_timeout(self) -> float:
        # longest a one-shot window can hold the link
        return self.collection_window + self.poll_interval

    def _set_state(self, state: str) -> None:
        if state != self._state:
            logger.debug(f"Gateway state {self._state} -> {state}")
            self._state = state

    def is_connected(self) -> bool:
        link = self._link
        return (self._state in (CONNECTED, COLLECTING)
                and link is not None and link.is_open)

    def connection_info(self) -> dict:
        return {
            "connected": self.is_connected(),
            "state": self._state,
            "port": self.port,
            "baud_rate": self.baudrate,
        }

    # ── Connection lifecycle ──────────────────────────────────────

    def initialize(self) -> bool:
        """
        Detect (optionally) and open the link with a single attempt.

        Also the way out of the terminal DISCONNECTED state. A link that is
        already open is closed first, so re-initializing never holds two
        handles on the port.

        Returns:
            True if the link is open, False if the gateway is DISCONNECTED.
        """
        self._shutdown.clear()
        if self.auto_detect:
            self.port = detect_device_port(self.port, self.port_lister)

        if not self._link_lock.acquire(timeout=self._lock_timeout):
            logger.warning("Serial link busy, initialize skipped")
            return self.is_connected()
        try:
            self._drop_link()
            self._open()
        except LinkError as e:
            logger.warning(f"Sensor connection failed: {e}")
            logger.info("One-shot readings will use synthetic data until re-initialized")
            self._set_state(DISCONNECTED)
            return False
        finally:
            self._link_lock.release()

        logger.info(f"Gateway initialized on port {self.port}")
        return True

    def _open(self) -> None:
        self._set_state(CONNECTING)
        link = self.link_factory(self.port, self.baudrate)
        link.open()
        self._link = link
        self._set_state(CONNECTED)
        logger.info(f"Connected to sensor board on {self.port} at {self.baudrate} baud")

    def _drop_link(self) -> None:
        link, self._link = self._link, None
        if link is not None:
            link.close()

    def reconnect(self) -> bool:
        """
        Re-open the link after it was lost, within the retry bound.

        Returns:
            True once reconnected; False when attempts are exhausted or
            the wait was cancelled (gateway left DISCONNECTED).
        """
        self._drop_link()

        for attempt in range(1, self.max_reconnect_attempts + 1):
            self._set_state(CONNECTING)
            logger.info(f"Attempting to reconnect ({attempt}/{self.max_reconnect_attempts}) "
                        f"in {self.reconnect_delay:.0f}s...")
            if not self.clock.sleep(self.reconnect_delay, self._shutdown):
                logger.info("Reconnection cancelled by shutdown")
                self._set_state(DISCONNECTED)
                return False
            try:
                self._open()
                return True
            except LinkError as e:
                logger.error(f"Reconnection failed: {e}")

        logger.error(f"Max reconnection attempts ({self.max_reconnect_attempts}) exceeded")
        self._set_state(DISCONNECTED)
        return False

    def close(self) -> None:
        """Cancel pending waits and release the port."""
        self._shutdown.set()
        acquired = self._link_lock.acquire(timeout=self._lock_timeout)
        try:
            self._drop_link()
        finally:
            if acquired:
                self._link_lock.release()
        self._set_state(IDLE)

    def send_command(self, command: str) -> None:
        """
        Write one command line to the board.

        Raises:
            LinkError: If the link is not connected or the write fails.
        """
        if not self._link_lock.acquire(timeout=self._lock_timeout):
            raise LinkError("Serial link busy")
        try:
            if self._link is None or self._state != CONNECTED:
                raise LinkError("Serial port not connected")
            self._link.write_line(command)
            logger.debug(f"Command sent: {command}")
        finally:
            self._link_lock.release()

    # ── Continuous mode ───────────────────────────────────────────

    def read_sample(self) -> Optional[RawSample]:
        """
        Read and parse one line from the link.

        Returns None on timeout, on a dropped line, while the link is
        held by a one-shot window past the wait bound, or after a link
        error (which runs the reconnection policy first).
        """
        if not self._link_lock.acquire(timeout=self._lock_timeout):
            return None
        link_lost = False
        line = ""
        try:
            if self._link is None:
                return None
            line = self._link.readline()
        except LinkError as e:
            logger.error(f"Serial link lost: {e}")
            link_lost = True
        finally:
            self._link_lock.release()

        if link_lost:
            self.reconnect()
            return None
        if not line:
            return None
        return try_parse_line(line, self.clock.now())

    def run(self, handler: Callable[[RawSample], object],
            stop_event: threading.Event = None) -> None:
        """
        Continuous acquisition loop.

        Runs until ``stop_event`` is set, close() is called, or the
        gateway ends up DISCONNECTED.
        """
        stop_event = stop_event or threading.Event()
        logger.info("Continuous acquisition started")

        while not stop_event.is_set() and not self._shutdown.is_set():
            if self._state not in (CONNECTED, COLLECTING):
                logger.error(f"Continuous acquisition stopped: gateway is {self._state}")
                break

            sample = self.read_sample()
            if sample is None:
                continue
            try:
                handler(sample)
            except Exception as e:
                logger.error(f"Reading handler failed: {e}", exc_info=True)

        logger.info("Continuous acquisition finished")

    def run_synthetic(self, handler: Callable[[RawSample], object],
                      stop_event: threading.Event = None,
                      interval: float = None) -> None:
        """
        Device-less continuous feed: one synthetic reading per ``interval``.

        Stops when ``stop_event`` (default: the gateway's own shutdown
        event) is set, when close() is called, when a device becomes
        connected, or when the scenario table is empty.
        """
        stop_event = stop_event or self._shutdown
        interval = interval or config.SYNTHETIC_FEED_INTERVAL_SECONDS
        logger.info(f"Synthetic feed started, one reading every {interval:.1f}s")

        while not stop_event.is_set() and not self._shutdown.is_set():
            if self.is_connected():
                logger.info("Sensor connected, synthetic feed stopping")
                break
            sample = self.synthetic.sample(self.clock.now())
            if sample is None:
                logger.warning("No synthetic scenarios configured, feed stopping")
                break
            try:
                handler(sample)
            except Exception as e:
                logger.error(f"Reading handler failed: {e}", exc_info=True)
            if not self.clock.sleep(interval, stop_event):
                break

        logger.info("Synthetic feed finished")

    # ── One-shot mode ─────────────────────────────────────────────

    def collect(self, window_seconds: float = None) -> list[RawSample]:
        """
        Collect readings for a fixed window.

        Reads the live device when connected, otherwise draws from the
        synthetic source.
        """
        window_seconds = window_seconds or self.collection_window
        logger.info(f"Starting {window_seconds:.0f}-second data collection...")
        if self.is_connected():
            return self._collect_from_device(window_seconds)
        return self._collect_synthetic(window_seconds)

    def _collect_from_device(self, window_seconds: float) -> list[RawSample]:
        samples = []
        if not self._link_lock.acquire(timeout=window_seconds):
            logger.warning("Serial link busy, no readings collected")
            return samples

        link = self._link
        if link is None:
            self._link_lock.release()
            return samples

        link_lost = False
        self._set_state(COLLECTING)
        try:
            start = self.clock.now()
            next_request = start
            while not self._shutdown.is_set():
                now = self.clock.now()
                if (now - start).total_seconds() >= window_seconds:
                    break
                if self.request_command and now >= next_request:
                    link.write_line(self.request_command)
                    next_request = now + timedelta(seconds=self.poll_interval)

                line = link.readline()
                if not line:
                    continue
                sample = try_parse_line(line, self.clock.now())
                if sample is not None:
                    samples.append(sample)
                    logger.debug(f"Reading {len(samples)}: pH={sample.acidity:.2f}, "
                                 f"RGB=({sample.color.r},{sample.color.g},{sample.color.b})")
        except LinkError as e:
            logger.error(f"Serial link lost during collection: {e}")
            link_lost = True
        finally:
            if not link_lost:
                self._set_state(CONNECTED)
            self._link_lock.release()

        logger.info(f"Collected {len(samples)} device readings")
        if link_lost:
            self.reconnect()
        return samples

    def _collect_synthetic(self, window_seconds: float) -> list[RawSample]:
        samples = []
        if self.synthetic_count <= 0:
            return samples

        interval = window_seconds / self.synthetic_count
        for _ in range(self.synthetic_count):
            sample = self.synthetic.sample(self.clock.now())
            if sample is None:
                break
            samples.append(sample)
            if not self.clock.sleep(interval, self._shutdown):
                break

        logger.info(f"Generated {len(samples)} synthetic readings")
        return samples

    def comprehensive_reading(self, classifier) -> ReadingResult:
        """
        User-triggered multi-sample reading: collect, average, classify.

        Returns:
            ReadingResult; failures (nothing collected, classifier not
            loaded) are reported in ``error`` rather than raised.
        """
        connected = self.is_connected()
        logger.info(f"Comprehensive reading triggered; sensor "
                    f"{'connected' if connected else 'not connected'}")

        samples = self.collect()
        try:
            averaged = average_samples(samples, self.clock.now())
        except EmptyCollection as e:
            logger.warning(f"Comprehensive reading failed: {e}")
            return ReadingResult(success=False, error=str(e))

        try:
            result = classifier.classify(averaged.color)
        except NotInitialized as e:
            logger.error(f"Comprehensive reading failed: {e}")
            return ReadingResult(success=False, error=str(e))

        logger.info(f"Classification: score={result.score}, "
                    f"confidence={result.confidence:.3f}")
        return ReadingResult(
            success=True,
            data={
                "averaged_reading": averaged.to_dict(),
                "score": result.score,
                "confidence": result.confidence,
                "lab": result.lab.to_dict(),
                "recommendations": recommendations_for(result.score),
                "sample_count": len(samples),
                "source": "device" if connected else "synthetic",
            },
            sample=averaged,
        )
