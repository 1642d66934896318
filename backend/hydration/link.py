"""
link.py — Serial Link Wrapper and Device Auto-Detection
========================================================

Thin wrapper around pyserial so the gateway deals only in text lines and
LinkError. Anything that goes wrong at the OS or driver level (unplugged
cable, port grabbed by another process, board reset) surfaces as
LinkError and is handled by the gateway's reconnection policy.
"""

import logging
from typing import Callable, Optional

import serial
from serial.tools import list_ports

from . import config
from .errors import LinkError

logger = logging.getLogger("hydration.link")


class SerialLink:
    """
    Newline-framed text link to the sensor board.

    Attributes:
        port (str): Serial endpoint, e.g. COM3 or /dev/ttyACM0.
        baudrate (int): Line speed.
        timeout (float): readline() timeout in seconds.
    """

    def __init__(self, port: str, baudrate: int, timeout: float = None):
        self.port = port
        self.baudrate = baudrate
        self.timeout = timeout if timeout is not None else config.SERIAL_READ_TIMEOUT_SECONDS
        self._serial: Optional[serial.Serial] = None

    def open(self) -> None:
        """
        Open the port.

        Raises:
            LinkError: If the port cannot be opened.
        """
        try:
            self._serial = serial.Serial(self.port, self.baudrate, timeout=self.timeout)
        except (serial.SerialException, OSError, ValueError) as e:
            self._serial = None
            raise LinkError(f"Cannot open {self.port} at {self.baudrate} baud: {e}") from e
        logger.info(f"Opened {self.port} at {self.baudrate} baud")

    @property
    def is_open(self) -> bool:
        return self._serial is not None and self._serial.is_open

    def readline(self) -> str:
        """
        Read one line.

        Returns:
            The decoded line without its terminator, or "" on timeout.

        Raises:
            LinkError: If the port is closed or the read fails.
        """
        if not self.is_open:
            raise LinkError(f"Serial port {self.port} is not open")
        try:
            raw = self._serial.readline()
        except (serial.SerialException, OSError) as e:
            raise LinkError(f"Read from {self.port} failed: {e}") from e
        return raw.decode("utf-8", errors="replace").strip()

    def write_line(self, text: str) -> None:
        if not self.is_open:
            raise LinkError(f"Serial port {self.port} is not open")
        try:
            self._serial.write((text + "\n").encode("utf-8"))
        except (serial.SerialException, OSError) as e:
            raise LinkError(f"Write to {self.port} failed: {e}") from e

    def close(self) -> None:
        if self._serial is not None:
            try:
                self._serial.close()
            except (serial.SerialException, OSError) as e:
                logger.warning(f"Error while closing {self.port}: {e}")
            self._serial = None
            logger.info(f"Serial port {self.port} closed")


def list_candidate_ports() -> list:
    """Enumerate serial endpoints visible to the OS."""
    return list(list_ports.comports())


def is_known_device(port_info) -> bool:
    """True if the port's descriptor matches one of the known board signatures."""
    text = " ".join(
        str(getattr(port_info, attr, "") or "")
        for attr in ("manufacturer", "description")
    ).lower()
    if any(signature in text for signature in config.KNOWN_DEVICE_SIGNATURES):
        return True
    return getattr(port_info, "vid", None) in config.KNOWN_VENDOR_IDS


def detect_device_port(fallback: str,
                       lister: Callable[[], list] = None) -> str:
    """
    Pick the first port that looks like the sensor board.

    Args:
        fallback: Configured endpoint used when nothing matches.
        lister: Port enumerator, defaults to list_candidate_ports.

    Returns:
        Device path of the detected board, or ``fallback``.
    """
    lister = lister or list_candidate_ports
    try:
        ports = lister()
    except (OSError, serial.SerialException) as e:
        logger.error(f"Port detection failed: {e}")
        return fallback

    logger.info("Available serial ports: " + ", ".join(
        f"{p.device} ({getattr(p, 'manufacturer', None) or 'unknown'})" for p in ports
    ))
    for port_info in ports:
        if is_known_device(port_info):
            logger.info(f"Auto-detected sensor board on {port_info.device}")
            return port_info.device

    logger.warning(f"No sensor board detected, using configured port {fallback}")
    return fallback
