"""
wire.py — Serial Line Parsing and Tristimulus Normalization
============================================================

Firmware revisions of the sensor board print readings in different
shapes. Lines are tried against each accepted format in priority order:

    1. Display formats (labelled, human-readable):
         Hydration: Good | Raw ADC: 512 | Voltage: 2.500 V | pH: 7.35 | RGB: 155,164,62
         RGB: 77, 102, 79  HEX: #4D664F
    2. Compact struct literal (JSON object):
         {"ph": 7.1, "r": 41000, "g": 46000, "b": 17000, "c": 52000}
    3. Generic key/value pairs:
         PH:7.2,R:255,G:200,B:100[,C:0]

A line matching none of them raises ParseFailure; a line whose pH or
colour values are physically implausible raises InvalidRange.

Normalization (TCS34725 → 8-bit):
    - clear channel present and > 0: channel / clear · 255
      (cancels ambient brightness)
    - otherwise any channel > 255: treat as 16-bit, channel / 65535 · 255
    - always rounded and clamped into [0, 255]
"""

import json
import logging
import math
import re
from datetime import datetime
from typing import Optional

import numpy as np

from . import config
from .errors import InvalidRange, ParseFailure
from .models import NormalizedColor, RawSample

logger = logging.getLogger("hydration.wire")

MAX_16BIT = 65535
MAX_8BIT = 255

_PH_RE = re.compile(r"pH:\s*(-?[\d.]+)", re.IGNORECASE)
_RGB_RE = re.compile(r"RGB:\s*(\d+)\s*,\s*(\d+)\s*,\s*(\d+)")
_HEX_RE = re.compile(r"HEX:\s*#?([0-9A-Fa-f]{6})\b")
_HYDRATION_RE = re.compile(r"Hydration:\s*([^|]+)")
_VOLTAGE_RE = re.compile(r"Voltage:\s*([\d.]+)")
_ADC_RE = re.compile(r"Raw ADC:\s*(\d+)")

_JSON_ALIASES = {
    "ph": ("ph", "pH", "PH"),
    "r": ("r", "red"),
    "g": ("g", "green"),
    "b": ("b", "blue"),
    "c": ("c", "clear"),
}


def _round_half_up(values: np.ndarray) -> np.ndarray:
    return np.floor(values + 0.5)


def normalize_tristimulus(r: float, g: float, b: float,
                          clear: Optional[float] = None) -> NormalizedColor:
    """
    Convert raw sensor counts to an 8-bit colour.

    Args:
        r, g, b: Raw channel counts (8-bit or 16-bit).
        clear: Raw clear (unfiltered) channel, if the sensor reported one.

    Returns:
        NormalizedColor with every channel in [0, 255].
    """
    channels = np.array([r, g, b], dtype=np.float64)

    if clear is not None and clear > 0:
        scaled = channels / float(clear) * MAX_8BIT
    elif (channels > MAX_8BIT).any():
        scaled = channels / MAX_16BIT * MAX_8BIT
    else:
        scaled = channels

    scaled = np.clip(_round_half_up(np.nan_to_num(scaled, nan=0.0)), 0, MAX_8BIT)
    return NormalizedColor(r=int(scaled[0]), g=int(scaled[1]), b=int(scaled[2]))


# ── Validation ────────────────────────────────────────────────────

def _check_ph(value: float, line: str) -> float:
    if not math.isfinite(value) or not (config.PH_MIN <= value <= config.PH_MAX):
        raise InvalidRange(f"pH value out of range: {value}", line)
    return value


def _check_channel(name: str, value: float, line: str) -> float:
    if not math.isfinite(value) or value < 0 or value > MAX_16BIT:
        raise InvalidRange(f"{name} channel out of range: {value}", line)
    return value


def _number(value, name: str, line: str) -> float:
    if isinstance(value, bool):
        raise ParseFailure(f"Field {name} is not numeric: {value!r}", line)
    try:
        return float(value)
    except (TypeError, ValueError):
        raise ParseFailure(f"Field {name} is not numeric: {value!r}", line)


def _build_sample(ph: float, r: float, g: float, b: float, clear: Optional[float],
                  captured_at: datetime, line: str, metadata: dict = None) -> RawSample:
    ph = _check_ph(ph, line)
    r = _check_channel("R", r, line)
    g = _check_channel("G", g, line)
    b = _check_channel("B", b, line)
    if clear is not None:
        clear = _check_channel("C", clear, line)

    return RawSample(
        acidity=ph,
        color=normalize_tristimulus(r, g, b, clear),
        captured_at=captured_at,
        clear=int(clear) if clear else None,
        metadata=metadata or {},
    )


# ── Format parsers ────────────────────────────────────────────────
# Each returns None when the line is not in its format, and raises when
# the line is in its format but its values are unusable.

def _parse_display(line: str, captured_at: datetime) -> Optional[RawSample]:
    is_status_line = "Hydration:" in line and "pH:" in line
    is_color_line = "RGB:" in line and "HEX:" in line
    if not (is_status_line or is_color_line):
        return None

    rgb_match = _RGB_RE.search(line)
    hex_match = _HEX_RE.search(line)
    if rgb_match:
        r, g, b = (float(v) for v in rgb_match.groups())
    elif hex_match:
        hex_value = hex_match.group(1)
        r, g, b = (float(int(hex_value[i:i + 2], 16)) for i in (0, 2, 4))
    else:
        raise ParseFailure("Display line carries no RGB or HEX colour fields", line)

    ph_match = _PH_RE.search(line)
    if ph_match:
        ph = _number(ph_match.group(1), "pH", line)
    elif "pH:" in line:
        raise ParseFailure("Display line has a non-numeric pH field", line)
    else:
        # colour-only firmware: no pH reading on the line
        ph = config.NEUTRAL_PH

    metadata = {}
    hydration_match = _HYDRATION_RE.search(line)
    if hydration_match:
        metadata["hydration_status"] = hydration_match.group(1).strip()
    voltage_match = _VOLTAGE_RE.search(line)
    if voltage_match:
        metadata["voltage"] = _number(voltage_match.group(1), "Voltage", line)
    adc_match = _ADC_RE.search(line)
    if adc_match:
        metadata["raw_adc"] = int(adc_match.group(1))
    if hex_match:
        metadata["hex"] = "#" + hex_match.group(1).upper()

    return _build_sample(ph, r, g, b, None, captured_at, line, metadata)


def _parse_struct(line: str, captured_at: datetime) -> Optional[RawSample]:
    if not line.startswith("{"):
        return None
    try:
        payload = json.loads(line)
    except json.JSONDecodeError as e:
        raise ParseFailure(f"Malformed struct literal: {e}", line)
    if not isinstance(payload, dict):
        raise ParseFailure("Struct literal is not an object", line)

    values = {}
    for field, aliases in _JSON_ALIASES.items():
        for alias in aliases:
            if payload.get(alias) is not None:
                values[field] = _number(payload[alias], alias, line)
                break

    missing = [f for f in ("ph", "r", "g", "b") if f not in values]
    if missing:
        raise ParseFailure(f"Struct literal missing fields: {missing}", line)

    return _build_sample(values["ph"], values["r"], values["g"], values["b"],
                         values.get("c"), captured_at, line)


def _parse_key_value(line: str, captured_at: datetime) -> Optional[RawSample]:
    if ":" not in line:
        return None

    values = {}
    for pair in line.split(","):
        key, sep, value = pair.partition(":")
        if not sep or not key.strip():
            raise ParseFailure(f"Malformed key/value pair: {pair!r}", line)
        key = key.strip().upper()
        values[key] = _number(value.strip(), key, line)

    missing = [k for k in ("PH", "R", "G", "B") if k not in values]
    if missing:
        raise ParseFailure(f"Key/value line missing fields: {missing}", line)

    return _build_sample(values["PH"], values["R"], values["G"], values["B"],
                         values.get("C"), captured_at, line)


_PARSERS = (_parse_display, _parse_struct, _parse_key_value)


def parse_line(line: str, captured_at: datetime) -> RawSample:
    """
    Parse one serial line into a RawSample.

    Raises:
        ParseFailure: The line matches no accepted format.
        InvalidRange: pH or colour values are implausible.
    """
    line = line.strip()
    if not line:
        raise ParseFailure("Empty line", line)

    for parser in _PARSERS:
        sample = parser(line, captured_at)
        if sample is not None:
            return sample

    raise ParseFailure("Unrecognized wire format", line)


def try_parse_line(line: str, captured_at: datetime) -> Optional[RawSample]:
    """parse_line() that logs and drops failures instead of raising."""
    try:
        sample = parse_line(line, captured_at)
    except InvalidRange as e:
        logger.warning(f"Dropped reading: {e}")
        return None
    except ParseFailure as e:
        logger.debug(f"Dropped line {e.line!r}: {e}")
        return None

    logger.debug(
        f"Parsed reading: pH={sample.acidity:.2f}, "
        f"RGB=({sample.color.r},{sample.color.g},{sample.color.b})"
    )
    return sample
