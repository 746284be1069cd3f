"""Parsing and formatting of byte sizes and durations."""
from __future__ import annotations

import math
import re
from datetime import timedelta

from .errors import InvalidBudget, InvalidCutoff

BYTES_PER_KIB = 1024
BYTES_PER_MIB = BYTES_PER_KIB**2
BYTES_PER_GIB = BYTES_PER_KIB**3
BYTES_PER_TIB = BYTES_PER_KIB**4

SECONDS_PER_DAY = 86400

_SIZE_SUFFIXES = {
    "": 1,
    "B": 1,
    "K": BYTES_PER_KIB,
    "KB": BYTES_PER_KIB,
    "KIB": BYTES_PER_KIB,
    "M": BYTES_PER_MIB,
    "MB": BYTES_PER_MIB,
    "MIB": BYTES_PER_MIB,
    "G": BYTES_PER_GIB,
    "GB": BYTES_PER_GIB,
    "GIB": BYTES_PER_GIB,
    "T": BYTES_PER_TIB,
    "TB": BYTES_PER_TIB,
    "TIB": BYTES_PER_TIB,
}

_DURATION_UNITS = {
    "s": 1,
    "m": 60,
    "h": 3600,
    "d": 86400,
    "w": 7 * 86400,
}

_SIZE_RE = re.compile(r"^(\d+(?:\.\d+)?)\s*([A-Za-z]*)$")
_DURATION_RE = re.compile(r"^(\d+(?:\.\d+)?)\s*([smhdw]?)$")


def parse_size(text: str | int, default_unit: int = 1) -> int:
    """Parse human-readable size strings (e.g. 10G, 512M) into bytes.

    A bare number is multiplied by ``default_unit``.
    """
    if isinstance(text, bool):
        raise InvalidBudget(f"invalid size: {text!r}")
    if isinstance(text, int):
        if text < 0:
            raise InvalidBudget(f"size must not be negative: {text}")
        return text * default_unit
    match = _SIZE_RE.match(text.strip())
    if not match:
        raise InvalidBudget(f"invalid size: {text!r}")
    number, suffix = match.groups()
    suffix = suffix.upper()
    if suffix not in _SIZE_SUFFIXES:
        raise InvalidBudget(f"unknown size unit {suffix!r} in {text!r}")
    multiplier = _SIZE_SUFFIXES[suffix] if suffix else default_unit
    size = float(number) * multiplier
    if not math.isfinite(size):
        raise InvalidBudget(f"size out of range: {text!r}")
    return int(size)


def parse_duration(value: str | int | float | timedelta, default_unit: int = 1) -> timedelta:
    """Parse a retention duration (e.g. 90, 12h, 2w).

    A bare number counts ``default_unit`` seconds each; the command line
    passes ``SECONDS_PER_DAY``.
    """
    if isinstance(value, timedelta):
        duration = value
    elif isinstance(value, bool):
        raise InvalidCutoff(f"invalid duration: {value!r}")
    else:
        if isinstance(value, (int, float)):
            seconds = value * default_unit
        else:
            match = _DURATION_RE.match(value.strip().lower())
            if not match:
                raise InvalidCutoff(f"invalid duration: {value!r}")
            number, unit = match.groups()
            seconds = float(number) * (_DURATION_UNITS[unit] if unit else default_unit)
        try:
            duration = timedelta(seconds=seconds)
        except (OverflowError, ValueError) as e:
            raise InvalidCutoff(f"duration out of range: {value!r}") from e
    if duration < timedelta(0):
        raise InvalidCutoff(f"duration must not be negative: {value!r}")
    return duration


def format_bytes(num_bytes: int) -> str:
    """Convert byte count to human-readable format (B, KiB, MiB, ...)."""
    suffixes = ["B", "KiB", "MiB", "GiB", "TiB", "PiB"]
    value = float(num_bytes)
    for suffix in suffixes:
        if value < BYTES_PER_KIB or suffix == suffixes[-1]:
            if suffix == "B":
                return f"{num_bytes} B"
            return f"{value:.2f} {suffix}"
        value /= BYTES_PER_KIB
    return f"{value:.2f} PiB"
