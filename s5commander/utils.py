#!/usr/bin/env python3
"""
Utility functions for S5 Commander
Common helpers for byte conversions, durations and flag values
"""

import math
import re
from typing import Optional

# Go-style duration units accepted by PROCESS_INTERVAL and friends
_DURATION_UNITS = {
    'ns': 1e-9,
    'us': 1e-6,
    'µs': 1e-6,
    'ms': 1e-3,
    's': 1.0,
    'm': 60.0,
    'h': 3600.0,
}
_DURATION_PART = re.compile(r'(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)')
_BARE_NUMBER = re.compile(r"\d+(?:\.\d*)?|\.\d+")

TRUE_VALUES = ('true', '1', 'yes')
FALSE_VALUES = ('false', '0', 'no')


def bytes_to_mb(bytes_value: int) -> float:
    """Convert bytes to megabytes (1 MB = 1024*1024 bytes)."""
    return bytes_value / (1024**2)


def _finite(seconds: float, value) -> float:
    # nan, inf and overflowing values are not durations
    if not math.isfinite(seconds):
        raise ValueError(f"invalid duration: {value!r}")
    return seconds


def parse_duration(value) -> float:
    """
    Parse a duration into seconds.

    Accepts plain numbers (seconds) and Go-style duration strings made of
    one or more number+unit pairs.

    Args:
        value: int, float or string such as "500ms", "1s", "1m30s", "2h"

    Returns:
        float: Duration in seconds

    Raises:
        ValueError: If the value cannot be parsed

    Examples:
        >>> parse_duration("1m30s")  # 90.0
        >>> parse_duration(5)        # 5.0
    """
    if isinstance(value, bool):
        raise ValueError(f"invalid duration: {value!r}")
    if isinstance(value, (int, float)):
        return _finite(float(value), value)
    if not isinstance(value, str):
        raise ValueError(f"invalid duration: {value!r}")

    text = value.strip()
    if text in ('0', '+0', '-0'):
        return 0.0

    sign = 1.0
    if text[:1] in ('+', '-'):
        if text[0] == '-':
            sign = -1.0
        text = text[1:]

    if not text:
        raise ValueError(f"invalid duration: {value!r}")

    # A bare number is taken as seconds (convenient in YAML)
    if _BARE_NUMBER.fullmatch(text):
        return _finite(sign * float(text), value)

    total = 0.0
    pos = 0
    while pos < len(text):
        match = _DURATION_PART.match(text, pos)
        if not match:
            raise ValueError(f"invalid duration: {value!r}")
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()

    return _finite(sign * total, value)


def format_duration(seconds: float) -> str:
    """
    Format seconds the way Go prints a time.Duration.

    Examples:
        >>> format_duration(60)    # '1m0s'
        >>> format_duration(0.5)   # '500ms'
        >>> format_duration(3725)  # '1h2m5s'
    """
    if seconds == 0:
        return '0s'

    sign = '-' if seconds < 0 else ''
    seconds = abs(seconds)

    if seconds < 1:
        millis = seconds * 1000
        if millis >= 1:
            return f"{sign}{millis:g}ms"
        return f"{sign}{seconds * 1e6:g}µs"

    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    secs_text = f"{secs:.9f}".rstrip('0').rstrip('.')

    if hours:
        return f"{sign}{int(hours)}h{int(minutes)}m{secs_text}s"
    if minutes:
        return f"{sign}{int(minutes)}m{secs_text}s"
    return f"{sign}{secs_text}s"


def parse_bool(value: str) -> Optional[bool]:
    """
    Parse a boolean flag value from the environment.

    Returns:
        True/False for recognised spellings, None otherwise
    """
    lowered = value.strip().lower()
    if lowered in TRUE_VALUES:
        return True
    if lowered in FALSE_VALUES:
        return False
    return None


if __name__ == "__main__":
    print(f"1 MB = {bytes_to_mb(1024**2)} MB")
    print(f"1m30s = {parse_duration('1m30s')} seconds")
    print(f"60 seconds = {format_duration(60)}")
