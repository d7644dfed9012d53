"""
Typed parsing of configuration values.

Remote stores hold strings only. Typed accessors are pure functions over the
optional string: anything that does not parse yields ``None`` rather than an
exception, so configuration lookups never throw.
"""

import math
import re
from typing import Optional, Union

_INTEGER_PATTERN = re.compile(r"^[+-]?\d+$")

INT_MIN, INT_MAX = -(2 ** 31), 2 ** 31 - 1
LONG_MIN, LONG_MAX = -(2 ** 63), 2 ** 63 - 1

ConfigScalar = Union[str, bool, int, float]


def parse_boolean(value: Optional[str]) -> Optional[bool]:
    """Parse ``true``/``false`` (case-insensitive)."""
    if value is None:
        return None
    lowered = value.strip().lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    return None


def _parse_bounded_int(value: Optional[str], low: int, high: int) -> Optional[int]:
    if value is None:
        return None
    text = value.strip()
    if not _INTEGER_PATTERN.match(text):
        return None
    number = int(text)
    if number < low or number > high:
        return None
    return number


def parse_integer(value: Optional[str]) -> Optional[int]:
    """Parse a 32-bit signed integer."""
    return _parse_bounded_int(value, INT_MIN, INT_MAX)


def parse_long(value: Optional[str]) -> Optional[int]:
    """Parse a 64-bit signed integer."""
    return _parse_bounded_int(value, LONG_MIN, LONG_MAX)


def parse_double(value: Optional[str]) -> Optional[float]:
    """Parse a floating point number, ``NaN`` and ``Infinity`` included."""
    if value is None:
        return None
    text = value.strip()
    if not text or "_" in text:
        return None
    try:
        return float(text)
    except ValueError:
        return None


def parse_float(value: Optional[str]) -> Optional[float]:
    """
    Parse a single precision float.

    Python has no single precision type; values beyond the float32 range
    are reported as absent instead of silently becoming infinite.
    """
    number = parse_double(value)
    if number is None:
        return None
    if math.isfinite(number) and abs(number) > 3.4028234663852886e38:
        return None
    return number


def serialize_value(value: ConfigScalar) -> str:
    """Serialize a supported scalar the way it is stored remotely."""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float, str)):
        return str(value)
    raise TypeError(f"Unsupported configuration value type: {type(value).__name__}")
