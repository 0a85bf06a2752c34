"""Parse and validate register range specs of the form START:COUNT[:TYPE]."""

import re

from .errors import ConfigError
from .types import DataType, RegisterRange

# Start and count in decimal or 0x hex, optional data type name
_RANGE_PATTERN = re.compile(
    r"^(0x[0-9a-f]+|\d+):(0x[0-9a-f]+|\d+)(?::([a-z0-9]+))?$",
    re.IGNORECASE,
)

_VALID_TYPES = frozenset(t.value for t in DataType)


def _parse_number(text: str) -> int:
    if text.lower().startswith("0x"):
        return int(text, 16)
    return int(text)


def parse_range_spec(raw: str) -> RegisterRange:
    """
    Parse a range spec into a validated RegisterRange.

    - "100:10" -> 10 uint16 registers from address 100
    - "0x10:4:float32" -> 2 float32 values from address 16
    - type names are case-insensitive

    Raises ConfigError for malformed specs and InvalidAddressRangeError for
    ranges that cannot be read in one request.
    """
    s = raw.strip()
    if not s:
        raise ConfigError("Range spec cannot be empty")

    m = _RANGE_PATTERN.match(s)
    if not m:
        raise ConfigError(f"Malformed range spec {raw!r}, expected START:COUNT[:TYPE]")

    start = _parse_number(m.group(1))
    count = _parse_number(m.group(2))
    if start > 0xFFFF:
        raise ConfigError(f"Start address out of range 0-65535: {start}")

    type_raw = m.group(3)
    data_type = type_raw.lower() if type_raw else DataType.UINT16.value
    if data_type not in _VALID_TYPES:
        raise ConfigError(f"Unknown data type {type_raw!r}, expected one of {', '.join(sorted(_VALID_TYPES))}")

    rng = RegisterRange(start=start, count=count, data_type=data_type)
    rng.validate()
    return rng
