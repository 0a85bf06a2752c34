"""Typed decoding of raw 16-bit holding-register words into display values."""

import math
import struct
from decimal import Decimal

from .types import AddressReadResult, DataType, DisplayFormat, type_name


def to_signed16(value: int) -> int:
    """Convert unsigned 16-bit to signed."""
    value &= 0xFFFF
    if value > 0x7FFF:
        return value - 0x10000
    return value


def to_signed32(value: int) -> int:
    """Convert unsigned 32-bit to signed."""
    value &= 0xFFFFFFFF
    if value > 0x7FFFFFFF:
        return value - 0x100000000
    return value


def combine_words(high: int, low: int) -> int:
    """Big-endian word order: the first register is the high half."""
    return ((high & 0xFFFF) << 16) | (low & 0xFFFF)


def float32_text(raw: int) -> str:
    """
    Render the IEEE 754 single-precision value of a 32-bit pattern as the
    shortest decimal text that reads back to the same float32, without
    exponent notation (0x42280000 -> "42", 0xC048F5C3 -> "-3.14").
    """
    value = struct.unpack(">f", struct.pack(">I", raw & 0xFFFFFFFF))[0]
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "inf" if value > 0 else "-inf"
    text = repr(value)
    for digits in range(1, 10):
        candidate = f"{value:.{digits}g}"
        try:
            if struct.unpack(">f", struct.pack(">f", float(candidate)))[0] == value:
                text = candidate
                break
        except OverflowError:
            continue
    return format(Decimal(text), "f")


def format_value(value: int, fmt: str = DisplayFormat.DEC) -> str:
    """Format a 16-bit value as decimal, hex (0x%04X) or binary (0b + 16 digits)."""
    if fmt == DisplayFormat.HEX:
        return f"0x{value:04X}"
    if fmt == DisplayFormat.BIN:
        return f"0b{value:016b}"
    return str(value)


def decode_register(
    address: int,
    value: int,
    data_type: str,
    *,
    timestamp: str,
    next_value: int | None = None,
    error: str | None = None,
    fmt: str = DisplayFormat.DEC,
) -> AddressReadResult:
    """
    Decode one register (or a register pair for 32-bit types) into an AddressReadResult.

    32-bit types need next_value, the register right after value. Without it the
    result falls back to uint16 over value alone, and the returned data_type says
    so: callers detect the fallback from the result, not from what they asked for.
    int16 always renders decimal. Unknown type strings pass through as uint16 text
    with the requested name kept.
    """
    requested = type_name(data_type)
    if DataType.is_32bit(requested) and next_value is not None:
        raw = combine_words(value, next_value)
        if requested == DataType.FLOAT32:
            parsed = float32_text(raw)
        elif requested == DataType.INT32:
            parsed = str(to_signed32(raw))
        else:
            parsed = str(raw)
        effective = requested
    elif DataType.is_32bit(requested):
        raw = value
        parsed = format_value(value, fmt)
        effective = DataType.UINT16.value
    elif requested == DataType.INT16:
        raw = value
        parsed = str(to_signed16(value))
        effective = requested
    else:
        raw = value
        parsed = format_value(value, fmt)
        effective = requested

    return AddressReadResult(
        address=address,
        raw_value=raw,
        parsed_value=parsed,
        timestamp=timestamp,
        success=error is None,
        error=error,
        data_type=effective,
    )
