"""Tests for register range spec parsing and validation."""

import pytest

from modbus_reader import RegisterRange, parse_range_spec
from modbus_reader.errors import ConfigError, InvalidAddressRangeError


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("100:10", RegisterRange(100, 10, "uint16")),
        ("0:1", RegisterRange(0, 1, "uint16")),
        ("0x10:4", RegisterRange(16, 4, "uint16")),
        ("0X10:0x2:FLOAT32", RegisterRange(16, 2, "float32")),
        ("40:2:int32", RegisterRange(40, 2, "int32")),
        ("  7:1:int16  ", RegisterRange(7, 1, "int16")),
        ("65534:1", RegisterRange(65534, 1, "uint16")),
    ],
)
def test_parse_range_spec_canonical(raw: str, expected: RegisterRange) -> None:
    assert parse_range_spec(raw) == expected


@pytest.mark.parametrize(
    "malformed",
    [
        "",
        "   ",
        "100",
        "100:",
        ":10",
        "a:b",
        "1:2:3:4",
        "-1:5",
        "1:2:double",
        "70000:1",
    ],
)
def test_parse_range_spec_malformed_raises(malformed: str) -> None:
    with pytest.raises(ConfigError):
        parse_range_spec(malformed)


@pytest.mark.parametrize("raw", ["0:0", "0:126", "65535:2"])
def test_parse_range_spec_invalid_range_raises(raw: str) -> None:
    with pytest.raises(InvalidAddressRangeError):
        parse_range_spec(raw)
