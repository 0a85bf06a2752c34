"""modbus-reader: Modbus TCP holding-register reads with typed decoding, via pymodbus."""

__version__ = "0.1.0"

from .batch import read_ranges_detailed
from .client import ModbusSession
from .decode import decode_register, format_value
from .errors import (
    ConfigError,
    ConnectionFailedError,
    DeviceError,
    InternalError,
    InvalidAddressRangeError,
    ModbusIOError,
    ModbusReaderError,
    ModbusTimeoutError,
    NotConnectedError,
    ProtocolError,
    is_retryable,
    user_message,
)
from .normalize import parse_range_spec
from .types import (
    AddressReadResult,
    BatchReadResult,
    ConnectionConfig,
    ConnectionState,
    DataType,
    DisplayFormat,
    RangeOverlap,
    ReadResult,
    RegisterRange,
    StateKind,
    detect_range_overlaps,
    total_addresses,
)

__all__ = [
    "__version__",
    "ModbusSession",
    "read_ranges_detailed",
    "decode_register",
    "format_value",
    "parse_range_spec",
    "ConfigError",
    "ConnectionFailedError",
    "DeviceError",
    "InternalError",
    "InvalidAddressRangeError",
    "ModbusIOError",
    "ModbusReaderError",
    "ModbusTimeoutError",
    "NotConnectedError",
    "ProtocolError",
    "is_retryable",
    "user_message",
    "AddressReadResult",
    "BatchReadResult",
    "ConnectionConfig",
    "ConnectionState",
    "DataType",
    "DisplayFormat",
    "RangeOverlap",
    "ReadResult",
    "RegisterRange",
    "StateKind",
    "detect_range_overlaps",
    "total_addresses",
]
