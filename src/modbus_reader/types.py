"""Core data model: connection config/state, register ranges, and read results."""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any

from .errors import MAX_REGISTERS_PER_READ, InvalidAddressRangeError

ADDRESS_MAX = 0xFFFF


class DataType(str, Enum):
    """Register decoding types. 32-bit types span two registers, high word first."""

    UINT16 = "uint16"
    INT16 = "int16"
    UINT32 = "uint32"
    INT32 = "int32"
    FLOAT32 = "float32"

    @classmethod
    def is_32bit(cls, data_type: str) -> bool:
        return data_type in (cls.UINT32, cls.INT32, cls.FLOAT32)


def type_name(data_type: str) -> str:
    """Plain string form of a data type, whether given as DataType or str."""
    return data_type.value if isinstance(data_type, Enum) else data_type


class DisplayFormat(str, Enum):
    """Display format for integer register values."""

    DEC = "dec"
    HEX = "hex"
    BIN = "bin"


class StateKind(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


@dataclass(frozen=True)
class ConnectionState:
    """Connection state; message is set only for ERROR."""

    kind: StateKind
    message: str | None = None

    @classmethod
    def disconnected(cls) -> "ConnectionState":
        return cls(StateKind.DISCONNECTED)

    @classmethod
    def connecting(cls) -> "ConnectionState":
        return cls(StateKind.CONNECTING)

    @classmethod
    def connected(cls) -> "ConnectionState":
        return cls(StateKind.CONNECTED)

    @classmethod
    def error(cls, message: str) -> "ConnectionState":
        return cls(StateKind.ERROR, message)

    @property
    def is_error(self) -> bool:
        return self.kind == StateKind.ERROR

    def __str__(self) -> str:
        if self.kind == StateKind.ERROR:
            return f"Error({self.message})"
        return self.kind.value.capitalize()

    def to_dict(self) -> dict[str, Any]:
        return {"state": self.kind.value, "message": self.message}


@dataclass
class ConnectionConfig:
    """Device endpoint and request parameters. Validated by ModbusSession.validate_config()."""

    host: str = "192.168.1.100"
    port: int = 502
    timeout_ms: int = 3000
    slave_id: int = 1

    @property
    def timeout_s(self) -> float:
        return self.timeout_ms / 1000.0

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class RegisterRange:
    """Contiguous block of holding registers with the type used to decode it."""

    start: int
    count: int
    data_type: str = DataType.UINT16.value

    def is_valid(self) -> bool:
        if self.count <= 0 or self.count > MAX_REGISTERS_PER_READ:
            return False
        if not 0 <= self.start <= ADDRESS_MAX:
            return False
        # 16-bit saturating add: the span may not wrap past the address space
        return min(self.start + self.count, ADDRESS_MAX) > self.start

    def validate(self) -> None:
        """Raise InvalidAddressRangeError if the range is not readable in one request."""
        if not self.is_valid():
            raise InvalidAddressRangeError(self.start, self.count)

    @property
    def end(self) -> int:
        """Last address covered by the range (inclusive)."""
        return self.start + self.count - 1

    def addresses(self) -> range:
        return range(self.start, self.start + self.count)

    def label(self) -> str:
        return f"{self.start}-{self.end}"

    def to_dict(self) -> dict[str, Any]:
        return {"start": self.start, "count": self.count, "data_type": type_name(self.data_type)}


@dataclass(frozen=True)
class RangeOverlap:
    first: RegisterRange
    second: RegisterRange
    overlap_start: int
    overlap_end: int


def detect_range_overlaps(ranges: list[RegisterRange]) -> list[RangeOverlap]:
    """Return every pair of ranges that share at least one address, in input order."""
    overlaps: list[RangeOverlap] = []
    for i, a in enumerate(ranges):
        for b in ranges[i + 1:]:
            lo = max(a.start, b.start)
            hi = min(a.end, b.end)
            if lo <= hi:
                overlaps.append(RangeOverlap(a, b, lo, hi))
    return overlaps


def total_addresses(ranges: list[RegisterRange]) -> int:
    return sum(r.count for r in ranges)


@dataclass
class ReadResult:
    """Raw words from one successful read_holding_registers call."""

    success: bool
    data: list[int]
    address_range: RegisterRange
    timestamp: str
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "data": list(self.data),
            "address_range": self.address_range.to_dict(),
            "timestamp": self.timestamp,
            "message": self.message,
        }


@dataclass
class AddressReadResult:
    """Decoded value for one logical address. data_type is the type actually used to decode."""

    address: int
    raw_value: int
    parsed_value: str
    timestamp: str
    success: bool
    error: str | None
    data_type: str

    def to_dict(self) -> dict[str, Any]:
        d = asdict(self)
        d["data_type"] = type_name(self.data_type)
        return d


@dataclass
class BatchReadResult:
    results: list[AddressReadResult] = field(default_factory=list)
    total_count: int = 0
    success_count: int = 0
    failed_count: int = 0
    timestamp: str = ""
    duration_ms: int = 0

    def check_consistency(self) -> list[str]:
        """Return human-readable problems with the counters; empty when consistent."""
        problems: list[str] = []
        actual_total = len(self.results)
        if self.total_count != actual_total:
            problems.append(f"total_count is {self.total_count}, results hold {actual_total}")
        actual_success = sum(1 for r in self.results if r.success)
        if self.success_count != actual_success:
            problems.append(f"success_count is {self.success_count}, actual {actual_success}")
        actual_failed = actual_total - actual_success
        if self.failed_count != actual_failed:
            problems.append(f"failed_count is {self.failed_count}, actual {actual_failed}")
        for r in self.results:
            if not r.success and not r.error:
                problems.append(f"address {r.address} failed without an error message")
        return problems

    def to_dict(self) -> dict[str, Any]:
        return {
            "results": [r.to_dict() for r in self.results],
            "total_count": self.total_count,
            "success_count": self.success_count,
            "failed_count": self.failed_count,
            "timestamp": self.timestamp,
            "duration_ms": self.duration_ms,
        }
