"""Error taxonomy for modbus-reader and its user-facing translation."""

MAX_REGISTERS_PER_READ = 125


class ModbusReaderError(Exception):
    """Base exception for modbus-reader."""

    kind = "error"

    def __init__(self, message: str, detail: str | None = None) -> None:
        self.detail = detail
        super().__init__(message)

    def user_message(self) -> str:
        return user_message(self)


class ConnectionFailedError(ModbusReaderError):
    """Raised when the TCP connection to the device cannot be established."""

    kind = "connection_failed"

    def __init__(self, detail: str) -> None:
        super().__init__(f"Unable to connect to Modbus device: {detail}", detail)


class NotConnectedError(ModbusReaderError):
    """Raised when a read is requested without a live connection."""

    kind = "not_connected"

    def __init__(self) -> None:
        super().__init__("Device is not connected, connect first")


class InvalidAddressRangeError(ModbusReaderError):
    """Raised when a register range fails validation (count or address overflow)."""

    kind = "invalid_address_range"

    def __init__(self, start: int, count: int) -> None:
        self.start = start
        self.count = count
        super().__init__(f"Invalid address range: start={start}, count={count}")


class ModbusTimeoutError(ModbusReaderError):
    """Raised when a connect or read does not complete within the configured timeout."""

    kind = "timeout"

    def __init__(self) -> None:
        super().__init__("Operation timed out, device may be unresponsive")


class DeviceError(ModbusReaderError):
    """Raised when the transport fails mid-request or the device returns a Modbus exception.

    ``exception_response`` is True only when the device itself answered with a
    Modbus exception PDU, which proves the link is alive.
    """

    kind = "device_error"

    def __init__(self, detail: str, *, exception_response: bool = False) -> None:
        super().__init__(f"Device responded with an error: {detail}", detail)
        self.exception_response = exception_response


class ModbusIOError(ModbusReaderError):
    """Raised for network or OS level I/O failures outside a request."""

    kind = "io_error"

    def __init__(self, detail: str) -> None:
        super().__init__(f"Network or I/O error: {detail}", detail)


class ProtocolError(ModbusReaderError):
    """Raised when a response is well-formed at the transport level but unusable."""

    kind = "protocol_error"

    def __init__(self, detail: str) -> None:
        super().__init__(f"Modbus protocol error: {detail}", detail)


class ConfigError(ModbusReaderError):
    """Raised when connection configuration is invalid; never touches the network."""

    kind = "config_error"

    def __init__(self, detail: str) -> None:
        super().__init__(f"Configuration error: {detail}", detail)


class InternalError(ModbusReaderError):
    """Raised when an internal invariant is violated."""

    kind = "internal_error"

    def __init__(self, detail: str) -> None:
        super().__init__(f"Internal error: {detail}", detail)


# (kind, substrings that must all occur in the detail, message). First match wins.
# The substrings follow the detail texts produced by client.py.
_DETAIL_TABLE: list[tuple[str, tuple[str, ...], str]] = [
    (
        "connection_failed",
        ("Connection refused",),
        "Connection refused: check the device IP address and port, and that the device is online",
    ),
    (
        "connection_failed",
        ("timeout",),
        "Connection timed out: check the network connection and device status",
    ),
    (
        "connection_failed",
        ("Timeout",),
        "Connection timed out: check the network connection and device status",
    ),
    (
        "connection_failed",
        ("Invalid address",),
        "Malformed IP address: check the address format",
    ),
    (
        "device_error",
        ("Illegal data address",),
        "The requested register address does not exist on the device",
    ),
    (
        "device_error",
        ("Illegal function",),
        "The device does not support this function",
    ),
    (
        "device_error",
        ("exception", "0x02"),
        "Illegal data address: check that the register address is correct",
    ),
    (
        "device_error",
        ("exception", "0x03"),
        "Illegal data value: the device cannot process the requested data",
    ),
]

_FALLBACK_PREFIX: dict[str, str] = {
    "connection_failed": "Connection failed",
    "device_error": "Device error",
    "io_error": "Network error",
    "protocol_error": "Protocol error",
    "config_error": "Configuration error",
    "internal_error": "Internal error",
}


def _range_message(err: InvalidAddressRangeError) -> str:
    if err.count == 0:
        return "Register count cannot be 0"
    if err.count > MAX_REGISTERS_PER_READ:
        return f"A single read cannot exceed {MAX_REGISTERS_PER_READ} registers"
    if not 0 <= err.start <= 0xFFFF:
        return f"Start address must be between 0 and 65535, got {err.start}"
    if min(err.start + err.count, 0xFFFF) <= err.start:
        return "Address range overflows: adjust the start address or register count"
    return f"Invalid address range (start: {err.start}, count: {err.count})"


def user_message(err: BaseException) -> str:
    """
    Translate an error into a user-facing explanation.

    Pure function. Connection and device errors are classified by substrings
    of their detail text; see _DETAIL_TABLE.
    """
    if isinstance(err, NotConnectedError):
        return "Device is not connected: press 'Connect' to establish a connection first"
    if isinstance(err, ModbusTimeoutError):
        return "Operation timed out: the device may be busy or network latency is too high, try again later"
    if isinstance(err, InvalidAddressRangeError):
        return _range_message(err)
    if not isinstance(err, ModbusReaderError):
        return f"Unexpected error: {err}"

    detail = err.detail or ""
    for kind, needles, message in _DETAIL_TABLE:
        if kind == err.kind and all(n in detail for n in needles):
            return message
    prefix = _FALLBACK_PREFIX.get(err.kind, "Error")
    return f"{prefix}: {detail}"


_RETRYABLE_KINDS = frozenset({"connection_failed", "timeout", "device_error", "io_error"})


def is_retryable(err: BaseException) -> bool:
    """True if the caller may reasonably reconnect and retry after this error."""
    return isinstance(err, ModbusReaderError) and err.kind in _RETRYABLE_KINDS
