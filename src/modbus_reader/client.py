"""ModbusSession: one Modbus TCP device connection over pymodbus' asyncio client."""

import asyncio
import ipaddress
import logging
import os
import time
from dataclasses import dataclass, replace
from typing import Any, AsyncIterator

from pymodbus.client import AsyncModbusTcpClient
from pymodbus.exceptions import ModbusException as PymodbusException

from .batch import RangeReader, read_ranges_detailed, rfc3339_now
from .errors import (
    ConfigError,
    ConnectionFailedError,
    DeviceError,
    InternalError,
    ModbusReaderError,
    ModbusTimeoutError,
    NotConnectedError,
    ProtocolError,
)
from .types import BatchReadResult, ConnectionConfig, ConnectionState, ReadResult, RegisterRange, StateKind

logger = logging.getLogger(__name__)

TIMEOUT_MS_MAX = 60_000

# Modbus exception code names from the Modbus application protocol
_EXCEPTION_NAMES: dict[int, str] = {
    0x01: "Illegal function",
    0x02: "Illegal data address",
    0x03: "Illegal data value",
    0x04: "Server device failure",
    0x05: "Acknowledge",
    0x06: "Server device busy",
    0x08: "Memory parity error",
    0x0A: "Gateway path unavailable",
    0x0B: "Gateway target device failed to respond",
}


def describe_exception_response(response: Any) -> str:
    """Text for a pymodbus error response, naming the exception code when present."""
    code = getattr(response, "exception_code", None)
    if isinstance(code, int):
        return f"{_EXCEPTION_NAMES.get(code, 'Unknown exception')} (0x{code:02X})"
    return str(response)


def _os_error_text(e: BaseException) -> str:
    errno = getattr(e, "errno", None)
    if isinstance(errno, int):
        return f"{os.strerror(errno)} ({e})"
    return str(e)


async def _dial_failure_reason(host: str, port: int, timeout_s: float) -> str:
    """
    Re-dial host:port with a plain socket to recover why the connect failed.

    pymodbus' connect() logs the OS error and only returns False.
    """
    try:
        _, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout_s)
    except asyncio.TimeoutError:
        return f"timeout opening {host}:{port}"
    except OSError as e:
        return _os_error_text(e)
    writer.close()
    return f"could not open {host}:{port}"


@dataclass(frozen=True)
class _Link:
    """
    Connection state paired with the transport it describes.

    A CONNECTED link without a transport cannot be built. ERROR links may still
    hold the stale transport so the next connect/disconnect can close it.
    """

    state: ConnectionState
    transport: AsyncModbusTcpClient | None = None

    def __post_init__(self) -> None:
        if self.state.kind == StateKind.CONNECTED and self.transport is None:
            raise InternalError("connected state requires a transport")


class ModbusSession:
    """
    Modbus TCP session for a single device: connect/disconnect, connection probe,
    timeout-bounded holding-register reads, and decoded batch reads.

    Every public coroutine holds the session lock for its whole duration, network
    round trip included, so concurrent callers run one after another.
    """

    def __init__(self, config: ConnectionConfig | None = None) -> None:
        self._config = config if config is not None else ConnectionConfig()
        self._link = _Link(ConnectionState.disconnected())
        self._lock = asyncio.Lock()

    @classmethod
    def with_config(cls, config: ConnectionConfig) -> "ModbusSession":
        return cls(replace(config))

    # ------------------------------------------------------------------
    # State helpers
    # ------------------------------------------------------------------

    def _set_state(self, state: ConnectionState) -> None:
        self._link = _Link(state, self._link.transport)

    def _fail(self, message: str) -> None:
        self._set_state(ConnectionState.error(message))

    def _close_transport(self) -> None:
        transport = self._link.transport
        if transport is None:
            return
        self._link = _Link(ConnectionState.disconnected())
        try:
            transport.close()
        except Exception as e:
            logger.warning("Error closing Modbus client: %s", e)

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    def is_connected(self) -> bool:
        return self._link.state.kind == StateKind.CONNECTED and self._link.transport is not None

    def get_state(self) -> ConnectionState:
        return self._link.state

    def get_config(self) -> ConnectionConfig:
        return replace(self._config)

    def get_connection_info(self) -> str:
        c = self._config
        return (
            f"State: {self._link.state}, device: {c.host}:{c.port}, "
            f"slave id: {c.slave_id}, timeout: {c.timeout_ms}ms"
        )

    def validate_config(self) -> None:
        """Raise ConfigError for the first invalid config field; no I/O."""
        if not self._config.host:
            raise ConfigError("IP address cannot be empty")
        if self._config.port == 0:
            raise ConfigError("Port cannot be 0")
        if self._config.timeout_ms == 0:
            raise ConfigError("Timeout cannot be 0")
        if self._config.timeout_ms > TIMEOUT_MS_MAX:
            raise ConfigError("Timeout cannot exceed 60 seconds")

    # ------------------------------------------------------------------
    # Mutators
    # ------------------------------------------------------------------

    async def set_slave_id(self, slave_id: int) -> None:
        """Slave id is sent with every request, so a live connection picks it up on the next read."""
        if not 0 <= slave_id <= 0xFF:
            raise ConfigError(f"Slave id must be 0-255, got {slave_id}")
        async with self._lock:
            logger.debug("Slave id: %d -> %d", self._config.slave_id, slave_id)
            self._config.slave_id = slave_id
            if not self.is_connected():
                logger.debug("Slave id staged for next connect")

    async def set_timeout(self, timeout_ms: int) -> None:
        """Timeout bounds every connect and read, so it applies from the next call on."""
        if not 1 <= timeout_ms <= TIMEOUT_MS_MAX:
            raise ConfigError(f"Timeout must be between 1 and {TIMEOUT_MS_MAX} ms, got {timeout_ms}")
        async with self._lock:
            logger.debug("Timeout: %dms -> %dms", self._config.timeout_ms, timeout_ms)
            self._config.timeout_ms = timeout_ms

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def connect(self, host: str, port: int) -> None:
        """Open the TCP connection; raises ConfigError, ConnectionFailedError or ModbusTimeoutError."""
        async with self._lock:
            await self._connect(host, port)

    async def _connect(self, host: str, port: int) -> None:
        logger.info("Connecting to Modbus device %s:%s", host, port)
        if not host:
            raise ConfigError("IP address cannot be empty")
        if port == 0:
            raise ConfigError("Port cannot be 0")

        self._set_state(ConnectionState.connecting())
        self._config.host = host
        self._config.port = port

        try:
            ipaddress.ip_address(host)
        except ValueError as e:
            self._fail(f"Invalid address: {e}")
            logger.error("Address parse failed for %s:%s: %s", host, port, e)
            raise ConnectionFailedError(f"Invalid address: {e}") from e

        if self._link.transport is not None:
            logger.warning("Closing existing connection before reconnecting")
            self._close_transport()
            self._set_state(ConnectionState.connecting())

        timeout_s = self._config.timeout_s
        logger.debug("Opening TCP connection, timeout %dms", self._config.timeout_ms)
        client = AsyncModbusTcpClient(
            host,
            port=port,
            timeout=timeout_s,
            retries=0,
            reconnect_delay=0,
        )
        try:
            ok = await asyncio.wait_for(client.connect(), timeout_s)
        except asyncio.TimeoutError:
            client.close()
            self._fail("Connection timeout")
            logger.error("Connection to %s:%s timed out after %dms", host, port, self._config.timeout_ms)
            raise ModbusTimeoutError() from None
        except (PymodbusException, OSError) as e:
            client.close()
            detail = f"Connection failed: {_os_error_text(e)}"
            self._fail(detail)
            logger.error("Connection to %s:%s failed: %s", host, port, e)
            raise ConnectionFailedError(detail) from e
        if not ok:
            client.close()
            detail = f"Connection failed: {await _dial_failure_reason(host, port, timeout_s)}"
            self._fail(detail)
            logger.error(detail)
            raise ConnectionFailedError(detail)

        self._link = _Link(ConnectionState.connected(), client)
        logger.info("Connected to %s:%s (slave id %d)", host, port, self._config.slave_id)

        # Best effort: a failed probe is logged, connect still succeeds
        if not await self._probe():
            logger.warning("Post-connect connection test failed for %s:%s", host, port)

    async def disconnect(self) -> None:
        """Release the transport if any; always ends Disconnected."""
        async with self._lock:
            logger.info("Disconnecting Modbus device")
            if self._link.transport is None:
                logger.debug("No active connection to close")
            self._close_transport()
            self._link = _Link(ConnectionState.disconnected())

    async def test_connection(self) -> bool:
        """Probe with a 1-register read at address 0; False when not connected."""
        async with self._lock:
            return await self._probe()

    async def _probe(self) -> bool:
        if not self.is_connected():
            logger.debug("Connection test skipped: not connected")
            return False
        try:
            data = await self._read_raw(0, 1)
        except DeviceError as e:
            if e.exception_response:
                # The device answered; it just rejected address 0 or the function
                logger.debug("Device responded with an exception, connection is alive")
                self._set_state(ConnectionState.connected())
            else:
                # Counted as reachable, but the transport is gone until reconnect
                logger.warning("Connection test hit a transport error: %s", e.detail)
            return True
        except ModbusReaderError as e:
            logger.warning("Connection test failed: %s", e.user_message())
            self._fail("Connection test failed")
            return False
        logger.debug("Connection test read %d register(s)", len(data))
        return True

    async def __aenter__(self) -> "ModbusSession":
        await self.connect(self._config.host, self._config.port)
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.disconnect()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def _read_raw(self, start: int, count: int) -> list[int]:
        transport = self._link.transport
        if transport is None:
            raise NotConnectedError()
        logger.debug("Raw read: start=%d count=%d timeout=%dms", start, count, self._config.timeout_ms)
        try:
            rr = await asyncio.wait_for(
                transport.read_holding_registers(start, count=count, device_id=self._config.slave_id),
                self._config.timeout_s,
            )
        except asyncio.TimeoutError:
            logger.warning("Read timed out (%dms)", self._config.timeout_ms)
            self._fail("Read timeout")
            raise ModbusTimeoutError() from None
        except (PymodbusException, OSError) as e:
            detail = f"Transport error: {e}"
            logger.warning("Transport layer error: %s", detail)
            self._fail(detail)
            raise DeviceError(detail) from e

        if rr.isError():
            detail = f"Modbus exception: {describe_exception_response(rr)}"
            logger.warning("Modbus exception response: %s", detail)
            self._fail(detail)
            raise DeviceError(detail, exception_response=True)

        registers = getattr(rr, "registers", None) or []
        if len(registers) < count:
            detail = f"Short register response: expected {count}, got {len(registers)}"
            logger.warning(detail)
            self._fail(detail)
            raise ProtocolError(detail)
        return [int(v) for v in registers[:count]]

    async def read_holding_registers(self, rng: RegisterRange) -> ReadResult:
        """Read one range of holding registers as raw 16-bit words."""
        async with self._lock:
            return await self._read_range(rng)

    async def _read_range(self, rng: RegisterRange) -> ReadResult:
        logger.info("Reading holding registers: start=%d count=%d", rng.start, rng.count)
        try:
            rng.validate()
        except ModbusReaderError as e:
            logger.error("Invalid address range: %s", e.user_message())
            raise
        if not self.is_connected():
            logger.error("Read rejected: not connected")
            raise NotConnectedError()

        started = time.monotonic()
        try:
            data = await self._read_raw(rng.start, rng.count)
        except ModbusReaderError as e:
            logger.error(
                "Register read failed after %dms: %s",
                int((time.monotonic() - started) * 1000),
                e.user_message(),
            )
            raise
        logger.info("Read %d register(s) in %dms", len(data), int((time.monotonic() - started) * 1000))
        logger.debug("Data: %s", data)
        return ReadResult(
            success=True,
            data=data,
            address_range=rng,
            timestamp=rfc3339_now(),
            message=f"Read {len(data)} registers",
        )

    async def read_multiple_ranges(self, ranges: list[RegisterRange]) -> list[ReadResult]:
        """Read ranges one at a time; the first failure is raised and later ranges are not read."""
        async with self._lock:
            logger.info("Reading %d range(s)", len(ranges))
            results: list[ReadResult] = []
            for i, rng in enumerate(ranges, start=1):
                logger.debug("Range %d/%d: start=%d count=%d", i, len(ranges), rng.start, rng.count)
                try:
                    results.append(await self._read_range(rng))
                except ModbusReaderError as e:
                    logger.error("Range %d/%d failed: %s", i, len(ranges), e.user_message())
                    raise
            logger.info("Read %d range(s)", len(results))
            return results

    async def read_ranges_detailed(
        self,
        ranges: list[RegisterRange],
        fmt: str | None = None,
    ) -> BatchReadResult:
        """Decoded batch read; failed ranges are reported per address, not raised."""
        async with self._lock:
            reader: RangeReader = self._read_range
            return await read_ranges_detailed(reader, ranges, fmt)

    async def poll_ranges(
        self,
        ranges: list[RegisterRange],
        interval_s: float,
        fmt: str | None = None,
    ) -> AsyncIterator[BatchReadResult]:
        """Yield read_ranges_detailed(ranges) every interval_s seconds indefinitely."""
        while True:
            yield await self.read_ranges_detailed(ranges, fmt)
            await asyncio.sleep(interval_s)
