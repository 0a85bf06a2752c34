"""Tests for CLI module - output helpers and command structure."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

from typer.testing import CliRunner

from modbus_reader import AddressReadResult, BatchReadResult, ReadResult, RegisterRange
from modbus_reader.cli import app, csv_header, csv_row, format_batch_text, tracked_addresses
from modbus_reader.errors import ConnectionFailedError

runner = CliRunner()


def _entry(address: int, value: str, success: bool = True, data_type: str = "uint16") -> AddressReadResult:
    return AddressReadResult(
        address=address,
        raw_value=0,
        parsed_value=value,
        timestamp="2024-01-01T00:00:00+00:00",
        success=success,
        error=None if success else "Register count cannot be 0",
        data_type=data_type,
    )


def _batch(results: list[AddressReadResult]) -> BatchReadResult:
    ok = sum(1 for r in results if r.success)
    return BatchReadResult(
        results=results,
        total_count=len(results),
        success_count=ok,
        failed_count=len(results) - ok,
        timestamp="2024-01-01T00:00:00+00:00",
        duration_ms=12,
    )


def _mock_session() -> MagicMock:
    session = MagicMock()
    session.connect = AsyncMock()
    session.disconnect = AsyncMock()
    session.test_connection = AsyncMock(return_value=True)
    session.get_connection_info.return_value = "State: Connected, device: 10.0.0.2:502, slave id: 1, timeout: 3000ms"
    return session


# ============================================================================
# Output helpers
# ============================================================================


class TestTrackedAddresses:
    def test_16bit_ranges_track_every_register(self) -> None:
        assert tracked_addresses([RegisterRange(0, 3), RegisterRange(10, 1, "int16")]) == [0, 1, 2, 10]

    def test_32bit_ranges_track_pair_starts(self) -> None:
        assert tracked_addresses([RegisterRange(100, 4, "float32")]) == [100, 102]

    def test_32bit_odd_count_tracks_tail(self) -> None:
        assert tracked_addresses([RegisterRange(0, 3, "uint32")]) == [0, 2]


class TestCsv:
    def test_header(self) -> None:
        assert csv_header([0, 1, 5]) == "timestamp,addr_0,addr_1,addr_5"

    def test_row_uses_error_token(self) -> None:
        batch = _batch([_entry(0, "7"), _entry(1, "0", success=False), _entry(5, "0x0010")])
        assert csv_row(batch, [0, 1, 5]) == "2024-01-01T00:00:00+00:00,7,ERROR,0x0010"

    def test_row_missing_address_is_error(self) -> None:
        batch = _batch([_entry(0, "7")])
        assert csv_row(batch, [0, 1]).endswith(",7,ERROR")


def test_format_batch_text() -> None:
    text = format_batch_text(_batch([_entry(0, "1"), _entry(1, "0", success=False)]))
    lines = text.splitlines()
    assert lines[0] == "0\tuint16\t1"
    assert lines[1].startswith("1\tuint16\tERROR:")
    assert lines[-1] == "total=2 ok=1 failed=1 12ms"


# ============================================================================
# Command Structure Tests (with mocked session)
# ============================================================================


@patch("modbus_reader.cli.ModbusSession")
def test_ping_command_default(mock_session_class: MagicMock) -> None:
    session = _mock_session()
    mock_session_class.return_value = session

    result = runner.invoke(app, ["ping", "--host", "10.0.0.2"])

    assert result.exit_code == 0
    assert "OK: Connected to 10.0.0.2:502" in result.output
    session.test_connection.assert_awaited_once()


@patch("modbus_reader.cli.ModbusSession")
def test_ping_command_probe_fails(mock_session_class: MagicMock) -> None:
    session = _mock_session()
    session.test_connection.return_value = False
    mock_session_class.return_value = session

    result = runner.invoke(app, ["ping", "--host", "10.0.0.2"])

    assert result.exit_code == 3
    assert "FAILED" in result.output


@patch("modbus_reader.cli.ModbusSession")
def test_ping_command_connection_error(mock_session_class: MagicMock) -> None:
    session = _mock_session()
    session.__aenter__.side_effect = ConnectionFailedError("Connection failed: [Errno 111] Connection refused")
    mock_session_class.return_value = session

    result = runner.invoke(app, ["ping", "--host", "10.0.0.2"])

    assert result.exit_code == 3
    assert "Connection refused" in result.output


def test_ping_requires_host() -> None:
    result = runner.invoke(app, ["ping"], env={"MODBUS_READER_HOST": ""})
    assert result.exit_code == 2
    assert "--host is required" in result.output


def test_ping_invalid_timeout_is_config_error() -> None:
    result = runner.invoke(app, ["ping", "--host", "10.0.0.2", "--timeout-ms", "0"])
    assert result.exit_code == 2
    assert "Configuration error" in result.output


def test_info_command_local() -> None:
    """Test info command without host (local metadata only)."""
    result = runner.invoke(app, ["info"], env={"MODBUS_READER_HOST": ""})

    assert result.exit_code == 0
    assert "version:" in result.output.lower()


@patch("modbus_reader.cli.ModbusSession")
def test_info_command_with_host_json(mock_session_class: MagicMock) -> None:
    session = _mock_session()
    mock_session_class.return_value = session

    result = runner.invoke(app, ["info", "--host", "10.0.0.2", "--json"])

    assert result.exit_code == 0
    data = json.loads(result.stdout)
    assert data["connectivity"]["status"] == "connected"
    session.disconnect.assert_awaited_once()


@patch("modbus_reader.cli.ModbusSession")
def test_read_command_json(mock_session_class: MagicMock) -> None:
    session = _mock_session()
    rng = RegisterRange(10, 2)
    session.read_holding_registers = AsyncMock(
        return_value=ReadResult(success=True, data=[1, 65535], address_range=rng, timestamp="t", message="Read 2 registers")
    )
    mock_session_class.return_value = session

    result = runner.invoke(app, ["read", "10", "2", "--host", "10.0.0.2", "--json"])

    assert result.exit_code == 0
    data = json.loads(result.stdout)
    assert data["data"] == [1, 65535]
    assert data["address_range"] == {"start": 10, "count": 2, "data_type": "uint16"}
    session.read_holding_registers.assert_awaited_once_with(rng)


@patch("modbus_reader.cli.ModbusSession")
def test_read_command_hex_text(mock_session_class: MagicMock) -> None:
    session = _mock_session()
    session.read_holding_registers = AsyncMock(
        return_value=ReadResult(success=True, data=[255], address_range=RegisterRange(3, 1), timestamp="t", message="")
    )
    mock_session_class.return_value = session

    result = runner.invoke(app, ["read", "3", "1", "--host", "10.0.0.2", "--format", "hex"])

    assert result.exit_code == 0
    assert "3\t0x00FF" in result.output


@patch("modbus_reader.cli.ModbusSession")
def test_read_command_invalid_range(mock_session_class: MagicMock) -> None:
    session = _mock_session()
    mock_session_class.return_value = session

    result = runner.invoke(app, ["read", "0", "200", "--host", "10.0.0.2"])

    assert result.exit_code == 2
    assert "125" in result.output
    session.connect.assert_not_awaited()


@patch("modbus_reader.cli.ModbusSession")
def test_read_command_negative_start(mock_session_class: MagicMock) -> None:
    session = _mock_session()
    mock_session_class.return_value = session

    result = runner.invoke(app, ["read", "--host", "10.0.0.2", "--", "-5", "1"])

    assert result.exit_code == 2
    assert "Start address must be between 0 and 65535" in result.output
    session.connect.assert_not_awaited()


@patch("modbus_reader.cli.ModbusSession")
def test_ping_command_dead_transport_fails(mock_session_class: MagicMock) -> None:
    session = _mock_session()
    session.is_connected.return_value = False
    mock_session_class.return_value = session

    result = runner.invoke(app, ["ping", "--host", "10.0.0.2"])

    assert result.exit_code == 3
    assert "FAILED" in result.output


def test_read_command_invalid_format() -> None:
    result = runner.invoke(app, ["read", "0", "1", "--host", "10.0.0.2", "--format", "oct"])
    assert result.exit_code == 2
    assert "Invalid format" in result.output


@patch("modbus_reader.cli.ModbusSession")
def test_read_ranges_detailed(mock_session_class: MagicMock) -> None:
    session = _mock_session()
    session.read_ranges_detailed = AsyncMock(return_value=_batch([_entry(100, "42", data_type="float32")]))
    mock_session_class.return_value = session

    result = runner.invoke(app, ["read-ranges", "100:2:float32", "--host", "10.0.0.2"])

    assert result.exit_code == 0
    assert "100\tfloat32\t42" in result.output
    args = session.read_ranges_detailed.call_args[0]
    assert args[0] == [RegisterRange(100, 2, "float32")]
    assert args[1] == "dec"


@patch("modbus_reader.cli.ModbusSession")
def test_read_ranges_fail_fast(mock_session_class: MagicMock) -> None:
    session = _mock_session()
    session.read_multiple_ranges = AsyncMock(
        return_value=[ReadResult(success=True, data=[1, 2], address_range=RegisterRange(0, 2), timestamp="t", message="")]
    )
    mock_session_class.return_value = session

    result = runner.invoke(app, ["read-ranges", "0:2", "--host", "10.0.0.2", "--fail-fast"])

    assert result.exit_code == 0
    assert "0-1: 1 2" in result.output
    session.read_multiple_ranges.assert_awaited_once()


def test_read_ranges_bad_spec() -> None:
    result = runner.invoke(app, ["read-ranges", "oops", "--host", "10.0.0.2"])
    assert result.exit_code == 2
    assert "Malformed range spec" in result.output


@patch("modbus_reader.cli.ModbusSession")
def test_poll_once_csv(mock_session_class: MagicMock) -> None:
    session = _mock_session()
    batch = _batch([_entry(0, "5"), _entry(1, "0", success=False)])

    async def poll_ranges(ranges, interval, fmt):
        yield batch

    session.poll_ranges = poll_ranges
    mock_session_class.return_value = session

    result = runner.invoke(app, ["poll", "0:2", "--host", "10.0.0.2", "--once", "--output", "csv"])

    assert result.exit_code == 0
    lines = result.stdout.strip().splitlines()
    assert lines[0] == "timestamp,addr_0,addr_1"
    assert lines[1] == "2024-01-01T00:00:00+00:00,5,ERROR"


def test_poll_invalid_output() -> None:
    result = runner.invoke(app, ["poll", "0:2", "--host", "10.0.0.2", "--output", "xml"])
    assert result.exit_code == 2


def test_poll_invalid_interval() -> None:
    result = runner.invoke(app, ["poll", "0:2", "--host", "10.0.0.2", "--interval", "0"])
    assert result.exit_code == 2


def test_version() -> None:
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert "modbus-reader" in result.output
