#!/usr/bin/env python3
"""Command-line front end for modbus-reader using Typer."""

import asyncio
import json
import logging
from typing import Any, Coroutine, Optional

import typer
from typing_extensions import Annotated

from . import __version__  # type: ignore
from .client import ModbusSession
from .decode import format_value
from .errors import ConfigError, InvalidAddressRangeError, ModbusReaderError
from .normalize import parse_range_spec
from .types import BatchReadResult, ConnectionConfig, DataType, DisplayFormat, RegisterRange, detect_range_overlaps, type_name

app = typer.Typer(
    name="modbus-reader",
    help="Read and decode Modbus TCP holding registers.",
    no_args_is_help=True,
)

logger = logging.getLogger(__name__)

# ============================================================================
# Shared options and helpers
# ============================================================================

HostOption = Annotated[
    Optional[str],
    typer.Option("--host", "-h", help="Device IP address", envvar="MODBUS_READER_HOST"),
]
PortOption = Annotated[
    int,
    typer.Option("--port", "-p", help="Modbus TCP port", envvar="MODBUS_READER_PORT"),
]
SlaveIdOption = Annotated[
    int,
    typer.Option("--slave-id", "-u", help="Modbus slave/unit ID", envvar="MODBUS_READER_SLAVE_ID"),
]
TimeoutOption = Annotated[
    int,
    typer.Option("--timeout-ms", "-t", help="Connect/read timeout in milliseconds", envvar="MODBUS_READER_TIMEOUT_MS"),
]
VerboseOption = Annotated[
    bool,
    typer.Option("--verbose", "-v", help="Enable debug logging"),
]
JsonOption = Annotated[
    bool,
    typer.Option("--json", help="Output as JSON"),
]
DisplayOption = Annotated[
    str,
    typer.Option("--format", "-f", help="Integer display format: dec, hex, bin"),
]
RangeSpecsArgument = Annotated[
    list[str],
    typer.Argument(help="Ranges as START:COUNT[:TYPE], TYPE one of uint16, int16, uint32, int32, float32"),
]


def setup_logging(verbose: bool) -> None:
    """Configure logging based on verbose flag."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s" if not verbose else "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def create_session(host: Optional[str], port: int, slave_id: int, timeout_ms: int) -> ModbusSession:
    """Create a ModbusSession and check its config before any I/O."""
    if not host:
        typer.echo("Error: --host is required for this command", err=True)
        raise typer.Exit(2)
    session = ModbusSession(ConnectionConfig(host=host, port=port, timeout_ms=timeout_ms, slave_id=slave_id))
    session.validate_config()
    return session


def check_display_format(fmt: str) -> str:
    valid = [f.value for f in DisplayFormat]
    if fmt not in valid:
        typer.echo(f"Error: Invalid format '{fmt}'. Must be one of: {', '.join(valid)}.", err=True)
        raise typer.Exit(2)
    return fmt


def parse_ranges(specs: list[str]) -> list[RegisterRange]:
    """Parse range specs; overlapping ranges are allowed but logged."""
    ranges = [parse_range_spec(s) for s in specs]
    for o in detect_range_overlaps(ranges):
        logger.warning("Ranges %s and %s overlap at %d-%d", o.first.label(), o.second.label(), o.overlap_start, o.overlap_end)
    return ranges


def tracked_addresses(ranges: list[RegisterRange]) -> list[int]:
    """Addresses that carry a decoded value: every register, or each pair start for 32-bit types."""
    out: list[int] = []
    for r in ranges:
        step = 2 if DataType.is_32bit(type_name(r.data_type)) else 1
        out.extend(range(r.start, r.start + r.count, step))
    return out


def csv_header(addresses: list[int]) -> str:
    return "timestamp," + ",".join(f"addr_{a}" for a in addresses)


def csv_row(batch: BatchReadResult, addresses: list[int]) -> str:
    """One row per batch: decoded value per tracked address, or ERROR."""
    by_address = {}
    for r in batch.results:
        by_address.setdefault(r.address, r)
    cells = []
    for a in addresses:
        r = by_address.get(a)
        cells.append(r.parsed_value if r is not None and r.success else "ERROR")
    return batch.timestamp + "," + ",".join(cells)


def format_batch_text(batch: BatchReadResult) -> str:
    lines = []
    for r in batch.results:
        if r.success:
            lines.append(f"{r.address}\t{r.data_type}\t{r.parsed_value}")
        else:
            lines.append(f"{r.address}\t{r.data_type}\tERROR: {r.error}")
    lines.append(
        f"total={batch.total_count} ok={batch.success_count} failed={batch.failed_count} {batch.duration_ms}ms"
    )
    return "\n".join(lines)


def run(coro: Coroutine[Any, Any, None], verbose: bool) -> None:
    """Run a command coroutine and map errors to exit codes (2 input, 3 Modbus, 4 unexpected)."""
    try:
        asyncio.run(coro)
    except typer.Exit:
        raise
    except (ConfigError, InvalidAddressRangeError) as e:
        typer.echo(f"Error: {e.user_message()}", err=True)
        raise typer.Exit(2)
    except ModbusReaderError as e:
        typer.echo(f"Error: Connection/Modbus error: {e.user_message()}", err=True)
        raise typer.Exit(3)
    except Exception as e:
        typer.echo(f"Error: Unexpected error: {e}", err=True)
        if verbose:
            import traceback
            traceback.print_exc()
        raise typer.Exit(4)


# ============================================================================
# Commands
# ============================================================================

@app.command()
def ping(
    host: HostOption = None,
    port: PortOption = 502,
    slave_id: SlaveIdOption = 1,
    timeout_ms: TimeoutOption = 3000,
    verbose: VerboseOption = False,
) -> None:
    """
    Test connectivity by connecting and reading 1 holding register at address 0.

    A Modbus exception response still counts as reachable.
    """
    setup_logging(verbose)

    async def _ping() -> None:
        session = create_session(host, port, slave_id, timeout_ms)
        async with session:
            ok = await session.test_connection() and session.is_connected()
        if not ok:
            typer.echo(f"FAILED: {host}:{port} connected but did not answer", err=True)
            raise typer.Exit(3)
        typer.echo(f"OK: Connected to {host}:{port}")

    run(_ping(), verbose)


@app.command()
def info(
    host: HostOption = None,
    port: PortOption = 502,
    slave_id: SlaveIdOption = 1,
    timeout_ms: TimeoutOption = 3000,
    verbose: VerboseOption = False,
    json_output: JsonOption = False,
) -> None:
    """
    Show package version and optionally test connectivity.

    Without --host: shows local metadata only.
    With --host: also connects and reports the connection state.
    """
    setup_logging(verbose)

    info_data: dict[str, Any] = {"version": __version__}

    async def _info() -> None:
        session = create_session(host, port, slave_id, timeout_ms)
        try:
            await session.connect(host or "", port)
            reachable = await session.test_connection()
            info_data["connectivity"] = {
                "status": "connected" if reachable else "failed",
                "info": session.get_connection_info(),
            }
        except ModbusReaderError as e:
            info_data["connectivity"] = {
                "status": "error",
                "error": e.user_message(),
                "info": session.get_connection_info(),
            }
        finally:
            await session.disconnect()

    if host:
        run(_info(), verbose)

    if json_output:
        typer.echo(json.dumps(info_data, indent=2))
    else:
        typer.echo(f"modbus-reader version: {info_data['version']}")
        if "connectivity" in info_data:
            conn = info_data["connectivity"]
            if conn["status"] == "connected":
                typer.echo(f"Connectivity: OK ({host}:{port})")
            elif conn["status"] == "failed":
                typer.echo(f"Connectivity: FAILED ({host}:{port})")
            else:
                typer.echo(f"Connectivity: ERROR - {conn['error']}")
            typer.echo(conn["info"])


@app.command()
def read(
    start: Annotated[int, typer.Argument(help="Start address (0-65535)")],
    count: Annotated[int, typer.Argument(help="Number of registers (1-125)")],
    host: HostOption = None,
    port: PortOption = 502,
    slave_id: SlaveIdOption = 1,
    timeout_ms: TimeoutOption = 3000,
    verbose: VerboseOption = False,
    json_output: JsonOption = False,
    display: DisplayOption = "dec",
) -> None:
    """
    Read a block of holding registers and print the raw 16-bit words.
    """
    setup_logging(verbose)
    check_display_format(display)

    async def _read() -> None:
        session = create_session(host, port, slave_id, timeout_ms)
        rng = RegisterRange(start=start, count=count)
        rng.validate()
        async with session:
            result = await session.read_holding_registers(rng)
        if json_output:
            typer.echo(json.dumps(result.to_dict(), indent=2))
        else:
            for i, word in enumerate(result.data):
                typer.echo(f"{start + i}\t{format_value(word, display)}")

    run(_read(), verbose)


@app.command(name="read-ranges")
def read_ranges(
    specs: RangeSpecsArgument,
    host: HostOption = None,
    port: PortOption = 502,
    slave_id: SlaveIdOption = 1,
    timeout_ms: TimeoutOption = 3000,
    verbose: VerboseOption = False,
    json_output: JsonOption = False,
    display: DisplayOption = "dec",
    fail_fast: Annotated[bool, typer.Option("--fail-fast", help="Raw reads; stop at the first failing range")] = False,
) -> None:
    """
    Read several ranges in one batch.

    By default every range is decoded and failed ranges are reported per address.
    With --fail-fast the raw words are printed and the first failure aborts.
    """
    setup_logging(verbose)
    check_display_format(display)

    async def _read_ranges() -> None:
        session = create_session(host, port, slave_id, timeout_ms)
        ranges = parse_ranges(specs)
        async with session:
            if fail_fast:
                results = await session.read_multiple_ranges(ranges)
                if json_output:
                    typer.echo(json.dumps([r.to_dict() for r in results], indent=2))
                else:
                    for r in results:
                        words = " ".join(format_value(w, display) for w in r.data)
                        typer.echo(f"{r.address_range.label()}: {words}")
                return
            batch = await session.read_ranges_detailed(ranges, display)
        if json_output:
            typer.echo(json.dumps(batch.to_dict(), indent=2))
        else:
            typer.echo(format_batch_text(batch))

    run(_read_ranges(), verbose)


@app.command()
def poll(
    specs: RangeSpecsArgument,
    host: HostOption = None,
    port: PortOption = 502,
    slave_id: SlaveIdOption = 1,
    timeout_ms: TimeoutOption = 3000,
    verbose: VerboseOption = False,
    display: DisplayOption = "dec",
    interval: Annotated[float, typer.Option("--interval", "-i", help="Polling interval in seconds")] = 1.0,
    once: Annotated[bool, typer.Option("--once", help="Poll once and exit")] = False,
    output: Annotated[str, typer.Option("--output", "-o", help="Output format: text, json, csv")] = "text",
) -> None:
    """
    Repeatedly read and decode ranges at the given interval.

    Outputs format:
    - text: timestamp + address=value pairs (default)
    - json: NDJSON, one batch result per line
    - csv: one column per tracked address, one row per batch, ERROR for failed cells

    Use --once to poll once and exit.
    Press Ctrl+C to stop gracefully.
    """
    setup_logging(verbose)
    check_display_format(display)

    if output not in ("text", "json", "csv"):
        typer.echo(f"Error: Invalid output '{output}'. Must be text, json, or csv.", err=True)
        raise typer.Exit(2)

    if interval <= 0:
        typer.echo(f"Error: Interval must be positive, got {interval}", err=True)
        raise typer.Exit(2)

    async def _poll() -> None:
        session = create_session(host, port, slave_id, timeout_ms)
        ranges = parse_ranges(specs)
        addresses = tracked_addresses(ranges)
        if output == "csv":
            typer.echo(csv_header(addresses))
        async with session:
            async for batch in session.poll_ranges(ranges, interval, display):
                if output == "text":
                    pairs = " ".join(
                        f"{r.address}={r.parsed_value if r.success else 'ERROR'}" for r in batch.results
                    )
                    typer.echo(f"{batch.timestamp} {pairs}")
                elif output == "json":
                    typer.echo(json.dumps(batch.to_dict()))
                else:
                    typer.echo(csv_row(batch, addresses))
                if once:
                    break

    try:
        run(_poll(), verbose)
    except KeyboardInterrupt:
        typer.echo("\nStopped by user", err=True)
        raise typer.Exit(0)


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        typer.echo(f"modbus-reader {__version__}")
        raise typer.Exit(0)


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option("--version", callback=version_callback, is_eager=True, help="Show version and exit"),
    ] = None,
) -> None:
    """modbus-reader - read and decode Modbus TCP holding registers."""
    pass


if __name__ == "__main__":
    app()
