#!/usr/bin/env python3
"""Example: poll ranges on an interval using poll_ranges; graceful shutdown on Ctrl+C."""

import asyncio
import sys

from modbus_reader import ConnectionConfig, ModbusReaderError, ModbusSession, RegisterRange


async def main() -> None:
    config = ConnectionConfig(host="192.168.1.100")  # change to your device IP
    ranges = [RegisterRange(0, 4), RegisterRange(100, 2, "float32")]
    interval_s = 1.0

    try:
        async with ModbusSession.with_config(config) as session:
            print(f"Polling {[r.label() for r in ranges]} every {interval_s}s (Ctrl+C to stop)...")
            async for batch in session.poll_ranges(ranges, interval_s):
                values = {r.address: r.parsed_value if r.success else "ERROR" for r in batch.results}
                print(batch.timestamp, values)
    except ModbusReaderError as e:
        print(f"Modbus error: {e.user_message()}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nStopped.")
