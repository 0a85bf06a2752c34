#!/usr/bin/env python3
"""Example: connect to a device, read raw registers and a decoded batch."""

import asyncio
import sys

from modbus_reader import ConnectionConfig, ModbusReaderError, ModbusSession, RegisterRange


async def main() -> None:
    config = ConnectionConfig(host="192.168.1.100", port=502, timeout_ms=3000, slave_id=1)  # change to your device

    try:
        async with ModbusSession.with_config(config) as session:
            print(session.get_connection_info())

            # Raw 16-bit words
            result = await session.read_holding_registers(RegisterRange(0, 10))
            print(f"raw 0-9: {result.data}")

            # Decoded batch: 2 float32 values and 4 signed 16-bit values
            batch = await session.read_ranges_detailed(
                [RegisterRange(100, 4, "float32"), RegisterRange(200, 4, "int16")],
                "dec",
            )
            for r in batch.results:
                print(f"{r.address} ({r.data_type}) = {r.parsed_value if r.success else r.error}")
            print(f"{batch.success_count}/{batch.total_count} ok in {batch.duration_ms}ms")
    except ModbusReaderError as e:
        print(f"Modbus error: {e.user_message()}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
