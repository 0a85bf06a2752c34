"""Batch orchestration: decoded reads across several register ranges."""

import logging
import time
from datetime import datetime, timezone
from typing import Awaitable, Callable

from .decode import decode_register
from .errors import ModbusReaderError
from .types import AddressReadResult, BatchReadResult, DataType, DisplayFormat, RegisterRange, ReadResult, type_name

logger = logging.getLogger(__name__)

RangeReader = Callable[[RegisterRange], Awaitable[ReadResult]]


def rfc3339_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _decode_words(
    rng: RegisterRange,
    words: list[int],
    fmt: str,
    timestamp: str,
) -> list[AddressReadResult]:
    data_type = type_name(rng.data_type)
    out: list[AddressReadResult] = []
    if not DataType.is_32bit(data_type):
        for i, value in enumerate(words):
            out.append(decode_register(rng.start + i, value, data_type, timestamp=timestamp, fmt=fmt))
        return out

    for i in range(0, len(words), 2):
        if i + 1 < len(words):
            out.append(
                decode_register(
                    rng.start + i,
                    words[i],
                    data_type,
                    timestamp=timestamp,
                    next_value=words[i + 1],
                    fmt=fmt,
                )
            )
        else:
            # Odd tail: report it instead of dropping it
            out.append(
                decode_register(
                    rng.start + i,
                    words[i],
                    DataType.UINT16.value,
                    timestamp=timestamp,
                    error=f"{data_type} requires an even number of registers",
                    fmt=fmt,
                )
            )
    return out


def _failed_range(rng: RegisterRange, message: str, fmt: str, timestamp: str) -> list[AddressReadResult]:
    """One failed entry per address so totals always match the requested counts."""
    return [
        decode_register(addr, 0, rng.data_type, timestamp=timestamp, error=message, fmt=fmt)
        for addr in rng.addresses()
    ]


async def read_ranges_detailed(
    read_range: RangeReader,
    ranges: list[RegisterRange],
    fmt: str | None = None,
) -> BatchReadResult:
    """
    Read each range in order and decode every register into an AddressReadResult.

    A failed range does not stop the batch: each of its addresses is reported as
    failed with the translated error text, and the next range is still read.
    """
    display = fmt or DisplayFormat.DEC.value
    started = time.monotonic()
    timestamp = rfc3339_now()
    logger.info("Detailed read of %d range(s)", len(ranges))

    results: list[AddressReadResult] = []
    for idx, rng in enumerate(ranges, start=1):
        logger.debug("Range %d/%d: start=%d count=%d type=%s", idx, len(ranges), rng.start, rng.count, rng.data_type)
        try:
            read = await read_range(rng)
        except ModbusReaderError as e:
            message = e.user_message()
            logger.error("Range %d/%d failed: %s", idx, len(ranges), message)
            results.extend(_failed_range(rng, message, display, timestamp))
            continue
        results.extend(_decode_words(rng, read.data, display, timestamp))

    success_count = sum(1 for r in results if r.success)
    batch = BatchReadResult(
        results=results,
        total_count=len(results),
        success_count=success_count,
        failed_count=len(results) - success_count,
        timestamp=timestamp,
        duration_ms=int((time.monotonic() - started) * 1000),
    )
    logger.info(
        "Detailed read done: %d address(es), %d ok, %d failed, %d ms",
        batch.total_count,
        batch.success_count,
        batch.failed_count,
        batch.duration_ms,
    )
    return batch
