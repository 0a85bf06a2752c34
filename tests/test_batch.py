"""Tests for decoded batch reads over several ranges (fake range reader)."""

import pytest

from modbus_reader import RegisterRange, read_ranges_detailed
from modbus_reader.errors import DeviceError, ModbusTimeoutError, NotConnectedError
from modbus_reader.types import ReadResult


def make_reader(words_by_start: dict[int, list[int]], failing: dict[int, Exception] | None = None):
    """Reader returning canned words per range start; raises for starts in failing."""
    calls: list[RegisterRange] = []
    failing = failing or {}

    async def reader(rng: RegisterRange) -> ReadResult:
        calls.append(rng)
        if rng.start in failing:
            raise failing[rng.start]
        return ReadResult(
            success=True,
            data=words_by_start[rng.start][: rng.count],
            address_range=rng,
            timestamp="t",
            message="ok",
        )

    reader.calls = calls  # type: ignore[attr-defined]
    return reader


@pytest.mark.asyncio
async def test_uint16_range_one_entry_per_word() -> None:
    reader = make_reader({10: [1, 2, 3]})
    batch = await read_ranges_detailed(reader, [RegisterRange(10, 3)])
    assert [r.address for r in batch.results] == [10, 11, 12]
    assert [r.parsed_value for r in batch.results] == ["1", "2", "3"]
    assert batch.total_count == 3
    assert batch.success_count == 3
    assert batch.failed_count == 0
    assert batch.check_consistency() == []


@pytest.mark.asyncio
async def test_display_format_applies_to_uint16() -> None:
    reader = make_reader({0: [255]})
    batch = await read_ranges_detailed(reader, [RegisterRange(0, 1)], "hex")
    assert batch.results[0].parsed_value == "0x00FF"


@pytest.mark.asyncio
async def test_float32_range_pairs_words() -> None:
    reader = make_reader({100: [0x4228, 0x0000, 0xC048, 0xF5C3]})
    batch = await read_ranges_detailed(reader, [RegisterRange(100, 4, "float32")])
    assert [r.address for r in batch.results] == [100, 102]
    assert batch.results[0].parsed_value == "42"
    assert batch.results[1].parsed_value == "-3.14"
    assert all(r.data_type == "float32" for r in batch.results)
    assert batch.success_count == 2
    assert batch.total_count == 2


@pytest.mark.asyncio
async def test_32bit_odd_tail_is_reported_as_failure() -> None:
    reader = make_reader({0: [0x0001, 0x0001, 0x0007]})
    batch = await read_ranges_detailed(reader, [RegisterRange(0, 3, "uint32")])
    assert len(batch.results) == 2
    first, tail = batch.results
    assert first.parsed_value == "65537"
    assert first.success is True
    assert tail.address == 2
    assert tail.success is False
    assert tail.data_type == "uint16"
    assert tail.raw_value == 7
    assert "even number of registers" in tail.error
    assert batch.success_count == 1
    assert batch.failed_count == 1


@pytest.mark.asyncio
async def test_failed_range_yields_one_entry_per_address() -> None:
    err = DeviceError("Modbus exception: Illegal data address (0x02)")
    reader = make_reader({}, failing={50: err})
    batch = await read_ranges_detailed(reader, [RegisterRange(50, 5, "int16")])
    assert len(batch.results) == 5
    assert [r.address for r in batch.results] == [50, 51, 52, 53, 54]
    assert all(not r.success for r in batch.results)
    assert all(r.raw_value == 0 for r in batch.results)
    assert all(r.data_type == "int16" for r in batch.results)
    assert {r.error for r in batch.results} == {err.user_message()}
    assert batch.failed_count == 5
    assert batch.success_count == 0


@pytest.mark.asyncio
async def test_failure_does_not_stop_later_ranges() -> None:
    reader = make_reader({0: [1, 2], 20: [3, 4, 5]}, failing={10: ModbusTimeoutError()})
    ranges = [RegisterRange(0, 2), RegisterRange(10, 4), RegisterRange(20, 3)]
    batch = await read_ranges_detailed(reader, ranges)
    assert [r.start for r in reader.calls] == [0, 10, 20]
    assert batch.total_count == sum(r.count for r in ranges)
    assert batch.success_count == 5
    assert batch.failed_count == 4
    assert [r.address for r in batch.results] == [0, 1, 10, 11, 12, 13, 20, 21, 22]


@pytest.mark.asyncio
async def test_all_entries_share_batch_timestamp() -> None:
    reader = make_reader({0: [1, 2]}, failing={5: NotConnectedError()})
    batch = await read_ranges_detailed(reader, [RegisterRange(0, 2), RegisterRange(5, 1)])
    assert {r.timestamp for r in batch.results} == {batch.timestamp}
    assert batch.duration_ms >= 0


@pytest.mark.asyncio
async def test_empty_batch() -> None:
    batch = await read_ranges_detailed(make_reader({}), [])
    assert batch.total_count == 0
    assert batch.results == []
