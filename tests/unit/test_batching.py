"""Unit tests for range orchestration and watermark pagination."""

import asyncio
from datetime import date

import pytest

from hemicycle.services.batching import PaginationCursor, paginate_with_watermark, process_in_ranges


class _ConcurrencyTracker:
    """Worker recording which range each item ran in and peak concurrency."""

    def __init__(self) -> None:
        self.in_flight = 0
        self.peak = 0
        self.started: list[int] = []

    async def __call__(self, item: int) -> int:
        self.started.append(item)
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        await asyncio.sleep(0)
        self.in_flight -= 1
        return item * 10


@pytest.mark.asyncio
async def test_twenty_five_items_run_as_twenty_then_five() -> None:
    tracker = _ConcurrencyTracker()

    results = await process_in_ranges(list(range(25)), 20, tracker)

    assert results == [i * 10 for i in range(25)]
    assert tracker.peak == 20
    assert sorted(tracker.started[:20]) == list(range(20))
    assert sorted(tracker.started[20:]) == list(range(20, 25))


@pytest.mark.asyncio
async def test_next_range_waits_for_previous_one() -> None:
    finished: list[int] = []
    release = asyncio.Event()

    async def worker(item: int) -> int:
        if item == 0:
            await release.wait()
        finished.append(item)
        return item

    async def unblock() -> None:
        await asyncio.sleep(0.01)
        # Item 2 is in the second range and must not have started yet.
        assert 2 not in finished
        release.set()

    results, _ = await asyncio.gather(process_in_ranges([0, 1, 2], 2, worker), unblock())

    assert results == [0, 1, 2]
    assert finished.index(2) > finished.index(0)


@pytest.mark.asyncio
async def test_failing_items_yield_none_without_cancelling_siblings() -> None:
    async def worker(item: int) -> int | None:
        if item == 1:
            raise ValueError("broken page")
        if item == 2:
            return None
        return item

    results = await process_in_ranges([0, 1, 2, 3], 4, worker)

    assert results == [0, None, None, 3]


@pytest.mark.asyncio
async def test_empty_input_runs_nothing() -> None:
    assert await process_in_ranges([], 20, _ConcurrencyTracker()) == []


def test_cursor_advances_and_validates() -> None:
    cursor = PaginationCursor(0, 10)

    assert cursor.advance() == PaginationCursor(10, 10)
    assert cursor.advance().range_end == 20
    with pytest.raises(ValueError):
        PaginationCursor(0, 0)


def _pager(pages: list[list[date | None]]):
    requested: list[int] = []

    async def fetch_page(cursor: PaginationCursor) -> list[date | None] | None:
        requested.append(cursor.range_start)
        index = cursor.range_start // cursor.range_size
        return pages[index] if index < len(pages) else []

    return fetch_page, requested


@pytest.mark.asyncio
async def test_watermark_stops_at_page_holding_older_items() -> None:
    newer = [date(2019, 5, day) for day in range(10, 7, -1)]
    mixed = [date(2019, 4, 2), date(2019, 4, 1), date(2019, 3, 1)]
    fetch_page, requested = _pager([newer, mixed, [date(2019, 2, 1)] * 3])

    items = await paginate_with_watermark(
        fetch_page, page_size=3, watermark=date(2019, 4, 1), date_of=lambda d: d
    )

    assert items == newer + [date(2019, 4, 2), date(2019, 4, 1)]
    assert requested == [0, 3]


@pytest.mark.asyncio
async def test_without_watermark_pages_until_short_page() -> None:
    fetch_page, requested = _pager([[date(2019, 1, 3)] * 2, [date(2019, 1, 2)] * 2, [date(2019, 1, 1)]])

    items = await paginate_with_watermark(fetch_page, page_size=2, watermark=None, date_of=lambda d: d)

    assert len(items) == 5
    assert requested == [0, 2, 4]


@pytest.mark.asyncio
async def test_full_page_then_empty_page_stops() -> None:
    fetch_page, requested = _pager([[date(2019, 1, 3)] * 2])

    items = await paginate_with_watermark(fetch_page, page_size=2, watermark=None, date_of=lambda d: d)

    assert len(items) == 2
    assert requested == [0, 2]


@pytest.mark.asyncio
async def test_absent_page_stops_pagination() -> None:
    async def fetch_page(cursor: PaginationCursor) -> None:
        return None

    assert await paginate_with_watermark(fetch_page, page_size=10, watermark=None, date_of=lambda d: d) == []


@pytest.mark.asyncio
async def test_undated_items_are_not_new_once_a_watermark_exists() -> None:
    fetch_page, requested = _pager([[date(2019, 6, 1), None]])

    items = await paginate_with_watermark(
        fetch_page, page_size=2, watermark=date(2019, 1, 1), date_of=lambda d: d
    )

    assert items == [date(2019, 6, 1)]
    assert requested == [0]
