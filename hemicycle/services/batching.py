"""Range-based batch orchestration and delta pagination.

Ranges run strictly one after another; the items of one range run
concurrently. This bounds both the number of requests in flight against the
remote site and the number of assembled records held in memory at once.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from datetime import date
from typing import TypeVar

import structlog

from hemicycle.core.dates import is_later_or_same

logger = structlog.get_logger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@dataclass(frozen=True)
class PaginationCursor:
    range_start: int
    range_size: int

    def __post_init__(self) -> None:
        if self.range_size < 1:
            raise ValueError("range_size must be >= 1")
        if self.range_start < 0:
            raise ValueError("range_start must be >= 0")

    @property
    def range_end(self) -> int:
        return self.range_start + self.range_size

    def advance(self) -> PaginationCursor:
        return PaginationCursor(self.range_end, self.range_size)


async def _run_item(worker: Callable[[T], Awaitable[R | None]], item: T, label: str) -> R | None:
    try:
        return await worker(item)
    except Exception:
        # One failing item must not cancel its siblings.
        logger.exception("batch.item_failed", batch=label, item=repr(item)[:120])
        return None


async def process_in_ranges(
    items: Sequence[T],
    range_size: int,
    worker: Callable[[T], Awaitable[R | None]],
    *,
    label: str = "batch",
) -> list[R | None]:
    """Run ``worker`` over ``items`` range by range.

    Returns one slot per item, in item order; a slot is None when the worker
    returned None or raised.
    """
    results: list[R | None] = []
    cursor = PaginationCursor(0, range_size)
    while cursor.range_start < len(items):
        chunk = items[cursor.range_start : cursor.range_end]
        logger.info(
            "batch.range.start",
            batch=label,
            range_start=cursor.range_start,
            range_end=cursor.range_start + len(chunk),
            total=len(items),
        )
        chunk_results = await asyncio.gather(*(_run_item(worker, item, label) for item in chunk))
        results.extend(chunk_results)
        logger.info(
            "batch.range.done",
            batch=label,
            range_start=cursor.range_start,
            succeeded=sum(1 for r in chunk_results if r is not None),
            failed=sum(1 for r in chunk_results if r is None),
        )
        cursor = cursor.advance()
    return results


async def paginate_with_watermark(
    fetch_page: Callable[[PaginationCursor], Awaitable[list[T] | None]],
    *,
    page_size: int,
    watermark: date | None,
    date_of: Callable[[T], date | None],
    label: str = "pagination",
) -> list[T]:
    """Collect items page by page, newest first, until previously-seen data is reached.

    Stops after a page that is absent or empty, shorter than ``page_size``, or
    holding any item dated before ``watermark``. Items dated on or after the
    watermark are kept; no page after the stopping one is ever requested.
    """
    collected: list[T] = []
    cursor = PaginationCursor(0, page_size)
    while True:
        page = await fetch_page(cursor)
        if not page:
            break
        fresh = [item for item in page if is_later_or_same(date_of(item), watermark)]
        collected.extend(fresh)
        if len(page) < page_size or len(fresh) < len(page):
            logger.debug(
                "pagination.stop",
                pagination=label,
                offset=cursor.range_start,
                page_items=len(page),
                fresh_items=len(fresh),
            )
            break
        cursor = cursor.advance()
    return collected
