"""Composite assembly for deputies and ballots.

A composite is built completely in memory before anything is persisted. The
deputy info page is the top-level record: without it there is no composite.
Sub-resources (declarations, works of each type, law themes) fail on their
own and come back empty.
"""

from __future__ import annotations

import asyncio
import dataclasses
from collections.abc import Awaitable, Mapping
from dataclasses import dataclass, replace
from datetime import date
from typing import TypeVar

import structlog

from hemicycle.core.constants import WORK_TYPES, EncodingMode, WorkType
from hemicycle.core.fetcher import ResilientFetcher
from hemicycle.core.text import person_key
from hemicycle.parsers.records import (
    BallotRecord,
    BallotSummary,
    DeclarantLink,
    DeclarationRecord,
    DeputySummary,
    MandateRecord,
    ProfileRecord,
    WorkItemRecord,
    parse_ballot,
    parse_declarations,
    parse_law,
    parse_mandates,
    parse_profile,
    parse_senate_theme,
    parse_work_items,
)
from hemicycle.repositories.store import to_payload
from hemicycle.services.batching import PaginationCursor, paginate_with_watermark
from hemicycle.services.sources import SourceUrls
from hemicycle.services.taxonomy import TaxonomyReconciler

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class DeputyComposite:
    summary: DeputySummary
    profile: ProfileRecord
    mandates: MandateRecord
    declarations: tuple[DeclarationRecord, ...]
    works: tuple[WorkItemRecord, ...]
    last_work_date: date | None
    declarant_url: str | None = None

    def payload(self) -> dict:
        """Deputy document as stored. Works are stored on their own."""
        return to_payload(
            {
                **dataclasses.asdict(self.summary),
                "profile": dataclasses.asdict(self.profile),
                "mandates": dataclasses.asdict(self.mandates),
                "is_partial": self.mandates.is_partial,
                "declarations": [dataclasses.asdict(d) for d in self.declarations],
                "declarant_url": self.declarant_url,
                "end_of_mandate_date": self.profile.end_of_mandate_date,
                "last_work_date": self.last_work_date,
            }
        )


async def _or_empty(awaitable: Awaitable[list[T]], resource: str, official_id: str) -> list[T]:
    try:
        return await awaitable
    except Exception:
        logger.exception("assembly.subresource_failed", resource=resource, official_id=official_id)
        return []


class DeputyAssembler:
    def __init__(
        self,
        fetcher: ResilientFetcher,
        reconciler: TaxonomyReconciler,
        urls: SourceUrls,
        *,
        work_page_size: int,
        declarant_index: Mapping[str, DeclarantLink],
    ) -> None:
        self._fetcher = fetcher
        self._reconciler = reconciler
        self._urls = urls
        self._work_page_size = work_page_size
        self._declarant_index = declarant_index

    async def assemble(self, summary: DeputySummary, watermark: date | None) -> DeputyComposite | None:
        """Build the full deputy composite, or None when the info page is absent.

        Works older than ``watermark`` are not fetched again.
        """
        page = await self._fetcher.fetch(self._urls.deputy_info(summary.official_id))
        profile = parse_profile(page) if page is not None else None
        if profile is None:
            logger.warning("assembly.deputy.info_missing", official_id=summary.official_id)
            return None
        mandates = parse_mandates(page)
        if mandates.is_partial:
            logger.debug(
                "assembly.deputy.partial_mandates",
                official_id=summary.official_id,
                missing=mandates.missing_sections,
            )

        declarant = self._declarant_index.get(person_key(summary.full_name))
        declarations, works = await asyncio.gather(
            _or_empty(self._declarations(declarant), "declarations", summary.official_id),
            _or_empty(self._works(summary.official_id, watermark), "works", summary.official_id),
        )
        dates = [w.date for w in works if w.date is not None]
        if watermark is not None:
            dates.append(watermark)
        return DeputyComposite(
            summary=summary,
            profile=profile,
            mandates=mandates,
            declarations=tuple(declarations),
            works=tuple(works),
            last_work_date=max(dates, default=None),
            declarant_url=declarant.url if declarant else None,
        )

    async def _declarations(self, declarant: DeclarantLink | None) -> list[DeclarationRecord]:
        if declarant is None:
            return []
        page = await self._fetcher.fetch(declarant.url)
        if page is None:
            return []
        return parse_declarations(page, self._urls.hatvp_base_url)

    async def _works(self, official_id: str, watermark: date | None) -> list[WorkItemRecord]:
        per_type = await asyncio.gather(
            *(
                _or_empty(self._works_of_type(official_id, work_type, watermark), work_type.path, official_id)
                for work_type in WORK_TYPES
            )
        )
        return [work for works in per_type for work in works]

    async def _works_of_type(
        self, official_id: str, work_type: WorkType, watermark: date | None
    ) -> list[WorkItemRecord]:
        async def fetch_page(cursor: PaginationCursor) -> list[WorkItemRecord] | None:
            url = self._urls.deputy_work(official_id, work_type, cursor.range_start)
            page = await self._fetcher.fetch(url)
            if page is None:
                return None
            return parse_work_items(page, work_type, self._urls.base_url)

        works = await paginate_with_watermark(
            fetch_page,
            page_size=self._work_page_size,
            watermark=watermark,
            date_of=lambda work: work.date,
            label=f"works:{work_type.path}",
        )
        return [self._classify_work(work, work_type) for work in works]

    def _classify_work(self, work: WorkItemRecord, work_type: WorkType) -> WorkItemRecord:
        label = work.theme or work_type.default_theme
        if not label:
            return work
        node = self._reconciler.resolve(label, context_url=work.url)
        if node is None:
            return replace(work, theme_id=None, unclassified_theme=label)
        return replace(work, theme_id=node.id, unclassified_theme=None)


class BallotAssembler:
    def __init__(self, fetcher: ResilientFetcher, reconciler: TaxonomyReconciler, urls: SourceUrls) -> None:
        self._fetcher = fetcher
        self._reconciler = reconciler
        self._urls = urls

    async def assemble(self, summary: BallotSummary) -> BallotRecord | None:
        url = summary.url or self._urls.ballot_detail(summary.official_id)
        page = await self._fetcher.fetch(url)
        if page is None:
            logger.warning("assembly.ballot.page_missing", official_id=summary.official_id, url=url)
            return None
        ballot = parse_ballot(page, summary.official_id, self._urls.base_url)
        if ballot is None:
            logger.warning("assembly.ballot.summary_missing", official_id=summary.official_id)
            return None
        if ballot.title is None or ballot.date is None:
            ballot = replace(ballot, title=ballot.title or summary.title, date=ballot.date or summary.date)

        label = await self._law_theme(ballot.file_url)
        if not label:
            return ballot
        node = self._reconciler.resolve(label, context_url=ballot.file_url)
        if node is None:
            return replace(ballot, unclassified_theme=label)
        return replace(ballot, theme_id=node.id)

    async def _law_theme(self, file_url: str | None) -> str | None:
        """Theme of the law file: Assembly page first, then the Senate page."""
        if not file_url:
            return None
        page = await self._fetcher.fetch(file_url)
        law = parse_law(page, file_url) if page is not None else None
        if law is None:
            return None
        if law.theme:
            return law.theme
        if not law.senate_url:
            return None
        senate_page = await self._fetcher.fetch(law.senate_url, EncodingMode.BINARY)
        return parse_senate_theme(senate_page) if senate_page is not None else None
