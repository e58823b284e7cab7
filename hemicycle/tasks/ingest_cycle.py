"""Full ingestion cycle: deputies, their works and declarations, then ballots.

Each step logs and swallows its own failure so that one broken source never
stops the rest of the cycle. Deputies are persisted one at a time, only after
their composite is fully assembled.
"""

from __future__ import annotations

import time
from collections.abc import Awaitable
from dataclasses import dataclass, field
from typing import TypeVar

import structlog

from hemicycle.core.config import Settings
from hemicycle.core.constants import Collections
from hemicycle.core.fetcher import ResilientFetcher
from hemicycle.core.metrics import (
    entities_skipped_total,
    ingest_cycle_duration_seconds,
    records_upserted_total,
)
from hemicycle.core.text import person_key
from hemicycle.parsers.records import (
    BallotRecord,
    BallotSummary,
    DeclarantLink,
    DeputySummary,
    VoteRecord,
    parse_ballots_list,
    parse_declarant_index,
    parse_deputies_list,
    parse_profile,
)
from hemicycle.repositories.store import IngestionStore, payload_date, to_payload
from hemicycle.services.assembly import BallotAssembler, DeputyAssembler
from hemicycle.services.batching import process_in_ranges
from hemicycle.services.notifier import Notifier, notify_safely
from hemicycle.services.sources import SourceUrls
from hemicycle.services.taxonomy import TaxonomyReconciler, UnclassifiedLabel, normalize_label

logger = structlog.get_logger(__name__)

T = TypeVar("T")

# Field holding the storage key in each reclassifiable collection.
_KEY_FIELDS = {Collections.WORKS: "external_id", Collections.BALLOTS: "official_id"}


@dataclass
class CycleReport:
    deputies_seen: int = 0
    deputies_updated: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    works_upserted: int = 0
    ballots_upserted: int = 0
    votes_upserted: int = 0
    votes_unmatched: int = 0
    reclassified: int = 0
    swept: int = 0
    mandates_ended: list[str] = field(default_factory=list)
    unclassified: list[UnclassifiedLabel] = field(default_factory=list)
    failed_steps: list[str] = field(default_factory=list)
    duration_seconds: float = 0.0


class _NameIndex:
    """Deputy lookup by normalized name, for votes that carry no id link."""

    def __init__(self, deputies: list[dict]) -> None:
        self._by_name: dict[str, str] = {}
        by_last: dict[str, list[str]] = {}
        for deputy in deputies:
            official_id = deputy.get("official_id")
            if not official_id:
                continue
            full = person_key(f"{deputy.get('first_name') or ''} {deputy.get('last_name') or ''}")
            if full:
                self._by_name.setdefault(full, official_id)
            by_last.setdefault(person_key(deputy.get("last_name") or ""), []).append(official_id)
        # A last name alone only identifies a deputy when no one else carries it.
        self._by_last = {key: ids[0] for key, ids in by_last.items() if key and len(ids) == 1}

    def lookup(self, name: str) -> str | None:
        key = person_key(name)
        return self._by_name.get(key) or self._by_last.get(key)


class IngestionCoordinator:
    def __init__(
        self,
        *,
        fetcher: ResilientFetcher,
        store: IngestionStore,
        notifier: Notifier,
        reconciler: TaxonomyReconciler,
        settings: Settings,
        urls: SourceUrls | None = None,
    ) -> None:
        self._fetcher = fetcher
        self._store = store
        self._notifier = notifier
        self._reconciler = reconciler
        self._settings = settings
        self._urls = urls or SourceUrls.from_settings(settings)

    async def run(self) -> CycleReport:
        report = CycleReport()
        labels: dict[tuple[str, str], UnclassifiedLabel] = {}

        def collect(label: UnclassifiedLabel) -> None:
            labels.setdefault((normalize_label(label.raw_text), label.reason), label)

        reconciler = self._reconciler.with_hook(collect)
        started = time.perf_counter()
        logger.info("ingest.cycle.start", legislature=self._settings.LEGISLATURE)

        for collection in (Collections.WORKS, Collections.BALLOTS):
            await self._guarded(f"reclassify:{collection}", self._reclassify(collection, report), report)

        declarant_index = await self._guarded("declarant_index", self._declarant_index(), report, {})
        deputies = await self._guarded("deputies_list", self._deputies_list(), report, [])
        report.deputies_seen = len(deputies)

        touched: set[str] = set()
        if deputies:
            assembler = DeputyAssembler(
                self._fetcher,
                reconciler,
                self._urls,
                work_page_size=self._settings.WORK_PAGE_SIZE,
                declarant_index=declarant_index,
            )
            touched = await self._guarded(
                "deputies", self._deputies_pass(deputies, assembler, report), report, set()
            )

        ballots = BallotAssembler(self._fetcher, reconciler, self._urls)
        await self._guarded("ballots", self._ballots_pass(ballots, report), report)
        await self._guarded("sweep", self._sweep(touched, report), report)

        report.unclassified = list(labels.values())
        for label in report.unclassified:
            notify_safely(self._notifier.unclassified_label, label)

        report.duration_seconds = time.perf_counter() - started
        ingest_cycle_duration_seconds.observe(report.duration_seconds)
        logger.info(
            "ingest.cycle.done",
            deputies_seen=report.deputies_seen,
            deputies_updated=len(report.deputies_updated),
            skipped=len(report.skipped),
            works_upserted=report.works_upserted,
            ballots_upserted=report.ballots_upserted,
            votes_upserted=report.votes_upserted,
            reclassified=report.reclassified,
            mandates_ended=len(report.mandates_ended),
            unclassified=len(report.unclassified),
            failed_steps=report.failed_steps,
            duration_seconds=round(report.duration_seconds, 1),
        )
        return report

    async def _guarded(self, step: str, awaitable: Awaitable[T], report: CycleReport, default: T = None) -> T:
        try:
            return await awaitable
        except Exception:
            logger.exception("ingest.step_failed", step=step)
            report.failed_steps.append(step)
            return default

    async def _upsert(self, collection: str, official_id: str, payload: dict) -> bool:
        changed = await self._store.upsert(collection, official_id, payload)
        if changed:
            records_upserted_total.labels(collection=collection).inc()
        return changed

    # --- reclassification ---

    async def _reclassify(self, collection: str, report: CycleReport) -> None:
        key_field = _KEY_FIELDS[collection]
        count = 0
        for payload in await self._store.find_unclassified(collection):
            context_url = payload.get("url") or payload.get("file_url")
            node = self._reconciler.resolve(payload["unclassified_theme"], context_url=context_url)
            if node is None or not payload.get(key_field):
                continue
            updated = {**payload, "theme_id": node.id, "unclassified_theme": None}
            await self._upsert(collection, payload[key_field], updated)
            count += 1
        report.reclassified += count
        logger.info("ingest.reclassify.done", collection=collection, reclassified=count)

    # --- reference and primary lists ---

    async def _declarant_index(self) -> dict[str, DeclarantLink]:
        page = await self._fetcher.fetch(self._urls.declarant_index())
        if page is None:
            logger.warning("ingest.declarant_index.unavailable")
            return {}
        index: dict[str, DeclarantLink] = {}
        for link in parse_declarant_index(page, self._urls.hatvp_base_url):
            index.setdefault(person_key(link.name), link)
        logger.info("ingest.declarant_index.loaded", declarants=len(index))
        return index

    async def _deputies_list(self) -> list[DeputySummary]:
        page = await self._fetcher.fetch(self._urls.deputies_list())
        if page is None:
            logger.warning("ingest.deputies_list.unavailable")
            return []
        deputies = parse_deputies_list(page)
        logger.info("ingest.deputies_list.loaded", deputies=len(deputies))
        return deputies

    # --- deputies ---

    async def _deputies_pass(
        self, deputies: list[DeputySummary], assembler: DeputyAssembler, report: CycleReport
    ) -> set[str]:
        async def ingest(summary: DeputySummary) -> str | None:
            stored = await self._store.find_by_official_id(Collections.DEPUTIES, summary.official_id)
            composite = await assembler.assemble(summary, payload_date(stored, "last_work_date"))
            if composite is None:
                return None
            for work in composite.works:
                payload = to_payload(work, deputy_id=summary.official_id)
                if await self._upsert(Collections.WORKS, work.external_id, payload):
                    report.works_upserted += 1
            if await self._upsert(Collections.DEPUTIES, summary.official_id, composite.payload()):
                report.deputies_updated.append(summary.official_id)
                notify_safely(self._notifier.entity_updated, "deputy", summary.official_id)
            return summary.official_id

        results = await process_in_ranges(deputies, self._settings.RANGE_SIZE, ingest, label="deputies")
        touched: set[str] = set()
        for summary, result in zip(deputies, results, strict=True):
            if result is None:
                report.skipped.append(summary.official_id)
                entities_skipped_total.labels(collection=Collections.DEPUTIES).inc()
                logger.warning("ingest.deputy.skipped", official_id=summary.official_id)
            else:
                touched.add(result)
        return touched

    # --- ballots ---

    async def _ballots_pass(self, assembler: BallotAssembler, report: CycleReport) -> None:
        page = await self._fetcher.fetch(self._urls.ballots_list())
        if page is None:
            logger.warning("ingest.ballots_list.unavailable")
            return
        summaries = parse_ballots_list(page, self._urls.base_url)
        names = _NameIndex(await self._store.find_all(Collections.DEPUTIES))

        async def ingest(summary: BallotSummary) -> str | None:
            ballot = await assembler.assemble(summary)
            if ballot is None:
                return None
            if await self._upsert(Collections.BALLOTS, ballot.official_id, to_payload(ballot)):
                report.ballots_upserted += 1
            await self._ingest_votes(ballot, names, report)
            return ballot.official_id

        results = await process_in_ranges(summaries, self._settings.RANGE_SIZE, ingest, label="ballots")
        done = sum(1 for result in results if result is not None)
        logger.info("ingest.ballots.done", ballots=len(summaries), ingested=done)
        notify_safely(self._notifier.batch_completed, "ballot", done)

    async def _ingest_votes(self, ballot: BallotRecord, names: _NameIndex, report: CycleReport) -> None:
        for vote in ballot.votes:
            deputy_id = await self._vote_deputy(vote, names)
            if deputy_id is None:
                report.votes_unmatched += 1
                logger.debug("ingest.vote.unmatched", ballot_id=ballot.official_id, name=vote.deputy_name)
                continue
            payload = {
                "ballot_id": ballot.official_id,
                "deputy_id": deputy_id,
                "value": vote.value,
                "deputy_name": vote.deputy_name,
            }
            if await self._upsert(Collections.VOTES, f"{ballot.official_id}:{deputy_id}", payload):
                report.votes_upserted += 1

    async def _vote_deputy(self, vote: VoteRecord, names: _NameIndex) -> str | None:
        if vote.deputy_official_id:
            found = await self._store.find_by_official_id(Collections.DEPUTIES, vote.deputy_official_id)
            if found is not None:
                return vote.deputy_official_id
        return names.lookup(vote.deputy_name)

    # --- end-of-mandate sweep ---

    async def _sweep(self, touched: set[str], report: CycleReport) -> None:
        candidates = [
            payload
            for payload in await self._store.find_all(Collections.DEPUTIES)
            if payload.get("official_id") not in touched and not payload.get("end_of_mandate_date")
        ]
        if not candidates:
            return

        async def verify(payload: dict) -> str | None:
            official_id = payload["official_id"]
            page = await self._fetcher.fetch(self._urls.deputy_info(official_id))
            profile = parse_profile(page) if page is not None else None
            if profile is None or profile.end_of_mandate_date is None:
                return None
            updated = to_payload(
                {
                    **payload,
                    "end_of_mandate_date": profile.end_of_mandate_date,
                    "profile": {
                        **(payload.get("profile") or {}),
                        "end_of_mandate_date": profile.end_of_mandate_date,
                        "end_of_mandate_reason": profile.end_of_mandate_reason,
                    },
                }
            )
            await self._upsert(Collections.DEPUTIES, official_id, updated)
            logger.info("ingest.sweep.mandate_ended", official_id=official_id)
            return official_id

        results = await process_in_ranges(candidates, self._settings.RANGE_SIZE, verify, label="sweep")
        report.swept = len(candidates)
        report.mandates_ended.extend(result for result in results if result is not None)


async def run_ingestion_cycle(ctx: dict) -> None:
    """arq job: run one cycle with the collaborators built at worker startup."""
    reconciler = ctx["taxonomy_loader"]()
    coordinator = IngestionCoordinator(
        fetcher=ctx["fetcher"],
        store=ctx["store"],
        notifier=ctx["notifier"],
        reconciler=reconciler,
        settings=ctx["settings"],
    )
    try:
        report = await coordinator.run()
    except Exception:
        logger.exception("ingest.cycle.failed")
        return
    logger.info(
        "run_ingestion_cycle.complete",
        updated=len(report.deputies_updated),
        skipped=len(report.skipped),
        failed_steps=report.failed_steps,
    )
