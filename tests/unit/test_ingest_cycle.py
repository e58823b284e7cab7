"""End-to-end tests for the ingestion coordinator over synthetic pages."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from pages import (
    BALLOT_PAGE,
    BALLOTS_LIST_PAGE,
    DECLARANT_INDEX_PAGE,
    DECLARATIONS_PAGE,
    DEPUTIES_LIST_PAGE,
    WORKS_PAGE,
    PageFetcher,
    deputy_info_page,
    law_page,
)

from hemicycle.core.config import Settings
from hemicycle.core.constants import WORK_TYPES, Collections
from hemicycle.repositories.store import MemoryStore
from hemicycle.services.sources import SourceUrls
from hemicycle.tasks.ingest_cycle import IngestionCoordinator, run_ingestion_cycle

SETTINGS = Settings(
    BASE_URL="http://an.test/",
    HATVP_BASE_URL="http://hatvp.test/",
    DATABASE_URL="",
    LEGISLATURE=15,
    RANGE_SIZE=20,
    WORK_PAGE_SIZE=10,
)
URLS = SourceUrls.from_settings(SETTINGS)
QUESTIONS = next(work_type for work_type in WORK_TYPES if work_type.path == "questions-ecrites")
BALLOT_URL = "http://an.test/scrutins/detail/(legislature)/15/(num)/1234"


def _site() -> dict[str, str]:
    return {
        URLS.declarant_index(): DECLARANT_INDEX_PAGE,
        URLS.deputies_list(): DEPUTIES_LIST_PAGE,
        URLS.deputy_info("1001"): deputy_info_page(),
        "http://hatvp.test/pages_nominatives/dupont-jean": DECLARATIONS_PAGE,
        URLS.deputy_work("1001", QUESTIONS, 0): WORKS_PAGE,
        URLS.ballots_list(): BALLOTS_LIST_PAGE,
        BALLOT_URL: BALLOT_PAGE,
        "http://an.test/dossiers/loi_agriculture": law_page("Agriculture"),
    }


def _coordinator(pages: dict[str, str], store: MemoryStore, notifier, reconciler) -> IngestionCoordinator:
    return IngestionCoordinator(
        fetcher=PageFetcher(pages),
        store=store,
        notifier=notifier,
        reconciler=reconciler,
        settings=SETTINGS,
    )


@pytest.mark.asyncio
async def test_full_cycle_persists_composites_and_notifies(reconciler) -> None:
    store = MemoryStore()
    notifier = MagicMock()

    report = await _coordinator(_site(), store, notifier, reconciler).run()

    assert report.deputies_seen == 2
    assert report.deputies_updated == ["1001"]
    assert report.skipped == ["1002"]
    assert report.works_upserted == 2
    assert report.ballots_upserted == 1
    assert report.failed_steps == []

    deputy = await store.find_by_official_id(Collections.DEPUTIES, "1001")
    assert deputy["last_work_date"] == "2019-03-12"
    assert deputy["declarant_url"] == "http://hatvp.test/pages_nominatives/dupont-jean"
    assert await store.find_by_official_id(Collections.DEPUTIES, "1002") is None

    work = await store.find_by_official_id(Collections.WORKS, "Q-1")
    assert work["deputy_id"] == "1001"
    assert work["theme_id"] == "agriculture"

    ballot = await store.find_by_official_id(Collections.BALLOTS, "1234")
    assert ballot["theme_id"] == "agriculture"
    assert ballot["non_voting"] == 1

    notifier.entity_updated.assert_called_once_with("deputy", "1001")
    notifier.batch_completed.assert_called_once_with("ballot", 1)
    assert [c.args[0].raw_text for c in notifier.unclassified_label.call_args_list] == [
        "Chasse et pêche de loisir"
    ]


@pytest.mark.asyncio
async def test_votes_resolve_by_link_then_by_name(reconciler) -> None:
    store = MemoryStore()
    await store.upsert(
        Collections.DEPUTIES,
        "1002",
        {"official_id": "1002", "first_name": "Marie-Claire", "last_name": "Durand", "end_of_mandate_date": None},
    )

    report = await _coordinator(_site(), store, MagicMock(), reconciler).run()

    assert await store.find_by_official_id(Collections.VOTES, "1234:1001") == {
        "ballot_id": "1234",
        "deputy_id": "1001",
        "value": "pour",
        "deputy_name": "M. Jean Dupont",
    }
    assert (await store.find_by_official_id(Collections.VOTES, "1234:1002"))["value"] == "contre"
    assert report.votes_upserted == 2
    assert report.votes_unmatched == 1


@pytest.mark.asyncio
async def test_second_cycle_without_remote_changes_writes_nothing(reconciler) -> None:
    store = MemoryStore()
    notifier = MagicMock()
    await _coordinator(_site(), store, notifier, reconciler).run()
    writes = store.write_count
    notifier.reset_mock()

    report = await _coordinator(_site(), store, notifier, reconciler).run()

    assert store.write_count == writes
    assert report.deputies_updated == []
    notifier.entity_updated.assert_not_called()


@pytest.mark.asyncio
async def test_stored_watermark_bounds_work_pagination(reconciler) -> None:
    store = MemoryStore()
    await store.upsert(Collections.DEPUTIES, "1001", {"official_id": "1001", "last_work_date": "2019-03-01"})
    coordinator = _coordinator(_site(), store, MagicMock(), reconciler)

    report = await coordinator.run()

    assert report.works_upserted == 1
    assert await store.find_by_official_id(Collections.WORKS, "Q-2") is None


@pytest.mark.asyncio
async def test_twenty_five_deputies_without_pages_are_all_skipped(reconciler) -> None:
    rows = "".join(
        f'<tr><td><a href="/deputes/fiche/OMC_PA{i}">M. Député {i}</a></td><td>Ain</td></tr>' for i in range(25)
    )
    pages = {URLS.deputies_list(): f"<table>{rows}</table>"}
    fetcher = PageFetcher(pages)
    coordinator = IngestionCoordinator(
        fetcher=fetcher, store=MemoryStore(), notifier=MagicMock(), reconciler=reconciler, settings=SETTINGS
    )

    report = await coordinator.run()

    assert report.skipped == [str(i) for i in range(25)]
    info_requests = [url for url in fetcher.urls() if "/deputes/fiche/" in url]
    assert set(info_requests[:20]) == {URLS.deputy_info(str(i)) for i in range(20)}
    assert set(info_requests[20:]) == {URLS.deputy_info(str(i)) for i in range(20, 25)}


@pytest.mark.asyncio
async def test_sweep_records_end_of_mandate_for_untouched_deputies(reconciler) -> None:
    store = MemoryStore()
    await store.upsert(Collections.DEPUTIES, "2000", {"official_id": "2000", "end_of_mandate_date": None})
    await store.upsert(Collections.DEPUTIES, "2001", {"official_id": "2001", "end_of_mandate_date": "2018-01-01"})
    pages = _site()
    pages[URLS.deputy_info("2000")] = deputy_info_page(ended=True)
    fetcher = PageFetcher(pages)
    coordinator = IngestionCoordinator(
        fetcher=fetcher, store=store, notifier=MagicMock(), reconciler=reconciler, settings=SETTINGS
    )

    report = await coordinator.run()

    assert report.mandates_ended == ["2000"]
    swept = await store.find_by_official_id(Collections.DEPUTIES, "2000")
    assert swept["end_of_mandate_date"] == "2020-10-01"
    assert swept["profile"]["end_of_mandate_reason"] == "Nomination au Gouvernement"
    assert URLS.deputy_info("2001") not in fetcher.urls()


@pytest.mark.asyncio
async def test_reclassification_applies_current_taxonomy(reconciler) -> None:
    store = MemoryStore()
    await store.upsert(
        Collections.WORKS,
        "W-9",
        {"external_id": "W-9", "theme_id": None, "unclassified_theme": "Finances publiques"},
    )
    await store.upsert(Collections.WORKS, "W-10", {"external_id": "W-10", "unclassified_theme": "Chasse"})

    report = await _coordinator({}, store, MagicMock(), reconciler).run()

    assert report.reclassified == 1
    work = await store.find_by_official_id(Collections.WORKS, "W-9")
    assert (work["theme_id"], work["unclassified_theme"]) == ("budget", None)
    assert [p["external_id"] for p in await store.find_unclassified(Collections.WORKS)] == ["W-10"]


@pytest.mark.asyncio
async def test_unreachable_sources_do_not_fail_the_cycle(reconciler) -> None:
    notifier = MagicMock()

    report = await _coordinator({}, MemoryStore(), notifier, reconciler).run()

    assert report.deputies_seen == 0
    assert report.failed_steps == []
    notifier.entity_updated.assert_not_called()


@pytest.mark.asyncio
async def test_failing_step_is_logged_and_the_cycle_continues(reconciler) -> None:
    store = MemoryStore()

    with patch.object(store, "find_unclassified", new=AsyncMock(side_effect=RuntimeError("db down"))):
        report = await _coordinator(_site(), store, MagicMock(), reconciler).run()

    assert report.failed_steps == ["reclassify:works", "reclassify:ballots"]
    assert report.deputies_updated == ["1001"]


@pytest.mark.asyncio
async def test_failing_notifier_never_fails_the_cycle(reconciler) -> None:
    notifier = MagicMock()
    notifier.entity_updated.side_effect = RuntimeError("webhook down")
    notifier.batch_completed.side_effect = RuntimeError("webhook down")

    report = await _coordinator(_site(), MemoryStore(), notifier, reconciler).run()

    assert report.deputies_updated == ["1001"]
    assert report.failed_steps == []


@pytest.mark.asyncio
async def test_arq_job_builds_coordinator_from_context(reconciler) -> None:
    store = MemoryStore()
    ctx = {
        "fetcher": PageFetcher(_site()),
        "store": store,
        "notifier": MagicMock(),
        "settings": SETTINGS,
        "taxonomy_loader": lambda: reconciler,
    }

    await run_ingestion_cycle(ctx)

    assert await store.find_by_official_id(Collections.DEPUTIES, "1001") is not None
