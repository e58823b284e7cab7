"""Unit tests for deputy and ballot composite assembly."""

from datetime import date

import pytest
from pages import (
    BALLOT_PAGE,
    COMMISSION_WORKS_PAGE,
    DECLARATIONS_PAGE,
    WORKS_PAGE,
    PageFetcher,
    deputy_info_page,
    law_page,
)

from hemicycle.core.constants import WORK_TYPES, EncodingMode
from hemicycle.core.text import person_key
from hemicycle.parsers.records import BallotSummary, DeclarantLink, DeputySummary
from hemicycle.services.assembly import BallotAssembler, DeputyAssembler
from hemicycle.services.sources import SourceUrls
from hemicycle.services.taxonomy import UnclassifiedLabel

URLS = SourceUrls("http://an.test/", "http://hatvp.test/", 15)
WORK_TYPE_BY_PATH = {work_type.path: work_type for work_type in WORK_TYPES}
DEPUTY = DeputySummary("1001", "Jean", "Dupont", "Rhône")
DECLARANT = DeclarantLink("Jean Dupont", "http://hatvp.test/pages_nominatives/dupont-jean")
LAW_URL = "http://an.test/dossiers/loi_agriculture"
SENATE_URL = "http://www.senat.fr/dossier-legislatif/pjl17-525.html"


def _deputy_pages() -> dict[str, str]:
    return {
        URLS.deputy_info("1001"): deputy_info_page(),
        DECLARANT.url: DECLARATIONS_PAGE,
        URLS.deputy_work("1001", WORK_TYPE_BY_PATH["questions-ecrites"], 0): WORKS_PAGE,
        URLS.deputy_work("1001", WORK_TYPE_BY_PATH["commissions"], 0): COMMISSION_WORKS_PAGE,
    }


def _assembler(fetcher, reconciler, declarants=None) -> DeputyAssembler:
    return DeputyAssembler(
        fetcher,
        reconciler,
        URLS,
        work_page_size=10,
        declarant_index=declarants if declarants is not None else {person_key(DECLARANT.name): DECLARANT},
    )


def test_source_urls_are_templated() -> None:
    assert URLS.deputy_info("1001") == "http://an.test/deputes/fiche/OMC_PA1001"
    assert URLS.deputy_work("1001", WORK_TYPE_BY_PATH["rapports"], 20) == (
        "http://an.test/deputes/documents_parlementaires/(offset)/20/(id_omc)/OMC_PA1001/(type)/rapports"
    )
    assert URLS.ballot_detail("42") == "http://an.test/scrutins/detail/(legislature)/15/(num)/42"
    assert URLS.declarant_index().startswith("http://hatvp.test/")


@pytest.mark.asyncio
async def test_missing_info_page_yields_no_composite(reconciler) -> None:
    fetcher = PageFetcher({})

    composite = await _assembler(fetcher, reconciler).assemble(DEPUTY, watermark=None)

    assert composite is None
    assert fetcher.urls() == [URLS.deputy_info("1001")]


@pytest.mark.asyncio
async def test_full_composite(reconciler) -> None:
    reported: list[UnclassifiedLabel] = []
    fetcher = PageFetcher(_deputy_pages())

    composite = await _assembler(fetcher, reconciler.with_hook(reported.append)).assemble(DEPUTY, None)

    assert composite is not None
    assert composite.profile.job == "Avocat"
    assert composite.mandates.is_partial
    assert [d.title for d in composite.declarations] == ["Déclaration d'intérêts et d'activités"]
    works = {work.external_id: work for work in composite.works}
    assert set(works) == {"Q-1", "Q-2", "C-1"}
    assert works["Q-1"].theme_id == "agriculture"
    assert works["Q-2"].theme_id is None
    assert works["Q-2"].unclassified_theme == "Chasse et pêche de loisir"
    assert works["C-1"].theme_id == "politique-generale"
    assert composite.last_work_date == date(2019, 3, 12)
    assert [label.raw_text for label in reported] == ["Chasse et pêche de loisir"]

    payload = composite.payload()
    assert payload["official_id"] == "1001"
    assert payload["last_work_date"] == "2019-03-12"
    assert payload["is_partial"] is True
    assert payload["declarant_url"] == DECLARANT.url
    assert "works" not in payload


@pytest.mark.asyncio
async def test_watermark_limits_works_to_new_ones(reconciler) -> None:
    fetcher = PageFetcher(_deputy_pages())

    composite = await _assembler(fetcher, reconciler).assemble(DEPUTY, watermark=date(2019, 2, 1))

    assert {work.external_id for work in composite.works} == {"Q-1", "C-1"}
    assert composite.last_work_date == date(2019, 3, 12)


@pytest.mark.asyncio
async def test_watermark_is_kept_when_nothing_new(reconciler) -> None:
    fetcher = PageFetcher({URLS.deputy_info("1001"): deputy_info_page()})

    composite = await _assembler(fetcher, reconciler, declarants={}).assemble(DEPUTY, date(2019, 2, 1))

    assert composite.works == ()
    assert composite.declarations == ()
    assert composite.last_work_date == date(2019, 2, 1)


@pytest.mark.asyncio
async def test_every_work_type_is_requested(reconciler) -> None:
    fetcher = PageFetcher({URLS.deputy_info("1001"): deputy_info_page()})

    await _assembler(fetcher, reconciler, declarants={}).assemble(DEPUTY, None)

    requested = set(fetcher.urls())
    for work_type in WORK_TYPES:
        assert URLS.deputy_work("1001", work_type, 0) in requested


@pytest.mark.asyncio
async def test_ballot_theme_from_assembly_law_page(reconciler) -> None:
    summary = BallotSummary("1234", "projet de loi", date(2019, 3, 12), URLS.ballot_detail("1234"))
    fetcher = PageFetcher({summary.url: BALLOT_PAGE, LAW_URL: law_page("Agriculture")})

    ballot = await BallotAssembler(fetcher, reconciler, URLS).assemble(summary)

    assert ballot.theme_id == "agriculture"
    assert SENATE_URL not in fetcher.urls()


@pytest.mark.asyncio
async def test_ballot_theme_falls_back_to_senate_page_in_binary_mode(reconciler) -> None:
    summary = BallotSummary("1234", "projet de loi", date(2019, 3, 12), URLS.ballot_detail("1234"))
    fetcher = PageFetcher(
        {
            summary.url: BALLOT_PAGE,
            LAW_URL: law_page(None),
            SENATE_URL: '<ul class="themes"><li>Agriculture et pêche</li></ul>',
        }
    )

    ballot = await BallotAssembler(fetcher, reconciler, URLS).assemble(summary)

    assert ballot.theme_id == "agriculture"
    assert (SENATE_URL, EncodingMode.BINARY) in fetcher.requested


@pytest.mark.asyncio
async def test_unknown_ballot_theme_is_kept_unclassified(reconciler) -> None:
    summary = BallotSummary("1234", None, None, None)
    fetcher = PageFetcher({URLS.ballot_detail("1234"): BALLOT_PAGE, LAW_URL: law_page("Chasse")})

    ballot = await BallotAssembler(fetcher, reconciler, URLS).assemble(summary)

    assert ballot.theme_id is None
    assert ballot.unclassified_theme == "Chasse"
    assert len(ballot.votes) == 3


@pytest.mark.asyncio
async def test_missing_ballot_page_yields_none(reconciler) -> None:
    summary = BallotSummary("9", None, None, None)

    assert await BallotAssembler(PageFetcher({}), reconciler, URLS).assemble(summary) is None
