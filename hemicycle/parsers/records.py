"""Typed records built from extracted sections, one mapper per page shape.

Mappers are pure: they take a page, run the extractor with the matching shape,
and turn sections into frozen records. Sections missing their identifier are
dropped (and logged), never raised.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date
from urllib.parse import urljoin

import structlog

from hemicycle.core.constants import VoteValue, WorkType
from hemicycle.core.dates import find_date
from hemicycle.core.text import strip_civility
from hemicycle.parsers import shapes
from hemicycle.parsers.extractor import Section, extract

logger = structlog.get_logger(__name__)

_DEPUTY_ID_RE = re.compile(r"OMC_PA(\d+)")
_BALLOT_ID_RE = re.compile(r"\(num\)/(\d+)")
_INT_RE = re.compile(r"\d[\d\s ]*")

Document = str | Iterable[str]


@dataclass(frozen=True)
class MandateRecord:
    current_mandates: tuple[str, ...] = ()
    past_deputy_mandates: tuple[str, ...] = ()
    past_government_missions: tuple[str, ...] = ()
    past_international_missions: tuple[str, ...] = ()
    # Sections the page did not carry; a non-empty value marks the record partial.
    missing_sections: tuple[str, ...] = ()

    @property
    def is_partial(self) -> bool:
        return bool(self.missing_sections)


@dataclass(frozen=True)
class ProfileRecord:
    parliament_group: str | None = None
    job: str | None = None
    birth_date: date | None = None
    email: str | None = None
    phone: str | None = None
    seat_number: str | None = None
    mandate_start_date: date | None = None
    end_of_mandate_date: date | None = None
    end_of_mandate_reason: str | None = None


@dataclass(frozen=True)
class DeputySummary:
    official_id: str
    first_name: str
    last_name: str
    department: str | None = None

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass(frozen=True)
class DeclarantLink:
    name: str
    url: str


@dataclass(frozen=True)
class DeclarationRecord:
    title: str
    url: str
    date: date | None = None


@dataclass(frozen=True)
class WorkItemRecord:
    external_id: str
    work_type: str
    date: date | None
    subtype: str | None
    theme: str | None
    description: str | None
    is_creation: bool
    url: str | None = None
    theme_id: str | None = None
    # Raw theme kept when reconciliation found no node; cleared once themed.
    unclassified_theme: str | None = None


@dataclass(frozen=True)
class BallotSummary:
    official_id: str
    title: str | None
    date: date | None
    url: str | None


@dataclass(frozen=True)
class VoteRecord:
    value: str
    deputy_name: str
    deputy_official_id: str | None = None


@dataclass(frozen=True)
class BallotRecord:
    official_id: str
    title: str | None
    date: date | None
    date_detailed: str | None
    type: str | None
    total_votes: int | None
    yes_votes: int | None
    no_votes: int | None
    is_adopted: bool | None
    analysis_url: str | None
    file_url: str | None
    votes: tuple[VoteRecord, ...] = ()
    non_voting: int = 0
    theme_id: str | None = None
    unclassified_theme: str | None = None


@dataclass(frozen=True)
class LawRecord:
    url: str
    title: str | None
    theme: str | None
    senate_url: str | None


def deputy_id_from_url(url: str | None) -> str | None:
    match = _DEPUTY_ID_RE.search(url or "")
    return match.group(1) if match else None


def split_person_name(raw: str) -> tuple[str, str]:
    """Split "M. Jean Dupont" into ("Jean", "Dupont")."""
    cleaned = strip_civility(raw)
    first, _, last = cleaned.partition(" ")
    return first, last


def _to_int(text: str | None) -> int | None:
    match = _INT_RE.search(text or "")
    if not match:
        return None
    return int(re.sub(r"\D", "", match.group(0)))


def _first_link(section: Section, hint: str, base_url: str | None = None) -> str | None:
    for link in section.links:
        if hint in link:
            return urljoin(base_url, link) if base_url else link
    return None


def parse_mandates(document: Document) -> MandateRecord:
    sections = {s.section_id: s.items for s in extract(document, shapes.MANDATES)}
    missing = tuple(sorted(shapes.MandateSections.ALL - sections.keys()))
    return MandateRecord(
        current_mandates=sections.get(shapes.MandateSections.CURRENT_OTHER, ()),
        past_deputy_mandates=sections.get(shapes.MandateSections.PAST_DEPUTY, ()),
        past_government_missions=sections.get(shapes.MandateSections.PAST_GOVERNMENT, ()),
        past_international_missions=sections.get(shapes.MandateSections.PAST_INTERNATIONAL, ()),
        missing_sections=missing,
    )


def parse_profile(document: Document) -> ProfileRecord | None:
    """Deputy profile block, or None when the page carries none."""
    sections = extract(document, shapes.PROFILE)
    if not sections:
        return None
    section = sections[0]
    email = section.field("email") or _first_link(section, "mailto:")
    if email and email.startswith("mailto:"):
        email = email.removeprefix("mailto:")
    return ProfileRecord(
        parliament_group=section.field("groupe"),
        job=section.field("profession"),
        birth_date=find_date(section.field("naissance")),
        email=email,
        phone=section.field("telephone"),
        seat_number=section.field("siege"),
        mandate_start_date=find_date(section.field("debut-mandat")),
        end_of_mandate_date=find_date(section.field("fin-mandat")),
        end_of_mandate_reason=section.field("fin-mandat-motif"),
    )


def parse_deputies_list(document: Document) -> list[DeputySummary]:
    deputies: list[DeputySummary] = []
    for section in extract(document, shapes.DEPUTIES_LIST):
        official_id = next(filter(None, map(deputy_id_from_url, section.links)), None)
        if not official_id or not section.items:
            continue
        first_name, last_name = split_person_name(section.items[0])
        department = section.items[1] if len(section.items) > 1 else None
        deputies.append(DeputySummary(official_id, first_name, last_name, department))
    return deputies


def parse_declarant_index(document: Document, base_url: str) -> list[DeclarantLink]:
    links: list[DeclarantLink] = []
    for section in extract(document, shapes.DECLARANT_INDEX):
        if not section.items or not section.links:
            logger.debug("parse.declarant.incomplete", items=section.items)
            continue
        links.append(DeclarantLink(" ".join(section.items), urljoin(base_url, section.links[0])))
    return links


def parse_declarations(document: Document, base_url: str) -> list[DeclarationRecord]:
    declarations: list[DeclarationRecord] = []
    for section in extract(document, shapes.DECLARATIONS):
        if not section.links:
            continue
        declarations.append(
            DeclarationRecord(
                title=section.field("titre") or " ".join(section.items),
                url=urljoin(base_url, section.links[0]),
                date=find_date(section.field("date")),
            )
        )
    return declarations


def parse_work_items(document: Document, work_type: WorkType, base_url: str) -> list[WorkItemRecord]:
    works: list[WorkItemRecord] = []
    for section in extract(document, shapes.WORK_ITEMS):
        subtype = section.field("type")
        if subtype and work_type.strip_subtype_prefix:
            _, sep, name = subtype.partition("-")
            subtype = name.strip() if sep and name.strip() else subtype
        works.append(
            WorkItemRecord(
                external_id=section.section_id,
                work_type=work_type.path,
                date=find_date(section.field("date")),
                subtype=subtype,
                theme=section.field("theme"),
                description=section.field("description"),
                is_creation=work_type.is_creation,
                url=urljoin(base_url, section.links[0]) if section.links else None,
            )
        )
    return works


def parse_ballots_list(document: Document, base_url: str) -> list[BallotSummary]:
    ballots: list[BallotSummary] = []
    for section in extract(document, shapes.BALLOTS_LIST):
        url = _first_link(section, "(num)/", base_url)
        match = _BALLOT_ID_RE.search(url or "")
        official_id = match.group(1) if match else section.field("numero")
        if not official_id:
            continue
        ballots.append(
            BallotSummary(
                official_id=official_id,
                title=section.field("objet"),
                date=find_date(section.field("date")),
                url=url,
            )
        )
    return ballots


def parse_votes(document: Document) -> tuple[VoteRecord, ...]:
    votes: list[VoteRecord] = []
    for section in extract(document, shapes.BALLOT_VOTES):
        value = section.section_id.lower()
        if value not in VoteValue.ALL or not section.items:
            logger.debug("parse.vote.dropped", value=value, items=section.items)
            continue
        deputy_id = next(filter(None, map(deputy_id_from_url, section.links)), None)
        votes.append(VoteRecord(value, " ".join(section.items), deputy_id))
    return tuple(votes)


def parse_ballot(document: str, official_id: str, base_url: str) -> BallotRecord | None:
    """Ballot summary plus its individual votes, or None without a summary block."""
    sections = extract(document, shapes.BALLOT_SUMMARY)
    if not sections:
        return None
    section = sections[0]
    outcome = (section.field("sort") or "").lower()
    votes = parse_votes(document)
    return BallotRecord(
        official_id=official_id,
        title=section.field("titre"),
        date=find_date(section.field("date")),
        date_detailed=section.field("date"),
        type=section.field("type"),
        total_votes=_to_int(section.field("votants")),
        yes_votes=_to_int(section.field("pour")),
        no_votes=_to_int(section.field("contre")),
        is_adopted=("adopt" in outcome) if outcome else None,
        analysis_url=_first_link(section, "analyse", base_url),
        file_url=_first_link(section, "dossiers", base_url),
        votes=votes,
        non_voting=sum(1 for vote in votes if vote.value == VoteValue.NON_VOTING),
    )


def parse_law(document: Document, url: str) -> LawRecord | None:
    sections = extract(document, shapes.LAW_FILE)
    if not sections:
        return None
    section = sections[0]
    return LawRecord(
        url=url,
        title=section.field("titre"),
        theme=section.field("theme"),
        senate_url=_first_link(section, "senat.fr"),
    )


def parse_senate_theme(document: Document) -> str | None:
    for section in extract(document, shapes.SENATE_THEME):
        if section.items:
            return section.items[0]
    return None
