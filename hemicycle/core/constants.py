from dataclasses import dataclass
from enum import Enum


class DatabasePool:
    MIN_SIZE = 2
    MAX_SIZE = 20


class Collections:
    """Storage collection names, one per entity kind."""

    DEPUTIES = "deputies"
    WORKS = "works"
    BALLOTS = "ballots"
    VOTES = "votes"


class UrlParams:
    DEPUTY_ID = "{deputy_id}"
    OFFSET = "{offset}"
    WORK_TYPE = "{work_type}"
    BALLOT_ID = "{ballot_id}"
    LEGISLATURE = "{legislature}"


class UrlPaths:
    """Templated paths, joined onto the configured base URLs."""

    DEPUTIES_LIST = "deputes/liste/departements/(vue)/tableau"
    DEPUTY_INFO = "deputes/fiche/OMC_PA{deputy_id}"
    DEPUTY_WORK = (
        "deputes/documents_parlementaires/(offset)/{offset}"
        "/(id_omc)/OMC_PA{deputy_id}/(type)/{work_type}"
    )
    BALLOTS_LIST = "scrutins/liste/(legislature)/{legislature}"
    BALLOT_DETAIL = "scrutins/detail/(legislature)/{legislature}/(num)/{ballot_id}"
    HATVP_DEPUTIES_LIST = "resultat-de-recherche-avancee/?document=&mandat=depute&region=0&dep="


class FetchMarkers:
    REDIRECT = "<head><title>Object moved</title></head>"
    ERROR = "error"


class EncodingMode(Enum):
    TEXT = "utf-8"
    # Byte-preserving decoding for pages served as ISO-8859-1.
    BINARY = "iso-8859-1"


class VoteValue:
    FOR = "pour"
    AGAINST = "contre"
    ABSTENTION = "abstention"
    NON_VOTING = "non-votant"

    ALL: frozenset[str] = frozenset({FOR, AGAINST, ABSTENTION, NON_VOTING})


DEFAULT_GENERAL_THEME = "Politique générale"


@dataclass(frozen=True)
class WorkType:
    path: str
    label: str
    is_creation: bool = False
    # Theme used when the listing carries none.
    default_theme: str | None = None
    # Commission subtypes read "Commission - <name>"; keep the name only.
    strip_subtype_prefix: bool = False


WORK_TYPES: tuple[WorkType, ...] = (
    WorkType("propositions-loi", "Proposition de loi", is_creation=True),
    WorkType("propositions-resolution", "Proposition de résolution", is_creation=True),
    WorkType("rapports", "Rapport", is_creation=True),
    WorkType("questions-ecrites", "Question écrite"),
    WorkType("questions-orales", "Question orale"),
    WorkType(
        "commissions",
        "Intervention en commission",
        default_theme=DEFAULT_GENERAL_THEME,
        strip_subtype_prefix=True,
    ),
    WorkType(
        "seances-publiques",
        "Intervention en séance publique",
        default_theme=DEFAULT_GENERAL_THEME,
    ),
)
