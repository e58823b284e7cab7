"""Date parsing for the French date formats found on scraped pages."""

from __future__ import annotations

import re
from datetime import date

from hemicycle.core.text import fold_accents

_FRENCH_MONTHS: dict[str, int] = {
    "janvier": 1,
    "fevrier": 2,
    "mars": 3,
    "avril": 4,
    "mai": 5,
    "juin": 6,
    "juillet": 7,
    "aout": 8,
    "septembre": 9,
    "octobre": 10,
    "novembre": 11,
    "decembre": 12,
}

_NUMERIC_RE = re.compile(r"\b(\d{1,2})/(\d{1,2})/(\d{4})\b")
_ISO_RE = re.compile(r"\b(\d{4})-(\d{2})-(\d{2})\b")
_LONG_RE = re.compile(r"\b(\d{1,2})(?:er)?\s+([a-z]+)\s+(\d{4})\b")


def _safe_date(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def find_date(text: str | None) -> date | None:
    """Find the first date in ``text``.

    Understands ``12/03/2019``, ``2019-03-12`` and ``12 mars 2019`` (also
    ``1er mars 2019``). Returns None when no valid date is present.
    """
    if not text:
        return None
    folded = fold_accents(text).lower()

    for pattern, order in ((_NUMERIC_RE, "dmy"), (_ISO_RE, "ymd")):
        match = pattern.search(folded)
        if match:
            a, b, c = (int(g) for g in match.groups())
            return _safe_date(c, b, a) if order == "dmy" else _safe_date(a, b, c)

    for match in _LONG_RE.finditer(folded):
        month = _FRENCH_MONTHS.get(match.group(2))
        if month:
            return _safe_date(int(match.group(3)), month, int(match.group(1)))
    return None


def is_later_or_same(candidate: date | None, watermark: date | None) -> bool:
    """True when ``candidate`` is on or after ``watermark``.

    No watermark means everything is new; an undated candidate never is.
    """
    if watermark is None:
        return True
    if candidate is None:
        return False
    return candidate >= watermark
