import re
import unicodedata

_CIVILITY_RE = re.compile(r"^(?:m\.|mme|mlle|monsieur|madame)\s+", re.IGNORECASE)


def fold_accents(text: str) -> str:
    """Strip combining marks: "Élysée" -> "Elysee"."""
    decomposed = unicodedata.normalize("NFKD", text)
    return "".join(c for c in decomposed if not unicodedata.combining(c))


def strip_civility(name: str) -> str:
    return _CIVILITY_RE.sub("", " ".join(name.split()))


def person_key(name: str) -> str:
    """Order-insensitive matching key for a person's name.

    "M. Jean-Luc Dupont", "DUPONT Jean-Luc" and "dupont jean luc" share a key.
    """
    folded = fold_accents(strip_civility(name)).casefold().replace("-", " ")
    return " ".join(sorted(folded.split()))
