"""Theme taxonomy reconciliation.

Maps free-text category labels scraped from pages onto the curated theme
hierarchy. Absence of a match is a normal return value (None); unmatched
labels are reported through the ``on_unrecognized`` hook so the caller can
flag them for manual theming.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from pathlib import Path

import structlog
from pydantic import BaseModel, ConfigDict, TypeAdapter

from hemicycle.core.metrics import unclassified_labels_total
from hemicycle.core.text import fold_accents

logger = structlog.get_logger(__name__)

_SEPARATOR_RE = re.compile(r"\s*(?::|\s-\s|\(|,)\s*")


class ThemeNode(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    parent_id: str | None = None
    aliases: frozenset[str] = frozenset()
    short_name: str | None = None


@dataclass(frozen=True)
class UnclassifiedLabel:
    raw_text: str
    context_url: str | None = None
    reason: str = "unrecognized"  # unrecognized | too_long


UnrecognizedHook = Callable[[UnclassifiedLabel], None]

_THEME_LIST = TypeAdapter(list[ThemeNode])


def load_theme_nodes(path: Path) -> list[ThemeNode]:
    """Load and validate the theme dataset (a JSON list of nodes)."""
    nodes = _THEME_LIST.validate_json(Path(path).read_bytes())
    logger.info("taxonomy.loaded", path=str(path), node_count=len(nodes))
    return nodes


def normalize_label(label: str) -> str:
    """Fold accents and case, collapse whitespace, strip surrounding punctuation."""
    return " ".join(fold_accents(label).casefold().split()).strip(" .;:,-")


class TaxonomyReconciler:
    """Read-only label -> ThemeNode lookup, safe for concurrent readers."""

    def __init__(
        self,
        nodes: Iterable[ThemeNode],
        *,
        max_label_length: int = 55,
        on_unrecognized: UnrecognizedHook | None = None,
    ) -> None:
        self._max_label_length = max_label_length
        self._on_unrecognized = on_unrecognized
        self._by_id: dict[str, ThemeNode] = {}
        self._index: dict[str, ThemeNode] = {}
        self._short_index: dict[str, ThemeNode] = {}
        for node in nodes:
            self._by_id[node.id] = node
            for label in (node.name, *sorted(node.aliases)):
                self._index.setdefault(normalize_label(label), node)
            if node.short_name:
                self._short_index.setdefault(normalize_label(node.short_name), node)

    def with_hook(self, on_unrecognized: UnrecognizedHook | None) -> TaxonomyReconciler:
        """Same taxonomy, different unrecognized-label hook."""
        return TaxonomyReconciler(
            self._by_id.values(),
            max_label_length=self._max_label_length,
            on_unrecognized=on_unrecognized,
        )

    def get(self, theme_id: str) -> ThemeNode | None:
        return self._by_id.get(theme_id)

    def parent_of(self, node: ThemeNode) -> ThemeNode | None:
        return self._by_id.get(node.parent_id) if node.parent_id else None

    def resolve(self, label: str | None, context_url: str | None = None) -> ThemeNode | None:
        """Return the theme node matching ``label``, or None if it is unrecognized."""
        if not label or not label.strip():
            return None
        key = normalize_label(label)
        node = self._index.get(key) or self._short_index.get(key)
        if node is not None:
            return node

        too_long = len(label.strip()) > self._max_label_length
        if too_long:
            node = self._resolve_shortened(key)
            if node is not None:
                return node

        self._report(
            UnclassifiedLabel(
                raw_text=label.strip(),
                context_url=context_url,
                reason="too_long" if too_long else "unrecognized",
            )
        )
        return None

    def _resolve_shortened(self, key: str) -> ThemeNode | None:
        head = _SEPARATOR_RE.split(key, maxsplit=1)[0]
        for candidate in (head, key[: self._max_label_length].rsplit(" ", 1)[0]):
            candidate = candidate.strip(" .;:,-")
            node = self._short_index.get(candidate) or self._index.get(candidate)
            if node is not None:
                return node
        return None

    def _report(self, label: UnclassifiedLabel) -> None:
        unclassified_labels_total.labels(reason=label.reason).inc()
        logger.info(
            "taxonomy.unrecognized",
            label=label.raw_text[:120],
            reason=label.reason,
            context_url=label.context_url,
        )
        if self._on_unrecognized is None:
            return
        try:
            self._on_unrecognized(label)
        except Exception:
            logger.exception("taxonomy.unrecognized_hook_failed", label=label.raw_text[:120])
