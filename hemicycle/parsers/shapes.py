"""Declarative shape descriptors interpreted by the section extractor.

A shape says which element opens a logical section, which element inside it
starts item collection, and which tags or texts bound that collection. Adding
a page layout is a matter of adding a descriptor here, not new control flow.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType


@dataclass(frozen=True)
class TagMatcher:
    """Match an element by tag name, CSS class, or both."""

    tag: str | None = None
    css_class: str | None = None

    def matches(self, name: str, attributes: Mapping[str, str]) -> bool:
        if self.tag is not None and name != self.tag:
            return False
        if self.css_class is not None and self.css_class not in attributes.get("class", "").split():
            return False
        return True


@dataclass(frozen=True)
class Gate:
    """Sub-condition inside one section.

    Collection starts only after ``start_text`` has been seen and ``container``
    is entered; opening ``end_tag`` closes the gate again.
    """

    start_text: str
    end_tag: str
    container: TagMatcher


@dataclass(frozen=True)
class ShapeDescriptor:
    name: str
    section_tag: str
    # Attribute whose value identifies the section. None: every ``section_tag``
    # element opens an (anonymous) section.
    section_attribute: str | None = None
    # Accepted values of ``section_attribute``. None: any non-empty value.
    section_values: frozenset[str] | None = None
    # Element that starts item collection. None: collect as soon as the section opens.
    container: TagMatcher | None = None
    # Closing one of these ends item collection until the container reappears.
    stop_tags: frozenset[str] = frozenset()
    gates: Mapping[str, Gate] = field(default_factory=lambda: MappingProxyType({}))
    # Attribute labelling collected items (``fields`` on the emitted section).
    field_attribute: str | None = None
    link_attribute: str = "href"

    def section_id_for(self, name: str, attributes: Mapping[str, str]) -> str | None:
        """Return the section id opened by this element, or None if it opens none."""
        if name != self.section_tag:
            return None
        if self.section_attribute is None:
            return ""
        value = attributes.get(self.section_attribute, "")
        if not value:
            return None
        if self.section_values is None:
            return value
        # class attributes carry several tokens; any accepted one identifies the section.
        for token in value.split() if self.section_attribute == "class" else (value,):
            if token in self.section_values:
                return token
        return None


class MandateSections:
    CURRENT_OTHER = "autres"
    PAST_DEPUTY = "mandats-an-historique"
    PAST_GOVERNMENT = "mandats-nationaux-historique"
    PAST_INTERNATIONAL = "internationales-judiciaires-historique"

    ALL: frozenset[str] = frozenset({CURRENT_OTHER, PAST_DEPUTY, PAST_GOVERNMENT, PAST_INTERNATIONAL})


MANDATES = ShapeDescriptor(
    name="mandates",
    section_tag="div",
    section_attribute="id",
    section_values=MandateSections.ALL,
    container=TagMatcher(tag="ul"),
    stop_tags=frozenset({"h3", "h4"}),
    gates=MappingProxyType(
        {
            MandateSections.PAST_DEPUTY: Gate(
                start_text="Mandat de député",
                end_tag="h4",
                container=TagMatcher(css_class="fonctions-liste-attributs"),
            ),
        }
    ),
)

PROFILE = ShapeDescriptor(
    name="profile",
    section_tag="div",
    section_attribute="id",
    section_values=frozenset({"deputy-profile"}),
    container=TagMatcher(tag="ul"),
    field_attribute="class",
)

DEPUTIES_LIST = ShapeDescriptor(
    name="deputies_list",
    section_tag="tr",
    container=TagMatcher(tag="td"),
)

DECLARANT_INDEX = ShapeDescriptor(
    name="declarant_index",
    section_tag="li",
    section_attribute="class",
    section_values=frozenset({"declarant"}),
)

DECLARATIONS = ShapeDescriptor(
    name="declarations",
    section_tag="div",
    section_attribute="class",
    section_values=frozenset({"declaration"}),
    field_attribute="class",
)

WORK_ITEMS = ShapeDescriptor(
    name="work_items",
    section_tag="li",
    section_attribute="data-id",
    field_attribute="class",
)

BALLOTS_LIST = ShapeDescriptor(
    name="ballots_list",
    section_tag="tr",
    container=TagMatcher(tag="td"),
    field_attribute="class",
)

BALLOT_SUMMARY = ShapeDescriptor(
    name="ballot_summary",
    section_tag="div",
    section_attribute="id",
    section_values=frozenset({"scrutin-resume"}),
    field_attribute="class",
)

BALLOT_VOTES = ShapeDescriptor(
    name="ballot_votes",
    section_tag="li",
    section_attribute="data-vote",
)

LAW_FILE = ShapeDescriptor(
    name="law_file",
    section_tag="div",
    section_attribute="id",
    section_values=frozenset({"dossier"}),
    field_attribute="class",
)

SENATE_THEME = ShapeDescriptor(
    name="senate_theme",
    section_tag="ul",
    section_attribute="class",
    section_values=frozenset({"themes"}),
)
