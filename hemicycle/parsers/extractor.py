"""Single-pass section extractor driven by a shape descriptor.

The state machine walks the event stream once:

    IDLE -> SECTION_EXPECTED -> ITEM_COLLECTING -> IDLE ... -> FINISHED

Each ``extract`` call builds its own machine, so documents can be parsed
concurrently without sharing state.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum

from hemicycle.parsers.events import ExtractionEvent, StreamEnd, TagClose, TagOpen, Text, iter_events
from hemicycle.parsers.shapes import Gate, ShapeDescriptor


class ExtractorState(Enum):
    IDLE = "idle"
    SECTION_EXPECTED = "section_expected"
    ITEM_COLLECTING = "item_collecting"
    FINISHED = "finished"


@dataclass(frozen=True)
class Section:
    """Items collected between a section marker and its closing tag."""

    section_id: str
    attributes: Mapping[str, str] = field(default_factory=dict)
    items: tuple[str, ...] = ()
    links: tuple[str, ...] = ()
    # (label, text) pairs; label is the nearest enclosing field attribute value.
    fields: tuple[tuple[str | None, str], ...] = ()

    def field(self, label: str) -> str | None:
        """Joined text of all items carrying ``label``, or None if there is none."""
        parts = [text for item_label, text in self.fields if item_label == label]
        return " ".join(parts) if parts else None


class SectionStateMachine:
    """Consume extraction events and accumulate the sections of one document."""

    def __init__(self, shape: ShapeDescriptor) -> None:
        self._shape = shape
        self.state = ExtractorState.IDLE
        self.sections: list[Section] = []
        self._begin(section_id="", attributes={})
        self.state = ExtractorState.IDLE

    def _begin(self, section_id: str, attributes: Mapping[str, str]) -> None:
        # Everything below is per-section and starts fresh, gate flag included.
        self._section_id = section_id
        self._attributes = dict(attributes)
        self._items: list[str] = []
        self._links: list[str] = []
        self._fields: list[tuple[str | None, str]] = []
        self._labels: list[tuple[str, str | None]] = []
        self._depth = 1
        self._gate: Gate | None = self._shape.gates.get(section_id)
        self._gate_open = False
        # Tag that opened item collection and how many of it are open; None
        # when the shape collects from the section marker onwards.
        self._container_tag: str | None = None
        self._container_depth = 0
        if self._shape.container is None and self._gate is None:
            self.state = ExtractorState.ITEM_COLLECTING
        else:
            self.state = ExtractorState.SECTION_EXPECTED

    def _start_collecting(self, tag: str) -> None:
        self._container_tag = tag
        self._container_depth = 1
        self.state = ExtractorState.ITEM_COLLECTING

    def _stop_collecting(self) -> None:
        self._container_tag = None
        self._container_depth = 0
        self.state = ExtractorState.SECTION_EXPECTED

    def _emit(self) -> None:
        self.sections.append(
            Section(
                section_id=self._section_id,
                attributes=self._attributes,
                items=tuple(self._items),
                links=tuple(self._links),
                fields=tuple(self._fields),
            )
        )
        self.state = ExtractorState.IDLE

    def _current_label(self) -> str | None:
        for _, label in reversed(self._labels):
            if label:
                return label
        return None

    def feed(self, event: ExtractionEvent) -> None:
        if self.state is ExtractorState.FINISHED:
            raise RuntimeError("extractor already reached the end of the stream")
        if isinstance(event, TagOpen):
            self._on_open(event)
        elif isinstance(event, Text):
            self._on_text(event)
        elif isinstance(event, TagClose):
            self._on_close(event)
        elif isinstance(event, StreamEnd):
            if self.state is not ExtractorState.IDLE:
                self._emit()
            self.state = ExtractorState.FINISHED

    def _on_open(self, event: TagOpen) -> None:
        section_id = self._shape.section_id_for(event.name, event.attributes)
        if section_id is not None:
            # A marker before the open section closed (e.g. an omitted </li>)
            # ends that section; its items are kept.
            if self.state is not ExtractorState.IDLE:
                self._emit()
            self._begin(section_id, event.attributes)
            return
        if self.state is ExtractorState.IDLE:
            return

        if event.name == self._shape.section_tag:
            self._depth += 1
        if self._shape.field_attribute:
            self._labels.append((event.name, event.attributes.get(self._shape.field_attribute)))

        collecting = self.state is ExtractorState.ITEM_COLLECTING
        if collecting and event.name == self._container_tag:
            self._container_depth += 1

        gate = self._gate
        if gate is not None:
            if self._gate_open:
                if event.name == gate.end_tag:
                    self._gate_open = False
                    self._stop_collecting()
                elif not collecting and gate.container.matches(event.name, event.attributes):
                    self._start_collecting(event.name)
        elif (
            self.state is ExtractorState.SECTION_EXPECTED
            and self._shape.container is not None
            and self._shape.container.matches(event.name, event.attributes)
        ):
            self._start_collecting(event.name)

        if self.state is ExtractorState.ITEM_COLLECTING:
            link = event.attributes.get(self._shape.link_attribute, "").strip()
            if link:
                self._links.append(link)

    def _on_text(self, event: Text) -> None:
        if self.state is ExtractorState.IDLE:
            return
        trimmed = event.content.strip()
        if not trimmed:
            return
        if self._gate is not None and trimmed == self._gate.start_text:
            self._gate_open = True
        if self.state is ExtractorState.ITEM_COLLECTING:
            self._items.append(trimmed)
            self._fields.append((self._current_label(), trimmed))

    def _on_close(self, event: TagClose) -> None:
        if self.state is ExtractorState.IDLE:
            return

        # Unclosed void elements (br, img) are dropped on the way down.
        for index in range(len(self._labels) - 1, -1, -1):
            if self._labels[index][0] == event.name:
                del self._labels[index:]
                break

        if event.name == self._shape.section_tag:
            self._depth -= 1
            if self._depth == 0:
                self._emit()
                return
        if self.state is not ExtractorState.ITEM_COLLECTING:
            return
        if event.name == self._container_tag:
            self._container_depth -= 1
            if self._container_depth == 0:
                self._stop_collecting()
                return
        if event.name in self._shape.stop_tags:
            self._stop_collecting()


def extract(document: str | Iterable[str], shape: ShapeDescriptor) -> list[Section]:
    """Extract every section ``shape`` describes from ``document``.

    Returns an empty list when no section marker matched; never raises on
    unexpected markup.
    """
    machine = SectionStateMachine(shape)
    for event in iter_events(document):
        machine.feed(event)
    return machine.sections
