"""Markup event stream: open-tag / text / close-tag / stream-end, in document order."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from html.parser import HTMLParser


@dataclass(frozen=True)
class TagOpen:
    name: str
    attributes: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class Text:
    content: str


@dataclass(frozen=True)
class TagClose:
    name: str


@dataclass(frozen=True)
class StreamEnd:
    pass


ExtractionEvent = TagOpen | Text | TagClose | StreamEnd


class _EventTokenizer(HTMLParser):
    """Buffer parser callbacks as events so they can be yielded per chunk."""

    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.pending: list[ExtractionEvent] = []

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        self.pending.append(TagOpen(tag, {k: v or "" for k, v in attrs}))

    def handle_startendtag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        self.handle_starttag(tag, attrs)
        self.pending.append(TagClose(tag))

    def handle_endtag(self, tag: str) -> None:
        self.pending.append(TagClose(tag))

    def handle_data(self, data: str) -> None:
        self.pending.append(Text(data))

    def drain(self) -> list[ExtractionEvent]:
        events, self.pending = self.pending, []
        return events


def iter_events(document: str | Iterable[str]) -> Iterator[ExtractionEvent]:
    """Yield the events of ``document`` lazily, chunk by chunk, ending with StreamEnd.

    ``document`` is either a whole page or an iterable of text chunks.
    """
    chunks = (document,) if isinstance(document, str) else document
    tokenizer = _EventTokenizer()
    for chunk in chunks:
        tokenizer.feed(chunk)
        yield from tokenizer.drain()
    tokenizer.close()
    yield from tokenizer.drain()
    yield StreamEnd()
