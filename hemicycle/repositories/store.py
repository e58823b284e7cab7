"""Storage collaborator contract and the in-memory implementation.

Every write is keyed by (collection, official_id). ``upsert`` is idempotent:
writing an identical payload twice leaves the store unchanged, and the return
value says whether anything changed.
"""

from __future__ import annotations

import dataclasses
import json
from datetime import date, datetime
from typing import Any, Protocol


class IngestionStore(Protocol):
    async def find_by_official_id(self, collection: str, official_id: str) -> dict | None: ...

    async def upsert(self, collection: str, official_id: str, payload: dict) -> bool: ...

    async def find_all(self, collection: str) -> list[dict]: ...

    async def find_unclassified(self, collection: str) -> list[dict]: ...


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime | date):
        return value.isoformat()
    if isinstance(value, frozenset | set):
        return sorted(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def to_payload(record: Any, **extra: Any) -> dict:
    """Serialize a record dataclass into a JSON-compatible payload dict."""
    data = dataclasses.asdict(record) if dataclasses.is_dataclass(record) else dict(record)
    data.update(extra)
    return json.loads(json.dumps(data, default=_json_default))


def payload_date(payload: dict | None, key: str) -> date | None:
    raw = (payload or {}).get(key)
    if not raw:
        return None
    try:
        return date.fromisoformat(str(raw)[:10])
    except ValueError:
        return None


class MemoryStore:
    """Dict-backed store for dry runs and tests."""

    def __init__(self) -> None:
        self._records: dict[tuple[str, str], dict] = {}
        self.write_count = 0

    async def find_by_official_id(self, collection: str, official_id: str) -> dict | None:
        found = self._records.get((collection, official_id))
        return json.loads(json.dumps(found)) if found is not None else None

    async def upsert(self, collection: str, official_id: str, payload: dict) -> bool:
        snapshot = json.loads(json.dumps(payload, default=_json_default))
        if self._records.get((collection, official_id)) == snapshot:
            return False
        self._records[(collection, official_id)] = snapshot
        self.write_count += 1
        return True

    async def find_all(self, collection: str) -> list[dict]:
        return [
            json.loads(json.dumps(payload))
            for (name, _), payload in sorted(self._records.items())
            if name == collection
        ]

    async def find_unclassified(self, collection: str) -> list[dict]:
        return [p for p in await self.find_all(collection) if p.get("unclassified_theme")]
