"""Postgres storage collaborator over the ingested_records table."""

from __future__ import annotations

import json
from datetime import UTC, datetime

import asyncpg


async def upsert_record(
    pool: asyncpg.Pool,
    *,
    collection: str,
    official_id: str,
    payload: dict,
) -> bool:
    """Insert or update one record; identical payloads are left untouched.

    Returns True when a row was inserted or its payload changed.
    """
    now = datetime.now(UTC)
    async with pool.acquire() as conn:
        changed = await conn.fetchval(
            """
            INSERT INTO ingested_records (collection, official_id, payload, created_at, updated_at)
            VALUES ($1, $2, $3::jsonb, $4, $4)
            ON CONFLICT (collection, official_id)
            DO UPDATE SET
                payload = EXCLUDED.payload,
                updated_at = EXCLUDED.updated_at
            WHERE ingested_records.payload IS DISTINCT FROM EXCLUDED.payload
            RETURNING official_id
            """,
            collection,
            official_id,
            json.dumps(payload),
            now,
        )
    return changed is not None


async def fetch_record(pool: asyncpg.Pool, *, collection: str, official_id: str) -> dict | None:
    async with pool.acquire() as conn:
        raw = await conn.fetchval(
            "SELECT payload FROM ingested_records WHERE collection = $1 AND official_id = $2",
            collection,
            official_id,
        )
    return json.loads(raw) if raw else None


async def fetch_collection(pool: asyncpg.Pool, *, collection: str, unclassified_only: bool = False) -> list[dict]:
    """All payloads of a collection, optionally only those awaiting a theme."""
    where_unclassified = "AND payload->>'unclassified_theme' IS NOT NULL" if unclassified_only else ""
    async with pool.acquire() as conn:
        rows = await conn.fetch(
            f"""
            SELECT payload FROM ingested_records
            WHERE collection = $1 {where_unclassified}
            ORDER BY official_id
            """,
            collection,
        )
    return [json.loads(row["payload"]) for row in rows]


class PostgresStore:
    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    async def find_by_official_id(self, collection: str, official_id: str) -> dict | None:
        return await fetch_record(self._pool, collection=collection, official_id=official_id)

    async def upsert(self, collection: str, official_id: str, payload: dict) -> bool:
        return await upsert_record(
            self._pool, collection=collection, official_id=official_id, payload=payload
        )

    async def find_all(self, collection: str) -> list[dict]:
        return await fetch_collection(self._pool, collection=collection)

    async def find_unclassified(self, collection: str) -> list[dict]:
        return await fetch_collection(self._pool, collection=collection, unclassified_only=True)
