"""Outbound update notifications.

Notifications are fire-and-forget: they never block the pipeline and never
fail it. Delivery errors are logged and dropped.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

import httpx
import structlog

from hemicycle.services.taxonomy import UnclassifiedLabel

logger = structlog.get_logger(__name__)

_WEBHOOK_TIMEOUT = 10.0


class Notifier(Protocol):
    def entity_updated(self, kind: str, official_id: str) -> None: ...

    def batch_completed(self, kind: str, count: int) -> None: ...

    def unclassified_label(self, label: UnclassifiedLabel) -> None: ...


def notify_safely(call: Callable[..., Any], *args: Any) -> None:
    """Invoke a notifier method, logging instead of raising on failure."""
    try:
        call(*args)
    except Exception:
        logger.exception("notify.failed", call=getattr(call, "__name__", repr(call)))


class LogNotifier:
    """Notifier used when no webhook is configured."""

    def entity_updated(self, kind: str, official_id: str) -> None:
        logger.info("notify.entity_updated", kind=kind, official_id=official_id)

    def batch_completed(self, kind: str, count: int) -> None:
        logger.info("notify.batch_completed", kind=kind, count=count)

    def unclassified_label(self, label: UnclassifiedLabel) -> None:
        logger.info(
            "notify.unclassified_label",
            label=label.raw_text,
            reason=label.reason,
            context_url=label.context_url,
        )


class WebhookNotifier:
    """POST JSON events to a webhook from background tasks."""

    def __init__(self, url: str, client: httpx.AsyncClient | None = None) -> None:
        self._url = url
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=_WEBHOOK_TIMEOUT)
        self._pending: set[asyncio.Task[None]] = set()

    def entity_updated(self, kind: str, official_id: str) -> None:
        self._spawn({"event": "entity_updated", "kind": kind, "official_id": official_id})

    def batch_completed(self, kind: str, count: int) -> None:
        self._spawn({"event": "batch_completed", "kind": kind, "count": count})

    def unclassified_label(self, label: UnclassifiedLabel) -> None:
        self._spawn(
            {
                "event": "unclassified_label",
                "label": label.raw_text,
                "reason": label.reason,
                "context_url": label.context_url,
            }
        )

    def _spawn(self, payload: dict[str, Any]) -> None:
        task = asyncio.get_running_loop().create_task(self._post(payload))
        # Keep a reference until done so the task is not garbage-collected mid-flight.
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _post(self, payload: dict[str, Any]) -> None:
        try:
            response = await self._client.post(self._url, json=payload)
            response.raise_for_status()
        except Exception as exc:
            logger.warning("notify.webhook_failed", event=payload.get("event"), error=str(exc))

    async def drain(self) -> None:
        """Wait for in-flight deliveries (used at shutdown)."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)

    async def aclose(self) -> None:
        await self.drain()
        if self._owns_client:
            await self._client.aclose()


async def close_notifier(notifier: Notifier) -> None:
    closer: Callable[[], Awaitable[None]] | None = getattr(notifier, "aclose", None)
    if closer is not None:
        await closer()
