"""Resilient page fetcher.

One logical "get content at URL" operation: bounded retry on transient
failures and truncated pages, redirect-marker following, and per-request
encoding selection. Returns the decoded body or None; never raises for
network conditions, so callers treat "no content" as a normal outcome.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from urllib.parse import urljoin

import httpx
import structlog

from hemicycle.core.config import Settings
from hemicycle.core.constants import EncodingMode, FetchMarkers
from hemicycle.core.metrics import fetch_total
from hemicycle.core.retry import retry_with_backoff

logger = structlog.get_logger(__name__)

_USER_AGENT = "hemicycle-ingest/1.0"
_REDIRECT_TARGET_RE = re.compile(r"""['"]([^'"]+)['"]""")


class ShortContentError(Exception):
    """A response body too short to be a real page (truncated or error stub)."""


@dataclass(frozen=True)
class FetchRequest:
    url: str
    encoding_mode: EncodingMode = EncodingMode.TEXT


class ResilientFetcher:
    """Fetch pages over one pooled ``httpx.AsyncClient``.

    The fetcher holds no per-call mutable state, so any number of callers may
    await ``fetch`` concurrently.
    """

    def __init__(
        self,
        *,
        base_url: str,
        timeout: float = 60.0,
        max_attempts: int = 3,
        min_content_length: int = 1000,
        max_redirects: int = 3,
        retry_delay: float = 0.0,
        retry_timeouts: bool = True,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url
        self._max_attempts = max_attempts
        self._min_content_length = min_content_length
        self._max_redirects = max_redirects
        self._retry_delay = retry_delay
        self._final_exceptions: tuple[type[Exception], ...] = () if retry_timeouts else (httpx.TimeoutException,)
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            follow_redirects=True,
            headers={"User-Agent": _USER_AGENT},
        )

    @classmethod
    def from_settings(cls, settings: Settings, client: httpx.AsyncClient | None = None) -> ResilientFetcher:
        return cls(
            base_url=settings.BASE_URL,
            timeout=settings.FETCH_TIMEOUT_SECONDS,
            max_attempts=settings.FETCH_MAX_ATTEMPTS,
            min_content_length=settings.FETCH_MIN_CONTENT_LENGTH,
            max_redirects=settings.FETCH_MAX_REDIRECTS,
            retry_delay=settings.FETCH_RETRY_DELAY_SECONDS,
            retry_timeouts=settings.FETCH_RETRY_TIMEOUTS,
            client=client,
        )

    async def __aenter__(self) -> ResilientFetcher:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def fetch(self, url: str, encoding_mode: EncodingMode = EncodingMode.TEXT) -> str | None:
        """Return the decoded page at ``url``, or None when nothing usable came back.

        A redirect-marker body is followed through the same retry path, up to
        ``max_redirects`` hops.
        """
        current_url = url
        for hop in range(self._max_redirects + 1):
            body = await retry_with_backoff(
                self._attempt,
                FetchRequest(current_url, encoding_mode),
                max_attempts=self._max_attempts,
                base_delay=self._retry_delay,
                non_retryable_exceptions=self._final_exceptions,
            )
            if body is None:
                fetch_total.labels(outcome="empty").inc()
                logger.warning("fetch.no_content", url=current_url, requested_url=url)
                return None

            target = self.redirect_target(body)
            if target is None:
                fetch_total.labels(outcome="success").inc()
                return body

            fetch_total.labels(outcome="redirect").inc()
            logger.info("fetch.redirect", url=current_url, target=target, hop=hop + 1)
            current_url = target

        logger.warning("fetch.too_many_redirects", url=url, max_redirects=self._max_redirects)
        return None

    def redirect_target(self, body: str) -> str | None:
        """Extract the absolute target URL of a "moved" marker body, if it is one."""
        if not body.startswith(FetchMarkers.REDIRECT):
            return None
        match = _REDIRECT_TARGET_RE.search(body, len(FetchMarkers.REDIRECT))
        if not match:
            return None
        return urljoin(self._base_url, match.group(1).strip())

    async def _attempt(self, request: FetchRequest) -> str:
        try:
            response = await self._client.get(request.url)
            response.raise_for_status()
        except httpx.HTTPStatusError:
            fetch_total.labels(outcome="http_error").inc()
            raise
        except httpx.TransportError:
            fetch_total.labels(outcome="transport_error").inc()
            raise

        body = response.content.decode(request.encoding_mode.value, errors="replace")
        if self.redirect_target(body) is not None:
            return body
        if body.startswith(FetchMarkers.ERROR) or len(body) < self._min_content_length:
            raise ShortContentError(f"content too short ({len(body)} chars) for {request.url}")
        return body
