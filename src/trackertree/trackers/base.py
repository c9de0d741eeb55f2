"""Tracker adapter base — shared async HTTP plumbing with retry/backoff.

An adapter owns everything tracker-specific: how candidate ids are
searched, how full records are batch-fetched, and how a wire record maps to
an ``Item``. The fetcher and tree builder only see this interface.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Sequence

import httpx

from trackertree.config import Settings
from trackertree.models import Item, Project

logger = logging.getLogger(__name__)


class TrackerClientError(Exception):
    """Raised on unrecoverable tracker API errors."""


class TrackerAdapter(ABC):
    """Base class for pluggable tracker backends."""

    name: str = "tracker"

    @abstractmethod
    async def search(self, project_id: str, limit: int) -> list[str]:
        """Return up to ``limit`` candidate item ids belonging to a project."""

    @abstractmethod
    async def batch_get(self, ids: Sequence[str]) -> list[dict[str, Any]]:
        """Return full wire records for ``ids``; unknown ids are skipped."""

    @abstractmethod
    async def list_projects(self) -> list[Project]:
        """List the projects visible to the configured credentials."""

    @abstractmethod
    async def test_auth(self) -> dict[str, Any]:
        """Check credentials. Returns {ok: bool, user: str, ...}."""

    @abstractmethod
    def to_item(self, record: dict[str, Any]) -> Item:
        """Map a wire record to the common Item shape. Never drops a record."""

    async def aclose(self) -> None:
        """Release network resources."""

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.aclose()


class HttpTracker(TrackerAdapter):
    """Adapter base holding a lazily created ``httpx.AsyncClient``."""

    def __init__(
        self,
        settings: Settings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

        errors = settings.validate_tracker_config(self.name)
        if errors:
            raise TrackerClientError(
                f"{self.name} configuration errors:\n  • " + "\n  • ".join(errors)
            )

    # ── HTTP plumbing ─────────────────────────────────────────────────

    @abstractmethod
    def _client_options(self) -> dict[str, Any]:
        """base_url, headers and auth for the AsyncClient."""

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.settings.http_timeout),
                transport=self._transport,
                **self._client_options(),
            )
        return self._client

    def _parse_retry_after(self, value: str | None, default: int) -> int:
        """Parse Retry-After header — can be seconds (int) or HTTP-date string."""
        if value is None:
            return default
        try:
            return int(value)
        except ValueError:
            logger.debug("Non-integer Retry-After header: %s, using default %ds", value, default)
            return default

    async def _sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)

    async def _request_with_retry(
        self, method: str, url: str, **kwargs: Any
    ) -> httpx.Response:
        """Execute an HTTP request with retries on 429 and 5xx."""
        max_retries = self.settings.http_max_retries
        for attempt in range(max_retries + 1):
            try:
                resp = await self.client.request(method, url, **kwargs)
            except httpx.TransportError as exc:
                if attempt >= max_retries:
                    raise TrackerClientError(
                        f"Transport error after {max_retries} retries: {exc}"
                    ) from exc
                wait = 2 ** attempt
                logger.warning(
                    "Transport error (attempt %d/%d), retrying in %ds: %s",
                    attempt + 1, max_retries, wait, exc,
                )
                await self._sleep(wait)
                continue

            if resp.status_code == 429 or resp.status_code >= 500:
                if attempt >= max_retries:
                    raise TrackerClientError(
                        f"HTTP {resp.status_code} after {max_retries} retries: {resp.text[:300]}"
                    )
                retry_after = self._parse_retry_after(
                    resp.headers.get("Retry-After"), 2 ** attempt
                )
                logger.warning(
                    "HTTP %d (attempt %d/%d), retrying in %ds",
                    resp.status_code, attempt + 1, max_retries, retry_after,
                )
                await self._sleep(retry_after)
                continue

            if resp.status_code in (401, 403):
                raise TrackerClientError(
                    f"HTTP {resp.status_code}: credentials rejected by {self.name}"
                )
            if resp.is_error:
                raise TrackerClientError(
                    f"HTTP {resp.status_code} for {method} {url}: {resp.text[:300]}"
                )
            return resp

        raise TrackerClientError("Unexpected retry loop exit")  # pragma: no cover

    def _decode(self, resp: httpx.Response) -> Any:
        try:
            return resp.json()
        except ValueError as exc:
            request = resp.request
            raise TrackerClientError(
                f"Invalid JSON from {request.method} {request.url.path}: {exc}"
            ) from exc

    async def _json(self, method: str, url: str, **kwargs: Any) -> Any:
        resp = await self._request_with_retry(method, url, **kwargs)
        return self._decode(resp)

    async def aclose(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None
