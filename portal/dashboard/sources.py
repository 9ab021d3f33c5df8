"""Bulk-fetch sources for dashboard hydration.

The analytics, homework, notification and user services are external;
the aggregator only needs ``fetch(path) -> dict``. Meetings come from this
service itself through ``MeetingFeed``.
"""

from typing import Any, Protocol, runtime_checkable

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from portal.config import Settings, get_settings
from portal.models.meeting import Meeting
from portal.models.participant import Role

logger = structlog.get_logger()

# Transient failures worth another attempt
RETRIABLE_EXCEPTIONS = (
    httpx.TransportError,
    httpx.TimeoutException,
)


@runtime_checkable
class DashboardSource(Protocol):
    """Anything that can answer a bulk-fetch path with a JSON object."""

    async def fetch(self, path: str) -> dict[str, Any]:
        """Fetch one endpoint. Raises on any failure."""
        ...


@runtime_checkable
class MeetingFeed(Protocol):
    """Meetings a user takes part in; the meeting state machine is one."""

    async def upcoming(self, user_id: str, role: Role, limit: int = 5) -> list[Meeting]:
        ...


class HttpDashboardSource:
    """Fetches dashboard endpoints over HTTP with timeout and retry.

    Each request is bounded by ``dashboard_fetch_timeout_seconds`` and
    transport-level failures are retried with exponential backoff up to
    ``dashboard_fetch_retries`` attempts. HTTP error statuses are not
    retried.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        """Initialize with settings and an optional preconfigured client.

        Args:
            settings: Settings override (defaults to cached settings)
            client: httpx client to use; one is created lazily otherwise
        """
        self._settings = settings or get_settings()
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._settings.dashboard_api_base_url,
                timeout=self._settings.dashboard_fetch_timeout_seconds,
            )
        return self._client

    async def fetch(self, path: str) -> dict[str, Any]:
        """GET ``path`` and return its JSON object body.

        Raises:
            httpx.HTTPError: Request failed after retries or returned an error status
            ValueError: Body is not a JSON object
        """
        client = self._get_client()
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._settings.dashboard_fetch_retries),
            wait=wait_exponential(multiplier=0.5, min=0.5, max=8),
            retry=retry_if_exception_type(RETRIABLE_EXCEPTIONS),
            reraise=True,
        ):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    logger.info(
                        "retrying dashboard fetch",
                        path=path,
                        attempt=attempt.retry_state.attempt_number,
                    )
                response = await client.get(path)
                response.raise_for_status()

        body = response.json()
        if not isinstance(body, dict):
            msg = f"Expected JSON object from {path}, got {type(body).__name__}"
            raise ValueError(msg)
        return body

    async def aclose(self) -> None:
        """Close the underlying client if this source created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
