"""Tests for HttpDashboardSource."""

import httpx
import pytest

from portal.config import Settings
from portal.dashboard.sources import DashboardSource, HttpDashboardSource


def _source(handler, retries: int = 1) -> HttpDashboardSource:
    settings = Settings(dashboard_api_base_url="http://dashboard.test", dashboard_fetch_retries=retries)
    client = httpx.AsyncClient(
        base_url=settings.dashboard_api_base_url,
        transport=httpx.MockTransport(handler),
    )
    return HttpDashboardSource(settings, client=client)


class TestHttpDashboardSource:
    """Tests for HttpDashboardSource."""

    def test_satisfies_protocol(self) -> None:
        assert isinstance(HttpDashboardSource(), DashboardSource)

    async def test_returns_json_object(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.url.path == "/api/alerts/admin/system"
            return httpx.Response(200, json={"systemAlerts": []})

        source = _source(handler)

        assert await source.fetch("/api/alerts/admin/system") == {"systemAlerts": []}

    async def test_error_status_raises_without_retry(self) -> None:
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(503)

        source = _source(handler, retries=3)

        with pytest.raises(httpx.HTTPStatusError):
            await source.fetch("/api/homework/student/s1")
        assert len(calls) == 1

    async def test_transport_errors_retried(self, monkeypatch) -> None:
        """Connection failures are retried until one succeeds."""
        attempts = []

        def handler(request: httpx.Request) -> httpx.Response:
            attempts.append(request)
            if len(attempts) < 2:
                raise httpx.ConnectError("refused", request=request)
            return httpx.Response(200, json={"ok": True})

        source = _source(handler, retries=3)
        # Skip the backoff sleep
        monkeypatch.setattr("asyncio.sleep", _no_sleep)

        assert await source.fetch("/api/notifications/user/s1") == {"ok": True}
        assert len(attempts) == 2

    async def test_non_object_body_rejected(self) -> None:
        source = _source(lambda request: httpx.Response(200, json=[1, 2]))

        with pytest.raises(ValueError):
            await source.fetch("/api/comments/student/c1")


async def _no_sleep(_seconds: float) -> None:
    return None
