"""libSQL (Turso) database client wrapper used by the meeting store."""

import logging
from typing import Any

from libsql_client import Client, ResultSet, Row, create_client

from portal.config import settings

logger = logging.getLogger(__name__)


class TursoClient:
    """Wrapper for the libSQL async client.

    Works against a Turso cloud database (with auth token) or a local
    SQLite file, which is what tests use.
    """

    def __init__(
        self,
        url: str | None = None,
        auth_token: str | None = None,
    ):
        """Initialize client with connection parameters.

        Args:
            url: Database URL. Defaults to settings or a local file.
            auth_token: Auth token for Turso cloud. Defaults to settings.
        """
        self.url = url or settings.database_url or "file:portal.db"
        self.auth_token = auth_token or settings.database_auth_token
        self._client: Client | None = None

    @property
    def connected(self) -> bool:
        return self._client is not None

    async def connect(self) -> None:
        """Open the connection; calling twice is harmless."""
        if self._client is not None:
            return

        if self.auth_token and self.url.startswith("libsql://"):
            self._client = create_client(url=self.url, auth_token=self.auth_token)
        else:
            self._client = create_client(url=self.url)

        logger.info(f"Connected to database: {self.url}")

    def _require_client(self) -> Client:
        if self._client is None:
            msg = "Not connected. Call connect() first."
            raise RuntimeError(msg)
        return self._client

    async def execute(
        self,
        sql: str,
        params: list[Any] | None = None,
    ) -> ResultSet:
        """Execute a single SQL statement with ? placeholders."""
        return await self._require_client().execute(sql, params or [])

    async def fetch_one(
        self,
        sql: str,
        params: list[Any] | None = None,
    ) -> Row | None:
        """First row of a query, or None when nothing matched."""
        result = await self.execute(sql, params)
        return result.rows[0] if result.rows else None

    async def fetch_all(
        self,
        sql: str,
        params: list[Any] | None = None,
    ) -> list[Row]:
        return list((await self.execute(sql, params)).rows)

    async def fetch_value(
        self,
        sql: str,
        params: list[Any] | None = None,
    ) -> Any:
        """First column of the first row (COUNT, version lookups)."""
        row = await self.fetch_one(sql, params)
        return row[0] if row is not None else None

    async def execute_batch(self, statements: list[str]) -> None:
        """Execute several statements in one batch (schema setup)."""
        await self._require_client().batch(statements)

    async def close(self) -> None:
        """Close the database connection."""
        if self._client:
            await self._client.close()
            self._client = None
            logger.info("Database connection closed")

    async def is_healthy(self) -> bool:
        """Check if database connection is healthy."""
        try:
            if not self._client:
                return False
            result = await self._client.execute("SELECT 1")
            return len(result.rows) == 1
        except Exception:
            return False
