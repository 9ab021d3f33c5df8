"""Tests for the libSQL client wrapper."""

from pathlib import Path

import pytest

from portal.db.turso import TursoClient


@pytest.fixture
async def people(db: TursoClient) -> TursoClient:
    await db.execute_batch(
        [
            "CREATE TABLE people (id TEXT PRIMARY KEY, name TEXT)",
            "INSERT INTO people VALUES ('p1', '张家长'), ('p2', '王家长')",
        ]
    )
    return db


class TestTursoClient:
    """Tests for TursoClient."""

    async def test_requires_connect(self, tmp_path: Path) -> None:
        client = TursoClient(url=f"file:{tmp_path / 'x.db'}")

        assert not client.connected
        assert not await client.is_healthy()
        with pytest.raises(RuntimeError):
            await client.execute("SELECT 1")

    async def test_connect_twice_keeps_client(self, db: TursoClient) -> None:
        first = db._client
        await db.connect()
        assert db._client is first

    async def test_fetch_helpers(self, people: TursoClient) -> None:
        row = await people.fetch_one("SELECT name FROM people WHERE id = ?", ["p1"])
        assert row[0] == "张家长"
        assert await people.fetch_one("SELECT name FROM people WHERE id = ?", ["nope"]) is None

        rows = await people.fetch_all("SELECT id FROM people ORDER BY id")
        assert [r[0] for r in rows] == ["p1", "p2"]

        assert await people.fetch_value("SELECT COUNT(*) FROM people") == 2

    async def test_close_is_idempotent(self, db: TursoClient) -> None:
        assert await db.is_healthy()
        await db.close()
        await db.close()
        assert not db.connected
