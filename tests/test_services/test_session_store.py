"""Tests for the session token stores."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import pytest
from sqlalchemy import select

from filesync.config import Settings
from filesync.database import create_engine
from filesync.models import Base, SyncSession
from filesync.services.session_store import (
    DatabaseSessionStore,
    MemorySessionStore,
    SessionRecord,
    hash_token,
)

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator
    from pathlib import Path

    from filesync.services.session_store import SessionStore


@asynccontextmanager
async def _database_store(db_path: Path) -> AsyncGenerator[DatabaseSessionStore]:
    settings = Settings(_env_file=None, database_url=f"sqlite+aiosqlite:///{db_path}")
    engine, session_factory = create_engine(settings)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield DatabaseSessionStore(session_factory)
    finally:
        await engine.dispose()


@pytest.fixture
async def database_store(tmp_path: Path) -> AsyncGenerator[DatabaseSessionStore]:
    async with _database_store(tmp_path / "store.db") as store:
        yield store


@pytest.fixture(params=["memory", "database"])
async def store(request: pytest.FixtureRequest, tmp_path: Path) -> AsyncGenerator[SessionStore]:
    if request.param == "memory":
        yield MemorySessionStore()
        return
    async with _database_store(tmp_path / "store.db") as db_store:
        yield db_store


class TestSessionStore:
    async def test_create_then_get(self, store: SessionStore) -> None:
        await store.create(SessionRecord(token="t1", principal="alice", issued_at=100.0))
        record = await store.get("t1")
        assert record == SessionRecord(token="t1", principal="alice", issued_at=100.0)

    async def test_get_unknown_returns_none(self, store: SessionStore) -> None:
        assert await store.get("nope") is None

    async def test_delete_reports_presence(self, store: SessionStore) -> None:
        await store.create(SessionRecord(token="t1", principal="alice", issued_at=100.0))
        assert await store.delete("t1") is True
        assert await store.get("t1") is None
        assert await store.delete("t1") is False

    async def test_tokens_are_independent(self, store: SessionStore) -> None:
        await store.create(SessionRecord(token="t1", principal="alice", issued_at=100.0))
        await store.create(SessionRecord(token="t2", principal="alice", issued_at=100.0))
        await store.delete("t1")
        assert await store.get("t2") is not None

    async def test_purge_issued_before(self, store: SessionStore) -> None:
        await store.create(SessionRecord(token="old", principal="a", issued_at=10.0))
        await store.create(SessionRecord(token="edge", principal="a", issued_at=50.0))
        await store.create(SessionRecord(token="new", principal="a", issued_at=90.0))
        assert await store.purge_issued_before(50.0) == 1
        assert await store.get("old") is None
        assert await store.get("edge") is not None
        assert await store.get("new") is not None


class TestDatabaseSessionStore:
    def test_name(self, database_store: DatabaseSessionStore) -> None:
        assert database_store.name == "database"
        assert MemorySessionStore.name == "memory"

    async def test_only_token_hash_is_persisted(
        self, database_store: DatabaseSessionStore
    ) -> None:
        await database_store.create(
            SessionRecord(token="plain-token", principal="alice", issued_at=1.0)
        )
        async with database_store._session_factory() as session:
            rows = (await session.execute(select(SyncSession))).scalars().all()
        assert [row.token_hash for row in rows] == [hash_token("plain-token")]
        assert "plain-token" not in rows[0].token_hash


def test_hash_token_is_sha256_hex() -> None:
    digest = hash_token("abc")
    assert len(digest) == 64
    assert digest == "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
