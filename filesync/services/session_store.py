"""Session token storage backends.

Every token lives under its own key, so unrelated sessions never contend for
the same entry.  Backends are interchangeable behind ``SessionStore``.
"""

from __future__ import annotations

import hashlib
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

from sqlalchemy import delete

from filesync.models.session import SyncSession

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker


@dataclass(frozen=True)
class SessionRecord:
    """An issued token with its issue time (unix seconds).

    ``principal`` is retained for auditing only; authorization never reads it.
    """

    token: str
    principal: str
    issued_at: float


class SessionStore(Protocol):
    name: str

    async def create(self, record: SessionRecord) -> None: ...

    async def get(self, token: str) -> SessionRecord | None: ...

    async def delete(self, token: str) -> bool: ...

    async def purge_issued_before(self, cutoff: float) -> int: ...


def hash_token(token: str) -> str:
    """Hash a token value (SHA-256) for safe storage."""
    return hashlib.sha256(token.encode()).hexdigest()


class MemorySessionStore:
    """Process-local store.

    A lock guards the dict so the store can be shared by threads (e.g. a
    threadpool serving sync endpoints) as well as by coroutines.  State is
    lost on restart and is not shared between worker processes.
    """

    name = "memory"

    def __init__(self) -> None:
        self._records: dict[str, SessionRecord] = {}
        self._lock = threading.Lock()

    async def create(self, record: SessionRecord) -> None:
        with self._lock:
            self._records[record.token] = record

    async def get(self, token: str) -> SessionRecord | None:
        with self._lock:
            return self._records.get(token)

    async def delete(self, token: str) -> bool:
        with self._lock:
            return self._records.pop(token, None) is not None

    async def purge_issued_before(self, cutoff: float) -> int:
        with self._lock:
            expired = [k for k, r in self._records.items() if r.issued_at < cutoff]
            for k in expired:
                del self._records[k]
        return len(expired)


class DatabaseSessionStore:
    """SQLAlchemy-backed store, shareable between server workers.

    Only the SHA-256 of each token is persisted.
    """

    name = "database"

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def create(self, record: SessionRecord) -> None:
        async with self._session_factory() as session:
            session.add(
                SyncSession(
                    token_hash=hash_token(record.token),
                    principal=record.principal,
                    issued_at=record.issued_at,
                )
            )
            await session.commit()

    async def get(self, token: str) -> SessionRecord | None:
        async with self._session_factory() as session:
            row = await session.get(SyncSession, hash_token(token))
            if row is None:
                return None
            return SessionRecord(token=token, principal=row.principal, issued_at=row.issued_at)

    async def delete(self, token: str) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                delete(SyncSession).where(SyncSession.token_hash == hash_token(token))
            )
            await session.commit()
            return bool(result.rowcount)

    async def purge_issued_before(self, cutoff: float) -> int:
        async with self._session_factory() as session:
            result = await session.execute(
                delete(SyncSession).where(SyncSession.issued_at < cutoff)
            )
            await session.commit()
            return int(result.rowcount or 0)
