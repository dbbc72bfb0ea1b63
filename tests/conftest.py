"""Shared test fixtures for FileSync."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

import pytest
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient

from filesync.config import Settings
from filesync.main import create_app, dispose_state, initialize_state
from filesync.services.crypto_service import generate_keypair
from filesync.services.keychain import Keychain

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator, Generator
    from pathlib import Path

PRINCIPAL = "demo@example.com"
SYNC_URL = "http://testserver/api/sync"

# 20 and 13 bytes respectively.
README_BYTES = b"# Demo\n\nHello world\n"
GITIGNORE_BYTES = b"*.log\n/build\n"


@asynccontextmanager
async def create_test_client(settings: Settings) -> AsyncGenerator[AsyncClient]:
    """Create an HTTP test client with a fully initialized app.

    ASGITransport does not run the lifespan, so the startup work is done here.
    """
    app = create_app(settings)
    await initialize_state(app)
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
    await dispose_state(app)


@pytest.fixture(scope="session")
def rsa_keypair() -> tuple[bytes, bytes]:
    """One RSA key pair per test session; generation is slow."""
    return generate_keypair()


@pytest.fixture
def keychain_dir(tmp_path: Path, rsa_keypair: tuple[bytes, bytes]) -> Path:
    """Keychain holding both halves of the demo principal's key pair."""
    keys = tmp_path / "keys"
    keys.mkdir()
    public_pem, private_pem = rsa_keypair
    (keys / f"{PRINCIPAL}.publicKey").write_bytes(public_pem)
    (keys / f"{PRINCIPAL}.privateKey").write_bytes(private_pem)
    return keys


@pytest.fixture
def keychain(keychain_dir: Path) -> Keychain:
    return Keychain(keychain_dir)


@pytest.fixture
def source_dir(tmp_path: Path) -> Path:
    """Served directory: README.md (20 bytes) and folder/.gitignore (13 bytes)."""
    source = tmp_path / "source"
    (source / "folder").mkdir(parents=True)
    readme = source / "README.md"
    readme.write_bytes(README_BYTES)
    gitignore = source / "folder" / ".gitignore"
    gitignore.write_bytes(GITIGNORE_BYTES)
    readme.chmod(0o664)
    gitignore.chmod(0o664)
    return source


@pytest.fixture
def dest_dir(tmp_path: Path) -> Path:
    dest = tmp_path / "dest"
    dest.mkdir()
    return dest


@pytest.fixture
def test_settings(source_dir: Path, keychain_dir: Path, tmp_path: Path) -> Settings:
    """Create test settings with temporary paths."""
    return Settings(
        _env_file=None,
        debug=True,
        content_dir=source_dir,
        keychain_dir=keychain_dir,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'sessions.db'}",
    )


@pytest.fixture
async def client(test_settings: Settings) -> AsyncGenerator[AsyncClient]:
    """Async HTTP client against an initialized app."""
    async with create_test_client(test_settings) as ac:
        yield ac


@pytest.fixture
def server(test_settings: Settings) -> Generator[TestClient]:
    """Synchronous httpx client bound to the app, for driving SyncClient."""
    with TestClient(create_app(test_settings)) as tc:
        yield tc
