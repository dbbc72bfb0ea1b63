"""Tests for challenge issuance and token lifecycle."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

import pytest

from filesync.exceptions import Unauthorized
from filesync.services.auth_service import SessionManager
from filesync.services.crypto_service import decrypt_challenge
from filesync.services.session_store import MemorySessionStore

if TYPE_CHECKING:
    from pathlib import Path

    from filesync.services.keychain import Keychain

PRINCIPAL = "demo@example.com"


class FakeClock:
    def __init__(self, now: float = 1_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def manager(keychain: Keychain, clock: FakeClock) -> SessionManager:
    return SessionManager(MemorySessionStore(), keychain, ttl_seconds=60, clock=clock)


async def _login(manager: SessionManager, private_pem: bytes) -> str:
    challenge = await manager.issue_challenge(PRINCIPAL)
    return decrypt_challenge(challenge, private_pem)


class TestIssueChallenge:
    async def test_challenge_decrypts_to_hex_token(
        self, manager: SessionManager, rsa_keypair: tuple[bytes, bytes]
    ) -> None:
        token = await _login(manager, rsa_keypair[1])
        assert re.fullmatch(r"[0-9a-f]{64}", token)
        assert await manager.is_authorized(token)

    async def test_challenge_length_follows_setting(
        self, keychain: Keychain, rsa_keypair: tuple[bytes, bytes]
    ) -> None:
        manager = SessionManager(MemorySessionStore(), keychain, challenge_bytes=16)
        token = await _login(manager, rsa_keypair[1])
        assert len(token) == 32

    async def test_each_challenge_is_a_new_token(
        self, manager: SessionManager, rsa_keypair: tuple[bytes, bytes]
    ) -> None:
        first = await _login(manager, rsa_keypair[1])
        second = await _login(manager, rsa_keypair[1])
        assert first != second
        assert await manager.is_authorized(first)
        assert await manager.is_authorized(second)

    @pytest.mark.parametrize("principal", ["nobody", "darth vader", "../keys/demo", ""])
    async def test_unknown_or_malformed_principal(
        self, manager: SessionManager, principal: str
    ) -> None:
        with pytest.raises(Unauthorized):
            await manager.issue_challenge(principal)

    async def test_unusable_public_key(self, manager: SessionManager, keychain_dir: Path) -> None:
        (keychain_dir / "broken.publicKey").write_bytes(b"garbage")
        with pytest.raises(Unauthorized):
            await manager.issue_challenge("broken")

    async def test_issuing_purges_expired_records(
        self, manager: SessionManager, clock: FakeClock, rsa_keypair: tuple[bytes, bytes]
    ) -> None:
        old = await _login(manager, rsa_keypair[1])
        clock.now += 61
        await manager.issue_challenge(PRINCIPAL)
        assert await manager.store.get(old) is None


class TestIsAuthorized:
    @pytest.mark.parametrize("token", [None, "", "unknown", 123])
    async def test_rejects_missing_and_unknown(self, manager: SessionManager, token: object) -> None:
        assert await manager.is_authorized(token) is False  # type: ignore[arg-type]

    async def test_token_valid_until_ttl_elapses(
        self, manager: SessionManager, clock: FakeClock, rsa_keypair: tuple[bytes, bytes]
    ) -> None:
        token = await _login(manager, rsa_keypair[1])
        clock.now += 60
        assert await manager.is_authorized(token)
        clock.now += 1
        assert not await manager.is_authorized(token)


class TestUnauthorize:
    async def test_revoked_token_is_rejected(
        self, manager: SessionManager, rsa_keypair: tuple[bytes, bytes]
    ) -> None:
        token = await _login(manager, rsa_keypair[1])
        await manager.unauthorize(token)
        assert not await manager.is_authorized(token)

    async def test_revoking_one_token_keeps_others(
        self, manager: SessionManager, rsa_keypair: tuple[bytes, bytes]
    ) -> None:
        first = await _login(manager, rsa_keypair[1])
        second = await _login(manager, rsa_keypair[1])
        await manager.unauthorize(first)
        assert await manager.is_authorized(second)

    async def test_unknown_token_is_noop(self, manager: SessionManager) -> None:
        await manager.unauthorize("never-issued")
