"""Authentication service: challenge issuance and session token lifecycle.

A client proves possession of a private key by decrypting a random challenge
encrypted under its public key.  The decrypted challenge is then presented as
the bearer token for the rest of the session.  No signature is ever checked,
so the challenge must be long and unpredictable enough that guessing it is
infeasible.
"""

from __future__ import annotations

import logging
import secrets
import time
from typing import TYPE_CHECKING

from filesync.exceptions import InvalidPrincipal, KeyNotFound, Unauthorized
from filesync.services.crypto_service import RsaChallengeCipher
from filesync.services.keychain import validate_principal
from filesync.services.session_store import SessionRecord

if TYPE_CHECKING:
    from collections.abc import Callable

    from filesync.services.crypto_service import ChallengeCipher
    from filesync.services.keychain import Keychain
    from filesync.services.session_store import SessionStore

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_TTL_SECONDS = 3600
DEFAULT_CHALLENGE_BYTES = 32


class SessionManager:
    """Issue, validate and revoke session tokens."""

    def __init__(
        self,
        store: SessionStore,
        keychain: Keychain,
        *,
        ttl_seconds: int = DEFAULT_TOKEN_TTL_SECONDS,
        challenge_bytes: int = DEFAULT_CHALLENGE_BYTES,
        cipher: ChallengeCipher | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.store = store
        self.keychain = keychain
        self.ttl_seconds = ttl_seconds
        self.challenge_bytes = challenge_bytes
        self.cipher: ChallengeCipher = cipher or RsaChallengeCipher()
        self._clock = clock

    def _public_key_for(self, principal: str) -> bytes:
        """Load the public key of a valid principal, or raise Unauthorized."""
        try:
            validate_principal(principal)
            return self.keychain.load_public_key(principal)
        except (InvalidPrincipal, KeyNotFound) as exc:
            raise Unauthorized(f"Unknown principal: {exc}") from exc

    async def issue_challenge(self, principal: str) -> str:
        """Persist a new token for ``principal`` and return it encrypted under its key.

        Unknown principals, malformed ids and unusable keys all raise
        Unauthorized, so callers cannot tell them apart.
        """
        public_key = self._public_key_for(principal)
        token = secrets.token_hex(self.challenge_bytes)
        try:
            challenge = self.cipher.encrypt(token, public_key)
        except ValueError as exc:
            logger.error("Public key for %s is unusable: %s", principal, exc)
            raise Unauthorized("Unusable public key") from exc

        now = self._clock()
        purged = await self.store.purge_issued_before(now - self.ttl_seconds)
        if purged:
            logger.debug("Purged %d expired session(s)", purged)
        await self.store.create(SessionRecord(token=token, principal=principal, issued_at=now))
        logger.info("Issued session challenge for %s", principal)
        return challenge

    async def is_authorized(self, token: str | None) -> bool:
        """Return True if ``token`` was issued and has not expired or been revoked."""
        if not token or not isinstance(token, str):
            return False
        record = await self.store.get(token)
        if record is None:
            return False
        return self._clock() <= record.issued_at + self.ttl_seconds

    async def unauthorize(self, token: str) -> None:
        """Revoke ``token``; revoking an unknown token is a no-op."""
        if await self.store.delete(token):
            logger.info("Session revoked")
