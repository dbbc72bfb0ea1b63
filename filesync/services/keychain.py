"""Keychain: principal id validation and key file lookup."""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path

from filesync.exceptions import InvalidConfiguration, InvalidPrincipal, KeyNotFound

logger = logging.getLogger(__name__)

PUBLIC_KEY_SUFFIX = ".publicKey"
PRIVATE_KEY_SUFFIX = ".privateKey"

# No path separators: a principal id becomes part of a keychain file name.
_PRINCIPAL_RE = re.compile(r"[A-Za-z0-9_.+\-@]+")


def is_valid_principal(principal: str) -> bool:
    """Check the lexical form of a principal id."""
    return bool(_PRINCIPAL_RE.fullmatch(principal))


def validate_principal(principal: str) -> str:
    """Return ``principal`` unchanged, or raise InvalidPrincipal."""
    if not isinstance(principal, str) or not is_valid_principal(principal):
        raise InvalidPrincipal(f"Invalid principal id {principal!r}")
    return principal


class Keychain:
    """Directory of ``<principal>.publicKey`` / ``<principal>.privateKey`` files."""

    def __init__(self, path: Path | str) -> None:
        path = Path(path)
        if not path.is_dir():
            raise InvalidConfiguration(f"Keychain path does not exist: {path}")
        self.path = path

    def public_key_path(self, principal: str) -> Path:
        return self.path / f"{validate_principal(principal)}{PUBLIC_KEY_SUFFIX}"

    def private_key_path(self, principal: str) -> Path:
        return self.path / f"{validate_principal(principal)}{PRIVATE_KEY_SUFFIX}"

    def has_public_key(self, principal: str) -> bool:
        return self.public_key_path(principal).is_file()

    def has_private_key(self, principal: str) -> bool:
        return self.private_key_path(principal).is_file()

    def load_public_key(self, principal: str) -> bytes:
        """Read the raw public key bytes for ``principal``."""
        return self._load(self.public_key_path(principal))

    def load_private_key(self, principal: str) -> bytes:
        """Read the raw private key bytes for ``principal``."""
        return self._load(self.private_key_path(principal))

    def store_keypair(
        self, principal: str, public_key: bytes, private_key: bytes, overwrite: bool = False
    ) -> tuple[Path, Path]:
        """Write a key pair for ``principal``; the private key is created with mode 0600."""
        public_path = self.public_key_path(principal)
        private_path = self.private_key_path(principal)
        if not overwrite and (public_path.exists() or private_path.exists()):
            raise InvalidConfiguration(f"Keys for {principal} already exist in {self.path}")

        public_path.write_bytes(public_key)
        fd = os.open(private_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "wb") as f:
            f.write(private_key)
        os.chmod(private_path, 0o600)
        logger.info("Stored key pair for %s in %s", principal, self.path)
        return public_path, private_path

    @staticmethod
    def _load(path: Path) -> bytes:
        try:
            return path.read_bytes()
        except FileNotFoundError as exc:
            raise KeyNotFound("Key not found") from exc
