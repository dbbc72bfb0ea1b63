"""Server configuration loaded from environment variables."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from filesync.exceptions import InvalidConfiguration


class Settings(BaseSettings):
    """FileSync server settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Core
    debug: bool = False

    # Paths
    content_dir: Path = Path("./data")
    keychain_dir: Path = Path("./keys")

    # Sessions
    token_ttl_seconds: int = Field(default=3600, ge=1)
    # RSA-2048 OAEP/SHA-256 fits at most 190 bytes of plaintext (hex doubles the size).
    challenge_bytes: int = Field(default=32, ge=16, le=64)
    session_backend: Literal["memory", "database"] = "memory"
    database_url: str = "sqlite+aiosqlite:///data/db/filesync.db"

    # Server
    host: str = "0.0.0.0"
    port: int = Field(default=8000, ge=1, le=65535)

    def validate_runtime(self) -> None:
        """Check that the configured directories exist before serving."""
        violations: list[str] = []
        if not self.keychain_dir.is_dir():
            violations.append(f"KEYCHAIN_DIR does not exist: {self.keychain_dir}")
        if not self.content_dir.is_dir():
            violations.append(f"CONTENT_DIR does not exist: {self.content_dir}")

        if violations:
            joined = "; ".join(violations)
            raise InvalidConfiguration(f"Invalid server configuration: {joined}")
