"""Session token model."""

from __future__ import annotations

from sqlalchemy import Float, Text
from sqlalchemy.orm import Mapped, mapped_column

from filesync.models.base import Base


class SyncSession(Base):
    """Issued session token (hashed), one row per token."""

    __tablename__ = "sync_sessions"

    token_hash: Mapped[str] = mapped_column(Text, primary_key=True)
    principal: Mapped[str] = mapped_column(Text, nullable=False)
    issued_at: Mapped[float] = mapped_column(Float, nullable=False, index=True)
