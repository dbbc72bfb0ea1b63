"""SQLAlchemy ORM models for FileSync."""

from filesync.models.base import Base
from filesync.models.session import SyncSession

__all__ = [
    "Base",
    "SyncSession",
]
