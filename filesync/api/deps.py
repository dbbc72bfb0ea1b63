"""Shared API dependencies: settings and session manager."""

from __future__ import annotations

from fastapi import Request

from filesync.config import Settings
from filesync.services.auth_service import SessionManager


def get_settings(request: Request) -> Settings:
    """Get application settings from app state."""
    settings: Settings = request.app.state.settings
    return settings


def get_session_manager(request: Request) -> SessionManager:
    """Get the session manager from app state."""
    sessions: SessionManager = request.app.state.session_manager
    return sessions
