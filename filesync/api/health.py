"""Health check endpoint."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from filesync.api.deps import get_session_manager
from filesync.services.auth_service import SessionManager

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    status: str
    version: str
    sessions: str


@router.get("/api/health", response_model=HealthResponse)
async def health_check(
    sessions: Annotated[SessionManager, Depends(get_session_manager)],
) -> HealthResponse:
    """Health check endpoint for monitoring and load balancers."""
    return HealthResponse(status="ok", version="0.1.0", sessions=sessions.store.name)
