"""Sync protocol endpoint: HTTP marshaling around the dispatcher."""

from __future__ import annotations

import json
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Request
from fastapi.responses import FileResponse, JSONResponse, Response

from filesync.api.deps import get_session_manager, get_settings
from filesync.config import Settings
from filesync.exceptions import Unauthorized
from filesync.services.auth_service import SessionManager
from filesync.services.dispatch_service import DispatchResult, dispatch

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/sync", tags=["sync"])


def render_result(result: DispatchResult) -> Response:
    """Turn a dispatcher result into an HTTP response."""
    if result.file_path is not None:
        return FileResponse(result.file_path, media_type="application/octet-stream")
    return JSONResponse(status_code=result.status_code, content=result.payload)


@router.post("")
async def sync_action(
    request: Request,
    settings: Annotated[Settings, Depends(get_settings)],
    sessions: Annotated[SessionManager, Depends(get_session_manager)],
) -> Response:
    """Handle one protocol action posted as a JSON object."""
    raw = await request.body()
    try:
        data = json.loads(raw) if raw else {}
    except (json.JSONDecodeError, UnicodeDecodeError):
        logger.info("Sync request with undecodable body from %s", request.client)
        data = {}

    result = await dispatch(data, sessions, settings.content_dir)
    return render_result(result)


@router.api_route("", methods=["GET", "PUT", "PATCH", "DELETE"], include_in_schema=False)
async def sync_wrong_method() -> Response:
    """Only POST is part of the protocol; everything else is unauthorized."""
    return render_result(DispatchResult.error(Unauthorized()))
