"""Server-side protocol dispatcher.

``dispatch`` is a pure function of the parsed request, the session manager and
the served directory.  It knows nothing about HTTP: transport adapters turn a
``DispatchResult`` into a response.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any
from urllib.parse import unquote

from pydantic import ValidationError

from filesync.exceptions import BadRequest, RequestError, Unauthorized
from filesync.filesystem.manifest import build_manifest
from filesync.schemas.sync import DifferenceRequest
from filesync.services.diff_service import compute_difference
from filesync.services.download_guard import resolve_download_path

if TYPE_CHECKING:
    from pathlib import Path

    from filesync.services.auth_service import SessionManager

logger = logging.getLogger(__name__)


class Action(StrEnum):
    AUTHORIZE = "authorize"
    UNAUTHORIZE = "unauthorize"
    DIFFERENCE = "difference"
    DOWNLOAD = "download"


@dataclass
class DispatchResult:
    """Outcome of one request: a JSON payload, or a file to stream."""

    status_code: int = 200
    payload: dict[str, Any] | None = None
    file_path: Path | None = None

    @classmethod
    def data(cls, data: Any) -> DispatchResult:
        return cls(payload={"data": data})

    @classmethod
    def error(cls, exc: RequestError) -> DispatchResult:
        return cls(status_code=exc.status_code, payload=exc.to_payload())


def _parse_action(data: Any) -> Action:
    if not isinstance(data, dict):
        raise Unauthorized("Request body is not an object")
    try:
        return Action(data.get("action"))
    except ValueError as exc:
        raise Unauthorized(f"Unknown action {data.get('action')!r}") from exc


async def _authorize(data: dict[str, Any], sessions: SessionManager) -> DispatchResult:
    principal = data.get("username")
    if not isinstance(principal, str):
        raise Unauthorized("Missing principal")
    challenge = await sessions.issue_challenge(principal)
    return DispatchResult.data({"challenge": challenge})


async def _unauthorize(data: dict[str, Any], sessions: SessionManager) -> DispatchResult:
    await sessions.unauthorize(data["token"])
    return DispatchResult.data([])


async def _difference(data: dict[str, Any], content_dir: Path) -> DispatchResult:
    if "files" not in data or "checksum" not in data:
        raise BadRequest("difference requires files and checksum")
    try:
        body = DifferenceRequest.model_validate(data)
    except ValidationError as exc:
        raise BadRequest(f"Invalid difference request: {exc.error_count()} error(s)") from exc

    destination = {entry.path: entry.to_entry() for entry in body.files}
    source = await asyncio.to_thread(build_manifest, content_dir)
    result = compute_difference(source, destination, checksum=body.checksum)
    logger.info(
        "Difference: %d to update, %d to delete (checksum=%s)",
        len(result.update),
        len(result.delete),
        body.checksum,
    )
    return DispatchResult.data(result.to_dict())


async def _download(data: dict[str, Any], content_dir: Path) -> DispatchResult:
    requested = data.get("file")
    if not isinstance(requested, str) or not requested:
        raise BadRequest("download requires file")
    path = await asyncio.to_thread(resolve_download_path, content_dir, unquote(requested))
    return DispatchResult(file_path=path)


async def dispatch(data: Any, sessions: SessionManager, content_dir: Path) -> DispatchResult:
    """Route one protocol request and return its result.

    Only ``authorize`` may be called without a token.  Request-level failures
    are returned as error results; anything else propagates to the caller.
    """
    try:
        action = _parse_action(data)
        if action is Action.AUTHORIZE:
            return await _authorize(data, sessions)

        if not await sessions.is_authorized(data.get("token")):
            raise Unauthorized(f"Invalid or expired token for {action}")

        if action is Action.UNAUTHORIZE:
            return await _unauthorize(data, sessions)
        if action is Action.DIFFERENCE:
            return await _difference(data, content_dir)
        return await _download(data, content_dir)
    except RequestError as exc:
        logger.info("Request rejected (%d): %s", exc.status_code, exc.detail)
        return DispatchResult.error(exc)
