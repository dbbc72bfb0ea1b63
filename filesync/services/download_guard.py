"""Validation of client-requested download paths.

Every rejection raises the same NotFound so that a client cannot distinguish
a missing file from a traversal attempt or an ignored path.
"""

from __future__ import annotations

import logging
import os
import posixpath
from pathlib import Path

from filesync.exceptions import NotFound
from filesync.filesystem.ignore import SYNCIGNORE_FILE, load_ignore_rules

logger = logging.getLogger(__name__)


def _reject(requested: str, reason: str) -> NotFound:
    logger.warning("Download refused for %r: %s", requested, reason)
    return NotFound(reason)


def resolve_download_path(root: Path | str, relative_path: str) -> Path:
    """Resolve ``relative_path`` under ``root`` to a servable file.

    Returns the canonical absolute path.  Ignore rules are re-read from
    ``root`` on every call, because a download need not follow a manifest
    request in the same session.  They are checked against both the requested
    path (lexically normalized) and the canonical path relative to the root.
    """
    try:
        canonical_root = Path(root).resolve(strict=True)
        target = (canonical_root / relative_path).resolve(strict=True)
    except (OSError, RuntimeError, ValueError) as exc:
        raise _reject(relative_path, "cannot be resolved") from exc

    if not target.is_relative_to(canonical_root) or target == canonical_root:
        raise _reject(relative_path, "outside the served directory")
    if target.name == SYNCIGNORE_FILE:
        raise _reject(relative_path, "ignore file")
    if not target.is_file() or not os.access(target, os.R_OK):
        raise _reject(relative_path, "not a readable file")

    rules = load_ignore_rules(canonical_root)
    canonical_relative = target.relative_to(canonical_root).as_posix()
    requested_relative = posixpath.normpath(relative_path.replace(os.sep, "/")).lstrip("/")
    if rules.matches(canonical_relative) or rules.matches(requested_relative):
        raise _reject(relative_path, "matches an ignore rule")

    return target
