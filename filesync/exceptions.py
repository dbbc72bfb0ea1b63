"""FileSync exception types.

Convention:
- ``RequestError`` subclasses (``BadRequest``, ``Unauthorized``, ``NotFound``)
  are the only failures the server reports to clients.  Each carries a fixed,
  generic message and a status code; the dispatcher renders them as
  ``{"error": {"message": ..., "code": ...}}``.  Security-relevant causes are
  coarsened on purpose: an unknown principal and a bad key are both
  ``Unauthorized``, a traversal attempt and a missing file are both
  ``NotFound``.
- The remaining ``FileSyncError`` subclasses are raised on the client side or
  during startup and are never serialized to a peer.
"""

from __future__ import annotations


class FileSyncError(Exception):
    """Base class for all FileSync failures."""


class InvalidConfiguration(FileSyncError):
    """A configured path or option is unusable (missing keychain, bad directory)."""


class InvalidPrincipal(FileSyncError):
    """A principal id is malformed or has no usable local key."""


class KeyNotFound(FileSyncError):
    """The keychain holds no key file for the requested principal."""


class AuthenticationFailure(FileSyncError):
    """The challenge-response exchange did not yield a token."""


class ProtocolFailure(FileSyncError):
    """The server answered with an error or a malformed payload."""


class LocalFileFailure(FileSyncError):
    """A file in the local directory could not be written or removed."""


class RequestError(FileSyncError):
    """A request-level failure reported to the client with a status code."""

    status_code: int = 500
    message: str = "Internal Server Error"

    def __init__(self, detail: str | None = None) -> None:
        # ``detail`` is for server logs only; clients always see ``message``.
        super().__init__(detail or self.message)
        self.detail = detail or self.message

    def to_payload(self) -> dict[str, dict[str, str | int]]:
        """Render the JSON error envelope."""
        return {"error": {"message": self.message, "code": self.status_code}}


class BadRequest(RequestError):
    status_code = 400
    message = "Bad Request"


class Unauthorized(RequestError):
    status_code = 401
    message = "Unauthorized"


class NotFound(RequestError):
    status_code = 404
    message = "Not Found"
