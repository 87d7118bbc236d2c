"""Member Node protocol error types.

Every adapter operation fails with one of these exceptions. Each error carries
the DataONE error name (``name``), the HTTP status the API layer reports, and
the identifier the failing request referenced, when there is one.

All errors are terminal for the current request: nothing is retried.
"""

from __future__ import annotations


class MemberNodeError(Exception):
    """Base exception for Member Node protocol failures.

    Attributes:
        message: Human-readable error message.
        identifier: Identifier referenced by the failing request (if applicable).
    """

    name = "ServiceFailure"
    http_status = 500

    def __init__(self, message: str, identifier: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.identifier = identifier

    def __str__(self) -> str:
        if self.identifier:
            return f"{self.message} identifier={self.identifier}"
        return self.message


class NotFound(MemberNodeError):
    """Identifier unresolved, not visible in this scope, or deleted."""

    name = "NotFound"
    http_status = 404


class IdentifierNotUnique(MemberNodeError):
    """Create or update target identifier already exists."""

    name = "IdentifierNotUnique"
    http_status = 409


class InvalidRequest(MemberNodeError):
    """Request parameters are not acceptable (e.g. unsupported checksum)."""

    name = "InvalidRequest"
    http_status = 400


class InvalidSystemMetadata(MemberNodeError):
    """System metadata is malformed, unparsable or breaks the version chain."""

    name = "InvalidSystemMetadata"
    http_status = 400


class NotAuthorized(MemberNodeError):
    """Requesting subject may not perform the action."""

    name = "NotAuthorized"
    http_status = 401


class NotImplementedScheme(MemberNodeError):
    """Requested identifier scheme is not supported."""

    name = "NotImplemented"
    http_status = 501


class ServiceFailure(MemberNodeError):
    """Internal failure (timestamp conversion, capacity computation)."""

    name = "ServiceFailure"
    http_status = 500
