"""Data repository error types.

Internal to the repository layer; the adapter translates them into protocol
errors. All errors are fail-closed: operations that cannot complete safely raise.
"""

from __future__ import annotations


class RepositoryError(Exception):
    """Base exception for data repository operations.

    Attributes:
        message: Human-readable error message.
        key: Data package key associated with the operation (if applicable).
        identifier: Alternative identifier associated with the operation (if applicable).
    """

    def __init__(
        self,
        message: str,
        *,
        key: str | None = None,
        identifier: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.key = key
        self.identifier = identifier

    def __str__(self) -> str:
        parts = [self.message]
        if self.key:
            parts.append(f"key={self.key}")
        if self.identifier:
            parts.append(f"identifier={self.identifier}")
        return " ".join(parts)


class PackageNotFoundError(RepositoryError):
    """Raised when a data package or one of its files does not exist."""

    def __init__(
        self,
        message: str = "Data package not found",
        *,
        key: str | None = None,
        identifier: str | None = None,
        file_name: str | None = None,
    ) -> None:
        super().__init__(message, key=key, identifier=identifier)
        self.file_name = file_name


class DuplicateIdentifierError(RepositoryError):
    """Raised at commit time when an alternative identifier is already registered.

    Alternative identifiers are unique across all packages, deleted ones included.
    """

    def __init__(
        self,
        message: str = "Alternative identifier already registered",
        *,
        key: str | None = None,
        identifier: str | None = None,
    ) -> None:
        super().__init__(message, key=key, identifier=identifier)


class RepositoryBackendError(RepositoryError):
    """Raised when the backend itself fails (I/O error, corrupt index, ...)."""

    def __init__(
        self,
        message: str = "Repository backend error",
        *,
        key: str | None = None,
        identifier: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, key=key, identifier=identifier)
        self.cause = cause
