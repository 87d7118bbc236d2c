"""Data repository interface definition.

Provides the DataRepository base class that every repository backend must
implement. The Member Node adapter only ever talks to a repository through
this interface.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from datetime import datetime
from typing import BinaryIO
from uuid import UUID

from membernode.repository.models import (
    AlternativeIdentifier,
    DataPackage,
    FileInputContent,
    FileRevision,
    PagingRequest,
    PagingResponse,
    RelationType,
    RepositoryStats,
    UpdateMode,
)


class DataRepository(ABC):
    """Abstract base class for data repository backends.

    All implementations must provide:
    - Atomic create of a package together with all of its files
    - Commit-time uniqueness of alternative identifiers
    - Append-mode file updates that keep earlier revisions recoverable
    - MD5 checksums and sizes maintained per file and per package

    Implementations:
    - InMemoryDataRepository: process-local dictionaries (dev/test)
    - FilesystemDataRepository: local filesystem
    """

    @property
    @abstractmethod
    def backend_name(self) -> str:
        """Return the backend identifier for observability."""
        ...

    @abstractmethod
    def get(self, key: UUID) -> DataPackage | None:
        """Get a data package by key, or None if it does not exist."""
        ...

    @abstractmethod
    def get_by_alternative_identifier(self, identifier: str) -> DataPackage | None:
        """Get the data package an alternative identifier is registered for."""
        ...

    @abstractmethod
    def create(self, package: DataPackage, files: Sequence[FileInputContent]) -> DataPackage:
        """Create a data package with its files in a single commit.

        Args:
            package: Package fields; ``key``, ``files``, ``checksum`` and
                ``size`` are assigned by the repository.
            files: Initial content of every file, in order.

        Returns:
            The stored package.

        Raises:
            DuplicateIdentifierError: If one of the package's alternative
                identifiers is already registered.
            RepositoryBackendError: If the backend cannot complete the write.
        """
        ...

    @abstractmethod
    def update(
        self,
        package: DataPackage,
        files: Sequence[FileInputContent],
        mode: UpdateMode = UpdateMode.APPEND,
    ) -> DataPackage:
        """Update package fields and add or replace files.

        In APPEND mode a file that already exists receives a new revision and
        its earlier revisions stay available through ``list_file_revisions``.

        Raises:
            PackageNotFoundError: If the package does not exist.
            RepositoryBackendError: If the backend cannot complete the write.
        """
        ...

    @abstractmethod
    def delete(self, key: UUID) -> None:
        """Set the deletion marker of a package.

        Deleted packages keep resolving by key and alternative identifier (so
        their identifiers are never reused) but are excluded from live listings.

        Raises:
            PackageNotFoundError: If the package does not exist.
        """
        ...

    @abstractmethod
    def archive(self, key: UUID) -> None:
        """Set the repository-level archive flag of a package.

        Raises:
            PackageNotFoundError: If the package does not exist.
        """
        ...

    @abstractmethod
    def list_packages(
        self,
        paging: PagingRequest,
        *,
        from_date: datetime | None = None,
        to_date: datetime | None = None,
        deleted: bool = False,
        repository_name: str | None = None,
        format_id: str | None = None,
        created_by: str | None = None,
    ) -> PagingResponse[DataPackage]:
        """List packages ordered by modification time, oldest first.

        Args:
            paging: Offset/limit of the page.
            from_date: Inclusive lower bound on ``modified``.
            to_date: Exclusive upper bound on ``modified``.
            deleted: Include only deleted (True) or only live (False) packages.
            repository_name: Only packages published in or shared into this scope.
            format_id: Only packages whose first file has this format.
            created_by: Only packages created by this subject.

        Returns:
            The page, with ``count`` set to the total number of matches.
        """
        ...

    @abstractmethod
    def list_identifiers(
        self,
        key: UUID,
        relation_type: RelationType | None = None,
    ) -> list[AlternativeIdentifier]:
        """List alternative identifiers of a package, optionally by relation."""
        ...

    @abstractmethod
    def get_file_stream(self, key: UUID, file_name: str) -> BinaryIO | None:
        """Open the latest revision of a package file, or None if absent."""
        ...

    @abstractmethod
    def list_file_revisions(self, key: UUID, file_name: str) -> list[FileRevision]:
        """List every revision of a package file, oldest first."""
        ...

    @abstractmethod
    def get_file_revision(self, key: UUID, file_name: str, revision: int) -> bytes | None:
        """Read a specific revision of a package file, or None if absent."""
        ...

    @abstractmethod
    def stats(self) -> RepositoryStats:
        """Return aggregate statistics over every stored package."""
        ...
