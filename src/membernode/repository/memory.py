"""In-memory data repository backend.

Keeps packages, file revisions and the alternative-identifier index in
process-local dictionaries guarded by a lock. Intended for development,
tests and single-process deployments that do not need durability.
"""

from __future__ import annotations

import io
import logging
import threading
import uuid
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import BinaryIO
from uuid import UUID

from membernode.repository._support import (
    compute_md5,
    ensure_utc,
    listing_sort_key,
    matches_listing,
    merge_files,
    package_checksum,
    updated_package,
)
from membernode.repository.base import DataRepository
from membernode.repository.errors import DuplicateIdentifierError, PackageNotFoundError
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
from membernode.repository.tracing import traced_repository_operation

logger = logging.getLogger(__name__)


class InMemoryDataRepository(DataRepository):
    """Dictionary-backed repository implementation.

    Uniqueness of alternative identifiers is enforced inside ``create`` while
    holding the lock, so two concurrent creates for the same identifier can
    never both commit.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._packages: dict[UUID, DataPackage] = {}
        self._revisions: dict[UUID, dict[str, list[tuple[FileRevision, bytes]]]] = {}
        self._identifier_index: dict[str, UUID] = {}

    @property
    def backend_name(self) -> str:
        """Return the backend identifier."""
        return "memory"

    def _require(self, key: UUID) -> DataPackage:
        package = self._packages.get(key)
        if package is None:
            raise PackageNotFoundError(key=str(key))
        return package

    def _append_revisions(self, key: UUID, files: Sequence[FileInputContent]) -> None:
        stored = self._revisions.setdefault(key, {})
        for content in files:
            revisions = stored.setdefault(content.file_name, [])
            revision = FileRevision(
                file_name=content.file_name,
                revision=len(revisions) + 1,
                size=len(content.data),
                checksum=compute_md5(content.data),
            )
            revisions.append((revision, content.data))

    def _latest_contents(self, key: UUID, package: DataPackage) -> list[bytes]:
        stored = self._revisions.get(key, {})
        return [stored[f.file_name][-1][1] for f in package.files if stored.get(f.file_name)]

    @traced_repository_operation("get")
    def get(self, key: UUID) -> DataPackage | None:
        with self._lock:
            return self._packages.get(key)

    @traced_repository_operation("get_by_alternative_identifier")
    def get_by_alternative_identifier(self, identifier: str) -> DataPackage | None:
        with self._lock:
            key = self._identifier_index.get(identifier)
            return self._packages.get(key) if key is not None else None

    @traced_repository_operation("create")
    def create(self, package: DataPackage, files: Sequence[FileInputContent]) -> DataPackage:
        with self._lock:
            for alternative in package.alternative_identifiers:
                if alternative.identifier in self._identifier_index:
                    raise DuplicateIdentifierError(identifier=alternative.identifier)

            key = package.key or uuid.uuid4()
            if key in self._packages:
                raise DuplicateIdentifierError(key=str(key))

            now = datetime.now(UTC)
            package_files = merge_files((), files)
            stored = package.with_changes(
                key=key,
                created=ensure_utc(package.created) or now,
                modified=ensure_utc(package.modified) or now,
                files=package_files,
                size=sum(f.size for f in package_files),
                checksum=package_checksum(c.data for c in files),
            )

            self._packages[key] = stored
            self._append_revisions(key, files)
            for alternative in stored.alternative_identifiers:
                self._identifier_index[alternative.identifier] = key

            logger.debug("Created data package key=%s files=%d", key, len(package_files))
            return stored

    @traced_repository_operation("update")
    def update(
        self,
        package: DataPackage,
        files: Sequence[FileInputContent],
        mode: UpdateMode = UpdateMode.APPEND,
    ) -> DataPackage:
        if package.key is None:
            raise PackageNotFoundError("Data package has no key")

        with self._lock:
            current = self._require(package.key)
            if mode is UpdateMode.OVERWRITE:
                stored_files = self._revisions.setdefault(package.key, {})
                for content in files:
                    stored_files.pop(content.file_name, None)

            self._append_revisions(package.key, files)
            updated = updated_package(current, package, files)
            updated = updated.with_changes(
                checksum=package_checksum(self._latest_contents(package.key, updated))
            )
            self._packages[package.key] = updated

            logger.debug(
                "Updated data package key=%s files=%s mode=%s",
                package.key,
                [c.file_name for c in files],
                mode,
            )
            return updated

    @traced_repository_operation("delete")
    def delete(self, key: UUID) -> None:
        with self._lock:
            current = self._require(key)
            now = datetime.now(UTC)
            self._packages[key] = current.with_changes(deleted=now, modified=now)

    @traced_repository_operation("archive")
    def archive(self, key: UUID) -> None:
        with self._lock:
            current = self._require(key)
            self._packages[key] = current.with_changes(archived=datetime.now(UTC))

    @traced_repository_operation("list_packages")
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
        with self._lock:
            matching = [
                p
                for p in self._packages.values()
                if matches_listing(
                    p,
                    from_date=from_date,
                    to_date=to_date,
                    deleted=deleted,
                    repository_name=repository_name,
                    format_id=format_id,
                    created_by=created_by,
                )
            ]

        matching.sort(key=listing_sort_key)
        page = matching[paging.offset : paging.offset + paging.limit]
        return PagingResponse(
            offset=paging.offset,
            limit=paging.limit,
            count=len(matching),
            results=page,
        )

    def list_identifiers(
        self,
        key: UUID,
        relation_type: RelationType | None = None,
    ) -> list[AlternativeIdentifier]:
        with self._lock:
            package = self._packages.get(key)
        if package is None:
            return []
        return [
            i
            for i in package.alternative_identifiers
            if relation_type is None or i.relation_type == relation_type
        ]

    @traced_repository_operation("get_file_stream")
    def get_file_stream(self, key: UUID, file_name: str) -> BinaryIO | None:
        with self._lock:
            revisions = self._revisions.get(key, {}).get(file_name)
            if not revisions:
                return None
            return io.BytesIO(revisions[-1][1])

    def list_file_revisions(self, key: UUID, file_name: str) -> list[FileRevision]:
        with self._lock:
            return [r for r, _ in self._revisions.get(key, {}).get(file_name, [])]

    def get_file_revision(self, key: UUID, file_name: str, revision: int) -> bytes | None:
        with self._lock:
            for stored, data in self._revisions.get(key, {}).get(file_name, []):
                if stored.revision == revision:
                    return data
        return None

    @traced_repository_operation("stats")
    def stats(self) -> RepositoryStats:
        with self._lock:
            packages = list(self._packages.values())
        return RepositoryStats(
            total_size=sum(p.size for p in packages),
            package_count=len(packages),
        )
