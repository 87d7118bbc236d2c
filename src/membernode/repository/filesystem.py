"""Filesystem data repository backend.

Provides local filesystem storage with:
- One directory per data package, named by its key
- Revisioned files with a "latest" pointer (append-mode updates keep history)
- An identifier index whose entries are created exclusively, enforcing
  alternative-identifier uniqueness at commit time
- Path traversal protection for file names

Environment Variables:
    MEMBERNODE_DATA_REPO_PATH: Base directory for storage
        (default: tempfile.gettempdir() / membernode_datarepo)
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import re
import shutil
import tempfile
import threading
import uuid
from collections.abc import Sequence
from datetime import UTC, datetime
from pathlib import Path
from typing import BinaryIO
from uuid import UUID

from membernode.repository._support import (
    compute_md5,
    ensure_utc,
    listing_sort_key,
    matches_listing,
    merge_files,
    updated_package,
)
from membernode.repository.base import DataRepository
from membernode.repository.errors import (
    DuplicateIdentifierError,
    PackageNotFoundError,
    RepositoryBackendError,
)
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

MEMBERNODE_DATA_REPO_PATH_ENV = "MEMBERNODE_DATA_REPO_PATH"

_SAFE_FILE_NAME_PATTERN = re.compile(r"^[a-zA-Z0-9_\-.]+$")

_PACKAGES_DIR = "packages"
_IDENTIFIERS_DIR = "identifiers"
_PACKAGE_RECORD = "package.json"
_FILES_DIR = "files"
_LATEST_POINTER = "_latest"
_METADATA_SUFFIX = ".meta.json"
_CONTENT_SUFFIX = ".data"


def _is_unsafe_file_name(file_name: str) -> bool:
    """Check if a file name could escape its package directory."""
    if not file_name or file_name in (".", ".."):
        return True
    if "\x00" in file_name or "/" in file_name or "\\" in file_name:
        return True
    return not bool(_SAFE_FILE_NAME_PATTERN.match(file_name))


def _identifier_digest(identifier: str) -> str:
    return hashlib.sha256(identifier.encode("utf-8")).hexdigest()


def _write_atomic(path: Path, data: bytes) -> None:
    """Write a file atomically through a temporary sibling."""
    tmp_file = path.parent / f"{path.name}.{uuid.uuid4().hex}.tmp"
    try:
        tmp_file.write_bytes(data)
        tmp_file.replace(path)
    except OSError as e:
        tmp_file.unlink(missing_ok=True)
        raise RepositoryBackendError(message=f"Failed to write {path.name}: {e}", cause=e) from e


class FilesystemDataRepository(DataRepository):
    """Filesystem-based data repository implementation.

    Packages are stored in a directory structure:
        {base_dir}/packages/{key}/
            package.json                    # DataPackage record
            files/{file_name}/
                _latest                     # latest revision number
                {revision}.data             # content of a revision
                {revision}.meta.json        # FileRevision record
        {base_dir}/identifiers/{sha256(identifier)}   # key owning the identifier
    """

    def __init__(self, base_dir: str | Path | None = None) -> None:
        """Initialize filesystem storage.

        Args:
            base_dir: Base directory for storage. If None, uses
                MEMBERNODE_DATA_REPO_PATH env var or the OS temp directory.
        """
        if base_dir is None:
            base_dir = os.environ.get(MEMBERNODE_DATA_REPO_PATH_ENV)

        if base_dir is None:
            base_dir = Path(tempfile.gettempdir()) / "membernode_datarepo"
        else:
            base_dir = Path(base_dir)

        self._base_dir = base_dir.resolve()
        self._lock = threading.RLock()
        try:
            (self._base_dir / _PACKAGES_DIR).mkdir(parents=True, exist_ok=True)
            (self._base_dir / _IDENTIFIERS_DIR).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise RepositoryBackendError(
                message=f"Failed to create repository directories: {e}", cause=e
            ) from e
        logger.debug("FilesystemDataRepository initialized with base_dir=%s", self._base_dir)

    @property
    def backend_name(self) -> str:
        """Return the backend identifier."""
        return "filesystem"

    @property
    def base_dir(self) -> Path:
        """Return the base directory path."""
        return self._base_dir

    def _package_dir(self, key: UUID) -> Path:
        return self._base_dir / _PACKAGES_DIR / str(UUID(str(key)))

    def _file_dir(self, key: UUID, file_name: str) -> Path:
        if _is_unsafe_file_name(file_name):
            raise RepositoryBackendError(
                message="Invalid file name: path traversal or unsafe characters detected",
                key=str(key),
            )
        return self._package_dir(key) / _FILES_DIR / file_name

    def _identifier_path(self, identifier: str) -> Path:
        return self._base_dir / _IDENTIFIERS_DIR / _identifier_digest(identifier)

    def _read_package(self, key: UUID) -> DataPackage | None:
        record = self._package_dir(key) / _PACKAGE_RECORD
        if not record.exists():
            return None
        try:
            return DataPackage.from_dict(json.loads(record.read_text(encoding="utf-8")))
        except (OSError, json.JSONDecodeError, KeyError, ValueError) as e:
            raise RepositoryBackendError(
                message=f"Failed to read package record: {e}", key=str(key), cause=e
            ) from e

    def _write_package(self, package: DataPackage) -> None:
        if package.key is None:
            raise RepositoryBackendError(message="Data package has no key")
        record = self._package_dir(package.key) / _PACKAGE_RECORD
        _write_atomic(record, json.dumps(package.to_dict(), indent=2).encode("utf-8"))

    def _read_latest_pointer(self, file_dir: Path) -> int | None:
        latest_file = file_dir / _LATEST_POINTER
        if not latest_file.exists():
            return None
        try:
            return int(latest_file.read_text(encoding="utf-8").strip())
        except (OSError, ValueError):
            return None

    def _append_revision(self, key: UUID, content: FileInputContent, mode: UpdateMode) -> None:
        file_dir = self._file_dir(key, content.file_name)
        if mode is UpdateMode.OVERWRITE and file_dir.exists():
            shutil.rmtree(file_dir)
        try:
            file_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise RepositoryBackendError(
                message=f"Failed to create file directory: {e}", key=str(key), cause=e
            ) from e

        revision_number = (self._read_latest_pointer(file_dir) or 0) + 1
        revision = FileRevision(
            file_name=content.file_name,
            revision=revision_number,
            size=len(content.data),
            checksum=compute_md5(content.data),
        )
        meta = {
            "file_name": revision.file_name,
            "revision": revision.revision,
            "size": revision.size,
            "checksum": revision.checksum,
            "created_at": revision.created_at.isoformat(),
        }
        _write_atomic(file_dir / f"{revision_number}{_CONTENT_SUFFIX}", content.data)
        _write_atomic(
            file_dir / f"{revision_number}{_METADATA_SUFFIX}",
            json.dumps(meta, indent=2).encode("utf-8"),
        )
        _write_atomic(file_dir / _LATEST_POINTER, str(revision_number).encode("utf-8"))

    def _read_revision(self, key: UUID, file_name: str, revision: int | None) -> bytes | None:
        file_dir = self._file_dir(key, file_name)
        if not file_dir.exists():
            return None
        if revision is None:
            revision = self._read_latest_pointer(file_dir)
            if revision is None:
                return None
        content_file = file_dir / f"{revision}{_CONTENT_SUFFIX}"
        if not content_file.exists():
            return None
        try:
            return content_file.read_bytes()
        except OSError as e:
            logger.warning("Failed to read content %s: %s", content_file, e)
            return None

    def _package_checksum(self, package: DataPackage) -> str:
        if package.key is None:
            raise RepositoryBackendError(message="Data package has no key")
        digest = hashlib.md5()  # noqa: S324 - protocol checksum, not security
        for f in package.files:
            data = self._read_revision(package.key, f.file_name, None)
            if data is not None:
                digest.update(data)
        return digest.hexdigest()

    def _reserve_identifiers(self, key: UUID, identifiers: Sequence[str]) -> None:
        """Register identifiers exclusively, releasing them all on conflict."""
        reserved: list[Path] = []
        for identifier in identifiers:
            path = self._identifier_path(identifier)
            try:
                with path.open("x", encoding="utf-8") as f:
                    f.write(str(key))
            except FileExistsError as e:
                for done in reserved:
                    done.unlink(missing_ok=True)
                raise DuplicateIdentifierError(identifier=identifier) from e
            except OSError as e:
                for done in reserved:
                    done.unlink(missing_ok=True)
                raise RepositoryBackendError(
                    message=f"Failed to register identifier: {e}",
                    identifier=identifier,
                    cause=e,
                ) from e
            reserved.append(path)

    def _iter_packages(self) -> list[DataPackage]:
        packages: list[DataPackage] = []
        try:
            entries = sorted((self._base_dir / _PACKAGES_DIR).iterdir())
        except OSError as e:
            raise RepositoryBackendError(message=f"Failed to list packages: {e}", cause=e) from e
        for entry in entries:
            try:
                key = UUID(entry.name)
            except ValueError:
                continue
            package = self._read_package(key)
            if package is not None:
                packages.append(package)
        return packages

    @traced_repository_operation("get")
    def get(self, key: UUID) -> DataPackage | None:
        with self._lock:
            return self._read_package(key)

    @traced_repository_operation("get_by_alternative_identifier")
    def get_by_alternative_identifier(self, identifier: str) -> DataPackage | None:
        path = self._identifier_path(identifier)
        if not path.exists():
            return None
        try:
            key = UUID(path.read_text(encoding="utf-8").strip())
        except (OSError, ValueError) as e:
            raise RepositoryBackendError(
                message=f"Corrupt identifier index entry: {e}", identifier=identifier, cause=e
            ) from e
        with self._lock:
            return self._read_package(key)

    @traced_repository_operation("create")
    def create(self, package: DataPackage, files: Sequence[FileInputContent]) -> DataPackage:
        key = package.key or uuid.uuid4()
        package_dir = self._package_dir(key)

        with self._lock:
            if package_dir.exists():
                raise DuplicateIdentifierError(key=str(key))

            self._reserve_identifiers(key, [i.identifier for i in package.alternative_identifiers])

            now = datetime.now(UTC)
            package_files = merge_files((), files)
            stored = package.with_changes(
                key=key,
                created=ensure_utc(package.created) or now,
                modified=ensure_utc(package.modified) or now,
                files=package_files,
                size=sum(f.size for f in package_files),
            )
            try:
                package_dir.mkdir(parents=True)
                for content in files:
                    self._append_revision(key, content, UpdateMode.APPEND)
                stored = stored.with_changes(checksum=self._package_checksum(stored))
                self._write_package(stored)
            except (OSError, RepositoryBackendError) as e:
                shutil.rmtree(package_dir, ignore_errors=True)
                for alternative in package.alternative_identifiers:
                    self._identifier_path(alternative.identifier).unlink(missing_ok=True)
                if isinstance(e, RepositoryBackendError):
                    raise
                raise RepositoryBackendError(
                    message=f"Failed to create package: {e}", key=str(key), cause=e
                ) from e

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
            current = self._read_package(package.key)
            if current is None:
                raise PackageNotFoundError(key=str(package.key))

            for content in files:
                self._append_revision(package.key, content, mode)

            updated = updated_package(current, package, files)
            updated = updated.with_changes(checksum=self._package_checksum(updated))
            self._write_package(updated)

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
            current = self._read_package(key)
            if current is None:
                raise PackageNotFoundError(key=str(key))
            now = datetime.now(UTC)
            self._write_package(current.with_changes(deleted=now, modified=now))
        logger.debug("Marked data package deleted: key=%s", key)

    @traced_repository_operation("archive")
    def archive(self, key: UUID) -> None:
        with self._lock:
            current = self._read_package(key)
            if current is None:
                raise PackageNotFoundError(key=str(key))
            self._write_package(current.with_changes(archived=datetime.now(UTC)))

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
                for p in self._iter_packages()
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
        return PagingResponse(
            offset=paging.offset,
            limit=paging.limit,
            count=len(matching),
            results=matching[paging.offset : paging.offset + paging.limit],
        )

    def list_identifiers(
        self,
        key: UUID,
        relation_type: RelationType | None = None,
    ) -> list[AlternativeIdentifier]:
        package = self.get(key)
        if package is None:
            return []
        return [
            i
            for i in package.alternative_identifiers
            if relation_type is None or i.relation_type == relation_type
        ]

    @traced_repository_operation("get_file_stream")
    def get_file_stream(self, key: UUID, file_name: str) -> BinaryIO | None:
        file_dir = self._file_dir(key, file_name)
        revision = self._read_latest_pointer(file_dir) if file_dir.exists() else None
        if revision is None:
            return None
        content_file = file_dir / f"{revision}{_CONTENT_SUFFIX}"
        try:
            return content_file.open("rb")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise RepositoryBackendError(
                message=f"Failed to open file: {e}", key=str(key), cause=e
            ) from e

    def list_file_revisions(self, key: UUID, file_name: str) -> list[FileRevision]:
        file_dir = self._file_dir(key, file_name)
        if not file_dir.exists():
            return []

        revisions: list[FileRevision] = []
        for meta_file in file_dir.glob(f"*{_METADATA_SUFFIX}"):
            try:
                data = json.loads(meta_file.read_text(encoding="utf-8"))
                revisions.append(
                    FileRevision(
                        file_name=str(data["file_name"]),
                        revision=int(data["revision"]),
                        size=int(data["size"]),
                        checksum=str(data["checksum"]),
                        created_at=datetime.fromisoformat(data["created_at"]),
                    )
                )
            except (OSError, json.JSONDecodeError, KeyError, ValueError) as e:
                logger.warning("Failed to read revision metadata %s: %s", meta_file, e)

        revisions.sort(key=lambda r: r.revision)
        return revisions

    def get_file_revision(self, key: UUID, file_name: str, revision: int) -> bytes | None:
        return self._read_revision(key, file_name, revision)

    @traced_repository_operation("stats")
    def stats(self) -> RepositoryStats:
        with self._lock:
            packages = self._iter_packages()
        return RepositoryStats(
            total_size=sum(p.size for p in packages),
            package_count=len(packages),
        )
