"""Helpers shared by the bundled repository backends."""

from __future__ import annotations

import hashlib
from collections.abc import Iterable, Sequence
from datetime import UTC, datetime

from membernode.repository.models import DataPackage, DataPackageFile, FileInputContent


def ensure_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes and convert aware ones to UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def compute_md5(data: bytes) -> str:
    """Compute the MD5 hex digest of data."""
    return hashlib.md5(data).hexdigest()  # noqa: S324 - protocol checksum, not security


def package_checksum(contents: Iterable[bytes]) -> str:
    """Compute the package checksum over file contents in file order."""
    digest = hashlib.md5()  # noqa: S324 - protocol checksum, not security
    for data in contents:
        digest.update(data)
    return digest.hexdigest()


def merge_files(
    existing: Sequence[DataPackageFile], files: Sequence[FileInputContent]
) -> tuple[DataPackageFile, ...]:
    """Merge new file content into a package file list, preserving order.

    Files that already exist keep their position (and their declared format
    unless the new content declares one); new files are appended.
    """
    merged = {f.file_name: f for f in existing}
    order = [f.file_name for f in existing]
    for content in files:
        previous = merged.get(content.file_name)
        fmt = content.format or (previous.format if previous else None)
        merged[content.file_name] = DataPackageFile(
            file_name=content.file_name,
            format=fmt,
            size=len(content.data),
            checksum=compute_md5(content.data),
        )
        if previous is None:
            order.append(content.file_name)
    return tuple(merged[name] for name in order)


def package_format(package: DataPackage) -> str | None:
    """Return the declared format of the package's first file."""
    return package.files[0].format if package.files else None


def matches_listing(
    package: DataPackage,
    *,
    from_date: datetime | None,
    to_date: datetime | None,
    deleted: bool,
    repository_name: str | None,
    format_id: str | None,
    created_by: str | None,
) -> bool:
    """Check a package against the listing filters of ``DataRepository.list_packages``."""
    if (package.deleted is not None) != deleted:
        return False

    if repository_name is not None:
        scopes = set(package.shared_in)
        if package.published_in:
            scopes.add(package.published_in)
        if repository_name not in scopes:
            return False

    modified = ensure_utc(package.modified)
    lower = ensure_utc(from_date)
    upper = ensure_utc(to_date)
    if lower is not None and (modified is None or modified < lower):
        return False
    if upper is not None and (modified is None or modified >= upper):
        return False

    if format_id is not None and package_format(package) != format_id:
        return False

    return created_by is None or package.created_by == created_by


def listing_sort_key(package: DataPackage) -> tuple[datetime, str]:
    """Order packages by modification time, then key."""
    modified = ensure_utc(package.modified) or datetime.min.replace(tzinfo=UTC)
    return modified, str(package.key)


def updated_package(
    current: DataPackage, package: DataPackage, files: Sequence[FileInputContent]
) -> DataPackage:
    """Apply a caller's update to the stored package.

    Callers may change only ``title``, ``tags`` and ``modified``. Markers,
    scopes, creator and identifiers always come from the stored package.
    The package checksum is left for the backend to recompute.
    """
    package_files = merge_files(current.files, files)
    return current.with_changes(
        title=package.title,
        tags=package.tags,
        modified=ensure_utc(package.modified) or datetime.now(UTC),
        files=package_files,
        size=sum(f.size for f in package_files),
    )
