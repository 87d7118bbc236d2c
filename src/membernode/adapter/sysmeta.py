"""System metadata synthesis.

Objects come in two kinds, told apart by comparing the package's
``published_in`` scope with this node's scope name:

- Native objects are published here. Their system metadata is the latest
  revision of a sidecar document stored next to the content.
- Foreign objects are published elsewhere and only shared into this scope.
  Their system metadata is derived from the package fields on every request
  and is never stored.

Describe responses are always derived from the same metadata, so describe
and full metadata retrieval cannot disagree.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any, Protocol

from pydantic import ValidationError

from membernode.adapter.checksum import package_checksum
from membernode.adapter.translate import repository_errors, stored_key
from membernode.errors import InvalidSystemMetadata, NotFound, ServiceFailure
from membernode.models import AccessPolicy, DescribeResponse, SystemMetadata
from membernode.repository import DataPackage, DataRepository, FileInputContent

logger = logging.getLogger(__name__)

CONTENT_FILE = "content"
SYS_METADATA_FILE = "dataone_system_metadata.json"
SYS_METADATA_FORMAT = "application/json"
DEFAULT_FORMAT_ID = "application/octet-stream"


def utc_now() -> datetime:
    """Current time in UTC."""
    return datetime.now(UTC)


def to_utc(value: Any) -> datetime:
    """Convert a package timestamp to an aware UTC datetime.

    Raises:
        ServiceFailure: If the value is not a datetime.
    """
    if not isinstance(value, datetime):
        logger.error("Error converting date: %r", value)
        raise ServiceFailure("Error reading data package date")
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def is_native(package: DataPackage, scope_name: str) -> bool:
    """Whether a package is published in (not merely shared into) the scope."""
    return bool(package.published_in) and package.published_in.lower() == scope_name.lower()


def package_format_id(package: DataPackage) -> str:
    """Format of the package's first file, or the generic octet-stream format."""
    if package.files and package.files[0].format:
        return package.files[0].format
    return DEFAULT_FORMAT_ID


def content_file_name(package: DataPackage) -> str | None:
    """Name of the package's content file: the first file that is not the sidecar."""
    for f in package.files:
        if f.file_name != SYS_METADATA_FILE:
            return f.file_name
    return None


def to_file_content(sysmeta: SystemMetadata) -> FileInputContent:
    """Serialize a system metadata revision into sidecar file content.

    Raises:
        InvalidSystemMetadata: If the metadata cannot be serialized.
    """
    try:
        document = sysmeta.to_document()
    except (ValueError, TypeError) as e:
        logger.exception("Error serializing system metadata for %s", sysmeta.identifier)
        raise InvalidSystemMetadata(
            "Error registering system metadata", sysmeta.identifier
        ) from e
    return FileInputContent(
        file_name=SYS_METADATA_FILE,
        data=document.encode("utf-8"),
        format=SYS_METADATA_FORMAT,
    )


class MetadataProvider(Protocol):
    """Source of the system metadata of a data package."""

    def system_metadata(self, package: DataPackage) -> SystemMetadata: ...


class ForeignMetadataProvider:
    """Synthesizes system metadata from package fields alone."""

    def __init__(self, node_id: str) -> None:
        self._node_id = node_id

    def system_metadata(self, package: DataPackage) -> SystemMetadata:
        return SystemMetadata(
            identifier=str(package.key),
            format_id=package_format_id(package),
            size=package.size,
            checksum=package_checksum(package),
            submitter=package.created_by,
            rights_holder=package.created_by,
            origin_member_node=self._node_id,
            authoritative_member_node=self._node_id,
            serial_version=1,
            date_uploaded=to_utc(package.created),
            date_sys_metadata_modified=to_utc(package.modified),
            access_policy=AccessPolicy.public_read(),
        )


class NativeMetadataProvider:
    """Reads the stored sidecar document of a package."""

    def __init__(self, repository: DataRepository) -> None:
        self._repository = repository

    def system_metadata(self, package: DataPackage) -> SystemMetadata:
        package_key = stored_key(package, None)
        key = str(package_key)

        with repository_errors(key):
            stream = self._repository.get_file_stream(package_key, SYS_METADATA_FILE)
            if stream is None:
                raise NotFound("Metadata Not Found", key)
            with stream:
                document = stream.read()

        try:
            metadata = SystemMetadata.from_document(document)
        except ValidationError as e:
            logger.error("Error reading system metadata of %s: %s", key, e)
            raise InvalidSystemMetadata("Error reading system metadata", key) from e

        if metadata.serial_version is None:
            return metadata.with_changes(serial_version=1)
        return metadata


class SystemMetadataSynthesizer:
    """Dispatches each package to the native or foreign metadata provider."""

    def __init__(self, repository: DataRepository, node_id: str, scope_name: str) -> None:
        self._scope_name = scope_name
        self._native = NativeMetadataProvider(repository)
        self._foreign = ForeignMetadataProvider(node_id)

    def provider_for(self, package: DataPackage) -> MetadataProvider:
        """Select the provider for a package."""
        if is_native(package, self._scope_name):
            return self._native
        return self._foreign

    def system_metadata(self, package: DataPackage) -> SystemMetadata:
        """System metadata of a package, stored or synthesized.

        Raises:
            NotFound: If a native package has no stored metadata.
            InvalidSystemMetadata: If the stored metadata cannot be parsed.
        """
        return self.provider_for(package).system_metadata(package)

    def load_native(self, package: DataPackage) -> SystemMetadata:
        """Stored metadata of a native package.

        Raises:
            NotFound: If the package is foreign or has no stored metadata.
            InvalidSystemMetadata: If the stored metadata cannot be parsed.
        """
        if not is_native(package, self._scope_name):
            raise NotFound(
                "System metadata of objects published in another repository is not stored here",
                str(package.key),
            )
        return self._native.system_metadata(package)

    def describe(self, package: DataPackage) -> DescribeResponse:
        """Describe summary derived from the package's system metadata."""
        sysmeta = self.system_metadata(package)
        return DescribeResponse(
            format_id=sysmeta.format_id,
            content_length=sysmeta.size,
            last_modified=sysmeta.date_sys_metadata_modified,
            checksum=sysmeta.checksum,
            serial_version=sysmeta.serial_version or 1,
        )
