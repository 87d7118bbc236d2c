"""Data repository data models.

Typed dataclasses for data packages, their files and alternative identifiers,
plus the paging request/response pair used by listings.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, BinaryIO, Generic, TypeVar
from uuid import UUID

T = TypeVar("T")


class IdentifierType(StrEnum):
    """Type of an alternative identifier."""

    URL = "URL"
    DOI = "DOI"
    UUID = "UUID"
    OTHER = "OTHER"


class RelationType(StrEnum):
    """Relation between an alternative identifier and its data package."""

    IS_ALTERNATIVE_OF = "IsAlternativeOf"
    IS_NEW_VERSION_OF = "IsNewVersionOf"
    IS_PREVIOUS_VERSION_OF = "IsPreviousVersionOf"
    REFERENCES = "References"


class UpdateMode(StrEnum):
    """How ``DataRepository.update`` treats files that already exist.

    APPEND keeps every earlier revision of a file recoverable; OVERWRITE
    replaces the file and discards its history.
    """

    APPEND = "APPEND"
    OVERWRITE = "OVERWRITE"


def _parse_datetime(value: Any) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def _format_datetime(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


@dataclass(frozen=True)
class AlternativeIdentifier:
    """An externally registered identifier pointing at a data package.

    Attributes:
        identifier: The identifier string (URL, DOI, ...).
        type: Identifier type.
        relation_type: How the identifier relates to the package.
    """

    identifier: str
    type: IdentifierType = IdentifierType.URL
    relation_type: RelationType = RelationType.IS_ALTERNATIVE_OF

    def to_dict(self) -> dict[str, str]:
        return {
            "identifier": self.identifier,
            "type": self.type.value,
            "relation_type": self.relation_type.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AlternativeIdentifier:
        return cls(
            identifier=str(data["identifier"]),
            type=IdentifierType(data.get("type", IdentifierType.URL.value)),
            relation_type=RelationType(
                data.get("relation_type", RelationType.IS_ALTERNATIVE_OF.value)
            ),
        )


@dataclass(frozen=True)
class DataPackageFile:
    """A named file inside a data package.

    Attributes:
        file_name: Name of the file, unique within the package.
        format: Declared content type / format identifier.
        size: Size of the latest revision in bytes.
        checksum: MD5 hex digest of the latest revision.
    """

    file_name: str
    format: str | None = None
    size: int = 0
    checksum: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "file_name": self.file_name,
            "format": self.format,
            "size": self.size,
            "checksum": self.checksum,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DataPackageFile:
        return cls(
            file_name=str(data["file_name"]),
            format=data.get("format"),
            size=int(data.get("size") or 0),
            checksum=data.get("checksum"),
        )


@dataclass(frozen=True)
class FileInputContent:
    """Content handed to the repository for a single named file."""

    file_name: str
    data: bytes
    format: str | None = None

    @classmethod
    def from_stream(
        cls, file_name: str, stream: BinaryIO, format: str | None = None
    ) -> FileInputContent:
        """Build file content by draining a binary stream."""
        return cls(file_name=file_name, data=stream.read(), format=format)


@dataclass(frozen=True)
class DataPackage:
    """A stored object as known to the data repository.

    The repository assigns ``key``, ``files``, ``checksum`` and ``size`` on
    create; callers build packages without them and use ``with_changes`` to
    derive modified copies.

    Attributes:
        key: Canonical 128-bit key of the package.
        title: Free-form title.
        created_by: Subject that created the package.
        created: Creation timestamp (UTC).
        modified: Last modification timestamp (UTC).
        tags: Free-form tags.
        alternative_identifiers: Typed identifiers registered for the package.
        files: Files of the package, in creation order.
        checksum: MD5 hex digest over the package's file contents.
        size: Total size of the package's files in bytes.
        deleted: Deletion marker timestamp, if deleted.
        archived: Archive marker timestamp, if archived.
        published_in: Scope name the package is published in.
        shared_in: Scope names the package is shared into.
    """

    key: UUID | None = None
    title: str | None = None
    created_by: str | None = None
    created: datetime | None = None
    modified: datetime | None = None
    tags: frozenset[str] = frozenset()
    alternative_identifiers: tuple[AlternativeIdentifier, ...] = ()
    files: tuple[DataPackageFile, ...] = ()
    checksum: str | None = None
    size: int = 0
    deleted: datetime | None = None
    archived: datetime | None = None
    published_in: str | None = None
    shared_in: frozenset[str] = field(default_factory=frozenset)

    def with_changes(self, **changes: Any) -> DataPackage:
        """Return a copy of this package with the given fields replaced."""
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        """Convert the package to a dictionary for JSON serialization."""
        return {
            "key": str(self.key) if self.key else None,
            "title": self.title,
            "created_by": self.created_by,
            "created": _format_datetime(self.created),
            "modified": _format_datetime(self.modified),
            "tags": sorted(self.tags),
            "alternative_identifiers": [i.to_dict() for i in self.alternative_identifiers],
            "files": [f.to_dict() for f in self.files],
            "checksum": self.checksum,
            "size": self.size,
            "deleted": _format_datetime(self.deleted),
            "archived": _format_datetime(self.archived),
            "published_in": self.published_in,
            "shared_in": sorted(self.shared_in),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DataPackage:
        """Create a package from its dictionary form."""
        key_raw = data.get("key")
        return cls(
            key=UUID(str(key_raw)) if key_raw else None,
            title=data.get("title"),
            created_by=data.get("created_by"),
            created=_parse_datetime(data.get("created")),
            modified=_parse_datetime(data.get("modified")),
            tags=frozenset(data.get("tags") or ()),
            alternative_identifiers=tuple(
                AlternativeIdentifier.from_dict(i)
                for i in data.get("alternative_identifiers") or ()
            ),
            files=tuple(DataPackageFile.from_dict(f) for f in data.get("files") or ()),
            checksum=data.get("checksum"),
            size=int(data.get("size") or 0),
            deleted=_parse_datetime(data.get("deleted")),
            archived=_parse_datetime(data.get("archived")),
            published_in=data.get("published_in"),
            shared_in=frozenset(data.get("shared_in") or ()),
        )


@dataclass(frozen=True)
class FileRevision:
    """One stored revision of a package file."""

    file_name: str
    revision: int
    size: int
    checksum: str
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass(frozen=True)
class PagingRequest:
    """Offset/limit page request."""

    offset: int = 0
    limit: int = 20


@dataclass(frozen=True)
class PagingResponse(Generic[T]):
    """A page of results with the repository-reported total count."""

    offset: int
    limit: int
    count: int | None
    results: list[T] = field(default_factory=list)


@dataclass(frozen=True)
class RepositoryStats:
    """Aggregate statistics reported by a data repository."""

    total_size: int
    package_count: int
