"""System metadata model: the protocol-mandated metadata document.

Aligned to the DataONE v1 SystemMetadata type. Field aliases follow the
protocol's camelCase names (``formatId``, ``dateSysMetadataModified``,
``obsoletedBy`` ...), which is also how the document is persisted.

SystemMetadata is immutable: a revision is a new value built with
``model_copy(update=...)`` (see ``with_changes``), never an in-place edit.
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

PUBLIC_SUBJECT = "public"


class Permission(StrEnum):
    """Access permission levels, ordered by privilege."""

    READ = "read"
    WRITE = "write"
    CHANGE_PERMISSION = "changePermission"


class _ProtocolModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="forbid",
    )


class Checksum(_ProtocolModel):
    """Checksum value together with the algorithm that produced it."""

    value: Annotated[str, Field(min_length=1)]
    algorithm: Annotated[str, Field(min_length=1)]


class AccessRule(_ProtocolModel):
    """Grants a set of permissions to a set of subjects."""

    subject: Annotated[list[str], Field(min_length=1)]
    permission: Annotated[list[Permission], Field(min_length=1)]


class AccessPolicy(_ProtocolModel):
    """Allow rules attached to an object. Descriptive only; never enforced."""

    allow: Annotated[list[AccessRule], Field(default_factory=list)]

    @classmethod
    def public_read(cls) -> AccessPolicy:
        """Policy with a single rule granting read to the public subject."""
        return cls(allow=[AccessRule(subject=[PUBLIC_SUBJECT], permission=[Permission.READ])])


class SystemMetadata(_ProtocolModel):
    """Protocol system metadata of a single object.

    Attributes:
        identifier: Identifier (pid) the metadata describes.
        format_id: Format identifier of the object's content.
        size: Content size in bytes.
        checksum: Content checksum.
        submitter: Subject that submitted the object.
        rights_holder: Subject holding the rights to the object.
        origin_member_node: Node the object was first uploaded to.
        authoritative_member_node: Node holding the authoritative copy.
        serial_version: Revision counter of this metadata; None means 1.
        archived: Whether the object is archived.
        date_uploaded: Upload timestamp.
        date_sys_metadata_modified: Last modification of this metadata.
        access_policy: Allow rules (informational).
        obsoletes: Identifier of the predecessor in the version chain.
        obsoleted_by: Identifier of the successor in the version chain.
    """

    identifier: Annotated[str, Field(min_length=1)]
    format_id: Annotated[str, Field(min_length=1)]
    size: Annotated[int, Field(ge=0)]
    checksum: Checksum
    submitter: str | None = None
    rights_holder: str | None = None
    origin_member_node: str | None = None
    authoritative_member_node: str | None = None
    serial_version: Annotated[int | None, Field(default=None, ge=0)] = None
    archived: bool | None = None
    date_uploaded: datetime | None = None
    date_sys_metadata_modified: datetime | None = None
    access_policy: AccessPolicy | None = None
    obsoletes: str | None = None
    obsoleted_by: str | None = None

    def with_changes(self, **changes: Any) -> SystemMetadata:
        """Return a new revision with the given fields replaced."""
        return self.model_copy(update=changes)

    def to_document(self) -> str:
        """Serialize to the persisted JSON document form."""
        return self.model_dump_json(by_alias=True, exclude_none=True, indent=2)

    @classmethod
    def from_document(cls, document: str | bytes) -> SystemMetadata:
        """Parse a persisted JSON document.

        Raises:
            pydantic.ValidationError: If the document is malformed.
        """
        return cls.model_validate_json(document)
