"""Protocol response and session types returned by the Member Node adapter."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from membernode.models.system_metadata import PUBLIC_SUBJECT, Checksum


class _ResponseModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class Session(_ResponseModel):
    """Caller identity for a single request.

    The subject is the distinguished name of the client certificate presented
    to the TLS terminator, or ``public`` for anonymous callers.
    """

    subject: Annotated[str, Field(min_length=1)] = PUBLIC_SUBJECT


class DescribeResponse(_ResponseModel):
    """Summary of an object, derived from its system metadata."""

    format_id: str
    content_length: int
    last_modified: datetime | None
    checksum: Checksum
    serial_version: int


class ObjectInfo(_ResponseModel):
    """Single entry of an object listing."""

    identifier: str
    format_id: str
    checksum: Checksum
    date_sys_metadata_modified: datetime | None
    size: int


class ObjectList(_ResponseModel):
    """A page of an object listing."""

    count: int
    start: int
    total: int
    object_info: list[ObjectInfo] = []


class HealthStatus(StrEnum):
    """Health states reported by the adapter."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


class Health(_ResponseModel):
    """Adapter health status."""

    status: HealthStatus
    node_id: str
    time: datetime
    message: str | None = None
