"""Object, metadata and identifier routes.

Request and response bodies are JSON with the protocol's camelCase field
names; object content travels base64-encoded in request bodies and as a raw
octet stream on GET /v1/object/{pid}.

Identifiers may contain slashes (DOIs), so every ``{pid}`` is a path
parameter; the describe route is registered before the plain object route so
that ``/describe`` is not read as part of a pid.
"""

import logging
from collections.abc import Iterator
from datetime import datetime
from email.utils import format_datetime
from typing import Annotated, BinaryIO

from fastapi import APIRouter, Query, Request, Response
from fastapi.responses import StreamingResponse
from pydantic import Base64Bytes, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from membernode.adapter.sysmeta import to_utc
from membernode.api.auth import RequireSession
from membernode.api.dependencies import get_adapter
from membernode.models import Checksum, DescribeResponse, ObjectList, SystemMetadata

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["Objects"])

STREAM_CHUNK_SIZE = 64 * 1024


class _RequestModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class CreateObjectRequest(_RequestModel):
    """Body of POST /v1/object."""

    pid: Annotated[str, Field(min_length=1)]
    content: Base64Bytes
    sysmeta: SystemMetadata


class UpdateObjectRequest(_RequestModel):
    """Body of PUT /v1/object/{pid}."""

    new_pid: Annotated[str, Field(min_length=1)]
    content: Base64Bytes
    sysmeta: SystemMetadata


class UpdateMetadataRequest(_RequestModel):
    """Body of PUT /v1/meta/{pid}."""

    sysmeta: SystemMetadata


class GenerateIdentifierRequest(_RequestModel):
    """Body of POST /v1/generate."""

    scheme: Annotated[str, Field(min_length=1)]
    fragment: str | None = None


class IdentifierResponse(BaseModel):
    identifier: str


class SuccessResponse(BaseModel):
    success: bool


def _iter_stream(stream: BinaryIO) -> Iterator[bytes]:
    with stream:
        while chunk := stream.read(STREAM_CHUNK_SIZE):
            yield chunk


def describe_headers(description: DescribeResponse) -> dict[str, str]:
    """DataONE describe headers for a HEAD response."""
    headers = {
        "Content-Length": str(description.content_length),
        "DataONE-FormatId": description.format_id,
        "DataONE-Checksum": f"{description.checksum.algorithm},{description.checksum.value}",
        "DataONE-SerialVersion": str(description.serial_version),
    }
    if description.last_modified is not None:
        headers["Last-Modified"] = format_datetime(to_utc(description.last_modified), usegmt=True)
    return headers


@router.post("/object", response_model=IdentifierResponse, status_code=201)
def create_object(
    request_body: CreateObjectRequest,
    request: Request,
    session: RequireSession,
) -> IdentifierResponse:
    pid = get_adapter(request).create(
        session, request_body.pid, request_body.content, request_body.sysmeta
    )
    return IdentifierResponse(identifier=pid)


@router.get("/object", response_model=ObjectList)
def list_objects(
    request: Request,
    from_date: Annotated[datetime | None, Query(alias="fromDate")] = None,
    to_date: Annotated[datetime | None, Query(alias="toDate")] = None,
    format_id: Annotated[str | None, Query(alias="formatId")] = None,
    start: int | None = None,
    count: int | None = None,
) -> ObjectList:
    """List objects visible on this node, at most 20 per page."""
    return get_adapter(request).list_objects(
        from_date=from_date,
        to_date=to_date,
        format_id=format_id,
        start=start,
        count=count,
    )


@router.get("/object/{pid:path}/describe", response_model=DescribeResponse)
def describe_object(pid: str, request: Request) -> DescribeResponse:
    return get_adapter(request).describe(pid)


@router.head("/object/{pid:path}")
def head_object(pid: str, request: Request) -> Response:
    """Describe an object through DataONE-* response headers."""
    description = get_adapter(request).describe(pid)
    return Response(status_code=200, headers=describe_headers(description))


@router.get("/object/{pid:path}")
def get_object(pid: str, request: Request) -> StreamingResponse:
    """Stream the content of an object."""
    stream = get_adapter(request).get(pid)
    return StreamingResponse(_iter_stream(stream), media_type="application/octet-stream")


@router.put("/object/{pid:path}", response_model=IdentifierResponse)
def update_object(
    pid: str,
    request_body: UpdateObjectRequest,
    request: Request,
    session: RequireSession,
) -> IdentifierResponse:
    """Obsolete pid by a new object created from the request body."""
    new_pid = get_adapter(request).update(
        session, pid, request_body.content, request_body.new_pid, request_body.sysmeta
    )
    return IdentifierResponse(identifier=new_pid)


@router.delete("/object/{pid:path}", response_model=IdentifierResponse)
def delete_object(pid: str, request: Request, session: RequireSession) -> IdentifierResponse:
    return IdentifierResponse(identifier=get_adapter(request).delete(session, pid))


@router.get(
    "/meta/{pid:path}",
    response_model=SystemMetadata,
    response_model_exclude_none=True,
)
def get_system_metadata(pid: str, request: Request) -> SystemMetadata:
    return get_adapter(request).system_metadata(pid)


@router.put("/meta/{pid:path}", response_model=SuccessResponse)
def update_system_metadata(
    pid: str,
    request_body: UpdateMetadataRequest,
    request: Request,
    session: RequireSession,
) -> SuccessResponse:
    success = get_adapter(request).update_metadata(session, pid, request_body.sysmeta)
    return SuccessResponse(success=success)


@router.get("/checksum/{pid:path}", response_model=Checksum)
def get_checksum(
    pid: str,
    request: Request,
    checksum_algorithm: Annotated[str | None, Query(alias="checksumAlgorithm")] = None,
) -> Checksum:
    return get_adapter(request).checksum(pid, checksum_algorithm)


@router.put("/archive/{pid:path}", response_model=IdentifierResponse)
def archive_object(pid: str, request: Request, session: RequireSession) -> IdentifierResponse:
    get_adapter(request).archive(session, pid)
    return IdentifierResponse(identifier=pid)


@router.post("/generate", response_model=IdentifierResponse)
def generate_identifier(
    request_body: GenerateIdentifierRequest,
    request: Request,
    session: RequireSession,
) -> IdentifierResponse:
    identifier = get_adapter(request).generate_identifier(
        session, request_body.scheme, request_body.fragment
    )
    return IdentifierResponse(identifier=identifier)
