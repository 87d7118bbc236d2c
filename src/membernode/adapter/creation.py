"""Creation of new objects.

A new object is a data package holding two files, committed in a single
repository call: the immutable content file and the initial system metadata
sidecar. The pid is registered as the package's ``IsAlternativeOf``
identifier, which the repository keeps unique at commit time.
"""

from __future__ import annotations

import hashlib
import logging
from typing import BinaryIO

from membernode.adapter.checksum import CHECKSUM_ALGORITHM
from membernode.adapter.resolver import IdentifierResolver
from membernode.adapter.sysmeta import CONTENT_FILE, to_file_content, to_utc, utc_now
from membernode.adapter.translate import repository_errors
from membernode.errors import IdentifierNotUnique, InvalidSystemMetadata
from membernode.models import Session, SystemMetadata
from membernode.repository import (
    AlternativeIdentifier,
    DataPackage,
    DataRepository,
    FileInputContent,
    IdentifierType,
    RelationType,
)

logger = logging.getLogger(__name__)

DATA_ONE_TAG = "DataOne"


def read_content(content: bytes | BinaryIO) -> bytes:
    """Drain object content given as bytes or a binary stream."""
    if isinstance(content, bytes | bytearray):
        return bytes(content)
    return content.read()


def validate_new_metadata(pid: str, sysmeta: SystemMetadata, data: bytes) -> None:
    """Check that system metadata describes the content it is submitted with.

    Raises:
        InvalidSystemMetadata: On identifier, size or MD5 checksum mismatch,
            or when the metadata is already obsoleted.
    """
    if sysmeta.identifier != pid:
        raise InvalidSystemMetadata(
            f"System metadata identifier {sysmeta.identifier} does not match pid", pid
        )
    if sysmeta.obsoleted_by:
        raise InvalidSystemMetadata("A new object cannot be created in an obsoleted state", pid)
    if sysmeta.size != len(data):
        raise InvalidSystemMetadata(
            f"System metadata size {sysmeta.size} does not match content size {len(data)}", pid
        )
    if sysmeta.checksum.algorithm.upper() == CHECKSUM_ALGORITHM:
        actual = hashlib.md5(data).hexdigest()  # noqa: S324 - protocol checksum
        if sysmeta.checksum.value.lower() != actual:
            raise InvalidSystemMetadata("System metadata checksum does not match content", pid)


class ObjectCreator:
    """Plain create path shared by ``create`` and ``update``."""

    def __init__(
        self,
        repository: DataRepository,
        resolver: IdentifierResolver,
    ) -> None:
        self._repository = repository
        self._resolver = resolver

    def assert_not_exists(self, pid: str) -> None:
        """Raise IdentifierNotUnique if the pid already resolves."""
        if self._resolver.exists(pid):
            raise IdentifierNotUnique("Identifier already exists", pid)

    def create(
        self,
        session: Session,
        pid: str,
        content: bytes | BinaryIO,
        sysmeta: SystemMetadata,
    ) -> str:
        """Create a new object under pid.

        Raises:
            IdentifierNotUnique: If pid already exists, here or at commit time.
            InvalidSystemMetadata: If the metadata does not fit the content.
        """
        self.assert_not_exists(pid)

        data = read_content(content)
        validate_new_metadata(pid, sysmeta, data)

        if sysmeta.date_sys_metadata_modified is None:
            sysmeta = sysmeta.with_changes(date_sys_metadata_modified=utc_now())
        creation_date = to_utc(sysmeta.date_sys_metadata_modified)

        package = DataPackage(
            title=pid,
            created_by=session.subject,
            created=creation_date,
            modified=creation_date,
            tags=frozenset({DATA_ONE_TAG}),
            alternative_identifiers=(
                AlternativeIdentifier(
                    identifier=pid,
                    type=IdentifierType.URL,
                    relation_type=RelationType.IS_ALTERNATIVE_OF,
                ),
            ),
            published_in=self._resolver.scope_name,
        )
        files = [
            FileInputContent(file_name=CONTENT_FILE, data=data, format=sysmeta.format_id),
            to_file_content(sysmeta),
        ]

        with repository_errors(pid):
            stored = self._repository.create(package, files)

        logger.info(
            "Created object %s as data package %s for subject %s",
            pid,
            stored.key,
            session.subject,
        )
        return pid
