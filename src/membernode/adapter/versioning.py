"""Append-only version chain between revisions of a logical object.

An object is either Active or Obsoleted. ``update`` moves it from Active to
Obsoleted exactly once: it appends a metadata revision setting
``obsoletedBy`` on the old object and creates a brand-new object that
``obsoletes`` it. Content is never rewritten; metadata changes are appended
as new revisions of the sidecar document, so earlier revisions stay
recoverable through the repository.

Chain invariants:
- If A.obsoletedBy == B then B.obsoletes == A.
- Once obsoletedBy is set on A, A's chain fields never change again.
- serialVersion never decreases.
"""

from __future__ import annotations

import logging
from typing import BinaryIO

from membernode.adapter.access import AccessController
from membernode.adapter.creation import ObjectCreator, read_content, validate_new_metadata
from membernode.adapter.resolver import IdentifierResolver
from membernode.adapter.sysmeta import SystemMetadataSynthesizer, to_file_content, utc_now
from membernode.adapter.translate import repository_errors, stored_key
from membernode.errors import InvalidSystemMetadata, NotFound
from membernode.models import Permission, Session, SystemMetadata
from membernode.repository import DataPackage, DataRepository, UpdateMode

logger = logging.getLogger(__name__)


def validate_update_metadata(sysmeta: SystemMetadata, pid: str) -> None:
    """Validate the chain fields of metadata submitted for an update.

    Raises:
        InvalidSystemMetadata: If the metadata is already obsoleted or
            obsoletes an object other than pid.
    """
    if sysmeta.obsoleted_by:
        raise InvalidSystemMetadata("A new object cannot be created in an obsoleted state", pid)
    if sysmeta.obsoletes and sysmeta.obsoletes != pid:
        raise InvalidSystemMetadata(
            "Obsoletes does not match the pid of the object being obsoleted", pid
        )


def assert_describes(sysmeta: SystemMetadata, current: SystemMetadata, pid: str) -> None:
    """Check that a metadata revision describes the stored object.

    Content is immutable, so identifier, size and checksum of a revision must
    match the stored metadata.

    Raises:
        InvalidSystemMetadata: On identifier, size or checksum mismatch.
    """
    if sysmeta.identifier != pid:
        raise InvalidSystemMetadata(
            f"System metadata identifier {sysmeta.identifier} does not match pid", pid
        )
    if sysmeta.size != current.size:
        raise InvalidSystemMetadata(
            f"System metadata size {sysmeta.size} does not match stored size {current.size}", pid
        )
    if (
        sysmeta.checksum.algorithm.upper() != current.checksum.algorithm.upper()
        or sysmeta.checksum.value.lower() != current.checksum.value.lower()
    ):
        raise InvalidSystemMetadata("System metadata checksum does not match stored checksum", pid)


def assert_not_obsoleted(sysmeta: SystemMetadata, pid: str) -> None:
    """Raise InvalidSystemMetadata if the chain is already closed at pid."""
    if sysmeta.obsoleted_by:
        raise InvalidSystemMetadata(
            "ObsoletedBy is already set on the object being obsoleted", pid
        )


def assert_not_deleted(package: DataPackage, pid: str) -> None:
    """Raise NotFound if the package carries a deletion marker."""
    if package.deleted is not None:
        raise NotFound("Deleted objects can't be updated", pid)


class VersionChainManager:
    """Implements update, updateMetadata and archive."""

    def __init__(
        self,
        repository: DataRepository,
        resolver: IdentifierResolver,
        synthesizer: SystemMetadataSynthesizer,
        access: AccessController,
        creator: ObjectCreator,
    ) -> None:
        self._repository = repository
        self._resolver = resolver
        self._synthesizer = synthesizer
        self._access = access
        self._creator = creator

    def _append_revision(self, package: DataPackage, sysmeta: SystemMetadata, pid: str) -> None:
        revision = to_file_content(sysmeta)
        with repository_errors(pid):
            self._repository.update(
                package.with_changes(modified=sysmeta.date_sys_metadata_modified),
                [revision],
                UpdateMode.APPEND,
            )

    def _restore(self, package: DataPackage, previous: SystemMetadata, pid: str) -> None:
        """Append the previous metadata of pid again, logging (not raising) failures.

        The caller re-raises the error that made the restore necessary.
        """
        try:
            self._append_revision(
                package, previous.with_changes(date_sys_metadata_modified=utc_now()), pid
            )
        except Exception:
            logger.exception("Restoring metadata of %s failed; it stays obsoleted", pid)

    def update(
        self,
        session: Session,
        pid: str,
        content: bytes | BinaryIO,
        new_pid: str,
        sysmeta: SystemMetadata,
    ) -> str:
        """Obsolete pid by a new object new_pid.

        Returns:
            new_pid.

        Raises:
            NotFound: pid unknown, invisible, foreign or deleted.
            InvalidSystemMetadata: Chain fields invalid or pid already obsoleted.
            IdentifierNotUnique: new_pid already exists.
            NotAuthorized: Session subject is not the creator of pid.
        """
        package = self._resolver.resolve(pid)
        validate_update_metadata(sysmeta, pid)
        self._creator.assert_not_exists(new_pid)
        self._access.assert_authorized(session, package, Permission.WRITE, pid)

        current = self._synthesizer.load_native(package)
        assert_not_obsoleted(current, pid)
        assert_not_deleted(package, pid)

        data = read_content(content)
        validate_new_metadata(new_pid, sysmeta, data)

        now = utc_now()
        self._append_revision(
            package,
            current.with_changes(obsoleted_by=new_pid, date_sys_metadata_modified=now),
            pid,
        )

        try:
            self._creator.create(
                session,
                new_pid,
                data,
                sysmeta.with_changes(obsoletes=pid, date_sys_metadata_modified=now),
            )
        except Exception:
            logger.warning("Creating %s failed; restoring metadata of %s", new_pid, pid)
            self._restore(package, current, pid)
            raise

        logger.info("Object %s obsoleted by %s", pid, new_pid)
        return new_pid

    def update_metadata(self, session: Session, pid: str, sysmeta: SystemMetadata) -> bool:
        """Append a new system metadata revision to pid.

        The stored chain fields are kept: only ``update`` links objects.

        Raises:
            NotFound: pid unknown, invisible, foreign or deleted.
            InvalidSystemMetadata: Chain fields invalid, serial version decreased,
                or identifier, size or checksum differ from the stored object.
            NotAuthorized: Session subject is not the creator of pid.
        """
        package = self._resolver.resolve(pid)
        validate_update_metadata(sysmeta, pid)
        self._access.assert_authorized(session, package, Permission.WRITE, pid)
        assert_not_deleted(package, pid)

        current = self._synthesizer.load_native(package)
        assert_describes(sysmeta, current, pid)
        current_serial = current.serial_version or 1
        if sysmeta.serial_version is not None and sysmeta.serial_version < current_serial:
            raise InvalidSystemMetadata(
                f"Serial version {sysmeta.serial_version} is lower than {current_serial}", pid
            )

        self._append_revision(
            package,
            sysmeta.with_changes(
                obsoletes=current.obsoletes,
                obsoleted_by=current.obsoleted_by,
                date_sys_metadata_modified=utc_now(),
            ),
            pid,
        )
        logger.info("Appended system metadata revision to %s", pid)
        return True

    def archive(self, session: Session, identifier: str) -> None:
        """Mark an object archived in its metadata and in the repository.

        Raises:
            NotFound: Identifier unknown, invisible or foreign.
            NotAuthorized: Session subject is not the creator.
        """
        package = self._resolver.resolve(identifier)
        self._access.assert_authorized(session, package, Permission.WRITE, identifier)

        current = self._synthesizer.load_native(package)
        self._append_revision(
            package,
            current.with_changes(archived=True, date_sys_metadata_modified=utc_now()),
            identifier,
        )
        key = stored_key(package, identifier)
        with repository_errors(identifier):
            self._repository.archive(key)
        logger.info("Archived object %s", identifier)
