"""Projection of repository pages into object listings."""

from __future__ import annotations

import logging
from datetime import datetime

from membernode.adapter.sysmeta import SystemMetadataSynthesizer
from membernode.adapter.translate import repository_errors, stored_key
from membernode.errors import InvalidRequest, InvalidSystemMetadata
from membernode.models import ObjectInfo, ObjectList
from membernode.repository import DataPackage, DataRepository, PagingRequest, RelationType

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 20


def page_bounds(start: int | None, count: int | None) -> PagingRequest:
    """Normalize listing bounds.

    Raises:
        InvalidRequest: If start is negative.
    """
    offset = 0 if start is None else start
    if offset < 0:
        raise InvalidRequest(f"Start must not be negative: {offset}")
    limit = MAX_PAGE_SIZE if count is None or count <= 0 else min(count, MAX_PAGE_SIZE)
    return PagingRequest(offset=offset, limit=limit)


class ObjectListingProjector:
    """Lists visible, non-deleted objects as protocol ObjectInfo entries."""

    def __init__(
        self,
        repository: DataRepository,
        synthesizer: SystemMetadataSynthesizer,
        scope_name: str,
    ) -> None:
        self._repository = repository
        self._synthesizer = synthesizer
        self._scope_name = scope_name

    def _identifier(self, package: DataPackage, fallback: str) -> str:
        key = stored_key(package, None)
        with repository_errors(str(key)):
            identifiers = self._repository.list_identifiers(
                key, RelationType.IS_ALTERNATIVE_OF
            )
        if identifiers:
            return identifiers[0].identifier
        return fallback

    def _object_info(self, package: DataPackage) -> ObjectInfo:
        sysmeta = self._synthesizer.system_metadata(package)
        return ObjectInfo(
            identifier=self._identifier(package, sysmeta.identifier),
            format_id=sysmeta.format_id,
            checksum=sysmeta.checksum,
            date_sys_metadata_modified=sysmeta.date_sys_metadata_modified,
            size=sysmeta.size,
        )

    def list_objects(
        self,
        from_date: datetime | None = None,
        to_date: datetime | None = None,
        format_id: str | None = None,
        start: int | None = None,
        count: int | None = None,
    ) -> ObjectList:
        """List a page of objects modified in ``[from_date, to_date)``.

        Packages whose stored metadata cannot be parsed are left out of the
        page and logged; ``total`` still counts them.

        Raises:
            InvalidRequest: If start is negative.
        """
        paging = page_bounds(start, count)
        with repository_errors(None):
            page = self._repository.list_packages(
                paging,
                from_date=from_date,
                to_date=to_date,
                deleted=False,
                repository_name=self._scope_name,
                format_id=format_id,
            )

        entries: list[ObjectInfo] = []
        for package in page.results:
            try:
                entries.append(self._object_info(package))
            except InvalidSystemMetadata as e:
                logger.warning("Skipping data package %s in listing: %s", package.key, e)
        logger.debug(
            "Listed %d objects (start=%d, total=%s)", len(entries), page.offset, page.count
        )
        return ObjectList(
            count=len(entries),
            start=page.offset,
            total=page.count if page.count is not None else len(entries),
            object_info=entries,
        )
