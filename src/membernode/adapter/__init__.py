"""Member Node protocol adapter over a data repository."""

from membernode.adapter.access import AccessController
from membernode.adapter.checksum import CHECKSUM_ALGORITHM, validate_checksum_algorithm
from membernode.adapter.creation import DATA_ONE_TAG, ObjectCreator
from membernode.adapter.listing import MAX_PAGE_SIZE, ObjectListingProjector
from membernode.adapter.resolver import IdentifierResolver, is_visible
from membernode.adapter.service import (
    MemberNodeAdapter,
    build_adapter,
    build_doi_service,
    build_repository,
)
from membernode.adapter.sysmeta import (
    CONTENT_FILE,
    DEFAULT_FORMAT_ID,
    SYS_METADATA_FILE,
    SystemMetadataSynthesizer,
    is_native,
)
from membernode.adapter.versioning import VersionChainManager

__all__ = [
    "CHECKSUM_ALGORITHM",
    "CONTENT_FILE",
    "DATA_ONE_TAG",
    "DEFAULT_FORMAT_ID",
    "MAX_PAGE_SIZE",
    "SYS_METADATA_FILE",
    "AccessController",
    "IdentifierResolver",
    "MemberNodeAdapter",
    "ObjectCreator",
    "ObjectListingProjector",
    "SystemMetadataSynthesizer",
    "VersionChainManager",
    "build_adapter",
    "build_doi_service",
    "build_repository",
    "is_native",
    "is_visible",
    "validate_checksum_algorithm",
]
