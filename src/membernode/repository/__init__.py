"""Data repository abstraction for the Member Node adapter.

The adapter stores content and system metadata documents in a data
repository addressed by opaque package keys and alternative identifiers.

Backends:
- InMemoryDataRepository: process-local (dev/test)
- FilesystemDataRepository: local filesystem

Environment Variables:
    MEMBERNODE_DATA_REPO_PATH: Base directory for the filesystem backend
"""

from membernode.repository.base import DataRepository
from membernode.repository.errors import (
    DuplicateIdentifierError,
    PackageNotFoundError,
    RepositoryBackendError,
    RepositoryError,
)
from membernode.repository.filesystem import FilesystemDataRepository
from membernode.repository.memory import InMemoryDataRepository
from membernode.repository.models import (
    AlternativeIdentifier,
    DataPackage,
    DataPackageFile,
    FileInputContent,
    FileRevision,
    IdentifierType,
    PagingRequest,
    PagingResponse,
    RelationType,
    RepositoryStats,
    UpdateMode,
)

__all__ = [
    "AlternativeIdentifier",
    "DataPackage",
    "DataPackageFile",
    "DataRepository",
    "DuplicateIdentifierError",
    "FileInputContent",
    "FileRevision",
    "FilesystemDataRepository",
    "IdentifierType",
    "InMemoryDataRepository",
    "PackageNotFoundError",
    "PagingRequest",
    "PagingResponse",
    "RelationType",
    "RepositoryBackendError",
    "RepositoryError",
    "RepositoryStats",
    "UpdateMode",
]
