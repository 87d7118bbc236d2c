"""Member Node protocol adapter.

MemberNodeAdapter is the public surface of the package: it composes
identifier resolution, metadata synthesis, authorization, creation, the
version chain and listing into the Member Node operation set. Every
operation that targets an existing object goes through the resolver first.

The adapter is synchronous and request-scoped: it keeps no mutable state of
its own, and uniqueness of identifiers is enforced by the repository at
commit time.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import BinaryIO

from membernode.adapter.access import AccessController
from membernode.adapter.checksum import validate_checksum_algorithm
from membernode.adapter.creation import ObjectCreator
from membernode.adapter.listing import ObjectListingProjector
from membernode.adapter.resolver import IdentifierResolver
from membernode.adapter.sysmeta import SystemMetadataSynthesizer, content_file_name, utc_now
from membernode.adapter.translate import repository_errors, stored_key
from membernode.adapter.versioning import VersionChainManager
from membernode.config import MemberNodeConfig
from membernode.errors import NotFound, NotImplementedScheme, ServiceFailure
from membernode.identifiers import (
    DoiRegistrationError,
    DoiRegistrationService,
    DoiType,
    HttpDoiRegistrationService,
    LocalDoiMinter,
)
from membernode.models import (
    Checksum,
    DescribeResponse,
    Health,
    HealthStatus,
    ObjectList,
    Session,
    SystemMetadata,
)
from membernode.repository import (
    DataRepository,
    FilesystemDataRepository,
    InMemoryDataRepository,
)

logger = logging.getLogger(__name__)

DOI_SCHEME = "DOI"
UUID_SCHEME = "UUID"


class MemberNodeAdapter:
    """Member Node operations over a data repository."""

    def __init__(
        self,
        config: MemberNodeConfig,
        repository: DataRepository,
        doi_service: DoiRegistrationService,
    ) -> None:
        self._config = config
        self._repository = repository
        self._doi_service = doi_service

        self._resolver = IdentifierResolver(repository, config.scope_name)
        self._synthesizer = SystemMetadataSynthesizer(
            repository, config.node_id, config.scope_name
        )
        self._access = AccessController()
        self._creator = ObjectCreator(repository, self._resolver)
        self._versions = VersionChainManager(
            repository, self._resolver, self._synthesizer, self._access, self._creator
        )
        self._listing = ObjectListingProjector(repository, self._synthesizer, config.scope_name)

    @property
    def config(self) -> MemberNodeConfig:
        return self._config

    @property
    def repository(self) -> DataRepository:
        return self._repository

    @property
    def node_id(self) -> str:
        return self._config.node_id

    # Read operations

    def get(self, identifier: str) -> BinaryIO:
        """Open the content of an object.

        Raises:
            NotFound: Identifier unknown, not visible, or the package has no content.
        """
        package = self._resolver.resolve(identifier)
        file_name = content_file_name(package)
        if file_name is None:
            raise NotFound("Object has no content", identifier)

        key = stored_key(package, identifier)
        with repository_errors(identifier):
            stream = self._repository.get_file_stream(key, file_name)
        if stream is None:
            raise NotFound("Object content not found", identifier)
        return stream

    def describe(self, identifier: str) -> DescribeResponse:
        """Summary of an object derived from its system metadata."""
        return self._synthesizer.describe(self._resolver.resolve(identifier))

    def system_metadata(self, identifier: str) -> SystemMetadata:
        """Stored (native) or synthesized (foreign) system metadata of an object."""
        return self._synthesizer.system_metadata(self._resolver.resolve(identifier))

    def checksum(self, identifier: str, algorithm: str | None = None) -> Checksum:
        """Checksum of an object.

        Raises:
            InvalidRequest: The algorithm is not MD5.
            NotFound: Identifier unknown or not visible.
        """
        validate_checksum_algorithm(algorithm, identifier)
        return self.system_metadata(identifier).checksum

    def list_objects(
        self,
        from_date: datetime | None = None,
        to_date: datetime | None = None,
        format_id: str | None = None,
        start: int | None = None,
        count: int | None = None,
    ) -> ObjectList:
        """List objects visible in this node's scope, at most 20 per page."""
        return self._listing.list_objects(
            from_date=from_date,
            to_date=to_date,
            format_id=format_id,
            start=start,
            count=count,
        )

    # Write operations

    def create(
        self,
        session: Session,
        pid: str,
        content: bytes | BinaryIO,
        sysmeta: SystemMetadata,
    ) -> str:
        """Create a new object; see ObjectCreator.create."""
        return self._creator.create(session, pid, content, sysmeta)

    def update(
        self,
        session: Session,
        pid: str,
        content: bytes | BinaryIO,
        new_pid: str,
        sysmeta: SystemMetadata,
    ) -> str:
        """Obsolete pid by new_pid; see VersionChainManager.update."""
        return self._versions.update(session, pid, content, new_pid, sysmeta)

    def update_metadata(self, session: Session, pid: str, sysmeta: SystemMetadata) -> bool:
        """Append a system metadata revision; see VersionChainManager.update_metadata."""
        return self._versions.update_metadata(session, pid, sysmeta)

    def archive(self, session: Session, identifier: str) -> None:
        """Archive an object; see VersionChainManager.archive."""
        self._versions.archive(session, identifier)

    def delete(self, session: Session, pid: str) -> str:
        """Delete an object.

        Raises:
            NotFound: Identifier unknown or not visible.
        """
        package = self._resolver.resolve(pid)
        key = stored_key(package, pid)
        logger.info(
            "Deleting object %s (data package %s) for %s", pid, key, session.subject
        )
        with repository_errors(pid):
            self._repository.delete(key)
        return pid

    def generate_identifier(
        self,
        session: Session,
        scheme: str,
        fragment: str | None = None,
    ) -> str:
        """Mint a new identifier under a scheme.

        The fragment is accepted for protocol compatibility and ignored.

        Raises:
            NotImplementedScheme: The scheme is neither DOI nor UUID.
            ServiceFailure: The DOI service failed.
        """
        normalized = (scheme or "").strip().upper()
        if normalized == DOI_SCHEME:
            try:
                identifier = self._doi_service.generate(DoiType.DATA_PACKAGE).doi_name
            except DoiRegistrationError as e:
                logger.error("DOI generation failed: %s", e)
                raise ServiceFailure("DOI generation failed") from e
        elif normalized == UUID_SCHEME:
            identifier = str(uuid.uuid4())
        else:
            raise NotImplementedScheme(f"Identifier scheme {scheme} is not supported")

        logger.info("Generated %s identifier %s for %s", normalized, identifier, session.subject)
        return identifier

    # Monitoring

    def capacity_remaining(self) -> int:
        """Configured storage capacity minus the repository's total size, in bytes.

        Raises:
            ServiceFailure: The repository statistics are unavailable.
        """
        with repository_errors(None):
            stats = self._repository.stats()
        return self._config.storage_capacity_bytes - stats.total_size

    def health(self) -> Health:
        return Health(status=HealthStatus.HEALTHY, node_id=self.node_id, time=utc_now())

    def close(self) -> None:
        """Release resources; the adapter holds none of its own."""
        logger.debug("Member Node adapter closed")


def build_repository(config: MemberNodeConfig) -> DataRepository:
    """Construct the configured repository backend."""
    repo_config = config.data_repo_configuration
    if repo_config.backend == "memory":
        return InMemoryDataRepository()
    return FilesystemDataRepository(repo_config.data_repo_path)


def build_doi_service(config: MemberNodeConfig) -> DoiRegistrationService:
    """Remote DOI registry when an API URL is configured, local minting otherwise."""
    repo_config = config.data_repo_configuration
    if repo_config.doi_api_url:
        return HttpDoiRegistrationService(repo_config.doi_api_url)
    return LocalDoiMinter(repo_config.doi_common_prefix)


def build_adapter(
    config: MemberNodeConfig,
    repository: DataRepository | None = None,
    doi_service: DoiRegistrationService | None = None,
) -> MemberNodeAdapter:
    """Wire an adapter from configuration, with optional collaborator overrides."""
    if repository is None:
        repository = build_repository(config)
    if doi_service is None:
        doi_service = build_doi_service(config)
    logger.info(
        "Member Node %s serving scope %s from %s repository",
        config.node_id,
        config.scope_name,
        repository.backend_name,
    )
    return MemberNodeAdapter(config, repository, doi_service)
