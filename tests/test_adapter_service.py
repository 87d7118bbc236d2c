"""Tests for listing, checksum, identifier generation and monitoring.

- checksum accepts MD5 in any case (or no algorithm) and rejects others
- list_objects never returns more than 20 entries and rejects negative starts
- packages with unreadable stored metadata are left out of listings
- listing entries use the registered pid, falling back to the package key
- generate_identifier mints DOIs and UUIDs; other schemes are not implemented
- capacity_remaining subtracts the repository's total size
- a package returned without its key fails with ServiceFailure
"""

from __future__ import annotations

import re
import uuid
from datetime import timedelta
from pathlib import Path

import pytest

from membernode.adapter import MAX_PAGE_SIZE, MemberNodeAdapter, build_adapter
from membernode.adapter.sysmeta import SYS_METADATA_FILE
from membernode.config import MemberNodeConfig
from membernode.errors import InvalidRequest, NotFound, NotImplementedScheme, ServiceFailure
from membernode.identifiers import DOI, DoiRegistrationError, DoiRegistrationService, DoiType
from membernode.models import HealthStatus
from membernode.repository import (
    DataPackage,
    FileInputContent,
    InMemoryDataRepository,
    RepositoryBackendError,
    RepositoryStats,
)
from tests.fixtures.member_node import (
    FIXED_TIME,
    NODE_ID,
    OWNER,
    STORAGE_CAPACITY,
    add_foreign_package,
    make_config,
    make_sysmeta,
)


def _create_many(adapter: MemberNodeAdapter, count: int, prefix: str = "pid") -> None:
    for i in range(count):
        data = f"row {i}".encode()
        adapter.create(
            OWNER,
            f"{prefix}-{i:03d}",
            data,
            make_sysmeta(
                f"{prefix}-{i:03d}",
                data,
                date_sys_metadata_modified=FIXED_TIME + timedelta(minutes=i),
            ),
        )


class TestChecksum:
    @pytest.mark.parametrize("algorithm", ["MD5", "md5", "Md5", None, ""])
    def test_md5_in_any_case_or_absent(
        self, adapter: MemberNodeAdapter, algorithm: str | None
    ) -> None:
        data = b"checksummed"
        sysmeta = make_sysmeta("pid-sum", data)
        adapter.create(OWNER, "pid-sum", data, sysmeta)

        checksum = adapter.checksum("pid-sum", algorithm)

        assert checksum == sysmeta.checksum
        assert checksum == adapter.system_metadata("pid-sum").checksum

    @pytest.mark.parametrize("algorithm", ["SHA-256", "sha256", "SHA1"])
    def test_other_algorithms_rejected(self, adapter: MemberNodeAdapter, algorithm: str) -> None:
        data = b"checksummed"
        adapter.create(OWNER, "pid-sum", data, make_sysmeta("pid-sum", data))

        with pytest.raises(InvalidRequest) as exc_info:
            adapter.checksum("pid-sum", algorithm)

        assert exc_info.value.identifier == "pid-sum"

    def test_algorithm_checked_before_resolution(self, adapter: MemberNodeAdapter) -> None:
        with pytest.raises(InvalidRequest):
            adapter.checksum("pid-missing", "sha256")

    def test_unknown_identifier_not_found(self, adapter: MemberNodeAdapter) -> None:
        with pytest.raises(NotFound):
            adapter.checksum("pid-missing", "MD5")

    def test_foreign_checksum_is_package_checksum(
        self, adapter: MemberNodeAdapter, repository: InMemoryDataRepository
    ) -> None:
        package = add_foreign_package(repository)

        checksum = adapter.checksum(str(package.key))

        assert checksum.value == package.checksum
        assert checksum.algorithm == "MD5"


class TestListObjects:
    def test_page_size_is_clamped(self, adapter: MemberNodeAdapter) -> None:
        _create_many(adapter, 25)

        for count in (None, 500, MAX_PAGE_SIZE + 1):
            listing = adapter.list_objects(count=count)
            assert listing.count == MAX_PAGE_SIZE
            assert len(listing.object_info) == MAX_PAGE_SIZE
            assert listing.total == 25

    def test_paging_offsets(self, adapter: MemberNodeAdapter) -> None:
        _create_many(adapter, 25)

        listing = adapter.list_objects(start=20, count=10)

        assert listing.start == 20
        assert listing.count == 5
        assert [i.identifier for i in listing.object_info] == [
            f"pid-{i:03d}" for i in range(20, 25)
        ]

    def test_negative_start_rejected(self, adapter: MemberNodeAdapter) -> None:
        with pytest.raises(InvalidRequest):
            adapter.list_objects(start=-1)

    def test_entries_come_from_metadata(self, adapter: MemberNodeAdapter) -> None:
        data = b"listed content"
        sysmeta = make_sysmeta("pid-entry", data, date_sys_metadata_modified=FIXED_TIME)
        adapter.create(OWNER, "pid-entry", data, sysmeta)

        [entry] = adapter.list_objects().object_info

        assert entry.identifier == "pid-entry"
        assert entry.format_id == "text/csv"
        assert entry.checksum == sysmeta.checksum
        assert entry.size == len(data)
        assert entry.date_sys_metadata_modified == FIXED_TIME

    def test_foreign_entries_use_package_key(
        self, adapter: MemberNodeAdapter, repository: InMemoryDataRepository
    ) -> None:
        package = add_foreign_package(repository)

        [entry] = adapter.list_objects().object_info

        assert entry.identifier == str(package.key)

    def test_invisible_packages_not_listed(
        self, adapter: MemberNodeAdapter, repository: InMemoryDataRepository
    ) -> None:
        add_foreign_package(repository, shared_in=frozenset())

        listing = adapter.list_objects()

        assert listing.total == 0
        assert listing.object_info == []

    def test_unreadable_metadata_skipped(
        self, adapter: MemberNodeAdapter, repository: InMemoryDataRepository
    ) -> None:
        _create_many(adapter, 3)
        broken = repository.get_by_alternative_identifier("pid-001")
        assert broken is not None
        repository.update(
            broken, [FileInputContent(file_name=SYS_METADATA_FILE, data=b"{not json")]
        )

        listing = adapter.list_objects()

        assert [i.identifier for i in listing.object_info] == ["pid-000", "pid-002"]
        assert listing.count == 2
        assert listing.total == 3

    def test_date_range_and_format_filters(self, adapter: MemberNodeAdapter) -> None:
        _create_many(adapter, 5)

        in_range = adapter.list_objects(
            from_date=FIXED_TIME + timedelta(minutes=1),
            to_date=FIXED_TIME + timedelta(minutes=3),
        )
        other_format = adapter.list_objects(format_id="application/xml")

        assert [i.identifier for i in in_range.object_info] == ["pid-001", "pid-002"]
        assert other_format.total == 0


class StubDoiService(DoiRegistrationService):
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.requested: list[DoiType] = []

    def generate(self, doi_type: DoiType) -> DOI:
        self.requested.append(doi_type)
        if self.fail:
            raise DoiRegistrationError("registry down")
        return DOI(prefix="10.21373", suffix="dp.stub01")


class TestGenerateIdentifier:
    def test_doi_scheme_uses_minting_service(
        self, config: MemberNodeConfig, repository: InMemoryDataRepository
    ) -> None:
        service = StubDoiService()
        adapter = build_adapter(config, repository=repository, doi_service=service)

        identifier = adapter.generate_identifier(OWNER, "DOI", "ignored-fragment")

        assert identifier == "10.21373/dp.stub01"
        assert service.requested == [DoiType.DATA_PACKAGE]

    def test_local_minter_by_default(self, adapter: MemberNodeAdapter) -> None:
        assert re.fullmatch(r"10\.5072/dp\.[a-z0-9]{6}", adapter.generate_identifier(OWNER, "doi"))

    def test_uuid_scheme(self, adapter: MemberNodeAdapter) -> None:
        identifier = adapter.generate_identifier(OWNER, "UUID")

        assert str(uuid.UUID(identifier)) == identifier

    @pytest.mark.parametrize("scheme", ["ARK", "handle", ""])
    def test_other_schemes_not_implemented(self, adapter: MemberNodeAdapter, scheme: str) -> None:
        with pytest.raises(NotImplementedScheme) as exc_info:
            adapter.generate_identifier(OWNER, scheme)

        assert exc_info.value.name == "NotImplemented"

    def test_minting_failure_is_service_failure(
        self, config: MemberNodeConfig, repository: InMemoryDataRepository
    ) -> None:
        adapter = build_adapter(config, repository=repository, doi_service=StubDoiService(True))

        with pytest.raises(ServiceFailure):
            adapter.generate_identifier(OWNER, "DOI")


class TestMonitoring:
    def test_capacity_subtracts_total_size(
        self, adapter: MemberNodeAdapter, repository: InMemoryDataRepository
    ) -> None:
        assert adapter.capacity_remaining() == STORAGE_CAPACITY

        data = b"x" * 100
        adapter.create(OWNER, "pid-cap", data, make_sysmeta("pid-cap", data))

        assert adapter.capacity_remaining() == STORAGE_CAPACITY - repository.stats().total_size
        assert adapter.capacity_remaining() < STORAGE_CAPACITY - 100

    def test_capacity_in_megabytes(self) -> None:
        repository = InMemoryDataRepository()
        config = make_config().model_copy(
            update={"storage_capacity": 2, "storage_capacity_unit": "MB"}
        )
        adapter = build_adapter(config, repository=repository, doi_service=StubDoiService())
        data = b"x" * 100
        adapter.create(OWNER, "pid-mb", data, make_sysmeta("pid-mb", data))

        assert adapter.capacity_remaining() == 2 * 1024**2 - repository.stats().total_size

    def test_archived_objects_count_against_capacity(
        self, adapter: MemberNodeAdapter, repository: InMemoryDataRepository
    ) -> None:
        data = b"x" * 100
        adapter.create(OWNER, "pid-arch-cap", data, make_sysmeta("pid-arch-cap", data))
        before = adapter.capacity_remaining()

        adapter.archive(OWNER, "pid-arch-cap")

        assert adapter.capacity_remaining() <= before

    def test_repository_failure_is_service_failure(self, config: MemberNodeConfig) -> None:
        class BrokenStats(InMemoryDataRepository):
            def stats(self) -> RepositoryStats:
                raise RepositoryBackendError("stats unavailable")

        adapter = build_adapter(config, repository=BrokenStats(), doi_service=StubDoiService())

        with pytest.raises(ServiceFailure):
            adapter.capacity_remaining()

    def test_health_is_always_healthy(self, adapter: MemberNodeAdapter) -> None:
        health = adapter.health()

        assert health.status is HealthStatus.HEALTHY
        assert health.node_id == NODE_ID
        assert health.time.tzinfo is not None


class KeylessLookups(InMemoryDataRepository):
    """Returns packages without their key once ``strip_keys`` is set."""

    strip_keys = False

    def get_by_alternative_identifier(self, identifier: str) -> DataPackage | None:
        package = super().get_by_alternative_identifier(identifier)
        if package is None or not self.strip_keys:
            return package
        return package.with_changes(key=None)


class TestKeylessPackages:
    @pytest.fixture
    def keyless(self, config: MemberNodeConfig) -> tuple[MemberNodeAdapter, KeylessLookups]:
        repository = KeylessLookups()
        adapter = build_adapter(config, repository=repository, doi_service=StubDoiService())
        data = b"keyed content"
        adapter.create(OWNER, "pid-keyless", data, make_sysmeta("pid-keyless", data))
        repository.strip_keys = True
        return adapter, repository

    def test_get_is_service_failure(
        self, keyless: tuple[MemberNodeAdapter, KeylessLookups]
    ) -> None:
        adapter, _ = keyless

        with pytest.raises(ServiceFailure) as exc_info:
            adapter.get("pid-keyless")

        assert exc_info.value.identifier == "pid-keyless"

    def test_system_metadata_is_service_failure(
        self, keyless: tuple[MemberNodeAdapter, KeylessLookups]
    ) -> None:
        adapter, _ = keyless

        with pytest.raises(ServiceFailure):
            adapter.system_metadata("pid-keyless")

    def test_delete_is_service_failure_and_keeps_package(
        self, keyless: tuple[MemberNodeAdapter, KeylessLookups]
    ) -> None:
        adapter, repository = keyless

        with pytest.raises(ServiceFailure):
            adapter.delete(OWNER, "pid-keyless")

        repository.strip_keys = False
        assert adapter.get("pid-keyless").read() == b"keyed content"


class TestBuildAdapter:
    def test_filesystem_backend_from_config(self, tmp_path: Path) -> None:
        config = make_config(backend="filesystem", dataRepoPath=str(tmp_path))

        adapter = build_adapter(config)

        assert adapter.repository.backend_name == "filesystem"

    def test_memory_backend_from_config(self, config: MemberNodeConfig) -> None:
        assert build_adapter(config).repository.backend_name == "memory"
