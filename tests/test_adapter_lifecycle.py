"""Tests for object creation, the version chain, archive and delete.

- create then get returns the bytes unchanged; metadata carries the pid
- create with an existing pid fails IdentifierNotUnique without mutation
- update links old and new objects both ways; a second update of pid fails
- update on a deleted object fails NotFound without metadata mutation
- a failed create during update leaves the old object unlinked
- update_metadata appends revisions and keeps chain fields
- archive by the owner sets both flags; other subjects are rejected
"""

from __future__ import annotations

import io
from collections.abc import Sequence

import pytest

from membernode.adapter import MemberNodeAdapter, build_adapter
from membernode.config import MemberNodeConfig
from membernode.errors import (
    IdentifierNotUnique,
    InvalidSystemMetadata,
    NotAuthorized,
    NotFound,
    ServiceFailure,
)
from membernode.identifiers import LocalDoiMinter
from membernode.models import Checksum
from membernode.repository import (
    DataPackage,
    FileInputContent,
    InMemoryDataRepository,
    RelationType,
    RepositoryBackendError,
    UpdateMode,
)
from tests.fixtures.member_node import (
    FIXED_TIME,
    OTHER,
    OWNER,
    OWNER_SUBJECT,
    SCOPE_NAME,
    add_foreign_package,
    make_sysmeta,
)

SIDECAR = "dataone_system_metadata.json"


def _create(adapter: MemberNodeAdapter, pid: str, data: bytes = b"col\n1\n") -> bytes:
    adapter.create(OWNER, pid, data, make_sysmeta(pid, data))
    return data


def _read(adapter: MemberNodeAdapter, pid: str) -> bytes:
    with adapter.get(pid) as stream:
        return stream.read()


def _sidecar_revisions(repository: InMemoryDataRepository, pid: str) -> int:
    package = repository.get_by_alternative_identifier(pid)
    assert package is not None and package.key is not None
    return len(repository.list_file_revisions(package.key, SIDECAR))


class TestCreate:
    def test_create_then_get_returns_bytes(self, adapter: MemberNodeAdapter) -> None:
        data = b"\x00\x01binary\xffcontent"

        assert adapter.create(OWNER, "pid-1", data, make_sysmeta("pid-1", data)) == "pid-1"

        assert _read(adapter, "pid-1") == data
        assert adapter.system_metadata("pid-1").identifier == "pid-1"

    def test_create_accepts_streams(self, adapter: MemberNodeAdapter) -> None:
        data = b"streamed"
        adapter.create(OWNER, "pid-stream", io.BytesIO(data), make_sysmeta("pid-stream", data))

        assert _read(adapter, "pid-stream") == data

    def test_package_fields(
        self, adapter: MemberNodeAdapter, repository: InMemoryDataRepository
    ) -> None:
        data = b"fields"
        adapter.create(
            OWNER,
            "pid-fields",
            data,
            make_sysmeta("pid-fields", data, date_sys_metadata_modified=FIXED_TIME),
        )

        package = repository.get_by_alternative_identifier("pid-fields")

        assert package is not None
        assert package.title == "pid-fields"
        assert package.created_by == OWNER_SUBJECT
        assert package.created == package.modified == FIXED_TIME
        assert package.tags == frozenset({"DataOne"})
        assert package.published_in == SCOPE_NAME
        assert [f.file_name for f in package.files] == ["content", SIDECAR]
        assert package.files[0].format == "text/csv"
        assert package.key is not None
        identifiers = repository.list_identifiers(package.key, RelationType.IS_ALTERNATIVE_OF)
        assert [i.identifier for i in identifiers] == ["pid-fields"]

    def test_missing_timestamp_is_filled(self, adapter: MemberNodeAdapter) -> None:
        _create(adapter, "pid-time")

        assert adapter.system_metadata("pid-time").date_sys_metadata_modified is not None

    def test_existing_pid_rejected_without_mutation(
        self, adapter: MemberNodeAdapter, repository: InMemoryDataRepository
    ) -> None:
        _create(adapter, "pid-dup")
        before = repository.stats()

        with pytest.raises(IdentifierNotUnique) as exc_info:
            _create(adapter, "pid-dup", b"other content")

        assert exc_info.value.identifier == "pid-dup"
        assert repository.stats() == before
        assert _sidecar_revisions(repository, "pid-dup") == 1

    def test_existing_package_key_rejected(
        self, adapter: MemberNodeAdapter, repository: InMemoryDataRepository
    ) -> None:
        package = add_foreign_package(repository)

        with pytest.raises(IdentifierNotUnique):
            _create(adapter, str(package.key))

    def test_commit_time_duplicate_is_reported(self, config: MemberNodeConfig) -> None:
        """A duplicate detected only by the repository still maps to IdentifierNotUnique."""

        class Blind(InMemoryDataRepository):
            def get_by_alternative_identifier(self, identifier: str) -> DataPackage | None:
                return None

        blind_repository = Blind()
        blind = build_adapter(
            config, repository=blind_repository, doi_service=LocalDoiMinter("10.5072")
        )
        _create(blind, "pid-race")

        with pytest.raises(IdentifierNotUnique):
            _create(blind, "pid-race")

    def test_identifier_mismatch_rejected(self, adapter: MemberNodeAdapter) -> None:
        data = b"x"
        with pytest.raises(InvalidSystemMetadata):
            adapter.create(OWNER, "pid-a", data, make_sysmeta("pid-b", data))

    def test_obsoleted_metadata_rejected(self, adapter: MemberNodeAdapter) -> None:
        data = b"x"
        with pytest.raises(InvalidSystemMetadata):
            adapter.create(OWNER, "pid-o", data, make_sysmeta("pid-o", data, obsoleted_by="next"))

    def test_size_mismatch_rejected(self, adapter: MemberNodeAdapter) -> None:
        data = b"four"
        with pytest.raises(InvalidSystemMetadata, match="size"):
            adapter.create(OWNER, "pid-s", data, make_sysmeta("pid-s", data, size=99))

    def test_checksum_mismatch_rejected(
        self, adapter: MemberNodeAdapter, repository: InMemoryDataRepository
    ) -> None:
        data = b"four"
        bad = Checksum(value="0" * 32, algorithm="MD5")

        with pytest.raises(InvalidSystemMetadata, match="checksum"):
            adapter.create(OWNER, "pid-c", data, make_sysmeta("pid-c", data, checksum=bad))

        assert repository.stats().package_count == 0


class TestUpdate:
    def test_update_links_chain_both_ways(self, adapter: MemberNodeAdapter) -> None:
        old_data = _create(adapter, "pid-v1")
        new_data = b"col\n2\n"

        result = adapter.update(
            OWNER, "pid-v1", new_data, "pid-v2", make_sysmeta("pid-v2", new_data)
        )

        assert result == "pid-v2"
        old = adapter.system_metadata("pid-v1")
        new = adapter.system_metadata("pid-v2")
        assert old.obsoleted_by == "pid-v2"
        assert new.obsoletes == "pid-v1"
        assert old.date_sys_metadata_modified == new.date_sys_metadata_modified
        assert _read(adapter, "pid-v1") == old_data
        assert _read(adapter, "pid-v2") == new_data

    def test_previous_metadata_revision_stays_available(
        self, adapter: MemberNodeAdapter, repository: InMemoryDataRepository
    ) -> None:
        _create(adapter, "pid-hist")
        data = b"next"
        adapter.update(OWNER, "pid-hist", data, "pid-hist-2", make_sysmeta("pid-hist-2", data))

        assert _sidecar_revisions(repository, "pid-hist") == 2

    def test_second_update_of_pid_fails(self, adapter: MemberNodeAdapter) -> None:
        _create(adapter, "pid-once")
        data = b"second"
        adapter.update(OWNER, "pid-once", data, "pid-once-2", make_sysmeta("pid-once-2", data))

        with pytest.raises(InvalidSystemMetadata):
            adapter.update(OWNER, "pid-once", data, "pid-once-3", make_sysmeta("pid-once-3", data))

        with pytest.raises(NotFound):
            adapter.system_metadata("pid-once-3")

    def test_update_of_deleted_object_fails_without_mutation(
        self, adapter: MemberNodeAdapter, repository: InMemoryDataRepository
    ) -> None:
        _create(adapter, "pid-gone")
        adapter.delete(OWNER, "pid-gone")
        data = b"revived"

        with pytest.raises(NotFound, match="Deleted"):
            adapter.update(OWNER, "pid-gone", data, "pid-gone-2", make_sysmeta("pid-gone-2", data))

        assert _sidecar_revisions(repository, "pid-gone") == 1
        assert adapter.system_metadata("pid-gone").obsoleted_by is None
        assert repository.get_by_alternative_identifier("pid-gone-2") is None

    def test_update_by_other_subject_rejected(self, adapter: MemberNodeAdapter) -> None:
        _create(adapter, "pid-owned")
        data = b"hijack"

        with pytest.raises(NotAuthorized):
            adapter.update(OTHER, "pid-owned", data, "pid-hijack", make_sysmeta("pid-hijack", data))

        assert adapter.system_metadata("pid-owned").obsoleted_by is None

    def test_existing_new_pid_rejected(self, adapter: MemberNodeAdapter) -> None:
        _create(adapter, "pid-base")
        taken = _create(adapter, "pid-taken")

        with pytest.raises(IdentifierNotUnique):
            adapter.update(OWNER, "pid-base", taken, "pid-taken", make_sysmeta("pid-taken", taken))

    def test_obsoletes_must_match_pid(self, adapter: MemberNodeAdapter) -> None:
        _create(adapter, "pid-chain")
        data = b"wrong link"
        sysmeta = make_sysmeta("pid-chain-2", data, obsoletes="someone-else")

        with pytest.raises(InvalidSystemMetadata):
            adapter.update(OWNER, "pid-chain", data, "pid-chain-2", sysmeta)

    def test_obsoleted_new_metadata_rejected(self, adapter: MemberNodeAdapter) -> None:
        _create(adapter, "pid-x")
        data = b"y"
        sysmeta = make_sysmeta("pid-y", data, obsoleted_by="pid-z")

        with pytest.raises(InvalidSystemMetadata):
            adapter.update(OWNER, "pid-x", data, "pid-y", sysmeta)

    def test_update_of_unknown_pid_fails(self, adapter: MemberNodeAdapter) -> None:
        data = b"z"
        with pytest.raises(NotFound):
            adapter.update(OWNER, "nope", data, "pid-new", make_sysmeta("pid-new", data))

    def test_update_of_foreign_object_fails(
        self, adapter: MemberNodeAdapter, repository: InMemoryDataRepository
    ) -> None:
        package = add_foreign_package(repository, created_by=OWNER_SUBJECT)
        data = b"z"

        with pytest.raises(NotFound):
            adapter.update(
                OWNER, str(package.key), data, "pid-new", make_sysmeta("pid-new", data)
            )

    def test_failed_create_restores_old_metadata(self, config: MemberNodeConfig) -> None:
        """When the new object cannot be stored, pid is left unlinked."""

        class FailingCreates(InMemoryDataRepository):
            fail = False

            def create(
                self, package: DataPackage, files: Sequence[FileInputContent]
            ) -> DataPackage:
                if self.fail:
                    raise RepositoryBackendError("disk full")
                return super().create(package, files)

        repository = FailingCreates()
        adapter = build_adapter(
            config, repository=repository, doi_service=LocalDoiMinter("10.5072")
        )
        _create(adapter, "pid-keep")
        repository.fail = True
        data = b"lost"

        with pytest.raises(ServiceFailure):
            adapter.update(OWNER, "pid-keep", data, "pid-lost", make_sysmeta("pid-lost", data))

        assert adapter.system_metadata("pid-keep").obsoleted_by is None
        assert _sidecar_revisions(repository, "pid-keep") == 3

    def test_unexpected_create_error_also_restores(self, config: MemberNodeConfig) -> None:
        class CrashingCreates(InMemoryDataRepository):
            fail = False

            def create(
                self, package: DataPackage, files: Sequence[FileInputContent]
            ) -> DataPackage:
                if self.fail:
                    raise RuntimeError("backend crashed")
                return super().create(package, files)

        repository = CrashingCreates()
        adapter = build_adapter(
            config, repository=repository, doi_service=LocalDoiMinter("10.5072")
        )
        _create(adapter, "pid-keep")
        repository.fail = True
        data = b"lost"

        with pytest.raises(RuntimeError, match="backend crashed"):
            adapter.update(OWNER, "pid-keep", data, "pid-lost", make_sysmeta("pid-lost", data))

        assert adapter.system_metadata("pid-keep").obsoleted_by is None

    def test_failed_restore_keeps_original_error(self, config: MemberNodeConfig) -> None:
        """A failing restore is logged; the create failure is what the caller sees."""

        class FailingWrites(InMemoryDataRepository):
            fail = False
            updates_while_failing = 0

            def create(
                self, package: DataPackage, files: Sequence[FileInputContent]
            ) -> DataPackage:
                if self.fail:
                    raise RepositoryBackendError("disk full")
                return super().create(package, files)

            def update(
                self,
                package: DataPackage,
                files: Sequence[FileInputContent],
                mode: UpdateMode = UpdateMode.APPEND,
            ) -> DataPackage:
                if self.fail:
                    self.updates_while_failing += 1
                    if self.updates_while_failing > 1:
                        raise RepositoryBackendError("index locked")
                return super().update(package, files, mode)

        repository = FailingWrites()
        adapter = build_adapter(
            config, repository=repository, doi_service=LocalDoiMinter("10.5072")
        )
        _create(adapter, "pid-keep")
        repository.fail = True
        data = b"lost"

        with pytest.raises(ServiceFailure) as exc_info:
            adapter.update(OWNER, "pid-keep", data, "pid-lost", make_sysmeta("pid-lost", data))

        assert exc_info.value.identifier == "pid-lost"
        assert "disk full" in str(exc_info.value.__cause__)
        assert repository.updates_while_failing == 2


class TestUpdateMetadata:
    def test_appends_revision(
        self, adapter: MemberNodeAdapter, repository: InMemoryDataRepository
    ) -> None:
        data = _create(adapter, "pid-meta")
        revised = make_sysmeta("pid-meta", data, serial_version=2, format_id="text/plain")

        assert adapter.update_metadata(OWNER, "pid-meta", revised) is True

        stored = adapter.system_metadata("pid-meta")
        assert stored.serial_version == 2
        assert stored.format_id == "text/plain"
        assert _sidecar_revisions(repository, "pid-meta") == 2

    def test_identifier_must_match_pid(
        self, adapter: MemberNodeAdapter, repository: InMemoryDataRepository
    ) -> None:
        data = _create(adapter, "doi:10.5072/A")
        renamed = make_sysmeta("doi:10.5072/SOMETHING_ELSE", data, serial_version=2)

        with pytest.raises(InvalidSystemMetadata, match="identifier"):
            adapter.update_metadata(OWNER, "doi:10.5072/A", renamed)

        assert adapter.system_metadata("doi:10.5072/A").identifier == "doi:10.5072/A"
        assert _sidecar_revisions(repository, "doi:10.5072/A") == 1

    @pytest.mark.parametrize(
        "changes",
        [
            {"size": 999},
            {"checksum": Checksum(value="0" * 32, algorithm="MD5")},
            {"checksum": Checksum(value="abc", algorithm="SHA-256")},
        ],
    )
    def test_content_description_cannot_change(
        self, adapter: MemberNodeAdapter, changes: dict[str, object]
    ) -> None:
        data = _create(adapter, "pid-fixed")
        original = adapter.checksum("pid-fixed")
        forged = make_sysmeta("pid-fixed", data, serial_version=2, **changes)

        with pytest.raises(InvalidSystemMetadata):
            adapter.update_metadata(OWNER, "pid-fixed", forged)

        assert adapter.checksum("pid-fixed") == original
        assert adapter.describe("pid-fixed").content_length == len(data)

    def test_checksum_case_is_ignored(self, adapter: MemberNodeAdapter) -> None:
        data = _create(adapter, "pid-case")
        stored = adapter.system_metadata("pid-case").checksum
        revised = make_sysmeta(
            "pid-case",
            data,
            serial_version=2,
            checksum=Checksum(value=stored.value.upper(), algorithm="md5"),
        )

        assert adapter.update_metadata(OWNER, "pid-case", revised) is True

    def test_keeps_chain_fields(self, adapter: MemberNodeAdapter) -> None:
        _create(adapter, "pid-m1")
        data = b"m2"
        adapter.update(OWNER, "pid-m1", data, "pid-m2", make_sysmeta("pid-m2", data))

        adapter.update_metadata(OWNER, "pid-m2", make_sysmeta("pid-m2", data, serial_version=2))

        assert adapter.system_metadata("pid-m2").obsoletes == "pid-m1"

    def test_lower_serial_version_rejected(self, adapter: MemberNodeAdapter) -> None:
        data = b"serial"
        adapter.create(OWNER, "pid-sv", data, make_sysmeta("pid-sv", data, serial_version=5))

        with pytest.raises(InvalidSystemMetadata, match="Serial version"):
            adapter.update_metadata(OWNER, "pid-sv", make_sysmeta("pid-sv", data, serial_version=4))

    def test_other_subject_rejected(self, adapter: MemberNodeAdapter) -> None:
        data = _create(adapter, "pid-mine")

        with pytest.raises(NotAuthorized):
            adapter.update_metadata(OTHER, "pid-mine", make_sysmeta("pid-mine", data))

    def test_obsoleted_by_in_request_rejected(self, adapter: MemberNodeAdapter) -> None:
        data = _create(adapter, "pid-req")

        with pytest.raises(InvalidSystemMetadata):
            adapter.update_metadata(
                OWNER, "pid-req", make_sysmeta("pid-req", data, obsoleted_by="pid-other")
            )

    def test_deleted_object_rejected(self, adapter: MemberNodeAdapter) -> None:
        data = _create(adapter, "pid-dm")
        adapter.delete(OWNER, "pid-dm")

        with pytest.raises(NotFound):
            adapter.update_metadata(OWNER, "pid-dm", make_sysmeta("pid-dm", data))

    def test_foreign_object_unsupported(
        self, adapter: MemberNodeAdapter, repository: InMemoryDataRepository
    ) -> None:
        package = add_foreign_package(repository, created_by=OWNER_SUBJECT)
        key = str(package.key)

        with pytest.raises(NotFound):
            adapter.update_metadata(OWNER, key, make_sysmeta(key, b"x"))


class TestArchive:
    def test_owner_archive_sets_both_flags(
        self, adapter: MemberNodeAdapter, repository: InMemoryDataRepository
    ) -> None:
        _create(adapter, "pid-arch")

        adapter.archive(OWNER, "pid-arch")

        assert adapter.system_metadata("pid-arch").archived is True
        package = repository.get_by_alternative_identifier("pid-arch")
        assert package is not None
        assert package.archived is not None

    def test_other_subject_cannot_archive(
        self, adapter: MemberNodeAdapter, repository: InMemoryDataRepository
    ) -> None:
        _create(adapter, "pid-keep-live")
        before = adapter.system_metadata("pid-keep-live")

        with pytest.raises(NotAuthorized):
            adapter.archive(OTHER, "pid-keep-live")

        assert adapter.system_metadata("pid-keep-live") == before
        package = repository.get_by_alternative_identifier("pid-keep-live")
        assert package is not None
        assert package.archived is None

    def test_archived_objects_stay_readable(self, adapter: MemberNodeAdapter) -> None:
        data = _create(adapter, "pid-read-archived")
        adapter.archive(OWNER, "pid-read-archived")

        assert _read(adapter, "pid-read-archived") == data

    def test_archive_unknown_fails(self, adapter: MemberNodeAdapter) -> None:
        with pytest.raises(NotFound):
            adapter.archive(OWNER, "pid-unknown")


class TestDelete:
    def test_delete_returns_pid_and_marks_package(
        self, adapter: MemberNodeAdapter, repository: InMemoryDataRepository
    ) -> None:
        _create(adapter, "pid-del")

        assert adapter.delete(OWNER, "pid-del") == "pid-del"

        package = repository.get_by_alternative_identifier("pid-del")
        assert package is not None
        assert package.deleted is not None

    def test_deleted_objects_are_not_listed(self, adapter: MemberNodeAdapter) -> None:
        _create(adapter, "pid-listed")
        _create(adapter, "pid-unlisted")
        adapter.delete(OWNER, "pid-unlisted")

        listing = adapter.list_objects()

        assert [i.identifier for i in listing.object_info] == ["pid-listed"]

    def test_deleted_pid_cannot_be_reused(self, adapter: MemberNodeAdapter) -> None:
        _create(adapter, "pid-once-only")
        adapter.delete(OWNER, "pid-once-only")

        with pytest.raises(IdentifierNotUnique):
            _create(adapter, "pid-once-only")

    def test_delete_unknown_fails(self, adapter: MemberNodeAdapter) -> None:
        with pytest.raises(NotFound):
            adapter.delete(OWNER, "pid-never")
