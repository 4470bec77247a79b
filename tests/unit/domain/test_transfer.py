from unittest.mock import patch

import pytest

from files_control.domain.errors import (
    ConfigError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from files_control.domain.events import FileTransferredEvent
from files_control.domain.file_storage import (
    FileMetadata,
    FileRegistry,
    StorageBackend,
    StorageBackends,
    TransferOrchestrator,
)

META = FileMetadata(size=4, sha256="00")


@pytest.fixture
def local_file(registry, local_storage):
    local_storage.add("abc", b"payload", "text/plain")
    registry.register("abc", StorageBackend.LOCAL, ["alice", "bob"])
    return "abc"


class TestLocalToS3:
    def test_trailing_slash_appends_storage_id(self, transfers, local_file):
        summary = transfers.transfer(local_file, StorageBackend.S3, virtual_path="/a/")
        assert summary.virtual_path == "/a/abc"
        assert summary.storage_id == "/a/abc"
        assert summary.backend is StorageBackend.S3

    def test_trailing_slash_keeps_current_name(self, transfers, registry, local_storage):
        local_storage.add("obj")
        registry.register("obj", StorageBackend.LOCAL, ["k"], virtual_path="/old/report.pdf")
        summary = transfers.transfer("obj", StorageBackend.S3, virtual_path="/new/")
        assert summary.virtual_path == "/new/report.pdf"

    def test_bytes_and_references_move(self, transfers, grants, ledger, local_storage,
                                       s3_storage, task_runner, events, local_file):
        grant = grants.issue(local_file, max_uses=None)

        summary = transfers.transfer(local_file, StorageBackend.S3, virtual_path="docs/abc.txt")

        new_id = summary.storage_id
        assert s3_storage.objects[new_id] == (b"payload", "text/plain")
        assert ledger.get_file(local_file) is None
        assert ledger.list_access_keys(new_id) == ["alice", "bob"]
        assert ledger.get_grant(grant.grant_id).storage_id == new_id
        assert task_runner.storage_deletes == [(StorageBackend.LOCAL, local_file)]
        [event] = events.of_type(FileTransferredEvent)
        assert event.previous_storage_id == local_file
        assert grants.consume(grant.grant_id, access_key="alice").download_url == f"memory://s3/{new_id}"

    def test_key_falls_back_to_uuid(self, transfers, local_file):
        summary = transfers.transfer(local_file, StorageBackend.S3)
        assert summary.storage_id != local_file
        assert summary.virtual_path is None

    def test_destination_write_failure_leaves_file_unchanged(self, transfers, ledger, s3_storage,
                                                            task_runner, local_file):
        s3_storage.fail_put = True
        with pytest.raises(IOError):
            transfers.transfer(local_file, StorageBackend.S3, virtual_path="/a/")

        file = ledger.get_file(local_file)
        assert file.backend is StorageBackend.LOCAL
        assert file.virtual_path is None
        assert task_runner.storage_deletes == []

    def test_source_object_missing(self, transfers, local_storage, local_file):
        del local_storage.objects[local_file]
        with pytest.raises(NotFoundError):
            transfers.transfer(local_file, StorageBackend.S3)

    def test_s3_not_configured(self, ledger, local_storage, fetcher, task_runner, clock, local_file):
        orchestrator = TransferOrchestrator(
            ledger, StorageBackends(local=local_storage), fetcher, task_runner, clock=clock
        )
        with pytest.raises(ConfigError):
            orchestrator.transfer(local_file, StorageBackend.S3)


class TestS3ToLocal:
    def test_local_backend_assigns_id(self, transfers, registry, s3_storage, local_storage):
        s3_storage.add("remote/key", b"xyz")
        registry.register("remote/key", StorageBackend.S3, ["k"], metadata=META,
                          virtual_path="remote/key")

        summary = transfers.transfer("remote/key", StorageBackend.LOCAL)

        assert summary.backend is StorageBackend.LOCAL
        assert summary.storage_id in local_storage.objects
        assert summary.virtual_path == "remote/key"


class TestPrepare:
    def test_missing_file(self, transfers):
        with pytest.raises(NotFoundError):
            transfers.prepare("nope", StorageBackend.S3)

    def test_blank_path(self, transfers, local_file):
        with pytest.raises(ValidationError):
            transfers.prepare(local_file, StorageBackend.S3, virtual_path="  ")

    def test_same_backend_without_rename(self, transfers, local_file):
        with pytest.raises(ConflictError):
            transfers.prepare(local_file, StorageBackend.LOCAL)

    def test_path_taken_by_other_file(self, transfers, registry, local_file):
        registry.register("other", StorageBackend.S3, ["k"], metadata=META, virtual_path="/taken")
        with pytest.raises(ConflictError):
            transfers.prepare(local_file, StorageBackend.S3, virtual_path="/taken")

    def test_planned_key_taken(self, transfers, registry, local_file):
        registry.register("wanted", StorageBackend.S3, ["k"], metadata=META)
        with pytest.raises(ConflictError):
            transfers.prepare(local_file, StorageBackend.S3, virtual_path="wanted")

    def test_prepare_has_no_side_effects(self, transfers, ledger, s3_storage, fetcher, local_file):
        plan = transfers.prepare(local_file, StorageBackend.S3, virtual_path="/a/")
        assert plan.planned_storage_id == "/a/abc"
        assert plan.rename_only is False
        assert s3_storage.objects == {}
        assert fetcher.fetched == []
        assert ledger.get_file(local_file).backend is StorageBackend.LOCAL


class TestRenameOnly:
    def test_local_rename(self, transfers, ledger, fetcher, local_file):
        summary = transfers.transfer(local_file, StorageBackend.LOCAL, virtual_path="/renamed")
        assert summary.storage_id == local_file
        assert summary.virtual_path == "/renamed"
        assert ledger.get_file(local_file).virtual_path == "/renamed"
        assert fetcher.fetched == []

    def test_s3_same_key(self, transfers, registry, s3_storage, fetcher):
        s3_storage.add("k1")
        registry.register("k1", StorageBackend.S3, ["k"], metadata=META)
        summary = transfers.transfer("k1", StorageBackend.S3, virtual_path="k1")
        assert summary.storage_id == "k1"
        assert summary.virtual_path == "k1"
        assert fetcher.fetched == []

    def test_s3_new_key_copies(self, transfers, registry, s3_storage, task_runner):
        s3_storage.add("k1", b"bytes")
        registry.register("k1", StorageBackend.S3, ["k"], metadata=META)
        summary = transfers.transfer("k1", StorageBackend.S3, virtual_path="k2")
        assert summary.storage_id == "k2"
        assert s3_storage.objects["k2"][0] == b"bytes"
        assert task_runner.storage_deletes == [(StorageBackend.S3, "k1")]


class TestCommitFailure:
    def test_destination_discarded_and_error_raised(self, transfers, ledger, task_runner, local_file):
        plan = transfers.prepare(local_file, StorageBackend.S3, virtual_path="dest")
        new_id = transfers.execute(plan)

        with patch.object(ledger, "repoint_file", side_effect=ConflictError("raced")):
            with pytest.raises(ConflictError):
                transfers.commit(plan, new_id)

        assert task_runner.storage_deletes == [(StorageBackend.S3, "dest")]
        assert ledger.get_file(local_file).backend is StorageBackend.LOCAL

    def test_backend_changed_concurrently(self, transfers, ledger, task_runner, local_file):
        plan = transfers.prepare(local_file, StorageBackend.S3, virtual_path="dest")
        new_id = transfers.execute(plan)
        ledger.files[local_file].backend = StorageBackend.S3

        with pytest.raises(ConflictError):
            transfers.commit(plan, new_id)
        assert task_runner.storage_deletes == [(StorageBackend.S3, "dest")]

    def test_key_owned_by_other_file_is_kept(self, transfers, registry, task_runner, local_file):
        plan = transfers.prepare(local_file, StorageBackend.S3, virtual_path="dest")
        new_id = transfers.execute(plan)
        registry.register("dest", StorageBackend.S3, ["k"], metadata=META)

        with pytest.raises(ConflictError):
            transfers.commit(plan, new_id)
        assert task_runner.storage_deletes == []
