from datetime import datetime, timedelta

import pytest

from files_control.domain.errors import (
    ConfigError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from files_control.domain.events import (
    AccessKeyAddedEvent,
    FileDeletedEvent,
    FileRegisteredEvent,
)
from files_control.domain.file_storage import (
    DownloadGrant,
    FileMetadata,
    FileRegistry,
    StorageBackend,
    StorageBackends,
)

META = FileMetadata(size=4, sha256="ab" * 32, content_type="text/plain")


def register_s3(registry, storage_id="abc", keys=("alice",), **kwargs):
    kwargs.setdefault("metadata", META)
    return registry.register(storage_id, StorageBackend.S3, list(keys), **kwargs)


class TestRegister:
    def test_register_creates_file_and_access_entries(self, registry, ledger, events):
        summary = register_s3(registry, keys=[" alice ", "bob", "alice"], virtual_path=" /docs/a ")

        assert summary.storage_id == "abc"
        assert summary.backend is StorageBackend.S3
        assert summary.virtual_path == "/docs/a"
        assert ledger.list_access_keys("abc") == ["alice", "bob"]
        [event] = events.of_type(FileRegisteredEvent)
        assert event.access_key_count == 2

    def test_local_metadata_is_read_from_backend(self, registry, local_storage):
        local_storage.add("obj1", b"hello", "text/plain")
        summary = registry.register("obj1", StorageBackend.LOCAL, ["k"])
        assert summary.metadata.size == 5
        assert summary.metadata.content_type == "text/plain"

    def test_local_object_missing(self, registry, ledger):
        with pytest.raises(NotFoundError):
            registry.register("missing", StorageBackend.LOCAL, ["k"])
        assert ledger.get_file("missing") is None

    def test_requires_an_access_key(self, registry):
        with pytest.raises(ValidationError):
            register_s3(registry, keys=["  ", ""])

    def test_blank_storage_id(self, registry):
        with pytest.raises(ValidationError):
            register_s3(registry, storage_id="  ")

    def test_expiration_must_be_in_future(self, registry, clock):
        with pytest.raises(ValidationError):
            register_s3(registry, expires_at=clock.now)

    def test_naive_expiration_rejected(self, registry, ledger):
        with pytest.raises(ValidationError):
            register_s3(registry, expires_at=datetime(2099, 1, 1))
        assert ledger.get_file("abc") is None

    def test_duplicate_storage_id(self, registry):
        register_s3(registry)
        with pytest.raises(ConflictError):
            register_s3(registry)

    def test_duplicate_virtual_path(self, registry):
        register_s3(registry, storage_id="one", virtual_path="/same")
        with pytest.raises(ConflictError):
            register_s3(registry, storage_id="two", virtual_path="/same")


class TestAccessKeys:
    def test_add_returns_normalized_key(self, registry, events):
        register_s3(registry)
        assert registry.add_access_key("abc", "  carol ") == "carol"
        assert registry.has_access_key("abc", "carol") is True
        assert events.of_type(AccessKeyAddedEvent)[0].access_key == "carol"

    def test_add_duplicate_key(self, registry):
        register_s3(registry)
        with pytest.raises(ConflictError):
            registry.add_access_key("abc", "alice")

    def test_add_to_missing_file(self, registry):
        with pytest.raises(NotFoundError):
            registry.add_access_key("nope", "alice")

    def test_blank_key_rejected(self, registry):
        register_s3(registry)
        with pytest.raises(ValidationError):
            registry.add_access_key("abc", "   ")

    def test_last_key_cannot_be_removed(self, registry):
        register_s3(registry)
        with pytest.raises(ConflictError):
            registry.remove_access_key("abc", "alice")
        assert registry.list_access_keys("abc") == ["alice"]

    def test_remove_one_of_two(self, registry):
        register_s3(registry, keys=["alice", "bob"])
        registry.remove_access_key("abc", "alice")
        assert registry.list_access_keys("abc") == ["bob"]
        assert registry.has_access_key("abc", "alice") is False

    def test_remove_unknown_key(self, registry):
        register_s3(registry, keys=["alice", "bob"])
        with pytest.raises(NotFoundError):
            registry.remove_access_key("abc", "mallory")

    def test_has_access_key_blank(self, registry):
        register_s3(registry)
        assert registry.has_access_key("abc", "  ") is False


class TestQueries:
    def test_get_file_by_virtual_path(self, registry):
        register_s3(registry, virtual_path="/docs/a")
        assert registry.get_file_by_virtual_path(" /docs/a ").storage_id == "abc"
        assert registry.get_file_by_virtual_path("/docs/b") is None
        assert registry.get_file_by_virtual_path("  ") is None

    def test_list_files_pages_newest_first(self, registry, clock):
        for name in ("one", "two", "three"):
            register_s3(registry, storage_id=name)
            clock.advance(seconds=1)

        first = registry.list_files(limit=2)
        assert [f.storage_id for f in first.items] == ["three", "two"]
        second = registry.list_files(cursor=first.cursor, limit=2)
        assert [f.storage_id for f in second.items] == ["one"]
        assert second.is_done

    def test_list_files_by_access_key(self, registry):
        register_s3(registry, storage_id="one", keys=["alice"])
        register_s3(registry, storage_id="two", keys=["bob"])
        register_s3(registry, storage_id="three", keys=["alice", "bob"])
        page = registry.list_files_by_access_key("alice")
        assert [f.storage_id for f in page.items] == ["one", "three"]
        assert registry.list_files_by_access_key(" ").items == []


class TestUpdateExpiration:
    def test_past_timestamp_rejected(self, registry, clock):
        register_s3(registry)
        with pytest.raises(ValidationError):
            registry.update_expiration("abc", clock.now - timedelta(minutes=1))

    def test_naive_timestamp_rejected(self, registry):
        register_s3(registry)
        with pytest.raises(ValidationError):
            registry.update_expiration("abc", datetime(2099, 1, 1))

    def test_missing_file_checked_first(self, registry, clock):
        with pytest.raises(NotFoundError):
            registry.update_expiration("nope", clock.now - timedelta(minutes=1))

    def test_set_and_clear(self, registry, clock):
        register_s3(registry)
        later = clock.now + timedelta(days=1)
        assert registry.update_expiration("abc", later) == later
        assert registry.get_file("abc").expires_at == later
        registry.update_expiration("abc", None)
        assert registry.get_file("abc").expires_at is None


class TestDeleteFile:
    def test_cascade_removes_access_and_grants(self, registry, ledger, s3_storage, events, clock):
        s3_storage.add("abc")
        register_s3(registry)
        ledger.insert_grant(DownloadGrant.create("abc", now=clock.now))

        assert registry.delete_file("abc") is True

        assert ledger.get_file("abc") is None
        assert ledger.list_access_keys("abc") == []
        assert ledger.grants == {}
        assert "abc" not in s3_storage.objects
        [event] = events.of_type(FileDeletedEvent)
        assert event.reason == "deleted"

    def test_missing_file(self, registry):
        assert registry.delete_file("nope") is False

    def test_storage_failure_schedules_retry(self, registry, ledger, s3_storage, task_runner):
        s3_storage.add("abc")
        s3_storage.fail_delete = True
        register_s3(registry)

        assert registry.delete_file("abc") is True

        assert ledger.get_file("abc") is None
        assert task_runner.storage_deletes == [(StorageBackend.S3, "abc")]

    def test_unconfigured_backend_leaves_rows(self, ledger, local_storage, task_runner, clock):
        full = FileRegistry(
            ledger, StorageBackends(local=local_storage, s3=local_storage), task_runner, clock=clock
        )
        register_s3(full)
        local_only = FileRegistry(ledger, StorageBackends(local=local_storage), task_runner, clock=clock)

        with pytest.raises(ConfigError):
            local_only.delete_file("abc")
        assert ledger.get_file("abc") is not None
