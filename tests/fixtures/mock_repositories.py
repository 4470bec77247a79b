"""
Mock Repository Implementations

In-memory implementation of FileLedgerRepository for unit testing.
Mirrors the Redis repository's semantics (conflicts, cascades, repointing,
compare-and-swap grant use) and records calls for assertions.
"""

import copy
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from files_control.domain.errors import ConflictError, NotFoundError, ValidationError
from files_control.domain.file_storage.entities import DownloadGrant, PendingUpload, StoredFile
from files_control.domain.file_storage.repositories import FileLedgerRepository
from files_control.domain.file_storage.value_objects import Page, StorageBackend


def _page(items: List[Any], cursor: Optional[str], limit: int) -> Page:
    offset = int(cursor) if cursor else 0
    if offset < 0:
        raise ValidationError(f"Invalid cursor: {cursor!r}")
    chunk = items[offset:offset + limit]
    next_offset = offset + limit
    return Page(items=chunk, cursor=str(next_offset) if next_offset < len(items) else None)


class InMemoryFileLedgerRepository(FileLedgerRepository):
    """
    Dict-backed ledger.

    Rows are copied on the way in and out so callers cannot mutate stored
    state by accident, the same way a real store would behave.
    """

    def __init__(self):
        self.files: Dict[str, StoredFile] = {}
        self.access: Dict[str, List[str]] = {}
        self.grants: Dict[str, DownloadGrant] = {}
        self.pending: Dict[str, PendingUpload] = {}
        self._call_history: List[Dict[str, Any]] = []

    def _record(self, method: str, **args) -> None:
        self._call_history.append({"method": method, "args": args})

    def calls(self, method: str) -> List[Dict[str, Any]]:
        return [c for c in self._call_history if c["method"] == method]

    # Files

    def get_file(self, storage_id: str) -> Optional[StoredFile]:
        file = self.files.get(storage_id)
        return copy.deepcopy(file) if file else None

    def get_file_by_virtual_path(self, virtual_path: str) -> Optional[StoredFile]:
        for file in self.files.values():
            if virtual_path and file.virtual_path == virtual_path:
                return copy.deepcopy(file)
        return None

    def _path_owner(self, virtual_path: Optional[str]) -> Optional[StoredFile]:
        if not virtual_path:
            return None
        return next((f for f in self.files.values() if f.virtual_path == virtual_path), None)

    def insert_file(self, file: StoredFile, access_keys: Iterable[str],
                    consume_upload_token: Optional[str] = None) -> None:
        keys = list(access_keys)
        self._record("insert_file", storage_id=file.storage_id, keys=keys,
                     consume_upload_token=consume_upload_token)
        if file.storage_id in self.files:
            raise ConflictError(f"File already registered: {file.storage_id}")
        if self._path_owner(file.virtual_path) is not None:
            raise ConflictError(f"Virtual path already in use: {file.virtual_path}")
        if consume_upload_token and consume_upload_token not in self.pending:
            raise NotFoundError("Upload token not found.")

        self.files[file.storage_id] = copy.deepcopy(file)
        self.access[file.storage_id] = keys
        if consume_upload_token:
            del self.pending[consume_upload_token]

    def update_file(self, file: StoredFile) -> None:
        self._record("update_file", storage_id=file.storage_id)
        if file.storage_id not in self.files:
            raise NotFoundError(f"File not found: {file.storage_id}")
        owner = self._path_owner(file.virtual_path)
        if owner is not None and owner.storage_id != file.storage_id:
            raise ConflictError(f"Virtual path already in use: {file.virtual_path}")
        self.files[file.storage_id] = copy.deepcopy(file)

    def delete_file_cascade(self, storage_id: str) -> Optional[StoredFile]:
        self._record("delete_file_cascade", storage_id=storage_id)
        file = self.files.pop(storage_id, None)
        if file is None:
            return None
        self.access.pop(storage_id, None)
        for grant_id in [g.grant_id for g in self.grants.values() if g.storage_id == storage_id]:
            del self.grants[grant_id]
        return file

    def repoint_file(self, old_storage_id: str, file: StoredFile,
                     expected_backend) -> StoredFile:
        self._record("repoint_file", old_storage_id=old_storage_id, new_storage_id=file.storage_id)
        current = self.files.get(old_storage_id)
        if current is None:
            raise NotFoundError(f"File not found: {old_storage_id}")
        if current.backend is not StorageBackend.parse(expected_backend):
            raise ConflictError("File backend changed during transfer.")
        new_sid = file.storage_id
        moved = new_sid != old_storage_id
        if moved and new_sid in self.files:
            raise ConflictError(f"Storage ID already in use: {new_sid}")
        owner = self._path_owner(file.virtual_path)
        if owner is not None and owner.storage_id != old_storage_id:
            raise ConflictError(f"Virtual path already in use: {file.virtual_path}")

        updated = current.repointed(new_sid, file.backend, file.virtual_path)
        del self.files[old_storage_id]
        self.files[new_sid] = copy.deepcopy(updated)
        self.access[new_sid] = self.access.pop(old_storage_id, [])
        for grant_id, grant in list(self.grants.items()):
            if grant.storage_id == old_storage_id:
                self.grants[grant_id] = replace(grant, storage_id=new_sid)
        return copy.deepcopy(updated)

    def list_files(self, cursor: Optional[str] = None, limit: int = 100) -> Page[StoredFile]:
        ordered = sorted(self.files.values(), key=lambda f: f.created_at, reverse=True)
        return _page([copy.deepcopy(f) for f in ordered], cursor, limit)

    def find_expired_files(self, now: datetime, limit: int) -> List[StoredFile]:
        expired = [f for f in self.files.values() if f.expires_at and f.expires_at <= now]
        expired.sort(key=lambda f: f.expires_at)
        return [copy.deepcopy(f) for f in expired[:limit]]

    # Access index

    def add_access_key(self, storage_id: str, access_key: str) -> None:
        if storage_id not in self.files:
            raise NotFoundError(f"File not found: {storage_id}")
        keys = self.access.setdefault(storage_id, [])
        if access_key in keys:
            raise ConflictError("Access key already exists for this file.")
        keys.append(access_key)

    def remove_access_key(self, storage_id: str, access_key: str) -> None:
        if storage_id not in self.files:
            raise NotFoundError(f"File not found: {storage_id}")
        keys = self.access.get(storage_id, [])
        if access_key not in keys:
            raise NotFoundError("Access key not found for this file.")
        if len(keys) <= 1:
            raise ConflictError("Cannot remove the last access key from a file.")
        keys.remove(access_key)

    def has_access_key(self, storage_id: str, access_key: str) -> bool:
        return access_key in self.access.get(storage_id, [])

    def list_access_keys(self, storage_id: str) -> List[str]:
        return list(self.access.get(storage_id, []))

    def list_files_by_access_key(self, access_key: str, cursor: Optional[str] = None,
                                 limit: int = 100) -> Page[StoredFile]:
        matching = [
            copy.deepcopy(self.files[sid])
            for sid, keys in self.access.items()
            if access_key in keys and sid in self.files
        ]
        return _page(matching, cursor, limit)

    # Download grants

    def insert_grant(self, grant: DownloadGrant) -> None:
        self._record("insert_grant", grant_id=grant.grant_id)
        self.grants[grant.grant_id] = copy.deepcopy(grant)

    def get_grant(self, grant_id: str) -> Optional[DownloadGrant]:
        grant = self.grants.get(grant_id)
        return copy.deepcopy(grant) if grant else None

    def delete_grant(self, grant_id: str) -> bool:
        self._record("delete_grant", grant_id=grant_id)
        return self.grants.pop(grant_id, None) is not None

    def record_grant_use(self, grant_id: str, expected_use_count: int,
                         delete: bool = False) -> bool:
        self._record("record_grant_use", grant_id=grant_id,
                     expected_use_count=expected_use_count, delete=delete)
        grant = self.grants.get(grant_id)
        if grant is None or grant.use_count != expected_use_count:
            return False
        if delete:
            del self.grants[grant_id]
        else:
            grant.use_count += 1
        return True

    def list_grants(self, cursor: Optional[str] = None, limit: int = 100) -> Page[DownloadGrant]:
        ordered = sorted(self.grants.values(), key=lambda g: g.created_at, reverse=True)
        return _page([copy.deepcopy(g) for g in ordered], cursor, limit)

    def find_expired_grants(self, now: datetime, limit: int) -> List[DownloadGrant]:
        expired = [g for g in self.grants.values() if g.expires_at and g.expires_at <= now]
        expired.sort(key=lambda g: g.expires_at)
        return [copy.deepcopy(g) for g in expired[:limit]]

    # Pending uploads

    def insert_pending_upload(self, pending: PendingUpload) -> None:
        self.pending[pending.upload_token] = copy.deepcopy(pending)

    def get_pending_upload(self, upload_token: str) -> Optional[PendingUpload]:
        pending = self.pending.get(upload_token)
        return copy.deepcopy(pending) if pending else None

    def delete_pending_upload(self, upload_token: str) -> bool:
        return self.pending.pop(upload_token, None) is not None

    def find_expired_pending_uploads(self, now: datetime, limit: int) -> List[PendingUpload]:
        expired = [p for p in self.pending.values() if p.expires_at <= now]
        expired.sort(key=lambda p: p.expires_at)
        return [copy.deepcopy(p) for p in expired[:limit]]
