"""
Redis File Ledger Repository

Concrete Redis-based implementation of FileLedgerRepository.

Rows are JSON documents; secondary indexes are sorted sets and sets.
Every multi-row change runs as one WATCH/MULTI/EXEC transaction so a
concurrent writer either sees all of it or none of it.

Key layout (all keys carry the repository prefix):
    file:{storage_id}               StoredFile JSON
    file_vpath:{path}               storage id owning a virtual path
    files:by_created                zset of storage ids by creation time
    files:by_expires                zset of storage ids by expiration
    file_access:{storage_id}        zset of access keys by insertion order
    access_key:{key}                zset of storage ids by insertion order
    grant:{grant_id}                DownloadGrant JSON
    grants:by_storage:{storage_id}  set of grant ids
    grants:by_created               zset of grant ids by creation time
    grants:by_expires               zset of grant ids by expiration
    pending:{token}                 PendingUpload JSON
    pending:by_expires              zset of upload tokens by expiration
"""

import json
import logging
from datetime import datetime
from typing import Iterable, List, Optional

from ..domain.errors import ConflictError, NotFoundError, ValidationError
from ..domain.file_storage.entities import DownloadGrant, PendingUpload, StoredFile
from ..domain.file_storage.repositories import FileLedgerRepository
from ..domain.file_storage.value_objects import Page, StorageBackend
from .redis_repository import RedisRepository, decode

logger = logging.getLogger(__name__)

FILES_BY_CREATED = "files:by_created"
FILES_BY_EXPIRES = "files:by_expires"
GRANTS_BY_CREATED = "grants:by_created"
GRANTS_BY_EXPIRES = "grants:by_expires"
PENDING_BY_EXPIRES = "pending:by_expires"
SEQUENCE = "ledger:sequence"


def _file_key(storage_id: str) -> str:
    return f"file:{storage_id}"


def _vpath_key(virtual_path: Optional[str]) -> Optional[str]:
    return f"file_vpath:{virtual_path}" if virtual_path else None


def _access_key(storage_id: str) -> str:
    return f"file_access:{storage_id}"


def _key_index(access_key: str) -> str:
    return f"access_key:{access_key}"


def _grant_key(grant_id: str) -> str:
    return f"grant:{grant_id}"


def _grants_by_storage(storage_id: str) -> str:
    return f"grants:by_storage:{storage_id}"


def _pending_key(upload_token: str) -> str:
    return f"pending:{upload_token}"


def _parse_cursor(cursor: Optional[str]) -> int:
    if not cursor:
        return 0
    try:
        offset = int(cursor)
    except ValueError:
        raise ValidationError(f"Invalid cursor: {cursor!r}")
    if offset < 0:
        raise ValidationError(f"Invalid cursor: {cursor!r}")
    return offset


class RedisFileLedgerRepository(FileLedgerRepository):
    """
    Redis-based implementation of FileLedgerRepository.

    Listings page through sorted sets by offset; the cursor is the offset of
    the next page.
    """

    def __init__(self, redis_repository: RedisRepository):
        """
        Initialize with Redis repository.

        Args:
            redis_repository: RedisRepository instance from infrastructure layer
        """
        self.redis_repo = redis_repository
        self.redis = redis_repository.redis

    def _k(self, key: Optional[str]) -> Optional[str]:
        return self.redis_repo._make_key(key) if key else None

    def _next_scores(self, count: int) -> List[int]:
        """Reserve count strictly increasing insertion-order scores."""
        if count <= 0:
            return []
        end = self.redis.incrby(self._k(SEQUENCE), count)
        return list(range(end - count + 1, end + 1))

    # ------------------------------------------------------------------
    # Files
    # ------------------------------------------------------------------

    def get_file(self, storage_id: str) -> Optional[StoredFile]:
        data = self.redis_repo.get_json(_file_key(storage_id))
        return StoredFile.from_dict(data) if data else None

    def get_file_by_virtual_path(self, virtual_path: str) -> Optional[StoredFile]:
        storage_id = decode(self.redis.get(self._k(_vpath_key(virtual_path))))
        if storage_id is None:
            return None
        return self.get_file(storage_id)

    def insert_file(self, file: StoredFile, access_keys: Iterable[str],
                    consume_upload_token: Optional[str] = None) -> None:
        keys = list(access_keys)
        scores = self._next_scores(len(keys))
        sid = file.storage_id
        file_key = self._k(_file_key(sid))
        vpath_key = self._k(_vpath_key(file.virtual_path))
        pending_key = self._k(_pending_key(consume_upload_token)) if consume_upload_token else None

        def txn(pipe):
            if pipe.exists(file_key):
                raise ConflictError(f"File already registered: {sid}")
            if vpath_key and pipe.exists(vpath_key):
                raise ConflictError(f"Virtual path already in use: {file.virtual_path}")
            if pending_key and not pipe.exists(pending_key):
                raise NotFoundError("Upload token not found.")

            pipe.multi()
            pipe.set(file_key, json.dumps(file.to_dict()))
            if vpath_key:
                pipe.set(vpath_key, sid)
            pipe.zadd(self._k(FILES_BY_CREATED), {sid: file.created_at.timestamp()})
            if file.expires_at:
                pipe.zadd(self._k(FILES_BY_EXPIRES), {sid: file.expires_at.timestamp()})
            for key, score in zip(keys, scores):
                pipe.zadd(self._k(_access_key(sid)), {key: score})
                pipe.zadd(self._k(_key_index(key)), {sid: score})
            if pending_key:
                pipe.delete(pending_key)
                pipe.zrem(self._k(PENDING_BY_EXPIRES), consume_upload_token)

        self.redis_repo.transaction(
            txn,
            _file_key(sid),
            _vpath_key(file.virtual_path),
            _pending_key(consume_upload_token) if consume_upload_token else None,
        )

    def update_file(self, file: StoredFile) -> None:
        sid = file.storage_id
        file_key = self._k(_file_key(sid))
        new_vpath_key = self._k(_vpath_key(file.virtual_path))

        def txn(pipe):
            current_data = self.redis_repo.get_json(_file_key(sid), client=pipe)
            if current_data is None:
                raise NotFoundError(f"File not found: {sid}")
            current = StoredFile.from_dict(current_data)

            path_changed = file.virtual_path != current.virtual_path
            if path_changed and new_vpath_key:
                owner = decode(pipe.get(new_vpath_key))
                if owner is not None and owner != sid:
                    raise ConflictError(f"Virtual path already in use: {file.virtual_path}")

            pipe.multi()
            pipe.set(file_key, json.dumps(file.to_dict()))
            if path_changed:
                if current.virtual_path:
                    pipe.delete(self._k(_vpath_key(current.virtual_path)))
                if new_vpath_key:
                    pipe.set(new_vpath_key, sid)
            if file.expires_at:
                pipe.zadd(self._k(FILES_BY_EXPIRES), {sid: file.expires_at.timestamp()})
            else:
                pipe.zrem(self._k(FILES_BY_EXPIRES), sid)

        self.redis_repo.transaction(txn, _file_key(sid), _vpath_key(file.virtual_path))

    def delete_file_cascade(self, storage_id: str) -> Optional[StoredFile]:
        sid = storage_id

        def txn(pipe):
            data = self.redis_repo.get_json(_file_key(sid), client=pipe)
            if data is None:
                return None
            file = StoredFile.from_dict(data)
            keys = [decode(k) for k in pipe.zrange(self._k(_access_key(sid)), 0, -1)]
            grant_ids = [decode(g) for g in pipe.smembers(self._k(_grants_by_storage(sid)))]

            pipe.multi()
            pipe.delete(self._k(_file_key(sid)))
            if file.virtual_path:
                pipe.delete(self._k(_vpath_key(file.virtual_path)))
            pipe.zrem(self._k(FILES_BY_CREATED), sid)
            pipe.zrem(self._k(FILES_BY_EXPIRES), sid)
            for key in keys:
                pipe.zrem(self._k(_key_index(key)), sid)
            pipe.delete(self._k(_access_key(sid)))
            for grant_id in grant_ids:
                pipe.delete(self._k(_grant_key(grant_id)))
                pipe.zrem(self._k(GRANTS_BY_CREATED), grant_id)
                pipe.zrem(self._k(GRANTS_BY_EXPIRES), grant_id)
            pipe.delete(self._k(_grants_by_storage(sid)))
            return file

        return self.redis_repo.transaction(
            txn, _file_key(sid), _access_key(sid), _grants_by_storage(sid)
        )

    def repoint_file(self, old_storage_id: str, file: StoredFile,
                     expected_backend) -> StoredFile:
        old_sid = old_storage_id
        new_sid = file.storage_id
        moved = new_sid != old_sid
        expected_backend = StorageBackend.parse(expected_backend)

        def txn(pipe):
            data = self.redis_repo.get_json(_file_key(old_sid), client=pipe)
            if data is None:
                raise NotFoundError(f"File not found: {old_sid}")
            current = StoredFile.from_dict(data)
            if current.backend is not expected_backend:
                raise ConflictError("File backend changed during transfer.")
            if moved and pipe.exists(self._k(_file_key(new_sid))):
                raise ConflictError(f"Storage ID already in use: {new_sid}")

            updated = current.repointed(new_sid, file.backend, file.virtual_path)
            path_changed = updated.virtual_path != current.virtual_path
            if path_changed and updated.virtual_path:
                owner = decode(pipe.get(self._k(_vpath_key(updated.virtual_path))))
                if owner is not None and owner != old_sid:
                    raise ConflictError(f"Virtual path already in use: {updated.virtual_path}")

            access = [
                (decode(key), score)
                for key, score in pipe.zrange(self._k(_access_key(old_sid)), 0, -1, withscores=True)
            ]
            key_scores = {
                key: pipe.zscore(self._k(_key_index(key)), old_sid) for key, _ in access
            }
            grant_ids = [decode(g) for g in pipe.smembers(self._k(_grants_by_storage(old_sid)))]
            grant_keys = [self._k(_grant_key(g)) for g in grant_ids]
            if grant_keys:
                pipe.watch(*grant_keys)
            grants = []
            for grant_key in grant_keys:
                raw = pipe.get(grant_key)
                if raw is not None:
                    grants.append(DownloadGrant.from_dict(json.loads(decode(raw))))

            pipe.multi()
            if moved:
                pipe.delete(self._k(_file_key(old_sid)))
            pipe.set(self._k(_file_key(new_sid)), json.dumps(updated.to_dict()))
            if path_changed and current.virtual_path:
                pipe.delete(self._k(_vpath_key(current.virtual_path)))
            if updated.virtual_path:
                pipe.set(self._k(_vpath_key(updated.virtual_path)), new_sid)

            if moved:
                pipe.zrem(self._k(FILES_BY_CREATED), old_sid)
                pipe.zrem(self._k(FILES_BY_EXPIRES), old_sid)
                pipe.zadd(self._k(FILES_BY_CREATED), {new_sid: updated.created_at.timestamp()})
                if updated.expires_at:
                    pipe.zadd(self._k(FILES_BY_EXPIRES), {new_sid: updated.expires_at.timestamp()})

                for key, score in access:
                    pipe.zadd(self._k(_access_key(new_sid)), {key: score})
                    pipe.zrem(self._k(_key_index(key)), old_sid)
                    index_score = key_scores.get(key)
                    pipe.zadd(
                        self._k(_key_index(key)),
                        {new_sid: index_score if index_score is not None else score},
                    )
                pipe.delete(self._k(_access_key(old_sid)))

                for grant in grants:
                    grant.storage_id = new_sid
                    pipe.set(self._k(_grant_key(grant.grant_id)), json.dumps(grant.to_dict()))
                    pipe.sadd(self._k(_grants_by_storage(new_sid)), grant.grant_id)
                pipe.delete(self._k(_grants_by_storage(old_sid)))
            return updated

        return self.redis_repo.transaction(
            txn,
            _file_key(old_sid),
            _file_key(new_sid),
            _vpath_key(file.virtual_path),
            _access_key(old_sid),
            _grants_by_storage(old_sid),
        )

    def list_files(self, cursor: Optional[str] = None, limit: int = 100) -> Page[StoredFile]:
        offset = _parse_cursor(cursor)
        ids = self.redis.zrevrange(self._k(FILES_BY_CREATED), offset, offset + limit - 1)
        total = self.redis.zcard(self._k(FILES_BY_CREATED))
        return self._files_page(ids, offset, limit, total)

    def find_expired_files(self, now: datetime, limit: int) -> List[StoredFile]:
        ids = self.redis.zrangebyscore(
            self._k(FILES_BY_EXPIRES), "-inf", now.timestamp(), start=0, num=limit
        )
        return [f for f in (self.get_file(decode(i)) for i in ids) if f is not None]

    def _files_page(self, ids, offset: int, limit: int, total: int) -> Page[StoredFile]:
        files = [f for f in (self.get_file(decode(i)) for i in ids) if f is not None]
        next_offset = offset + limit
        return Page(items=files, cursor=str(next_offset) if next_offset < total else None)

    # ------------------------------------------------------------------
    # Access index
    # ------------------------------------------------------------------

    def add_access_key(self, storage_id: str, access_key: str) -> None:
        sid = storage_id
        score = self._next_scores(1)[0]

        def txn(pipe):
            if not pipe.exists(self._k(_file_key(sid))):
                raise NotFoundError(f"File not found: {sid}")
            if pipe.zscore(self._k(_access_key(sid)), access_key) is not None:
                raise ConflictError("Access key already exists for this file.")
            pipe.multi()
            pipe.zadd(self._k(_access_key(sid)), {access_key: score})
            pipe.zadd(self._k(_key_index(access_key)), {sid: score})

        self.redis_repo.transaction(txn, _file_key(sid), _access_key(sid))

    def remove_access_key(self, storage_id: str, access_key: str) -> None:
        sid = storage_id

        def txn(pipe):
            if not pipe.exists(self._k(_file_key(sid))):
                raise NotFoundError(f"File not found: {sid}")
            if pipe.zscore(self._k(_access_key(sid)), access_key) is None:
                raise NotFoundError("Access key not found for this file.")
            if pipe.zcard(self._k(_access_key(sid))) <= 1:
                raise ConflictError("Cannot remove the last access key from a file.")
            pipe.multi()
            pipe.zrem(self._k(_access_key(sid)), access_key)
            pipe.zrem(self._k(_key_index(access_key)), sid)

        self.redis_repo.transaction(txn, _file_key(sid), _access_key(sid))

    def has_access_key(self, storage_id: str, access_key: str) -> bool:
        return self.redis.zscore(self._k(_access_key(storage_id)), access_key) is not None

    def list_access_keys(self, storage_id: str) -> List[str]:
        return [decode(k) for k in self.redis.zrange(self._k(_access_key(storage_id)), 0, -1)]

    def list_files_by_access_key(self, access_key: str, cursor: Optional[str] = None,
                                 limit: int = 100) -> Page[StoredFile]:
        offset = _parse_cursor(cursor)
        index = self._k(_key_index(access_key))
        ids = self.redis.zrange(index, offset, offset + limit - 1)
        return self._files_page(ids, offset, limit, self.redis.zcard(index))

    # ------------------------------------------------------------------
    # Download grants
    # ------------------------------------------------------------------

    def insert_grant(self, grant: DownloadGrant) -> None:
        pipe = self.redis.pipeline(transaction=True)
        pipe.set(self._k(_grant_key(grant.grant_id)), json.dumps(grant.to_dict()))
        pipe.sadd(self._k(_grants_by_storage(grant.storage_id)), grant.grant_id)
        pipe.zadd(self._k(GRANTS_BY_CREATED), {grant.grant_id: grant.created_at.timestamp()})
        if grant.expires_at:
            pipe.zadd(self._k(GRANTS_BY_EXPIRES), {grant.grant_id: grant.expires_at.timestamp()})
        pipe.execute()

    def get_grant(self, grant_id: str) -> Optional[DownloadGrant]:
        data = self.redis_repo.get_json(_grant_key(grant_id))
        return DownloadGrant.from_dict(data) if data else None

    def delete_grant(self, grant_id: str) -> bool:
        def txn(pipe):
            data = self.redis_repo.get_json(_grant_key(grant_id), client=pipe)
            if data is None:
                return False
            pipe.multi()
            self._queue_grant_delete(pipe, grant_id, data["storage_id"])
            return True

        return self.redis_repo.transaction(txn, _grant_key(grant_id))

    def record_grant_use(self, grant_id: str, expected_use_count: int,
                         delete: bool = False) -> bool:
        def txn(pipe):
            data = self.redis_repo.get_json(_grant_key(grant_id), client=pipe)
            if data is None:
                return False
            grant = DownloadGrant.from_dict(data)
            if grant.use_count != expected_use_count:
                return False
            pipe.multi()
            if delete:
                self._queue_grant_delete(pipe, grant_id, grant.storage_id)
            else:
                grant.use_count += 1
                pipe.set(self._k(_grant_key(grant_id)), json.dumps(grant.to_dict()))
            return True

        return self.redis_repo.transaction(txn, _grant_key(grant_id))

    def _queue_grant_delete(self, pipe, grant_id: str, storage_id: str) -> None:
        pipe.delete(self._k(_grant_key(grant_id)))
        pipe.srem(self._k(_grants_by_storage(storage_id)), grant_id)
        pipe.zrem(self._k(GRANTS_BY_CREATED), grant_id)
        pipe.zrem(self._k(GRANTS_BY_EXPIRES), grant_id)

    def list_grants(self, cursor: Optional[str] = None, limit: int = 100) -> Page[DownloadGrant]:
        offset = _parse_cursor(cursor)
        ids = self.redis.zrevrange(self._k(GRANTS_BY_CREATED), offset, offset + limit - 1)
        total = self.redis.zcard(self._k(GRANTS_BY_CREATED))
        grants = [g for g in (self.get_grant(decode(i)) for i in ids) if g is not None]
        next_offset = offset + limit
        return Page(items=grants, cursor=str(next_offset) if next_offset < total else None)

    def find_expired_grants(self, now: datetime, limit: int) -> List[DownloadGrant]:
        ids = self.redis.zrangebyscore(
            self._k(GRANTS_BY_EXPIRES), "-inf", now.timestamp(), start=0, num=limit
        )
        return [g for g in (self.get_grant(decode(i)) for i in ids) if g is not None]

    # ------------------------------------------------------------------
    # Pending uploads
    # ------------------------------------------------------------------

    def insert_pending_upload(self, pending: PendingUpload) -> None:
        pipe = self.redis.pipeline(transaction=True)
        pipe.set(self._k(_pending_key(pending.upload_token)), json.dumps(pending.to_dict()))
        pipe.zadd(self._k(PENDING_BY_EXPIRES), {pending.upload_token: pending.expires_at.timestamp()})
        pipe.execute()

    def get_pending_upload(self, upload_token: str) -> Optional[PendingUpload]:
        data = self.redis_repo.get_json(_pending_key(upload_token))
        return PendingUpload.from_dict(data) if data else None

    def delete_pending_upload(self, upload_token: str) -> bool:
        pipe = self.redis.pipeline(transaction=True)
        pipe.delete(self._k(_pending_key(upload_token)))
        pipe.zrem(self._k(PENDING_BY_EXPIRES), upload_token)
        deleted, _ = pipe.execute()
        return deleted > 0

    def find_expired_pending_uploads(self, now: datetime, limit: int) -> List[PendingUpload]:
        tokens = self.redis.zrangebyscore(
            self._k(PENDING_BY_EXPIRES), "-inf", now.timestamp(), start=0, num=limit
        )
        pending = []
        for token in tokens:
            upload = self.get_pending_upload(decode(token))
            if upload is None:
                # Row already gone; drop the dangling index entry
                self.redis.zrem(self._k(PENDING_BY_EXPIRES), token)
                continue
            pending.append(upload)
        return pending
