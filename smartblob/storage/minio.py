from __future__ import annotations

import mimetypes
import threading
import uuid
from datetime import timedelta
from typing import BinaryIO, Dict, FrozenSet, Iterator, Optional

from minio import Minio
from minio.commonconfig import CopySource
from minio.error import S3Error

from .base import BlobGateway, BlobInfo, CopyState, UrlPermission, new_snapshot_id, snapshot_name
from .errors import BlobNotFoundError

CHUNK_SIZE = 1024 * 1024
NOT_FOUND_CODES = {"NoSuchKey", "NoSuchObject", "ResourceNotFound"}


class MinioBlobGateway(BlobGateway):
    """A thin wrapper around Minio SDK APIs for S3-compatible storage.

    S3 server-side copies complete within the ``copy_object`` call, so ``begin_copy`` records a
    terminal state straight away and status polls read it back.
    """

    def __init__(
        self,
        bucket_name: str,
        *,
        endpoint: str,
        access_key: str,
        secret_key: str,
        secure: bool = True,
        ensure_bucket: bool = True,
        create_if_missing: bool = True,
        region: Optional[str] = None,
        **kwargs,
    ) -> None:
        """
        Args:
            bucket_name: Bucket holding the blobs.
            endpoint: ``host:port`` of the S3 API, e.g. "localhost:9000".
            access_key: S3 access key.
            secret_key: S3 secret key.
            secure: Talk HTTPS to the endpoint.
            ensure_bucket: Check on construction that the bucket exists.
            create_if_missing: Create a missing bucket instead of raising FileNotFoundError.
            region: Region passed to the client.
        """
        super().__init__(**kwargs)
        self.client = Minio(
            endpoint=endpoint,
            access_key=access_key,
            secret_key=secret_key,
            secure=secure,
            region=region,
        )
        self.bucket_name = bucket_name
        self.endpoint = endpoint
        self._copies: Dict[str, CopyState] = {}
        self._lock = threading.Lock()

        if ensure_bucket:
            self._ensure_bucket(create_if_missing)

    def _ensure_bucket(self, create: bool) -> None:
        if self.client.bucket_exists(self.bucket_name):
            return
        if not create:
            raise FileNotFoundError(f"Bucket {self.bucket_name!r} not found")
        self.client.make_bucket(self.bucket_name)

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------
    def put(self, name: str, data: BinaryIO, length: int, metadata: Optional[Dict[str, str]] = None) -> None:
        content_type, _ = mimetypes.guess_type(name)
        self.client.put_object(
            self.bucket_name,
            name,
            data,
            length,
            content_type=content_type or "application/octet-stream",
            metadata=metadata,
        )

    def get(self, name: str) -> Iterator[bytes]:
        try:
            response = self.client.get_object(self.bucket_name, name)
        except S3Error as e:
            if e.code in NOT_FOUND_CODES:
                raise BlobNotFoundError(name) from e
            raise
        return self._stream(response)

    @staticmethod
    def _stream(response) -> Iterator[bytes]:
        try:
            yield from response.stream(CHUNK_SIZE)
        finally:
            response.close()
            response.release_conn()

    def delete(self, name: str) -> None:
        # S3 deletes succeed for missing keys; check first so a missing blob is reported.
        if not self.exists(name):
            raise BlobNotFoundError(name)
        self.client.remove_object(self.bucket_name, name)
        with self._lock:
            self._copies.pop(name, None)

    def exists(self, name: str) -> bool:
        try:
            self.client.stat_object(self.bucket_name, name)
            return True
        except S3Error as e:
            if e.code in NOT_FOUND_CODES:
                return False
            raise

    # ------------------------------------------------------------------
    # Server-side copy
    # ------------------------------------------------------------------
    def begin_copy(self, source_name: str, destination_name: str) -> str:
        try:
            self.client.copy_object(self.bucket_name, destination_name, CopySource(self.bucket_name, source_name))
        except S3Error as e:
            if e.code in NOT_FOUND_CODES:
                raise BlobNotFoundError(source_name) from e
            raise
        with self._lock:
            self._copies[destination_name] = CopyState.SUCCESS
        return uuid.uuid4().hex

    def get_copy_status(self, destination_name: str) -> CopyState:
        # Terminal states are reported once; later reads look at the object itself.
        with self._lock:
            state = self._copies.get(destination_name)
            if state is not None and state.is_terminal:
                del self._copies[destination_name]
        if state is not None:
            return state
        return CopyState.SUCCESS if self.exists(destination_name) else CopyState.FAILED

    def abort_copy(self, destination_name: str, copy_id: str) -> None:
        self.logger.debug(f"Copy {copy_id} to {destination_name} completed server-side; nothing to abort")

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------
    def create_snapshot(self, name: str) -> str:
        snapshot_id = new_snapshot_id()
        try:
            self.client.copy_object(
                self.bucket_name, snapshot_name(name, snapshot_id), CopySource(self.bucket_name, name)
            )
        except S3Error as e:
            if e.code in NOT_FOUND_CODES:
                raise BlobNotFoundError(name) from e
            raise
        return snapshot_id

    def issue_url(self, name: str, expiry: timedelta, permissions: FrozenSet[UrlPermission]) -> str:
        permission = self.single_permission(permissions)
        return self.client.get_presigned_url(permission.method, self.bucket_name, name, expires=expiry)

    def list(self, prefix: Optional[str] = None) -> Iterator[BlobInfo]:
        for obj in self.client.list_objects(self.bucket_name, prefix=prefix, recursive=True, include_user_meta=True):
            if not obj.object_name or obj.is_dir:
                continue
            yield BlobInfo(
                name=obj.object_name,
                size=obj.size,
                content_type=obj.content_type,
                last_modified=obj.last_modified,
                metadata={k: str(v) for k, v in (obj.metadata or {}).items()},
            )
