from __future__ import annotations

import json
import os
import threading
import uuid
from dataclasses import dataclass
from datetime import timedelta
from typing import BinaryIO, Dict, FrozenSet, Iterator, Optional

from google.api_core import exceptions as gexc
from google.cloud import storage
from google.oauth2 import service_account

from .base import BlobGateway, BlobInfo, CopyState, UrlPermission, new_snapshot_id, snapshot_name
from .errors import BlobNotFoundError

CHUNK_SIZE = 1024 * 1024


@dataclass
class _Rewrite:
    """Progress of one resumable rewrite, keyed by destination name."""

    source_name: str
    copy_id: str
    token: Optional[str]
    state: CopyState


class GCSBlobGateway(BlobGateway):
    """A thin wrapper around ``google-cloud-storage`` APIs.

    Server-side copies use the resumable ``Blob.rewrite`` API: ``begin_copy`` issues the first
    rewrite call and each ``get_copy_status`` poll advances the rewrite by one more call until
    GCS stops returning a continuation token.
    """

    def __init__(
        self,
        bucket_name: str,
        *,
        project_id: Optional[str] = None,
        credentials_path: Optional[str] = None,
        ensure_bucket: bool = True,
        create_if_missing: bool = False,
        location: str = "US",
        storage_class: str = "STANDARD",
        **kwargs,
    ) -> None:
        """
        Args:
            bucket_name: Bucket holding the blobs.
            project_id: GCP project; defaults to the one of the ambient credentials.
            credentials_path: Service-account or authorized-user JSON file. Application default
                credentials are used when omitted.
            ensure_bucket: Check on construction that the bucket exists.
            create_if_missing: Create a missing bucket instead of raising.
            location: Location of a bucket created here.
            storage_class: Storage class of a bucket created here.

        Raises:
            FileNotFoundError: ``credentials_path`` does not exist.
            google.api_core.exceptions.NotFound: The bucket is missing and may not be created.
        """
        super().__init__(**kwargs)
        creds = None
        if credentials_path:
            if not os.path.exists(credentials_path):
                raise FileNotFoundError(credentials_path)
            creds = self._load_credentials(credentials_path)

        self.client: storage.Client = storage.Client(project=project_id, credentials=creds)
        self.bucket_name = bucket_name
        self._rewrites: Dict[str, _Rewrite] = {}
        self._lock = threading.Lock()
        if ensure_bucket:
            self._ensure_bucket(create_if_missing, location, storage_class)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _load_credentials(self, credentials_path: str):
        """Load service account or authorized user credentials from a JSON file."""
        with open(credentials_path, "r") as f:
            cred_data = json.load(f)

        if "client_id" in cred_data and "refresh_token" in cred_data:
            from google.oauth2.credentials import Credentials

            return Credentials.from_authorized_user_file(credentials_path)
        return service_account.Credentials.from_service_account_file(credentials_path)

    def _ensure_bucket(self, create: bool, location: str, storage_class: str) -> None:
        bucket = self.client.bucket(self.bucket_name)
        if bucket.exists(self.client):
            return
        if not create:
            raise gexc.NotFound(f"Bucket {self.bucket_name!r} not found")
        bucket.location = location
        bucket.storage_class = storage_class
        bucket.create()

    def _sanitize_blob_path(self, blob_path: str) -> str:
        """Strip a ``gs://<bucket>/`` prefix, rejecting paths of other buckets."""
        if blob_path.startswith("gs://") and not blob_path.startswith(f"gs://{self.bucket_name}/"):
            raise ValueError(
                f"given absolute path, initialized bucket name {self.bucket_name!r} is not in the path {blob_path!r}"
            )
        return blob_path.replace(f"gs://{self.bucket_name}/", "")

    def _bucket(self) -> storage.Bucket:  # thread-safe fresh bucket obj
        return self.client.bucket(self.bucket_name)

    def _blob(self, name: str) -> storage.Blob:
        return self._bucket().blob(self._sanitize_blob_path(name))

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------
    def put(self, name: str, data: BinaryIO, length: int, metadata: Optional[Dict[str, str]] = None) -> None:
        blob = self._blob(name)
        if metadata:
            blob.metadata = metadata
        blob.upload_from_file(data, size=length, rewind=True)

    def get(self, name: str) -> Iterator[bytes]:
        blob = self._blob(name)
        try:
            with blob.open("rb", chunk_size=CHUNK_SIZE) as f:
                while chunk := f.read(CHUNK_SIZE):
                    yield chunk
        except gexc.NotFound as e:
            raise BlobNotFoundError(name) from e

    def delete(self, name: str) -> None:
        try:
            self._blob(name).delete()
        except gexc.NotFound as e:
            raise BlobNotFoundError(name) from e
        finally:
            with self._lock:
                self._rewrites.pop(name, None)

    def exists(self, name: str) -> bool:
        return self._blob(name).exists()

    # ------------------------------------------------------------------
    # Server-side copy
    # ------------------------------------------------------------------
    def begin_copy(self, source_name: str, destination_name: str) -> str:
        source = self._blob(source_name)
        try:
            token, _, _ = self._blob(destination_name).rewrite(source)
        except gexc.NotFound as e:
            raise BlobNotFoundError(source_name) from e
        copy_id = uuid.uuid4().hex
        state = CopyState.SUCCESS if token is None else CopyState.PENDING
        with self._lock:
            self._rewrites[destination_name] = _Rewrite(source_name, copy_id, token, state)
        return copy_id

    def get_copy_status(self, destination_name: str) -> CopyState:
        with self._lock:
            rewrite = self._rewrites.get(destination_name)
        if rewrite is None:
            return CopyState.SUCCESS if self.exists(destination_name) else CopyState.FAILED
        if rewrite.state.is_terminal:
            return rewrite.state

        try:
            token, written, total = self._blob(destination_name).rewrite(
                self._blob(rewrite.source_name), token=rewrite.token
            )
        except gexc.GoogleAPICallError as e:
            self.logger.warning(f"Rewrite {rewrite.source_name} -> {destination_name} failed: {e}")
            token, state = None, CopyState.FAILED
        else:
            self.logger.debug(f"Rewrite {rewrite.source_name} -> {destination_name}: {written}/{total} bytes")
            state = CopyState.SUCCESS if token is None else CopyState.PENDING

        with self._lock:
            # abort_copy may have raced with the rewrite call
            if rewrite.state is CopyState.PENDING:
                rewrite.token, rewrite.state = token, state
            return rewrite.state

    def abort_copy(self, destination_name: str, copy_id: str) -> None:
        # Rewrite tokens hold no server-side resources; dropping the token ends the copy.
        with self._lock:
            rewrite = self._rewrites.get(destination_name)
            if rewrite is None or rewrite.copy_id != copy_id:
                raise ValueError(f"No copy {copy_id!r} in progress for {destination_name!r}")
            if rewrite.state is CopyState.PENDING:
                rewrite.token, rewrite.state = None, CopyState.ABORTED

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------
    def create_snapshot(self, name: str) -> str:
        bucket = self._bucket()
        snapshot_id = new_snapshot_id()
        try:
            bucket.copy_blob(bucket.blob(self._sanitize_blob_path(name)), bucket, snapshot_name(name, snapshot_id))
        except gexc.NotFound as e:
            raise BlobNotFoundError(name) from e
        return snapshot_id

    def issue_url(self, name: str, expiry: timedelta, permissions: FrozenSet[UrlPermission]) -> str:
        permission = self.single_permission(permissions)
        return self._blob(name).generate_signed_url(version="v4", expiration=expiry, method=permission.method)

    def list(self, prefix: Optional[str] = None) -> Iterator[BlobInfo]:
        for blob in self.client.list_blobs(self.bucket_name, prefix=prefix or None):
            yield BlobInfo(
                name=blob.name,
                size=blob.size,
                content_type=blob.content_type,
                last_modified=blob.updated,
                metadata=dict(blob.metadata or {}),
            )
