from __future__ import annotations

import fnmatch
import os
import re
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from smartblob.core import CoreConfig, SmartBlob
from smartblob.core.config import SettingsLike

from .async_copy import AsyncCopy
from .base import (
    BatchResult,
    BlobGateway,
    BlobInfo,
    SnapshotInfo,
    UrlPermission,
    WorkItem,
    is_snapshot_name,
    snapshot_name,
)
from .batch import BatchExecutor
from .errors import InvalidArgumentError
from .operations import BlobOperations, blob_name_for
from .retry import RetryController


def _require_name(value: Any, argument: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidArgumentError(f"Missing or invalid {argument!r} argument. Expected a non-empty string.")
    return value


def _require_names(values: Any, argument: str) -> List[str]:
    """Validate a non-empty list of non-empty strings, dropping repeated entries."""
    if values is None or isinstance(values, (str, bytes)) or not isinstance(values, Iterable):
        raise InvalidArgumentError(f"Missing or invalid {argument!r} argument. Expected a non-empty list.")
    names = [_require_name(v, argument) for v in values]
    if not names:
        raise InvalidArgumentError(f"Missing or invalid {argument!r} argument. Expected a non-empty list.")
    return list(dict.fromkeys(names))


def _require_distinct_targets(targets: Dict[str, str], kind: str) -> None:
    """Reject inputs that would be written to the same ``kind`` (``{input: target}``)."""
    claimed: Dict[str, str] = {}
    for value, target in targets.items():
        other = claimed.setdefault(target, value)
        if other != value:
            raise InvalidArgumentError(f"{other!r} and {value!r} would both be written to {kind} {target!r}")


class BlobClient(SmartBlob):
    """Bulk and single-blob operations over a BlobGateway.

    Uploads go through the retry controller; downloads and deletes run as a single batch;
    copies and renames block on the asynchronous copy state machine. Every method validates
    its arguments before touching the store and raises InvalidArgumentError on bad input.
    Results are plain data; use ``to_dict()`` for JSON.

    Example::

        from smartblob.storage import BlobClient, LocalBlobGateway

        client = BlobClient(LocalBlobGateway("/tmp/blobs"), max_workers=4)
        result = client.upload_many(["a.pdf", "https://example.com/b.pdf"], retry_passes=1)
        print(result.succeeded, result.failed)
    """

    def __init__(
        self,
        gateway: BlobGateway,
        *,
        max_workers: Optional[int] = None,
        task_timeout: Optional[float] = None,
        retry_passes: Optional[int] = None,
        copy_timeout: Optional[float] = None,
        config_overrides: SettingsLike | None = None,
        **kwargs,
    ):
        super().__init__(config_overrides=config_overrides, **kwargs)
        self.gateway = gateway
        self.operations = BlobOperations(gateway, config_overrides=config_overrides)
        self.executor = BatchExecutor(
            max_workers=max_workers, task_timeout=task_timeout, config_overrides=config_overrides
        )
        self.retry = RetryController(self.executor, retry_passes=retry_passes, config_overrides=config_overrides)
        self.copier = AsyncCopy(gateway, timeout=copy_timeout, config_overrides=config_overrides)

    @classmethod
    def from_config(
        cls, backend: str = "local", *, root: Optional[str] = None, config_overrides: SettingsLike | None = None, **kwargs
    ) -> "BlobClient":
        """Build a client whose gateway is configured from the SMARTBLOB_GCS / SMARTBLOB_MINIO sections.

        Args:
            backend: One of "local", "gcs" or "minio".
            root: Root directory for the local backend. Defaults to ``<SMARTBLOB_DIR_PATHS.ROOT>/blobs``.
            config_overrides: Settings applied on top of CoreSettings.
        """
        config = CoreConfig(config_overrides)
        if backend == "local":
            from .local import LocalBlobGateway

            gateway: BlobGateway = LocalBlobGateway(root or os.path.join(config.SMARTBLOB_DIR_PATHS.ROOT, "blobs"))
        elif backend == "gcs":
            from .gcs import GCSBlobGateway

            gcs = config.SMARTBLOB_GCS
            if not gcs.BUCKET:
                raise InvalidArgumentError("SMARTBLOB_GCS__BUCKET is not configured")
            gateway = GCSBlobGateway(gcs.BUCKET, project_id=gcs.PROJECT_ID, credentials_path=gcs.CREDENTIALS_PATH)
        elif backend == "minio":
            from .minio import MinioBlobGateway

            minio = config.SMARTBLOB_MINIO
            gateway = MinioBlobGateway(
                minio.BUCKET,
                endpoint=minio.ENDPOINT,
                access_key=minio.ACCESS_KEY,
                secret_key=config.get_secret("SMARTBLOB_MINIO", "SECRET_KEY"),
                secure=str(minio.SECURE).lower() == "true",
            )
        else:
            raise InvalidArgumentError(f"Unknown backend {backend!r}. Use 'local', 'gcs' or 'minio'.")
        return cls(gateway, config_overrides=config_overrides, **kwargs)

    # ------------------------------------------------------------------
    # Upload
    # ------------------------------------------------------------------
    def upload_one(self, source: str) -> bool:
        """Upload one local file or http(s) URL; the blob is named after the source's basename."""
        source = _require_name(source, "source")
        return self.operations.put(WorkItem(source)).ok

    @SmartBlob.autolog()
    def upload_many(self, sources: List[str], retry_passes: Optional[int] = None) -> BatchResult:
        """Upload many sources, re-submitting failures for up to ``retry_passes`` extra passes.

        Returns a BatchResult whose ``succeeded`` are blob names and ``failed`` the original sources.
        Sources that would be stored under the same blob name are rejected before any upload.
        """
        sources = _require_names(sources, "sources")
        _require_distinct_targets({s: blob_name_for(s) for s in sources}, "blob")
        return self.retry.run([WorkItem(s) for s in sources], self.operations.put, retry_passes)

    @SmartBlob.autolog()
    def upload_directory(
        self,
        directory: str,
        pattern: Optional[str] = None,
        recursive: bool = False,
        blob_prefix: Optional[str] = None,
        retry_passes: Optional[int] = None,
    ) -> BatchResult:
        """Upload the files of a local directory.

        Args:
            directory: Directory to upload from.
            pattern: Optional glob matched against file names, e.g. ``"*.pdf"``.
            recursive: Descend into sub-directories, keeping their relative paths in blob names.
            blob_prefix: Optional prefix for every blob name.
            retry_passes: Extra passes over failed files.
        """
        root = Path(_require_name(directory, "directory")).expanduser()
        if not root.is_dir():
            raise InvalidArgumentError(f"Local directory {directory!r} does not exist or is not a directory")

        paths = root.rglob("*") if recursive else root.glob("*")
        items = []
        for path in sorted(paths):
            if not path.is_file() or (pattern and not fnmatch.fnmatch(path.name, pattern)):
                continue
            parent = path.parent.relative_to(root).as_posix()
            prefix = "/".join(p.strip("/") for p in (blob_prefix or "", parent) if p and p != ".")
            items.append(WorkItem(str(path), prefix or None))

        if not items:
            self.logger.warning(f"No files matching {pattern or '*'} in {directory}")
            return BatchResult()
        return self.retry.run(items, self.operations.put, retry_passes)

    # ------------------------------------------------------------------
    # Download / delete
    # ------------------------------------------------------------------
    def download_one(self, name: str, destination: str) -> bool:
        name = _require_name(name, "name")
        destination = _require_name(destination, "destination")
        return self.operations.get(WorkItem(name, destination)).ok

    @SmartBlob.autolog()
    def download_many(self, names: List[str], destination_dir: str) -> BatchResult:
        """Download blobs into ``destination_dir`` (created if missing) as ``<dir>/<blob basename>``.

        Blobs sharing a basename are rejected with InvalidArgumentError before any download starts.
        """
        names = _require_names(names, "names")
        destination_dir = _require_name(destination_dir, "destination_dir")
        _require_distinct_targets({n: os.path.basename(n.rstrip("/")) for n in names}, "file")
        os.makedirs(destination_dir, exist_ok=True)
        return self.executor.run([WorkItem(n, destination_dir) for n in names], self.operations.get)

    def delete_one(self, name: str) -> bool:
        return self.operations.delete(WorkItem(_require_name(name, "name"))).ok

    @SmartBlob.autolog()
    def delete_many(self, names: List[str]) -> BatchResult:
        """Delete blobs. Missing blobs are reported in ``failed``."""
        names = _require_names(names, "names")
        return self.executor.run([WorkItem(n) for n in names], self.operations.delete)

    # ------------------------------------------------------------------
    # Copy / rename
    # ------------------------------------------------------------------
    def _require_pair(self, source_name: str, destination_name: str) -> None:
        _require_name(source_name, "source_name")
        _require_name(destination_name, "destination_name")
        if source_name == destination_name:
            raise InvalidArgumentError(f"source and destination are the same blob: {source_name!r}")

    @SmartBlob.autolog()
    def copy(self, source_name: str, destination_name: str) -> bool:
        self._require_pair(source_name, destination_name)
        return self.copier.copy_blob(source_name, destination_name)

    @SmartBlob.autolog()
    def rename(self, source_name: str, destination_name: str) -> bool:
        """Move a blob: copy, then delete the source once the copy succeeded."""
        self._require_pair(source_name, destination_name)
        return self.copier.rename_blob(source_name, destination_name)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------
    def list_blobs(
        self,
        prefix: Optional[str] = None,
        regex: Optional[str] = None,
        max_results: int = 0,
        include_snapshots: bool = False,
    ) -> List[BlobInfo]:
        """List blobs, optionally filtered by prefix and a regex searched in the name.

        ``max_results`` of 0 means no limit. Snapshot copies are hidden unless requested.
        """
        if max_results < 0:
            raise InvalidArgumentError(f"max_results must not be negative, got {max_results}")
        try:
            matcher = re.compile(regex) if regex else None
        except re.error as e:
            raise InvalidArgumentError(f"Invalid regex {regex!r}: {e}") from e

        blobs: List[BlobInfo] = []
        for info in self.gateway.list(prefix):
            if not include_snapshots and is_snapshot_name(info.name):
                continue
            if matcher is not None and not matcher.search(info.name):
                continue
            blobs.append(info)
            if max_results and len(blobs) >= max_results:
                break
        return blobs

    def create_snapshot(self, name: str) -> Optional[SnapshotInfo]:
        """Create a point-in-time copy of a blob. Returns None if the store refused."""
        name = _require_name(name, "name")
        try:
            snapshot_id = self.gateway.create_snapshot(name)
        except Exception as e:
            self.logger.error(f"Failed to create snapshot of blob {name!r}: {e}")
            return None
        return SnapshotInfo(
            blob_name=name,
            snapshot_id=snapshot_id,
            snapshot_name=snapshot_name(name, snapshot_id),
            created_at=datetime.now(timezone.utc),
        )

    def generate_url(
        self,
        name: str,
        duration_hours: Optional[int] = None,
        read: bool = True,
        write: bool = False,
        delete: bool = False,
    ) -> Optional[str]:
        """Issue a time-limited URL for a blob. Returns None if the store refused."""
        name = _require_name(name, "name")
        url_config = self.config.SMARTBLOB_URL
        hours = int(duration_hours if duration_hours is not None else url_config.DEFAULT_EXPIRY_HOURS)
        max_hours = int(url_config.MAX_EXPIRY_HOURS)
        if not 1 <= hours <= max_hours:
            raise InvalidArgumentError(f"Invalid 'duration_hours' value. Duration must be between 1 and {max_hours} hours.")
        permissions = frozenset(
            p for p, wanted in ((UrlPermission.READ, read), (UrlPermission.WRITE, write), (UrlPermission.DELETE, delete)) if wanted
        )
        if not permissions:
            raise InvalidArgumentError("At least one of read, write or delete permission is required.")
        try:
            return self.gateway.issue_url(name, timedelta(hours=hours), permissions)
        except Exception as e:
            self.logger.error(f"Failed to generate URL for blob {name!r}: {e}")
            return None

    def list_local_files(
        self, directory: str, pattern: Optional[str] = None, include_directories: bool = True
    ) -> Dict[str, Any]:
        """List the files (and optionally sub-directories) directly inside a local directory."""
        root = Path(_require_name(directory, "directory")).expanduser()
        if not root.is_dir():
            raise InvalidArgumentError(f"Local directory {directory!r} does not exist or is not a directory")

        files: List[str] = []
        directories: List[str] = []
        for path in sorted(root.iterdir()):
            if pattern and not fnmatch.fnmatch(path.name, pattern):
                continue
            if path.is_file():
                files.append(path.name)
            elif path.is_dir():
                directories.append(path.name)

        listing: Dict[str, Any] = {"path": str(root), "files": files}
        if include_directories:
            listing["directories"] = directories
        return listing
