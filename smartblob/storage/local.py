"""
Local filesystem blob gateway.

Blob names map to files under ``root``; user metadata and content type live in JSON
sidecars under ``root/.smartblob-meta``. Copies complete synchronously inside
``begin_copy`` so a status poll always observes a terminal state. Useful for local
development, tests and CI.

Example mapping:
    name = "reports/2024/q1.pdf"
    real_path = "<root>/reports/2024/q1.pdf"
"""

from __future__ import annotations

import json
import mimetypes
import shutil
import threading
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import BinaryIO, Dict, FrozenSet, Iterator, Optional
from urllib.parse import urlencode

from .base import BlobGateway, BlobInfo, CopyState, UrlPermission, new_snapshot_id, snapshot_name
from .errors import BlobNotFoundError

META_DIR = ".smartblob-meta"
CHUNK_SIZE = 1024 * 1024


class LocalBlobGateway(BlobGateway):
    """Blob store backed by a directory on the local filesystem."""

    def __init__(self, root: str | Path, **kwargs) -> None:
        super().__init__(**kwargs)
        self.root = Path(root).expanduser().absolute()
        self.root.mkdir(parents=True, exist_ok=True)
        self._copies: Dict[str, CopyState] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Name resolution
    # ------------------------------------------------------------------
    def _resolve(self, name: str) -> Path:
        """Translate a blob name into a path under root, rejecting traversal."""
        key = name.strip("/").replace("\\", "/")
        if not key:
            raise ValueError("blob name must not be empty")
        path = (self.root / key).resolve()
        if self.root.resolve() not in path.parents:
            raise ValueError(f"Suspicious blob name outside root: {name}")
        return path

    def _meta_path(self, name: str) -> Path:
        return self.root / META_DIR / f"{name.strip('/')}.json"

    def _read_meta(self, name: str) -> Dict[str, object]:
        path = self._meta_path(name)
        if not path.exists():
            return {}
        with open(path, "r") as f:
            return json.load(f)

    def _write_meta(self, name: str, meta: Dict[str, object]) -> None:
        path = self._meta_path(name)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(meta, f)

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------
    def put(self, name: str, data: BinaryIO, length: int, metadata: Optional[Dict[str, str]] = None) -> None:
        path = self._resolve(name)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "wb") as f:
            shutil.copyfileobj(data, f, CHUNK_SIZE)
        content_type, _ = mimetypes.guess_type(name)
        self._write_meta(
            name,
            {"content_type": content_type or "application/octet-stream", "metadata": dict(metadata or {})},
        )

    def get(self, name: str) -> Iterator[bytes]:
        path = self._resolve(name)
        if not path.is_file():
            raise BlobNotFoundError(name)
        return self._iter_file(path)

    @staticmethod
    def _iter_file(path: Path) -> Iterator[bytes]:
        with open(path, "rb") as f:
            while chunk := f.read(CHUNK_SIZE):
                yield chunk

    def delete(self, name: str) -> None:
        path = self._resolve(name)
        if not path.is_file():
            raise BlobNotFoundError(name)
        path.unlink()
        self._meta_path(name).unlink(missing_ok=True)
        with self._lock:
            self._copies.pop(name, None)

    def exists(self, name: str) -> bool:
        return self._resolve(name).is_file()

    # ------------------------------------------------------------------
    # Server-side copy
    # ------------------------------------------------------------------
    def begin_copy(self, source_name: str, destination_name: str) -> str:
        source = self._resolve(source_name)
        if not source.is_file():
            raise BlobNotFoundError(source_name)
        destination = self._resolve(destination_name)
        destination.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(source, destination)
        self._write_meta(destination_name, self._read_meta(source_name))
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
        with self._lock:
            if self._copies.get(destination_name) is CopyState.PENDING:
                self._copies[destination_name] = CopyState.ABORTED
                return
        self.logger.debug(f"No pending copy {copy_id} for {destination_name}; nothing to abort")

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------
    def create_snapshot(self, name: str) -> str:
        source = self._resolve(name)
        if not source.is_file():
            raise BlobNotFoundError(name)
        snapshot_id = new_snapshot_id()
        target_name = snapshot_name(name, snapshot_id)
        target = self._resolve(target_name)
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(source, target)
        self._write_meta(target_name, self._read_meta(name))
        return snapshot_id

    def issue_url(self, name: str, expiry: timedelta, permissions: FrozenSet[UrlPermission]) -> str:
        path = self._resolve(name)
        expires = datetime.now(timezone.utc) + expiry
        query = urlencode(
            {
                "expires": expires.strftime("%Y-%m-%dT%H:%M:%SZ"),
                "permissions": "".join(sorted(p.value[0] for p in permissions)),
            }
        )
        return f"{path.as_uri()}?{query}"

    def list(self, prefix: Optional[str] = None) -> Iterator[BlobInfo]:
        for path in sorted(self.root.rglob("*")):
            if not path.is_file():
                continue
            name = path.relative_to(self.root).as_posix()
            if name.startswith(f"{META_DIR}/"):
                continue
            if prefix and not name.startswith(prefix):
                continue
            meta = self._read_meta(name)
            stat = path.stat()
            yield BlobInfo(
                name=name,
                size=stat.st_size,
                content_type=meta.get("content_type"),
                last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
                metadata=dict(meta.get("metadata") or {}),
            )
