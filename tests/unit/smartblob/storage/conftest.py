"""Shared fixtures for storage tests.

``InMemoryGateway`` is an instrumented BlobGateway: copy statuses can be scripted per
destination, puts can be made to fail a given number of times, and every call updates an
in-flight counter so tests can assert the concurrency bound.
"""

import threading
import time
from collections import defaultdict, deque
from datetime import timedelta
from typing import BinaryIO, Dict, FrozenSet, Iterator, Optional

import pytest

from smartblob.storage.base import BlobGateway, BlobInfo, CopyState, UrlPermission, new_snapshot_id, snapshot_name
from smartblob.storage.errors import BlobNotFoundError
from smartblob.storage.local import LocalBlobGateway


class InMemoryGateway(BlobGateway):
    def __init__(self, *, delay: float = 0.0, **kwargs):
        super().__init__(**kwargs)
        self.blobs: Dict[str, bytes] = {}
        self.delay = delay
        self.put_failures: Dict[str, int] = defaultdict(int)
        self.copy_script: Dict[str, deque] = {}
        self.copy_materializes = True
        self.abort_error: Optional[Exception] = None
        self.delete_errors: Dict[str, Exception] = {}
        self.calls = defaultdict(list)
        self.in_flight = 0
        self.max_in_flight = 0
        self._lock = threading.Lock()

    def _enter(self, op: str, *args) -> None:
        with self._lock:
            self.calls[op].append(args)
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        if self.delay:
            time.sleep(self.delay)

    def _exit(self) -> None:
        with self._lock:
            self.in_flight -= 1

    def put(self, name: str, data: BinaryIO, length: int, metadata: Optional[Dict[str, str]] = None) -> None:
        self._enter("put", name)
        try:
            with self._lock:
                if self.put_failures[name] > 0:
                    self.put_failures[name] -= 1
                    raise ConnectionError(f"injected failure for {name}")
            self.blobs[name] = data.read()
        finally:
            self._exit()

    def get(self, name: str) -> Iterator[bytes]:
        self._enter("get", name)
        try:
            if name not in self.blobs:
                raise BlobNotFoundError(name)
            return iter([self.blobs[name]])
        finally:
            self._exit()

    def delete(self, name: str) -> None:
        self._enter("delete", name)
        try:
            if name in self.delete_errors:
                raise self.delete_errors[name]
            if name not in self.blobs:
                raise BlobNotFoundError(name)
            del self.blobs[name]
        finally:
            self._exit()

    def exists(self, name: str) -> bool:
        return name in self.blobs

    def begin_copy(self, source_name: str, destination_name: str) -> str:
        self.calls["begin_copy"].append((source_name, destination_name))
        if source_name not in self.blobs:
            raise BlobNotFoundError(source_name)
        if self.copy_materializes:
            self.blobs[destination_name] = self.blobs[source_name]
        return f"copy-{destination_name}"

    def get_copy_status(self, destination_name: str) -> CopyState:
        self.calls["get_copy_status"].append((destination_name,))
        script = self.copy_script.get(destination_name)
        if not script:
            return CopyState.SUCCESS
        if len(script) > 1:
            return script.popleft()
        return script[0]

    def abort_copy(self, destination_name: str, copy_id: str) -> None:
        self.calls["abort_copy"].append((destination_name, copy_id))
        if self.abort_error is not None:
            raise self.abort_error

    def create_snapshot(self, name: str) -> str:
        if name not in self.blobs:
            raise BlobNotFoundError(name)
        snapshot_id = new_snapshot_id()
        self.blobs[snapshot_name(name, snapshot_id)] = self.blobs[name]
        return snapshot_id

    def issue_url(self, name: str, expiry: timedelta, permissions: FrozenSet[UrlPermission]) -> str:
        permission = self.single_permission(permissions)
        return f"memory://{name}?method={permission.method}&ttl={int(expiry.total_seconds())}"

    def list(self, prefix: Optional[str] = None) -> Iterator[BlobInfo]:
        for name in sorted(self.blobs):
            if prefix and not name.startswith(prefix):
                continue
            yield BlobInfo(name=name, size=len(self.blobs[name]))


@pytest.fixture
def memory_gateway():
    return InMemoryGateway()


@pytest.fixture
def local_gateway(tmp_path):
    return LocalBlobGateway(tmp_path / "store")


@pytest.fixture
def make_files(tmp_path):
    """Create local files and return their paths as strings."""

    def _make(*names: str, content: bytes = b"payload") -> list:
        paths = []
        for name in names:
            path = tmp_path / "src" / name
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(content)
            paths.append(str(path))
        return paths

    return _make


@pytest.fixture
def gateway_factory():
    """Build InMemoryGateway instances with custom options."""
    return InMemoryGateway
