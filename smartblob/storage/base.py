from __future__ import annotations

import os
import tempfile
from abc import abstractmethod
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, BinaryIO, Dict, FrozenSet, Iterable, Iterator, List, Optional

from smartblob.core import SmartBlobABC

SNAPSHOT_PREFIX = ".snapshots/"


class Status(str, Enum):
    """Outcome of one work item."""

    SUCCESS = "success"
    FAILURE = "failure"


class CopyState(str, Enum):
    """Lifecycle of one asynchronous copy. PENDING is the only non-terminal state."""

    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    ABORTED = "aborted"
    TIMED_OUT = "timed_out"

    @property
    def is_terminal(self) -> bool:
        return self is not CopyState.PENDING


class UrlPermission(str, Enum):
    READ = "read"
    WRITE = "write"
    DELETE = "delete"

    @property
    def method(self) -> str:
        """HTTP method a signed URL with this permission is issued for."""
        return {"read": "GET", "write": "PUT", "delete": "DELETE"}[self.value]


@dataclass(frozen=True)
class WorkItem:
    """One unit of work: a source and, where relevant, a destination."""

    source: str
    destination: Optional[str] = None


@dataclass
class OperationOutcome:
    """Result of one attempt at one WorkItem."""

    item: WorkItem
    status: Status
    result_key: Optional[str] = None
    error_type: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == Status.SUCCESS

    @classmethod
    def success(cls, item: WorkItem, result_key: str) -> "OperationOutcome":
        return cls(item=item, status=Status.SUCCESS, result_key=result_key)

    @classmethod
    def failure(cls, item: WorkItem, error: BaseException | str, result_key: Optional[str] = None) -> "OperationOutcome":
        if isinstance(error, BaseException):
            error_type, error_message = type(error).__name__, str(error)
        else:
            error_type, error_message = "Error", error
        return cls(
            item=item,
            status=Status.FAILURE,
            result_key=result_key,
            error_type=error_type,
            error_message=error_message,
        )


@dataclass
class BatchResult:
    """Partitioned result of a batch.

    ``succeeded`` holds result keys (e.g. blob names), ``failed`` holds the original
    source identifiers. Every submitted item appears in exactly one of the two.
    """

    succeeded: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    outcomes: List[OperationOutcome] = field(default_factory=list)

    @classmethod
    def from_outcomes(cls, outcomes: Iterable[OperationOutcome]) -> "BatchResult":
        result = cls()
        for outcome in outcomes:
            result.add(outcome)
        return result

    def add(self, outcome: OperationOutcome) -> None:
        if outcome.ok:
            self.succeeded.append(outcome.result_key or outcome.item.source)
        else:
            self.failed.append(outcome.item.source)
        self.outcomes.append(outcome)

    def __len__(self) -> int:
        return len(self.succeeded) + len(self.failed)

    @property
    def all_succeeded(self) -> bool:
        return not self.failed

    @property
    def errors(self) -> Dict[str, str]:
        """Map of failed source -> last error message."""
        return {o.item.source: o.error_message or "" for o in self.outcomes if not o.ok}

    def summary(self, verb: str = "processed", noun: str = "items") -> str:
        if not self.failed:
            return f"Successfully {verb} all {len(self.succeeded)} {noun}"
        return (
            f"{verb.capitalize()} {len(self.succeeded)}/{len(self)} {noun}. "
            f"{len(self.failed)} operations failed"
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": bool(self.succeeded),
            "message": self.summary(),
            "succeeded": list(self.succeeded),
            "failed": list(self.failed),
            "errors": self.errors,
        }


@dataclass
class BlobInfo:
    name: str
    size: Optional[int] = None
    content_type: Optional[str] = None
    last_modified: Optional[datetime] = None
    metadata: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["last_modified"] = self.last_modified.isoformat() if self.last_modified else None
        return data


@dataclass
class SnapshotInfo:
    blob_name: str
    snapshot_id: str
    snapshot_name: str
    created_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["created_at"] = self.created_at.isoformat()
        return data


def new_snapshot_id(now: Optional[datetime] = None) -> str:
    """Return a sortable UTC timestamp id, e.g. ``20260101T120000123456Z``."""
    return (now or datetime.now(timezone.utc)).strftime("%Y%m%dT%H%M%S%fZ")


def snapshot_name(name: str, snapshot_id: str) -> str:
    """Blob name under which a snapshot of ``name`` is stored."""
    return f"{SNAPSHOT_PREFIX}{name}/{snapshot_id}"


def is_snapshot_name(name: str) -> bool:
    return name.startswith(SNAPSHOT_PREFIX)


class BlobGateway(SmartBlobABC):
    """Abstract single-item interface every remote store binding must implement.

    Gateway methods perform exactly one logical remote operation and raise on failure;
    normalising errors into outcomes is the job of the callers.
    """

    # CRUD ------------------------------------------------------------------
    @abstractmethod
    def put(self, name: str, data: BinaryIO, length: int, metadata: Optional[Dict[str, str]] = None) -> None: ...

    @abstractmethod
    def get(self, name: str) -> Iterator[bytes]:
        """Stream the blob's bytes. Raises BlobNotFoundError if it does not exist."""

    @abstractmethod
    def delete(self, name: str) -> None:
        """Delete the blob. Raises BlobNotFoundError if it does not exist."""

    @abstractmethod
    def exists(self, name: str) -> bool: ...

    # Server-side copy -----------------------------------------------------
    @abstractmethod
    def begin_copy(self, source_name: str, destination_name: str) -> str:
        """Start a copy and return its copy id. Completion is observed with get_copy_status."""

    @abstractmethod
    def get_copy_status(self, destination_name: str) -> CopyState:
        """Return PENDING, SUCCESS, FAILED or ABORTED for the copy targeting destination_name."""

    @abstractmethod
    def abort_copy(self, destination_name: str, copy_id: str) -> None: ...

    # Introspection ---------------------------------------------------------
    @abstractmethod
    def create_snapshot(self, name: str) -> str:
        """Create a read-only point-in-time copy of the blob and return its snapshot id."""

    @abstractmethod
    def issue_url(self, name: str, expiry: timedelta, permissions: FrozenSet[UrlPermission]) -> str: ...

    @abstractmethod
    def list(self, prefix: Optional[str] = None) -> Iterator[BlobInfo]: ...

    # Helpers ---------------------------------------------------------------
    def put_file(self, name: str, local_path: str, metadata: Optional[Dict[str, str]] = None) -> None:
        """Upload a local file under the given blob name."""
        length = os.path.getsize(local_path)
        with open(local_path, "rb") as f:
            self.put(name, f, length, metadata)

    def get_to_file(self, name: str, local_path: str) -> str:
        """Download a blob to local_path (overwriting it), never leaving a partial file behind."""
        directory = os.path.dirname(local_path) or "."
        os.makedirs(directory, exist_ok=True)
        # Unique per call so concurrent downloads never share a partial file
        with tempfile.NamedTemporaryFile(
            mode="wb", dir=directory, prefix=f".{os.path.basename(local_path)}.", suffix=".part", delete=False
        ) as f:
            partial_path = f.name
        try:
            with open(partial_path, "wb") as f:
                for chunk in self.get(name):
                    f.write(chunk)
            os.replace(partial_path, local_path)
        finally:
            if os.path.exists(partial_path):
                os.remove(partial_path)
        return local_path

    @staticmethod
    def single_permission(permissions: FrozenSet[UrlPermission]) -> UrlPermission:
        """Return the only permission of a signed-URL request."""
        if len(permissions) != 1:
            raise ValueError(
                f"signed URLs carry exactly one permission, got {sorted(p.value for p in permissions)}"
            )
        return next(iter(permissions))
