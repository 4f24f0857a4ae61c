from smartblob.storage.async_copy import AsyncCopy
from smartblob.storage.base import (
    BatchResult,
    BlobGateway,
    BlobInfo,
    CopyState,
    OperationOutcome,
    SnapshotInfo,
    Status,
    UrlPermission,
    WorkItem,
)
from smartblob.storage.batch import BatchExecutor
from smartblob.storage.client import BlobClient
from smartblob.storage.errors import BlobNotFoundError, CopyFailedError, InvalidArgumentError, StorageError
from smartblob.storage.local import LocalBlobGateway
from smartblob.storage.operations import BlobOperations
from smartblob.storage.retry import RetryController

__all__ = [
    "AsyncCopy",
    "BatchExecutor",
    "BatchResult",
    "BlobClient",
    "BlobGateway",
    "BlobInfo",
    "BlobNotFoundError",
    "BlobOperations",
    "CopyFailedError",
    "CopyState",
    "InvalidArgumentError",
    "LocalBlobGateway",
    "OperationOutcome",
    "RetryController",
    "SnapshotInfo",
    "Status",
    "StorageError",
    "UrlPermission",
    "WorkItem",
]
