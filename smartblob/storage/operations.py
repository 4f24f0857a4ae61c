"""Single-item blob operations.

Each wrapper performs exactly one gateway call for one WorkItem and reports the result as an
OperationOutcome instead of raising. Retrying is left to the callers.
"""

from __future__ import annotations

import os
from typing import Optional

from smartblob.core import SmartBlob
from smartblob.core.utils import is_url, stage_download, url_basename

from .base import BlobGateway, OperationOutcome, WorkItem


def blob_name_for(source: str, prefix: Optional[str] = None) -> str:
    """Blob name an upload of ``source`` is stored under.

    The name is the source's last path segment (URL path for URLs), joined to ``prefix``.

    >>> blob_name_for("/data/reports/a.pdf")
    'a.pdf'
    >>> blob_name_for("https://example.com/files/b.pdf?sig=x", "inbox")
    'inbox/b.pdf'
    """
    name = url_basename(source) if is_url(source) else os.path.basename(source.rstrip("/\\"))
    if prefix:
        return f"{prefix.strip('/')}/{name}"
    return name


class BlobOperations(SmartBlob):
    """put / get / delete of one WorkItem against a gateway."""

    def __init__(self, gateway: BlobGateway, *, temp_dir: Optional[str] = None, **kwargs):
        super().__init__(**kwargs)
        self.gateway = gateway
        self.temp_dir = temp_dir or self.config.SMARTBLOB_DIR_PATHS.TEMP_DIR

    def put(self, item: WorkItem) -> OperationOutcome:
        """Upload ``item.source`` (local path or http(s) URL).

        ``item.destination``, when set, is a blob-name prefix. URL sources are staged to a
        temporary file that is removed whatever the outcome.
        """
        blob_name = blob_name_for(item.source, item.destination)
        staged: Optional[str] = None
        try:
            if not blob_name:
                raise ValueError(f"cannot derive a blob name from {item.source!r}")
            if is_url(item.source):
                staged = stage_download(item.source, self.temp_dir)
                local_path = staged
            else:
                local_path = item.source
            self.gateway.put_file(blob_name, local_path)
        except Exception as e:
            self.logger.warning(f"Error uploading {item.source} as {blob_name}: {e}")
            return OperationOutcome.failure(item, e, result_key=blob_name)
        finally:
            if staged is not None and os.path.exists(staged):
                os.remove(staged)

        self.logger.debug(f"Uploaded {item.source} as {blob_name}")
        return OperationOutcome.success(item, blob_name)

    def get(self, item: WorkItem) -> OperationOutcome:
        """Download blob ``item.source`` to ``item.destination``.

        A destination that is an existing directory, or ends with a path separator, receives
        the file as ``<destination>/<blob basename>``.
        """
        destination = item.destination or "."
        if os.path.isdir(destination) or destination.endswith(("/", os.sep)):
            destination = os.path.join(destination, os.path.basename(item.source.rstrip("/")))
        try:
            self.gateway.get_to_file(item.source, destination)
        except Exception as e:
            self.logger.warning(f"Error downloading {item.source} to {destination}: {e}")
            return OperationOutcome.failure(item, e, result_key=item.source)

        self.logger.debug(f"Downloaded {item.source} to {destination}")
        return OperationOutcome.success(item, item.source)

    def delete(self, item: WorkItem) -> OperationOutcome:
        """Delete blob ``item.source``. A missing blob is a failure, never a silent success."""
        try:
            self.gateway.delete(item.source)
        except Exception as e:
            self.logger.warning(f"Error deleting {item.source}: {e}")
            return OperationOutcome.failure(item, e, result_key=item.source)

        self.logger.debug(f"Deleted {item.source}")
        return OperationOutcome.success(item, item.source)
