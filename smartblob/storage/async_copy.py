"""Server-side copy driven to completion by polling.

``begin_copy`` only starts a copy. AsyncCopy polls the destination's copy status until the
store reports a terminal state or the local deadline passes, and on any outcome other than
success aborts the copy and removes whatever reached the destination. Abort and cleanup
errors are logged, never raised.
"""

from __future__ import annotations

import time
from typing import Callable, Optional

from smartblob.core import SmartBlob

from .base import BlobGateway, CopyState
from .errors import CopyFailedError, InvalidArgumentError


class AsyncCopy(SmartBlob):
    """Copy and rename on top of a gateway's asynchronous copy primitives.

    Args:
        gateway: The store to copy within.
        timeout: Seconds to wait for a copy to leave PENDING. Defaults to SMARTBLOB_COPY.TIMEOUT_SECONDS.
        max_poll_interval: Ceiling of the poll interval. The interval used is
            ``min(max_poll_interval, timeout / 10)``.
        sleep: Function used to wait between polls.
        clock: Monotonic clock used for the deadline.
    """

    def __init__(
        self,
        gateway: BlobGateway,
        *,
        timeout: Optional[float] = None,
        max_poll_interval: Optional[float] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.gateway = gateway
        copy_config = self.config.SMARTBLOB_COPY
        self.timeout = float(timeout if timeout is not None else copy_config.TIMEOUT_SECONDS)
        self.max_poll_interval = float(
            max_poll_interval if max_poll_interval is not None else copy_config.MAX_POLL_INTERVAL_SECONDS
        )
        if self.timeout < 0:
            raise InvalidArgumentError(f"copy timeout must not be negative, got {self.timeout}")
        self._sleep = sleep
        self._clock = clock

    @property
    def poll_interval(self) -> float:
        return min(self.max_poll_interval, self.timeout / 10)

    def run(self, source: str, destination: str) -> CopyState:
        """Copy ``source`` to ``destination`` and return the terminal CopyState.

        Blocks the calling thread until the copy resolves or times out.
        """
        if source == destination:
            raise InvalidArgumentError(f"source and destination are the same blob: {source!r}")

        copy_id: Optional[str] = None
        try:
            copy_id = self.gateway.begin_copy(source, destination)
            self.logger.debug(f"Started copy {copy_id}: {source} -> {destination}")
            self._wait(source, destination)
        except CopyFailedError as e:
            state = e.state
            self.logger.error(str(e))
        except Exception as e:
            state = CopyState.FAILED
            self.logger.error(f"Copy {source} -> {destination} failed: {e}")
        else:
            self.logger.info(f"Copied {source} -> {destination}")
            return CopyState.SUCCESS

        if copy_id is not None:
            self._cleanup(destination, copy_id)
        return state

    def _wait(self, source: str, destination: str) -> None:
        started = self._clock()
        while True:
            state = self.gateway.get_copy_status(destination)
            if state is CopyState.SUCCESS:
                return
            if state in (CopyState.FAILED, CopyState.ABORTED):
                raise CopyFailedError(source, destination, state)
            if self._clock() - started >= self.timeout:
                raise CopyFailedError(source, destination, CopyState.TIMED_OUT)
            self._sleep(self.poll_interval)

    def _cleanup(self, destination: str, copy_id: str) -> None:
        """Best-effort abort of a started copy and removal of a partially materialized destination.

        Never called when ``begin_copy`` itself failed: the destination then still holds
        whatever was there before this copy.
        """
        try:
            self.gateway.abort_copy(destination, copy_id)
        except Exception as e:
            self.logger.warning(f"Could not abort copy {copy_id} to {destination}: {e}")
        try:
            if self.gateway.exists(destination):
                self.gateway.delete(destination)
                self.logger.info(f"Removed partial copy {destination}")
        except Exception as e:
            self.logger.warning(f"Could not remove partial copy {destination}: {e}")

    def copy_blob(self, source: str, destination: str) -> bool:
        return self.run(source, destination) is CopyState.SUCCESS

    def rename_blob(self, source: str, destination: str) -> bool:
        """Copy then delete the source.

        The source is deleted only after the copy reached SUCCESS. If that delete fails both
        blobs remain and False is returned; running the rename again completes it.
        """
        if not self.copy_blob(source, destination):
            return False
        try:
            self.gateway.delete(source)
        except Exception as e:
            self.logger.error(f"Copied {source} -> {destination} but could not delete the source: {e}")
            return False
        self.logger.info(f"Renamed {source} -> {destination}")
        return True
