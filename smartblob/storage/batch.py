from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from typing import Callable, Optional, Sequence

from smartblob.core import SmartBlob, first_not_none

from .base import BatchResult, OperationOutcome, WorkItem
from .errors import InvalidArgumentError

Operation = Callable[[WorkItem], OperationOutcome]


class BatchExecutor(SmartBlob):
    """Runs one operation over many WorkItems on a bounded, per-call thread pool.

    All items are submitted up front; results are then harvested on the calling thread in
    submission order, so the result collections are only ever touched by one thread. A
    failing item never aborts the batch.

    Args:
        max_workers: Upper bound on concurrently running operations. Defaults to SMARTBLOB_BATCH.MAX_WORKERS.
        task_timeout: Seconds to wait for each item while harvesting. Defaults to
            SMARTBLOB_BATCH.TASK_TIMEOUT_SECONDS.
    """

    def __init__(self, *, max_workers: Optional[int] = None, task_timeout: Optional[float] = None, **kwargs):
        super().__init__(**kwargs)
        batch_config = self.config.SMARTBLOB_BATCH
        self.max_workers = int(first_not_none([max_workers, batch_config.MAX_WORKERS]))
        self.task_timeout = float(first_not_none([task_timeout, batch_config.TASK_TIMEOUT_SECONDS]))
        if self.max_workers < 1:
            raise InvalidArgumentError(f"max_workers must be at least 1, got {self.max_workers}")

    def run(self, items: Sequence[WorkItem], operation: Operation) -> BatchResult:
        items = list(items)
        if not items:
            raise InvalidArgumentError("a batch needs at least one work item")

        result = BatchResult()
        executor = ThreadPoolExecutor(max_workers=min(len(items), self.max_workers), thread_name_prefix="smartblob")
        try:
            futures = [(item, executor.submit(self._guarded, operation, item)) for item in items]
            for item, future in futures:
                try:
                    outcome = future.result(timeout=self.task_timeout)
                except FuturesTimeoutError:
                    # Only effective if the task never started; a running remote call is abandoned.
                    future.cancel()
                    self.logger.warning(
                        f"{item.source} did not finish within {self.task_timeout}s; reporting it as failed. "
                        "The remote operation may still complete."
                    )
                    outcome = OperationOutcome.failure(
                        item, TimeoutError(f"timed out after {self.task_timeout}s waiting for {item.source}")
                    )
                result.add(outcome)
        finally:
            # Do not block on abandoned tasks; drop anything that has not started.
            executor.shutdown(wait=False, cancel_futures=True)

        self.logger.info(result.summary())
        return result

    def _guarded(self, operation: Operation, item: WorkItem) -> OperationOutcome:
        """Run one operation in a worker, converting any exception into a failure outcome."""
        try:
            return operation(item)
        except Exception as e:
            self.logger.warning(f"Operation on {item.source} raised {type(e).__name__}: {e}")
            return OperationOutcome.failure(item, e)
