from __future__ import annotations

from typing import List, Optional, Sequence

from smartblob.core import SmartBlob, ifnone

from .base import BatchResult, OperationOutcome, WorkItem
from .batch import BatchExecutor, Operation
from .errors import InvalidArgumentError


class RetryController(SmartBlob):
    """Repeats a batch over the items that failed, for a bounded number of extra passes.

    Each pass is a fresh BatchExecutor run; only the shrinking set of remaining items is
    carried from one pass to the next. Items failing every pass are permanently failed.
    """

    def __init__(self, executor: BatchExecutor, *, retry_passes: Optional[int] = None, **kwargs):
        super().__init__(**kwargs)
        self.executor = executor
        self.retry_passes = int(ifnone(retry_passes, self.config.SMARTBLOB_BATCH.RETRY_PASSES))

    def run(self, items: Sequence[WorkItem], operation: Operation, retry_passes: Optional[int] = None) -> BatchResult:
        passes = self.retry_passes if retry_passes is None else int(retry_passes)
        if passes < 0:
            raise InvalidArgumentError(f"retry_passes must not be negative, got {passes}")
        remaining = list(items)
        if not remaining:
            raise InvalidArgumentError("a batch needs at least one work item")

        succeeded: List[OperationOutcome] = []
        failed: List[OperationOutcome] = []
        for attempt in range(passes + 1):
            if attempt:
                self.logger.info(f"Retry pass {attempt}/{passes} for {len(remaining)} failed item(s)")
            batch = self.executor.run(remaining, operation)
            succeeded.extend(o for o in batch.outcomes if o.ok)
            failed = [o for o in batch.outcomes if not o.ok]
            remaining = [o.item for o in failed]
            if not remaining:
                break

        if failed:
            self.logger.warning(
                f"{len(failed)} item(s) failed after {passes + 1} attempt(s): {[o.item.source for o in failed]}"
            )
        return BatchResult.from_outcomes(succeeded + failed)
