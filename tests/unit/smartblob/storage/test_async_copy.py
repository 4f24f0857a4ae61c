"""Unit tests for the polling copy state machine, rename included."""

from collections import deque

import pytest

from smartblob.storage.async_copy import AsyncCopy
from smartblob.storage.base import CopyState
from smartblob.storage.errors import InvalidArgumentError


class FakeClock:
    """Monotonic clock advanced only by the copier's sleeps."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def copier(memory_gateway, clock):
    memory_gateway.blobs["report.pdf"] = b"report"
    return AsyncCopy(memory_gateway, timeout=5, max_poll_interval=1.0, sleep=clock.sleep, clock=clock)


def test_poll_interval_is_capped_by_timeout():
    fast = AsyncCopy(object(), timeout=2, max_poll_interval=1.0)
    slow = AsyncCopy(object(), timeout=300, max_poll_interval=1.0)
    assert fast.poll_interval == pytest.approx(0.2)
    assert slow.poll_interval == pytest.approx(1.0)


def test_defaults_come_from_config():
    copier = AsyncCopy(object(), config_overrides={"SMARTBLOB_COPY": {"TIMEOUT_SECONDS": 42}})
    assert copier.timeout == 42.0
    assert copier.max_poll_interval == 1.0


def test_negative_timeout_rejected():
    with pytest.raises(InvalidArgumentError):
        AsyncCopy(object(), timeout=-1)


def test_same_source_and_destination_rejected(copier, memory_gateway):
    with pytest.raises(InvalidArgumentError):
        copier.run("report.pdf", "report.pdf")
    assert memory_gateway.calls["begin_copy"] == []


def test_copy_succeeds_after_pending_polls(copier, memory_gateway, clock):
    memory_gateway.copy_script["copy.pdf"] = deque([CopyState.PENDING, CopyState.PENDING, CopyState.SUCCESS])

    assert copier.run("report.pdf", "copy.pdf") is CopyState.SUCCESS
    assert clock.sleeps == [0.5, 0.5]
    assert memory_gateway.calls["abort_copy"] == []
    assert memory_gateway.blobs["copy.pdf"] == b"report"


def test_failed_status_cleans_up_destination(copier, memory_gateway, caplog):
    memory_gateway.copy_script["report-copy.pdf"] = deque([CopyState.FAILED])

    assert copier.copy_blob("report.pdf", "report-copy.pdf") is False
    assert "report-copy.pdf" not in memory_gateway.blobs
    assert memory_gateway.calls["abort_copy"] == [("report-copy.pdf", "copy-report-copy.pdf")]
    assert "ended in state 'failed'" in caplog.text


def test_aborted_status(copier, memory_gateway):
    memory_gateway.copy_script["copy.pdf"] = deque([CopyState.PENDING, CopyState.ABORTED])
    assert copier.run("report.pdf", "copy.pdf") is CopyState.ABORTED
    assert "copy.pdf" not in memory_gateway.blobs


def test_timeout_aborts_and_removes_destination(copier, memory_gateway, clock):
    memory_gateway.copy_script["copy.pdf"] = deque([CopyState.PENDING])

    assert copier.run("report.pdf", "copy.pdf") is CopyState.TIMED_OUT
    assert clock.now >= 5
    assert len(memory_gateway.calls["abort_copy"]) == 1
    assert "copy.pdf" not in memory_gateway.blobs
    assert memory_gateway.blobs["report.pdf"] == b"report"


def test_zero_timeout_polls_once(memory_gateway, clock):
    memory_gateway.blobs["a"] = b"a"
    memory_gateway.copy_script["b"] = deque([CopyState.PENDING])
    copier = AsyncCopy(memory_gateway, timeout=0, sleep=clock.sleep, clock=clock)

    assert copier.run("a", "b") is CopyState.TIMED_OUT
    assert memory_gateway.calls["get_copy_status"] == [("b",)]
    assert clock.sleeps == []


def test_cleanup_errors_are_logged_not_raised(copier, memory_gateway, caplog):
    memory_gateway.copy_script["copy.pdf"] = deque([CopyState.FAILED])
    memory_gateway.abort_error = RuntimeError("abort refused")
    memory_gateway.delete_errors["copy.pdf"] = RuntimeError("delete refused")

    assert copier.run("report.pdf", "copy.pdf") is CopyState.FAILED
    assert "Could not abort copy" in caplog.text
    assert "Could not remove partial copy copy.pdf" in caplog.text


def test_begin_copy_error_is_failed_without_abort(copier, memory_gateway):
    assert copier.run("missing.pdf", "copy.pdf") is CopyState.FAILED
    assert memory_gateway.calls["abort_copy"] == []
    assert memory_gateway.calls["get_copy_status"] == []


def test_begin_copy_error_keeps_existing_destination(copier, memory_gateway):
    memory_gateway.blobs["copy.pdf"] = b"older"

    assert copier.run("missing.pdf", "copy.pdf") is CopyState.FAILED
    assert memory_gateway.blobs["copy.pdf"] == b"older"
    assert memory_gateway.calls["delete"] == []


def test_cleanup_skips_delete_when_nothing_materialized(copier, memory_gateway):
    memory_gateway.copy_materializes = False
    memory_gateway.copy_script["copy.pdf"] = deque([CopyState.FAILED])

    assert copier.run("report.pdf", "copy.pdf") is CopyState.FAILED
    assert memory_gateway.calls["delete"] == []


# ---------------------------------------------------------------------------
# rename
# ---------------------------------------------------------------------------


def test_rename_moves_blob(copier, memory_gateway):
    assert copier.rename_blob("report.pdf", "archive/report.pdf") is True
    assert "report.pdf" not in memory_gateway.blobs
    assert memory_gateway.blobs["archive/report.pdf"] == b"report"


def test_rename_keeps_source_when_copy_fails(copier, memory_gateway):
    memory_gateway.copy_script["archive/report.pdf"] = deque([CopyState.FAILED])

    assert copier.rename_blob("report.pdf", "archive/report.pdf") is False
    assert memory_gateway.blobs["report.pdf"] == b"report"
    assert "archive/report.pdf" not in memory_gateway.blobs
    assert memory_gateway.calls["delete"] == [("archive/report.pdf",)]


def test_rename_source_delete_failure_leaves_both(copier, memory_gateway, caplog):
    memory_gateway.delete_errors["report.pdf"] = ConnectionError("reset")

    assert copier.rename_blob("report.pdf", "archive/report.pdf") is False
    assert "report.pdf" in memory_gateway.blobs
    assert "archive/report.pdf" in memory_gateway.blobs
    assert "could not delete the source" in caplog.text


def test_rename_is_rerunnable_after_partial_failure(copier, memory_gateway):
    memory_gateway.delete_errors["report.pdf"] = ConnectionError("reset")
    assert copier.rename_blob("report.pdf", "archive/report.pdf") is False

    del memory_gateway.delete_errors["report.pdf"]
    assert copier.rename_blob("report.pdf", "archive/report.pdf") is True
    assert list(memory_gateway.blobs) == ["archive/report.pdf"]
