import logging

import pytest
from _pytest.mark import Mark

empty_mark = Mark("", (), {})


def by_slow_marker(item):
    # Check if test is marked as slow
    is_slow = 0 if item.get_closest_marker("slow") is None else 1

    # Check if test is integration test
    is_integration = 1 if "integration" in str(item.fspath) else 0

    # Unit tests first, then slow unit tests, then integration tests, then slow integration tests
    return (is_integration, is_slow)


def pytest_addoption(parser):
    parser.addoption("--slow-last", action="store_true", default=False)


def pytest_collection_modifyitems(items, config):
    if config.getoption("--slow-last"):
        items.sort(key=by_slow_marker)


@pytest.fixture(autouse=True)
def configure_logging_for_tests(caplog):
    """Route smartblob loggers to the root logger so that caplog captures them."""
    caplog.set_level(logging.DEBUG)

    root_logger = logging.getLogger()
    original_level = root_logger.level
    root_logger.setLevel(logging.DEBUG)

    smartblob_logger = logging.getLogger("smartblob")
    original_propagate = smartblob_logger.propagate
    smartblob_logger.propagate = True

    yield

    root_logger.setLevel(original_level)
    smartblob_logger.propagate = original_propagate


@pytest.fixture(autouse=True)
def isolated_smartblob_dirs(tmp_path, monkeypatch):
    """Keep temp files of every test under its own tmp_path."""
    monkeypatch.setenv("SMARTBLOB_DIR_PATHS__TEMP_DIR", str(tmp_path / "smartblob-temp"))
