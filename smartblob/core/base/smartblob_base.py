"""Base classes giving every smartblob component a logger, a config and context-manager support."""

import logging
import time
import traceback
from abc import ABC, ABCMeta
from functools import wraps
from typing import Callable, Optional

from smartblob.core.config import CoreConfig, SettingsLike
from smartblob.core.logging.logger import get_logger

LOGGER_PARAM_NAMES = {
    "log_dir",
    "logger_level",
    "stream_level",
    "file_level",
    "file_mode",
    "propagate",
    "max_bytes",
    "backup_count",
    "use_structlog",
    "structlog_json",
    "structlog_bind",
}


def _started(function, args, kwargs) -> str:
    return f"Operation {function.__name__} started with args: {args} and kwargs: {kwargs}"


def _completed(function, result) -> str:
    return f"Operation {function.__name__} completed with result: {result}"


def _failed(function, error, stack_trace) -> str:
    return f"Operation {function.__name__} failed with the following error: {error}\n{stack_trace}"


class SmartBlobMeta(type):
    """Metaclass exposing ``logger`` and ``config`` on the class itself.

    Class methods and instance methods therefore log through the same
    ``smartblob.<module>.<Class>`` logger::

        class Uploader(SmartBlob):
            @classmethod
            def describe(cls):
                cls.logger.info("uploader ready")
    """

    def __init__(cls, name, bases, attr_dict):
        super().__init__(name, bases, attr_dict)
        cls._logger = None
        cls._config = None
        cls._logger_kwargs = None
        cls._logger_built_with = None

    @property
    def logger(cls):
        wanted = cls._logger_kwargs or {}
        if cls._logger is None or (cls._logger_built_with is not None and cls._logger_built_with != wanted):
            cls._logger = get_logger(cls.unique_name, **wanted)
            cls._logger_built_with = dict(wanted)
        return cls._logger

    @logger.setter
    def logger(cls, new_logger):
        cls._logger = new_logger
        cls._logger_built_with = None

    @property
    def unique_name(cls) -> str:
        return f"{cls.__module__}.{cls.__name__}"

    @property
    def config(cls):
        if cls._config is None:
            cls._config = CoreConfig()
        return cls._config

    @config.setter
    def config(cls, new_config):
        cls._config = new_config


class SmartBlob(metaclass=SmartBlobMeta):
    """Root of the smartblob class hierarchy.

    Instances get ``self.config`` (a CoreConfig with the given overrides applied) and
    ``self.logger``, and can be used as context managers that log and optionally suppress
    exceptions raised inside the ``with`` block.
    """

    def __init__(self, suppress: bool = False, *, config_overrides: SettingsLike | None = None, **kwargs):
        """
        Args:
            suppress: Swallow exceptions raised inside a ``with`` block after logging them.
            config_overrides: Settings applied on top of CoreSettings for this instance.
            **kwargs: Logger options (see LOGGER_PARAM_NAMES) are forwarded to ``get_logger``;
                anything else goes to the next class in the MRO.
        """
        logger_kwargs = {k: v for k, v in kwargs.items() if k in LOGGER_PARAM_NAMES}
        super().__init__(**{k: v for k, v in kwargs.items() if k not in LOGGER_PARAM_NAMES})

        self.suppress = suppress
        self.config = CoreConfig(config_overrides)
        type(self)._logger_kwargs = logger_kwargs
        self.logger = get_logger(self.unique_name, **logger_kwargs)

    @property
    def unique_name(self) -> str:
        return type(self).unique_name

    @property
    def name(self) -> str:
        return type(self).__name__

    def __enter__(self):
        self.logger.debug(f"Entering {self.name} context.")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.logger.debug(f"Exiting context manager for {self.name}.")
        if exc_type is None:
            return False
        self.logger.exception("Exception occurred", exc_info=(exc_type, exc_val, exc_tb))
        return self.suppress

    @classmethod
    def autolog(
        cls,
        log_level=logging.DEBUG,
        prefix_formatter: Optional[Callable] = None,
        suffix_formatter: Optional[Callable] = None,
        exception_formatter: Optional[Callable] = None,
        include_duration: bool = True,
    ):
        """Method decorator logging each call's arguments, result and duration through ``self.logger``.

        Exceptions are logged at ERROR with their stack trace and re-raised.

        Args:
            log_level: Level of the start and completion records.
            prefix_formatter: ``(function, args, kwargs) -> str`` for the start record.
            suffix_formatter: ``(function, result) -> str`` for the completion record.
            exception_formatter: ``(function, error, stack_trace) -> str`` for the error record.
            include_duration: Append ``| duration_ms=<ms>`` to the completion record.

        Example::

            class Calculator(SmartBlob):
                @SmartBlob.autolog()
                def divide(self, a, b):
                    return a / b

        .. code-block:: text

            Operation divide started with args: (1, 2) and kwargs: {}
            Operation divide completed with result: 0.5 | duration_ms=0.01
        """
        prefix_formatter = prefix_formatter or _started
        suffix_formatter = suffix_formatter or _completed
        exception_formatter = exception_formatter or _failed

        def decorator(function):
            @wraps(function)
            def wrapper(self, *args, **kwargs):
                started_at = time.perf_counter()
                self.logger.log(log_level, prefix_formatter(function, args, kwargs))
                try:
                    result = function(self, *args, **kwargs)
                except Exception as e:
                    self.logger.error(exception_formatter(function, e, traceback.format_exc()))
                    raise
                message = suffix_formatter(function, result)
                if include_duration:
                    message += f" | duration_ms={(time.perf_counter() - started_at) * 1000.0:.2f}"
                self.logger.log(log_level, message)
                return result

            return wrapper

        return decorator


class SmartBlobABCMeta(SmartBlobMeta, ABCMeta):
    """Combined metaclass so a class can derive from both SmartBlob and ABC."""


class SmartBlobABC(SmartBlob, ABC, metaclass=SmartBlobABCMeta):
    """SmartBlob with abstract-method enforcement, used for backend interfaces such as BlobGateway."""
