import logging
import os
from collections import OrderedDict
from logging import Logger
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

import structlog

from smartblob.core.config import CoreSettings
from smartblob.core.utils import ifnone

ROOT_LOGGER = "smartblob"
STRUCTLOG_KEY_ORDER = ["timestamp", "event", "level", "logger"]


def default_formatter(fmt: Optional[str] = None) -> logging.Formatter:
    """Formatter used by plain (non-structlog) handlers."""
    return logging.Formatter(fmt or "[%(asctime)s] %(levelname)s: %(name)s: %(message)s")


def _log_file_path(name: str, log_dir: Optional[Path], use_structlog: bool) -> str:
    """``<dir>/smartblob.log`` for the package logger, ``<dir>/modules/<name>.log`` for the rest."""
    if log_dir is None:
        dirs = CoreSettings().SMARTBLOB_DIR_PATHS
        log_dir = os.path.expanduser(dirs.STRUCT_LOGGER_DIR if use_structlog else dirs.LOGGER_DIR)
    relative = f"{name}.log" if name == ROOT_LOGGER else os.path.join("modules", f"{name}.log")
    return os.path.join(log_dir, relative)


def setup_logger(
    name: str = ROOT_LOGGER,
    *,
    log_dir: Optional[Path] = None,
    logger_level: int = logging.DEBUG,
    stream_level: int = logging.ERROR,
    add_stream_handler: bool = True,
    file_level: int = logging.DEBUG,
    file_mode: str = "a",
    add_file_handler: bool = True,
    propagate: bool = False,
    max_bytes: int = 10 * 1024 * 1024,
    backup_count: int = 5,
    use_structlog: Optional[bool] = None,
    structlog_json: Optional[bool] = True,
    structlog_bind: Optional[object] = None,
) -> Logger | structlog.BoundLogger:
    """(Re)configure a logger with a stderr handler and a size-rotated log file.

    Existing handlers on the logger are replaced, so calling this twice never duplicates output.
    Only records at ``stream_level`` and above reach the console; the file receives everything
    from ``file_level`` up.

    Args:
        name: Logger name, defaults to "smartblob".
        log_dir: Directory for the log file. Defaults to SMARTBLOB_DIR_PATHS.LOGGER_DIR, or
            STRUCT_LOGGER_DIR when structlog is used.
        logger_level: Level of the logger itself.
        stream_level: Level of the console handler.
        add_stream_handler: Whether to attach the console handler.
        file_level: Level of the file handler.
        file_mode: Open mode of the log file.
        add_file_handler: Whether to attach the file handler.
        propagate: Whether records also go to ancestor loggers.
        max_bytes: Size at which the log file rotates.
        backup_count: Number of rotated files kept.
        use_structlog: Return a structlog BoundLogger. Defaults to SMARTBLOB_LOGGER.USE_STRUCTLOG.
        structlog_json: Render structlog events as JSON instead of the console renderer.
        structlog_bind: Dict, or callable taking the logger name and returning a dict, of fields
            bound to every structlog event.

    Returns:
        The configured logging.Logger, or a structlog BoundLogger wrapping it.
    """
    logger = logging.getLogger(name)
    logger.handlers.clear()
    logger.setLevel(logger_level)
    logger.propagate = propagate

    use_structlog = ifnone(use_structlog, default=CoreSettings().SMARTBLOB_LOGGER.USE_STRUCTLOG)
    # structlog renders the whole line itself
    formatter = logging.Formatter("%(message)s") if use_structlog else default_formatter()

    if add_stream_handler:
        stream_handler = logging.StreamHandler()
        stream_handler.setLevel(stream_level)
        stream_handler.setFormatter(formatter)
        logger.addHandler(stream_handler)

    if add_file_handler:
        log_file = _log_file_path(name, log_dir, use_structlog)
        os.makedirs(Path(log_file).parent, exist_ok=True)
        file_handler = RotatingFileHandler(log_file, mode=file_mode, maxBytes=max_bytes, backupCount=backup_count)
        file_handler.setLevel(file_level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if not use_structlog:
        return logger

    _configure_structlog(structlog_json)
    bound_logger = structlog.get_logger(name)
    if structlog_bind is not None:
        fields = structlog_bind(name) if callable(structlog_bind) else dict(structlog_bind)
        if fields:
            bound_logger = bound_logger.bind(**fields)
    return bound_logger


def _configure_structlog(as_json: Optional[bool]) -> None:
    renderer = structlog.processors.JSONRenderer() if as_json else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="ISO"),
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            _enforce_key_order_processor(STRUCTLOG_KEY_ORDER),
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def _enforce_key_order_processor(key_order: list[str]):
    """structlog processor emitting ``key_order`` first, then the remaining keys sorted."""

    def _processor(_logger, _method_name, event_dict):
        ordered = OrderedDict((key, event_dict.pop(key)) for key in key_order if key in event_dict)
        ordered.update(sorted(event_dict.items()))
        return ordered

    return _processor


def get_logger(
    name: str | None = ROOT_LOGGER, use_structlog: bool | None = None, **kwargs
) -> logging.Logger | structlog.BoundLogger:
    """Return a configured logger inside the ``smartblob`` hierarchy.

    ``get_logger("storage.batch")`` yields ``smartblob.storage.batch``. Loggers propagate by
    default; ancestors that already carry handlers are reconfigured without a console handler
    so an error is printed once, not once per level.

    Example:
        .. code-block:: python

            from smartblob.core.logging import get_logger

            logger = get_logger("storage.batch")
            logger.info("batch started")
    """
    name = name or ROOT_LOGGER
    full_name = name if name.startswith(ROOT_LOGGER) else f"{ROOT_LOGGER}.{name}"
    kwargs.setdefault("propagate", True)

    if kwargs["propagate"]:
        parts = full_name.split(".")
        for depth in range(1, len(parts)):
            ancestor = ".".join(parts[:depth])
            if logging.getLogger(ancestor).handlers:
                setup_logger(ancestor, add_stream_handler=False, use_structlog=use_structlog, **kwargs)
    return setup_logger(full_name, use_structlog=use_structlog, **kwargs)
