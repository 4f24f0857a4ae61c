from smartblob.core.utils.checks import first_not_none, ifnone, is_url
from smartblob.core.config import Config, CoreConfig, CoreSettings
from smartblob.core.base import SmartBlob, SmartBlobABC, SmartBlobMeta
from smartblob.core.logging.logger import get_logger, setup_logger

setup_logger()  # Initialize the default logger


__all__ = [
    "Config",
    "CoreConfig",
    "CoreSettings",
    "first_not_none",
    "get_logger",
    "ifnone",
    "is_url",
    "setup_logger",
    "SmartBlob",
    "SmartBlobABC",
    "SmartBlobMeta",
]
