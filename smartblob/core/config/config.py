"""Layered settings for smartblob.

``CoreSettings`` reads, in decreasing precedence: constructor arguments, environment variables
(``SMARTBLOB_BATCH__MAX_WORKERS=4``), a ``.env`` file and the packaged ``config.ini``.
``Config`` flattens any mix of settings objects and dicts into a string-valued mapping with
attribute access, keeping secret values out of reprs and logs.
"""

import configparser
import os
from copy import deepcopy
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, Field, SecretStr
from pydantic_settings import BaseSettings

MASK = "********"


class DirPathsSection(BaseModel):
    ROOT: str = "~/.cache/smartblob"
    TEMP_DIR: str = "~/.cache/smartblob/temp"
    LOGGER_DIR: str = "~/.cache/smartblob/logs"
    STRUCT_LOGGER_DIR: str = "~/.cache/smartblob/structlogs"


class LoggerSection(BaseModel):
    USE_STRUCTLOG: bool = False


class BatchSection(BaseModel):
    MAX_WORKERS: int = 10
    TASK_TIMEOUT_SECONDS: float = 300
    RETRY_PASSES: int = 2


class CopySection(BaseModel):
    TIMEOUT_SECONDS: float = 300
    MAX_POLL_INTERVAL_SECONDS: float = 1.0


class UrlSection(BaseModel):
    DEFAULT_EXPIRY_HOURS: int = 24
    MAX_EXPIRY_HOURS: int = 168


class GcsSection(BaseModel):
    PROJECT_ID: Optional[str] = None
    CREDENTIALS_PATH: Optional[str] = None
    BUCKET: Optional[str] = None


class MinioSection(BaseModel):
    ENDPOINT: str = "localhost:9000"
    ACCESS_KEY: str = "minioadmin"
    SECRET_KEY: SecretStr = SecretStr("minioadmin")
    BUCKET: str = "smartblob"
    SECURE: bool = False


def _expand_home(value: Any) -> Any:
    """Expand a leading ``~`` in strings, recursing into containers."""
    if isinstance(value, str):
        return os.path.expanduser(value) if value.startswith("~") else value
    if isinstance(value, dict):
        return {k: _expand_home(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return type(value)(_expand_home(v) for v in value)
    return value


def load_ini_as_dict(ini_path: Path) -> Dict[str, Any]:
    """Read an INI file into ``{SECTION: {KEY: value}}``.

    Section and key names are upper-cased, ``${KEY}`` references are interpolated within the file
    and blank values are skipped so the model defaults apply. A missing file yields ``{}``.
    """
    if not ini_path.exists():
        return {}

    parser = configparser.ConfigParser(interpolation=configparser.ExtendedInterpolation())
    parser.optionxform = str
    parser.read(ini_path)
    return {
        section.upper(): {key.upper(): _expand_home(value) for key, value in parser[section].items() if value != ""}
        for section in parser.sections()
    }


def packaged_ini_settings() -> Dict[str, Any]:
    return load_ini_as_dict(Path(__file__).parent / "config.ini")


class CoreSettings(BaseSettings):
    SMARTBLOB_DIR_PATHS: DirPathsSection = Field(default_factory=DirPathsSection)
    SMARTBLOB_LOGGER: LoggerSection = Field(default_factory=LoggerSection)
    SMARTBLOB_BATCH: BatchSection = Field(default_factory=BatchSection)
    SMARTBLOB_COPY: CopySection = Field(default_factory=CopySection)
    SMARTBLOB_URL: UrlSection = Field(default_factory=UrlSection)
    SMARTBLOB_GCS: GcsSection = Field(default_factory=GcsSection)
    SMARTBLOB_MINIO: MinioSection = Field(default_factory=MinioSection)

    model_config = {
        "env_nested_delimiter": "__",
    }

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            lambda: _expand_home(env_settings()),
            dotenv_settings,
            packaged_ini_settings,
            file_secret_settings,
        )


# Anything accepted as a configuration override
SettingsLike = Union[
    Dict[str, Any],
    List[Union[Dict[str, Any], BaseSettings, BaseModel]],
    BaseSettings,
    BaseModel,
    None,
]


class _AttrView:
    """Read-only ``view.SECTION.KEY`` access over a nested dict."""

    def __init__(self, data: Dict[str, Any]):
        self._data = data

    @staticmethod
    def _wrap(value: Any) -> Any:
        return _AttrView(value) if isinstance(value, dict) else value

    def __getattr__(self, name: str):
        try:
            return self._wrap(self._data[name])
        except KeyError:
            raise AttributeError(f"No such attribute: {name}") from None

    def __getitem__(self, key: str):
        return self._wrap(self._data[key])

    def __repr__(self) -> str:
        return f"_AttrView({self._data!r})"


class Config(dict):
    """String-valued configuration merged from settings objects and dicts.

    Sources are applied left to right, so later ones win, and nested sections merge key by key.
    Leaves become strings (``None`` stays ``None``) and consumers convert them where they are
    used, e.g. ``int(config.SMARTBLOB_BATCH.MAX_WORKERS)``. ``SecretStr`` leaves, and any later
    plain value written to the same key, are stored masked; ``get_secret`` returns the real value.

    Example::

        from smartblob.core.config import Config, CoreSettings

        config = Config([CoreSettings(), {"SMARTBLOB_BATCH": {"MAX_WORKERS": 4}}])
        config.SMARTBLOB_BATCH.MAX_WORKERS                # "4"
        config["SMARTBLOB_MINIO"]["SECRET_KEY"]           # "********"
        config.get_secret("SMARTBLOB_MINIO", "SECRET_KEY")
    """

    def __init__(self, extra_settings: SettingsLike = None):
        self._secrets: Dict[Tuple[str, ...], str] = {}
        merged: Dict[str, Any] = {}
        for source in self._as_dicts(extra_settings):
            merged = self._deep_update(merged, source)
        super().__init__(self._finalize(merged, ()))

    def __getattr__(self, name: str):
        if name in self:
            return _AttrView._wrap(self[name])
        raise AttributeError(f"No such attribute: {name}")

    @staticmethod
    def _as_dicts(extra_settings: SettingsLike) -> List[Dict[str, Any]]:
        if extra_settings is None:
            return []
        sources = extra_settings if isinstance(extra_settings, list) else [extra_settings]
        dicts = []
        for source in sources:
            if isinstance(source, BaseModel):
                dicts.append(source.model_dump())
            elif isinstance(source, dict):
                dicts.append(deepcopy(source))
        return dicts

    def _deep_update(self, base: dict, override: dict) -> dict:
        for key, value in override.items():
            current = base.get(key)
            if isinstance(value, dict) and isinstance(current, dict):
                base[key] = self._deep_update(current, value)
            elif isinstance(current, SecretStr) and not isinstance(value, (SecretStr, dict)) and value is not None:
                base[key] = SecretStr(str(value))
            else:
                base[key] = value
        return base

    def _finalize(self, value: Any, path: Tuple[str, ...]) -> Any:
        if isinstance(value, dict):
            return {k: self._finalize(v, path + (k,)) for k, v in value.items()}
        if isinstance(value, (list, tuple, set)):
            return [self._finalize(v, path) for v in value]
        if isinstance(value, SecretStr):
            self._secrets[path] = value.get_secret_value()
            return MASK
        if value is None:
            return None
        return _expand_home(str(value))

    def get_secret(self, *path: str) -> Optional[str]:
        """Real value of a masked leaf, e.g. ``get_secret("SMARTBLOB_MINIO", "SECRET_KEY")``."""
        return self._secrets.get(tuple(path))


class CoreConfig(Config):
    """``Config`` seeded with ``CoreSettings()``; overrides are applied on top.

    .. code-block:: python

        from smartblob.core.config import CoreConfig

        config = CoreConfig({"SMARTBLOB_BATCH": {"MAX_WORKERS": 4}})
    """

    def __init__(self, extra_settings: SettingsLike = None):
        if isinstance(extra_settings, list):
            sources: List[Any] = [CoreSettings(), *extra_settings]
        else:
            sources = [CoreSettings(), extra_settings]
        super().__init__(sources)
