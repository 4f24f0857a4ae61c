import os
from pathlib import Path
from unittest.mock import patch

import pytest
from pydantic import BaseModel, SecretStr

from smartblob.core.config import Config, CoreConfig, CoreSettings
from smartblob.core.config.config import BatchSection, _AttrView, load_ini_as_dict


class TestConfig:
    """Test cases for the Config class."""

    def test_config_init_empty(self):
        config = Config()
        assert isinstance(config, dict)
        assert len(config) == 0

    def test_config_init_with_list(self):
        """Later sources override earlier ones."""
        config = Config([{"key1": "value1"}, {"key2": "value2", "key1": "override"}])
        assert config["key1"] == "override"
        assert config["key2"] == "value2"

    def test_config_attr_access(self):
        config = Config({"section": {"key": "value", "nested": {"deep": 1}}})
        assert config.section.key == "value"
        assert config.section.nested.deep == "1"
        assert config.section["nested"]["deep"] == "1"

    def test_config_attr_access_missing(self):
        config = Config()
        with pytest.raises(AttributeError, match="No such attribute: missing"):
            config.missing

    def test_values_are_stringified_and_none_kept(self):
        config = Config({"a": {"n": 3, "f": 1.5, "b": True, "none": None, "items": [1, 2]}})
        assert config["a"] == {"n": "3", "f": "1.5", "b": "True", "none": None, "items": ["1", "2"]}

    def test_tilde_is_expanded(self):
        config = Config({"paths": {"root": "~/data"}})
        assert config.paths.root == os.path.expanduser("~/data")

    def test_deep_update(self):
        config = Config()
        result = config._deep_update({"a": {"b": 1, "c": 2}}, {"a": {"b": 3, "d": 4}})
        assert result == {"a": {"b": 3, "c": 2, "d": 4}}


class DatabaseSection(BaseModel):
    USER: str = "admin"
    PASSWORD: SecretStr = SecretStr("hunter2")


class DatabaseSettings(BaseModel):
    DB: DatabaseSection = DatabaseSection()


class TestSecrets:
    def _settings(self):
        return DatabaseSettings()

    def test_secrets_are_masked(self):
        config = Config(self._settings())
        assert config["DB"]["PASSWORD"] == "********"
        assert config.get_secret("DB", "PASSWORD") == "hunter2"

    def test_plain_override_of_secret_stays_masked(self):
        config = Config([self._settings(), {"DB": {"USER": "root", "PASSWORD": "new-secret"}}])

        assert config["DB"]["USER"] == "root"
        assert config["DB"]["PASSWORD"] == "********"
        assert config.get_secret("DB", "PASSWORD") == "new-secret"

    def test_secret_in_repr_is_masked(self):
        assert "hunter2" not in repr(Config(self._settings()))

    def test_unknown_secret(self):
        assert Config().get_secret("NOPE", "KEY") is None


class TestAttrView:
    def test_repr_and_missing(self):
        view = _AttrView({"a": 1})
        assert "a" in repr(view)
        with pytest.raises(AttributeError):
            view.b


class TestCoreConfig:
    def test_defaults(self):
        config = CoreConfig()
        assert int(config.SMARTBLOB_BATCH.MAX_WORKERS) == 10
        assert float(config.SMARTBLOB_BATCH.TASK_TIMEOUT_SECONDS) == 300
        assert int(config.SMARTBLOB_URL.MAX_EXPIRY_HOURS) == 168
        assert config.SMARTBLOB_MINIO.SECRET_KEY == "********"
        assert config.get_secret("SMARTBLOB_MINIO", "SECRET_KEY") == "minioadmin"

    def test_overrides_take_precedence(self):
        config = CoreConfig({"SMARTBLOB_BATCH": {"MAX_WORKERS": 4}})
        assert config.SMARTBLOB_BATCH.MAX_WORKERS == "4"
        assert config.SMARTBLOB_BATCH.RETRY_PASSES == "2"

    def test_list_overrides(self):
        config = CoreConfig([{"SMARTBLOB_COPY": {"TIMEOUT_SECONDS": 10}}, {"SMARTBLOB_COPY": {"TIMEOUT_SECONDS": 20}}])
        assert config.SMARTBLOB_COPY.TIMEOUT_SECONDS == "20"

    def test_environment_overrides_ini(self):
        with patch.dict(os.environ, {"SMARTBLOB_BATCH__MAX_WORKERS": "7", "SMARTBLOB_DIR_PATHS__ROOT": "~/elsewhere"}):
            settings = CoreSettings()
        assert settings.SMARTBLOB_BATCH.MAX_WORKERS == 7
        assert settings.SMARTBLOB_DIR_PATHS.ROOT == os.path.expanduser("~/elsewhere")

    def test_section_defaults_without_ini(self):
        with patch("smartblob.core.config.config.packaged_ini_settings", return_value={}):
            first = CoreSettings()
            second = CoreSettings()
        assert isinstance(first.SMARTBLOB_BATCH, BatchSection)
        assert first.SMARTBLOB_BATCH.MAX_WORKERS == 10
        assert first.SMARTBLOB_GCS.BUCKET is None
        assert first.SMARTBLOB_BATCH is not second.SMARTBLOB_BATCH

    def test_ini_paths_are_interpolated(self):
        config = CoreConfig()
        root = config.SMARTBLOB_DIR_PATHS.ROOT
        assert not root.startswith("~")
        assert config.SMARTBLOB_DIR_PATHS.LOGGER_DIR == f"{root}/logs"


class TestLoadIni:
    def test_missing_file(self, tmp_path):
        assert load_ini_as_dict(tmp_path / "nope.ini") == {}

    def test_sections_are_uppercased_and_empty_values_dropped(self, tmp_path):
        ini = tmp_path / "config.ini"
        ini.write_text("[smartblob_gcs]\nbucket =\nproject_id = p\n\n[paths]\nroot = ~/x\nsub = ${root}/y\n")

        data = load_ini_as_dict(Path(ini))

        assert data["SMARTBLOB_GCS"] == {"PROJECT_ID": "p"}
        assert data["PATHS"]["ROOT"] == os.path.expanduser("~/x")
        assert data["PATHS"]["SUB"] == os.path.expanduser("~/x/y")
