# tests/test_settings_config.py
import json
import os

import pytest
import toml
from pydantic import ValidationError as PydanticValidationError

from hookpanel.service.auth import get_access_key, init_access_key
from hookpanel.service.models.db_model import SystemConfig
from hookpanel.static.config_store import ConfigStore
from hookpanel.utils.errors import NotFound, ValidationError
from hookpanel.utils.settings import Settings, get_settings, load_settings
from hookpanel.utils.validator import ScriptValidator, validate_config_value


class TestSettings:
    def test_load_from_toml(self, tmp_path, monkeypatch):
        monkeypatch.delenv("HOOKPANEL_DATA_DIR")
        monkeypatch.delenv("HOOKPANEL_ACCESS_KEY")
        path = tmp_path / "custom.toml"
        path.write_text(toml.dumps({
            "data_dir": "/srv/hooks",
            "default_timeout": 90,
            "executors": {"node": "/usr/local/bin/node"},
        }))

        settings = load_settings(str(path))

        assert settings.data_dir == "/srv/hooks"
        assert settings.default_timeout == 90
        assert settings.executors == {"node": "/usr/local/bin/node"}
        assert settings.sqlalchemy_url == "sqlite:////srv/hooks/hook-panel.db"
        assert settings.script_log_dir == os.path.join("/srv/hooks", "logs")
        assert settings.scratch_dir == os.path.join("/srv/hooks", "temp")

    def test_environment_overrides_file(self, tmp_path, monkeypatch):
        path = tmp_path / "custom.toml"
        path.write_text(toml.dumps({"default_timeout": 90}))
        monkeypatch.setenv("HOOKPANEL_DEFAULT_TIMEOUT", "15")
        monkeypatch.setenv("HOOKPANEL_DATABASE_URL", "sqlite:///other.db")

        settings = load_settings(str(path))

        assert settings.default_timeout == 15
        assert settings.sqlalchemy_url == "sqlite:///other.db"

    def test_environment_without_file(self, tmp_path, monkeypatch):
        monkeypatch.setenv("HOOKPANEL_RETENTION_CRON", "*/10 * * * *")
        monkeypatch.setenv("HOOKPANEL_EXECUTORS", '{"node": "/opt/node/bin/node"}')

        settings = load_settings(str(tmp_path / "absent.toml"))

        assert settings.retention_cron == "*/10 * * * *"
        assert settings.executors == {"node": "/opt/node/bin/node"}

    def test_invalid_environment_value_is_rejected(self, tmp_path, monkeypatch):
        monkeypatch.setenv("HOOKPANEL_RETENTION_CRON", "whenever")
        with pytest.raises(PydanticValidationError):
            load_settings(str(tmp_path / "absent.toml"))

    def test_missing_file_uses_defaults(self, tmp_path, monkeypatch):
        monkeypatch.delenv("HOOKPANEL_DATA_DIR")
        monkeypatch.delenv("HOOKPANEL_ACCESS_KEY")
        settings = load_settings(str(tmp_path / "absent.toml"))

        assert settings.default_timeout == 60
        assert settings.retention_cron == "0 3 * * *"
        assert settings.webhook_log_retention_days == 30

    def test_invalid_values_are_rejected(self):
        with pytest.raises(PydanticValidationError):
            Settings(retention_cron="every night")
        with pytest.raises(PydanticValidationError):
            Settings(default_timeout=0)

    def test_settings_are_cached(self):
        assert get_settings() is get_settings()


class TestAccessKey:
    def test_configured_key_wins(self):
        assert init_access_key() == "test-access-key"

    def test_generated_key_is_persisted(self, settings, monkeypatch):
        monkeypatch.delenv("HOOKPANEL_ACCESS_KEY")
        get_settings.cache_clear()
        path = get_settings().access_key_file

        key = init_access_key()

        assert len(key) == 64
        with open(path) as f:
            assert f.read() == key
        if os.name == "posix":
            assert os.stat(path).st_mode & 0o777 == 0o600
        # A restart reads the same key back
        assert init_access_key() == key
        assert get_access_key() == key


class TestConfigStore:
    def test_defaults_are_seeded_once(self, db):
        store = ConfigStore(db)
        assert store.seed_defaults() == 0
        assert db.query(SystemConfig).count() == 3
        assert store.get_value("webhook.timeout") == "60"

    def test_domain_follows_non_default_port(self, db):
        db.query(SystemConfig).delete()
        db.commit()

        ConfigStore(db).seed_defaults(port=9000)

        assert ConfigStore(db).get_value("system.domain") == "http://localhost:9000"

    def test_get_int_falls_back(self, db):
        store = ConfigStore(db)
        assert store.get_int("webhook.timeout", 5) == 60
        assert store.get_int("no.such.key", 5) == 5

        store.update_many([("webhook.timeout", "-3")])
        assert store.get_int("webhook.timeout", 5) == 5

    def test_update_unknown_key(self, db):
        with pytest.raises(NotFound):
            ConfigStore(db).update_many([("missing", "1")])

    def test_update_invalid_value(self, db):
        with pytest.raises(ValidationError):
            ConfigStore(db).update_many([("system.language", "de-DE")])

    def test_categories(self, db):
        categories = ConfigStore(db).list_categories()
        assert [c["category"] for c in categories] == ["system"]
        assert len(categories[0]["configs"]) == 3


class FakeConfig:
    def __init__(self, type="text", required=False, options=None, label="Setting"):
        self.type = type
        self.required = required
        self.options = options
        self.label = label


@pytest.mark.parametrize("config,value,expected", [
    (FakeConfig(required=True), "", False),
    (FakeConfig(required=True), "   ", False),
    (FakeConfig(), "", True),
    (FakeConfig(type="number"), "12.5", True),
    (FakeConfig(type="number"), "twelve", False),
    (FakeConfig(type="url"), "https://example.com", True),
    (FakeConfig(type="url"), "example.com", False),
    (FakeConfig(type="select", options=json.dumps([{"label": "A", "value": "a"}])), "a", True),
    (FakeConfig(type="select", options=json.dumps([{"label": "A", "value": "a"}])), "b", False),
    (FakeConfig(type="select", options="not json"), "a", False),
])
def test_validate_config_value(config, value, expected):
    valid, _ = validate_config_value(config, value)
    assert valid is expected


class TestScriptValidator:
    def test_validate_all(self):
        validator = ScriptValidator()
        assert validator.validate_all(name="ok", executor="bash", content="echo", timeout=10)[0]
        assert not validator.validate_all(name=" ")[0]
        assert not validator.validate_all(executor="cobol")[0]
        assert not validator.validate_all(timeout=0)[0]
        assert not validator.validate_all(timeout=24 * 60 * 60 + 1)[0]
        assert not validator.validate_all(content="x" * (512 * 1024 + 1))[0]

    def test_missing_fields_are_skipped(self):
        assert ScriptValidator().validate_all()[0]
