"""Tests for config file loading, saving and env overrides."""

from datetime import timedelta

import pytest

from fuzzy.config import (
    AppConfig,
    ConfigError,
    SecurityConfig,
    ServerConfig,
    UIConfig,
    default_config,
    get_config,
    load_config,
    save_config,
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("FUZZY_CONFIG", "FUZZY_SERVER__PORT", "FUZZY_SECURITY__SECRET_KEY"):
        monkeypatch.delenv(name, raising=False)


class TestDefaults:
    def test_defaults(self):
        cfg = AppConfig()
        assert cfg.server.port == 8080
        assert cfg.server.app_name == "Fuzzy"
        assert cfg.security.session_cookie_name == "fuzzy_session"
        assert cfg.security.session_duration_hours == 24
        assert cfg.limits.max_login_attempts == 5
        assert cfg.limits.login_timeout_minutes == 15
        assert cfg.ui.language == "fr"
        assert cfg.features.user_management is True

    def test_derived_values(self):
        cfg = AppConfig()
        assert cfg.session_duration == timedelta(hours=24)
        assert cfg.server_address == ":8080"


class TestLoadSave:
    def test_missing_file_is_created_with_defaults(self, tmp_path):
        path = tmp_path / "config" / "config.cfg"
        cfg = load_config(path)
        assert path.exists()
        assert cfg.server.port == 8080
        text = path.read_text()
        assert "[server]" in text
        assert "[features]" in text
        assert "# Server listening port" in text

    def test_round_trip(self, tmp_path):
        path = tmp_path / "config.cfg"
        cfg = AppConfig(
            server=ServerConfig(port=9000),
            ui=UIConfig(dark_mode=True),
            security=SecurityConfig(secret_key="s3cret"),
        )
        save_config(cfg, path)

        loaded = load_config(path)
        assert loaded.server.port == 9000
        assert loaded.ui.dark_mode is True
        assert loaded.security.secret_key == "s3cret"

    def test_partial_file_keeps_defaults(self, tmp_path):
        path = tmp_path / "config.cfg"
        path.write_text("[server]\nport = 9100\ndev_mode = true\n")
        cfg = load_config(path)
        assert cfg.server.port == 9100
        assert cfg.server.dev_mode is True
        assert cfg.server.app_name == "Fuzzy"
        assert cfg.limits.max_login_attempts == 5

    def test_unknown_sections_and_keys_ignored(self, tmp_path):
        path = tmp_path / "config.cfg"
        path.write_text("[server]\nport = 9100\ncolour = red\n\n[extras]\nfoo = bar\n")
        assert load_config(path).server.port == 9100

    def test_invalid_value_raises(self, tmp_path):
        path = tmp_path / "config.cfg"
        path.write_text("[server]\nport = not-a-number\n")
        with pytest.raises(ConfigError, match="server.port"):
            load_config(path)

    def test_malformed_file_raises(self, tmp_path):
        path = tmp_path / "config.cfg"
        path.write_text("port = 9100\n")
        with pytest.raises(ConfigError):
            load_config(path)


class TestEnvironment:
    def test_env_overrides_file(self, tmp_path, monkeypatch):
        path = tmp_path / "config.cfg"
        path.write_text("[server]\nport = 9100\napp_name = Panel\n")
        monkeypatch.setenv("FUZZY_SERVER__PORT", "9200")
        cfg = load_config(path)
        assert cfg.server.port == 9200
        assert cfg.server.app_name == "Panel"

    def test_get_config_uses_fuzzy_config(self, tmp_path, monkeypatch):
        path = tmp_path / "custom.cfg"
        path.write_text("[security]\nsession_duration_hours = 2\n")
        monkeypatch.setenv("FUZZY_CONFIG", str(path))
        assert get_config().session_duration == timedelta(hours=2)

    def test_created_file_does_not_capture_env_secret(self, tmp_path, monkeypatch):
        monkeypatch.setenv("FUZZY_SECURITY__SECRET_KEY", "from-the-environment")
        path = tmp_path / "config.cfg"
        cfg = load_config(path)
        assert cfg.security.secret_key == "from-the-environment"
        text = path.read_text()
        assert "from-the-environment" not in text
        assert "secret_key = changeme_in_production" in text

    def test_default_config_ignores_env(self, monkeypatch):
        monkeypatch.setenv("FUZZY_SERVER__PORT", "9200")
        monkeypatch.setenv("FUZZY_SECURITY__SECRET_KEY", "from-the-environment")
        cfg = default_config()
        assert cfg.server.port == 8080
        assert cfg.security.secret_key == "changeme_in_production"
