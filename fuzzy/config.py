import configparser
import logging
import os
from datetime import timedelta
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config/config.cfg"


class ConfigError(Exception):
    """Raised when the configuration file cannot be read or holds a bad value."""


class ServerConfig(BaseModel):
    port: int = Field(8080, description="Server listening port")
    app_name: str = Field("Fuzzy", description="Application name")
    version: str = Field("1.0.0", description="Application version")
    dev_mode: bool = Field(False, description="Development mode, loads sample data (true/false)")


class SecurityConfig(BaseModel):
    session_cookie_name: str = Field("fuzzy_session", description="Session cookie name")
    session_duration_hours: int = Field(24, description="Session duration in hours")
    secret_key: str = Field("changeme_in_production", description="Secret key for security")
    https_enabled: bool = Field(False, description="HTTPS enabled (true/false)")
    csrf_enabled: bool = Field(True, description="CSRF protection enabled (true/false)")


class DatabaseConfig(BaseModel):
    type: str = Field("memory", description="Storage type (only 'memory' is supported)")
    data_file: str = Field("data/fuzzy.db", description="Data file, unused by the memory store")


class LoggingConfig(BaseModel):
    level: str = Field("info", description="Log level (debug, info, warning, error)")
    file: str = Field("logs/fuzzy.log", description="Log file, empty to disable")
    console: bool = Field(True, description="Log to the console (true/false)")


class UIConfig(BaseModel):
    theme: str = Field("blue", description="Interface theme")
    language: str = Field("fr", description="Interface language")
    dark_mode: bool = Field(False, description="Dark mode (true/false)")


class LimitsConfig(BaseModel):
    max_login_attempts: int = Field(5, description="Failed logins allowed per window")
    login_timeout_minutes: int = Field(15, description="Login rate-limit window in minutes")
    max_upload_size_mb: int = Field(100, description="Maximum request body size in MB")


class FeaturesConfig(BaseModel):
    user_management: bool = Field(True, description="Enable the users page (true/false)")
    provider_management: bool = Field(True, description="Enable the providers page (true/false)")
    channel_management: bool = Field(True, description="Enable the channels page (true/false)")


SECTIONS: dict[str, type[BaseModel]] = {
    "server": ServerConfig,
    "security": SecurityConfig,
    "database": DatabaseConfig,
    "logging": LoggingConfig,
    "ui": UIConfig,
    "limits": LimitsConfig,
    "features": FeaturesConfig,
}


class AppConfig(BaseSettings):
    """Application configuration: config file values, overridden by FUZZY_* env vars."""

    server: ServerConfig = ServerConfig()
    security: SecurityConfig = SecurityConfig()
    database: DatabaseConfig = DatabaseConfig()
    logging: LoggingConfig = LoggingConfig()
    ui: UIConfig = UIConfig()
    limits: LimitsConfig = LimitsConfig()
    features: FeaturesConfig = FeaturesConfig()

    model_config = SettingsConfigDict(
        env_prefix="FUZZY_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # Environment wins over values read from the config file.
        return env_settings, init_settings, dotenv_settings, file_secret_settings

    @property
    def session_duration(self) -> timedelta:
        return timedelta(hours=self.security.session_duration_hours)

    @property
    def server_address(self) -> str:
        return f":{self.server.port}"


def default_config() -> AppConfig:
    """Built-in defaults only; FUZZY_* env vars are not consulted."""
    return AppConfig.model_construct()


def _read_sections(path: Path) -> dict[str, dict[str, str]]:
    parser = configparser.ConfigParser(interpolation=None)
    try:
        with path.open(encoding="utf-8") as f:
            parser.read_file(f)
    except (OSError, configparser.Error) as e:
        raise ConfigError(f"error reading config file {path}: {e}") from e

    data: dict[str, dict[str, str]] = {}
    for section in parser.sections():
        model = SECTIONS.get(section)
        if model is None:
            logger.debug("Ignoring unknown config section [%s]", section)
            continue
        known = model.model_fields
        data[section] = {k: v for k, v in parser.items(section) if k in known}
    return data


def _validate(data: dict[str, dict[str, str]]) -> AppConfig:
    try:
        return AppConfig(**data)
    except ValidationError as e:
        err = e.errors()[0]
        loc = ".".join(str(part) for part in err["loc"])
        raise ConfigError(f"error setting config value {loc}: {err['msg']}") from e


def save_config(config: AppConfig, path: str | Path) -> Path:
    """Write every section of the configuration, one commented key per line."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    lines = [
        "# Fuzzy Application Configuration",
        "# This file contains all application configurations",
        "",
    ]
    for section, model in SECTIONS.items():
        values = getattr(config, section)
        lines.append(f"[{section}]")
        for name, field in model.model_fields.items():
            if field.description:
                lines.append(f"# {field.description}")
            value = getattr(values, name)
            if isinstance(value, bool):
                value = "true" if value else "false"
            lines.append(f"{name} = {value}")
        lines.append("")

    try:
        path.write_text("\n".join(lines), encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"failed to write config file {path}: {e}") from e
    logger.info("Configuration written to %s", path)
    return path


def load_config(path: str | Path = DEFAULT_CONFIG_PATH) -> AppConfig:
    """Load the configuration file, creating it with defaults when absent."""
    path = Path(path)
    if not path.exists():
        logger.info("Config file %s not found, creating defaults", path)
        save_config(default_config(), path)
    return _validate(_read_sections(path))


def get_config() -> AppConfig:
    return load_config(os.environ.get("FUZZY_CONFIG", DEFAULT_CONFIG_PATH))
