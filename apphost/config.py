# =============================================================================
# apphost/config.py - Application Settings
# =============================================================================
# This module loads configuration for a hosted application using
# pydantic-settings. Sources in order of increasing priority:
#
# 1. config/<section>.json   - one file per section, key = file name
# 2. config/env/default.json - environment defaults
# 3. config/env/<env>.json   - environment overrides (ENVIRONMENT variable)
# 4. .env file in the application directory
# 5. Environment variables prefixed with the app name, nested with "__"
#    (e.g. SHOP_MONGO__HOST=db.internal)
# 6. HOST / PORT variables (set by hosting platforms)
# 7. Runtime overrides passed to Configuration()
#
# Usage:
#   config = Configuration(app_dir / "config", app_name="shop", mode="cron")
#   await config.init()
#   print(config.port, config.log.level)
# =============================================================================

import json
import logging
import os
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, SecretStr, ValidationError, field_validator
from pydantic_settings import (
    BaseSettings,
    InitSettingsSource,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from apphost.exceptions import ConfigurationError
from apphost.lib.log import LEVELS
from apphost.lib.utils import deep_merge

logger = logging.getLogger(__name__)


# =============================================================================
# Settings Schema
# =============================================================================

class MongoSettings(BaseModel):
    """Connection settings for the `mongo` section."""

    protocol: str = Field(default="mongodb", description="URL scheme, e.g. mongodb or mongodb+srv")
    host: str = Field(default="localhost")
    port: int = Field(default=27017, ge=1, le=65535)
    user: str | None = Field(default=None)
    password: SecretStr | None = Field(default=None)
    database: str = Field(..., min_length=1, description="Database name")


class LogSettings(BaseModel):
    """Settings for the `log` section."""

    level: str = Field(default="info", description="trace, debug, info, warn, error or fatal")

    @field_validator("level")
    @classmethod
    def check_level(cls, value: str) -> str:
        if value.lower() not in LEVELS:
            raise ValueError(f"unknown log level {value!r}, expected one of: {', '.join(LEVELS)}")
        return value.lower()


class AppSettings(BaseSettings):
    """
    Settings consumed by the application host.

    Any other section found in the config directory is kept as an extra
    attribute holding a plain dict, so modules can read their own settings:

        config.email["sender"]
    """

    mode: Literal["internal", "cron", "web"] = Field(
        default="web",
        description="Run profile: web server, scheduled tasks or in-process use",
    )

    environment: str = Field(default="development")

    host: str = Field(default="0.0.0.0", description="Host to bind the web server to")

    port: int = Field(default=3000, ge=0, le=65535, description="Port for the web server")

    log: LogSettings = Field(default_factory=LogSettings)

    mongo: MongoSettings | None = Field(
        default=None,
        description="Database connection; the database is only opened when present",
    )

    model_config = SettingsConfigDict(
        extra="allow",
        env_nested_delimiter="__",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        case_sensitive=False,
    )


# =============================================================================
# Configuration Files
# =============================================================================

def _read_json(path: Path) -> dict[str, Any]:
    try:
        with path.open(encoding="utf-8") as f:
            return json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationError(
            f"Cannot read config file {path}: {e}",
            suggestion="Config files must be valid UTF-8 JSON",
            details={"path": str(path)},
        ) from e


def load_config_dir(dir_path: Path, environment: str) -> dict[str, Any]:
    """
    Merge the file layers of a config directory into one dict.

    Args:
        dir_path: The application's config/ directory
        environment: Selects config/env/<environment>.json

    Returns:
        Merged settings from section files and env files

    Raises:
        ConfigurationError: On unreadable files or unsupported file types
    """
    merged: dict[str, Any] = {}
    if not dir_path.is_dir():
        logger.debug(f"No config directory at {dir_path}, using defaults")
        return merged

    for path in sorted(dir_path.iterdir()):
        if not path.is_file() or path.name.startswith((".", "_")):
            continue
        if path.suffix != ".json":
            raise ConfigurationError(
                f"Unsupported config file type: {path.name}",
                suggestion="Use .json files in the config directory",
                details={"path": str(path)},
            )
        merged[path.stem] = _read_json(path)

    env_dir = dir_path / "env"
    for name in ("default", environment):
        env_file = env_dir / f"{name}.json"
        if env_file.is_file():
            deep_merge(merged, _read_json(env_file))

    return merged


def special_env_vars() -> dict[str, Any]:
    """Short HOST/PORT variables used by hosting platforms."""
    values: dict[str, Any] = {}
    if os.environ.get("HOST"):
        values["host"] = os.environ["HOST"]
    if os.environ.get("PORT"):
        values["port"] = os.environ["PORT"]
    return values


def env_prefix_for(app_name: str) -> str:
    """Environment variable prefix for an app, e.g. "my-shop" -> "MY_SHOP_"."""
    return app_name.replace("-", "_").replace(".", "_").upper() + "_"


# =============================================================================
# Configuration
# =============================================================================

class Configuration:
    """
    Lazily loaded application settings.

    Fields are readable only after `await init()`; `environment` is known
    from construction so the env file layer can be selected.
    """

    _settings: AppSettings | None = None

    def __init__(self, dir_path: Path | str, app_name: str = "app", **runtime_config: Any):
        self.dir_path = Path(dir_path)
        self.app_name = app_name
        self.runtime_config = runtime_config
        self.environment = runtime_config.get("environment") or os.environ.get("ENVIRONMENT", "development")

    async def init(self) -> None:
        """
        Load and validate all configuration sources.

        Raises:
            ConfigurationError: If a source is unreadable or a value is invalid
        """
        file_config = load_config_dir(self.dir_path, self.environment)
        special = {"environment": self.environment, **special_env_vars()}

        class LayeredSettings(AppSettings):
            @classmethod
            def settings_customise_sources(
                cls,
                settings_cls: type[BaseSettings],
                init_settings: PydanticBaseSettingsSource,
                env_settings: PydanticBaseSettingsSource,
                dotenv_settings: PydanticBaseSettingsSource,
                file_secret_settings: PydanticBaseSettingsSource,
            ) -> tuple[PydanticBaseSettingsSource, ...]:
                return (
                    init_settings,
                    InitSettingsSource(settings_cls, init_kwargs=special),
                    env_settings,
                    dotenv_settings,
                    InitSettingsSource(settings_cls, init_kwargs=file_config),
                )

        env_file = self.dir_path.parent / ".env"
        try:
            self._settings = LayeredSettings(
                _env_prefix=env_prefix_for(self.app_name),
                _env_file=env_file if env_file.is_file() else None,
                **self.runtime_config,
            )
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid configuration: {e}",
                suggestion="Fix the reported fields in config/ or the environment",
                details={"errors": e.errors(include_url=False)},
            ) from e

    @property
    def settings(self) -> AppSettings:
        if self._settings is None:
            raise ConfigurationError(
                "Configuration read before init()",
                suggestion="Await Configuration.init() before reading settings",
            )
        return self._settings

    def __getattr__(self, name: str) -> Any:
        # Only called for attributes not set on the instance
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return getattr(self.settings, name)
        except AttributeError:
            raise AttributeError(f"Configuration has no section {name!r}") from None
