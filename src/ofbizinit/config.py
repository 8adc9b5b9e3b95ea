"""
Configuration for the OFBiz container entry point.

Two layers are defined here:

- InitializationConfig: the per-instance inputs (admin account, data load
  mode, public host) resolved from OFBIZ_* environment variables on every
  container start. Resolution is pure: no file or network access, and it
  never fails. An unknown data load mode silently becomes ``none``.
- EntrypointSettings: the container layout (application root, state
  directory, hook directories, external commands) and logging options,
  read from OFBIZ_ENTRYPOINT_* variables with Pydantic BaseSettings.

Example:
    from ofbizinit.config import get_settings, resolve_config

    config = resolve_config()          # from os.environ
    settings = get_settings()
    print(config.host, settings.state_dir)
"""

from __future__ import annotations

import os
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Literal, Mapping, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    SecretStr,
    ValidationInfo,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

__all__ = [
    "DataLoadMode",
    "InitializationConfig",
    "resolve_config",
    "INPUT_VARIABLES",
    "EntrypointSettings",
    "get_settings",
    "reset_settings",
]

# Field name -> environment variable for the instance inputs.
INPUT_VARIABLES: Dict[str, str] = {
    "skip_init": "OFBIZ_SKIP_INIT",
    "admin_user": "OFBIZ_ADMIN_USER",
    "admin_password": "OFBIZ_ADMIN_PASSWORD",
    "data_load": "OFBIZ_DATA_LOAD",
    "enable_ajp_port": "OFBIZ_ENABLE_AJP_PORT",
    "host": "OFBIZ_HOST",
    "content_url_prefix": "OFBIZ_CONTENT_URL_PREFIX",
}


class DataLoadMode(str, Enum):
    """Which data set the DataLoader imports on first start."""
    NONE = "none"
    SEED = "seed"
    DEMO = "demo"


class InitializationConfig(BaseModel):
    """Resolved inputs for one initialization run."""

    model_config = ConfigDict(frozen=True)

    skip_init: bool = False
    admin_user: str = "admin"
    admin_password: SecretStr = SecretStr("ofbiz")
    data_load: DataLoadMode = DataLoadMode.NONE
    host: str = "localhost"
    content_url_prefix: str = ""
    enable_ajp_port: bool = False

    @field_validator("skip_init", "enable_ajp_port", mode="before")
    @classmethod
    def presence_flag(cls, v: Any) -> bool:
        """Any non-empty value switches the flag on."""
        if isinstance(v, bool):
            return v
        return bool(v)

    @field_validator("data_load", mode="before")
    @classmethod
    def coerce_data_load(cls, v: Any) -> DataLoadMode:
        """Fall back to ``none`` for anything unrecognised."""
        if isinstance(v, DataLoadMode):
            return v
        try:
            return DataLoadMode(v)
        except ValueError:
            return DataLoadMode.NONE

    @field_validator("admin_user", "admin_password", "host", mode="before")
    @classmethod
    def empty_means_default(cls, v: Any, info: ValidationInfo) -> Any:
        if v in (None, ""):
            return cls.model_fields[info.field_name].default
        return v

    @model_validator(mode="before")
    @classmethod
    def default_content_url_prefix(cls, data: Any) -> Any:
        """The content URL prefix follows the resolved host unless given."""
        if isinstance(data, dict) and not data.get("content_url_prefix"):
            host = data.get("host") or "localhost"
            data = {**data, "content_url_prefix": f"https://{host}"}
        return data

    @classmethod
    def from_environ(cls, environ: Mapping[str, str]) -> "InitializationConfig":
        """Build a config from OFBIZ_* variables found in ``environ``."""
        values = {
            field: environ[variable]
            for field, variable in INPUT_VARIABLES.items()
            if variable in environ
        }
        return cls(**values)

    def to_environ(self) -> Dict[str, str]:
        """Render the resolved values back to OFBIZ_* variables."""
        return {
            "OFBIZ_SKIP_INIT": "1" if self.skip_init else "",
            "OFBIZ_ADMIN_USER": self.admin_user,
            "OFBIZ_ADMIN_PASSWORD": self.admin_password.get_secret_value(),
            "OFBIZ_DATA_LOAD": self.data_load.value,
            "OFBIZ_ENABLE_AJP_PORT": "1" if self.enable_ajp_port else "",
            "OFBIZ_HOST": self.host,
            "OFBIZ_CONTENT_URL_PREFIX": self.content_url_prefix,
        }

    def merged(self, overrides: Mapping[str, str]) -> "InitializationConfig":
        """
        Return a new config with environment-style overrides applied.

        Overrides are layered over the already resolved values, so a hook
        that only changes OFBIZ_HOST keeps the previously resolved content
        URL prefix. Keys that are not OFBIZ_* inputs are ignored.
        """
        relevant = {k: v for k, v in overrides.items() if k in INPUT_VARIABLES.values()}
        if not relevant:
            return self
        environ = self.to_environ()
        environ.update(relevant)
        return InitializationConfig.from_environ(environ)


def resolve_config(environ: Optional[Mapping[str, str]] = None) -> InitializationConfig:
    """Resolve the initialization inputs, defaulting to the process environment."""
    return InitializationConfig.from_environ(os.environ if environ is None else environ)


class EntrypointSettings(BaseSettings):
    """
    Container layout and logging options for the entry point.

    All settings can be overridden via environment variables
    prefixed with OFBIZ_ENTRYPOINT_.

    Example:
        export OFBIZ_ENTRYPOINT_STATE_DIR=/data/container_state
        export OFBIZ_ENTRYPOINT_LOG_FORMAT=text
    """

    model_config = SettingsConfigDict(
        env_prefix="OFBIZ_ENTRYPOINT_",
        extra="ignore",
    )

    app_root: str = Field(
        default="/ofbiz",
        description="OFBiz installation directory; config paths are relative to it",
    )
    state_dir: str = Field(
        default="/ofbiz/runtime/container_state",
        description="Directory holding stage marker files (must be on a persistent volume)",
    )
    hooks_root: str = Field(
        default="/",
        description="Directory containing the docker-entrypoint-*.d hook directories",
    )
    loader_command: str = Field(
        default="/ofbiz/bin/ofbiz",
        description="OFBiz launcher used for --load-data invocations",
    )
    stop_command: str = Field(
        default="/ofbiz/send_ofbiz_stop_signal.sh",
        description="Script asking a running OFBiz to shut down gracefully",
    )
    admin_template: str = Field(
        default="framework/resources/templates/AdminUserLoginData.xml",
        description="Admin login data template, relative to app_root",
    )

    # Logging
    log_level: Literal["debug", "info", "warning", "error"] = Field(
        default="info",
        description="Logging level for the entry point",
    )
    log_format: Literal["json", "text"] = Field(
        default="json",
        description="Log output format (json for log shippers, text for console)",
    )

    @field_validator("app_root", "state_dir", "hooks_root", mode="after")
    @classmethod
    def expand_path(cls, v: str) -> str:
        """Expand ~ and environment variables in paths."""
        return os.path.expanduser(os.path.expandvars(v))

    def app_path(self, relative: str) -> Path:
        """Resolve a path relative to the OFBiz installation."""
        return Path(self.app_root) / relative

    @property
    def admin_template_path(self) -> Path:
        return self.app_path(self.admin_template)


# Global singleton
_settings: Optional[EntrypointSettings] = None


def get_settings(**overrides) -> EntrypointSettings:
    """
    Get the global settings instance.

    Creates a singleton on first call. Subsequent calls return
    the same instance unless overrides are provided.
    """
    global _settings

    if overrides or _settings is None:
        _settings = EntrypointSettings(**overrides)

    return _settings


def reset_settings() -> None:
    """Reset the global settings (for testing)."""
    global _settings
    _settings = None
