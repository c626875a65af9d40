"""Configuration management with Pydantic Settings + optional YAML."""

from __future__ import annotations

import math
import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

DEFAULT_CONFIG_FILE = "formula_trigger.yaml"
DEFAULT_ENV_FILE = ".env"

# Deployment variables read without the FORMULA_TRIGGER_ prefix
_PLAIN_ENV_VARS: dict[str, tuple[str, str]] = {
    "MONDAY_API_TOKEN": ("monday", "api_token"),
    "MONDAY_SIGNING_SECRET": ("webhook", "signing_secret"),
    "STATUS_COLUMN_ID": ("webhook", "status_column_id"),
    "PORT": ("webhook", "port"),
}


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class MondayConfig(_Frozen):
    api_token: str = ""
    api_url: str = "https://api.monday.com/v2"
    api_version: str = "2024-01"
    timeout: float = 30.0


class WebhookConfig(_Frozen):
    signing_secret: str = ""
    status_column_id: str = "status"
    bind: str = "0.0.0.0"
    port: int = 3000
    queue_size: int = 256


class FilterConfig(_Frozen):
    formula_column_types: tuple[str, ...] = ("formula",)
    # Loop prevention: our own status writes fire webhooks too
    ignore_column_types: tuple[str, ...] = ("status",)
    allow_missing_column_type: bool = True


class RetryConfig(_Frozen):
    max_retries: int = Field(default=3, ge=0)
    initial_delay_ms: int = Field(default=1000, ge=0)
    max_delay_ms: int = Field(default=10000, ge=0)
    backoff_multiplier: float = Field(default=2.0, ge=1.0)


class LoggingConfig(_Frozen):
    log_webhooks: bool = True
    log_api_calls: bool = True
    log_errors: bool = True


class StatusRule(_Frozen):
    """A status label selected when every declared bound holds."""

    label: str
    index: int = Field(ge=0)
    color: str = ""
    gt: float | None = None
    gte: float | None = None
    lt: float | None = None
    lte: float | None = None

    @model_validator(mode="after")
    def _check_bounds(self) -> StatusRule:
        if self.gt is not None and self.gte is not None:
            raise ValueError(f"rule {self.label!r}: set gt or gte, not both")
        if self.lt is not None and self.lte is not None:
            raise ValueError(f"rule {self.label!r}: set lt or lte, not both")
        return self

    def matches(self, value: float) -> bool:
        if isinstance(value, float) and math.isnan(value):
            return False
        if self.gt is not None and not value > self.gt:
            return False
        if self.gte is not None and not value >= self.gte:
            return False
        if self.lt is not None and not value < self.lt:
            return False
        if self.lte is not None and not value <= self.lte:
            return False
        return True


def default_status_rules() -> tuple[StatusRule, ...]:
    return (
        StatusRule(label="Done", index=1, color="green", gt=100),
        StatusRule(label="Working on it", index=2, color="yellow", gte=50, lte=100),
        StatusRule(label="Stuck", index=3, color="red", lt=50),
    )


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="FORMULA_TRIGGER_",
        env_nested_delimiter="__",
        env_file=DEFAULT_ENV_FILE,
        extra="ignore",
        case_sensitive=False,
        frozen=True,
    )

    monday: MondayConfig = Field(default_factory=MondayConfig)
    webhook: WebhookConfig = Field(default_factory=WebhookConfig)
    filter: FilterConfig = Field(default_factory=FilterConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    status_rules: tuple[StatusRule, ...] = Field(default_factory=default_status_rules)
    log_level: str = "INFO"
    log_json: bool = False

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Env vars override file-provided values passed as init kwargs
        return env_settings, dotenv_settings, init_settings, file_secret_settings


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _plain_env_overrides(env_file: str | Path = DEFAULT_ENV_FILE) -> dict[str, Any]:
    """Plain deployment variables from the process environment or ``.env``.

    Process environment wins over the file, as with dotenv.
    """
    file_values = dotenv_values(env_file) if Path(env_file).is_file() else {}
    overrides: dict[str, Any] = {}
    for var, (section, key) in _PLAIN_ENV_VARS.items():
        value = os.environ.get(var) or file_values.get(var)
        if value:
            overrides.setdefault(section, {})[key] = value
    return overrides


def load_settings(config_path: str | Path | None = None) -> Settings:
    """Load settings from env vars, optionally overlaying a YAML config.

    Precedence, lowest first: YAML file, the plain deployment variables
    (``MONDAY_API_TOKEN``, ``MONDAY_SIGNING_SECRET``, ``STATUS_COLUMN_ID``,
    ``PORT``), then prefixed ``FORMULA_TRIGGER_*`` variables.
    """
    yaml_data: dict[str, Any] = {}

    if config_path is None:
        config_path = os.environ.get("FORMULA_TRIGGER_CONFIG")
    if config_path is None:
        default = Path.cwd() / DEFAULT_CONFIG_FILE
        if default.exists():
            config_path = default

    if config_path is not None:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                yaml_data = yaml.safe_load(f) or {}

    return Settings(**_deep_merge(yaml_data, _plain_env_overrides()))
