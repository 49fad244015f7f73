"""Runtime settings.

Precedence, highest first: keyword arguments, ``FORGE_*`` environment
variables (nested with ``__``, e.g. ``FORGE_WORKER__BATCH_SIZE``), the YAML
file named by ``FORGE_CONFIG`` or ``config/forge.yaml``, then defaults.

Scoring hyperparameters are not settings; they come from the active
scoring model version.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Type

import yaml
from pydantic import BaseModel, Field, model_validator
from pydantic.fields import FieldInfo
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from .db_url import ensure_config_database_url

logger = logging.getLogger(__name__)

CONFIG_PATH_ENV = "FORGE_CONFIG"


class DatabaseSettings(BaseModel):
    url: Optional[str] = None
    user: Optional[str] = None
    password: Optional[str] = None
    host: str = "127.0.0.1"
    port: int = 5432
    name: Optional[str] = None
    echo: bool = False


class ProbeSettings(BaseModel):
    http_timeout_seconds: float = Field(default=10.0, gt=0, description="Reachability check timeout.")
    body_timeout_seconds: float = Field(default=5.0, gt=0, description="Body fetch timeout for token detection.")
    github_api_base: str = "https://api.github.com"
    github_token: Optional[str] = None
    user_agent: str = "ForgeVerifier/3.0"


class WorkerSettings(BaseModel):
    poll_interval_seconds: float = Field(default=30.0, gt=0)
    batch_size: int = Field(default=10, ge=1, le=1000)
    rate_limit_minutes: int = Field(default=15, ge=0)


class LoggingSettings(BaseModel):
    level: str = "INFO"
    events_dir: Optional[str] = None
    events_retention_bytes: int = Field(default=10 * 1024 * 1024, ge=1024)


def _repo_root() -> Path:
    return Path(__file__).resolve().parents[2]


def _config_candidates() -> list[Path]:
    candidates: list[Path] = []
    explicit = os.getenv(CONFIG_PATH_ENV)
    if explicit:
        candidates.append(Path(explicit).expanduser().resolve())
    candidates.append(Path.cwd() / "config" / "forge.yaml")
    candidates.append(_repo_root() / "config" / "forge.yaml")
    return candidates


def load_yaml_config() -> Dict[str, Any]:
    """First readable YAML config found, or an empty mapping."""
    for path in _config_candidates():
        if not path.exists():
            continue
        try:
            with path.open("r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            logger.warning(f"Ignoring unreadable config file {path}: {e}")
            continue
        if isinstance(data, dict):
            return data
        logger.warning(f"Ignoring config file {path}: top level is not a mapping")
    return {}


class YamlDefaultsSource(PydanticBaseSettingsSource):
    """Settings source backed by the optional YAML file."""

    def get_field_value(self, field: FieldInfo, field_name: str) -> Tuple[Any, str, bool]:
        return None, field_name, False

    def __call__(self) -> Dict[str, Any]:
        return load_yaml_config()


class ForgeSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="FORGE_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    data_dir: str = "data"
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    probes: ProbeSettings = Field(default_factory=ProbeSettings)
    worker: WorkerSettings = Field(default_factory=WorkerSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlDefaultsSource(settings_cls),
            file_secret_settings,
        )

    @model_validator(mode="after")
    def _fill_derived(self) -> "ForgeSettings":
        ensure_config_database_url(self.database, self.data_dir)
        if not self.probes.github_token:
            self.probes.github_token = os.getenv("GITHUB_TOKEN") or None
        if not self.logging.events_dir:
            self.logging.events_dir = os.path.join(self.data_dir, "logs")
        return self

    @property
    def database_url(self) -> str:
        return self.database.url or ""


def load_settings(**overrides: Any) -> ForgeSettings:
    return ForgeSettings(**overrides)


__all__ = [
    "DatabaseSettings",
    "ProbeSettings",
    "WorkerSettings",
    "LoggingSettings",
    "ForgeSettings",
    "YamlDefaultsSource",
    "load_yaml_config",
    "load_settings",
]
