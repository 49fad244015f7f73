from .db_url import build_database_url, build_default_sqlite_url, ensure_config_database_url
from .settings import (
    DatabaseSettings,
    ForgeSettings,
    LoggingSettings,
    ProbeSettings,
    WorkerSettings,
    load_settings,
    load_yaml_config,
)

__all__ = [
    "build_database_url",
    "build_default_sqlite_url",
    "ensure_config_database_url",
    "DatabaseSettings",
    "ForgeSettings",
    "LoggingSettings",
    "ProbeSettings",
    "WorkerSettings",
    "load_settings",
    "load_yaml_config",
]
