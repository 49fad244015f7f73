from __future__ import annotations

import os
from typing import Any

DEFAULT_SQLITE_FILENAME = "forge.db"


def build_database_url(
    *,
    user: str,
    password: str | None,
    host: str,
    port: str,
    name: str,
) -> str:
    auth = f"{user}:{password}" if password else f"{user}"
    return f"postgresql+asyncpg://{auth}@{host}:{port}/{name}"


def build_default_sqlite_url(data_dir: str) -> str:
    return f"sqlite+aiosqlite:///{os.path.abspath(os.path.join(data_dir, DEFAULT_SQLITE_FILENAME))}"


def ensure_config_database_url(db: Any, data_dir: str) -> dict[str, Any]:
    """Ensure a database URL is set on the database settings object.

    An explicit url wins; otherwise user/name (plus optional password, host,
    port) compose a Postgres URL; otherwise a SQLite file under data_dir.
    """
    if db is None:
        return {"composed": False, "reason": "missing_config"}

    if getattr(db, "url", None):
        return {"composed": False, "url_already_set": True}

    host = getattr(db, "host", None) or "127.0.0.1"
    port = str(getattr(db, "port", None) or 5432)
    user = getattr(db, "user", None)
    pwd = getattr(db, "password", None) or ""
    name = getattr(db, "name", None)
    if user and name:
        url = build_database_url(
            user=user,
            password=pwd,
            host=host,
            port=port,
            name=name,
        )
        setattr(db, "url", url)
        return {"composed": True, "dialect": "postgresql"}

    setattr(db, "url", build_default_sqlite_url(data_dir))
    return {"composed": True, "dialect": "sqlite", "reason": "missing_fields"}


__all__ = [
    "DEFAULT_SQLITE_FILENAME",
    "build_database_url",
    "build_default_sqlite_url",
    "ensure_config_database_url",
]
