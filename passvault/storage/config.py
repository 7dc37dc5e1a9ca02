from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

APPLICATION_NAME = "passvault"


def _env_str(name: str) -> Optional[str]:
    return (os.getenv(name) or "").strip() or None


def _env_int(name: str, default: int) -> int:
    raw = _env_str(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class DbConfig:
    db_auto_migrate: bool
    connect_timeout_seconds: int

    # POSTGRES_DSN wins; otherwise all of host/db/user/password are needed.
    postgres_dsn: Optional[str]
    postgres_host: Optional[str]
    postgres_port: int
    postgres_db: Optional[str]
    postgres_user: Optional[str]
    postgres_password: Optional[str]


def load_db_config() -> DbConfig:
    return DbConfig(
        db_auto_migrate=(_env_str("DB_AUTO_MIGRATE") or "").lower() in ("1", "true", "yes", "y", "on"),
        connect_timeout_seconds=max(1, _env_int("POSTGRES_CONNECT_TIMEOUT", 5)),
        postgres_dsn=_env_str("POSTGRES_DSN"),
        postgres_host=_env_str("POSTGRES_HOST"),
        postgres_port=_env_int("POSTGRES_PORT", 5432),
        postgres_db=_env_str("POSTGRES_DB"),
        postgres_user=_env_str("POSTGRES_USER"),
        postgres_password=_env_str("POSTGRES_PASSWORD"),
    )


def build_postgres_dsn(cfg: DbConfig) -> Optional[str]:
    """
    Return a libpq conninfo string, or None when Postgres is not configured.

    The connect timeout and application name are added unless the DSN already sets them.
    """
    from psycopg.conninfo import conninfo_to_dict, make_conninfo

    if cfg.postgres_dsn:
        base = cfg.postgres_dsn
    elif cfg.postgres_host and cfg.postgres_db and cfg.postgres_user and cfg.postgres_password:
        # make_conninfo quotes special characters in passwords.
        base = make_conninfo(
            host=cfg.postgres_host,
            port=cfg.postgres_port,
            dbname=cfg.postgres_db,
            user=cfg.postgres_user,
            password=cfg.postgres_password,
        )
    else:
        return None

    present = conninfo_to_dict(base)
    extra = {}
    if "connect_timeout" not in present:
        extra["connect_timeout"] = cfg.connect_timeout_seconds
    if "application_name" not in present:
        extra["application_name"] = APPLICATION_NAME
    return make_conninfo(base, **extra) if extra else base
