"""
Schema migrations for the Postgres store.

Migrations are the `NNNN_name.sql` files shipped in `passvault/storage/migrations/`.
Each one runs in its own transaction and is recorded in `schema_migrations` with a
sha256 checksum, so an edited migration that was already applied is refused.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple

from passvault.storage.config import DbConfig, build_postgres_dsn, load_db_config

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"

# pg_advisory_lock key shared by every passvault instance (bigint).
MIGRATION_LOCK_KEY = 470228113906


class MigrationError(RuntimeError):
    pass


@dataclass(frozen=True)
class Migration:
    version: str
    path: Path
    checksum: str
    sql: str


def load_migrations(directory: Path = MIGRATIONS_DIR) -> List[Migration]:
    """Read migration files in version order; duplicate version prefixes are an error."""
    if not directory.exists():
        return []
    by_version: Dict[str, Migration] = {}
    for p in sorted(directory.glob("*.sql")):
        version = p.name.split("_", 1)[0]
        if version in by_version:
            raise MigrationError(f"Duplicate migration version {version}: {by_version[version].path.name}, {p.name}")
        raw = p.read_bytes()
        by_version[version] = Migration(
            version=version,
            path=p,
            checksum=hashlib.sha256(raw).hexdigest(),
            sql=raw.decode("utf-8"),
        )
    return [by_version[v] for v in sorted(by_version)]


def pending_migrations(migrations: Iterable[Migration], applied: Dict[str, str]) -> List[Migration]:
    """
    Return migrations not yet recorded in `applied` (version -> checksum).

    Raises MigrationError if an applied migration's file changed since it ran.
    """
    out: List[Migration] = []
    for m in migrations:
        prev = applied.get(m.version)
        if prev is None:
            out.append(m)
        elif prev != m.checksum:
            raise MigrationError(f"Migration checksum mismatch for {m.version}: db={prev[:12]} file={m.checksum[:12]}")
    return out


def _connect(dsn: str):
    import psycopg

    # Autocommit so each `conn.transaction()` below is a real transaction, not a savepoint,
    # and the session-level advisory lock is released outside any failed transaction.
    return psycopg.connect(dsn, autocommit=True)


def _ensure_schema_migrations_table(conn) -> None:  # type: ignore[no-untyped-def]
    conn.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_migrations (
          version text PRIMARY KEY,
          checksum text NOT NULL,
          applied_at timestamptz NOT NULL DEFAULT now()
        );
        """
    )


def _applied_checksums(conn) -> Dict[str, str]:  # type: ignore[no-untyped-def]
    rows = conn.execute("SELECT version, checksum FROM schema_migrations;").fetchall()
    return {str(version): str(checksum) for version, checksum in rows}


def apply_migrations(*, dsn: str, migrations: Optional[Iterable[Migration]] = None) -> Tuple[int, List[str]]:
    """
    Apply pending migrations under an advisory lock.

    Returns: (applied_count, applied_versions)
    """
    migs = list(migrations) if migrations is not None else load_migrations()
    applied_versions: List[str] = []

    with _connect(dsn) as conn:
        conn.execute("SELECT pg_advisory_lock(%s);", (MIGRATION_LOCK_KEY,))
        try:
            _ensure_schema_migrations_table(conn)
            for m in pending_migrations(migs, _applied_checksums(conn)):
                with conn.transaction():
                    conn.execute(m.sql)
                    conn.execute(
                        "INSERT INTO schema_migrations(version, checksum) VALUES (%s, %s);",
                        (m.version, m.checksum),
                    )
                logger.info("Applied migration %s (%s)", m.version, m.path.name)
                applied_versions.append(m.version)
        finally:
            conn.execute("SELECT pg_advisory_unlock(%s);", (MIGRATION_LOCK_KEY,))

    return len(applied_versions), applied_versions


def maybe_auto_migrate(cfg: Optional[DbConfig] = None) -> Tuple[bool, str]:
    """
    Migrate on startup when DB_AUTO_MIGRATE=1 and Postgres is configured.

    Returns: (did_attempt, message). Migration failures propagate to the caller.
    """
    cfg = cfg or load_db_config()
    if not cfg.db_auto_migrate:
        return False, "DB_AUTO_MIGRATE is disabled"
    dsn = build_postgres_dsn(cfg)
    if not dsn:
        return False, "Postgres DSN not configured"
    n, versions = apply_migrations(dsn=dsn)
    if n:
        return True, f"Applied {n} migration(s): {', '.join(versions)}"
    return True, "No pending migrations"
