"""
Persistence for users, sessions, password entries and family sharing.

`PostgresStore` is the production backend. `MemoryStore` implements the same
interface for local development when Postgres is not configured.
"""

from __future__ import annotations

import logging
import threading
from typing import Optional

from passvault.storage.base import VaultStore

logger = logging.getLogger(__name__)

_store: Optional[VaultStore] = None
_store_lock = threading.Lock()


def get_store() -> VaultStore:
    """Return the process-wide store (thread-safe lazy init)."""
    global _store
    if _store is not None:
        return _store
    with _store_lock:
        if _store is not None:
            return _store
        from passvault.storage.config import build_postgres_dsn, load_db_config

        dsn = build_postgres_dsn(load_db_config())
        if dsn:
            from passvault.storage.postgres_store import PostgresStore

            _store = PostgresStore(dsn=dsn)
        else:
            from passvault.storage.memory_store import MemoryStore

            logger.warning("Postgres not configured; using in-memory store (data is lost on restart)")
            _store = MemoryStore()
        return _store


def reset_store() -> None:
    global _store
    with _store_lock:
        _store = None
