"""
Pytest config.

Tests import the local `passvault/` package from the repo root, which is pinned on
sys.path here so a global `pytest` entrypoint works without an editable install.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest


def _ensure_repo_root_on_syspath() -> None:
    repo_root = Path(__file__).resolve().parents[1]
    repo_root_str = str(repo_root)
    if repo_root_str not in sys.path:
        sys.path.insert(0, repo_root_str)


_ensure_repo_root_on_syspath()

TEST_CLIENT_ID = "test-client-id.apps.googleusercontent.com"
TEST_SESSION_SECRET = "test-secret-key-for-testing-purposes-only"


@pytest.fixture(autouse=True)
def _isolated_config(monkeypatch: pytest.MonkeyPatch):
    """
    Every test starts from a known auth/db environment with fresh process-wide caches:
    no Postgres (so the in-memory store is used), a fixed client id and session secret.
    """
    for k in (
        "POSTGRES_DSN",
        "POSTGRES_HOST",
        "POSTGRES_PORT",
        "POSTGRES_DB",
        "POSTGRES_USER",
        "POSTGRES_PASSWORD",
        "POSTGRES_CONNECT_TIMEOUT",
        "DB_AUTO_MIGRATE",
        "VITE_GOOGLE_CLIENT_ID",
        "AUTH_COOKIE_SECURE",
        "APP_ENV",
        "AUTH_SESSION_TTL_SECONDS",
        "AUTH_SIGNIN_MAX_ATTEMPTS",
        "AUTH_SIGNIN_WINDOW_SECONDS",
        "GOOGLE_DISCOVERY_URL",
    ):
        monkeypatch.delenv(k, raising=False)
    monkeypatch.setenv("GOOGLE_CLIENT_ID", TEST_CLIENT_ID)
    monkeypatch.setenv("SESSION_SECRET", TEST_SESSION_SECRET)

    from passvault.auth.config import load_auth_config
    from passvault.auth.google import clear_caches
    from passvault.auth.rate_limit import reset_signin_throttle
    from passvault.storage import reset_store

    load_auth_config.cache_clear()
    clear_caches()
    reset_signin_throttle()
    reset_store()
    yield
    load_auth_config.cache_clear()
    clear_caches()
    reset_signin_throttle()
    reset_store()
