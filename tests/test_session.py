from __future__ import annotations

from datetime import timedelta

import pytest

from passvault.auth.config import load_auth_config
from passvault.auth.session import (
    clear_session_cookie_kwargs,
    destroy_session,
    establish_session,
    resolve_session,
    session_cookie_kwargs,
    session_cookie_name,
    sign_session_id,
    unsign_session_id,
)
from passvault.core.errors import InternalFailure
from passvault.core.models import SessionUser, utcnow
from passvault.storage.memory_store import MemoryStore


def _user(store: MemoryStore) -> SessionUser:
    return store.get_or_create_user(google_id="g-1", email="a@example.com", name="Alice", picture=None).snapshot()


def test_cookie_signature_roundtrip_and_tamper() -> None:
    cfg = load_auth_config()
    signed = sign_session_id(cfg, "sid-123")
    assert unsign_session_id(cfg, signed) == "sid-123"

    assert unsign_session_id(cfg, "x" + signed) is None
    assert unsign_session_id(cfg, "garbage") is None
    assert unsign_session_id(cfg, None) is None
    assert unsign_session_id(cfg, "") is None


def test_cookie_signed_with_another_secret_is_rejected(monkeypatch) -> None:
    signed = sign_session_id(load_auth_config(), "sid-123")
    monkeypatch.setenv("SESSION_SECRET", "a-different-secret")
    load_auth_config.cache_clear()
    assert unsign_session_id(load_auth_config(), signed) is None


def test_establish_and_resolve_session() -> None:
    cfg = load_auth_config()
    store = MemoryStore()
    user = _user(store)

    record, cookie = establish_session(cfg, store, user)
    assert record.user_id == user.id
    assert record.expires_at > utcnow() + timedelta(seconds=cfg.session_ttl_seconds - 60)

    resolved = resolve_session(cfg, store, cookie)
    assert resolved is not None
    assert resolved.sid == record.sid
    assert resolved.user == user

    # Each sign-in gets its own session id.
    _record2, cookie2 = establish_session(cfg, store, user)
    assert unsign_session_id(cfg, cookie2) != record.sid


def test_destroy_session_invalidates_cookie() -> None:
    cfg = load_auth_config()
    store = MemoryStore()
    _record, cookie = establish_session(cfg, store, _user(store))

    assert destroy_session(cfg, store, cookie) is True
    assert resolve_session(cfg, store, cookie) is None
    # Destroying again, or without a cookie, is not an error.
    assert destroy_session(cfg, store, cookie) is False
    assert destroy_session(cfg, store, None) is False


def test_missing_secret_refuses_to_issue_sessions(monkeypatch) -> None:
    monkeypatch.delenv("SESSION_SECRET", raising=False)
    load_auth_config.cache_clear()
    cfg = load_auth_config()
    store = MemoryStore()
    with pytest.raises(InternalFailure):
        establish_session(cfg, store, _user(store))
    assert resolve_session(cfg, store, "anything") is None


def test_cookie_kwargs_dev_defaults() -> None:
    cfg = load_auth_config()
    assert session_cookie_name(cfg) == "passvault_session"
    kw = session_cookie_kwargs(cfg, "v")
    assert kw["httponly"] is True
    assert kw["secure"] is False
    assert kw["samesite"] == "lax"
    assert kw["path"] == "/"
    assert kw["max_age"] == cfg.session_ttl_seconds
    cleared = clear_session_cookie_kwargs(cfg)
    assert cleared["max_age"] == 0
    assert cleared["value"] == ""


def test_production_uses_host_prefixed_secure_cookie(monkeypatch) -> None:
    monkeypatch.setenv("APP_ENV", "production")
    load_auth_config.cache_clear()
    cfg = load_auth_config()
    assert cfg.cookie_secure is True
    assert session_cookie_name(cfg) == "__Host-passvault_session"
    assert session_cookie_kwargs(cfg, "v")["secure"] is True


def test_explicit_cookie_secure_overrides_app_env(monkeypatch) -> None:
    monkeypatch.setenv("APP_ENV", "production")
    monkeypatch.setenv("AUTH_COOKIE_SECURE", "0")
    load_auth_config.cache_clear()
    assert load_auth_config().cookie_secure is False


def test_session_ttl_floor(monkeypatch) -> None:
    monkeypatch.setenv("AUTH_SESSION_TTL_SECONDS", "5")
    load_auth_config.cache_clear()
    assert load_auth_config().session_ttl_seconds == 60
