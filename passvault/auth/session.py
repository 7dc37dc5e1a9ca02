from __future__ import annotations

import base64
import logging
import os
from datetime import timedelta
from typing import Optional, Tuple

from itsdangerous import BadSignature, BadTimeSignature, URLSafeTimedSerializer

from passvault.auth.config import AuthConfig
from passvault.core.errors import InternalFailure
from passvault.core.models import SessionRecord, SessionUser, utcnow
from passvault.storage.base import VaultStore

logger = logging.getLogger(__name__)

SESSION_SALT = "passvault-session-v1"


def session_cookie_name(cfg: AuthConfig) -> str:
    # `__Host-` requires Secure + Path=/ + no Domain; browsers may reject it on HTTP.
    return "__Host-passvault_session" if cfg.cookie_secure else "passvault_session"


def _serializer(cfg: AuthConfig) -> Optional[URLSafeTimedSerializer]:
    if not cfg.session_secret:
        return None
    return URLSafeTimedSerializer(secret_key=cfg.session_secret, salt=SESSION_SALT)


def _new_session_id() -> str:
    return base64.urlsafe_b64encode(os.urandom(32)).decode("ascii").rstrip("=")


def sign_session_id(cfg: AuthConfig, sid: str) -> Optional[str]:
    s = _serializer(cfg)
    if s is None:
        return None
    return s.dumps(sid)


def unsign_session_id(cfg: AuthConfig, value: Optional[str]) -> Optional[str]:
    """Return the session id carried by a cookie value, or None if absent/tampered/too old."""
    if not value:
        return None
    s = _serializer(cfg)
    if s is None:
        return None
    try:
        sid = s.loads(value, max_age=cfg.session_ttl_seconds)
    except (BadSignature, BadTimeSignature):
        return None
    return sid if isinstance(sid, str) and sid else None


def establish_session(cfg: AuthConfig, store: VaultStore, user: SessionUser) -> Tuple[SessionRecord, str]:
    """
    Create the server-side session row for `user`.

    Returns (record, cookie_value). Expired rows are purged first.
    """
    if _serializer(cfg) is None:
        raise InternalFailure("Session signing is not configured (SESSION_SECRET)")

    purged = store.purge_expired_sessions()
    if purged:
        logger.debug("Purged %d expired session(s)", purged)

    sid = _new_session_id()
    record = store.create_session(
        sid=sid,
        user=user,
        expires_at=utcnow() + timedelta(seconds=cfg.session_ttl_seconds),
    )
    cookie_value = sign_session_id(cfg, sid)
    if not cookie_value:
        raise InternalFailure("Session signing is not configured (SESSION_SECRET)")
    return record, cookie_value


def resolve_session(cfg: AuthConfig, store: VaultStore, cookie_value: Optional[str]) -> Optional[SessionRecord]:
    sid = unsign_session_id(cfg, cookie_value)
    if sid is None:
        return None
    return store.get_session(sid)


def destroy_session(cfg: AuthConfig, store: VaultStore, cookie_value: Optional[str]) -> bool:
    """
    Delete the session row referenced by the cookie.

    A missing or invalid cookie is not an error (nothing to destroy). Store failures
    propagate: a session that could not be deleted still grants access.
    """
    sid = unsign_session_id(cfg, cookie_value)
    if sid is None:
        return False
    return store.delete_session(sid)


def clear_session_cookie_kwargs(cfg: AuthConfig) -> dict:
    return {
        "key": session_cookie_name(cfg),
        "value": "",
        "max_age": 0,
        "httponly": True,
        "secure": cfg.cookie_secure,
        "samesite": "lax",
        "path": "/",
    }


def session_cookie_kwargs(cfg: AuthConfig, value: str) -> dict:
    return {
        "key": session_cookie_name(cfg),
        "value": value,
        "max_age": cfg.session_ttl_seconds,
        "httponly": True,
        "secure": cfg.cookie_secure,
        "samesite": "lax",
        "path": "/",
    }
