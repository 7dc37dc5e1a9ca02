from __future__ import annotations

from fastapi import Depends, Request

from passvault.auth.config import load_auth_config
from passvault.auth.models import SessionContext
from passvault.auth.session import resolve_session, session_cookie_name
from passvault.core.errors import Unauthenticated
from passvault.storage import get_store
from passvault.storage.base import VaultStore


def require_session(request: Request, store: VaultStore = Depends(get_store)) -> SessionContext:
    """
    Resolve the session cookie to an authenticated user, or raise Unauthenticated.

    This is the only place a request's identity is established. Routes must take the
    user id from the returned context, never from the request body or path.
    """
    cfg = load_auth_config()
    record = resolve_session(cfg, store, request.cookies.get(session_cookie_name(cfg)))
    if record is None or not record.user_id:
        raise Unauthenticated("Authentication required")
    ctx = SessionContext(sid=record.sid, user_id=record.user_id, user=record.user)
    request.state.session = ctx
    return ctx
