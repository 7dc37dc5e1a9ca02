"""
passvault HTTP API.

Google sign-in establishes a server-side session; every `/api/passwords` route is
scoped to the session's user id through the `require_session` dependency.
"""

from __future__ import annotations

import logging
import os
import time
from typing import Any, Dict, List

from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from passvault.auth.config import load_auth_config
from passvault.auth.deps import require_session
from passvault.auth.models import SessionContext
from passvault.core.encoding import SECRET_STORAGE_MODE
from passvault.core.errors import PassvaultError, RateLimited
from passvault.core.generator import MAX_LENGTH, MIN_LENGTH, generate_password
from passvault.core.models import GoogleSignIn, PasswordCreate, PasswordUpdate
from passvault.core.strength import classify_encoded, classify_strength
from passvault.storage import get_store
from passvault.storage.base import VaultStore

logger = logging.getLogger(__name__)

app = FastAPI(title="passvault")


def _error_response(status_code: int, code: str, message: str, **extra: Any) -> JSONResponse:
    # IMPORTANT: never emit `WWW-Authenticate`; browsers would show a basic-auth modal.
    content: Dict[str, Any] = {"message": message, "error": code}
    content.update(extra)
    return JSONResponse(status_code=status_code, content=content)


@app.exception_handler(PassvaultError)
async def _passvault_error_handler(request: Request, exc: PassvaultError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s - %s: %s", request.method, request.url.path, exc.code, exc.message)
    resp = _error_response(exc.status_code, exc.code, exc.message)
    if isinstance(exc, RateLimited) and exc.retry_after:
        resp.headers["Retry-After"] = str(exc.retry_after)
    return resp


@app.exception_handler(RequestValidationError)
async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        {"loc": [str(p) for p in (e.get("loc") or ())], "msg": str(e.get("msg") or "")} for e in exc.errors()
    ]
    return _error_response(400, "ValidationFailed", "Invalid request", details=errors)


@app.on_event("startup")
def _startup_maybe_migrate_db() -> None:
    """
    Optional: apply DB migrations when DB_AUTO_MIGRATE=1.

    This should never prevent the server from starting; failures are logged.
    """
    try:
        from passvault.storage.migrate import maybe_auto_migrate

        did_attempt, msg = maybe_auto_migrate()
        if did_attempt:
            logger.info("DB migrations: %s", msg)
    except Exception as e:
        logger.warning("DB migrations: startup auto-migrate failed: %s", str(e))

    cfg = load_auth_config()
    # Avoid logging secrets.
    logger.info(
        "Auth config: google_client_id_set=%s session_secret_set=%s session_ttl=%ds cookie_secure=%s",
        cfg.google_enabled,
        bool(cfg.session_secret),
        cfg.session_ttl_seconds,
        cfg.cookie_secure,
    )


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all incoming HTTP requests."""
    start_time = time.time()
    logger.debug("%s %s", request.method, request.url.path)
    try:
        response = await call_next(request)
        process_time = time.time() - start_time
        logger.debug("%s %s - %d (%.3fs)", request.method, request.url.path, response.status_code, process_time)
        return response
    except Exception as e:
        process_time = time.time() - start_time
        logger.exception("%s %s - ERROR after %.3fs: %s", request.method, request.url.path, process_time, str(e))
        raise


@app.get("/healthz")
def healthz() -> Dict[str, Any]:
    return {"ok": True}


# ---- Authentication ----


@app.get("/api/auth/config")
def auth_config() -> Dict[str, Any]:
    """
    Public settings the UI needs to render Google sign-in.
    Returns no secrets.
    """
    cfg = load_auth_config()
    return {
        "googleClientId": cfg.google_client_id,
        "sessionTtlSeconds": cfg.session_ttl_seconds,
        "secretStorage": SECRET_STORAGE_MODE,
    }


def _client_key(request: Request) -> str:
    # Behind a reverse proxy this is the proxy's address unless uvicorn rewrites it from
    # X-Forwarded-For (see `run`); otherwise every client shares one throttle bucket.
    return request.client.host if request.client else "unknown"


@app.post("/api/auth/google")
def auth_google(request: Request, body: GoogleSignIn, store: VaultStore = Depends(get_store)) -> JSONResponse:
    """
    Verify a Google ID token, upsert the user, and start a session.
    Rate-limited per client address.
    """
    from passvault.auth.google import verify_credential
    from passvault.auth.rate_limit import get_signin_throttle
    from passvault.auth.session import establish_session, session_cookie_kwargs

    cfg = load_auth_config()
    client_key = _client_key(request)
    throttle = get_signin_throttle(cfg.signin_max_attempts, cfg.signin_window_seconds)
    retry_after = throttle.hit(client_key)
    if retry_after is not None:
        logger.warning("Sign-in throttled for %s (retry in %ds)", client_key, retry_after)
        raise RateLimited("Too many sign-in attempts. Please try again later.", retry_after=retry_after)

    identity = verify_credential(cfg, body.credential)
    user = store.get_or_create_user(
        google_id=identity.subject,
        email=identity.email,
        name=identity.name,
        picture=identity.picture,
    )
    record, cookie_value = establish_session(cfg, store, user.snapshot())
    throttle.clear(client_key)
    logger.info("Signed in user %s", user.id)

    resp = JSONResponse(content={"user": record.user.to_json()})
    resp.headers["Cache-Control"] = "no-store"
    resp.set_cookie(**session_cookie_kwargs(cfg, cookie_value))
    return resp


@app.get("/api/auth/me")
def auth_me(ctx: SessionContext = Depends(require_session)) -> Dict[str, Any]:
    return {"user": ctx.to_json()}


@app.post("/api/auth/logout")
def auth_logout(request: Request, store: VaultStore = Depends(get_store)) -> JSONResponse:
    """Destroy the server-side session. Callable without a valid session."""
    from passvault.auth.session import clear_session_cookie_kwargs, destroy_session, session_cookie_name

    cfg = load_auth_config()
    destroy_session(cfg, store, request.cookies.get(session_cookie_name(cfg)))
    resp = JSONResponse(content={"message": "Logged out successfully"})
    resp.headers["Cache-Control"] = "no-store"
    resp.set_cookie(**clear_session_cookie_kwargs(cfg))
    return resp


# ---- Password entries ----


@app.get("/api/passwords")
def list_passwords(
    ctx: SessionContext = Depends(require_session), store: VaultStore = Depends(get_store)
) -> List[Dict[str, Any]]:
    return [e.to_json() for e in store.list_passwords(ctx.user_id)]


@app.get("/api/passwords/generate")
def generate(
    length: int = Query(16, ge=MIN_LENGTH, le=MAX_LENGTH),
    _ctx: SessionContext = Depends(require_session),
) -> Dict[str, Any]:
    password = generate_password(length)
    return {"password": password, "strength": classify_strength(password)}


@app.get("/api/passwords/{entry_id}")
def get_password(
    entry_id: str, ctx: SessionContext = Depends(require_session), store: VaultStore = Depends(get_store)
) -> Dict[str, Any]:
    return store.get_password(entry_id, ctx.user_id).to_json()


@app.post("/api/passwords")
def create_password(
    body: PasswordCreate, ctx: SessionContext = Depends(require_session), store: VaultStore = Depends(get_store)
) -> Dict[str, Any]:
    # Clients usually send the strength they computed; otherwise classify the decoded secret.
    strength = body.strength or classify_encoded(body.encoded_password)
    entry = store.create_password(
        ctx.user_id,
        title=body.title.strip(),
        username=body.username.strip(),
        encoded_password=body.encoded_password,
        strength=strength,
        website=body.website,
        icon=body.icon,
        is_favorite=body.is_favorite,
        is_shared=body.is_shared,
    )
    logger.info("User %s created password %s", ctx.user_id, entry.id)
    return entry.to_json()


@app.patch("/api/passwords/{entry_id}")
def update_password(
    entry_id: str,
    body: PasswordUpdate,
    ctx: SessionContext = Depends(require_session),
    store: VaultStore = Depends(get_store),
) -> Dict[str, Any]:
    changes = body.changes()
    if "encoded_password" in changes and "strength" not in changes:
        changes["strength"] = classify_encoded(changes["encoded_password"])
    for key in ("title", "username"):
        if key in changes:
            changes[key] = changes[key].strip()
    return store.update_password(entry_id, ctx.user_id, changes).to_json()


@app.delete("/api/passwords/{entry_id}")
def delete_password(
    entry_id: str, ctx: SessionContext = Depends(require_session), store: VaultStore = Depends(get_store)
) -> Dict[str, Any]:
    store.delete_password(entry_id, ctx.user_id)
    logger.info("User %s deleted password %s", ctx.user_id, entry_id)
    return {"message": "Password deleted successfully"}


def run(host: str = "0.0.0.0", port: int = 8080) -> None:
    import uvicorn

    # Configure logging for the application
    log_level = os.getenv("LOG_LEVEL", "info").upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logger.setLevel(getattr(logging, log_level, logging.INFO))

    # Map Python logging levels to uvicorn log levels
    uvicorn_log_level = (
        log_level.lower() if log_level.lower() in ["critical", "error", "warning", "info", "debug", "trace"] else "info"
    )

    logger.info("Starting passvault server on %s:%d (log_level=%s)", host, port, log_level)
    # Trust X-Forwarded-For only from FORWARDED_ALLOW_IPS (uvicorn default: 127.0.0.1),
    # so the sign-in throttle keys on the real client address behind a proxy.
    forwarded_allow_ips = (os.getenv("FORWARDED_ALLOW_IPS", "") or "").strip() or None
    uvicorn.run(
        app,
        host=host,
        port=port,
        log_level=uvicorn_log_level,
        proxy_headers=True,
        forwarded_allow_ips=forwarded_allow_ips,
    )
