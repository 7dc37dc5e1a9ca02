from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

GOOGLE_DISCOVERY_URL = "https://accounts.google.com/.well-known/openid-configuration"


@dataclass(frozen=True)
class AuthConfig:
    # Google Identity Services
    google_client_id: Optional[str]
    google_discovery_url: str

    # Session configuration
    session_secret: Optional[str]  # Required for cookie signing
    session_ttl_seconds: int
    cookie_secure: bool

    # Sign-in throttling (per client address)
    signin_max_attempts: int
    signin_window_seconds: int

    @property
    def google_enabled(self) -> bool:
        return bool(self.google_client_id)


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(float(raw))
    except ValueError:
        return default


@lru_cache(maxsize=1)
def load_auth_config() -> AuthConfig:
    """
    Load authentication configuration from environment variables.

    GOOGLE_CLIENT_ID is the audience every ID token must carry; VITE_GOOGLE_CLIENT_ID is
    accepted as a fallback so a shared front-end .env works unchanged.
    """
    client_id = (os.getenv("GOOGLE_CLIENT_ID") or os.getenv("VITE_GOOGLE_CLIENT_ID") or "").strip() or None

    cookie_secure_env = (os.getenv("AUTH_COOKIE_SECURE", "") or "").strip().lower()
    if cookie_secure_env in ("1", "true", "yes", "on"):
        cookie_secure = True
    elif cookie_secure_env in ("0", "false", "no", "off"):
        cookie_secure = False
    else:
        # Default: secure cookies in production; allow plain HTTP for local dev.
        cookie_secure = (os.getenv("APP_ENV", "") or "").strip().lower() == "production"

    ttl = _env_int("AUTH_SESSION_TTL_SECONDS", 24 * 3600)
    if ttl <= 60:
        ttl = 60

    return AuthConfig(
        google_client_id=client_id,
        google_discovery_url=(os.getenv("GOOGLE_DISCOVERY_URL", "") or "").strip() or GOOGLE_DISCOVERY_URL,
        session_secret=(os.getenv("SESSION_SECRET", "") or "").strip() or None,
        session_ttl_seconds=ttl,
        cookie_secure=cookie_secure,
        signin_max_attempts=max(1, _env_int("AUTH_SIGNIN_MAX_ATTEMPTS", 5)),
        signin_window_seconds=max(1, _env_int("AUTH_SIGNIN_WINDOW_SECONDS", 300)),
    )
