from __future__ import annotations

import json
import logging
import time
from typing import Any, Dict, Optional, Tuple

import jwt  # PyJWT
import requests

from passvault.auth.config import AuthConfig
from passvault.auth.models import GoogleIdentity
from passvault.core.errors import IncompleteIdentity, InternalFailure, InvalidCredential

logger = logging.getLogger(__name__)

# Google issues ID tokens with either form of the issuer.
GOOGLE_ISSUERS = ("https://accounts.google.com", "accounts.google.com")

_CACHE_TTL_SECONDS = 3600

_discovery_cache: Dict[str, Tuple[float, Optional[Dict[str, Any]]]] = {}
_jwks_cache: Dict[str, Tuple[float, Optional[Dict[str, Any]]]] = {}


def _fetch_json(url: str) -> Dict[str, Any]:
    try:
        r = requests.get(url, timeout=10)
        r.raise_for_status()
        data = r.json()
    except (requests.RequestException, ValueError) as e:
        logger.warning("Identity provider request failed: %s (%s)", url, str(e))
        raise InternalFailure("Identity provider unavailable") from e
    if not isinstance(data, dict):
        raise InternalFailure("Invalid identity provider response")
    return data


def _get_discovery(discovery_url: str) -> Dict[str, Any]:
    """
    Fetch the OIDC discovery document.
    Caches result for 1 hour per discovery URL.
    """
    ts, cached = _discovery_cache.get(discovery_url, (0.0, None))
    now = time.time()
    if cached is not None and now - ts < _CACHE_TTL_SECONDS:
        return cached
    data = _fetch_json(discovery_url)
    _discovery_cache[discovery_url] = (now, data)
    return data


def _get_jwks(jwks_uri: str, *, force: bool = False) -> Dict[str, Any]:
    """
    Fetch the provider's JSON Web Key Set.
    Caches result for 1 hour per JWKS URI; `force` bypasses the cache after a key rotation.
    """
    ts, cached = _jwks_cache.get(jwks_uri, (0.0, None))
    now = time.time()
    if not force and cached is not None and now - ts < _CACHE_TTL_SECONDS:
        return cached
    data = _fetch_json(jwks_uri)
    _jwks_cache[jwks_uri] = (now, data)
    return data


def clear_caches() -> None:
    _discovery_cache.clear()
    _jwks_cache.clear()


def _find_jwk(jwks: Dict[str, Any], kid: str) -> Optional[Dict[str, Any]]:
    keys = jwks.get("keys")
    if not isinstance(keys, list):
        raise InternalFailure("Invalid JWKS keys")
    for k in keys:
        if isinstance(k, dict) and str(k.get("kid") or "") == kid:
            return k
    return None


def validate_id_token(cfg: AuthConfig, *, id_token: str) -> Dict[str, Any]:
    """
    Validate a Google ID token and return its claims.

    - Verifies the RS256 signature with the provider's current signing keys
    - Validates issuer, audience (our client id) and expiry
    """
    if not cfg.google_client_id:
        raise InternalFailure("GOOGLE_CLIENT_ID is not configured")

    disc = _get_discovery(cfg.google_discovery_url)
    jwks_uri = str(disc.get("jwks_uri") or "")
    if not jwks_uri:
        raise InternalFailure("OIDC discovery missing jwks_uri")

    try:
        hdr = jwt.get_unverified_header(id_token)
    except jwt.PyJWTError as e:
        raise InvalidCredential("Invalid Google token") from e
    kid = str(hdr.get("kid") or "")
    if not kid:
        raise InvalidCredential("ID token missing kid")

    jwk = _find_jwk(_get_jwks(jwks_uri), kid)
    if jwk is None:
        # Keys rotate; refetch once before rejecting.
        jwk = _find_jwk(_get_jwks(jwks_uri, force=True), kid)
    if jwk is None:
        raise InvalidCredential("Unknown signing key (kid)")

    try:
        key = jwt.algorithms.RSAAlgorithm.from_jwk(json.dumps(jwk))
        claims = jwt.decode(
            id_token,
            key=key,
            algorithms=["RS256"],
            audience=cfg.google_client_id,
            options={"require": ["exp", "iat", "iss", "aud", "sub"]},
        )
    except jwt.PyJWTError as e:
        raise InvalidCredential("Invalid Google token") from e

    if not isinstance(claims, dict):
        raise InvalidCredential("Invalid ID token claims")
    if str(claims.get("iss") or "") not in GOOGLE_ISSUERS:
        raise InvalidCredential("Invalid token issuer")
    return claims


def identity_from_claims(claims: Dict[str, Any]) -> GoogleIdentity:
    subject = str(claims.get("sub") or "").strip()
    if not subject:
        raise InvalidCredential("ID token missing subject")
    email = str(claims.get("email") or "").strip()
    name = str(claims.get("name") or "").strip()
    if not email or not name:
        raise IncompleteIdentity("Email and name required from Google")
    picture = str(claims.get("picture") or "").strip() or None
    return GoogleIdentity(subject=subject, email=email, name=name, picture=picture)


def verify_credential(cfg: AuthConfig, credential: str) -> GoogleIdentity:
    """Verify a Google Identity Services credential and extract the identity it asserts."""
    return identity_from_claims(validate_id_token(cfg, id_token=credential))
