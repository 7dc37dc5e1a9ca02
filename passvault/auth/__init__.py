"""
Authentication for the passvault API.

- Google Identity Services ID tokens are verified server-side (JWKS, issuer, audience, expiry).
- Sessions live server-side; the HttpOnly cookie only carries a signed, opaque session id.
- `require_session` is the one gate every protected route depends on.
"""
