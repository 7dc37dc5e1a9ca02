from __future__ import annotations

import secrets

CHARSET = "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789!@#$%^&*()_+-=[]{}|;:,.<>?"

MIN_LENGTH = 4
MAX_LENGTH = 128


def generate_password(length: int = 16) -> str:
    """Random password over CHARSET, drawn with the `secrets` CSPRNG."""
    if length < MIN_LENGTH or length > MAX_LENGTH:
        raise ValueError(f"length must be between {MIN_LENGTH} and {MAX_LENGTH}")
    return "".join(secrets.choice(CHARSET) for _ in range(length))
