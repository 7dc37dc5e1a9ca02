"""
Storage encoding for password secrets.

This is base64, a reversible encoding, NOT encryption. Anyone with read access
to the database (or to an API response) can recover the plaintext. The names
below say "encode"/"decode" on purpose; do not describe stored secrets as
encrypted anywhere user-facing.
"""

from __future__ import annotations

import base64
import binascii

SECRET_STORAGE_MODE = "reversible-encoding"


def encode_secret(plaintext: str) -> str:
    return base64.b64encode(plaintext.encode("utf-8")).decode("ascii")


def decode_secret(encoded: str) -> str:
    """
    Decode a stored secret.

    Values that are not valid base64 (or not UTF-8 once decoded) are returned
    unchanged, so legacy plaintext rows still round-trip.
    """
    try:
        return base64.b64decode(encoded.encode("ascii"), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeError, ValueError):
        return encoded
