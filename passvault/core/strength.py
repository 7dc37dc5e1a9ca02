from __future__ import annotations

import re

from passvault.core.encoding import decode_secret
from passvault.core.models import Strength

_LOWER = re.compile(r"[a-z]")
_UPPER = re.compile(r"[A-Z]")
_DIGIT = re.compile(r"[0-9]")
_SYMBOL = re.compile(r"[^A-Za-z0-9]")


def _utf16_length(password: str) -> int:
    # Browser clients measure `.length` in UTF-16 code units; astral characters count twice.
    return len(password.encode("utf-16-le")) // 2


def strength_score(password: str) -> int:
    """One point per rule: length >= 8, length >= 12, lower, upper, digit, symbol."""
    score = 0
    length = _utf16_length(password)
    if length >= 8:
        score += 1
    if length >= 12:
        score += 1
    for pattern in (_LOWER, _UPPER, _DIGIT, _SYMBOL):
        if pattern.search(password):
            score += 1
    return score


def classify_strength(password: str) -> Strength:
    score = strength_score(password)
    if score <= 2:
        return "weak"
    if score <= 4:
        return "medium"
    return "strong"


def classify_encoded(encoded: str) -> Strength:
    """Classify a stored (reversibly encoded) secret by decoding it first."""
    return classify_strength(decode_secret(encoded))
