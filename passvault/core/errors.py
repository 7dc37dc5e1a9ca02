from __future__ import annotations

from typing import Optional


class PassvaultError(Exception):
    """Base error surfaced to API callers with a distinct status code."""

    status_code = 500
    code = "InternalFailure"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.code)
        self.message = message or self.code


class InvalidCredential(PassvaultError):
    status_code = 400
    code = "InvalidCredential"


class IncompleteIdentity(PassvaultError):
    status_code = 400
    code = "IncompleteIdentity"


class Unauthenticated(PassvaultError):
    status_code = 401
    code = "Unauthenticated"


class NotFound(PassvaultError):
    """Entry missing, or owned by someone else. The two cases are never distinguished."""

    status_code = 404
    code = "NotFound"


class ValidationFailed(PassvaultError):
    status_code = 400
    code = "ValidationFailed"


class RateLimited(PassvaultError):
    status_code = 429
    code = "RateLimited"

    def __init__(self, message: str = "", *, retry_after: Optional[int] = None) -> None:
        super().__init__(message)
        self.retry_after = retry_after


class InternalFailure(PassvaultError):
    status_code = 500
    code = "InternalFailure"
