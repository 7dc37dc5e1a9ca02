from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from passvault.core.models import SessionUser


@dataclass(frozen=True)
class GoogleIdentity:
    """Verified claims needed to resolve a local user."""

    subject: str
    email: str
    name: str
    picture: Optional[str] = None


@dataclass(frozen=True)
class SessionContext:
    """Per-request authenticated identity, produced only by `require_session`."""

    sid: str
    user_id: str
    user: SessionUser

    def to_json(self) -> Dict[str, Any]:
        return self.user.to_json()
