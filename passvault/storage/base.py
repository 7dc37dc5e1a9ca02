from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, Protocol

from passvault.core.models import (
    FamilyMember,
    FamilyRole,
    PasswordEntry,
    SessionRecord,
    SessionUser,
    SharedPasswordLink,
    Strength,
    User,
)


class VaultStore(Protocol):
    """
    Storage interface.

    Every password operation takes the owning user id as a mandatory argument and
    filters on it; an entry owned by another user raises NotFound exactly like a
    missing id.
    """

    # ---- users ----
    def get_user(self, user_id: str) -> Optional[User]: ...

    def get_user_by_google_id(self, google_id: str) -> Optional[User]: ...

    def get_user_by_email(self, email: str) -> Optional[User]: ...

    def get_or_create_user(self, *, google_id: str, email: str, name: str, picture: Optional[str]) -> User:
        """Idempotent on google_id, including under concurrent first sign-ins."""

    # ---- sessions ----
    def create_session(self, *, sid: str, user: SessionUser, expires_at: datetime) -> SessionRecord: ...

    def get_session(self, sid: str) -> Optional[SessionRecord]:
        """Return the session if it exists and has not expired."""

    def delete_session(self, sid: str) -> bool: ...

    def purge_expired_sessions(self) -> int: ...

    # ---- password entries ----
    def list_passwords(self, user_id: str) -> List[PasswordEntry]:
        """Most recently used first (never-used last), then most recently created."""

    def get_password(self, entry_id: str, user_id: str) -> PasswordEntry: ...

    def create_password(
        self,
        user_id: str,
        *,
        title: str,
        username: str,
        encoded_password: str,
        strength: Strength,
        website: Optional[str] = None,
        icon: Optional[str] = None,
        is_favorite: bool = False,
        is_shared: bool = False,
    ) -> PasswordEntry: ...

    def update_password(self, entry_id: str, user_id: str, changes: Dict[str, Any]) -> PasswordEntry: ...

    def delete_password(self, entry_id: str, user_id: str) -> bool: ...

    # ---- family sharing ----
    def add_family_member(self, family_id: str, user_id: str, role: FamilyRole = "member") -> FamilyMember: ...

    def get_family_members(self, family_id: str) -> List[FamilyMember]: ...

    def share_password(self, entry_id: str, user_id: str, family_id: str) -> SharedPasswordLink:
        """Share an entry the user owns with a family the user belongs to."""

    def get_shared_passwords(self, family_id: str, user_id: str) -> List[PasswordEntry]:
        """Entries shared with the family; the user must be a member."""
