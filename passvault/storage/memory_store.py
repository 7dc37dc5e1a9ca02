"""In-memory store for development (fallback when Postgres is not configured)."""

from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from passvault.core.errors import NotFound, ValidationFailed
from passvault.core.models import (
    UPDATABLE_FIELDS,
    FamilyMember,
    FamilyRole,
    PasswordEntry,
    SessionRecord,
    SessionUser,
    SharedPasswordLink,
    Strength,
    User,
    utcnow,
)


def _new_id() -> str:
    return str(uuid.uuid4())


def _list_order(entries: List[PasswordEntry]) -> List[PasswordEntry]:
    """last_used DESC NULLS LAST, created_at DESC, id DESC (same as the SQL ordering)."""
    out = sorted(entries, key=lambda e: e.id, reverse=True)
    out.sort(key=lambda e: e.created_at, reverse=True)
    out.sort(key=lambda e: (e.last_used is None, -e.last_used.timestamp() if e.last_used else 0.0))
    return out


@dataclass
class MemoryStore:
    """Compatible with PostgresStore; enforces the same uniqueness and scoping rules."""

    clock: Callable[[], datetime] = utcnow
    _users: Dict[str, User] = field(default_factory=dict, init=False, repr=False)
    _sessions: Dict[str, SessionRecord] = field(default_factory=dict, init=False, repr=False)
    _passwords: Dict[str, PasswordEntry] = field(default_factory=dict, init=False, repr=False)
    _members: Dict[str, FamilyMember] = field(default_factory=dict, init=False, repr=False)
    _links: Dict[str, SharedPasswordLink] = field(default_factory=dict, init=False, repr=False)
    _lock: threading.RLock = field(default_factory=threading.RLock, init=False, repr=False)

    # ---- users ----

    def get_user(self, user_id: str) -> Optional[User]:
        return self._users.get(user_id)

    def get_user_by_google_id(self, google_id: str) -> Optional[User]:
        with self._lock:
            return next((u for u in self._users.values() if u.google_id == google_id), None)

    def get_user_by_email(self, email: str) -> Optional[User]:
        with self._lock:
            return next((u for u in self._users.values() if u.email == email), None)

    def get_or_create_user(self, *, google_id: str, email: str, name: str, picture: Optional[str]) -> User:
        with self._lock:
            existing = self.get_user_by_google_id(google_id)
            if existing is not None:
                return existing
            if self.get_user_by_email(email) is not None:
                raise ValidationFailed("Email already belongs to another account")
            user = User(
                id=_new_id(),
                google_id=google_id,
                email=email,
                name=name,
                picture=picture,
                created_at=self.clock(),
            )
            self._users[user.id] = user
            return user

    def delete_user(self, user_id: str) -> bool:
        """Remove a user and everything it owns (mirrors ON DELETE CASCADE)."""
        with self._lock:
            if self._users.pop(user_id, None) is None:
                return False
            for sid in [s.sid for s in self._sessions.values() if s.user_id == user_id]:
                del self._sessions[sid]
            for mid in [m.id for m in self._members.values() if m.user_id == user_id]:
                del self._members[mid]
            for pid in [p.id for p in self._passwords.values() if p.user_id == user_id]:
                self._drop_password(pid)
            return True

    # ---- sessions ----

    def create_session(self, *, sid: str, user: SessionUser, expires_at: datetime) -> SessionRecord:
        record = SessionRecord(sid=sid, user_id=user.id, user=user, expires_at=expires_at)
        with self._lock:
            self._sessions[sid] = record
        return record

    def get_session(self, sid: str) -> Optional[SessionRecord]:
        with self._lock:
            record = self._sessions.get(sid)
            if record is None or record.expires_at <= self.clock():
                return None
            return record

    def delete_session(self, sid: str) -> bool:
        with self._lock:
            return self._sessions.pop(sid, None) is not None

    def purge_expired_sessions(self) -> int:
        now = self.clock()
        with self._lock:
            expired = [sid for sid, s in self._sessions.items() if s.expires_at <= now]
            for sid in expired:
                del self._sessions[sid]
            return len(expired)

    # ---- password entries ----

    def list_passwords(self, user_id: str) -> List[PasswordEntry]:
        with self._lock:
            return _list_order([p for p in self._passwords.values() if p.user_id == user_id])

    def get_password(self, entry_id: str, user_id: str) -> PasswordEntry:
        entry = self._passwords.get(entry_id)
        if entry is None or entry.user_id != user_id:
            raise NotFound("Password not found")
        return entry

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
    ) -> PasswordEntry:
        now = self.clock()
        entry = PasswordEntry(
            id=_new_id(),
            user_id=user_id,
            title=title,
            username=username,
            encoded_password=encoded_password,
            website=website,
            icon=icon,
            is_favorite=is_favorite,
            is_shared=is_shared,
            strength=strength,
            last_used=None,
            created_at=now,
            updated_at=now,
        )
        with self._lock:
            if user_id not in self._users:
                # Foreign key violation in the SQL backend.
                raise ValidationFailed("Unknown user")
            self._passwords[entry.id] = entry
        return entry

    def update_password(self, entry_id: str, user_id: str, changes: Dict[str, Any]) -> PasswordEntry:
        unknown = set(changes) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"Not updatable: {', '.join(sorted(unknown))}")
        with self._lock:
            entry = self.get_password(entry_id, user_id)
            updated = replace(entry, **changes, updated_at=self.clock())
            self._passwords[entry_id] = updated
            return updated

    def delete_password(self, entry_id: str, user_id: str) -> bool:
        with self._lock:
            self.get_password(entry_id, user_id)
            self._drop_password(entry_id)
            return True

    def _drop_password(self, entry_id: str) -> None:
        self._passwords.pop(entry_id, None)
        for lid in [link.id for link in self._links.values() if link.password_id == entry_id]:
            del self._links[lid]

    # ---- family sharing ----

    def _is_member(self, family_id: str, user_id: str) -> bool:
        return any(m.family_id == family_id and m.user_id == user_id for m in self._members.values())

    def add_family_member(self, family_id: str, user_id: str, role: FamilyRole = "member") -> FamilyMember:
        with self._lock:
            if user_id not in self._users:
                raise ValidationFailed("Unknown user")
            if self._is_member(family_id, user_id):
                raise ValidationFailed("User is already a member of this family")
            member = FamilyMember(id=_new_id(), family_id=family_id, user_id=user_id, role=role, created_at=self.clock())
            self._members[member.id] = member
            return member

    def get_family_members(self, family_id: str) -> List[FamilyMember]:
        with self._lock:
            members = [m for m in self._members.values() if m.family_id == family_id]
            members.sort(key=lambda m: (m.created_at, m.id))
            return [replace(m, user=self._users.get(m.user_id)) for m in members]

    def share_password(self, entry_id: str, user_id: str, family_id: str) -> SharedPasswordLink:
        with self._lock:
            entry = self.get_password(entry_id, user_id)
            if not self._is_member(family_id, user_id):
                raise NotFound("Password not found")
            self._passwords[entry_id] = replace(entry, is_shared=True, updated_at=self.clock())
            for link in self._links.values():
                if link.password_id == entry_id and link.family_id == family_id:
                    return link
            link = SharedPasswordLink(id=_new_id(), password_id=entry_id, family_id=family_id, created_at=self.clock())
            self._links[link.id] = link
            return link

    def get_shared_passwords(self, family_id: str, user_id: str) -> List[PasswordEntry]:
        with self._lock:
            if not self._is_member(family_id, user_id):
                raise NotFound("Family not found")
            links = [link for link in self._links.values() if link.family_id == family_id]
            links.sort(key=lambda link: link.created_at, reverse=True)
            return [self._passwords[link.password_id] for link in links if link.password_id in self._passwords]
