"""PostgreSQL-backed store (psycopg 3, one connection per operation)."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterator, List, Optional

from passvault.core.errors import InternalFailure, NotFound, ValidationFailed
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
)

logger = logging.getLogger(__name__)

_USER_COLUMNS = "id, google_id, email, name, picture, created_at"
_PASSWORD_COLUMNS = (
    "id, user_id, title, username, encoded_password, website, icon, "
    "is_favorite, is_shared, strength, last_used, created_at, updated_at"
)


def _row_to_user(row) -> User:  # type: ignore[no-untyped-def]
    user_id, google_id, email, name, picture, created_at = row
    return User(
        id=str(user_id),
        google_id=str(google_id),
        email=str(email),
        name=str(name),
        picture=picture,
        created_at=created_at,
    )


def _row_to_entry(row) -> PasswordEntry:  # type: ignore[no-untyped-def]
    (
        entry_id,
        user_id,
        title,
        username,
        encoded_password,
        website,
        icon,
        is_favorite,
        is_shared,
        strength,
        last_used,
        created_at,
        updated_at,
    ) = row
    return PasswordEntry(
        id=str(entry_id),
        user_id=str(user_id),
        title=title,
        username=username,
        encoded_password=encoded_password,
        website=website,
        icon=icon,
        is_favorite=bool(is_favorite),
        is_shared=bool(is_shared),
        strength=strength,
        last_used=last_used,
        created_at=created_at,
        updated_at=updated_at,
    )


def _row_to_session(row) -> SessionRecord:  # type: ignore[no-untyped-def]
    sid, user_id, data, expires_at = row
    return SessionRecord(
        sid=str(sid),
        user_id=str(user_id),
        user=SessionUser.from_json(data if isinstance(data, dict) else {}),
        expires_at=expires_at,
    )


def _connect(dsn: str):
    import psycopg

    return psycopg.connect(dsn)


@dataclass
class PostgresStore:
    dsn: str

    @contextmanager
    def _conn(self) -> Iterator[Any]:
        """Open a connection; commit on success, and surface driver errors as InternalFailure."""
        import psycopg

        try:
            with _connect(self.dsn) as conn:
                yield conn
        except psycopg.Error as e:
            logger.exception("Postgres operation failed")
            raise InternalFailure("Storage unavailable") from e

    # ---- users ----

    def get_user(self, user_id: str) -> Optional[User]:
        with self._conn() as conn:
            row = conn.execute(f"SELECT {_USER_COLUMNS} FROM users WHERE id = %s", (user_id,)).fetchone()
        return _row_to_user(row) if row else None

    def get_user_by_google_id(self, google_id: str) -> Optional[User]:
        with self._conn() as conn:
            row = conn.execute(f"SELECT {_USER_COLUMNS} FROM users WHERE google_id = %s", (google_id,)).fetchone()
        return _row_to_user(row) if row else None

    def get_user_by_email(self, email: str) -> Optional[User]:
        with self._conn() as conn:
            row = conn.execute(f"SELECT {_USER_COLUMNS} FROM users WHERE email = %s", (email,)).fetchone()
        return _row_to_user(row) if row else None

    def get_or_create_user(self, *, google_id: str, email: str, name: str, picture: Optional[str]) -> User:
        # The no-op DO UPDATE makes RETURNING yield the existing row, so concurrent
        # first sign-ins for one google_id converge on the same user.
        import psycopg

        with self._conn() as conn:
            try:
                row = conn.execute(
                    f"""
                    INSERT INTO users (google_id, email, name, picture)
                    VALUES (%s, %s, %s, %s)
                    ON CONFLICT (google_id) DO UPDATE SET google_id = EXCLUDED.google_id
                    RETURNING {_USER_COLUMNS}
                    """,
                    (google_id, email, name, picture),
                ).fetchone()
            except psycopg.errors.UniqueViolation as e:
                # google_id is new but the email belongs to another account.
                raise ValidationFailed("Email already belongs to another account") from e
        if not row:
            raise InternalFailure("Failed to create user")
        return _row_to_user(row)

    # ---- sessions ----

    def create_session(self, *, sid: str, user: SessionUser, expires_at: datetime) -> SessionRecord:
        from psycopg.types.json import Jsonb

        with self._conn() as conn:
            conn.execute(
                "INSERT INTO sessions (sid, user_id, data, expires_at) VALUES (%s, %s, %s, %s)",
                (sid, user.id, Jsonb(user.to_json()), expires_at),
            )
        return SessionRecord(sid=sid, user_id=user.id, user=user, expires_at=expires_at)

    def get_session(self, sid: str) -> Optional[SessionRecord]:
        with self._conn() as conn:
            row = conn.execute(
                "SELECT sid, user_id, data, expires_at FROM sessions WHERE sid = %s AND expires_at > now()",
                (sid,),
            ).fetchone()
        return _row_to_session(row) if row else None

    def delete_session(self, sid: str) -> bool:
        with self._conn() as conn:
            cur = conn.execute("DELETE FROM sessions WHERE sid = %s", (sid,))
            return (cur.rowcount or 0) > 0

    def purge_expired_sessions(self) -> int:
        with self._conn() as conn:
            cur = conn.execute("DELETE FROM sessions WHERE expires_at <= now()")
            return cur.rowcount or 0

    # ---- password entries ----

    def list_passwords(self, user_id: str) -> List[PasswordEntry]:
        with self._conn() as conn:
            rows = conn.execute(
                f"""
                SELECT {_PASSWORD_COLUMNS}
                FROM passwords
                WHERE user_id = %s
                ORDER BY last_used DESC NULLS LAST, created_at DESC, id DESC
                """,
                (user_id,),
            ).fetchall()
        return [_row_to_entry(r) for r in rows]

    def get_password(self, entry_id: str, user_id: str) -> PasswordEntry:
        with self._conn() as conn:
            row = conn.execute(
                f"SELECT {_PASSWORD_COLUMNS} FROM passwords WHERE id = %s AND user_id = %s",
                (entry_id, user_id),
            ).fetchone()
        if not row:
            raise NotFound("Password not found")
        return _row_to_entry(row)

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
        import psycopg

        with self._conn() as conn:
            try:
                row = conn.execute(
                    f"""
                    INSERT INTO passwords
                      (user_id, title, username, encoded_password, website, icon, is_favorite, is_shared, strength)
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
                    RETURNING {_PASSWORD_COLUMNS}
                    """,
                    (user_id, title, username, encoded_password, website, icon, is_favorite, is_shared, strength),
                ).fetchone()
            except psycopg.errors.ForeignKeyViolation as e:
                raise ValidationFailed("Unknown user") from e
        if not row:
            raise InternalFailure("Failed to create password")
        return _row_to_entry(row)

    def update_password(self, entry_id: str, user_id: str, changes: Dict[str, Any]) -> PasswordEntry:
        unknown = set(changes) - set(UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"Not updatable: {', '.join(sorted(unknown))}")

        # Column names come from the fixed UPDATABLE_FIELDS allowlist; values are bound.
        cols = [c for c in UPDATABLE_FIELDS if c in changes]
        assignments = [f"{c} = %s" for c in cols] + ["updated_at = now()"]
        params: List[Any] = [changes[c] for c in cols] + [entry_id, user_id]

        with self._conn() as conn:
            row = conn.execute(
                f"""
                UPDATE passwords
                SET {", ".join(assignments)}
                WHERE id = %s AND user_id = %s
                RETURNING {_PASSWORD_COLUMNS}
                """,
                tuple(params),
            ).fetchone()
        if not row:
            raise NotFound("Password not found")
        return _row_to_entry(row)

    def delete_password(self, entry_id: str, user_id: str) -> bool:
        with self._conn() as conn:
            cur = conn.execute("DELETE FROM passwords WHERE id = %s AND user_id = %s", (entry_id, user_id))
            deleted = (cur.rowcount or 0) > 0
        if not deleted:
            raise NotFound("Password not found")
        return True

    # ---- family sharing ----

    def add_family_member(self, family_id: str, user_id: str, role: FamilyRole = "member") -> FamilyMember:
        import psycopg

        with self._conn() as conn:
            try:
                row = conn.execute(
                    """
                    INSERT INTO family_members (family_id, user_id, role)
                    VALUES (%s, %s, %s)
                    RETURNING id, family_id, user_id, role, created_at
                    """,
                    (family_id, user_id, role),
                ).fetchone()
            except psycopg.errors.UniqueViolation as e:
                raise ValidationFailed("User is already a member of this family") from e
            except psycopg.errors.ForeignKeyViolation as e:
                raise ValidationFailed("Unknown user") from e
        if not row:
            raise InternalFailure("Failed to add family member")
        member_id, fam, uid, member_role, created_at = row
        return FamilyMember(
            id=str(member_id), family_id=str(fam), user_id=str(uid), role=member_role, created_at=created_at
        )

    def get_family_members(self, family_id: str) -> List[FamilyMember]:
        with self._conn() as conn:
            rows = conn.execute(
                """
                SELECT fm.id, fm.family_id, fm.user_id, fm.role, fm.created_at,
                       u.id, u.google_id, u.email, u.name, u.picture, u.created_at
                FROM family_members fm
                JOIN users u ON u.id = fm.user_id
                WHERE fm.family_id = %s
                ORDER BY fm.created_at, fm.id
                """,
                (family_id,),
            ).fetchall()
        out: List[FamilyMember] = []
        for r in rows:
            member_id, fam, uid, role, created_at = r[:5]
            out.append(
                FamilyMember(
                    id=str(member_id),
                    family_id=str(fam),
                    user_id=str(uid),
                    role=role,
                    created_at=created_at,
                    user=_row_to_user(r[5:]),
                )
            )
        return out

    def share_password(self, entry_id: str, user_id: str, family_id: str) -> SharedPasswordLink:
        with self._conn() as conn:
            with conn.transaction():
                # Owner must hold the entry and belong to the family; otherwise behave as not found.
                owned = conn.execute(
                    """
                    UPDATE passwords SET is_shared = true, updated_at = now()
                    WHERE id = %s AND user_id = %s
                      AND EXISTS (SELECT 1 FROM family_members WHERE family_id = %s AND user_id = %s)
                    RETURNING id
                    """,
                    (entry_id, user_id, family_id, user_id),
                ).fetchone()
                if not owned:
                    raise NotFound("Password not found")
                row = conn.execute(
                    """
                    INSERT INTO shared_passwords (password_id, family_id)
                    VALUES (%s, %s)
                    ON CONFLICT (password_id, family_id) DO UPDATE SET family_id = EXCLUDED.family_id
                    RETURNING id, password_id, family_id, created_at
                    """,
                    (entry_id, family_id),
                ).fetchone()
        link_id, password_id, fam, created_at = row
        return SharedPasswordLink(id=str(link_id), password_id=str(password_id), family_id=str(fam), created_at=created_at)

    def get_shared_passwords(self, family_id: str, user_id: str) -> List[PasswordEntry]:
        cols = ", ".join(f"p.{c.strip()}" for c in _PASSWORD_COLUMNS.split(","))
        with self._conn() as conn:
            member = conn.execute(
                "SELECT 1 FROM family_members WHERE family_id = %s AND user_id = %s",
                (family_id, user_id),
            ).fetchone()
            if not member:
                raise NotFound("Family not found")
            rows = conn.execute(
                f"""
                SELECT {cols}
                FROM passwords p
                JOIN shared_passwords sp ON sp.password_id = p.id
                WHERE sp.family_id = %s
                ORDER BY sp.created_at DESC, p.id
                """,
                (family_id,),
            ).fetchall()
        return [_row_to_entry(r) for r in rows]
