from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, List, Optional, Tuple

import pytest

from passvault.core.errors import InternalFailure, NotFound, ValidationFailed
from passvault.storage.postgres_store import PostgresStore

TS = datetime(2025, 1, 1, tzinfo=timezone.utc)


def _entry_row(entry_id: str = "p1", user_id: str = "u1", **overrides: Any) -> Tuple[Any, ...]:
    row = {
        "id": entry_id,
        "user_id": user_id,
        "title": "Gmail",
        "username": "a@b.com",
        "encoded_password": "eA==",
        "website": None,
        "icon": None,
        "is_favorite": False,
        "is_shared": False,
        "strength": "weak",
        "last_used": None,
        "created_at": TS,
        "updated_at": TS,
    }
    row.update(overrides)
    return tuple(row.values())


class _Cursor:
    def __init__(self, rows: List[Tuple[Any, ...]], rowcount: int) -> None:
        self._rows = rows
        self.rowcount = rowcount

    def fetchone(self):  # type: ignore[no-untyped-def]
        return self._rows[0] if self._rows else None

    def fetchall(self):  # type: ignore[no-untyped-def]
        return list(self._rows)


class _Conn:
    """Records statements; returns queued (rows, rowcount) results in order, raising queued exceptions."""

    def __init__(self, results: Optional[List[Any]] = None) -> None:
        self.calls: List[Tuple[str, Any]] = []
        self._results = list(results or [])

    def execute(self, sql: str, params=None):  # type: ignore[no-untyped-def]
        self.calls.append((" ".join(sql.split()), params))
        result = self._results.pop(0) if self._results else ([], 0)
        if isinstance(result, Exception):
            raise result
        rows, rowcount = result
        return _Cursor(rows, rowcount)

    @contextmanager
    def transaction(self):  # type: ignore[no-untyped-def]
        yield self

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):  # type: ignore[no-untyped-def]
        return False


def _store(monkeypatch, conn: _Conn) -> PostgresStore:
    monkeypatch.setattr("passvault.storage.postgres_store._connect", lambda _dsn: conn)
    return PostgresStore(dsn="dsn")


def test_get_password_filters_on_entry_and_owner(monkeypatch) -> None:
    conn = _Conn([([_entry_row()], 1)])
    entry = _store(monkeypatch, conn).get_password("p1", "u1")
    assert entry.id == "p1" and entry.user_id == "u1"
    sql, params = conn.calls[0]
    assert "WHERE id = %s AND user_id = %s" in sql
    assert params == ("p1", "u1")


def test_get_password_not_found_when_no_row(monkeypatch) -> None:
    conn = _Conn([([], 0)])
    with pytest.raises(NotFound):
        _store(monkeypatch, conn).get_password("p1", "someone-else")


def test_list_passwords_scoped_and_ordered(monkeypatch) -> None:
    conn = _Conn([([_entry_row("p1"), _entry_row("p2")], 2)])
    entries = _store(monkeypatch, conn).list_passwords("u1")
    assert [e.id for e in entries] == ["p1", "p2"]
    sql, params = conn.calls[0]
    assert "WHERE user_id = %s" in sql
    assert "ORDER BY last_used DESC NULLS LAST, created_at DESC, id DESC" in sql
    assert params == ("u1",)


def test_partial_update_sets_only_provided_columns(monkeypatch) -> None:
    conn = _Conn([([_entry_row(is_favorite=True)], 1)])
    entry = _store(monkeypatch, conn).update_password("p1", "u1", {"is_favorite": True})
    assert entry.is_favorite is True
    sql, params = conn.calls[0]
    assert "SET is_favorite = %s, updated_at = now()" in sql
    assert "title" not in sql.split("RETURNING")[0]
    assert "WHERE id = %s AND user_id = %s" in sql
    assert params == (True, "p1", "u1")


def test_update_foreign_entry_is_not_found(monkeypatch) -> None:
    conn = _Conn([([], 0)])
    with pytest.raises(NotFound):
        _store(monkeypatch, conn).update_password("p1", "u2", {"title": "x"})


def test_update_rejects_unknown_columns_without_touching_db(monkeypatch) -> None:
    conn = _Conn()
    with pytest.raises(ValueError):
        _store(monkeypatch, conn).update_password("p1", "u1", {"user_id": "u2"})
    assert conn.calls == []


def test_delete_password(monkeypatch) -> None:
    conn = _Conn([([], 1)])
    assert _store(monkeypatch, conn).delete_password("p1", "u1") is True
    assert conn.calls[0] == ("DELETE FROM passwords WHERE id = %s AND user_id = %s", ("p1", "u1"))

    conn = _Conn([([], 0)])
    with pytest.raises(NotFound):
        _store(monkeypatch, conn).delete_password("p1", "u2")


def test_get_or_create_user_is_single_upsert(monkeypatch) -> None:
    conn = _Conn([([("u1", "g-1", "a@b.com", "A", None, TS)], 1)])
    user = _store(monkeypatch, conn).get_or_create_user(google_id="g-1", email="a@b.com", name="A", picture=None)
    assert user.id == "u1"
    assert len(conn.calls) == 1
    sql, params = conn.calls[0]
    assert "ON CONFLICT (google_id)" in sql
    assert params == ("g-1", "a@b.com", "A", None)


def test_session_lookup_excludes_expired_rows(monkeypatch) -> None:
    data = {"id": "u1", "email": "a@b.com", "name": "A", "picture": None}
    conn = _Conn([([("sid-1", "u1", data, TS)], 1)])
    record = _store(monkeypatch, conn).get_session("sid-1")
    assert record is not None
    assert record.user_id == "u1"
    assert record.user.email == "a@b.com"
    assert "expires_at > now()" in conn.calls[0][0]


def test_driver_errors_surface_as_internal_failure(monkeypatch) -> None:
    import psycopg

    def _boom(_dsn):  # type: ignore[no-untyped-def]
        raise psycopg.OperationalError("connection refused")

    monkeypatch.setattr("passvault.storage.postgres_store._connect", _boom)
    with pytest.raises(InternalFailure):
        PostgresStore(dsn="dsn").list_passwords("u1")


def test_share_requires_ownership_and_membership(monkeypatch) -> None:
    conn = _Conn([([], 0)])
    with pytest.raises(NotFound):
        _store(monkeypatch, conn).share_password("p1", "u2", "fam")
    sql, params = conn.calls[0]
    assert "WHERE id = %s AND user_id = %s" in sql
    assert "family_members" in sql
    assert params == ("p1", "u2", "fam", "u2")
    assert len(conn.calls) == 1


@pytest.mark.parametrize(
    "error,message",
    [
        ("UniqueViolation", "User is already a member of this family"),
        ("ForeignKeyViolation", "Unknown user"),
    ],
)
def test_add_family_member_constraint_errors_are_validation_failures(monkeypatch, error: str, message: str) -> None:
    import psycopg

    conn = _Conn([getattr(psycopg.errors, error)("constraint violated")])
    with pytest.raises(ValidationFailed) as exc:
        _store(monkeypatch, conn).add_family_member("fam", "u1")
    assert exc.value.message == message


def test_create_password_for_unknown_user_is_validation_failure(monkeypatch) -> None:
    import psycopg

    conn = _Conn([psycopg.errors.ForeignKeyViolation("no such user")])
    with pytest.raises(ValidationFailed):
        _store(monkeypatch, conn).create_password(
            "ghost", title="Gmail", username="a@b.com", encoded_password="eA==", strength="weak"
        )
