from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

Strength = Literal["weak", "medium", "strong"]
FamilyRole = Literal["owner", "member"]


def utcnow() -> datetime:
    """Seam for tests."""
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


@dataclass(frozen=True)
class User:
    id: str
    google_id: str
    email: str
    name: str
    picture: Optional[str]
    created_at: datetime

    def snapshot(self) -> "SessionUser":
        return SessionUser(id=self.id, email=self.email, name=self.name, picture=self.picture)


@dataclass(frozen=True)
class SessionUser:
    """Denormalized user snapshot kept in the session record."""

    id: str
    email: str
    name: str
    picture: Optional[str] = None

    def to_json(self) -> Dict[str, Any]:
        return {"id": self.id, "email": self.email, "name": self.name, "picture": self.picture}

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "SessionUser":
        picture = data.get("picture")
        return cls(
            id=str(data.get("id") or ""),
            email=str(data.get("email") or ""),
            name=str(data.get("name") or ""),
            picture=str(picture) if picture else None,
        )


@dataclass(frozen=True)
class SessionRecord:
    sid: str
    user_id: str
    user: SessionUser
    expires_at: datetime


@dataclass(frozen=True)
class PasswordEntry:
    id: str
    user_id: str
    title: str
    username: str
    encoded_password: str
    website: Optional[str]
    icon: Optional[str]
    is_favorite: bool
    is_shared: bool
    strength: Strength
    last_used: Optional[datetime]
    created_at: datetime
    updated_at: datetime

    def to_json(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "title": self.title,
            "username": self.username,
            "encodedPassword": self.encoded_password,
            "website": self.website,
            "icon": self.icon,
            "isFavorite": self.is_favorite,
            "isShared": self.is_shared,
            "strength": self.strength,
            "lastUsed": _iso(self.last_used),
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


@dataclass(frozen=True)
class FamilyMember:
    id: str
    family_id: str
    user_id: str
    role: FamilyRole
    created_at: datetime
    user: Optional[User] = None


@dataclass(frozen=True)
class SharedPasswordLink:
    id: str
    password_id: str
    family_id: str
    created_at: datetime


# ---- Request bodies ----

# Columns a client may write on a password entry (snake_case field -> column).
UPDATABLE_FIELDS = (
    "title",
    "username",
    "encoded_password",
    "website",
    "icon",
    "is_favorite",
    "is_shared",
    "strength",
    "last_used",
)

_NOT_BLANK = ("title", "username", "encoded_password")


def _not_blank(value: Optional[str]) -> Optional[str]:
    if value is None:
        return value
    if not value.strip():
        raise ValueError("must not be blank")
    return value


class GoogleSignIn(BaseModel):
    model_config = ConfigDict(extra="forbid")

    credential: str = Field(min_length=1)


class PasswordCreate(BaseModel):
    """
    New password entry.

    `encryptedPassword` is accepted as an alias of `encodedPassword` for older
    clients; the value is stored with a reversible encoding either way.
    """

    model_config = ConfigDict(extra="forbid")

    title: str = Field(max_length=200)
    username: str
    encoded_password: str = Field(
        validation_alias=AliasChoices("encodedPassword", "encryptedPassword", "encoded_password")
    )
    website: Optional[str] = None
    icon: Optional[str] = None
    is_favorite: bool = Field(default=False, validation_alias=AliasChoices("isFavorite", "is_favorite"))
    is_shared: bool = Field(default=False, validation_alias=AliasChoices("isShared", "is_shared"))
    strength: Optional[Strength] = None

    @field_validator(*_NOT_BLANK)
    @classmethod
    def _required_not_blank(cls, v: str) -> str:
        return _not_blank(v)  # type: ignore[return-value]


class PasswordUpdate(BaseModel):
    """Partial update; only keys present in the body are written."""

    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = Field(default=None, max_length=200)
    username: Optional[str] = None
    encoded_password: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("encodedPassword", "encryptedPassword", "encoded_password"),
    )
    website: Optional[str] = None
    icon: Optional[str] = None
    is_favorite: Optional[bool] = Field(default=None, validation_alias=AliasChoices("isFavorite", "is_favorite"))
    is_shared: Optional[bool] = Field(default=None, validation_alias=AliasChoices("isShared", "is_shared"))
    strength: Optional[Strength] = None
    last_used: Optional[datetime] = Field(default=None, validation_alias=AliasChoices("lastUsed", "last_used"))

    @field_validator(*_NOT_BLANK, "is_favorite", "is_shared", "strength")
    @classmethod
    def _not_null(cls, v: Any) -> Any:
        # Explicit nulls are only meaningful for the nullable columns.
        if v is None:
            raise ValueError("may not be null")
        if isinstance(v, str):
            return _not_blank(v)
        return v

    def changes(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True)
