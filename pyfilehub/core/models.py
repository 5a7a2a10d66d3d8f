"""
Domain records shared by the stores and the storage service.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass(frozen=True)
class User:
    """A registered account. ``password_hash`` never leaves the server."""

    id: int
    username: str
    email: str
    password_hash: str
    created_at: datetime

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> User:
        return cls(
            id=row["id"],
            username=row["username"],
            email=row["email"],
            password_hash=row["password_hash"],
            created_at=_as_utc(row["created_at"]),
        )

    def to_public_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class Identity:
    """The identity carried by a verified session token."""

    id: int
    username: str
    email: str


@dataclass(frozen=True)
class FileRecord:
    """
    Catalog entry for one uploaded file.

    ``stored_name`` addresses the artifact inside the owner's namespace and is
    never shown to users; ``display_name`` is what the user sees and renames.
    """

    id: int
    user_id: int
    stored_name: str
    display_name: str
    size: int
    content_type: str | None
    uploaded_at: datetime

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> FileRecord:
        return cls(
            id=row["id"],
            user_id=row["user_id"],
            stored_name=row["stored_name"],
            display_name=row["display_name"],
            size=row["size"],
            content_type=row["content_type"],
            uploaded_at=_as_utc(row["uploaded_at"]),
        )

    def to_public_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.display_name,
            "size": self.size,
            "content_type": self.content_type,
            "uploaded_at": self.uploaded_at.isoformat(),
        }


@dataclass(frozen=True)
class NewFileRecord:
    """Values for a catalog row that has not been inserted yet."""

    user_id: int
    stored_name: str
    display_name: str
    size: int
    content_type: str | None
    uploaded_at: datetime
