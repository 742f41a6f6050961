"""models.py — User, Team and Item value types plus their enumerations.

All three are frozen dataclasses: a User is rebuilt from token claims on every
request, and Items/Teams change only by producing a new value that the store
then writes. The predicates here are pure functions of their inputs.
"""
from __future__ import annotations

import datetime as dt
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, Optional

from toyapi_shared.serialization import _iso_z, _parse_iso, _utcnow

from config import ITEM_ID_PREFIX
from errors import InvalidAssignment, MalformedInput

__all__ = [
    "AccessLevel",
    "Item",
    "Role",
    "Team",
    "User",
    "item_key",
    "sort_by_updated_desc",
    "team_key",
    "user_partition",
]


class _WireEnum(str, Enum):
    @classmethod
    def parse(cls, raw: Any):
        if isinstance(raw, cls):
            return raw
        text = str(raw or "").strip().lower()
        for member in cls:
            if member.value == text:
                return member
        allowed = ", ".join(m.value for m in cls)
        raise MalformedInput(f"Invalid {cls.__name__} {raw!r}. Must be one of: {allowed}")


class Role(_WireEnum):
    USER = "user"
    TEAM_ADMIN = "team_admin"
    ADMIN = "admin"


class AccessLevel(_WireEnum):
    INDIVIDUAL = "individual"
    TEAM = "team"
    PUBLIC = "public"


# ---------------------------------------------------------------------------
# Single-table keys
# ---------------------------------------------------------------------------


def user_partition(user_id: str) -> str:
    return f"USER#{user_id}"


def item_key(user_id: str, item_id: str) -> Dict[str, str]:
    return {"PK": user_partition(user_id), "SK": f"ITEM#{item_id}"}


def team_key(team_id: str) -> Dict[str, str]:
    return {"PK": f"TEAM#{team_id}", "SK": "TEAM"}


# ---------------------------------------------------------------------------
# User
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class User:
    user_id: str
    username: str = ""
    email: str = ""
    role: Role = Role.USER
    team_ids: FrozenSet[str] = frozenset()

    def __post_init__(self):
        if not str(self.user_id or "").strip():
            raise MalformedInput("User ID is required")
        object.__setattr__(self, "role", Role.parse(self.role))
        object.__setattr__(self, "team_ids", frozenset(t for t in (self.team_ids or ()) if t))

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN

    @property
    def is_team_admin(self) -> bool:
        return self.role in (Role.TEAM_ADMIN, Role.ADMIN)

    @property
    def is_standard_user(self) -> bool:
        return self.role is Role.USER

    def is_member_of_team(self, team_id: Optional[str]) -> bool:
        return bool(team_id) and team_id in self.team_ids


# ---------------------------------------------------------------------------
# Team
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Team:
    team_id: str
    name: str
    owner_id: str
    description: str = ""
    member_ids: FrozenSet[str] = frozenset()
    admin_ids: FrozenSet[str] = frozenset()
    active: bool = True
    created_at: dt.datetime = field(default_factory=_utcnow)
    updated_at: dt.datetime = field(default_factory=_utcnow)

    def __post_init__(self):
        object.__setattr__(self, "member_ids", frozenset(self.member_ids or ()))
        object.__setattr__(self, "admin_ids", frozenset(self.admin_ids or ()))

    def is_owner(self, user_id: str) -> bool:
        return bool(self.owner_id) and self.owner_id == user_id

    def is_admin(self, user_id: str) -> bool:
        return user_id in self.admin_ids

    def is_member(self, user_id: str) -> bool:
        return user_id in self.member_ids

    def can_user_access(self, user_id: str) -> bool:
        return self.is_owner(user_id) or self.is_admin(user_id) or self.is_member(user_id)

    def can_user_manage(self, user_id: str) -> bool:
        return self.is_owner(user_id) or self.is_admin(user_id)

    def touch(self, at: Optional[dt.datetime] = None) -> "Team":
        return replace(self, updated_at=at or _utcnow())

    def to_record(self) -> Dict[str, Any]:
        return {
            **team_key(self.team_id),
            "teamId": self.team_id,
            "name": self.name,
            "description": self.description or None,
            "ownerId": self.owner_id,
            "memberIds": set(self.member_ids),
            "adminIds": set(self.admin_ids),
            "active": self.active,
            "createdAt": _iso_z(self.created_at),
            "updatedAt": _iso_z(self.updated_at),
        }

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Team":
        return cls(
            team_id=record["teamId"],
            name=record.get("name", ""),
            owner_id=record.get("ownerId", ""),
            description=record.get("description") or "",
            member_ids=frozenset(record.get("memberIds") or ()),
            admin_ids=frozenset(record.get("adminIds") or ()),
            active=bool(record.get("active", True)),
            created_at=_parse_iso(record.get("createdAt")) or _utcnow(),
            updated_at=_parse_iso(record.get("updatedAt")) or _utcnow(),
        )


# ---------------------------------------------------------------------------
# Item
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Item:
    id: str
    message: str
    user_id: str
    access_level: AccessLevel = AccessLevel.INDIVIDUAL
    team_id: Optional[str] = None
    created_by: Optional[str] = None
    created_at: dt.datetime = field(default_factory=_utcnow)
    updated_at: dt.datetime = field(default_factory=_utcnow)

    def __post_init__(self):
        if not str(self.user_id or "").strip():
            raise MalformedInput("Item owner (userId) is required")
        object.__setattr__(self, "access_level", AccessLevel.parse(self.access_level))
        object.__setattr__(self, "team_id", self.team_id or None)
        if self.created_by is None:
            object.__setattr__(self, "created_by", self.user_id)
        if self.access_level is AccessLevel.TEAM and not self.team_id:
            raise InvalidAssignment("accessLevel 'team' requires a teamId")
        if self.team_id and self.access_level is not AccessLevel.TEAM:
            raise InvalidAssignment(
                f"teamId is only allowed with accessLevel 'team', got '{self.access_level.value}'"
            )

    @classmethod
    def new(
        cls,
        *,
        message: str,
        user_id: str,
        access_level: AccessLevel = AccessLevel.INDIVIDUAL,
        team_id: Optional[str] = None,
        at: Optional[dt.datetime] = None,
    ) -> "Item":
        now = at or _utcnow()
        return cls(
            id=f"{ITEM_ID_PREFIX}{uuid.uuid4()}",
            message=message,
            user_id=user_id,
            access_level=access_level,
            team_id=team_id,
            created_by=user_id,
            created_at=now,
            updated_at=now,
        )

    @property
    def is_team_item(self) -> bool:
        return self.team_id is not None and self.access_level is AccessLevel.TEAM

    @property
    def is_individual_item(self) -> bool:
        return self.access_level is AccessLevel.INDIVIDUAL

    @property
    def is_public_item(self) -> bool:
        return self.access_level is AccessLevel.PUBLIC

    def with_message(self, message: str, at: Optional[dt.datetime] = None) -> "Item":
        return replace(self, message=message, updated_at=at or _utcnow())

    def touch(self, at: Optional[dt.datetime] = None) -> "Item":
        return replace(self, updated_at=at or _utcnow())

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "id": self.id,
            "message": self.message,
            "userId": self.user_id,
            "accessLevel": self.access_level.value,
            "createdBy": self.created_by,
            "createdAt": _iso_z(self.created_at),
            "updatedAt": _iso_z(self.updated_at),
        }
        if self.team_id:
            out["teamId"] = self.team_id
        return out

    def to_record(self) -> Dict[str, Any]:
        return {**item_key(self.user_id, self.id), **self.to_dict()}

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "Item":
        """Build an Item from a stored record; ValueError when the record is corrupt."""
        try:
            return cls._from_valid_record(record)
        except (InvalidAssignment, MalformedInput) as exc:
            raise ValueError(
                f"Corrupt item record {record.get('PK')}/{record.get('SK')}: {exc.message}"
            ) from exc

    @classmethod
    def _from_valid_record(cls, record: Dict[str, Any]) -> "Item":
        item_id = record.get("id") or str(record.get("SK", "")).split("#", 1)[-1]
        team_id = record.get("teamId") or None
        raw_level = record.get("accessLevel")
        if raw_level:
            level = AccessLevel.parse(raw_level)
        else:
            # Records written before access levels existed.
            level = AccessLevel.TEAM if team_id else AccessLevel.INDIVIDUAL
        created_at = _parse_iso(record.get("createdAt")) or _utcnow()
        return cls(
            id=item_id,
            message=record.get("message", ""),
            user_id=record["userId"],
            access_level=level,
            team_id=team_id,
            created_by=record.get("createdBy") or record["userId"],
            created_at=created_at,
            updated_at=_parse_iso(record.get("updatedAt")) or created_at,
        )


def sort_by_updated_desc(items: Iterable[Item]) -> list:
    return sorted(items, key=lambda i: (i.updated_at, i.id), reverse=True)
