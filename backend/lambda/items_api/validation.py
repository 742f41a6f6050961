"""validation.py — Request body validation for item create/update.

Runs before any storage call; every failure is a MalformedInput or
InvalidAssignment with no side effects.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from config import MAX_MESSAGE_LENGTH
from errors import InvalidAssignment, MalformedInput
from models import AccessLevel

__all__ = [
    "CreateItemRequest",
    "UpdateItemRequest",
    "parse_create_request",
    "parse_update_request",
    "validate_message",
]


@dataclass(frozen=True)
class CreateItemRequest:
    message: str
    access_level: AccessLevel
    team_id: Optional[str] = None


@dataclass(frozen=True)
class UpdateItemRequest:
    message: str


def validate_message(raw: Any) -> str:
    if raw is None or not isinstance(raw, str) or not raw.strip():
        raise MalformedInput("Message is required and cannot be empty", field="message")
    message = raw.strip()
    if len(message) > MAX_MESSAGE_LENGTH:
        raise MalformedInput(
            f"Message cannot exceed {MAX_MESSAGE_LENGTH} characters",
            field="message",
        )
    return message


def _optional_str(body: Dict[str, Any], key: str) -> Optional[str]:
    raw = body.get(key)
    if raw is None:
        return None
    if not isinstance(raw, str):
        raise MalformedInput(f"{key} must be a string", field=key)
    return raw.strip() or None


def parse_create_request(body: Dict[str, Any]) -> CreateItemRequest:
    """Validate a create-item body.

    A ``teamId`` without an ``accessLevel`` means a TEAM item; no team and no
    level means INDIVIDUAL. TEAM needs a ``teamId`` and a ``teamId`` needs TEAM.
    """
    message = validate_message(body.get("message"))
    team_id = _optional_str(body, "teamId")
    raw_level = _optional_str(body, "accessLevel")

    if raw_level is None:
        level = AccessLevel.TEAM if team_id else AccessLevel.INDIVIDUAL
    else:
        level = AccessLevel.parse(raw_level)

    if level is AccessLevel.TEAM and not team_id:
        raise InvalidAssignment("accessLevel 'team' requires a teamId", field="teamId")
    if team_id and level is not AccessLevel.TEAM:
        raise InvalidAssignment(
            f"teamId is only allowed with accessLevel 'team', got '{level.value}'",
            field="accessLevel",
        )
    return CreateItemRequest(message=message, access_level=level, team_id=team_id)


def parse_update_request(body: Dict[str, Any]) -> UpdateItemRequest:
    return UpdateItemRequest(message=validate_message(body.get("message")))
