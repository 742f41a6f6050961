"""authorization.py — Item and team access decisions, principal construction.

Every decision here is a pure boolean over already-fetched values. Callers turn
``False`` into a Forbidden response; nothing in this module raises for "no access".
"""
from __future__ import annotations

import logging
from typing import Iterable, Optional

from models import Item, Role, Team, User

__all__ = ["AuthorizationService"]

logger = logging.getLogger(__name__)


class AuthorizationService:
    """Decides what a User may do with an Item or a Team."""

    def create_user_from_jwt(
        self,
        user_id: str,
        username: str,
        email: str,
        role: Optional[Role] = None,
        team_ids: Optional[Iterable[str]] = None,
    ) -> User:
        """Build the request principal from validated token claims.

        The base claims carry no role or team membership; without an explicit
        ``role``/``team_ids`` the user is a standard USER with no teams.
        """
        user = User(
            user_id=user_id,
            username=username or "",
            email=email or "",
            role=role or Role.USER,
            team_ids=frozenset(team_ids or ()),
        )
        logger.debug(
            "Created user from JWT: userId=%s, username=%s, role=%s, teams=%s",
            user.user_id,
            user.username,
            user.role.value,
            sorted(user.team_ids),
        )
        return user

    def can_user_access_item(self, user: Optional[User], item: Optional[Item]) -> bool:
        if user is None or item is None:
            return False
        reason = self._access_reason(user, item)
        allowed = reason != "access_denied"
        logger.debug(
            "Access check: userId=%s, itemId=%s, canAccess=%s, reason=%s",
            user.user_id,
            item.id,
            allowed,
            reason,
        )
        return allowed

    def can_user_modify_item(
        self,
        user: Optional[User],
        item: Optional[Item],
        team: Optional[Team] = None,
    ) -> bool:
        """Modify (update/delete) check.

        ``team`` is the Team record for ``item.team_id`` when the caller has it;
        its owner/admin sets grant team-admin standing in addition to the
        TEAM_ADMIN role. PUBLIC never grants modify rights to non-owners.
        """
        if user is None or item is None:
            return False
        reason = self._modify_reason(user, item, team)
        allowed = reason != "modify_denied"
        logger.debug(
            "Modify check: userId=%s, itemId=%s, canModify=%s, reason=%s",
            user.user_id,
            item.id,
            allowed,
            reason,
        )
        return allowed

    def can_user_access_team(self, user: Optional[User], team_id: Optional[str]) -> bool:
        if user is None or not team_id:
            return False
        if user.is_admin:
            return True
        return user.is_member_of_team(team_id)

    def is_valid_team_assignment(self, user: Optional[User], team_id: Optional[str]) -> bool:
        """Whether ``user`` may create an item under ``team_id``.

        No team (an individual or public item) is always a valid assignment.
        """
        if not team_id:
            return user is not None
        return self.can_user_access_team(user, team_id)

    def has_team_admin_standing(self, user: User, team_id: Optional[str], team: Optional[Team] = None) -> bool:
        if not user.is_member_of_team(team_id):
            return False
        if user.role is Role.TEAM_ADMIN:
            return True
        return team is not None and team.team_id == team_id and team.can_user_manage(user.user_id)

    # -- reasons (also used for debug logging) ------------------------------

    def _access_reason(self, user: User, item: Item) -> str:
        if user.is_admin:
            return "admin_access"
        if item.user_id == user.user_id:
            return "owner_access"
        if item.is_team_item and user.is_member_of_team(item.team_id):
            return "team_member_access"
        if item.is_public_item:
            return "public_access"
        return "access_denied"

    def _modify_reason(self, user: User, item: Item, team: Optional[Team]) -> str:
        if user.is_admin:
            return "admin_modify"
        if item.user_id == user.user_id:
            return "owner_modify"
        if item.is_team_item and self.has_team_admin_standing(user, item.team_id, team):
            return "team_admin_modify"
        return "modify_denied"
