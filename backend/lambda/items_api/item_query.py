"""item_query.py — Which items a user can enumerate, and single-item resolution.

The store is keyed by owner, so an item id alone does not locate a record.
Resolution walks an ordered chain of lookup strategies, widening scope only as
far as the caller's privilege allows:

    own partition -> team scope -> (admin only) full scan

The first strategy that finds the item wins. Whatever strategy found it, the
access/modify predicate is evaluated afterwards against the caller's current
team membership.
"""
from __future__ import annotations

import abc
import logging
from typing import Dict, Iterable, List, Optional, Sequence

from authorization import AuthorizationService
from config import ITEMS_PUBLIC_LOOKUP
from errors import Forbidden, NotFound
from item_store import ItemStore
from models import AccessLevel, Item, Role, Team, User, sort_by_updated_desc

__all__ = [
    "AdminScanLookup",
    "ItemLookupStrategy",
    "ItemQueryResolver",
    "OwnPartitionLookup",
    "PublicScopeLookup",
    "TeamScopeLookup",
    "default_lookup_chain",
]

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Lookup strategies
# ---------------------------------------------------------------------------


class ItemLookupStrategy(abc.ABC):
    name = "lookup"

    def applies_to(self, user: User) -> bool:
        return True

    @abc.abstractmethod
    def find(self, store: ItemStore, user: User, item_id: str) -> Optional[Item]:
        ...


class OwnPartitionLookup(ItemLookupStrategy):
    name = "own_partition"

    def find(self, store: ItemStore, user: User, item_id: str) -> Optional[Item]:
        return store.get_owned_item(user.user_id, item_id)


class TeamScopeLookup(ItemLookupStrategy):
    """TEAM items with this id whose team is one of the caller's teams."""

    name = "team_scope"

    def applies_to(self, user: User) -> bool:
        return bool(user.team_ids)

    def find(self, store: ItemStore, user: User, item_id: str) -> Optional[Item]:
        for item in store.find_items_by_id(item_id, AccessLevel.TEAM):
            if item.team_id in user.team_ids:
                return item
        return None


class AdminScanLookup(ItemLookupStrategy):
    name = "admin_scan"

    def applies_to(self, user: User) -> bool:
        return user.is_admin

    def find(self, store: ItemStore, user: User, item_id: str) -> Optional[Item]:
        matches = store.find_items_by_id(item_id)
        return matches[0] if matches else None


class PublicScopeLookup(ItemLookupStrategy):
    name = "public_scope"

    def find(self, store: ItemStore, user: User, item_id: str) -> Optional[Item]:
        matches = store.find_items_by_id(item_id, AccessLevel.PUBLIC)
        return matches[0] if matches else None


def default_lookup_chain(include_public: bool = ITEMS_PUBLIC_LOOKUP) -> List[ItemLookupStrategy]:
    chain: List[ItemLookupStrategy] = [OwnPartitionLookup(), TeamScopeLookup()]
    if include_public:
        chain.append(PublicScopeLookup())
    chain.append(AdminScanLookup())
    return chain


# ---------------------------------------------------------------------------
# Resolver
# ---------------------------------------------------------------------------


class ItemQueryResolver:
    def __init__(
        self,
        store: ItemStore,
        authorization: Optional[AuthorizationService] = None,
        strategies: Optional[Sequence[ItemLookupStrategy]] = None,
        include_public: bool = ITEMS_PUBLIC_LOOKUP,
    ):
        self.store = store
        self.authorization = authorization or AuthorizationService()
        self.include_public = include_public
        self.strategies = list(strategies) if strategies is not None else default_lookup_chain(include_public)

    def list_accessible_items(self, user: User, limit: Optional[int] = None) -> List[Item]:
        """Every item ``user`` may read, most recently updated first."""
        if user.is_admin:
            candidates: Iterable[Item] = self.store.scan_items()
        else:
            candidates = self._owned_and_team_items(user)

        visible = [i for i in candidates if self.authorization.can_user_access_item(user, i)]
        result = sort_by_updated_desc(visible)
        if limit is not None:
            result = result[:limit]
        logger.info("Listed %d accessible items for user %s", len(result), user.user_id)
        return result

    def _owned_and_team_items(self, user: User) -> List[Item]:
        by_id: Dict[str, Item] = {}
        for item in self.store.list_owned_items(user.user_id):
            by_id[item.id] = item
        for team_id in sorted(user.team_ids):
            for item in self.store.list_team_items(team_id):
                by_id.setdefault(item.id, item)
        if self.include_public:
            for item in self.store.scan_items(AccessLevel.PUBLIC):
                by_id.setdefault(item.id, item)
        return list(by_id.values())

    def resolve_item(self, user: User, item_id: str) -> Optional[Item]:
        """Locate ``item_id`` through the strategy chain, without a permission check."""
        for strategy in self.strategies:
            if not strategy.applies_to(user):
                continue
            item = strategy.find(self.store, user, item_id)
            if item is not None:
                logger.debug("Resolved item %s via %s for user %s", item_id, strategy.name, user.user_id)
                return item
        return None

    def get_readable_item(self, user: User, item_id: str) -> Item:
        item = self.resolve_item(user, item_id)
        if item is None:
            raise NotFound("Item not found", itemId=item_id)
        if not self.authorization.can_user_access_item(user, item):
            raise Forbidden("You do not have access to this item", itemId=item_id)
        return item

    def get_modifiable_item(self, user: User, item_id: str) -> Item:
        item = self.resolve_item(user, item_id)
        if item is None:
            raise NotFound("Item not found", itemId=item_id)
        team = self._team_for_modify_check(user, item)
        if not self.authorization.can_user_modify_item(user, item, team):
            raise Forbidden("You do not have permission to modify this item", itemId=item_id)
        return item

    def _team_for_modify_check(self, user: User, item: Item) -> Optional[Team]:
        # Only a non-owner team member without the TEAM_ADMIN role needs the team record.
        if user.is_admin or item.user_id == user.user_id or user.role is Role.TEAM_ADMIN:
            return None
        if not item.is_team_item or not user.is_member_of_team(item.team_id):
            return None
        return self.store.get_team(item.team_id)
