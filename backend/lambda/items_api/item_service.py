"""item_service.py — Item CRUD operations on top of the resolver and the store.

Order inside every operation: validate input, resolve (NotFound), check
permission (Forbidden), then write. Writes are existence-conditional; a record
that disappeared between the check and the write is reported as NotFound.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from toyapi_shared.serialization import _utcnow

from authorization import AuthorizationService
from config import MAX_ITEMS_PER_USER
from errors import InvalidAssignment, ItemLimitExceeded, NotFound
from item_query import ItemQueryResolver
from item_store import ItemStore
from models import Item, User
from validation import parse_create_request, parse_update_request

__all__ = ["ItemService"]

logger = logging.getLogger(__name__)


class ItemService:
    def __init__(
        self,
        store: ItemStore,
        authorization: Optional[AuthorizationService] = None,
        resolver: Optional[ItemQueryResolver] = None,
        max_items_per_user: int = MAX_ITEMS_PER_USER,
    ):
        self.store = store
        self.max_items_per_user = max_items_per_user
        self.authorization = authorization or AuthorizationService()
        self.resolver = resolver or ItemQueryResolver(store, self.authorization)

    def list_items(self, user: User, limit: Optional[int] = None) -> List[Item]:
        return self.resolver.list_accessible_items(user, limit=limit)

    def create_item(self, user: User, body: Dict[str, Any]) -> Item:
        request = parse_create_request(body)
        if not self.authorization.is_valid_team_assignment(user, request.team_id):
            raise InvalidAssignment(
                f"You are not a member of team '{request.team_id}'",
                status_code=403,
                teamId=request.team_id,
            )
        owned = len(self.store.list_owned_items(user.user_id))
        if owned >= self.max_items_per_user:
            raise ItemLimitExceeded(
                f"User has reached maximum item limit ({self.max_items_per_user})",
                limit=self.max_items_per_user,
            )
        item = Item.new(
            message=request.message,
            user_id=user.user_id,
            access_level=request.access_level,
            team_id=request.team_id,
        )
        self.store.put_new_item(item)
        logger.info(
            "Created item %s for user %s (accessLevel=%s, teamId=%s)",
            item.id,
            user.user_id,
            item.access_level.value,
            item.team_id,
        )
        return item

    def get_item(self, user: User, item_id: str) -> Item:
        return self.resolver.get_readable_item(user, item_id)

    def update_item(self, user: User, item_id: str, body: Dict[str, Any]) -> Item:
        request = parse_update_request(body)
        item = self.resolver.get_modifiable_item(user, item_id)
        updated = self.store.update_item_message(item, request.message, _utcnow())
        if updated is None:
            raise NotFound("Item not found", itemId=item_id)
        logger.info("Updated item %s for user %s", item_id, user.user_id)
        return updated

    def delete_item(self, user: User, item_id: str) -> None:
        item = self.resolver.get_modifiable_item(user, item_id)
        if not self.store.delete_item(item):
            raise NotFound("Item not found", itemId=item_id)
        logger.info("Deleted item %s for user %s", item_id, user.user_id)
