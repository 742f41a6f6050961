"""item_store.py — Item/team persistence behind one interface, two backends.

Single-table layout:
    item  PK=USER#<userId>  SK=ITEM#<itemId>
    team  PK=TEAM#<teamId>  SK=TEAM

Stores only read and write records. Which partitions to search and whether the
caller may see the result is decided by item_query / authorization.
"""
from __future__ import annotations

import abc
import copy
import datetime as dt
import logging
from typing import Any, Dict, List, Optional, Tuple

from botocore.exceptions import ClientError

from toyapi_shared.aws_clients import _get_ddb
from toyapi_shared.serialization import _deserialize, _iso_z, _serialize, _serialize_item

from config import ITEMS_BACKEND, ITEMS_TABLE, ITEMS_TEAM_INDEX
from errors import Conflict
from models import AccessLevel, Item, Team, item_key, team_key, user_partition

__all__ = [
    "DynamoItemStore",
    "InMemoryItemStore",
    "ItemStore",
    "build_item_store",
]

logger = logging.getLogger(__name__)

_ITEM_SK_PREFIX = "ITEM#"


class ItemStore(abc.ABC):
    """Keyed get/put/update/delete/query/scan over item and team records."""

    @abc.abstractmethod
    def get_owned_item(self, user_id: str, item_id: str) -> Optional[Item]:
        """Keyed lookup in the owner's partition."""

    @abc.abstractmethod
    def list_owned_items(self, user_id: str) -> List[Item]:
        """Every item in the owner's partition."""

    @abc.abstractmethod
    def list_team_items(self, team_id: str) -> List[Item]:
        """TEAM-level items associated with ``team_id``."""

    @abc.abstractmethod
    def find_items_by_id(self, item_id: str, access_level: Optional[AccessLevel] = None) -> List[Item]:
        """Unscoped search by item id, optionally restricted to one access level."""

    @abc.abstractmethod
    def scan_items(self, access_level: Optional[AccessLevel] = None) -> List[Item]:
        """Every item in the table, optionally restricted to one access level."""

    @abc.abstractmethod
    def put_new_item(self, item: Item) -> None:
        """Write an item that must not already exist; Conflict when it does."""

    @abc.abstractmethod
    def update_item_message(self, item: Item, message: str, updated_at: dt.datetime) -> Optional[Item]:
        """Set message/updatedAt on an existing item; None when the record is gone."""

    @abc.abstractmethod
    def delete_item(self, item: Item) -> bool:
        """Delete an existing item; False when the record is gone."""

    @abc.abstractmethod
    def get_team(self, team_id: str) -> Optional[Team]:
        ...

    @abc.abstractmethod
    def put_team(self, team: Team) -> None:
        ...


# ---------------------------------------------------------------------------
# DynamoDB
# ---------------------------------------------------------------------------


def _is_conditional_failure(exc: ClientError) -> bool:
    return exc.response.get("Error", {}).get("Code") == "ConditionalCheckFailedException"


class DynamoItemStore(ItemStore):
    def __init__(self, ddb=None, table_name: str = ITEMS_TABLE, team_index: str = ITEMS_TEAM_INDEX):
        self._ddb = ddb
        self.table_name = table_name
        self.team_index = team_index

    @property
    def ddb(self):
        if self._ddb is None:
            self._ddb = _get_ddb()
        return self._ddb

    def _key(self, key: Dict[str, str]) -> Dict[str, Any]:
        return {k: _serialize(v) for k, v in key.items()}

    def _paginate(self, operation: str, **kwargs: Any) -> List[Item]:
        call = getattr(self.ddb, operation)
        items: List[Item] = []
        while True:
            resp = call(TableName=self.table_name, **kwargs)
            items.extend(Item.from_record(_deserialize(raw)) for raw in resp.get("Items", []))
            if "LastEvaluatedKey" not in resp:
                break
            kwargs["ExclusiveStartKey"] = resp["LastEvaluatedKey"]
        return items

    def get_owned_item(self, user_id: str, item_id: str) -> Optional[Item]:
        resp = self.ddb.get_item(
            TableName=self.table_name,
            Key=self._key(item_key(user_id, item_id)),
            ConsistentRead=True,
        )
        raw = resp.get("Item")
        if not raw:
            return None
        return Item.from_record(_deserialize(raw))

    def list_owned_items(self, user_id: str) -> List[Item]:
        return self._paginate(
            "query",
            KeyConditionExpression="PK = :pk AND begins_with(SK, :prefix)",
            ExpressionAttributeValues={
                ":pk": _serialize(user_partition(user_id)),
                ":prefix": _serialize(_ITEM_SK_PREFIX),
            },
        )

    def list_team_items(self, team_id: str) -> List[Item]:
        values = {
            ":tid": _serialize(team_id),
            ":lvl": _serialize(AccessLevel.TEAM.value),
        }
        if self.team_index:
            return self._paginate(
                "query",
                IndexName=self.team_index,
                KeyConditionExpression="teamId = :tid",
                FilterExpression="accessLevel = :lvl",
                ExpressionAttributeValues=values,
            )
        values[":prefix"] = _serialize(_ITEM_SK_PREFIX)
        return self._paginate(
            "scan",
            FilterExpression="teamId = :tid AND accessLevel = :lvl AND begins_with(SK, :prefix)",
            ExpressionAttributeValues=values,
        )

    def find_items_by_id(self, item_id: str, access_level: Optional[AccessLevel] = None) -> List[Item]:
        expression = "#id = :id AND begins_with(SK, :prefix)"
        values = {
            ":id": _serialize(item_id),
            ":prefix": _serialize(_ITEM_SK_PREFIX),
        }
        if access_level is not None:
            expression += " AND accessLevel = :lvl"
            values[":lvl"] = _serialize(access_level.value)
        return self._paginate(
            "scan",
            FilterExpression=expression,
            ExpressionAttributeNames={"#id": "id"},
            ExpressionAttributeValues=values,
        )

    def scan_items(self, access_level: Optional[AccessLevel] = None) -> List[Item]:
        expression = "begins_with(SK, :prefix)"
        values = {":prefix": _serialize(_ITEM_SK_PREFIX)}
        if access_level is not None:
            expression += " AND accessLevel = :lvl"
            values[":lvl"] = _serialize(access_level.value)
        return self._paginate(
            "scan",
            FilterExpression=expression,
            ExpressionAttributeValues=values,
        )

    def put_new_item(self, item: Item) -> None:
        try:
            self.ddb.put_item(
                TableName=self.table_name,
                Item=_serialize_item(item.to_record()),
                ConditionExpression="attribute_not_exists(PK)",
            )
        except ClientError as exc:
            if _is_conditional_failure(exc):
                raise Conflict(f"Item {item.id} already exists", itemId=item.id) from exc
            raise

    def update_item_message(self, item: Item, message: str, updated_at: dt.datetime) -> Optional[Item]:
        try:
            resp = self.ddb.update_item(
                TableName=self.table_name,
                Key=self._key(item_key(item.user_id, item.id)),
                UpdateExpression="SET #message = :message, updatedAt = :updatedAt",
                ExpressionAttributeNames={"#message": "message"},
                ConditionExpression="attribute_exists(PK)",
                ExpressionAttributeValues={
                    ":message": _serialize(message),
                    ":updatedAt": _serialize(_iso_z(updated_at)),
                },
                ReturnValues="ALL_NEW",
            )
        except ClientError as exc:
            if _is_conditional_failure(exc):
                logger.info("Update skipped, item %s no longer exists", item.id)
                return None
            raise
        return Item.from_record(_deserialize(resp.get("Attributes") or {}))

    def delete_item(self, item: Item) -> bool:
        try:
            self.ddb.delete_item(
                TableName=self.table_name,
                Key=self._key(item_key(item.user_id, item.id)),
                ConditionExpression="attribute_exists(PK)",
            )
        except ClientError as exc:
            if _is_conditional_failure(exc):
                logger.info("Delete skipped, item %s no longer exists", item.id)
                return False
            raise
        return True

    def get_team(self, team_id: str) -> Optional[Team]:
        resp = self.ddb.get_item(
            TableName=self.table_name,
            Key=self._key(team_key(team_id)),
            ConsistentRead=True,
        )
        raw = resp.get("Item")
        if not raw:
            return None
        return Team.from_record(_deserialize(raw))

    def put_team(self, team: Team) -> None:
        self.ddb.put_item(TableName=self.table_name, Item=_serialize_item(team.to_record()))


# ---------------------------------------------------------------------------
# In-memory (local runs and tests)
# ---------------------------------------------------------------------------


class InMemoryItemStore(ItemStore):
    """Dict-backed store holding the same records the DynamoDB table would."""

    def __init__(self):
        self._records: Dict[Tuple[str, str], Dict[str, Any]] = {}

    def _items(self) -> List[Item]:
        return [
            Item.from_record(copy.deepcopy(rec))
            for (pk, sk), rec in self._records.items()
            if sk.startswith(_ITEM_SK_PREFIX)
        ]

    @staticmethod
    def _pk_sk(key: Dict[str, str]) -> Tuple[str, str]:
        return key["PK"], key["SK"]

    def get_owned_item(self, user_id: str, item_id: str) -> Optional[Item]:
        rec = self._records.get(self._pk_sk(item_key(user_id, item_id)))
        return Item.from_record(copy.deepcopy(rec)) if rec else None

    def list_owned_items(self, user_id: str) -> List[Item]:
        return [i for i in self._items() if i.user_id == user_id]

    def list_team_items(self, team_id: str) -> List[Item]:
        return [i for i in self._items() if i.team_id == team_id and i.access_level is AccessLevel.TEAM]

    def find_items_by_id(self, item_id: str, access_level: Optional[AccessLevel] = None) -> List[Item]:
        return [
            i for i in self._items()
            if i.id == item_id and (access_level is None or i.access_level is access_level)
        ]

    def scan_items(self, access_level: Optional[AccessLevel] = None) -> List[Item]:
        return [i for i in self._items() if access_level is None or i.access_level is access_level]

    def put_new_item(self, item: Item) -> None:
        key = self._pk_sk(item_key(item.user_id, item.id))
        if key in self._records:
            raise Conflict(f"Item {item.id} already exists", itemId=item.id)
        self._records[key] = item.to_record()

    def update_item_message(self, item: Item, message: str, updated_at: dt.datetime) -> Optional[Item]:
        key = self._pk_sk(item_key(item.user_id, item.id))
        rec = self._records.get(key)
        if rec is None:
            return None
        rec["message"] = message
        rec["updatedAt"] = _iso_z(updated_at)
        return Item.from_record(copy.deepcopy(rec))

    def delete_item(self, item: Item) -> bool:
        return self._records.pop(self._pk_sk(item_key(item.user_id, item.id)), None) is not None

    def get_team(self, team_id: str) -> Optional[Team]:
        rec = self._records.get(self._pk_sk(team_key(team_id)))
        return Team.from_record(copy.deepcopy(rec)) if rec else None

    def put_team(self, team: Team) -> None:
        self._records[self._pk_sk(team_key(team.team_id))] = team.to_record()


def build_item_store(backend: str = ITEMS_BACKEND) -> ItemStore:
    if backend == "memory":
        logger.warning("Using in-memory item store; data does not survive the container")
        return InMemoryItemStore()
    if backend != "dynamodb":
        raise ValueError(f"Unknown ITEMS_BACKEND {backend!r}")
    return DynamoItemStore()
