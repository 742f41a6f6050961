"""Unit tests for the DynamoDB-backed item store (client mocked)."""

from __future__ import annotations

import datetime as dt
import os
import sys
import unittest
from unittest.mock import MagicMock

_HERE = os.path.dirname(os.path.abspath(__file__))
sys.path.insert(0, os.path.join(_HERE, "..", "shared_layer", "python"))
sys.path.insert(0, _HERE)

import pytest
from botocore.exceptions import ClientError

from toyapi_shared.serialization import _serialize_item

from errors import Conflict
from item_store import DynamoItemStore, InMemoryItemStore, build_item_store
from models import AccessLevel, Item, Team

T0 = dt.datetime(2026, 3, 1, 12, 0, 0, tzinfo=dt.timezone.utc)


def _conditional_failure(operation: str) -> ClientError:
    return ClientError(
        {"Error": {"Code": "ConditionalCheckFailedException", "Message": "The conditional request failed"}},
        operation,
    )


def _raw(item: Item):
    return _serialize_item(item.to_record())


class DynamoItemStoreTests(unittest.TestCase):
    def setUp(self):
        self.ddb = MagicMock()
        self.store = DynamoItemStore(ddb=self.ddb, table_name="items-test")
        self.item = Item("item-1", "hi", "alice", AccessLevel.TEAM, "T", created_at=T0, updated_at=T0)

    def test_get_owned_item_uses_owner_key(self):
        self.ddb.get_item.return_value = {"Item": _raw(self.item)}
        self.assertEqual(self.store.get_owned_item("alice", "item-1"), self.item)
        kwargs = self.ddb.get_item.call_args.kwargs
        self.assertEqual(kwargs["TableName"], "items-test")
        self.assertEqual(kwargs["Key"], {"PK": {"S": "USER#alice"}, "SK": {"S": "ITEM#item-1"}})

    def test_get_owned_item_missing(self):
        self.ddb.get_item.return_value = {}
        self.assertIsNone(self.store.get_owned_item("alice", "item-1"))

    def test_list_owned_items_follows_pagination(self):
        other = Item("item-2", "yo", "alice", created_at=T0, updated_at=T0)
        self.ddb.query.side_effect = [
            {"Items": [_raw(self.item)], "LastEvaluatedKey": {"PK": {"S": "USER#alice"}}},
            {"Items": [_raw(other)]},
        ]
        items = self.store.list_owned_items("alice")
        self.assertEqual([i.id for i in items], ["item-1", "item-2"])
        second_call = self.ddb.query.call_args_list[1].kwargs
        self.assertEqual(second_call["ExclusiveStartKey"], {"PK": {"S": "USER#alice"}})

    def test_list_team_items_scans_without_index(self):
        self.ddb.scan.return_value = {"Items": [_raw(self.item)]}
        self.store.list_team_items("T")
        kwargs = self.ddb.scan.call_args.kwargs
        self.assertIn("teamId = :tid", kwargs["FilterExpression"])
        self.assertEqual(kwargs["ExpressionAttributeValues"][":tid"], {"S": "T"})

    def test_list_team_items_queries_index_when_configured(self):
        store = DynamoItemStore(ddb=self.ddb, table_name="items-test", team_index="teamId-index")
        self.ddb.query.return_value = {"Items": []}
        store.list_team_items("T")
        kwargs = self.ddb.query.call_args.kwargs
        self.assertEqual(kwargs["IndexName"], "teamId-index")
        self.ddb.scan.assert_not_called()

    def test_find_items_by_id_filters_access_level(self):
        self.ddb.scan.return_value = {"Items": [_raw(self.item)]}
        found = self.store.find_items_by_id("item-1", AccessLevel.TEAM)
        self.assertEqual(found, [self.item])
        kwargs = self.ddb.scan.call_args.kwargs
        self.assertEqual(kwargs["ExpressionAttributeNames"], {"#id": "id"})
        self.assertEqual(kwargs["ExpressionAttributeValues"][":lvl"], {"S": "team"})

    def test_put_new_item_is_conditional(self):
        self.store.put_new_item(self.item)
        kwargs = self.ddb.put_item.call_args.kwargs
        self.assertEqual(kwargs["ConditionExpression"], "attribute_not_exists(PK)")
        self.assertEqual(kwargs["Item"]["accessLevel"], {"S": "team"})
        self.assertEqual(kwargs["Item"]["PK"], {"S": "USER#alice"})

    def test_put_of_existing_record_is_conflict(self):
        self.ddb.put_item.side_effect = _conditional_failure("PutItem")
        with self.assertRaises(Conflict) as ctx:
            self.store.put_new_item(self.item)
        self.assertEqual(ctx.exception.status_code, 409)
        self.assertEqual(ctx.exception.details, {"itemId": "item-1"})

    def test_update_targets_owner_partition(self):
        updated = Item("item-1", "new", "alice", AccessLevel.TEAM, "T", created_at=T0, updated_at=T0)
        self.ddb.update_item.return_value = {"Attributes": _raw(updated)}
        result = self.store.update_item_message(self.item, "new", T0)
        self.assertEqual(result.message, "new")
        kwargs = self.ddb.update_item.call_args.kwargs
        self.assertEqual(kwargs["Key"]["PK"], {"S": "USER#alice"})
        self.assertEqual(kwargs["ConditionExpression"], "attribute_exists(PK)")
        self.assertEqual(kwargs["ExpressionAttributeValues"][":updatedAt"], {"S": "2026-03-01T12:00:00.000Z"})

    def test_update_of_missing_record_returns_none(self):
        self.ddb.update_item.side_effect = _conditional_failure("UpdateItem")
        self.assertIsNone(self.store.update_item_message(self.item, "new", T0))

    def test_delete_of_missing_record_returns_false(self):
        self.ddb.delete_item.side_effect = _conditional_failure("DeleteItem")
        self.assertFalse(self.store.delete_item(self.item))

    def test_other_client_errors_propagate(self):
        self.ddb.delete_item.side_effect = ClientError(
            {"Error": {"Code": "ProvisionedThroughputExceededException", "Message": "slow down"}},
            "DeleteItem",
        )
        with self.assertRaises(ClientError):
            self.store.delete_item(self.item)

    def test_get_team(self):
        team = Team("T", "Team T", owner_id="alice", member_ids={"bob"}, created_at=T0, updated_at=T0)
        self.ddb.get_item.return_value = {"Item": _serialize_item(team.to_record())}
        self.assertEqual(self.store.get_team("T"), team)
        self.assertEqual(self.ddb.get_item.call_args.kwargs["Key"], {"PK": {"S": "TEAM#T"}, "SK": {"S": "TEAM"}})


class InMemoryItemStoreTests(unittest.TestCase):
    def test_duplicate_put_rejected(self):
        store = InMemoryItemStore()
        item = Item("item-1", "hi", "alice")
        store.put_new_item(item)
        with self.assertRaises(Conflict):
            store.put_new_item(item)

    def test_missing_record_update_and_delete(self):
        store = InMemoryItemStore()
        item = Item("item-1", "hi", "alice")
        self.assertIsNone(store.update_item_message(item, "x", T0))
        self.assertFalse(store.delete_item(item))

    def test_team_records_are_not_items(self):
        store = InMemoryItemStore()
        store.put_team(Team("T", "Team T", owner_id="alice"))
        self.assertEqual(store.scan_items(), [])
        self.assertEqual(store.get_team("T").owner_id, "alice")


def test_build_item_store_backends():
    assert isinstance(build_item_store("memory"), InMemoryItemStore)
    assert isinstance(build_item_store("dynamodb"), DynamoItemStore)


def test_build_item_store_rejects_unknown_backend():
    with pytest.raises(ValueError):
        build_item_store("redis")
