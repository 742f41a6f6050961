"""test_layer.py — Unit tests for toyapi_shared layer modules.

Run from shared_layer directory:
    PYTHONPATH=python python3 -m pytest test_layer.py -v
"""

from __future__ import annotations

import base64
import datetime as dt
import json
import os
import sys
import unittest
from decimal import Decimal
from unittest.mock import MagicMock, patch

# Ensure the layer's python/ directory is importable.
sys.path.insert(0, os.path.join(os.path.dirname(os.path.abspath(__file__)), "python"))

from toyapi_shared.auth import _authenticate, _claims_from_authorizer, _extract_token
from toyapi_shared.aws_clients import _get_ddb
from toyapi_shared.http_utils import _error, _json_body, _parse_limit, _path_method, _response
from toyapi_shared.serialization import _deserialize, _iso_z, _now_z, _parse_iso, _serialize, _serialize_item


class AuthTests(unittest.TestCase):
    def test_extract_token_from_bearer_header(self):
        event = {"headers": {"Authorization": "Bearer abc.def.ghi"}}
        self.assertEqual(_extract_token(event), "abc.def.ghi")

    def test_extract_token_from_cookie_header(self):
        event = {"headers": {"cookie": "toyapi_id_token=abc123; other=val"}}
        self.assertEqual(_extract_token(event), "abc123")

    def test_extract_token_from_cookies_array(self):
        event = {"headers": {}, "cookies": ["toyapi_id_token=xyz789", "other=val"]}
        self.assertEqual(_extract_token(event), "xyz789")

    def test_extract_token_missing(self):
        event = {"headers": {"cookie": "other=val"}}
        self.assertIsNone(_extract_token(event))

    def test_claims_from_rest_authorizer(self):
        event = {"requestContext": {"authorizer": {"claims": {"sub": "u-1"}}}}
        self.assertEqual(_claims_from_authorizer(event), {"sub": "u-1"})

    def test_claims_from_http_jwt_authorizer(self):
        event = {"requestContext": {"authorizer": {"jwt": {"claims": {"sub": "u-2"}}}}}
        self.assertEqual(_claims_from_authorizer(event), {"sub": "u-2"})

    def test_authorizer_claims_skip_token_verification(self):
        event = {"requestContext": {"authorizer": {"claims": {"sub": "u-1"}}}, "headers": {}}
        with patch("toyapi_shared.auth._verify_token") as verify:
            claims, err = _authenticate(event)
        self.assertEqual(claims["sub"], "u-1")
        self.assertIsNone(err)
        verify.assert_not_called()

    def test_authenticate_no_token(self):
        claims, err = _authenticate({"headers": {}})
        self.assertIsNone(claims)
        self.assertEqual(err["statusCode"], 401)

    def test_authenticate_invalid_token(self):
        event = {"headers": {"authorization": "Bearer bad"}}
        with patch("toyapi_shared.auth._verify_token", side_effect=ValueError("Token has expired.")):
            claims, err = _authenticate(event)
        self.assertIsNone(claims)
        self.assertEqual(err["statusCode"], 401)
        self.assertEqual(json.loads(err["body"])["error"], "Token has expired.")

    def test_authenticate_custom_error_fn(self):
        claims, err = _authenticate({"headers": {}}, error_fn=lambda code, msg: {"statusCode": code, "msg": msg})
        self.assertIsNone(claims)
        self.assertEqual(err["statusCode"], 401)
        self.assertIn("sign in", err["msg"])


class HttpUtilsTests(unittest.TestCase):
    def test_response_format(self):
        resp = _response(200, {"key": "val", "n": Decimal("2")})
        self.assertEqual(resp["statusCode"], 200)
        self.assertIn("Content-Type", resp["headers"])
        self.assertIn("Access-Control-Allow-Origin", resp["headers"])
        body = json.loads(resp["body"])
        self.assertEqual(body, {"key": "val", "n": 2})

    def test_empty_response_body(self):
        self.assertEqual(_response(204)["body"], "")

    def test_error_format(self):
        resp = _error(400, "bad input", field="message")
        self.assertEqual(resp["statusCode"], 400)
        body = json.loads(resp["body"])
        self.assertFalse(body["success"])
        self.assertEqual(body["error"], "bad input")
        self.assertEqual(body["error_envelope"]["code"], "INVALID_INPUT")
        self.assertFalse(body["error_envelope"]["retryable"])
        self.assertEqual(body["error_envelope"]["details"], {"field": "message"})

    def test_error_code_override(self):
        body = json.loads(_error(403, "nope", code="invalid_assignment")["body"])
        self.assertEqual(body["error_envelope"]["code"], "INVALID_ASSIGNMENT")

    def test_server_error_is_retryable(self):
        body = json.loads(_error(500, "boom")["body"])
        self.assertEqual(body["error_envelope"]["code"], "INTERNAL_ERROR")
        self.assertTrue(body["error_envelope"]["retryable"])

    def test_json_body(self):
        event = {"body": '{"key": "val"}', "isBase64Encoded": False}
        self.assertEqual(_json_body(event), {"key": "val"})

    def test_json_body_base64(self):
        raw = base64.b64encode(b'{"key": "b64"}').decode()
        event = {"body": raw, "isBase64Encoded": True}
        self.assertEqual(_json_body(event), {"key": "b64"})

    def test_json_body_rejects_non_object(self):
        with self.assertRaises(ValueError):
            _json_body({"body": "[1, 2]"})
        with self.assertRaises(ValueError):
            _json_body({"body": "{oops"})

    def test_path_method_strips_api_prefix(self):
        event = {"requestContext": {"http": {"method": "post", "path": "/api/v1/items/item-1"}}}
        self.assertEqual(_path_method(event), ("POST", "/items/item-1"))

    def test_path_method_rest_event(self):
        event = {"httpMethod": "DELETE", "path": "/items/item-1"}
        self.assertEqual(_path_method(event), ("DELETE", "/items/item-1"))

    def test_parse_limit(self):
        self.assertIsNone(_parse_limit(None))
        self.assertEqual(_parse_limit("25"), 25)
        for bad in ("0", "101", "x"):
            with self.assertRaises(ValueError):
                _parse_limit(bad)


class SerializationTests(unittest.TestCase):
    def test_serialize_string(self):
        self.assertEqual(_serialize("hello"), {"S": "hello"})

    def test_serialize_float(self):
        self.assertEqual(_serialize(3.14)["N"], "3.14")

    def test_serialize_item_drops_none_and_empty_sets(self):
        out = _serialize_item({"a": "x", "b": None, "c": set(), "d": {"m"}})
        self.assertEqual(out, {"a": {"S": "x"}, "d": {"SS": ["m"]}})

    def test_deserialize_item(self):
        item = {"name": {"S": "test"}, "count": {"N": "42"}, "ratio": {"N": "0.5"}}
        result = _deserialize(item)
        self.assertEqual(result, {"name": "test", "count": 42, "ratio": 0.5})

    def test_iso_z_millisecond_precision(self):
        value = dt.datetime(2026, 3, 1, 12, 0, 0, 123456, tzinfo=dt.timezone.utc)
        self.assertEqual(_iso_z(value), "2026-03-01T12:00:00.123Z")

    def test_parse_iso(self):
        parsed = _parse_iso("2026-03-01T12:00:00.123Z")
        self.assertEqual(parsed, dt.datetime(2026, 3, 1, 12, 0, 0, 123000, tzinfo=dt.timezone.utc))
        self.assertIsNone(_parse_iso(None))

    def test_now_z_format(self):
        ts = _now_z()
        self.assertTrue(ts.endswith("Z"))
        self.assertRegex(ts, r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z")


class AwsClientTests(unittest.TestCase):
    @patch("toyapi_shared.aws_clients.boto3")
    def test_get_ddb_singleton(self, mock_boto3):
        import toyapi_shared.aws_clients as clients

        clients._ddb = None  # Reset singleton
        mock_client = MagicMock()
        mock_boto3.client.return_value = mock_client

        result1 = _get_ddb()
        result2 = _get_ddb()

        # Same object returned both times.
        self.assertIs(result1, result2)
        # boto3.client called only once.
        mock_boto3.client.assert_called_once()
        self.assertEqual(mock_boto3.client.call_args.args, ("dynamodb",))

        clients._ddb = None  # Clean up


if __name__ == "__main__":
    unittest.main()
