"""toyapi_shared.http_utils — HTTP response helpers with CORS.

Standard response envelope and error formatting used by the ToyApi
Lambda functions.
"""

from __future__ import annotations

import base64
import json
import logging
import os
import re
from decimal import Decimal
from typing import Any, Dict, Optional, Tuple

logger = logging.getLogger(__name__)

CORS_ORIGIN = os.environ.get("CORS_ORIGIN", "*")
CORS_HEADERS = {
    "Access-Control-Allow-Origin": CORS_ORIGIN,
    "Access-Control-Allow-Headers": "Content-Type,Authorization,Cookie",
    "Access-Control-Allow-Methods": "GET,POST,PUT,DELETE,OPTIONS",
}

_DEFAULT_CODES = {
    400: "INVALID_INPUT",
    401: "PERMISSION_DENIED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
}

_API_PREFIX = re.compile(r"^/api/v\d+(?=/)")


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        if value == value.to_integral_value():
            return int(value)
        return float(value)
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _response(status_code: int, body: Any = None) -> Dict[str, Any]:
    """Build a standard API Gateway response with CORS headers.

    A None body (204 responses, preflight) is sent as an empty string.
    """
    return {
        "statusCode": status_code,
        "headers": {
            "Content-Type": "application/json",
            **CORS_HEADERS,
        },
        "body": "" if body is None else json.dumps(body, default=_json_default),
    }


def _error(status_code: int, message: str, **extra: Any) -> Dict[str, Any]:
    """Build a standard error response.

    Args:
        status_code: HTTP status code.
        message: Human-readable error message.
        **extra: ``code`` and ``retryable`` override the envelope defaults;
            anything else lands in ``error_envelope.details``.
    """
    code = str(extra.pop("code", "") or "").strip().upper()
    if not code:
        code = _DEFAULT_CODES.get(status_code, "INTERNAL_ERROR")
    retryable = bool(extra.pop("retryable", status_code >= 500))
    payload: Dict[str, Any] = {
        "success": False,
        "error": message,
        "error_envelope": {
            "code": code,
            "message": message,
            "retryable": retryable,
            "details": dict(extra),
        },
    }
    return _response(status_code, payload)


def _json_body(event: Dict[str, Any]) -> Dict[str, Any]:
    """Parse the JSON object body of an API Gateway event (handles base64).

    Raises ValueError when the body is not valid JSON or not an object.
    An absent body parses to an empty dict.
    """
    raw = event.get("body")
    if raw in (None, ""):
        return {}

    if event.get("isBase64Encoded"):
        raw = base64.b64decode(raw).decode("utf-8")

    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON body: {exc}") from exc

    if not isinstance(parsed, dict):
        raise ValueError("JSON body must be an object")
    return parsed


def _path_method(event: Dict[str, Any]) -> Tuple[str, str]:
    """Extract HTTP method and path from a REST (v1) or HTTP (v2) API Gateway event.

    A leading ``/api/vN`` prefix is stripped so routes can match on ``/items``.
    """
    rc = event.get("requestContext") or {}
    http = rc.get("http") or {}
    method = (http.get("method") or event.get("httpMethod") or "GET").upper()
    path = http.get("path") or event.get("rawPath") or event.get("path") or "/"
    return method, _API_PREFIX.sub("", path)


def _query_params(event: Dict[str, Any]) -> Dict[str, str]:
    return event.get("queryStringParameters") or {}


def _parse_limit(raw: Any, default: Optional[int] = None, min_value: int = 1, max_value: int = 100) -> Optional[int]:
    """Parse a ``limit`` query parameter.

    Returns ``default`` when absent; raises ValueError when out of range or not an integer.
    """
    if raw in (None, ""):
        return default
    try:
        val = int(raw)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Limit must be an integer, got {raw!r}") from exc
    if val < min_value or val > max_value:
        raise ValueError(f"Limit must be between {min_value} and {max_value}")
    return val
