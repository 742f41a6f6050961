"""items_api/lambda_function.py

Lambda API handler for ToyApi items. Items are owned by a user and carry an
access level (individual, team or public); every read and write is checked
against the caller's ownership, team membership and role.

Routes (via API Gateway proxy, optional /api/vN prefix):
    GET     /items              List items the caller can read (limit= 1..100)
    POST    /items              Create an item
    GET     /items/{itemId}     Get one item
    PUT     /items/{itemId}     Update an item's message
    DELETE  /items/{itemId}     Delete an item
    OPTIONS /items[/{itemId}]   CORS preflight

Auth:
    Claims from the API Gateway Cognito authorizer, or a Cognito ID token in
    the Authorization header / toyapi_id_token cookie (see toyapi_shared.auth).
    Role and team membership come from the ``cognito:groups`` claim.

Environment variables:
    ITEMS_TABLE            default: toyapi-items
    ITEMS_TEAM_INDEX       optional GSI on teamId
    ITEMS_BACKEND          dynamodb | memory (default: dynamodb)
    ITEMS_PUBLIC_LOOKUP    true to expose other users' public items (default: false)
    MAX_ITEMS_PER_USER     owned items allowed per user (default: 100)
    DYNAMODB_REGION        default: us-east-1
    DYNAMODB_ENDPOINT      optional, e.g. DynamoDB Local
    COGNITO_USER_POOL_ID   Cognito pool id
    COGNITO_CLIENT_ID      Cognito app client id
    ADMIN_GROUP            default: admins
    TEAM_ADMIN_GROUP       default: team-admins
    TEAM_GROUP_PREFIX      default: team:
"""

from __future__ import annotations

import json
import re
import time
from typing import Any, Dict, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from toyapi_shared.auth import _authenticate
from toyapi_shared.http_utils import _error, _json_body, _parse_limit, _path_method, _query_params, _response
from toyapi_shared.serialization import _now_z

from authorization import AuthorizationService
from config import (
    ADMIN_GROUP,
    DEFAULT_SORT_ORDER,
    MAX_LIST_LIMIT,
    MAX_USER_ID_LENGTH,
    TEAM_ADMIN_GROUP,
    TEAM_GROUP_PREFIX,
    logger,
)
from errors import ItemsApiError, MalformedInput, Unauthenticated
from item_service import ItemService
from item_store import build_item_store
from models import Role, User

# ---------------------------------------------------------------------------
# Module-level service (reused across warm invocations)
# ---------------------------------------------------------------------------

_authorization = AuthorizationService()
_service: Optional[ItemService] = None


def _get_service() -> ItemService:
    global _service
    if _service is None:
        _service = ItemService(build_item_store(), _authorization)
    return _service


# ---------------------------------------------------------------------------
# Principal
# ---------------------------------------------------------------------------


def _claim_groups(claims: Dict[str, Any]) -> List[str]:
    """Normalize ``cognito:groups`` (list, "[a b]" or "a,b" depending on the authorizer)."""
    raw = claims.get("cognito:groups")
    if not raw:
        return []
    if isinstance(raw, (list, tuple, set)):
        return [str(g).strip() for g in raw if str(g).strip()]
    text = str(raw).strip().strip("[]")
    return [part for part in re.split(r"[,\s]+", text) if part]


def _principal_from_claims(claims: Dict[str, Any]) -> User:
    user_id = str(claims.get("sub") or "").strip()
    if not user_id:
        raise Unauthenticated("Token does not identify a user. Please sign in again.")
    if len(user_id) > MAX_USER_ID_LENGTH:
        raise MalformedInput(f"User ID cannot exceed {MAX_USER_ID_LENGTH} characters")
    groups = _claim_groups(claims)
    if ADMIN_GROUP in groups:
        role = Role.ADMIN
    elif TEAM_ADMIN_GROUP in groups:
        role = Role.TEAM_ADMIN
    else:
        role = Role.USER
    team_ids = [g[len(TEAM_GROUP_PREFIX):] for g in groups if g.startswith(TEAM_GROUP_PREFIX)]
    return _authorization.create_user_from_jwt(
        user_id,
        claims.get("cognito:username") or claims.get("username") or "",
        claims.get("email") or "",
        role=role,
        team_ids=team_ids,
    )


# ---------------------------------------------------------------------------
# Observability
# ---------------------------------------------------------------------------


def _emit_observability(
    *,
    operation: str,
    user_id: str,
    status_code: int,
    started: float,
    item_id: Optional[str] = None,
    error_code: Optional[str] = None,
) -> None:
    payload = {
        "timestamp": _now_z(),
        "component": "items_api",
        "event": operation,
        "user_id": user_id,
        "item_id": item_id or "",
        "status_code": status_code,
        "latency_ms": int(max(0.0, (time.time() - started) * 1000)),
        "error_code": error_code or "",
    }
    logger.info("[OBSERVABILITY] %s", json.dumps(payload, sort_keys=True, default=str))


# ---------------------------------------------------------------------------
# Route handlers
# ---------------------------------------------------------------------------


def _handle_list(user: User, qs: Dict[str, str]) -> Dict[str, Any]:
    """GET /items"""
    try:
        limit = _parse_limit(qs.get("limit"), default=None, max_value=MAX_LIST_LIMIT)
    except ValueError as exc:
        raise MalformedInput(str(exc), field="limit") from exc
    sort_order = (qs.get("sortOrder") or DEFAULT_SORT_ORDER).strip().lower()
    if sort_order != DEFAULT_SORT_ORDER:
        raise MalformedInput("Only sortOrder 'desc' is supported", field="sortOrder")

    items = _get_service().list_items(user, limit=limit)
    body: Dict[str, Any] = {
        "items": [i.to_dict() for i in items],
        "count": len(items),
        "userId": user.user_id,
        "sortOrder": sort_order,
    }
    if limit is not None:
        body["limit"] = limit
    return _response(200, body)


def _handle_create(user: User, event: Dict[str, Any]) -> Dict[str, Any]:
    """POST /items"""
    body = _parse_event_body(event)
    item = _get_service().create_item(user, body)
    return _response(201, item.to_dict())


def _handle_get(user: User, item_id: str) -> Dict[str, Any]:
    """GET /items/{itemId}"""
    return _response(200, _get_service().get_item(user, item_id).to_dict())


def _handle_update(user: User, item_id: str, event: Dict[str, Any]) -> Dict[str, Any]:
    """PUT /items/{itemId}"""
    body = _parse_event_body(event)
    return _response(200, _get_service().update_item(user, item_id, body).to_dict())


def _handle_delete(user: User, item_id: str) -> Dict[str, Any]:
    """DELETE /items/{itemId}"""
    _get_service().delete_item(user, item_id)
    return _response(204)


def _parse_event_body(event: Dict[str, Any]) -> Dict[str, Any]:
    if event.get("body") in (None, ""):
        raise MalformedInput("Request body is required")
    try:
        return _json_body(event)
    except ValueError as exc:
        raise MalformedInput(str(exc)) from exc


# ---------------------------------------------------------------------------
# Path routing
# ---------------------------------------------------------------------------

_ITEMS_COLLECTION = re.compile(r"^/items/?$")
_ITEMS_SINGLE = re.compile(r"^/items/(?P<itemId>[^/]+)/?$")


def _route(method: str, path: str, user: User, event: Dict[str, Any]) -> Dict[str, Any]:
    if _ITEMS_COLLECTION.match(path):
        if method == "GET":
            return _handle_list(user, _query_params(event))
        if method == "POST":
            return _handle_create(user, event)
        return _error(405, f"Method {method} not allowed on /items")

    m = _ITEMS_SINGLE.match(path)
    if m:
        item_id = m.group("itemId")
        if method == "GET":
            return _handle_get(user, item_id)
        if method == "PUT":
            return _handle_update(user, item_id, event)
        if method == "DELETE":
            return _handle_delete(user, item_id)
        return _error(405, f"Method {method} not allowed on /items/{{itemId}}")

    return _error(404, f"Route not found: {method} {path}")


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """Main Lambda entry point."""
    method, path = _path_method(event)
    logger.info("items_api: %s %s", method, path)

    if method == "OPTIONS":
        return _response(204)

    claims, auth_error = _authenticate(event)
    if auth_error:
        return auth_error

    started = time.time()
    m = _ITEMS_SINGLE.match(path)
    item_id = m.group("itemId") if m else None
    operation = f"{method} /items/{{itemId}}" if item_id else f"{method} {path}"
    user_id = ""

    try:
        user = _principal_from_claims(claims)
        user_id = user.user_id
        resp = _route(method, path, user, event)
        _emit_observability(
            operation=operation,
            user_id=user_id,
            item_id=item_id,
            status_code=resp["statusCode"],
            started=started,
        )
        return resp

    except ItemsApiError as exc:
        logger.info("items_api: %s -> %s %s (%s)", operation, exc.status_code, exc.code, exc.message)
        _emit_observability(
            operation=operation,
            user_id=user_id,
            item_id=item_id,
            status_code=exc.status_code,
            started=started,
            error_code=exc.code,
        )
        return _error(exc.status_code, exc.message, code=exc.code, **exc.details)
    except (ClientError, BotoCoreError) as e:
        logger.error("AWS error: %s", e, exc_info=True)
    except Exception as e:
        logger.error("Unexpected error: %s", e, exc_info=True)

    _emit_observability(
        operation=operation,
        user_id=user_id,
        item_id=item_id,
        status_code=500,
        started=started,
        error_code="INTERNAL_ERROR",
    )
    return _error(500, "Internal service error")
