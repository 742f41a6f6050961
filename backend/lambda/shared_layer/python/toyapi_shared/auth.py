"""toyapi_shared.auth — Cognito JWT authentication for ToyApi Lambdas.

Claims are resolved in this order:

1. ``requestContext.authorizer``: API Gateway already validated the token
   (REST API Cognito authorizer ``claims`` or HTTP API JWT authorizer
   ``jwt.claims``); the claims are trusted as-is.
2. ``Authorization: Bearer <id token>`` header.
3. ``toyapi_id_token`` cookie (Cookie header or API GW v2 cookies array).

Tokens from 2 and 3 are validated as RS256 JWTs against the Cognito User Pool
JWKS endpoint, with audience and expiry enforced.

Requires environment variables:
    COGNITO_USER_POOL_ID   — e.g. us-east-1_AbCdEfGhI
    COGNITO_CLIENT_ID      — app client id (the ID token audience)
"""

from __future__ import annotations

import json
import logging
import os
import time
import urllib.request
from typing import Any, Callable, Dict, List, Optional, Tuple
from urllib.parse import unquote

import jwt
from jwt.algorithms import RSAAlgorithm

from toyapi_shared.http_utils import _error

logger = logging.getLogger(__name__)

COGNITO_USER_POOL_ID: str = os.environ.get("COGNITO_USER_POOL_ID", "")
COGNITO_CLIENT_ID: str = os.environ.get("COGNITO_CLIENT_ID", "")
TOKEN_COOKIE_NAME: str = os.environ.get("TOKEN_COOKIE_NAME", "toyapi_id_token")

# ---------------------------------------------------------------------------
# JWKS cache
# ---------------------------------------------------------------------------

_jwks_cache: Dict[str, Any] = {}
_jwks_fetched_at: float = 0.0
_JWKS_TTL: float = 3600.0


def _claims_from_authorizer(event: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Return claims an API Gateway authorizer attached to the request, if any."""
    authorizer = (event.get("requestContext") or {}).get("authorizer") or {}
    claims = authorizer.get("claims")
    if not claims:
        claims = (authorizer.get("jwt") or {}).get("claims")
    if isinstance(claims, dict) and claims.get("sub"):
        return dict(claims)
    return None


def _extract_token(event: Dict[str, Any]) -> Optional[str]:
    """Extract the ID token from the Authorization header or the token cookie."""
    headers = event.get("headers") or {}
    auth_header = headers.get("authorization") or headers.get("Authorization") or ""
    if auth_header.lower().startswith("bearer "):
        token = auth_header[len("bearer ") :].strip()
        if token:
            return token

    cookie_parts: List[str] = []
    cookie_header = headers.get("cookie") or headers.get("Cookie") or ""
    if cookie_header:
        cookie_parts.extend(
            part.strip() for part in cookie_header.split(";") if part.strip()
        )

    event_cookies = event.get("cookies") or []
    if isinstance(event_cookies, list):
        cookie_parts.extend(
            part.strip()
            for part in event_cookies
            if isinstance(part, str) and part.strip()
        )
    elif isinstance(event_cookies, str) and event_cookies.strip():
        cookie_parts.append(event_cookies.strip())

    prefix = f"{TOKEN_COOKIE_NAME}="
    for part in cookie_parts:
        if part.startswith(prefix):
            return unquote(part[len(prefix) :])
    return None


def _get_jwks() -> Dict[str, Any]:
    """Fetch (and cache) Cognito User Pool JWKS."""
    global _jwks_cache, _jwks_fetched_at
    now = time.time()
    if _jwks_cache and (now - _jwks_fetched_at) < _JWKS_TTL:
        return _jwks_cache

    if not COGNITO_USER_POOL_ID:
        raise ValueError("COGNITO_USER_POOL_ID not set")

    region = COGNITO_USER_POOL_ID.split("_")[0]
    url = (
        f"https://cognito-idp.{region}.amazonaws.com/"
        f"{COGNITO_USER_POOL_ID}/.well-known/jwks.json"
    )

    with urllib.request.urlopen(url, timeout=5) as resp:
        data = json.loads(resp.read())

    new_cache: Dict[str, Any] = {}
    for key_data in data.get("keys", []):
        new_cache[key_data["kid"]] = RSAAlgorithm.from_jwk(json.dumps(key_data))

    _jwks_cache = new_cache
    _jwks_fetched_at = now
    return _jwks_cache


def _verify_token(token: str) -> Dict[str, Any]:
    """Verify a Cognito ID token (RS256). Returns decoded claims dict."""
    try:
        header = jwt.get_unverified_header(token)
    except jwt.PyJWTError as exc:
        raise ValueError(f"Invalid token header: {exc}") from exc

    kid = header.get("kid")
    alg = header.get("alg", "RS256")
    if alg != "RS256":
        raise ValueError(f"Unexpected token algorithm: {alg}")

    key = _get_jwks().get(kid)
    if key is None:
        raise ValueError("Token key ID not found in JWKS")

    try:
        return jwt.decode(
            token,
            key,
            algorithms=["RS256"],
            audience=COGNITO_CLIENT_ID,
            options={"verify_exp": True},
        )
    except jwt.ExpiredSignatureError:
        raise ValueError("Token has expired. Please sign in again.")
    except jwt.InvalidAudienceError:
        raise ValueError("Token audience mismatch.")
    except jwt.PyJWTError as exc:
        raise ValueError(f"Token validation failed: {exc}") from exc


def _authenticate(
    event: Dict[str, Any],
    *,
    error_fn: Optional[Callable[[int, str], Dict[str, Any]]] = None,
) -> Tuple[Optional[Dict[str, Any]], Optional[Dict[str, Any]]]:
    """Authenticate a request.

    Returns (claims, None) on success or (None, error_response) on failure.

    Args:
        event: API Gateway event dict.
        error_fn: Optional callable(status_code, message) -> response dict.
                  Defaults to the shared error envelope.
    """
    if error_fn is None:
        error_fn = _error

    claims = _claims_from_authorizer(event)
    if claims is not None:
        return claims, None

    token = _extract_token(event)
    if not token:
        return None, error_fn(401, "Authentication required. Please sign in.")

    try:
        return _verify_token(token), None
    except ValueError as exc:
        logger.warning("Auth failed: %s", exc)
        return None, error_fn(401, str(exc))
