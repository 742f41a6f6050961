"""errors.py — Item operation failures and their HTTP mapping.

Authorization predicates never raise; these are raised by the item operations
once a predicate has said no, or when a request fails validation.
"""
from __future__ import annotations

from typing import Any, Dict

__all__ = [
    "Conflict",
    "Forbidden",
    "InvalidAssignment",
    "ItemLimitExceeded",
    "ItemsApiError",
    "MalformedInput",
    "NotFound",
    "Unauthenticated",
]


class ItemsApiError(Exception):
    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = details


class NotFound(ItemsApiError):
    """The item id did not resolve in any scope reachable with the caller's privilege."""

    status_code = 404
    code = "NOT_FOUND"


class Forbidden(ItemsApiError):
    """The item exists but the access or modify predicate denied the operation."""

    status_code = 403
    code = "FORBIDDEN"


class MalformedInput(ItemsApiError):
    """Missing, blank or unparseable request fields."""

    status_code = 400
    code = "INVALID_INPUT"


class InvalidAssignment(ItemsApiError):
    """Inconsistent access level / team pairing, or a team the caller may not assign.

    The pairing case is a 400; assigning a team the caller does not belong to is a 403.
    """

    status_code = 400
    code = "INVALID_ASSIGNMENT"

    def __init__(self, message: str, status_code: int = 400, **details: Any):
        super().__init__(message, **details)
        self.status_code = status_code


class Conflict(ItemsApiError):
    """A conditional create found a record already stored under the same key."""

    status_code = 409
    code = "CONFLICT"


class ItemLimitExceeded(ItemsApiError):
    status_code = 400
    code = "ITEM_LIMIT_EXCEEDED"


class Unauthenticated(ItemsApiError):
    """Verified claims that do not identify a user."""

    status_code = 401
    code = "PERMISSION_DENIED"
