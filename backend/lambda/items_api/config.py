"""config.py — Central configuration — environment variables, constants, logging.

Part of the items_api Lambda.
"""
from __future__ import annotations

import logging
import os

__all__ = [
    "ADMIN_GROUP",
    "DEFAULT_SORT_ORDER",
    "ITEMS_BACKEND",
    "ITEMS_PUBLIC_LOOKUP",
    "ITEMS_TABLE",
    "ITEMS_TEAM_INDEX",
    "ITEM_ID_PREFIX",
    "MAX_ITEMS_PER_USER",
    "MAX_LIST_LIMIT",
    "MAX_MESSAGE_LENGTH",
    "MAX_USER_ID_LENGTH",
    "TEAM_ADMIN_GROUP",
    "TEAM_GROUP_PREFIX",
    "logger",
]

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

ITEMS_TABLE = os.environ.get("ITEMS_TABLE", os.environ.get("TABLE_NAME", "toyapi-items"))
# Optional GSI (hash key ``teamId``) for team-scoped lookups; scan with a filter when unset.
ITEMS_TEAM_INDEX = os.environ.get("ITEMS_TEAM_INDEX", "")
# ``dynamodb`` in every AWS environment; ``memory`` for local runs without DynamoDB Local.
ITEMS_BACKEND = os.environ.get("ITEMS_BACKEND", "dynamodb").strip().lower()
ITEMS_PUBLIC_LOOKUP = os.environ.get("ITEMS_PUBLIC_LOOKUP", "false").lower() == "true"

MAX_MESSAGE_LENGTH = int(os.environ.get("MAX_MESSAGE_LENGTH", "1000"))
MAX_USER_ID_LENGTH = int(os.environ.get("MAX_USER_ID_LENGTH", "128"))
MAX_LIST_LIMIT = 100
MAX_ITEMS_PER_USER = int(os.environ.get("MAX_ITEMS_PER_USER", "100"))
DEFAULT_SORT_ORDER = "desc"
ITEM_ID_PREFIX = "item-"

# Cognito groups that carry role and team membership in the ``cognito:groups`` claim.
ADMIN_GROUP = os.environ.get("ADMIN_GROUP", "admins")
TEAM_ADMIN_GROUP = os.environ.get("TEAM_ADMIN_GROUP", "team-admins")
TEAM_GROUP_PREFIX = os.environ.get("TEAM_GROUP_PREFIX", "team:")

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logger = logging.getLogger()
logger.setLevel(getattr(logging, os.environ.get("LOG_LEVEL", "INFO").upper(), logging.INFO))
