"""toyapi_shared.aws_clients — Lazy-singleton AWS service clients.

Creates the boto3 client on first call and caches it for subsequent
invocations, so cold starts only pay the construction cost when the client is
actually needed.

Set DYNAMODB_ENDPOINT to point the client at DynamoDB Local.
"""

from __future__ import annotations

import os
from typing import Optional

import boto3
from botocore.config import Config

DYNAMODB_REGION: str = os.environ.get("DYNAMODB_REGION", "us-east-1")
DYNAMODB_ENDPOINT: str = os.environ.get("DYNAMODB_ENDPOINT", "")

_ddb = None


def _get_ddb(region: Optional[str] = None):
    """Get (or create) the DynamoDB client singleton."""
    global _ddb
    if _ddb is None:
        kwargs = {
            "region_name": region or DYNAMODB_REGION,
            "config": Config(retries={"max_attempts": 5, "mode": "standard"}),
        }
        if DYNAMODB_ENDPOINT:
            kwargs["endpoint_url"] = DYNAMODB_ENDPOINT
        _ddb = boto3.client("dynamodb", **kwargs)
    return _ddb
