"""toyapi_shared.serialization — DynamoDB serialization/deserialization.

TypeSerializer/TypeDeserializer wrappers and timestamp helpers shared by the
ToyApi Lambdas.
"""

from __future__ import annotations

import datetime as dt
from decimal import Decimal
from typing import Any, Dict, Optional

from boto3.dynamodb.types import TypeDeserializer, TypeSerializer

_SER = TypeSerializer()
_DESER = TypeDeserializer()


def _serialize(value: Any) -> Any:
    """Serialize a Python value for DynamoDB."""
    if isinstance(value, float):
        value = Decimal(str(value))
    return _SER.serialize(value)


def _serialize_item(item: Dict[str, Any]) -> Dict[str, Any]:
    """Serialize a plain dict, dropping None values (DynamoDB rejects empty sets)."""
    out: Dict[str, Any] = {}
    for k, v in item.items():
        if v is None:
            continue
        if isinstance(v, (set, frozenset)) and not v:
            continue
        out[k] = _serialize(v)
    return out


def _deserialize(item: Dict[str, Any]) -> Dict[str, Any]:
    """Deserialize a DynamoDB item to a plain Python dict."""
    out: Dict[str, Any] = {}
    for k, v in item.items():
        val = _DESER.deserialize(v)
        if isinstance(val, Decimal):
            val = int(val) if val == int(val) else float(val)
        out[k] = val
    return out


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def _iso_z(value: dt.datetime) -> str:
    """Format an aware datetime as ISO 8601 UTC with millisecond precision and Z suffix."""
    value = value.astimezone(dt.timezone.utc)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def _parse_iso(raw: Optional[str]) -> Optional[dt.datetime]:
    """Parse an ISO 8601 timestamp (Z or offset suffix) into an aware UTC datetime."""
    if not raw:
        return None
    text = str(raw).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = dt.datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=dt.timezone.utc)
    return parsed.astimezone(dt.timezone.utc)


def _now_z() -> str:
    """Current UTC timestamp in ISO 8601 format with Z suffix."""
    return _iso_z(_utcnow())
