"""DynamoDB tip dönüşümleri (float <-> Decimal, typed item <-> python dict)."""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Optional

from boto3.dynamodb.types import TypeDeserializer, TypeSerializer

_serializer = TypeSerializer()
_deserializer = TypeDeserializer()


def to_dynamo(obj: Any) -> Any:
    """float değerleri DynamoDB'nin kabul ettiği Decimal'e çevirir."""
    if isinstance(obj, bool):
        return obj
    if isinstance(obj, float):
        return Decimal(str(obj))
    if isinstance(obj, dict):
        return {k: to_dynamo(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [to_dynamo(i) for i in obj]
    return obj


def from_dynamo(obj: Any) -> Any:
    if isinstance(obj, Decimal):
        return int(obj) if obj == int(obj) else float(obj)
    if isinstance(obj, dict):
        return {k: from_dynamo(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [from_dynamo(i) for i in obj]
    return obj


def serialize_value(value: Any) -> dict:
    return _serializer.serialize(to_dynamo(value))


def serialize_item(item: dict) -> dict:
    """Python dict'i low-level client formatına ({"S": ...}) çevirir."""
    return {k: serialize_value(v) for k, v in item.items()}


def deserialize_item(item: Optional[dict]) -> Optional[dict]:
    if item is None:
        return None
    return from_dynamo({k: _deserializer.deserialize(v) for k, v in item.items()})
