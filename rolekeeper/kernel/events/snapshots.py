"""
JSON-safe entity snapshots for audit before/after states.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict

from sqlalchemy import inspect

from rolekeeper.kernel.models.base import as_utc


def serialize_value(value: Any) -> Any:
    """Convert a value to something json.dumps accepts."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, datetime):
        return as_utc(value).isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, dict):
        return {str(k): serialize_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [serialize_value(v) for v in value]
    return value


def snapshot(entity: Any) -> Dict[str, Any]:
    """
    Column values of a mapped instance as currently loaded.

    Reads the instance dict directly so an expired or unloaded attribute is
    skipped instead of triggering a lazy load.
    """
    state = inspect(entity)
    loaded = state.dict
    data: Dict[str, Any] = {}
    for attr in state.mapper.column_attrs:
        if attr.key in loaded:
            data[attr.key] = serialize_value(loaded[attr.key])
    return data


def changed_fields(before: Dict[str, Any], after: Dict[str, Any]) -> Dict[str, Any]:
    """Keys whose value differs between two snapshots, as {key: [old, new]}."""
    keys = set(before) | set(after)
    return {
        key: [before.get(key), after.get(key)]
        for key in sorted(keys)
        if before.get(key) != after.get(key)
    }
