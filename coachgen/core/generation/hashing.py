"""
Stable content addressing for generation inputs.

Two snapshots with the same logical content must hash the same, whatever
order their keys were inserted in. That property is what makes the cache
protocol work, so the canonical form is kept deliberately boring:
sorted-key JSON with compact separators.
"""

import hashlib
import json
from datetime import date, datetime
from enum import Enum
from typing import Any
from uuid import UUID

CIRCULAR_PLACEHOLDER = "[Circular]"


def _key(key: Any) -> str:
    if isinstance(key, Enum):
        key = key.value
    if not isinstance(key, str):
        # 1 and "1" would otherwise collapse into one JSON key
        raise TypeError(f"mapping keys must be strings, got {type(key).__name__}: {key!r}")
    return key


def _canonicalize(value: Any, ancestors: set[int]) -> Any:
    if isinstance(value, Enum):
        value = value.value
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, (UUID, datetime, date)):
        return str(value) if isinstance(value, UUID) else value.isoformat()

    marker = id(value)
    if marker in ancestors:
        return CIRCULAR_PLACEHOLDER

    ancestors.add(marker)
    try:
        if isinstance(value, dict):
            keyed = {_key(key): value[key] for key in value}
            if len(keyed) != len(value):
                raise TypeError("mapping has keys that collide once rendered as strings")
            return {
                key: _canonicalize(keyed[key], ancestors)
                for key in sorted(keyed)
            }
        if isinstance(value, (list, tuple)):
            return [_canonicalize(item, ancestors) for item in value]
        if isinstance(value, (set, frozenset)):
            items = [_canonicalize(item, ancestors) for item in value]
            return sorted(items, key=lambda item: json.dumps(item, sort_keys=True))
    finally:
        ancestors.discard(marker)

    return str(value)


def stable_stringify(value: Any) -> str:
    """Canonical JSON text for `value`."""
    return json.dumps(
        _canonicalize(value, set()),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )


def stable_hash(value: Any) -> str:
    """Hex SHA-256 of the canonical JSON form of `value`."""
    return hashlib.sha256(stable_stringify(value).encode("utf-8")).hexdigest()
