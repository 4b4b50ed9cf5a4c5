"""
Content hashing for change detection.

A draft's content hash is the SHA-256 of its canonical JSON form. Canonical
form sorts object keys at every nesting level and keeps array order, so two
documents that differ only in key insertion order hash identically while
any reordering of list items is a real change.

Invariants:
    - content_hash() is pure and deterministic
    - Arrays are order-significant, objects are not
    - Output is 64 lowercase hex characters

How to change safely:
    - Any change to canonical form changes every stored hash; existing
      rows would then look "changed" on their next save
"""

from __future__ import annotations

import hashlib
import json
from typing import Any


def canonicalize(value: Any) -> Any:
    """Return a copy of value with keys sorted at every level.

    Tuples become lists. Scalars are returned unchanged.

    Raises:
        TypeError: If a mapping key is not a string
    """
    if isinstance(value, dict):
        for key in value:
            if not isinstance(key, str):
                raise TypeError(f"Content keys must be strings, got {type(key).__name__}")
        return {key: canonicalize(value[key]) for key in sorted(value)}
    if isinstance(value, (list, tuple)):
        return [canonicalize(item) for item in value]
    return value


def canonical_json(value: Any) -> str:
    """Serialize value to its canonical compact JSON string.

    Raises:
        TypeError: If value contains non-JSON types
    """
    return json.dumps(
        canonicalize(value),
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    )


def content_hash(content: Any) -> str:
    """Compute the hex SHA-256 digest of canonicalized content."""
    return hashlib.sha256(canonical_json(content).encode("utf-8")).hexdigest()
