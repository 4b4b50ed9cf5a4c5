"""
Version store abstraction for draft versioning.

This module provides a pluggable store interface supporting:
- SQLite (durable, single file)
- In-memory (for testing)

The store is the only component that performs I/O. The versioning engine
receives a store instance through its constructor and never builds
store-specific queries itself.

Invariants:
    - Version numbers are assigned by the store, atomically per family
    - Rows are never removed; deletion is a tombstone flag
    - Backend errors surface as StorageFailure

How to change safely:
    - New backends must implement the VersionStore protocol
    - Run tests/unit/test_stores.py against the new backend
"""

from .base import (
    UPDATABLE_FIELDS,
    DraftVersion,
    NewVersion,
    OriginSource,
    VersionStore,
    create_version_store,
)
from .memory import InMemoryVersionStore
from .sqlite import SqliteVersionStore

__all__ = [
    # Protocol and types
    "VersionStore",
    "DraftVersion",
    "NewVersion",
    "OriginSource",
    "UPDATABLE_FIELDS",
    # Factory
    "create_version_store",
    # Implementations
    "InMemoryVersionStore",
    "SqliteVersionStore",
]
