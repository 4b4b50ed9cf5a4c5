"""
In-memory version store implementation for testing.

This module provides a simple in-memory store for:
- Unit tests
- Integration tests
- Local development without a database file

Invariants:
    - All data is lost on process exit
    - Provides the same numbering and ordering guarantees as SQLite
    - Returned records are copies; callers cannot mutate stored content

How to change safely:
    - Keep behavior identical to SqliteVersionStore; the shared store
      tests run against both backends
    - Add features to help with testing scenarios
"""

from __future__ import annotations

import asyncio
import copy
import dataclasses
import logging
import time
import uuid
from collections import defaultdict
from typing import Any

from ..errors import InvariantViolation, NotFoundError, StorageFailure
from .base import DraftVersion, NewVersion, check_updatable

logger = logging.getLogger(__name__)


class InMemoryVersionStore:
    """In-memory implementation of VersionStore for testing.

    Rows are kept in a dict keyed by id, plus a per-family index keyed by
    root_id that plays the role of the SQLite (root_id, version_number)
    index.

    Thread safety:
        Writes are serialized with an asyncio lock. Safe to use from
        multiple coroutines.

    Example:
        >>> store = InMemoryVersionStore()
        >>> await store.connect()
        >>> version = await store.create(new_version)
    """

    def __init__(self) -> None:
        self._rows: dict[str, DraftVersion] = {}
        self._families: dict[str, list[str]] = defaultdict(list)
        self._connected = False
        self._lock = asyncio.Lock()
        self._failures: list[tuple[str | None, Exception]] = []
        self._clock_ms = 0

    @property
    def is_connected(self) -> bool:
        """Whether connected (always true after connect())."""
        return self._connected

    async def connect(self) -> None:
        """Connect (no-op for in-memory)."""
        self._connected = True
        logger.debug("InMemoryVersionStore connected")

    async def close(self) -> None:
        """Close and clear all data."""
        self._connected = False
        self._rows.clear()
        self._families.clear()
        self._failures.clear()
        logger.debug("InMemoryVersionStore closed")

    async def create(self, fields: NewVersion) -> DraftVersion:
        """Insert a version with the next number in its family."""
        self._before("create")

        async with self._lock:
            if fields.parent_id is None:
                version_id = str(uuid.uuid4())
                root_id = version_id
            else:
                parent = self._rows.get(fields.parent_id)
                if parent is None or parent.owner_id != fields.owner_id:
                    raise NotFoundError(
                        f"Parent version not found: {fields.parent_id}",
                        version_id=fields.parent_id,
                    )
                version_id = str(uuid.uuid4())
                root_id = parent.root_id

            family = self._families[root_id]
            version_number = len(family) + 1
            now = self._now()

            version = DraftVersion(
                id=version_id,
                owner_id=fields.owner_id,
                name=fields.name,
                version_number=version_number,
                is_active=fields.is_active,
                parent_id=fields.parent_id,
                root_id=root_id,
                origin_source=fields.origin_source,
                template_id=fields.template_id,
                content=copy.deepcopy(fields.content),
                metadata=copy.deepcopy(fields.metadata),
                content_hash=fields.content_hash,
                created_at=now,
                updated_at=now,
            )
            self._rows[version_id] = version
            family.append(version_id)

        logger.debug(
            "Version created in memory",
            extra={"version_id": version_id, "root_id": root_id, "version_number": version_number},
        )
        return self._copy(version)

    async def fetch_by_id(self, version_id: str, owner_id: str) -> DraftVersion | None:
        """Get one version by id."""
        self._before("fetch_by_id")
        row = self._owned(version_id, owner_id)
        return self._copy(row) if row else None

    async def fetch_family(self, any_member_id: str, owner_id: str) -> list[DraftVersion]:
        """Get all versions of the member's family, ascending."""
        self._before("fetch_family")
        member = self._owned(any_member_id, owner_id)
        if member is None:
            return []
        return [
            self._copy(self._rows[vid])
            for vid in self._families[member.root_id]
            if self._rows[vid].owner_id == owner_id
        ]

    async def fetch_active_head(self, root_id: str, owner_id: str) -> DraftVersion | None:
        """Get the highest-numbered active version of a family."""
        self._before("fetch_active_head")
        for vid in reversed(self._families.get(root_id, [])):
            row = self._rows[vid]
            if row.owner_id == owner_id and row.is_active:
                return self._copy(row)
        return None

    async def update_fields(
        self,
        version_id: str,
        owner_id: str,
        partial: dict[str, Any],
    ) -> bool:
        """Update non-content fields and updated_at."""
        check_updatable(partial)
        self._before("update_fields")

        async with self._lock:
            row = self._owned(version_id, owner_id)
            if row is None:
                return False
            changes = {key: copy.deepcopy(value) for key, value in partial.items()}
            self._rows[version_id] = dataclasses.replace(
                row, **changes, updated_at=self._now()
            )
        return True

    async def set_active(self, version_id: str, owner_id: str, flag: bool) -> bool:
        """Set the tombstone flag."""
        self._before("set_active")

        async with self._lock:
            row = self._owned(version_id, owner_id)
            if row is None:
                return False
            self._rows[version_id] = dataclasses.replace(row, is_active=flag)
        return True

    async def count_active(self, root_id: str, owner_id: str) -> int:
        """Count active versions in a family."""
        self._before("count_active")
        return sum(
            1
            for vid in self._families.get(root_id, [])
            if self._rows[vid].owner_id == owner_id and self._rows[vid].is_active
        )

    async def deactivate_unless_last(self, version_id: str, owner_id: str) -> int | None:
        """Tombstone a version, keeping at least one active per family."""
        self._before("deactivate_unless_last")

        async with self._lock:
            row = self._owned(version_id, owner_id)
            if row is None:
                return None
            active = [
                vid
                for vid in self._families.get(row.root_id, [])
                if self._rows[vid].owner_id == owner_id and self._rows[vid].is_active
            ]
            if not row.is_active:
                return len(active)
            if len(active) <= 1:
                raise InvariantViolation(
                    "LastActiveVersion",
                    "Cannot delete the only active version",
                )
            self._rows[version_id] = dataclasses.replace(row, is_active=False)
            return len(active) - 1

    def _before(self, operation: str) -> None:
        if not self._connected:
            raise StorageFailure("Not connected", operation=operation)
        for index, (target, exc) in enumerate(self._failures):
            if target is None or target == operation:
                del self._failures[index]
                raise exc

    def _owned(self, version_id: str, owner_id: str) -> DraftVersion | None:
        row = self._rows.get(version_id)
        if row is None or row.owner_id != owner_id:
            return None
        return row

    def _now(self) -> int:
        # Strictly increasing so updated_at always moves forward within a test
        self._clock_ms = max(self._clock_ms + 1, int(time.time() * 1000))
        return self._clock_ms

    @staticmethod
    def _copy(row: DraftVersion) -> DraftVersion:
        return dataclasses.replace(
            row,
            content=copy.deepcopy(row.content),
            metadata=copy.deepcopy(row.metadata),
        )

    # Testing helpers

    def inject_failure(self, exception: Exception, operation: str | None = None) -> None:
        """Make the next matching operation raise exception.

        Args:
            exception: Exception to raise
            operation: Store method name to target (None = next operation of any kind)
        """
        self._failures.append((operation, exception))

    def get_row_count(self) -> int:
        """Total number of stored versions, including tombstones (testing helper)."""
        return len(self._rows)
