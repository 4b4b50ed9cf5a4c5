"""
SQLite version store for draft versioning.

This module keeps every draft version in a single SQLite file. Each row
carries a materialized root_id so that a whole family is one indexed
query, and version numbers are assigned inside a BEGIN IMMEDIATE
transaction backed by a unique constraint.

Invariants:
    - (root_id, version_number) is UNIQUE
    - Rows are never deleted
    - content_json and content_hash are written once, by create()
    - All writes run in explicit transactions

How to change safely:
    - Schema migrations must be backward compatible
    - Bump SCHEMA_VERSION and add an idempotent migration step
    - Keep behavior identical to InMemoryVersionStore

Table schema:
    draft_versions:
        - id TEXT PRIMARY KEY (UUID)
        - owner_id TEXT
        - name TEXT
        - version_number INTEGER
        - is_active INTEGER (0/1)
        - parent_id TEXT NULL
        - root_id TEXT
        - origin_source TEXT
        - template_id TEXT NULL
        - content_json TEXT
        - metadata_json TEXT
        - content_hash TEXT
        - created_at INTEGER (Unix ms)
        - updated_at INTEGER (Unix ms)
        - UNIQUE (root_id, version_number)
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from ..errors import InvariantViolation, NotFoundError, StorageFailure, VersionConflictError
from .base import DraftVersion, NewVersion, OriginSource, check_updatable

logger = logging.getLogger(__name__)


class SqliteVersionStore:
    """SQLite-backed implementation of VersionStore.

    Thread safety:
        Each operation opens its own connection. SQLite serializes
        writers; BEGIN IMMEDIATE takes the write lock before the next
        version number is read, so two appends to one family cannot
        observe the same maximum.

    Example:
        >>> store = SqliteVersionStore("/var/lib/draftvc")
        >>> await store.connect()
        >>> root = await store.create(new_version)
    """

    SCHEMA_VERSION = 1

    def __init__(
        self,
        data_dir: str,
        db_filename: str = "draft_versions.db",
        wal_mode: bool = True,
        busy_timeout_ms: int = 5000,
    ) -> None:
        """Initialize the store.

        Args:
            data_dir: Directory for the database file
            db_filename: Database file name
            wal_mode: Enable SQLite WAL mode
            busy_timeout_ms: SQLite busy timeout
        """
        self.data_dir = Path(data_dir)
        self.db_path = self.data_dir / db_filename
        self.wal_mode = wal_mode
        self.busy_timeout_ms = busy_timeout_ms
        self._connected = False
        self._lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        return self._connected

    @contextmanager
    def _get_connection(self, operation: str) -> Iterator[sqlite3.Connection]:
        """Open a configured connection, translating driver errors.

        Args:
            operation: Store operation name, recorded on StorageFailure

        Yields:
            SQLite connection in autocommit mode

        Raises:
            StorageFailure: If not connected or SQLite reports an error
        """
        if not self._connected:
            raise StorageFailure("Not connected", operation=operation)

        try:
            conn = sqlite3.connect(
                str(self.db_path),
                timeout=self.busy_timeout_ms / 1000.0,
                isolation_level=None,  # Autocommit by default, explicit transactions
            )
        except sqlite3.Error as e:
            logger.error(f"Failed to open version store: {e}", exc_info=True)
            raise StorageFailure(f"Failed to open database: {e}", operation=operation) from e

        conn.row_factory = sqlite3.Row
        try:
            conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
            if self.wal_mode:
                conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = NORMAL")
            yield conn
        except sqlite3.Error as e:
            logger.error(f"Version store {operation} failed: {e}", exc_info=True)
            raise StorageFailure(f"{operation} failed: {e}", operation=operation) from e
        finally:
            conn.close()

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        """Create database schema."""
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                applied_at INTEGER NOT NULL
            );

            CREATE TABLE IF NOT EXISTS draft_versions (
                id TEXT PRIMARY KEY,
                owner_id TEXT NOT NULL,
                name TEXT NOT NULL,
                version_number INTEGER NOT NULL CHECK (version_number >= 1),
                is_active INTEGER NOT NULL DEFAULT 1,
                parent_id TEXT REFERENCES draft_versions(id),
                root_id TEXT NOT NULL,
                origin_source TEXT NOT NULL,
                template_id TEXT,
                content_json TEXT NOT NULL DEFAULT '{}',
                metadata_json TEXT NOT NULL DEFAULT '{}',
                content_hash TEXT NOT NULL,
                created_at INTEGER NOT NULL,
                updated_at INTEGER NOT NULL,
                UNIQUE (root_id, version_number)
            );

            CREATE INDEX IF NOT EXISTS idx_versions_family
                ON draft_versions(owner_id, root_id, version_number);
            CREATE INDEX IF NOT EXISTS idx_versions_active
                ON draft_versions(owner_id, root_id, is_active);

            INSERT OR IGNORE INTO schema_version (version, applied_at)
            VALUES (1, strftime('%s', 'now') * 1000);
        """)

    async def connect(self) -> None:
        """Create the database file and schema if they don't exist."""
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageFailure(f"Cannot create data directory: {e}", operation="connect") from e

        self._connected = True
        async with self._lock:
            with self._get_connection("connect") as conn:
                self._create_schema(conn)
        logger.info(f"Version store ready: {self.db_path}")

    async def close(self) -> None:
        """Mark the store closed. Connections are per-operation."""
        self._connected = False

    async def create(self, fields: NewVersion) -> DraftVersion:
        """Insert a version with the next number in its family.

        Raises:
            NotFoundError: If parent_id is unknown for this owner
            VersionConflictError: If the unique version constraint fails
        """
        version_id = str(uuid.uuid4())
        now = int(time.time() * 1000)

        with self._get_connection("create") as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                if fields.parent_id is None:
                    root_id = version_id
                else:
                    cursor = conn.execute(
                        "SELECT root_id FROM draft_versions WHERE id = ? AND owner_id = ?",
                        (fields.parent_id, fields.owner_id),
                    )
                    parent = cursor.fetchone()
                    if parent is None:
                        conn.execute("ROLLBACK")
                        raise NotFoundError(
                            f"Parent version not found: {fields.parent_id}",
                            version_id=fields.parent_id,
                        )
                    root_id = parent["root_id"]

                cursor = conn.execute(
                    "SELECT COALESCE(MAX(version_number), 0) + 1 FROM draft_versions WHERE root_id = ?",
                    (root_id,),
                )
                version_number = cursor.fetchone()[0]

                conn.execute(
                    """
                    INSERT INTO draft_versions (id, owner_id, name, version_number, is_active,
                                                parent_id, root_id, origin_source, template_id,
                                                content_json, metadata_json, content_hash,
                                                created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        version_id,
                        fields.owner_id,
                        fields.name,
                        version_number,
                        int(fields.is_active),
                        fields.parent_id,
                        root_id,
                        fields.origin_source.value,
                        fields.template_id,
                        json.dumps(fields.content),
                        json.dumps(fields.metadata),
                        fields.content_hash,
                        now,
                        now,
                    ),
                )

                conn.execute("COMMIT")

            except NotFoundError:
                raise
            except sqlite3.IntegrityError as e:
                conn.execute("ROLLBACK")
                raise VersionConflictError(
                    f"Version number already taken in family {root_id}: {e}",
                    root_id=root_id,
                ) from e
            except Exception:
                conn.execute("ROLLBACK")
                raise

        logger.debug(
            "Created version",
            extra={"version_id": version_id, "root_id": root_id, "version_number": version_number},
        )

        return DraftVersion(
            id=version_id,
            owner_id=fields.owner_id,
            name=fields.name,
            version_number=version_number,
            is_active=fields.is_active,
            parent_id=fields.parent_id,
            root_id=root_id,
            origin_source=fields.origin_source,
            template_id=fields.template_id,
            content=json.loads(json.dumps(fields.content)),
            metadata=json.loads(json.dumps(fields.metadata)),
            content_hash=fields.content_hash,
            created_at=now,
            updated_at=now,
        )

    async def fetch_by_id(self, version_id: str, owner_id: str) -> DraftVersion | None:
        """Get one version by id."""
        with self._get_connection("fetch_by_id") as conn:
            cursor = conn.execute(
                "SELECT * FROM draft_versions WHERE id = ? AND owner_id = ?",
                (version_id, owner_id),
            )
            row = cursor.fetchone()
            return self._row_to_version(row) if row else None

    async def fetch_family(self, any_member_id: str, owner_id: str) -> list[DraftVersion]:
        """Get all versions of the member's family, ascending."""
        with self._get_connection("fetch_family") as conn:
            cursor = conn.execute(
                """
                SELECT f.* FROM draft_versions m
                JOIN draft_versions f ON f.root_id = m.root_id AND f.owner_id = m.owner_id
                WHERE m.id = ? AND m.owner_id = ?
                ORDER BY f.version_number ASC
                """,
                (any_member_id, owner_id),
            )
            return [self._row_to_version(row) for row in cursor.fetchall()]

    async def fetch_active_head(self, root_id: str, owner_id: str) -> DraftVersion | None:
        """Get the highest-numbered active version of a family."""
        with self._get_connection("fetch_active_head") as conn:
            cursor = conn.execute(
                """
                SELECT * FROM draft_versions
                WHERE root_id = ? AND owner_id = ? AND is_active = 1
                ORDER BY version_number DESC
                LIMIT 1
                """,
                (root_id, owner_id),
            )
            row = cursor.fetchone()
            return self._row_to_version(row) if row else None

    async def update_fields(
        self,
        version_id: str,
        owner_id: str,
        partial: dict[str, Any],
    ) -> bool:
        """Update non-content fields and updated_at."""
        check_updatable(partial)

        assignments = []
        params: list[Any] = []
        for key in sorted(partial):
            if key == "metadata":
                assignments.append("metadata_json = ?")
                params.append(json.dumps(partial[key]))
            else:
                assignments.append(f"{key} = ?")
                params.append(partial[key])
        assignments.append("updated_at = ?")
        params.append(int(time.time() * 1000))
        params.extend([version_id, owner_id])

        with self._get_connection("update_fields") as conn:
            cursor = conn.execute(
                f"UPDATE draft_versions SET {', '.join(assignments)} WHERE id = ? AND owner_id = ?",
                params,
            )
            return cursor.rowcount > 0

    async def set_active(self, version_id: str, owner_id: str, flag: bool) -> bool:
        """Set the tombstone flag."""
        with self._get_connection("set_active") as conn:
            cursor = conn.execute(
                "UPDATE draft_versions SET is_active = ? WHERE id = ? AND owner_id = ?",
                (int(flag), version_id, owner_id),
            )
            return cursor.rowcount > 0

    async def count_active(self, root_id: str, owner_id: str) -> int:
        """Count active versions in a family."""
        with self._get_connection("count_active") as conn:
            cursor = conn.execute(
                """
                SELECT COUNT(*) FROM draft_versions
                WHERE root_id = ? AND owner_id = ? AND is_active = 1
                """,
                (root_id, owner_id),
            )
            return cursor.fetchone()[0]

    async def deactivate_unless_last(self, version_id: str, owner_id: str) -> int | None:
        """Tombstone a version, keeping at least one active per family.

        Count and update share one BEGIN IMMEDIATE transaction.
        """
        with self._get_connection("deactivate_unless_last") as conn:
            conn.execute("BEGIN IMMEDIATE")
            try:
                cursor = conn.execute(
                    "SELECT root_id, is_active FROM draft_versions WHERE id = ? AND owner_id = ?",
                    (version_id, owner_id),
                )
                row = cursor.fetchone()
                if row is None:
                    conn.execute("ROLLBACK")
                    return None

                cursor = conn.execute(
                    """
                    SELECT COUNT(*) FROM draft_versions
                    WHERE root_id = ? AND owner_id = ? AND is_active = 1
                    """,
                    (row["root_id"], owner_id),
                )
                active = cursor.fetchone()[0]
                if not row["is_active"]:
                    conn.execute("ROLLBACK")
                    return active
                if active <= 1:
                    conn.execute("ROLLBACK")
                    raise InvariantViolation(
                        "LastActiveVersion",
                        "Cannot delete the only active version",
                    )

                conn.execute(
                    "UPDATE draft_versions SET is_active = 0 WHERE id = ?",
                    (version_id,),
                )
                conn.execute("COMMIT")
                return active - 1

            except InvariantViolation:
                raise
            except Exception:
                conn.execute("ROLLBACK")
                raise

    @staticmethod
    def _row_to_version(row: sqlite3.Row) -> DraftVersion:
        return DraftVersion(
            id=row["id"],
            owner_id=row["owner_id"],
            name=row["name"],
            version_number=row["version_number"],
            is_active=bool(row["is_active"]),
            parent_id=row["parent_id"],
            root_id=row["root_id"],
            origin_source=OriginSource(row["origin_source"]),
            template_id=row["template_id"],
            content=json.loads(row["content_json"]),
            metadata=json.loads(row["metadata_json"]),
            content_hash=row["content_hash"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )
