"""
Base protocol and types for the version store abstraction.

This module defines the VersionStore protocol that all backends must
implement, along with the DraftVersion record and the NewVersion request
the engine hands to create().

The store is the only component that performs I/O. Everything above it
(lineage resolver, engine, controller, comparator) is stateless and talks
to the store exclusively through this protocol.

Invariants:
    - Every query is scoped by owner_id
    - version_number is assigned by the store, never by callers
    - (root_id, version_number) is unique
    - Rows are never deleted; is_active is a tombstone flag
    - content and content_hash never change after create()

How to change safely:
    - Protocol changes require updating all implementations
    - Keep the memory and SQLite backends behaviorally identical; the
      shared store tests run against both
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ..config import StorageConfig


class OriginSource(str, Enum):
    """How a version was produced."""

    MANUAL = "manual"
    AI = "ai"
    RESTORE = "restore"
    IMPORT = "import"


# Fields update_fields() may change. Everything else changes only through
# a new version, restore, or set_active().
UPDATABLE_FIELDS = frozenset({"name", "template_id", "metadata"})


@dataclass(frozen=True)
class DraftVersion:
    """One immutable-in-content snapshot of a draft.

    Attributes:
        id: Store-assigned identifier (UUID string)
        owner_id: User who owns the whole family
        name: Display name, copied forward across versions
        version_number: Position within the family, starting at 1
        is_active: False once soft-deleted
        parent_id: Version this one was derived from (None for the root)
        root_id: Id of the family root (equals id for the root itself)
        origin_source: How the version was produced
        template_id: Formatting template reference, opaque here
        content: Structured document (summary, skills, experience, ...)
        metadata: Free-form auxiliary data, not hashed
        content_hash: Hex SHA-256 of canonicalized content
        created_at: Creation timestamp (Unix ms)
        updated_at: Last update timestamp (Unix ms)
    """

    id: str
    owner_id: str
    name: str
    version_number: int
    is_active: bool
    parent_id: str | None
    root_id: str
    origin_source: OriginSource
    template_id: str | None
    content: dict[str, Any]
    metadata: dict[str, Any]
    content_hash: str
    created_at: int
    updated_at: int

    @property
    def is_root(self) -> bool:
        """Whether this version starts its family."""
        return self.parent_id is None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "name": self.name,
            "version_number": self.version_number,
            "is_active": self.is_active,
            "parent_id": self.parent_id,
            "root_id": self.root_id,
            "origin_source": self.origin_source.value,
            "template_id": self.template_id,
            "content": self.content,
            "metadata": self.metadata,
            "content_hash": self.content_hash,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DraftVersion:
        """Create from dictionary."""
        return cls(
            id=data["id"],
            owner_id=data["owner_id"],
            name=data["name"],
            version_number=data["version_number"],
            is_active=bool(data["is_active"]),
            parent_id=data.get("parent_id"),
            root_id=data["root_id"],
            origin_source=OriginSource(data["origin_source"]),
            template_id=data.get("template_id"),
            content=data.get("content") or {},
            metadata=data.get("metadata") or {},
            content_hash=data["content_hash"],
            created_at=data["created_at"],
            updated_at=data["updated_at"],
        )

    def __str__(self) -> str:
        return f"DraftVersion(id={self.id}, v{self.version_number}, root={self.root_id})"


@dataclass
class NewVersion:
    """Fields supplied by the caller when creating a version.

    The store fills in id, version_number, root_id and timestamps.

    Attributes:
        owner_id: Owner of the family
        name: Display name
        content: Structured document
        content_hash: Precomputed hash of content
        parent_id: Parent version (None creates a new family)
        origin_source: How the version was produced
        template_id: Template reference
        metadata: Free-form auxiliary data
        is_active: Initial tombstone state
    """

    owner_id: str
    name: str
    content: dict[str, Any]
    content_hash: str
    parent_id: str | None = None
    origin_source: OriginSource = OriginSource.MANUAL
    template_id: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    is_active: bool = True


@runtime_checkable
class VersionStore(Protocol):
    """Protocol for version store backends.

    Ordering contract:
        - fetch_family() returns ascending version_number
        - fetch_active_head() returns the highest active version_number

    Numbering contract:
        - create() assigns max(version_number in family) + 1 atomically
        - A losing concurrent create raises VersionConflictError

    Errors:
        - Backend I/O errors surface as StorageFailure
        - Missing rows are reported as None / False / 0, not exceptions,
          except create() with an unknown parent (NotFoundError)

    Example:
        >>> store = InMemoryVersionStore()
        >>> await store.connect()
        >>> root = await store.create(NewVersion(owner_id="u1", name="CV",
        ...                                      content={}, content_hash=h))
        >>> root.version_number
        1
    """

    @abstractmethod
    async def connect(self) -> None:
        """Open the backend. Must be called before any other operation.

        Raises:
            StorageFailure: If the backend cannot be opened
        """
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release backend resources."""
        ...

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Whether connect() has been called and close() has not."""
        ...

    @abstractmethod
    async def create(self, fields: NewVersion) -> DraftVersion:
        """Insert a version, assigning id, version_number, root_id and timestamps.

        Raises:
            NotFoundError: If parent_id is unknown for this owner
            VersionConflictError: If another writer took the version number
            StorageFailure: For other write failures
        """
        ...

    @abstractmethod
    async def fetch_by_id(self, version_id: str, owner_id: str) -> DraftVersion | None:
        """Get one version by id, or None."""
        ...

    @abstractmethod
    async def fetch_family(self, any_member_id: str, owner_id: str) -> list[DraftVersion]:
        """Get every version in the member's family, ascending by version_number.

        Includes soft-deleted rows. Returns an empty list for an unknown id.
        """
        ...

    @abstractmethod
    async def fetch_active_head(self, root_id: str, owner_id: str) -> DraftVersion | None:
        """Get the active version with the highest version_number, or None."""
        ...

    @abstractmethod
    async def update_fields(
        self,
        version_id: str,
        owner_id: str,
        partial: dict[str, Any],
    ) -> bool:
        """Update non-content fields and updated_at.

        Args:
            version_id: Version identifier
            owner_id: Owner identifier
            partial: Subset of UPDATABLE_FIELDS

        Returns:
            True if a row was updated, False if not found

        Raises:
            ValueError: If partial names a field outside UPDATABLE_FIELDS
        """
        ...

    @abstractmethod
    async def set_active(self, version_id: str, owner_id: str, flag: bool) -> bool:
        """Set the tombstone flag. Returns False if not found."""
        ...

    @abstractmethod
    async def count_active(self, root_id: str, owner_id: str) -> int:
        """Count active versions in the family rooted at root_id."""
        ...

    @abstractmethod
    async def deactivate_unless_last(self, version_id: str, owner_id: str) -> int | None:
        """Tombstone a version unless it is its family's only active one.

        The count and the update happen atomically, so concurrent calls
        can never leave a family with zero active versions. A version that
        is already inactive is left as is.

        Returns:
            Active versions remaining in the family, or None if not found

        Raises:
            InvariantViolation: If the version is the only active one
        """
        ...


def check_updatable(partial: dict[str, Any]) -> None:
    """Reject partials naming fields outside UPDATABLE_FIELDS.

    Raises:
        ValueError: On the first disallowed field
    """
    extra = sorted(set(partial) - UPDATABLE_FIELDS)
    if extra:
        raise ValueError(f"Fields cannot be updated in place: {extra}")


def create_version_store(config: "StorageConfig") -> VersionStore:
    """Factory function to create a version store from configuration.

    Args:
        config: Storage configuration

    Returns:
        Appropriate VersionStore implementation

    Raises:
        ValueError: If backend is not supported
    """
    from ..config import StoreBackend
    from .memory import InMemoryVersionStore
    from .sqlite import SqliteVersionStore

    if config.backend == StoreBackend.MEMORY:
        return InMemoryVersionStore()
    elif config.backend == StoreBackend.SQLITE:
        return SqliteVersionStore(
            data_dir=config.data_dir,
            db_filename=config.db_filename,
            wal_mode=config.wal_mode,
            busy_timeout_ms=config.busy_timeout_ms,
        )
    else:
        raise ValueError(f"Unsupported store backend: {config.backend}")
