"""
Lineage resolution for draft version families.

A family is every version reachable through parent_id links from one root
(parent_id is None). The resolver answers three questions for any member:
which version is the root, which version is the current head, and what is
the full history.

Head means the active (non-tombstoned) version with the highest
version_number. is_active carries no "currently selected" meaning, so a
family may hold several active versions and the newest one wins.

Invariants:
    - resolve_root() follows parent links and never trusts a cached root
    - History is ascending by version_number and includes tombstones
"""

from __future__ import annotations

import logging

from .errors import InvariantViolation, NotFoundError
from .store.base import DraftVersion, VersionStore

logger = logging.getLogger(__name__)


class LineageResolver:
    """Locates the root, head and history of a version's family.

    Example:
        >>> resolver = LineageResolver(store)
        >>> root_id = await resolver.resolve_root(version_id, "user:1")
        >>> head = await resolver.resolve_head(root_id, "user:1")
    """

    def __init__(self, store: VersionStore, max_depth: int = 10000) -> None:
        """Initialize the resolver.

        Args:
            store: Version store to read from
            max_depth: Maximum parent links followed before giving up
        """
        self.store = store
        self.max_depth = max_depth

    async def resolve_root(self, version_id: str, owner_id: str) -> str:
        """Walk parent links to the family root.

        Args:
            version_id: Any member of the family
            owner_id: Owner identifier

        Returns:
            Id of the version whose parent_id is None

        Raises:
            NotFoundError: If the version or one of its ancestors is missing
            InvariantViolation: If the parent chain loops or is too deep
        """
        seen: set[str] = set()
        current_id = version_id

        while True:
            if current_id in seen or len(seen) >= self.max_depth:
                logger.error(
                    "Lineage walk aborted",
                    extra={"version_id": version_id, "steps": len(seen)},
                )
                raise InvariantViolation(
                    "LineageCycle",
                    f"Parent chain of {version_id} loops or exceeds {self.max_depth} links",
                )
            seen.add(current_id)

            version = await self.store.fetch_by_id(current_id, owner_id)
            if version is None:
                raise NotFoundError(f"Version not found: {current_id}", version_id=current_id)
            if version.parent_id is None:
                return version.id
            current_id = version.parent_id

    async def resolve_head(self, root_id: str, owner_id: str) -> DraftVersion:
        """Get the current head of a family.

        Raises:
            NotFoundError: If the family has no active version
        """
        head = await self.store.fetch_active_head(root_id, owner_id)
        if head is None:
            raise NotFoundError(f"No active version in family {root_id}", version_id=root_id)
        return head

    async def resolve_family_head(self, version_id: str, owner_id: str) -> DraftVersion:
        """Get the head of the family containing version_id."""
        root_id = await self.resolve_root(version_id, owner_id)
        return await self.resolve_head(root_id, owner_id)

    async def get_history(self, any_member_id: str, owner_id: str) -> list[DraftVersion]:
        """Get every version in the family, ascending by version_number.

        Raises:
            NotFoundError: If any_member_id is unknown for this owner
        """
        family = await self.store.fetch_family(any_member_id, owner_id)
        if not family:
            raise NotFoundError(f"Version not found: {any_member_id}", version_id=any_member_id)
        return family
