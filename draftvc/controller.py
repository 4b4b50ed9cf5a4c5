"""
Restore and delete controller for draft versions.

Neither operation rewrites history:
- restore_version replays an old version's content on top of the current
  head, producing a new version (or NoChange if the head already has it)
- delete_version tombstones a version by clearing is_active

Invariants:
    - A family always keeps at least one active version
    - Restored versions carry origin_source = restore
    - Deletion changes is_active only; numbering and content are untouched
"""

from __future__ import annotations

import logging

from .engine import CreateOutcome, VersionEngine
from .errors import NotFoundError
from .lineage import LineageResolver
from .store.base import OriginSource, VersionStore

logger = logging.getLogger(__name__)


class RestoreDeleteController:
    """Restores prior content and soft-deletes versions.

    Example:
        >>> controller = RestoreDeleteController(store, engine, resolver)
        >>> outcome = await controller.restore_version(old_id, "user:1")
        >>> await controller.delete_version(old_id, "user:1")
    """

    def __init__(
        self,
        store: VersionStore,
        engine: VersionEngine,
        resolver: LineageResolver,
    ) -> None:
        self.store = store
        self.engine = engine
        self.resolver = resolver

    async def restore_version(self, version_id: str, owner_id: str) -> CreateOutcome:
        """Append the content of version_id as the family's newest version.

        Soft-deleted versions may be restored.

        Raises:
            NotFoundError: If the version is unknown or the family has no active head
        """
        target = await self.store.fetch_by_id(version_id, owner_id)
        if target is None:
            raise NotFoundError(f"Version not found: {version_id}", version_id=version_id)

        head = await self.resolver.resolve_family_head(target.id, owner_id)

        outcome = await self.engine.create_version_if_changed(
            head.id,
            target.content,
            target.metadata,
            owner_id,
            origin_source=OriginSource.RESTORE,
        )

        logger.info(
            "Restore requested",
            extra={
                "restored_from": target.id,
                "head_id": head.id,
                "created": outcome.created,
                "version_id": outcome.version_id,
            },
        )
        return outcome

    async def delete_version(self, version_id: str, owner_id: str) -> None:
        """Soft-delete a version.

        Deleting an already-deleted version is a no-op.

        Raises:
            NotFoundError: If the version is unknown
            InvariantViolation: If it is the family's only active version
        """
        target = await self.store.fetch_by_id(version_id, owner_id)
        if target is None:
            raise NotFoundError(f"Version not found: {version_id}", version_id=version_id)

        if not target.is_active:
            logger.debug("Version already deleted", extra={"version_id": version_id})
            return

        remaining = await self.store.deactivate_unless_last(version_id, owner_id)
        if remaining is None:
            raise NotFoundError(f"Version not found: {version_id}", version_id=version_id)

        logger.info(
            "Deleted version",
            extra={"version_id": version_id, "root_id": target.root_id, "remaining_active": remaining},
        )
