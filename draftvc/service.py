"""
Draft versioning service.

DraftVersioningService is the single entry point the application layer
uses. It wires the lineage resolver, comparator, engine and controller
over one injected VersionStore, so tests can swap in InMemoryVersionStore
and production can use SqliteVersionStore without any other change.
"""

from __future__ import annotations

import logging
from typing import Any

from .compare import Comparator, VersionComparison
from .config import ServiceConfig, VersioningConfig
from .controller import RestoreDeleteController
from .engine import CreateOutcome, VersionEngine
from .errors import NotFoundError
from .lineage import LineageResolver
from .store.base import DraftVersion, OriginSource, VersionStore, create_version_store

logger = logging.getLogger(__name__)


class DraftVersioningService:
    """Facade over the draft versioning components.

    Attributes:
        store: The injected version store
        config: Engine behavior settings

    Example:
        >>> service = DraftVersioningService(InMemoryVersionStore())
        >>> await service.start()
        >>> root = await service.create_draft("user:1", "CV", {"summary": "A"})
        >>> history = await service.get_version_history(root.id, "user:1")
    """

    def __init__(self, store: VersionStore, config: VersioningConfig | None = None) -> None:
        self.store = store
        self.config = config or VersioningConfig()

        self.resolver = LineageResolver(store, max_depth=self.config.max_lineage_depth)
        self.comparator = Comparator(
            store,
            allow_cross_family=self.config.allow_cross_family_compare,
            mode=self.config.section_diff_mode,
        )
        self.engine = VersionEngine(
            store,
            max_append_retries=self.config.max_append_retries,
            retry_delay_ms=self.config.retry_delay_ms,
        )
        self.controller = RestoreDeleteController(store, self.engine, self.resolver)

    @classmethod
    def from_config(cls, config: ServiceConfig) -> DraftVersioningService:
        """Build a service with the store selected by config.storage."""
        store = create_version_store(config.storage)
        logger.info(
            "Draft versioning service created",
            extra={"store_backend": config.storage.backend.value},
        )
        return cls(store, config.versioning)

    async def start(self) -> None:
        """Connect the store if needed."""
        if not self.store.is_connected:
            await self.store.connect()

    async def stop(self) -> None:
        """Close the store."""
        if self.store.is_connected:
            await self.store.close()

    async def create_draft(
        self,
        owner_id: str,
        name: str,
        content: dict[str, Any],
        metadata: dict[str, Any] | None = None,
        template_id: str | None = None,
        origin_source: OriginSource | str = OriginSource.MANUAL,
    ) -> DraftVersion:
        return await self.engine.create_draft(
            owner_id, name, content, metadata, template_id, origin_source
        )

    async def get_version(self, version_id: str, owner_id: str) -> DraftVersion:
        """Get one version.

        Raises:
            NotFoundError: If unknown for this owner
        """
        version = await self.store.fetch_by_id(version_id, owner_id)
        if version is None:
            raise NotFoundError(f"Version not found: {version_id}", version_id=version_id)
        return version

    async def create_version_if_changed(
        self,
        draft_id: str,
        content: dict[str, Any],
        metadata: dict[str, Any] | None,
        owner_id: str,
        origin_source: OriginSource | str = OriginSource.MANUAL,
    ) -> CreateOutcome:
        return await self.engine.create_version_if_changed(
            draft_id, content, metadata, owner_id, origin_source
        )

    async def update_draft_in_place(
        self,
        draft_id: str,
        partial: dict[str, Any],
        owner_id: str,
    ) -> DraftVersion:
        return await self.engine.update_draft_in_place(draft_id, partial, owner_id)

    async def get_version_history(self, draft_id: str, owner_id: str) -> list[DraftVersion]:
        return await self.resolver.get_history(draft_id, owner_id)

    async def get_latest_version(self, draft_id: str, owner_id: str) -> DraftVersion:
        """Head of the family containing draft_id."""
        return await self.resolver.resolve_family_head(draft_id, owner_id)

    async def compare_versions(
        self,
        version_id1: str,
        version_id2: str,
        owner_id: str,
    ) -> VersionComparison:
        return await self.comparator.compare(version_id1, version_id2, owner_id)

    async def restore_version(self, version_id: str, owner_id: str) -> CreateOutcome:
        return await self.controller.restore_version(version_id, owner_id)

    async def delete_version(self, version_id: str, owner_id: str) -> None:
        await self.controller.delete_version(version_id, owner_id)
