"""
Version-creation engine for drafts.

The engine owns every write that produces a draft version:
- create_draft: start a new family with a root version
- create_version_if_changed: append a version only when content changed
- update_draft_in_place: edit display fields without creating a version

Change detection compares content hashes, so saving the same content twice
writes nothing. The outcome of a save is explicit: VersionCreated or
NoChange. Store failures are raised, never folded into NoChange.

Invariants:
    - Zero writes on NoChange, exactly one successful create otherwise
    - A new version inherits name and template_id from its parent
    - content and content_hash are never modified in place
    - Version numbers come from the store; the engine never computes them

How to change safely:
    - Keep the hash comparison against the record being saved over,
      not against the family head
    - Test retry paths with InMemoryVersionStore.inject_failure()
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Union

from .errors import (
    ForbiddenError,
    NotFoundError,
    ValidationError,
    VersionConflictError,
)
from .hashing import canonical_json, content_hash
from .store.base import UPDATABLE_FIELDS, DraftVersion, NewVersion, OriginSource, VersionStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VersionCreated:
    """A new version was appended."""

    version: DraftVersion

    created = True

    @property
    def version_id(self) -> str:
        return self.version.id


@dataclass(frozen=True)
class NoChange:
    """Content hash matched; nothing was written.

    Attributes:
        current: The record whose content already matches
    """

    current: DraftVersion

    created = False

    @property
    def version_id(self) -> str:
        return self.current.id


CreateOutcome = Union[VersionCreated, NoChange]


def _origin(value: OriginSource | str) -> OriginSource:
    try:
        return OriginSource(value)
    except ValueError:
        raise ValidationError(f"Unknown origin source: {value!r}", field_name="origin_source")


def _hash_content(content: Any) -> str:
    if not isinstance(content, dict):
        raise ValidationError("Draft content must be an object", field_name="content")
    try:
        return content_hash(content)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Draft content is not JSON-serializable: {e}", field_name="content")


def _check_name(name: Any) -> None:
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("Draft name must be a non-empty string", field_name="name")


def _check_template_id(template_id: Any) -> None:
    if template_id is not None and not isinstance(template_id, str):
        raise ValidationError("template_id must be a string or null", field_name="template_id")


def _check_metadata(metadata: Any) -> dict[str, Any]:
    """Return metadata as a JSON-serializable object, {} for None."""
    if metadata is None:
        return {}
    if not isinstance(metadata, dict):
        raise ValidationError("Draft metadata must be an object", field_name="metadata")
    try:
        canonical_json(metadata)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Draft metadata is not JSON-serializable: {e}", field_name="metadata")
    return metadata


class VersionEngine:
    """Change-gated creation of draft versions.

    Example:
        >>> engine = VersionEngine(store)
        >>> root = await engine.create_draft("user:1", "My CV", {"summary": "A"})
        >>> outcome = await engine.create_version_if_changed(
        ...     root.id, {"summary": "B"}, {}, "user:1"
        ... )
        >>> outcome.created
        True
    """

    def __init__(
        self,
        store: VersionStore,
        max_append_retries: int = 3,
        retry_delay_ms: int = 50,
    ) -> None:
        """Initialize the engine.

        Args:
            store: Version store to write to
            max_append_retries: Retries after a VersionConflictError
            retry_delay_ms: Base retry delay, doubled per attempt
        """
        self.store = store
        self.max_append_retries = max_append_retries
        self.retry_delay_ms = retry_delay_ms

    async def create_draft(
        self,
        owner_id: str,
        name: str,
        content: dict[str, Any],
        metadata: dict[str, Any] | None = None,
        template_id: str | None = None,
        origin_source: OriginSource | str = OriginSource.MANUAL,
    ) -> DraftVersion:
        """Create the root version of a new draft family.

        Raises:
            ValidationError: If name is empty, content is not a JSON object,
                or metadata is not JSON-serializable
        """
        _check_name(name)
        _check_template_id(template_id)
        metadata = _check_metadata(metadata)

        version = await self.store.create(
            NewVersion(
                owner_id=owner_id,
                name=name,
                content=content,
                content_hash=_hash_content(content),
                parent_id=None,
                origin_source=_origin(origin_source),
                template_id=template_id,
                metadata=metadata,
            )
        )

        logger.info(
            "Created draft",
            extra={"owner_id": owner_id, "root_id": version.id, "origin": version.origin_source.value},
        )
        return version

    async def create_version_if_changed(
        self,
        draft_id: str,
        content: dict[str, Any],
        metadata: dict[str, Any] | None,
        owner_id: str,
        origin_source: OriginSource | str = OriginSource.MANUAL,
    ) -> CreateOutcome:
        """Append a version derived from draft_id if content changed.

        Args:
            draft_id: Version the new content is derived from
            content: New document content
            metadata: New metadata (not part of change detection)
            owner_id: Owner identifier
            origin_source: How the content was produced

        Returns:
            VersionCreated with the new version, or NoChange

        Raises:
            NotFoundError: If draft_id is unknown for this owner
            ValidationError: If content or metadata is not a JSON object
            StorageFailure: If the store fails (VersionConflictError once
                retries are exhausted)
        """
        origin = _origin(origin_source)
        metadata = _check_metadata(metadata)
        current = await self.store.fetch_by_id(draft_id, owner_id)
        if current is None:
            raise NotFoundError(f"Draft not found: {draft_id}", version_id=draft_id)

        new_hash = _hash_content(content)
        if new_hash == current.content_hash:
            logger.debug(
                "No content change detected, skipping version creation",
                extra={"version_id": current.id, "content_hash": new_hash},
            )
            return NoChange(current)

        version = await self._append(
            NewVersion(
                owner_id=owner_id,
                name=current.name,
                content=content,
                content_hash=new_hash,
                parent_id=current.id,
                origin_source=origin,
                template_id=current.template_id,
                metadata=metadata,
            )
        )

        logger.info(
            f"Created version {version.version_number} for draft {current.name}",
            extra={
                "version_id": version.id,
                "parent_id": current.id,
                "root_id": version.root_id,
                "origin": origin.value,
            },
        )
        return VersionCreated(version)

    async def update_draft_in_place(
        self,
        draft_id: str,
        partial: dict[str, Any],
        owner_id: str,
    ) -> DraftVersion:
        """Update display fields of a version without creating a new one.

        Args:
            draft_id: Version identifier
            partial: Subset of name, template_id, metadata
            owner_id: Owner identifier

        Returns:
            The updated version

        Raises:
            ValidationError: If partial is empty or a value has the wrong
                type (name must be a non-empty string, template_id a string
                or null, metadata a JSON-serializable object)
            ForbiddenError: If partial names any other field
            NotFoundError: If draft_id is unknown for this owner
        """
        if not partial:
            raise ValidationError("Nothing to update")

        forbidden = sorted(set(partial) - UPDATABLE_FIELDS)
        if forbidden:
            raise ForbiddenError(
                f"Fields can only change through a new version: {forbidden}",
                fields=forbidden,
            )
        if "name" in partial:
            _check_name(partial["name"])
        if "template_id" in partial:
            _check_template_id(partial["template_id"])
        if "metadata" in partial:
            if partial["metadata"] is None:
                raise ValidationError("Draft metadata must be an object", field_name="metadata")
            _check_metadata(partial["metadata"])

        updated = await self.store.update_fields(draft_id, owner_id, partial)
        if not updated:
            raise NotFoundError(f"Draft not found: {draft_id}", version_id=draft_id)

        version = await self.store.fetch_by_id(draft_id, owner_id)
        if version is None:
            raise NotFoundError(f"Draft not found: {draft_id}", version_id=draft_id)

        logger.debug(
            "Updated draft in place",
            extra={"version_id": draft_id, "fields": sorted(partial)},
        )
        return version

    async def _append(self, fields: NewVersion) -> DraftVersion:
        """Create a version, retrying when another writer won the number."""
        attempt = 0
        while True:
            try:
                return await self.store.create(fields)
            except VersionConflictError:
                if attempt >= self.max_append_retries:
                    logger.error(
                        "Version append conflict, retries exhausted",
                        extra={"parent_id": fields.parent_id, "attempts": attempt + 1},
                    )
                    raise
                delay = self.retry_delay_ms * (2 ** attempt) / 1000.0
                attempt += 1
                logger.warning(
                    f"Version conflict detected (attempt {attempt}/{self.max_append_retries})",
                    extra={"parent_id": fields.parent_id},
                )
                await asyncio.sleep(delay)
