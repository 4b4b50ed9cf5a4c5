"""
Side-by-side comparison of two draft versions.

The comparator reports what changed between two versions of a draft:
- summary: old/new text when the summary strings differ. A missing or
  null summary counts as "", so it equals an empty one.
- skills: skills added and removed (set semantics, first-seen order).
  Skills must be scalars (strings, numbers, booleans); a missing or null
  list counts as empty.
- experience / education / projects: added, removed and modified items

List sections are diffed in one of two modes:
- KEYED: items are matched by a stable identifier (employment_id, id,
  name) and compared field by field. Items without an identifier are
  matched by canonical content, and leftovers at the same position are
  reported as modified.
- COUNT: only the item counts are compared; modified is always 0.

Invariants:
    - compare(v, v) is empty
    - The comparator never writes
    - The two versions are read concurrently
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any

from .config import SectionDiffMode
from .errors import ComparisonInputError
from .hashing import canonical_json
from .store.base import DraftVersion, VersionStore

logger = logging.getLogger(__name__)

# Stable identifier fields per list section, tried in order
SECTION_KEYS: dict[str, tuple[str, ...]] = {
    "experience": ("employment_id", "id"),
    "education": ("id",),
    "projects": ("id", "name"),
}


@dataclass(frozen=True)
class TextChange:
    """A changed text field."""

    old: str
    new: str


@dataclass(frozen=True)
class SkillsDiff:
    """Skills present in only one of the two versions."""

    added: list[str]
    removed: list[str]


@dataclass(frozen=True)
class FieldChange:
    """One field of a modified list item."""

    field: str
    old: Any
    new: Any


@dataclass
class ItemChange:
    """One added, removed or modified list item.

    Attributes:
        key: Identifier label ("employment_id=e1") or position ("#2")
        kind: "added", "removed" or "modified"
        changes: Per-field changes (modified items only)
    """

    key: str
    kind: str
    changes: list[FieldChange] = field(default_factory=list)


@dataclass
class SectionDiff:
    """Change counts for a list-valued section.

    items is only populated in KEYED mode.
    """

    added: int = 0
    removed: int = 0
    modified: int = 0
    items: list[ItemChange] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return self.added == 0 and self.removed == 0 and self.modified == 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "added": self.added,
            "removed": self.removed,
            "modified": self.modified,
            "items": [
                {
                    "key": item.key,
                    "kind": item.kind,
                    "changes": [
                        {"field": c.field, "old": c.old, "new": c.new} for c in item.changes
                    ],
                }
                for item in self.items
            ],
        }


@dataclass
class VersionComparison:
    """Result of comparing version1 (old side) with version2 (new side).

    Attributes:
        version1: Old side
        version2: New side
        summary: Present only if summaries differ
        skills: Present only if any skill was added or removed
        sections: Non-empty section diffs, keyed by section name
        template_changed: Whether template_id differs
        same_family: Whether both versions share a root
    """

    version1: DraftVersion
    version2: DraftVersion
    summary: TextChange | None = None
    skills: SkillsDiff | None = None
    sections: dict[str, SectionDiff] = field(default_factory=dict)
    template_changed: bool = False
    same_family: bool = True

    @property
    def is_empty(self) -> bool:
        """Whether the two contents are equivalent for every compared section."""
        return self.summary is None and self.skills is None and not self.sections

    def section(self, name: str) -> SectionDiff:
        """Diff for one section; an all-zero diff if it did not change."""
        return self.sections.get(name) or SectionDiff()

    def differences(self) -> dict[str, Any]:
        """Differences in the shape the UI layer consumes."""
        result: dict[str, Any] = {}
        if self.summary is not None:
            result["summary"] = {"old": self.summary.old, "new": self.summary.new}
        if self.skills is not None:
            result["skills"] = {"added": self.skills.added, "removed": self.skills.removed}
        for name, diff in self.sections.items():
            result[name] = diff.to_dict()
        return result


def _section_items(version: DraftVersion, name: str) -> list[Any]:
    value = version.content.get(name)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ComparisonInputError(
            f"Section '{name}' of version {version.id} is not a list",
            version_ids=[version.id],
        )
    return value


def _summary_text(version: DraftVersion) -> str:
    value = version.content.get("summary")
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ComparisonInputError(
            f"Summary of version {version.id} is not a string",
            version_ids=[version.id],
        )
    return value


def _skill_names(version: DraftVersion) -> list[Any]:
    """Distinct skills in first-seen order."""
    value = version.content.get("skills")
    if value is None:
        return []
    if not isinstance(value, list):
        raise ComparisonInputError(
            f"Skills of version {version.id} are not a list",
            version_ids=[version.id],
        )
    for skill in value:
        if not isinstance(skill, (str, int, float, bool)):
            raise ComparisonInputError(
                f"Skills of version {version.id} must be strings, got {type(skill).__name__}",
                version_ids=[version.id],
            )
    return list(dict.fromkeys(value))


def _item_key(item: Any, key_fields: tuple[str, ...]) -> str | None:
    if not isinstance(item, dict):
        return None
    for key_field in key_fields:
        value = item.get(key_field)
        if value not in (None, ""):
            return f"{key_field}={value}"
    return None


def _field_changes(old: Any, new: Any) -> list[FieldChange]:
    if not isinstance(old, dict) or not isinstance(new, dict):
        return [FieldChange(field="value", old=old, new=new)]
    changes = []
    for name in sorted(set(old) | set(new)):
        old_value, new_value = old.get(name), new.get(name)
        if canonical_json(old_value) != canonical_json(new_value):
            changes.append(FieldChange(field=name, old=old_value, new=new_value))
    return changes


def diff_section_counts(old_items: list[Any], new_items: list[Any]) -> SectionDiff:
    """Count-only diff: positive count deltas, modified always 0."""
    old_count, new_count = len(old_items), len(new_items)
    return SectionDiff(
        added=max(0, new_count - old_count),
        removed=max(0, old_count - new_count),
    )


def diff_section_keyed(
    old_items: list[Any],
    new_items: list[Any],
    key_fields: tuple[str, ...],
) -> SectionDiff:
    """Per-item diff matching items by stable identifier."""
    diff = SectionDiff()

    def split(items: list[Any]) -> tuple[dict[str, Any], list[tuple[int, Any]]]:
        keyed: dict[str, Any] = {}
        loose: list[tuple[int, Any]] = []
        for index, item in enumerate(items):
            key = _item_key(item, key_fields)
            if key is None or key in keyed:
                loose.append((index, item))
            else:
                keyed[key] = item
        return keyed, loose

    old_keyed, old_loose = split(old_items)
    new_keyed, new_loose = split(new_items)

    for key, old_item in old_keyed.items():
        if key not in new_keyed:
            diff.items.append(ItemChange(key=key, kind="removed"))
            diff.removed += 1
            continue
        changes = _field_changes(old_item, new_keyed[key])
        if changes:
            diff.items.append(ItemChange(key=key, kind="modified", changes=changes))
            diff.modified += 1

    for key in new_keyed:
        if key not in old_keyed:
            diff.items.append(ItemChange(key=key, kind="added"))
            diff.added += 1

    # Unkeyed items: identical content cancels out as a multiset
    remaining = Counter(canonical_json(item) for _, item in new_loose)
    unmatched_old = []
    for index, item in old_loose:
        form = canonical_json(item)
        if remaining[form] > 0:
            remaining[form] -= 1
        else:
            unmatched_old.append((index, item))

    unmatched_new = []
    for index, item in new_loose:
        form = canonical_json(item)
        if remaining[form] > 0:
            remaining[form] -= 1
            unmatched_new.append((index, item))

    new_by_index = dict(unmatched_new)
    for index, old_item in unmatched_old:
        if index in new_by_index:
            new_item = new_by_index.pop(index)
            diff.items.append(
                ItemChange(key=f"#{index}", kind="modified", changes=_field_changes(old_item, new_item))
            )
            diff.modified += 1
        else:
            diff.items.append(ItemChange(key=f"#{index}", kind="removed"))
            diff.removed += 1

    for index in new_by_index:
        diff.items.append(ItemChange(key=f"#{index}", kind="added"))
        diff.added += 1

    return diff


def diff_versions(
    version1: DraftVersion,
    version2: DraftVersion,
    mode: SectionDiffMode = SectionDiffMode.KEYED,
) -> VersionComparison:
    """Compute the structured diff of two already-loaded versions.

    Raises:
        ComparisonInputError: If summary, skills or a list section has the
            wrong shape
    """
    comparison = VersionComparison(
        version1=version1,
        version2=version2,
        template_changed=version1.template_id != version2.template_id,
        same_family=version1.root_id == version2.root_id,
    )

    old_summary = _summary_text(version1)
    new_summary = _summary_text(version2)
    if old_summary != new_summary:
        comparison.summary = TextChange(old=old_summary, new=new_summary)

    old_skills = _skill_names(version1)
    new_skills = _skill_names(version2)
    old_set, new_set = set(old_skills), set(new_skills)
    added = [s for s in new_skills if s not in old_set]
    removed = [s for s in old_skills if s not in new_set]
    if added or removed:
        comparison.skills = SkillsDiff(added=added, removed=removed)

    for name, key_fields in SECTION_KEYS.items():
        old_items = _section_items(version1, name)
        new_items = _section_items(version2, name)
        if mode == SectionDiffMode.COUNT:
            section = diff_section_counts(old_items, new_items)
        else:
            section = diff_section_keyed(old_items, new_items, key_fields)
        if not section.is_empty:
            comparison.sections[name] = section

    return comparison


class Comparator:
    """Loads two versions and diffs them.

    Example:
        >>> comparator = Comparator(store)
        >>> result = await comparator.compare(older_id, newer_id, "user:1")
        >>> result.differences()
    """

    def __init__(
        self,
        store: VersionStore,
        allow_cross_family: bool = True,
        mode: SectionDiffMode = SectionDiffMode.KEYED,
    ) -> None:
        """Initialize the comparator.

        Args:
            store: Version store to read from
            allow_cross_family: Whether versions of different families may be compared
            mode: List-section diff mode
        """
        self.store = store
        self.allow_cross_family = allow_cross_family
        self.mode = mode

    async def compare(self, version_id1: str, version_id2: str, owner_id: str) -> VersionComparison:
        """Compare two versions owned by owner_id.

        Raises:
            ComparisonInputError: If either id does not resolve, or the
                versions belong to different families and that is disallowed
        """
        version1, version2 = await asyncio.gather(
            self.store.fetch_by_id(version_id1, owner_id),
            self.store.fetch_by_id(version_id2, owner_id),
        )

        missing = [
            vid for vid, version in ((version_id1, version1), (version_id2, version2))
            if version is None
        ]
        if missing:
            raise ComparisonInputError(
                f"Versions not found for comparison: {missing}",
                version_ids=missing,
            )

        if version1.root_id != version2.root_id and not self.allow_cross_family:
            raise ComparisonInputError(
                "Versions belong to different drafts",
                version_ids=[version_id1, version_id2],
            )

        comparison = diff_versions(version1, version2, self.mode)
        logger.debug(
            "Compared versions",
            extra={
                "version1": version_id1,
                "version2": version_id2,
                "empty": comparison.is_empty,
            },
        )
        return comparison
