"""
Unit tests for the version comparator.

Tests cover:
- Summary and skills differences
- Keyed per-item section diffs
- Count-only section diffs
- Comparator input validation and family checks
"""

import pytest

from draftvc.compare import (
    Comparator,
    diff_section_counts,
    diff_section_keyed,
    diff_versions,
)
from draftvc.config import SectionDiffMode
from draftvc.errors import ComparisonInputError
from draftvc.hashing import content_hash
from draftvc.store import DraftVersion, InMemoryVersionStore, NewVersion, OriginSource

OWNER = "user:alice"


def make_version(content, version_id="v1", root_id="r1", template_id=None):
    return DraftVersion(
        id=version_id,
        owner_id=OWNER,
        name="My CV",
        version_number=1,
        is_active=True,
        parent_id=None,
        root_id=root_id,
        origin_source=OriginSource.MANUAL,
        template_id=template_id,
        content=content,
        metadata={},
        content_hash=content_hash(content),
        created_at=0,
        updated_at=0,
    )


RESUME = {
    "summary": "Backend engineer",
    "skills": ["python", "sql", "docker"],
    "experience": [
        {"employment_id": "e1", "title": "Engineer", "company": "Acme"},
        {"employment_id": "e2", "title": "Intern", "company": "Initech"},
    ],
    "education": [{"id": "ed1", "degree": "BSc"}],
    "projects": [{"name": "draftvc", "url": "https://example.com"}],
}


class TestDiffVersions:
    """Tests for diff_versions()."""

    def test_self_diff_is_empty(self):
        """A version compared with itself has no differences."""
        version = make_version(RESUME)

        comparison = diff_versions(version, version)

        assert comparison.is_empty
        assert comparison.differences() == {}
        assert comparison.section("experience").is_empty

    def test_key_order_does_not_matter(self):
        reordered = {key: RESUME[key] for key in reversed(list(RESUME))}
        comparison = diff_versions(make_version(RESUME), make_version(reordered, "v2"))
        assert comparison.is_empty

    def test_summary_change(self):
        old = make_version({"summary": "A"})
        new = make_version({"summary": "B"}, "v2")

        comparison = diff_versions(old, new)

        assert comparison.summary.old == "A"
        assert comparison.summary.new == "B"
        assert comparison.differences()["summary"] == {"old": "A", "new": "B"}

    def test_missing_summary_treated_as_empty(self):
        comparison = diff_versions(make_version({}), make_version({"summary": ""}, "v2"))
        assert comparison.summary is None

        comparison = diff_versions(make_version({}), make_version({"summary": "New"}, "v2"))
        assert comparison.summary.old == ""

    def test_skills_added_and_removed(self):
        """Skills use set semantics in first-seen order."""
        old = make_version({"skills": ["python", "sql", "sql"]})
        new = make_version({"skills": ["go", "python", "rust"]}, "v2")

        comparison = diff_versions(old, new)

        assert comparison.skills.added == ["go", "rust"]
        assert comparison.skills.removed == ["sql"]

    def test_skills_reorder_is_not_a_change(self):
        old = make_version({"skills": ["a", "b"]})
        new = make_version({"skills": ["b", "a"]}, "v2")

        assert diff_versions(old, new).skills is None

    def test_experience_modified_by_employment_id(self):
        changed = dict(RESUME)
        changed["experience"] = [
            {"employment_id": "e1", "title": "Senior Engineer", "company": "Acme"},
            {"employment_id": "e2", "title": "Intern", "company": "Initech"},
        ]

        comparison = diff_versions(make_version(RESUME), make_version(changed, "v2"))

        section = comparison.section("experience")
        assert (section.added, section.removed, section.modified) == (0, 0, 1)
        item = section.items[0]
        assert item.key == "employment_id=e1"
        assert item.kind == "modified"
        assert [(c.field, c.old, c.new) for c in item.changes] == [
            ("title", "Engineer", "Senior Engineer")
        ]

    def test_education_added_and_removed(self):
        changed = dict(RESUME)
        changed["education"] = [{"id": "ed2", "degree": "MSc"}]

        comparison = diff_versions(make_version(RESUME), make_version(changed, "v2"))

        section = comparison.section("education")
        assert (section.added, section.removed, section.modified) == (1, 1, 0)
        assert {item.kind for item in section.items} == {"added", "removed"}

    def test_projects_keyed_by_name(self):
        changed = dict(RESUME)
        changed["projects"] = [{"name": "draftvc", "url": "https://example.org"}]

        comparison = diff_versions(make_version(RESUME), make_version(changed, "v2"))

        section = comparison.section("projects")
        assert section.modified == 1
        assert section.items[0].key == "name=draftvc"

    def test_missing_section_is_empty_list(self):
        old = make_version({"summary": "A"})
        new = make_version({"summary": "A", "education": [{"id": "ed1"}]}, "v2")

        comparison = diff_versions(old, new)

        assert comparison.section("education").added == 1

    def test_non_list_section_rejected(self):
        old = make_version({"experience": "ten years"})
        with pytest.raises(ComparisonInputError):
            diff_versions(old, make_version({}, "v2"))

    def test_object_skills_rejected(self):
        """Skills that are objects cannot be compared as a set."""
        old = make_version({"skills": ["python"]})
        new = make_version({"skills": [{"name": "Python"}]}, "v2")

        with pytest.raises(ComparisonInputError) as exc_info:
            diff_versions(old, new)
        assert exc_info.value.details["version_ids"] == ["v2"]

    def test_non_list_skills_rejected(self):
        with pytest.raises(ComparisonInputError):
            diff_versions(make_version({"skills": "python, sql"}), make_version({}, "v2"))

    def test_non_string_summary_rejected(self):
        with pytest.raises(ComparisonInputError):
            diff_versions(make_version({"summary": {"text": "A"}}), make_version({}, "v2"))

    def test_null_skills_treated_as_empty(self):
        comparison = diff_versions(make_version({"skills": None}), make_version({"skills": ["go"]}, "v2"))
        assert comparison.skills.added == ["go"]

    def test_template_changed(self):
        old = make_version({}, template_id="classic")
        new = make_version({}, "v2", template_id="modern")

        comparison = diff_versions(old, new)

        assert comparison.template_changed
        assert comparison.is_empty

    def test_same_family_flag(self):
        old = make_version({}, root_id="r1")
        new = make_version({}, "v2", root_id="r2")
        assert diff_versions(old, new).same_family is False

    def test_count_mode(self):
        """COUNT mode only compares item counts."""
        changed = dict(RESUME)
        changed["experience"] = [
            {"employment_id": "e1", "title": "CTO", "company": "Acme"},
            {"employment_id": "e2", "title": "Intern", "company": "Initech"},
            {"employment_id": "e3", "title": "Founder", "company": "Self"},
        ]

        comparison = diff_versions(
            make_version(RESUME), make_version(changed, "v2"), SectionDiffMode.COUNT
        )

        section = comparison.section("experience")
        assert (section.added, section.removed, section.modified) == (1, 0, 0)
        assert section.items == []


class TestSectionDiffs:
    """Tests for the list-section diff helpers."""

    def test_counts(self):
        assert diff_section_counts([1, 2], [1, 2, 3]).added == 1
        assert diff_section_counts([1, 2, 3], [1]).removed == 2
        assert diff_section_counts([1], [2]).is_empty

    def test_unkeyed_identical_items_cancel(self):
        """Items without identifiers match by content, ignoring order."""
        old = [{"title": "A"}, {"title": "B"}]
        new = [{"title": "B"}, {"title": "A"}]

        assert diff_section_keyed(old, new, ("id",)).is_empty

    def test_unkeyed_changed_item_at_same_position(self):
        old = [{"title": "A"}, {"title": "B"}]
        new = [{"title": "A"}, {"title": "C"}]

        diff = diff_section_keyed(old, new, ("id",))

        assert (diff.added, diff.removed, diff.modified) == (0, 0, 1)
        assert diff.items[0].key == "#1"
        assert diff.items[0].changes[0].field == "title"

    def test_unkeyed_append(self):
        diff = diff_section_keyed([{"title": "A"}], [{"title": "A"}, {"title": "B"}], ("id",))
        assert (diff.added, diff.removed, diff.modified) == (1, 0, 0)

    def test_duplicate_keys_fall_back_to_content(self):
        old = [{"id": "x", "v": 1}, {"id": "x", "v": 2}]
        new = [{"id": "x", "v": 1}, {"id": "x", "v": 2}]

        assert diff_section_keyed(old, new, ("id",)).is_empty

    def test_scalar_items(self):
        diff = diff_section_keyed(["a", "b"], ["a", "c"], ("id",))
        assert diff.modified == 1
        assert diff.items[0].changes[0].field == "value"

    def test_to_dict(self):
        diff = diff_section_keyed([{"id": "a", "x": 1}], [{"id": "a", "x": 2}], ("id",))
        assert diff.to_dict() == {
            "added": 0,
            "removed": 0,
            "modified": 1,
            "items": [
                {
                    "key": "id=a",
                    "kind": "modified",
                    "changes": [{"field": "x", "old": 1, "new": 2}],
                }
            ],
        }


class TestComparator:
    """Tests for Comparator."""

    @pytest.fixture
    def store(self):
        return InMemoryVersionStore()

    async def _create(self, store, content, parent_id=None, owner_id=OWNER):
        return await store.create(
            NewVersion(
                owner_id=owner_id,
                name="My CV",
                content=content,
                content_hash=content_hash(content),
                parent_id=parent_id,
            )
        )

    @pytest.mark.asyncio
    async def test_compare_versions(self, store):
        await store.connect()
        root = await self._create(store, {"summary": "A", "skills": ["python"]})
        v2 = await self._create(store, {"summary": "B", "skills": ["python", "go"]}, root.id)

        comparison = await Comparator(store).compare(root.id, v2.id, OWNER)

        assert comparison.version1.id == root.id
        assert comparison.version2.id == v2.id
        assert comparison.summary.new == "B"
        assert comparison.skills.added == ["go"]
        assert comparison.same_family

    @pytest.mark.asyncio
    async def test_compare_with_itself(self, store):
        """Comparing a version with itself is valid and empty."""
        await store.connect()
        root = await self._create(store, RESUME)

        comparison = await Comparator(store).compare(root.id, root.id, OWNER)

        assert comparison.is_empty

    @pytest.mark.asyncio
    async def test_malformed_skills_is_input_error(self, store):
        await store.connect()
        root = await self._create(store, {"skills": ["python"]})
        v2 = await self._create(store, {"skills": [{"name": "Python", "level": 3}]}, root.id)

        with pytest.raises(ComparisonInputError):
            await Comparator(store).compare(root.id, v2.id, OWNER)

    @pytest.mark.asyncio
    async def test_missing_version(self, store):
        await store.connect()
        root = await self._create(store, {"summary": "A"})

        with pytest.raises(ComparisonInputError) as exc_info:
            await Comparator(store).compare(root.id, "missing", OWNER)

        assert exc_info.value.version_ids == ["missing"]

    @pytest.mark.asyncio
    async def test_other_owner_not_visible(self, store):
        await store.connect()
        mine = await self._create(store, {"summary": "A"})
        theirs = await self._create(store, {"summary": "B"}, owner_id="user:bob")

        with pytest.raises(ComparisonInputError):
            await Comparator(store).compare(mine.id, theirs.id, OWNER)

    @pytest.mark.asyncio
    async def test_cross_family_allowed_by_default(self, store):
        await store.connect()
        first = await self._create(store, {"summary": "A"})
        second = await self._create(store, {"summary": "B"})

        comparison = await Comparator(store).compare(first.id, second.id, OWNER)

        assert comparison.same_family is False
        assert comparison.summary is not None

    @pytest.mark.asyncio
    async def test_cross_family_disallowed(self, store):
        await store.connect()
        first = await self._create(store, {"summary": "A"})
        second = await self._create(store, {"summary": "B"})

        with pytest.raises(ComparisonInputError):
            await Comparator(store, allow_cross_family=False).compare(first.id, second.id, OWNER)

    @pytest.mark.asyncio
    async def test_comparator_never_writes(self, store):
        await store.connect()
        root = await self._create(store, {"summary": "A"})
        v2 = await self._create(store, {"summary": "B"}, root.id)

        await Comparator(store).compare(root.id, v2.id, OWNER)

        assert store.get_row_count() == 2
