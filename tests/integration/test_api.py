"""
Integration tests for the HTTP API.

Runs the FastAPI app in-process with TestClient over an in-memory store.
"""

import pytest
from fastapi.testclient import TestClient

from draftvc.api import create_app
from draftvc.errors import StorageFailure
from draftvc.service import DraftVersioningService
from draftvc.store import InMemoryVersionStore

HEADERS = {"X-Owner-ID": "user:alice"}


class TestDraftApi:
    """Tests for the /api/v1 routes."""

    @pytest.fixture
    def client(self):
        app = create_app(DraftVersioningService(InMemoryVersionStore()))
        with TestClient(app) as client:
            yield client

    @pytest.fixture
    def draft(self, client):
        response = client.post(
            "/api/v1/drafts",
            json={"name": "My CV", "content": {"summary": "A"}, "template_id": "classic"},
            headers=HEADERS,
        )
        assert response.status_code == 201
        return response.json()

    def test_health(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_create_draft(self, draft):
        assert draft["version_number"] == 1
        assert draft["parent_id"] is None
        assert draft["root_id"] == draft["id"]
        assert draft["origin_source"] == "manual"
        assert draft["owner_id"] == "user:alice"

    def test_owner_header_required(self, client):
        response = client.post("/api/v1/drafts", json={"name": "x", "content": {}})
        assert response.status_code == 422

    def test_get_draft(self, client, draft):
        response = client.get(f"/api/v1/drafts/{draft['id']}", headers=HEADERS)
        assert response.status_code == 200
        assert response.json()["content"] == {"summary": "A"}

    def test_get_draft_other_owner(self, client, draft):
        response = client.get(f"/api/v1/drafts/{draft['id']}", headers={"X-Owner-ID": "user:bob"})

        assert response.status_code == 404
        body = response.json()
        assert body["error_code"] == "NOT_FOUND"
        assert body["details"]["version_id"] == draft["id"]

    def test_save_version_created_then_unchanged(self, client, draft):
        url = f"/api/v1/drafts/{draft['id']}/versions"

        created = client.post(url, json={"content": {"summary": "B"}}, headers=HEADERS)
        assert created.status_code == 201
        assert created.json()["created"] is True
        v2 = created.json()["version"]
        assert v2["version_number"] == 2
        assert v2["parent_id"] == draft["id"]

        unchanged = client.post(
            f"/api/v1/drafts/{v2['id']}/versions",
            json={"content": {"summary": "B"}},
            headers=HEADERS,
        )
        assert unchanged.status_code == 200
        assert unchanged.json()["created"] is False
        assert unchanged.json()["version"]["id"] == v2["id"]

    def test_update_in_place(self, client, draft):
        response = client.patch(
            f"/api/v1/drafts/{draft['id']}",
            json={"name": "Renamed", "metadata": {"pinned": True}},
            headers=HEADERS,
        )

        assert response.status_code == 200
        assert response.json()["name"] == "Renamed"
        assert response.json()["version_number"] == 1

    def test_update_content_forbidden(self, client, draft):
        response = client.patch(
            f"/api/v1/drafts/{draft['id']}",
            json={"content": {"summary": "B"}},
            headers=HEADERS,
        )

        assert response.status_code == 403
        assert response.json()["details"]["fields"] == ["content"]

    def test_history_and_head(self, client, draft):
        client.post(
            f"/api/v1/drafts/{draft['id']}/versions",
            json={"content": {"summary": "B"}},
            headers=HEADERS,
        )

        history = client.get(f"/api/v1/drafts/{draft['id']}/history", headers=HEADERS)
        assert history.status_code == 200
        assert history.json()["root_id"] == draft["id"]
        assert [v["version_number"] for v in history.json()["versions"]] == [1, 2]

        head = client.get(f"/api/v1/drafts/{draft['id']}/head", headers=HEADERS)
        assert head.json()["version_number"] == 2

    def test_restore(self, client, draft):
        client.post(
            f"/api/v1/drafts/{draft['id']}/versions",
            json={"content": {"summary": "B"}},
            headers=HEADERS,
        )

        response = client.post(f"/api/v1/drafts/{draft['id']}/restore", headers=HEADERS)

        assert response.status_code == 201
        restored = response.json()["version"]
        assert restored["version_number"] == 3
        assert restored["content"] == {"summary": "A"}
        assert restored["origin_source"] == "restore"

    def test_delete(self, client, draft):
        saved = client.post(
            f"/api/v1/drafts/{draft['id']}/versions",
            json={"content": {"summary": "B"}},
            headers=HEADERS,
        ).json()["version"]

        response = client.delete(f"/api/v1/drafts/{saved['id']}", headers=HEADERS)
        assert response.status_code == 204

        head = client.get(f"/api/v1/drafts/{draft['id']}/head", headers=HEADERS)
        assert head.json()["id"] == draft["id"]

    def test_delete_last_active_conflict(self, client, draft):
        response = client.delete(f"/api/v1/drafts/{draft['id']}", headers=HEADERS)

        assert response.status_code == 409
        body = response.json()
        assert body["error_code"] == "INVARIANT_VIOLATION"
        assert body["details"]["invariant"] == "LastActiveVersion"

    def test_compare(self, client, draft):
        saved = client.post(
            f"/api/v1/drafts/{draft['id']}/versions",
            json={"content": {"summary": "B", "skills": ["go"]}},
            headers=HEADERS,
        ).json()["version"]

        response = client.get(
            "/api/v1/compare",
            params={"a": draft["id"], "b": saved["id"]},
            headers=HEADERS,
        )

        assert response.status_code == 200
        body = response.json()
        assert body["same_family"] is True
        assert body["differences"]["summary"] == {"old": "A", "new": "B"}
        assert body["differences"]["skills"] == {"added": ["go"], "removed": []}

    def test_compare_missing(self, client, draft):
        response = client.get(
            "/api/v1/compare",
            params={"a": draft["id"], "b": "missing"},
            headers=HEADERS,
        )

        assert response.status_code == 400
        assert response.json()["error_code"] == "COMPARISON_INPUT"

    def test_invalid_name(self, client):
        response = client.post(
            "/api/v1/drafts",
            json={"name": " ", "content": {}},
            headers=HEADERS,
        )

        assert response.status_code == 422
        assert response.json()["error_code"] == "VALIDATION_ERROR"

    def test_storage_failure_is_503(self):
        """Store errors surface as 503, never as an unchanged save."""
        store = InMemoryVersionStore()
        app = create_app(DraftVersioningService(store))
        with TestClient(app) as client:
            created = client.post(
                "/api/v1/drafts", json={"name": "CV", "content": {"summary": "A"}}, headers=HEADERS
            ).json()
            store.inject_failure(StorageFailure("disk full", operation="create"), operation="create")

            response = client.post(
                f"/api/v1/drafts/{created['id']}/versions",
                json={"content": {"summary": "B"}},
                headers=HEADERS,
            )

        assert response.status_code == 503
        assert response.json()["error_code"] == "STORAGE_FAILURE"

    @pytest.mark.parametrize(
        "partial",
        [{"metadata": "oops"}, {"name": 5}, {"template_id": ["a"]}, {"metadata": None}],
    )
    def test_update_wrong_types_rejected(self, client, draft, partial):
        """Ill-typed PATCH values are a 422 and leave the draft readable."""
        response = client.patch(f"/api/v1/drafts/{draft['id']}", json=partial, headers=HEADERS)

        assert response.status_code == 422
        assert response.json()["error_code"] == "VALIDATION_ERROR"

        fetched = client.get(f"/api/v1/drafts/{draft['id']}", headers=HEADERS)
        assert fetched.status_code == 200
        assert fetched.json()["name"] == "My CV"
        assert fetched.json()["metadata"] == draft["metadata"]

    def test_compare_malformed_skills(self, client, draft):
        saved = client.post(
            f"/api/v1/drafts/{draft['id']}/versions",
            json={"content": {"summary": "A", "skills": [{"name": "Python"}]}},
            headers=HEADERS,
        ).json()["version"]

        response = client.get(
            "/api/v1/compare",
            params={"a": draft["id"], "b": saved["id"]},
            headers=HEADERS,
        )

        assert response.status_code == 400
        assert response.json()["error_code"] == "COMPARISON_INPUT"
