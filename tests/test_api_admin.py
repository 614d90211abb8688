"""
tests/test_api_admin.py -- Integration tests for the /api/v1/admin routes.

Coverage:
  - X-API-Key required (missing and wrong key both 403)
  - Listing: newest first, page size, total_pages, out-of-range page
  - Bulk delete: counts only real deletions, ignores junk ids
  - Schema status and (re)creation after the table was dropped
"""

from __future__ import annotations

from sqlalchemy import text

from accounts.models import UserRecord
from accounts.store import TABLE_NAME
from conftest import ADMIN_HEADERS


def _seed(store, n: int) -> list[int]:
    return [
        store.insert(
            UserRecord(
                full_name=f"User {i}",
                email=f"user{i}@x.com",
                password_hash="$2b$04$placeholderplaceholderplaceholderplaceholderplacehold",
                phone_number="123-456",
                country="X",
                interests=["tech"],
            )
        )
        for i in range(n)
    ]


class TestAdminAuth:
    def test_missing_key_forbidden(self, api_client):
        client, _ = api_client
        resp = client.get("/api/v1/admin/users")
        assert resp.status_code == 403
        assert resp.json()["code"] == "forbidden"

    def test_wrong_key_forbidden(self, api_client):
        client, _ = api_client
        resp = client.post("/api/v1/admin/users/delete", json={"ids": [1]}, headers={"X-API-Key": "nope"})
        assert resp.status_code == 403


class TestListing:
    def test_list_newest_first(self, api_client):
        client, store = api_client
        ids = _seed(store, 3)
        resp = client.get("/api/v1/admin/users", headers=ADMIN_HEADERS)
        assert resp.status_code == 200
        data = resp.json()
        assert [u["id"] for u in data["users"]] == list(reversed(ids))
        assert data["total"] == 3
        assert data["total_pages"] == 1
        assert "password" not in data["users"][0]

    def test_pagination(self, api_client):
        client, store = api_client
        client.app.state.settings = client.app.state.settings.model_copy(update={"page_size": 2})
        ids = _seed(store, 5)

        page2 = client.get("/api/v1/admin/users", params={"page": 2}, headers=ADMIN_HEADERS).json()
        assert page2["page"] == 2
        assert page2["per_page"] == 2
        assert page2["total_pages"] == 3
        assert [u["id"] for u in page2["users"]] == list(reversed(ids))[2:4]

        beyond = client.get("/api/v1/admin/users", params={"page": 9}, headers=ADMIN_HEADERS).json()
        assert beyond["users"] == []

    def test_page_must_be_positive(self, api_client):
        client, _ = api_client
        resp = client.get("/api/v1/admin/users", params={"page": 0}, headers=ADMIN_HEADERS)
        assert resp.status_code == 422


class TestBulkDelete:
    def test_bulk_delete(self, api_client):
        client, store = api_client
        ids = _seed(store, 3)
        resp = client.post(
            "/api/v1/admin/users/delete",
            json={"ids": [ids[0], str(ids[1]), "junk", 9999]},
            headers=ADMIN_HEADERS,
        )
        assert resp.status_code == 200
        assert resp.json() == {"deleted": 2, "message": "2 record(s) deleted."}
        assert store.count() == 1

    def test_bulk_delete_empty(self, api_client):
        client, _ = api_client
        resp = client.post("/api/v1/admin/users/delete", json={"ids": []}, headers=ADMIN_HEADERS)
        assert resp.json()["deleted"] == 0


class TestSchema:
    def test_schema_status_and_recreate(self, api_client):
        client, store = api_client
        assert client.get("/api/v1/admin/schema", headers=ADMIN_HEADERS).json() == {"table_exists": True}

        with store.engine.connect() as conn:
            conn.execute(text(f"DROP TABLE {TABLE_NAME}"))
            conn.commit()
        assert client.get("/api/v1/admin/schema", headers=ADMIN_HEADERS).json() == {"table_exists": False}

        resp = client.post("/api/v1/admin/schema", headers=ADMIN_HEADERS)
        assert resp.json() == {"table_exists": True}
