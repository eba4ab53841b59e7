from __future__ import annotations

import pytest

from helpers.api import ADMIN_PASSWORD, ADMIN_USERNAME, create_via_api


# ---------------------------------------------------------------------------
# 🔐 Auth
# ---------------------------------------------------------------------------
def test_admin_routes_require_login(client):
    response = client.get("/api/qr")
    assert response.status_code == 401
    assert response.json() == {"success": False, "error": "Authentication required"}


def test_login_status_logout(client):
    assert client.get("/api/auth/status").json()["authenticated"] is False

    response = client.post("/api/auth/login", json={"username": "ADMIN", "password": ADMIN_PASSWORD})
    assert response.status_code == 200
    assert response.json()["user"]["username"] == ADMIN_USERNAME

    status = client.get("/api/auth/status").json()
    assert status["authenticated"] is True
    assert status["user"]["role"] == "admin"

    client.post("/api/auth/logout")
    assert client.get("/api/auth/status").json()["authenticated"] is False
    assert client.get("/api/qr").status_code == 401


def test_login_rejects_bad_credentials_and_locks(client):
    assert client.post("/api/auth/login", json={"username": "", "password": ""}).status_code == 400

    for _ in range(5):
        response = client.post("/api/auth/login", json={"username": "admin", "password": "wrong"})
        assert response.status_code == 401

    locked = client.post("/api/auth/login", json={"username": "admin", "password": ADMIN_PASSWORD})
    assert locked.status_code == 429
    assert "Retry-After" in locked.headers


def test_login_stats_and_clear(admin_client):
    admin_client.app.state.login_limiter.record("198.51.100.1", success=False)

    stats = admin_client.get("/api/auth/login-stats").json()["login_stats"]
    assert stats["total_failed_attempts"] == 1

    cleared = admin_client.post("/api/auth/clear-attempts").json()
    assert cleared["cleared_count"] == 1


# ---------------------------------------------------------------------------
# ✅ Anlegen & Inhalt
# ---------------------------------------------------------------------------
def test_create_qr(admin_client, store):
    response = admin_client.post("/api/qr/create", json={"title": "  Menu  ", "description": "Lunch"})
    assert response.status_code == 201
    qr = response.json()["qr"]
    assert qr["title"] == "Menu"
    assert qr["content"]["type"] == "empty"
    assert qr["content"]["description"] == "Lunch"
    assert qr["scan_url"] == f"http://qr.test/scan/{qr['id']}"
    assert store.exists(f"qrcodes/dynamic_qr_{qr['id']}.png")


def test_create_requires_title(admin_client):
    response = admin_client.post("/api/qr/create", json={"title": "   "})
    assert response.status_code == 400
    assert response.json()["success"] is False

    response = admin_client.post("/api/qr/create", json={"title": "x" * 201})
    assert response.status_code == 400


def test_update_content_with_file(admin_client, store):
    qr_id = create_via_api(admin_client, "Menu")

    response = admin_client.put(
        f"/api/qr/{qr_id}/content",
        data={"content_type": "file", "description": "Dinner"},
        files={"file": ("menu.pdf", b"%PDF-1.4 dinner", "application/pdf")},
    )
    assert response.status_code == 200, response.text
    content = response.json()["qr"]["content"]
    assert content["type"] == "file"
    assert content["mime_type"] == "application/pdf"
    assert content["original_name"] == "menu.pdf"
    assert store.exists(content["file_ref"])


def test_update_content_validation_error(admin_client):
    qr_id = create_via_api(admin_client, "Menu")

    response = admin_client.put(f"/api/qr/{qr_id}/content", data={"content_type": "text", "text": "x" * 5001})
    assert response.status_code == 400
    assert "5000" in response.json()["error"]

    response = admin_client.put(f"/api/qr/{qr_id}/content", data={"content_type": "hologram"})
    assert response.status_code == 400

    response = admin_client.put("/api/qr/missing/content", data={"content_type": "text", "text": "hi"})
    assert response.status_code == 404


def test_get_with_history(admin_client):
    qr_id = create_via_api(admin_client, "Menu")
    for i in range(12):
        admin_client.put(f"/api/qr/{qr_id}/content", data={"content_type": "text", "text": f"v{i}"})

    qr = admin_client.get(f"/api/qr/{qr_id}").json()["qr"]
    assert "history" not in qr
    assert qr["settings"] == {"allow_tracking": True, "password": None, "custom_domain": None}

    qr = admin_client.get(f"/api/qr/{qr_id}", params={"include_history": "true"}).json()["qr"]
    assert len(qr["history"]) == 10
    assert qr["history"][-1]["content"]["text"] == "v10"


# ---------------------------------------------------------------------------
# 📋 Liste & Statistik
# ---------------------------------------------------------------------------
def test_list_filters_sorts_and_paginates(admin_client):
    ids = [create_via_api(admin_client, title) for title in ("Breakfast", "Lunch", "Dinner")]
    admin_client.put(f"/api/qr/{ids[1]}/content", data={"content_type": "text", "text": "soup"})

    listing = admin_client.get("/api/qr", params={"sort_by": "title", "sort_order": "asc"}).json()
    assert [q["title"] for q in listing["qrs"]] == ["Breakfast", "Dinner", "Lunch"]
    assert listing["pagination"]["total"] == 3

    texts = admin_client.get("/api/qr", params={"content_type": "text"}).json()
    assert [q["id"] for q in texts["qrs"]] == [ids[1]]

    search = admin_client.get("/api/qr", params={"search": "DIN"}).json()
    assert [q["title"] for q in search["qrs"]] == ["Dinner"]

    page = admin_client.get("/api/qr", params={"limit": 2, "page": 2}).json()
    assert len(page["qrs"]) == 1
    assert page["pagination"]["pages"] == 2
    assert page["pagination"]["has_prev"] is True

    capped = admin_client.get("/api/qr", params={"limit": 500}).json()
    assert capped["pagination"]["limit"] == 50

    assert admin_client.get("/api/qr", params={"content_type": "wifi"}).status_code == 400


def test_stats(admin_client, client):
    ids = [create_via_api(admin_client, title) for title in ("A", "B")]
    admin_client.put(f"/api/qr/{ids[0]}/content", data={"content_type": "text", "text": "hi"})
    admin_client.get(f"/scan/{ids[0]}")
    admin_client.delete(f"/api/qr/{ids[1]}")

    stats = admin_client.get("/api/qr/stats").json()["stats"]
    assert stats["overview"] == {"total_qrs": 2, "active_qrs": 1, "inactive_qrs": 1, "total_scans": 1}
    assert stats["today"] == {"new_qrs": 1, "scans": 1}
    assert stats["content_types"] == [{"type": "text", "count": 1, "total_scans": 1}]
    assert [q["id"] for q in stats["popular"]] == [ids[0]]


# ---------------------------------------------------------------------------
# ⚙️ Einstellungen, Löschen, Wiederherstellen
# ---------------------------------------------------------------------------
def test_settings_update(admin_client):
    qr_id = create_via_api(admin_client, "Menu")

    response = admin_client.put(
        f"/api/qr/{qr_id}/settings",
        json={"allow_tracking": False, "password": "abcd", "custom_domain": "menu.example.com"},
    )
    assert response.json()["settings"] == {
        "allow_tracking": False,
        "password": "abcd",
        "custom_domain": "menu.example.com",
    }

    # nur gesendete Felder ändern sich, leere Werte entfernen
    response = admin_client.put(f"/api/qr/{qr_id}/settings", json={"password": ""})
    assert response.json()["settings"]["password"] is None
    assert response.json()["settings"]["custom_domain"] == "menu.example.com"

    assert admin_client.put(f"/api/qr/{qr_id}/settings", json={"password": "abc"}).status_code == 400
    assert admin_client.put(f"/api/qr/{qr_id}/settings", json={"custom_domain": "bad domain/x"}).status_code == 400


def test_soft_delete_and_restore(admin_client):
    qr_id = create_via_api(admin_client, "Menu")

    response = admin_client.delete(f"/api/qr/{qr_id}")
    assert response.json()["deleted"] is False
    assert admin_client.get(f"/api/qr/{qr_id}").status_code == 404
    assert admin_client.get(f"/scan/{qr_id}").status_code == 404

    assert admin_client.post(f"/api/qr/{qr_id}/restore").status_code == 200
    assert admin_client.get(f"/api/qr/{qr_id}").status_code == 200
    assert admin_client.post(f"/api/qr/{qr_id}/restore").status_code == 404


def test_hard_delete_removes_files(admin_client, store):
    qr_id = create_via_api(admin_client, "Menu")
    content = admin_client.put(
        f"/api/qr/{qr_id}/content",
        data={"content_type": "file"},
        files={"file": ("menu.pdf", b"%PDF", "application/pdf")},
    ).json()["qr"]["content"]

    response = admin_client.delete(f"/api/qr/{qr_id}", params={"force": "true"})
    assert response.json()["deleted"] is True
    assert not store.exists(content["file_ref"])
    assert not store.exists(f"qrcodes/dynamic_qr_{qr_id}.png")
    assert admin_client.post(f"/api/qr/{qr_id}/restore").status_code == 404


def test_bulk_delete(admin_client):
    ids = [create_via_api(admin_client, title) for title in ("A", "B")]

    response = admin_client.post("/api/qr/bulk-delete", json={"qr_ids": [*ids, "missing"]})
    results = response.json()["results"]
    assert {r["id"] for r in results["success"]} == set(ids)
    assert results["failed"] == [{"id": "missing", "error": "QR not found"}]

    assert admin_client.post("/api/qr/bulk-delete", json={"qr_ids": []}).status_code == 400
    too_many = [f"id{i}" for i in range(51)]
    assert admin_client.post("/api/qr/bulk-delete", json={"qr_ids": too_many}).status_code == 400


@pytest.mark.asyncio
async def test_health(async_client):
    response = await async_client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
