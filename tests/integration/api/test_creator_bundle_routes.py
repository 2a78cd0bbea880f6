from fastapi.testclient import TestClient

from src.adapters.memory_store import InMemoryDocumentStore


def _uploads(store: InMemoryDocumentStore, count: int) -> list[str]:
    ids = []
    for n in range(count):
        upload_id = f"up-{n}"
        store.set(
            "uploads",
            upload_id,
            {
                "fileUrl": f"https://cdn.example.com/{upload_id}.mp4",
                "mimeType": "video/mp4",
                "filename": f"{upload_id}.mp4",
                "fileSize": 1000,
            },
        )
        ids.append(upload_id)
    return ids


def test_add_content_free_tier_quota(
    client: TestClient, api_store: InMemoryDocumentStore, auth_headers
):
    ids = _uploads(api_store, 12)
    resp = client.post(
        "/api/creator/bundles/b1/content",
        json={"content_ids": ids},
        headers=auth_headers("creator-1"),
    )
    assert resp.status_code == 200
    data = resp.json()
    # b1 already holds one item; free tier allows 10
    assert data["added_count"] == 9
    assert data["skipped_count"] == 3
    assert data["total_items"] == 10
    assert data["message"] == "9 added, 3 skipped due to quota"


def test_add_content_pro_membership_unlimited(
    client: TestClient, api_store: InMemoryDocumentStore, auth_headers
):
    api_store.set("memberships", "creator-1", {"plan": "pro", "isActive": True})
    ids = _uploads(api_store, 12)
    resp = client.post(
        "/api/creator/bundles/b1/content",
        json={"content_ids": ids},
        headers=auth_headers("creator-1"),
    )
    assert resp.json()["added_count"] == 12
    assert resp.json()["skipped_count"] == 0


def test_add_content_full_bundle_is_409(
    client: TestClient, api_store: InMemoryDocumentStore, auth_headers
):
    first = _uploads(api_store, 9)
    client.post(
        "/api/creator/bundles/b1/content",
        json={"content_ids": first},
        headers=auth_headers("creator-1"),
    )
    api_store.set("uploads", "late", {"fileUrl": "https://cdn.example.com/late.pdf"})

    resp = client.post(
        "/api/creator/bundles/b1/content",
        json={"content_ids": ["late"]},
        headers=auth_headers("creator-1"),
    )
    assert resp.status_code == 409
    assert resp.json()["error"] == "quota_exceeded"


def test_add_content_reports_rejected(
    client: TestClient, api_store: InMemoryDocumentStore, auth_headers
):
    resp = client.post(
        "/api/creator/bundles/b1/content",
        json={"content_ids": ["dangling"]},
        headers=auth_headers("creator-1"),
    )
    assert resp.status_code == 200
    assert resp.json()["added_count"] == 0
    assert resp.json()["rejected"][0]["id"] == "dangling"


def test_add_content_empty_list_is_400(client: TestClient, auth_headers):
    resp = client.post(
        "/api/creator/bundles/b1/content",
        json={"content_ids": []},
        headers=auth_headers("creator-1"),
    )
    assert resp.status_code == 400


def test_add_content_not_owner_is_403(client: TestClient, auth_headers):
    resp = client.post(
        "/api/creator/bundles/b1/content",
        json={"content_ids": ["x"]},
        headers=auth_headers("someone-else"),
    )
    assert resp.status_code == 403


def test_add_content_missing_bundle_is_404(client: TestClient, auth_headers):
    resp = client.post(
        "/api/creator/bundles/nope/content",
        json={"content_ids": ["x"]},
        headers=auth_headers("creator-1"),
    )
    assert resp.status_code == 404


def test_add_content_requires_auth(client: TestClient):
    resp = client.post("/api/creator/bundles/b1/content", json={"content_ids": ["x"]})
    assert resp.status_code == 401


def test_get_content(client: TestClient, auth_headers):
    resp = client.get("/api/creator/bundles/b1/content", headers=auth_headers("creator-1"))
    assert resp.status_code == 200
    data = resp.json()
    assert data["title"] == "Starter pack"
    assert [i["id"] for i in data["items"]] == ["c1"]
    assert data["content_metadata"]["totalItems"] == 1


def test_get_content_product_box(
    client: TestClient, api_store: InMemoryDocumentStore, auth_headers
):
    api_store.set("productBoxes", "pb1", {"title": "Old box", "creatorId": "creator-1"})
    resp = client.get("/api/creator/bundles/pb1/content", headers=auth_headers("creator-1"))
    assert resp.status_code == 200
    assert resp.json()["items"] == []


def test_health(client: TestClient):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"
