"""
tests/test_upload_api.py

HTTP surface tests with services wired to a temp SQLite catalog.
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from app.main import create_app
from app.services.catalog_query_service import CatalogQueryService, get_catalog_query_service
from app.services.upload_orchestrator_service import get_upload_orchestrator_service
from db.repositories.errors import CatalogAppendError

OWNER = {"X-Owner-Id": "U1"}


@pytest.fixture()
def client(orchestrator, catalog, final_store):
    app = create_app()
    query_service = CatalogQueryService(catalog=catalog, final_store=final_store)
    app.dependency_overrides[get_upload_orchestrator_service] = lambda: orchestrator
    app.dependency_overrides[get_catalog_query_service] = lambda: query_service
    return TestClient(app)


def _upload(client: TestClient, content: bytes, *, name: str = "cat.jpg", headers=OWNER, **form: str):
    return client.post(
        "/api/upload",
        files={"file": (name, content, "image/jpeg")},
        data=form,
        headers=headers,
    )


def test_health(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_upload_then_read_back(client: TestClient, image_bytes) -> None:
    response = _upload(client, image_bytes(), title="cat", tags="animal")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "Upload successful"
    upload_id = body["id"]
    assert body["filename"] == f"{upload_id}.png"

    data = client.get(f"/data/{upload_id}")
    assert data.status_code == 200
    assert data.json()["title"] == "cat"
    assert data.json()["owner_id"] == "U1"

    view = client.get(f"/view/{upload_id}")
    assert view.status_code == 200
    assert view.headers["content-type"] == "image/png"
    assert view.content.startswith(b"\x89PNG")

    assert [item["id"] for item in client.get("/search", params={"q": "ANIMAL"}).json()] == [upload_id]
    assert client.get("/search", params={"q": "dog"}).json() == []
    assert [item["id"] for item in client.get("/newest").json()] == [upload_id]
    assert [item["id"] for item in client.get("/myscape", headers=OWNER).json()] == [upload_id]
    assert client.get("/myscape", headers={"X-Owner-Id": "U2"}).json() == []

    stats = client.get("/stats").json()
    assert stats["total_uploads"] == 1
    assert stats["total_owners"] == 1
    assert stats["storage_bytes"] > 0


def test_delete_requires_owner(client: TestClient, final_store, image_bytes) -> None:
    upload_id = _upload(client, image_bytes()).json()["id"]

    assert client.delete(f"/delete/{upload_id}", headers={"X-Owner-Id": "U2"}).status_code == 403
    assert client.delete(f"/delete/{upload_id}", headers=OWNER).status_code == 204
    assert client.get(f"/data/{upload_id}").status_code == 404
    assert not final_store.exists(upload_id)
    assert client.delete(f"/delete/{upload_id}", headers=OWNER).status_code == 404


def test_unknown_upload_is_404(client: TestClient) -> None:
    assert client.get("/data/10001").status_code == 404
    assert client.get("/view/10001").status_code == 404


def test_upload_without_owner_is_401(client: TestClient, image_bytes) -> None:
    response = _upload(client, image_bytes(), headers={})

    assert response.status_code == 401


def test_non_image_name_and_type_is_400(client: TestClient) -> None:
    response = client.post(
        "/api/upload",
        files={"file": ("notes.txt", b"hello", "text/plain")},
        headers=OWNER,
    )

    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "invalid_file"


def test_undecodable_image_is_400(client: TestClient, catalog) -> None:
    response = _upload(client, b"not really a jpeg")

    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "invalid_file"
    assert catalog.ids() == set()


def test_failed_catalog_append_is_reported_as_orphan(
    client: TestClient,
    catalog,
    final_store,
    image_bytes,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    def _fail(record):
        raise CatalogAppendError("disk full", record=record)

    monkeypatch.setattr(catalog, "append", _fail)

    response = _upload(client, image_bytes())

    assert response.status_code == 500
    detail = response.json()["detail"]
    assert detail["code"] == "orphan_commit"
    assert final_store.exists(detail["upload_id"])


def test_services_share_one_catalog(
    catalog,
    tmp_path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    import db.repositories.catalog as catalog_module
    from app.config import get_upload_settings
    from app.services.reconciliation_service import build_reconciliation_service

    caches = (
        catalog_module.get_catalog_repository,
        get_upload_settings,
        get_catalog_query_service,
        get_upload_orchestrator_service,
    )
    monkeypatch.setenv("UPLOAD_FINAL_DIR", str(tmp_path / "uploads"))
    monkeypatch.setenv("UPLOAD_STAGING_DIR", str(tmp_path / "uploads" / "temp"))
    monkeypatch.setattr(catalog_module, "CatalogRepository", lambda: catalog)
    for cached in caches:
        cached.cache_clear()
    try:
        assert get_catalog_query_service()._catalog is catalog
        assert get_upload_orchestrator_service()._catalog is catalog
        assert build_reconciliation_service()._catalog is catalog
    finally:
        for cached in caches:
            cached.cache_clear()
