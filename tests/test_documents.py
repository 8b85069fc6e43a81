"""Tests for the document store endpoints."""
import pytest
from httpx import AsyncClient

from tests.conftest import AUTH_HEADERS, AUTH_HEADERS_USER2, create_document


@pytest.mark.asyncio
async def test_create_document_defaults(client: AsyncClient):
    """A new document starts as a draft quote with the given data."""
    resp = await client.post(
        "/api/documents",
        json={"title": "Acme", "data": {"brandName": "Acme"}},
        headers=AUTH_HEADERS,
    )
    assert resp.status_code == 201
    doc = resp.json()
    assert doc["type"] == "quote"
    assert doc["status"] == "draft"
    assert doc["title"] == "Acme"
    assert doc["data"] == {"brandName": "Acme"}
    assert doc["user_id"] == "test-user-1"


@pytest.mark.asyncio
async def test_list_documents_only_own(client: AsyncClient):
    await create_document(client, title="One")
    await create_document(client, title="Two")
    await create_document(client, title="Other", headers=AUTH_HEADERS_USER2)

    resp = await client.get("/api/documents", headers=AUTH_HEADERS)
    assert resp.status_code == 200
    titles = {d["title"] for d in resp.json()}
    assert titles == {"One", "Two"}
    assert "data" not in resp.json()[0]


@pytest.mark.asyncio
async def test_patch_merges_data(client: AsyncClient):
    """Nested objects merge; null removes a key; other fields replace."""
    doc_id = await create_document(client, data={
        "brandName": "Acme",
        "_stepData": {"brief": {"brandName": "Acme"}, "goals": {"goals": []}},
        "obsolete": True,
    })
    resp = await client.patch(
        f"/api/documents/{doc_id}",
        json={
            "title": "Acme proposal",
            "data": {"_stepData": {"goals": {"goals": ["awareness"]}}, "obsolete": None},
        },
        headers=AUTH_HEADERS,
    )
    assert resp.status_code == 200
    doc = resp.json()
    assert doc["title"] == "Acme proposal"
    assert doc["data"]["_stepData"]["brief"] == {"brandName": "Acme"}
    assert doc["data"]["_stepData"]["goals"] == {"goals": ["awareness"]}
    assert "obsolete" not in doc["data"]
    assert doc["data"]["brandName"] == "Acme"


@pytest.mark.asyncio
async def test_patch_status(client: AsyncClient):
    doc_id = await create_document(client)
    resp = await client.patch(
        f"/api/documents/{doc_id}", json={"status": "archived"}, headers=AUTH_HEADERS
    )
    assert resp.status_code == 200
    assert resp.json()["status"] == "archived"


@pytest.mark.asyncio
async def test_patch_invalid_status_rejected(client: AsyncClient):
    doc_id = await create_document(client)
    resp = await client.patch(
        f"/api/documents/{doc_id}", json={"status": "published"}, headers=AUTH_HEADERS
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_delete_document(client: AsyncClient):
    doc_id = await create_document(client)
    resp = await client.delete(f"/api/documents/{doc_id}", headers=AUTH_HEADERS)
    assert resp.status_code == 204

    resp = await client.get(f"/api/documents/{doc_id}", headers=AUTH_HEADERS)
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_pipeline_status_flags(client: AsyncClient):
    """Flags accumulate under data._pipelineStatus."""
    doc_id = await create_document(client)
    resp = await client.put(
        f"/api/documents/{doc_id}/pipeline-status",
        json={"step": "research", "status": "complete"},
        headers=AUTH_HEADERS,
    )
    assert resp.status_code == 200
    resp = await client.put(
        f"/api/documents/{doc_id}/pipeline-status",
        json={"step": "proposal", "status": "pending"},
        headers=AUTH_HEADERS,
    )
    assert resp.json()["pipelineStatus"] == {"research": "complete", "proposal": "pending"}

    doc = (await client.get(f"/api/documents/{doc_id}", headers=AUTH_HEADERS)).json()
    assert doc["data"]["_pipelineStatus"] == {"research": "complete", "proposal": "pending"}


@pytest.mark.asyncio
async def test_pipeline_status_rejects_unknown_value(client: AsyncClient):
    doc_id = await create_document(client)
    resp = await client.put(
        f"/api/documents/{doc_id}/pipeline-status",
        json={"step": "research", "status": "done"},
        headers=AUTH_HEADERS,
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_preview_stored_presentation(client: AsyncClient):
    presentation = {
        "designSystem": {"fonts": {"heading": "Rubik"}},
        "slides": [
            {"id": "s1", "background": {"type": "solid", "value": "#000000"},
             "elements": [{"type": "text", "content": "שלום", "x": 0, "y": 0, "width": 10, "height": 10}]},
            {"id": "s2", "background": {"type": "solid", "value": "#ffffff"}, "elements": []},
        ],
    }
    doc_id = await create_document(client, data={"_presentation": presentation})
    resp = await client.get(f"/api/documents/{doc_id}/preview", headers=AUTH_HEADERS)
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/html")
    assert resp.text.count("<!DOCTYPE html>") == 2
    assert "שלום" in resp.text
    assert "family=Rubik" in resp.text


@pytest.mark.asyncio
async def test_preview_without_presentation_uses_fallback(client: AsyncClient):
    doc_id = await create_document(client, data={"brandName": "Acme"})
    resp = await client.get(f"/api/documents/{doc_id}/preview", headers=AUTH_HEADERS)
    assert resp.status_code == 200
    assert "Acme" in resp.text
    assert "images.unsplash.com" in resp.text
