"""Tests for authentication boundaries.

Verifies that document endpoints require X-User-Id and that users cannot
access other users' documents.
"""
import pytest
from httpx import AsyncClient

from docmaker.config import settings
from tests.conftest import AUTH_HEADERS, AUTH_HEADERS_USER2, create_document


@pytest.mark.asyncio
async def test_documents_requires_auth_header(client: AsyncClient):
    """GET /api/documents without X-User-Id should return 401."""
    resp = await client.get("/api/documents")
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_create_document_requires_auth_header(client: AsyncClient):
    resp = await client.post("/api/documents", json={"title": "Unauthed"})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_ai_step_requires_auth_header(client: AsyncClient):
    resp = await client.post("/api/extract-brief", json={"brief": "some brief text"})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_wrong_user_cannot_read_document(client: AsyncClient):
    """User 2 should get 403 when reading user 1's document."""
    doc_id = await create_document(client, title="Private")
    resp = await client.get(f"/api/documents/{doc_id}", headers=AUTH_HEADERS_USER2)
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_wrong_user_cannot_delete_document(client: AsyncClient):
    doc_id = await create_document(client, title="Private")
    resp = await client.delete(f"/api/documents/{doc_id}", headers=AUTH_HEADERS_USER2)
    assert resp.status_code == 403

    resp = await client.get(f"/api/documents/{doc_id}", headers=AUTH_HEADERS)
    assert resp.status_code == 200


@pytest.mark.asyncio
async def test_wrong_user_cannot_run_stage_on_document(client: AsyncClient):
    """Body-addressed documents are ownership-checked too."""
    doc_id = await create_document(client)
    resp = await client.post(
        "/api/generate-slides-stage",
        json={"documentId": doc_id, "stage": "foundation"},
        headers=AUTH_HEADERS_USER2,
    )
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_nonexistent_document_returns_404(client: AsyncClient):
    resp = await client.get("/api/documents/does-not-exist", headers=AUTH_HEADERS)
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_dev_mode_uses_dev_user(client: AsyncClient, monkeypatch):
    """In DEV_MODE a request without headers acts as the dev user."""
    monkeypatch.setattr(settings, "DEV_MODE", True)
    resp = await client.post("/api/documents", json={"title": "Dev doc"})
    assert resp.status_code == 201
    assert resp.json()["user_id"] == "dev-user-id"
