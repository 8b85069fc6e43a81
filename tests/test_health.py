"""Tests for GET /api/health."""
import pytest
from httpx import AsyncClient

from docmaker.services.gemini_client import GeminiClient


@pytest.mark.asyncio
async def test_health_returns_200(client: AsyncClient):
    resp = await client.get("/api/health/")
    assert resp.status_code == 200
    data = resp.json()
    assert "status" in data
    assert "database" in data
    assert data["database"] == "ok"


@pytest.mark.asyncio
async def test_health_degraded_without_gemini(client: AsyncClient):
    """No API key configured -> gemini error, overall degraded."""
    resp = await client.get("/api/health/")
    data = resp.json()
    assert data["gemini"] == "error"
    assert data["status"] == "degraded"


@pytest.mark.asyncio
async def test_health_healthy_when_gemini_answers(client: AsyncClient, monkeypatch):
    async def fake_ping(self):
        return True

    monkeypatch.setattr(GeminiClient, "ping", fake_ping)
    resp = await client.get("/api/health/")
    assert resp.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_root_endpoint(client: AsyncClient):
    resp = await client.get("/")
    assert resp.status_code == 200
    data = resp.json()
    assert data["name"] == "DocMaker API"
    assert "X-Process-Time" in resp.headers
