"""Tests for brief extraction and proposal generation endpoints."""
import json

import pytest
from httpx import AsyncClient

from docmaker.services.brief_extractor import (
    WARN_NO_AUDIENCE,
    WARN_NO_BRAND,
    WARN_NO_BUDGET,
    normalize_extraction,
)
from docmaker.services.gemini_client import GeminiClient
from docmaker.services.proposal_agent import ProposalAgent, normalize_response
from tests.conftest import AUTH_HEADERS, create_document

BRIEF = "Acme Coffee wants an influencer campaign for its new cold brew, budget 50,000 ILS."

EXTRACTION = {
    "brand": {"name": "Acme Coffee", "industry": "Food & Beverage"},
    "budget": {"amount": "50,000", "currency": "₪"},
    "campaignGoals": ["awareness"],
    "targetAudience": {"primary": {"gender": "all", "ageRange": "25-34"}},
}

PROPOSAL = {
    "extracted": {
        "brand": {"name": "Acme Coffee", "background": "Specialty roaster"},
        "budget": {"amount": 50000, "currency": "₪"},
        "campaignGoals": ["awareness", "trial"],
    },
    "stepData": {
        "strategy": {"strategyHeadline": "Cold brew mornings"},
        "quantities": {"influencerCount": 8},
    },
}


def _fake_generate(responses):
    """GeminiClient.generate replacement returning *responses* in order ("" once exhausted)."""
    calls = []

    async def fake(self, prompt, **kwargs):
        calls.append(kwargs)
        return responses[len(calls) - 1] if len(calls) <= len(responses) else ""

    return fake, calls


# ---------------------------------------------------------------------------
# Normalisation
# ---------------------------------------------------------------------------

def test_normalize_extraction_parses_string_budget():
    data = normalize_extraction(EXTRACTION, has_kickoff=False)
    assert data["budget"]["amount"] == 50000
    assert data["_meta"]["warnings"] == []
    assert data["_meta"]["kickoffDocProcessed"] is False


def test_normalize_extraction_warns_on_missing_essentials():
    data = normalize_extraction("not a dict", has_kickoff=True)
    assert data["brand"]["name"] == ""
    assert data["budget"]["amount"] == 0
    assert set(data["_meta"]["warnings"]) == {WARN_NO_BRAND, WARN_NO_BUDGET, WARN_NO_AUDIENCE}
    assert data["campaignGoals"] == []


def test_normalize_response_fills_defaults():
    result = normalize_response(PROPOSAL, has_kickoff=False)
    step = result["stepData"]
    assert step["brief"]["brandName"] == "Acme Coffee"
    assert step["brief"]["brandObjective"] == "awareness"
    assert step["goals"]["goals"][1] == {"title": "trial", "description": ""}
    assert step["quantities"]["influencerCount"] == 8
    assert step["quantities"]["campaignDurationMonths"] == 1
    assert step["media_targets"]["budget"] == 50000
    assert result["extracted"]["_meta"]["confidence"] == "high"


@pytest.mark.asyncio
async def test_quick_extraction_falls_back():
    result = await ProposalAgent().extract_from_brief(BRIEF)
    assert result["_meta"]["confidence"] == "low"
    assert result["brand"]["name"] == ""


# ---------------------------------------------------------------------------
# /extract-brief
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_extract_brief(client: AsyncClient, monkeypatch):
    fake, calls = _fake_generate([json.dumps(EXTRACTION)])
    monkeypatch.setattr(GeminiClient, "generate", fake)

    resp = await client.post("/api/extract-brief", json={"brief": BRIEF}, headers=AUTH_HEADERS)
    assert resp.status_code == 200, resp.text
    data = resp.json()["data"]
    assert data["brand"]["name"] == "Acme Coffee"
    assert data["budget"]["amount"] == 50000
    assert calls[0]["json_mode"] is True


@pytest.mark.asyncio
async def test_extract_brief_retries_free_form(client: AsyncClient, monkeypatch):
    fake, calls = _fake_generate(["not json at all", "```json\n" + json.dumps(EXTRACTION) + "\n```"])
    monkeypatch.setattr(GeminiClient, "generate", fake)

    resp = await client.post("/api/extract-brief", json={"brief": BRIEF}, headers=AUTH_HEADERS)
    assert resp.status_code == 200
    assert len(calls) == 2
    assert calls[1]["json_mode"] is False


@pytest.mark.asyncio
async def test_extract_brief_requires_text(client: AsyncClient):
    resp = await client.post("/api/extract-brief", json={"brief": "   "}, headers=AUTH_HEADERS)
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_extract_brief_model_failure(client: AsyncClient):
    resp = await client.post("/api/extract-brief", json={"brief": BRIEF}, headers=AUTH_HEADERS)
    assert resp.status_code == 500
    assert resp.json()["detail"]["error"] == "Failed to extract brief"


# ---------------------------------------------------------------------------
# /process-proposal and /build-proposal
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_process_proposal(client: AsyncClient, monkeypatch):
    fake, _ = _fake_generate([json.dumps(PROPOSAL)])
    monkeypatch.setattr(GeminiClient, "generate", fake)

    resp = await client.post(
        "/api/process-proposal", json={"brief": BRIEF, "kickoff": "Kickoff notes"}, headers=AUTH_HEADERS
    )
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["extracted"]["brand"]["name"] == "Acme Coffee"
    assert body["extracted"]["_meta"]["kickoffDocProcessed"] is True
    assert body["stepData"]["strategy"]["strategyHeadline"] == "Cold brew mornings"


@pytest.mark.asyncio
async def test_process_proposal_short_brief(client: AsyncClient):
    resp = await client.post("/api/process-proposal", json={"brief": "too short"}, headers=AUTH_HEADERS)
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_process_proposal_all_attempts_fail(client: AsyncClient, monkeypatch):
    fake, calls = _fake_generate([])
    monkeypatch.setattr(GeminiClient, "generate", fake)

    resp = await client.post("/api/process-proposal", json={"brief": BRIEF}, headers=AUTH_HEADERS)
    assert resp.status_code == 500
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_build_proposal_stores_results(client: AsyncClient, monkeypatch):
    fake, _ = _fake_generate([json.dumps(PROPOSAL)])
    monkeypatch.setattr(GeminiClient, "generate", fake)
    doc_id = await create_document(client, data={"_briefText": BRIEF})

    resp = await client.post("/api/build-proposal", json={"documentId": doc_id}, headers=AUTH_HEADERS)
    assert resp.status_code == 200, resp.text

    doc = (await client.get(f"/api/documents/{doc_id}", headers=AUTH_HEADERS)).json()
    assert doc["title"] == "Acme Coffee"
    assert doc["data"]["_extractedData"]["brand"]["name"] == "Acme Coffee"
    assert doc["data"]["_stepData"]["quantities"]["influencerCount"] == 8
    assert doc["data"]["_pipelineStatus"]["proposal"] == "complete"
    assert doc["data"]["_briefText"] == BRIEF


@pytest.mark.asyncio
async def test_build_proposal_without_brief(client: AsyncClient):
    doc_id = await create_document(client)
    resp = await client.post("/api/build-proposal", json={"documentId": doc_id}, headers=AUTH_HEADERS)
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_build_proposal_requires_document_id(client: AsyncClient):
    resp = await client.post("/api/build-proposal", json={}, headers=AUTH_HEADERS)
    assert resp.status_code == 400
