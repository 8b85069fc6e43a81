"""Tests for staged slide generation and single-slide regeneration endpoints."""
import pytest
from httpx import AsyncClient

from docmaker.services import document_pipeline, slide_designer
from tests.conftest import AUTH_HEADERS, AUTH_HEADERS_USER2, create_document

DATA = {
    "brandName": "Acme",
    "_stepData": {
        "brief": {"brandBrief": "Specialty coffee roaster"},
        "media_targets": {"budget": 80000, "currency": "ILS"},
    },
    "_scraped": {"logoUrl": "https://acme.example/logo.png"},
}


async def _stage(client: AsyncClient, doc_id: str, stage: str, batch_index=None, headers=None):
    body = {"documentId": doc_id, "stage": stage}
    if batch_index is not None:
        body["batchIndex"] = batch_index
    return await client.post("/api/generate-slides-stage", json=body, headers=headers or AUTH_HEADERS)


async def _generate_deck(client: AsyncClient, doc_id: str) -> dict:
    foundation = (await _stage(client, doc_id, "foundation")).json()
    for index in range(foundation["totalBatches"]):
        resp = await _stage(client, doc_id, "batch", index)
        assert resp.status_code == 200, resp.text
    resp = await _stage(client, doc_id, "finalize")
    assert resp.status_code == 200, resp.text
    return resp.json()["presentation"]


@pytest.mark.asyncio
async def test_full_staged_flow(client: AsyncClient):
    doc_id = await create_document(client, data=DATA)

    resp = await _stage(client, doc_id, "foundation")
    assert resp.status_code == 200, resp.text
    foundation = resp.json()
    assert foundation["success"] is True
    assert foundation["stage"] == "foundation"
    assert foundation["totalBatches"] == 3
    assert foundation["totalSlides"] == 12

    resp = await _stage(client, doc_id, "batch", 0)
    body = resp.json()
    assert body["batchIndex"] == 0
    assert body["slidesGenerated"] == 5
    assert body["totalBatches"] == 3

    # a repeated batch replaces the earlier result
    await _stage(client, doc_id, "batch", 0)
    for index in (1, 2):
        await _stage(client, doc_id, "batch", index)

    doc = (await client.get(f"/api/documents/{doc_id}", headers=AUTH_HEADERS)).json()
    assert [r["batchIndex"] for r in doc["data"]["_pipeline"]["batchResults"]] == [0, 1, 2]

    resp = await _stage(client, doc_id, "finalize")
    assert resp.status_code == 200, resp.text
    presentation = resp.json()["presentation"]
    assert len(presentation["slides"]) == 12
    assert presentation["title"] == "Acme"

    doc = (await client.get(f"/api/documents/{doc_id}", headers=AUTH_HEADERS)).json()
    assert doc["status"] == "preview"
    assert "_pipeline" not in doc["data"]
    assert doc["data"]["_pipelineStatus"]["slides"] == "complete"
    assert len(doc["data"]["_presentation"]["slides"]) == 12

    preview = await client.get(f"/api/documents/{doc_id}/preview", headers=AUTH_HEADERS)
    assert preview.status_code == 200
    assert preview.text.count("<!DOCTYPE html>") == 12
    assert "https://acme.example/logo.png" in preview.text


@pytest.mark.asyncio
async def test_batch_before_foundation(client: AsyncClient):
    doc_id = await create_document(client, data=DATA)
    resp = await _stage(client, doc_id, "batch", 0)
    assert resp.status_code == 400
    assert "Foundation" in resp.json()["detail"]


@pytest.mark.asyncio
async def test_batch_requires_index(client: AsyncClient):
    doc_id = await create_document(client, data=DATA)
    await _stage(client, doc_id, "foundation")
    resp = await _stage(client, doc_id, "batch")
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_batch_index_out_of_range(client: AsyncClient):
    doc_id = await create_document(client, data=DATA)
    await _stage(client, doc_id, "foundation")
    resp = await _stage(client, doc_id, "batch", 7)
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_unknown_stage(client: AsyncClient):
    doc_id = await create_document(client, data=DATA)
    resp = await _stage(client, doc_id, "polish")
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_stage_requires_document_id(client: AsyncClient):
    resp = await client.post("/api/generate-slides-stage", json={"stage": "foundation"}, headers=AUTH_HEADERS)
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_finalize_without_batches(client: AsyncClient):
    doc_id = await create_document(client, data=DATA)
    await _stage(client, doc_id, "foundation")
    resp = await _stage(client, doc_id, "finalize")
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_stage_other_user_forbidden(client: AsyncClient):
    doc_id = await create_document(client, data=DATA)
    resp = await _stage(client, doc_id, "foundation", headers=AUTH_HEADERS_USER2)
    assert resp.status_code == 403


# ---------------------------------------------------------------------------
# Regenerate
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_regenerate_slide(client: AsyncClient, monkeypatch):
    captured = {}

    async def fake_regenerate(design_system, slide_input, brand_name, instruction=None, slide_index=0):
        captured.update(
            slide_input=slide_input, brand_name=brand_name, instruction=instruction, slide_index=slide_index,
        )
        return {
            "id": "new",
            "slideType": slide_input["slideType"],
            "background": {"type": "solid", "value": "#ffffff"},
            "elements": [{"id": "el-0", "type": "text", "role": "title", "content": "חדש"}],
        }

    monkeypatch.setattr(document_pipeline, "regenerate_single_slide", fake_regenerate)
    doc_id = await create_document(client, data=DATA)
    presentation = await _generate_deck(client, doc_id)
    original_id = presentation["slides"][1]["id"]

    resp = await client.post(
        "/api/regenerate-slide",
        json={"documentId": doc_id, "slideIndex": 1, "instruction": "more playful"},
        headers=AUTH_HEADERS,
    )
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["slideIndex"] == 1
    assert body["slide"]["id"] == original_id
    assert captured["slide_input"]["slideType"] == "brief"
    assert captured["instruction"] == "more playful"
    assert captured["brand_name"] == "Acme"
    assert captured["slide_index"] == 1

    doc = (await client.get(f"/api/documents/{doc_id}", headers=AUTH_HEADERS)).json()
    stored = doc["data"]["_presentation"]["slides"][1]
    assert stored["elements"][0]["content"] == "חדש"
    assert any(e["id"].startswith("leaders-logo") for e in stored["elements"])


@pytest.mark.asyncio
async def test_regenerate_slide_out_of_range(client: AsyncClient):
    doc_id = await create_document(client, data=DATA)
    await _generate_deck(client, doc_id)
    resp = await client.post(
        "/api/regenerate-slide", json={"documentId": doc_id, "slideIndex": 40}, headers=AUTH_HEADERS
    )
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_regenerate_slide_without_presentation(client: AsyncClient):
    doc_id = await create_document(client, data=DATA)
    resp = await client.post(
        "/api/regenerate-slide", json={"documentId": doc_id, "slideIndex": 0}, headers=AUTH_HEADERS
    )
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_regenerate_slide_generation_failure(client: AsyncClient):
    """Without a model the regeneration fails with 500."""
    doc_id = await create_document(client, data=DATA)
    await _generate_deck(client, doc_id)
    resp = await client.post(
        "/api/regenerate-slide", json={"documentId": doc_id, "slideIndex": 0}, headers=AUTH_HEADERS
    )
    assert resp.status_code == 500
    assert resp.json()["detail"]["error"] == "Failed to regenerate slide"


@pytest.mark.asyncio
async def test_rerun_batch_replaces_its_slides(client: AsyncClient, monkeypatch):
    runs = []

    async def fake_batch(design_system, slides, batch_index, brand_name, previous_context="", slide_index=0):
        runs.append(batch_index)
        return [
            {
                "id": f"slide-{slide_index + i}",
                "slideType": s["slideType"],
                "label": f"run-{len(runs)}",
                "elements": [],
            }
            for i, s in enumerate(slides)
        ]

    monkeypatch.setattr(slide_designer, "generate_slides_batch", fake_batch)
    doc_id = await create_document(client, data=DATA)
    await _stage(client, doc_id, "foundation")
    await _stage(client, doc_id, "batch", 0)
    await _stage(client, doc_id, "batch", 0)

    doc = (await client.get(f"/api/documents/{doc_id}", headers=AUTH_HEADERS)).json()
    results = doc["data"]["_pipeline"]["batchResults"]
    assert runs == [0, 0]
    assert len(results) == 1
    assert len(results[0]["slides"]) == 5
    assert {s["label"] for s in results[0]["slides"]} == {"run-2"}
