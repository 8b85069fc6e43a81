"""Tests for admin config endpoints and the config loader."""
import json

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from docmaker.models.database_models import AdminConfig, ConfigValueType
from docmaker.services import admin_config
from docmaker.services.config_defaults import PACING_MAP, TEMPERATURE_MAP
from tests.conftest import ADMIN_HEADERS, AUTH_HEADERS

URL = "/api/admin/config"


async def _save(client: AsyncClient, key: str, value, category: str = "ai_models", reason=None):
    return await client.post(
        URL,
        json={"category": category, "key": key, "value": value, "reason": reason},
        headers=ADMIN_HEADERS,
    )


@pytest.mark.asyncio
async def test_list_category_defaults(client: AsyncClient):
    resp = await client.get(URL, params={"category": "pipeline"}, headers=ADMIN_HEADERS)
    assert resp.status_code == 200
    items = {item["key"]: item for item in resp.json()}
    assert items["limits.competitors"]["value"] == 4
    assert items["limits.competitors"]["isOverridden"] is False
    assert items["limits.competitors"]["value_type"] == "number"


@pytest.mark.asyncio
async def test_list_unknown_category(client: AsyncClient):
    resp = await client.get(URL, params={"category": "nope"}, headers=ADMIN_HEADERS)
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_save_override_and_list(client: AsyncClient):
    resp = await _save(client, "slide_designer.temperature", 0.5)
    assert resp.status_code == 200, resp.text
    assert resp.json()["value"] == 0.5

    items = {i["key"]: i for i in (await client.get(URL, params={"category": "ai_models"}, headers=ADMIN_HEADERS)).json()}
    temp = items["slide_designer.temperature"]
    assert temp["value"] == 0.5
    assert temp["defaultValue"] == 0.8
    assert temp["isOverridden"] is True


@pytest.mark.asyncio
async def test_save_requires_fields(client: AsyncClient):
    resp = await client.post(URL, json={"category": "ai_models"}, headers=ADMIN_HEADERS)
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_save_unknown_key(client: AsyncClient):
    resp = await _save(client, "does.not.exist", "x")
    assert resp.status_code == 400
    assert "Unknown config key" in resp.json()["detail"]


@pytest.mark.asyncio
async def test_save_type_mismatch(client: AsyncClient):
    resp = await _save(client, "slide_designer.temperature", "hot")
    assert resp.status_code == 400
    resp = await _save(client, "google_search_in_research", "yes", category="feature_flags")
    assert resp.status_code == 400
    resp = await _save(client, "proposal_agent.primary_model", "   ")
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_history_records_changes(client: AsyncClient):
    await _save(client, "limits.campaigns", 5, category="pipeline")
    await _save(client, "limits.campaigns", 2, category="pipeline", reason="shorter prompts")

    resp = await client.get(f"{URL}/history", params={"category": "pipeline"}, headers=ADMIN_HEADERS)
    assert resp.status_code == 200
    history = resp.json()
    assert len(history) == 2
    newest, first = history
    assert newest["old_value"] == 5
    assert newest["new_value"] == 2
    assert newest["change_reason"] == "shorter prompts"
    assert first["old_value"] == 3
    assert first["change_reason"] == "initial save"
    assert first["changed_by"] == ADMIN_HEADERS["X-User-Id"]


@pytest.mark.asyncio
async def test_delete_restores_default(client: AsyncClient):
    await _save(client, "limits.competitors", 2, category="pipeline")
    resp = await client.delete(
        URL, params={"category": "pipeline", "key": "limits.competitors"}, headers=ADMIN_HEADERS
    )
    assert resp.status_code == 200
    assert resp.json()["success"] is True

    items = {i["key"]: i for i in (await client.get(URL, params={"category": "pipeline"}, headers=ADMIN_HEADERS)).json()}
    assert items["limits.competitors"]["value"] == 4
    assert items["limits.competitors"]["isOverridden"] is False


@pytest.mark.asyncio
async def test_delete_requires_category_and_key(client: AsyncClient):
    resp = await client.delete(URL, params={"category": "pipeline"}, headers=ADMIN_HEADERS)
    assert resp.status_code == 400


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_get_config_falls_back_to_default(db_session: AsyncSession):
    value = await admin_config.get_config("design_system", "pacing_map", db=db_session)
    assert value == PACING_MAP


@pytest.mark.asyncio
async def test_get_config_explicit_default(db_session: AsyncSession):
    assert await admin_config.get_config("wizard", "missing", "fallback", db=db_session) == "fallback"
    assert await admin_config.get_config("wizard", "other", db=db_session) is None


@pytest.mark.asyncio
async def test_save_invalidates_cache(client: AsyncClient, db_session: AsyncSession):
    assert await admin_config.get_config("ai_models", "slide_designer.temperature", db=db_session) == 0.8
    await _save(client, "slide_designer.temperature", 0.3)
    assert await admin_config.get_config("ai_models", "slide_designer.temperature", db=db_session) == 0.3


def test_validate_config_value():
    assert admin_config.validate_config_value(3, "number") is None
    assert admin_config.validate_config_value(True, "number") is not None
    assert admin_config.validate_config_value("{bad", "json") == "Invalid JSON"
    assert admin_config.validate_config_value({"a": 1}, "json") is None
    assert admin_config.validate_config_value(False, "boolean") is None


# ---------------------------------------------------------------------------
# Access and JSON shapes
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_non_admin_is_forbidden(client: AsyncClient):
    resp = await client.post(
        URL,
        json={"category": "ai_models", "key": "slide_designer.temperature", "value": 0.1},
        headers=AUTH_HEADERS,
    )
    assert resp.status_code == 403
    assert (await client.get(URL, params={"category": "pipeline"}, headers=AUTH_HEADERS)).status_code == 403
    assert (await client.get(f"{URL}/history", headers=AUTH_HEADERS)).status_code == 403


@pytest.mark.asyncio
@pytest.mark.parametrize("value", ["[1, 2]", [1, 2], "\"cover\"", 5])
async def test_pacing_map_rejects_non_object(client: AsyncClient, db_session: AsyncSession, value):
    resp = await _save(client, "pacing_map", value, category="design_system")
    assert resp.status_code == 400
    effective = await admin_config.get_config("design_system", "pacing_map", PACING_MAP, db=db_session)
    assert effective == PACING_MAP


@pytest.mark.asyncio
async def test_json_string_is_stored_parsed(client: AsyncClient, db_session: AsyncSession):
    override = {"cover": {"energy": "high", "density": "minimal", "maxElements": 6, "minWhitespace": 50}}
    resp = await _save(client, "pacing_map", json.dumps(override), category="design_system")
    assert resp.status_code == 200, resp.text
    assert resp.json()["value"] == override

    value = await admin_config.get_config("design_system", "pacing_map", PACING_MAP, db=db_session)
    assert value["cover"]["maxElements"] == 6


@pytest.mark.asyncio
async def test_get_config_ignores_stored_wrong_shape(db_session: AsyncSession):
    db_session.add(AdminConfig(
        category="design_system",
        key="temperature_map",
        value="[1, 2]",
        value_type=ConfigValueType.JSON,
        updated_by="legacy",
    ))
    await db_session.flush()
    value = await admin_config.get_config("design_system", "temperature_map", TEMPERATURE_MAP, db=db_session)
    assert value == TEMPERATURE_MAP


def test_validate_json_container_type():
    assert admin_config.validate_config_value("[1]", "json", {"a": 1}) == "A JSON object is required"
    assert admin_config.validate_config_value({"a": 1}, "json", []) == "A JSON array is required"
    assert admin_config.validate_config_value('{"a": 1}', "json", {}) is None
