"""
Admin configuration loader and editor.

get_config(category, key) resolves a value in three steps:
  1. in-process cache (CONFIG_CACHE_TTL seconds)
  2. ``admin_config`` row for (category, key)
  3. the code default from :mod:`docmaker.services.config_defaults`

An empty table (or an unreachable database) means the system runs on code
defaults; the default is cached too so repeated misses stay cheap.
"""
from __future__ import annotations

import json
import logging
import math
import time
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from docmaker.config import settings
from docmaker.database import AsyncSessionLocal
from docmaker.models.database_models import AdminConfig, AdminConfigHistory, ConfigValueType
from docmaker.services.config_defaults import CATEGORIES, CONFIG_DEFAULTS, get_default

logger = logging.getLogger(__name__)

_MISSING = object()

# "category:key" -> (value, expiry on the monotonic clock)
_cache: Dict[str, Tuple[Any, float]] = {}


def _cache_key(category: str, key: str) -> str:
    return f"{category}:{key}"


def _remember(cache_key: str, value: Any) -> Any:
    _cache[cache_key] = (value, time.monotonic() + settings.CONFIG_CACHE_TTL)
    return value


async def get_config(
    category: str,
    key: str,
    default: Any = _MISSING,
    db: Optional[AsyncSession] = None,
) -> Any:
    """
    Return the effective value of ``category/key``.

    *default* overrides the registry default; when neither exists the
    result is None.  Never raises on database errors.
    """
    if default is _MISSING:
        registered = get_default(category, key)
        default = registered.value if registered else None

    cache_key = _cache_key(category, key)
    cached = _cache.get(cache_key)
    if cached and time.monotonic() < cached[1]:
        return cached[0]

    try:
        if db is not None:
            row = await _fetch_row(db, category, key)
        else:
            async with AsyncSessionLocal() as session:
                row = await _fetch_row(session, category, key)
        if row is not None and row.value is not None:
            if isinstance(default, (dict, list)) and not isinstance(row.value, type(default)):
                logger.warning(
                    "get_config(%s/%s): stored %s does not match default %s, using default",
                    category, key, type(row.value).__name__, type(default).__name__,
                )
            else:
                return _remember(cache_key, row.value)
    except (SQLAlchemyError, OSError) as exc:
        logger.debug("get_config(%s/%s): database unavailable, using default (%s)", category, key, exc)

    return _remember(cache_key, default)


async def _fetch_row(db: AsyncSession, category: str, key: str) -> Optional[AdminConfig]:
    result = await db.execute(
        select(AdminConfig).where(AdminConfig.category == category, AdminConfig.key == key)
    )
    return result.scalar_one_or_none()


def invalidate_config(category: str, key: Optional[str] = None) -> None:
    """Drop one cached key, or every cached key of *category*."""
    if key:
        _cache.pop(_cache_key(category, key), None)
        return
    prefix = f"{category}:"
    for cache_key in [k for k in _cache if k.startswith(prefix)]:
        _cache.pop(cache_key, None)


def clear_cache() -> None:
    _cache.clear()


async def get_category_configs(db: AsyncSession, category: str) -> List[AdminConfig]:
    """All DB overrides of *category*, ordered by key."""
    result = await db.execute(
        select(AdminConfig).where(AdminConfig.category == category).order_by(AdminConfig.key)
    )
    return list(result.scalars().all())


async def get_config_history(
    db: AsyncSession, category: Optional[str] = None, limit: int = 50
) -> List[AdminConfigHistory]:
    """Newest-first change history, optionally for one category."""
    query = select(AdminConfigHistory).order_by(
        AdminConfigHistory.created_at.desc(), AdminConfigHistory.id.desc()
    )
    if category:
        query = query.where(AdminConfigHistory.category == category)
    result = await db.execute(query.limit(limit))
    return list(result.scalars().all())


async def list_effective_configs(db: AsyncSession, category: str) -> List[Dict[str, Any]]:
    """
    Merge the code defaults of *category* with its DB overrides.

    Raises:
        ValueError: unknown category.
    """
    if category not in CATEGORIES:
        raise ValueError(f"Invalid category: {category}")

    overrides = {row.key: row for row in await get_category_configs(db, category)}
    items: List[Dict[str, Any]] = []
    for key, definition in CONFIG_DEFAULTS[category].items():
        row = overrides.get(key)
        items.append({
            "key": key,
            "description": definition.description,
            "value_type": definition.value_type,
            "value": row.value if row is not None else definition.value,
            "defaultValue": definition.value,
            "isOverridden": row is not None,
            "dbId": row.id if row is not None else None,
            "updatedAt": row.updated_at if row is not None else None,
            "group": definition.group,
        })
    return items


def validate_config_value(value: Any, value_type: str, default: Any = None) -> Optional[str]:
    """
    Return an error message when *value* does not fit *value_type*.

    JSON values (or JSON strings) must also match the container type of
    *default*: an object where the default is a dict, an array for a list.
    """
    if value_type == "text":
        if not isinstance(value, str) or not value.strip():
            return "Text value cannot be empty"
    elif value_type == "number":
        if isinstance(value, bool) or not isinstance(value, (int, float)) or math.isnan(value):
            return "A valid numeric value is required"
    elif value_type == "boolean":
        if not isinstance(value, bool):
            return "A true/false value is required"
    elif value_type == "json":
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except ValueError:
                return "Invalid JSON"
        if isinstance(default, dict) and not isinstance(value, dict):
            return "A JSON object is required"
        if isinstance(default, list) and not isinstance(value, list):
            return "A JSON array is required"
    return None


async def save_config(
    db: AsyncSession,
    category: str,
    key: str,
    value: Any,
    user_id: str,
    reason: Optional[str] = None,
) -> AdminConfig:
    """
    Upsert an override and write a history record.

    Raises:
        ValueError: unknown key or a value that fails validation.
    """
    definition = get_default(category, key)
    if definition is None:
        raise ValueError(f"Unknown config key: {category}/{key}")

    error = validate_config_value(value, definition.value_type, definition.value)
    if error:
        raise ValueError(error)
    if definition.value_type == "json" and isinstance(value, str):
        value = json.loads(value)

    row = await _fetch_row(db, category, key)
    if row is not None:
        old_value = row.value
        row.value = value
        row.updated_by = user_id
        change_reason = reason
    else:
        # First save: the history shows the code default as the old value
        old_value = definition.value
        row = AdminConfig(
            category=category,
            key=key,
            value=value,
            description=definition.description,
            value_type=ConfigValueType(definition.value_type),
            updated_by=user_id,
        )
        db.add(row)
        change_reason = reason or "initial save"

    await db.flush()
    db.add(AdminConfigHistory(
        config_id=row.id,
        category=category,
        key=key,
        old_value=old_value,
        new_value=value,
        changed_by=user_id,
        change_reason=change_reason,
    ))
    await db.flush()

    invalidate_config(category, key)
    logger.info("Admin config saved: %s/%s by %s", category, key, user_id)
    return row


async def delete_config(db: AsyncSession, category: str, key: str) -> None:
    """Remove the override so the code default applies again."""
    await db.execute(
        delete(AdminConfig).where(AdminConfig.category == category, AdminConfig.key == key)
    )
    invalidate_config(category, key)
    logger.info("Admin config override removed: %s/%s", category, key)
