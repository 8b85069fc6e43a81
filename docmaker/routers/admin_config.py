"""
Admin configuration endpoints (admin role required).

GET    /?category=            — code defaults merged with DB overrides.
POST   /                      — save an override (validated, audited).
DELETE /?category=&key=       — drop an override, restoring the default.
GET    /history?category=     — newest-first change history.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from docmaker.database import get_db
from docmaker.dependencies.auth import require_admin
from docmaker.models.schemas import AdminConfigHistoryResponse, AdminConfigItem, AdminConfigUpdate
from docmaker.services import admin_config

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=List[AdminConfigItem])
async def list_config(
    category: str = Query(...),
    user_id: str = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> List[AdminConfigItem]:
    try:
        items = await admin_config.list_effective_configs(db, category)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return [AdminConfigItem(**item) for item in items]


@router.post("")
async def save_config(
    body: AdminConfigUpdate,
    user_id: str = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    """Upsert an override; the value is checked against the key's value type."""
    if not body.category or not body.key or body.value is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="category, key and value are required",
        )
    try:
        row = await admin_config.save_config(db, body.category, body.key, body.value, user_id, body.reason)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return {"success": True, "id": row.id, "category": row.category, "key": row.key, "value": row.value}


@router.delete("")
async def delete_config(
    category: Optional[str] = Query(None),
    key: Optional[str] = Query(None),
    user_id: str = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    if not category or not key:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="category and key are required",
        )
    await admin_config.delete_config(db, category, key)
    logger.info("Override %s/%s removed by %s", category, key, user_id)
    return {"success": True}


@router.get("/history", response_model=List[AdminConfigHistoryResponse])
async def config_history(
    category: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    user_id: str = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> List[AdminConfigHistoryResponse]:
    rows = await admin_config.get_config_history(db, category, limit)
    return [AdminConfigHistoryResponse.model_validate(r) for r in rows]
