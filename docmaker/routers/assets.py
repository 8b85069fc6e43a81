"""
Visual asset endpoint.

POST /visual-assets — brand colours, logo and generated placement images.
"""
from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from docmaker.database import get_db
from docmaker.dependencies.auth import get_current_user_id, load_owned_document
from docmaker.models.schemas import VisualAssetsRequest
from docmaker.services.document_store import replace_data_key, save_document
from docmaker.services.visual_assets import VisualAssetsService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/visual-assets")
async def visual_assets(
    body: VisualAssetsRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    """
    Build the brand's visual assets.

    With ``documentId`` the colours, logo and images are stored as
    ``_brandColors``, ``_scraped.logoUrl`` and ``_generatedImages``.
    """
    if not body.brand_name or not body.brand_name.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="brandName is required",
        )
    document = await load_owned_document(body.document_id, user_id, db) if body.document_id else None

    try:
        assets = await VisualAssetsService().build_visual_assets(
            body.brand_name.strip(),
            domain=body.domain,
            research=body.research,
            generate_images=body.generate_images,
        )
    except Exception as exc:
        logger.exception("Visual assets failed for %r", body.brand_name)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to generate visual assets", "details": str(exc)},
        )

    if document is not None:
        replace_data_key(document, "_brandColors", assets["colors"])
        patch: Dict[str, Any] = {}
        if assets["logo"]:
            patch["_scraped"] = {"logoUrl": assets["logo"]["url"]}
        if assets["images"]:
            patch["_generatedImages"] = assets["images"]
        await save_document(db, document, patch)

    return {"success": True, **assets}
