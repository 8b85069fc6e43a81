"""
Staged slide generation endpoints.

POST /generate-slides-stage — foundation | batch | finalize, one request per stage.
POST /regenerate-slide      — redesign a single slide of the stored presentation.
"""
from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from docmaker.database import get_db
from docmaker.dependencies.auth import get_current_user_id, load_owned_document
from docmaker.models.schemas import RegenerateSlideRequest, SlidesStageRequest
from docmaker.services.document_pipeline import SLIDE_STAGES, DocumentPipeline

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/generate-slides-stage")
async def generate_slides_stage(
    body: SlidesStageRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    """
    Run one stage of slide generation for a document.

    The client calls ``foundation`` once, ``batch`` for every batch index
    from 0 to ``totalBatches - 1``, then ``finalize``.  Intermediate state
    lives in ``data._pipeline`` so each call fits in one request.
    """
    if not body.document_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="documentId is required",
        )
    if body.stage not in SLIDE_STAGES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown stage {body.stage!r}; expected one of {', '.join(SLIDE_STAGES)}",
        )
    document = await load_owned_document(body.document_id, user_id, db)

    logger.info(
        "Slides stage %s%s for document %s",
        body.stage, f" #{body.batch_index}" if body.batch_index is not None else "", document.id,
    )
    try:
        result = await DocumentPipeline().run_slide_stage(db, document, body.stage, body.batch_index)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except Exception as exc:
        logger.exception("Slides stage %s failed for document %s", body.stage, document.id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": f"Slide stage '{body.stage}' failed", "details": str(exc)},
        )

    return {"success": True, **result}


@router.post("/regenerate-slide")
async def regenerate_slide(
    body: RegenerateSlideRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    """Regenerate one slide, optionally following a free-text instruction."""
    if not body.document_id or body.slide_index is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="documentId and slideIndex are required",
        )
    document = await load_owned_document(body.document_id, user_id, db)

    try:
        slide = await DocumentPipeline().regenerate_slide(db, document, body.slide_index, body.instruction)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except RuntimeError as exc:
        logger.error("Slide %d regeneration failed for document %s: %s", body.slide_index, document.id, exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to regenerate slide", "details": str(exc)},
        )

    return {"success": True, "slide": slide, "slideIndex": body.slide_index}
