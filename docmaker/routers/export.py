"""
PDF export endpoint.

POST /pdf — render the document's presentation to PDF, store it and
record ``pdf_url``; ``action="download"`` returns the bytes instead of JSON.
"""
from __future__ import annotations

import logging
import time

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from docmaker.database import get_db
from docmaker.dependencies.auth import get_current_user_id, load_owned_document
from docmaker.models.database_models import DocumentStatus
from docmaker.models.schemas import PdfRequest
from docmaker.services import storage
from docmaker.services.document_store import save_document
from docmaker.services.html_renderer import presentation_to_html_slides
from docmaker.services.pdf_renderer import build_document_presentation, render_pdf

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/pdf")
async def export_pdf(
    body: PdfRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    """
    Render and store the PDF.

    Uses the finalized ``_presentation`` when there is one; otherwise the
    slides are assembled from the stored proposal data with fallback
    images.
    """
    if not body.document_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="documentId is required",
        )
    document = await load_owned_document(body.document_id, user_id, db)
    data = document.data or {}

    presentation = data.get("_presentation")
    if not presentation or not presentation.get("slides"):
        logger.info("Document %s has no presentation; rendering fallback slides", document.id)
        presentation = build_document_presentation(data)

    t0 = time.monotonic()
    try:
        pdf_bytes = await render_pdf(presentation_to_html_slides(presentation))
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except RuntimeError as exc:
        logger.error("PDF rendering failed for document %s: %s", document.id, exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to generate PDF", "details": str(exc)},
        )

    file_name = f"proposal_{document.id}_{int(time.time() * 1000)}.pdf"
    pdf_url = await storage.save_bytes(pdf_bytes, file_name, subdir="pdfs")
    await save_document(db, document, pdf_url=pdf_url, status=DocumentStatus.GENERATED)
    logger.info(
        "PDF for document %s: %d slides in %.1fs -> %s",
        document.id, len(presentation.get("slides") or []), time.monotonic() - t0, pdf_url,
    )

    if body.action == "download":
        return Response(
            content=pdf_bytes,
            media_type="application/pdf",
            headers={"Content-Disposition": f'attachment; filename="{file_name}"'},
        )
    return {"success": True, "pdfUrl": pdf_url, "pageCount": len(presentation.get("slides") or [])}
