"""
Document store endpoints.

POST   /                      — create a document owned by the caller.
GET    /                      — list the caller's documents (newest first).
GET    /{id}                  — full document including ``data``.
PATCH  /{id}                  — merge-patch ``data``; set title / status / export fields.
DELETE /{id}                  — delete the document.
PUT    /{id}/pipeline-status  — set one resume flag in ``data._pipelineStatus``.
GET    /{id}/preview          — HTML of the stored presentation.
"""
from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import HTMLResponse
from sqlalchemy.ext.asyncio import AsyncSession

from docmaker.database import get_db
from docmaker.dependencies.auth import get_or_create_user, get_owned_document
from docmaker.models.database_models import Document, DocumentStatus, DocumentType, User
from docmaker.models.schemas import (
    DocumentCreate,
    DocumentResponse,
    DocumentSummary,
    DocumentUpdate,
    PipelineFlagUpdate,
)
from docmaker.services import document_store
from docmaker.services.html_renderer import presentation_to_html_slides
from docmaker.services.pdf_renderer import build_document_presentation

logger = logging.getLogger(__name__)

router = APIRouter()

# Separates slide pages in the preview; each page is a complete HTML document
PREVIEW_PAGE_BREAK = "\n<!-- slide -->\n"


@router.post("", response_model=DocumentResponse, status_code=status.HTTP_201_CREATED)
async def create_document(
    body: DocumentCreate,
    user: User = Depends(get_or_create_user),
    db: AsyncSession = Depends(get_db),
) -> DocumentResponse:
    """Create a draft document for the current user."""
    document = await document_store.create_document(
        db,
        user.id,
        doc_type=DocumentType(body.type.value),
        title=body.title,
        data=body.data,
        template_id=body.template_id,
    )
    return DocumentResponse.model_validate(document)


@router.get("", response_model=List[DocumentSummary])
async def list_documents(
    user: User = Depends(get_or_create_user),
    db: AsyncSession = Depends(get_db),
) -> List[DocumentSummary]:
    documents = await document_store.list_documents(db, user.id)
    return [DocumentSummary.model_validate(d) for d in documents]


@router.get("/{document_id}", response_model=DocumentResponse)
async def get_document(document: Document = Depends(get_owned_document)) -> DocumentResponse:
    return DocumentResponse.model_validate(document)


@router.patch("/{document_id}", response_model=DocumentResponse)
async def update_document(
    body: DocumentUpdate,
    document: Document = Depends(get_owned_document),
    db: AsyncSession = Depends(get_db),
) -> DocumentResponse:
    """
    Update a document.

    ``data`` is merge-patched into the stored payload (``null`` removes a
    key); the remaining fields replace the column values when present.
    """
    fields = {}
    if body.title is not None:
        fields["title"] = body.title
    if body.status is not None:
        fields["status"] = DocumentStatus(body.status.value)
    for name in ("pdf_url", "drive_file_id", "drive_file_url"):
        value = getattr(body, name)
        if value is not None:
            fields[name] = value

    document = await document_store.save_document(db, document, body.data, **fields)
    logger.info("Updated document %s (%s)", document.id, ", ".join(fields) or "data")
    return DocumentResponse.model_validate(document)


@router.delete("/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_document(
    document: Document = Depends(get_owned_document),
    db: AsyncSession = Depends(get_db),
) -> None:
    await document_store.delete_document(db, document)


@router.put("/{document_id}/pipeline-status")
async def update_pipeline_status(
    body: PipelineFlagUpdate,
    document: Document = Depends(get_owned_document),
    db: AsyncSession = Depends(get_db),
):
    """Mark a wizard step ``pending`` or ``complete`` so the UI can resume."""
    flags = document_store.set_pipeline_flag(document, body.step, body.status)
    await db.flush()
    return {"success": True, "pipelineStatus": flags}


@router.get("/{document_id}/preview", response_class=HTMLResponse)
async def preview_document(document: Document = Depends(get_owned_document)) -> HTMLResponse:
    """
    Render the stored presentation as HTML.

    Documents without a finalized presentation are previewed with the
    fallback slides the PDF export would use.
    """
    data = document.data or {}
    presentation = data.get("_presentation")
    if not presentation or not presentation.get("slides"):
        presentation = build_document_presentation(data)
    pages = presentation_to_html_slides(presentation)
    if not pages:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Document has no slides to preview.",
        )
    return HTMLResponse(PREVIEW_PAGE_BREAK.join(pages))
