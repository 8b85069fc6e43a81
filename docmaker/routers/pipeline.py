"""
Background pipeline endpoints.

POST /{document_id}/start   — run research -> proposal -> slides in the background.
GET  /{document_id}/status  — poll the run's phase and progress.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from docmaker.dependencies.auth import get_owned_document
from docmaker.models.database_models import Document
from docmaker.models.schemas import PipelineStartResponse, PipelineStatusResponse
from docmaker.services.document_pipeline import DocumentPipeline
from docmaker.services.pipeline_manager import PipelineStatus, pipeline_manager

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/{document_id}/start", response_model=PipelineStartResponse)
async def pipeline_start(document: Document = Depends(get_owned_document)) -> PipelineStartResponse:
    """
    Launch the end-to-end pipeline as a background task for this document.

    Returns immediately. Poll ``GET .../status`` for progress.
    """
    if pipeline_manager.is_running(document.id):
        existing = pipeline_manager.get_status(document.id)
        return PipelineStartResponse(
            document_id=document.id,
            status="already_running",
            message=f"Pipeline already running ({existing.phase.value if existing else 'unknown'})",
        )

    # Pre-create the status so the coroutine and the poller share it
    ps = PipelineStatus(document_id=document.id)
    pipeline_manager.start(document.id, DocumentPipeline().run_all(document.id, ps), status=ps)

    logger.info("Document %s: background pipeline started", document.id)
    return PipelineStartResponse(
        document_id=document.id,
        status="started",
        message="Pipeline started",
    )


@router.get("/{document_id}/status", response_model=PipelineStatusResponse)
async def pipeline_status(document: Document = Depends(get_owned_document)) -> PipelineStatusResponse:
    """Poll the current pipeline status for this document."""
    ps = pipeline_manager.get_status(document.id)
    if ps is None:
        return PipelineStatusResponse(document_id=document.id, phase="idle")

    return PipelineStatusResponse(
        document_id=document.id,
        phase=ps.phase.value,
        current_step=ps.current_step,
        batches_total=ps.total_batches,
        batches_done=ps.batches_completed,
        errors=ps.errors,
        elapsed_seconds=ps.elapsed_seconds,
    )
