"""
Brief intake endpoints.

POST /parse-document    — parse an uploaded brief (PDF/DOCX/image) or a Google Doc link.
POST /extract-brief     — structured brief extraction (brand, budget, goals, audience).
POST /process-proposal  — full proposal generation from brief text, not stored.
POST /build-proposal    — proposal generation from a stored document's texts and research.
"""
from __future__ import annotations

import logging
import mimetypes
import uuid
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from docmaker.config import settings
from docmaker.database import get_db
from docmaker.dependencies.auth import get_current_user_id, load_owned_document
from docmaker.models.schemas import BriefRequest, BuildProposalRequest, ParseDocumentRequest
from docmaker.services import storage
from docmaker.services.brief_extractor import BriefExtractor
from docmaker.services.document_parser import DocumentParser, ParsedDocument
from docmaker.services.document_pipeline import DocumentPipeline
from docmaker.services.document_store import save_document
from docmaker.services.proposal_agent import ProposalAgent

logger = logging.getLogger(__name__)

router = APIRouter()

# docType -> document.data key holding the parsed text
_TEXT_KEYS = {"brief": "_briefText", "kickoff": "_kickoffText"}


def _stage_error(message: str, exc: Exception) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={"error": message, "details": str(exc)},
    )


async def _read_upload(upload: UploadFile) -> bytes:
    """Read the upload in 1 MB slices, rejecting it once it passes MAX_FILE_SIZE."""
    chunks = []
    size = 0
    while True:
        chunk = await upload.read(1024 * 1024)
        if not chunk:
            break
        size += len(chunk)
        if size > settings.MAX_FILE_SIZE:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"File too large. Maximum size is {settings.MAX_FILE_SIZE // (1024 * 1024)}MB.",
            )
        chunks.append(chunk)
    return b"".join(chunks)


# ---------------------------------------------------------------------------
# Parse
# ---------------------------------------------------------------------------

@router.post("/parse-document")
async def parse_document(
    request: Request,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    """
    Parse a brief or kickoff document.

    Accepts either JSON ``{googleDocsUrl, docType}`` or multipart form data
    with ``file`` and ``docType``.  An optional ``documentId`` stores the
    parsed text on that document as ``_briefText`` / ``_kickoffText``.
    """
    parser = DocumentParser()
    storage_url: Optional[str] = None
    content_type = request.headers.get("content-type", "")

    try:
        if content_type.startswith("application/json"):
            body = ParseDocumentRequest.model_validate(await request.json())
            if not body.google_docs_url:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="No file or Google Docs URL provided",
                )
            doc_type = body.doc_type or "brief"
            document_id = None
            file_name = "Google Doc"
            parsed: ParsedDocument = await parser.parse_google_doc(body.google_docs_url)
        else:
            form = await request.form()
            upload = form.get("file")
            if upload is None or isinstance(upload, str) or not upload.filename:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="No file provided",
                )
            doc_type = str(form.get("docType") or "brief")
            document_id = form.get("documentId")
            file_name = upload.filename
            content = await _read_upload(upload)
            mime_type = upload.content_type or mimetypes.guess_type(file_name)[0] or ""
            if mime_type == "application/octet-stream":
                mime_type = mimetypes.guess_type(file_name)[0] or mime_type

            storage_url = await storage.save_bytes(
                content, f"{uuid.uuid4().hex[:8]}_{file_name}", subdir=f"uploads/{user_id}/{doc_type}"
            )
            parsed = await parser.parse_document(content, mime_type, file_name)

    except HTTPException:
        raise
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except RuntimeError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
    except Exception as exc:
        logger.exception("Unexpected error parsing document")
        raise _stage_error("Failed to parse document", exc)

    if document_id and doc_type in _TEXT_KEYS:
        document = await load_owned_document(str(document_id), user_id, db)
        await save_document(db, document, {_TEXT_KEYS[doc_type]: parsed.text})

    logger.info("Parsed %s %r: %d chars", doc_type, file_name, len(parsed.text))
    return {
        "success": True,
        "storageUrl": storage_url,
        "parsedText": parsed.text,
        "metadata": parsed.metadata,
        "fileName": file_name,
        "docType": doc_type,
    }


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------

@router.post("/extract-brief")
async def extract_brief(
    body: BriefRequest,
    user_id: str = Depends(get_current_user_id),
) -> Dict[str, Any]:
    """Extract structured brief data (brand, budget, goals, audience)."""
    if not body.brief or not body.brief.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Brief text is required",
        )
    try:
        data = await BriefExtractor().extract(body.brief, body.kickoff)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except RuntimeError as exc:
        logger.error("extract-brief failed for user %s: %s", user_id, exc)
        raise _stage_error("Failed to extract brief", exc)

    return {"success": True, "data": data}


@router.post("/process-proposal")
async def process_proposal(
    body: BriefRequest,
    user_id: str = Depends(get_current_user_id),
) -> Dict[str, Any]:
    """Generate the full proposal (extracted data and wizard step data) from brief text."""
    if not body.brief or len(body.brief.strip()) < settings.MIN_BRIEF_LENGTH:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Brief text is missing or too short",
        )
    try:
        result = await ProposalAgent().generate_proposal(body.brief, body.kickoff)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except RuntimeError as exc:
        logger.error("process-proposal failed for user %s: %s", user_id, exc)
        raise _stage_error("Failed to process proposal", exc)

    return {"success": True, "extracted": result["extracted"], "stepData": result["stepData"]}


@router.post("/build-proposal")
async def build_proposal(
    body: BuildProposalRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    """Generate the proposal from a stored document and merge it into the document."""
    if not body.document_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="documentId is required",
        )
    document = await load_owned_document(body.document_id, user_id, db)

    logger.info("build-proposal: document %s", document.id)
    try:
        result = await DocumentPipeline().build_proposal(db, document)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except RuntimeError as exc:
        logger.error("build-proposal failed for document %s: %s", document.id, exc)
        raise _stage_error("Failed to build proposal", exc)

    return {"success": True, "extracted": result["extracted"], "stepData": result["stepData"]}
