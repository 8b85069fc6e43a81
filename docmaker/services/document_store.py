"""
Document store operations.

A document's ``data`` column is one JSON object.  Every AI step writes its
output with :func:`merge_patch` semantics (RFC 7386): nested objects merge,
``None`` deletes a key, anything else replaces.  ``data._pipelineStatus``
holds ``pending`` / ``complete`` flags the UI reads to resume a flow.
"""
from __future__ import annotations

import copy
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from docmaker.models.database_models import Document, DocumentStatus, DocumentType

logger = logging.getLogger(__name__)

PIPELINE_STATUS_KEY = "_pipelineStatus"
PIPELINE_FLAG_VALUES = ("pending", "complete")


def merge_patch(target: Any, patch: Any) -> Any:
    """Return *target* with *patch* applied; neither argument is mutated."""
    if not isinstance(patch, dict):
        return copy.deepcopy(patch)

    result = copy.deepcopy(target) if isinstance(target, dict) else {}
    for key, value in patch.items():
        if value is None:
            result.pop(key, None)
        elif isinstance(value, dict):
            result[key] = merge_patch(result.get(key), value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def apply_data_patch(document: Document, patch: Dict[str, Any]) -> Dict[str, Any]:
    """Merge *patch* into ``document.data``; reassigns so the ORM sees the change."""
    document.data = merge_patch(document.data or {}, patch)
    return document.data


def replace_data_key(document: Document, key: str, value: Any) -> None:
    """Set ``data[key]`` wholesale instead of merging into the old value."""
    apply_data_patch(document, {key: None})
    if value is not None:
        apply_data_patch(document, {key: value})


def set_pipeline_flag(document: Document, step: str, status: str) -> Dict[str, Any]:
    """Record ``pending`` / ``complete`` for *step* in ``data._pipelineStatus``."""
    if status not in PIPELINE_FLAG_VALUES:
        raise ValueError(f"Invalid pipeline status {status!r}")
    apply_data_patch(document, {PIPELINE_STATUS_KEY: {step: status}})
    return document.data[PIPELINE_STATUS_KEY]


async def create_document(
    db: AsyncSession,
    user_id: str,
    doc_type: DocumentType = DocumentType.QUOTE,
    title: str = "",
    data: Optional[Dict[str, Any]] = None,
    template_id: Optional[str] = None,
) -> Document:
    document = Document(
        user_id=user_id,
        type=doc_type,
        title=title,
        data=data or {},
        template_id=template_id,
        status=DocumentStatus.DRAFT,
    )
    db.add(document)
    await db.flush()
    await db.refresh(document)
    logger.info("Created document id=%s type=%s for user=%s", document.id, doc_type.value, user_id)
    return document


async def list_documents(db: AsyncSession, user_id: str) -> List[Document]:
    result = await db.execute(
        select(Document)
        .where(Document.user_id == user_id)
        .order_by(Document.updated_at.desc())
    )
    return list(result.scalars().all())


async def get_document(db: AsyncSession, document_id: str) -> Optional[Document]:
    return await db.get(Document, document_id)


async def save_document(
    db: AsyncSession,
    document: Document,
    patch: Optional[Dict[str, Any]] = None,
    **fields: Any,
) -> Document:
    """
    Merge-patch ``data`` and set plain column *fields*, then flush.

    The row is refreshed so server-side timestamps are loaded.
    """
    if patch:
        apply_data_patch(document, patch)
    for name, value in fields.items():
        setattr(document, name, value)
    await db.flush()
    await db.refresh(document)
    return document


async def delete_document(db: AsyncSession, document: Document) -> None:
    await db.delete(document)
    await db.flush()
    logger.info("Deleted document id=%s", document.id)
