"""
Pydantic schemas for request/response validation.

Request bodies of the AI step endpoints use the camelCase keys the frontend
sends (``documentId``, ``brandName`` ...) as aliases; required fields are
declared optional and checked in the routers so a missing value produces a
400 with a readable message instead of a validation error.
"""
from pydantic import BaseModel, Field, ConfigDict
from typing import Optional, List, Dict, Any, Literal
from datetime import datetime
from enum import Enum


# Enums (matching database enums)
class DocumentTypeSchema(str, Enum):
    """Document types for API requests and responses."""

    QUOTE = "quote"
    DECK = "deck"


class DocumentStatusSchema(str, Enum):
    """Document statuses for API requests and responses."""

    DRAFT = "draft"
    PREVIEW = "preview"
    GENERATED = "generated"
    ARCHIVED = "archived"


class _CamelModel(BaseModel):
    """Base for request bodies posted by the frontend with camelCase keys."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# ---------------------------------------------------------------------------
# Document store
# ---------------------------------------------------------------------------

class DocumentCreate(_CamelModel):
    """Schema for creating a new document."""

    type: DocumentTypeSchema = DocumentTypeSchema.QUOTE
    title: str = Field("", max_length=500)
    template_id: Optional[str] = Field(None, alias="templateId")
    data: Dict[str, Any] = Field(default_factory=dict)


class DocumentUpdate(_CamelModel):
    """
    Partial update of a document.

    ``data`` is applied as a JSON merge-patch: nested objects merge and a
    ``null`` value removes the key.
    """

    title: Optional[str] = Field(None, max_length=500)
    status: Optional[DocumentStatusSchema] = None
    data: Optional[Dict[str, Any]] = None
    pdf_url: Optional[str] = Field(None, alias="pdfUrl")
    drive_file_id: Optional[str] = Field(None, alias="driveFileId")
    drive_file_url: Optional[str] = Field(None, alias="driveFileUrl")


class DocumentSummary(BaseModel):
    """Schema for document list entries (no payload)."""

    id: str
    type: DocumentTypeSchema
    title: str
    status: DocumentStatusSchema
    pdf_url: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class DocumentResponse(DocumentSummary):
    """Schema for document details."""

    user_id: str
    template_id: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    drive_file_id: Optional[str] = None
    drive_file_url: Optional[str] = None


class PipelineFlagUpdate(BaseModel):
    """Set one resume flag in ``data._pipelineStatus``."""

    step: str = Field(..., min_length=1, max_length=64)
    status: Literal["pending", "complete"]


# ---------------------------------------------------------------------------
# AI step requests
# ---------------------------------------------------------------------------

class ParseDocumentRequest(_CamelModel):
    google_docs_url: Optional[str] = Field(None, alias="googleDocsUrl")
    doc_type: Optional[str] = Field(None, alias="docType")


class BriefRequest(_CamelModel):
    brief: Optional[str] = None
    kickoff: Optional[str] = None


class BuildProposalRequest(_CamelModel):
    document_id: Optional[str] = Field(None, alias="documentId")


class ResearchRequest(_CamelModel):
    brand_name: Optional[str] = Field(None, alias="brandName")
    website: Optional[str] = None
    logo_colors: Optional[Dict[str, Any]] = Field(None, alias="logoColors")
    css_colors: Optional[List[str]] = Field(None, alias="cssColors")
    document_id: Optional[str] = Field(None, alias="documentId")


class InfluencersRequest(_CamelModel):
    mode: Optional[str] = None
    usernames: Optional[List[str]] = None
    brand_research: Optional[Dict[str, Any]] = Field(None, alias="brandResearch")
    budget: Optional[float] = None
    goals: Optional[List[str]] = None
    document_id: Optional[str] = Field(None, alias="documentId")


class GenerateProposalRequest(_CamelModel):
    brand_research: Optional[Dict[str, Any]] = Field(None, alias="brandResearch")
    budget: Optional[float] = None
    goals: List[str] = Field(default_factory=list)
    extracted: Optional[Dict[str, Any]] = None
    influencer_usernames: List[str] = Field(default_factory=list, alias="influencerUsernames")
    generate_images: bool = Field(True, alias="generateImages")
    document_id: Optional[str] = Field(None, alias="documentId")


class VisualAssetsRequest(_CamelModel):
    brand_name: Optional[str] = Field(None, alias="brandName")
    domain: Optional[str] = None
    research: Optional[Dict[str, Any]] = None
    generate_images: bool = Field(True, alias="generateImages")
    document_id: Optional[str] = Field(None, alias="documentId")


class SlidesStageRequest(_CamelModel):
    document_id: Optional[str] = Field(None, alias="documentId")
    stage: Optional[str] = None
    batch_index: Optional[int] = Field(None, alias="batchIndex")


class RegenerateSlideRequest(_CamelModel):
    document_id: Optional[str] = Field(None, alias="documentId")
    slide_index: Optional[int] = Field(None, alias="slideIndex")
    instruction: Optional[str] = None


class PdfRequest(_CamelModel):
    document_id: Optional[str] = Field(None, alias="documentId")
    action: Optional[str] = None


# ---------------------------------------------------------------------------
# Admin config
# ---------------------------------------------------------------------------

class AdminConfigUpdate(BaseModel):
    """Body of POST /api/admin/config."""

    category: Optional[str] = None
    key: Optional[str] = None
    value: Any = None
    reason: Optional[str] = None


class AdminConfigItem(BaseModel):
    """A config key with its code default merged with any DB override."""

    key: str
    description: str
    value_type: str
    value: Any = None
    defaultValue: Any = None
    isOverridden: bool = False
    dbId: Optional[int] = None
    updatedAt: Optional[datetime] = None
    group: Optional[str] = None


class AdminConfigHistoryResponse(BaseModel):
    """A single admin config audit record."""

    id: int
    config_id: Optional[int] = None
    category: str
    key: str
    old_value: Any = None
    new_value: Any = None
    changed_by: Optional[str] = None
    change_reason: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


# ---------------------------------------------------------------------------
# Background pipeline
# ---------------------------------------------------------------------------

class PipelineStartResponse(BaseModel):
    """Response for POST /api/pipeline/{document_id}/start."""

    document_id: str
    status: str  # "started" | "already_running"
    message: str


class PipelineStatusResponse(BaseModel):
    """Response for GET /api/pipeline/{document_id}/status."""

    document_id: str
    phase: str
    current_step: Optional[str] = None
    batches_total: int = 0
    batches_done: int = 0
    errors: List[str] = Field(default_factory=list)
    elapsed_seconds: float = 0.0


# Health Check Schema
class HealthCheckResponse(BaseModel):
    """Schema for health check endpoint."""

    status: str
    database: str
    gemini: str
    timestamp: datetime
    version: str = "0.1.0"
