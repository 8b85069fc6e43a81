"""Database and schema models for DocMaker."""
from docmaker.models.database_models import (
    User,
    Document,
    AdminConfig,
    AdminConfigHistory,
    DocumentType,
    DocumentStatus,
    ConfigValueType,
)
from docmaker.models.schemas import (
    DocumentCreate,
    DocumentUpdate,
    DocumentSummary,
    DocumentResponse,
    PipelineFlagUpdate,
    AdminConfigItem,
    HealthCheckResponse,
)

__all__ = [
    # Database models
    "User",
    "Document",
    "AdminConfig",
    "AdminConfigHistory",
    "DocumentType",
    "DocumentStatus",
    "ConfigValueType",
    # Schemas
    "DocumentCreate",
    "DocumentUpdate",
    "DocumentSummary",
    "DocumentResponse",
    "PipelineFlagUpdate",
    "AdminConfigItem",
    "HealthCheckResponse",
]
