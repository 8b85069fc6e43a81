"""
SQLAlchemy ORM models for the DocMaker document store.

Each generated proposal or deck is a single ``documents`` row whose ``data``
column holds the whole JSON payload.  AI steps merge-patch their results
into it; the underscore-prefixed keys are reserved for pipeline state.
"""
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    DateTime,
    ForeignKey,
    Enum as SQLEnum,
    JSON,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import enum
import uuid

from docmaker.database import Base


# Enums
class DocumentType(str, enum.Enum):
    """Kind of output a document produces."""

    QUOTE = "quote"
    DECK = "deck"


class DocumentStatus(str, enum.Enum):
    """Lifecycle of a document row."""

    DRAFT = "draft"
    PREVIEW = "preview"
    GENERATED = "generated"
    ARCHIVED = "archived"


class ConfigValueType(str, enum.Enum):
    """How an admin config value is validated and edited."""

    TEXT = "text"
    JSON = "json"
    NUMBER = "number"
    BOOLEAN = "boolean"


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


def _new_uuid() -> str:
    return str(uuid.uuid4())


# Models
class User(Base):
    """User account (identity supplied by the frontend headers)."""

    __tablename__ = "users"

    id = Column(String(255), primary_key=True)
    email = Column(String(255), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=True)
    # "admin" unlocks the admin config routes
    role = Column(String(20), nullable=False, default="user", server_default="user")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # Relationships
    documents = relationship("Document", back_populates="user", cascade="all, delete-orphan")


class Document(Base):
    """A proposal (quote) or slide deck and all of its pipeline data."""

    __tablename__ = "documents"

    id = Column(String(36), primary_key=True, default=_new_uuid)
    user_id = Column(String(255), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    template_id = Column(String(255), nullable=True)
    type = Column(
        SQLEnum(DocumentType, name="documenttype", values_callable=_enum_values),
        nullable=False,
        default=DocumentType.QUOTE,
    )
    title = Column(String(500), nullable=False, default="")
    data = Column(JSON, nullable=False, default=dict)
    status = Column(
        SQLEnum(DocumentStatus, name="documentstatus", values_callable=_enum_values),
        nullable=False,
        default=DocumentStatus.DRAFT,
        index=True,
    )
    pdf_url = Column(Text, nullable=True)
    drive_file_id = Column(String(255), nullable=True)
    drive_file_url = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    # Relationships
    user = relationship("User", back_populates="documents")


class AdminConfig(Base):
    """Database override of a code default in the config registry."""

    __tablename__ = "admin_config"
    __table_args__ = (UniqueConstraint("category", "key", name="uq_admin_config_category_key"),)

    id = Column(Integer, primary_key=True, index=True)
    category = Column(String(64), nullable=False, index=True)
    key = Column(String(255), nullable=False)
    value = Column(JSON, nullable=True)
    description = Column(Text, nullable=True)
    value_type = Column(
        SQLEnum(ConfigValueType, name="configvaluetype", values_callable=_enum_values),
        nullable=False,
        default=ConfigValueType.TEXT,
    )
    updated_by = Column(String(255), nullable=True)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    # Relationships
    history = relationship("AdminConfigHistory", back_populates="config", passive_deletes=True)


class AdminConfigHistory(Base):
    """Audit trail of admin config changes."""

    __tablename__ = "admin_config_history"

    id = Column(Integer, primary_key=True, index=True)
    config_id = Column(Integer, ForeignKey("admin_config.id", ondelete="SET NULL"), nullable=True, index=True)
    category = Column(String(64), nullable=False, index=True)
    key = Column(String(255), nullable=False)
    old_value = Column(JSON, nullable=True)
    new_value = Column(JSON, nullable=True)
    changed_by = Column(String(255), nullable=True)
    change_reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # Relationships
    config = relationship("AdminConfig", back_populates="history")
