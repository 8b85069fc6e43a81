"""initial schema

Revision ID: 001
Revises:
Create Date: 2026-10-17

All 4 tables as defined in docmaker/models/database_models.py:
users, documents, admin_config, admin_config_history.
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # ── Enum types ────────────────────────────────────────────────────────
    document_type = sa.Enum("quote", "deck", name="documenttype")
    document_type.create(op.get_bind(), checkfirst=True)

    document_status = sa.Enum("draft", "preview", "generated", "archived", name="documentstatus")
    document_status.create(op.get_bind(), checkfirst=True)

    config_value_type = sa.Enum("text", "json", "number", "boolean", name="configvaluetype")
    config_value_type.create(op.get_bind(), checkfirst=True)

    # ── users ─────────────────────────────────────────────────────────────
    op.create_table(
        "users",
        sa.Column("id", sa.String(255), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True, index=True),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("role", sa.String(20), nullable=False, server_default="user"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # ── documents ─────────────────────────────────────────────────────────
    op.create_table(
        "documents",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("user_id", sa.String(255), sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True),
        sa.Column("template_id", sa.String(255), nullable=True),
        sa.Column("type", sa.Enum("quote", "deck", name="documenttype", create_type=False), nullable=False),
        sa.Column("title", sa.String(500), nullable=False, server_default=""),
        sa.Column("data", sa.JSON, nullable=False),
        sa.Column("status", sa.Enum("draft", "preview", "generated", "archived", name="documentstatus", create_type=False), nullable=False, index=True),
        sa.Column("pdf_url", sa.Text, nullable=True),
        sa.Column("drive_file_id", sa.String(255), nullable=True),
        sa.Column("drive_file_url", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # ── admin_config ──────────────────────────────────────────────────────
    op.create_table(
        "admin_config",
        sa.Column("id", sa.Integer, primary_key=True, index=True),
        sa.Column("category", sa.String(64), nullable=False, index=True),
        sa.Column("key", sa.String(255), nullable=False),
        sa.Column("value", sa.JSON, nullable=True),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("value_type", sa.Enum("text", "json", "number", "boolean", name="configvaluetype", create_type=False), nullable=False),
        sa.Column("updated_by", sa.String(255), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.UniqueConstraint("category", "key", name="uq_admin_config_category_key"),
    )

    # ── admin_config_history ──────────────────────────────────────────────
    op.create_table(
        "admin_config_history",
        sa.Column("id", sa.Integer, primary_key=True, index=True),
        sa.Column("config_id", sa.Integer, sa.ForeignKey("admin_config.id", ondelete="SET NULL"), nullable=True, index=True),
        sa.Column("category", sa.String(64), nullable=False, index=True),
        sa.Column("key", sa.String(255), nullable=False),
        sa.Column("old_value", sa.JSON, nullable=True),
        sa.Column("new_value", sa.JSON, nullable=True),
        sa.Column("changed_by", sa.String(255), nullable=True),
        sa.Column("change_reason", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("admin_config_history")
    op.drop_table("admin_config")
    op.drop_table("documents")
    op.drop_table("users")

    op.execute("DROP TYPE IF EXISTS configvaluetype")
    op.execute("DROP TYPE IF EXISTS documentstatus")
    op.execute("DROP TYPE IF EXISTS documenttype")
