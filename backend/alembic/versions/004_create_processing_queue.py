"""Create processing_queue table.

Revision ID: 004
Revises: 003
Create Date: 2026-09-29

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "004"
down_revision: str | None = "003"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "processing_queue",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            primary_key=True,
        ),
        sa.Column(
            "paperless_instance_id", postgresql.UUID(as_uuid=True), nullable=False
        ),
        sa.Column("paperless_document_id", sa.Integer, nullable=False),
        sa.Column("document_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("ai_bot_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("priority", sa.Integer, nullable=False, server_default="10"),
        sa.Column("attempts", sa.Integer, nullable=False, server_default="0"),
        sa.Column("max_attempts", sa.Integer, nullable=False, server_default="3"),
        sa.Column("last_error", sa.Text, nullable=True),
        sa.Column(
            "scheduled_for",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(
            ["paperless_instance_id"],
            ["paperless_instances.id"],
            name="fk_processing_queue_paperless_instance_id",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["document_id"],
            ["paperless_documents.id"],
            name="fk_processing_queue_document_id",
            ondelete="SET NULL",
        ),
        sa.ForeignKeyConstraint(
            ["ai_bot_id"],
            ["ai_bots.id"],
            name="fk_processing_queue_ai_bot_id",
            ondelete="SET NULL",
        ),
    )

    op.create_index(
        "ix_processing_queue_paperless_instance_id",
        "processing_queue",
        ["paperless_instance_id"],
    )
    op.create_index("ix_processing_queue_status", "processing_queue", ["status"])
    # At most one active item per remote document
    op.create_index(
        "uq_processing_queue_active_document",
        "processing_queue",
        ["paperless_instance_id", "paperless_document_id"],
        unique=True,
        postgresql_where=sa.text("status IN ('pending', 'processing')"),
    )
    # Partial composite index for claiming the next due item
    op.create_index(
        "ix_processing_queue_claim",
        "processing_queue",
        ["status", "scheduled_for", "priority"],
        postgresql_where=sa.text("status = 'pending'"),
    )


def downgrade() -> None:
    op.drop_index("ix_processing_queue_claim", table_name="processing_queue")
    op.drop_index(
        "uq_processing_queue_active_document", table_name="processing_queue"
    )
    op.drop_index("ix_processing_queue_status", table_name="processing_queue")
    op.drop_index(
        "ix_processing_queue_paperless_instance_id", table_name="processing_queue"
    )
    op.drop_table("processing_queue")
