"""Create document_processing_results and ai_usage_metrics tables.

Revision ID: 005
Revises: 004
Create Date: 2026-09-30

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "005"
down_revision: str | None = "004"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "document_processing_results",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            primary_key=True,
        ),
        sa.Column("document_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column(
            "ai_provider",
            sa.String(255),
            nullable=False,
            comment="Format: <provider>/<model identifier>",
        ),
        sa.Column("input_tokens", sa.Integer, nullable=False, server_default="0"),
        sa.Column("output_tokens", sa.Integer, nullable=False, server_default="0"),
        sa.Column("tokens_used", sa.Integer, nullable=False, server_default="0"),
        sa.Column("estimated_cost", sa.Numeric(14, 8), nullable=True),
        sa.Column(
            "changes",
            postgresql.JSONB,
            nullable=False,
            comment="Parsed analysis result",
        ),
        sa.Column(
            "tool_calls",
            postgresql.JSONB,
            nullable=False,
            server_default="[]",
            comment='Ordered list of {"toolName": ..., "input": ...}',
        ),
        sa.Column("original_title", sa.String(1024), nullable=True),
        sa.Column(
            "processed_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(
            ["document_id"],
            ["paperless_documents.id"],
            name="fk_document_processing_results_document_id",
            ondelete="CASCADE",
        ),
    )
    op.create_index(
        "ix_document_processing_results_document_processed",
        "document_processing_results",
        ["document_id", "processed_at"],
    )

    op.create_table(
        "ai_usage_metrics",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            primary_key=True,
        ),
        sa.Column("provider", sa.String(50), nullable=False),
        sa.Column("model", sa.String(255), nullable=False),
        sa.Column("prompt_tokens", sa.Integer, nullable=False, server_default="0"),
        sa.Column("completion_tokens", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_tokens", sa.Integer, nullable=False, server_default="0"),
        sa.Column("estimated_cost", sa.Numeric(14, 8), nullable=True),
        sa.Column("paperless_document_id", sa.Integer, nullable=True),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("ai_account_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("ai_model_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("ai_bot_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    )
    op.create_index(
        "ix_ai_usage_metrics_user_created",
        "ai_usage_metrics",
        ["user_id", "created_at"],
    )
    op.create_index("ix_ai_usage_metrics_bot", "ai_usage_metrics", ["ai_bot_id"])


def downgrade() -> None:
    op.drop_index("ix_ai_usage_metrics_bot", table_name="ai_usage_metrics")
    op.drop_index("ix_ai_usage_metrics_user_created", table_name="ai_usage_metrics")
    op.drop_table("ai_usage_metrics")
    op.drop_index(
        "ix_document_processing_results_document_processed",
        table_name="document_processing_results",
    )
    op.drop_table("document_processing_results")
