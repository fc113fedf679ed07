"""Create paperless_instances table with auto-processing settings.

Revision ID: 002
Revises: 001
Create Date: 2026-09-28

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "002"
down_revision: str | None = "001"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "paperless_instances",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            primary_key=True,
        ),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("api_url", sa.String(2048), nullable=False),
        sa.Column(
            "api_token",
            sa.Text,
            nullable=False,
            comment="Encrypted iv:tag:ciphertext",
        ),
        sa.Column("owner_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("default_ai_bot_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column(
            "auto_process_enabled",
            sa.Boolean,
            nullable=False,
            server_default=sa.false(),
        ),
        sa.Column(
            "scan_cron_expression",
            sa.String(100),
            nullable=False,
            server_default="*/30 * * * *",
        ),
        sa.Column("next_scan_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_scan_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "import_filter_tags",
            postgresql.ARRAY(sa.Integer),
            nullable=False,
            server_default="{}",
            comment="Documents must carry all of these tag ids to be imported",
        ),
        sa.Column(
            "auto_apply_title", sa.Boolean, nullable=False, server_default=sa.false()
        ),
        sa.Column(
            "auto_apply_correspondent",
            sa.Boolean,
            nullable=False,
            server_default=sa.false(),
        ),
        sa.Column(
            "auto_apply_document_type",
            sa.Boolean,
            nullable=False,
            server_default=sa.false(),
        ),
        sa.Column(
            "auto_apply_tags", sa.Boolean, nullable=False, server_default=sa.false()
        ),
        sa.Column(
            "auto_apply_date", sa.Boolean, nullable=False, server_default=sa.false()
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
        sa.ForeignKeyConstraint(
            ["default_ai_bot_id"],
            ["ai_bots.id"],
            name="fk_paperless_instances_default_ai_bot_id",
            ondelete="SET NULL",
        ),
    )
    op.create_index(
        "ix_paperless_instances_owner_id", "paperless_instances", ["owner_id"]
    )
    # Enabled instances due for a scan
    op.create_index(
        "ix_paperless_instances_due_scan",
        "paperless_instances",
        ["next_scan_at"],
        postgresql_where=sa.text("auto_process_enabled = true"),
    )


def downgrade() -> None:
    op.drop_index("ix_paperless_instances_due_scan", table_name="paperless_instances")
    op.drop_index("ix_paperless_instances_owner_id", table_name="paperless_instances")
    op.drop_table("paperless_instances")
