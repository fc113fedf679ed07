"""Create paperless_documents mirror table.

Revision ID: 003
Revises: 002
Create Date: 2026-09-29

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "003"
down_revision: str | None = "002"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "paperless_documents",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            primary_key=True,
        ),
        sa.Column(
            "paperless_instance_id", postgresql.UUID(as_uuid=True), nullable=False
        ),
        sa.Column("paperless_id", sa.Integer, nullable=False),
        sa.Column("title", sa.String(1024), nullable=False),
        sa.Column("content", sa.Text, nullable=True),
        sa.Column("correspondent_id", sa.Integer, nullable=True),
        sa.Column(
            "tag_ids",
            postgresql.ARRAY(sa.Integer),
            nullable=False,
            server_default="{}",
        ),
        sa.Column("document_date", sa.Date, nullable=True),
        sa.Column("paperless_modified", sa.DateTime(timezone=True), nullable=True),
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
            ["paperless_instance_id"],
            ["paperless_instances.id"],
            name="fk_paperless_documents_paperless_instance_id",
            ondelete="CASCADE",
        ),
        sa.UniqueConstraint(
            "paperless_instance_id",
            "paperless_id",
            name="uq_paperless_documents_instance_remote_id",
        ),
    )
    op.create_index(
        "ix_paperless_documents_paperless_instance_id",
        "paperless_documents",
        ["paperless_instance_id"],
    )


def downgrade() -> None:
    op.drop_index(
        "ix_paperless_documents_paperless_instance_id",
        table_name="paperless_documents",
    )
    op.drop_table("paperless_documents")
