"""Create ai_accounts, ai_models and ai_bots tables.

Revision ID: 001
Revises:
Create Date: 2026-09-28

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "ai_accounts",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            primary_key=True,
        ),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("provider", sa.String(20), nullable=False),
        sa.Column(
            "api_key",
            sa.Text,
            nullable=False,
            comment="Encrypted iv:tag:ciphertext",
        ),
        sa.Column("base_url", sa.String(2048), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    )

    op.create_table(
        "ai_models",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            primary_key=True,
        ),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("model_identifier", sa.String(255), nullable=False),
        sa.Column("ai_account_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("input_token_price", sa.Numeric(12, 6), nullable=True),
        sa.Column("output_token_price", sa.Numeric(12, 6), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(
            ["ai_account_id"],
            ["ai_accounts.id"],
            name="fk_ai_models_ai_account_id",
            ondelete="CASCADE",
        ),
    )
    op.create_index("ix_ai_models_ai_account_id", "ai_models", ["ai_account_id"])

    op.create_table(
        "ai_bots",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            primary_key=True,
        ),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("system_prompt", sa.Text, nullable=False),
        sa.Column(
            "response_language",
            sa.String(20),
            nullable=False,
            server_default="DOCUMENT",
        ),
        sa.Column("ai_model_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.ForeignKeyConstraint(
            ["ai_model_id"],
            ["ai_models.id"],
            name="fk_ai_bots_ai_model_id",
            ondelete="CASCADE",
        ),
    )
    op.create_index("ix_ai_bots_ai_model_id", "ai_bots", ["ai_model_id"])


def downgrade() -> None:
    op.drop_index("ix_ai_bots_ai_model_id", table_name="ai_bots")
    op.drop_table("ai_bots")
    op.drop_index("ix_ai_models_ai_account_id", table_name="ai_models")
    op.drop_table("ai_models")
    op.drop_table("ai_accounts")
