"""Append-only audit of AI analysis runs."""

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, Index, Integer, Numeric, String, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column

from archivist.database import Base


class DocumentProcessingResult(Base):
    """One analysis run: what the model suggested and what it cost.

    Rows are written once and never updated.
    """

    __tablename__ = "document_processing_results"

    __table_args__ = (
        Index(
            "ix_document_processing_results_document_processed",
            "document_id",
            "processed_at",
        ),
    )

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        primary_key=True,
        server_default=func.gen_random_uuid(),
    )
    document_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("paperless_documents.id", ondelete="CASCADE"),
        nullable=False,
    )
    ai_provider: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Format: <provider>/<model identifier>",
    )
    input_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    output_tokens: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    tokens_used: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    estimated_cost: Mapped[Decimal | None] = mapped_column(
        Numeric(14, 8), nullable=True
    )
    changes: Mapped[dict[str, Any]] = mapped_column(
        JSONB,
        nullable=False,
        comment="Parsed analysis result",
    )
    tool_calls: Mapped[list[dict[str, Any]]] = mapped_column(
        JSONB,
        nullable=False,
        default=list,
        comment='Ordered list of {"toolName": ..., "input": ...}',
    )
    original_title: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    processed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return f"<DocumentProcessingResult {self.document_id} {self.ai_provider}>"
