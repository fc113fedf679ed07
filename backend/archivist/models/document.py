"""Local mirror of Paperless-ngx documents."""

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import (
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import ARRAY
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column

from archivist.database import Base


class PaperlessDocument(Base):
    """Mirrored copy of a remote document's metadata and OCR content."""

    __tablename__ = "paperless_documents"

    __table_args__ = (
        UniqueConstraint(
            "paperless_instance_id",
            "paperless_id",
            name="uq_paperless_documents_instance_remote_id",
        ),
    )

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        primary_key=True,
        server_default=func.gen_random_uuid(),
    )
    paperless_instance_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("paperless_instances.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    paperless_id: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(String(1024), nullable=False)
    content: Mapped[str | None] = mapped_column(Text, nullable=True)
    correspondent_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    tag_ids: Mapped[list[int]] = mapped_column(
        ARRAY(Integer),
        nullable=False,
        default=list,
    )
    document_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    paperless_modified: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    def __repr__(self) -> str:
        return f"<PaperlessDocument {self.paperless_id} {self.title[:30]}>"
