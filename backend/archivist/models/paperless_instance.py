"""Paperless-ngx instance model."""

from datetime import datetime
from uuid import UUID

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import ARRAY
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column

from archivist.database import Base

DEFAULT_SCAN_CRON = "*/30 * * * *"


class PaperlessInstance(Base):
    """A configured Paperless-ngx deployment and its auto-processing settings."""

    __tablename__ = "paperless_instances"

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        primary_key=True,
        server_default=func.gen_random_uuid(),
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    api_url: Mapped[str] = mapped_column(String(2048), nullable=False)
    api_token: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="Encrypted iv:tag:ciphertext",
    )
    owner_id: Mapped[UUID | None] = mapped_column(
        PGUUID(as_uuid=True),
        nullable=True,
        index=True,
    )
    default_ai_bot_id: Mapped[UUID | None] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("ai_bots.id", ondelete="SET NULL"),
        nullable=True,
    )

    # Scheduled scanning
    auto_process_enabled: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    scan_cron_expression: Mapped[str] = mapped_column(
        String(100), nullable=False, default=DEFAULT_SCAN_CRON
    )
    next_scan_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_scan_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    import_filter_tags: Mapped[list[int]] = mapped_column(
        ARRAY(Integer),
        nullable=False,
        default=list,
        comment="Documents must carry all of these tag ids to be imported",
    )

    # Auto-apply flags
    auto_apply_title: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    auto_apply_correspondent: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    auto_apply_document_type: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )
    auto_apply_tags: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    auto_apply_date: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

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
        return f"<PaperlessInstance {self.name}>"
