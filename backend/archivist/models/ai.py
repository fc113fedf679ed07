"""AI provider account, model and bot configuration models."""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, Numeric, String, Text, func
from sqlalchemy import Enum as SAEnum
from sqlalchemy.dialects.postgresql import UUID as PGUUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from archivist.database import Base


class AiProvider(str, Enum):
    """Supported LLM provider kinds."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GOOGLE = "google"
    OLLAMA = "ollama"
    CUSTOM = "custom"


class ResponseLanguage(str, Enum):
    """Language the bot writes its suggestions in."""

    DOCUMENT = "DOCUMENT"  # Same language as the document
    GERMAN = "GERMAN"
    ENGLISH = "ENGLISH"


class AiAccount(Base):
    """Credentials for one LLM provider."""

    __tablename__ = "ai_accounts"

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        primary_key=True,
        server_default=func.gen_random_uuid(),
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    provider: Mapped[AiProvider] = mapped_column(
        SAEnum(
            AiProvider,
            native_enum=False,
            values_callable=lambda e: [m.value for m in e],
        ),
        nullable=False,
    )
    api_key: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="Encrypted iv:tag:ciphertext",
    )
    base_url: Mapped[str | None] = mapped_column(String(2048), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return f"<AiAccount {self.name} {self.provider.value}>"


class AiModel(Base):
    """A model offered by an account, with optional per-token pricing."""

    __tablename__ = "ai_models"

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        primary_key=True,
        server_default=func.gen_random_uuid(),
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    model_identifier: Mapped[str] = mapped_column(String(255), nullable=False)
    ai_account_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("ai_accounts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # Prices in currency units per 1M tokens
    input_token_price: Mapped[Decimal | None] = mapped_column(
        Numeric(12, 6), nullable=True
    )
    output_token_price: Mapped[Decimal | None] = mapped_column(
        Numeric(12, 6), nullable=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    ai_account: Mapped["AiAccount"] = relationship("AiAccount", lazy="joined")

    def __repr__(self) -> str:
        return f"<AiModel {self.model_identifier}>"


class AiBot(Base):
    """A prompt/model pairing used to analyze documents."""

    __tablename__ = "ai_bots"

    id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        primary_key=True,
        server_default=func.gen_random_uuid(),
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    system_prompt: Mapped[str] = mapped_column(Text, nullable=False)
    response_language: Mapped[ResponseLanguage] = mapped_column(
        SAEnum(ResponseLanguage, native_enum=False),
        nullable=False,
        default=ResponseLanguage.DOCUMENT,
    )
    ai_model_id: Mapped[UUID] = mapped_column(
        PGUUID(as_uuid=True),
        ForeignKey("ai_models.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    ai_model: Mapped["AiModel"] = relationship("AiModel", lazy="joined")

    def __repr__(self) -> str:
        return f"<AiBot {self.name}>"
