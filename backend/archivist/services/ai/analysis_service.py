"""AI document analysis with Paperless lookup tools.

Runs a bounded tool-calling loop against the bot's provider, parses the
final answer into a DocumentAnalysisResult, reconciles suggested ids
against the instance's current metadata, and records token usage and an
audit row for every successful run.
"""

import json
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from pydantic import ValidationError as SchemaValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from archivist.config import get_settings
from archivist.core.encryption import decrypt
from archivist.core.exceptions import NotFoundError, ProviderError
from archivist.core.logging import get_logger
from archivist.models.ai import AiBot
from archivist.models.document import PaperlessDocument
from archivist.models.paperless_instance import PaperlessInstance
from archivist.models.processing_result import DocumentProcessingResult
from archivist.models.usage_metric import AiUsageMetric
from archivist.schemas.analysis import (
    DocumentAnalysisResult,
    SuggestedItem,
    SuggestedTag,
)
from archivist.schemas.paperless import PaperlessEntity
from archivist.services.ai.prompts import build_analysis_prompt
from archivist.services.ai.providers import LLMProvider, create_provider
from archivist.services.ai.tools import PaperlessTools
from archivist.services.paperless_client import PaperlessClient

logger = get_logger(__name__)
settings = get_settings()

TOKENS_PER_PRICE_UNIT = 1_000_000


@dataclass
class ToolLoopResult:
    """Accumulated output of a tool-calling run."""

    text: str = ""
    tool_calls: list[dict[str, Any]] = field(default_factory=list)
    input_tokens: int = 0
    output_tokens: int = 0
    steps: int = 0


@dataclass
class AnalysisOutcome:
    """Result of analyzing one document."""

    result: DocumentAnalysisResult
    input_tokens: int
    output_tokens: int
    estimated_cost: Decimal | None
    tool_calls: list[dict[str, Any]]
    processing_result_id: UUID | None = None


async def run_tool_loop(
    provider: LLMProvider,
    system_prompt: str,
    prompt: str,
    tools: PaperlessTools,
    max_steps: int,
) -> ToolLoopResult:
    """Alternate model turns and tool executions for at most ``max_steps`` turns.

    A turn without tool calls ends the loop. Every tool call is recorded
    in order as ``{"toolName", "input"}`` and token usage is summed over
    all turns.
    """
    run = ToolLoopResult()
    messages: list[dict[str, Any]] = [{"role": "user", "content": prompt}]

    while run.steps < max_steps:
        response = await provider.chat(system_prompt, messages, tools.definitions)
        run.steps += 1
        run.input_tokens += response.input_tokens
        run.output_tokens += response.output_tokens
        run.text = response.text

        if not response.tool_calls:
            break

        messages.append(
            {
                "role": "assistant",
                "content": response.text,
                "tool_calls": response.tool_calls,
            }
        )
        for call in response.tool_calls:
            run.tool_calls.append({"toolName": call.name, "input": call.arguments})
            messages.append(
                {
                    "role": "tool",
                    "tool_call_id": call.id,
                    "name": call.name,
                    "content": await tools.execute(call.name, call.arguments),
                }
            )

    return run


def parse_analysis_response(text: str) -> DocumentAnalysisResult:
    """Parse the JSON object spanning the first ``{`` to the last ``}``.

    Raises:
        ProviderError: If no object is found or it fails validation
    """
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end < start:
        raise ProviderError("Model response contains no JSON object")

    try:
        data = json.loads(text[start : end + 1])
    except json.JSONDecodeError as e:
        raise ProviderError(f"Model response is not valid JSON: {e}") from e

    try:
        return DocumentAnalysisResult.model_validate(data)
    except SchemaValidationError as e:
        raise ProviderError(
            f"Model response does not match the analysis schema: {e}"
        ) from e


def _correct_item(
    item: SuggestedItem, id_to_name: dict[int, str], name_to_id: dict[str, int]
) -> SuggestedItem:
    if item.id is not None:
        actual = id_to_name.get(item.id)
        if actual is not None and actual.lower() == item.name.lower():
            return item
    return SuggestedItem(id=name_to_id.get(item.name.lower()), name=item.name)


def _correct_tag(
    tag: SuggestedTag, id_to_name: dict[int, str], name_to_id: dict[str, int]
) -> SuggestedTag | None:
    if tag.name is None:
        # Id-only tag: keep if it exists, otherwise there is nothing to create
        if tag.id in id_to_name:
            return SuggestedTag(id=tag.id, name=id_to_name[tag.id])
        return None
    if tag.id is not None:
        actual = id_to_name.get(tag.id)
        if actual is not None and actual.lower() == tag.name.lower():
            return tag
    return SuggestedTag(id=name_to_id.get(tag.name.lower()), name=tag.name)


def validate_and_correct_ids(
    result: DocumentAnalysisResult,
    tags: list[PaperlessEntity],
    correspondents: list[PaperlessEntity],
    document_types: list[PaperlessEntity],
) -> DocumentAnalysisResult:
    """Make suggested ids agree with suggested names.

    Models sometimes pair a name with the wrong id. An id whose entity has
    a different name is replaced by the id matching the name
    (case-insensitive), or dropped so the item is created as new. A
    name-only item that matches an existing entity gets that entity's id.
    """

    def maps(entities: list[PaperlessEntity]) -> tuple[dict[int, str], dict[str, int]]:
        return (
            {e.id: e.name for e in entities},
            {e.name.lower(): e.id for e in entities},
        )

    tag_maps = maps(tags)
    corrected_tags = [
        corrected
        for corrected in (_correct_tag(tag, *tag_maps) for tag in result.suggested_tags)
        if corrected is not None
    ]

    return result.model_copy(
        update={
            "suggested_correspondent": _correct_item(
                result.suggested_correspondent, *maps(correspondents)
            ),
            "suggested_document_type": _correct_item(
                result.suggested_document_type, *maps(document_types)
            ),
            "suggested_tags": corrected_tags,
        }
    )


def mark_assigned_tags(
    result: DocumentAnalysisResult, assigned_tag_ids: list[int] | None
) -> DocumentAnalysisResult:
    """Flag tags the document already carries."""
    assigned = set(assigned_tag_ids or [])
    tags = [
        tag.model_copy(update={"is_assigned": tag.id is not None and tag.id in assigned})
        for tag in result.suggested_tags
    ]
    return result.model_copy(update={"suggested_tags": tags})


def estimate_cost(
    input_tokens: int,
    output_tokens: int,
    input_price: Decimal | None,
    output_price: Decimal | None,
) -> Decimal | None:
    """Cost from per-1M-token prices; None unless both prices are set."""
    if input_price is None or output_price is None:
        return None
    return (
        Decimal(input_tokens) * Decimal(input_price)
        + Decimal(output_tokens) * Decimal(output_price)
    ) / TOKENS_PER_PRICE_UNIT


class DocumentAnalysisService:
    """Analyze mirrored documents with a configured AI bot."""

    def __init__(
        self,
        db: AsyncSession,
        client_factory: Callable[[PaperlessInstance], PaperlessClient] | None = None,
        provider_factory: Callable[..., LLMProvider] | None = None,
        max_steps: int | None = None,
    ):
        self.db = db
        self.client_factory = client_factory or PaperlessClient.from_instance
        self.provider_factory = provider_factory or create_provider
        self.max_steps = (
            max_steps if max_steps is not None else settings.ai_max_tool_steps
        )

    async def analyze(
        self,
        document_id: UUID,
        ai_bot_id: UUID,
        user_id: UUID | None = None,
    ) -> AnalysisOutcome:
        """Analyze one document and persist usage and audit rows.

        Args:
            document_id: Local mirror document id
            ai_bot_id: Bot to analyze with
            user_id: Acting user recorded on the usage metric

        Raises:
            NotFoundError: If the document, its instance or the bot is missing
            ProviderError: If the provider fails or its answer is unusable
        """
        document = await self.db.get(PaperlessDocument, document_id)
        if document is None:
            raise NotFoundError("Document not found", error_code="documentNotFound")

        instance = await self.db.get(PaperlessInstance, document.paperless_instance_id)
        if instance is None:
            raise NotFoundError(
                "Paperless instance not found", error_code="instanceNotFound"
            )

        bot = await self.db.get(AiBot, ai_bot_id)
        if bot is None:
            raise NotFoundError("AI bot not found", error_code="aiBotNotFound")

        ai_model = bot.ai_model
        account = ai_model.ai_account
        api_key = decrypt(account.api_key) if account.api_key else ""
        provider = self.provider_factory(
            account.provider,
            ai_model.model_identifier,
            api_key,
            account.base_url,
        )

        prompt = build_analysis_prompt(
            title=document.title,
            content=document.content or "",
            response_language=bot.response_language,
            user_identity=settings.ai_context_identity,
            max_content_chars=settings.ai_content_max_chars,
        )

        logger.info(
            "document_analysis_started",
            document_id=str(document.id),
            paperless_document_id=document.paperless_id,
            ai_bot_id=str(bot.id),
            provider=account.provider.value,
            model=ai_model.model_identifier,
        )

        async with self.client_factory(instance) as client:
            tools = PaperlessTools(client)
            run = await run_tool_loop(
                provider,
                bot.system_prompt,
                prompt,
                tools,
                self.max_steps,
            )
            result = parse_analysis_response(run.text)
            result = validate_and_correct_ids(
                result,
                await tools.tags(),
                await tools.correspondents(),
                await tools.document_types(),
            )

        result = mark_assigned_tags(result, document.tag_ids)

        total_tokens = run.input_tokens + run.output_tokens
        cost = estimate_cost(
            run.input_tokens,
            run.output_tokens,
            ai_model.input_token_price,
            ai_model.output_token_price,
        )

        self.db.add(
            AiUsageMetric(
                provider=account.provider.value,
                model=ai_model.model_identifier,
                prompt_tokens=run.input_tokens,
                completion_tokens=run.output_tokens,
                total_tokens=total_tokens,
                estimated_cost=cost,
                paperless_document_id=document.paperless_id,
                user_id=user_id,
                ai_account_id=account.id,
                ai_model_id=ai_model.id,
                ai_bot_id=bot.id,
            )
        )
        processing_result = DocumentProcessingResult(
            document_id=document.id,
            ai_provider=f"{account.provider.value}/{ai_model.model_identifier}",
            input_tokens=run.input_tokens,
            output_tokens=run.output_tokens,
            tokens_used=total_tokens,
            estimated_cost=cost,
            changes=result.model_dump(by_alias=True, mode="json", exclude_none=True),
            tool_calls=run.tool_calls,
            original_title=document.title,
            processed_at=datetime.now(UTC),
        )
        self.db.add(processing_result)
        await self.db.flush()

        logger.info(
            "document_analysis_completed",
            document_id=str(document.id),
            steps=run.steps,
            tool_calls=len(run.tool_calls),
            input_tokens=run.input_tokens,
            output_tokens=run.output_tokens,
            confidence=result.confidence,
        )

        return AnalysisOutcome(
            result=result,
            input_tokens=run.input_tokens,
            output_tokens=run.output_tokens,
            estimated_cost=cost,
            tool_calls=run.tool_calls,
            processing_result_id=processing_result.id,
        )
