"""AI document analysis.

This package runs the tool-calling analysis of mirrored documents.

Modules:
    - providers: LLM provider clients (OpenAI-compatible, Anthropic, Google)
    - tools: Read-only Paperless lookup tools exposed to the model
    - prompts: Analysis prompt construction
    - analysis_service: Tool loop, response parsing and usage accounting
"""

from archivist.services.ai.analysis_service import (
    AnalysisOutcome,
    DocumentAnalysisService,
    estimate_cost,
    parse_analysis_response,
    run_tool_loop,
    validate_and_correct_ids,
)
from archivist.services.ai.providers import (
    ChatResponse,
    LLMProvider,
    ToolCall,
    ToolDefinition,
    create_provider,
)

__all__ = [
    "AnalysisOutcome",
    "ChatResponse",
    "DocumentAnalysisService",
    "LLMProvider",
    "ToolCall",
    "ToolDefinition",
    "create_provider",
    "estimate_cost",
    "parse_analysis_response",
    "run_tool_loop",
    "validate_and_correct_ids",
]
