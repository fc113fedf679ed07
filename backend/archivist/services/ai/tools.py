"""Read-only Paperless lookup tools exposed to the analysis model."""

import json
from typing import Any

from archivist.core.logging import get_logger
from archivist.schemas.paperless import PaperlessEntity
from archivist.services.ai.providers import ToolDefinition
from archivist.services.paperless_client import PaperlessClient

logger = get_logger(__name__)

QUERY_PARAMETERS: dict[str, Any] = {
    "type": "object",
    "properties": {
        "query": {
            "type": "string",
            "description": "Optional search term to filter results",
        }
    },
}

SEARCH_TAGS = "searchTags"
SEARCH_CORRESPONDENTS = "searchCorrespondents"
SEARCH_DOCUMENT_TYPES = "searchDocumentTypes"

TOOL_DEFINITIONS = [
    ToolDefinition(
        name=SEARCH_TAGS,
        description=(
            "Search for tags in Paperless. Use without query to get all tags. "
            "Always call this to see available tags before making suggestions."
        ),
        parameters=QUERY_PARAMETERS,
    ),
    ToolDefinition(
        name=SEARCH_CORRESPONDENTS,
        description=(
            "Search for correspondents (senders/recipients) in Paperless. "
            "Use without query to get all. Always call this to see available "
            "correspondents before making suggestions."
        ),
        parameters=QUERY_PARAMETERS,
    ),
    ToolDefinition(
        name=SEARCH_DOCUMENT_TYPES,
        description=(
            "Search for document types in Paperless. Use without query to get all. "
            "Always call this to see available document types before making "
            "suggestions."
        ),
        parameters=QUERY_PARAMETERS,
    ),
]


def filter_entities(
    entities: list[PaperlessEntity], query: str | None
) -> list[dict[str, Any]]:
    """Case-insensitive substring match on name; no query returns everything."""
    if query:
        needle = query.lower()
        entities = [e for e in entities if needle in e.name.lower()]
    return [{"id": e.id, "name": e.name} for e in entities]


class PaperlessTools:
    """Executes tool calls against one instance.

    Entity lists are fetched once per analysis run and reused, so repeated
    tool calls and the post-parse id reconciliation see the same data.
    """

    definitions = TOOL_DEFINITIONS

    def __init__(self, client: PaperlessClient):
        self.client = client
        self._cache: dict[str, list[PaperlessEntity]] = {}

    async def _load(self, name: str) -> list[PaperlessEntity]:
        if name not in self._cache:
            if name == SEARCH_TAGS:
                self._cache[name] = await self.client.get_tags()
            elif name == SEARCH_CORRESPONDENTS:
                self._cache[name] = await self.client.get_correspondents()
            else:
                self._cache[name] = await self.client.get_document_types()
        return self._cache[name]

    async def tags(self) -> list[PaperlessEntity]:
        return await self._load(SEARCH_TAGS)

    async def correspondents(self) -> list[PaperlessEntity]:
        return await self._load(SEARCH_CORRESPONDENTS)

    async def document_types(self) -> list[PaperlessEntity]:
        return await self._load(SEARCH_DOCUMENT_TYPES)

    async def execute(self, name: str, arguments: dict[str, Any]) -> str:
        """Run a tool call and return its JSON-encoded result.

        Unknown tools return an error payload to the model instead of
        aborting the run.
        """
        if name not in (SEARCH_TAGS, SEARCH_CORRESPONDENTS, SEARCH_DOCUMENT_TYPES):
            logger.warning("analysis_unknown_tool", tool_name=name)
            return json.dumps({"error": f"Unknown tool: {name}"})

        query = arguments.get("query")
        if not isinstance(query, str):
            query = None
        results = filter_entities(await self._load(name), query)

        logger.debug(
            "analysis_tool_executed",
            tool_name=name,
            query=query,
            result_count=len(results),
        )
        return json.dumps(results)
