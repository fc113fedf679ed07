"""Prompt construction for document analysis."""

from archivist.models.ai import ResponseLanguage

CROSS_LANGUAGE_NOTE = """
NOTE: When matching tags, correspondents, and document types, match them regardless of their language.
The existing metadata in Paperless may be in any language - always try to find the best semantic match.
For example, if the document is about an "Invoice" and there's a tag "Rechnung" (German for invoice), use that tag."""

LANGUAGE_INSTRUCTIONS = {
    ResponseLanguage.GERMAN: (
        "LANGUAGE: You MUST respond in German. "
        "The suggestedTitle and reasoning fields must be in German."
    ),
    ResponseLanguage.ENGLISH: (
        "LANGUAGE: You MUST respond in English. "
        "The suggestedTitle and reasoning fields must be in English."
    ),
    ResponseLanguage.DOCUMENT: (
        "LANGUAGE: Respond in the same language as the document content. "
        "The suggestedTitle and reasoning should match the document's language."
    ),
}

ANALYSIS_PROMPT = """Analyze the following document and suggest appropriate metadata.
{identity_context}

{language_instruction}

IMPORTANT: Before making suggestions, you MUST use the available tools to:
1. Search for existing tags (searchTags)
2. Search for existing correspondents (searchCorrespondents)
3. Search for existing document types (searchDocumentTypes)

Prefer existing items in Paperless, but you may suggest new items to be created if no good match exists.

FIELD DEFINITIONS:
- suggestedTitle: A clear, descriptive title for the document. Do NOT include the sender/company name here - that belongs in the correspondent field. Good examples: "Rechnung Nr. 12345", "Vertrag vom 01.01.2024", "Stromabrechnung Q1 2024"
- suggestedCorrespondent: REQUIRED - The sender, company, or organization that created/sent this document. You MUST always provide a correspondent. Include "id" if an existing correspondent matches, omit "id" if suggesting a new one to be created. Never leave this empty or null.
- suggestedDocumentType: REQUIRED - The type/category of document. You MUST always provide a document type. Include "id" if an existing type matches, omit "id" if suggesting a new one to be created. Never leave this empty or null.
- suggestedTags: Relevant keywords/categories that help organize the document. Include "id" for existing tags, omit "id" for new tags to be created.
- suggestedDate: The document's primary date in ISO format (YYYY-MM-DD). This is the date most relevant to the document, e.g. invoice date, letter date, contract date. Return null if no clear date can be extracted.

Document Title: {title}

Document Content:
{content}

After using the tools, provide your analysis in the following JSON format:
{{
  "suggestedTitle": "A clear, descriptive title WITHOUT the company name",
  "suggestedCorrespondent": {{ "id": 123, "name": "Existing Company" }} OR {{ "name": "New Company to create" }},
  "suggestedDocumentType": {{ "id": 123, "name": "Existing Type" }} OR {{ "name": "New Type to create" }},
  "suggestedTags": [{{ "id": 123, "name": "Existing Tag" }}, {{ "name": "New Tag to create" }}],
  "suggestedDate": "2024-01-15" OR null,
  "confidence": 0.85,
  "reasoning": "Brief explanation of your suggestions"
}}

REMINDER: suggestedCorrespondent and suggestedDocumentType are REQUIRED and must never be null or empty."""


def get_language_instruction(response_language: ResponseLanguage | str | None) -> str:
    """Language directive for the bot's response language (DOCUMENT when unset)."""
    try:
        language = ResponseLanguage(response_language or ResponseLanguage.DOCUMENT)
    except ValueError:
        language = ResponseLanguage.DOCUMENT
    return LANGUAGE_INSTRUCTIONS[language] + "\n" + CROSS_LANGUAGE_NOTE


def truncate_content(content: str, max_chars: int) -> str:
    if len(content) > max_chars:
        return content[:max_chars] + "..."
    return content


def build_analysis_prompt(
    title: str,
    content: str,
    response_language: ResponseLanguage | str | None,
    user_identity: str = "",
    max_content_chars: int = 8000,
) -> str:
    """Build the user prompt for one document."""
    identity_context = ""
    if user_identity.strip():
        identity_context = (
            f'\nUSER IDENTITY: The document owner is "{user_identity.strip()}". '
            "When analyzing contracts or correspondence, if this name appears as "
            "one of the parties, the OTHER party should be identified as the "
            "correspondent.\n"
        )

    return ANALYSIS_PROMPT.format(
        identity_context=identity_context,
        language_instruction=get_language_instruction(response_language),
        title=title,
        content=truncate_content(content, max_content_chars),
    )
