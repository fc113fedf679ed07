"""Tests for writing analysis suggestions back to Paperless."""

from datetime import date
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from archivist.core.exceptions import NotFoundError, PaperlessAPIError, ValidationError
from archivist.models.document import PaperlessDocument
from archivist.models.paperless_instance import PaperlessInstance
from archivist.models.processing_result import DocumentProcessingResult
from archivist.schemas.analysis import DocumentAnalysisResult
from archivist.schemas.paperless import PaperlessEntity
from archivist.services.suggestion_applier import (
    AutoApplySettings,
    PendingUpdate,
    SuggestionApplyService,
    apply_suggestions,
    has_auto_apply_enabled,
    parse_suggested_date,
    resolve_updates,
)


def make_result(**overrides) -> DocumentAnalysisResult:
    data = {
        "suggestedTitle": "Stromabrechnung 2023",
        "suggestedCorrespondent": {"id": 7, "name": "Stadtwerke"},
        "suggestedDocumentType": {"name": "Jahresabrechnung"},
        "suggestedTags": [{"id": 1, "name": "Energie"}, {"id": 15, "name": "Steuer"}],
        "suggestedDate": "2024-01-15",
        "confidence": 0.9,
        "reasoning": "Annual electricity bill",
    }
    data.update(overrides)
    return DocumentAnalysisResult.model_validate(data)


def make_client() -> AsyncMock:
    client = AsyncMock()
    client.__aenter__.return_value = client
    client.create_correspondent.return_value = PaperlessEntity(id=70, name="New Co")
    client.create_document_type.return_value = PaperlessEntity(
        id=30, name="Jahresabrechnung"
    )
    client.create_tag.return_value = PaperlessEntity(id=99, name="Neu")
    return client


class TestAutoApplySettings:
    """Tests for auto-apply flag handling."""

    def test_from_instance(self):
        instance = PaperlessInstance(
            auto_apply_title=True,
            auto_apply_correspondent=False,
            auto_apply_document_type=False,
            auto_apply_tags=True,
            auto_apply_date=False,
        )

        settings = AutoApplySettings.from_instance(instance)

        assert settings == AutoApplySettings(title=True, tags=True)
        assert has_auto_apply_enabled(settings) is True

    def test_nothing_enabled(self):
        assert has_auto_apply_enabled(AutoApplySettings()) is False

    def test_everything(self):
        settings = AutoApplySettings.everything()
        assert all(
            (
                settings.title,
                settings.correspondent,
                settings.document_type,
                settings.tags,
                settings.date,
            )
        )


class TestParseSuggestedDate:
    def test_iso_date(self):
        assert parse_suggested_date("2024-01-15") == date(2024, 1, 15)

    def test_datetime_prefix(self):
        assert parse_suggested_date("2024-01-15T10:00:00Z") == date(2024, 1, 15)

    def test_invalid_date(self):
        with pytest.raises(ValidationError) as exc_info:
            parse_suggested_date("15.01.2024")

        assert exc_info.value.error_code == "invalidDate"


class TestResolveUpdates:
    """Tests for mapping suggestions onto remote and local fields."""

    @pytest.mark.asyncio
    async def test_local_mirror_columns(self):
        client = make_client()
        result = make_result(suggestedCorrespondent={"name": "New Co"})

        pending = await resolve_updates(client, result, AutoApplySettings.everything())

        assert pending.local == {
            "title": "Stromabrechnung 2023",
            "correspondent_id": 70,
            "tag_ids": [1, 15],
            "document_date": date(2024, 1, 15),
        }
        assert "document_type" not in pending.local
        assert pending.remote["document_type"] == 30

    @pytest.mark.asyncio
    async def test_fills_given_pending_update_in_place(self):
        client = make_client()
        client.create_tag.side_effect = PaperlessAPIError("boom", status_code=500)
        pending = PendingUpdate()

        with pytest.raises(PaperlessAPIError):
            await resolve_updates(
                client,
                make_result(suggestedTags=[{"name": "Neu"}]),
                AutoApplySettings(title=True, tags=True),
                pending,
            )

        assert pending.applied_fields == ["title"]
        assert pending.remote == {"title": "Stromabrechnung 2023"}

    @pytest.mark.asyncio
    async def test_entity_id_zero_is_reused(self):
        client = make_client()
        result = make_result(
            suggestedCorrespondent={"id": 0, "name": "Stadtwerke"},
            suggestedDocumentType={"id": 0, "name": "Rechnung"},
            suggestedTags=[{"id": 0, "name": "Energie"}],
        )
        settings = AutoApplySettings(correspondent=True, document_type=True, tags=True)

        pending = await resolve_updates(client, result, settings)

        assert pending.remote["correspondent"] == 0
        assert pending.remote["document_type"] == 0
        assert pending.remote["tags"] == [0]
        client.create_correspondent.assert_not_called()
        client.create_document_type.assert_not_called()
        client.create_tag.assert_not_called()


class TestApplySuggestions:
    """Tests for apply_suggestions (auto-apply)."""

    @pytest.mark.asyncio
    async def test_existing_tags_are_sent_in_order(self):
        client = make_client()
        mock_db = AsyncMock()
        local_id = uuid4()

        outcome = await apply_suggestions(
            client, 12, local_id, make_result(), AutoApplySettings(tags=True), mock_db
        )

        assert outcome.success is True
        assert outcome.applied_fields == ["tags"]
        client.update_document.assert_awaited_once_with(12, {"tags": [1, 15]})
        client.create_tag.assert_not_called()
        mock_db.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_title_only(self):
        client = make_client()
        mock_db = AsyncMock()

        outcome = await apply_suggestions(
            client, 12, uuid4(), make_result(), AutoApplySettings(title=True), mock_db
        )

        assert outcome.applied_fields == ["title"]
        client.update_document.assert_awaited_once_with(
            12, {"title": "Stromabrechnung 2023"}
        )
        mock_db.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_all_fields_create_missing_entities(self):
        client = make_client()
        mock_db = AsyncMock()
        result = make_result(
            suggestedCorrespondent={"name": "New Co"},
            suggestedTags=[{"id": 1, "name": "Energie"}, {"name": "Neu"}],
        )

        outcome = await apply_suggestions(
            client, 12, uuid4(), result, AutoApplySettings.everything(), mock_db
        )

        assert outcome.success is True
        assert outcome.applied_fields == [
            "title",
            "correspondent",
            "documentType",
            "tags",
            "date",
        ]
        client.create_correspondent.assert_awaited_once_with("New Co")
        client.create_document_type.assert_awaited_once_with("Jahresabrechnung")
        client.create_tag.assert_awaited_once_with("Neu")
        client.update_document.assert_awaited_once_with(
            12,
            {
                "title": "Stromabrechnung 2023",
                "correspondent": 70,
                "document_type": 30,
                "tags": [1, 99],
                "created": "2024-01-15",
            },
        )
        mock_db.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_document_type_only_skips_local_update(self):
        client = make_client()
        mock_db = AsyncMock()

        await apply_suggestions(
            client,
            12,
            uuid4(),
            make_result(suggestedDocumentType={"id": 3, "name": "Rechnung"}),
            AutoApplySettings(document_type=True),
            mock_db,
        )

        client.update_document.assert_awaited_once_with(12, {"document_type": 3})
        mock_db.execute.assert_not_called()

    @pytest.mark.asyncio
    async def test_nothing_enabled_sends_nothing(self):
        client = make_client()
        mock_db = AsyncMock()

        outcome = await apply_suggestions(
            client, 12, uuid4(), make_result(), AutoApplySettings(), mock_db
        )

        assert outcome.success is True
        assert outcome.applied_fields == []
        client.update_document.assert_not_called()

    @pytest.mark.asyncio
    async def test_invalid_date_fails_without_patch(self):
        client = make_client()
        mock_db = AsyncMock()

        outcome = await apply_suggestions(
            client,
            12,
            uuid4(),
            make_result(suggestedDate="sometime in 2024"),
            AutoApplySettings(title=True, date=True),
            mock_db,
        )

        assert outcome.success is False
        assert outcome.applied_fields == ["title"]
        assert "Invalid date" in outcome.error
        client.update_document.assert_not_called()

    @pytest.mark.asyncio
    async def test_paperless_failure_is_reported(self):
        client = make_client()
        client.update_document.side_effect = PaperlessAPIError(
            "Paperless API error: 400", status_code=400
        )
        mock_db = AsyncMock()

        outcome = await apply_suggestions(
            client, 12, uuid4(), make_result(), AutoApplySettings(title=True), mock_db
        )

        assert outcome.success is False
        assert outcome.applied_fields == ["title"]
        mock_db.execute.assert_not_called()


def make_service_db(instance, document, latest=None) -> AsyncMock:
    document_result = MagicMock()
    document_result.scalar_one_or_none.return_value = document
    latest_result = MagicMock()
    latest_result.scalar_one_or_none.return_value = latest

    mock_db = AsyncMock()
    mock_db.get = AsyncMock(return_value=instance)
    mock_db.execute = AsyncMock(
        side_effect=[document_result, latest_result, MagicMock()]
    )
    return mock_db


def make_instance_and_document():
    instance = PaperlessInstance(
        id=uuid4(), name="Home", api_url="https://paperless.test", api_token="enc"
    )
    document = PaperlessDocument(
        id=uuid4(), paperless_instance_id=instance.id, paperless_id=12, title="scan"
    )
    return instance, document


class TestSuggestionApplyService:
    """Tests for manual single-field and apply-all."""

    @pytest.mark.asyncio
    async def test_apply_title(self):
        instance, document = make_instance_and_document()
        mock_db = make_service_db(instance, document)
        client = make_client()

        service = SuggestionApplyService(mock_db, client_factory=lambda _: client)
        applied = await service.apply_field(
            instance.id, document.id, "title", "Mietvertrag 2024"
        )

        assert applied == {"title": "Mietvertrag 2024"}
        client.update_document.assert_awaited_once_with(12, {"title": "Mietvertrag 2024"})

    @pytest.mark.asyncio
    async def test_apply_tags_creates_new_tag(self):
        instance, document = make_instance_and_document()
        mock_db = make_service_db(instance, document)
        client = make_client()

        service = SuggestionApplyService(mock_db, client_factory=lambda _: client)
        applied = await service.apply_field(
            instance.id, document.id, "tags", [{"id": 1}, {"name": "Neu"}]
        )

        assert applied == {"tags": [1, 99]}

    @pytest.mark.asyncio
    async def test_empty_title_is_rejected(self):
        instance, document = make_instance_and_document()
        mock_db = make_service_db(instance, document)

        service = SuggestionApplyService(mock_db, client_factory=lambda _: make_client())
        with pytest.raises(ValidationError):
            await service.apply_field(instance.id, document.id, "title", "  ")

    @pytest.mark.asyncio
    async def test_malformed_correspondent_is_rejected(self):
        instance, document = make_instance_and_document()
        mock_db = make_service_db(instance, document)

        service = SuggestionApplyService(mock_db, client_factory=lambda _: make_client())
        with pytest.raises(ValidationError):
            await service.apply_field(
                instance.id, document.id, "correspondent", {"id": 7}
            )

    @pytest.mark.asyncio
    async def test_apply_all_uses_latest_result(self):
        instance, document = make_instance_and_document()
        latest = DocumentProcessingResult(
            id=uuid4(),
            document_id=document.id,
            ai_provider="openai/gpt-4o-mini",
            changes=make_result(
                suggestedDocumentType={"id": 3, "name": "Rechnung"}
            ).model_dump(by_alias=True, mode="json", exclude_none=True),
        )
        mock_db = make_service_db(instance, document, latest)
        client = make_client()

        service = SuggestionApplyService(mock_db, client_factory=lambda _: client)
        applied = await service.apply_field(instance.id, document.id, "all")

        assert applied == {
            "title": "Stromabrechnung 2023",
            "correspondent": 7,
            "document_type": 3,
            "tags": [1, 15],
            "created": "2024-01-15",
        }

    @pytest.mark.asyncio
    async def test_apply_all_without_result(self):
        instance, document = make_instance_and_document()
        mock_db = make_service_db(instance, document, None)

        service = SuggestionApplyService(mock_db, client_factory=lambda _: make_client())
        with pytest.raises(NotFoundError) as exc_info:
            await service.apply_field(instance.id, document.id, "all")

        assert exc_info.value.error_code == "noProcessingResult"

    @pytest.mark.asyncio
    async def test_document_of_other_instance(self):
        instance, _ = make_instance_and_document()
        mock_db = make_service_db(instance, None)

        service = SuggestionApplyService(mock_db, client_factory=lambda _: make_client())
        with pytest.raises(NotFoundError) as exc_info:
            await service.apply_field(instance.id, uuid4(), "title", "x")

        assert exc_info.value.error_code == "documentNotFound"

    @pytest.mark.asyncio
    async def test_paperless_rejection_propagates(self):
        instance, document = make_instance_and_document()
        mock_db = make_service_db(instance, document)
        client = make_client()
        client.update_document.side_effect = PaperlessAPIError(
            "Paperless API error: 404", status_code=404
        )

        service = SuggestionApplyService(mock_db, client_factory=lambda _: client)
        with pytest.raises(PaperlessAPIError):
            await service.apply_field(instance.id, document.id, "title", "x")
