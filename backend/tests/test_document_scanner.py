"""Tests for instance scanning and scan scheduling helpers."""

from datetime import UTC, date, datetime
from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest

from archivist.core.exceptions import ConflictError, PaperlessAPIError, ValidationError
from archivist.models.document import PaperlessDocument
from archivist.models.paperless_instance import PaperlessInstance
from archivist.schemas.paperless import PaperlessDocumentData
from archivist.services.document_scanner import (
    DocumentScanner,
    ScanResult,
    calculate_next_scan_time,
    filter_by_tags,
    parse_document_date,
    scan_due_instances,
)


def make_instance(**overrides) -> PaperlessInstance:
    values = {
        "id": uuid4(),
        "name": "Home archive",
        "api_url": "https://paperless.test",
        "api_token": "enc",
        "default_ai_bot_id": uuid4(),
        "auto_process_enabled": True,
        "scan_cron_expression": "*/30 * * * *",
        "import_filter_tags": [],
    }
    values.update(overrides)
    return PaperlessInstance(**values)


def remote(document_id: int, tags=None) -> PaperlessDocumentData:
    return PaperlessDocumentData(
        id=document_id,
        title=f"Document {document_id}",
        content="OCR text",
        tags=tags or [],
        created="2024-01-15T00:00:00+01:00",
    )


def make_client_factory(documents=None, error=None):
    client = AsyncMock()
    client.__aenter__.return_value = client
    if error is not None:
        client.get_all_documents.side_effect = error
    else:
        client.get_all_documents.return_value = documents or []
    return MagicMock(return_value=client), client


class TestCronHelpers:
    """Tests for cron parsing."""

    def test_next_scan_time_every_thirty_minutes(self):
        base = datetime(2024, 1, 15, 10, 5, tzinfo=UTC)
        assert calculate_next_scan_time("*/30 * * * *", base) == datetime(
            2024, 1, 15, 10, 30, tzinfo=UTC
        )

    def test_next_scan_time_is_strictly_after_base(self):
        base = datetime(2024, 1, 15, 10, 30, tzinfo=UTC)
        assert calculate_next_scan_time("*/30 * * * *", base) == datetime(
            2024, 1, 15, 11, 0, tzinfo=UTC
        )

    def test_invalid_cron_expression(self):
        with pytest.raises(ValidationError) as exc_info:
            calculate_next_scan_time("every thirty minutes")

        assert exc_info.value.error_code == "invalidCronExpression"


class TestFilterHelpers:
    """Tests for tag filtering and date parsing."""

    def test_filter_requires_every_tag(self):
        documents = [remote(1, [1, 15, 3]), remote(2, [1]), remote(3, [15])]

        kept = filter_by_tags(documents, [1, 15])

        assert [d.id for d in kept] == [1]

    def test_empty_filter_keeps_everything(self):
        documents = [remote(1), remote(2, [4])]
        assert filter_by_tags(documents, []) == documents
        assert filter_by_tags(documents, None) == documents

    def test_parse_document_date(self):
        assert parse_document_date("2024-01-15T00:00:00+01:00") == date(2024, 1, 15)
        assert parse_document_date("2024-01-15") == date(2024, 1, 15)
        assert parse_document_date("garbage") is None
        assert parse_document_date(None) is None


class TestScanInstance:
    """Tests for DocumentScanner.scan_instance."""

    @pytest.mark.asyncio
    async def test_queues_new_documents_and_counts_skips(self):
        instance = make_instance(import_filter_tags=[1, 15])
        mock_db = AsyncMock()
        mock_db.get = AsyncMock(return_value=instance)
        factory, _ = make_client_factory(
            [
                remote(1, [1, 15]),  # already processed
                remote(2, [1, 15]),  # already queued
                remote(3, [1, 15, 8]),  # new
                remote(4, [1, 15]),  # loses an enqueue race
                remote(5, [1]),  # filtered out
            ]
        )

        scanner = DocumentScanner(mock_db, client_factory=factory)
        scanner._processed_document_ids = AsyncMock(return_value={1})
        scanner._queued_document_ids = AsyncMock(return_value={2})
        scanner.upsert_local_document = AsyncMock()
        scanner.queue_service = AsyncMock()
        scanner.queue_service.enqueue.side_effect = [
            MagicMock(),
            ConflictError("Document is already in the queue"),
        ]

        result = await scanner.scan_instance(instance.id)

        assert result.error is None
        assert result.documents_queued == 1
        assert result.documents_already_processed == 1
        assert result.documents_already_queued == 2
        enqueued = [c.args[1] for c in scanner.queue_service.enqueue.await_args_list]
        assert enqueued == [3, 4]
        # last/next scan timestamps are written
        mock_db.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_missing_default_bot_is_reported(self):
        instance = make_instance(default_ai_bot_id=None)
        mock_db = AsyncMock()
        mock_db.get = AsyncMock(return_value=instance)
        factory, client = make_client_factory()

        scanner = DocumentScanner(mock_db, client_factory=factory)
        result = await scanner.scan_instance(instance.id)

        assert result.error == "No default AI bot configured"
        client.get_all_documents.assert_not_called()
        mock_db.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_paperless_failure_is_captured(self):
        instance = make_instance()
        mock_db = AsyncMock()
        mock_db.get = AsyncMock(return_value=instance)
        factory, _ = make_client_factory(
            error=PaperlessAPIError("Paperless API error: 500", status_code=500)
        )

        scanner = DocumentScanner(mock_db, client_factory=factory)
        result = await scanner.scan_instance(instance.id)

        assert "500" in result.error
        assert result.documents_queued == 0
        mock_db.rollback.assert_awaited_once()
        # Scan times still advance after a failure
        mock_db.execute.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failure_mid_scan_reports_no_queued_documents(self):
        instance = make_instance()
        mock_db = AsyncMock()
        mock_db.get = AsyncMock(return_value=instance)
        factory, _ = make_client_factory([remote(1), remote(2), remote(3)])

        scanner = DocumentScanner(mock_db, client_factory=factory)
        scanner._processed_document_ids = AsyncMock(return_value=set())
        scanner._queued_document_ids = AsyncMock(return_value=set())
        scanner.upsert_local_document = AsyncMock()
        scanner.queue_service = AsyncMock()
        scanner.queue_service.enqueue.side_effect = [
            MagicMock(),
            MagicMock(),
            RuntimeError("connection reset"),
        ]

        result = await scanner.scan_instance(instance.id)

        assert result.error == "connection reset"
        assert result.documents_queued == 0
        mock_db.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_missing_instance(self):
        mock_db = AsyncMock()
        mock_db.get = AsyncMock(return_value=None)

        scanner = DocumentScanner(mock_db, client_factory=MagicMock())
        result = await scanner.scan_instance(uuid4())

        assert result.error == "Instance not found"
        mock_db.execute.assert_not_called()


class TestUpsertLocalDocument:
    """Tests for mirroring remote documents locally."""

    @pytest.mark.asyncio
    async def test_creates_mirror_row(self):
        instance_id = uuid4()
        mock_result = MagicMock()
        mock_result.scalar_one_or_none.return_value = None
        mock_db = AsyncMock()
        mock_db.execute = AsyncMock(return_value=mock_result)
        mock_db.add = MagicMock()

        scanner = DocumentScanner(mock_db, client_factory=MagicMock())
        document = await scanner.upsert_local_document(
            instance_id, remote(12, [1, 15])
        )

        mock_db.add.assert_called_once_with(document)
        assert document.paperless_instance_id == instance_id
        assert document.paperless_id == 12
        assert document.tag_ids == [1, 15]
        assert document.document_date == date(2024, 1, 15)

    @pytest.mark.asyncio
    async def test_refreshes_existing_row(self):
        existing = PaperlessDocument(
            id=uuid4(), paperless_instance_id=uuid4(), paperless_id=12, title="Old"
        )
        mock_result = MagicMock()
        mock_result.scalar_one_or_none.return_value = existing
        mock_db = AsyncMock()
        mock_db.execute = AsyncMock(return_value=mock_result)
        mock_db.add = MagicMock()

        scanner = DocumentScanner(mock_db, client_factory=MagicMock())
        document = await scanner.upsert_local_document(uuid4(), remote(12))

        assert document is existing
        assert document.title == "Document 12"
        mock_db.add.assert_not_called()


class TestScanDueInstances:
    """Tests for the cron-driven scan of due instances."""

    @pytest.mark.asyncio
    async def test_aggregates_scan_results(self):
        first, second = uuid4(), uuid4()
        scans = {
            first: ScanResult(instance_id=first, instance_name="A", documents_queued=3),
            second: ScanResult(
                instance_id=second, instance_name="B", error="Connection refused"
            ),
        }

        with (
            patch(
                "archivist.services.document_scanner.get_due_instance_ids",
                AsyncMock(return_value=[first, second]),
            ),
            patch(
                "archivist.services.document_scanner.run_instance_scan",
                AsyncMock(side_effect=lambda instance_id: scans[instance_id]),
            ),
        ):
            results = await scan_due_instances()

        assert results["status"] == "partial"
        assert results["instances_scanned"] == 2
        assert results["documents_queued"] == 3
        assert results["errors"] == ["B: Connection refused"]

    @pytest.mark.asyncio
    async def test_nothing_due(self):
        with patch(
            "archivist.services.document_scanner.get_due_instance_ids",
            AsyncMock(return_value=[]),
        ):
            results = await scan_due_instances()

        assert results["status"] == "success"
        assert results["instances_scanned"] == 0
