"""Tests for the in-process scan scheduler."""

import asyncio
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock
from uuid import uuid4

import pytest

from archivist.core.exceptions import ConflictError
from archivist.services.document_scanner import ScanResult
from archivist.services.queue_processor import ProcessResult
from archivist.services.scheduler import InstanceSchedule, Scheduler


def make_schedule(instance_id=None, next_scan_at=None, enabled=True) -> InstanceSchedule:
    return InstanceSchedule(
        id=instance_id or uuid4(),
        name="Home archive",
        scan_cron_expression="*/30 * * * *",
        next_scan_at=next_scan_at,
        auto_process_enabled=enabled,
    )


def make_scheduler(
    instances=None,
    scan_result=None,
    scan_side_effect=None,
    reloaded=None,
    processor=None,
    poll_interval=3600,
) -> Scheduler:
    instances = instances or []
    scan_runner = AsyncMock(side_effect=scan_side_effect)
    if scan_side_effect is None:
        scan_runner.return_value = scan_result
    return Scheduler(
        scan_runner=scan_runner,
        processor=processor or AsyncMock(return_value=[]),
        recover=AsyncMock(return_value=0),
        instances_loader=AsyncMock(return_value=instances),
        instance_loader=AsyncMock(return_value=reloaded),
        poll_interval=poll_interval,
    )


class TestSchedulerLifecycle:
    """Tests for start/stop and timer management."""

    @pytest.mark.asyncio
    async def test_start_recovers_and_schedules_enabled_instances(self):
        instances = [make_schedule(), make_schedule()]
        scheduler = make_scheduler(instances=instances)

        await scheduler.start()
        try:
            status = scheduler.get_status()
            assert status.running is True
            assert set(status.scheduled_instances) == {i.id for i in instances}
            scheduler._recover.assert_awaited_once()
        finally:
            await scheduler.stop()

        assert scheduler.is_running is False
        assert scheduler.get_status().scheduled_instances == []

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self):
        scheduler = make_scheduler()

        await scheduler.start()
        await scheduler.start()
        try:
            scheduler._recover.assert_awaited_once()
        finally:
            await scheduler.stop()

    @pytest.mark.asyncio
    async def test_unschedule_removes_timer(self):
        instance = make_schedule()
        scheduler = make_scheduler(instances=[instance])

        await scheduler.start()
        try:
            scheduler.unschedule_instance(instance.id)
            assert scheduler.get_status().scheduled_instances == []
        finally:
            await scheduler.stop()

    @pytest.mark.asyncio
    async def test_scanning_instance_is_not_rescheduled(self):
        instance_id = uuid4()
        scheduler = make_scheduler()
        scheduler._scanning.add(instance_id)

        scheduler.schedule_instance(instance_id, "Home archive", "*/30 * * * *", None)

        assert scheduler.get_status().scheduled_instances == []


class TestTimerFiring:
    """Tests for scans run by timers."""

    @pytest.mark.asyncio
    async def test_due_timer_scans_and_rearms(self):
        instance_id = uuid4()
        reloaded = make_schedule(
            instance_id, next_scan_at=datetime.now(UTC) + timedelta(hours=1)
        )
        scheduler = make_scheduler(
            scan_result=ScanResult(instance_id=instance_id, instance_name="Home"),
            reloaded=reloaded,
        )

        await scheduler.start()
        try:
            await scheduler._timer(instance_id, 0)

            scheduler._scan_runner.assert_awaited_once_with(instance_id)
            assert scheduler.get_status().scheduled_instances == [instance_id]
        finally:
            await scheduler.stop()

    @pytest.mark.asyncio
    async def test_disabled_instance_is_not_rearmed(self):
        instance_id = uuid4()
        scheduler = make_scheduler(
            scan_result=ScanResult(instance_id=instance_id, instance_name="Home"),
            reloaded=make_schedule(instance_id, enabled=False),
        )

        await scheduler.start()
        try:
            await scheduler._timer(instance_id, 0)

            scheduler._scan_runner.assert_awaited_once()
            assert scheduler.get_status().scheduled_instances == []
        finally:
            await scheduler.stop()


class TestManualScan:
    """Tests for Scheduler.trigger_scan."""

    @pytest.mark.asyncio
    async def test_trigger_scan_returns_result_and_wakes_processor(self):
        instance_id = uuid4()
        scheduler = make_scheduler(
            scan_result=ScanResult(
                instance_id=instance_id, instance_name="Home", documents_queued=2
            ),
            reloaded=make_schedule(instance_id),
        )

        await scheduler.start()
        try:
            result = await scheduler.trigger_scan(instance_id)
            await asyncio.sleep(0.05)

            assert result.documents_queued == 2
            scheduler._processor.assert_awaited_once()
            # Re-armed from the reloaded schedule
            assert instance_id in scheduler.get_status().scheduled_instances
        finally:
            await scheduler.stop()

    @pytest.mark.asyncio
    async def test_nothing_queued_does_not_wake_processor(self):
        instance_id = uuid4()
        scheduler = make_scheduler(
            scan_result=ScanResult(instance_id=instance_id, instance_name="Home"),
        )

        await scheduler.trigger_scan(instance_id)
        await asyncio.sleep(0.05)

        scheduler._processor.assert_not_called()

    @pytest.mark.asyncio
    async def test_trigger_scan_while_scanning_raises_conflict(self):
        instance_id = uuid4()
        scheduler = make_scheduler()
        scheduler._scanning.add(instance_id)

        with pytest.raises(ConflictError) as exc_info:
            await scheduler.trigger_scan(instance_id)

        assert exc_info.value.error_code == "scanAlreadyRunning"
        scheduler._scan_runner.assert_not_called()

    @pytest.mark.asyncio
    async def test_scan_exception_becomes_error_result(self):
        instance_id = uuid4()
        scheduler = make_scheduler(scan_side_effect=RuntimeError("database gone"))

        result = await scheduler.trigger_scan(instance_id)

        assert result.error == "database gone"
        assert instance_id not in scheduler._scanning


class TestProcessorTrigger:
    """Tests for the single-flight queue worker."""

    @pytest.mark.asyncio
    async def test_processor_runs_once_at_a_time(self):
        release = asyncio.Event()

        async def slow_processor():
            await release.wait()
            return []

        processor = AsyncMock(side_effect=slow_processor)
        scheduler = make_scheduler(processor=processor)

        scheduler.trigger_processor()
        await asyncio.sleep(0)
        assert scheduler.processor_active is True

        scheduler.trigger_processor()
        release.set()
        await asyncio.sleep(0.05)

        processor.assert_awaited_once()
        assert scheduler.processor_active is False

    @pytest.mark.asyncio
    async def test_processor_errors_are_contained(self):
        processor = AsyncMock(side_effect=RuntimeError("boom"))
        scheduler = make_scheduler(processor=processor)

        scheduler.trigger_processor()
        await asyncio.sleep(0.05)

        assert scheduler.processor_active is False


class TestQueuePolling:
    """Tests for the periodic worker wake-up."""

    @pytest.mark.asyncio
    async def test_requeued_item_is_processed_without_a_new_scan(self):
        instance_id = uuid4()
        queue_item_id = uuid4()
        calls = []
        drained = asyncio.Event()

        async def processor():
            calls.append(len(calls))
            if len(calls) == 1:
                return [
                    ProcessResult(
                        queue_item_id=queue_item_id,
                        document_id=uuid4(),
                        success=False,
                        error="openai API error: 500",
                        requeued=True,
                    )
                ]
            drained.set()
            return [
                ProcessResult(
                    queue_item_id=queue_item_id, document_id=uuid4(), success=True
                )
            ]

        scheduler = make_scheduler(
            scan_result=ScanResult(
                instance_id=instance_id, instance_name="Home", documents_queued=1
            ),
            processor=AsyncMock(side_effect=processor),
            poll_interval=0.01,
        )

        await scheduler.start()
        try:
            await scheduler.trigger_scan(instance_id)
            await asyncio.wait_for(drained.wait(), timeout=2)

            scheduler._scan_runner.assert_awaited_once_with(instance_id)
            assert len(calls) >= 2
        finally:
            await scheduler.stop()

    @pytest.mark.asyncio
    async def test_stop_cancels_polling(self):
        processor = AsyncMock(return_value=[])
        scheduler = make_scheduler(processor=processor, poll_interval=0.01)

        await scheduler.start()
        await scheduler.stop()
        await asyncio.sleep(0.05)

        processor.assert_not_called()
        assert scheduler.processor_active is False
