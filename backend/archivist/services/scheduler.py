"""In-process scan scheduler.

One asyncio task per auto-processing instance sleeps until the instance's
next scan time, scans it, and re-arms itself from the stored cron
expression. A scan that queues documents wakes the queue worker, which
runs as a single background task at a time. A poll task also wakes the
worker every ``worker_poll_seconds`` so requeued retries and items queued
through the API are claimed once they fall due.

The scheduler is created and owned by the application lifespan and stored
on ``app.state.scheduler``.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import select

from archivist.config import get_settings
from archivist.core.exceptions import ConflictError
from archivist.core.logging import get_logger
from archivist.database import session_scope
from archivist.models.paperless_instance import PaperlessInstance
from archivist.services.document_scanner import (
    ScanResult,
    calculate_next_scan_time,
    run_instance_scan,
)
from archivist.services.queue_processor import (
    ProcessResult,
    process_all_pending,
    recover_stuck_items,
)

logger = get_logger(__name__)
settings = get_settings()


@dataclass
class InstanceSchedule:
    """The fields of an instance the scheduler needs."""

    id: UUID
    name: str
    scan_cron_expression: str
    next_scan_at: datetime | None
    auto_process_enabled: bool = True

    @classmethod
    def from_instance(cls, instance: PaperlessInstance) -> "InstanceSchedule":
        return cls(
            id=instance.id,
            name=instance.name,
            scan_cron_expression=instance.scan_cron_expression,
            next_scan_at=instance.next_scan_at,
            auto_process_enabled=instance.auto_process_enabled,
        )


@dataclass
class SchedulerStatus:
    running: bool
    scheduled_instances: list[UUID]
    processor_active: bool


async def load_enabled_instances() -> list[InstanceSchedule]:
    async with session_scope() as db:
        result = await db.execute(
            select(PaperlessInstance).where(
                PaperlessInstance.auto_process_enabled.is_(True)
            )
        )
        return [InstanceSchedule.from_instance(i) for i in result.scalars().all()]


async def load_instance(instance_id: UUID) -> InstanceSchedule | None:
    async with session_scope() as db:
        instance = await db.get(PaperlessInstance, instance_id)
        return InstanceSchedule.from_instance(instance) if instance else None


class Scheduler:
    """Per-instance scan timers plus a single-flight queue worker."""

    def __init__(
        self,
        scan_runner: Callable[[UUID], Awaitable[ScanResult]] = run_instance_scan,
        processor: Callable[[], Awaitable[list[ProcessResult]]] = process_all_pending,
        recover: Callable[[], Awaitable[int]] = recover_stuck_items,
        instances_loader: Callable[
            [], Awaitable[list[InstanceSchedule]]
        ] = load_enabled_instances,
        instance_loader: Callable[
            [UUID], Awaitable[InstanceSchedule | None]
        ] = load_instance,
        poll_interval: float | None = None,
    ):
        self._scan_runner = scan_runner
        self._processor = processor
        self._recover = recover
        self._instances_loader = instances_loader
        self._instance_loader = instance_loader
        self._poll_interval = (
            poll_interval if poll_interval is not None else settings.worker_poll_seconds
        )

        self._timers: dict[UUID, asyncio.Task] = {}
        self._scanning: set[UUID] = set()
        self._fired: set[asyncio.Task] = set()
        self._processor_task: asyncio.Task | None = None
        self._poll_task: asyncio.Task | None = None
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def processor_active(self) -> bool:
        return self._processor_task is not None and not self._processor_task.done()

    async def start(self) -> None:
        """Recover stuck items, arm a timer per enabled instance, start polling."""
        if self._running:
            logger.info("scheduler_already_running")
            return

        recovered = await self._recover()
        if recovered:
            logger.info("scheduler_stuck_items_recovered", count=recovered)

        self._running = True

        instances = await self._instances_loader()
        for instance in instances:
            self.schedule_instance(
                instance.id,
                instance.name,
                instance.scan_cron_expression,
                instance.next_scan_at,
            )

        self._poll_task = asyncio.create_task(self._poll_queue())

        logger.info("scheduler_started", scheduled_instances=len(instances))

    async def stop(self) -> None:
        """Cancel every timer, the poll task and the worker task."""
        if not self._running:
            return
        self._running = False

        tasks = list(self._timers.values())
        for task in (self._poll_task, self._processor_task):
            if task is not None:
                tasks.append(task)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        self._timers.clear()
        self._processor_task = None
        self._poll_task = None
        logger.info("scheduler_stopped")

    def schedule_instance(
        self,
        instance_id: UUID,
        name: str,
        cron_expression: str,
        next_scan_at: datetime | None,
    ) -> None:
        """Arm (or re-arm) the scan timer of an instance.

        An instance that is scanning right now is skipped; the running scan
        re-arms it when it finishes.

        Raises:
            ValidationError: If the cron expression is invalid and no future
                ``next_scan_at`` is given
        """
        if instance_id in self._scanning:
            logger.info(
                "scheduler_instance_scanning_skip",
                instance_id=str(instance_id),
                instance_name=name,
            )
            return

        now = datetime.now(UTC)
        if next_scan_at is not None and next_scan_at > now:
            target = next_scan_at
        else:
            target = calculate_next_scan_time(cron_expression, now)
        delay = max(0.0, (target - now).total_seconds())

        self._cancel_timer(instance_id)
        self._timers[instance_id] = asyncio.create_task(
            self._timer(instance_id, delay)
        )

        logger.info(
            "scheduler_instance_scheduled",
            instance_id=str(instance_id),
            instance_name=name,
            delay_seconds=round(delay),
            scheduled_at=target.isoformat(),
        )

    def unschedule_instance(self, instance_id: UUID) -> None:
        if self._cancel_timer(instance_id):
            logger.info("scheduler_instance_unscheduled", instance_id=str(instance_id))

    def _cancel_timer(self, instance_id: UUID) -> bool:
        task = self._timers.pop(instance_id, None)
        if task is None:
            return False
        if task is not asyncio.current_task():
            task.cancel()
        return True

    async def _timer(self, instance_id: UUID, delay: float) -> None:
        await asyncio.sleep(delay)
        # The timer has fired; from here on it is a running scan
        task = asyncio.current_task()
        if self._timers.get(instance_id) is task:
            del self._timers[instance_id]
        self._fired.add(task)
        try:
            await self._run_instance_scan(instance_id)
        finally:
            self._fired.discard(task)

    async def _run_instance_scan(self, instance_id: UUID) -> ScanResult | None:
        if instance_id in self._scanning:
            logger.info("scheduler_duplicate_scan_skipped", instance_id=str(instance_id))
            return None

        self._scanning.add(instance_id)
        try:
            result = await self._scan_runner(instance_id)
            if result.error:
                logger.warning(
                    "scheduler_scan_error",
                    instance_id=str(instance_id),
                    instance_name=result.instance_name,
                    error=result.error,
                )
            elif result.documents_queued > 0:
                self.trigger_processor()
        except Exception as e:
            logger.exception(
                "scheduler_scan_failed", instance_id=str(instance_id), error=str(e)
            )
            result = ScanResult(instance_id=instance_id, instance_name="", error=str(e))
        finally:
            self._scanning.discard(instance_id)
            await self._schedule_next_scan(instance_id)
        return result

    async def _schedule_next_scan(self, instance_id: UUID) -> None:
        if not self._running:
            return
        try:
            instance = await self._instance_loader(instance_id)
            if instance is not None and instance.auto_process_enabled:
                self.schedule_instance(
                    instance.id,
                    instance.name,
                    instance.scan_cron_expression,
                    instance.next_scan_at,
                )
        except Exception as e:
            logger.exception(
                "scheduler_reschedule_failed", instance_id=str(instance_id), error=str(e)
            )

    async def _poll_queue(self) -> None:
        while self._running:
            await asyncio.sleep(self._poll_interval)
            self.trigger_processor()

    def trigger_processor(self) -> None:
        """Start the queue worker unless it is already draining the queue."""
        if self.processor_active:
            logger.info("scheduler_processor_already_running")
            return
        self._processor_task = asyncio.create_task(self._run_processor())

    async def _run_processor(self) -> None:
        logger.info("scheduler_processor_started")
        try:
            results = await self._processor()
            failed = [r for r in results if not r.success]
            for result in failed:
                logger.warning(
                    "scheduler_processor_item_failed",
                    queue_id=str(result.queue_item_id),
                    error=result.error,
                )
            if results:
                logger.info(
                    "scheduler_processor_finished",
                    succeeded=len(results) - len(failed),
                    failed=len(failed),
                )
        except Exception as e:
            logger.exception("scheduler_processor_error", error=str(e))

    async def trigger_scan(self, instance_id: UUID) -> ScanResult:
        """Scan an instance now and return the outcome.

        Raises:
            ConflictError: If the instance is already being scanned
        """
        if instance_id in self._scanning:
            raise ConflictError(
                "Instance is already being scanned", error_code="scanAlreadyRunning"
            )
        # A manual scan replaces the pending timer; the scan re-arms it
        self._cancel_timer(instance_id)
        return await self._run_instance_scan(instance_id)

    def get_status(self) -> SchedulerStatus:
        return SchedulerStatus(
            running=self._running,
            scheduled_instances=list(self._timers),
            processor_active=self.processor_active,
        )
