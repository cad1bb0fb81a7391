"""TriggerService: polls schedules, recovers missed triggers, fires them.

One value owns all mutable trigger state (poll job, snoozes, spawned
automation tasks) and has an explicit start/shutdown lifecycle. Polling and
recovery share one lock so a trigger instant can fire at most once.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Any

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from automation.models import AutomationResult, OrderOptions, OrderRequest, RunContext
from core.config import Settings
from core.errors import ValidationError
from scheduler.models import (
    ExecutionOutcome,
    OutcomeStatus,
    ScheduleDefinition,
    TimingKind,
    TriggeredBy,
)
from scheduler.snooze import SnoozeRegistry
from scheduler.timing import next_trigger_for
from store.backup import import_data

if TYPE_CHECKING:
    from automation.engine import AutomationEngine
    from notify.dispatcher import NotificationDispatcher
    from scheduler.schedule_store import ScheduleStore
    from store.history_store import HistoryStore
    from store.template_store import TemplateStore

logger = logging.getLogger(__name__)

POLL_JOB_ID = "trigger-poll"

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)

DueCheck = Callable[[ScheduleDefinition, datetime, timedelta, SnoozeRegistry | None], bool]


# ── Due tests (pure) ─────────────────────────────────────────────────────────

def _not_yet_fired(schedule: ScheduleDefinition) -> bool:
    last = schedule.last_triggered_at or _EPOCH
    return last < schedule.next_trigger_at


def is_due(
    schedule: ScheduleDefinition,
    now: datetime,
    window: timedelta,
    snoozes: SnoozeRegistry | None = None,
) -> bool:
    """Trigger instant reached within *window*, not yet fired, not snoozed."""
    if not schedule.enabled or schedule.next_trigger_at is None:
        return False
    at = schedule.next_trigger_at
    if not (now - window < at <= now):
        return False
    if not _not_yet_fired(schedule):
        return False
    return not (snoozes and snoozes.is_snoozed(schedule.schedule_id, now))


def is_missed(
    schedule: ScheduleDefinition,
    now: datetime,
    window: timedelta,
    snoozes: SnoozeRegistry | None = None,
) -> bool:
    """Trigger instant in the past but inside the recovery *window*, never fired."""
    if not schedule.enabled or schedule.next_trigger_at is None:
        return False
    at = schedule.next_trigger_at
    if not (now - window < at < now):
        return False
    if not _not_yet_fired(schedule):
        return False
    return not (snoozes and snoozes.is_snoozed(schedule.schedule_id, now))


def mark_triggered(schedule: ScheduleDefinition, now: datetime, tz=timezone.utc) -> ScheduleDefinition:
    """Stamp *schedule* as fired at *now*: once → disabled, recurring → next slot."""
    last = schedule.last_triggered_at
    fired_at = now if last is None else max(last, now)
    schedule.last_triggered_at = fired_at
    if schedule.timing.kind == TimingKind.ONCE:
        schedule.enabled = False
        schedule.next_trigger_at = None
    else:
        schedule.next_trigger_at = next_trigger_for(schedule, fired_at, tz)
    return schedule


# ── Service ──────────────────────────────────────────────────────────────────

class TriggerService:
    def __init__(
        self,
        schedules: ScheduleStore,
        templates: TemplateStore,
        history: HistoryStore,
        dispatcher: NotificationDispatcher,
        engine: AutomationEngine,
        snoozes: SnoozeRegistry,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self._schedules = schedules
        self._templates = templates
        self._history = history
        self._dispatcher = dispatcher
        self._engine = engine
        self._snoozes = snoozes
        self.settings = settings or Settings()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = asyncio.Lock()
        self._aps: AsyncIOScheduler | None = None
        self._tasks: set[asyncio.Task] = set()

    @property
    def due_window(self) -> timedelta:
        return timedelta(seconds=self.settings.due_window_seconds)

    @property
    def recovery_window(self) -> timedelta:
        return timedelta(seconds=self.settings.recovery_window_seconds)

    @property
    def running(self) -> bool:
        return self._aps is not None and self._aps.running

    @property
    def pending_tasks(self) -> set[asyncio.Task]:
        return set(self._tasks)

    # ── Lifecycle ────────────────────────────────────────────────────────────

    async def start(self) -> None:
        """Catch up on missed triggers, poll once, then poll on the interval."""
        if self.running:
            return
        await self.recover_missed()
        await self.poll()

        self._aps = AsyncIOScheduler(timezone=timezone.utc)
        self._aps.add_job(
            self.poll,
            trigger=IntervalTrigger(seconds=self.settings.poll_interval_seconds),
            id=POLL_JOB_ID,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self._aps.start()
        logger.info("TriggerService started", extra={"interval_s": self.settings.poll_interval_seconds})

    async def shutdown(self) -> None:
        if self._aps is not None and self._aps.running:
            self._aps.shutdown(wait=False)
        self._aps = None
        # Automation runs are never cancelled mid-flight
        if self._tasks:
            logger.info("Automation runs still in flight at shutdown", extra={"count": len(self._tasks)})
        logger.info("TriggerService stopped")

    # ── Scanning ─────────────────────────────────────────────────────────────

    async def due_schedules(self) -> list[ScheduleDefinition]:
        now = self._clock()
        return [
            s for s in await self._schedules.list_all()
            if is_due(s, now, self.due_window, self._snoozes)
        ]

    async def poll(self) -> list[ScheduleDefinition]:
        """Fire every due schedule. Returns the schedules fired."""
        async with self._lock:
            return await self._scan(is_due, self.due_window, missed=False)

    async def recover_missed(self) -> list[ScheduleDefinition]:
        """Fire triggers that passed while nobody was polling, within the recovery window."""
        async with self._lock:
            fired = await self._scan(is_missed, self.recovery_window, missed=True)
        if fired:
            logger.info("Missed triggers recovered", extra={"count": len(fired)})
        return fired

    async def on_host_visible(self) -> dict[str, list[ScheduleDefinition]]:
        """The host regained attention: recover first, then a regular poll."""
        missed = await self.recover_missed()
        due = await self.poll()
        return {"missed": missed, "due": due}

    # ── Operator actions ─────────────────────────────────────────────────────

    async def trigger_now(self, schedule_id: str, options: OrderOptions | None = None) -> asyncio.Task:
        """Run the schedule's template right away, ignoring its timing."""
        schedule = await self._schedules.load(schedule_id)
        template = await self._templates.load(schedule.template_id)
        context = RunContext(
            triggered_by=TriggeredBy.MANUAL,
            template_id=template.template_id,
            template_name=template.name,
            schedule_id=schedule.schedule_id,
            schedule_name=schedule.name,
        )
        logger.info("Manual trigger", extra={"schedule_id": schedule_id})
        return self._spawn(OrderRequest.from_template(template, options), context)

    async def order_template(self, template_id: str, options: OrderOptions | None = None) -> asyncio.Task:
        template = await self._templates.load(template_id)
        context = RunContext(
            triggered_by=TriggeredBy.MANUAL,
            template_id=template.template_id,
            template_name=template.name,
        )
        return self._spawn(OrderRequest.from_template(template, options), context)

    async def snooze(self, schedule_id: str, minutes: float | None = None) -> datetime:
        await self._schedules.load(schedule_id)   # raises KeyError if missing
        if minutes is None:
            minutes = self.settings.default_snooze_minutes
        if minutes <= 0:
            raise ValidationError("Snooze minutes must be positive")
        return await self._dispatcher.snooze(schedule_id, minutes)

    # ── Schedule editing ─────────────────────────────────────────────────────

    # Every schedule write goes through the lock that poll/recover hold.

    async def save_schedule(self, schedule: ScheduleDefinition) -> ScheduleDefinition:
        """Persist *schedule* with a freshly computed next_trigger_at."""
        try:
            await self._templates.load(schedule.template_id)
        except KeyError:
            raise ValidationError(f"Unknown order template '{schedule.template_id}'") from None
        async with self._lock:
            schedule.next_trigger_at = next_trigger_for(schedule, self._clock(), self.settings.tz)
            await self._schedules.save(schedule)
        return schedule

    async def delete_schedule(self, schedule_id: str) -> None:
        async with self._lock:
            await self._schedules.load(schedule_id)   # raises KeyError if missing
            await self._schedules.delete(schedule_id)
            self._snoozes.clear(schedule_id)

    async def delete_template(self, template_id: str) -> int:
        """Delete a template and every schedule that uses it. Returns schedules removed."""
        async with self._lock:
            await self._templates.load(template_id)
            doomed = [s.schedule_id for s in await self._schedules.list_all() if s.template_id == template_id]
            await self._templates.delete(template_id)
            removed = await self._schedules.delete_by_template(template_id)
            for schedule_id in doomed:
                self._snoozes.clear(schedule_id)
        return removed

    async def import_backup(self, data: Any) -> dict[str, int]:
        async with self._lock:
            counts = await import_data(data, self._templates, self._schedules, self._history, self.settings.tz)
            self._snoozes.clear_all()
        return counts

    async def toggle_schedule(self, schedule_id: str) -> ScheduleDefinition:
        async with self._lock:
            schedule = await self._schedules.load(schedule_id)
            schedule.enabled = not schedule.enabled
            schedule.next_trigger_at = next_trigger_for(schedule, self._clock(), self.settings.tz)
            await self._schedules.save(schedule)
        return schedule

    # ── Internal ─────────────────────────────────────────────────────────────

    async def _scan(self, check: DueCheck, window: timedelta, missed: bool) -> list[ScheduleDefinition]:
        """Fire every schedule that passes *check*. Caller holds ``self._lock``."""
        now = self._clock()
        fired = []
        for snapshot in await self._schedules.list_all():
            # One broken schedule must not stop the rest of the scan
            try:
                if not check(snapshot, now, window, self._snoozes):
                    continue
                schedule = await self._fire(snapshot.schedule_id, check, now, window, missed)
            except Exception:
                logger.exception("Firing schedule failed", extra={"schedule_id": snapshot.schedule_id})
                continue
            if schedule is not None:
                fired.append(schedule)
        return fired

    async def _fire(
        self,
        schedule_id: str,
        check: DueCheck,
        now: datetime,
        window: timedelta,
        missed: bool,
    ) -> ScheduleDefinition | None:
        # Earlier iterations awaited; act on the stored row, not the scan snapshot
        try:
            schedule = await self._schedules.load(schedule_id)
        except KeyError:
            logger.info("Schedule removed before firing", extra={"schedule_id": schedule_id})
            return None
        if not check(schedule, now, window, self._snoozes):
            return None

        try:
            template = await self._templates.load(schedule.template_id)
        except KeyError:
            logger.warning("Template not found for schedule", extra={"schedule_id": schedule.schedule_id})
            return None

        self._snoozes.clear(schedule.schedule_id)
        mark_triggered(schedule, self._clock(), self.settings.tz)
        await self._schedules.save(schedule)

        await self._dispatcher.notify(schedule, template, missed=missed)
        logger.info(
            "Schedule fired",
            extra={
                "schedule_id": schedule.schedule_id,
                "missed": missed,
                "next_trigger_at": schedule.next_trigger_at,
                "auto_open": schedule.auto_open,
            },
        )

        if schedule.auto_open:
            self._spawn(
                OrderRequest.from_template(template),
                RunContext(
                    triggered_by=TriggeredBy.SCHEDULE,
                    template_id=template.template_id,
                    template_name=template.name,
                    schedule_id=schedule.schedule_id,
                    schedule_name=schedule.name,
                ),
            )
        return schedule

    def _spawn(self, request: OrderRequest, context: RunContext) -> asyncio.Task:
        """Start an automation run without waiting for it."""
        task = asyncio.create_task(self._execute(request, context))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _execute(self, request: OrderRequest, context: RunContext) -> AutomationResult | None:
        try:
            return await self._engine.execute(request, context)
        except Exception as e:
            # The engine records its own outcomes; this covers failures outside that path
            logger.exception("Background automation error", extra={"schedule_id": context.schedule_id})
            await self._history.record(ExecutionOutcome(
                status=OutcomeStatus.FAILED,
                items_requested=len(request.items),
                items_fulfilled=0,
                triggered_by=context.triggered_by,
                timestamp=self._clock(),
                message=str(e) or "Automation failed",
                error=repr(e),
                error_kind="unexpected",
                template_id=context.template_id,
                template_name=context.template_name,
                store_name=request.store_name,
                items=list(request.items),
                schedule_id=context.schedule_id,
                schedule_name=context.schedule_name,
            ))
            return None
