"""NotificationDispatcher: system alert plus in-app banner for a due schedule."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone

from core.event_bus import EventBus
from notify.base import SystemNotifier
from scheduler.models import OrderTemplate, ScheduleDefinition
from scheduler.snooze import SnoozeRegistry

logger = logging.getLogger(__name__)

CHANNEL = "notifications"

TITLE_DUE = "Time to Order!"
TITLE_MISSED = "Missed Reminder"


def alert_text(schedule: ScheduleDefinition, template: OrderTemplate, missed: bool = False) -> tuple[str, str]:
    """Title and body of the alert for *schedule*."""
    title = TITLE_MISSED if missed else TITLE_DUE
    store = template.store_name or "the store"
    body = f"{schedule.name}\n{template.name} from {store}"
    return title, body


class NotificationDispatcher:
    def __init__(
        self,
        notifier: SystemNotifier,
        event_bus: EventBus,
        snoozes: SnoozeRegistry,
        clock: Callable[[], datetime] | None = None,
    ):
        self._notifier = notifier
        self._bus = event_bus
        self._snoozes = snoozes
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._banner: dict | None = None

    @property
    def current_banner(self) -> dict | None:
        return self._banner

    async def request_permission(self) -> str:
        return await self._notifier.request_permission()

    async def notify(self, schedule: ScheduleDefinition, template: OrderTemplate, missed: bool = False) -> dict:
        """Surface *schedule* to the operator: OS alert and in-app banner."""
        title, body = alert_text(schedule, template, missed)
        delivered = await self._notifier.show_alert(
            title, body, tag=schedule.schedule_id, on_click=self._on_alert_click,
        )
        self._banner = {
            "type": "banner",
            "title": title,
            "body": body,
            "missed": missed,
            "schedule_id": schedule.schedule_id,
            "schedule_name": schedule.name,
            "template_id": template.template_id,
            "template_name": template.name,
            "store_name": template.store_name,
            "timestamp": self._clock().isoformat(),
        }
        await self._bus.publish(CHANNEL, self._banner)
        logger.info(
            "Notification shown",
            extra={"schedule_id": schedule.schedule_id, "missed": missed, "system_alert": delivered},
        )
        return self._banner

    async def snooze(self, schedule_id: str, minutes: float) -> datetime:
        """Hold off refiring until the snooze elapses. Timing fields are untouched."""
        resume_at = self._snoozes.snooze(schedule_id, minutes, self._clock())
        if self._banner and self._banner.get("schedule_id") == schedule_id:
            await self.dismiss()
        logger.info("Schedule snoozed", extra={"schedule_id": schedule_id, "resume_at": resume_at})
        return resume_at

    async def dismiss(self) -> None:
        """Clear the in-app banner only."""
        if self._banner is None:
            return
        schedule_id = self._banner.get("schedule_id")
        self._banner = None
        await self._bus.publish(CHANNEL, {
            "type": "banner_cleared",
            "schedule_id": schedule_id,
            "timestamp": self._clock().isoformat(),
        })

    def _on_alert_click(self, tag: str) -> None:
        logger.info("System alert clicked", extra={"schedule_id": tag})
