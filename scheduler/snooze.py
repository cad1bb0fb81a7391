"""Transient per-schedule refire suppression. Process-lifetime only."""

from __future__ import annotations

from datetime import datetime, timedelta


class SnoozeRegistry:
    def __init__(self) -> None:
        self._resume_at: dict[str, datetime] = {}

    def snooze(self, schedule_id: str, minutes: float, now: datetime) -> datetime:
        """Suppress refiring of *schedule_id* until ``now + minutes``."""
        resume_at = now + timedelta(minutes=minutes)
        self._resume_at[schedule_id] = resume_at
        return resume_at

    def is_snoozed(self, schedule_id: str, now: datetime) -> bool:
        resume_at = self._resume_at.get(schedule_id)
        return resume_at is not None and resume_at > now

    def resume_at(self, schedule_id: str) -> datetime | None:
        return self._resume_at.get(schedule_id)

    def clear(self, schedule_id: str) -> None:
        self._resume_at.pop(schedule_id, None)

    def clear_all(self) -> None:
        self._resume_at.clear()

    def active(self, now: datetime) -> dict[str, datetime]:
        return {sid: at for sid, at in self._resume_at.items() if at > now}
