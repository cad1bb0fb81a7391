"""Next-trigger computation for once and recurring schedules.

Everything here is pure: the caller supplies ``now`` (timezone-aware) and the
local zone, so results are deterministic for a frozen clock.

DST policy: recurring times are wall-clock times in the local zone. An
ambiguous time (clocks going back) resolves to its first occurrence; a
non-existent time (clocks going forward) is read with the pre-transition
offset, which lands it after the gap. The reminder offset is then
subtracted as real elapsed minutes.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone, tzinfo

from core.errors import ValidationError
from scheduler.models import ScheduleDefinition, ScheduleTiming, TimingKind

# Today plus the same weekday one week out, so a day whose slot has already
# passed today still yields next week's slot.
_LOOKAHEAD_DAYS = 8


def next_trigger(
    timing: ScheduleTiming,
    reminder_minutes: int,
    now: datetime,
    tz: tzinfo = timezone.utc,
) -> datetime | None:
    """Return the next trigger instant (UTC) strictly after *now*, or None."""
    if now.tzinfo is None:
        raise ValidationError("next_trigger requires a timezone-aware 'now'")
    if reminder_minutes < 0:
        raise ValidationError("reminder_minutes must be >= 0")
    offset = timedelta(minutes=reminder_minutes)

    if timing.kind == TimingKind.ONCE:
        target = timing.target_at
        if target is None:
            return None
        if target.tzinfo is None:
            target = target.replace(tzinfo=tz)
        candidate = target.astimezone(timezone.utc) - offset
        return candidate if candidate > now else None

    if timing.kind == TimingKind.RECURRING:
        if not timing.days_of_week or timing.time_of_day is None:
            return None
        at = timing.time_of_day.replace(tzinfo=None)
        today = now.astimezone(tz).date()
        for i in range(_LOOKAHEAD_DAYS):
            day = today + timedelta(days=i)
            if day.weekday() not in timing.days_of_week:
                continue
            local = datetime.combine(day, at, tzinfo=tz)
            candidate = local.astimezone(timezone.utc) - offset
            if candidate > now:
                return candidate
        return None

    raise ValidationError(f"Unknown timing kind: {timing.kind}")


def next_trigger_for(schedule: ScheduleDefinition, now: datetime, tz: tzinfo = timezone.utc) -> datetime | None:
    return next_trigger(schedule.timing, schedule.reminder_minutes, now, tz)
