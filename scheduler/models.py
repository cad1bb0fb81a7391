"""Schedule, order template and execution outcome models."""

import re
import uuid
from datetime import datetime, time, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator, model_validator


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime | None, info: ValidationInfo) -> datetime | None:
    """Aware UTC instant. A naive value is wall-clock time in ``context["tz"]`` (UTC if unset)."""
    if value is None:
        return None
    if value.tzinfo is None:
        tz = (info.context or {}).get("tz") or timezone.utc
        value = value.replace(tzinfo=tz)
    return value.astimezone(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class TimingKind(str, Enum):
    ONCE = "once"
    RECURRING = "recurring"


class OutcomeStatus(str, Enum):
    COMPLETED = "completed"
    PARTIAL = "partial"
    FAILED = "failed"


class TriggeredBy(str, Enum):
    MANUAL = "manual"
    SCHEDULE = "schedule"


# ── Schedules ────────────────────────────────────────────────────────────────

class ScheduleTiming(BaseModel):
    kind: TimingKind
    # ONCE: absolute instant; a naive value is read in the configured local zone
    target_at: datetime | None = None
    # RECURRING: Python weekday numbers, 0=Monday … 6=Sunday
    days_of_week: list[int] = []
    time_of_day: time | None = None

    @field_validator("days_of_week")
    @classmethod
    def check_days(cls, days: list[int]) -> list[int]:
        for d in days:
            if not 0 <= d <= 6:
                raise ValueError(f"days_of_week entries must be 0..6, got {d}")
        return sorted(set(days))

    @model_validator(mode="after")
    def check_kind_fields(self):
        if self.kind == TimingKind.ONCE and self.target_at is None:
            raise ValueError("ONCE timing must set 'target_at'")
        if self.kind == TimingKind.RECURRING and self.time_of_day is None:
            raise ValueError("RECURRING timing must set 'time_of_day'")
        return self


class ScheduleDefinition(BaseModel):
    schedule_id: str = Field(default_factory=_new_id)
    name: str
    template_id: str
    timing: ScheduleTiming
    # Minutes subtracted from the nominal time to get the trigger instant
    reminder_minutes: int = Field(default=15, ge=0)
    enabled: bool = True
    auto_open: bool = False
    created_at: datetime = Field(default_factory=_now)
    last_triggered_at: datetime | None = None
    next_trigger_at: datetime | None = None

    @field_validator("created_at", "last_triggered_at", "next_trigger_at")
    @classmethod
    def instants_in_utc(cls, value: datetime | None, info: ValidationInfo) -> datetime | None:
        return _as_utc(value, info)


# ── Order templates ──────────────────────────────────────────────────────────

_STORE_ID_RE = re.compile(r"/store/[^/]+-(\d+)/?")


def extract_store_id(url: str | None) -> str | None:
    """Pull the numeric store id out of ``/store/<slug>-<id>/`` URLs."""
    if not url:
        return None
    m = _STORE_ID_RE.search(url)
    return m.group(1) if m else None


class OrderTemplate(BaseModel):
    template_id: str = Field(default_factory=_new_id)
    name: str
    store_name: str = ""
    store_url: str
    store_id: str | None = None
    items: list[str] = []
    special_instructions: str = ""
    tags: list[str] = []
    created_at: datetime = Field(default_factory=_now)
    last_ordered_at: datetime | None = None
    order_count: int = 0

    @field_validator("items")
    @classmethod
    def strip_items(cls, items: list[str]) -> list[str]:
        return [i.strip() for i in items if i and i.strip()]

    @model_validator(mode="after")
    def fill_store_id(self):
        if self.store_id is None:
            self.store_id = extract_store_id(self.store_url)
        return self


# ── Outcomes ─────────────────────────────────────────────────────────────────

class ExecutionOutcome(BaseModel):
    """One recorded automation run. Immutable once written."""

    model_config = ConfigDict(frozen=True)

    outcome_id: str = Field(default_factory=_new_id)
    status: OutcomeStatus
    items_requested: int
    items_fulfilled: int
    triggered_by: TriggeredBy
    timestamp: datetime = Field(default_factory=_now)
    message: str = ""
    error: str | None = None
    error_kind: str | None = None

    # Context for history display
    template_id: str | None = None
    template_name: str = ""
    store_name: str = ""
    items: list[str] = []
    schedule_id: str | None = None
    schedule_name: str | None = None

    @field_validator("timestamp")
    @classmethod
    def timestamp_in_utc(cls, value: datetime, info: ValidationInfo) -> datetime:
        return _as_utc(value, info)
