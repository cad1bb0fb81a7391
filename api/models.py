"""API request and response models."""

from datetime import datetime

from pydantic import BaseModel, Field

from scheduler.models import ScheduleDefinition, ScheduleTiming


class OrderResponse(BaseModel):
    success: bool
    message: str
    itemsAdded: int
    status: str


class CreateTemplateRequest(BaseModel):
    name: str
    store_url: str
    store_name: str = ""
    items: list[str] = []
    special_instructions: str = ""
    tags: list[str] = []


class CreateScheduleRequest(BaseModel):
    name: str
    template_id: str
    timing: ScheduleTiming
    reminder_minutes: int = Field(default=15, ge=0)
    auto_open: bool = False
    enabled: bool = True


class SnoozeRequest(BaseModel):
    minutes: float | None = None


class SnoozeResponse(BaseModel):
    schedule_id: str
    resume_at: datetime


class RunStartedResponse(BaseModel):
    status: str
    template_id: str
    schedule_id: str | None = None


class ScheduleResponse(ScheduleDefinition):
    snoozed_until: datetime | None = None


class HostVisibleResponse(BaseModel):
    missed: list[str]
    due: list[str]
