"""Automation request / result types."""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from scheduler.models import OrderTemplate, OutcomeStatus, TriggeredBy


class ExecutionMode(str, Enum):
    VISIBLE = "visible"
    HEADLESS = "headless"


class _CamelModel(BaseModel):
    # Wire format is camelCase; Python side stays snake_case
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class OrderOptions(_CamelModel):
    headless: bool | None = None          # None → Settings.headless
    profile_ref: str | None = None        # name of a stored browser session profile
    delivery_address: str | None = None

    def mode(self, default_headless: bool = False) -> ExecutionMode:
        headless = default_headless if self.headless is None else self.headless
        return ExecutionMode.HEADLESS if headless else ExecutionMode.VISIBLE


class OrderRequest(_CamelModel):
    store_url: str | None = None
    store_name: str = ""
    items: list[str] = []
    special_instructions: str = ""
    options: OrderOptions = Field(default_factory=OrderOptions)

    @classmethod
    def from_template(cls, template: OrderTemplate, options: OrderOptions | None = None) -> "OrderRequest":
        return cls(
            store_url=template.store_url,
            store_name=template.store_name,
            items=list(template.items),
            special_instructions=template.special_instructions,
            options=options or OrderOptions(),
        )


class RunContext(BaseModel):
    """Who asked for a run, and on behalf of which template/schedule."""
    triggered_by: TriggeredBy = TriggeredBy.MANUAL
    template_id: str | None = None
    template_name: str = ""
    schedule_id: str | None = None
    schedule_name: str | None = None


class AutomationResult(BaseModel):
    items_requested: int
    items_fulfilled: int
    status: OutcomeStatus
    message: str
    error_kind: str | None = None
    error: str | None = None
    outcome_id: str | None = None

    @property
    def success(self) -> bool:
        return self.status != OutcomeStatus.FAILED
