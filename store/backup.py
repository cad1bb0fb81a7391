"""JSON export / import of templates, schedules and history."""

from __future__ import annotations

import logging
from datetime import datetime, timezone, tzinfo
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError as PydanticValidationError

from core.errors import ValidationError
from scheduler.models import ExecutionOutcome, OrderTemplate, ScheduleDefinition

if TYPE_CHECKING:
    from scheduler.schedule_store import ScheduleStore
    from store.history_store import HistoryStore
    from store.template_store import TemplateStore

logger = logging.getLogger(__name__)

BACKUP_VERSION = "1.0"


async def export_data(
    templates: TemplateStore,
    schedules: ScheduleStore,
    history: HistoryStore,
) -> dict[str, Any]:
    return {
        "version": BACKUP_VERSION,
        "exported_at": datetime.now(timezone.utc).isoformat(),
        "templates": [t.model_dump(mode="json") for t in await templates.list_all()],
        "schedules": [s.model_dump(mode="json") for s in await schedules.list_all()],
        "history": [o.model_dump(mode="json") for o in await history.list_all()],
    }


async def import_data(
    data: Any,
    templates: TemplateStore,
    schedules: ScheduleStore,
    history: HistoryStore,
    tz: tzinfo = timezone.utc,
) -> dict[str, int]:
    """Replace each collection present in *data*; absent sections are left alone.

    Every section is validated before anything is written, so a bad payload
    never leaves the stores half-imported. Timestamps without an offset are
    read as wall-clock time in *tz*.
    """
    if not isinstance(data, dict):
        raise ValidationError("Invalid data format: expected a JSON object")

    context = {"tz": tz}
    parsed: dict[str, list] = {}
    try:
        if isinstance(data.get("templates"), list):
            parsed["templates"] = [OrderTemplate.model_validate(t) for t in data["templates"]]
        if isinstance(data.get("schedules"), list):
            parsed["schedules"] = [
                ScheduleDefinition.model_validate(s, context=context) for s in data["schedules"]
            ]
        if isinstance(data.get("history"), list):
            parsed["history"] = [
                ExecutionOutcome.model_validate(o, context=context) for o in data["history"]
            ]
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid backup contents: {e.error_count()} error(s)") from e

    if "templates" in parsed:
        await templates.replace_all(parsed["templates"])
    if "schedules" in parsed:
        await schedules.replace_all(parsed["schedules"])
    if "history" in parsed:
        await history.replace_all(parsed["history"])

    counts = {k: len(v) for k, v in parsed.items()}
    logger.info("Backup imported", extra=counts)
    return counts
