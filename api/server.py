"""FastAPI service layer for CartPilot."""

import asyncio
import json
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse

from api.models import (
    CreateScheduleRequest,
    CreateTemplateRequest,
    HostVisibleResponse,
    OrderResponse,
    RunStartedResponse,
    ScheduleResponse,
    SnoozeRequest,
    SnoozeResponse,
)
from automation.destination import validate_destination
from automation.engine import AutomationEngine
from automation.models import OrderOptions, OrderRequest
from automation.playwright_driver import PlaywrightDriverFactory
from automation.selectors import SiteTimeouts
from core.config import Settings
from core.errors import AlreadyRunning, ValidationError
from core.event_bus import EventBus
from notify.dispatcher import CHANNEL, NotificationDispatcher
from notify.system import DesktopNotifier
from scheduler.models import OrderTemplate, ScheduleDefinition
from scheduler.schedule_store import ScheduleStore
from scheduler.snooze import SnoozeRegistry
from scheduler.trigger_service import TriggerService
from store.backup import export_data
from store.history_store import HistoryPeriod, HistoryStore, period_start
from store.template_store import TemplateStore

logger = logging.getLogger(__name__)

# ── Singletons ────────────────────────────────────────────────────────────────
# Built at import time so routes work even when ASGITransport skips the
# lifespan (e.g. in tests); configure() rebuilds them for other settings.

_settings = Settings.from_env()


def configure(settings: Settings, notifier=None, driver_factory=None) -> None:
    """(Re)build every collaborator for *settings*."""
    global _settings, _schedule_store, _template_store, _history_store
    global _event_bus, _snoozes, _dispatcher, _engine, _service

    _settings = settings
    _schedule_store = ScheduleStore(settings.db_url)
    _template_store = TemplateStore(settings.db_url)
    _history_store = HistoryStore(settings.db_url)
    _event_bus = EventBus()
    _snoozes = SnoozeRegistry()
    _dispatcher = NotificationDispatcher(notifier or DesktopNotifier(), _event_bus, _snoozes)
    _engine = AutomationEngine(
        driver_factory or PlaywrightDriverFactory(settings),
        history=_history_store,
        templates=_template_store,
        timeouts=SiteTimeouts.from_settings(settings),
        scroll_steps=settings.scroll_steps,
    )
    _service = TriggerService(
        _schedule_store, _template_store, _history_store,
        _dispatcher, _engine, _snoozes, settings=settings,
    )


async def init_stores() -> None:
    await _template_store.init()
    await _schedule_store.init()
    await _history_store.init()


configure(_settings)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_stores()
    await _dispatcher.request_permission()
    await _service.start()
    yield
    await _service.shutdown()


app = FastAPI(
    title="CartPilot API",
    description="Scheduled storefront cart automation.",
    version="0.1.0",
    lifespan=lifespan,
)


# ── Error mapping ─────────────────────────────────────────────────────────────

def _error(status_code: int, message: str, details=None) -> JSONResponse:
    body = {"error": message}
    if details is not None:
        body["details"] = details
    return JSONResponse(status_code=status_code, content=body)


@app.exception_handler(ValidationError)
async def _validation_error(request: Request, exc: ValidationError):
    return _error(400, exc.message)


@app.exception_handler(RequestValidationError)
async def _request_validation_error(request: Request, exc: RequestValidationError):
    return _error(400, "Invalid request", details=json.loads(json.dumps(exc.errors(), default=str)))


def _schedule_response(schedule: ScheduleDefinition) -> ScheduleResponse:
    now = datetime.now(timezone.utc)
    snoozed = _snoozes.resume_at(schedule.schedule_id) if _snoozes.is_snoozed(schedule.schedule_id, now) else None
    return ScheduleResponse(**schedule.model_dump(), snoozed_until=snoozed)


# ── Health / order ────────────────────────────────────────────────────────────

@app.get("/health")
async def health():
    return {"status": "ok", "timestamp": datetime.now(timezone.utc).isoformat()}


@app.post("/order", response_model=OrderResponse)
async def order(req: OrderRequest):
    """Run the automation now and wait for its result."""
    result = await _engine.execute(req)

    if result.error_kind == ValidationError.kind:
        return _error(400, result.message)
    if result.error_kind == AlreadyRunning.kind:
        return _error(409, result.message)
    if result.error_kind:
        return _error(500, result.message, details=result.error if _settings.debug else None)

    return OrderResponse(
        success=result.success,
        message=result.message,
        itemsAdded=result.items_fulfilled,
        status=result.status.value,
    )


# ── Template routes ───────────────────────────────────────────────────────────

@app.post("/templates", response_model=OrderTemplate, status_code=201)
async def create_template(req: CreateTemplateRequest):
    store_url = validate_destination(req.store_url)
    template = OrderTemplate(**req.model_dump(exclude={"store_url"}), store_url=store_url)
    await _template_store.save(template)
    return template


@app.get("/templates", response_model=list[OrderTemplate])
async def list_templates():
    return await _template_store.list_all()


@app.get("/templates/{template_id}", response_model=OrderTemplate)
async def get_template(template_id: str):
    try:
        return await _template_store.load(template_id)
    except KeyError:
        raise HTTPException(404, detail=f"Template '{template_id}' not found")


@app.delete("/templates/{template_id}", status_code=204)
async def delete_template(template_id: str):
    """Delete a template together with the schedules that use it."""
    try:
        await _service.delete_template(template_id)
    except KeyError:
        raise HTTPException(404, detail=f"Template '{template_id}' not found")


@app.post("/templates/{template_id}/order", response_model=RunStartedResponse, status_code=202)
async def order_template(template_id: str, options: OrderOptions | None = None):
    """Start an automation run for a template without waiting for it."""
    try:
        await _service.order_template(template_id, options)
    except KeyError:
        raise HTTPException(404, detail=f"Template '{template_id}' not found")
    return RunStartedResponse(status="started", template_id=template_id)


# ── Schedule routes ───────────────────────────────────────────────────────────

@app.post("/schedules", response_model=ScheduleResponse, status_code=201)
async def create_schedule(req: CreateScheduleRequest):
    schedule = ScheduleDefinition(**req.model_dump())
    await _service.save_schedule(schedule)
    return _schedule_response(schedule)


@app.get("/schedules", response_model=list[ScheduleResponse])
async def list_schedules():
    return [_schedule_response(s) for s in await _schedule_store.list_all()]


@app.get("/schedules/due", response_model=list[ScheduleResponse])
async def due_schedules():
    """Schedules that are due right now and have not fired yet."""
    return [_schedule_response(s) for s in await _service.due_schedules()]


@app.get("/schedules/{schedule_id}", response_model=ScheduleResponse)
async def get_schedule(schedule_id: str):
    try:
        schedule = await _schedule_store.load(schedule_id)
    except KeyError:
        raise HTTPException(404, detail=f"Schedule '{schedule_id}' not found")
    return _schedule_response(schedule)


@app.delete("/schedules/{schedule_id}", status_code=204)
async def delete_schedule(schedule_id: str):
    try:
        await _service.delete_schedule(schedule_id)
    except KeyError:
        raise HTTPException(404, detail=f"Schedule '{schedule_id}' not found")


@app.post("/schedules/{schedule_id}/toggle", response_model=ScheduleResponse)
async def toggle_schedule(schedule_id: str):
    try:
        schedule = await _service.toggle_schedule(schedule_id)
    except KeyError:
        raise HTTPException(404, detail=f"Schedule '{schedule_id}' not found")
    return _schedule_response(schedule)


@app.post("/schedules/{schedule_id}/trigger", response_model=RunStartedResponse, status_code=202)
async def trigger_schedule(schedule_id: str):
    """Run the schedule's template now, regardless of its timing."""
    try:
        schedule = await _schedule_store.load(schedule_id)
        await _service.trigger_now(schedule_id)
    except KeyError:
        raise HTTPException(404, detail=f"Schedule '{schedule_id}' or its template not found")
    return RunStartedResponse(status="started", template_id=schedule.template_id, schedule_id=schedule_id)


@app.post("/schedules/{schedule_id}/snooze", response_model=SnoozeResponse)
async def snooze_schedule(schedule_id: str, req: SnoozeRequest | None = None):
    minutes = req.minutes if req else None
    try:
        resume_at = await _service.snooze(schedule_id, minutes)
    except KeyError:
        raise HTTPException(404, detail=f"Schedule '{schedule_id}' not found")
    return SnoozeResponse(schedule_id=schedule_id, resume_at=resume_at)


# ── Host attention / notifications ────────────────────────────────────────────

@app.post("/host/visible", response_model=HostVisibleResponse)
async def host_visible():
    """The operator's host is back in the foreground: catch up on missed triggers."""
    fired = await _service.on_host_visible()
    return HostVisibleResponse(
        missed=[s.schedule_id for s in fired["missed"]],
        due=[s.schedule_id for s in fired["due"]],
    )


@app.get("/notifications/current")
async def current_notification():
    return {"banner": _dispatcher.current_banner}


@app.post("/notifications/dismiss", status_code=204)
async def dismiss_notification():
    await _dispatcher.dismiss()


_SSE_HEADERS = {"Cache-Control": "no-cache", "X-Accel-Buffering": "no"}


@app.get("/notifications/stream")
async def stream_notifications():
    """Stream in-app banner events as Server-Sent Events.

    Sends the current banner (if any) first, then every banner / banner_cleared
    event. A ``: heartbeat`` comment goes out every 30 s of silence.
    """
    bus = _event_bus
    banner = _dispatcher.current_banner
    q = bus.subscribe(CHANNEL)

    async def generator():
        try:
            if banner is not None:
                yield f"data: {json.dumps(banner)}\n\n"
            while True:
                try:
                    event = await asyncio.wait_for(q.get(), timeout=30.0)
                    yield f"data: {json.dumps(event, default=str)}\n\n"
                except asyncio.TimeoutError:
                    yield ": heartbeat\n\n"
        except asyncio.CancelledError:
            pass
        finally:
            bus.unsubscribe(CHANNEL, q)

    return StreamingResponse(generator(), media_type="text/event-stream", headers=_SSE_HEADERS)


# ── History / backup ──────────────────────────────────────────────────────────

@app.get("/history")
async def list_history(period: HistoryPeriod = HistoryPeriod.ALL, status: str | None = None):
    since = period_start(period, datetime.now(timezone.utc), _settings.tz)
    outcomes = await _history_store.list_all(since=since, status=status)
    return [o.model_dump(mode="json") for o in outcomes]


@app.delete("/history", status_code=204)
async def clear_history():
    await _history_store.clear()


@app.get("/export")
async def export_backup():
    return await export_data(_template_store, _schedule_store, _history_store)


@app.post("/import")
async def import_backup(request: Request):
    try:
        data = await request.json()
    except ValueError:
        raise ValidationError("Invalid JSON body")
    counts = await _service.import_backup(data)
    return {"success": True, "message": "Data imported successfully", "imported": counts}
