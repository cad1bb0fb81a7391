"""Tests for JSON logging, run_id propagation, settings and the error taxonomy."""

import json
import logging

from core.config import Settings
from core.errors import AuthenticationTimeout, AutomationError, CartPilotError, ItemNotFound, ValidationError
from core.event_bus import EventBus
from core.logging_config import JsonFormatter, get_run_id, reset_run_id, run_scope, set_run_id, setup_logging


def _make_record(msg: str, level: int = logging.INFO, **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="test", level=level, pathname="", lineno=0,
        msg=msg, args=(), exc_info=None,
    )
    for k, v in extra.items():
        setattr(record, k, v)
    return record


# ── JsonFormatter ─────────────────────────────────────────────────────────────

def test_json_formatter_valid_json():
    parsed = json.loads(JsonFormatter().format(_make_record("hello world")))
    assert parsed["msg"] == "hello world"
    assert parsed["level"] == "INFO"
    assert parsed["run_id"] == "-"
    assert "ts" in parsed
    assert "logger" in parsed


def test_json_formatter_includes_run_id():
    token = set_run_id("run-xyz")
    try:
        parsed = json.loads(JsonFormatter().format(_make_record("hi")))
        assert parsed["run_id"] == "run-xyz"
        assert get_run_id() == "run-xyz"
    finally:
        reset_run_id(token)
    assert get_run_id() == "-"


def test_json_formatter_extra_fields():
    parsed = json.loads(JsonFormatter().format(_make_record("item added", item="Chips", strategy="search")))
    assert parsed["item"] == "Chips"
    assert parsed["strategy"] == "search"


def test_setup_logging_quiets_apscheduler():
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers, root.level
    try:
        setup_logging("debug", json_output=False)
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert logging.getLogger("apscheduler").level == logging.WARNING
    finally:
        root.handlers, root.level = saved_handlers, saved_level


# ── Settings ─────────────────────────────────────────────────────────────────

def test_settings_defaults():
    s = Settings()
    assert s.poll_interval_seconds == 30
    assert s.due_window_seconds == 30
    assert s.recovery_window_seconds == 300
    assert s.default_snooze_minutes == 5
    assert s.auth_timeout_seconds == 120


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("CARTPILOT_TIMEZONE", "America/Chicago")
    monkeypatch.setenv("CARTPILOT_RECOVERY_WINDOW_SECONDS", "600")
    monkeypatch.setenv("CARTPILOT_HEADLESS", "yes")
    s = Settings.from_env(dotenv=False)
    assert s.tz.key == "America/Chicago"
    assert s.recovery_window_seconds == 600
    assert s.due_window_seconds == 30
    assert s.headless is True


# ── Errors / event bus ───────────────────────────────────────────────────────

def test_error_kinds():
    assert ValidationError("bad").kind == "validation"
    assert isinstance(ItemNotFound("x"), AutomationError)
    err = AuthenticationTimeout()
    assert isinstance(err, CartPilotError)
    assert err.message == "AuthenticationTimeout"


async def test_event_bus_fan_out():
    bus = EventBus()
    q1, q2 = bus.subscribe("notifications"), bus.subscribe("notifications")
    assert bus.subscriber_count("notifications") == 2
    await bus.publish("notifications", {"type": "banner"})
    assert q1.get_nowait() == q2.get_nowait() == {"type": "banner"}
    bus.unsubscribe("notifications", q1)
    bus.unsubscribe("notifications", q1)
    assert bus.subscriber_count("notifications") == 1


async def test_event_bus_drops_oldest_for_slow_subscriber():
    bus = EventBus(backlog=2)
    q = bus.subscribe("notifications")
    for i in range(3):
        await bus.publish("notifications", {"n": i})
    assert [q.get_nowait()["n"] for _ in range(q.qsize())] == [1, 2]
    assert await bus.publish("nobody-listening", {"n": 0}) == 0


def test_run_scope_binds_and_restores():
    with run_scope("abc12345") as run_id:
        assert run_id == get_run_id() == "abc12345"
        with run_scope() as inner:
            assert len(inner) == 8
            assert get_run_id() == inner
        assert get_run_id() == "abc12345"
    assert get_run_id() == "-"


def test_plain_output_carries_run_id(capsys):
    root = logging.getLogger()
    saved_handlers, saved_level = root.handlers, root.level
    try:
        setup_logging("INFO", json_output=False)
        with run_scope("feedbeef"):
            logging.getLogger("cartpilot.test").info("hello")
    finally:
        root.handlers, root.level = saved_handlers, saved_level
    assert "[feedbeef] hello" in capsys.readouterr().out
