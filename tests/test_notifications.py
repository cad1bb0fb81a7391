"""Tests for alert wording, the in-app banner and snooze/dismiss."""

from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from conftest import STORE_URL, FakeNotifier, FrozenClock
from core.event_bus import EventBus
from notify.dispatcher import CHANNEL, TITLE_DUE, TITLE_MISSED, NotificationDispatcher, alert_text
from notify.system import DesktopNotifier
from scheduler.models import OrderTemplate, ScheduleDefinition, ScheduleTiming, TimingKind
from scheduler.snooze import SnoozeRegistry

NOW = datetime(2026, 3, 2, 11, 45, tzinfo=timezone.utc)


def make_pair():
    template = OrderTemplate(name="Burrito bowl", store_name="Chipotle", store_url=STORE_URL)
    schedule = ScheduleDefinition(
        name="Weekday lunch",
        template_id=template.template_id,
        timing=ScheduleTiming(kind=TimingKind.ONCE, target_at=NOW + timedelta(minutes=15)),
    )
    return schedule, template


def make_dispatcher(notifier=None):
    bus = EventBus()
    snoozes = SnoozeRegistry()
    dispatcher = NotificationDispatcher(notifier or FakeNotifier(), bus, snoozes, clock=FrozenClock(NOW))
    return dispatcher, bus, snoozes


# ── Wording ──────────────────────────────────────────────────────────────────

def test_alert_text_due():
    schedule, template = make_pair()
    title, body = alert_text(schedule, template)
    assert title == TITLE_DUE == "Time to Order!"
    assert body == "Weekday lunch\nBurrito bowl from Chipotle"


def test_alert_text_missed():
    schedule, template = make_pair()
    title, _ = alert_text(schedule, template, missed=True)
    assert title == TITLE_MISSED == "Missed Reminder"


def test_alert_text_without_store_name():
    schedule, template = make_pair()
    template.store_name = ""
    _, body = alert_text(schedule, template)
    assert body.endswith("from the store")


# ── Dispatcher ───────────────────────────────────────────────────────────────

async def test_notify_shows_alert_and_publishes_banner():
    notifier = FakeNotifier()
    dispatcher, bus, _ = make_dispatcher(notifier)
    q = bus.subscribe(CHANNEL)
    schedule, template = make_pair()

    banner = await dispatcher.notify(schedule, template)

    assert notifier.alerts == [{
        "title": TITLE_DUE,
        "body": "Weekday lunch\nBurrito bowl from Chipotle",
        "tag": schedule.schedule_id,
    }]
    assert dispatcher.current_banner == banner
    assert banner["type"] == "banner"
    assert banner["schedule_id"] == schedule.schedule_id
    assert banner["missed"] is False
    assert q.get_nowait() == banner


async def test_banner_shown_even_without_system_alerts():
    dispatcher, _, _ = make_dispatcher(FakeNotifier(permission="denied"))
    schedule, template = make_pair()
    await dispatcher.notify(schedule, template, missed=True)
    assert dispatcher.current_banner["title"] == TITLE_MISSED


async def test_dismiss_clears_banner_only():
    dispatcher, bus, snoozes = make_dispatcher()
    schedule, template = make_pair()
    await dispatcher.notify(schedule, template)
    q = bus.subscribe(CHANNEL)

    await dispatcher.dismiss()
    assert dispatcher.current_banner is None
    event = q.get_nowait()
    assert event["type"] == "banner_cleared"
    assert event["schedule_id"] == schedule.schedule_id
    assert snoozes.active(NOW) == {}


async def test_dismiss_without_banner_is_silent():
    dispatcher, bus, _ = make_dispatcher()
    q = bus.subscribe(CHANNEL)
    await dispatcher.dismiss()
    assert q.empty()


async def test_snooze_records_entry_and_dismisses_matching_banner():
    dispatcher, _, snoozes = make_dispatcher()
    schedule, template = make_pair()
    await dispatcher.notify(schedule, template)

    resume_at = await dispatcher.snooze(schedule.schedule_id, 5)
    assert resume_at == NOW + timedelta(minutes=5)
    assert snoozes.is_snoozed(schedule.schedule_id, NOW)
    assert dispatcher.current_banner is None


async def test_snooze_other_schedule_keeps_banner():
    dispatcher, _, _ = make_dispatcher()
    schedule, template = make_pair()
    await dispatcher.notify(schedule, template)
    await dispatcher.snooze("someone-else", 5)
    assert dispatcher.current_banner is not None


# ── SnoozeRegistry ───────────────────────────────────────────────────────────

def test_snooze_registry_expiry_and_clear():
    snoozes = SnoozeRegistry()
    snoozes.snooze("a", 5, NOW)
    snoozes.snooze("b", 1, NOW)
    later = NOW + timedelta(minutes=2)
    assert snoozes.active(later) == {"a": NOW + timedelta(minutes=5)}
    assert not snoozes.is_snoozed("b", later)
    snoozes.clear("a")
    assert not snoozes.is_snoozed("a", later)
    snoozes.snooze("c", 1, NOW)
    snoozes.clear_all()
    assert snoozes.active(NOW) == {}


# ── DesktopNotifier ──────────────────────────────────────────────────────────

async def test_desktop_notifier_calls_plyer():
    with patch("notify.system.notification") as plyer_notification:
        notifier = DesktopNotifier(timeout_seconds=3)
        assert await notifier.request_permission() == "granted"
        assert await notifier.show_alert("Time to Order!", "body", tag="s1")
    plyer_notification.notify.assert_called_once_with(
        title="Time to Order!", message="body", app_name="CartPilot", timeout=3,
    )


async def test_desktop_notifier_backend_failure_is_not_fatal():
    with patch("notify.system.notification") as plyer_notification:
        plyer_notification.notify.side_effect = NotImplementedError("no backend")
        notifier = DesktopNotifier()
        assert await notifier.show_alert("t", "b", tag="s1") is False
