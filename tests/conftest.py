"""Shared fakes: an in-memory storefront driver and a recording notifier."""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from automation.driver import MenuEntry, SiteDriver, ViewControl
from automation.selectors import SiteTimeouts
from notify.base import SystemNotifier
from scheduler.schedule_store import ScheduleStore
from store.history_store import HistoryStore
from store.template_store import TemplateStore

STORE_URL = "https://www.doordash.com/store/chipotle-mexican-grill-12345/"

# No real waiting anywhere in the test suite
FAST = SiteTimeouts(
    page_load=0, after_navigation=0, modal_open=0, search_results=0,
    add_to_cart=0, scroll_settle=0, reveal_settle=0, between_items=0,
    auth_timeout=0.2, auth_poll=0.01,
)


class FakeDriver(SiteDriver):
    """A storefront with a fixed menu.

    ``page_size`` entries are visible at first; each scroll reveals
    ``page_size`` more. ``search`` narrows the listing to substring hits.
    """

    def __init__(
        self,
        menu=("Chicken Burrito Bowl", "Chips & Guacamole", "Large Drink"),
        page_size: int = 10,
        has_search: bool = True,
        detail_view: bool = True,
        controls=("Add to cart - $10.95",),
        auth_prompts: int = 0,
        final_url: str | None = None,
    ):
        self.menu = list(menu)
        self.page_size = page_size
        self.has_search = has_search
        self.detail_view = detail_view
        self.controls = list(controls)
        self.auth_prompts = auth_prompts
        self.final_url = final_url

        self.navigated_to: str | None = None
        self.query: str | None = None
        self.visible = page_size
        self.opened: list[str] = []
        self.added: list[str] = []
        self.clicked: list[str] = []
        self.closed = 0
        self.persisted = False

    async def navigate(self, url):
        self.navigated_to = url
        return self.final_url or url

    async def is_auth_prompt_showing(self):
        if self.auth_prompts < 0:
            return True
        if self.auth_prompts > 0:
            self.auth_prompts -= 1
            return True
        return False

    async def persist_session(self):
        self.persisted = True

    async def settle(self, seconds):
        await asyncio.sleep(0)

    async def search(self, query):
        if not self.has_search:
            return False
        self.query = query
        return True

    async def clear_search(self):
        self.query = None

    async def list_visible_entries(self):
        if self.query is not None:
            names = [n for n in self.menu if self.query.lower() in n.lower()]
        else:
            names = self.menu[: self.visible]
        return [MenuEntry(name=n, handle=n) for n in names]

    async def scroll_more(self):
        self.visible += self.page_size

    async def open(self, entry):
        self.opened.append(entry.name)

    async def wait_for_detail_view(self, timeout):
        return self.detail_view

    async def view_controls(self):
        return [ViewControl(text=t, handle=t) for t in self.controls]

    async def click(self, control):
        self.clicked.append(control.text)
        self.added.append(self.opened[-1])

    async def close_view(self):
        self.closed += 1


class FakeNotifier(SystemNotifier):
    def __init__(self, permission: str = "granted"):
        self.permission = permission
        self.alerts: list[dict] = []

    async def request_permission(self):
        return self.permission

    async def show_alert(self, title, body, tag, on_click=None):
        self.alerts.append({"title": title, "body": body, "tag": tag})
        return self.permission == "granted"


def driver_factory_for(driver: SiteDriver):
    """A driver factory that always hands back *driver* and counts sessions."""
    calls = []

    async def factory(options):
        calls.append(options)
        return driver

    factory.calls = calls
    return factory


class FrozenClock:
    def __init__(self, now: datetime | None = None):
        self.now = now or datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
async def stores(tmp_path):
    url = f"sqlite+aiosqlite:///{tmp_path}/cartpilot.db"
    templates = TemplateStore(url)
    schedules = ScheduleStore(url)
    history = HistoryStore(url)
    await templates.init()
    await schedules.init()
    await history.init()
    yield templates, schedules, history
    await templates.dispose()
    await schedules.dispose()
    await history.dispose()
