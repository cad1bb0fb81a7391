"""Playwright-backed SiteDriver and the session bootstrap that builds it."""

from __future__ import annotations

import logging
import re
from pathlib import Path

from playwright.async_api import (
    Browser,
    BrowserContext,
    Page,
    Playwright,
    async_playwright,
)
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from automation.driver import MenuEntry, SiteDriver, ViewControl
from automation.models import ExecutionMode, OrderOptions
from automation.selectors import SelectorTable, SiteTimeouts
from core.config import Settings
from core.errors import NavigationFailure

logger = logging.getLogger(__name__)

USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)
_LAUNCH_ARGS = ["--start-maximized", "--disable-blink-features=AutomationControlled"]
_PROFILE_NAME_RE = re.compile(r"[^A-Za-z0-9_.-]+")


def _ms(seconds: float) -> float:
    return seconds * 1000


def profile_path(profile_dir: Path, profile_ref: str) -> Path:
    """Storage-state file for a named profile, confined to *profile_dir*."""
    safe = _PROFILE_NAME_RE.sub("_", profile_ref).strip("._") or "default"
    return profile_dir / f"{safe}.json"


class PlaywrightSiteDriver(SiteDriver):
    def __init__(
        self,
        playwright: Playwright,
        browser: Browser,
        context: BrowserContext,
        page: Page,
        selectors: SelectorTable | None = None,
        timeouts: SiteTimeouts | None = None,
        storage_path: Path | None = None,
    ):
        self.playwright = playwright
        self.browser = browser
        self.context = context
        self.page = page
        self.selectors = selectors or SelectorTable()
        self.timeouts = timeouts or SiteTimeouts()
        self.storage_path = storage_path
        self.add_phrases = self.selectors.add_phrases

    # ── Session ──────────────────────────────────────────────────────────────

    async def navigate(self, url: str) -> str:
        logger.info("Navigating", extra={"url": url})
        try:
            await self.page.goto(url, wait_until="networkidle", timeout=_ms(self.timeouts.page_load))
        except PlaywrightError as e:
            raise NavigationFailure(f"Could not load {url}: {e}") from e
        return self.page.url

    async def is_auth_prompt_showing(self) -> bool:
        prompt = self.page.locator(self.selectors.login_modal)
        if await prompt.count() == 0:
            return False
        return await prompt.first.is_visible()

    async def persist_session(self) -> None:
        if self.storage_path is None:
            return
        self.storage_path.parent.mkdir(parents=True, exist_ok=True)
        await self.context.storage_state(path=str(self.storage_path))
        logger.info("Session state saved", extra={"path": str(self.storage_path)})

    # ── Listing ──────────────────────────────────────────────────────────────

    async def search(self, query: str) -> bool:
        box = self.page.locator(self.selectors.search_input).first
        if await box.count() == 0:
            return False
        await box.click(click_count=3)
        await box.fill("")
        await box.press_sequentially(query, delay=50)
        return True

    async def clear_search(self) -> None:
        box = self.page.locator(self.selectors.search_input).first
        if await box.count() == 0:
            return
        await box.click(click_count=3)
        await box.press("Backspace")
        await self.settle(self.timeouts.reveal_settle)

    async def list_visible_entries(self) -> list[MenuEntry]:
        entries = []
        for item in await self.page.locator(self.selectors.menu_item).all():
            name_loc = item.locator(self.selectors.menu_item_name).first
            if await name_loc.count() == 0:
                continue
            name = (await name_loc.text_content() or "").strip()
            if name:
                entries.append(MenuEntry(name=name, handle=item))
        return entries

    async def scroll_more(self) -> None:
        await self.page.mouse.wheel(0, 500)

    async def reveal(self, entry: MenuEntry) -> None:
        await entry.handle.scroll_into_view_if_needed()

    async def open(self, entry: MenuEntry) -> None:
        await entry.handle.click()

    # ── Detail view ──────────────────────────────────────────────────────────

    async def wait_for_detail_view(self, timeout: float) -> bool:
        try:
            await self.page.locator(self.selectors.item_modal).first.wait_for(
                state="visible", timeout=_ms(timeout),
            )
        except PlaywrightTimeoutError:
            return False
        return True

    async def view_controls(self) -> list[ViewControl]:
        modal = self.page.locator(self.selectors.item_modal).first
        controls = []
        for button in await modal.locator(self.selectors.item_modal_controls).all():
            text = (await button.text_content() or "").strip()
            controls.append(ViewControl(text=text, handle=button))
        return controls

    async def click(self, control: ViewControl) -> None:
        await control.handle.click()

    async def close_view(self) -> None:
        close = self.page.locator(self.selectors.close_modal_button).first
        if await close.count() > 0:
            await close.click()
        else:
            await self.page.keyboard.press("Escape")
        await self.settle(self.timeouts.reveal_settle)


class PlaywrightDriverFactory:
    """Launches Chromium for one run and wraps it in a PlaywrightSiteDriver.

    A ``profile_ref`` maps to a saved Playwright storage-state file; when it
    exists the new context starts logged in.
    """

    def __init__(
        self,
        settings: Settings,
        selectors: SelectorTable | None = None,
        timeouts: SiteTimeouts | None = None,
    ):
        self.settings = settings
        self.selectors = selectors or SelectorTable()
        self.timeouts = timeouts or SiteTimeouts.from_settings(settings)

    async def __call__(self, options: OrderOptions) -> PlaywrightSiteDriver:
        mode = options.mode(self.settings.headless)
        headless = mode == ExecutionMode.HEADLESS
        logger.info("Launching browser", extra={"mode": mode.value, "profile": options.profile_ref})

        playwright = await async_playwright().start()
        browser = await playwright.chromium.launch(headless=headless, args=_LAUNCH_ARGS)

        context_kwargs: dict = {"user_agent": USER_AGENT}
        if headless:
            context_kwargs["viewport"] = {"width": 1366, "height": 768}
        else:
            context_kwargs["no_viewport"] = True

        storage_path = None
        if options.profile_ref:
            storage_path = profile_path(self.settings.profile_dir, options.profile_ref)
            if storage_path.exists():
                context_kwargs["storage_state"] = str(storage_path)
                logger.info("Loaded session profile", extra={"path": str(storage_path)})

        context = await browser.new_context(**context_kwargs)
        page = await context.new_page()
        page.set_default_timeout(_ms(self.timeouts.page_load))

        return PlaywrightSiteDriver(
            playwright, browser, context, page,
            selectors=self.selectors,
            timeouts=self.timeouts,
            storage_path=storage_path,
        )
