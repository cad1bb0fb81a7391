"""Per-item resolution cascade: search strategy, then scroll strategy."""

from __future__ import annotations

import logging
from collections.abc import Callable

from automation.driver import SiteDriver
from automation.fuzzy import fuzzy_match
from automation.selectors import SiteTimeouts
from core.errors import ItemNotFound, ModalTimeout

logger = logging.getLogger(__name__)

Matcher = Callable[[str, str], bool]


class ItemResolver:
    """Finds one requested item on the page and adds it to the cart."""

    def __init__(
        self,
        driver: SiteDriver,
        timeouts: SiteTimeouts | None = None,
        scroll_steps: int = 5,
        matcher: Matcher = fuzzy_match,
    ):
        self.driver = driver
        self.timeouts = timeouts or SiteTimeouts()
        self.scroll_steps = scroll_steps
        self.matcher = matcher

    async def resolve(self, item: str) -> str:
        """Add *item*; return the strategy that worked. Raises ItemNotFound."""
        for name, strategy in (("search", self.search_strategy), ("scroll", self.scroll_strategy)):
            try:
                if await strategy(item):
                    logger.info("Item added", extra={"item": item, "strategy": name})
                    return name
            except ModalTimeout as e:
                logger.warning("Detail view never opened", extra={"item": item, "strategy": name, "error": str(e)})
            except Exception as e:
                # Stale elements, detached frames: this strategy is done, the next one may still work
                logger.warning("Strategy error", extra={"item": item, "strategy": name, "error": str(e)})
        raise ItemNotFound(f"Could not find: {item}")

    # ── Strategies ───────────────────────────────────────────────────────────

    async def search_strategy(self, item: str) -> bool:
        if not await self.driver.search(item):
            return False
        try:
            await self.driver.settle(self.timeouts.search_results)
            for entry in await self.driver.list_visible_entries():
                if not self.matcher(entry.name, item):
                    continue
                await self.driver.open(entry)
                if await self.add_to_cart():
                    return True
            return False
        finally:
            await self.driver.clear_search()

    async def scroll_strategy(self, item: str) -> bool:
        for _ in range(self.scroll_steps):
            for entry in await self.driver.list_visible_entries():
                if self.matcher(entry.name, item):
                    await self.driver.reveal(entry)
                    await self.driver.settle(self.timeouts.reveal_settle)
                    await self.driver.open(entry)
                    return await self.add_to_cart()
            await self.driver.scroll_more()
            await self.driver.settle(self.timeouts.scroll_settle)
        return False

    # ── Add to cart ──────────────────────────────────────────────────────────

    async def add_to_cart(self) -> bool:
        if not await self.driver.wait_for_detail_view(self.timeouts.modal_open):
            raise ModalTimeout("Item view did not open")
        added = await self.driver.add_from_open_view()
        if added:
            await self.driver.settle(self.timeouts.add_to_cart)
        return added
