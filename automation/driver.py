"""SiteDriver: the capabilities the resolution cascade needs from a storefront.

Concrete drivers hide all selector knowledge. The cascade in
``automation.resolver`` only ever talks to this interface, so it can be
exercised against an in-memory fake.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

DEFAULT_ADD_PHRASES = ("add to cart", "add to order", "add item")


@dataclass
class MenuEntry:
    """A listing visible on the page. ``handle`` is driver-specific."""
    name: str
    handle: Any = field(default=None, repr=False)


@dataclass
class ViewControl:
    """An interactive control inside the open detail view."""
    text: str
    handle: Any = field(default=None, repr=False)


def pick_add_control(controls: list[ViewControl], phrases: tuple[str, ...] = DEFAULT_ADD_PHRASES) -> ViewControl | None:
    """The control whose text affirms addition, else the last control, else None."""
    for control in controls:
        text = (control.text or "").lower()
        if any(p in text for p in phrases):
            return control
    return controls[-1] if controls else None


class SiteDriver(ABC):
    add_phrases: tuple[str, ...] = DEFAULT_ADD_PHRASES

    # ── Session ──────────────────────────────────────────────────────────────

    @abstractmethod
    async def navigate(self, url: str) -> str:
        """Load *url*; return the location the browser actually ended up at."""
        ...

    @abstractmethod
    async def is_auth_prompt_showing(self) -> bool:
        ...

    async def persist_session(self) -> None:
        """Save reusable session state (cookies, storage) if the driver keeps any."""

    async def settle(self, seconds: float) -> None:
        if seconds > 0:
            await asyncio.sleep(seconds)

    # ── Listing ──────────────────────────────────────────────────────────────

    @abstractmethod
    async def search(self, query: str) -> bool:
        """Submit *query* through the page's own search. False if there is none."""
        ...

    @abstractmethod
    async def clear_search(self) -> None:
        ...

    @abstractmethod
    async def list_visible_entries(self) -> list[MenuEntry]:
        ...

    @abstractmethod
    async def scroll_more(self) -> None:
        """Reveal more of the listing."""
        ...

    async def reveal(self, entry: MenuEntry) -> None:
        """Bring *entry* into view before opening it."""

    @abstractmethod
    async def open(self, entry: MenuEntry) -> None:
        ...

    # ── Detail view ──────────────────────────────────────────────────────────

    @abstractmethod
    async def wait_for_detail_view(self, timeout: float) -> bool:
        """Wait up to *timeout* seconds for the detail view; False if it never shows."""
        ...

    @abstractmethod
    async def view_controls(self) -> list[ViewControl]:
        ...

    @abstractmethod
    async def click(self, control: ViewControl) -> None:
        ...

    @abstractmethod
    async def close_view(self) -> None:
        ...

    async def add_from_open_view(self) -> bool:
        """Press the add-to-cart control of the open view.

        Falls back to the view's last control; when the view has no controls
        at all it is closed and False returned.
        """
        target = pick_add_control(await self.view_controls(), self.add_phrases)
        if target is None:
            await self.close_view()
            return False
        await self.click(target)
        return True
