"""Selector table and wait budgets for the storefront.

The storefront renames its classes often; selectors lean on data-testid /
data-anchor-id attributes and roles, with several alternatives per slot.
Everything here can be overridden when building the Playwright driver.
"""

from pydantic import BaseModel

from core.config import Settings


class SelectorTable(BaseModel):
    menu_item: str = '[data-anchor-id="MenuItem"], [data-testid="StoreMenuItem"], [data-testid="menu-item"]'
    menu_item_name: str = '[data-anchor-id="MenuItemName"], [data-testid="menu-item-name"], h3, span'

    search_input: str = 'input[placeholder*="Search"], input[type="search"], [data-testid="SearchInput"]'

    item_modal: str = '[data-testid="ItemModal"], [role="dialog"]'
    item_modal_controls: str = 'button, [role="button"]'
    close_modal_button: str = '[data-testid="CloseButton"], button[aria-label="Close"]'

    login_modal: str = '[data-testid="LoginModal"], [role="dialog"]:has(button:has-text("Log in"))'

    # Visible text that marks a control as the add-to-cart action
    add_phrases: tuple[str, ...] = ("add to cart", "add to order", "add item")


class SiteTimeouts(BaseModel):
    """Seconds."""

    page_load: float = 30.0
    after_navigation: float = 2.0
    modal_open: float = 2.0
    search_results: float = 5.0
    add_to_cart: float = 3.0
    scroll_settle: float = 1.0
    reveal_settle: float = 0.5
    between_items: float = 1.0
    auth_timeout: float = 120.0
    auth_poll: float = 1.0

    @classmethod
    def from_settings(cls, settings: Settings) -> "SiteTimeouts":
        return cls(
            page_load=settings.page_load_timeout_seconds,
            modal_open=settings.modal_timeout_seconds,
            search_results=settings.search_settle_seconds,
            auth_timeout=settings.auth_timeout_seconds,
        )
