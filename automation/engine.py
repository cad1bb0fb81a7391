"""AutomationEngine: one browser session per run, one outcome per invocation."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from automation.destination import SITE_DOMAIN, is_on_site, validate_destination
from automation.driver import SiteDriver
from automation.models import AutomationResult, OrderOptions, OrderRequest, RunContext
from automation.resolver import ItemResolver
from automation.selectors import SiteTimeouts
from core.errors import (
    AlreadyRunning,
    AuthenticationTimeout,
    AutomationError,
    CartPilotError,
    NavigationFailure,
)
from core.logging_config import run_scope
from scheduler.models import ExecutionOutcome, OutcomeStatus

if TYPE_CHECKING:
    from store.history_store import HistoryStore
    from store.template_store import TemplateStore

logger = logging.getLogger(__name__)

DriverFactory = Callable[[OrderOptions], Awaitable[SiteDriver]]

UNEXPECTED_KIND = "unexpected"


def classify(requested: int, fulfilled: int) -> OutcomeStatus:
    """Completed when everything (including nothing) was added, Partial for some, else Failed."""
    if fulfilled >= requested:
        return OutcomeStatus.COMPLETED
    if fulfilled > 0:
        return OutcomeStatus.PARTIAL
    return OutcomeStatus.FAILED


class AutomationEngine:
    """Drives a storefront session: navigate, wait out login, add each item.

    Only one run may be in flight; a concurrent request is rejected with
    ``already_running`` instead of queueing. Sessions are never closed by the
    engine so the operator can review the cart and check out by hand.
    """

    def __init__(
        self,
        driver_factory: DriverFactory,
        history: HistoryStore | None = None,
        templates: TemplateStore | None = None,
        timeouts: SiteTimeouts | None = None,
        scroll_steps: int = 5,
        clock: Callable[[], datetime] | None = None,
    ):
        self._driver_factory = driver_factory
        self._history = history
        self._templates = templates
        self.timeouts = timeouts or SiteTimeouts()
        self.scroll_steps = scroll_steps
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._in_flight = False
        # Left-open sessions; holding the references keeps them alive
        self.sessions: list[SiteDriver] = []

    @property
    def running(self) -> bool:
        return self._in_flight

    # ── Public API ───────────────────────────────────────────────────────────

    async def execute(self, request: OrderRequest, context: RunContext | None = None) -> AutomationResult:
        """Run *request* and record exactly one ExecutionOutcome for it."""
        context = context or RunContext()
        requested = len(request.items)

        try:
            validate_destination(request.store_url)
            if self._in_flight:
                raise AlreadyRunning("Automation already in progress")
        except CartPilotError as e:
            logger.warning("Order rejected", extra={"error_kind": e.kind, "error": e.message})
            result = self._failed(requested, e)
            return await self._finish(result, request, context)

        self._in_flight = True
        try:
            with run_scope():
                logger.info(
                    "Automation started",
                    extra={
                        "store": request.store_name or "Unknown",
                        "url": request.store_url,
                        "items": requested,
                        "triggered_by": context.triggered_by.value,
                    },
                )
                try:
                    result = await self._run(request)
                except AutomationError as e:
                    logger.error("Automation aborted", extra={"error_kind": e.kind, "error": e.message})
                    result = self._failed(requested, e)
                except Exception as e:
                    logger.exception("Automation crashed")
                    result = AutomationResult(
                        items_requested=requested,
                        items_fulfilled=0,
                        status=OutcomeStatus.FAILED,
                        message=str(e) or "Automation failed",
                        error_kind=UNEXPECTED_KIND,
                        error=repr(e),
                    )
                return await self._finish(result, request, context)
        finally:
            self._in_flight = False

    # ── Protocol ─────────────────────────────────────────────────────────────

    async def _run(self, request: OrderRequest) -> AutomationResult:
        driver = await self._driver_factory(request.options)
        self.sessions.append(driver)

        final_url = await driver.navigate(request.store_url)
        if not is_on_site(final_url):
            raise NavigationFailure(f"Navigation failed - not on {SITE_DOMAIN} (ended at {final_url})")
        await driver.settle(self.timeouts.after_navigation)

        await self._auth_gate(driver)
        logger.info("Store loaded", extra={"store": request.store_name or "Unknown"})

        if request.special_instructions:
            logger.info("Special instructions left for checkout", extra={"instructions": request.special_instructions})
        if request.options.delivery_address:
            logger.info("Delivery address left for checkout", extra={"address": request.options.delivery_address})

        if not request.items:
            return AutomationResult(
                items_requested=0,
                items_fulfilled=0,
                status=OutcomeStatus.COMPLETED,
                message="Store page opened successfully",
            )

        resolver = ItemResolver(driver, timeouts=self.timeouts, scroll_steps=self.scroll_steps)
        fulfilled = 0
        for item in request.items:
            try:
                await resolver.resolve(item)
                fulfilled += 1
            except AutomationError as e:
                logger.info("Item not added", extra={"item": item, "error_kind": e.kind})
            await driver.settle(self.timeouts.between_items)

        requested = len(request.items)
        status = classify(requested, fulfilled)
        logger.info(
            "Automation finished",
            extra={"status": status.value, "fulfilled": fulfilled, "requested": requested},
        )
        return AutomationResult(
            items_requested=requested,
            items_fulfilled=fulfilled,
            status=status,
            message=f"Added {fulfilled} of {requested} items to cart",
        )

    async def _auth_gate(self, driver: SiteDriver) -> None:
        """If a login prompt is up, wait (bounded) for someone to resolve it."""
        if not await driver.is_auth_prompt_showing():
            return
        logger.warning("Login required; waiting for it to be completed in the browser window",
                       extra={"timeout_s": self.timeouts.auth_timeout})

        async def _cleared() -> None:
            while await driver.is_auth_prompt_showing():
                await asyncio.sleep(self.timeouts.auth_poll)

        try:
            await asyncio.wait_for(_cleared(), timeout=self.timeouts.auth_timeout)
        except asyncio.TimeoutError:
            raise AuthenticationTimeout(
                f"Login was not completed within {self.timeouts.auth_timeout:g}s"
            ) from None
        await driver.persist_session()
        await driver.settle(self.timeouts.after_navigation)

    # ── Outcome ──────────────────────────────────────────────────────────────

    @staticmethod
    def _failed(requested: int, error: CartPilotError) -> AutomationResult:
        return AutomationResult(
            items_requested=requested,
            items_fulfilled=0,
            status=OutcomeStatus.FAILED,
            message=error.message,
            error_kind=error.kind,
            error=error.message,
        )

    async def _finish(self, result: AutomationResult, request: OrderRequest, context: RunContext) -> AutomationResult:
        outcome = ExecutionOutcome(
            status=result.status,
            items_requested=result.items_requested,
            items_fulfilled=result.items_fulfilled,
            triggered_by=context.triggered_by,
            timestamp=self._clock(),
            message=result.message,
            error=result.error,
            error_kind=result.error_kind,
            template_id=context.template_id,
            template_name=context.template_name,
            store_name=request.store_name,
            items=list(request.items),
            schedule_id=context.schedule_id,
            schedule_name=context.schedule_name,
        )
        result = result.model_copy(update={"outcome_id": outcome.outcome_id})

        if self._history is not None:
            try:
                await self._history.record(outcome)
            except Exception:
                # The run itself happened; the caller still gets its result
                logger.exception("Recording outcome failed", extra={"outcome_id": outcome.outcome_id})
        if self._templates is not None and context.template_id and result.success:
            try:
                await self._templates.mark_ordered(context.template_id, at=outcome.timestamp)
            except KeyError:
                logger.warning("Template vanished before mark_ordered", extra={"template_id": context.template_id})
        return result
