"""Desktop alerts through plyer."""

from __future__ import annotations

import asyncio
import logging

from plyer import notification

from notify.base import ClickCallback, SystemNotifier

logger = logging.getLogger(__name__)

APP_NAME = "CartPilot"


class DesktopNotifier(SystemNotifier):
    """Native notification via plyer, run off the event loop.

    plyer exposes no click hook, so ``on_click`` is accepted and ignored;
    the in-app banner is where the operator acts on an alert.
    """

    def __init__(self, timeout_seconds: int = 10):
        self.timeout_seconds = timeout_seconds
        self._permission: str | None = None

    async def request_permission(self) -> str:
        if self._permission is None:
            # plyer has no permission model; a missing backend is the only refusal
            self._permission = "granted" if getattr(notification, "notify", None) else "not-supported"
        return self._permission

    async def show_alert(
        self,
        title: str,
        body: str,
        tag: str,
        on_click: ClickCallback | None = None,
    ) -> bool:
        if await self.request_permission() != "granted":
            return False

        def _notify() -> None:
            notification.notify(
                title=title,
                message=body,
                app_name=APP_NAME,
                timeout=self.timeout_seconds,
            )

        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, _notify)
        except Exception as e:
            # No notification backend on this host (e.g. headless Linux without D-Bus)
            logger.debug("Desktop alert failed", extra={"tag": tag, "error": str(e)})
            return False
        return True
