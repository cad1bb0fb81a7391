"""System-alert collaborator interface."""

from abc import ABC, abstractmethod
from collections.abc import Callable

ClickCallback = Callable[[str], None]


class SystemNotifier(ABC):
    """Anything that can put an OS-level alert in front of the operator."""

    @abstractmethod
    async def request_permission(self) -> str:
        """Return ``granted``, ``denied`` or ``not-supported``."""
        ...

    @abstractmethod
    async def show_alert(
        self,
        title: str,
        body: str,
        tag: str,
        on_click: ClickCallback | None = None,
    ) -> bool:
        """Show an alert; return whether it was actually delivered."""
        ...
