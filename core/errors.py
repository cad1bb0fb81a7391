"""Error taxonomy shared by the trigger engine, the automation engine and the API."""


class CartPilotError(Exception):
    """Base class for every error raised on purpose by this project."""

    kind = "error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__


class ValidationError(CartPilotError):
    """Malformed destination or timing input; raised before any browser work."""

    kind = "validation"


class AlreadyRunning(CartPilotError):
    """Another automation run is in flight; the request is rejected, never queued."""

    kind = "already_running"


class AutomationError(CartPilotError):
    kind = "automation"


class NavigationFailure(AutomationError):
    kind = "navigation_failure"


class AuthenticationTimeout(AutomationError):
    kind = "authentication_timeout"


class ItemNotFound(AutomationError):
    """Per-item miss. Absorbed into the fulfilment count, never fatal."""

    kind = "item_not_found"


class ModalTimeout(AutomationError):
    """The detail/customization view never appeared after opening an entry."""

    kind = "modal_timeout"
