from __future__ import annotations


class OrderNotifyError(Exception):
    """Base error for ordernotify."""


class ConfigurationError(OrderNotifyError):
    """Invalid or duplicate registration; fatal at the call site only."""


class SupervisorDrainedError(ConfigurationError):
    """Supervisor already shut down and refuses new tasks."""


class TransportError(OrderNotifyError):
    """Delivery attempt failed; recovered before reaching the notifier's caller."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TransportConfigError(TransportError):
    """Transport configuration missing required fields."""


class TaskTimeoutError(OrderNotifyError):
    """Background task invocation exceeded its timeout."""


class FatalProcessError(OrderNotifyError):
    """Unhandled condition that forces process shutdown."""
