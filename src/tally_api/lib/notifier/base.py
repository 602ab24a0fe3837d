"""Abstract one-time code delivery interface."""

from abc import ABC, abstractmethod


class NotificationError(Exception):
    """Raised when a transport fails to hand a code to its delivery channel.

    Args:
        backend_name: Name of the failing backend.
        message: Human-readable error description.
        status_code: Optional HTTP status code from the gateway.
    """

    def __init__(self, backend_name: str, message: str, status_code: int | None = None) -> None:
        self.backend_name = backend_name
        self.message = message
        self.status_code = status_code
        super().__init__(f"{backend_name}: {message}")


class BaseNotifier(ABC):
    """Delivers one-time codes out of band. Implementations never store codes."""

    @property
    @abstractmethod
    def backend_name(self) -> str:
        """Short identifier used in logs and errors."""

    @abstractmethod
    async def send_code(self, phone: str, code: str) -> None:
        """Deliver ``code`` to ``phone``.

        Raises:
            NotificationError: If the code could not be handed off.
        """
