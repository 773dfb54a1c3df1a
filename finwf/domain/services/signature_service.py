from abc import ABC, abstractmethod
from typing import Any, Callable

from finwf.domain.errors import ServiceError
from finwf.domain.models.session_status import SessionStatusUpdate

StatusListener = Callable[[SessionStatusUpdate], None]
StatusErrorListener = Callable[[ServiceError], None]


class StatusSubscription(ABC):
    """Handle on a session status stream. Cancelling stops delivery."""

    @abstractmethod
    def cancel(self) -> None:
        """Stop delivering updates. Must be idempotent."""
        ...

    @property
    @abstractmethod
    def active(self) -> bool:
        ...


class SignatureCollectionService(ABC):
    """Abstract interface for signature collection services (Strategy pattern)."""

    @classmethod
    def get_metadata(cls) -> dict[str, Any]:
        """Return service metadata for discovery commands.

        Returns:
            dict with keys: name, description, requires_config, config_keys
        """
        return {
            "name": "unknown",
            "description": "No description available",
            "requires_config": False,
            "config_keys": [],
        }

    @abstractmethod
    def validate(self) -> None:
        """Verify the service is configured correctly.

        Raises:
            ServiceError: If the service is misconfigured or unreachable
        """
        ...

    @abstractmethod
    def request_signature(self, document_id: str, customer_label: str) -> str:
        """Open a signing session for a document.

        Args:
            document_id: Identifier of the document to sign
            customer_label: Name shown to the customer on the signing device

        Returns:
            Opaque session identifier

        Raises:
            ServiceError: If the session could not be opened
        """
        ...

    @abstractmethod
    def subscribe(
        self,
        session_id: str,
        listener: StatusListener,
        on_error: StatusErrorListener | None = None,
    ) -> StatusSubscription:
        """Deliver status updates for a session to `listener`.

        Any polling is the service's concern. Updates may arrive on another
        thread. A status check that fails after the subscription is up is
        reported to `on_error` and does not end the subscription.

        Raises:
            ServiceError: If the subscription could not be established
        """
        ...

    @abstractmethod
    def cancel_session(self, session_id: str, reason: str) -> None:
        """Ask the service to cancel a session (best effort).

        Raises:
            ServiceError: If the cancellation request failed
        """
        ...

    def close(self) -> None:
        """Release transport resources. Default does nothing."""
        pass
