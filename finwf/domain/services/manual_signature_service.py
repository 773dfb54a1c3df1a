import logging
import uuid
from typing import Any

from finwf.domain.errors import ServiceError
from finwf.domain.models.session_status import SessionStatus, SessionStatusUpdate
from .signature_service import (
    SignatureCollectionService,
    StatusErrorListener,
    StatusListener,
    StatusSubscription,
)

logger = logging.getLogger(__name__)


class _ManualSubscription(StatusSubscription):
    def __init__(self, service: "ManualSignatureService", session_id: str, listener: StatusListener) -> None:
        self._service = service
        self._session_id = session_id
        self._listener = listener
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        if not self._active:
            return
        self._active = False
        self._service._detach(self._session_id, self)

    def deliver(self, update: SessionStatusUpdate) -> None:
        if self._active:
            self._listener(update)


class ManualSignatureService(SignatureCollectionService):
    """Operator-in-the-loop signing service.

    Sessions live in process memory. Nothing reaches a device: the operator (or
    a test) reports outcomes through `push_status()`.
    """

    def __init__(self) -> None:
        self._statuses: dict[str, SessionStatus] = {}
        self._subscriptions: dict[str, list[_ManualSubscription]] = {}
        self.requests: list[tuple[str, str]] = []
        self.cancellations: list[tuple[str, str]] = []

    @classmethod
    def get_metadata(cls) -> dict[str, Any]:
        return {
            "name": "manual",
            "description": "Operator reports signing outcomes (no device)",
            "requires_config": False,
            "config_keys": [],
        }

    def validate(self) -> None:
        """Manual service has no external dependencies to validate."""
        pass

    def request_signature(self, document_id: str, customer_label: str) -> str:
        session_id = uuid.uuid4().hex
        self._statuses[session_id] = SessionStatus.PENDING
        self.requests.append((document_id, customer_label))
        logger.debug(f"Opened manual signing session {session_id} for document {document_id}")
        return session_id

    def subscribe(
        self,
        session_id: str,
        listener: StatusListener,
        on_error: StatusErrorListener | None = None,
    ) -> StatusSubscription:
        # Pushed statuses cannot fail, so on_error is never called.
        if session_id not in self._statuses:
            raise ServiceError(f"Unknown signing session '{session_id}'", service="manual")
        subscription = _ManualSubscription(self, session_id, listener)
        self._subscriptions.setdefault(session_id, []).append(subscription)
        return subscription

    def cancel_session(self, session_id: str, reason: str) -> None:
        if session_id not in self._statuses:
            raise ServiceError(f"Unknown signing session '{session_id}'", service="manual")
        self.cancellations.append((session_id, reason))
        if not self._statuses[session_id].is_terminal:
            self.push_status(session_id, SessionStatus.CANCELLED)

    def push_status(
        self,
        session_id: str,
        status: SessionStatus,
        signed_document_url: str | None = None,
    ) -> None:
        """Record a new status for a session and notify its subscribers."""
        if session_id not in self._statuses:
            raise ServiceError(f"Unknown signing session '{session_id}'", service="manual")
        self._statuses[session_id] = status
        update = SessionStatusUpdate(
            session_id=session_id,
            status=status,
            signed_document_url=signed_document_url,
        )
        for subscription in list(self._subscriptions.get(session_id, [])):
            subscription.deliver(update)

    def status_of(self, session_id: str) -> SessionStatus | None:
        return self._statuses.get(session_id)

    def active_subscriptions(self, session_id: str) -> int:
        return sum(1 for s in self._subscriptions.get(session_id, []) if s.active)

    def _detach(self, session_id: str, subscription: _ManualSubscription) -> None:
        subscriptions = self._subscriptions.get(session_id, [])
        if subscription in subscriptions:
            subscriptions.remove(subscription)
