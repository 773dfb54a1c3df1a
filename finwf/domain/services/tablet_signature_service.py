"""Tablet signing service backed by the intake backend's REST API."""

import logging
import threading
from typing import Any

import httpx
from pydantic import ValidationError

from finwf.domain.constants import (
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_SIGNATURE_INSTRUCTIONS,
    DEFAULT_SIGNATURE_TIMEOUT_MINUTES,
    DEFAULT_STATUS_POLL_INTERVAL,
    MAX_SIGNATURE_TIMEOUT_MINUTES,
    MIN_SIGNATURE_TIMEOUT_MINUTES,
)
from finwf.domain.errors import ServiceError
from finwf.domain.models.session_status import SessionStatus, SessionStatusUpdate
from .signature_service import (
    SignatureCollectionService,
    StatusErrorListener,
    StatusListener,
    StatusSubscription,
)

logger = logging.getLogger(__name__)

SERVICE_NAME = "tablet"


class _PollingSubscription(StatusSubscription):
    """Polls session status on a daemon thread until terminal or cancelled.

    The listener is called once per status change. Poll failures are logged,
    reported to `on_error` and polling continues.
    """

    def __init__(
        self,
        service: "TabletSignatureService",
        session_id: str,
        listener: StatusListener,
        interval: float,
        on_error: StatusErrorListener | None = None,
    ) -> None:
        self._service = service
        self._session_id = session_id
        self._listener = listener
        self._on_error = on_error
        self._interval = interval
        self._stop = threading.Event()
        self._last_status: SessionStatus | None = None
        self._thread = threading.Thread(
            target=self._run, name=f"signature-poll-{session_id}", daemon=True
        )

    def start(self) -> None:
        self._thread.start()

    @property
    def active(self) -> bool:
        return not self._stop.is_set()

    def cancel(self) -> None:
        # No join: cancel may be called from the listener on the polling thread.
        self._stop.set()

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                update = self._service.fetch_status(self._session_id)
            except ServiceError as e:
                logger.warning(f"Status poll for session {self._session_id} failed: {e}")
                self._report(e)
            else:
                if update.status != self._last_status:
                    self._last_status = update.status
                    self._notify(update)
                if update.status.is_terminal:
                    self._stop.set()
                    break
            self._stop.wait(self._interval)

    def _notify(self, update: SessionStatusUpdate) -> None:
        if self._stop.is_set():
            return
        try:
            self._listener(update)
        except Exception as e:
            logger.warning(f"Status listener failed for session {self._session_id}: {e}")

    def _report(self, error: ServiceError) -> None:
        if self._on_error is None or self._stop.is_set():
            return
        try:
            self._on_error(error)
        except Exception as e:
            logger.warning(f"Status error listener failed for session {self._session_id}: {e}")


class TabletSignatureService(SignatureCollectionService):
    """Collects signatures on paired tablets through the intake REST API."""

    def __init__(
        self,
        base_url: str | None = None,
        tablet_id: str | None = None,
        instructions: str = DEFAULT_SIGNATURE_INSTRUCTIONS,
        timeout_minutes: int = DEFAULT_SIGNATURE_TIMEOUT_MINUTES,
        poll_interval: float = DEFAULT_STATUS_POLL_INTERVAL,
        auth_token: str | None = None,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url
        self.tablet_id = tablet_id
        self.instructions = instructions
        self.timeout_minutes = timeout_minutes
        self.poll_interval = poll_interval

        headers = {"Accept": "application/json"}
        if auth_token:
            headers["Authorization"] = f"Bearer {auth_token}"
        self._client = httpx.Client(
            base_url=base_url or "",
            headers=headers,
            timeout=request_timeout,
            transport=transport,
        )

    @classmethod
    def get_metadata(cls) -> dict[str, Any]:
        return {
            "name": SERVICE_NAME,
            "description": "Signature on a paired tablet via the intake REST API",
            "requires_config": True,
            "config_keys": [
                "base_url",
                "tablet_id",
                "instructions",
                "timeout_minutes",
                "poll_interval",
                "auth_token",
            ],
        }

    def validate(self) -> None:
        if not self.base_url:
            raise ServiceError("base_url is required", service=SERVICE_NAME, retryable=False)
        if not MIN_SIGNATURE_TIMEOUT_MINUTES <= self.timeout_minutes <= MAX_SIGNATURE_TIMEOUT_MINUTES:
            raise ServiceError(
                f"timeout_minutes must be between {MIN_SIGNATURE_TIMEOUT_MINUTES} "
                f"and {MAX_SIGNATURE_TIMEOUT_MINUTES}",
                service=SERVICE_NAME,
                retryable=False,
            )
        if self.poll_interval <= 0:
            raise ServiceError("poll_interval must be positive", service=SERVICE_NAME, retryable=False)

    # ------------------------------------------------------------------
    # Service contract
    # ------------------------------------------------------------------

    def request_signature(self, document_id: str, customer_label: str) -> str:
        tablet_id = self._select_tablet()
        payload = {
            "protocolId": document_id,
            "tabletId": tablet_id,
            "customerName": customer_label,
            "instructions": self.instructions.strip() or None,
            "timeoutMinutes": self.timeout_minutes,
        }
        data = self._request("POST", "/signatures/protocol-request", json=payload)

        if not data.get("success"):
            raise ServiceError(
                data.get("message") or "Signature request was rejected", service=SERVICE_NAME
            )
        session_id = data.get("sessionId")
        if not session_id:
            raise ServiceError("Signature request returned no session id", service=SERVICE_NAME)

        logger.info(f"Signature session {session_id} sent to tablet {tablet_id}")
        return str(session_id)

    def subscribe(
        self,
        session_id: str,
        listener: StatusListener,
        on_error: StatusErrorListener | None = None,
    ) -> StatusSubscription:
        subscription = _PollingSubscription(
            self, session_id, listener, self.poll_interval, on_error=on_error
        )
        subscription.start()
        return subscription

    def cancel_session(self, session_id: str, reason: str) -> None:
        self._request("DELETE", f"/signatures/{session_id}", params={"reason": reason})
        logger.info(f"Cancelled signature session {session_id}")

    # ------------------------------------------------------------------
    # REST helpers
    # ------------------------------------------------------------------

    def list_online_tablets(self) -> list[dict[str, Any]]:
        tablets = self._request("GET", "/tablets")
        if not isinstance(tablets, list):
            raise ServiceError("Unexpected tablet list payload", service=SERVICE_NAME)
        return [t for t in tablets if isinstance(t, dict) and t.get("isOnline")]

    def fetch_status(self, session_id: str) -> SessionStatusUpdate:
        data = self._request("GET", f"/signatures/{session_id}/status")
        if not isinstance(data, dict):
            raise ServiceError("Unexpected status payload", service=SERVICE_NAME)
        try:
            return SessionStatusUpdate(
                session_id=session_id,
                status=SessionStatus.parse(data.get("status")),
                signed_document_url=data.get("signedDocumentUrl"),
                signed_at=data.get("signedAt"),
                **({"timestamp": data["timestamp"]} if data.get("timestamp") else {}),
            )
        except ValidationError as e:
            raise ServiceError(f"Malformed status payload: {e}", service=SERVICE_NAME) from e

    def close(self) -> None:
        self._client.close()

    def _select_tablet(self) -> str:
        online = self.list_online_tablets()
        if not online:
            raise ServiceError(
                "No online tablets available. Check that tablets are connected and paired.",
                service=SERVICE_NAME,
            )
        if self.tablet_id:
            for tablet in online:
                if str(tablet.get("id")) == self.tablet_id:
                    return self.tablet_id
            logger.warning(f"Configured tablet {self.tablet_id} is offline; using first online tablet")
        return str(online[0]["id"])

    def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        try:
            response = self._client.request(method, url, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ServiceError(
                f"{method} {url} failed with HTTP {e.response.status_code}", service=SERVICE_NAME
            ) from e
        except httpx.HTTPError as e:
            raise ServiceError(f"{method} {url} failed: {e}", service=SERVICE_NAME) from e

        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise ServiceError(f"{method} {url} returned invalid JSON", service=SERVICE_NAME) from e
