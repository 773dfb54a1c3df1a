"""Tests for TabletSignatureService against a mocked REST backend."""

import json
import threading

import httpx
import pytest

from finwf.domain.errors import ServiceError
from finwf.domain.models.session_status import SessionStatus
from finwf.domain.services.tablet_signature_service import TabletSignatureService

BASE_URL = "https://crm.test/api"

TABLETS = [
    {"id": "t-1", "name": "Front desk", "isOnline": False},
    {"id": "t-2", "name": "Workshop", "isOnline": True},
    {"id": "t-3", "name": "Office", "isOnline": True},
]


def _service(handler, **kwargs) -> TabletSignatureService:
    return TabletSignatureService(
        base_url=BASE_URL,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


class _Backend:
    """Records requests and answers like the intake backend."""

    def __init__(self, tablets=None, request_response=None, statuses=None) -> None:
        self.tablets = TABLETS if tablets is None else tablets
        self.request_response = request_response or {"success": True, "sessionId": "sess-1"}
        self.statuses = list(statuses or ["PENDING"])
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if request.method == "GET" and path == "/api/tablets":
            return httpx.Response(200, json=self.tablets)
        if request.method == "POST" and path == "/api/signatures/protocol-request":
            return httpx.Response(200, json=self.request_response)
        if request.method == "GET" and path.endswith("/status"):
            status = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
            body = {"sessionId": "sess-1", "status": status}
            if status == "COMPLETED":
                body["signedDocumentUrl"] = "https://crm.test/signed/sess-1.pdf"
            return httpx.Response(200, json=body)
        if request.method == "DELETE":
            return httpx.Response(204)
        return httpx.Response(404)


class TestRequestSignature:
    def test_posts_request_to_first_online_tablet(self) -> None:
        backend = _Backend()
        service = _service(backend)

        session_id = service.request_signature("proto-9", "Jane Doe")

        assert session_id == "sess-1"
        post = backend.requests[-1]
        payload = json.loads(post.content)
        assert payload == {
            "protocolId": "proto-9",
            "tabletId": "t-2",
            "customerName": "Jane Doe",
            "instructions": "Please sign the vehicle intake protocol",
            "timeoutMinutes": 15,
        }

    def test_configured_online_tablet_is_used(self) -> None:
        backend = _Backend()
        service = _service(backend, tablet_id="t-3", timeout_minutes=20)

        service.request_signature("proto-9", "Jane")

        payload = json.loads(backend.requests[-1].content)
        assert payload["tabletId"] == "t-3"
        assert payload["timeoutMinutes"] == 20

    def test_offline_configured_tablet_falls_back(self) -> None:
        backend = _Backend()
        service = _service(backend, tablet_id="t-1")

        service.request_signature("proto-9", "Jane")

        assert json.loads(backend.requests[-1].content)["tabletId"] == "t-2"

    def test_no_online_tablets_raises(self) -> None:
        backend = _Backend(tablets=[{"id": "t-1", "isOnline": False}])
        service = _service(backend)

        with pytest.raises(ServiceError, match="No online tablets available"):
            service.request_signature("proto-9", "Jane")

        assert all(r.method == "GET" for r in backend.requests)

    def test_rejected_request_carries_backend_message(self) -> None:
        backend = _Backend(request_response={"success": False, "message": "Tablet busy"})
        service = _service(backend)

        with pytest.raises(ServiceError, match="Tablet busy"):
            service.request_signature("proto-9", "Jane")

    def test_missing_session_id_raises(self) -> None:
        backend = _Backend(request_response={"success": True})
        service = _service(backend)

        with pytest.raises(ServiceError, match="no session id"):
            service.request_signature("proto-9", "Jane")

    def test_http_error_becomes_service_error(self) -> None:
        service = _service(lambda request: httpx.Response(500))

        with pytest.raises(ServiceError, match="HTTP 500"):
            service.request_signature("proto-9", "Jane")

    def test_transport_error_becomes_service_error(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        service = _service(handler)

        with pytest.raises(ServiceError, match="connection refused"):
            service.request_signature("proto-9", "Jane")

    def test_invalid_json_becomes_service_error(self) -> None:
        service = _service(lambda request: httpx.Response(200, content=b"<html>"))

        with pytest.raises(ServiceError, match="invalid JSON"):
            service.list_online_tablets()

    def test_bearer_token_sent(self) -> None:
        backend = _Backend()
        service = _service(backend, auth_token="secret")

        service.list_online_tablets()

        assert backend.requests[0].headers["Authorization"] == "Bearer secret"


class TestStatus:
    def test_fetch_status_parses_payload(self) -> None:
        service = _service(_Backend(statuses=["COMPLETED"]))

        update = service.fetch_status("sess-1")

        assert update.session_id == "sess-1"
        assert update.status == SessionStatus.COMPLETED
        assert update.signed_document_url == "https://crm.test/signed/sess-1.pdf"

    def test_unknown_status_is_pending(self) -> None:
        service = _service(_Backend(statuses=["QUEUED_SOMEWHERE"]))

        assert service.fetch_status("sess-1").status == SessionStatus.PENDING

    @pytest.mark.parametrize("body", [[{"status": "COMPLETED"}], "COMPLETED"])
    def test_non_object_status_payload_raises(self, body) -> None:
        service = _service(lambda request: httpx.Response(200, json=body))

        with pytest.raises(ServiceError, match="Unexpected status payload"):
            service.fetch_status("sess-1")

    def test_non_string_status_is_pending(self) -> None:
        service = _service(lambda request: httpx.Response(200, json={"status": 7}))

        assert service.fetch_status("sess-1").status == SessionStatus.PENDING

    def test_subscription_polls_until_terminal(self) -> None:
        backend = _Backend(statuses=["PENDING", "PENDING", "SIGNING_IN_PROGRESS", "COMPLETED"])
        service = _service(backend, poll_interval=0.01)
        received = []
        done = threading.Event()

        def listener(update) -> None:
            received.append(update.status)
            if update.status.is_terminal:
                done.set()

        subscription = service.subscribe("sess-1", listener)

        assert done.wait(5)
        # Repeated PENDING is delivered once
        assert received == [
            SessionStatus.PENDING,
            SessionStatus.SIGNING_IN_PROGRESS,
            SessionStatus.COMPLETED,
        ]
        subscription._thread.join(5)
        assert subscription.active is False

    def test_cancelled_subscription_stops_polling(self) -> None:
        backend = _Backend(statuses=["PENDING"])
        service = _service(backend, poll_interval=0.01)
        first = threading.Event()

        subscription = service.subscribe("sess-1", lambda update: first.set())
        assert first.wait(5)

        subscription.cancel()
        subscription._thread.join(5)

        assert not subscription._thread.is_alive()
        assert subscription.active is False

    def test_poll_errors_do_not_stop_polling(self) -> None:
        calls = {"n": 0}
        done = threading.Event()

        def handler(request: httpx.Request) -> httpx.Response:
            calls["n"] += 1
            if calls["n"] == 1:
                return httpx.Response(503)
            return httpx.Response(200, json={"status": "EXPIRED"})

        service = _service(handler, poll_interval=0.01)
        service.subscribe("sess-1", lambda update: done.set())

        assert done.wait(5)
        assert calls["n"] >= 2

    def test_poll_errors_reach_error_listener(self) -> None:
        responses = [
            httpx.Response(503),
            httpx.Response(200, json=["not", "an", "object"]),
            httpx.Response(200, json={"status": "COMPLETED"}),
        ]
        errors = []
        done = threading.Event()

        def handler(request: httpx.Request) -> httpx.Response:
            return responses.pop(0) if len(responses) > 1 else responses[0]

        service = _service(handler, poll_interval=0.01)
        subscription = service.subscribe(
            "sess-1", lambda update: done.set(), on_error=errors.append
        )

        assert done.wait(5)
        subscription._thread.join(5)
        assert [str(e) for e in errors] == [
            "tablet: GET /signatures/sess-1/status failed with HTTP 503",
            "tablet: Unexpected status payload",
        ]

    def test_failing_error_listener_does_not_stop_polling(self) -> None:
        calls = {"n": 0}
        done = threading.Event()

        def handler(request: httpx.Request) -> httpx.Response:
            calls["n"] += 1
            if calls["n"] == 1:
                return httpx.Response(500)
            return httpx.Response(200, json={"status": "CANCELLED"})

        def broken_on_error(error) -> None:
            raise RuntimeError("display gone")

        service = _service(handler, poll_interval=0.01)
        service.subscribe("sess-1", lambda update: done.set(), on_error=broken_on_error)

        assert done.wait(5)


class TestCancelAndValidate:
    def test_cancel_session_sends_reason(self) -> None:
        backend = _Backend()
        service = _service(backend)

        service.cancel_session("sess-1", "Cancelled by user")

        request = backend.requests[-1]
        assert request.method == "DELETE"
        assert request.url.path == "/api/signatures/sess-1"
        assert request.url.params["reason"] == "Cancelled by user"

    def test_validate_requires_base_url(self) -> None:
        service = TabletSignatureService()

        with pytest.raises(ServiceError, match="base_url is required"):
            service.validate()

    @pytest.mark.parametrize("minutes", [4, 31])
    def test_validate_timeout_bounds(self, minutes: int) -> None:
        service = _service(_Backend(), timeout_minutes=minutes)

        with pytest.raises(ServiceError, match="timeout_minutes"):
            service.validate()

    def test_validate_ok(self) -> None:
        _service(_Backend()).validate()
