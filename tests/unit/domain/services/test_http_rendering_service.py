"""Tests for HttpRenderingService against a mocked REST backend."""

import httpx
import pytest

from finwf.domain.errors import ServiceError
from finwf.domain.services.http_rendering_service import HttpRenderingService

BASE_URL = "https://crm.test/api"
PDF = b"%PDF-1.4 rendered\n"


def _service(handler, **kwargs) -> HttpRenderingService:
    return HttpRenderingService(base_url=BASE_URL, transport=httpx.MockTransport(handler), **kwargs)


class TestHttpRenderingService:
    def test_attachment_preferred(self) -> None:
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append((request.method, request.url.path))
            return httpx.Response(200, content=PDF, headers={"content-type": "application/pdf"})

        handle = _service(handler).fetch_renderable("doc-1")
        try:
            assert seen == [("GET", "/api/documents/doc-1/attachment")]
            assert handle.path.read_bytes() == PDF
            assert handle.content_type == "application/pdf"
        finally:
            handle.release()

        assert not handle.path.exists()

    def test_missing_attachment_generates_from_template(self) -> None:
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            if request.url.path.endswith("/attachment"):
                return httpx.Response(404)
            return httpx.Response(200, content=PDF)

        handle = _service(handler, template_id="intake-default").fetch_renderable("doc-1")
        try:
            generate = seen[-1]
            assert generate.method == "POST"
            assert generate.url.path == "/api/documents/doc-1/generate"
            assert generate.url.params["templateId"] == "intake-default"
            assert handle.path.read_bytes() == PDF
        finally:
            handle.release()

    def test_generate_without_template_sends_no_param(self) -> None:
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            if request.url.path.endswith("/attachment"):
                return httpx.Response(404)
            return httpx.Response(200, content=PDF)

        handle = _service(handler).fetch_renderable("doc-1")
        handle.release()

        assert "templateId" not in seen[-1].url.params

    def test_content_type_parameters_stripped(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, content=PDF, headers={"content-type": "application/pdf; charset=binary"})

        handle = _service(handler).fetch_renderable("doc-1")
        handle.release()

        assert handle.content_type == "application/pdf"

    def test_server_error_raises(self) -> None:
        service = _service(lambda request: httpx.Response(502))

        with pytest.raises(ServiceError, match="HTTP 502"):
            service.fetch_renderable("doc-1")

    def test_generate_failure_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/attachment"):
                return httpx.Response(404)
            return httpx.Response(500)

        with pytest.raises(ServiceError, match="HTTP 500"):
            _service(handler).fetch_renderable("doc-1")

    def test_timeout_raises(self) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(ServiceError, match="timed out"):
            _service(handler).fetch_renderable("doc-1")

    def test_validate_requires_base_url(self) -> None:
        with pytest.raises(ServiceError):
            HttpRenderingService().validate()
