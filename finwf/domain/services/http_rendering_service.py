"""Document rendering backed by the intake backend's REST API."""

import logging
import tempfile
from pathlib import Path
from typing import Any

import httpx

from finwf.domain.constants import DEFAULT_REQUEST_TIMEOUT, RENDITION_SUFFIX
from finwf.domain.errors import ServiceError
from finwf.domain.models.rendered_document import RenderedDocumentHandle
from .rendering_service import DocumentRenderingService

logger = logging.getLogger(__name__)

SERVICE_NAME = "http"


class HttpRenderingService(DocumentRenderingService):
    """Fetches a document's stored attachment, or renders it from a template.

    The attachment is preferred; a 404 falls back to template generation.
    """

    def __init__(
        self,
        base_url: str | None = None,
        template_id: str | None = None,
        auth_token: str | None = None,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url
        self.template_id = template_id

        headers = {"Accept": "application/pdf,application/octet-stream,*/*"}
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
            "description": "Attachment or template rendition via the intake REST API",
            "requires_config": True,
            "config_keys": ["base_url", "template_id", "auth_token"],
        }

    def validate(self) -> None:
        if not self.base_url:
            raise ServiceError("base_url is required", service=SERVICE_NAME, retryable=False)

    def fetch_renderable(self, document_id: str) -> RenderedDocumentHandle:
        try:
            response = self._client.get(f"/documents/{document_id}/attachment")
            if response.status_code == 404:
                logger.debug(f"No attachment for document {document_id}; generating from template")
                params = {"templateId": self.template_id} if self.template_id else None
                response = self._client.post(f"/documents/{document_id}/generate", params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ServiceError(
                f"Rendering document '{document_id}' failed with HTTP {e.response.status_code}",
                service=SERVICE_NAME,
            ) from e
        except httpx.HTTPError as e:
            raise ServiceError(f"Rendering document '{document_id}' failed: {e}", service=SERVICE_NAME) from e

        content_type = response.headers.get("content-type", "application/pdf").split(";")[0].strip()
        try:
            with tempfile.NamedTemporaryFile(
                prefix=f"document-{document_id}-", suffix=RENDITION_SUFFIX, delete=False
            ) as tmp:
                tmp.write(response.content)
                path = Path(tmp.name)
        except OSError as e:
            raise ServiceError(f"Could not store rendition: {e}", service=SERVICE_NAME) from e

        logger.debug(f"Rendered document {document_id} ({len(response.content)} bytes) to {path}")
        return RenderedDocumentHandle(path=path, document_id=document_id, content_type=content_type)

    def close(self) -> None:
        self._client.close()
