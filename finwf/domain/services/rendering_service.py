from abc import ABC, abstractmethod
from typing import Any

from finwf.domain.models.rendered_document import RenderedDocumentHandle


class DocumentRenderingService(ABC):
    """Abstract interface for document rendering services (Strategy pattern)."""

    @classmethod
    def get_metadata(cls) -> dict[str, Any]:
        """Return service metadata for discovery commands."""
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
    def fetch_renderable(self, document_id: str) -> RenderedDocumentHandle:
        """Produce a previewable rendition of a document.

        The caller owns the returned handle and must release it.

        Raises:
            ServiceError: If the rendition could not be produced
        """
        ...

    def close(self) -> None:
        """Release transport resources. Default does nothing."""
        pass
