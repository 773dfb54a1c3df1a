import logging
import shutil
import tempfile
from pathlib import Path
from typing import Any

from finwf.domain.constants import DEFAULT_DOCUMENTS_DIR, RENDITION_SUFFIX
from finwf.domain.errors import ServiceError
from finwf.domain.models.rendered_document import RenderedDocumentHandle
from .rendering_service import DocumentRenderingService

logger = logging.getLogger(__name__)


class LocalRenderingService(DocumentRenderingService):
    """Serves pre-rendered PDFs from a local directory.

    `<documents_dir>/<document_id>.pdf` is copied into a temp file so that
    releasing the handle never touches the source.
    """

    def __init__(self, documents_dir: str | Path | None = None) -> None:
        self.documents_dir = Path(documents_dir) if documents_dir else DEFAULT_DOCUMENTS_DIR

    @classmethod
    def get_metadata(cls) -> dict[str, Any]:
        return {
            "name": "local",
            "description": "Pre-rendered PDFs from a local directory",
            "requires_config": False,
            "config_keys": ["documents_dir"],
        }

    def validate(self) -> None:
        if not self.documents_dir.is_dir():
            raise ServiceError(
                f"Documents directory not found: {self.documents_dir}", service="local"
            )

    def fetch_renderable(self, document_id: str) -> RenderedDocumentHandle:
        source = self.documents_dir / f"{document_id}{RENDITION_SUFFIX}"
        if not source.is_file():
            raise ServiceError(f"No rendition for document '{document_id}' at {source}", service="local")

        try:
            with tempfile.NamedTemporaryFile(
                prefix=f"document-{document_id}-", suffix=RENDITION_SUFFIX, delete=False
            ) as tmp:
                target = Path(tmp.name)
            shutil.copyfile(source, target)
        except OSError as e:
            raise ServiceError(f"Could not stage rendition: {e}", service="local") from e

        logger.debug(f"Staged rendition {source} -> {target}")
        return RenderedDocumentHandle(path=target, document_id=document_id)
