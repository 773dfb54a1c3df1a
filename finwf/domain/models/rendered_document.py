"""Transient, file-backed rendition of a document for preview/print."""

import logging
from pathlib import Path

logger = logging.getLogger(__name__)


class RenderedDocumentHandle:
    """Scoped reference to a rendered document.

    The handle owns its file when `owns_file` is True and deletes it on
    `release()`. Release happens at most once; later calls are no-ops so that
    an explicit close and a teardown can both release safely.
    """

    def __init__(
        self,
        path: Path,
        document_id: str,
        content_type: str = "application/pdf",
        owns_file: bool = True,
    ) -> None:
        self.path = Path(path)
        self.document_id = document_id
        self.content_type = content_type
        self.owns_file = owns_file
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        """Release the rendition. Safe to call more than once."""
        if self._released:
            return
        self._released = True
        if self.owns_file:
            try:
                self.path.unlink(missing_ok=True)
            except OSError as e:
                logger.warning(f"Could not remove rendition {self.path}: {e}")
        logger.debug(f"Released rendition for document {self.document_id}")

    def __enter__(self) -> "RenderedDocumentHandle":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()

    def __repr__(self) -> str:
        state = "released" if self._released else "held"
        return f"RenderedDocumentHandle({self.document_id!r}, {str(self.path)!r}, {state})"
