from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest

from finwf.application.workflow_orchestrator import FinalizationOrchestrator
from finwf.domain.errors import ServiceError
from finwf.domain.events.emitter import WorkflowEventEmitter
from finwf.domain.models.rendered_document import RenderedDocumentHandle
from finwf.domain.services.manual_signature_service import ManualSignatureService
from finwf.domain.services.rendering_service import DocumentRenderingService


class CountingHandle(RenderedDocumentHandle):
    """Handle that counts how many times it was effectively released."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.release_count = 0

    def release(self) -> None:
        if not self.released:
            self.release_count += 1
        super().release()


class ScriptedSignatureService(ManualSignatureService):
    """Manual service with knobs for injecting failures."""

    def __init__(self) -> None:
        super().__init__()
        self.request_failures = 0
        self.subscribe_failures = 0
        self.cancel_fails = False

    def request_signature(self, document_id: str, customer_label: str) -> str:
        if self.request_failures:
            self.request_failures -= 1
            raise ServiceError("No online tablets available", service="scripted")
        return super().request_signature(document_id, customer_label)

    def subscribe(self, session_id, listener, on_error=None):
        if self.subscribe_failures:
            self.subscribe_failures -= 1
            raise ServiceError("status stream unavailable", service="scripted")
        return super().subscribe(session_id, listener, on_error)

    def cancel_session(self, session_id: str, reason: str) -> None:
        if self.cancel_fails:
            self.cancellations.append((session_id, reason))
            raise ServiceError("cancel endpoint unavailable", service="scripted")
        super().cancel_session(session_id, reason)


class FakeRenderingService(DocumentRenderingService):
    """Writes a tiny PDF per fetch into a temp dir."""

    def __init__(self, root: Path) -> None:
        self.root = root
        self.calls: list[str] = []
        self.handles: list[CountingHandle] = []
        self.failures = 0
        self.retryable = True

    def validate(self) -> None:
        pass

    def fetch_renderable(self, document_id: str) -> RenderedDocumentHandle:
        self.calls.append(document_id)
        if self.failures:
            self.failures -= 1
            raise ServiceError(
                "render backend unavailable", service="fake", retryable=self.retryable
            )
        path = self.root / f"{document_id}-{len(self.calls)}.pdf"
        path.write_bytes(b"%PDF-1.4\n")
        handle = CountingHandle(path=path, document_id=document_id)
        self.handles.append(handle)
        return handle


@pytest.fixture
def signature_service() -> ScriptedSignatureService:
    return ScriptedSignatureService()


@pytest.fixture
def rendering_service(tmp_path: Path) -> FakeRenderingService:
    root = tmp_path / "renditions"
    root.mkdir()
    return FakeRenderingService(root)


@pytest.fixture
def observer() -> MagicMock:
    return MagicMock()


@pytest.fixture
def orchestrator(
    signature_service: ScriptedSignatureService,
    rendering_service: FakeRenderingService,
    observer: MagicMock,
) -> FinalizationOrchestrator:
    emitter = WorkflowEventEmitter()
    emitter.subscribe(observer)
    return FinalizationOrchestrator(
        signature_service=signature_service,
        rendering_service=rendering_service,
        event_emitter=emitter,
    )
