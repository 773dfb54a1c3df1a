"""Domain models for the finalization workflow."""

from .workflow_state import (
    PhaseTransition,
    SignatureSession,
    StepError,
    StepKind,
    WorkflowHandle,
    WorkflowOptions,
    WorkflowPhase,
    WorkflowState,
)
from .session_status import SessionStatus, SessionStatusUpdate
from .rendered_document import RenderedDocumentHandle


__all__ = [
    "PhaseTransition",
    "SignatureSession",
    "StepError",
    "StepKind",
    "WorkflowHandle",
    "WorkflowOptions",
    "WorkflowPhase",
    "WorkflowState",
    "SessionStatus",
    "SessionStatusUpdate",
    "RenderedDocumentHandle",
]
