"""Workflow event types for observer pattern notifications."""

from enum import Enum


class WorkflowEventType(str, Enum):
    """Typed events emitted over the life of a finalization run."""

    # Run lifecycle
    WORKFLOW_STARTED = "workflow_started"
    OPTIONS_CONFIRMED = "options_confirmed"
    SELECTION_SKIPPED = "selection_skipped"
    WORKFLOW_ABORTED = "workflow_aborted"
    WORKFLOW_COMPLETED = "workflow_completed"

    # Steps
    STEP_ENTERED = "step_entered"
    STEP_EXITED = "step_exited"
    STEP_FAILED = "step_failed"

    # Signature session
    SIGNATURE_REQUESTED = "signature_requested"
    SIGNATURE_STATUS_CHANGED = "signature_status_changed"
    SIGNATURE_STATUS_CHECK_FAILED = "signature_status_check_failed"
