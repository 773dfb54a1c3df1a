"""Workflow event payload model."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from finwf.domain.events.event_types import WorkflowEventType
from finwf.domain.models.workflow_state import StepKind, WorkflowOptions, WorkflowPhase


class WorkflowEvent(BaseModel):
    """Immutable event payload for workflow notifications."""

    model_config = {"frozen": True}

    event_type: WorkflowEventType
    run_id: str
    document_id: str
    timestamp: datetime
    phase: WorkflowPhase | None = None
    step: StepKind | None = None
    options: WorkflowOptions | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
