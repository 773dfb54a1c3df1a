"""Workflow event system for observer pattern notifications."""

from finwf.domain.events.event_types import WorkflowEventType
from finwf.domain.events.event import WorkflowEvent
from finwf.domain.events.observer import WorkflowObserver
from finwf.domain.events.emitter import WorkflowEventEmitter
from finwf.domain.events.stderr_observer import StderrEventObserver

__all__ = [
    "WorkflowEventType",
    "WorkflowEvent",
    "WorkflowObserver",
    "WorkflowEventEmitter",
    "StderrEventObserver",
]
