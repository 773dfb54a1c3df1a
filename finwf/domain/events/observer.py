from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from finwf.domain.events.event import WorkflowEvent


class WorkflowObserver(Protocol):
    """Anything that wants to hear about a finalization run.

    `on_event` may be called from a status polling thread, while the
    orchestrator holds its lock. It must return promptly and must not call
    back into the orchestrator from another thread.
    """

    def on_event(self, event: "WorkflowEvent") -> None:
        ...
