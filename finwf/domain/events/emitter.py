"""Dispatches finalization run events to observers."""

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Iterable

from finwf.domain.events.event import WorkflowEvent
from finwf.domain.events.event_types import WorkflowEventType
from finwf.domain.events.observer import WorkflowObserver

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class _Subscription:
    observer: WorkflowObserver
    event_types: frozenset[WorkflowEventType] | None

    def wants(self, event: WorkflowEvent) -> bool:
        return self.event_types is None or event.event_type in self.event_types


class WorkflowEventEmitter:
    """Fans run events out to observers in subscription order.

    Events can be emitted from the caller's thread or from a service's status
    polling thread. Observers run on the emitting thread, outside the
    emitter's own lock, so an observer may subscribe or unsubscribe while
    handling an event. A failing observer is logged and skipped.
    """

    def __init__(self) -> None:
        self._subscriptions: list[_Subscription] = []
        self._lock = threading.Lock()

    def subscribe(
        self,
        observer: WorkflowObserver,
        event_types: Iterable[WorkflowEventType] | None = None,
    ) -> Callable[[], None]:
        """Deliver events to `observer`, optionally only the given types.

        Returns:
            A callable that removes this subscription
        """
        subscription = _Subscription(
            observer, frozenset(event_types) if event_types is not None else None
        )
        with self._lock:
            self._subscriptions.append(subscription)

        def unsubscribe() -> None:
            with self._lock:
                if subscription in self._subscriptions:
                    self._subscriptions.remove(subscription)

        return unsubscribe

    def unsubscribe(self, observer: WorkflowObserver) -> None:
        """Remove every subscription held by `observer`."""
        with self._lock:
            self._subscriptions = [s for s in self._subscriptions if s.observer is not observer]

    def emit(self, event: WorkflowEvent) -> None:
        with self._lock:
            targets = [s.observer for s in self._subscriptions if s.wants(event)]
        for observer in targets:
            try:
                observer.on_event(event)
            except Exception as e:
                logger.warning(
                    f"Observer {observer!r} failed on {event.event_type.value} for run {event.run_id}: {e}"
                )
