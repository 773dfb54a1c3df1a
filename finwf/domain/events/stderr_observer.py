"""Stderr event observer for CLI integration."""

import click

from finwf.domain.events.event import WorkflowEvent


class StderrEventObserver:
    """Emits events as structured lines to stderr."""

    def on_event(self, event: WorkflowEvent) -> None:
        """Emit event as structured line to stderr."""
        parts = [f"[EVENT] {event.event_type.value}", f"run={event.run_id}"]
        if event.phase:
            parts.append(f"phase={event.phase.name}")
        if event.step:
            parts.append(f"step={event.step.name}")
        if event.options is not None:
            parts.append(
                f"signature={str(event.options.collect_signature).lower()} "
                f"print={str(event.options.show_print_preview).lower()}"
            )
        for key, value in sorted(event.metadata.items()):
            parts.append(f"{key}={value}")
        click.echo(" ".join(parts), err=True)
