import click
import logging
import threading
from pathlib import Path
from pydantic import BaseModel

from finwf.domain.models.workflow_state import StepKind, WorkflowOptions, WorkflowPhase

logger = logging.getLogger(__name__)
from finwf.interface.cli.output_models import (
    PlanOutput,
    RunOutput,
    ServiceDetail,
    ServicesOutput,
    ServiceSummary,
)
from finwf.application.config_loader import load_finalization_config


# Seconds between checks while waiting on a background step.
WAIT_TICK = 0.5

MANUAL_OUTCOMES = ["completed", "cancelled", "expired", "error"]


def _json_emit(model: BaseModel) -> None:
    # Single-line JSON, omit None fields (e.g., RunOutput.run_id on error).
    click.echo(model.model_dump_json(exclude_none=True), nl=True)


def _get_json_mode(ctx: click.Context) -> bool:
    obj = ctx.obj or {}
    return bool(obj.get("json", False))


def _emit_progress(state) -> None:
    """Emit progress messages to stderr."""
    for msg in state.messages:
        click.echo(msg, err=True)
    state.messages.clear()


class _StepWaiter:
    """Observer that wakes the CLI whenever the workflow emits an event."""

    def __init__(self) -> None:
        self._wake = threading.Event()

    def on_event(self, event) -> None:
        self._wake.set()

    def wait_until(self, done) -> None:
        while not done():
            self._wake.wait(WAIT_TICK)
            self._wake.clear()


class _StatusCheckNotice:
    """Tells the user that signature status checks are failing while they wait."""

    def on_event(self, event) -> None:
        click.echo(f"warning: signature status check failed: {event.metadata.get('error')}", err=True)


@click.group(help="Finalization workflow CLI.")
@click.option("--json", "json_output", is_flag=True, help="Emit machine-readable JSON on stdout.")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
@click.pass_context
def cli(ctx: click.Context, json_output: bool, verbose: bool) -> None:
    ctx.ensure_object(dict)
    ctx.obj["json"] = bool(json_output)
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )


@cli.command("plan")
@click.option("--signature/--no-signature", "signature", default=False, help="Collect a signature.")
@click.option("--print/--no-print", "print_", default=True, help="Show a print preview.")
@click.option("--contact", type=str, default=None, help="Customer contact address.")
@click.pass_context
def plan_cmd(ctx: click.Context, signature: bool, print_: bool, contact: str | None) -> None:
    """Show the steps a run with these options would execute."""
    try:
        from finwf.application.step_planner import build_step_sequence

        options = WorkflowOptions(collect_signature=signature, show_print_preview=print_)
        contact = contact.strip() if contact else None
        sequence = [step.value for step in build_step_sequence(options, contact or None)]

        if _get_json_mode(ctx):
            _json_emit(
                PlanOutput(
                    exit_code=0,
                    collect_signature=signature,
                    show_print_preview=print_,
                    signature_available=bool(contact),
                    sequence=sequence,
                )
            )
            raise click.exceptions.Exit(0)

        if signature and not contact:
            click.echo("note: signature requested but no contact address; step dropped", err=True)
        if not sequence:
            click.echo("(no steps)")
        for i, step in enumerate(sequence, start=1):
            click.echo(f"{i}. {step}")

    except click.exceptions.Exit:
        raise
    except Exception as e:
        if _get_json_mode(ctx):
            _json_emit(PlanOutput(exit_code=1, error=str(e)))
            raise click.exceptions.Exit(1)
        raise click.ClickException(str(e)) from e


@cli.command("run")
@click.argument("document_id", type=str)
@click.option("--contact", type=str, default=None, help="Customer contact address.")
@click.option("--customer", type=str, default=None, help="Name shown on the signing device.")
@click.option("--signature/--no-signature", "signature", default=None, help="Collect a signature.")
@click.option("--print/--no-print", "print_", default=None, help="Show a print preview.")
@click.option("--skip", is_flag=True, help="Finish without follow-up actions.")
@click.option("--abort", is_flag=True, help="Back out without finishing.")
@click.option("--events", is_flag=True, help="Emit workflow events to stderr.")
@click.option("--signature-service", "signature_service_key", type=str, default=None, help="Override the configured signature service.")
@click.option("--rendering-service", "rendering_service_key", type=str, default=None, help="Override the configured rendering service.")
@click.pass_context
def run_cmd(
    ctx: click.Context,
    document_id: str,
    contact: str | None,
    customer: str | None,
    signature: bool | None,
    print_: bool | None,
    skip: bool,
    abort: bool,
    events: bool,
    signature_service_key: str | None,
    rendering_service_key: str | None,
) -> None:
    """Drive one finalization run for a saved document."""
    orchestrator = None
    signature_service = None
    rendering_service = None
    try:
        if skip and abort:
            raise click.UsageError("--skip and --abort are mutually exclusive")

        from finwf.application.workflow_orchestrator import FinalizationOrchestrator
        from finwf.domain.events.emitter import WorkflowEventEmitter
        from finwf.domain.events.event_types import WorkflowEventType
        from finwf.domain.services import ServiceKind, ServiceRegistry

        overrides: dict = {}
        if signature_service_key:
            overrides["signature"] = {"service": signature_service_key}
        if rendering_service_key:
            overrides["rendering"] = {"service": rendering_service_key}
        cfg = load_finalization_config(
            project_root=Path.cwd(), user_home=Path.home(), overrides=overrides
        )
        signature_service = ServiceRegistry.create(
            ServiceKind.SIGNATURE, cfg.signature.service, cfg.signature_service_config()
        )
        rendering_service = ServiceRegistry.create(
            ServiceKind.RENDERING, cfg.rendering.service, cfg.rendering_service_config()
        )

        event_emitter = WorkflowEventEmitter()
        if events:
            from finwf.domain.events.stderr_observer import StderrEventObserver
            event_emitter.subscribe(StderrEventObserver())
        waiter = _StepWaiter()
        event_emitter.subscribe(waiter)
        event_emitter.subscribe(
            _StatusCheckNotice(), event_types=[WorkflowEventType.SIGNATURE_STATUS_CHECK_FAILED]
        )

        orchestrator = FinalizationOrchestrator(
            signature_service=signature_service,
            rendering_service=rendering_service,
            event_emitter=event_emitter,
        )
        orchestrator.start(document_id, contact_address=contact, customer_label=customer)

        if abort:
            state = orchestrator.cancel_current_step()
        elif skip:
            state = orchestrator.skip()
        else:
            try:
                options = _select_options(orchestrator.state, signature, print_)
            except click.Abort:
                # Backing out of the selection prompt aborts the run.
                options = None
            if options is None:
                state = orchestrator.cancel_current_step()
            else:
                _validate_planned_services(
                    orchestrator.state, options, signature_service, rendering_service
                )
                state = orchestrator.confirm(options)
        _emit_progress(state)

        _drive(orchestrator, signature_service, waiter)
        state = orchestrator.state

        exit_code = 3 if state.phase == WorkflowPhase.ABORTED else 0
        _report_run(ctx, state, exit_code)

    except click.exceptions.Exit:
        raise
    except click.UsageError:
        raise
    except Exception as e:
        if _get_json_mode(ctx):
            _json_emit(RunOutput(exit_code=1, document_id=document_id, error=str(e)))
            raise click.exceptions.Exit(1)
        raise click.ClickException(str(e)) from e
    finally:
        if orchestrator is not None:
            orchestrator.teardown()
        for service in (signature_service, rendering_service):
            if service is not None:
                service.close()


def _select_options(state, signature: bool | None, print_: bool | None) -> WorkflowOptions:
    """Resolve options from flags, prompting for any that were not given.

    Signature collection is only offered when a contact address exists.
    """
    if signature is None:
        if state.signature_available:
            signature = click.confirm("Collect the customer's signature?", default=True, err=True)
        else:
            signature = False
    if print_ is None:
        print_ = click.confirm("Show a print preview?", default=True, err=True)
    return WorkflowOptions(collect_signature=signature, show_print_preview=print_)


def _validate_planned_services(state, options, signature_service, rendering_service) -> None:
    """Check the configuration of each service the planned steps will call.

    Raises:
        ServiceError: If a needed service is misconfigured
    """
    from finwf.application.step_planner import build_step_sequence

    steps = build_step_sequence(options, state.contact_address)
    if StepKind.SIGNATURE_REQUEST in steps:
        signature_service.validate()
    if StepKind.PRINT_PREVIEW in steps:
        rendering_service.validate()


def _drive(orchestrator, signature_service, waiter: _StepWaiter) -> None:
    """Walk the planned steps until the run leaves RUNNING."""
    from finwf.application.workflow_orchestrator import InvalidCommand

    state = orchestrator.state
    while state.phase == WorkflowPhase.RUNNING:
        try:
            if state.step_error is not None:
                _resolve_step_error(orchestrator, state)
            elif state.current_step == StepKind.SIGNATURE_STATUS:
                _await_signature(orchestrator, signature_service, waiter)
            elif state.current_step == StepKind.PRINT_PREVIEW:
                _show_preview(orchestrator, state)
            else:
                orchestrator.cancel_current_step()
        except (KeyboardInterrupt, click.Abort):
            step = state.current_step
            click.echo("", err=True)
            click.echo(f"Cancelling {step.value if step else 'step'}", err=True)
            try:
                orchestrator.cancel_current_step()
            except InvalidCommand as e:
                # The step finished while the interrupt was handled.
                logger.debug(f"Nothing to cancel: {e}")
        _emit_progress(state)
        state = orchestrator.state


def _resolve_step_error(orchestrator, state) -> None:
    error = state.step_error
    click.echo(f"error: {error.message}", err=True)
    if not error.retryable:
        orchestrator.cancel_current_step()
        return
    choice = click.prompt(
        "Retry or cancel this step?",
        type=click.Choice(["retry", "cancel"]),
        default="retry",
        err=True,
    )
    if choice == "retry":
        orchestrator.retry_current_step()
    else:
        orchestrator.cancel_current_step()


def _await_signature(orchestrator, signature_service, waiter: _StepWaiter) -> None:
    from finwf.domain.models.session_status import SessionStatus
    from finwf.domain.services import ManualSignatureService

    state = orchestrator.state
    session_id = state.signature_session.session_id

    if isinstance(signature_service, ManualSignatureService):
        click.echo(f"Signing session {session_id} is open.", err=True)
        outcome = click.prompt(
            "Signing outcome",
            type=click.Choice(MANUAL_OUTCOMES),
            default="completed",
            err=True,
        )
        signature_service.push_status(session_id, SessionStatus(outcome.upper()))
        return

    click.echo(f"Waiting for signature (session {session_id}); Ctrl-C to skip.", err=True)
    # The session may settle on the polling thread before this wait starts.
    waiter.wait_until(
        lambda: state.current_step != StepKind.SIGNATURE_STATUS
        or state.step_error is not None
    )


def _show_preview(orchestrator, state) -> None:
    handle = state.rendered_document
    click.echo(f"Preview: {handle.path}", err=True)
    click.launch(str(handle.path))
    click.pause(info="Press any key once the preview is closed...", err=True)
    orchestrator.on_print_preview_closed()


def _report_run(ctx: click.Context, state, exit_code: int) -> None:
    session = state.signature_session
    options = state.options
    sequence = [step.value for step in state.sequence]

    if _get_json_mode(ctx):
        _json_emit(
            RunOutput(
                exit_code=exit_code,
                run_id=state.run_id,
                document_id=state.document_id,
                phase=state.phase.name,
                collect_signature=options.collect_signature if options else None,
                show_print_preview=options.show_print_preview if options else None,
                sequence=sequence,
                session_id=session.session_id if session else None,
                signature_status=session.status.value if session else None,
                signed_document_url=session.signed_document_url if session else None,
            )
        )
        raise click.exceptions.Exit(exit_code)

    click.echo(f"run={state.run_id} document={state.document_id} phase={state.phase.name}")
    if options is not None:
        click.echo(
            f"signature={str(options.collect_signature).lower()} "
            f"print={str(options.show_print_preview).lower()}"
        )
    if session is not None:
        click.echo(f"session={session.session_id} status={session.status.value}")
        if session.signed_document_url:
            click.echo(f"signed_document={session.signed_document_url}")

    if exit_code:
        raise click.exceptions.Exit(exit_code)


@cli.command("services")
@click.argument("service_name", type=str, required=False)
@click.pass_context
def services_cmd(ctx: click.Context, service_name: str | None) -> None:
    """List signature and rendering services or show details for one."""
    try:
        # Import services to ensure registration
        from finwf.domain.services import ServiceRegistry

        if service_name:
            details = [
                ServiceDetail(
                    kind=kind.value,
                    name=metadata["name"],
                    description=metadata["description"],
                    requires_config=metadata.get("requires_config", False),
                    config_keys=metadata.get("config_keys", []),
                )
                for kind, metadata in ServiceRegistry.describe(service_name)
            ]

            if not details:
                available = ", ".join(ServiceRegistry.keys())
                error_msg = f"Service '{service_name}' not found. Available: {available}"
                if _get_json_mode(ctx):
                    _json_emit(ServicesOutput(exit_code=1, error=error_msg))
                    raise click.exceptions.Exit(1)
                raise click.ClickException(error_msg)

            if _get_json_mode(ctx):
                _json_emit(ServicesOutput(exit_code=0, service=details))
                raise click.exceptions.Exit(0)

            for detail in details:
                click.echo(f"Service: {detail.name} ({detail.kind})")
                click.echo(f"Description: {detail.description}")
                requires_str = "yes" if detail.requires_config else "no"
                click.echo(f"Requires Config: {requires_str}")
                if detail.config_keys:
                    click.echo(f"Config Keys: {', '.join(detail.config_keys)}")

        else:
            services_list = [
                ServiceSummary(
                    kind=kind.value,
                    name=m["name"],
                    description=m["description"],
                    requires_config=m.get("requires_config", False),
                )
                for kind, m in ServiceRegistry.describe()
            ]

            if _get_json_mode(ctx):
                _json_emit(ServicesOutput(exit_code=0, services=services_list))
                raise click.exceptions.Exit(0)

            if not services_list:
                click.echo("No services registered.")
            else:
                click.echo(f"{'KIND':<11}{'SERVICE':<10}{'DESCRIPTION':<50}{'CONFIG'}")
                for s in services_list:
                    config_str = "required" if s.requires_config else "none"
                    click.echo(f"{s.kind:<11}{s.name:<10}{s.description:<50}{config_str}")

    except click.exceptions.Exit:
        raise
    except Exception as e:
        if _get_json_mode(ctx):
            _json_emit(ServicesOutput(exit_code=1, error=str(e)))
            raise click.exceptions.Exit(1)
        raise click.ClickException(str(e)) from e
