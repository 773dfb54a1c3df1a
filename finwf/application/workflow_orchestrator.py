"""Finalization workflow orchestration using the TransitionTable state machine.

One orchestrator instance drives one run at a time: the user picks follow-up
actions for a freshly saved document, the orchestrator plans the steps and walks
them in order, and exactly one completion (or abort) event closes the run.
"""

import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from finwf.application.step_planner import build_step_sequence
from finwf.application.transitions import Action, Command, TransitionTable
from finwf.domain.constants import USER_CANCEL_REASON
from finwf.domain.errors import ServiceError
from finwf.domain.models.session_status import SessionStatus, SessionStatusUpdate
from finwf.domain.models.workflow_state import (
    PhaseTransition,
    SignatureSession,
    StepError,
    StepKind,
    WorkflowHandle,
    WorkflowOptions,
    WorkflowPhase,
    WorkflowState,
)
from finwf.domain.services.rendering_service import DocumentRenderingService
from finwf.domain.services.signature_service import (
    SignatureCollectionService,
    StatusSubscription,
)

if TYPE_CHECKING:
    from finwf.domain.events.emitter import WorkflowEventEmitter
    from finwf.domain.events.event_types import WorkflowEventType

logger = logging.getLogger(__name__)


class InvalidCommand(Exception):
    """Raised when a command is not valid for the current state."""

    def __init__(self, command: str, phase: WorkflowPhase | None, step: StepKind | None):
        self.command = command
        self.phase = phase
        self.step = step
        if phase is None:
            where = "no active run"
        else:
            step_str = f"[{step.value}]" if step else ""
            where = f"{phase.value}{step_str}"
        super().__init__(f"Command '{command}' is not valid from {where}")


@dataclass
class FinalizationOrchestrator:
    """Engine-owned finalization workflow.

    The orchestrator owns `WorkflowState` for the duration of a run and decides
    what happens next; the signature and rendering services only perform the
    side effects of individual steps.

    User commands (`confirm`, `skip`, `cancel_current_step`,
    `retry_current_step`) raise `InvalidCommand` when the transition table has
    no entry for the current state. Service callbacks never raise: stale or
    duplicate ones are ignored, since they can legitimately arrive after the
    run has moved on.
    """

    signature_service: SignatureCollectionService
    rendering_service: DocumentRenderingService
    event_emitter: "WorkflowEventEmitter | None" = None

    _state: WorkflowState | None = field(default=None, init=False, repr=False)
    _subscription: StatusSubscription | None = field(default=None, init=False, repr=False)
    _lock: Any = field(default_factory=threading.RLock, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.event_emitter is None:
            from finwf.domain.events.emitter import WorkflowEventEmitter
            self.event_emitter = WorkflowEventEmitter()

    @property
    def state(self) -> WorkflowState:
        """Current run state.

        Raises:
            InvalidCommand: If no run has been started
        """
        if self._state is None:
            raise InvalidCommand("state", None, None)
        return self._state

    # ========================================================================
    # Command Methods
    # ========================================================================

    def start(
        self,
        document_id: str,
        contact_address: str | None = None,
        customer_label: str | None = None,
    ) -> WorkflowHandle:
        """Begin a new run in SELECTION. No external calls are made.

        Args:
            document_id: The freshly saved document to finalize
            contact_address: Where the customer can be reached; signature
                collection is only executed when present
            customer_label: Name shown on the signing device (defaults to the
                contact address)

        Returns:
            Handle identifying the new run

        Raises:
            InvalidCommand: If the previous run is still in progress
        """
        with self._lock:
            previous = self._state
            if previous is not None and not previous.is_terminal and not previous.torn_down:
                raise InvalidCommand("start", previous.phase, previous.current_step)

            contact = contact_address.strip() if contact_address else None
            contact = contact or None
            label = customer_label if customer_label is not None else (contact or "")

            self._subscription = None
            self._state = _build_initial_state(
                run_id=uuid.uuid4().hex,
                document_id=str(document_id),
                contact_address=contact,
                customer_label=label,
            )
            logger.info(f"Started finalization run {self._state.run_id} for document {document_id}")
            self._emit(self._event_types().WORKFLOW_STARTED, self._state)

            return WorkflowHandle(
                run_id=self._state.run_id,
                document_id=self._state.document_id,
                contact_address=contact,
                customer_label=label,
            )

    def confirm(self, options: WorkflowOptions) -> WorkflowState:
        """Lock in the selected options, plan the steps and enter the first one.

        An empty plan completes the run immediately.

        Raises:
            InvalidCommand: If not in SELECTION
        """
        return self._execute_command(Command.CONFIRM, options=options)

    def skip(self) -> WorkflowState:
        """Complete immediately with no follow-up actions.

        Raises:
            InvalidCommand: If not in SELECTION
        """
        return self._execute_command(Command.SKIP, options=WorkflowOptions())

    def cancel_current_step(self) -> WorkflowState:
        """Cancel whatever is active.

        In SELECTION this aborts the run (no completion). In RUNNING it cancels
        only the current step and moves on to the next planned one.

        Raises:
            InvalidCommand: If the run is already terminal
        """
        return self._execute_command(Command.CANCEL)

    def retry_current_step(self) -> WorkflowState:
        """Repeat the side effect of a step that failed.

        Raises:
            InvalidCommand: If the current step has no recorded error
        """
        with self._lock:
            state = self.state
            if state.step_error is None:
                raise InvalidCommand(Command.RETRY.value, state.phase, state.current_step)
            return self._execute_command(Command.RETRY)

    def teardown(self) -> None:
        """Release step resources and detach from services. Idempotent."""
        with self._lock:
            state = self._state
            if state is None or state.torn_down:
                return
            self._release_step_resources(state)
            state.torn_down = True
            logger.debug(f"Tore down run {state.run_id} in {state.phase.value}")

    # ========================================================================
    # Service Callbacks
    # ========================================================================

    def on_signature_requested(self, session_id: str) -> None:
        """A signing session exists; move from SIGNATURE_REQUEST to SIGNATURE_STATUS."""
        with self._lock:
            state = self._state
            if not self._accepts(Command.SIGNATURE_REQUESTED):
                self._ignore("signature_requested", session_id=session_id)
                return

            state.signature_session = SignatureSession(
                session_id=session_id,
                document_id=state.document_id,
            )
            self._emit(
                self._event_types().SIGNATURE_REQUESTED,
                state,
                metadata={"session_id": session_id},
            )
            self._execute_command(Command.SIGNATURE_REQUESTED)

    def on_signature_settled(self, signed_document_url: str | None = None) -> None:
        """The signing session reached a terminal status; move past SIGNATURE_STATUS."""
        with self._lock:
            state = self._state
            if not self._accepts(Command.SIGNATURE_SETTLED):
                self._ignore("signature_settled")
                return

            session = state.signature_session
            if session is not None:
                if not session.status.is_terminal:
                    session.status = SessionStatus.COMPLETED
                if signed_document_url:
                    session.signed_document_url = signed_document_url
            self._execute_command(Command.SIGNATURE_SETTLED)

    def on_print_preview_closed(self) -> None:
        """The preview surface was dismissed; release the rendition and move on."""
        with self._lock:
            if not self._accepts(Command.PREVIEW_CLOSED):
                self._ignore("preview_closed")
                return
            self._execute_command(Command.PREVIEW_CLOSED)

    # ========================================================================
    # Internal Methods
    # ========================================================================

    def _execute_command(
        self,
        command: Command,
        options: WorkflowOptions | None = None,
    ) -> WorkflowState:
        """Execute a command using the TransitionTable.

        Raises:
            InvalidCommand: If command is not valid from current state
        """
        with self._lock:
            state = self.state
            transition = None
            if not state.torn_down:
                transition = TransitionTable.get_transition(state.phase, state.current_step, command)
            if transition is None:
                raise InvalidCommand(command.value, state.phase, state.current_step)

            if transition.action in (Action.PLAN, Action.FINALIZE):
                state.options = options or WorkflowOptions()

            if transition.phase != state.phase:
                state.phase = transition.phase
                _record_transition(state)

            self._execute_action(state, transition.action, command)
            return state

    def _execute_action(self, state: WorkflowState, action: Action, command: Command) -> None:
        """Execute an action after transition.

        Actions describe WHAT happens after entering a new state.
        This method performs the actual work.
        """
        if action == Action.PLAN:
            self._action_plan(state)
        elif action == Action.FINALIZE:
            self._action_finalize(state)
        elif action == Action.ABORT:
            self._action_abort(state)
        elif action == Action.ADVANCE:
            self._exit_step(state, cancelled=command == Command.CANCEL)
            self._advance(state)
        elif action == Action.RETRY:
            self._action_retry(state)

    def _action_plan(self, state: WorkflowState) -> None:
        """Build the step sequence once and enter its first step."""
        state.sequence = build_step_sequence(state.options, state.contact_address)
        state.cursor = 0
        plan = ",".join(step.value for step in state.sequence) or "-"
        logger.info(f"Run {state.run_id} confirmed; plan: {plan}")
        self._emit(
            self._event_types().OPTIONS_CONFIRMED,
            state,
            options=state.options,
            metadata={"sequence": plan},
        )
        self._advance(state)

    def _action_finalize(self, state: WorkflowState) -> None:
        """Selection skipped: complete without planning anything."""
        self._emit(self._event_types().SELECTION_SKIPPED, state, options=state.options)
        self._complete(state)

    def _action_abort(self, state: WorkflowState) -> None:
        logger.info(f"Run {state.run_id} aborted during selection")
        self._add_message(state, "Finalization aborted")
        self._emit(self._event_types().WORKFLOW_ABORTED, state)

    def _action_retry(self, state: WorkflowState) -> None:
        step = state.current_step
        state.step_error = None
        self._add_message(state, f"Retrying {step.value}")
        logger.info(f"Run {state.run_id} retrying {step.value}")
        self._perform_step(state, step)

    def _advance(self, state: WorkflowState) -> None:
        """Enter the next planned step, or complete when the plan is exhausted."""
        if state.cursor >= len(state.sequence):
            self._complete(state)
            return

        step = state.sequence[state.cursor]
        state.cursor += 1
        state.current_step = step
        _record_transition(state)
        self._add_message(state, f"Entering {step.value}")
        self._emit(self._event_types().STEP_ENTERED, state)
        self._perform_step(state, step)

    def _complete(self, state: WorkflowState) -> None:
        # Completion reports the options as selected, not what actually ran.
        state.phase = WorkflowPhase.COMPLETED
        state.current_step = None
        _record_transition(state)
        self._add_message(state, "Finalization complete")
        logger.info(f"Run {state.run_id} completed")
        self._emit(self._event_types().WORKFLOW_COMPLETED, state, options=state.options)

    def _perform_step(self, state: WorkflowState, step: StepKind) -> None:
        if step == StepKind.SIGNATURE_REQUEST:
            self._enter_signature_request(state)
        elif step == StepKind.SIGNATURE_STATUS:
            self._enter_signature_status(state)
        elif step == StepKind.PRINT_PREVIEW:
            self._enter_print_preview(state)

    def _enter_signature_request(self, state: WorkflowState) -> None:
        try:
            session_id = self.signature_service.request_signature(
                state.document_id, state.customer_label
            )
        except ServiceError as e:
            self._fail_step(state, StepKind.SIGNATURE_REQUEST, e)
            return
        self.on_signature_requested(session_id)

    def _enter_signature_status(self, state: WorkflowState) -> None:
        session = state.signature_session
        if session is None:
            # The request step was cancelled; there is nothing to wait for.
            logger.info(f"Run {state.run_id} has no signing session; passing signature status")
            self._exit_step(state, cancelled=True)
            self._advance(state)
            return
        run_id = state.run_id

        session_id = session.session_id

        def listener(update: SessionStatusUpdate) -> None:
            self._on_status_update(run_id, update)

        def on_error(error: ServiceError) -> None:
            self._on_status_check_failed(run_id, session_id, error)

        try:
            subscription = self.signature_service.subscribe(session_id, listener, on_error=on_error)
        except ServiceError as e:
            self._fail_step(state, StepKind.SIGNATURE_STATUS, e)
            return

        # The service may have delivered a terminal status synchronously.
        if self._state is not state or state.current_step != StepKind.SIGNATURE_STATUS:
            subscription.cancel()
            return
        self._subscription = subscription
        self._add_message(state, f"Waiting for signature session {session.session_id}")

    def _enter_print_preview(self, state: WorkflowState) -> None:
        try:
            handle = self.rendering_service.fetch_renderable(state.document_id)
        except ServiceError as e:
            self._fail_step(state, StepKind.PRINT_PREVIEW, e)
            return
        state.rendered_document = handle
        self._add_message(state, f"Preview ready: {handle.path}")

    def _on_status_update(self, run_id: str, update: SessionStatusUpdate) -> None:
        with self._lock:
            state = self._state
            if state is None or state.run_id != run_id or state.torn_down:
                self._ignore("status_update", session_id=update.session_id)
                return
            session = state.signature_session
            if (
                state.current_step != StepKind.SIGNATURE_STATUS
                or session is None
                or session.session_id != update.session_id
            ):
                self._ignore("status_update", session_id=update.session_id)
                return

            session.status = update.status
            if update.signed_document_url:
                session.signed_document_url = update.signed_document_url
            self._emit(
                self._event_types().SIGNATURE_STATUS_CHANGED,
                state,
                metadata={"session_id": session.session_id, "status": update.status.value},
            )

            if update.status.is_terminal:
                if update.status != SessionStatus.COMPLETED:
                    logger.info(
                        f"Signature session {session.session_id} ended as {update.status.value}"
                    )
                self.on_signature_settled(update.signed_document_url)

    def _on_status_check_failed(self, run_id: str, session_id: str, error: ServiceError) -> None:
        """A status check failed while waiting. The step stays active; the service keeps checking."""
        with self._lock:
            state = self._state
            if (
                state is None
                or state.run_id != run_id
                or state.torn_down
                or state.current_step != StepKind.SIGNATURE_STATUS
                or state.signature_session is None
                or state.signature_session.session_id != session_id
            ):
                self._ignore("status_check_failed", session_id=session_id)
                return
            self._emit(
                self._event_types().SIGNATURE_STATUS_CHECK_FAILED,
                state,
                metadata={"session_id": session_id, "error": str(error)},
            )

    def _exit_step(self, state: WorkflowState, cancelled: bool) -> None:
        """Leave the current step: release its resources before anything else starts."""
        step = state.current_step
        self._release_step_resources(state)

        session = state.signature_session
        if (
            cancelled
            and step == StepKind.SIGNATURE_STATUS
            and session is not None
            and not session.status.is_terminal
        ):
            try:
                self.signature_service.cancel_session(session.session_id, USER_CANCEL_REASON)
                session.status = SessionStatus.CANCELLED
            except ServiceError as e:
                logger.warning(f"Could not cancel signature session {session.session_id}: {e}")

        state.step_error = None
        self._emit(self._event_types().STEP_EXITED, state, metadata={"cancelled": cancelled})
        state.current_step = None

    def _release_step_resources(self, state: WorkflowState) -> None:
        if self._subscription is not None:
            self._subscription.cancel()
            self._subscription = None
        if state.rendered_document is not None:
            state.rendered_document.release()
            state.rendered_document = None

    def _fail_step(self, state: WorkflowState, step: StepKind, error: ServiceError) -> None:
        state.step_error = StepError(step=step, message=str(error), retryable=error.retryable)
        self._add_message(state, f"{step.value} failed: {error}")
        logger.warning(f"Run {state.run_id} step {step.value} failed: {error}")
        self._emit(self._event_types().STEP_FAILED, state, metadata={"error": str(error)})

    def _accepts(self, command: Command) -> bool:
        state = self._state
        if state is None or state.torn_down:
            return False
        return TransitionTable.get_transition(state.phase, state.current_step, command) is not None

    # ========================================================================
    # Helper Methods
    # ========================================================================

    def _ignore(self, callback: str, **details: Any) -> None:
        state = self._state
        where = "no run" if state is None else f"{state.phase.value}/{state.current_step}"
        logger.debug(f"Ignoring stale {callback} callback in {where}: {details}")

    def _add_message(self, state: WorkflowState, message: str) -> None:
        """Add a progress message to the state."""
        state.messages.append(message)

    def _event_types(self) -> "type[WorkflowEventType]":
        from finwf.domain.events.event_types import WorkflowEventType
        return WorkflowEventType

    def _emit(
        self,
        event_type: "WorkflowEventType",
        state: WorkflowState,
        **kwargs: Any,
    ) -> None:
        """Emit a workflow event with common fields."""
        from finwf.domain.events.event import WorkflowEvent

        self.event_emitter.emit(
            WorkflowEvent(
                event_type=event_type,
                run_id=state.run_id,
                document_id=state.document_id,
                timestamp=datetime.now(timezone.utc),
                phase=state.phase,
                step=state.current_step,
                **kwargs,
            )
        )


def _record_transition(state: WorkflowState) -> None:
    state.phase_history.append(PhaseTransition(phase=state.phase, step=state.current_step))


def _build_initial_state(
    *,
    run_id: str,
    document_id: str,
    contact_address: str | None,
    customer_label: str,
) -> WorkflowState:
    """Build the initial `WorkflowState` for a new run.

    Initializes the run in phase = WorkflowPhase.SELECTION with an empty plan
    and seeds `phase_history` with that entry. Performs no I/O.
    """
    return WorkflowState(
        run_id=run_id,
        document_id=document_id,
        contact_address=contact_address,
        customer_label=customer_label,
        phase=WorkflowPhase.SELECTION,
        phase_history=[PhaseTransition(phase=WorkflowPhase.SELECTION)],
    )
