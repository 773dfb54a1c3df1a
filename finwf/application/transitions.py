"""Declarative state transitions for the finalization workflow.

TransitionTable provides an explicit, table-driven state machine.

Key concepts:
- (phase, step, command) -> TransitionResult
- Work happens AFTER the transition is accepted
- Every RUNNING step only moves forward: success and cancel both ADVANCE
- ADVANCE resolves the target step from the planned sequence; it lands in
  COMPLETED when the sequence is exhausted
"""

from dataclasses import dataclass
from enum import Enum

from finwf.domain.models.workflow_state import StepKind, WorkflowPhase


class Command(str, Enum):
    """Commands accepted by the state machine."""

    CONFIRM = "confirm"
    SKIP = "skip"
    CANCEL = "cancel"
    RETRY = "retry"
    SIGNATURE_REQUESTED = "signature_requested"
    SIGNATURE_SETTLED = "signature_settled"
    PREVIEW_CLOSED = "preview_closed"


class Action(str, Enum):
    """Actions to execute after a transition.

    These describe WHAT happens after the transition, not during.
    """

    PLAN = "plan"          # Build the step sequence and enter its first step
    FINALIZE = "finalize"  # Complete without running a sequence
    ABORT = "abort"        # User backed out of selection
    ADVANCE = "advance"    # Exit the current step and enter the next planned one
    RETRY = "retry"        # Repeat the current step's side effect


@dataclass(frozen=True, slots=True)
class TransitionResult:
    """Result of a state transition.

    Attributes:
        phase: Target workflow phase (RUNNING may still end in COMPLETED on ADVANCE)
        action: Action to execute after transition
    """

    phase: WorkflowPhase
    action: Action


# Type alias for transition table key
_TransitionKey = tuple[WorkflowPhase, StepKind | None, Command]


class TransitionTable:
    """Declarative state machine for finalization transitions.

    Maps (current_phase, current_step, command) -> TransitionResult.

    Usage:
        result = TransitionTable.get_transition(phase, step, command)
        if result is None:
            raise InvalidCommand(...)
        # Update state to result.phase, then execute result.action
    """

    _TRANSITIONS: dict[_TransitionKey, TransitionResult] = {
        # === SELECTION transitions ===
        (WorkflowPhase.SELECTION, None, Command.CONFIRM): TransitionResult(
            WorkflowPhase.RUNNING, Action.PLAN
        ),
        (WorkflowPhase.SELECTION, None, Command.SKIP): TransitionResult(
            WorkflowPhase.COMPLETED, Action.FINALIZE
        ),
        (WorkflowPhase.SELECTION, None, Command.CANCEL): TransitionResult(
            WorkflowPhase.ABORTED, Action.ABORT
        ),

        # === SIGNATURE_REQUEST step ===
        (WorkflowPhase.RUNNING, StepKind.SIGNATURE_REQUEST, Command.SIGNATURE_REQUESTED): TransitionResult(
            WorkflowPhase.RUNNING, Action.ADVANCE
        ),
        (WorkflowPhase.RUNNING, StepKind.SIGNATURE_REQUEST, Command.CANCEL): TransitionResult(
            WorkflowPhase.RUNNING, Action.ADVANCE
        ),
        (WorkflowPhase.RUNNING, StepKind.SIGNATURE_REQUEST, Command.RETRY): TransitionResult(
            WorkflowPhase.RUNNING, Action.RETRY
        ),

        # === SIGNATURE_STATUS step ===
        (WorkflowPhase.RUNNING, StepKind.SIGNATURE_STATUS, Command.SIGNATURE_SETTLED): TransitionResult(
            WorkflowPhase.RUNNING, Action.ADVANCE
        ),
        (WorkflowPhase.RUNNING, StepKind.SIGNATURE_STATUS, Command.CANCEL): TransitionResult(
            WorkflowPhase.RUNNING, Action.ADVANCE
        ),
        (WorkflowPhase.RUNNING, StepKind.SIGNATURE_STATUS, Command.RETRY): TransitionResult(
            WorkflowPhase.RUNNING, Action.RETRY
        ),

        # === PRINT_PREVIEW step ===
        (WorkflowPhase.RUNNING, StepKind.PRINT_PREVIEW, Command.PREVIEW_CLOSED): TransitionResult(
            WorkflowPhase.RUNNING, Action.ADVANCE
        ),
        (WorkflowPhase.RUNNING, StepKind.PRINT_PREVIEW, Command.CANCEL): TransitionResult(
            WorkflowPhase.RUNNING, Action.ADVANCE
        ),
        (WorkflowPhase.RUNNING, StepKind.PRINT_PREVIEW, Command.RETRY): TransitionResult(
            WorkflowPhase.RUNNING, Action.RETRY
        ),
    }

    @classmethod
    def get_transition(
        cls,
        phase: WorkflowPhase,
        step: StepKind | None,
        command: Command,
    ) -> TransitionResult | None:
        """Get the transition result for a command from current state.

        Args:
            phase: Current workflow phase
            step: Current step (None outside RUNNING)
            command: Command to execute

        Returns:
            TransitionResult if valid, None if invalid command
        """
        return cls._TRANSITIONS.get((phase, step, command))

    @classmethod
    def valid_commands(
        cls,
        phase: WorkflowPhase,
        step: StepKind | None,
    ) -> list[Command]:
        """Get list of valid commands from current state."""
        return [
            cmd
            for (p, s, cmd) in cls._TRANSITIONS
            if p == phase and s == step
        ]
