from enum import Enum
from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from finwf.domain.models.rendered_document import RenderedDocumentHandle
from finwf.domain.models.session_status import SessionStatus


class WorkflowPhase(str, Enum):
    """Workflow phase - WHERE the run is in its lifecycle."""

    SELECTION = "selection"  # Waiting for the user to pick follow-up actions
    RUNNING = "running"      # Executing the planned step sequence
    COMPLETED = "completed"  # Sequence exhausted or selection skipped
    ABORTED = "aborted"      # User backed out of selection


class StepKind(str, Enum):
    """Sub-steps a run may plan. Order within a sequence is fixed by the planner."""

    SIGNATURE_REQUEST = "signature_request"  # Open a signing session
    SIGNATURE_STATUS = "signature_status"    # Wait for the session to settle
    PRINT_PREVIEW = "print_preview"          # Show the rendered document


TERMINAL_PHASES = frozenset({WorkflowPhase.COMPLETED, WorkflowPhase.ABORTED})


class WorkflowOptions(BaseModel):
    """Follow-up actions chosen by the user. Immutable once confirmed."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    collect_signature: bool = False
    show_print_preview: bool = False


class SignatureSession(BaseModel):
    """A live signing interaction, identified by an opaque service session id."""

    session_id: str
    document_id: str
    status: SessionStatus = SessionStatus.PENDING
    signed_document_url: str | None = None

    @field_validator("session_id")
    @classmethod
    def _session_id_non_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("session_id must be non-empty")
        return v


class StepError(BaseModel):
    """Step-local failure surfaced to the user (retry or cancel forward)."""

    model_config = ConfigDict(frozen=True)

    step: StepKind
    message: str
    retryable: bool = True


class PhaseTransition(BaseModel):
    """Record of a phase/step change."""

    phase: WorkflowPhase
    step: StepKind | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class WorkflowHandle(BaseModel):
    """Identity of a started run, returned to the caller by `start()`."""

    model_config = ConfigDict(frozen=True)

    run_id: str
    document_id: str
    contact_address: str | None = None
    customer_label: str = ""


class WorkflowState(BaseModel):
    """Complete in-memory state of one finalization run."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    # Identity
    run_id: str
    document_id: str
    contact_address: str | None = None
    customer_label: str = ""

    # Plan
    phase: WorkflowPhase = WorkflowPhase.SELECTION
    options: WorkflowOptions | None = None   # Set once at confirm/skip
    sequence: tuple[StepKind, ...] = ()      # Set once at confirm
    cursor: int = 0                          # Index of the next step to enter
    current_step: StepKind | None = None

    # Step-owned references (not owned by the state)
    signature_session: SignatureSession | None = None
    rendered_document: RenderedDocumentHandle | None = Field(default=None, exclude=True)

    # Error tracking
    step_error: StepError | None = None

    # Lifecycle
    torn_down: bool = False
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    phase_history: list[PhaseTransition] = Field(default_factory=list)

    # Transient progress messages (excluded from serialization)
    messages: list[str] = Field(default_factory=list, exclude=True)

    @property
    def signature_available(self) -> bool:
        """Signature collection needs somewhere to reach the customer."""
        return self.contact_address is not None

    @property
    def is_terminal(self) -> bool:
        return self.phase in TERMINAL_PHASES

    @model_validator(mode="after")
    def _cursor_within_sequence(self) -> "WorkflowState":
        if not 0 <= self.cursor <= len(self.sequence):
            raise ValueError(
                f"cursor must be within 0..{len(self.sequence)}, got {self.cursor}"
            )
        return self
