"""Pure planning of the finalization step sequence."""

from finwf.domain.models.workflow_state import StepKind, WorkflowOptions


def build_step_sequence(
    options: WorkflowOptions,
    contact_address: str | None,
) -> tuple[StepKind, ...]:
    """Build the ordered, immutable step plan for a run.

    Signature collection always precedes print preview. Signature steps are
    only planned when a contact address is present; a checked signature box
    without one is recorded in the options but never executed.
    """
    sequence: list[StepKind] = []
    if options.collect_signature and contact_address:
        sequence += [StepKind.SIGNATURE_REQUEST, StepKind.SIGNATURE_STATUS]
    if options.show_print_preview:
        sequence.append(StepKind.PRINT_PREVIEW)
    return tuple(sequence)
