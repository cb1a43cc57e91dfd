"""Pure state transition rules for the task execution lifecycle."""

from src.core.errors import ConflictError
from src.domain.execution import REFUND_STATUSES, ExecutionStatus


# Transitions reachable through an explicit operation. COVERED is only ever
# set as a side effect of another execution's completion.
VALID_TRANSITIONS: dict[ExecutionStatus, set[ExecutionStatus]] = {
    ExecutionStatus.TODO: {ExecutionStatus.DONE, ExecutionStatus.CANCELLED},
    ExecutionStatus.DONE: {ExecutionStatus.REFUNDED, ExecutionStatus.PARTIALLY_REFUNDED},
    ExecutionStatus.COVERED: set(),
    ExecutionStatus.CANCELLED: set(),
    ExecutionStatus.REFUNDED: set(),
    ExecutionStatus.PARTIALLY_REFUNDED: set(),
}

# No ordinary edits once an execution reaches one of these
TERMINAL_STATUSES = frozenset({ExecutionStatus.CANCELLED}) | REFUND_STATUSES


def can_transition(current: ExecutionStatus, target: ExecutionStatus) -> bool:
    return target in VALID_TRANSITIONS.get(current, set())


def ensure_transition(current: ExecutionStatus, target: ExecutionStatus) -> None:
    """Raise ConflictError unless current -> target is an allowed transition."""
    if not can_transition(current, target):
        msg = f"Cannot move execution from {current} to {target}"
        raise ConflictError(msg)


def is_terminal(status: ExecutionStatus) -> bool:
    return status in TERMINAL_STATUSES
