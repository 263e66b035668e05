"""IntegrationJob status state machine.

State Flow:
    pending → processing → completed|failed|pending (retry)

Lease reclaim: a processing job whose lease expired is claimed again
(processing → processing). Cancellation is allowed from pending and
processing.

Terminal States: completed, failed, cancelled
"""

from typing import List

from models import IntegrationJobStatus


ALLOWED_TRANSITIONS = {
    IntegrationJobStatus.PENDING: [
        IntegrationJobStatus.PROCESSING,
        IntegrationJobStatus.CANCELLED,
    ],
    IntegrationJobStatus.PROCESSING: [
        IntegrationJobStatus.COMPLETED,
        IntegrationJobStatus.FAILED,
        IntegrationJobStatus.PENDING,
        IntegrationJobStatus.CANCELLED,
        IntegrationJobStatus.PROCESSING,
    ],
    IntegrationJobStatus.COMPLETED: [],  # Terminal state
    IntegrationJobStatus.FAILED: [],  # Terminal state
    IntegrationJobStatus.CANCELLED: [],  # Terminal state
}

TERMINAL_STATUSES = frozenset(
    status for status, allowed in ALLOWED_TRANSITIONS.items() if not allowed
)

# Statuses the worker may claim (processing only once its lease expired)
CLAIMABLE_STATUSES = (IntegrationJobStatus.PENDING, IntegrationJobStatus.PROCESSING)


class StateTransitionError(Exception):
    """Raised when an invalid job status transition is attempted."""
    pass


def validate_transition(
    current_status: IntegrationJobStatus,
    new_status: IntegrationJobStatus
) -> None:
    """Validate that a status transition is allowed.

    Args:
        current_status: Current job status
        new_status: Target status

    Raises:
        StateTransitionError: If transition is not allowed
    """
    current_status = IntegrationJobStatus(current_status)
    new_status = IntegrationJobStatus(new_status)
    allowed = ALLOWED_TRANSITIONS.get(current_status, [])
    if new_status not in allowed:
        raise StateTransitionError(
            f"Invalid transition: {current_status.value} -> {new_status.value}. "
            f"Allowed transitions from {current_status.value}: "
            f"{[s.value for s in allowed]}"
        )


def can_transition(
    current_status: IntegrationJobStatus,
    new_status: IntegrationJobStatus
) -> bool:
    """Check if a status transition is allowed without raising."""
    allowed = ALLOWED_TRANSITIONS.get(IntegrationJobStatus(current_status), [])
    return IntegrationJobStatus(new_status) in allowed


def is_terminal(status: IntegrationJobStatus) -> bool:
    return IntegrationJobStatus(status) in TERMINAL_STATUSES


def get_allowed_transitions(status: IntegrationJobStatus) -> List[IntegrationJobStatus]:
    return ALLOWED_TRANSITIONS.get(IntegrationJobStatus(status), [])
