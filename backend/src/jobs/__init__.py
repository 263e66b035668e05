"""Integration job queue: enqueue, claim and outcome transitions."""

from .backoff import compute_backoff
from .idempotency import build_idempotency_key
from .queue import IdempotencyConflictError, JobQueue
from .status import (
    ALLOWED_TRANSITIONS,
    StateTransitionError,
    can_transition,
    is_terminal,
    validate_transition,
)

__all__ = [
    "compute_backoff",
    "build_idempotency_key",
    "IdempotencyConflictError",
    "JobQueue",
    "ALLOWED_TRANSITIONS",
    "StateTransitionError",
    "can_transition",
    "is_terminal",
    "validate_transition",
]
