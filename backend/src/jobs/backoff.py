"""Retry delay computation.

Linear backoff: the n-th retry waits n backoff units, capped at a maximum.
The delay never decreases as attempts grow.
"""

from datetime import timedelta


def compute_backoff(attempts: int, unit_seconds: int = 10, max_seconds: int = 3600) -> timedelta:
    """Delay before the next attempt.

    Args:
        attempts: Attempt count after incrementing for this failure (>= 1)
        unit_seconds: Seconds per attempt
        max_seconds: Upper bound on the delay

    Returns:
        timedelta to add to now for next_attempt_at
    """
    seconds = max(attempts, 1) * unit_seconds
    return timedelta(seconds=min(seconds, max_seconds))
