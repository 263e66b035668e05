"""Unit tests for job status transitions, backoff and idempotency keys."""

from datetime import timedelta
from uuid import uuid4

import pytest

from jobs.backoff import compute_backoff
from jobs.idempotency import build_idempotency_key
from jobs.status import (
    StateTransitionError,
    can_transition,
    get_allowed_transitions,
    is_terminal,
    validate_transition,
)
from models import IntegrationJobStatus, IntegrationJobType


class TestJobStatusTransitions:

    @pytest.mark.parametrize("current, new", [
        (IntegrationJobStatus.PENDING, IntegrationJobStatus.PROCESSING),
        (IntegrationJobStatus.PENDING, IntegrationJobStatus.CANCELLED),
        (IntegrationJobStatus.PROCESSING, IntegrationJobStatus.COMPLETED),
        (IntegrationJobStatus.PROCESSING, IntegrationJobStatus.FAILED),
        (IntegrationJobStatus.PROCESSING, IntegrationJobStatus.PENDING),
        (IntegrationJobStatus.PROCESSING, IntegrationJobStatus.CANCELLED),
        (IntegrationJobStatus.PROCESSING, IntegrationJobStatus.PROCESSING),
    ])
    def test_allowed(self, current, new):
        validate_transition(current, new)
        assert can_transition(current, new)

    @pytest.mark.parametrize("current, new", [
        (IntegrationJobStatus.PENDING, IntegrationJobStatus.COMPLETED),
        (IntegrationJobStatus.PENDING, IntegrationJobStatus.FAILED),
        (IntegrationJobStatus.COMPLETED, IntegrationJobStatus.PENDING),
        (IntegrationJobStatus.FAILED, IntegrationJobStatus.PENDING),
        (IntegrationJobStatus.CANCELLED, IntegrationJobStatus.PROCESSING),
    ])
    def test_rejected(self, current, new):
        with pytest.raises(StateTransitionError):
            validate_transition(current, new)
        assert not can_transition(current, new)

    def test_accepts_string_values(self):
        validate_transition("processing", "completed")

    def test_terminal_statuses(self):
        assert is_terminal(IntegrationJobStatus.COMPLETED)
        assert is_terminal(IntegrationJobStatus.FAILED)
        assert is_terminal(IntegrationJobStatus.CANCELLED)
        assert not is_terminal(IntegrationJobStatus.PENDING)
        assert not is_terminal(IntegrationJobStatus.PROCESSING)
        assert get_allowed_transitions(IntegrationJobStatus.FAILED) == []


class TestBackoff:

    def test_linear_in_attempts(self):
        assert compute_backoff(1) == timedelta(seconds=10)
        assert compute_backoff(2) == timedelta(seconds=20)
        assert compute_backoff(3) == timedelta(seconds=30)

    def test_custom_unit(self):
        assert compute_backoff(4, unit_seconds=5) == timedelta(seconds=20)

    def test_capped(self):
        assert compute_backoff(1000, unit_seconds=10, max_seconds=600) == timedelta(seconds=600)

    def test_non_decreasing(self):
        delays = [compute_backoff(n, unit_seconds=10, max_seconds=95) for n in range(1, 20)]
        assert all(later >= earlier for earlier, later in zip(delays, delays[1:]))


class TestIdempotencyKey:

    def test_deterministic(self):
        vehicle_id = uuid4()
        assert build_idempotency_key(vehicle_id, "olx", "publish", "v1") == \
            build_idempotency_key(vehicle_id, "olx", "publish", "v1")

    def test_sha256_hex(self):
        key = build_idempotency_key(uuid4(), "olx", "publish")
        assert len(key) == 64
        int(key, 16)

    def test_accepts_enum_action(self):
        vehicle_id = uuid4()
        assert build_idempotency_key(vehicle_id, "olx", IntegrationJobType.PUBLISH, "v1") == \
            build_idempotency_key(vehicle_id, "olx", "publish", "v1")

    @pytest.mark.parametrize("change", ["vehicle", "portal", "action", "version"])
    def test_each_component_changes_key(self, change):
        vehicle_id = uuid4()
        base = dict(vehicle_id=vehicle_id, portal_code="olx", action="publish", content_version="v1")
        other = dict(base)
        if change == "vehicle":
            other["vehicle_id"] = uuid4()
        elif change == "portal":
            other["portal_code"] = "demo"
        elif change == "action":
            other["action"] = "update"
        else:
            other["content_version"] = "v2"
        assert build_idempotency_key(**base) != build_idempotency_key(**other)
