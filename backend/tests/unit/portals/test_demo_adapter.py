"""Unit tests for the in-memory demo portal adapter."""

import pytest

from portals.errors import NotFoundError, TransportError
from portals.implementations import DemoAdapter, DemoPortal
from vehicles.schemas import MediaItem, NormalizedVehicle


def make_snapshot(**overrides) -> NormalizedVehicle:
    data = dict(
        id="vehicle-1",
        tenant_id="tenant-1",
        brand="Toyota",
        model="Corolla",
        year_manufacture=2021,
        year_model=2022,
        price=45000,
        fuel="flex",
        transmission="automatic",
        title="Toyota Corolla",
        description="Well maintained sedan, single owner.",
        media=[MediaItem(url="https://cdn.example.com/1.jpg", is_cover=True)],
    )
    data.update(overrides)
    return NormalizedVehicle(**data)


@pytest.fixture
def portal():
    return DemoPortal(start_id=123)


@pytest.fixture
def adapter(portal):
    return DemoAdapter(portal)


class TestDemoRules:

    def test_eligible_vehicle(self, adapter):
        assert adapter.validate(make_snapshot()) == []

    def test_short_description(self, adapter):
        violations = adapter.validate(make_snapshot(description="Too short"))
        assert violations == ["Demo Portal requires a description of at least 20 characters"]

    def test_low_price(self, adapter):
        violations = adapter.validate(make_snapshot(price=500))
        assert violations == ["Invalid price for Demo Portal (minimum 1000)"]

    def test_missing_price(self, adapter):
        assert len(adapter.validate(make_snapshot(price=None))) == 1

    def test_collects_every_violation(self, adapter):
        violations = adapter.validate(make_snapshot(description="short", price=10))
        assert len(violations) == 2

    def test_rules_are_configurable(self, portal):
        strict = DemoAdapter(portal, min_description_length=100, min_photos=3, min_price=None)
        violations = strict.validate(make_snapshot(price=None))
        assert len(violations) == 2

    def test_validate_makes_no_portal_calls(self, adapter, portal):
        adapter.validate(make_snapshot(description="short"))
        assert portal.calls == []


class TestDemoOperations:

    def test_publish_allocates_sequential_ids(self, adapter):
        first = adapter.publish(make_snapshot())
        second = adapter.publish(make_snapshot(id="vehicle-2"))

        assert (first.external_id, first.external_url) == ("demo-123", "https://demo/123")
        assert (second.external_id, second.external_url) == ("demo-124", "https://demo/124")

    def test_publish_records_idempotency_key(self, adapter, portal):
        adapter.publish(make_snapshot(), idempotency_key="key-1")
        assert portal.listings["demo-123"]["idempotency_key"] == "key-1"

    def test_replayed_publish_returns_existing_listing(self, adapter, portal):
        first = adapter.publish(make_snapshot(), idempotency_key="key-1")
        replay = adapter.publish(make_snapshot(), idempotency_key="key-1")
        other = adapter.publish(make_snapshot(), idempotency_key="key-2")

        assert (replay.external_id, replay.external_url) == (first.external_id, first.external_url)
        assert other.external_id == "demo-124"
        assert sorted(portal.listings) == ["demo-123", "demo-124"]

    def test_publish_without_key_always_creates(self, adapter, portal):
        adapter.publish(make_snapshot())
        adapter.publish(make_snapshot())
        assert len(portal.listings) == 2

    def test_pause_then_sync(self, adapter):
        external_id = adapter.publish(make_snapshot()).external_id
        adapter.pause(external_id)

        result = adapter.sync_status(external_id)
        assert result.status == "paused"
        assert result.is_active is False

    def test_remove(self, adapter, portal):
        external_id = adapter.publish(make_snapshot()).external_id
        adapter.remove(external_id)

        assert external_id not in portal.listings
        with pytest.raises(NotFoundError):
            adapter.sync_status(external_id)

    def test_unknown_listing(self, adapter):
        with pytest.raises(NotFoundError):
            adapter.pause("demo-999")

    def test_injected_failure_is_consumed(self, adapter, portal):
        portal.fail_next("publish", TransportError("gateway timeout"))

        with pytest.raises(TransportError):
            adapter.publish(make_snapshot())
        assert adapter.publish(make_snapshot()).external_id == "demo-123"

    def test_calls_are_recorded(self, adapter, portal):
        external_id = adapter.publish(make_snapshot()).external_id
        adapter.sync_status(external_id)

        assert portal.calls_for("publish") == ["vehicle-1"]
        assert portal.calls_for("sync_status") == [external_id]
