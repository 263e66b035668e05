"""Unit tests for building NormalizedVehicle snapshots from inventory."""

from uuid import uuid4

import pydantic
import pytest

from portals.errors import NotFoundError, ValidationError
from vehicles.normalizer import build_normalized_vehicle, load_vehicle


class TestLoadVehicle:

    def test_loads_by_id(self, db_session, make_vehicle):
        vehicle = make_vehicle()
        assert load_vehicle(db_session, vehicle.id).id == vehicle.id

    def test_scoped_to_tenant(self, db_session, make_vehicle):
        vehicle = make_vehicle()
        with pytest.raises(NotFoundError):
            load_vehicle(db_session, vehicle.id, tenant_id=uuid4())

    def test_missing_vehicle(self, db_session):
        with pytest.raises(NotFoundError):
            load_vehicle(db_session, uuid4())


class TestBuildNormalizedVehicle:

    def test_maps_inventory_fields(self, make_vehicle):
        vehicle = make_vehicle(title="Corolla XEi impecável")
        snapshot = build_normalized_vehicle(vehicle)

        assert snapshot.id == str(vehicle.id)
        assert snapshot.tenant_id == str(vehicle.tenant_id)
        assert snapshot.title == "Corolla XEi impecável"
        assert snapshot.price == 45000.0
        assert snapshot.fuel == "flex"
        assert snapshot.transmission == "automatic"
        assert snapshot.features == ["air_conditioning", "power_steering"]
        assert snapshot.content_version == vehicle.updated_at.isoformat()

    def test_title_falls_back_to_brand_and_model(self, make_vehicle):
        snapshot = build_normalized_vehicle(make_vehicle(title=None))
        assert snapshot.title == "Toyota Corolla"

    def test_first_photo_becomes_cover(self, make_vehicle):
        snapshot = build_normalized_vehicle(make_vehicle(photos=3))

        assert [m.is_cover for m in snapshot.media] == [True, False, False]
        assert snapshot.cover.url.endswith("/0.jpg")

    def test_flagged_cover_is_kept(self, make_vehicle):
        snapshot = build_normalized_vehicle(make_vehicle(photos=3, cover_index=2))

        assert snapshot.cover.url.endswith("/2.jpg")
        assert [m.is_cover for m in snapshot.media] == [False, False, True]

    def test_media_keeps_inventory_order(self, make_vehicle):
        snapshot = build_normalized_vehicle(make_vehicle(photos=3))
        assert [m.url.rsplit("/", 1)[-1] for m in snapshot.media] == ["0.jpg", "1.jpg", "2.jpg"]

    def test_no_photos_is_validation_error(self, make_vehicle):
        with pytest.raises(ValidationError) as exc_info:
            build_normalized_vehicle(make_vehicle(photos=0))
        assert any(v.startswith("media") for v in exc_info.value.violations)

    def test_unknown_fuel_is_validation_error(self, make_vehicle):
        with pytest.raises(ValidationError) as exc_info:
            build_normalized_vehicle(make_vehicle(fuel="steam"))
        assert any(v.startswith("fuel") for v in exc_info.value.violations)

    def test_snapshot_is_immutable(self, make_vehicle):
        snapshot = build_normalized_vehicle(make_vehicle())
        with pytest.raises(pydantic.ValidationError):
            snapshot.price = 1
