import pytest

from fenceops.domain.ratebook.rates import DEFAULT_ZONE, DistanceTierRate
from fenceops.domain.ratebook.schemas import DistanceTierIn, ZoneUpdate
from fenceops.domain.ratebook.service import ZoneRatebook, validate_distance_tiers
from fenceops.seed import seed_reference_data
from fenceops.shared.exceptions import InvalidRatebookData, NotFoundError

from .conftest import DALLAS, OTHER_TENANT


@pytest.fixture
def ratebook(db, seeded):
    return ZoneRatebook(db, seeded)


class TestResolveZone:
    def test_zip_match(self, ratebook):
        resolution = ratebook.resolve_zone(zip_code="75201")
        assert not resolution.is_default
        assert resolution.matched_by == "zip_code"
        assert resolution.value.zone_name == "Dallas-Fort Worth"
        assert resolution.value.base_multiplier == 1.10

    def test_zip_plus_four_is_normalized(self, ratebook):
        assert ratebook.resolve_zone(zip_code="75201-1234").value.zone_name == "Dallas-Fort Worth"

    def test_city_and_state(self, ratebook):
        resolution = ratebook.resolve_zone(zip_code="75999", city="dallas", state="Texas")
        assert resolution.matched_by == "city_state"
        assert resolution.value.zone_name == "Dallas-Fort Worth"

    def test_state_wide_rural_fallback(self, ratebook):
        resolution = ratebook.resolve_zone(city="Lubbock", state="TX")
        assert resolution.matched_by == "state"
        assert resolution.value.zone_name == "Rural Texas"

    def test_default_zone_when_nothing_matches(self, ratebook):
        resolution = ratebook.resolve_zone(zip_code="00000", city="Nowhere", state="VT")
        assert resolution.is_default
        assert resolution.value == DEFAULT_ZONE
        assert resolution.value.base_multiplier == 1.0

    def test_default_zone_without_any_address(self, ratebook):
        assert ratebook.resolve_zone().is_default

    def test_invalid_state_does_not_raise(self, ratebook):
        assert ratebook.resolve_zone(state="Atlantis").is_default

    def test_zones_are_tenant_scoped(self, db, seeded):
        other = ZoneRatebook(db, OTHER_TENANT)
        assert other.resolve_zone(zip_code="75201").is_default


class TestCategoryLookups:
    def test_known_property_type(self, ratebook):
        resolution = ratebook.resolve_property_type("standard residential")
        assert not resolution.is_default
        assert resolution.value.base_price == 2500

    def test_unknown_property_type_defaults_to_standard(self, ratebook):
        resolution = ratebook.resolve_property_type("Castle")
        assert resolution.is_default
        assert resolution.value.type_name == "Standard Residential"

    def test_unknown_terrain_defaults_to_flat(self, ratebook):
        resolution = ratebook.resolve_terrain("Lava Field")
        assert resolution.is_default
        assert resolution.value.terrain_type == "Flat/Easy"
        assert resolution.value.difficulty_multiplier == 1.0

    def test_known_terrain(self, ratebook):
        resolution = ratebook.resolve_terrain("Steep Terrain")
        assert resolution.value.difficulty_multiplier == 1.35
        assert resolution.value.additional_hours == 2


class TestDistanceTiers:
    def test_every_distance_matches_exactly_one_tier(self, ratebook):
        tiers = ratebook.distance_tiers()
        for tenth in range(0, 1000):
            miles = tenth / 10
            matches = [t for t in tiers if t.min_miles <= miles < t.max_miles]
            assert len(matches) == 1, miles
            assert ratebook.resolve_distance_tier(miles).value == matches[0]

    def test_charge_never_decreases_with_distance(self, ratebook):
        previous = -1.0
        for quarter in range(0, 600):
            charge = ratebook.resolve_distance_charge(quarter / 4).amount
            assert charge >= previous
            previous = charge

    def test_beyond_last_tier_uses_last_tier(self, ratebook):
        charge = ratebook.resolve_distance_charge(120)
        assert charge.tier.min_miles == 75
        assert charge.amount == pytest.approx(150 + 120 * 3.0)

    def test_tier_boundaries_are_half_open(self, ratebook):
        assert ratebook.resolve_distance_charge(9.99).amount == 0
        assert ratebook.resolve_distance_charge(10).amount == pytest.approx(25 + 10 * 1.5)

    def test_no_tiers_means_zero_charge(self, db):
        charge = ZoneRatebook(db, OTHER_TENANT).resolve_distance_charge(40)
        assert charge.is_default
        assert charge.amount == 0

    def test_replace_validates_contiguity(self, ratebook):
        with pytest.raises(InvalidRatebookData):
            ratebook.replace_distance_tiers(
                [
                    DistanceTierIn(min_miles=0, max_miles=10, trip_charge=0, per_mile_charge=0),
                    DistanceTierIn(min_miles=12, max_miles=30, trip_charge=20, per_mile_charge=1),
                ]
            )
        assert len(ratebook.list_distance_tiers()) == 5

    def test_replace_swaps_the_table(self, ratebook):
        rows = ratebook.replace_distance_tiers(
            [
                DistanceTierIn(min_miles=0, max_miles=20, trip_charge=0, per_mile_charge=0),
                DistanceTierIn(min_miles=20, max_miles=60, trip_charge=40, per_mile_charge=1),
            ]
        )
        assert [(r.min_miles, r.max_miles) for r in rows] == [(0, 20), (20, 60)]
        assert ratebook.resolve_distance_charge(30).amount == pytest.approx(70)


class TestValidateDistanceTiers:
    def test_must_start_at_zero(self):
        with pytest.raises(InvalidRatebookData):
            validate_distance_tiers([DistanceTierRate(5, 10, 0, 0)])

    def test_rejects_overlap(self):
        with pytest.raises(InvalidRatebookData):
            validate_distance_tiers([DistanceTierRate(0, 10, 0, 0), DistanceTierRate(8, 20, 10, 0)])

    def test_rejects_charge_drop_at_boundary(self):
        with pytest.raises(InvalidRatebookData):
            validate_distance_tiers([DistanceTierRate(0, 10, 50, 0), DistanceTierRate(10, 20, 10, 0)])

    def test_accepts_seed_shape(self):
        validate_distance_tiers(
            [
                DistanceTierRate(0, 10, 0, 0),
                DistanceTierRate(10, 25, 25, 1.5),
                DistanceTierRate(25, 50, 50, 2.0),
            ]
        )


class TestServiceCenters:
    def test_nearest_center(self, ratebook):
        center = ratebook.nearest_service_center(*DALLAS)
        assert center.name.startswith("Dallas")
        assert center.distance_miles == pytest.approx(0, abs=0.01)
        assert center.within_service_radius

    def test_far_site_reports_outside_radius(self, ratebook):
        center = ratebook.nearest_service_center(35.4676, -97.5164)  # Oklahoma City
        assert center is not None
        assert not center.within_service_radius


class TestAdministration:
    def test_update_zone(self, ratebook):
        zone = ratebook.list_zones("TX")[0]
        updated = ratebook.update_zone(zone.id, ZoneUpdate(market_demand="LOW", labor_rate_hourly=50))
        assert updated.market_demand == "low"
        assert updated.labor_rate_hourly == 50

    def test_update_zone_rejects_unknown_demand(self, ratebook):
        zone = ratebook.list_zones()[0]
        with pytest.raises(InvalidRatebookData):
            ratebook.update_zone(zone.id, ZoneUpdate(market_demand="frantic"))

    def test_update_unknown_zone(self, ratebook):
        with pytest.raises(NotFoundError):
            ratebook.update_zone(99999, ZoneUpdate(base_multiplier=1.2))

    def test_seed_is_idempotent(self, db, seeded):
        inserted = seed_reference_data(db, seeded)
        assert all(count == 0 for count in inserted.values())
        assert len(ZoneRatebook(db, seeded).list_zones()) == 15
