"""
Ratebook service - zone, property, terrain and distance-tier lookups.

Every lookup resolves to a value: a real match comes back as Resolved (with
how it matched), anything else as Defaulted with a conservative fallback.
Pricing never fails on an unknown category.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ...models import DistanceTier, PricingZone, PropertyType, TerrainModifier
from ...shared.enums import CompetitionLevel, MarketDemand
from ...shared.exceptions import InvalidRatebookData, NotFoundError
from ...shared.geo import haversine_miles
from ...shared.resolution import Defaulted, Resolution, Resolved
from ...shared.validators import normalize_state, normalize_zipcode
from .rates import (
    DEFAULT_PROPERTY_TYPE,
    DEFAULT_TERRAIN,
    DEFAULT_ZONE,
    DistanceCharge,
    DistanceTierRate,
    NearestCenter,
    PropertyRate,
    TerrainRate,
    ZoneRate,
)
from .repository import RatebookRepository
from .schemas import DistanceTierIn, ZoneUpdate

logger = logging.getLogger(__name__)


def validate_distance_tiers(tiers: list[DistanceTierRate]) -> None:
    """
    Tiers must start at 0, be contiguous and non-overlapping, and the charge
    must never drop when crossing into the next tier.

    Raises:
        InvalidRatebookData: If any of the above does not hold
    """
    if not tiers:
        raise InvalidRatebookData("At least one distance tier is required")

    ordered = sorted(tiers, key=lambda t: t.min_miles)
    if ordered[0].min_miles != 0:
        raise InvalidRatebookData("First distance tier must start at 0 miles", min_miles=ordered[0].min_miles)

    previous = None
    for tier in ordered:
        if tier.max_miles <= tier.min_miles:
            raise InvalidRatebookData(
                "Distance tier upper bound must be above its lower bound",
                min_miles=tier.min_miles,
                max_miles=tier.max_miles,
            )
        if previous is not None:
            if tier.min_miles != previous.max_miles:
                raise InvalidRatebookData(
                    "Distance tiers must be contiguous",
                    gap_after=previous.max_miles,
                    next_min=tier.min_miles,
                )
            boundary = tier.min_miles
            if tier.charge_for(boundary) < previous.charge_for(boundary):
                raise InvalidRatebookData(
                    "Distance charge may not decrease at a tier boundary",
                    boundary_miles=boundary,
                )
        previous = tier


def _tier_rate(row: DistanceTier) -> DistanceTierRate:
    return DistanceTierRate(
        min_miles=row.min_miles,
        max_miles=row.max_miles,
        trip_charge=row.trip_charge,
        per_mile_charge=row.per_mile_charge,
    )


class ZoneRatebook:
    """Reference-data lookups for one tenant"""

    def __init__(self, db: Session, tenant_id: str):
        self.db = db
        self.tenant_id = tenant_id
        self.repo = RatebookRepository()

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def resolve_zone(
        self,
        zip_code: Optional[str] = None,
        city: Optional[str] = None,
        state: Optional[str] = None,
    ) -> Resolution[ZoneRate]:
        """ZIP, then city+state, then the state's rural zone, then the default zone"""
        zip5 = normalize_zipcode(zip_code)
        try:
            state_code = normalize_state(state)
        except ValueError:
            state_code = None

        if zip5:
            zone = self.repo.get_zone_by_zip(self.db, self.tenant_id, zip5)
            if zone:
                return Resolved(ZoneRate.from_model(zone), "zip_code")

        if city and city.strip() and state_code:
            zone = self.repo.get_zone_by_city_state(self.db, self.tenant_id, city, state_code)
            if zone:
                return Resolved(ZoneRate.from_model(zone), "city_state")

        if state_code:
            zone = self.repo.get_statewide_zone(self.db, self.tenant_id, state_code)
            if zone:
                return Resolved(ZoneRate.from_model(zone), "state")

        reason = f"No pricing zone for zip={zip_code!r} city={city!r} state={state!r}"
        logger.info(f"📍 {reason}, using default zone (tenant {self.tenant_id})")
        return Defaulted(DEFAULT_ZONE, reason)

    def resolve_property_type(self, type_name: Optional[str]) -> Resolution[PropertyRate]:
        if type_name and type_name.strip():
            row = self.repo.get_property_type(self.db, self.tenant_id, type_name)
            if row:
                return Resolved(PropertyRate.from_model(row), "type_name")

        reason = f"Unknown property type {type_name!r}"
        logger.info(f"🏠 {reason}, using {DEFAULT_PROPERTY_TYPE.type_name}")
        return Defaulted(DEFAULT_PROPERTY_TYPE, reason)

    def resolve_terrain(self, terrain_type: Optional[str]) -> Resolution[TerrainRate]:
        if terrain_type and terrain_type.strip():
            row = self.repo.get_terrain(self.db, self.tenant_id, terrain_type)
            if row:
                return Resolved(TerrainRate.from_model(row), "terrain_type")

        reason = f"Unknown terrain {terrain_type!r}"
        logger.info(f"⛰️ {reason}, using {DEFAULT_TERRAIN.terrain_type}")
        return Defaulted(DEFAULT_TERRAIN, reason)

    def distance_tiers(self) -> list[DistanceTierRate]:
        return [_tier_rate(row) for row in self.repo.list_distance_tiers(self.db, self.tenant_id)]

    def resolve_distance_tier(self, miles: float) -> Resolution[Optional[DistanceTierRate]]:
        """Half-open [min, max) match; past the last upper bound the last tier applies"""
        tiers = self.distance_tiers()
        if not tiers:
            return Defaulted(None, "No distance tiers configured")

        for tier in tiers:
            if tier.min_miles <= miles < tier.max_miles:
                return Resolved(tier, "range")

        last = tiers[-1]
        if miles >= last.max_miles:
            return Resolved(last, "beyond_last_tier")

        return Defaulted(None, f"No distance tier covers {miles:.2f} miles")

    def resolve_distance_charge(self, miles: float) -> DistanceCharge:
        miles = max(0.0, miles)
        resolution = self.resolve_distance_tier(miles)
        tier = resolution.value
        if tier is None:
            logger.info(f"🚚 {resolution.reason}, distance charge 0")
            return DistanceCharge(miles=miles, amount=0.0, tier=None, is_default=True)

        return DistanceCharge(
            miles=miles,
            amount=round(tier.charge_for(miles), 2),
            tier=tier,
            is_default=False,
        )

    def nearest_service_center(self, latitude: float, longitude: float) -> Optional[NearestCenter]:
        """Closest active center, whether or not the site is inside its service radius"""
        nearest = None
        for center in self.repo.list_active_service_centers(self.db, self.tenant_id):
            distance = haversine_miles(latitude, longitude, center.latitude, center.longitude)
            if nearest is None or distance < nearest.distance_miles:
                nearest = NearestCenter(
                    center_id=center.id,
                    name=center.name,
                    distance_miles=distance,
                    max_service_radius_miles=center.max_service_radius_miles,
                )
        return nearest

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def list_zones(self, state: Optional[str] = None) -> list[PricingZone]:
        state_code = None
        if state:
            try:
                state_code = normalize_state(state)
            except ValueError as e:
                raise InvalidRatebookData(str(e))
        return self.repo.list_zones(self.db, self.tenant_id, state_code)

    def update_zone(self, zone_id: int, data: ZoneUpdate) -> PricingZone:
        zone = self.repo.get_zone_by_id(self.db, self.tenant_id, zone_id)
        if not zone:
            raise NotFoundError("Pricing zone not found", zone_id=zone_id)

        updates = data.model_dump(exclude_unset=True)
        if updates.get("market_demand") is not None:
            updates["market_demand"] = self._checked_enum(MarketDemand, updates["market_demand"], "market_demand")
        if updates.get("competition_level") is not None:
            updates["competition_level"] = self._checked_enum(
                CompetitionLevel, updates["competition_level"], "competition_level"
            )

        zone = self.repo.update_zone(self.db, zone, **updates)
        logger.info(f"✅ Updated pricing zone {zone.id} ({zone.zone_name}) for tenant {self.tenant_id}")
        return zone

    def list_property_types(self) -> list[PropertyType]:
        return self.repo.list_property_types(self.db, self.tenant_id)

    def list_terrains(self) -> list[TerrainModifier]:
        return self.repo.list_terrains(self.db, self.tenant_id)

    def list_distance_tiers(self) -> list[DistanceTier]:
        return self.repo.list_distance_tiers(self.db, self.tenant_id)

    def replace_distance_tiers(self, tiers: list[DistanceTierIn]) -> list[DistanceTier]:
        validate_distance_tiers(
            [
                DistanceTierRate(
                    min_miles=t.min_miles,
                    max_miles=t.max_miles,
                    trip_charge=t.trip_charge,
                    per_mile_charge=t.per_mile_charge,
                )
                for t in tiers
            ]
        )
        rows = self.repo.replace_distance_tiers(self.db, self.tenant_id, [t.model_dump() for t in tiers])
        logger.info(f"✅ Replaced distance tiers for tenant {self.tenant_id} ({len(rows)} tiers)")
        return rows

    @staticmethod
    def _checked_enum(enum_cls, value: str, field: str) -> str:
        try:
            return enum_cls(value.strip().lower()).value
        except ValueError:
            allowed = ", ".join(member.value for member in enum_cls)
            raise InvalidRatebookData(f"{field} must be one of: {allowed}", field=field, value=value)
