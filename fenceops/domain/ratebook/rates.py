"""Plain rate values handed to the pricer, decoupled from the ORM rows"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class ZoneRate:
    zone_id: Optional[int]
    zone_name: str
    base_multiplier: float
    labor_rate_hourly: float
    material_markup: float
    market_demand: str
    competition_level: str

    @classmethod
    def from_model(cls, zone) -> "ZoneRate":
        return cls(
            zone_id=zone.id,
            zone_name=zone.zone_name,
            base_multiplier=zone.base_multiplier,
            labor_rate_hourly=zone.labor_rate_hourly,
            material_markup=zone.material_markup,
            market_demand=zone.market_demand,
            competition_level=zone.competition_level,
        )


@dataclass(frozen=True)
class PropertyRate:
    type_name: str
    base_price: float
    per_foot_price: float
    difficulty_multiplier: float
    typical_install_hours: float

    @classmethod
    def from_model(cls, property_type) -> "PropertyRate":
        return cls(
            type_name=property_type.type_name,
            base_price=property_type.base_price,
            per_foot_price=property_type.per_foot_price,
            difficulty_multiplier=property_type.difficulty_multiplier,
            typical_install_hours=property_type.typical_install_hours,
        )


@dataclass(frozen=True)
class TerrainRate:
    terrain_type: str
    difficulty_multiplier: float
    additional_hours: float

    @classmethod
    def from_model(cls, terrain) -> "TerrainRate":
        return cls(
            terrain_type=terrain.terrain_type,
            difficulty_multiplier=terrain.difficulty_multiplier,
            additional_hours=terrain.additional_hours,
        )


@dataclass(frozen=True)
class DistanceTierRate:
    min_miles: float
    max_miles: float
    trip_charge: float
    per_mile_charge: float

    def charge_for(self, miles: float) -> float:
        return self.trip_charge + miles * self.per_mile_charge


@dataclass(frozen=True)
class DistanceCharge:
    miles: float
    amount: float
    tier: Optional[DistanceTierRate]
    is_default: bool


@dataclass(frozen=True)
class NearestCenter:
    center_id: int
    name: str
    distance_miles: float
    max_service_radius_miles: float

    @property
    def within_service_radius(self) -> bool:
        return self.distance_miles <= self.max_service_radius_miles


# Conservative fallbacks when the tenant's ratebook has no match
DEFAULT_ZONE = ZoneRate(
    zone_id=None,
    zone_name="Default",
    base_multiplier=1.0,
    labor_rate_hourly=35.0,
    material_markup=1.2,
    market_demand="normal",
    competition_level="moderate",
)

DEFAULT_PROPERTY_TYPE = PropertyRate(
    type_name="Standard Residential",
    base_price=2500.0,
    per_foot_price=0.50,
    difficulty_multiplier=1.0,
    typical_install_hours=4.0,
)

DEFAULT_TERRAIN = TerrainRate(terrain_type="Flat/Easy", difficulty_multiplier=1.0, additional_hours=0.0)
