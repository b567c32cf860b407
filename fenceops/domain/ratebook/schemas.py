"""Ratebook domain schemas - Pydantic models for validation"""

from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ...shared.validators import validate_zipcode


class ZoneResponse(BaseModel):
    id: int
    zone_name: str
    state: str
    city: Optional[str] = None
    zip_code: Optional[str] = None
    base_multiplier: float
    labor_rate_hourly: float
    material_markup: float
    market_demand: str
    competition_level: str
    average_property_size: Optional[int] = None

    class Config:
        from_attributes = True


class ZoneUpdate(BaseModel):
    """Schema for an administrator editing a zone; demand/competition are checked by the service"""

    zone_name: Optional[str] = None
    city: Optional[str] = None
    zip_code: Optional[str] = None
    base_multiplier: Optional[float] = Field(None, gt=0)
    labor_rate_hourly: Optional[float] = Field(None, ge=0)
    material_markup: Optional[float] = Field(None, gt=0)
    market_demand: Optional[str] = None
    competition_level: Optional[str] = None
    average_property_size: Optional[int] = Field(None, gt=0)

    @field_validator("zip_code")
    @classmethod
    def validate_zip(cls, v):
        return validate_zipcode(v)


class ZoneResolution(BaseModel):
    """Which zone an address lands in and how it matched"""

    zone_id: Optional[int] = None
    zone_name: str
    matched_by: str
    is_default: bool
    base_multiplier: float
    labor_rate_hourly: float
    market_demand: str
    competition_level: str


class PropertyTypeResponse(BaseModel):
    id: int
    type_name: str
    base_price: float
    per_foot_price: float
    difficulty_multiplier: float
    typical_install_hours: float
    description: Optional[str] = None

    class Config:
        from_attributes = True


class TerrainResponse(BaseModel):
    id: int
    terrain_type: str
    difficulty_multiplier: float
    additional_hours: float
    description: Optional[str] = None

    class Config:
        from_attributes = True


class DistanceTierIn(BaseModel):
    min_miles: float = Field(..., ge=0)
    max_miles: float = Field(..., gt=0)
    trip_charge: float = Field(0, ge=0)
    per_mile_charge: float = Field(0, ge=0)
    description: Optional[str] = None


class DistanceTierResponse(DistanceTierIn):
    id: int

    class Config:
        from_attributes = True


class DistanceTierReplace(BaseModel):
    tiers: list[DistanceTierIn]


class DistanceChargeResponse(BaseModel):
    miles: float
    charge: float
    tier_min_miles: Optional[float] = None
    tier_max_miles: Optional[float] = None
    is_default: bool
