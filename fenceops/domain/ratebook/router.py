"""Ratebook router - FastAPI endpoints for pricing reference data"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...database import get_db
from ...seed import seed_reference_data
from ...tenancy import get_tenant_id
from .schemas import (
    DistanceChargeResponse,
    DistanceTierReplace,
    DistanceTierResponse,
    PropertyTypeResponse,
    TerrainResponse,
    ZoneResolution,
    ZoneResponse,
    ZoneUpdate,
)
from .service import ZoneRatebook

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ratebook", tags=["Ratebook"])


def get_ratebook(
    db: Session = Depends(get_db),
    tenant_id: str = Depends(get_tenant_id),
) -> ZoneRatebook:
    """Dependency injection for ZoneRatebook"""
    return ZoneRatebook(db, tenant_id)


@router.post("/seed")
async def seed_ratebook(
    db: Session = Depends(get_db),
    tenant_id: str = Depends(get_tenant_id),
):
    """Load the default ratebook, discount rules and approval rules (skips tables that have data)"""
    inserted = seed_reference_data(db, tenant_id)
    return {"tenant_id": tenant_id, "inserted": inserted}


# ============================================================================
# ZONES
# ============================================================================


@router.get("/zones", response_model=list[ZoneResponse])
async def list_zones(
    state: Optional[str] = Query(None),
    ratebook: ZoneRatebook = Depends(get_ratebook),
):
    return ratebook.list_zones(state)


@router.get("/zones/resolve", response_model=ZoneResolution)
async def resolve_zone(
    zip_code: Optional[str] = Query(None),
    city: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    ratebook: ZoneRatebook = Depends(get_ratebook),
):
    """Show which zone an address prices in, and whether it fell back to the default"""
    resolution = ratebook.resolve_zone(zip_code=zip_code, city=city, state=state)
    zone = resolution.value
    return ZoneResolution(
        zone_id=zone.zone_id,
        zone_name=zone.zone_name,
        matched_by=resolution.matched_by,
        is_default=resolution.is_default,
        base_multiplier=zone.base_multiplier,
        labor_rate_hourly=zone.labor_rate_hourly,
        market_demand=zone.market_demand,
        competition_level=zone.competition_level,
    )


@router.put("/zones/{zone_id}", response_model=ZoneResponse)
async def update_zone(
    zone_id: int,
    data: ZoneUpdate,
    ratebook: ZoneRatebook = Depends(get_ratebook),
):
    return ratebook.update_zone(zone_id, data)


# ============================================================================
# PROPERTY TYPES / TERRAIN
# ============================================================================


@router.get("/property-types", response_model=list[PropertyTypeResponse])
async def list_property_types(ratebook: ZoneRatebook = Depends(get_ratebook)):
    return ratebook.list_property_types()


@router.get("/terrains", response_model=list[TerrainResponse])
async def list_terrains(ratebook: ZoneRatebook = Depends(get_ratebook)):
    return ratebook.list_terrains()


# ============================================================================
# DISTANCE PRICING
# ============================================================================


@router.get("/distance-tiers", response_model=list[DistanceTierResponse])
async def list_distance_tiers(ratebook: ZoneRatebook = Depends(get_ratebook)):
    return ratebook.list_distance_tiers()


@router.put("/distance-tiers", response_model=list[DistanceTierResponse])
async def replace_distance_tiers(
    data: DistanceTierReplace,
    ratebook: ZoneRatebook = Depends(get_ratebook),
):
    """Replace the whole tier table; tiers must be contiguous from 0"""
    return ratebook.replace_distance_tiers(data.tiers)


@router.get("/distance-charge", response_model=DistanceChargeResponse)
async def get_distance_charge(
    miles: float = Query(..., ge=0),
    ratebook: ZoneRatebook = Depends(get_ratebook),
):
    charge = ratebook.resolve_distance_charge(miles)
    return DistanceChargeResponse(
        miles=charge.miles,
        charge=charge.amount,
        tier_min_miles=charge.tier.min_miles if charge.tier else None,
        tier_max_miles=charge.tier.max_miles if charge.tier else None,
        is_default=charge.is_default,
    )
