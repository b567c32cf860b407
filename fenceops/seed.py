"""
Reference data for a new tenant.

Seeding is idempotent per table: a table that already holds rows for the
tenant is left alone.
"""

import logging
from datetime import date

from sqlalchemy.orm import Session

from .models import (
    ApprovalRule,
    CompetitorPricing,
    DistanceTier,
    PricingZone,
    PropertyType,
    SchedulingDiscount,
    ServiceCenter,
    TerrainModifier,
)

logger = logging.getLogger(__name__)

PRICING_ZONES = [
    # High-cost markets
    {"zone_name": "San Francisco Bay Area", "state": "CA", "city": "San Francisco", "zip_code": "94102", "base_multiplier": 1.45, "labor_rate_hourly": 65, "market_demand": "high", "competition_level": "high"},
    {"zone_name": "New York Metro", "state": "NY", "city": "New York", "zip_code": "10001", "base_multiplier": 1.40, "labor_rate_hourly": 60, "market_demand": "high", "competition_level": "high"},
    {"zone_name": "Los Angeles", "state": "CA", "city": "Los Angeles", "zip_code": "90001", "base_multiplier": 1.35, "labor_rate_hourly": 55, "market_demand": "high", "competition_level": "high"},
    {"zone_name": "Seattle", "state": "WA", "city": "Seattle", "zip_code": "98101", "base_multiplier": 1.30, "labor_rate_hourly": 52, "market_demand": "high", "competition_level": "moderate"},
    {"zone_name": "Boston", "state": "MA", "city": "Boston", "zip_code": "02101", "base_multiplier": 1.32, "labor_rate_hourly": 54, "market_demand": "high", "competition_level": "high"},
    # Mid-cost markets
    {"zone_name": "Dallas-Fort Worth", "state": "TX", "city": "Dallas", "zip_code": "75201", "base_multiplier": 1.10, "labor_rate_hourly": 42, "market_demand": "high", "competition_level": "moderate"},
    {"zone_name": "Atlanta", "state": "GA", "city": "Atlanta", "zip_code": "30301", "base_multiplier": 1.08, "labor_rate_hourly": 40, "market_demand": "normal", "competition_level": "moderate"},
    {"zone_name": "Phoenix", "state": "AZ", "city": "Phoenix", "zip_code": "85001", "base_multiplier": 1.05, "labor_rate_hourly": 38, "market_demand": "normal", "competition_level": "moderate"},
    {"zone_name": "Denver", "state": "CO", "city": "Denver", "zip_code": "80201", "base_multiplier": 1.15, "labor_rate_hourly": 44, "market_demand": "high", "competition_level": "moderate"},
    {"zone_name": "Austin", "state": "TX", "city": "Austin", "zip_code": "78701", "base_multiplier": 1.18, "labor_rate_hourly": 45, "market_demand": "high", "competition_level": "low"},
    # Lower-cost markets
    {"zone_name": "Kansas City", "state": "MO", "city": "Kansas City", "zip_code": "64101", "base_multiplier": 0.95, "labor_rate_hourly": 35, "market_demand": "normal", "competition_level": "low"},
    {"zone_name": "Columbus", "state": "OH", "city": "Columbus", "zip_code": "43201", "base_multiplier": 0.92, "labor_rate_hourly": 34, "market_demand": "normal", "competition_level": "low"},
    {"zone_name": "Memphis", "state": "TN", "city": "Memphis", "zip_code": "38101", "base_multiplier": 0.88, "labor_rate_hourly": 32, "market_demand": "low", "competition_level": "low"},
    {"zone_name": "Rural Texas", "state": "TX", "city": None, "zip_code": "79901", "base_multiplier": 0.85, "labor_rate_hourly": 30, "market_demand": "low", "competition_level": "low"},
    {"zone_name": "Rural Midwest", "state": "IA", "city": None, "zip_code": "50301", "base_multiplier": 0.82, "labor_rate_hourly": 28, "market_demand": "low", "competition_level": "low"},
]

PROPERTY_TYPES = [
    {"type_name": "Small Residential", "base_price": 1500, "per_foot_price": 0.45, "difficulty_multiplier": 1.0, "typical_install_hours": 3},
    {"type_name": "Standard Residential", "base_price": 2500, "per_foot_price": 0.50, "difficulty_multiplier": 1.0, "typical_install_hours": 4},
    {"type_name": "Large Residential", "base_price": 3500, "per_foot_price": 0.55, "difficulty_multiplier": 1.1, "typical_install_hours": 6},
    {"type_name": "Estate Property", "base_price": 5000, "per_foot_price": 0.60, "difficulty_multiplier": 1.2, "typical_install_hours": 8},
    {"type_name": "Commercial", "base_price": 7500, "per_foot_price": 0.75, "difficulty_multiplier": 1.3, "typical_install_hours": 12},
    {"type_name": "Farm/Ranch", "base_price": 4000, "per_foot_price": 0.35, "difficulty_multiplier": 1.15, "typical_install_hours": 10},
]

TERRAIN_MODIFIERS = [
    {"terrain_type": "Flat/Easy", "difficulty_multiplier": 1.0, "additional_hours": 0},
    {"terrain_type": "Slight Slope", "difficulty_multiplier": 1.1, "additional_hours": 0.5},
    {"terrain_type": "Moderate Hills", "difficulty_multiplier": 1.2, "additional_hours": 1},
    {"terrain_type": "Steep Terrain", "difficulty_multiplier": 1.35, "additional_hours": 2},
    {"terrain_type": "Rocky Ground", "difficulty_multiplier": 1.4, "additional_hours": 2.5},
    {"terrain_type": "Heavily Wooded", "difficulty_multiplier": 1.3, "additional_hours": 1.5},
]

DISTANCE_TIERS = [
    {"min_miles": 0, "max_miles": 10, "trip_charge": 0, "per_mile_charge": 0, "description": "Local, no trip charge"},
    {"min_miles": 10, "max_miles": 25, "trip_charge": 25, "per_mile_charge": 1.50},
    {"min_miles": 25, "max_miles": 50, "trip_charge": 50, "per_mile_charge": 2.00},
    {"min_miles": 50, "max_miles": 75, "trip_charge": 100, "per_mile_charge": 2.50},
    {"min_miles": 75, "max_miles": 100, "trip_charge": 150, "per_mile_charge": 3.00},
]

SERVICE_CENTERS = [
    {"name": "Dallas Main", "address": "123 Main St", "city": "Dallas", "state": "TX", "zip_code": "75201", "latitude": 32.7767, "longitude": -96.7970},
    {"name": "Houston Branch", "address": "456 Oak Ave", "city": "Houston", "state": "TX", "zip_code": "77001", "latitude": 29.7604, "longitude": -95.3698},
    {"name": "Austin Hub", "address": "789 Pine Rd", "city": "Austin", "state": "TX", "zip_code": "78701", "latitude": 30.2672, "longitude": -97.7431},
]

SCHEDULING_DISCOUNTS = [
    {"discount_type": "Same Day Add-On", "family": "cluster", "min_jobs": 1, "max_jobs": 1, "discount_percentage": 0, "discount_fixed_amount": 150, "fuel_savings_share": 1.0, "description": "Added to a route that is already going out"},
    {"discount_type": "Two Job Cluster", "family": "cluster", "min_jobs": 2, "max_jobs": 2, "discount_percentage": 8, "discount_fixed_amount": 0, "fuel_savings_share": 0.6, "description": "Shared route with one other job"},
    {"discount_type": "Three Job Cluster", "family": "cluster", "min_jobs": 3, "max_jobs": 3, "discount_percentage": 12, "discount_fixed_amount": 0, "fuel_savings_share": 0.7, "description": "Shared route with two other jobs"},
    {"discount_type": "Four+ Job Cluster", "family": "cluster", "min_jobs": 4, "max_jobs": 6, "discount_percentage": 18, "discount_fixed_amount": 0, "fuel_savings_share": 0.8, "description": "Full technician day"},
    {"discount_type": "Flex Scheduling", "family": "flexible", "min_jobs": 1, "max_jobs": 6, "discount_percentage": 5, "discount_fixed_amount": 0, "fuel_savings_share": 0.4, "description": "Customer lets us pick the install date"},
]

APPROVAL_RULES = [
    {"rule_name": "High Value Quote Approval", "rule_type": "amount", "threshold_amount": 15000, "approval_level": "manager"},
    {"rule_name": "Extreme Value Quote", "rule_type": "amount", "threshold_amount": 50000, "approval_level": "owner"},
    {"rule_name": "Large Discount Approval", "rule_type": "discount", "threshold_percentage": 20, "approval_level": "manager"},
    {"rule_name": "Massive Discount Approval", "rule_type": "discount", "threshold_percentage": 35, "approval_level": "director"},
    {"rule_name": "Pricing Anomaly Review", "rule_type": "anomaly", "approval_level": "manager"},
    {"rule_name": "Custom Pricing Approval", "rule_type": "custom", "approval_level": "manager"},
]

COMPETITOR_PRICES = [
    {"competitor_name": "PetSafe", "service_area": "Dallas Metro", "base_installation_price": 1299, "monthly_service_price": 49, "property_type": "Standard Residential"},
    {"competitor_name": "DogWatch", "service_area": "Houston Metro", "base_installation_price": 1450, "monthly_service_price": 45, "property_type": "Standard Residential"},
    {"competitor_name": "SportDOG", "service_area": "Austin Metro", "base_installation_price": 1199, "monthly_service_price": 39, "property_type": "Standard Residential"},
]


def _seed_table(db: Session, model, tenant_id: str, rows: list[dict], **extra) -> int:
    existing = db.query(model).filter(model.tenant_id == tenant_id).count()
    if existing:
        return 0
    db.add_all([model(tenant_id=tenant_id, **row, **extra) for row in rows])
    return len(rows)


def seed_reference_data(db: Session, tenant_id: str) -> dict:
    """Insert the default ratebook, discount rules, approval rules and competitor prices"""
    try:
        inserted = {
            "pricing_zones": _seed_table(db, PricingZone, tenant_id, PRICING_ZONES),
            "property_types": _seed_table(db, PropertyType, tenant_id, PROPERTY_TYPES),
            "terrain_modifiers": _seed_table(db, TerrainModifier, tenant_id, TERRAIN_MODIFIERS),
            "distance_pricing": _seed_table(db, DistanceTier, tenant_id, DISTANCE_TIERS),
            "service_centers": _seed_table(db, ServiceCenter, tenant_id, SERVICE_CENTERS),
            "scheduling_discounts": _seed_table(db, SchedulingDiscount, tenant_id, SCHEDULING_DISCOUNTS),
            "approval_rules": _seed_table(db, ApprovalRule, tenant_id, APPROVAL_RULES),
            "competitor_pricing": _seed_table(
                db,
                CompetitorPricing,
                tenant_id,
                COMPETITOR_PRICES,
                pricing_date=date.today(),
                source="market_research",
            ),
        }
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error(f"❌ Seeding reference data failed for tenant {tenant_id}: {e}")
        raise

    logger.info(f"✅ Seeded reference data for tenant {tenant_id}: {inserted}")
    return inserted
