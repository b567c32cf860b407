"""Ratebook repository - Database operations for pricing reference data"""

from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ...models import DistanceTier, PricingZone, PropertyType, ServiceCenter, TerrainModifier


class RatebookRepository:
    """Repository for zone, property type, terrain, distance tier and service center rows"""

    # Zones
    @staticmethod
    def get_zone_by_zip(db: Session, tenant_id: str, zip_code: str) -> Optional[PricingZone]:
        return (
            db.query(PricingZone)
            .filter(PricingZone.tenant_id == tenant_id, PricingZone.zip_code == zip_code)
            .order_by(PricingZone.id)
            .first()
        )

    @staticmethod
    def get_zone_by_city_state(db: Session, tenant_id: str, city: str, state: str) -> Optional[PricingZone]:
        return (
            db.query(PricingZone)
            .filter(
                PricingZone.tenant_id == tenant_id,
                func.lower(PricingZone.city) == city.strip().lower(),
                PricingZone.state == state,
            )
            .order_by(PricingZone.id)
            .first()
        )

    @staticmethod
    def get_statewide_zone(db: Session, tenant_id: str, state: str) -> Optional[PricingZone]:
        """Rural fallback zone: the state row with no city"""
        return (
            db.query(PricingZone)
            .filter(
                PricingZone.tenant_id == tenant_id,
                PricingZone.state == state,
                PricingZone.city.is_(None),
            )
            .order_by(PricingZone.id)
            .first()
        )

    @staticmethod
    def get_zone_by_id(db: Session, tenant_id: str, zone_id: int) -> Optional[PricingZone]:
        return (
            db.query(PricingZone)
            .filter(PricingZone.tenant_id == tenant_id, PricingZone.id == zone_id)
            .first()
        )

    @staticmethod
    def list_zones(db: Session, tenant_id: str, state: Optional[str] = None) -> list[PricingZone]:
        query = db.query(PricingZone).filter(PricingZone.tenant_id == tenant_id)
        if state:
            query = query.filter(PricingZone.state == state)
        return query.order_by(PricingZone.state, PricingZone.zone_name).all()

    @staticmethod
    def update_zone(db: Session, zone: PricingZone, **updates) -> PricingZone:
        for key, value in updates.items():
            if value is not None and hasattr(zone, key):
                setattr(zone, key, value)

        db.commit()
        db.refresh(zone)
        return zone

    # Property types / terrain
    @staticmethod
    def get_property_type(db: Session, tenant_id: str, type_name: str) -> Optional[PropertyType]:
        return (
            db.query(PropertyType)
            .filter(
                PropertyType.tenant_id == tenant_id,
                func.lower(PropertyType.type_name) == type_name.strip().lower(),
            )
            .first()
        )

    @staticmethod
    def list_property_types(db: Session, tenant_id: str) -> list[PropertyType]:
        return (
            db.query(PropertyType)
            .filter(PropertyType.tenant_id == tenant_id)
            .order_by(PropertyType.base_price)
            .all()
        )

    @staticmethod
    def get_terrain(db: Session, tenant_id: str, terrain_type: str) -> Optional[TerrainModifier]:
        return (
            db.query(TerrainModifier)
            .filter(
                TerrainModifier.tenant_id == tenant_id,
                func.lower(TerrainModifier.terrain_type) == terrain_type.strip().lower(),
            )
            .first()
        )

    @staticmethod
    def list_terrains(db: Session, tenant_id: str) -> list[TerrainModifier]:
        return (
            db.query(TerrainModifier)
            .filter(TerrainModifier.tenant_id == tenant_id)
            .order_by(TerrainModifier.difficulty_multiplier)
            .all()
        )

    # Distance tiers
    @staticmethod
    def list_distance_tiers(db: Session, tenant_id: str) -> list[DistanceTier]:
        return (
            db.query(DistanceTier)
            .filter(DistanceTier.tenant_id == tenant_id)
            .order_by(DistanceTier.min_miles)
            .all()
        )

    @staticmethod
    def replace_distance_tiers(db: Session, tenant_id: str, tiers: list[dict]) -> list[DistanceTier]:
        """Swap the whole tier table in one transaction"""
        try:
            db.query(DistanceTier).filter(DistanceTier.tenant_id == tenant_id).delete(
                synchronize_session=False
            )
            rows = [DistanceTier(tenant_id=tenant_id, **tier) for tier in tiers]
            db.add_all(rows)
            db.commit()
        except Exception:
            db.rollback()
            raise
        return RatebookRepository.list_distance_tiers(db, tenant_id)

    # Service centers
    @staticmethod
    def list_active_service_centers(db: Session, tenant_id: str) -> list[ServiceCenter]:
        return (
            db.query(ServiceCenter)
            .filter(ServiceCenter.tenant_id == tenant_id, ServiceCenter.is_active.is_(True))
            .order_by(ServiceCenter.id)
            .all()
        )
