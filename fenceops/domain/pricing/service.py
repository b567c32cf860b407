"""
Quote pricing service.

QuotePricer turns a QuoteRequest into a fully itemized PricedQuote:

    base     = (property.base + perimeter * property.per_foot)
               * zone.multiplier * terrain.multiplier * (1 + 0.1 * (pets - 1))
    labor    = (property.hours + terrain.extra_hours) * zone.labor_rate
    subtotal = base + labor + distance_charge
    total    = subtotal * demand_multiplier[zone.market_demand]

The best scheduling option (if any) is then applied as a single negative
line item. QuoteService persists priced quotes and runs their lifecycle.
"""

import logging
from datetime import date, timedelta
from typing import Optional, Union

from pydantic import ValidationError
from sqlalchemy.orm import Session

from ...config import CLUSTER_RADIUS_MILES, MAX_JOBS_PER_DAY, QUOTE_VALID_DAYS
from ...models import Quote, utcnow
from ...services.geocoding import Geocoder
from ...shared.enums import QuoteStatus, SchedulingOptionType
from ...shared.exceptions import (
    DomainValidationError,
    InvalidQuoteRequest,
    NotFoundError,
    WorkflowStateError,
)
from ..ratebook.service import ZoneRatebook
from ..scheduling.schemas import ClusterCreate
from ..scheduling.service import ClusterScheduler, resolve_window
from .market import analyze_market, demand_multiplier
from .repository import QuoteRepository
from .schemas import (
    LineItem,
    LocationDetail,
    PricedQuote,
    PricingTerms,
    PropertyDetail,
    QuoteRequest,
    QuoteStatusUpdate,
    QuoteTotals,
    ScheduleQuoteRequest,
    ScheduleQuoteResponse,
)

logger = logging.getLogger(__name__)

# Monthly monitoring / service fee per tier
SERVICE_TIERS = {
    "Essentials": 299.0,
    "Professional": 599.0,
    "Enterprise": 999.0,
}
DEFAULT_TIER = "Professional"

PET_SURCHARGE_RATE = 0.10  # per pet beyond the first


def coerce_quote_request(request: Union[QuoteRequest, dict]) -> QuoteRequest:
    """Validate raw input before any pricing happens"""
    if isinstance(request, QuoteRequest):
        return request
    try:
        return QuoteRequest.model_validate(request)
    except ValidationError as e:
        errors = [
            {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
            for err in e.errors()
        ]
        raise InvalidQuoteRequest("Invalid quote request", errors=errors)


def resolve_tier(selected_tier: Optional[str]) -> tuple[str, bool]:
    """Canonical tier name and whether it fell back to the default"""
    if selected_tier:
        for name in SERVICE_TIERS:
            if name.lower() == selected_tier.strip().lower():
                return name, False
    return DEFAULT_TIER, True


def _cents(amount: float) -> float:
    return round(amount, 2)


class QuotePricer:
    """Prices one request against a tenant's ratebook"""

    def __init__(
        self,
        ratebook: ZoneRatebook,
        scheduler: Optional[ClusterScheduler] = None,
        geocoder: Optional[Geocoder] = None,
    ):
        self.ratebook = ratebook
        self.scheduler = scheduler
        self.geocoder = geocoder

    def price(self, request: Union[QuoteRequest, dict], exclude_quote_id: Optional[int] = None) -> PricedQuote:
        request = coerce_quote_request(request)
        warnings: list[str] = []

        # Location
        latitude, longitude, geocoded = request.latitude, request.longitude, False
        if not request.has_coordinates and self.geocoder is not None:
            coords = self.geocoder.geocode(
                zip_code=request.zip_code,
                address=request.address,
                city=request.city,
                state=request.state,
            )
            if coords:
                latitude, longitude = coords
                geocoded = True
            elif request.zip_code or request.address or request.city:
                warnings.append("Address could not be geocoded: no distance charge or route clustering applied")

        zone_resolution = self.ratebook.resolve_zone(request.zip_code, request.city, request.state)
        zone = zone_resolution.value
        if zone_resolution.is_default:
            warnings.append("No pricing zone matched this address: default zone rates applied")

        property_resolution = self.ratebook.resolve_property_type(request.property_type)
        property_rate = property_resolution.value
        if property_resolution.is_default:
            warnings.append(
                f"Unknown property type '{request.property_type}': priced as {property_rate.type_name}"
            )

        terrain_resolution = self.ratebook.resolve_terrain(request.terrain_type)
        terrain = terrain_resolution.value
        if terrain_resolution.is_default:
            warnings.append(f"Unknown terrain '{request.terrain_type}': priced as {terrain.terrain_type}")

        tier, tier_defaulted = resolve_tier(request.selected_tier)
        if tier_defaulted:
            warnings.append(f"Unknown service tier '{request.selected_tier}': {DEFAULT_TIER} applied")
        monthly_service = SERVICE_TIERS[tier]

        # Equipment and perimeter, scaled by zone, terrain and pets
        equipment_cost = property_rate.base_price
        perimeter_cost = request.fence_perimeter * property_rate.per_foot_price
        unscaled = equipment_cost + perimeter_cost
        after_zone = unscaled * zone.base_multiplier
        after_terrain = after_zone * terrain.difficulty_multiplier
        pet_multiplier = 1 + PET_SURCHARGE_RATE * (request.num_pets - 1)
        base_price = after_terrain * pet_multiplier

        labor_hours = property_rate.typical_install_hours + terrain.additional_hours
        labor_cost = labor_hours * zone.labor_rate_hourly

        # Distance from the nearest service center
        distance_charge = 0.0
        center = None
        if latitude is not None and longitude is not None:
            center = self.ratebook.nearest_service_center(latitude, longitude)
            if center is None:
                warnings.append("No active service center: distance charge not applied")
            else:
                charge = self.ratebook.resolve_distance_charge(center.distance_miles)
                distance_charge = charge.amount
                if charge.is_default:
                    warnings.append("No distance tier configured: distance charge not applied")
                if not center.within_service_radius:
                    warnings.append(
                        f"Site is {center.distance_miles:.1f} miles from {center.name}, "
                        f"outside its {center.max_service_radius_miles:.0f} mile service radius"
                    )

        installation_subtotal = base_price + labor_cost + distance_charge
        market_multiplier = demand_multiplier(zone.market_demand)
        total_installation = installation_subtotal * market_multiplier

        line_items = [
            LineItem(code="base_equipment", label=f"{property_rate.type_name} equipment", amount=_cents(equipment_cost)),
            LineItem(code="perimeter", label=f"Perimeter wire ({request.fence_perimeter:g} ft)", amount=_cents(perimeter_cost)),
            LineItem(code="zone_adjustment", label=f"{zone.zone_name} zone adjustment", amount=_cents(unscaled * (zone.base_multiplier - 1))),
            LineItem(code="terrain_adjustment", label=f"{terrain.terrain_type} terrain", amount=_cents(after_zone * (terrain.difficulty_multiplier - 1))),
            LineItem(code="pet_adjustment", label=f"Additional pets ({request.num_pets - 1})", amount=_cents(after_terrain * (pet_multiplier - 1))),
            LineItem(code="labor", label=f"Labor ({labor_hours:g} h @ ${zone.labor_rate_hourly:g}/h)", amount=_cents(labor_cost)),
            LineItem(code="distance_charge", label="Distance charge", amount=_cents(distance_charge)),
        ]
        # Market line absorbs the per-item rounding so the items sum to the rounded total
        pre_discount = _cents(total_installation)
        line_items.append(
            LineItem(
                code="market_adjustment",
                label=f"Market demand ({zone.market_demand})",
                amount=_cents(pre_discount - sum(item.amount for item in line_items)),
            )
        )

        # Best single scheduling option
        recommendation = None
        applied_option = None
        scheduling_savings = 0.0
        if self.scheduler is not None:
            recommendation = self.scheduler.scheduling_options(
                latitude,
                longitude,
                pre_discount,
                preferred_date=request.preferred_date,
                date_range_start=request.date_range_start,
                date_range_end=request.date_range_end,
                flexible_scheduling=request.flexible_scheduling,
                exclude_quote_id=exclude_quote_id,
            )
            best = recommendation.best_option
            if best is not None and best.estimated_savings > 0:
                scheduling_savings = _cents(best.estimated_savings)
                applied_option = best.option_type
                line_items.append(
                    LineItem(
                        code="scheduling_discount",
                        label=best.discount_type or "Scheduling discount",
                        amount=-scheduling_savings,
                    )
                )

        one_time_installation = _cents(sum(item.amount for item in line_items))

        return PricedQuote(
            location=LocationDetail(
                address=request.address,
                city=request.city,
                state=request.state,
                zip_code=request.zip_code,
                latitude=latitude,
                longitude=longitude,
                geocoded=geocoded,
                zone_id=zone.zone_id,
                zone_name=zone.zone_name,
                zone_matched_by=zone_resolution.matched_by,
                market_demand=zone.market_demand,
                competition_level=zone.competition_level,
                nearest_service_center=center.name if center else None,
                distance_miles=round(center.distance_miles, 2) if center else None,
                within_service_radius=center.within_service_radius if center else None,
            ),
            property_details=PropertyDetail(
                property_type=property_rate.type_name,
                property_type_is_default=property_resolution.is_default,
                size_sqft=request.property_size,
                fence_perimeter_ft=request.fence_perimeter,
                terrain=terrain.terrain_type,
                terrain_is_default=terrain_resolution.is_default,
                num_pets=request.num_pets,
            ),
            pricing=PricingTerms(
                base_equipment_cost=equipment_cost,
                perimeter_cost=round(perimeter_cost, 4),
                location_multiplier=zone.base_multiplier,
                terrain_multiplier=terrain.difficulty_multiplier,
                pet_multiplier=round(pet_multiplier, 4),
                base_price=round(base_price, 4),
                labor_hours=labor_hours,
                labor_rate=zone.labor_rate_hourly,
                labor_cost=round(labor_cost, 4),
                distance_charge=distance_charge,
                installation_subtotal=round(installation_subtotal, 4),
                demand_multiplier=market_multiplier,
                total_installation=pre_discount,
                monthly_service=monthly_service,
                selected_tier=tier,
            ),
            line_items=line_items,
            totals=QuoteTotals(
                pre_discount_installation=pre_discount,
                scheduling_savings=scheduling_savings,
                one_time_installation=one_time_installation,
                monthly_service=monthly_service,
                first_year_total=_cents(one_time_installation + 12 * monthly_service),
                estimated_install_hours=labor_hours,
            ),
            market_analysis=analyze_market(zone.market_demand, zone.competition_level),
            scheduling=recommendation,
            applied_option=applied_option,
            warnings=warnings,
        )


class QuoteService:
    """Service layer for quote pricing, persistence and lifecycle"""

    def __init__(self, db: Session, tenant_id: str, geocoder: Optional[Geocoder] = None):
        self.db = db
        self.tenant_id = tenant_id
        self.repo = QuoteRepository()
        self.ratebook = ZoneRatebook(db, tenant_id)
        self.scheduler = ClusterScheduler(db, tenant_id)
        self.pricer = QuotePricer(self.ratebook, self.scheduler, geocoder or Geocoder())

    def preview(self, request: Union[QuoteRequest, dict]) -> PricedQuote:
        """Price without persisting"""
        return self.pricer.price(request)

    def create_quote(self, request: Union[QuoteRequest, dict]) -> tuple[Quote, PricedQuote]:
        request = coerce_quote_request(request)
        priced = self.pricer.price(request)
        now = utcnow()

        quote = self.repo.create_quote(
            self.db,
            self.tenant_id,
            customer_name=request.customer_name,
            customer_email=request.customer_email,
            customer_phone=request.customer_phone,
            address=request.address,
            city=request.city,
            state=request.state,
            zip_code=request.zip_code,
            latitude=priced.location.latitude,
            longitude=priced.location.longitude,
            property_size=request.property_size,
            property_type=priced.property_details.property_type,
            terrain_type=priced.property_details.terrain,
            fence_perimeter=request.fence_perimeter,
            num_pets=request.num_pets,
            selected_tier=priced.pricing.selected_tier,
            preferred_date=request.preferred_date,
            flexible_scheduling=request.flexible_scheduling,
            zone_name=priced.location.zone_name,
            base_price=priced.totals.pre_discount_installation,
            location_multiplier=priced.pricing.location_multiplier,
            terrain_multiplier=priced.pricing.terrain_multiplier,
            distance_charge=priced.pricing.distance_charge,
            scheduling_savings=priced.totals.scheduling_savings,
            total_price=priced.totals.one_time_installation,
            breakdown=priced.model_dump(mode="json"),
            status=QuoteStatus.PENDING.value,
            quote_valid_days=QUOTE_VALID_DAYS,
            expires_at=now + timedelta(days=QUOTE_VALID_DAYS),
            created_by=request.created_by,
            status_changed_at=now,
        )
        priced.quote_id = quote.id
        logger.info(
            f"✅ Quote {quote.id} saved for tenant {self.tenant_id}: "
            f"${priced.totals.one_time_installation:,.2f} in {priced.location.zone_name}"
        )
        return quote, priced

    def get_quote(self, quote_id: int) -> Quote:
        quote = self.repo.get_quote(self.db, self.tenant_id, quote_id)
        if not quote:
            raise NotFoundError("Quote not found", quote_id=quote_id)
        return quote

    def load_priced_quote(self, quote_id: int) -> PricedQuote:
        """The breakdown exactly as it was priced"""
        quote = self.get_quote(quote_id)
        priced = PricedQuote.model_validate(quote.breakdown)
        priced.quote_id = quote.id
        return priced

    def list_quotes(self, status: Optional[str] = None, limit: int = 50, offset: int = 0) -> list[Quote]:
        if status:
            status = self._checked_status(status)
        return self.repo.list_quotes(self.db, self.tenant_id, status, limit, offset)

    def update_status(self, quote_id: int, data: QuoteStatusUpdate) -> Quote:
        """pending -> accepted | rejected | expired; terminal states never change"""
        new_status = self._checked_status(data.status)
        if new_status == QuoteStatus.PENDING.value:
            raise WorkflowStateError("A quote cannot be moved back to pending", quote_id=quote_id)

        try:
            quote = self.repo.get_quote_for_update(self.db, self.tenant_id, quote_id)
            if not quote:
                raise NotFoundError("Quote not found", quote_id=quote_id)
            if quote.status != QuoteStatus.PENDING.value:
                raise WorkflowStateError(
                    f"Quote is already {quote.status}",
                    quote_id=quote_id,
                    status=quote.status,
                )

            now = utcnow()
            if (
                new_status == QuoteStatus.ACCEPTED.value
                and quote.expires_at is not None
                and quote.expires_at < now
            ):
                quote.status = QuoteStatus.EXPIRED.value
                quote.status_changed_at = now
                self.db.commit()
                raise WorkflowStateError("Quote has expired", quote_id=quote_id, status=quote.status)

            quote.status = new_status
            quote.status_changed_at = now
            if new_status == QuoteStatus.ACCEPTED.value and data.customer_id:
                quote.customer_id = data.customer_id
                quote.converted_to_customer = True
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(quote)
        logger.info(f"📝 Quote {quote_id} -> {new_status} (tenant {self.tenant_id})")
        return quote

    def schedule_quote(self, quote_id: int, data: ScheduleQuoteRequest) -> ScheduleQuoteResponse:
        """Book a pending quote through the chosen scheduling option"""
        quote = self.get_quote(quote_id)
        if quote.status != QuoteStatus.PENDING.value:
            raise WorkflowStateError(f"Quote is {quote.status} and cannot be scheduled", quote_id=quote_id)

        if data.option_type == SchedulingOptionType.FLEXIBLE.value:
            quote.flexible_scheduling = True
            self.db.commit()
            return ScheduleQuoteResponse(quote_id=quote_id, option_type=data.option_type)

        if data.option_type == SchedulingOptionType.JOIN_CLUSTER.value:
            if data.cluster_id is None:
                raise DomainValidationError("cluster_id is required to join a cluster", quote_id=quote_id)
            job = self.scheduler.join_with_quote(data.cluster_id, quote)

        elif data.option_type == SchedulingOptionType.NEW_CLUSTER.value:
            if quote.latitude is None or quote.longitude is None:
                raise WorkflowStateError("Quote has no coordinates and cannot be routed", quote_id=quote_id)
            cluster_date = data.cluster_date or resolve_window(quote.preferred_date)[0]
            job = self.scheduler.create_cluster_with_quote(
                ClusterCreate(
                    cluster_date=cluster_date,
                    technician_id=data.technician_id,
                    center_latitude=quote.latitude,
                    center_longitude=quote.longitude,
                    radius_miles=CLUSTER_RADIUS_MILES,
                    max_jobs=MAX_JOBS_PER_DAY,
                ),
                quote,
            )

        else:
            allowed = ", ".join(option.value for option in SchedulingOptionType)
            raise DomainValidationError(f"option_type must be one of: {allowed}", option_type=data.option_type)

        cluster = self.scheduler.get_cluster(job.cluster_id)
        return ScheduleQuoteResponse(
            quote_id=quote_id,
            option_type=data.option_type,
            cluster_id=cluster.id,
            cluster_job_id=job.id,
            cluster_date=cluster.cluster_date,
            jobs_in_cluster=cluster.job_count,
        )

    def expire_stale(self) -> int:
        expired = self.repo.expire_stale(self.db, utcnow(), self.tenant_id)
        if expired:
            logger.info(f"⌛ Expired {expired} stale quotes (tenant {self.tenant_id})")
        return expired

    def analytics(self) -> dict:
        return {
            "by_status": self.repo.counts_by_status(self.db, self.tenant_id),
            "by_zone": self.repo.stats_by_zone(self.db, self.tenant_id),
            "by_tier": self.repo.stats_by_tier(self.db, self.tenant_id),
            "generated_on": date.today().isoformat(),
        }

    @staticmethod
    def _checked_status(status: str) -> str:
        try:
            return QuoteStatus(status.strip().lower()).value
        except ValueError:
            allowed = ", ".join(s.value for s in QuoteStatus)
            raise DomainValidationError(f"status must be one of: {allowed}", status=status)
