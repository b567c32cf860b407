"""Market positioning for a priced zone"""

from ...shared.enums import CompetitionLevel, MarketDemand
from .schemas import MarketAnalysis, RecommendedDiscount

DEMAND_MULTIPLIERS = {
    MarketDemand.LOW.value: 0.95,
    MarketDemand.NORMAL.value: 1.00,
    MarketDemand.HIGH.value: 1.08,
}

PRICE_POSITIONS = {
    CompetitionLevel.LOW.value: "Premium pricing - low competition",
    CompetitionLevel.MODERATE.value: "Competitive pricing - moderate competition",
    CompetitionLevel.HIGH.value: "Value pricing - high competition",
}


def demand_multiplier(market_demand: str) -> float:
    return DEMAND_MULTIPLIERS.get(market_demand, 1.0)


def price_position(competition_level: str) -> str:
    return PRICE_POSITIONS.get(competition_level, "Standard pricing")


def confidence_score(market_demand: str, competition_level: str) -> int:
    """0-100, starting from 70"""
    score = 70
    if market_demand == MarketDemand.HIGH.value:
        score += 15
    elif market_demand == MarketDemand.LOW.value:
        score -= 10

    if competition_level == CompetitionLevel.LOW.value:
        score += 10
    elif competition_level == CompetitionLevel.HIGH.value:
        score -= 5

    return min(100, max(0, score))


def recommended_discount(market_demand: str, competition_level: str) -> RecommendedDiscount:
    low_demand = market_demand == MarketDemand.LOW.value
    high_competition = competition_level == CompetitionLevel.HIGH.value

    if low_demand and high_competition:
        return RecommendedDiscount(percentage=15, reason="High competition in low demand market")
    if low_demand:
        return RecommendedDiscount(percentage=10, reason="Low market demand")
    if high_competition:
        return RecommendedDiscount(percentage=8, reason="High competition")
    if market_demand == MarketDemand.HIGH.value and competition_level == CompetitionLevel.LOW.value:
        return RecommendedDiscount(percentage=0, reason="Strong market position")
    return RecommendedDiscount(percentage=5, reason="Standard promotional discount")


def analyze_market(market_demand: str, competition_level: str) -> MarketAnalysis:
    return MarketAnalysis(
        price_position=price_position(competition_level),
        confidence_score=confidence_score(market_demand, competition_level),
        recommended_discount=recommended_discount(market_demand, competition_level),
    )
