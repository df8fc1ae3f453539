"""
Pure scoring functions behind the upgrade forecast.

Nothing here touches the database or the clock; the forecast service gathers
raw inputs and passes them through these functions so every rule can be
tested with plain numbers.
"""

import logging
import math
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Mapping, Optional

from services.enums import ClinicTier, ForecastConfidence
from services.growth_tables import (
    BASE_TIMEFRAME_DAYS,
    COMPETITOR_ACTIVITY_BASELINE,
    CONFIDENCE_HIGH_THRESHOLD,
    CONFIDENCE_MEDIUM_THRESHOLD,
    CONTACT_DECAY_DAYS,
    CONTENT_QUALITY_POINTS,
    DEFAULT_FORECAST_WEIGHTS,
    MAX_RECOMMENDED_ACTIONS,
    SEASONAL_MULTIPLIERS,
    SEO_SCORE_THRESHOLD,
    TIER_ORDER,
    TIER_POSITION_SCORES,
    ForecastWeights,
)

logger = logging.getLogger(__name__)


@dataclass
class ForecastFactors:
    """The nine inputs of an upgrade forecast"""
    traffic_trend: float  # [-1, 1]
    engagement_score: float  # [0, 100]
    revenue_growth: float  # percent
    competitor_activity: float  # [0, 100]
    seasonality: float  # [-1, 1]
    contact_frequency: int  # days since last contact
    conversion_trend: float  # [-1, 1]
    content_quality: float  # [0, 100]
    tier_position: float  # [0, 100]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def normalize(value: float, low: float, high: float) -> float:
    """Map value from [low, high] onto [0, 1], clamped"""
    return clamp((value - low) / (high - low), 0.0, 1.0)


def calculate_trend(current: float, previous: float) -> float:
    """
    Relative change from previous to current, clamped to [-1, 1].
    Growth from nothing counts as +1; nothing to nothing is flat.
    """
    if previous == 0:
        return 1.0 if current > 0 else 0.0
    return clamp((current - previous) / previous, -1.0, 1.0)


def calculate_growth_percent(current: float, previous: float) -> float:
    if previous <= 0:
        return 0.0
    return (current - previous) / previous * 100


def seasonality_for_month(month: int) -> float:
    """Calendar month (1-12) to a [-1, 1] seasonality signal"""
    return (SEASONAL_MULTIPLIERS[month - 1] - 0.5) * 2


def _present(value) -> bool:
    if value is None:
        return False
    if isinstance(value, (list, tuple, dict, str)):
        return len(value) > 0
    return bool(value)


def content_quality_score(clinic) -> float:
    """Profile completeness checklist, 0-100"""
    points = CONTENT_QUALITY_POINTS
    score = 0
    if _present(clinic.description):
        score += points['description']
    if _present(clinic.services):
        score += points['services']
    if _present(clinic.photos):
        score += points['photos']
    if (clinic.review_count or 0) > 0:
        score += points['reviews']
    if _present(clinic.hours):
        score += points['hours']
    if _present(clinic.phone):
        score += points['phone']
    if _present(clinic.website):
        score += points['website']
    if (clinic.seo_score or 0) > SEO_SCORE_THRESHOLD:
        score += points['seo']
    return score / sum(points.values()) * 100


def canonical_tier(tier: Optional[str]) -> str:
    """Known tier name; anything unrecognized is treated as free"""
    if tier in TIER_ORDER:
        return tier
    logger.warning(f"Unknown clinic tier {tier!r}; treating as free")
    return ClinicTier.FREE.value


def tier_position_score(tier: str) -> float:
    return TIER_POSITION_SCORES.get(tier, 0)


def next_tier(tier: str) -> str:
    """Next tier up the ladder; the top tier maps to itself"""
    index = TIER_ORDER.index(tier)
    return TIER_ORDER[min(index + 1, len(TIER_ORDER) - 1)]


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def normalized_factors(factors: ForecastFactors) -> Dict[str, float]:
    """Each factor mapped onto [0, 1] before weighting"""
    return {
        'traffic_trend': normalize(factors.traffic_trend, -1, 1),
        'engagement_score': clamp(factors.engagement_score / 100, 0.0, 1.0),
        'revenue_growth': clamp(factors.revenue_growth / 100, 0.0, 1.0),
        'competitor_activity': clamp(factors.competitor_activity / 100, 0.0, 1.0),
        'seasonality': normalize(factors.seasonality, -1, 1),
        'contact_frequency': max(0.0, 1 - factors.contact_frequency / CONTACT_DECAY_DAYS),
        'conversion_trend': normalize(factors.conversion_trend, -1, 1),
        'content_quality': clamp(factors.content_quality / 100, 0.0, 1.0),
        'tier_position': clamp(factors.tier_position / 100, 0.0, 1.0),
    }


def score_factors(factors: ForecastFactors, weights: ForecastWeights = DEFAULT_FORECAST_WEIGHTS) -> int:
    """Weighted sum of normalized factors as an integer 0-100"""
    normalized = normalized_factors(factors)
    total = sum(normalized[name] * getattr(weights, name) for name in normalized)
    return int(clamp(round_half_up(total * 100), 0, 100))


def classify_confidence(score: int) -> str:
    if score >= CONFIDENCE_HIGH_THRESHOLD:
        return ForecastConfidence.HIGH.value
    if score >= CONFIDENCE_MEDIUM_THRESHOLD:
        return ForecastConfidence.MEDIUM.value
    return ForecastConfidence.LOW.value


def timeframe_days(score: int) -> int:
    """Days until the expected upgrade; higher scores are sooner, never under half the base"""
    return round_half_up(BASE_TIMEFRAME_DAYS * max(0.5, 1 - score / 100))


def predicted_revenue(target_tier: str, pricing: Mapping[str, int]) -> int:
    """Monthly price of the target tier; enterprise clinics target enterprise itself"""
    return pricing.get(target_tier, 0)


def recommended_actions(factors: ForecastFactors, score: int, current_tier: str) -> List[str]:
    """
    Threshold rules in fixed evaluation order, deduplicated, first four kept.
    """
    actions = []

    if factors.traffic_trend < 0:
        actions.append('Improve SEO and content marketing to boost traffic')
    if factors.engagement_score < 60:
        actions.append('Optimize page content and user experience')
    if factors.contact_frequency > 14:
        actions.append('Schedule immediate follow-up call or email')
    if factors.conversion_trend < 0:
        actions.append('Review and optimize conversion funnel')
    if factors.content_quality < 70:
        actions.append('Update clinic profile and add more content')

    if score >= 70:
        package = 'premium' if current_tier == ClinicTier.FREE.value else 'enterprise'
        actions.append(f'Present {package} package benefits')
        actions.append('Offer limited-time upgrade incentive')
    elif score >= 60:
        actions.append('Share case studies and success stories')
        actions.append('Provide free consultation or audit')
    else:
        actions.append('Focus on relationship building and value demonstration')
        actions.append('Provide educational content and resources')

    unique = list(dict.fromkeys(actions))
    return unique[:MAX_RECOMMENDED_ACTIONS]


def competitor_activity() -> float:
    """Placeholder until competitive data is wired in"""
    return float(COMPETITOR_ACTIVITY_BASELINE)
