"""
Fixed lookup tables for conversion valuation and upgrade forecasting.

All tables are read-only mappings; nothing in the application mutates them.
"""

from dataclasses import dataclass
from types import MappingProxyType

from services.enums import ClinicTier, ConversionType

# Dollar value credited for each conversion type
CONVERSION_VALUES = MappingProxyType({
    ConversionType.CALL.value: 150,
    ConversionType.FORM.value: 100,
    ConversionType.CTA_CLICK.value: 25,
    ConversionType.EMAIL.value: 50,
    ConversionType.BOOKING.value: 300,
    ConversionType.REVIEW.value: 75,
})

# Clinic counter column per conversion type
COUNTER_COLUMNS = MappingProxyType({
    ConversionType.CALL.value: 'conversions_call',
    ConversionType.FORM.value: 'conversions_form',
    ConversionType.CTA_CLICK.value: 'conversions_cta_click',
    ConversionType.EMAIL.value: 'conversions_email',
    ConversionType.BOOKING.value: 'conversions_booking',
    ConversionType.REVIEW.value: 'conversions_review',
})

TIER_ORDER = (
    ClinicTier.FREE.value,
    ClinicTier.BASIC.value,
    ClinicTier.PREMIUM.value,
    ClinicTier.ENTERPRISE.value,
)

# Monthly price of each paid tier
TIER_PRICING = MappingProxyType({
    ClinicTier.BASIC.value: 299,
    ClinicTier.PREMIUM.value: 599,
    ClinicTier.ENTERPRISE.value: 1299,
})

TIER_POSITION_SCORES = MappingProxyType({
    ClinicTier.FREE.value: 25,
    ClinicTier.BASIC.value: 50,
    ClinicTier.PREMIUM.value: 75,
    ClinicTier.ENTERPRISE.value: 100,
})

# Purchase propensity by calendar month, January first
SEASONAL_MULTIPLIERS = (0.8, 0.9, 0.7, 0.6, 0.5, 0.4, 0.3, 0.4, 0.6, 0.8, 0.9, 1.0)

# Points awarded per completed profile element (sums to 100)
CONTENT_QUALITY_POINTS = MappingProxyType({
    'description': 20,
    'services': 15,
    'photos': 15,
    'reviews': 10,
    'hours': 10,
    'phone': 10,
    'website': 10,
    'seo': 10,
})
SEO_SCORE_THRESHOLD = 70

COMPETITOR_ACTIVITY_BASELINE = 50

CONFIDENCE_HIGH_THRESHOLD = 80
CONFIDENCE_MEDIUM_THRESHOLD = 60

# Days without contact after which the contact factor reaches zero
CONTACT_DECAY_DAYS = 30
BASE_TIMEFRAME_DAYS = 30
MAX_RECOMMENDED_ACTIONS = 4
FORECAST_MODEL_VERSION = 'v1.0'

# Visitor-volume proxy used until real page views are available per event
VIEWS_PER_CONVERSION = 20
MIN_ESTIMATED_VIEWS = 100

# Engagement heuristic inputs
ENGAGED_SESSION_SECONDS = 180


@dataclass(frozen=True)
class ForecastWeights:
    """Contribution of each normalized factor to the upgrade score"""
    traffic_trend: float = 0.15
    engagement_score: float = 0.12
    revenue_growth: float = 0.18
    competitor_activity: float = 0.08
    seasonality: float = 0.05
    contact_frequency: float = 0.10
    conversion_trend: float = 0.15
    content_quality: float = 0.10
    tier_position: float = 0.07

    def validate(self) -> bool:
        """Ensure weights sum to 1.0"""
        total = (self.traffic_trend + self.engagement_score + self.revenue_growth +
                 self.competitor_activity + self.seasonality + self.contact_frequency +
                 self.conversion_trend + self.content_quality + self.tier_position)
        return abs(total - 1.0) < 0.001


DEFAULT_FORECAST_WEIGHTS = ForecastWeights()
