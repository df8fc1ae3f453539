"""
Service layer enums
Values match what is stored in the database string columns, so services can
compare against model attributes without importing the models.
"""

from enum import Enum


class ConversionType(str, Enum):
    """Visitor actions that count as a conversion"""
    CALL = 'call'
    FORM = 'form'
    CTA_CLICK = 'ctaClick'
    EMAIL = 'email'
    BOOKING = 'booking'
    REVIEW = 'review'


class ClinicTier(str, Enum):
    """Listing tiers, cheapest first"""
    FREE = 'free'
    BASIC = 'basic'
    PREMIUM = 'premium'
    ENTERPRISE = 'enterprise'


class VariantTestType(str, Enum):
    SEO_HEADER = 'seo_header'
    CTA = 'cta'
    DESCRIPTION = 'description'
    LAYOUT = 'layout'
    PRICING = 'pricing'
    TESTIMONIAL = 'testimonial'


class VariantTestStatus(str, Enum):
    """Lifecycle states of a variant test"""
    DRAFT = 'draft'
    RUNNING = 'running'
    PAUSED = 'paused'
    COMPLETED = 'completed'


class PrimaryMetric(str, Enum):
    CONVERSION_RATE = 'conversion_rate'
    CTR = 'ctr'
    ENGAGEMENT_TIME = 'engagement_time'
    BOUNCE_RATE = 'bounce_rate'


class DeviceType(str, Enum):
    MOBILE = 'mobile'
    TABLET = 'tablet'
    DESKTOP = 'desktop'


class TrafficSource(str, Enum):
    ORGANIC = 'organic'
    PAID = 'paid'
    SOCIAL = 'social'
    DIRECT = 'direct'
    REFERRAL = 'referral'


class ForecastConfidence(str, Enum):
    LOW = 'low'
    MEDIUM = 'medium'
    HIGH = 'high'


class UpgradeMode(str, Enum):
    TIER = 'tier'
    PACKAGE = 'package'
    FEATURE = 'feature'


class ForecastType(str, Enum):
    UPGRADE = 'upgrade'
    REVENUE = 'revenue'
    TRAFFIC = 'traffic'
    CONVERSION = 'conversion'
