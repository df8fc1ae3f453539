# clinic_database.py

import uuid
from extensions import db
from utils.datetime_utils import utc_now, ensure_utc


def _iso(value):
    return ensure_utc(value).isoformat() if value else None


def _new_test_id():
    return uuid.uuid4().hex


# --- Clinic (owned by the directory; counters written by conversion tracking) ---
class Clinic(db.Model):
    __tablename__ = 'clinic'

    id = db.Column(db.Integer, primary_key=True)
    slug = db.Column(db.String(120), unique=True, nullable=False, index=True)
    name = db.Column(db.String(200), nullable=False)
    tier = db.Column(db.String(20), nullable=False, default='free')  # free, basic, premium, enterprise

    # Profile completeness inputs for the forecast content-quality factor
    description = db.Column(db.Text, nullable=True)
    services = db.Column(db.JSON, nullable=True)
    photos = db.Column(db.JSON, nullable=True)
    review_count = db.Column(db.Integer, default=0)
    hours = db.Column(db.JSON, nullable=True)
    phone = db.Column(db.String(30), nullable=True)
    website = db.Column(db.String(255), nullable=True)
    seo_score = db.Column(db.Integer, nullable=True)

    # Conversion counters, one column per conversion type
    conversions_total = db.Column(db.Integer, nullable=False, default=0)
    conversions_call = db.Column(db.Integer, nullable=False, default=0)
    conversions_form = db.Column(db.Integer, nullable=False, default=0)
    conversions_cta_click = db.Column(db.Integer, nullable=False, default=0)
    conversions_email = db.Column(db.Integer, nullable=False, default=0)
    conversions_booking = db.Column(db.Integer, nullable=False, default=0)
    conversions_review = db.Column(db.Integer, nullable=False, default=0)
    last_conversion_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    def conversion_metrics(self) -> dict:
        return {
            'total': self.conversions_total or 0,
            'call': self.conversions_call or 0,
            'form': self.conversions_form or 0,
            'ctaClick': self.conversions_cta_click or 0,
            'email': self.conversions_email or 0,
            'booking': self.conversions_booking or 0,
            'review': self.conversions_review or 0,
            'last_conversion_at': _iso(self.last_conversion_at),
        }


# --- CRM contact log, read for the contact-frequency factor ---
class ClinicContact(db.Model):
    __tablename__ = 'clinic_contact'

    id = db.Column(db.Integer, primary_key=True)
    clinic_slug = db.Column(db.String(120), db.ForeignKey('clinic.slug'), nullable=False, index=True)
    contacted_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utc_now)
    channel = db.Column(db.String(20), nullable=True)  # call, email, meeting
    notes = db.Column(db.Text, nullable=True)


# --- Visitor session ---
class VisitorSession(db.Model):
    __tablename__ = 'visitor_session'

    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.String(100), unique=True, nullable=False, index=True)
    clinic_slug = db.Column(db.String(120), nullable=False, index=True)
    visitor_id = db.Column(db.String(100), nullable=True, index=True)

    device_type = db.Column(db.String(20), nullable=True)  # mobile, tablet, desktop
    browser = db.Column(db.String(20), nullable=True)
    source = db.Column(db.String(20), nullable=True)  # organic, paid, social, direct, referral
    referrer = db.Column(db.String(500), nullable=True)
    campaign = db.Column(db.String(200), nullable=True)

    page_views = db.Column(db.Integer, nullable=False, default=1)
    started_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utc_now, index=True)
    last_seen_at = db.Column(db.DateTime(timezone=True), nullable=True)
    duration_seconds = db.Column(db.Integer, nullable=False, default=0)

    is_converted = db.Column(db.Boolean, nullable=False, default=False)
    conversion_value = db.Column(db.Integer, nullable=False, default=0)
    conversion_count = db.Column(db.Integer, nullable=False, default=0)

    def to_dict(self):
        return {
            'session_id': self.session_id,
            'clinic_slug': self.clinic_slug,
            'visitor_id': self.visitor_id,
            'device_type': self.device_type,
            'browser': self.browser,
            'source': self.source,
            'page_views': self.page_views,
            'started_at': _iso(self.started_at),
            'last_seen_at': _iso(self.last_seen_at),
            'duration_seconds': self.duration_seconds,
            'is_converted': self.is_converted,
            'conversion_value': self.conversion_value,
            'conversion_count': self.conversion_count,
        }


# --- A/B variant tests ---
class VariantTest(db.Model):
    __tablename__ = 'variant_test'

    id = db.Column(db.String(32), primary_key=True, default=_new_test_id)
    clinic_slug = db.Column(db.String(120), nullable=False, index=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    test_type = db.Column(db.String(20), nullable=False)  # seo_header, cta, description, layout, pricing, testimonial
    status = db.Column(db.String(20), nullable=False, default='draft')  # draft, running, paused, completed

    traffic_allocation = db.Column(db.Integer, nullable=False, default=100)
    target_sample_size = db.Column(db.Integer, nullable=True)
    confidence_level = db.Column(db.Integer, nullable=False, default=95)
    primary_metric = db.Column(db.String(30), nullable=False, default='conversion_rate')

    start_date = db.Column(db.DateTime(timezone=True), nullable=True)
    end_date = db.Column(db.DateTime(timezone=True), nullable=True)
    created_by = db.Column(db.String(100), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=utc_now, nullable=False)
    updated_at = db.Column(db.DateTime(timezone=True), default=utc_now, onupdate=utc_now)

    variants = db.relationship(
        'TestVariant', backref='test', lazy='selectin',
        order_by='TestVariant.position', cascade='all, delete-orphan'
    )
    assignments = db.relationship(
        'VariantAssignment', backref='test', lazy='dynamic', cascade='all, delete-orphan'
    )

    __table_args__ = (
        db.Index('idx_variant_test_clinic_status', 'clinic_slug', 'status'),
    )

    @property
    def assigned_visitors(self) -> dict:
        """visitor_id -> variant_key for every visitor assigned so far"""
        return {a.visitor_id: a.variant_key for a in self.assignments}

    def to_dict(self, include_results=True):
        data = {
            'id': self.id,
            'clinic_slug': self.clinic_slug,
            'name': self.name,
            'description': self.description,
            'type': self.test_type,
            'status': self.status,
            'traffic_allocation': self.traffic_allocation,
            'target_sample_size': self.target_sample_size,
            'confidence_level': self.confidence_level,
            'primary_metric': self.primary_metric,
            'start_date': _iso(self.start_date),
            'end_date': _iso(self.end_date),
            'created_by': self.created_by,
            'variants': [v.to_dict() for v in self.variants],
        }
        if include_results:
            data['results'] = [v.result_dict() for v in self.variants]
        return data


class TestVariant(db.Model):
    __tablename__ = 'test_variant'
    # keep pytest from collecting this model
    __test__ = False

    id = db.Column(db.Integer, primary_key=True)
    test_id = db.Column(db.String(32), db.ForeignKey('variant_test.id'), nullable=False, index=True)
    variant_key = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(200), nullable=False)
    content = db.Column(db.JSON, nullable=True)
    weight = db.Column(db.Integer, nullable=False, default=50)
    is_control = db.Column(db.Boolean, nullable=False, default=False)
    position = db.Column(db.Integer, nullable=False, default=0)

    # Result projection
    views = db.Column(db.Integer, nullable=False, default=0)
    conversions = db.Column(db.Integer, nullable=False, default=0)
    conversion_rate = db.Column(db.Float, nullable=False, default=0.0)
    confidence = db.Column(db.Float, nullable=False, default=0.0)
    is_winner = db.Column(db.Boolean, nullable=False, default=False)

    __table_args__ = (
        db.UniqueConstraint('test_id', 'variant_key', name='uq_test_variant_key'),
    )

    def to_dict(self):
        return {
            'id': self.variant_key,
            'name': self.name,
            'content': self.content,
            'weight': self.weight,
            'is_control': self.is_control,
        }

    def result_dict(self):
        return {
            'variant_id': self.variant_key,
            'views': self.views,
            'conversions': self.conversions,
            'conversion_rate': self.conversion_rate,
            'confidence': self.confidence,
            'is_winner': self.is_winner,
        }


class VariantAssignment(db.Model):
    __tablename__ = 'variant_assignment'

    id = db.Column(db.Integer, primary_key=True)
    test_id = db.Column(db.String(32), db.ForeignKey('variant_test.id'), nullable=False)
    visitor_id = db.Column(db.String(100), nullable=False)
    variant_key = db.Column(db.String(64), nullable=False)
    assigned_at = db.Column(db.DateTime(timezone=True), default=utc_now, nullable=False)

    __table_args__ = (
        db.UniqueConstraint('test_id', 'visitor_id', name='uq_assignment_test_visitor'),
    )


# --- Conversion events (immutable once written) ---
class ConversionEvent(db.Model):
    __tablename__ = 'conversion_event'

    id = db.Column(db.Integer, primary_key=True)
    clinic_slug = db.Column(db.String(120), nullable=False)
    conversion_type = db.Column(db.String(20), nullable=False)  # call, form, ctaClick, email, booking, review
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utc_now)
    referrer = db.Column(db.String(500), nullable=True)
    page_slug = db.Column(db.String(200), nullable=True)
    test_id = db.Column(db.String(32), nullable=True)
    variant_id = db.Column(db.String(64), nullable=True)
    visitor_id = db.Column(db.String(100), nullable=True)
    session_id = db.Column(db.String(100), nullable=False, index=True)
    value = db.Column(db.Integer, nullable=False, default=0)
    event_metadata = db.Column(db.JSON, nullable=True)

    __table_args__ = (
        db.Index('idx_conversion_event_clinic_time', 'clinic_slug', 'occurred_at'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'clinic_slug': self.clinic_slug,
            'type': self.conversion_type,
            'timestamp': _iso(self.occurred_at),
            'referrer': self.referrer,
            'page_slug': self.page_slug,
            'test_id': self.test_id,
            'variant_id': self.variant_id,
            'visitor_id': self.visitor_id,
            'session_id': self.session_id,
            'value': self.value,
            'metadata': self.event_metadata or {},
        }


# --- Upgrade forecasts ---
class UpgradeForecast(db.Model):
    __tablename__ = 'upgrade_forecast'

    id = db.Column(db.Integer, primary_key=True)
    clinic_slug = db.Column(db.String(120), nullable=False)
    forecast_date = db.Column(db.DateTime(timezone=True), nullable=False)
    upgrade_mode = db.Column(db.String(20), nullable=False, default='tier')  # tier, package, feature
    current_tier = db.Column(db.String(20), nullable=False)
    target_tier = db.Column(db.String(20), nullable=False)
    prediction_score = db.Column(db.Integer, nullable=False)
    confidence = db.Column(db.String(10), nullable=False)  # low, medium, high
    factors = db.Column(db.JSON, nullable=False)
    predicted_revenue = db.Column(db.Integer, nullable=False, default=0)
    timeframe_days = db.Column(db.Integer, nullable=False)
    recommended_actions = db.Column(db.JSON, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utc_now)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)

    __table_args__ = (
        db.Index('idx_upgrade_forecast_clinic_created', 'clinic_slug', 'created_at'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'clinic_slug': self.clinic_slug,
            'forecast_date': _iso(self.forecast_date),
            'upgrade_type': self.upgrade_mode,
            'current_tier': self.current_tier,
            'target_tier': self.target_tier,
            'prediction_score': self.prediction_score,
            'confidence': self.confidence,
            'factors': self.factors,
            'predicted_revenue': self.predicted_revenue,
            'timeframe': self.timeframe_days,
            'recommended_actions': self.recommended_actions,
            'created_at': _iso(self.created_at),
            'expires_at': _iso(self.expires_at),
        }


class ForecastLog(db.Model):
    __tablename__ = 'forecast_log'

    id = db.Column(db.Integer, primary_key=True)
    clinic_slug = db.Column(db.String(120), nullable=False, index=True)
    forecast_id = db.Column(db.Integer, db.ForeignKey('upgrade_forecast.id'), nullable=True)
    log_date = db.Column(db.String(10), nullable=False)  # YYYY-MM-DD
    forecast_type = db.Column(db.String(20), nullable=False, default='upgrade')  # upgrade, revenue, traffic, conversion
    prediction = db.Column(db.JSON, nullable=False)
    actual_outcome = db.Column(db.JSON, nullable=True)
    accuracy = db.Column(db.Integer, nullable=True)
    model_version = db.Column(db.String(20), nullable=False, default='v1.0')
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utc_now)

    def to_dict(self):
        return {
            'id': self.id,
            'clinic_slug': self.clinic_slug,
            'forecast_id': self.forecast_id,
            'date': self.log_date,
            'forecast_type': self.forecast_type,
            'prediction': self.prediction,
            'actual_outcome': self.actual_outcome,
            'accuracy': self.accuracy,
            'model_version': self.model_version,
            'created_at': _iso(self.created_at),
        }
