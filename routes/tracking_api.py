"""
Public tracking API called from clinic pages: conversions, page views and
variant assignment. Service errors are turned into JSON responses by the
application's GrowthServiceError handler.
"""

from flask import Blueprint, jsonify, request, current_app

from services.common.errors import ValidationError

tracking_bp = Blueprint('tracking_api', __name__)


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _with_request_signals(data):
    """Fill user agent and referrer from the request when the page did not send them"""
    enriched = dict(data)
    enriched.setdefault('user_agent', request.headers.get('User-Agent'))
    if not enriched.get('referrer'):
        enriched['referrer'] = request.headers.get('Referer')
    return enriched


@tracking_bp.route('/conversions', methods=['POST'])
def track_conversion():
    """Record a conversion.

    Expected JSON payload:
    {
        "type": "call|form|ctaClick|email|booking|review",
        "clinic_slug": "...",
        "session_id": "...",
        "page_slug", "test_id", "variant_id", "visitor_id",
        "viewport_width", "metadata" (optional)
    }

    Returns:
        201: The stored event, with its server-side value
        400: Invalid payload
        503: Storage unavailable
    """
    tracking_service = current_app.services.get('conversion_tracking')
    event = tracking_service.track(_with_request_signals(_json_body()))
    return jsonify(event), 201


@tracking_bp.route('/sessions', methods=['POST'])
def track_page_view():
    """Open a visitor session or count another page view on it"""
    session_service = current_app.services.get('session_tracking')
    session = session_service.record_page_view(_with_request_signals(_json_body()))
    return jsonify(session)


@tracking_bp.route('/variants/<clinic_slug>', methods=['GET'])
def get_variants(clinic_slug):
    """Variant assignments for a visitor across the clinic's running tests"""
    assignment_service = current_app.services.get('variant_assignment')
    visitor_id = request.args.get('visitor_id')
    variants = assignment_service.get_variants_for_visitor(
        visitor_id, clinic_slug, request.args.get('test_type') or None
    )
    return jsonify({
        'clinic_slug': clinic_slug,
        'visitor_id': visitor_id,
        'variants': variants,
    })


@tracking_bp.route('/variants/<test_id>/views', methods=['POST'])
def record_variant_view(test_id):
    """Count an impression of a variant"""
    data = _json_body()
    variant_id = data.get('variant_id')
    if not variant_id:
        raise ValidationError("variant_id is required")
    current_app.services.get('variant_assignment').record_variant_view(test_id, variant_id)
    return '', 204
