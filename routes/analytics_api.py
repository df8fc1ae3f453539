"""
Analytics API: conversion reports, upgrade forecasts and variant test
administration.
"""

from datetime import timedelta

from flask import Blueprint, jsonify, request, current_app

from services.common.errors import ValidationError
from utils.datetime_utils import parse_utc_iso, utc_now

analytics_bp = Blueprint('analytics_api', __name__)

# Result error codes from the variant test service
RESULT_STATUS_CODES = {
    'INVALID_TEST': 400,
    'INVALID_TRANSITION': 400,
    'CLINIC_NOT_FOUND': 404,
    'TEST_NOT_FOUND': 404,
    'DB_ERROR': 503,
}


def _result_response(result, success_status=200):
    if result.is_success:
        return jsonify(result.data), success_status
    status = RESULT_STATUS_CODES.get(result.error_code, 500)
    if status >= 500:
        current_app.logger.error(f"Variant test operation failed: {result.error}")
    return jsonify({'error': result.error, 'code': result.error_code}), status


def _date_arg(name, default):
    value = request.args.get(name)
    if not value:
        return default
    try:
        return parse_utc_iso(value)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO 8601 date")


def _int_arg(name, default):
    value = request.args.get(name)
    if value is None:
        return default
    try:
        parsed = int(value)
    except ValueError:
        raise ValidationError(f"{name} must be an integer")
    if parsed <= 0:
        raise ValidationError(f"{name} must be positive")
    return parsed


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


@analytics_bp.route('/<clinic_slug>/conversion-rate', methods=['GET'])
def conversion_rate(clinic_slug):
    """Conversion report for a window; defaults to the trailing report period.

    Query parameters:
        start, end: ISO 8601 dates or datetimes
        trends: 'false' to skip daily and weekly trends
    """
    end = _date_arg('end', utc_now())
    start = _date_arg('start', end - timedelta(days=current_app.config.get('CONVERSION_REPORT_DAYS', 30)))
    include_trends = request.args.get('trends', 'true').lower() != 'false'

    report = current_app.services.get('conversion_rate').calculate(
        clinic_slug, start, end, include_trends=include_trends
    )
    return jsonify(report)


@analytics_bp.route('/<clinic_slug>/top-variants', methods=['GET'])
def top_variants(clinic_slug):
    days = _int_arg('days', current_app.config.get('CONVERSION_REPORT_DAYS', 30))
    variants = current_app.services.get('conversion_rate').top_performing_variants(clinic_slug, days)
    return jsonify({'clinic_slug': clinic_slug, 'days': days, 'variants': variants})


@analytics_bp.route('/<clinic_slug>/forecast', methods=['GET'])
def current_forecast(clinic_slug):
    """Latest unexpired forecast, generating one when none is current"""
    forecast = current_app.services.get('upgrade_forecast').get_current_forecast(clinic_slug)
    return jsonify(forecast)


@analytics_bp.route('/<clinic_slug>/forecast', methods=['POST'])
def generate_forecast(clinic_slug):
    forecast = current_app.services.get('upgrade_forecast').generate_forecast(clinic_slug)
    return jsonify(forecast), 201


@analytics_bp.route('/forecast-logs/<int:log_id>/outcome', methods=['POST'])
def record_forecast_outcome(log_id):
    """Record whether the clinic actually upgraded.

    Expected JSON payload: {"upgraded": true, "actual_tier": "premium"}
    """
    data = _json_body()
    log = current_app.services.get('upgrade_forecast').record_forecast_outcome(
        log_id, data.get('upgraded'), data.get('actual_tier')
    )
    return jsonify(log)


@analytics_bp.route('/<clinic_slug>/variant-tests', methods=['GET'])
def list_variant_tests(clinic_slug):
    return _result_response(current_app.services.get('variant_test').list_tests(clinic_slug))


@analytics_bp.route('/<clinic_slug>/variant-tests', methods=['POST'])
def create_variant_test(clinic_slug):
    """Create a draft variant test for the clinic.

    Expected JSON payload:
    {
        "name": "Header copy",
        "type": "seo_header|cta|description|layout|pricing|testimonial",
        "variants": [{"id": "control", "name": "...", "content": {...}, "weight": 50, "is_control": true}, ...],
        "traffic_allocation", "confidence_level", "primary_metric",
        "target_sample_size", "description", "created_by" (optional)
    }
    """
    data = dict(_json_body(), clinic_slug=clinic_slug)
    return _result_response(current_app.services.get('variant_test').create_test(data), 201)


@analytics_bp.route('/variant-tests/<test_id>', methods=['GET'])
def get_variant_test(test_id):
    return _result_response(current_app.services.get('variant_test').get_test(test_id))


@analytics_bp.route('/variant-tests/<test_id>/status', methods=['POST'])
def update_variant_test_status(test_id):
    data = _json_body()
    if not data.get('status'):
        raise ValidationError("status is required")
    return _result_response(current_app.services.get('variant_test').update_status(test_id, data['status']))


@analytics_bp.route('/variant-tests/<test_id>/evaluate', methods=['POST'])
def evaluate_variant_test(test_id):
    """Recompute rates, chi-square confidence and the winner"""
    return _result_response(current_app.services.get('variant_test').evaluate_results(test_id))
