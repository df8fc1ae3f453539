# commands.py

import json

import click
from flask import current_app
from flask.cli import with_appcontext

from services.common.errors import GrowthServiceError


@click.command('rebuild-counters')
@click.option('--clinic', 'clinic_slug', default=None, help='Only rebuild this clinic')
@with_appcontext
def rebuild_counters(clinic_slug):
    """Recompute conversion counters from stored events"""
    tracking_service = current_app.services.get('conversion_tracking')
    slugs = [clinic_slug] if clinic_slug else current_app.services.get('clinic_repository').list_slugs()

    failures = 0
    for slug in slugs:
        try:
            summary = tracking_service.rebuild_conversion_counters(slug)
            click.echo(f"{slug}: {summary['total']} conversions from {summary['events']} events")
        except GrowthServiceError as e:
            failures += 1
            click.echo(f"{slug}: failed ({e})", err=True)

    if failures:
        raise click.ClickException(f"{failures} clinic(s) could not be rebuilt")


@click.command('generate-forecast')
@click.argument('clinic_slug')
@with_appcontext
def generate_forecast(clinic_slug):
    """Generate and store a fresh upgrade forecast for a clinic"""
    try:
        forecast = current_app.services.get('upgrade_forecast').generate_forecast(clinic_slug)
    except GrowthServiceError as e:
        raise click.ClickException(str(e))
    click.echo(json.dumps(forecast, indent=2))


@click.command('refresh-forecasts')
@with_appcontext
def refresh_forecasts():
    """Regenerate forecasts for clinics without a current one"""
    try:
        summary = current_app.services.get('upgrade_forecast').refresh_stale_forecasts()
    except GrowthServiceError as e:
        raise click.ClickException(str(e))
    click.echo(f"Refreshed {summary['refreshed']}, current {summary['current']}, failed {summary['failed']}")


def init_app(app):
    """Register commands with the Flask app"""
    app.cli.add_command(rebuild_counters)
    app.cli.add_command(generate_forecast)
    app.cli.add_command(refresh_forecasts)
