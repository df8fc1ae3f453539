"""Create clinic growth tables

Revision ID: 001_growth_tables
Revises:
Create Date: 2026-10-18

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001_growth_tables'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('clinic',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('slug', sa.String(length=120), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('tier', sa.String(length=20), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('services', sa.JSON(), nullable=True),
        sa.Column('photos', sa.JSON(), nullable=True),
        sa.Column('review_count', sa.Integer(), nullable=True),
        sa.Column('hours', sa.JSON(), nullable=True),
        sa.Column('phone', sa.String(length=30), nullable=True),
        sa.Column('website', sa.String(length=255), nullable=True),
        sa.Column('seo_score', sa.Integer(), nullable=True),
        sa.Column('conversions_total', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('conversions_call', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('conversions_form', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('conversions_cta_click', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('conversions_email', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('conversions_booking', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('conversions_review', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('last_conversion_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_clinic_slug', 'clinic', ['slug'], unique=True)

    op.create_table('clinic_contact',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('clinic_slug', sa.String(length=120), nullable=False),
        sa.Column('contacted_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('channel', sa.String(length=20), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.ForeignKeyConstraint(['clinic_slug'], ['clinic.slug']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_clinic_contact_clinic_slug', 'clinic_contact', ['clinic_slug'])

    op.create_table('visitor_session',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('session_id', sa.String(length=100), nullable=False),
        sa.Column('clinic_slug', sa.String(length=120), nullable=False),
        sa.Column('visitor_id', sa.String(length=100), nullable=True),
        sa.Column('device_type', sa.String(length=20), nullable=True),
        sa.Column('browser', sa.String(length=20), nullable=True),
        sa.Column('source', sa.String(length=20), nullable=True),
        sa.Column('referrer', sa.String(length=500), nullable=True),
        sa.Column('campaign', sa.String(length=200), nullable=True),
        sa.Column('page_views', sa.Integer(), nullable=False, server_default='1'),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_seen_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('duration_seconds', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('is_converted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('conversion_value', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('conversion_count', sa.Integer(), nullable=False, server_default='0'),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_visitor_session_session_id', 'visitor_session', ['session_id'], unique=True)
    op.create_index('ix_visitor_session_clinic_slug', 'visitor_session', ['clinic_slug'])
    op.create_index('ix_visitor_session_visitor_id', 'visitor_session', ['visitor_id'])
    op.create_index('ix_visitor_session_started_at', 'visitor_session', ['started_at'])

    op.create_table('variant_test',
        sa.Column('id', sa.String(length=32), nullable=False),
        sa.Column('clinic_slug', sa.String(length=120), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('test_type', sa.String(length=20), nullable=False),
        sa.Column('status', sa.String(length=20), nullable=False, server_default='draft'),
        sa.Column('traffic_allocation', sa.Integer(), nullable=False, server_default='100'),
        sa.Column('target_sample_size', sa.Integer(), nullable=True),
        sa.Column('confidence_level', sa.Integer(), nullable=False, server_default='95'),
        sa.Column('primary_metric', sa.String(length=30), nullable=False, server_default='conversion_rate'),
        sa.Column('start_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('end_date', sa.DateTime(timezone=True), nullable=True),
        sa.Column('created_by', sa.String(length=100), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_variant_test_clinic_slug', 'variant_test', ['clinic_slug'])
    op.create_index('idx_variant_test_clinic_status', 'variant_test', ['clinic_slug', 'status'])

    op.create_table('test_variant',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('test_id', sa.String(length=32), nullable=False),
        sa.Column('variant_key', sa.String(length=64), nullable=False),
        sa.Column('name', sa.String(length=200), nullable=False),
        sa.Column('content', sa.JSON(), nullable=True),
        sa.Column('weight', sa.Integer(), nullable=False, server_default='50'),
        sa.Column('is_control', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('position', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('views', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('conversions', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('conversion_rate', sa.Float(), nullable=False, server_default='0'),
        sa.Column('confidence', sa.Float(), nullable=False, server_default='0'),
        sa.Column('is_winner', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.ForeignKeyConstraint(['test_id'], ['variant_test.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('test_id', 'variant_key', name='uq_test_variant_key')
    )
    op.create_index('ix_test_variant_test_id', 'test_variant', ['test_id'])

    op.create_table('variant_assignment',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('test_id', sa.String(length=32), nullable=False),
        sa.Column('visitor_id', sa.String(length=100), nullable=False),
        sa.Column('variant_key', sa.String(length=64), nullable=False),
        sa.Column('assigned_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['test_id'], ['variant_test.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('test_id', 'visitor_id', name='uq_assignment_test_visitor')
    )

    op.create_table('conversion_event',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('clinic_slug', sa.String(length=120), nullable=False),
        sa.Column('conversion_type', sa.String(length=20), nullable=False),
        sa.Column('occurred_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('referrer', sa.String(length=500), nullable=True),
        sa.Column('page_slug', sa.String(length=200), nullable=True),
        sa.Column('test_id', sa.String(length=32), nullable=True),
        sa.Column('variant_id', sa.String(length=64), nullable=True),
        sa.Column('visitor_id', sa.String(length=100), nullable=True),
        sa.Column('session_id', sa.String(length=100), nullable=False),
        sa.Column('value', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('event_metadata', sa.JSON(), nullable=True),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_conversion_event_session_id', 'conversion_event', ['session_id'])
    op.create_index('idx_conversion_event_clinic_time', 'conversion_event', ['clinic_slug', 'occurred_at'])

    op.create_table('upgrade_forecast',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('clinic_slug', sa.String(length=120), nullable=False),
        sa.Column('forecast_date', sa.DateTime(timezone=True), nullable=False),
        sa.Column('upgrade_mode', sa.String(length=20), nullable=False, server_default='tier'),
        sa.Column('current_tier', sa.String(length=20), nullable=False),
        sa.Column('target_tier', sa.String(length=20), nullable=False),
        sa.Column('prediction_score', sa.Integer(), nullable=False),
        sa.Column('confidence', sa.String(length=10), nullable=False),
        sa.Column('factors', sa.JSON(), nullable=False),
        sa.Column('predicted_revenue', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('timeframe_days', sa.Integer(), nullable=False),
        sa.Column('recommended_actions', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_upgrade_forecast_clinic_created', 'upgrade_forecast', ['clinic_slug', 'created_at'])

    op.create_table('forecast_log',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('clinic_slug', sa.String(length=120), nullable=False),
        sa.Column('forecast_id', sa.Integer(), nullable=True),
        sa.Column('log_date', sa.String(length=10), nullable=False),
        sa.Column('forecast_type', sa.String(length=20), nullable=False, server_default='upgrade'),
        sa.Column('prediction', sa.JSON(), nullable=False),
        sa.Column('actual_outcome', sa.JSON(), nullable=True),
        sa.Column('accuracy', sa.Integer(), nullable=True),
        sa.Column('model_version', sa.String(length=20), nullable=False, server_default='v1.0'),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['forecast_id'], ['upgrade_forecast.id']),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_forecast_log_clinic_slug', 'forecast_log', ['clinic_slug'])


def downgrade():
    op.drop_index('ix_forecast_log_clinic_slug', table_name='forecast_log')
    op.drop_table('forecast_log')
    op.drop_index('idx_upgrade_forecast_clinic_created', table_name='upgrade_forecast')
    op.drop_table('upgrade_forecast')
    op.drop_index('idx_conversion_event_clinic_time', table_name='conversion_event')
    op.drop_index('ix_conversion_event_session_id', table_name='conversion_event')
    op.drop_table('conversion_event')
    op.drop_table('variant_assignment')
    op.drop_index('ix_test_variant_test_id', table_name='test_variant')
    op.drop_table('test_variant')
    op.drop_index('idx_variant_test_clinic_status', table_name='variant_test')
    op.drop_index('ix_variant_test_clinic_slug', table_name='variant_test')
    op.drop_table('variant_test')
    op.drop_index('ix_visitor_session_started_at', table_name='visitor_session')
    op.drop_index('ix_visitor_session_visitor_id', table_name='visitor_session')
    op.drop_index('ix_visitor_session_clinic_slug', table_name='visitor_session')
    op.drop_index('ix_visitor_session_session_id', table_name='visitor_session')
    op.drop_table('visitor_session')
    op.drop_index('ix_clinic_contact_clinic_slug', table_name='clinic_contact')
    op.drop_table('clinic_contact')
    op.drop_index('ix_clinic_slug', table_name='clinic')
    op.drop_table('clinic')
