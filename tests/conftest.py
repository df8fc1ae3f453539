# tests/conftest.py
"""
Shared fixtures for the pytest test suite.

The app fixture builds one application per test module on an in-memory
SQLite database. Tests that touch the database use clean_db, which empties
every table first so each test starts from a known state.
"""
import os

import pytest

from app import create_app
from extensions import db
from clinic_database import Clinic, ClinicContact, VariantTest, TestVariant
from utils.datetime_utils import utc_now


def create_test_clinic(**kwargs):
    """
    Helper to build a clinic with default values.
    Used across multiple test files.
    """
    defaults = {
        'slug': 'test-clinic',
        'name': 'Test Clinic',
        'tier': 'free',
        'review_count': 0,
        'created_at': utc_now(),
    }
    defaults.update(kwargs)
    return Clinic(**defaults)


def create_test_variant_test(clinic_slug='test-clinic', variants=None, **kwargs):
    """
    Helper to build a variant test with two 50/50 variants unless given others.
    """
    defaults = {
        'clinic_slug': clinic_slug,
        'name': 'Header test',
        'test_type': 'seo_header',
        'status': 'running',
        'traffic_allocation': 100,
        'confidence_level': 95,
        'primary_metric': 'conversion_rate',
    }
    defaults.update(kwargs)
    test = VariantTest(**defaults)
    for position, variant in enumerate(variants or [
        {'variant_key': 'control', 'name': 'Control', 'content': {'title': 'A'}, 'weight': 50, 'is_control': True},
        {'variant_key': 'bold', 'name': 'Bold', 'content': {'title': 'B'}, 'weight': 50, 'is_control': False},
    ]):
        test.variants.append(TestVariant(position=position, **variant))
    return test


@pytest.fixture(scope='module')
def app():
    """
    A fresh Flask application per test module with all tables created.
    """
    os.environ['FLASK_ENV'] = 'testing'

    app = create_app(config_name='testing')

    with app.app_context():
        db.create_all()

        yield app

        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='module')
def client(app):
    """Test client for the application's endpoints"""
    return app.test_client()


@pytest.fixture(scope='function')
def clean_db(app):
    """
    Empty every table before the test and hand back the session.
    """
    with app.app_context():
        db.session.rollback()
        for table in reversed(db.metadata.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        db.session.rollback()


@pytest.fixture
def clinic(clean_db):
    """A persisted free-tier clinic"""
    clinic = create_test_clinic()
    clean_db.add(clinic)
    clean_db.commit()
    return clinic


@pytest.fixture
def clinic_contact_factory(clean_db):
    """Adds CRM contact log entries for a clinic"""
    def _create(clinic_slug='test-clinic', contacted_at=None, channel='call'):
        contact = ClinicContact(clinic_slug=clinic_slug, contacted_at=contacted_at or utc_now(), channel=channel)
        clean_db.add(contact)
        clean_db.commit()
        return contact
    return _create
