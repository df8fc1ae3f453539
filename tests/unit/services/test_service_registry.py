"""
Tests for the lazy-loading ServiceRegistry
"""

from unittest.mock import Mock

import pytest

from services.service_registry import create_service_registry


class TestServiceRegistry:

    @pytest.fixture
    def registry(self):
        return create_service_registry()

    def test_register_requires_instance_or_factory(self, registry):
        with pytest.raises(ValueError):
            registry.register('empty')

    def test_instance_returned_as_is(self, registry):
        session = object()
        registry.register('db_session', service=session)
        assert registry.get('db_session') is session

    def test_unknown_service(self, registry):
        with pytest.raises(ValueError, match="not registered"):
            registry.get('missing')

    def test_singleton_is_built_once_and_lazily(self, registry):
        factory = Mock(side_effect=lambda: object())
        registry.register_singleton('clinic_repository', factory)

        factory.assert_not_called()
        first = registry.get('clinic_repository')
        assert registry.get('clinic_repository') is first
        factory.assert_called_once()

    def test_dependencies_injected_by_name(self, registry):
        registry.register('db_session', service='session')
        registry.register_singleton('clinic_repository', lambda db_session: ('repo', db_session),
                                    dependencies=['db_session'])
        registry.register_singleton('conversion_rate', lambda clinic_repository: ('service', clinic_repository),
                                    dependencies=['clinic_repository'])

        assert registry.get('conversion_rate') == ('service', ('repo', 'session'))

    def test_circular_dependency(self, registry):
        registry.register_singleton('a', lambda b: b, dependencies=['b'])
        registry.register_singleton('b', lambda a: a, dependencies=['a'])

        with pytest.raises(RuntimeError, match="Circular dependency detected: a -> b -> a"):
            registry.get('a')

    def test_validate_dependencies(self, registry):
        registry.register_singleton('variant_test', lambda variant_test_repository: None,
                                    dependencies=['variant_test_repository'])

        assert registry.validate_dependencies() == [
            "Service 'variant_test' depends on unregistered service 'variant_test_repository'"
        ]

    def test_failed_factory_is_retried_on_next_get(self, registry):
        factory = Mock(side_effect=[RuntimeError('db not ready'), 'repo'])
        registry.register_singleton('clinic_repository', factory)

        with pytest.raises(RuntimeError):
            registry.get('clinic_repository')

        assert registry.get('clinic_repository') == 'repo'


class TestApplicationRegistry:

    def test_all_application_services_resolve(self, app):
        with app.app_context():
            assert app.services.validate_dependencies() == []
            for name in ('variant_assignment', 'variant_test', 'conversion_tracking',
                         'session_tracking', 'conversion_rate', 'upgrade_forecast'):
                assert app.services.get(name) is not None

    def test_assignment_cache_disabled_in_testing(self, app):
        from repositories.variant_assignment_repository import VariantAssignmentRepository
        assert isinstance(app.services.get('assignment_store'), VariantAssignmentRepository)
