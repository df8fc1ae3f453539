"""
Service Registry with lazy loading
Factories are resolved on first use, with their named dependencies injected
"""
from typing import Dict, Any, Callable, Optional, List
import threading
import logging

logger = logging.getLogger(__name__)


class ServiceDescriptor:
    """A single registration; the instance is built once and then shared"""

    def __init__(self, name: str, factory: Optional[Callable] = None, instance: Optional[Any] = None,
                 dependencies: Optional[List[str]] = None):
        self.name = name
        self.factory = factory
        self.instance = instance
        self.dependencies = dependencies or []
        self.lock = threading.Lock()


class ServiceRegistry:
    """
    Named service container for the application.

    Services are registered either as ready instances or as factories whose
    keyword arguments name other registered services. Circular dependencies
    are reported when a service is first resolved.
    """

    def __init__(self):
        self._descriptors: Dict[str, ServiceDescriptor] = {}
        self._thread_local = threading.local()
        self._lock = threading.Lock()

    def register(self, name: str, service: Any = None, factory: Callable = None,
                 dependencies: Optional[List[str]] = None) -> None:
        """
        Register a service instance or a factory.

        Args:
            name: Service identifier
            service: Pre-built instance
            factory: Callable building the instance from its dependencies
            dependencies: Names of services passed to the factory as kwargs
        """
        if service is None and factory is None:
            raise ValueError(f"Either service instance or factory must be provided for '{name}'")

        with self._lock:
            self._descriptors[name] = ServiceDescriptor(
                name=name, factory=factory, instance=service, dependencies=dependencies
            )

    def register_singleton(self, name: str, factory: Callable,
                           dependencies: Optional[List[str]] = None) -> None:
        self.register(name=name, factory=factory, dependencies=dependencies)

    def get(self, name: str) -> Any:
        """
        Resolve a service by name, building it on first use.

        Raises:
            ValueError: If the service is not registered
            RuntimeError: If a circular dependency is detected
        """
        descriptor = self._descriptors.get(name)
        if descriptor is None:
            raise ValueError(f"Service '{name}' is not registered")
        if descriptor.instance is not None:
            return descriptor.instance

        stack = self._initialization_stack()
        if name in stack:
            cycle = " -> ".join(stack + [name])
            raise RuntimeError(f"Circular dependency detected: {cycle}")

        with descriptor.lock:
            if descriptor.instance is None:
                descriptor.instance = self._create_instance(descriptor)
            return descriptor.instance

    def validate_dependencies(self) -> List[str]:
        """Names of dependencies that point at unregistered services"""
        errors = []
        for name, descriptor in self._descriptors.items():
            for dep in descriptor.dependencies:
                if dep not in self._descriptors:
                    errors.append(f"Service '{name}' depends on unregistered service '{dep}'")
        return errors

    def _initialization_stack(self) -> List[str]:
        if not hasattr(self._thread_local, 'initialization_stack'):
            self._thread_local.initialization_stack = []
        return self._thread_local.initialization_stack

    def _create_instance(self, descriptor: ServiceDescriptor) -> Any:
        stack = self._initialization_stack()
        stack.append(descriptor.name)
        try:
            deps = {dep: self.get(dep) for dep in descriptor.dependencies}
            instance = descriptor.factory(**deps)
            logger.debug(f"Created service instance: {descriptor.name}")
            return instance
        finally:
            stack.pop()


def create_service_registry() -> ServiceRegistry:
    return ServiceRegistry()
