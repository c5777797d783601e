"""
Service Registry - Central wiring of repositories and services
Lazy factories with named dependencies, so nothing is built at import time
"""
from typing import Dict, Any, Callable, Optional, Set, List
import threading
import logging

logger = logging.getLogger(__name__)


class ServiceDescriptor:
    """Describes a service registration"""

    def __init__(
        self,
        name: str,
        factory: Optional[Callable] = None,
        instance: Optional[Any] = None,
        dependencies: Optional[List[str]] = None
    ):
        self.name = name
        self.factory = factory
        self.instance = instance
        self.dependencies = dependencies or []
        self.lock = threading.Lock()


class ServiceRegistry:
    """
    Registry of application services.

    Every service lives for the life of the application: a factory runs at
    most once, on the first get. A factory receives its declared
    dependencies as keyword arguments, each resolved through the registry
    itself. Cycles are reported instead of recursing forever.
    """

    def __init__(self):
        self._descriptors: Dict[str, ServiceDescriptor] = {}
        self._thread_local = threading.local()
        self._lock = threading.Lock()

    def register(self, name: str, service: Any) -> None:
        """
        Register an already built service, replacing any earlier registration.

        Args:
            name: Service identifier
            service: Service instance
        """
        with self._lock:
            self._descriptors[name] = ServiceDescriptor(name=name, instance=service)

    def register_factory(
        self,
        name: str,
        factory: Callable,
        dependencies: Optional[List[str]] = None
    ) -> None:
        """
        Register a factory for lazy instantiation.

        Args:
            name: Service identifier
            factory: Callable taking the dependencies as keyword arguments
            dependencies: Names of services passed to the factory
        """
        with self._lock:
            self._descriptors[name] = ServiceDescriptor(
                name=name,
                factory=factory,
                dependencies=dependencies
            )

    def get(self, name: str) -> Any:
        """
        Get a service by name, building it and its dependencies on first use.

        Raises:
            ValueError: If service is not registered
            RuntimeError: If circular dependency detected
        """
        if name not in self._descriptors:
            raise ValueError(f"Service '{name}' is not registered")

        descriptor = self._descriptors[name]

        stack = self._initialization_stack()
        if name in stack:
            cycle = " -> ".join(stack + [name])
            raise RuntimeError(f"Circular dependency detected: {cycle}")

        if descriptor.instance is not None:
            return descriptor.instance

        with descriptor.lock:
            if descriptor.instance is None:
                descriptor.instance = self._create_instance(descriptor)
            return descriptor.instance

    def _initialization_stack(self) -> List[str]:
        if not hasattr(self._thread_local, 'initialization_stack'):
            self._thread_local.initialization_stack = []
        return self._thread_local.initialization_stack

    def _create_instance(self, descriptor: ServiceDescriptor) -> Any:
        if descriptor.factory is None:
            raise ValueError(f"No factory registered for '{descriptor.name}'")

        stack = self._initialization_stack()
        stack.append(descriptor.name)
        try:
            deps = {dep: self.get(dep) for dep in descriptor.dependencies}
            instance = descriptor.factory(**deps)
            logger.debug(f"Created service instance: {descriptor.name}")
            return instance
        finally:
            stack.pop()

    def validate_dependencies(self) -> List[str]:
        """
        Check every declared dependency is registered.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []
        for name, descriptor in self._descriptors.items():
            for dep in descriptor.dependencies:
                if dep not in self._descriptors:
                    errors.append(f"Service '{name}' depends on unregistered service '{dep}'")
        return errors

    def get_initialization_order(self) -> List[str]:
        """
        Topologically sorted service names, dependencies first.

        Raises:
            RuntimeError: If circular dependency exists
        """
        graph = {name: list(d.dependencies) for name, d in self._descriptors.items()}
        visited: Set[str] = set()
        order: List[str] = []

        def visit(node: str, path: List[str]):
            if node in path:
                raise RuntimeError(f"Circular dependency detected: {' -> '.join(path + [node])}")
            if node in visited:
                return
            for dep in graph.get(node, []):
                visit(dep, path + [node])
            visited.add(node)
            order.append(node)

        for service in graph:
            visit(service, [])

        return order
