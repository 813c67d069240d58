"""Dependency injection container and configuration"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')


@dataclass
class ServiceDescriptor:
    """Descriptor for a registered service"""
    service_type: Type
    implementation: Type = None
    factory: Callable = None
    instance: Any = None
    lifetime: str = "transient"  # singleton, transient


class DIContainer:
    """Dependency injection container"""

    def __init__(self):
        self._services: Dict[Type, ServiceDescriptor] = {}
        self._singletons: Dict[Type, Any] = {}

    def register_singleton(
        self,
        service_type: Type[T],
        implementation: Type[T] = None,
        factory: Callable[..., T] = None,
        instance: T = None
    ) -> "DIContainer":
        """Register a singleton service"""
        if sum(x is not None for x in [implementation, factory, instance]) != 1:
            raise ValueError("Must provide exactly one of: implementation, factory, or instance")

        self._services[service_type] = ServiceDescriptor(
            service_type=service_type,
            implementation=implementation,
            factory=factory,
            instance=instance,
            lifetime="singleton"
        )
        self._singletons.pop(service_type, None)
        return self

    def register_transient(
        self,
        service_type: Type[T],
        implementation: Type[T] = None,
        factory: Callable[..., T] = None
    ) -> "DIContainer":
        """Register a transient service"""
        if sum(x is not None for x in [implementation, factory]) != 1:
            raise ValueError("Must provide exactly one of: implementation or factory")

        self._services[service_type] = ServiceDescriptor(
            service_type=service_type,
            implementation=implementation,
            factory=factory,
            lifetime="transient"
        )
        return self

    def is_registered(self, service_type: Type) -> bool:
        return service_type in self._services

    async def resolve(self, service_type: Type[T]) -> T:
        """Resolve a service instance"""
        if service_type not in self._services:
            raise ValueError(f"Service {service_type} not registered")

        descriptor = self._services[service_type]

        if descriptor.lifetime == "singleton" and service_type in self._singletons:
            return self._singletons[service_type]

        instance = await self._create_instance(descriptor)

        if descriptor.lifetime == "singleton":
            self._singletons[service_type] = instance

        return instance

    async def _create_instance(self, descriptor: ServiceDescriptor) -> Any:
        """Create a new service instance"""
        try:
            if descriptor.instance is not None:
                return descriptor.instance
            elif descriptor.factory:
                # Factories receive the container so they can resolve their own dependencies
                instance = descriptor.factory(self)
                if asyncio.iscoroutine(instance):
                    instance = await instance
                return instance
            elif descriptor.implementation:
                return descriptor.implementation()
            else:
                raise ValueError("No way to create instance")

        except Exception as e:
            logger.error(f"Failed to create instance of {descriptor.service_type}: {e}")
            raise

    async def cleanup(self):
        """Cleanup all services"""
        for service_instance in self._singletons.values():
            if hasattr(service_instance, 'cleanup'):
                try:
                    await service_instance.cleanup()
                except Exception as e:
                    logger.warning(f"Error cleaning up singleton service: {e}")

        self._singletons.clear()


# Global container instance
_container: Optional[DIContainer] = None


def get_container() -> DIContainer:
    """Get the global DI container"""
    global _container
    if _container is None:
        _container = DIContainer()
    return _container


def reset_container() -> None:
    global _container
    _container = None


def configure_services(configurator: Callable[[DIContainer], DIContainer]) -> DIContainer:
    """Configure the global DI container"""
    container = get_container()
    return configurator(container)
