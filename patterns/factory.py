"""
Factory registries for strategy components chosen by configuration.
"""
from typing import Any, Dict, Type
from utils.logging_config import get_logger
from utils.exceptions import ConfigurationError

logger = get_logger(__name__)


class Factory:
    """String-keyed factory base class. Each subclass owns its registry."""

    _registry: Dict[str, Type] = {}

    @classmethod
    def register(cls, name: str, implementation: Type):
        """Register an implementation with a name."""
        if name in cls._registry and cls._registry[name] is not implementation:
            raise ConfigurationError(
                f"{name} is already registered in {cls.__name__}",
                details={'existing': cls._registry[name].__name__}
            )
        cls._registry[name] = implementation
        logger.debug(f"Registered {name} in {cls.__name__}")

    @classmethod
    def get(cls, name: str) -> Type:
        """Look up an implementation by name."""
        if name not in cls._registry:
            raise ConfigurationError(
                f"Unknown type for {cls.__name__}: {name}",
                details={'available_types': cls.list_available()}
            )
        return cls._registry[name]

    @classmethod
    def create(cls, name: str, **kwargs) -> Any:
        """Create an instance by name."""
        return cls.get(name)(**kwargs)

    @classmethod
    def list_available(cls) -> list:
        """List all registered implementations."""
        return sorted(cls._registry.keys())


class SelectorFactory(Factory):
    """Factory for sub-model selectors."""
    _registry: Dict[str, Type] = {}


class CombinerFactory(Factory):
    """Factory for output combiners."""
    _registry: Dict[str, Type] = {}


class RegressionDiversityFactory(Factory):
    """Factory for diversity measures over regression outputs."""
    _registry: Dict[str, Type] = {}


class BinaryDiversityFactory(Factory):
    """Factory for diversity measures over binary classifier outputs."""
    _registry: Dict[str, Type] = {}


class MulticlassDiversityFactory(Factory):
    """Factory for diversity measures over class-probability vectors."""
    _registry: Dict[str, Type] = {}


def register_selector(name: str):
    """Decorator for registering selectors."""
    def decorator(cls):
        SelectorFactory.register(name, cls)
        return cls
    return decorator


def register_combiner(name: str):
    """Decorator for registering combiners."""
    def decorator(cls):
        CombinerFactory.register(name, cls)
        return cls
    return decorator


def register_diversity(name: str, *factories: Type[Factory]):
    """Decorator for registering a diversity measure with one or more kind factories."""
    def decorator(cls):
        for factory in factories:
            factory.register(name, cls)
        return cls
    return decorator
