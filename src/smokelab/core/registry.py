"""
Model registry for lookup of built-in lab models by name.

This module implements the Registry pattern: model packages register a
factory function when imported, and the CLI looks factories up by the name
given with ``--model``.

How Registration Works:
    # In smokelab/models/__init__.py
    from smokelab.core.registry import ModelRegistry
    from .ha import build_ha_model
    ModelRegistry.register("ha", build_ha_model)
"""

from typing import Callable, Dict, TYPE_CHECKING

from .exceptions import ConfigurationError

if TYPE_CHECKING:
    from .model import Model

ModelFactory = Callable[[], "Model"]


class ModelRegistry:
    """
    Central registry of model factories.

    Class-level state, because models register themselves at import time
    before any orchestrator exists. Each ``get`` builds a fresh model, so two
    runs in one process never share topology or variables.
    """

    _factories: Dict[str, ModelFactory] = {}

    @classmethod
    def register(cls, name: str, factory: ModelFactory) -> None:
        """
        Register a model factory under a name.

        Registering the same factory twice is allowed; a different factory
        under a taken name raises.

        Raises:
            ValueError: If name is already registered with a different factory
        """
        if name in cls._factories:
            existing = cls._factories[name]
            if existing is not factory:
                raise ValueError(
                    f"Model '{name}' is already registered with {existing.__name__}. "
                    f"Cannot re-register with {factory.__name__}."
                )
            return

        cls._factories[name] = factory

    @classmethod
    def get(cls, name: str) -> "Model":
        """
        Build a new instance of the named model.

        Raises:
            ConfigurationError: If no model is registered with that name.
        """
        if name not in cls._factories:
            raise ConfigurationError(
                f"Model '{name}' not found. Available: {cls.list_models()}"
            )
        return cls._factories[name]()

    @classmethod
    def list_models(cls) -> list[str]:
        return sorted(cls._factories.keys())

    @classmethod
    def is_registered(cls, name: str) -> bool:
        return name in cls._factories

    @classmethod
    def clear(cls) -> None:
        """Remove every registration (tests only)."""
        cls._factories.clear()
