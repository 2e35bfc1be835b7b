"""
Built-in lab models.

Importing this package registers every built-in model with ModelRegistry.
"""

from smokelab.core.registry import ModelRegistry

from .ha import build_ha_model

ModelRegistry.register("ha", build_ha_model)

__all__ = ["build_ha_model"]
