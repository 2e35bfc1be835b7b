"""
Unit tests for the model registry.
"""

import pytest

from smokelab.core.exceptions import ConfigurationError
from smokelab.core.model import Model
from smokelab.core.registry import ModelRegistry


def small_model():
    return Model(id="small")


def other_model():
    return Model(id="other")


class TestModelRegistry:
    """Tests for ModelRegistry class."""

    def setup_method(self):
        self._saved = dict(ModelRegistry._factories)
        ModelRegistry.clear()

    def teardown_method(self):
        ModelRegistry.clear()
        ModelRegistry._factories.update(self._saved)

    def test_register_and_get_builds_new_model(self):
        ModelRegistry.register("small", small_model)

        first = ModelRegistry.get("small")
        second = ModelRegistry.get("small")

        assert first.id == "small"
        assert first is not second

    def test_get_unknown_raises(self):
        ModelRegistry.register("small", small_model)

        with pytest.raises(ConfigurationError) as exc_info:
            ModelRegistry.get("huge")

        assert "huge" in str(exc_info.value)
        assert "small" in str(exc_info.value)

    def test_register_same_factory_twice_is_allowed(self):
        ModelRegistry.register("small", small_model)
        ModelRegistry.register("small", small_model)

        assert ModelRegistry.list_models() == ["small"]

    def test_register_different_factory_raises(self):
        ModelRegistry.register("small", small_model)

        with pytest.raises(ValueError) as exc_info:
            ModelRegistry.register("small", other_model)

        assert "already registered" in str(exc_info.value)

    def test_list_and_is_registered(self):
        ModelRegistry.register("small", small_model)
        ModelRegistry.register("other", other_model)

        assert ModelRegistry.list_models() == ["other", "small"]
        assert ModelRegistry.is_registered("small")
        assert not ModelRegistry.is_registered("ha")
