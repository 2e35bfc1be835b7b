"""
Declarative topology loading.

A topology file (JSON or YAML) describes regions, hosts and components. It
may name a registered model under ``extends``; the loaded topology then
reuses that model's stages, actions, resources and activation actions.

File Format:
    id: ha-small
    extends: ha
    variables:
      environment: ha-small
    regions:
      us-east-1:
        region: us-east-1
        site: us-east-1a
        hosts:
          ctrl1:
            instance_type: t3.micro
            components:
              ctrl1:
                binary_name: ziti controller
                tags: [ctrl, "spiffe:controller"]
                config_src: ctrl.yml.tmpl
                config_name: ctrl1.yml

Usage:
    from smokelab.core.loader import load_model_file
    model = load_model_file(Path("topologies/small.yml"))
"""

import json
from pathlib import Path
from typing import Any, Dict, Mapping

import yaml

from .exceptions import ConfigurationError
from .model import Component, Host, Model, Region, Scope
from .registry import ModelRegistry
from .variables import Variables

YAML_SUFFIXES = {".yml", ".yaml"}

_COMPONENT_KEYS = {"binary_name", "config_src", "config_name", "public_identity", "tags", "variables"}
_HOST_KEYS = {"instance_type", "components", "tags", "variables"}
_REGION_KEYS = {"region", "site", "hosts", "tags", "variables"}
_MODEL_KEYS = {"id", "extends", "variables", "tags", "regions"}


def _read_document(file_path: Path) -> Dict[str, Any]:
    if not file_path.exists():
        raise ConfigurationError("Topology file not found", config_file=str(file_path))

    try:
        with open(file_path, "r", encoding="utf-8") as f:
            if file_path.suffix.lower() in YAML_SUFFIXES:
                document = yaml.safe_load(f)
            else:
                document = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in topology file: {e}", config_file=str(file_path))
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in topology file: {e}", config_file=str(file_path))

    if not isinstance(document, dict):
        raise ConfigurationError("Topology file must contain a mapping", config_file=str(file_path))
    return document


def _check_keys(kind: str, name: str, data: Mapping[str, Any], allowed: set) -> None:
    if not isinstance(data, Mapping):
        raise ConfigurationError(f"{kind} '{name}' must be a mapping")
    unknown = set(data) - allowed
    if unknown:
        raise ConfigurationError(f"Unknown keys in {kind} '{name}': {sorted(unknown)}")


def _scope(data: Mapping[str, Any]) -> Scope:
    tags = data.get("tags") or []
    if isinstance(tags, str):
        tags = [tags]
    return Scope(variables=data.get("variables") or {}, tags=tuple(tags))


def parse_model(document: Mapping[str, Any], source: str = "<memory>") -> Model:
    """
    Build a Model from a parsed topology document.

    Raises:
        ConfigurationError: On unknown keys, missing ids or unknown ``extends``
    """
    _check_keys("model", source, document, _MODEL_KEYS)
    model_id = document.get("id")
    if not model_id:
        raise ConfigurationError("Missing required field 'id'", config_file=source)

    regions = {}
    for region_id, region_data in (document.get("regions") or {}).items():
        _check_keys("region", region_id, region_data, _REGION_KEYS)
        hosts = {}
        for host_id, host_data in (region_data.get("hosts") or {}).items():
            _check_keys("host", host_id, host_data, _HOST_KEYS)
            components = {}
            for component_id, component_data in (host_data.get("components") or {}).items():
                component_data = component_data or {}
                _check_keys("component", component_id, component_data, _COMPONENT_KEYS)
                binary_name = str(component_data.get("binary_name") or "").strip()
                if not binary_name:
                    raise ConfigurationError(f"component '{component_id}' needs a binary_name", config_file=source)
                components[component_id] = Component(
                    binary_name=binary_name,
                    config_src=component_data.get("config_src"),
                    config_name=component_data.get("config_name"),
                    public_identity=component_data.get("public_identity"),
                    scope=_scope(component_data),
                )
            hosts[host_id] = Host(
                instance_type=host_data.get("instance_type", ""),
                components=components,
                scope=_scope(host_data),
            )
        regions[region_id] = Region(
            region=region_data.get("region", region_id),
            site=region_data.get("site", ""),
            hosts=hosts,
            scope=_scope(region_data),
        )

    base = None
    if document.get("extends"):
        import smokelab.models  # noqa: F401  (registers built-in models)
        base = ModelRegistry.get(document["extends"])

    model = Model(
        id=model_id,
        scope=_scope(document),
        regions=regions,
        resources=base.resources if base else {},
        actions=dict(base.actions) if base else {},
        infrastructure=base.infrastructure if base else (),
        configuration=base.configuration if base else (),
        distribution=base.distribution if base else (),
        disposal=base.disposal if base else (),
    )
    if base:
        # file values override base defaults per path
        merged = Variables(base.scope.variables.to_dict())
        merged.merge(model.scope.variables.to_dict())
        model.scope = Scope(variables=merged, tags=model.scope.tags or base.scope.tags)
        model.add_activation_actions(*base.activation_actions)
        for extension in base.bootstrap_extensions:
            model.add_bootstrap_extension(extension)
    return model


def load_model_file(file_path: str | Path) -> Model:
    """Load a Model from a JSON or YAML topology file."""
    file_path = Path(file_path)
    return parse_model(_read_document(file_path), source=str(file_path))
