"""
Core abstractions of the lab orchestrator.

Modules:
    model: Topology model (regions, hosts, components) and selectors
    variables: Hierarchical variable store
    protocols: Stage, Action, BootstrapExtension and Resolver interfaces
    phases: Phase runner
    fanout: Bounded parallel per-host execution
    bootstrap: Bootstrap extension chain
    actions: Action registry
    resources: Config resource bundles
    state: Instance directory and persisted host addresses
    loader: JSON/YAML topology loading
    registry: Built-in model registry
    orchestrator: Top-level driver
    exceptions: Exception hierarchy

Usage:
    from smokelab.core import Orchestrator, ModelRegistry

    orchestrator = Orchestrator(ModelRegistry.get("ha"))
    orchestrator.up()
"""

from .actions import ActionRegistry, bind
from .bootstrap import BootstrapChain, BootstrapWithFallbacks
from .exceptions import (
    ActionError,
    ActionNotFoundError,
    BootstrapError,
    ConfigurationError,
    DisposalError,
    FanOutError,
    MissingVariableError,
    RemoteCommandError,
    ResourceNotFoundError,
    SmokelabError,
    StageError,
)
from .fanout import fan_out
from .model import Component, Host, Model, Region, Scope
from .orchestrator import Orchestrator
from .phases import Phase, PhaseRunner
from .protocols import Action, BootstrapExtension, Resolver, Stage
from .registry import ModelRegistry
from .variables import Variables

__all__ = [
    # Model
    "Model",
    "Region",
    "Host",
    "Component",
    "Scope",
    "Variables",
    # Protocols
    "Stage",
    "Action",
    "BootstrapExtension",
    "Resolver",
    # Engine
    "Phase",
    "PhaseRunner",
    "BootstrapChain",
    "BootstrapWithFallbacks",
    "ActionRegistry",
    "bind",
    "fan_out",
    "ModelRegistry",
    "Orchestrator",
    # Exceptions
    "SmokelabError",
    "ConfigurationError",
    "MissingVariableError",
    "ResourceNotFoundError",
    "BootstrapError",
    "StageError",
    "FanOutError",
    "DisposalError",
    "ActionNotFoundError",
    "ActionError",
    "RemoteCommandError",
]
