"""
Protocol definitions for the lab orchestrator.

These are the seams the engine owns: anything with the right methods can be
a stage, an action, a bootstrap extension or a placeholder resolver, without
inheriting from an engine class.

Why Protocols instead of ABC?
    - Library stages, model-specific stages and test doubles are all plain
      classes or closures; no base class is required
    - Runtime checking with @runtime_checkable for model validation
"""

from typing import Protocol, runtime_checkable, TYPE_CHECKING

if TYPE_CHECKING:
    from .model import Host, Model


@runtime_checkable
class Stage(Protocol):
    """
    A single ordered unit of provisioning, configuration, distribution or
    disposal work.

    Stages are bound when the model is constructed and hold only their
    construction parameters. Failure is signalled by raising; the phase
    runner stops at the first exception.

    Example Implementation:
        class Locations:
            def __init__(self, selector, *paths):
                self.selector = selector
                self.paths = paths

            def execute(self, model):
                for host in model.select_hosts(self.selector):
                    ...
    """

    def execute(self, model: "Model") -> None:
        """Run the stage against the model. Raise on failure."""
        ...


@runtime_checkable
class Action(Protocol):
    """An explicitly activated operation, built from the live model."""

    def execute(self, model: "Model") -> None:
        ...


@runtime_checkable
class BootstrapExtension(Protocol):
    """
    A one-time initializer executed before any phase or action.

    Extensions load ambient credentials and provision secrets. They must be
    idempotent: running twice against the same backing store must not
    create duplicate keys or resources.
    """

    def bootstrap(self, model: "Model") -> None:
        ...


@runtime_checkable
class Resolver(Protocol):
    """
    Produces the replacement text for one placeholder on one host.

    Resolvers must only read shared state; the value for host A must never
    depend on what was resolved for host B.
    """

    def resolve(self, host: "Host") -> str:
        ...
