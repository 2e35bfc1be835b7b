"""
Action registry.

Actions are named operations invoked explicitly ("stop", "login", ...),
outside the phase pipeline. They are registered as *binders*: callables that
receive the live model and return the action, so an action sees the topology
and variables as they are at activation time.

Example Usage:
    registry = ActionRegistry()
    registry.bind("stop", bind(StopInParallel("*", 15)))
    registry.bind("start", lambda model: StartAction(model, ...))
    registry.activate(model, "stop", "start")
"""

import logging
from typing import Callable, Dict, Mapping, Optional, TYPE_CHECKING

from .exceptions import ActionError, ActionNotFoundError, MissingVariableError

if TYPE_CHECKING:
    from .model import Model
    from .protocols import Action

logger = logging.getLogger(__name__)

ActionBinder = Callable[["Model"], "Action"]


def bind(action: "Action") -> ActionBinder:
    """Wrap an already constructed action as a binder."""
    return lambda model: action


class ActionRegistry:
    """
    Named, lazily built actions.

    Binding the same binder twice under a name is idempotent; a different
    binder under a taken name raises.
    """

    def __init__(self, binders: Optional[Mapping[str, ActionBinder]] = None):
        self._binders: Dict[str, ActionBinder] = {}
        for name, binder in (binders or {}).items():
            self.bind(name, binder)

    def bind(self, name: str, binder: ActionBinder) -> None:
        """
        Register ``binder`` under ``name``.

        Raises:
            ValueError: If the name is empty or bound to a different binder
        """
        if not name:
            raise ValueError("Action name is required")
        if name in self._binders:
            if self._binders[name] is not binder:
                raise ValueError(f"Action '{name}' is already bound")
            return
        self._binders[name] = binder

    def is_bound(self, name: str) -> bool:
        return name in self._binders

    def list_actions(self) -> list[str]:
        """List bound action names, sorted alphabetically."""
        return sorted(self._binders)

    def build(self, name: str, model: "Model") -> "Action":
        if name not in self._binders:
            raise ActionNotFoundError(name, self.list_actions())
        return self._binders[name](model)

    def activate(self, model: "Model", *names: str) -> None:
        """
        Build and execute the named actions in the order given.

        Every name is checked before the first action runs.

        Raises:
            ActionNotFoundError: If any name is not bound
            MissingVariableError: Propagated unchanged (fatal configuration)
            ActionError: Wrapping the first failing action
        """
        for name in names:
            if name not in self._binders:
                raise ActionNotFoundError(name, self.list_actions())

        for name in names:
            logger.info(f"[action] {name}")
            try:
                action = self.build(name, model)
                action.execute(model)
            except MissingVariableError:
                raise
            except ActionError:
                raise
            except Exception as e:
                logger.error(f"[action] {name} failed: {e}")
                raise ActionError(name, e) from e
            logger.info(f"✓ Action {name} complete")
