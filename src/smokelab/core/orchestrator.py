"""
Orchestrator - top-level driver of one lab run.

The orchestrator takes an explicitly constructed model (no module-level
model state), binds the instance directory, restores persisted host
addresses and then runs one of the run modes:

    up        bootstrap → infrastructure → configuration → distribution → activation actions
    express   bootstrap → infrastructure
    build     bootstrap → configuration
    sync      bootstrap → distribution
    activate  bootstrap → the model's activation actions
    exec      bootstrap → the named actions, in the order given
    dispose   bootstrap (disposal subset) → disposal stages, best-effort

Usage:
    model = ModelRegistry.get("ha")
    orchestrator = Orchestrator(model)
    orchestrator.up()
"""

import logging
from pathlib import Path
from typing import Iterable, Optional, TYPE_CHECKING

from smokelab import constants as CONSTANTS
from .actions import ActionRegistry
from .bootstrap import BootstrapChain
from .phases import PIPELINE, Phase, PhaseRunner
from .state import InstanceState

if TYPE_CHECKING:
    from .model import Model
    from .protocols import BootstrapExtension

logger = logging.getLogger(__name__)


class Orchestrator:
    """
    Drives bootstrap, phases and actions for one model.

    Attributes:
        model: The model being run
        state: Instance directory and persisted host addresses
        bootstrap_chain: Model extensions plus any extra ones
        actions: Registry built from the model's action binders
        runner: Phase runner
    """

    def __init__(
        self,
        model: "Model",
        instance_dir: Optional[str | Path] = None,
        extra_extensions: Iterable["BootstrapExtension"] = (),
        runner: Optional[PhaseRunner] = None
    ):
        self.model = model
        self.state = InstanceState(instance_dir or CONSTANTS.default_instance_dir(model.id))
        self.runner = runner or PhaseRunner()
        self.actions = ActionRegistry(model.actions)

        self.bootstrap_chain = BootstrapChain()
        for extension in list(model.bootstrap_extensions) + list(extra_extensions):
            self.bootstrap_chain.add(extension)

        model.set_variable(CONSTANTS.INSTANCE_DIR_VAR, str(self.state.instance_dir))
        restored = self.state.load_hosts(model)
        if restored:
            logger.info(f"Restored {restored} host address(es) for instance '{model.id}'")

    def bootstrap(self) -> None:
        self.bootstrap_chain.run(self.model)

    def run_phases(self, *phases: Phase) -> None:
        """Bootstrap, then run the given phases in order."""
        self.bootstrap()
        for phase in phases:
            self.runner.run(phase, phase.stages_of(self.model), self.model)

    def express(self) -> None:
        self.run_phases(Phase.INFRASTRUCTURE)

    def build(self) -> None:
        self.run_phases(Phase.CONFIGURATION)

    def sync(self) -> None:
        self.run_phases(Phase.DISTRIBUTION)

    def activate(self) -> None:
        """Run the model's activation actions."""
        self.exec(*self.model.activation_actions)

    def exec(self, *names: str) -> None:
        """Bootstrap, then activate the named actions in the order given."""
        self.bootstrap()
        self.actions.activate(self.model, *names)

    def up(self) -> None:
        """Full pipeline followed by the activation actions."""
        logger.info(f"Bringing up model '{self.model.id}'")
        self.run_phases(*PIPELINE)
        if self.model.activation_actions:
            self.actions.activate(self.model, *self.model.activation_actions)
        logger.info(f"✓ Model '{self.model.id}' is up")

    def dispose(self) -> None:
        """
        Tear everything down, best-effort.

        Safe on a partially provisioned or already disposed instance. The
        persisted host addresses are cleared only when every stage succeeded.
        """
        logger.info(f"Disposing model '{self.model.id}'")
        self.bootstrap_chain.run(self.model, disposal=True)
        self.runner.dispose(self.model.disposal, self.model)
        self.state.clear_hosts()
        for host in self.model.hosts():
            host.public_ip = None
        logger.info(f"✓ Model '{self.model.id}' disposed")
