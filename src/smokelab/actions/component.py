"""
Component lifecycle actions.

Components run from the kit mirrored to ``~/fablab`` on each host: binaries
in ``fablab/bin``, configs in ``fablab/cfg``, output in ``logs/<id>.log``.

Usage:
    registry.bind("stop", bind(StopInParallel("*", 15)))
    Workflow(StopInParallel("*"), StartComponents("#ctrl")).execute(model)
"""

import logging
import shlex
import time
from collections import OrderedDict
from typing import Dict, List, TYPE_CHECKING

from smokelab import constants as CONSTANTS
from smokelab.core.fanout import fan_out
from smokelab.core.phases import stage_name
from smokelab.remote import SshClient
from smokelab.stages.distribution import REMOTE_KIT_DIR

if TYPE_CHECKING:
    from smokelab.core.model import Component, Host, Model
    from smokelab.core.protocols import Action

logger = logging.getLogger(__name__)


def group_by_host(model: "Model", selector: str) -> Dict[str, List["Component"]]:
    """Matched components keyed by host id, in declaration order."""
    grouped: Dict[str, List["Component"]] = OrderedDict()
    for host, component in model.select_components(selector):
        grouped.setdefault(host.id, []).append(component)
    return grouped


def start_command(component: "Component") -> str:
    """Shell command launching ``component`` in the background."""
    parts = component.binary_name.split()
    if not parts:
        raise ValueError(f"Component '{component.id}' has no binary")
    args = [f"{REMOTE_KIT_DIR}/{CONSTANTS.KIT_BIN_DIR_NAME}/{parts[0]}"] + parts[1:]
    if component.config_name:
        args += ["run", f"{REMOTE_KIT_DIR}/{CONSTANTS.KIT_CFG_DIR_NAME}/{component.config_name}"]
    command = " ".join(shlex.quote(arg) for arg in args)
    return f"nohup {command} > logs/{shlex.quote(component.id)}.log 2>&1 &"


def stop_command(component: "Component") -> str:
    # "[z]iti" keeps pkill from matching the remote shell running it
    name = component.binary_name.strip()
    if not name:
        raise ValueError(f"Component '{component.id}' has no binary")
    pattern = f"[{name[0]}]{name[1:]}"
    # pkill exits 1 when nothing matched; a stopped component is not an error
    return f"pkill -f {shlex.quote(pattern)} || true"


class StopInParallel:
    """Stop every matched component, one SSH session per host."""

    def __init__(self, selector: str, concurrency: int = CONSTANTS.DEFAULT_CONCURRENCY):
        self.selector = selector
        self.concurrency = concurrency
        self.name = f"stop_in_parallel({selector})"

    def execute(self, model: "Model") -> None:
        grouped = group_by_host(model, self.selector)

        def stop(host: "Host") -> None:
            commands = [stop_command(component) for component in grouped[host.id]]
            SshClient.for_host(host).run("; ".join(commands))

        hosts = [model.get_host(host_id) for host_id in grouped]
        fan_out(hosts, stop, self.concurrency, name=self.name)
        logger.info(f"✓ Stopped '{self.selector}' on {len(hosts)} host(s)")


class StartComponents:
    """Start every matched component from the kit."""

    def __init__(self, selector: str, concurrency: int = CONSTANTS.DEFAULT_CONCURRENCY):
        self.selector = selector
        self.concurrency = concurrency
        self.name = f"start({selector})"

    def execute(self, model: "Model") -> None:
        grouped = group_by_host(model, self.selector)

        def start(host: "Host") -> None:
            client = SshClient.for_host(host)
            for component in grouped[host.id]:
                client.run(start_command(component))
                logger.debug(f"[{host.id}] started {component.id}")

        hosts = [model.get_host(host_id) for host_id in grouped]
        fan_out(hosts, start, self.concurrency, name=self.name)
        logger.info(f"✓ Started '{self.selector}' on {len(hosts)} host(s)")


class RemoteShell:
    """Run one shell command on every host matched by ``selector``."""

    def __init__(self, selector: str, command: str, concurrency: int = CONSTANTS.DEFAULT_CONCURRENCY):
        self.selector = selector
        self.command = command
        self.concurrency = concurrency
        self.name = f"remote_shell({selector})"

    def execute(self, model: "Model") -> None:
        def run(host: "Host") -> None:
            SshClient.for_host(host).run(self.command)

        fan_out(model.select_hosts(self.selector), run, self.concurrency, name=self.name)


class Delay:
    def __init__(self, seconds: float):
        self.seconds = seconds
        self.name = f"delay({seconds}s)"

    def execute(self, model: "Model") -> None:
        time.sleep(self.seconds)


class Workflow:
    """Actions executed one after another; the first failure stops the rest."""

    def __init__(self, *actions: "Action"):
        self.actions = list(actions)

    def add_action(self, action: "Action") -> "Workflow":
        self.actions.append(action)
        return self

    @property
    def name(self) -> str:
        return "workflow(" + ", ".join(stage_name(a) for a in self.actions) + ")"

    def execute(self, model: "Model") -> None:
        for action in self.actions:
            logger.info(f"  → {stage_name(action)}")
            action.execute(model)
