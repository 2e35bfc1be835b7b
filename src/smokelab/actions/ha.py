"""
Start and bootstrap actions of the HA smoke test.

``start`` brings up the monitoring agents (consul, metricbeat) on every
host, then the controllers, routers and SDK applications in that order.
``bootstrap`` initialises the controller cluster and enrolls every router
and SDK application.
"""

import shlex
from dataclasses import dataclass
from typing import Callable, TYPE_CHECKING

from .component import Delay, RemoteShell, StartComponents, StopInParallel, Workflow
from .edge import EdgeLogin, EnrollIdentities

if TYPE_CHECKING:
    from smokelab.core.model import Model
    from smokelab.core.protocols import Action

CONTROLLER_SETTLE_SECONDS = 10


@dataclass
class MetricbeatConfig:
    config_path: str
    data_path: str
    log_path: str

    def start_command(self) -> str:
        return (
            "nohup metricbeat"
            f" --path.config {shlex.quote(self.config_path)}"
            f" --path.data {shlex.quote(self.data_path)}"
            f" --path.logs {shlex.quote(self.log_path)}"
            " > /dev/null 2>&1 &"
        )


@dataclass
class ConsulConfig:
    """
    Consul agent settings.

    ``server_addr`` is the address the agents join; an empty value starts
    standalone agents.
    """

    server_addr: str
    config_dir: str
    data_path: str
    log_path: str

    def start_command(self) -> str:
        args = [
            "consul", "agent",
            "-config-dir", self.config_dir,
            "-data-dir", self.data_path,
        ]
        if self.server_addr:
            args += ["-retry-join", self.server_addr]
        command = " ".join(shlex.quote(arg) for arg in args)
        return f"nohup {command} > {shlex.quote(self.log_path)} 2>&1 &"


def new_start_action(metricbeat: MetricbeatConfig, consul: ConsulConfig) -> Callable[["Model"], "Action"]:
    """Binder for the ``start`` action."""
    def build(model: "Model") -> "Action":
        return Workflow(
            RemoteShell("*", f"mkdir -p {shlex.quote(consul.data_path)} {shlex.quote(metricbeat.data_path)} "
                             f"{shlex.quote(metricbeat.log_path)}"),
            RemoteShell("*", consul.start_command()),
            RemoteShell("*", metricbeat.start_command()),
            StartComponents("#ctrl"),
            Delay(CONTROLLER_SETTLE_SECONDS),
            StartComponents("#edge-router"),
            StartComponents("#sdk-app"),
        )
    return build


def new_bootstrap_action() -> Callable[["Model"], "Action"]:
    """Binder for the ``bootstrap`` action."""
    def build(model: "Model") -> "Action":
        return Workflow(
            StopInParallel("*"),
            StartComponents("#ctrl"),
            Delay(CONTROLLER_SETTLE_SECONDS),
            EdgeLogin("#ctrl1"),
            EnrollIdentities("#edge-router", router=True, role_attributes=["public"]),
            EnrollIdentities("#service", role_attributes=["service"]),
            EnrollIdentities("#client", role_attributes=["client"]),
            StopInParallel("#ctrl"),
        )
    return build
