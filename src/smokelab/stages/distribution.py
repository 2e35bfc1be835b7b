"""
Distribution stages: push keys, directories, data and the kit to hosts.

Every stage here fans out over the hosts matched by its selector with a
bounded number of concurrent SSH sessions. Destinations are relative to the
SSH user's home directory unless absolute. When two stages write the same
destination, the later stage wins.
"""

import logging
import os
from pathlib import Path
from typing import Callable, Union, TYPE_CHECKING

from smokelab import constants as CONSTANTS
from smokelab.core.exceptions import MissingVariableError
from smokelab.core.fanout import fan_out
from smokelab.core.resources import CONFIGS
from smokelab.core.state import InstanceState
from smokelab.remote import SshClient
from .resolvers import Replacements, normalize_replacements, render_for_host

if TYPE_CHECKING:
    from smokelab.core.model import Host, Model

logger = logging.getLogger(__name__)

Payload = Union[bytes, str, Callable[["Model"], Union[bytes, str]]]

REMOTE_KIT_DIR = "fablab"
REMOTE_SSH_KEY_PATH = ".ssh/id_rsa"


def config_file(path: str) -> Callable[["Model"], bytes]:
    """Payload read from the model's ``configs`` bundle when the stage runs."""
    def read(model: "Model") -> bytes:
        return model.resource(CONFIGS).read_file(path)
    read.__name__ = f"config_file({path})"
    return read


def env_payload(name: str) -> Callable[["Model"], str]:
    """Payload taken from a required environment variable when the stage runs."""
    def read(model: "Model") -> str:
        value = os.environ.get(name)
        if value is None:
            raise MissingVariableError(name, scope="environment")
        return value
    read.__name__ = f"env_payload({name})"
    return read


def load_payload(data: Payload, model: "Model") -> bytes:
    if callable(data):
        data = data(model)
    if isinstance(data, str):
        data = data.encode("utf-8")
    if not isinstance(data, bytes):
        raise TypeError(f"Payload must be bytes or str, got {type(data).__name__}")
    return data


class DistributeSshKey:
    """Copy the instance's private key to each host so hosts can reach each other."""

    def __init__(self, selector: str, concurrency: int = CONSTANTS.DEFAULT_CONCURRENCY):
        self.selector = selector
        self.concurrency = concurrency
        self.name = f"distribute_ssh_key({selector})"

    def execute(self, model: "Model") -> None:
        key_path = Path(model.must_variable(CONSTANTS.SSH_KEY_PATH_VAR))
        key = key_path.read_bytes()

        def push(host: "Host") -> None:
            SshClient.for_host(host).put_bytes(key, REMOTE_SSH_KEY_PATH, mode=0o600)

        fan_out(model.select_hosts(self.selector), push, self.concurrency, name=self.name)


class Locations:
    """Create directories on each matched host."""

    def __init__(self, selector: str, *paths: str, concurrency: int = CONSTANTS.DEFAULT_CONCURRENCY):
        if not paths:
            raise ValueError("At least one path is required")
        self.selector = selector
        self.paths = paths
        self.concurrency = concurrency
        self.name = f"locations({selector}: {', '.join(paths)})"

    def execute(self, model: "Model") -> None:
        command = "mkdir -p " + " ".join(self.paths)

        def create(host: "Host") -> None:
            SshClient.for_host(host).run(command)

        fan_out(model.select_hosts(self.selector), create, self.concurrency, name=self.name)


class DistributeData:
    """Deliver the same bytes to ``dest`` on every matched host."""

    def __init__(
        self,
        selector: str,
        data: Payload,
        dest: str,
        mode: int = 0o644,
        concurrency: int = CONSTANTS.DEFAULT_CONCURRENCY
    ):
        self.selector = selector
        self.data = data
        self.dest = dest
        self.mode = mode
        self.concurrency = concurrency
        self.name = f"distribute_data({selector} -> {dest})"

    def execute(self, model: "Model") -> None:
        payload = load_payload(self.data, model)

        def deliver(host: "Host") -> None:
            SshClient.for_host(host).put_bytes(payload, self.dest, mode=self.mode)

        fan_out(model.select_hosts(self.selector), deliver, self.concurrency, name=self.name)
        logger.info(f"✓ {self.dest} ({len(payload)} bytes) delivered to '{self.selector}'")


class DistributeDataWithReplaceCallbacks:
    """
    Deliver a template rendered separately for each matched host.

    Every host's copy is rendered before anything is sent, so a missing
    required input aborts the stage without touching any host.

    Example:
        DistributeDataWithReplaceCallbacks(
            "*", config_file("consul.hcl"), "consul/consul.hcl", 0o644,
            [("${public_ip}", HostPublicIp()), ("${build_number}", FromEnv("BUILD_NUMBER"))],
        )
    """

    def __init__(
        self,
        selector: str,
        data: Payload,
        dest: str,
        mode: int,
        replacements: Replacements,
        concurrency: int = CONSTANTS.DEFAULT_CONCURRENCY
    ):
        self.selector = selector
        self.data = data
        self.dest = dest
        self.mode = mode
        self.replacements = normalize_replacements(replacements)
        self.concurrency = concurrency
        self.name = f"distribute_data_with_replace({selector} -> {dest})"

    def render(self, model: "Model") -> dict:
        """Render the template for every matched host, keyed by host id."""
        template = load_payload(self.data, model)
        return {
            host.id: render_for_host(template, self.replacements, host)
            for host in model.select_hosts(self.selector)
        }

    def execute(self, model: "Model") -> None:
        rendered = self.render(model)

        def deliver(host: "Host") -> None:
            SshClient.for_host(host).put_bytes(rendered[host.id], self.dest, mode=self.mode)

        hosts = [model.get_host(host_id) for host_id in rendered]
        fan_out(hosts, deliver, self.concurrency, name=self.name)
        logger.info(f"✓ {self.dest} rendered for {len(hosts)} host(s)")


class RsyncStaged:
    """Mirror the local kit directory onto every host."""

    name = "rsync_staged"

    def __init__(
        self,
        remote_dir: str = REMOTE_KIT_DIR,
        concurrency: int = CONSTANTS.DEFAULT_CONCURRENCY,
        selector: str = "*"
    ):
        self.remote_dir = remote_dir
        self.concurrency = concurrency
        self.selector = selector

    def execute(self, model: "Model") -> None:
        kit_dir = InstanceState.of(model).kit_dir
        if not kit_dir.is_dir():
            raise FileNotFoundError(f"Kit directory not found: {kit_dir} (run the configuration phase first)")

        def sync(host: "Host") -> None:
            SshClient.for_host(host).rsync(kit_dir, self.remote_dir)

        fan_out(model.select_hosts(self.selector), sync, self.concurrency, name=self.name)
        logger.info(f"✓ Kit synced to {self.remote_dir}/")
