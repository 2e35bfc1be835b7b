"""
Edge management actions run with the local ``ziti`` CLI.

The CLI keeps its session after ``ziti edge login``, so later ``ziti edge``
commands in the same run talk to the controller that was logged into.
"""

import logging
from typing import List, Optional, TYPE_CHECKING

from smokelab import constants as CONSTANTS
from smokelab.core.exceptions import ConfigurationError, RemoteCommandError
from smokelab.core.state import InstanceState
from smokelab.remote import SshClient, run_local
from smokelab.stages.configuration import ziti_binary
from smokelab.stages.distribution import REMOTE_KIT_DIR

if TYPE_CHECKING:
    from smokelab.core.model import Component, Model

logger = logging.getLogger(__name__)


def edge(model: "Model", *args: str) -> str:
    """Run ``ziti edge <args>`` locally and return its output."""
    result = run_local([ziti_binary(model), "edge"] + list(args), timeout=120)
    return result.stdout.decode("utf-8", errors="replace")


class EdgeLogin:
    """Log the local CLI into the controller of the first matched component."""

    def __init__(self, selector: str):
        self.selector = selector
        self.name = f"edge_login({selector})"

    def execute(self, model: "Model") -> None:
        matches = model.select_components(self.selector)
        if not matches:
            raise ConfigurationError(f"No controller matches '{self.selector}'")
        host, component = matches[0]

        endpoint = f"{host.must_public_ip()}:{CONSTANTS.EDGE_API_PORT}"
        username = host.must_string_variable(CONSTANTS.EDGE_USERNAME_VAR)
        password = host.must_string_variable(CONSTANTS.EDGE_PASSWORD_VAR)
        edge(model, "login", endpoint, "-u", username, "-p", password, "-y")
        logger.info(f"✓ Logged into {component.id} at {endpoint}")


class EnrollIdentities:
    """
    Create and enroll an edge identity for each matched component.

    Edge routers become ``edge-router`` entities and enroll with
    ``ziti router enroll``; other components get an ``identity`` and
    enroll with ``ziti edge enroll``. Enrollment tokens are written under
    the instance directory and pushed next to the component's config.
    """

    def __init__(self, selector: str, router: bool = False, role_attributes: Optional[List[str]] = None):
        self.selector = selector
        self.router = router
        self.role_attributes = role_attributes or []
        self.name = f"enroll_identities({selector})"

    def execute(self, model: "Model") -> None:
        jwt_dir = InstanceState.of(model).path("enrollment")
        jwt_dir.mkdir(parents=True, exist_ok=True)

        for host, component in model.select_components(self.selector):
            identity = component.public_identity or component.id
            jwt_file = jwt_dir / f"{identity}.jwt"
            self._delete_existing(model, identity)
            edge(model, *self._create_args(identity, str(jwt_file)))

            remote_jwt = f"{REMOTE_KIT_DIR}/{CONSTANTS.KIT_CFG_DIR_NAME}/{identity}.jwt"
            client = SshClient.for_host(host)
            client.put_bytes(jwt_file.read_bytes(), remote_jwt, mode=0o600)
            client.run(self._enroll_command(component, remote_jwt))
            logger.info(f"  {identity}: enrolled on {host.id}")

    def _delete_existing(self, model: "Model", identity: str) -> None:
        try:
            edge(model, "delete", self._entity(), identity)
        except RemoteCommandError as e:
            logger.debug(f"No existing {self._entity()} '{identity}': {e}")

    def _entity(self) -> str:
        return "edge-router" if self.router else "identity"

    def _create_args(self, identity: str, jwt_file: str) -> List[str]:
        args = ["create", self._entity(), identity, "-o", jwt_file]
        if self.router:
            args.append("--tunneler-enabled")
        if self.role_attributes:
            args += ["-a", ",".join(self.role_attributes)]
        return args

    def _enroll_command(self, component: "Component", remote_jwt: str) -> str:
        ziti = f"{REMOTE_KIT_DIR}/{CONSTANTS.KIT_BIN_DIR_NAME}/ziti"
        identity = component.public_identity or component.id
        if self.router:
            config_name = component.config_name or f"{component.id}.yml"
            config = f"{REMOTE_KIT_DIR}/{CONSTANTS.KIT_CFG_DIR_NAME}/{config_name}"
            return f"{ziti} router enroll {config} --jwt {remote_jwt}"
        output = f"{REMOTE_KIT_DIR}/{CONSTANTS.KIT_CFG_DIR_NAME}/{identity}.json"
        return f"{ziti} edge enroll --jwt {remote_jwt} --out {output}"
