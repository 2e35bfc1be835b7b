"""
Instance State Management

Each model run owns an instance directory holding everything produced
locally: the kit (rendered configs and binaries), the PKI, the generated SSH
key, Terraform working files and ``hosts.json``, the persisted host id to
public IP map written after the infrastructure phase.
"""

import json
import logging
from pathlib import Path
from typing import Dict, TYPE_CHECKING

from smokelab import constants as CONSTANTS
from .exceptions import ConfigurationError

if TYPE_CHECKING:
    from .model import Model

logger = logging.getLogger(__name__)


class InstanceState:
    """Paths and persisted host addresses of one model instance."""

    def __init__(self, instance_dir: str | Path):
        if not instance_dir:
            raise ValueError("instance_dir is required")
        self.instance_dir = Path(instance_dir)

    @classmethod
    def of(cls, model: "Model") -> "InstanceState":
        """Return the state bound to ``model`` by the orchestrator."""
        return cls(model.must_variable(CONSTANTS.INSTANCE_DIR_VAR))

    def path(self, *subpaths: str) -> Path:
        return self.instance_dir.joinpath(*subpaths)

    @property
    def kit_dir(self) -> Path:
        return self.path(CONSTANTS.KIT_DIR_NAME)

    @property
    def pki_dir(self) -> Path:
        return self.path(CONSTANTS.PKI_DIR_NAME)

    @property
    def hosts_file(self) -> Path:
        return self.path(CONSTANTS.HOSTS_STATE_FILE)

    def ensure(self) -> None:
        self.instance_dir.mkdir(parents=True, exist_ok=True)

    def save_hosts(self, model: "Model") -> Dict[str, str]:
        """Persist every resolved host address."""
        addresses = {
            host.id: host.public_ip
            for host in model.hosts()
            if host.public_ip
        }
        self.ensure()
        with open(self.hosts_file, "w", encoding="utf-8") as f:
            json.dump(addresses, f, indent=2, sort_keys=True)
        logger.info(f"✓ Saved {len(addresses)} host address(es) to {self.hosts_file}")
        return addresses

    def load_hosts(self, model: "Model") -> int:
        """
        Apply persisted addresses to the model's hosts.

        Missing state is not an error (nothing provisioned yet). Hosts no
        longer present in the model are ignored.

        Returns:
            Number of hosts that received an address.
        """
        if not self.hosts_file.exists():
            return 0
        try:
            with open(self.hosts_file, "r", encoding="utf-8") as f:
                addresses = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(
                f"Invalid JSON in instance state: {e}",
                config_file=str(self.hosts_file)
            )

        applied = 0
        for host in model.hosts():
            if host.id in addresses:
                host.public_ip = addresses[host.id]
                applied += 1
        logger.debug(f"Loaded {applied} host address(es) from {self.hosts_file}")
        return applied

    def clear_hosts(self) -> None:
        if self.hosts_file.exists():
            self.hosts_file.unlink()
