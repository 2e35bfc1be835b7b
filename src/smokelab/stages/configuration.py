"""
Configuration stages: PKI, rendered component configs and the binary kit.

Everything here works on the local instance directory only:

    <instance_dir>/pki/          CA chain and per-component certificates
    <instance_dir>/kit/cfg/      rendered component configs
    <instance_dir>/kit/bin/      binaries shipped to every host

The distribution phase later mirrors ``kit/`` onto the hosts.
"""

import logging
import shutil
from pathlib import Path
from string import Template
from typing import Any, Callable, Dict, Iterator, Mapping, Sequence, TYPE_CHECKING

from smokelab import constants as CONSTANTS
from smokelab.core.phases import stage_name
from smokelab.core.resources import CONFIGS
from smokelab.core.state import InstanceState
from smokelab.remote import run_local

if TYPE_CHECKING:
    from smokelab.core.model import Component, Model
    from smokelab.core.protocols import Stage

logger = logging.getLogger(__name__)

ROOT_CA_NAME = "root"
INTERMEDIATE_CA_NAME = "intermediate"


def ziti_binary(model: "Model") -> str:
    root = model.get_variable(CONSTANTS.ZITI_ROOT_VAR)
    return str(Path(root) / "ziti") if root else "ziti"


class IfPkiNeedsRefresh:
    """
    Run the wrapped stage unless a previous run completed the PKI.

    Completion is the marker file ``FabricPki`` writes last; a ``pki/``
    directory without it is a leftover of a failed run and is removed first.
    """

    def __init__(self, stage: "Stage"):
        self.stage = stage
        self.name = f"if_pki_needs_refresh({stage_name(stage)})"

    def execute(self, model: "Model") -> None:
        pki_dir = InstanceState.of(model).pki_dir
        if (pki_dir / CONSTANTS.PKI_COMPLETE_MARKER).is_file():
            logger.info(f"PKI present at {pki_dir}; keeping it")
            return
        if pki_dir.exists():
            logger.warning(f"Discarding incomplete PKI at {pki_dir}")
            shutil.rmtree(pki_dir)
        self.stage.execute(model)


class FabricPki:
    """
    Create the CA chain and one server certificate per matched component.

    Uses ``ziti pki``: a root CA for ``trust_domain``, an intermediate CA
    signed by it, then a server certificate for each component named by its
    public identity with its host's public IP as a SAN.
    """

    def __init__(self, trust_domain: str, selector: str):
        if not trust_domain:
            raise ValueError("trust_domain is required")
        self.trust_domain = trust_domain
        self.selector = selector
        self.name = f"fabric_pki({trust_domain}, {selector})"

    def execute(self, model: "Model") -> None:
        pki_dir = InstanceState.of(model).pki_dir
        pki_dir.mkdir(parents=True, exist_ok=True)
        ziti = ziti_binary(model)
        pki_root = f"--pki-root={pki_dir}"

        run_local([
            ziti, "pki", "create", "ca", pki_root,
            f"--ca-file={ROOT_CA_NAME}",
            f"--trust-domain=spiffe://{self.trust_domain}",
        ])
        run_local([
            ziti, "pki", "create", "intermediate", pki_root,
            f"--ca-name={ROOT_CA_NAME}",
            f"--intermediate-file={INTERMEDIATE_CA_NAME}",
        ])

        for host, component in model.select_components(self.selector):
            identity = component.public_identity or component.id
            run_local([
                ziti, "pki", "create", "server", pki_root,
                f"--ca-name={INTERMEDIATE_CA_NAME}",
                f"--server-file={identity}-server",
                f"--server-name={identity}",
                f"--dns=localhost,{identity}",
                f"--ip=127.0.0.1,{host.must_public_ip()}",
                f"--spiffe-id=controller/{identity}",
            ], host=host.id)
            logger.info(f"  {identity}: server certificate issued")

        kit_pki = InstanceState.of(model).kit_dir / CONSTANTS.PKI_DIR_NAME
        shutil.copytree(pki_dir, kit_pki, dirs_exist_ok=True)
        (pki_dir / CONSTANTS.PKI_COMPLETE_MARKER).write_text(self.trust_domain + "\n", encoding="utf-8")
        logger.info(f"✓ PKI created for {self.trust_domain}")


class ConfigTemplate(Template):
    """``string.Template`` whose placeholders may be dotted variable paths."""

    idpattern = r"(?a:[_a-z][_a-z0-9]*(?:\.[_a-z][_a-z0-9]*)*)"


class ComponentVariables(Mapping):
    """
    Template namespace for one component.

    Built-in names (``component_id``, ``public_identity``, ``host_id``,
    ``public_ip``, ``region``, ``site``, ``model_id``) come first; any other
    name is looked up in the component's scope chain and must be bound.
    """

    def __init__(self, component: "Component"):
        self.component = component

    def _builtin(self) -> Dict[str, Callable[[], Any]]:
        component = self.component
        host = component.host
        # resolved on use; an unresolved host fails only templates that need its address
        return {
            "component_id": lambda: component.id,
            "public_identity": lambda: component.public_identity or component.id,
            "host_id": lambda: host.id,
            "public_ip": host.must_public_ip,
            "region": lambda: host.region.region,
            "site": lambda: host.region.site,
            "model_id": lambda: host.model.id,
        }

    def __getitem__(self, key: str) -> Any:
        builtin = self._builtin()
        if key in builtin:
            return builtin[key]()
        return self.component.must_variable(key)

    def __iter__(self) -> Iterator[str]:
        return iter(self._builtin())

    def __len__(self) -> int:
        return len(self._builtin())


def render_component_config(template: str, component: "Component") -> str:
    return ConfigTemplate(template).substitute(ComponentVariables(component))


class ComponentConfig:
    """Render every component's ``config_src`` into the kit as ``config_name``."""

    name = "component_config"

    def execute(self, model: "Model") -> None:
        bundle = model.resource(CONFIGS)
        cfg_dir = InstanceState.of(model).kit_dir / CONSTANTS.KIT_CFG_DIR_NAME
        cfg_dir.mkdir(parents=True, exist_ok=True)

        rendered = 0
        for component in model.components():
            if not component.config_src:
                continue
            template = bundle.read_file(component.config_src).decode("utf-8")
            target = cfg_dir / (component.config_name or f"{component.id}.yml")
            target.write_text(render_component_config(template, component), encoding="utf-8")
            logger.debug(f"Rendered {component.config_src} -> {target}")
            rendered += 1
        logger.info(f"✓ Rendered {rendered} component config(s)")


class DevKit:
    """
    Copy binaries into the kit's ``bin/`` directory.

    Args:
        root: Variable path naming the directory holding the binaries
        binaries: File names to copy
    """

    def __init__(self, root: str, binaries: Sequence[str]):
        self.root = root
        self.binaries = list(binaries)
        self.name = f"devkit({', '.join(self.binaries)})"

    def execute(self, model: "Model") -> None:
        source_dir = Path(model.must_variable(self.root))
        bin_dir = InstanceState.of(model).kit_dir / CONSTANTS.KIT_BIN_DIR_NAME
        bin_dir.mkdir(parents=True, exist_ok=True)

        for binary in self.binaries:
            source = source_dir / binary
            if not source.is_file():
                raise FileNotFoundError(f"Binary not found: {source}")
            target = bin_dir / binary
            shutil.copy2(source, target)
            target.chmod(0o755)
            logger.debug(f"Kitted {source} -> {target}")
        logger.info(f"✓ Kitted {len(self.binaries)} binary(ies) from {source_dir}")
