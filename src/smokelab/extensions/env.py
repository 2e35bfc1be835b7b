"""
Environment bootstrap extensions.

BootstrapFromEnv and BootstrapFromPath locate the ziti build under test.
RequireEnv checks that every external input the distribution phase reads is
present, so a missing one stops the run before any host is touched.
"""

import logging
import os
import shutil
from pathlib import Path
from typing import TYPE_CHECKING

from smokelab import constants as CONSTANTS
from smokelab.core.exceptions import ConfigurationError, MissingVariableError
from smokelab.remote import run_local

if TYPE_CHECKING:
    from smokelab.core.model import Model

logger = logging.getLogger(__name__)


class BootstrapFromEnv:
    """
    Bind ``ziti_version`` and ``ziti_root`` from ``ZITI_VERSION``/``ZITI_ROOT``.

    ``ZITI_ROOT`` is optional and defaults to the directory holding the
    ``ziti`` binary on ``PATH``.
    """

    name = "ziti_from_env"
    skip_on_disposal = True

    def bootstrap(self, model: "Model") -> None:
        version = os.environ.get(CONSTANTS.ENV_ZITI_VERSION)
        if not version:
            raise MissingVariableError(CONSTANTS.ENV_ZITI_VERSION, scope="environment")
        model.set_variable(CONSTANTS.ZITI_VERSION_VAR, version)

        root = os.environ.get(CONSTANTS.ENV_ZITI_ROOT)
        if not root:
            binary = shutil.which("ziti")
            root = str(Path(binary).parent) if binary else ""
        if root:
            model.set_variable(CONSTANTS.ZITI_ROOT_VAR, root)
        logger.info(f"✓ ziti {version} (root: {root or 'unset'})")


class BootstrapFromPath:
    """Ask the ``ziti`` binary found on ``PATH`` for its version."""

    name = "ziti_from_path"
    skip_on_disposal = True

    def bootstrap(self, model: "Model") -> None:
        binary = shutil.which("ziti")
        if not binary:
            raise ConfigurationError("ziti binary not found on PATH")
        result = run_local([binary, "version"], timeout=30)
        version = result.stdout.decode("utf-8").strip()
        if not version:
            raise ConfigurationError(f"{binary} version returned no output")
        model.set_variable(CONSTANTS.ZITI_VERSION_VAR, version)
        model.set_variable(CONSTANTS.ZITI_ROOT_VAR, str(Path(binary).parent))
        logger.info(f"✓ ziti {version} from {binary}")


class RequireEnv:
    """Fail with the first missing environment variable, in declared order."""

    skip_on_disposal = True

    def __init__(self, *names: str):
        if not names:
            raise ValueError("At least one environment variable name is required")
        self.names = names
        self.name = f"require_env({', '.join(names)})"

    def bootstrap(self, model: "Model") -> None:
        for name in self.names:
            if name not in os.environ:
                raise MissingVariableError(name, scope="environment")
        logger.debug(f"Environment inputs present: {', '.join(self.names)}")
