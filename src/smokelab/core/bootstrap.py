"""
Bootstrap extension chain.

Extensions run once, in registration order, before any phase or action.
The first failure aborts the run before infrastructure is touched.
"""

import logging
from typing import List, TYPE_CHECKING

from .exceptions import BootstrapError

if TYPE_CHECKING:
    from .model import Model
    from .protocols import BootstrapExtension

logger = logging.getLogger(__name__)


def extension_name(extension: "BootstrapExtension") -> str:
    return getattr(extension, "name", None) or type(extension).__name__


class BootstrapChain:
    """
    Ordered list of bootstrap extensions.

    Example Usage:
        chain = BootstrapChain()
        chain.add(BootstrapWithFallbacks(BootstrapFromEnv(), BootstrapFromPath()))
        chain.add(AwsCredentialsLoader())
        chain.run(model)
    """

    def __init__(self):
        self._extensions: List["BootstrapExtension"] = []
        self._completed = False

    def add(self, extension: "BootstrapExtension") -> "BootstrapChain":
        if not callable(getattr(extension, "bootstrap", None)):
            raise TypeError(
                f"{type(extension).__name__} is not a bootstrap extension "
                f"(missing bootstrap(model))"
            )
        self._extensions.append(extension)
        return self

    @property
    def extensions(self) -> List["BootstrapExtension"]:
        return list(self._extensions)

    @property
    def completed(self) -> bool:
        return self._completed

    def run(self, model: "Model", disposal: bool = False) -> None:
        """
        Run every extension once.

        Calling ``run`` again after success is a no-op. With ``disposal`` set,
        extensions flagged ``skip_on_disposal`` (environment checks for
        distribution inputs) are skipped so teardown never depends on them.

        Raises:
            BootstrapError: Wrapping the first failure
        """
        if self._completed:
            logger.debug("Bootstrap already completed; skipping")
            return

        for extension in self._extensions:
            name = extension_name(extension)
            if disposal and getattr(extension, "skip_on_disposal", False):
                logger.debug(f"[bootstrap] {name} skipped for disposal")
                continue
            logger.info(f"[bootstrap] {name}")
            try:
                extension.bootstrap(model)
            except BootstrapError:
                raise
            except Exception as e:
                logger.error(f"[bootstrap] {name} failed: {e}")
                raise BootstrapError(name, e) from e

        if not disposal:
            self._completed = True
        logger.info("✓ Bootstrap complete")


class BootstrapWithFallbacks:
    """
    Tries each wrapped extension in turn until one succeeds.

    Fails only when every alternative failed; the error lists all of them.
    """

    def __init__(self, *extensions: "BootstrapExtension"):
        if not extensions:
            raise ValueError("At least one extension is required")
        self.extensions = extensions
        self.name = "fallbacks(" + ", ".join(extension_name(e) for e in extensions) + ")"
        self.skip_on_disposal = all(getattr(e, "skip_on_disposal", False) for e in extensions)

    def bootstrap(self, model: "Model") -> None:
        errors = []
        for extension in self.extensions:
            name = extension_name(extension)
            try:
                extension.bootstrap(model)
                logger.debug(f"[bootstrap] {name} succeeded")
                return
            except Exception as e:
                logger.warning(f"[bootstrap] {name} unavailable: {e}")
                errors.append(f"{name}: {e}")
        raise BootstrapError(self.name, RuntimeError("; ".join(errors)))
