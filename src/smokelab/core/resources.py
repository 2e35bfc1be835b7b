"""
Config resource bundles.

A bundle is a named set of files keyed by relative path. Stages only need
``read_file(path) -> bytes``; bundles are backed by a directory on disk or by
package data shipped inside ``smokelab``.
"""

from importlib import resources as importlib_resources
from pathlib import Path, PurePosixPath
from typing import Protocol, runtime_checkable

from .exceptions import ResourceNotFoundError

CONFIGS = "configs"
TERRAFORM = "terraform"


@runtime_checkable
class ResourceBundle(Protocol):
    def read_file(self, path: str) -> bytes:
        ...


def _check_relative(path: str) -> str:
    """Reject absolute paths and parent traversal."""
    pure = PurePosixPath(path)
    if not path or pure.is_absolute() or ".." in pure.parts:
        raise ResourceNotFoundError(path)
    return str(pure)


class DirectoryBundle:
    """Bundle backed by a directory on the local filesystem."""

    def __init__(self, root: str | Path):
        self.root = Path(root)

    def read_file(self, path: str) -> bytes:
        target = self.root / _check_relative(path)
        if not target.is_file():
            raise ResourceNotFoundError(path, bundle=str(self.root))
        return target.read_bytes()

    def path(self) -> Path:
        return self.root

    def __repr__(self) -> str:
        return f"DirectoryBundle({str(self.root)!r})"


class PackageBundle:
    """
    Bundle backed by package data.

    Example:
        >>> PackageBundle("smokelab", "configs").read_file("consul.hcl")
    """

    def __init__(self, package: str, subfolder: str):
        self.package = package
        self.subfolder = subfolder

    def _root(self):
        return importlib_resources.files(self.package).joinpath(self.subfolder)

    def read_file(self, path: str) -> bytes:
        target = self._root()
        for part in PurePosixPath(_check_relative(path)).parts:
            target = target.joinpath(part)
        if not target.is_file():
            raise ResourceNotFoundError(path, bundle=f"{self.package}/{self.subfolder}")
        return target.read_bytes()

    def path(self) -> Path:
        """Filesystem location of the bundle (package data is installed unzipped)."""
        return Path(str(self._root()))

    def __repr__(self) -> str:
        return f"PackageBundle({self.package!r}, {self.subfolder!r})"
