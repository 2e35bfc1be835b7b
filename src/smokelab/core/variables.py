"""
Hierarchical variable store.

Variables are nested dictionaries addressed by dot-delimited paths
(``credentials.ssh.username``). Each scope in the topology (model, region,
host, component) owns one ``Variables`` instance; lookups walk the chain
from the innermost scope outwards so a child overrides its parent.
"""

import copy
from typing import Any, Iterable, Iterator, Mapping, Optional

from .exceptions import MissingVariableError

PATH_SEPARATOR = "."

# Distinguishes "bound to None" from "not bound at all"
NOT_FOUND = object()


def _split(path: str) -> list[str]:
    if not path or not isinstance(path, str):
        raise ValueError(f"Invalid variable path: {path!r}")
    parts = path.split(PATH_SEPARATOR)
    if any(not part for part in parts):
        raise ValueError(f"Invalid variable path: {path!r}")
    return parts


class Variables:
    """
    A nested key-value bag with dot-path access.

    Example:
        >>> v = Variables({"credentials": {"ssh": {"username": "ubuntu"}}})
        >>> v.get("credentials.ssh.username")
        'ubuntu'
        >>> v.set("credentials.edge.password", "admin")
        >>> v.must_get("credentials.edge.password")
        'admin'
    """

    def __init__(self, values: Optional[Mapping[str, Any]] = None):
        self._values: dict = copy.deepcopy(dict(values or {}))

    def lookup(self, path: str) -> Any:
        """Return the value at ``path`` or the ``NOT_FOUND`` sentinel."""
        node: Any = self._values
        for part in _split(path):
            if not isinstance(node, Mapping) or part not in node:
                return NOT_FOUND
            node = node[part]
        return node

    def get(self, path: str, default: Any = None) -> Any:
        value = self.lookup(path)
        return default if value is NOT_FOUND else value

    def has(self, path: str) -> bool:
        return self.lookup(path) is not NOT_FOUND

    def must_get(self, path: str, scope: Optional[str] = None) -> Any:
        """
        Return the value at ``path`` or fail the run.

        Raises:
            MissingVariableError: If nothing is bound at ``path``.
        """
        value = self.lookup(path)
        if value is NOT_FOUND:
            raise MissingVariableError(path, scope)
        return value

    def set(self, path: str, value: Any) -> None:
        """Bind ``value`` at ``path``, creating intermediate levels."""
        parts = _split(path)
        node = self._values
        for part in parts[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = {}
                node[part] = child
            node = child
        node[parts[-1]] = value

    def update(self, values: Mapping[str, Any]) -> None:
        """Bind every dot-path key of ``values``."""
        for path, value in values.items():
            self.set(path, value)

    def merge(self, values: Mapping[str, Any]) -> None:
        """Overlay nested ``values`` leaf by leaf, keeping sibling keys."""
        _merge_into(self._values, values)

    def to_dict(self) -> dict:
        return copy.deepcopy(self._values)

    def __contains__(self, path: object) -> bool:
        return isinstance(path, str) and self.has(path)

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        return f"Variables({self._values!r})"


def _merge_into(target: dict, values: Mapping[str, Any]) -> None:
    for key, value in values.items():
        current = target.get(key)
        if isinstance(value, Mapping) and isinstance(current, dict):
            _merge_into(current, value)
        else:
            target[key] = copy.deepcopy(value)


def lookup_chain(path: str, layers: Iterable[Variables]) -> Any:
    """
    Resolve ``path`` against ``layers`` ordered innermost first.

    Returns:
        The first bound value, or ``NOT_FOUND``.
    """
    for layer in layers:
        value = layer.lookup(path)
        if value is not NOT_FOUND:
            return value
    return NOT_FOUND
