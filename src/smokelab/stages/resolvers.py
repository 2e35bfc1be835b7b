"""
Per-host placeholder resolvers and literal token rendering.

A resolver turns a host into the string substituted for one placeholder
token. Resolvers only read the host, its scopes and the environment; they
never write shared state, so rendering for one host cannot leak into another.

Usage:
    replacements = [
        ("${user}", FromEnv("ELASTIC_USERNAME")),
        ("${ziti_version}", HostVariable("ziti_version")),
        ("${public_ip}", HostPublicIp()),
    ]
    rendered = render_for_host(template, replacements, host)
"""

import os
import re
from typing import Callable, Iterable, List, Mapping, Sequence, Tuple, Union, TYPE_CHECKING

from smokelab.core.exceptions import MissingVariableError

if TYPE_CHECKING:
    from smokelab.core.model import Host
    from smokelab.core.protocols import Resolver

ResolverLike = Union["Resolver", Callable[["Host"], str]]
Replacements = Union[Mapping[str, ResolverLike], Sequence[Tuple[str, ResolverLike]]]


class Constant:
    def __init__(self, value: str):
        self.value = str(value)

    def resolve(self, host: "Host") -> str:
        return self.value

    def __repr__(self) -> str:
        return f"Constant({self.value!r})"


class FromEnv:
    """
    Environment variable value.

    A required variable that is unset raises ``MissingVariableError`` naming
    it; an optional one resolves to the empty string.
    """

    def __init__(self, name: str, required: bool = True):
        self.name = name
        self.required = required

    def resolve(self, host: "Host") -> str:
        value = os.environ.get(self.name)
        if value is None:
            if self.required:
                raise MissingVariableError(self.name, scope="environment")
            return ""
        return value

    def __repr__(self) -> str:
        return f"FromEnv({self.name!r}, required={self.required})"


class HostVariable:
    """Non-empty string variable as seen from the host's scope chain."""

    def __init__(self, path: str):
        self.path = path

    def resolve(self, host: "Host") -> str:
        return host.must_string_variable(self.path)

    def __repr__(self) -> str:
        return f"HostVariable({self.path!r})"


class HostPublicIp:
    def resolve(self, host: "Host") -> str:
        return host.must_public_ip()

    def __repr__(self) -> str:
        return "HostPublicIp()"


class Callback:
    """Adapts a plain ``(host) -> str`` callable."""

    def __init__(self, fn: Callable[["Host"], str]):
        self.fn = fn

    def resolve(self, host: "Host") -> str:
        return str(self.fn(host))

    def __repr__(self) -> str:
        return f"Callback({getattr(self.fn, '__name__', self.fn)!r})"


def as_resolver(value: ResolverLike) -> "Resolver":
    if callable(getattr(value, "resolve", None)):
        return value
    if callable(value):
        return Callback(value)
    raise TypeError(f"Not a resolver: {value!r}")


def normalize_replacements(replacements: Replacements) -> List[Tuple[str, "Resolver"]]:
    """
    Return ``(token, resolver)`` pairs ordered longest token first.

    Ties keep their declared order. Empty and duplicate tokens are rejected.
    """
    pairs: Iterable = replacements.items() if isinstance(replacements, Mapping) else replacements
    normalized = []
    seen = set()
    for token, resolver in pairs:
        if not token:
            raise ValueError("Placeholder token must not be empty")
        if token in seen:
            raise ValueError(f"Duplicate placeholder token: {token}")
        seen.add(token)
        normalized.append((token, as_resolver(resolver)))
    return sorted(normalized, key=lambda pair: len(pair[0]), reverse=True)


def resolve_values(
    replacements: Sequence[Tuple[str, "Resolver"]],
    host: "Host"
) -> List[Tuple[str, str]]:
    return [(token, resolver.resolve(host)) for token, resolver in replacements]


def render_for_host(data: str | bytes, replacements: Replacements, host: "Host") -> bytes:
    """
    Render ``data`` for one host.

    Every occurrence of each token is replaced literally with the resolver's
    value for ``host``. Tokens are matched longest first in a single scan, so
    a token that is a prefix of another never clobbers it and substituted
    values are never re-scanned. The payload stays raw bytes; tokens and
    values are UTF-8 encoded.
    """
    payload = data.encode("utf-8") if isinstance(data, str) else bytes(data)
    values = {
        token.encode("utf-8"): value.encode("utf-8")
        for token, value in resolve_values(normalize_replacements(replacements), host)
    }
    if not values:
        return payload
    pattern = re.compile(b"|".join(re.escape(token) for token in values))
    return pattern.sub(lambda match: values[match.group(0)], payload)
