"""
Topology model: regions, hosts, components and their scopes.

The model is built once (by a factory such as ``models.ha.build_ha_model``
or by ``core.loader``) and then passed explicitly through the orchestrator.
Its shape is frozen after construction: the regions/hosts/components maps
are read-only views. Only variables and resolved host addresses change while
a run progresses.

Selectors:
    "*"        every component
    "#name"    components tagged ``name``, or whose id is ``name``
    ".name"    components tagged ``name``
    "name"     the component whose id is ``name``

Matches are always returned in declaration order: region, then host, then
component.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, TYPE_CHECKING

from .exceptions import ConfigurationError, MissingVariableError
from .variables import NOT_FOUND, Variables, lookup_chain

if TYPE_CHECKING:
    from .protocols import Action, BootstrapExtension, Stage
    from .resources import ResourceBundle


SELECT_ALL = "*"


@dataclass
class Scope:
    """Variables plus selection tags attached to one topology entity."""

    variables: Variables = field(default_factory=Variables)
    tags: Tuple[str, ...] = ()

    def __post_init__(self):
        if not isinstance(self.variables, Variables):
            self.variables = Variables(self.variables)
        self.tags = tuple(self.tags)

    def has_tag(self, tag: str) -> bool:
        return tag in self.tags


@dataclass(eq=False)
class Component:
    """
    A deployable unit on a host.

    Attributes:
        binary_name: Executable (and sub-command) run on the host
        config_src: Template name in the ``configs`` resource bundle
        config_name: File name of the rendered config in the kit
        public_identity: Identity name registered with the controller
    """

    binary_name: str = ""
    config_src: Optional[str] = None
    config_name: Optional[str] = None
    public_identity: Optional[str] = None
    scope: Scope = field(default_factory=Scope)

    id: str = field(default="", init=False)
    host: Optional["Host"] = field(default=None, init=False, repr=False)

    def has_tag(self, tag: str) -> bool:
        return self.scope.has_tag(tag)

    def variable_layers(self) -> List[Variables]:
        return [self.scope.variables] + self.host.variable_layers()

    def get_variable(self, path: str, default: Any = None) -> Any:
        value = lookup_chain(path, self.variable_layers())
        return default if value is NOT_FOUND else value

    def must_variable(self, path: str) -> Any:
        value = lookup_chain(path, self.variable_layers())
        if value is NOT_FOUND:
            raise MissingVariableError(path, scope=f"component:{self.id}")
        return value


@dataclass(eq=False)
class Host:
    """
    A provisionable machine.

    ``public_ip`` is ``None`` until the infrastructure phase (or a persisted
    instance state) resolves it.
    """

    instance_type: str = ""
    components: Mapping[str, Component] = field(default_factory=dict)
    scope: Scope = field(default_factory=Scope)
    public_ip: Optional[str] = None

    id: str = field(default="", init=False)
    region: Optional["Region"] = field(default=None, init=False, repr=False)

    def __post_init__(self):
        self.components = MappingProxyType(dict(self.components))

    def variable_layers(self) -> List[Variables]:
        return [self.scope.variables] + self.region.variable_layers()

    def get_variable(self, path: str, default: Any = None) -> Any:
        value = lookup_chain(path, self.variable_layers())
        return default if value is NOT_FOUND else value

    def must_variable(self, path: str) -> Any:
        value = lookup_chain(path, self.variable_layers())
        if value is NOT_FOUND:
            raise MissingVariableError(path, scope=f"host:{self.id}")
        return value

    def must_string_variable(self, path: str) -> str:
        """
        Return a non-empty string variable visible from this host.

        Raises:
            MissingVariableError: If the variable is unbound or empty.
            ConfigurationError: If the bound value is not a string.
        """
        value = self.must_variable(path)
        if not isinstance(value, str):
            raise ConfigurationError(
                f"Variable '{path}' must be a string, got {type(value).__name__}"
            )
        if not value:
            raise MissingVariableError(path, scope=f"host:{self.id}")
        return value

    def must_public_ip(self) -> str:
        if not self.public_ip:
            raise ConfigurationError(
                f"Host '{self.id}' has no public IP; run the infrastructure phase first"
            )
        return self.public_ip

    @property
    def model(self) -> "Model":
        return self.region.model


@dataclass(eq=False)
class Region:
    """A geographic grouping of hosts (one cloud region + availability zone)."""

    region: str = ""
    site: str = ""
    hosts: Mapping[str, Host] = field(default_factory=dict)
    scope: Scope = field(default_factory=Scope)

    id: str = field(default="", init=False)
    model: Optional["Model"] = field(default=None, init=False, repr=False)

    def __post_init__(self):
        self.hosts = MappingProxyType(dict(self.hosts))

    def variable_layers(self) -> List[Variables]:
        return [self.scope.variables] + self.model.variable_layers()


ActionBinder = Callable[["Model"], "Action"]


@dataclass(eq=False)
class Model:
    """
    Root aggregate of one lab run.

    Attributes:
        id: Model identifier (also names the instance directory)
        scope: Model-wide default variables and tags
        resources: Named resource bundles (e.g. "configs", "terraform")
        regions: Ordered regions map
        actions: Action binders by name
        infrastructure/configuration/distribution/disposal: Ordered stages
        bound: Variables bound at run time (bootstrap, PKI, ...). They
            override the model defaults but not region/host/component scopes.
    """

    id: str
    scope: Scope = field(default_factory=Scope)
    resources: Mapping[str, "ResourceBundle"] = field(default_factory=dict)
    regions: Mapping[str, Region] = field(default_factory=dict)
    actions: Dict[str, ActionBinder] = field(default_factory=dict)
    infrastructure: Sequence["Stage"] = ()
    configuration: Sequence["Stage"] = ()
    distribution: Sequence["Stage"] = ()
    disposal: Sequence["Stage"] = ()

    bound: Variables = field(default_factory=Variables, init=False)
    activation_actions: List[str] = field(default_factory=list, init=False)
    bootstrap_extensions: List["BootstrapExtension"] = field(default_factory=list, init=False)

    def __post_init__(self):
        if not self.id:
            raise ConfigurationError("Model id is required")

        self.regions = MappingProxyType(dict(self.regions))
        self.resources = MappingProxyType(dict(self.resources))
        self.infrastructure = tuple(self.infrastructure)
        self.configuration = tuple(self.configuration)
        self.distribution = tuple(self.distribution)
        self.disposal = tuple(self.disposal)

        host_ids: Dict[str, str] = {}
        for region_id, region in self.regions.items():
            region.id = region_id
            region.model = self
            for host_id, host in region.hosts.items():
                if host_id in host_ids:
                    raise ConfigurationError(
                        f"Host id '{host_id}' declared in both "
                        f"'{host_ids[host_id]}' and '{region_id}'"
                    )
                host_ids[host_id] = region_id
                host.id = host_id
                host.region = region
                for component_id, component in host.components.items():
                    component.id = component_id
                    component.host = host

    # ==========================================
    # Variables
    # ==========================================

    def variable_layers(self) -> List[Variables]:
        return [self.bound, self.scope.variables]

    def get_variable(self, path: str, default: Any = None) -> Any:
        value = lookup_chain(path, self.variable_layers())
        return default if value is NOT_FOUND else value

    def must_variable(self, path: str) -> Any:
        value = lookup_chain(path, self.variable_layers())
        if value is NOT_FOUND:
            raise MissingVariableError(path, scope=f"model:{self.id}")
        return value

    def set_variable(self, path: str, value: Any) -> None:
        """Bind a run-time value visible to every host and later phase."""
        self.bound.set(path, value)

    # ==========================================
    # Topology
    # ==========================================

    def hosts(self) -> Iterator[Host]:
        for region in self.regions.values():
            yield from region.hosts.values()

    def components(self) -> Iterator[Component]:
        for host in self.hosts():
            yield from host.components.values()

    def get_host(self, host_id: str) -> Host:
        for host in self.hosts():
            if host.id == host_id:
                return host
        raise KeyError(f"Host '{host_id}' not found in model '{self.id}'")

    def select_components(self, selector: str) -> List[Tuple[Host, Component]]:
        """
        Resolve a selector to ordered (host, component) pairs.

        An empty result is not an error.
        """
        matcher = _compile_selector(selector)
        return [
            (component.host, component)
            for component in self.components()
            if matcher(component)
        ]

    def select_hosts(self, selector: str) -> List[Host]:
        """Resolve a selector to the ordered, de-duplicated owning hosts."""
        seen = set()
        hosts = []
        for host, _ in self.select_components(selector):
            if host.id not in seen:
                seen.add(host.id)
                hosts.append(host)
        return hosts

    # ==========================================
    # Resources & actions
    # ==========================================

    def resource(self, name: str) -> "ResourceBundle":
        if name not in self.resources:
            raise ConfigurationError(
                f"Model '{self.id}' has no '{name}' resource bundle. "
                f"Available: {sorted(self.resources)}"
            )
        return self.resources[name]

    def add_activation_actions(self, *names: str) -> None:
        """Record the actions the ``activate`` run mode executes, in order."""
        self.activation_actions.extend(names)

    def add_bootstrap_extension(self, extension: "BootstrapExtension") -> None:
        """Register an initializer run once before any phase or action."""
        self.bootstrap_extensions.append(extension)


def _compile_selector(selector: str) -> Callable[[Component], bool]:
    if not selector:
        raise ValueError("Selector must not be empty")
    if selector == SELECT_ALL:
        return lambda component: True
    if selector.startswith("#"):
        name = selector[1:]
        return lambda component: component.has_tag(name) or component.id == name
    if selector.startswith("."):
        tag = selector[1:]
        return lambda component: component.has_tag(tag)
    return lambda component: component.id == selector
