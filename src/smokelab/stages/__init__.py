"""
Stage library.

Modules:
    infrastructure: SSH key import, Terraform apply, host readiness
    configuration: PKI, component configs, binary kit
    distribution: Key, directory, data and kit delivery to hosts
    disposal: Terraform destroy, SSH key removal
    resolvers: Per-host placeholder resolvers
"""

from .configuration import ComponentConfig, DevKit, FabricPki, IfPkiNeedsRefresh
from .disposal import AwsSshKeyDispose, TerraformDispose
from .distribution import (
    DistributeData,
    DistributeDataWithReplaceCallbacks,
    DistributeSshKey,
    Locations,
    RsyncStaged,
    config_file,
    env_payload,
)
from .infrastructure import AwsSshKeyExpress, SemaphoreReady, TerraformExpress
from .resolvers import Callback, Constant, FromEnv, HostPublicIp, HostVariable, render_for_host

__all__ = [
    "AwsSshKeyExpress",
    "TerraformExpress",
    "SemaphoreReady",
    "IfPkiNeedsRefresh",
    "FabricPki",
    "ComponentConfig",
    "DevKit",
    "DistributeSshKey",
    "Locations",
    "DistributeData",
    "DistributeDataWithReplaceCallbacks",
    "RsyncStaged",
    "config_file",
    "env_payload",
    "TerraformDispose",
    "AwsSshKeyDispose",
    "Constant",
    "FromEnv",
    "HostVariable",
    "HostPublicIp",
    "Callback",
    "render_for_host",
]
