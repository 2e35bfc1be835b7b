"""Action library."""

from .component import Delay, RemoteShell, StartComponents, StopInParallel, Workflow
from .edge import EdgeLogin, EnrollIdentities
from .ha import ConsulConfig, MetricbeatConfig, new_bootstrap_action, new_start_action

__all__ = [
    "StopInParallel",
    "StartComponents",
    "RemoteShell",
    "Delay",
    "Workflow",
    "EdgeLogin",
    "EnrollIdentities",
    "MetricbeatConfig",
    "ConsulConfig",
    "new_start_action",
    "new_bootstrap_action",
]
