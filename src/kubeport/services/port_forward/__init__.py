from .events import StatusPublisher
from .instance import PortForwardInstance
from .manager import PortForwardManager
from .pod_resolver import PodResolver
from .port_conflicts import PortConflictResolver

__all__ = [
    "PodResolver",
    "PortConflictResolver",
    "PortForwardInstance",
    "PortForwardManager",
    "StatusPublisher",
]
