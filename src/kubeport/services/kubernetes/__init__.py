from .catalog import get_clusters, get_namespaces, get_services
from .client import ClusterClient

__all__ = ["ClusterClient", "get_clusters", "get_namespaces", "get_services"]
