"""Read-only cluster catalog: clusters, namespaces and services available for forwarding."""

import logging
from typing import List

from kubernetes.client.exceptions import ApiException

from kubeport.models.cluster import ClusterInfo, ServiceInfo, ServicePortInfo

from .client import ClusterClient


def get_clusters(client: ClusterClient) -> List[ClusterInfo]:
    """List every kubeconfig context as a cluster."""
    return [
        ClusterInfo(name=ctx["name"], context=ctx["name"], server=ctx["cluster"] or "")
        for ctx in client.list_contexts()
    ]


def get_namespaces(client: ClusterClient, cluster: str) -> List[str]:
    """List namespace names of ``cluster``."""
    logging.info(f"Fetching namespaces for cluster {cluster}")
    try:
        with client.use_context(cluster):
            response = client.core_api().list_namespace()
    except ApiException as e:
        logging.error(f"API error fetching namespaces for cluster {cluster}: {e}")
        raise

    namespaces = [
        ns.metadata.name for ns in response.items or [] if ns.metadata and ns.metadata.name
    ]
    logging.info(f"Fetched {len(namespaces)} namespaces for cluster {cluster}")
    return namespaces


def get_services(client: ClusterClient, cluster: str, namespace: str) -> List[ServiceInfo]:
    """List Services of ``namespace`` in ``cluster`` along with their ports."""
    logging.info(f"Fetching services for cluster {cluster}, namespace {namespace}")
    try:
        with client.use_context(cluster):
            response = client.core_api().list_namespaced_service(namespace=namespace)
    except ApiException as e:
        logging.error(
            f"API error fetching services for cluster {cluster}, namespace {namespace}: {e}"
        )
        raise

    services: List[ServiceInfo] = []
    for service in response.items or []:
        meta = service.metadata
        ports = (service.spec.ports if service.spec else None) or []
        services.append(
            ServiceInfo(
                name=(meta.name if meta else None) or "",
                namespace=(meta.namespace if meta else None) or namespace,
                ports=[
                    ServicePortInfo(
                        name=port.name or "default",
                        port=port.port,
                        target_port=port.target_port or port.port,
                        protocol=port.protocol or "TCP",
                    )
                    for port in ports
                ],
            )
        )
    logging.info(f"Fetched {len(services)} services for cluster {cluster}, namespace {namespace}")
    return services
