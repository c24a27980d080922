"""Cluster catalog endpoints: clusters, namespaces and services to forward from."""

import asyncio
import logging
from typing import Dict, List

from fastapi import APIRouter, Depends, HTTPException, status
from kubernetes.client.exceptions import ApiException

from kubeport.dependencies import get_cluster_client, verify_token
from kubeport.errors import ClusterContextError
from kubeport.models.cluster import ClusterInfo, ServiceInfo
from kubeport.services.kubernetes import (
    ClusterClient,
    get_clusters,
    get_namespaces,
    get_services,
)

router = APIRouter(prefix="/clusters", tags=["Clusters"])


def _translate(e: Exception) -> HTTPException:
    if isinstance(e, ClusterContextError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, ApiException):
        return HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Kubernetes API error: {e.status} {e.reason}",
        )
    logging.error(f"Unexpected cluster catalog error: {e}")
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))


@router.get("", response_model=List[ClusterInfo])
async def list_clusters(
    client: ClusterClient = Depends(get_cluster_client),
    credentials: Dict[str, str] = Depends(verify_token),
) -> List[ClusterInfo]:
    """List clusters (kubeconfig contexts)."""
    try:
        return await asyncio.to_thread(get_clusters, client)
    except Exception as e:
        raise _translate(e)


@router.get("/{cluster}/namespaces", response_model=List[str])
async def list_namespaces(
    cluster: str,
    client: ClusterClient = Depends(get_cluster_client),
    credentials: Dict[str, str] = Depends(verify_token),
) -> List[str]:
    """List namespaces of a cluster."""
    try:
        return await asyncio.to_thread(get_namespaces, client, cluster)
    except Exception as e:
        raise _translate(e)


@router.get("/{cluster}/namespaces/{namespace}/services", response_model=List[ServiceInfo])
async def list_services(
    cluster: str,
    namespace: str,
    client: ClusterClient = Depends(get_cluster_client),
    credentials: Dict[str, str] = Depends(verify_token),
) -> List[ServiceInfo]:
    """List Services and their ports in a namespace."""
    try:
        return await asyncio.to_thread(get_services, client, cluster, namespace)
    except Exception as e:
        raise _translate(e)
