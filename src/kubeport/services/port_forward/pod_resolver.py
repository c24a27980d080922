import asyncio
import logging
from typing import Any, Optional

from kubernetes.client.exceptions import ApiException

from kubeport.errors import ClusterContextError
from kubeport.services.kubernetes import ClusterClient

POD_PHASE_RUNNING = "Running"


class PodResolver:
    """Maps a Service to a concrete Pod to forward to.

    Reads the Service's Endpoints first and falls back to the first Running
    Pod of the namespace. The Kubernetes client blocks, so lookups run in a
    worker thread.
    """

    def __init__(self, cluster_client: ClusterClient) -> None:
        self.cluster_client = cluster_client

    async def resolve(self, cluster: str, namespace: str, service: str) -> Optional[str]:
        return await asyncio.to_thread(self._resolve, cluster, namespace, service)

    def _resolve(self, cluster: str, namespace: str, service: str) -> Optional[str]:
        try:
            with self.cluster_client.use_context(cluster):
                api = self.cluster_client.core_api()
                pod = self._pod_from_endpoints(api, namespace, service)
                if pod:
                    return pod
                logging.info(
                    f"No endpoint pod for service {service} in {namespace}; "
                    "falling back to first Running pod."
                )
                return self._first_running_pod(api, namespace)
        except ClusterContextError as e:
            logging.error(f"Cannot resolve pod for service {service}: {e}")
            return None

    def _pod_from_endpoints(self, api: Any, namespace: str, service: str) -> Optional[str]:
        try:
            endpoints = api.read_namespaced_endpoints(name=service, namespace=namespace)
        except ApiException as e:
            logging.warning(f"API error reading endpoints for service {service}: {e}")
            return None
        except Exception as e:
            logging.warning(f"Unexpected error reading endpoints for service {service}: {e}")
            return None

        for subset in endpoints.subsets or []:
            for address in subset.addresses or []:
                target_ref = address.target_ref
                if target_ref and target_ref.name:
                    return str(target_ref.name)
            # only the first subset is considered
            break
        return None

    def _first_running_pod(self, api: Any, namespace: str) -> Optional[str]:
        try:
            pods = api.list_namespaced_pod(
                namespace=namespace, field_selector=f"status.phase={POD_PHASE_RUNNING}"
            )
        except ApiException as e:
            logging.error(f"Alternative pod lookup failed in namespace {namespace}: {e}")
            return None
        except Exception as e:
            logging.error(f"Unexpected error listing pods in namespace {namespace}: {e}")
            return None

        for pod in pods.items or []:
            phase = pod.status.phase if pod.status else None
            if phase == POD_PHASE_RUNNING and pod.metadata and pod.metadata.name:
                return str(pod.metadata.name)
        logging.error(f"No Running pod found in namespace {namespace}")
        return None
