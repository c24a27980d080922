import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from kubernetes.client import CoreV1Api
from kubernetes.config.config_exception import ConfigException
from kubernetes.config.kube_config import list_kube_config_contexts, new_client_from_config

from kubeport.errors import ClusterContextError


class ClusterClient:
    """Cluster context provider backed by the local kubeconfig.

    Constructed once at the composition root and passed to whatever needs
    cluster access. The active context is tracked on the instance; the
    kubeconfig file itself is never rewritten.
    """

    def __init__(self, k8s_settings: Any) -> None:
        self.k8s_settings = k8s_settings
        self._lock = threading.RLock()
        self._current_context = self._load_current_context()

    @property
    def _config_file(self) -> Optional[str]:
        return self.k8s_settings.K8S_KUBECONFIG or None

    def _load_current_context(self) -> str:
        if self.k8s_settings.K8S_CONTEXT:
            return str(self.k8s_settings.K8S_CONTEXT)
        try:
            _, active = list_kube_config_contexts(config_file=self._config_file)
        except ConfigException as e:
            logging.warning(f"No usable kubeconfig found: {e}")
            return ""
        return str((active or {}).get("name", ""))

    def list_contexts(self) -> List[Dict[str, str]]:
        """Return every kubeconfig context as ``{"name", "cluster"}``."""
        try:
            contexts, _ = list_kube_config_contexts(config_file=self._config_file)
        except ConfigException as e:
            logging.error(f"Failed to read kubeconfig contexts: {e}")
            raise ClusterContextError(f"Failed to read kubeconfig contexts: {e}") from e
        return [
            {
                "name": ctx.get("name", ""),
                "cluster": (ctx.get("context") or {}).get("cluster", ""),
            }
            for ctx in contexts or []
        ]

    def get_current_context(self) -> str:
        return self._current_context

    def set_context(self, name: str) -> None:
        with self._lock:
            known = {ctx["name"] for ctx in self.list_contexts()}
            if name not in known:
                raise ClusterContextError(f"Unknown context: {name}")
            self._current_context = name

    @contextmanager
    def use_context(self, name: str) -> Iterator["ClusterClient"]:
        """Switch to ``name`` for the duration of the block, then restore the original context."""
        with self._lock:
            original = self._current_context
            try:
                self.set_context(name)
                logging.debug(f"Switched context to: {name}")
                yield self
            finally:
                self._current_context = original
                logging.debug(f"Restored context to: {original}")

    def core_api(self) -> CoreV1Api:
        """Build a CoreV1Api bound to the active context."""
        try:
            api_client = new_client_from_config(
                config_file=self._config_file,
                context=self._current_context or None,
            )
        except ConfigException as e:
            logging.error(f"Failed to load Kubernetes configuration: {e}")
            raise ClusterContextError(f"Failed to load Kubernetes configuration: {e}") from e
        return CoreV1Api(api_client=api_client)
