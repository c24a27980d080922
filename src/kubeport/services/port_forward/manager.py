import logging
from typing import Any, Dict, List, Optional, Tuple

from kubeport.errors import (
    PortConflictNotPendingError,
    PortOccupiedError,
    TunnelAlreadyExistsError,
)
from kubeport.models import ProcessInfo, TunnelConfig, TunnelStatus

from .events import StatusListener, StatusPublisher, Unsubscribe
from .instance import PortForwardInstance
from .pod_resolver import PodResolver
from .port_conflicts import PortConflictResolver


class PortForwardManager:
    """Registry of live tunnels keyed by identity, and the aggregate status stream.

    At most one instance exists per identity. A start that raises leaves no
    registry entry behind, so the same config can be started again.
    """

    def __init__(
        self,
        pod_resolver: PodResolver,
        port_resolver: PortConflictResolver,
        settings: Any,
    ) -> None:
        self.pod_resolver = pod_resolver
        self.port_resolver = port_resolver
        self.settings = settings
        self._forwards: Dict[str, PortForwardInstance] = {}
        self._pending_conflicts: Dict[str, Tuple[TunnelConfig, ProcessInfo]] = {}
        self._updates = StatusPublisher()

    def subscribe(self, listener: StatusListener) -> Unsubscribe:
        """Receive every status snapshot published by any managed instance."""
        return self._updates.subscribe(listener)

    def _create_instance(self, config: TunnelConfig) -> PortForwardInstance:
        return PortForwardInstance(
            config,
            pod_resolver=self.pod_resolver,
            settings=self.settings.port_forward,
            port_checker=self.port_resolver,
            kubectl=self.settings.kubernetes.KUBECTL_BINARY,
            kubeconfig=self.settings.kubernetes.K8S_KUBECONFIG,
        )

    async def start_port_forward(self, config: TunnelConfig) -> str:
        """
        Start supervising a tunnel for ``config``.

        Returns:
            str: the tunnel id

        Raises:
            TunnelAlreadyExistsError: a tunnel with the same identity is registered
            PortOccupiedError: the local port belongs to another process; answer
                with ``respond_to_port_occupied``
        """
        tunnel_id = config.id
        if tunnel_id in self._forwards:
            logging.error(f"[PortForwardManager] Port forward {tunnel_id} already exists")
            raise TunnelAlreadyExistsError(tunnel_id)

        instance = self._create_instance(config)
        unsubscribe = instance.subscribe(self._updates.publish)
        self._forwards[tunnel_id] = instance
        self._pending_conflicts.pop(tunnel_id, None)

        try:
            await instance.start()
        except PortOccupiedError as e:
            self._discard(instance, unsubscribe)
            self._pending_conflicts[tunnel_id] = (config, e.process)
            raise
        except Exception as e:
            logging.error(f"[PortForwardManager] Failed to start {tunnel_id}: {e}")
            self._discard(instance, unsubscribe)
            raise

        logging.info(f"[PortForwardManager] Started port forward {tunnel_id}")
        return tunnel_id

    def _discard(self, instance: PortForwardInstance, unsubscribe: Unsubscribe) -> None:
        # rejected starts publish no STOPPED snapshot
        unsubscribe()
        instance.stop()
        if self._forwards.get(instance.id) is instance:
            del self._forwards[instance.id]

    def get_pending_conflict(self, tunnel_id: str) -> Optional[ProcessInfo]:
        pending = self._pending_conflicts.get(tunnel_id)
        return pending[1] if pending else None

    async def respond_to_port_occupied(self, tunnel_id: str, kill: bool) -> Optional[str]:
        """
        Resolve a port conflict raised by ``start_port_forward``.

        With ``kill`` the recorded owner process is killed and the start is
        retried; otherwise the start attempt is cancelled.

        Returns:
            Optional[str]: the tunnel id when restarted, None when cancelled
        """
        pending = self._pending_conflicts.get(tunnel_id)
        if pending is None:
            raise PortConflictNotPendingError(tunnel_id)
        config, owner = pending

        if not kill:
            del self._pending_conflicts[tunnel_id]
            logging.info(f"[PortForwardManager] Port conflict for {tunnel_id} cancelled")
            return None

        logging.info(
            f"[PortForwardManager] Killing {owner.process_name} (PID {owner.pid}) "
            f"to free port {owner.port} for {tunnel_id}"
        )
        # a failed kill keeps the conflict pending so the decision can be retried
        await self.port_resolver.kill_process(owner.pid)
        self._pending_conflicts.pop(tunnel_id, None)
        return await self.start_port_forward(config)

    def stop_port_forward(self, tunnel_id: str) -> bool:
        instance = self._forwards.pop(tunnel_id, None)
        if instance is None:
            return False
        instance.stop()
        logging.info(f"[PortForwardManager] Stopped port forward {tunnel_id}")
        return True

    def get_active_forwards(self) -> List[TunnelStatus]:
        return [instance.get_status() for instance in self._forwards.values()]

    def get_forward(self, tunnel_id: str) -> Optional[PortForwardInstance]:
        return self._forwards.get(tunnel_id)

    def stop_all(self) -> None:
        instances = list(self._forwards.values())
        self._forwards.clear()
        for instance in instances:
            instance.stop()
        self._pending_conflicts.clear()
        if instances:
            logging.info(f"[PortForwardManager] Stopped {len(instances)} port forwards")
