"""Metrics collection for tunnel supervision."""

from typing import Dict

from prometheus_client import Counter, Gauge

from kubeport.models import TunnelState, TunnelStatus

# Tunnel metrics
TUNNELS = Gauge(
    "kubeport_tunnels",
    "Number of supervised tunnels by state",
    ["state"],
)

TUNNEL_TRANSITIONS = Counter(
    "kubeport_tunnel_transitions_total",
    "Number of tunnel state transitions",
    ["state"],
)

TUNNEL_RETRIES = Counter(
    "kubeport_tunnel_retries_total",
    "Number of scheduled tunnel reconnect attempts",
    ["cluster", "namespace"],
)


class TunnelMetricsRecorder:
    """Manager subscriber that mirrors tunnel states into Prometheus metrics."""

    def __init__(self) -> None:
        self._states: Dict[str, TunnelState] = {}

    def __call__(self, status: TunnelStatus) -> None:
        previous = self._states.get(status.id)
        if previous == status.state:
            return

        TUNNEL_TRANSITIONS.labels(state=status.state.value).inc()
        if previous is not None:
            TUNNELS.labels(state=previous.value).dec()

        if status.state == TunnelState.STOPPED:
            self._states.pop(status.id, None)
        else:
            self._states[status.id] = status.state
            TUNNELS.labels(state=status.state.value).inc()

        if status.state == TunnelState.RECONNECTING:
            TUNNEL_RETRIES.labels(cluster=status.cluster, namespace=status.namespace).inc()
