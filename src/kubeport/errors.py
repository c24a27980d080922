"""Error types for kubeport."""

from kubeport.models import ProcessInfo


class KubePortError(Exception):
    """Base exception for kubeport errors."""

    pass


class ClusterContextError(KubePortError):
    """The requested kubeconfig context is unknown or could not be loaded."""

    pass


class TunnelAlreadyExistsError(KubePortError):
    """A live tunnel already holds the requested identity."""

    def __init__(self, tunnel_id: str) -> None:
        super().__init__(f"Port forward {tunnel_id} already exists")
        self.tunnel_id = tunnel_id


class PortOccupiedError(KubePortError):
    """The local port is bound by another OS process; an operator must decide what to do."""

    def __init__(self, tunnel_id: str, process: ProcessInfo) -> None:
        super().__init__(
            f"Local port {process.port} is already in use by "
            f"{process.process_name} (PID {process.pid})"
        )
        self.tunnel_id = tunnel_id
        self.process = process


class PortConflictNotPendingError(KubePortError):
    """No port conflict is awaiting a decision for the given id."""

    def __init__(self, tunnel_id: str) -> None:
        super().__init__(f"No pending port conflict for {tunnel_id}")
        self.tunnel_id = tunnel_id


class ProcessKillError(KubePortError):
    """Terminating the process that owns a port failed."""

    def __init__(self, pid: int, detail: str) -> None:
        super().__init__(f"Failed to kill process {pid}: {detail}")
        self.pid = pid
