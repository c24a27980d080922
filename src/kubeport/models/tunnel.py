"""Tunnel data model: configuration, identity, state and live status snapshots."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, computed_field

MIN_PORT = 1
MAX_PORT = 65535


class TunnelState(str, Enum):
    """Lifecycle states of a single port-forward tunnel."""

    CONNECTING = "CONNECTING"
    ACTIVE = "ACTIVE"
    RECONNECTING = "RECONNECTING"
    FAILED = "FAILED"
    STOPPED = "STOPPED"


class TunnelConfig(BaseModel):
    """What to forward: a Service port of a cluster onto a local port."""

    model_config = ConfigDict(frozen=True)

    cluster: str = Field(..., min_length=1, description="Kubeconfig context name")
    namespace: str = Field(..., min_length=1)
    service: str = Field(..., min_length=1)
    service_port: int = Field(..., ge=MIN_PORT, le=MAX_PORT)
    local_port: int = Field(..., ge=MIN_PORT, le=MAX_PORT)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def id(self) -> str:
        """Stable identity; at most one live tunnel may hold it."""
        return (
            f"{self.cluster}-{self.namespace}-{self.service}-"
            f"{self.service_port}-{self.local_port}"
        )


class TunnelStatus(TunnelConfig):
    """Read-only snapshot of a tunnel, produced on demand by its instance."""

    state: TunnelState
    retry_count: int = Field(default=0, ge=0)
    error: Optional[str] = None
    next_retry_at: Optional[datetime] = None


class ProcessInfo(BaseModel):
    """The OS process currently bound to a local TCP port."""

    pid: int
    port: int
    process_name: str
    command_line: str
