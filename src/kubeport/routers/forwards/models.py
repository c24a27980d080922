"""Port-forward request and response models for the kubeport API."""

from typing import List, Optional

from pydantic import BaseModel, Field

from kubeport.models import ProcessInfo, TunnelStatus


class ForwardListResponse(BaseModel):
    """All registered tunnels, in no particular order."""

    forwards: List[TunnelStatus]


class StopForwardResponse(BaseModel):
    """Stop result."""

    success: bool
    message: str


class PortConflictDecision(BaseModel):
    """Operator decision for an occupied local port."""

    kill: bool = Field(..., description="Kill the owning process and retry the start")


class PortConflictResponse(BaseModel):
    """Outcome of a port conflict decision."""

    tunnel_id: Optional[str] = None
    status: Optional[TunnelStatus] = None
    message: str


class PortOccupiedDetail(BaseModel):
    """Body of the 409 returned when the local port is taken."""

    message: str
    tunnel_id: str
    process: ProcessInfo
