"""Local port ownership endpoints, used to resolve port conflicts."""

from typing import Dict

from fastapi import APIRouter, Depends, HTTPException, Path, status
from pydantic import BaseModel

from kubeport.dependencies import get_port_resolver, verify_token
from kubeport.errors import ProcessKillError
from kubeport.models import ProcessInfo
from kubeport.models.tunnel import MAX_PORT, MIN_PORT
from kubeport.services.port_forward import PortConflictResolver

router = APIRouter(tags=["Processes"])


class KillProcessResponse(BaseModel):
    """Kill result."""

    pid: int
    message: str


@router.get("/ports/{port}/process", response_model=ProcessInfo)
async def get_process_using_port(
    port: int = Path(..., ge=MIN_PORT, le=MAX_PORT),
    resolver: PortConflictResolver = Depends(get_port_resolver),
    credentials: Dict[str, str] = Depends(verify_token),
) -> ProcessInfo:
    """Show which process is bound to a local port."""
    owner = await resolver.get_process_using_port(port)
    if owner is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No process is using port {port}",
        )
    return owner


@router.delete(
    "/processes/{pid}", response_model=KillProcessResponse, operation_id="kill_process"
)
async def kill_process(
    pid: int = Path(..., gt=0),
    resolver: PortConflictResolver = Depends(get_port_resolver),
    credentials: Dict[str, str] = Depends(verify_token),
) -> KillProcessResponse:
    """Forcibly kill a local process. Irreversible."""
    try:
        await resolver.kill_process(pid)
    except ProcessKillError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
    return KillProcessResponse(pid=pid, message=f"Process {pid} killed")
