"""Port-forward management endpoints for the kubeport API."""

import asyncio
import logging
from typing import AsyncGenerator, Dict

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import StreamingResponse

from kubeport.dependencies import get_port_forward_manager, verify_token
from kubeport.errors import (
    PortConflictNotPendingError,
    PortOccupiedError,
    ProcessKillError,
    TunnelAlreadyExistsError,
)
from kubeport.models import TunnelConfig, TunnelStatus
from kubeport.routers.forwards.models import (
    ForwardListResponse,
    PortConflictDecision,
    PortConflictResponse,
    PortOccupiedDetail,
    StopForwardResponse,
)
from kubeport.services.port_forward import PortForwardManager

router = APIRouter(prefix="/forwards", tags=["Port Forwards"])

EVENT_NAME = "port-forward-update"
KEEPALIVE_SECONDS = 15.0


def _port_occupied_exception(e: PortOccupiedError) -> HTTPException:
    detail = PortOccupiedDetail(message=str(e), tunnel_id=e.tunnel_id, process=e.process)
    return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=detail.model_dump())


def _status_or_404(manager: PortForwardManager, forward_id: str) -> TunnelStatus:
    instance = manager.get_forward(forward_id)
    if instance is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Port forward {forward_id} not found",
        )
    return instance.get_status()


async def _start(manager: PortForwardManager, config: TunnelConfig) -> TunnelStatus:
    try:
        forward_id = await manager.start_port_forward(config)
    except TunnelAlreadyExistsError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except PortOccupiedError as e:
        raise _port_occupied_exception(e)
    except Exception as e:
        logging.error(f"Exception in start_port_forward for {config.id}: {e}")
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
    return _status_or_404(manager, forward_id)


@router.post(
    "",
    response_model=TunnelStatus,
    status_code=status.HTTP_201_CREATED,
)
async def start_port_forward(
    config: TunnelConfig,
    manager: PortForwardManager = Depends(get_port_forward_manager),
    credentials: Dict[str, str] = Depends(verify_token),
) -> TunnelStatus:
    """Start forwarding a Service port to a local port."""
    return await _start(manager, config)


@router.get("", response_model=ForwardListResponse)
async def list_port_forwards(
    manager: PortForwardManager = Depends(get_port_forward_manager),
    credentials: Dict[str, str] = Depends(verify_token),
) -> ForwardListResponse:
    """List every supervised tunnel with its live status."""
    return ForwardListResponse(forwards=manager.get_active_forwards())


@router.get("/events", include_in_schema=False)
async def stream_port_forward_events(
    request: Request,
    manager: PortForwardManager = Depends(get_port_forward_manager),
    credentials: Dict[str, str] = Depends(verify_token),
) -> StreamingResponse:
    """Server-sent events: the current tunnels, then every status change as it happens."""

    async def event_stream() -> AsyncGenerator[str, None]:
        queue: "asyncio.Queue[TunnelStatus]" = asyncio.Queue()
        unsubscribe = manager.subscribe(queue.put_nowait)
        try:
            for current in manager.get_active_forwards():
                yield f"event: {EVENT_NAME}\ndata: {current.model_dump_json()}\n\n"
            while not await request.is_disconnected():
                try:
                    update = await asyncio.wait_for(queue.get(), timeout=KEEPALIVE_SECONDS)
                except asyncio.TimeoutError:
                    yield ": keep-alive\n\n"
                    continue
                yield f"event: {EVENT_NAME}\ndata: {update.model_dump_json()}\n\n"
        finally:
            unsubscribe()

    return StreamingResponse(event_stream(), media_type="text/event-stream")


@router.get("/{forward_id}", response_model=TunnelStatus)
async def get_port_forward(
    forward_id: str,
    manager: PortForwardManager = Depends(get_port_forward_manager),
    credentials: Dict[str, str] = Depends(verify_token),
) -> TunnelStatus:
    """Get the live status of one tunnel."""
    return _status_or_404(manager, forward_id)


@router.delete("/{forward_id}", response_model=StopForwardResponse)
async def stop_port_forward(
    forward_id: str,
    manager: PortForwardManager = Depends(get_port_forward_manager),
    credentials: Dict[str, str] = Depends(verify_token),
) -> StopForwardResponse:
    """Stop a tunnel and forget it."""
    if not manager.stop_port_forward(forward_id):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Port forward {forward_id} not found",
        )
    return StopForwardResponse(success=True, message="Port forward stopped successfully")


@router.post(
    "/{forward_id}/port-conflict",
    response_model=PortConflictResponse,
    operation_id="respond_to_port_occupied",
)
async def respond_to_port_occupied(
    forward_id: str,
    decision: PortConflictDecision,
    manager: PortForwardManager = Depends(get_port_forward_manager),
    credentials: Dict[str, str] = Depends(verify_token),
) -> PortConflictResponse:
    """Kill the process holding the local port and retry, or cancel the start."""
    try:
        started_id = await manager.respond_to_port_occupied(forward_id, kill=decision.kill)
    except PortConflictNotPendingError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except ProcessKillError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
    except TunnelAlreadyExistsError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except PortOccupiedError as e:
        raise _port_occupied_exception(e)

    if started_id is None:
        return PortConflictResponse(message="Port forward start cancelled")
    return PortConflictResponse(
        tunnel_id=started_id,
        status=_status_or_404(manager, started_id),
        message="Process killed and port forward restarted",
    )
