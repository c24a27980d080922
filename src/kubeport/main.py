"""kubeport server: supervises kubectl port-forward tunnels behind an HTTP and MCP API."""

import shutil
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Dict, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from fastapi_mcp import FastApiMCP
from prometheus_client import generate_latest
from prometheus_fastapi_instrumentator import Instrumentator
from starlette.responses import Response

from kubeport.core.models import HealthCheckResponse, HealthStatus
from kubeport.core.settings import Settings
from kubeport.dependencies import get_port_forward_manager, get_settings, verify_token
from kubeport.logger import configure_logging, logger
from kubeport.routers.clusters import router as clusters_router
from kubeport.routers.forwards import router as forwards_router
from kubeport.routers.processes import router as processes_router
from kubeport.services.kubernetes import ClusterClient
from kubeport.services.metrics import TunnelMetricsRecorder
from kubeport.services.port_forward import (
    PodResolver,
    PortConflictResolver,
    PortForwardManager,
)

# Kill operations require operator confirmation and are not exposed as MCP tools
MCP_EXCLUDED_OPERATIONS = ["kill_process", "respond_to_port_occupied"]

DESCRIPTION = "Expose Kubernetes Service ports locally through supervised kubectl port-forward tunnels."


def create_application(settings: Optional[Settings] = None) -> FastAPI:
    """Create FastAPI application for kubeport."""
    settings = settings or get_settings()
    configure_logging(settings.LOG_LEVEL)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, Any]:
        cluster_client = ClusterClient(settings.kubernetes)
        port_resolver = PortConflictResolver()
        manager = PortForwardManager(
            pod_resolver=PodResolver(cluster_client),
            port_resolver=port_resolver,
            settings=settings,
        )
        manager.subscribe(TunnelMetricsRecorder())

        app.state.cluster_client = cluster_client
        app.state.port_resolver = port_resolver
        app.state.port_forward_manager = manager
        logger.info(f"{settings.PROJECT_NAME} {settings.VERSION} started")

        yield

        # --- Server shutdown: stop every tunnel and its kubectl process ---
        manager.stop_all()

    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        description=DESCRIPTION,
        lifespan=lifespan,
    )
    app.dependency_overrides[get_settings] = lambda: settings

    Instrumentator().instrument(app)

    # CORS middleware
    if settings.BACKEND_CORS_ORIGINS:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=[str(origin) for origin in settings.BACKEND_CORS_ORIGINS],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    # Prometheus metrics endpoint
    @app.get("/metrics")
    async def metrics(
        credentials: Dict[str, str] = Depends(verify_token),
    ) -> Response:
        return Response(generate_latest(), media_type="text/plain")

    # Health check endpoint
    @app.get("/health", response_model=HealthCheckResponse)
    async def health_check(
        manager: PortForwardManager = Depends(get_port_forward_manager),
        credentials: Dict[str, str] = Depends(verify_token),
    ) -> HealthCheckResponse:
        """Get the health status of the service."""
        kubectl_available = shutil.which(settings.kubernetes.KUBECTL_BINARY) is not None
        return HealthCheckResponse(
            status=HealthStatus.HEALTHY if kubectl_available else HealthStatus.UNHEALTHY,
            kubectl_available=kubectl_available,
            forwards=len(manager.get_active_forwards()),
        )

    app.include_router(clusters_router, prefix=settings.API_V1_STR)
    app.include_router(forwards_router, prefix=settings.API_V1_STR)
    app.include_router(processes_router, prefix=settings.API_V1_STR)

    # --- MCP Integration ---
    mcp = FastApiMCP(
        app,
        name="kubeport",
        description=DESCRIPTION,
        describe_full_response_schema=True,
        describe_all_responses=True,
        exclude_operations=MCP_EXCLUDED_OPERATIONS,
    )
    MCP_HTTP_PATH = "/mcp"
    MCP_SSE_PATH = "/sse"
    mcp.mount_http(mount_path=MCP_HTTP_PATH)
    mcp.mount_sse(mount_path=MCP_SSE_PATH)

    @app.api_route("/", methods=["GET", "POST"], include_in_schema=False)
    async def root_redirect(request: Request) -> Response:
        accept: str = request.headers.get("accept", "").lower()
        method: str = request.method.upper()

        if "text/event-stream" in accept:
            logger.info(f"Redirecting to SSE endpoint {MCP_SSE_PATH} (method={method})")
            return RedirectResponse(url=MCP_SSE_PATH)
        elif "application/json" in accept:
            logger.info(f"Redirecting to HTTP JSON RPC endpoint {MCP_HTTP_PATH} (method={method})")
            return RedirectResponse(url=MCP_HTTP_PATH)
        else:
            logger.warning(f"Unsupported Accept header or method: method={method}, accept={accept}")
            return JSONResponse({"detail": "Unsupported Accept header or method"}, status_code=405)

    return app
