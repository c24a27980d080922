"""Shared FastAPI dependencies: settings, token authentication and runtime services."""

from functools import lru_cache
from typing import Dict

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from kubeport.core.settings import Settings
from kubeport.services.kubernetes import ClusterClient
from kubeport.services.port_forward import PortConflictResolver, PortForwardManager


@lru_cache()
def get_settings() -> Settings:
    return Settings()


# HTTP Bearer token setup
security = HTTPBearer()


async def verify_token(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    settings: Settings = Depends(get_settings),
) -> Dict[str, str]:
    """Verify API token and return user information."""
    if credentials.credentials != settings.API_TOKEN.get_secret_value():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing token",
        )
    return {"sub": "api-user"}


def get_port_forward_manager(request: Request) -> PortForwardManager:
    manager: PortForwardManager = request.app.state.port_forward_manager
    return manager


def get_cluster_client(request: Request) -> ClusterClient:
    client: ClusterClient = request.app.state.cluster_client
    return client


def get_port_resolver(request: Request) -> PortConflictResolver:
    resolver: PortConflictResolver = request.app.state.port_resolver
    return resolver
