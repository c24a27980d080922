"""Core API models for the kubeport server."""

from enum import Enum

from pydantic import BaseModel


class HealthStatus(str, Enum):
    """Health status enum for service health checks."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


class HealthCheckResponse(BaseModel):
    """Health check response model."""

    status: HealthStatus
    kubectl_available: bool
    forwards: int
