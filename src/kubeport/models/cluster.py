"""Cluster catalog models returned by the Kubernetes catalog service."""

from typing import List, Union

from pydantic import BaseModel, Field


class ClusterInfo(BaseModel):
    """A kubeconfig context the operator can forward from."""

    name: str
    context: str
    server: str = ""


class ServicePortInfo(BaseModel):
    """One port exposed by a Service."""

    name: str = "default"
    port: int
    target_port: Union[int, str]
    protocol: str = "TCP"


class ServiceInfo(BaseModel):
    """A Service and the ports it exposes."""

    name: str
    namespace: str
    ports: List[ServicePortInfo] = Field(default_factory=list)
