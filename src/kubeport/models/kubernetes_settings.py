"""
Settings model for the Kubernetes side of kubeport.

Defines where the kubeconfig lives, which context is active by default and
which kubectl binary supervises the tunnels.
"""

from pathlib import Path

from pydantic import Field, field_validator

from . import CustomBaseSettings


class KubernetesSettings(CustomBaseSettings):
    """
    Configuration settings for talking to Kubernetes clusters.

    Includes options like kubeconfig path, default context and kubectl binary.
    """

    K8S_KUBECONFIG: str = ""

    @field_validator("K8S_KUBECONFIG", mode="before")
    @classmethod
    def expand_path(cls, v: str) -> str:
        if v:
            return str(Path(v).expanduser())
        return v

    K8S_CONTEXT: str = Field(default="")
    KUBECTL_BINARY: str = Field(default="kubectl")
