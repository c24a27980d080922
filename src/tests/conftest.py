"""Pytest configuration file."""

import asyncio
from typing import Any, Dict, Generator, List, Optional
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from kubeport.core.settings import Settings
from kubeport.models import ProcessInfo, TunnelConfig
from kubeport.models.port_forward_settings import PortForwardSettings
from kubeport.services.port_forward import (
    PodResolver,
    PortConflictResolver,
    PortForwardInstance,
)
from pytest_mock import MockerFixture

POD_NAME = "web-7d9f8c6b5-x2x4z"

KUBE_CONTEXTS: List[Dict[str, Any]] = [
    {"name": "dev", "context": {"cluster": "dev-cluster", "user": "dev-user"}},
    {"name": "prod", "context": {"cluster": "prod-cluster", "user": "prod-user"}},
]


# ==============================================================================
# UNIT TEST FIXTURES AND MOCKS
# ==============================================================================


# KUBECTL =======================================================================


class FakeProcess:
    """Stands in for the asyncio.subprocess.Process of a kubectl port-forward."""

    def __init__(self, pid: int) -> None:
        self.pid = pid
        self.stdout = asyncio.StreamReader()
        self.stderr = asyncio.StreamReader()
        self.returncode: Optional[int] = None
        self.terminated = False
        self._exited = asyncio.Event()

    def emit_stdout(self, line: str) -> None:
        self.stdout.feed_data(f"{line}\n".encode())

    def emit_stderr(self, line: str) -> None:
        self.stderr.feed_data(f"{line}\n".encode())

    def exit(self, code: int) -> None:
        if self.returncode is not None:
            return
        self.returncode = code
        self.stdout.feed_eof()
        self.stderr.feed_eof()
        self._exited.set()

    def terminate(self) -> None:
        self.terminated = True
        self.exit(-15)

    async def wait(self) -> int:
        await self._exited.wait()
        assert self.returncode is not None
        return self.returncode


class FakeKubectl:
    """Replacement for asyncio.create_subprocess_exec that records every spawned command."""

    def __init__(self) -> None:
        self.commands: List[List[str]] = []
        self.processes: List[FakeProcess] = []
        self.error: Optional[Exception] = None

    async def __call__(self, *cmd: str, **kwargs: Any) -> FakeProcess:
        if self.error is not None:
            raise self.error
        self.commands.append(list(cmd))
        process = FakeProcess(pid=40000 + len(self.processes))
        self.processes.append(process)
        return process

    @property
    def last(self) -> FakeProcess:
        return self.processes[-1]


async def settle(rounds: int = 10) -> None:
    """Let reader and watcher tasks consume whatever was fed to them."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def kubectl(mocker: MockerFixture) -> FakeKubectl:
    """Patch subprocess creation so no real kubectl is ever launched."""
    fake = FakeKubectl()
    mocker.patch("asyncio.create_subprocess_exec", new=fake)
    return fake


# CONFIG ========================================================================


@pytest.fixture
def tunnel_config() -> TunnelConfig:
    return TunnelConfig(cluster="dev", namespace="default", service="web", service_port=80, local_port=8080)


@pytest.fixture
def port_forward_settings() -> PortForwardSettings:
    """Default supervision policy, independent of the environment."""
    return PortForwardSettings().model_copy(
        update={
            "MAX_RETRIES": 5,
            "RETRY_DELAY_MS": 1000,
            "MAX_RETRY_DELAY_MS": 30000,
            "CONNECTION_TIMEOUT_MS": 30000,
            "HEALTH_CHECK_INTERVAL_MS": 5000,
            "HEALTH_CHECK_TIMEOUT_MS": 2000,
            "HEALTH_CHECK_HOST": "localhost",
        }
    )


@pytest.fixture
def test_settings(port_forward_settings: PortForwardSettings) -> Settings:
    settings = Settings()
    settings.port_forward = port_forward_settings
    settings.kubernetes = settings.kubernetes.model_copy(
        update={"K8S_KUBECONFIG": "", "K8S_CONTEXT": "", "KUBECTL_BINARY": "kubectl"}
    )
    return settings


# RESOLVERS =====================================================================


@pytest.fixture
def pod_resolver(mocker: MockerFixture) -> MagicMock:
    resolver: MagicMock = mocker.MagicMock(spec=PodResolver)
    resolver.resolve = mocker.AsyncMock(return_value=POD_NAME)
    return resolver


@pytest.fixture
def port_checker(mocker: MockerFixture) -> MagicMock:
    checker: MagicMock = mocker.MagicMock(spec=PortConflictResolver)
    checker.get_process_using_port = mocker.AsyncMock(return_value=None)
    checker.kill_process = mocker.AsyncMock(return_value=None)
    return checker


@pytest.fixture
def port_owner() -> ProcessInfo:
    return ProcessInfo(pid=12345, port=8080, process_name="node", command_line="node server.js")


@pytest.fixture
def make_instance(
    tunnel_config: TunnelConfig,
    pod_resolver: MagicMock,
    port_checker: MagicMock,
    port_forward_settings: PortForwardSettings,
) -> Any:
    """Factory for PortForwardInstance wired to the mocked resolvers."""

    def _make(
        config: Optional[TunnelConfig] = None,
        settings: Optional[PortForwardSettings] = None,
        **kwargs: Any,
    ) -> PortForwardInstance:
        return PortForwardInstance(
            config or tunnel_config,
            pod_resolver=pod_resolver,
            settings=settings or port_forward_settings,
            port_checker=port_checker,
            **kwargs,
        )

    return _make


# ==============================================================================
# INTEGRATION TEST FIXTURES
# ==============================================================================


@pytest.fixture
def client(
    mocker: MockerFixture, kubectl: FakeKubectl, test_settings: Settings
) -> Generator[TestClient, None, None]:
    """Create a test client for the FastAPI app with kubeconfig and OS lookups mocked."""
    from kubeport.main import create_application  # noqa: PLC0415

    mocker.patch(
        "kubeport.services.kubernetes.client.list_kube_config_contexts",
        return_value=(KUBE_CONTEXTS, KUBE_CONTEXTS[0]),
    )
    mocker.patch.object(
        PodResolver, "resolve", new_callable=mocker.AsyncMock, return_value=POD_NAME
    )
    mocker.patch.object(
        PortConflictResolver,
        "get_process_using_port",
        new_callable=mocker.AsyncMock,
        return_value=None,
    )
    mocker.patch.object(
        PortConflictResolver, "kill_process", new_callable=mocker.AsyncMock, return_value=None
    )

    app = create_application(test_settings)
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides = {}


@pytest.fixture
def auth_headers(test_settings: Settings) -> Dict[str, str]:
    """Create authentication headers for API requests."""
    return {"Authorization": f"Bearer {test_settings.API_TOKEN.get_secret_value()}"}
