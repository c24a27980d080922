"""Unit tests for the kubeport command line."""

from unittest.mock import MagicMock

import pytest
from kubeport.cli import app
from kubeport.errors import PortOccupiedError
from kubeport.models import ProcessInfo, TunnelConfig
from pytest_mock import MockerFixture
from typer.testing import CliRunner

from tests.conftest import KUBE_CONTEXTS

runner = CliRunner()


@pytest.mark.unit
def test_port_owner_found(mocker: MockerFixture) -> None:
    mocker.patch(
        "kubeport.cli.PortConflictResolver.get_process_using_port",
        new_callable=mocker.AsyncMock,
        return_value=ProcessInfo(
            pid=12345, port=3000, process_name="node", command_line="node server.js"
        ),
    )

    result = runner.invoke(app, ["port-owner", "3000"])

    assert result.exit_code == 0
    assert "PID 12345" in result.output
    assert "node server.js" in result.output


@pytest.mark.unit
def test_port_owner_free(mocker: MockerFixture) -> None:
    mocker.patch(
        "kubeport.cli.PortConflictResolver.get_process_using_port",
        new_callable=mocker.AsyncMock,
        return_value=None,
    )

    result = runner.invoke(app, ["port-owner", "3000"])

    assert result.exit_code == 0
    assert "No process is using port 3000" in result.output


@pytest.mark.unit
def test_port_owner_rejects_invalid_port() -> None:
    result = runner.invoke(app, ["port-owner", "70000"])
    assert result.exit_code != 0


@pytest.mark.unit
def test_contexts(mocker: MockerFixture) -> None:
    mocker.patch(
        "kubeport.services.kubernetes.client.list_kube_config_contexts",
        return_value=(KUBE_CONTEXTS, KUBE_CONTEXTS[1]),
    )

    result = runner.invoke(app, ["contexts"])

    assert result.exit_code == 0
    assert "dev-cluster" in result.output
    assert "prod-cluster" in result.output


@pytest.mark.unit
def test_forward_declined_port_conflict(mocker: MockerFixture) -> None:
    owner = ProcessInfo(pid=12345, port=8080, process_name="node", command_line="node server.js")
    config = TunnelConfig(
        cluster="dev", namespace="default", service="web", service_port=80, local_port=8080
    )
    mocker.patch(
        "kubeport.services.kubernetes.client.list_kube_config_contexts",
        return_value=(KUBE_CONTEXTS, KUBE_CONTEXTS[0]),
    )
    manager: MagicMock = mocker.patch("kubeport.cli.PortForwardManager").return_value
    manager.start_port_forward = mocker.AsyncMock(side_effect=PortOccupiedError(config.id, owner))
    manager.respond_to_port_occupied = mocker.AsyncMock(return_value=None)

    result = runner.invoke(
        app, ["forward", "-c", "dev", "-s", "web", "--service-port", "80", "--local-port", "8080"],
        input="n\n",
    )

    assert result.exit_code == 1
    assert "Kill node (PID 12345) and retry?" in result.output
    manager.respond_to_port_occupied.assert_awaited_once_with(config.id, kill=False)
    manager.stop_all.assert_called_once()
