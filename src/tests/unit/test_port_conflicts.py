"""Unit tests for local port ownership lookup and process termination."""

from unittest.mock import AsyncMock

import pytest
from kubeport.errors import ProcessKillError
from kubeport.models import ProcessInfo
from kubeport.services.port_forward import PortConflictResolver
from pytest_mock import MockerFixture

RUN_COMMAND = "kubeport.services.port_forward.port_conflicts.run_command"

NETSTAT_OUTPUT = """
Active Connections

  Proto  Local Address          Foreign Address        State           PID
  TCP    0.0.0.0:135            0.0.0.0:0              LISTENING       1040
  TCP    127.0.0.1:51234        127.0.0.1:3000         ESTABLISHED     4242
  TCP    0.0.0.0:30000          0.0.0.0:0              LISTENING       7777
  TCP    127.0.0.1:3000         0.0.0.0:0              LISTENING       12345
"""


@pytest.fixture
def run_command(mocker: MockerFixture) -> AsyncMock:
    mock: AsyncMock = mocker.patch(RUN_COMMAND, new_callable=mocker.AsyncMock)
    return mock


class TestUnixLookup:
    """lsof and ps based lookup."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_owner_found(self, run_command: AsyncMock) -> None:
        run_command.side_effect = [
            (0, "12345\n", ""),
            (0, "node             node server.js --port 3000\n", ""),
        ]

        owner = await PortConflictResolver(platform="linux").get_process_using_port(8080)

        assert owner == ProcessInfo(
            pid=12345,
            port=8080,
            process_name="node",
            command_line="node server.js --port 3000",
        )
        run_command.assert_any_await(["lsof", "-nP", "-iTCP:8080", "-sTCP:LISTEN", "-t"])
        run_command.assert_any_await(["ps", "-ww", "-p", "12345", "-o", "comm=,args="])

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_first_pid_wins(self, run_command: AsyncMock) -> None:
        run_command.side_effect = [(0, "12345\n12346\n", ""), (0, "node node\n", "")]

        owner = await PortConflictResolver(platform="darwin").get_process_using_port(8080)

        assert owner is not None
        assert owner.pid == 12345

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_only_listening_sockets_are_queried(self, run_command: AsyncMock) -> None:
        # lsof prints nothing when the port only has client connections
        run_command.return_value = (1, "", "")

        assert await PortConflictResolver(platform="linux").get_process_using_port(5432) is None
        run_command.assert_awaited_once_with(["lsof", "-nP", "-iTCP:5432", "-sTCP:LISTEN", "-t"])

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_free_port(self, run_command: AsyncMock) -> None:
        run_command.return_value = (1, "", "")

        assert await PortConflictResolver(platform="linux").get_process_using_port(8080) is None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_details_unavailable(self, run_command: AsyncMock) -> None:
        run_command.side_effect = [(0, "12345\n", ""), (1, "", "")]

        owner = await PortConflictResolver(platform="linux").get_process_using_port(8080)

        assert owner == ProcessInfo(
            pid=12345, port=8080, process_name="unknown", command_line="unknown"
        )

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_missing_lsof(self, run_command: AsyncMock) -> None:
        run_command.side_effect = FileNotFoundError("lsof")

        assert await PortConflictResolver(platform="linux").get_process_using_port(8080) is None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_garbage_output(self, run_command: AsyncMock) -> None:
        run_command.return_value = (0, "not-a-pid\n", "")

        assert await PortConflictResolver(platform="linux").get_process_using_port(8080) is None


class TestWindowsLookup:
    """netstat and tasklist based lookup."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_owner_found(self, run_command: AsyncMock) -> None:
        run_command.side_effect = [
            (0, NETSTAT_OUTPUT, ""),
            (0, '"node.exe","12345","Console","1","45,120 K"\r\n', ""),
        ]

        owner = await PortConflictResolver(platform="win32").get_process_using_port(3000)

        assert owner == ProcessInfo(
            pid=12345, port=3000, process_name="node.exe", command_line="node.exe"
        )
        run_command.assert_any_await(["tasklist", "/FI", "PID eq 12345", "/FO", "CSV", "/NH"])

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_port_prefix_does_not_match(self, run_command: AsyncMock) -> None:
        run_command.return_value = (0, NETSTAT_OUTPUT, "")

        # :300 is only a prefix of :3000 and :30000
        assert await PortConflictResolver(platform="win32").get_process_using_port(300) is None

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_client_connection_is_not_an_owner(self, run_command: AsyncMock) -> None:
        run_command.return_value = (
            0,
            "  TCP    127.0.0.1:51234        127.0.0.1:3000         ESTABLISHED     4242\r\n"
            "  TCP    127.0.0.1:3000         127.0.0.1:51234        TIME_WAIT       0\r\n",
            "",
        )

        assert await PortConflictResolver(platform="win32").get_process_using_port(3000) is None
        run_command.assert_awaited_once_with(["netstat", "-ano"])


class TestValidation:
    """Inputs are checked before any command runs."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    @pytest.mark.parametrize("port", [0, 65536, -1])
    async def test_invalid_port(self, run_command: AsyncMock, port: int) -> None:
        with pytest.raises(ValueError):
            await PortConflictResolver(platform="linux").get_process_using_port(port)
        run_command.assert_not_awaited()

    @pytest.mark.unit
    @pytest.mark.asyncio
    @pytest.mark.parametrize("pid", [0, -5])
    async def test_invalid_pid(self, run_command: AsyncMock, pid: int) -> None:
        with pytest.raises(ValueError):
            await PortConflictResolver(platform="linux").kill_process(pid)
        run_command.assert_not_awaited()


class TestKillProcess:
    """Forcible termination."""

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_kill_unix(self, run_command: AsyncMock) -> None:
        run_command.return_value = (0, "", "")

        await PortConflictResolver(platform="linux").kill_process(12345)

        run_command.assert_awaited_once_with(["kill", "-9", "12345"])

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_kill_windows(self, run_command: AsyncMock) -> None:
        run_command.return_value = (0, "SUCCESS", "")

        await PortConflictResolver(platform="win32").kill_process(12345)

        run_command.assert_awaited_once_with(["taskkill", "/PID", "12345", "/F"])

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_kill_failure_carries_stderr(self, run_command: AsyncMock) -> None:
        run_command.return_value = (1, "", "kill: (12345): Operation not permitted\n")

        with pytest.raises(ProcessKillError) as exc_info:
            await PortConflictResolver(platform="linux").kill_process(12345)

        assert str(exc_info.value) == (
            "Failed to kill process 12345: kill: (12345): Operation not permitted"
        )
        assert exc_info.value.pid == 12345

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_kill_failure_without_stderr(self, run_command: AsyncMock) -> None:
        run_command.return_value = (1, "", "")

        with pytest.raises(ProcessKillError, match="Unknown error"):
            await PortConflictResolver(platform="linux").kill_process(12345)

    @pytest.mark.unit
    @pytest.mark.asyncio
    async def test_kill_command_missing(self, run_command: AsyncMock) -> None:
        run_command.side_effect = FileNotFoundError("taskkill")

        with pytest.raises(ProcessKillError):
            await PortConflictResolver(platform="win32").kill_process(12345)
