"""Find and terminate the OS process bound to a local TCP port.

Unix-like systems are inspected with ``lsof`` and ``ps``, Windows with
``netstat`` and ``tasklist``. Inspection failures mean "no owner found";
kill failures are raised to the caller.
"""

import asyncio
import logging
import sys
from typing import Optional, Sequence, Tuple

from kubeport.errors import ProcessKillError
from kubeport.models import ProcessInfo
from kubeport.models.tunnel import MAX_PORT, MIN_PORT

UNKNOWN = "unknown"


async def run_command(cmd: Sequence[str]) -> Tuple[int, str, str]:
    """Run ``cmd`` to completion and return ``(returncode, stdout, stderr)``."""
    process = await asyncio.create_subprocess_exec(
        *cmd,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    stdout, stderr = await process.communicate()
    return (
        process.returncode if process.returncode is not None else -1,
        stdout.decode(errors="replace"),
        stderr.decode(errors="replace"),
    )


def _validate_port(port: int) -> None:
    if isinstance(port, bool) or not isinstance(port, int) or not MIN_PORT <= port <= MAX_PORT:
        raise ValueError(f"Port must be an integer between {MIN_PORT} and {MAX_PORT}, got {port!r}")


def _validate_pid(pid: int) -> None:
    if isinstance(pid, bool) or not isinstance(pid, int) or pid <= 0:
        raise ValueError(f"PID must be a positive integer, got {pid!r}")


class PortConflictResolver:
    """Answers "who owns local port P" and "kill PID X" for the current platform."""

    def __init__(self, platform: Optional[str] = None) -> None:
        self.platform = platform or sys.platform

    @property
    def is_windows(self) -> bool:
        return self.platform.startswith("win")

    async def get_process_using_port(self, port: int) -> Optional[ProcessInfo]:
        _validate_port(port)
        try:
            if self.is_windows:
                return await self._get_process_windows(port)
            return await self._get_process_unix(port)
        except OSError as e:
            # Inspection tool missing or not executable
            logging.error(f"Error getting process for port {port}: {e}")
            return None

    async def _get_process_unix(self, port: int) -> Optional[ProcessInfo]:
        # Listening sockets only; clients connected to the port are not owners
        code, out, _ = await run_command(["lsof", "-nP", f"-iTCP:{port}", "-sTCP:LISTEN", "-t"])
        if code != 0 or not out.strip():
            return None
        try:
            pid = int(out.strip().splitlines()[0])
        except ValueError:
            logging.warning(f"Unexpected lsof output for port {port}: {out.strip()!r}")
            return None

        name, command = UNKNOWN, UNKNOWN
        try:
            code, out, _ = await run_command(["ps", "-ww", "-p", str(pid), "-o", "comm=,args="])
        except OSError as e:
            logging.error(f"Error running ps for PID {pid}: {e}")
        else:
            if code == 0 and out.strip():
                parts = out.strip().split()
                name = parts[0]
                command = " ".join(parts[1:]) or parts[0]

        return ProcessInfo(pid=pid, port=port, process_name=name, command_line=command)

    async def _get_process_windows(self, port: int) -> Optional[ProcessInfo]:
        code, out, _ = await run_command(["netstat", "-ano"])
        if code != 0:
            return None

        pid: Optional[int] = None
        for line in out.splitlines():
            # Proto, Local Address, Foreign Address, State, PID
            parts = line.split()
            if len(parts) != 5 or parts[3] != "LISTENING" or not parts[4].isdigit():
                continue
            if parts[1].endswith(f":{port}"):
                pid = int(parts[4])
                break
        if not pid:
            return None

        name = UNKNOWN
        try:
            code, out, _ = await run_command(
                ["tasklist", "/FI", f"PID eq {pid}", "/FO", "CSV", "/NH"]
            )
        except OSError as e:
            logging.error(f"Error running tasklist for PID {pid}: {e}")
        else:
            if code == 0 and out.strip():
                first = out.strip().splitlines()[0]
                name = first.split(",")[0].replace('"', "") or UNKNOWN

        return ProcessInfo(pid=pid, port=port, process_name=name, command_line=name)

    async def kill_process(self, pid: int) -> None:
        """Forcibly terminate ``pid``. Irreversible; callers obtain confirmation first."""
        _validate_pid(pid)
        if self.is_windows:
            cmd = ["taskkill", "/PID", str(pid), "/F"]
        else:
            cmd = ["kill", "-9", str(pid)]

        logging.info(f"Attempting to kill process {pid}")
        try:
            code, _, err = await run_command(cmd)
        except OSError as e:
            logging.error(f"Error spawning kill command for PID {pid}: {e}")
            raise ProcessKillError(pid, str(e)) from e

        if code != 0:
            error = ProcessKillError(pid, err.strip() or "Unknown error")
            logging.error(str(error))
            raise error
        logging.info(f"Successfully killed process {pid}")
