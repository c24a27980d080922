import asyncio
import logging
import re
import signal
from asyncio.subprocess import Process
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Coroutine, List, Optional, Set

from kubeport.errors import PortOccupiedError
from kubeport.models import TunnelConfig, TunnelState, TunnelStatus

from .events import StatusListener, StatusPublisher, Unsubscribe
from .pod_resolver import PodResolver
from .port_conflicts import PortConflictResolver

FORWARDING_MARKER = "Forwarding from"
ERROR_MARKERS = ("error", "Error")
MAX_ERROR_LENGTH = 200


class PortForwardInstance:
    """
    Supervises one ``kubectl port-forward`` subprocess for a single tunnel.

    State machine::

        CONNECTING -> ACTIVE              "Forwarding from" seen on stdout
        CONNECTING|ACTIVE -> RECONNECTING error while retries remain
        RECONNECTING -> CONNECTING        backoff timer fired
        * -> FAILED                       error with the retry budget spent
        * -> STOPPED                      explicit stop(), terminal

    Every transition publishes a ``TunnelStatus`` snapshot to subscribers.
    Internal callbacks never raise; failures become error conditions fed to
    the retry policy. ``stop()`` cancels every timer and task the instance owns.
    """

    def __init__(  # noqa: PLR0913
        self,
        config: TunnelConfig,
        pod_resolver: PodResolver,
        settings: Any,
        port_checker: Optional[PortConflictResolver] = None,
        kubectl: str = "kubectl",
        kubeconfig: str = "",
    ) -> None:
        self.config = config
        self.pod_resolver = pod_resolver
        self.settings = settings
        self.port_checker = port_checker
        self.kubectl = kubectl
        self.kubeconfig = kubeconfig

        self.state = TunnelState.CONNECTING
        self.retry_count = 0
        self.retry_delay_ms: int = settings.RETRY_DELAY_MS
        self.error: Optional[str] = None
        self.next_retry_at: Optional[datetime] = None
        self.pod_name: Optional[str] = None

        self._publisher = StatusPublisher()
        self._process: Optional[Process] = None
        self._connection_timeout: Optional[asyncio.TimerHandle] = None
        self._retry_handle: Optional[asyncio.TimerHandle] = None
        self._health_check_handle: Optional[asyncio.TimerHandle] = None
        self._tasks: Set["asyncio.Task[None]"] = set()

    @property
    def id(self) -> str:
        return self.config.id

    @property
    def process(self) -> Optional[Process]:
        return self._process

    def get_status(self) -> TunnelStatus:
        return TunnelStatus(
            cluster=self.config.cluster,
            namespace=self.config.namespace,
            service=self.config.service,
            service_port=self.config.service_port,
            local_port=self.config.local_port,
            state=self.state,
            retry_count=self.retry_count,
            error=self.error,
            next_retry_at=self.next_retry_at,
        )

    def subscribe(self, listener: StatusListener) -> Unsubscribe:
        return self._publisher.subscribe(listener)

    def _publish(self) -> None:
        self._publisher.publish(self.get_status())

    # --- Lifecycle ---

    async def start(self) -> None:
        """
        Begin (or resume) connecting.

        Raises:
            PortOccupiedError: the local port is owned by another process.
        """
        await self._connect(check_port=True)

    async def _connect(self, check_port: bool) -> None:
        if self.state in (TunnelState.STOPPED, TunnelState.ACTIVE):
            return

        self.state = TunnelState.CONNECTING
        self._publish()
        self._arm_connection_timeout()

        pod = await self._get_pod_name()
        if self.state != TunnelState.CONNECTING:
            return
        if not pod:
            self._handle_error(
                f"Port forward failed: No pod found for service {self.config.service}."
            )
            return

        if check_port and self.port_checker is not None:
            owner = await self.port_checker.get_process_using_port(self.config.local_port)
            if self.state != TunnelState.CONNECTING:
                return
            if owner is not None:
                logging.warning(
                    f"[PortForward] Local port {self.config.local_port} for {self.id} "
                    f"is in use by {owner.process_name} (PID {owner.pid})"
                )
                raise PortOccupiedError(self.id, owner)

        await self._spawn_process(pod)

    def stop(self) -> None:
        """Stop for good. Safe to call more than once."""
        if self.state == TunnelState.STOPPED:
            return
        self._shutdown()
        self.state = TunnelState.STOPPED
        self.next_retry_at = None
        logging.info(f"[PortForward] Stopped {self.id}")
        self._publish()

    def _shutdown(self) -> None:
        self._clear_connection_timeout()
        self._clear_retry()
        self._stop_health_check()
        self._kill_process()
        current = _current_task()
        for task in list(self._tasks):
            if task is not current:
                task.cancel()

    # --- Pod resolution ---

    async def _get_pod_name(self) -> Optional[str]:
        if self.pod_name:
            return self.pod_name
        try:
            pod = await self.pod_resolver.resolve(
                self.config.cluster, self.config.namespace, self.config.service
            )
        except Exception as e:
            logging.error(f"[PortForward] Pod lookup failed for {self.id}: {e}")
            return None
        if pod:
            self.pod_name = pod
        return pod

    # --- Process supervision ---

    def build_command(self, pod: str) -> List[str]:
        cmd = [
            self.kubectl,
            "port-forward",
            f"pod/{pod}",
            f"{self.config.local_port}:{self.config.service_port}",
            "--namespace",
            self.config.namespace,
            "--context",
            self.config.cluster,
        ]
        if self.kubeconfig:
            cmd.extend(["--kubeconfig", self.kubeconfig])
        return cmd

    async def _spawn_process(self, pod: str) -> None:
        cmd = self.build_command(pod)
        logging.info(
            f"[PortForward] Starting port-forward for pod/{pod} "
            f"{self.config.local_port}:{self.config.service_port} ({self.id})"
        )
        try:
            process = await asyncio.create_subprocess_exec(
                *cmd,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError:
            logging.error(f"{self.kubectl} not found! Please ensure kubectl is installed and in your PATH.")
            self._handle_error(f"Failed to spawn kubectl: {self.kubectl} not found")
            return
        except OSError as e:
            logging.error(f"[PortForward] Failed to spawn kubectl for {self.id}: {e}")
            self._handle_error(f"Failed to spawn kubectl: {e}")
            return

        if self.state != TunnelState.CONNECTING:
            # stopped or errored out while spawning
            _terminate(process)
            return

        self._process = process
        self._track(self._read_stdout(process))
        self._track(self._read_stderr(process))
        self._track(self._wait_for_exit(process))

    async def _read_stdout(self, process: Process) -> None:
        if process.stdout is None:
            return
        async for raw in process.stdout:
            if process is not self._process:
                return
            line = raw.decode(errors="replace").rstrip()
            if line:
                logging.debug(f"kubectl port-forward stdout ({self.id}): {line}")
            if FORWARDING_MARKER in line:
                self._on_forwarding_established()

    async def _read_stderr(self, process: Process) -> None:
        if process.stderr is None:
            return
        async for raw in process.stderr:
            if process is not self._process:
                return
            line = raw.decode(errors="replace").rstrip()
            if any(marker in line for marker in ERROR_MARKERS):
                logging.error(f"[PortForward] Error detected in kubectl stderr for {self.id}: {line}")
                self._handle_error(self.extract_user_friendly_error(line))
            elif line:
                logging.debug(f"kubectl port-forward stderr ({self.id}): {line}")

    async def _wait_for_exit(self, process: Process) -> None:
        code = await process.wait()
        if process is not self._process:
            return
        if code is None or code == 0:
            logging.info(f"[PortForward] kubectl process exited cleanly for {self.id}")
            return
        if code < 0:
            try:
                name = signal.Signals(-code).name
            except ValueError:
                name = str(-code)
            logging.error(f"[PortForward] kubectl process killed by signal {name} for {self.id}")
            self._handle_error(f"Process killed by signal {name}")
        else:
            logging.error(
                f"[PortForward] kubectl process exited with non-zero code {code} for {self.id}"
            )
            self._handle_error(f"Process exited with code {code}")

    def _kill_process(self) -> None:
        process, self._process = self._process, None
        if process is not None:
            _terminate(process)

    def _on_forwarding_established(self) -> None:
        self._clear_connection_timeout()
        if self.state not in (TunnelState.CONNECTING, TunnelState.RECONNECTING):
            return
        self._clear_retry()
        self.state = TunnelState.ACTIVE
        self.retry_count = 0
        self.retry_delay_ms = self.settings.RETRY_DELAY_MS
        self.error = None
        logging.info(f"[PortForward] {self.id} is forwarding on localhost:{self.config.local_port}")
        self._schedule_health_check()
        self._publish()

    # --- Error handling and retry ---

    def extract_user_friendly_error(self, error: str) -> str:
        error_str = error.strip()

        if "connection refused" in error_str:
            return (
                "Port forward failed: Connection refused. The service may not be listening "
                f"on port {self.config.service_port}."
            )
        if "lost connection to pod" in error_str:
            return "Port forward failed: Lost connection to pod."
        if "port-forward" in error_str or "forwarding port" in error_str:
            match = re.search(r"error forwarding port (\d+) -> (\d+)", error_str)
            if match:
                return (
                    f"Port forward failed: Unable to forward port {match.group(1)} "
                    f"to {match.group(2)}."
                )
        if "No pod found" in error_str:
            return f"Port forward failed: No pod found for service {self.config.service}."

        first_line = error_str.splitlines()[0] if error_str else error_str
        if len(first_line) > MAX_ERROR_LENGTH:
            return f"Port forward failed: {first_line[:MAX_ERROR_LENGTH]}..."
        return f"Port forward failed: {first_line}"

    def _handle_error(self, error: str) -> None:
        if self.state in (TunnelState.STOPPED, TunnelState.FAILED):
            logging.debug(f"[PortForward] Ignoring error for {self.state.value} {self.id}: {error}")
            return
        if self._retry_handle is not None:
            # the same failure reported again (stderr then exit); one retry is enough
            logging.debug(f"[PortForward] Retry already pending for {self.id}: {error}")
            return

        logging.error(f"[PortForward] Handling error for {self.id}: {error}")
        self._clear_connection_timeout()
        self._stop_health_check()
        self.error = error

        max_retries: int = self.settings.MAX_RETRIES
        if self.retry_count < max_retries:
            self.retry_count += 1

        if self.retry_count >= max_retries:
            logging.error(f"[PortForward] {self.id} failed after {self.retry_count} retries")
            self.state = TunnelState.FAILED
            self.next_retry_at = None
            self._publish()
            self._shutdown()
            return

        delay_ms = self.retry_delay_ms
        self.state = TunnelState.RECONNECTING
        self.next_retry_at = datetime.now(timezone.utc) + timedelta(milliseconds=delay_ms)
        self._retry_handle = asyncio.get_running_loop().call_later(
            delay_ms / 1000, self._on_retry_timer
        )
        self.retry_delay_ms = min(delay_ms * 2, self.settings.MAX_RETRY_DELAY_MS)
        logging.info(
            f"[PortForward] Retrying {self.id} in {delay_ms}ms "
            f"(attempt {self.retry_count}/{max_retries})"
        )
        self._publish()

    def _on_retry_timer(self) -> Optional["asyncio.Task[None]"]:
        self._clear_retry()
        if self.state == TunnelState.STOPPED:
            return None
        self._kill_process()
        return self._track(self._connect(check_port=False))

    def _clear_retry(self) -> None:
        if self._retry_handle is not None:
            self._retry_handle.cancel()
            self._retry_handle = None
        self.next_retry_at = None

    # --- Timers ---

    def _arm_connection_timeout(self) -> None:
        self._clear_connection_timeout()
        self._connection_timeout = asyncio.get_running_loop().call_later(
            self.settings.CONNECTION_TIMEOUT_MS / 1000, self._on_connection_timeout
        )

    def _on_connection_timeout(self) -> None:
        self._connection_timeout = None
        if self.state != TunnelState.CONNECTING:
            return
        seconds = self.settings.CONNECTION_TIMEOUT_MS / 1000
        logging.error(
            f"[PortForward] Connection timeout for {self.id}: port-forward did not establish "
            f"within {seconds:g}s"
        )
        self._handle_error(f"Connection timeout: port-forward did not establish within {seconds:g}s")

    def _clear_connection_timeout(self) -> None:
        if self._connection_timeout is not None:
            self._connection_timeout.cancel()
            self._connection_timeout = None

    def _schedule_health_check(self) -> None:
        self._stop_health_check()
        self._health_check_handle = asyncio.get_running_loop().call_later(
            self.settings.HEALTH_CHECK_INTERVAL_MS / 1000, self._on_health_check_timer
        )

    def _stop_health_check(self) -> None:
        if self._health_check_handle is not None:
            self._health_check_handle.cancel()
            self._health_check_handle = None

    def _on_health_check_timer(self) -> Optional["asyncio.Task[None]"]:
        self._health_check_handle = None
        if self.state != TunnelState.ACTIVE:
            return None
        return self._track(self._run_health_check())

    async def _run_health_check(self) -> None:
        error = await self.check_connection()
        if self.state != TunnelState.ACTIVE:
            return
        if error is None:
            self._schedule_health_check()
        else:
            self._handle_error(error)

    async def check_connection(self) -> Optional[str]:
        """Probe the local end of the tunnel. Returns an error message, or None when healthy."""
        host = self.settings.HEALTH_CHECK_HOST
        port = self.config.local_port
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(host, port),
                timeout=self.settings.HEALTH_CHECK_TIMEOUT_MS / 1000,
            )
        except asyncio.TimeoutError:
            logging.error(f"[PortForward] Health check timeout for {self.id} on {host}:{port}")
            return f"Port forward failed: Connection timeout on {host}:{port}"
        except OSError as e:
            logging.error(f"[PortForward] Health check error for {self.id} on {host}:{port}: {e}")
            return f"Port forward failed: Connection refused on {host}:{port}"
        writer.close()
        try:
            await writer.wait_closed()
        except OSError as e:
            logging.debug(f"[PortForward] Health check close error for {self.id}: {e}")
        return None

    # --- Tasks ---

    def _track(self, coro: Coroutine[Any, Any, None]) -> "asyncio.Task[None]":
        task = asyncio.create_task(self._guarded(coro))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _guarded(self, coro: Awaitable[None]) -> None:
        try:
            await coro
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logging.exception(f"[PortForward] Unexpected error in {self.id}: {e}")
            self._handle_error(f"Port forward failed: {e}")


def _terminate(process: Process) -> None:
    if process.returncode is not None:
        return
    try:
        process.terminate()
    except ProcessLookupError:
        pass


def _current_task() -> Optional["asyncio.Task[Any]"]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


