#!/usr/bin/env python3
"""kubeport command line: run the API server or supervise tunnels in the foreground."""

import asyncio
from typing import Optional

import typer
import uvicorn
from rich.console import Console
from rich.table import Table

from kubeport.core.settings import Settings
from kubeport.dependencies import get_settings
from kubeport.errors import KubePortError, PortOccupiedError
from kubeport.logger import configure_logging
from kubeport.models import TunnelConfig, TunnelState, TunnelStatus
from kubeport.services.kubernetes import ClusterClient, get_clusters
from kubeport.services.port_forward import (
    PodResolver,
    PortConflictResolver,
    PortForwardManager,
)

console = Console()

STATE_STYLES = {
    TunnelState.CONNECTING: "yellow",
    TunnelState.ACTIVE: "green",
    TunnelState.RECONNECTING: "yellow",
    TunnelState.FAILED: "red",
    TunnelState.STOPPED: "dim",
}


def print_status(status: TunnelStatus) -> None:
    style = STATE_STYLES.get(status.state, "white")
    line = f"[{style}]{status.state.value:<12}[/{style}] {status.id}"
    if status.state == TunnelState.ACTIVE:
        line += f" -> localhost:{status.local_port}"
    if status.retry_count:
        line += f" (retry {status.retry_count})"
    if status.error and status.state != TunnelState.ACTIVE:
        line += f" [red]{status.error}[/red]"
    console.print(line)


async def run_forward(settings: Settings, config: TunnelConfig, kill_if_occupied: Optional[bool]) -> int:
    """Supervise one tunnel until it fails or the user interrupts. Returns the exit code."""
    port_resolver = PortConflictResolver()
    manager = PortForwardManager(
        pod_resolver=PodResolver(ClusterClient(settings.kubernetes)),
        port_resolver=port_resolver,
        settings=settings,
    )
    failed = asyncio.Event()

    def on_update(status: TunnelStatus) -> None:
        print_status(status)
        if status.state == TunnelState.FAILED:
            failed.set()

    manager.subscribe(on_update)
    try:
        try:
            await manager.start_port_forward(config)
        except PortOccupiedError as e:
            console.print(f"[red]{e}[/red]\n  command: {e.process.command_line}")
            kill = kill_if_occupied
            if kill is None:
                kill = typer.confirm(
                    f"Kill {e.process.process_name} (PID {e.process.pid}) and retry?", default=False
                )
            if await manager.respond_to_port_occupied(e.tunnel_id, kill=kill) is None:
                return 1
        await failed.wait()
        return 1
    except KubePortError as e:
        console.print(f"[red]{e}[/red]")
        return 1
    finally:
        manager.stop_all()


def create_application() -> typer.Typer:
    """Create Typer application for kubeport."""
    app = typer.Typer(
        name="kubeport",
        help="Expose Kubernetes Service ports locally through supervised kubectl port-forward tunnels.",
    )

    @app.command()
    def serve(
        host: str = typer.Option("127.0.0.1", help="Interface to bind the API server to"),
        port: int = typer.Option(8000, help="Port of the API server"),
    ) -> None:
        """Run the HTTP/MCP API server."""
        settings = get_settings()
        configure_logging(settings.LOG_LEVEL)
        uvicorn.run(
            "kubeport.main:create_application",
            factory=True,
            host=host,
            port=port,
            log_level=settings.LOG_LEVEL.lower(),
        )

    @app.command()
    def forward(  # noqa: PLR0913
        cluster: str = typer.Option(..., "--cluster", "-c", help="Kubeconfig context"),
        namespace: str = typer.Option("default", "--namespace", "-n", help="Namespace of the service"),
        service: str = typer.Option(..., "--service", "-s", help="Service name"),
        service_port: int = typer.Option(..., "--service-port", help="Port of the service"),
        local_port: Optional[int] = typer.Option(
            None, "--local-port", help="Local port (defaults to the service port)"
        ),
        kill: Optional[bool] = typer.Option(
            None,
            "--kill/--no-kill",
            help="Kill whatever holds the local port without asking (or refuse without asking)",
        ),
    ) -> None:
        """Forward a Service port in the foreground until interrupted."""
        settings = get_settings()
        configure_logging(settings.LOG_LEVEL)
        config = TunnelConfig(
            cluster=cluster,
            namespace=namespace,
            service=service,
            service_port=service_port,
            local_port=local_port or service_port,
        )
        try:
            code = asyncio.run(run_forward(settings, config, kill))
        except KeyboardInterrupt:
            code = 0
        raise typer.Exit(code)

    @app.command("port-owner")
    def port_owner(port: int = typer.Argument(..., min=1, max=65535)) -> None:
        """Show which process is bound to a local port."""
        owner = asyncio.run(PortConflictResolver().get_process_using_port(port))
        if owner is None:
            console.print(f"No process is using port {port}")
            return
        console.print(f"PID {owner.pid} [bold]{owner.process_name}[/bold]: {owner.command_line}")

    @app.command()
    def contexts() -> None:
        """List kubeconfig contexts."""
        client = ClusterClient(get_settings().kubernetes)
        table = Table(title="Clusters")
        table.add_column("Context")
        table.add_column("Cluster")
        table.add_column("Active")
        current = client.get_current_context()
        for cluster in get_clusters(client):
            table.add_row(cluster.name, cluster.server, "*" if cluster.name == current else "")
        console.print(table)

    return app


app = create_application()


if __name__ == "__main__":
    app()
