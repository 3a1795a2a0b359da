"""
udptunnel CLI entry point.

Usage:
    udptunnel --server PORT [OPTIONS]
    udptunnel --client PORT --remote-host HOST [OPTIONS]

Example:
    # On the machine with the UDP service
    udptunnel --server 51821 --verbose

    # On the machine with the UDP application
    udptunnel --client 51821 --remote-host 192.168.88.35

    # Then, on the client machine
    echo "hello world" | nc -u -w0 localhost 51820
"""

import asyncio
import signal
from typing import Annotated

import typer

from udptunnel import __version__
from udptunnel.cli.output import console, print_error
from udptunnel.config import build_config
from udptunnel.exceptions import ConfigError, TunnelError
from udptunnel.models.enums import LogLevel
from udptunnel.tunnel.supervisor import DEFAULT_MAX_RESTARTS, TunnelSupervisor
from udptunnel.utils.logger import configure_logging, level_for

app = typer.Typer(
    name="udptunnel",
    help="UDP Tunnel: carry UDP datagrams over a single TCP connection",
    add_completion=False,
    rich_markup_mode="rich",
)


def _version_callback(value: bool):
    if value:
        console.print(f"udptunnel v{__version__}")
        raise typer.Exit()


@app.command()
def main(
    server: Annotated[
        int | None,
        typer.Option(
            "--server",
            "-s",
            help="Run as tunnel server, listening on this TCP port",
            envvar="UDPTUNNEL_SERVER",
        ),
    ] = None,
    client: Annotated[
        int | None,
        typer.Option(
            "--client",
            "-c",
            help="Run as tunnel client, connecting to this TCP port",
            envvar="UDPTUNNEL_CLIENT",
        ),
    ] = None,
    remote_host: Annotated[
        str | None,
        typer.Option(
            "--remote-host",
            "-r",
            help="Tunnel server address (client role)",
            envvar="UDPTUNNEL_REMOTE_HOST",
        ),
    ] = None,
    udp_port: Annotated[
        int | None,
        typer.Option(
            "--udp-port",
            help="Primary UDP port (client binds it, server delivers to it)",
            envvar="UDPTUNNEL_UDP_PORT",
        ),
    ] = None,
    extra_udp_port: Annotated[
        int | None,
        typer.Option(
            "--extra-udp-port",
            help="UDP port bound by the server role",
            envvar="UDPTUNNEL_EXTRA_UDP_PORT",
        ),
    ] = None,
    bind_host: Annotated[
        str | None,
        typer.Option(
            "--bind-host",
            help="Local address for the listener and the UDP socket",
            envvar="UDPTUNNEL_BIND_HOST",
        ),
    ] = None,
    peer_host: Annotated[
        str | None,
        typer.Option(
            "--peer-host",
            help="Address relayed datagrams are delivered to",
            envvar="UDPTUNNEL_PEER_HOST",
        ),
    ] = None,
    peer_port: Annotated[
        int | None,
        typer.Option(
            "--peer-port",
            help="Port relayed datagrams are delivered to (overrides role default)",
            envvar="UDPTUNNEL_PEER_PORT",
        ),
    ] = None,
    accept_timeout: Annotated[
        float | None,
        typer.Option(
            "--accept-timeout",
            help="Seconds the server waits for its peer (default: forever)",
        ),
    ] = None,
    max_restarts: Annotated[
        int,
        typer.Option(
            "--max-restarts",
            help="Consecutive restarts after a failure before giving up",
            envvar="UDPTUNNEL_MAX_RESTARTS",
        ),
    ] = DEFAULT_MAX_RESTARTS,
    restart_on_close: Annotated[
        bool,
        typer.Option(
            "--restart-on-close",
            help="Reopen the tunnel after the peer closes it",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Log tunnel activity"),
    ] = False,
    log_level: Annotated[
        LogLevel | None,
        typer.Option(
            "--log-level",
            help="Explicit log level (overrides --verbose)",
            envvar="UDPTUNNEL_LOG_LEVEL",
        ),
    ] = None,
    log_file: Annotated[
        str | None,
        typer.Option("--log-file", help="Also write logs to this file"),
    ] = None,
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            callback=_version_callback,
            is_eager=True,
            help="Show version and exit",
        ),
    ] = None,
):
    """
    Relay UDP datagrams through one TCP connection.

    Exactly one of [bold]--server[/bold] or [bold]--client[/bold] is required.
    """
    # Validate before anything touches the network
    try:
        config = build_config(
            server,
            client,
            remote_host=remote_host,
            udp_port=udp_port,
            extra_udp_port=extra_udp_port,
            bind_host=bind_host,
            peer_host=peer_host,
            peer_port=peer_port,
            accept_timeout=accept_timeout,
            verbose=verbose,
        )
    except ConfigError as e:
        print_error(str(e))
        raise typer.Exit(2)

    configure_logging(level_for(config.verbose, log_level), log_file)

    host, port = config.tcp_address()
    console.print(
        f"[bold green]Tunnel[/bold green] "
        f"[cyan]{config.role.value}[/cyan] "
        f"[dim]tcp[/dim] [yellow]{host}:{port}[/yellow] "
        f"[dim]udp[/dim] [yellow]{config.bind_host}:{config.udp_bind_port()}[/yellow]"
    )
    console.print("[dim]Press Ctrl+C to stop.[/dim]")

    supervisor = TunnelSupervisor(
        config,
        max_restarts=max_restarts,
        restart_on_close=restart_on_close,
    )

    try:
        stats = asyncio.run(_supervise(supervisor))
    except (KeyboardInterrupt, asyncio.CancelledError):
        console.print("\n[dim]Stopped.[/dim]")
        return
    except (TunnelError, OSError) as e:
        print_error(str(e))
        raise typer.Exit(1)

    console.print(f"[dim]Tunnel closed ({stats}).[/dim]")


async def _supervise(supervisor: TunnelSupervisor):
    """Run the supervisor, cancelling it on SIGTERM so sockets are released."""
    loop = asyncio.get_running_loop()
    task = asyncio.current_task()
    try:
        loop.add_signal_handler(signal.SIGTERM, task.cancel)
    except NotImplementedError:
        pass

    try:
        return await supervisor.run()
    finally:
        try:
            loop.remove_signal_handler(signal.SIGTERM)
        except NotImplementedError:
            pass


def run():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    run()
