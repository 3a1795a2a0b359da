"""
Tunnel configuration.

TunnelConfig is built once from the parsed command line and handed to every
component. It is frozen: a restart builds fresh sockets from the same value.

Usage:
    from udptunnel.config import build_config

    config = build_config(server_port=51821, client_port=None)
"""

from dataclasses import dataclass

from udptunnel.exceptions import ConfigError
from udptunnel.models.enums import TunnelRole
from udptunnel.tunnel.role import resolve_role

# =============================================================================
# Defaults
# =============================================================================

DEFAULT_UDP_PORT: int = 51820  # Primary local relay port
DEFAULT_TCP_PORT: int = 51821  # Tunnel channel
DEFAULT_EXTRA_UDP_PORT: int = 51822  # Server-side UDP socket
DEFAULT_REMOTE_HOST: str = "127.0.0.1"
DEFAULT_BIND_HOST: str = "0.0.0.0"
DEFAULT_PEER_HOST: str = "127.0.0.1"
DEFAULT_CONNECT_TIMEOUT: float = 10.0

# A UDP payload is at most 65507 bytes; base64 grows it by 4/3
DEFAULT_MAX_FRAME_SIZE: int = 4 * ((65507 + 2) // 3)


# =============================================================================
# Configuration Dataclass
# =============================================================================


@dataclass(frozen=True)
class TunnelConfig:
    """
    Immutable tunnel configuration.

    Attributes:
        role: Server or client, fixed for the process lifetime.
        tcp_port: Port of the tunnel TCP channel (listen or connect).
        udp_port: Primary local UDP port. The client binds it; the server
            delivers relayed datagrams to it on peer_host.
        extra_udp_port: Secondary UDP port the server binds.
        remote_host: Server address the client connects to.
        bind_host: Local address for listening and UDP sockets.
        peer_host: Address relayed datagrams are delivered to.
        peer_port: Explicit delivery port, overriding the role default.
        accept_timeout: Seconds the server waits for its peer (None = forever).
        connect_timeout: Seconds the client waits for the TCP handshake.
        max_frame_size: Largest encoded frame accepted from the TCP channel.
        verbose: Debug logging requested on the command line.
    """

    role: TunnelRole
    tcp_port: int = DEFAULT_TCP_PORT
    udp_port: int = DEFAULT_UDP_PORT
    extra_udp_port: int = DEFAULT_EXTRA_UDP_PORT
    remote_host: str = DEFAULT_REMOTE_HOST
    bind_host: str = DEFAULT_BIND_HOST
    peer_host: str = DEFAULT_PEER_HOST
    peer_port: int | None = None
    accept_timeout: float | None = None
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    max_frame_size: int = DEFAULT_MAX_FRAME_SIZE
    verbose: bool = False

    def __post_init__(self):
        ports = {
            "tcp_port": self.tcp_port,
            "udp_port": self.udp_port,
            "extra_udp_port": self.extra_udp_port,
        }
        if self.peer_port is not None:
            ports["peer_port"] = self.peer_port
        for name, value in ports.items():
            if not 0 <= value <= 65535:
                raise ConfigError(f"{name} out of range: {value}")
        if self.max_frame_size <= 0:
            raise ConfigError(f"max_frame_size must be positive: {self.max_frame_size}")

    @property
    def is_server(self) -> bool:
        return self.role == TunnelRole.SERVER

    def udp_bind_port(self) -> int:
        """Get the UDP port this role binds locally."""
        return self.extra_udp_port if self.is_server else self.udp_port

    def tcp_address(self) -> tuple[str, int]:
        """Get the TCP address this role listens on or connects to."""
        if self.is_server:
            return self.bind_host, self.tcp_port
        return self.remote_host, self.tcp_port

    def default_peer(self) -> tuple[str, int] | None:
        """
        Get the fixed delivery address for relayed datagrams.

        Returns None when the client should answer whichever local sender
        talked to it last.
        """
        if self.peer_port is not None:
            return self.peer_host, self.peer_port
        if self.is_server:
            return self.peer_host, self.udp_port
        return None

    def describe(self) -> str:
        """One-line summary for startup logs."""
        host, port = self.tcp_address()
        direction = "listen" if self.is_server else "connect"
        return (
            f"role={self.role.value} tcp={direction}:{host}:{port} "
            f"udp=bind:{self.bind_host}:{self.udp_bind_port()}"
        )


def build_config(
    server_port: int | None,
    client_port: int | None,
    **options,
) -> TunnelConfig:
    """
    Resolve the role from the role flags and build the tunnel configuration.

    The port given to the selected role flag becomes the TCP port.

    Args:
        server_port: Value of --server, or None.
        client_port: Value of --client, or None.
        **options: Remaining TunnelConfig fields.

    Raises:
        ConfigError: Both or neither role flags set, or a port out of range.
    """
    role = resolve_role(server_port, client_port)
    tcp_port = server_port if role == TunnelRole.SERVER else client_port
    if not 1 <= tcp_port <= 65535:
        raise ConfigError(f"TCP port out of range: {tcp_port}")

    # None means "use the default" for CLI-provided options
    options = {key: value for key, value in options.items() if value is not None}
    return TunnelConfig(role=role, tcp_port=tcp_port, **options)
