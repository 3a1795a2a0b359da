"""Tunnel exception classes."""


class TunnelError(Exception):
    """Base exception for tunnel operations."""

    pass


class ConfigError(TunnelError):
    """Invalid or contradictory tunnel configuration."""

    pass


class SocketSetupError(TunnelError):
    """Failed to open one of the tunnel sockets."""

    pass


class BindError(SocketSetupError):
    """Binding a local TCP or UDP port failed."""

    def __init__(self, message: str, host: str, port: int):
        self.host = host
        self.port = port
        super().__init__(f"Bind to {host}:{port} failed: {message}")


class AcceptError(SocketSetupError):
    """No inbound TCP connection could be accepted."""

    def __init__(self, message: str, port: int):
        self.port = port
        super().__init__(f"Accept on port {port} failed: {message}")


class ConnectError(SocketSetupError):
    """Outbound TCP connection to the remote server failed."""

    def __init__(self, message: str, host: str, port: int):
        self.host = host
        self.port = port
        super().__init__(f"Connect to {host}:{port} failed: {message}")


class DecodeError(TunnelError):
    """Data from the TCP channel is not valid encoded payload."""

    pass


class FramingError(TunnelError):
    """The TCP byte stream no longer carries well-formed frames."""

    pass
