"""Role selection from the command-line role flags."""

from udptunnel.exceptions import ConfigError
from udptunnel.models.enums import TunnelRole


def resolve_role(server_port: int | None, client_port: int | None) -> TunnelRole:
    """
    Derive the operating role from the --server / --client flags.

    Args:
        server_port: Port passed to --server, or None if absent.
        client_port: Port passed to --client, or None if absent.

    Returns:
        The single role selected.

    Raises:
        ConfigError: Both flags or neither flag present.
    """
    is_server = server_port is not None
    is_client = client_port is not None

    if is_server and is_client:
        raise ConfigError("Got both a server and a client argument, can only have one")
    if not is_server and not is_client:
        raise ConfigError("Either --server or --client is required")

    return TunnelRole.SERVER if is_server else TunnelRole.CLIENT
