"""
Socket setup for both tunnel roles.

Opens the one TCP connection and the one UDP socket a role needs and wires
them to the relay event queue:

    server: listen on tcp_port, accept a single peer, bind UDP extra_udp_port
    client: connect to remote_host:tcp_port, bind UDP udp_port

Setup failures are raised as BindError / AcceptError / ConnectError. Any
socket opened before the failure is closed again.
"""

import asyncio
from dataclasses import dataclass, field

from udptunnel.config import TunnelConfig
from udptunnel.exceptions import AcceptError, BindError, ConnectError, FramingError
from udptunnel.models.enums import TunnelRole
from udptunnel.tunnel.events import TcpClosed, TcpError, TcpIn, UdpIn
from udptunnel.tunnel.protocol import read_frame
from udptunnel.utils.logger import get_logger

logger = get_logger(__name__)


# =============================================================================
# UDP Endpoint
# =============================================================================


class UdpEndpoint(asyncio.DatagramProtocol):
    """Publishes every datagram received on the local UDP socket."""

    def __init__(self, events: asyncio.Queue):
        self._events = events
        self.transport: asyncio.DatagramTransport | None = None

    def connection_made(self, transport: asyncio.DatagramTransport) -> None:
        self.transport = transport

    def datagram_received(self, data: bytes, addr: tuple) -> None:
        self._events.put_nowait(UdpIn(payload=data, addr=addr))

    def error_received(self, exc: Exception) -> None:
        # ICMP errors for earlier sends, e.g. nobody listening on the peer port
        logger.debug(f"[Sockets] UDP error: {exc}")


# =============================================================================
# TCP Link
# =============================================================================


class TcpLink:
    """
    The single tunnel TCP connection.

    A reader task turns the byte stream into TcpIn / TcpClosed / TcpError
    events; writes happen inline from the relay loop.
    """

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        self.reader = reader
        self.writer = writer
        self.peer = writer.get_extra_info("peername")
        self._reader_task: asyncio.Task | None = None

    def start_reader(self, events: asyncio.Queue, max_frame_size: int) -> None:
        """Start publishing frames from the connection onto the event queue."""
        self._reader_task = asyncio.create_task(
            self._read_loop(events, max_frame_size)
        )

    async def _read_loop(self, events: asyncio.Queue, max_frame_size: int) -> None:
        try:
            while True:
                frame = await read_frame(self.reader, max_frame_size)
                if frame is None:
                    events.put_nowait(TcpClosed())
                    return
                events.put_nowait(TcpIn(frame=frame))
        except (FramingError, OSError) as e:
            events.put_nowait(TcpError(error=e))

    async def send(self, data: bytes) -> None:
        """Write one frame and wait until it is handed to the kernel."""
        self.writer.write(data)
        await self.writer.drain()

    async def close(self) -> None:
        """Stop the reader and close the connection."""
        if self._reader_task:
            self._reader_task.cancel()
            await asyncio.gather(self._reader_task, return_exceptions=True)
            self._reader_task = None

        self.writer.close()
        try:
            await asyncio.wait_for(self.writer.wait_closed(), timeout=1.0)
        except (OSError, asyncio.TimeoutError):
            pass


# =============================================================================
# Tunnel State
# =============================================================================


@dataclass
class TunnelState:
    """Sockets of one tunnel run. Mutated only by the relay engine."""

    role: TunnelRole
    config: TunnelConfig
    tcp: TcpLink | None
    udp: asyncio.DatagramTransport | None
    last_sender: tuple | None = field(default=None)

    def udp_address(self) -> tuple | None:
        """Get the bound address of the local UDP socket."""
        if self.udp is None:
            return None
        return self.udp.get_extra_info("sockname")

    def delivery_address(self) -> tuple | None:
        """Get where datagrams relayed from the tunnel are sent locally."""
        peer = self.config.default_peer()
        if peer is not None:
            return peer
        return self.last_sender


# =============================================================================
# Socket Setup
# =============================================================================


async def _open_udp(config: TunnelConfig, events: asyncio.Queue):
    """Bind the local UDP socket for this role."""
    loop = asyncio.get_running_loop()
    host, port = config.bind_host, config.udp_bind_port()
    try:
        transport, _ = await loop.create_datagram_endpoint(
            lambda: UdpEndpoint(events),
            local_addr=(host, port),
        )
    except OSError as e:
        raise BindError(e.strerror or str(e), host, port) from e

    logger.debug(f"[Sockets] UDP bound on {transport.get_extra_info('sockname')}")
    return transport


async def _close_writer(writer: asyncio.StreamWriter) -> None:
    writer.close()
    try:
        await asyncio.wait_for(writer.wait_closed(), timeout=1.0)
    except (OSError, asyncio.TimeoutError):
        pass


async def init_server(config: TunnelConfig, events: asyncio.Queue) -> TunnelState:
    """
    Accept exactly one tunnel peer and open the server-side UDP socket.

    The listener is closed as soon as the first peer is accepted; later
    connection attempts are refused.

    Args:
        config: Server-role configuration.
        events: Queue receiving the relay events of both sockets.

    Raises:
        BindError: TCP listen port or UDP port unavailable.
        AcceptError: No peer connected within config.accept_timeout.
    """
    loop = asyncio.get_running_loop()
    accepted: asyncio.Future = loop.create_future()

    def on_connect(reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        if accepted.done():
            peer = writer.get_extra_info("peername")
            logger.warning(f"[Sockets] Rejecting extra TCP connection from {peer}")
            writer.close()
            return
        accepted.set_result((reader, writer))

    host, port = config.tcp_address()
    try:
        server = await asyncio.start_server(on_connect, host, port)
    except OSError as e:
        raise BindError(e.strerror or str(e), host, port) from e

    logger.info(f"[Sockets] Listening on {host}:{port}, waiting for tunnel peer")

    try:
        reader, writer = await asyncio.wait_for(accepted, timeout=config.accept_timeout)
    except asyncio.TimeoutError as e:
        raise AcceptError(f"no peer within {config.accept_timeout}s", port) from e
    finally:
        # Single-peer model: stop listening whatever happened
        server.close()

    tcp = TcpLink(reader, writer)
    logger.info(f"[Sockets] Accepted tunnel peer {tcp.peer}")

    try:
        udp = await _open_udp(config, events)
    except BindError:
        await _close_writer(writer)
        raise

    logger.info("[Sockets] TCP server and UDP client ready")
    return TunnelState(role=config.role, config=config, tcp=tcp, udp=udp)


async def init_client(config: TunnelConfig, events: asyncio.Queue) -> TunnelState:
    """
    Connect to the tunnel server and open the client-side UDP socket.

    Args:
        config: Client-role configuration.
        events: Queue receiving the relay events of both sockets.

    Raises:
        ConnectError: The remote server could not be reached.
        BindError: Local UDP port unavailable.
    """
    host, port = config.tcp_address()
    logger.debug(f"[Sockets] Connecting to tunnel server {host}:{port}...")
    try:
        reader, writer = await asyncio.wait_for(
            asyncio.open_connection(host, port), timeout=config.connect_timeout
        )
    except asyncio.TimeoutError as e:
        raise ConnectError(f"timed out after {config.connect_timeout}s", host, port) from e
    except OSError as e:
        raise ConnectError(e.strerror or str(e), host, port) from e

    tcp = TcpLink(reader, writer)

    try:
        udp = await _open_udp(config, events)
    except BindError:
        await _close_writer(writer)
        raise

    logger.info("[Sockets] UDP server and TCP client are ready")
    return TunnelState(role=config.role, config=config, tcp=tcp, udp=udp)


async def open_sockets(config: TunnelConfig, events: asyncio.Queue) -> TunnelState:
    """Open the sockets required by the configured role."""
    if config.role == TunnelRole.SERVER:
        return await init_server(config, events)
    return await init_client(config, events)
