"""
Relay engine.

Consumes socket events one at a time and moves payload between the local UDP
socket and the tunnel TCP connection:

    UdpIn      -> encode -> one frame on the TCP connection
    TcpIn      -> decode -> one datagram to the local UDP peer
    TcpClosed  -> CLOSED
    TcpError   -> CLOSED

Entering CLOSED releases both sockets. Nothing is reconnected, queued or
resent afterwards; datagrams still pending are dropped. A clean peer close
ends run() normally, a broken connection is re-raised from it once the
sockets are released.
"""

import asyncio
from dataclasses import dataclass

from udptunnel.config import TunnelConfig
from udptunnel.exceptions import DecodeError
from udptunnel.models.enums import RelayState
from udptunnel.tunnel.events import RelayEvent, TcpClosed, TcpError, TcpIn, UdpIn
from udptunnel.tunnel.protocol import decode, pack_frame
from udptunnel.tunnel.sockets import TunnelState, open_sockets
from udptunnel.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass
class RelayStats:
    """Traffic counters of one tunnel run."""

    udp_to_tcp: int = 0
    tcp_to_udp: int = 0
    dropped: int = 0
    decode_errors: int = 0

    def __str__(self) -> str:
        return (
            f"udp->tcp={self.udp_to_tcp} tcp->udp={self.tcp_to_udp} "
            f"dropped={self.dropped} decode_errors={self.decode_errors}"
        )


class RelayEngine:
    """
    Lifecycle state machine and event loop of one tunnel run.

    Only this class mutates the TunnelState; events are handled strictly one
    after another, so no locking is needed.
    """

    def __init__(self, config: TunnelConfig):
        """
        Initialize relay engine.

        Args:
            config: Tunnel configuration; the role is taken from it once.
        """
        self.config = config
        self.role = config.role
        self.state = RelayState.INITIALIZING
        self.tunnel: TunnelState | None = None
        self.stats = RelayStats()
        self.events: asyncio.Queue = asyncio.Queue()

        self.reached_relaying = False
        self.failure: Exception | None = None

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        """Open the role's sockets and begin relaying."""
        logger.info(f"[Relay] UDP tunnel initializing ({self.config.describe()})")
        tunnel = await open_sockets(self.config, self.events)
        self.attach(tunnel)

    def attach(self, tunnel: TunnelState) -> None:
        """Take ownership of opened sockets: INITIALIZING -> RELAYING."""
        if self.state != RelayState.INITIALIZING:
            raise RuntimeError(f"Cannot attach sockets in state {self.state.value}")

        self.tunnel = tunnel
        if tunnel.tcp is not None:
            tunnel.tcp.start_reader(self.events, self.config.max_frame_size)
        self.state = RelayState.RELAYING
        self.reached_relaying = True
        logger.info(f"[Relay] Relaying ({self.role.value})")

    async def run(self) -> RelayStats:
        """
        Relay until the tunnel connection goes away.

        Opens the sockets first if start() has not been called. Sockets are
        released however the loop ends, including cancellation.

        Returns:
            Traffic counters of this run

        Raises:
            SocketSetupError: Sockets could not be opened
            FramingError: The tunnel stream became unreadable
            OSError: The tunnel connection broke
        """
        try:
            if self.state == RelayState.INITIALIZING:
                await self.start()

            while self.state == RelayState.RELAYING:
                event = await self.events.get()
                await self._dispatch(event)

            await self._drain()
        finally:
            await self.close()

        if self.failure is not None:
            logger.info(f"[Relay] Stopped on failure: {self.stats}")
            raise self.failure

        logger.info(f"[Relay] Stopped: {self.stats}")
        return self.stats

    async def close(self) -> None:
        """Release both sockets. Safe to call more than once."""
        self.state = RelayState.CLOSED
        tunnel = self.tunnel
        if tunnel is None:
            return

        if tunnel.tcp is not None:
            tcp, tunnel.tcp = tunnel.tcp, None
            await tcp.close()
        if tunnel.udp is not None:
            udp, tunnel.udp = tunnel.udp, None
            udp.close()

    # -------------------------------------------------------------------------
    # Event Dispatch
    # -------------------------------------------------------------------------

    async def _dispatch(self, event: RelayEvent) -> None:
        """Handle one event; a bad frame must not stop unrelated traffic."""
        try:
            await self.handle_event(event)
        except DecodeError as e:
            self.stats.decode_errors += 1
            logger.warning(f"[Relay] Dropped undecodable frame: {e}")

    async def _drain(self) -> None:
        """Consume events still queued after CLOSED."""
        while not self.events.empty():
            await self.handle_event(self.events.get_nowait())

    async def handle_event(self, event: RelayEvent) -> None:
        """
        Apply one event to the state machine.

        Raises:
            DecodeError: A TcpIn frame is not valid encoded payload
        """
        if self.state == RelayState.RELAYING:
            if isinstance(event, UdpIn):
                await self._on_udp_in(event)
            elif isinstance(event, TcpIn):
                self._on_tcp_in(event)
            elif isinstance(event, TcpClosed):
                logger.info("[Relay] Socket has been closed")
                await self._enter_closed()
            elif isinstance(event, TcpError):
                logger.error(f"[Relay] Connection closed due to {event.error}")
                self.failure = event.error
                await self._enter_closed()
            else:
                logger.warning(f"[Relay] Unknown event: {event!r}")

        elif self.state == RelayState.CLOSED:
            if isinstance(event, UdpIn):
                self.stats.dropped += 1
                logger.debug(
                    f"[Relay] Tunnel closed, dropping {len(event.payload)} bytes "
                    f"from {event.addr}"
                )

        else:
            logger.warning(
                f"[Relay] Ignoring {type(event).__name__} before sockets are ready"
            )

    async def _on_udp_in(self, event: UdpIn) -> None:
        tunnel = self.tunnel
        tunnel.last_sender = event.addr
        logger.debug(f"[Relay] Got {len(event.payload)} bytes from {event.addr}")

        try:
            await tunnel.tcp.send(pack_frame(event.payload))
        except OSError as e:
            logger.error(f"[Relay] TCP write failed: {e}")
            self.stats.dropped += 1
            self.failure = e
            await self._enter_closed()
            return

        self.stats.udp_to_tcp += 1

    def _on_tcp_in(self, event: TcpIn) -> None:
        payload = decode(event.frame)
        logger.debug(
            f"[Relay] Incoming packet: {payload[:64]!r} ({len(payload)} bytes)"
        )

        addr = self.tunnel.delivery_address()
        if addr is None:
            self.stats.dropped += 1
            logger.warning(
                f"[Relay] No local UDP peer yet, dropping {len(payload)} bytes"
            )
            return

        self.tunnel.udp.sendto(payload, addr)
        self.stats.tcp_to_udp += 1

    async def _enter_closed(self) -> None:
        """RELAYING -> CLOSED: release sockets, no reconnection."""
        logger.info("[Relay] Relaying stopped, closing sockets")
        await self.close()
