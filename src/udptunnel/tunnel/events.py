"""
Relay events.

Socket publishers push these onto the single queue consumed by RelayEngine.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class UdpIn:
    """Datagram from the local UDP peer."""

    payload: bytes
    addr: tuple


@dataclass(frozen=True)
class TcpIn:
    """One complete frame's encoded text from the tunnel connection."""

    frame: bytes


@dataclass(frozen=True)
class TcpClosed:
    """Tunnel peer closed the connection at a frame boundary."""

    pass


@dataclass(frozen=True)
class TcpError:
    """Tunnel connection failed or its byte stream became unreadable."""

    error: Exception


RelayEvent = UdpIn | TcpIn | TcpClosed | TcpError
