"""
udptunnel Test Configuration
============================

Shared fixtures and helpers:
- free_port: Reserve-and-release a localhost port
- DatagramCollector / open_collector: UDP endpoint queueing what it receives
- server_config / client_config: Matching configs for one localhost tunnel

Usage:
    pytest tests/unit/          # Fast unit tests
    pytest tests/integration/   # Real sockets on 127.0.0.1
"""

import asyncio
import socket
from dataclasses import dataclass

import pytest

from udptunnel.config import TunnelConfig
from udptunnel.models.enums import TunnelRole

LOCALHOST = "127.0.0.1"


# ============================================================================
# Pytest Configuration
# ============================================================================


def pytest_collection_modifyitems(config, items):
    """Auto-mark tests based on their path."""
    for item in items:
        path = str(item.fspath)
        if "/unit/" in path:
            item.add_marker(pytest.mark.unit)
        elif "/integration/" in path:
            item.add_marker(pytest.mark.integration)


# ============================================================================
# Network Helpers
# ============================================================================


def free_port(kind: int = socket.SOCK_STREAM) -> int:
    """Find a port nothing is bound to right now."""
    with socket.socket(socket.AF_INET, kind) as s:
        s.bind((LOCALHOST, 0))
        return s.getsockname()[1]


def port_is_free(port: int, kind: int = socket.SOCK_STREAM) -> bool:
    """Check whether a localhost port can be bound."""
    with socket.socket(socket.AF_INET, kind) as s:
        try:
            s.bind((LOCALHOST, port))
        except OSError:
            return False
        return True


class DatagramCollector(asyncio.DatagramProtocol):
    """UDP endpoint that queues every datagram it receives."""

    def __init__(self):
        self.transport: asyncio.DatagramTransport | None = None
        self.received: asyncio.Queue = asyncio.Queue()

    def connection_made(self, transport):
        self.transport = transport

    def datagram_received(self, data, addr):
        self.received.put_nowait((data, addr))

    def error_received(self, exc):
        pass

    @property
    def port(self) -> int:
        return self.transport.get_extra_info("sockname")[1]

    def send(self, data: bytes, port: int) -> None:
        self.transport.sendto(data, (LOCALHOST, port))

    async def next(self, timeout: float = 5.0) -> bytes:
        data, _ = await asyncio.wait_for(self.received.get(), timeout=timeout)
        return data

    def close(self) -> None:
        if self.transport:
            self.transport.close()


async def open_collector(port: int = 0) -> DatagramCollector:
    """Bind a DatagramCollector on localhost."""
    loop = asyncio.get_running_loop()
    _, protocol = await loop.create_datagram_endpoint(
        DatagramCollector, local_addr=(LOCALHOST, port)
    )
    return protocol


# ============================================================================
# Config Fixtures
# ============================================================================


@dataclass
class TunnelPorts:
    """Ports of one localhost tunnel."""

    tcp: int
    server_udp: int  # bound by the server role
    delivery: int  # where the server delivers relayed datagrams
    client_udp: int  # bound by the client role


@pytest.fixture
def ports() -> TunnelPorts:
    return TunnelPorts(
        tcp=free_port(),
        server_udp=free_port(socket.SOCK_DGRAM),
        delivery=free_port(socket.SOCK_DGRAM),
        client_udp=free_port(socket.SOCK_DGRAM),
    )


@pytest.fixture
def server_config(ports: TunnelPorts) -> TunnelConfig:
    return TunnelConfig(
        role=TunnelRole.SERVER,
        tcp_port=ports.tcp,
        udp_port=ports.delivery,
        extra_udp_port=ports.server_udp,
        bind_host=LOCALHOST,
        peer_host=LOCALHOST,
        accept_timeout=5.0,
    )


@pytest.fixture
def client_config(ports: TunnelPorts) -> TunnelConfig:
    return TunnelConfig(
        role=TunnelRole.CLIENT,
        tcp_port=ports.tcp,
        udp_port=ports.client_udp,
        remote_host=LOCALHOST,
        bind_host=LOCALHOST,
        connect_timeout=2.0,
    )
