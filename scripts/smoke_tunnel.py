#!/usr/bin/env python3
"""
Smoke test for the udptunnel command.

This script sets up:
1. A mock UDP service (the server-side peer)
2. A `udptunnel --server` process
3. A `udptunnel --client` process connected to it

Then verifies:
- A datagram sent to the client tunnel reaches the service unchanged
- The service's reply comes back to the original sender
- Several back-to-back datagrams keep their boundaries

Usage:
    python scripts/smoke_tunnel.py [--tcp-port PORT] [--verbose]

Requirements:
    - udptunnel installed in the current environment (pip install -e .)
"""

import argparse
import asyncio
import socket
import subprocess
import sys

# =============================================================================
# Configuration
# =============================================================================

LOCALHOST = "127.0.0.1"

# Colors for output
GREEN = "\033[92m"
RED = "\033[91m"
CYAN = "\033[96m"
RESET = "\033[0m"


def log_info(msg: str) -> None:
    print(f"{CYAN}[INFO]{RESET} {msg}")


def log_ok(msg: str) -> None:
    print(f"{GREEN}[PASS]{RESET} {msg}")


def log_fail(msg: str) -> None:
    print(f"{RED}[FAIL]{RESET} {msg}")


def find_free_port(kind: int) -> int:
    with socket.socket(socket.AF_INET, kind) as s:
        s.bind((LOCALHOST, 0))
        return s.getsockname()[1]


# =============================================================================
# Mock UDP Peers
# =============================================================================


class UdpPeer(asyncio.DatagramProtocol):
    """UDP endpoint that records what it receives."""

    def __init__(self, name: str, echo_to: int | None = None):
        self.name = name
        self.echo_to = echo_to
        self.transport = None
        self.received: asyncio.Queue = asyncio.Queue()

    def connection_made(self, transport) -> None:
        self.transport = transport

    def datagram_received(self, data: bytes, addr: tuple) -> None:
        log_info(f"{self.name}: received {len(data)} bytes from {addr}")
        self.received.put_nowait(data)
        if self.echo_to is not None:
            self.transport.sendto(data.upper(), (LOCALHOST, self.echo_to))


async def open_peer(name: str, port: int = 0, echo_to: int | None = None) -> UdpPeer:
    loop = asyncio.get_running_loop()
    _, peer = await loop.create_datagram_endpoint(
        lambda: UdpPeer(name, echo_to), local_addr=(LOCALHOST, port)
    )
    return peer


# =============================================================================
# Tunnel Processes
# =============================================================================


def start_tunnel(args: list[str], verbose: bool) -> subprocess.Popen:
    cmd = [sys.executable, "-m", "udptunnel.cli.main", *args, "--bind-host", LOCALHOST]
    if verbose:
        cmd.append("--verbose")
    log_info(f"Starting: {' '.join(cmd[2:])}")
    return subprocess.Popen(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE)


def stop_tunnel(process: subprocess.Popen) -> None:
    process.terminate()
    try:
        process.wait(timeout=3)
    except subprocess.TimeoutExpired:
        process.kill()


async def run_tests(tcp_port: int, verbose: bool) -> bool:
    client_udp = find_free_port(socket.SOCK_DGRAM)
    server_udp = find_free_port(socket.SOCK_DGRAM)
    service_port = find_free_port(socket.SOCK_DGRAM)

    service = await open_peer("Service", service_port, echo_to=server_udp)
    app = await open_peer("App")

    server = start_tunnel(
        [
            "--server",
            str(tcp_port),
            "--udp-port",
            str(service_port),
            "--extra-udp-port",
            str(server_udp),
        ],
        verbose,
    )
    await asyncio.sleep(0.5)
    client = start_tunnel(
        [
            "--client",
            str(tcp_port),
            "--remote-host",
            LOCALHOST,
            "--udp-port",
            str(client_udp),
        ],
        verbose,
    )
    await asyncio.sleep(0.5)

    all_passed = True
    for process, name in ((server, "server"), (client, "client")):
        if process.poll() is not None:
            _, stderr = process.communicate()
            log_fail(f"Tunnel {name} exited prematurely!")
            log_info(f"stderr: {stderr.decode(errors='replace')}")
            all_passed = False

    if all_passed:
        # Test 1: hello world crosses the tunnel, reply comes back
        log_info("=" * 50)
        log_info("Test 1: hello world through the tunnel")
        log_info("=" * 50)
        app.transport.sendto(b"hello world", (LOCALHOST, client_udp))
        try:
            data = await asyncio.wait_for(service.received.get(), timeout=3.0)
            reply = await asyncio.wait_for(app.received.get(), timeout=3.0)
            if data == b"hello world" and reply == b"HELLO WORLD":
                log_ok("Test 1: Datagram and reply relayed correctly")
            else:
                log_fail(f"Test 1: Got {data!r} / {reply!r}")
                all_passed = False
        except asyncio.TimeoutError:
            log_fail("Test 1: Timed out waiting for datagrams")
            all_passed = False

        # Test 2: datagram boundaries
        log_info("=" * 50)
        log_info("Test 2: Multiple datagrams")
        log_info("=" * 50)
        sent = [f"Packet {i}".encode() for i in range(5)]
        for payload in sent:
            app.transport.sendto(payload, (LOCALHOST, client_udp))
        try:
            got = [
                await asyncio.wait_for(service.received.get(), timeout=3.0)
                for _ in sent
            ]
            if got == sent:
                log_ok("Test 2: All datagrams arrived intact")
            else:
                log_fail(f"Test 2: Got {got!r}")
                all_passed = False
        except asyncio.TimeoutError:
            log_fail("Test 2: Timed out waiting for datagrams")
            all_passed = False

    # Cleanup
    log_info("Cleaning up...")
    stop_tunnel(client)
    stop_tunnel(server)
    service.transport.close()
    app.transport.close()

    return all_passed


async def main() -> int:
    parser = argparse.ArgumentParser(description="Smoke test the udptunnel command")
    parser.add_argument("--tcp-port", type=int, help="Tunnel TCP port (default: free)")
    parser.add_argument("--verbose", action="store_true", help="Verbose tunnels")
    args = parser.parse_args()

    tcp_port = args.tcp_port or find_free_port(socket.SOCK_STREAM)
    success = await run_tests(tcp_port, args.verbose)

    print()
    if success:
        log_ok("All tests passed!")
        return 0
    log_fail("Some tests failed!")
    return 1


if __name__ == "__main__":
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        print("\nInterrupted")
        sys.exit(130)
