"""
Tunnel core: role selection, frame codec, sockets and the relay engine.

Only the wire-level helpers are re-exported here; import the engine and the
supervisor from their modules.
"""

from udptunnel.tunnel.protocol import (
    HEADER_SIZE,
    decode,
    encode,
    pack_frame,
    parse_header,
    read_frame,
)

__all__ = [
    "HEADER_SIZE",
    "decode",
    "encode",
    "pack_frame",
    "parse_header",
    "read_frame",
]
