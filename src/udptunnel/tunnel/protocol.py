"""
Tunnel protocol definitions and utilities.

Every UDP datagram crosses the TCP channel as one frame:

Wire format (big-endian):
┌──────────────┬──────────────────────────────────┐
│ Length (4B)  │  Payload (var, base64 ASCII text) │
└──────────────┴──────────────────────────────────┘

Length counts the encoded text, not the original datagram.
"""

import asyncio
import base64
import binascii
import struct

from udptunnel.exceptions import DecodeError, FramingError

# =============================================================================
# Header Format
# =============================================================================

HEADER_FORMAT = ">I"  # Big-endian uint32 length
HEADER_SIZE = struct.calcsize(HEADER_FORMAT)  # 4 bytes


# =============================================================================
# Payload Encoding
# =============================================================================


def encode(payload: bytes) -> str:
    """
    Encode a raw datagram payload as TCP-safe text.

    Args:
        payload: Raw UDP payload (may be empty)

    Returns:
        Base64 text
    """
    return base64.b64encode(payload).decode("ascii")


def decode(text: str | bytes) -> bytes:
    """
    Decode text produced by encode() back into the raw payload.

    Args:
        text: Base64 text, as str or ASCII bytes

    Returns:
        Raw payload bytes

    Raises:
        DecodeError: Input is not valid base64
    """
    try:
        if isinstance(text, str):
            text = text.encode("ascii")
        return base64.b64decode(text, validate=True)
    except (UnicodeEncodeError, binascii.Error) as e:
        raise DecodeError(f"Invalid encoded payload ({len(text)} chars): {e}") from e


# =============================================================================
# Framing
# =============================================================================


def pack_frame(payload: bytes) -> bytes:
    """
    Build one tunnel frame for a datagram payload.

    Args:
        payload: Raw UDP payload

    Returns:
        Complete frame as bytes (header + encoded payload)
    """
    body = encode(payload).encode("ascii")
    return struct.pack(HEADER_FORMAT, len(body)) + body


def parse_header(data: bytes) -> int | None:
    """
    Parse the length field of a frame header.

    Returns:
        Encoded payload length or None if data too short
    """
    if len(data) < HEADER_SIZE:
        return None
    (length,) = struct.unpack(HEADER_FORMAT, data[:HEADER_SIZE])
    return length


async def read_frame(reader: asyncio.StreamReader, max_frame_size: int) -> bytes | None:
    """
    Read the encoded text of the next frame from a TCP stream.

    Args:
        reader: Stream of the tunnel TCP connection
        max_frame_size: Largest encoded length accepted

    Returns:
        Encoded payload, or None on EOF at a frame boundary

    Raises:
        FramingError: Stream ended inside a frame or length is too large
    """
    try:
        header = await reader.readexactly(HEADER_SIZE)
    except asyncio.IncompleteReadError as e:
        if not e.partial:
            return None
        raise FramingError(f"Stream closed inside a frame header ({len(e.partial)} bytes)")

    length = parse_header(header)
    if length > max_frame_size:
        raise FramingError(f"Frame length {length} exceeds limit {max_frame_size}")

    try:
        return await reader.readexactly(length)
    except asyncio.IncompleteReadError as e:
        raise FramingError(
            f"Stream closed inside a frame ({len(e.partial)}/{length} bytes)"
        )
