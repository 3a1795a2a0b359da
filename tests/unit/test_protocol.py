"""
Frame Codec Unit Tests
======================

[UNIT] Tests for tunnel/protocol.py payload encoding and framing.
"""

import asyncio
import struct

import pytest
from hypothesis import given, settings, strategies as st

from udptunnel.exceptions import DecodeError, FramingError
from udptunnel.tunnel.protocol import (
    HEADER_SIZE,
    decode,
    encode,
    pack_frame,
    parse_header,
    read_frame,
)

MAX_FRAME = 1 << 20


def stream_of(*chunks: bytes, eof: bool = True) -> asyncio.StreamReader:
    reader = asyncio.StreamReader()
    for chunk in chunks:
        reader.feed_data(chunk)
    if eof:
        reader.feed_eof()
    return reader


class TestEncoding:
    """Test encode/decode."""

    @given(payload=st.binary(max_size=4096))
    @settings(max_examples=200)
    def test_decode_inverts_encode(self, payload):
        assert decode(encode(payload)) == payload

    @given(payload=st.binary(max_size=4096))
    def test_wire_text_is_stable(self, payload):
        text = encode(payload)
        assert encode(decode(text)) == text

    def test_known_value(self):
        assert encode(b"hello world") == "aGVsbG8gd29ybGQ="

    def test_empty_payload(self):
        assert encode(b"") == ""
        assert decode("") == b""

    def test_decode_accepts_bytes(self):
        assert decode(b"aGVsbG8gd29ybGQ=") == b"hello world"

    @pytest.mark.parametrize(
        "text",
        [
            "not base64!",
            "aGVsbG8",  # missing padding
            "aGVs\nbG8=",  # embedded newline
            "héllo===",  # non-ASCII
            b"\xff\xfe\x00\x01",
        ],
    )
    def test_malformed_input_raises(self, text):
        with pytest.raises(DecodeError):
            decode(text)


class TestFraming:
    """Test frame building and reading."""

    def test_pack_frame_layout(self):
        frame = pack_frame(b"hello world")
        body = b"aGVsbG8gd29ybGQ="
        assert frame[:HEADER_SIZE] == struct.pack(">I", len(body))
        assert frame[HEADER_SIZE:] == body
        assert parse_header(frame) == len(body)

    def test_parse_header_too_short(self):
        assert parse_header(b"\x00\x00") is None

    async def test_back_to_back_frames_stay_separate(self):
        reader = stream_of(pack_frame(b"first") + pack_frame(b"second"))

        assert decode(await read_frame(reader, MAX_FRAME)) == b"first"
        assert decode(await read_frame(reader, MAX_FRAME)) == b"second"
        assert await read_frame(reader, MAX_FRAME) is None

    async def test_frame_split_across_chunks(self):
        frame = pack_frame(b"split me")
        reader = stream_of(frame[:3], frame[3:9], frame[9:])

        assert decode(await read_frame(reader, MAX_FRAME)) == b"split me"

    async def test_empty_datagram_frame(self):
        reader = stream_of(pack_frame(b""))
        assert await read_frame(reader, MAX_FRAME) == b""

    async def test_eof_at_boundary_returns_none(self):
        assert await read_frame(stream_of(), MAX_FRAME) is None

    async def test_truncated_header_raises(self):
        with pytest.raises(FramingError):
            await read_frame(stream_of(b"\x00\x00"), MAX_FRAME)

    async def test_truncated_body_raises(self):
        frame = pack_frame(b"hello world")
        with pytest.raises(FramingError):
            await read_frame(stream_of(frame[:-2]), MAX_FRAME)

    async def test_oversized_frame_raises(self):
        header = struct.pack(">I", 100)
        with pytest.raises(FramingError):
            await read_frame(stream_of(header + b"A" * 100), max_frame_size=64)

    async def test_malformed_body_is_framed_but_not_decodable(self):
        bad = struct.pack(">I", 4) + b"!!!!"
        reader = stream_of(bad + pack_frame(b"ok"))

        with pytest.raises(DecodeError):
            decode(await read_frame(reader, MAX_FRAME))
        assert decode(await read_frame(reader, MAX_FRAME)) == b"ok"
