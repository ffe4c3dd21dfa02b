"""Framing of the byte string an attestation signature covers.

Layout (BCS-compatible, so a Move verifier can rebuild it with
``bcs::to_bytes`` on the same field sequence)::

    vector<u8> domain tag      b"echo-attestor/attestation/v1"
    vector<u8> subject         UTF-8 bytes of the subject id
    vector<u8> content id      UTF-8 bytes of the blob id
    vector<u8> content digest  32 raw SHA-256 bytes
    u64        issued at       unix seconds, little endian

Each ``vector<u8>`` is a ULEB128 length followed by the bytes. The length
prefix is what keeps ``("AB", "C")`` and ``("A", "BC")`` apart; never join
identifiers without it.
"""
from __future__ import annotations

import struct
from typing import List, Tuple

DOMAIN_TAG = b"echo-attestor/attestation/v1"
MAX_FIELD_BYTES = 1 << 16


def uleb128(n: int) -> bytes:
    if n < 0:
        raise ValueError("uleb128 length must be non-negative")
    out = bytearray()
    while True:
        byte = n & 0x7F
        n >>= 7
        if n:
            out.append(byte | 0x80)
        else:
            out.append(byte)
            return bytes(out)


def read_uleb128(buf: bytes, offset: int) -> Tuple[int, int]:
    value = 0
    shift = 0
    while True:
        if offset >= len(buf):
            raise ValueError("truncated uleb128")
        byte = buf[offset]
        offset += 1
        value |= (byte & 0x7F) << shift
        if not byte & 0x80:
            return value, offset
        shift += 7
        if shift > 35:
            raise ValueError("uleb128 too long")


def encode_bytes(field: bytes) -> bytes:
    if len(field) > MAX_FIELD_BYTES:
        raise ValueError("framed field too long")
    return uleb128(len(field)) + field


def frame_message(subject: str, content_id: str, digest: bytes, issued_at: int) -> bytes:
    if len(digest) != 32:
        raise ValueError("content digest must be 32 bytes")
    if not 0 <= issued_at < 1 << 64:
        raise ValueError("issued_at out of u64 range")
    return b"".join([
        encode_bytes(DOMAIN_TAG),
        encode_bytes(subject.encode("utf-8")),
        encode_bytes(content_id.encode("utf-8")),
        encode_bytes(digest),
        struct.pack("<Q", issued_at),
    ])


def parse_message(message: bytes) -> Tuple[str, str, bytes, int]:
    """Inverse of :func:`frame_message`; raises ValueError on any malformation."""
    fields: List[bytes] = []
    offset = 0
    for _ in range(4):
        n, offset = read_uleb128(message, offset)
        end = offset + n
        if end > len(message):
            raise ValueError("truncated field")
        fields.append(message[offset:end])
        offset = end
    if len(message) - offset != 8:
        raise ValueError("trailing bytes after issued_at")
    tag, subject, content_id, digest = fields
    if tag != DOMAIN_TAG:
        raise ValueError("unknown domain tag")
    (issued_at,) = struct.unpack("<Q", message[offset:])
    return subject.decode("utf-8"), content_id.decode("utf-8"), digest, issued_at
