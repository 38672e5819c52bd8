"""Wire forms for ciphertext handles and disclosed clear values.

Handles are 32-byte identifiers written as ``0x`` + 64 hex digits. Clear
values travel ABI-encoded: one 32-byte big-endian unsigned word per handle,
in the order the handles were submitted.
"""
from __future__ import annotations

import re
from typing import List, Sequence

from .errors import MalformedClearValue, UnknownHandle

__all__ = [
    "WORD_SIZE",
    "is_handle",
    "handle_to_bytes",
    "bytes_to_handle",
    "encode_clear_values",
    "decode_clear_values",
]

WORD_SIZE = 32
_HANDLE_RE = re.compile(r"^0x[0-9a-f]{64}$")


def is_handle(value: object) -> bool:
    return isinstance(value, str) and bool(_HANDLE_RE.match(value))


def handle_to_bytes(handle: str) -> bytes:
    if not is_handle(handle):
        raise UnknownHandle(handle)
    return bytes.fromhex(handle[2:])


def bytes_to_handle(raw: bytes) -> str:
    if len(raw) != WORD_SIZE:
        raise UnknownHandle(raw)
    return "0x" + raw.hex()


def encode_clear_values(values: Sequence[int]) -> bytes:
    out = bytearray()
    for value in values:
        if value < 0 or value >= 1 << (8 * WORD_SIZE):
            raise ValueError(f"clear value out of uint256 range: {value}")
        out += value.to_bytes(WORD_SIZE, "big")
    return bytes(out)


def decode_clear_values(blob: bytes, count: int) -> List[int]:
    """Decode exactly *count* words from *blob*."""
    if not isinstance(blob, (bytes, bytearray)):
        raise MalformedClearValue("clear value blob must be bytes")
    if len(blob) != count * WORD_SIZE:
        raise MalformedClearValue(
            f"expected {count * WORD_SIZE} bytes of clear values, got {len(blob)}"
        )
    return [
        int.from_bytes(blob[i : i + WORD_SIZE], "big")
        for i in range(0, len(blob), WORD_SIZE)
    ]
