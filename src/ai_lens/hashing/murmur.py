"""MurmurHash3 (x86, 32-bit) compatible with the agent-tracking feed."""

from __future__ import annotations

import re
from typing import Final, Literal

Operation = Literal["+", "-"]

OPERATIONS: Final[tuple[Operation, ...]] = ("+", "-")

_C1: Final = 0xCC9E2D51
_C2: Final = 0x1B873593
_MASK32: Final = 0xFFFFFFFF
_HASH_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[0-9a-f]{8}$")
_LOOSE_HASH_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[0-9a-f]{1,8}$")


def _rotl32(value: int, shift: int) -> int:
    return ((value << shift) | (value >> (32 - shift))) & _MASK32


def _code_unit_low_bytes(text: str) -> bytes:
    """Return the low byte of every UTF-16 code unit of ``text``.

    The feed hashes JavaScript strings with ``charCodeAt(i) & 0xff``, so each
    code unit (not each UTF-8 byte) contributes exactly one byte. Lone
    surrogates are kept as-is.
    """
    return text.encode("utf-16-le", "surrogatepass")[0::2]


def murmurhash3_32(text: str, seed: int = 0) -> int:
    """Hash ``text`` as UTF-16 code units and return an unsigned 32-bit value."""
    data = _code_unit_low_bytes(text)
    length = len(data)
    h1 = seed & _MASK32
    block_end = length - (length & 3)

    for index in range(0, block_end, 4):
        k1 = int.from_bytes(data[index : index + 4], "little")
        k1 = (k1 * _C1) & _MASK32
        k1 = _rotl32(k1, 15)
        k1 = (k1 * _C2) & _MASK32

        h1 ^= k1
        h1 = _rotl32(h1, 13)
        h1 = (h1 * 5 + 0xE6546B64) & _MASK32

    tail = length & 3
    if tail:
        k1 = 0
        if tail >= 3:
            k1 ^= data[block_end + 2] << 16
        if tail >= 2:
            k1 ^= data[block_end + 1] << 8
        k1 ^= data[block_end]
        k1 = (k1 * _C1) & _MASK32
        k1 = _rotl32(k1, 15)
        k1 = (k1 * _C2) & _MASK32
        h1 ^= k1

    h1 ^= length
    h1 ^= h1 >> 16
    h1 = (h1 * 0x85EBCA6B) & _MASK32
    h1 ^= h1 >> 13
    h1 = (h1 * 0xC2B2AE35) & _MASK32
    h1 ^= h1 >> 16
    return h1


def format_hash(value: int) -> str:
    """Render a 32-bit hash as 8 lowercase hex characters."""
    return f"{value & _MASK32:08x}"


def calculate_code_hash(file_name: str, operation: str, content: str) -> str:
    """Hash one ``(file, operation, content)`` line the way the feed does."""
    return format_hash(murmurhash3_32(f"{file_name}:{operation}{content}", 0))


def is_valid_hash(value: object) -> bool:
    """Return True for an 8-character lowercase hex string."""
    return isinstance(value, str) and _HASH_PATTERN.match(value) is not None


def normalize_hash(value: str) -> str:
    """Normalize a feed hash to 8 lowercase hex characters.

    Feed producers render hashes without zero padding, so shorter hex strings
    are left-padded. Raises ValueError for anything that is not hex.
    """
    cleaned = value.strip().lower()
    if not _LOOSE_HASH_PATTERN.match(cleaned):
        raise ValueError(f"Not a 32-bit hex hash: {value!r}")
    return cleaned.zfill(8)


def find_matching_operation(file_name: str, content: str, target_hash: str) -> Operation | None:
    """Return the operation whose hash equals ``target_hash``, trying '+' first."""
    for operation in OPERATIONS:
        if calculate_code_hash(file_name, operation, content) == target_hash:
            return operation
    return None
