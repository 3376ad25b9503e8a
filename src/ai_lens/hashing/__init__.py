"""Feed-compatible content hashing."""

from .murmur import (
    OPERATIONS,
    Operation,
    calculate_code_hash,
    find_matching_operation,
    format_hash,
    is_valid_hash,
    murmurhash3_32,
    normalize_hash,
)

__all__ = [
    "OPERATIONS",
    "Operation",
    "calculate_code_hash",
    "find_matching_operation",
    "format_hash",
    "is_valid_hash",
    "murmurhash3_32",
    "normalize_hash",
]
