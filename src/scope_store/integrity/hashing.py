"""
Content-addressed hashing using BLAKE3.

Blobs are hashed over their raw bytes, manifests over their
canonical JSON encoding. Hashes are lowercase hex strings.
"""

from typing import Any

import blake3

from .canonical import canonical_json

HASH_HEX_LENGTH = 64


def compute_hash(data: bytes) -> str:
    """Compute the hex-encoded BLAKE3 hash of raw bytes."""
    return blake3.blake3(data).hexdigest()


def compute_object_hash(obj: Any) -> str:
    """
    Compute hash of a structured object using canonical JSON encoding.
    
    Same object structure always produces same hash,
    independent of Python dict ordering.
    """
    return compute_hash(canonical_json(obj))


def verify_hash(data: bytes, expected_hash: str) -> bool:
    """Return True if data hashes to expected_hash."""
    return compute_hash(data) == expected_hash


def is_valid_hash(hash_str: str) -> bool:
    """Check that a string looks like a hex BLAKE3 digest."""
    if not isinstance(hash_str, str) or len(hash_str) != HASH_HEX_LENGTH:
        return False
    return all(c in '0123456789abcdef' for c in hash_str)


def get_hash_prefix(hash_str: str, prefix_length: int = 2) -> str:
    """
    Get prefix of hash for directory sharding.
    
    Default is 2 characters, creating 256 subdirectories.
    """
    if len(hash_str) < prefix_length:
        raise ValueError(f"Hash too short for prefix length {prefix_length}")
    return hash_str[:prefix_length]
