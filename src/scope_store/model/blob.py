"""
Blob object model.

Blobs store raw file bytes content-addressed by hash.
"""

from ..integrity.hashing import compute_hash


class Blob:
    """
    Immutable blob holding the exact bytes of one file.
    
    Blobs are leaf objects - they contain no references.
    Bytes are never transcoded, so binary files round-trip unchanged.
    """
    
    __slots__ = ('data', '_hash')
    
    def __init__(self, data: bytes):
        """
        Create a blob from raw bytes.
        
        Args:
            data: raw binary data
        """
        if not isinstance(data, (bytes, bytearray, memoryview)):
            raise TypeError(f"Blob data must be bytes, got {type(data).__name__}")
        self.data = bytes(data)
        self._hash = None
    
    def compute_hash(self) -> str:
        """Compute content hash of this blob."""
        if self._hash is None:
            self._hash = compute_hash(self.data)
        return self._hash
    
    def size(self) -> int:
        """Get size of blob data in bytes."""
        return len(self.data)
    
    def __eq__(self, other) -> bool:
        if not isinstance(other, Blob):
            return NotImplemented
        return self.data == other.data
    
    def __hash__(self) -> int:
        return hash(self.compute_hash())
    
    def __repr__(self) -> str:
        return f"Blob(size={len(self.data)}, hash={self.compute_hash()[:8]}...)"
