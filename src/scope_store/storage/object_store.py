"""
Content-addressed object storage.

Provides immutable storage of file blobs and manifest objects,
and buffered write batches that publish in a safe order.
"""

from pathlib import Path
from typing import Dict, List, Optional
import os
import tempfile

from ..errors import (
    InvalidObjectError,
    ObjectCorruptedError,
    ObjectNotFoundError,
    ReferenceMissingError,
    StorageError,
)
from ..integrity.canonical import load_canonical
from ..integrity.hashing import compute_hash
from ..logging_config import get_logger
from ..model.blob import Blob
from ..model.component_id import format_versioned
from ..model.manifest import VersionManifest
from .layout import StorageLayout

_LOGGER = get_logger(__name__)


class WriteBatch:
    """
    Buffered writes of one transaction.

    Nothing touches disk until ObjectStore.write_batch is called.
    """

    def __init__(self):
        self.blobs: Dict[str, bytes] = {}
        self.manifests: Dict[str, VersionManifest] = {}

    def add_blob(self, data: bytes) -> str:
        blob = Blob(data)
        self.blobs[blob.compute_hash()] = blob.data
        return blob.compute_hash()

    def add_manifest(self, manifest: VersionManifest) -> str:
        manifest_hash = manifest.compute_hash()
        self.manifests[manifest_hash] = manifest
        return manifest_hash

    def is_empty(self) -> bool:
        return not self.blobs and not self.manifests

    def __len__(self) -> int:
        return len(self.blobs) + len(self.manifests)


class ObjectStore:
    """
    Content-addressed object store with immutable objects.

    Objects are stored by their content hash.
    Once written, objects never change.
    """

    def __init__(self, layout: StorageLayout, verify_reads: bool = True):
        """Initialize object store with given layout."""
        self.layout = layout
        self.verify_reads = verify_reads

    def put(self, data: bytes) -> str:
        """
        Store raw bytes and return their hash.

        Write-if-absent: putting identical bytes twice returns the
        same hash and stores one object.
        """
        blob = Blob(data)
        self._write_if_absent(blob.compute_hash(), blob.data)
        return blob.compute_hash()

    def get(self, obj_hash: str, verify: Optional[bool] = None) -> bytes:
        """
        Retrieve an object's bytes by hash.

        Raises ObjectNotFoundError if object doesn't exist.
        Raises ObjectCorruptedError if verification fails.
        """
        obj_path = self.layout.get_object_path(obj_hash)

        if not obj_path.exists():
            raise ObjectNotFoundError(obj_hash)

        data = self._read_object_file(obj_path)

        if self.verify_reads if verify is None else verify:
            actual = compute_hash(data)
            if actual != obj_hash:
                raise ObjectCorruptedError(obj_hash, obj_hash, actual)

        return data

    def has(self, obj_hash: str) -> bool:
        """Check if an object exists in the store."""
        return self.layout.object_exists(obj_hash)

    def put_manifest_object(self, manifest: VersionManifest) -> str:
        """
        Store a manifest object.

        Raises ReferenceMissingError if any referenced blob is absent,
        so a stored manifest always has its blobs.
        """
        label = format_versioned(manifest.component_id, manifest.version)
        for blob_hash in manifest.blob_hashes():
            if not self.has(blob_hash):
                raise ReferenceMissingError(label, blob_hash)

        manifest_hash = manifest.compute_hash()
        self._write_if_absent(manifest_hash, manifest.to_bytes())
        return manifest_hash

    def get_manifest_object(self, manifest_hash: str, verify: Optional[bool] = None) -> VersionManifest:
        """
        Load a manifest object by hash.

        Raises InvalidObjectError if the object is not a manifest.
        """
        data = self.get(manifest_hash, verify=verify)
        try:
            return VersionManifest.from_dict(load_canonical(data))
        except (ValueError, KeyError, TypeError) as e:
            raise InvalidObjectError(str(e), manifest_hash)

    def write_batch(self, batch: WriteBatch) -> List[str]:
        """
        Write a batch: every blob first, then every manifest.

        A crash in between leaves only unreferenced blobs behind.
        Returns hashes of manifests written.
        """
        for blob_hash, data in batch.blobs.items():
            self._write_if_absent(blob_hash, data)

        written = []
        for manifest in batch.manifests.values():
            written.append(self.put_manifest_object(manifest))

        _LOGGER.debug(
            "batch_written",
            store=str(self.layout.store_root),
            blobs=len(batch.blobs),
            manifests=len(batch.manifests),
        )
        return written

    def delete(self, obj_hash: str) -> bool:
        """
        Delete an object from the store.

        This is used by garbage collection.
        Use with extreme caution - only delete unreachable objects.

        Returns True if deleted, False if didn't exist.
        """
        obj_path = self.layout.get_object_path(obj_hash)

        if not obj_path.exists():
            return False

        try:
            obj_path.unlink()
            return True
        except OSError as e:
            raise StorageError("delete_object", str(obj_path), e)

    def list_all_objects(self) -> List[str]:
        """List all object hashes in the store."""
        return self.layout.list_all_objects()

    def get_stats(self) -> dict:
        """Get storage statistics."""
        return self.layout.get_storage_stats()

    def _write_if_absent(self, obj_hash: str, data: bytes) -> bool:
        obj_path = self.layout.get_object_path(obj_hash)
        if obj_path.exists():
            return False

        self.layout.ensure_object_directory(obj_hash)
        self._write_object_atomic(obj_path, data)
        _LOGGER.debug("object_stored", hash=obj_hash, size=len(data))
        return True

    def _read_object_file(self, path: Path) -> bytes:
        """Read object file contents."""
        try:
            return path.read_bytes()
        except OSError as e:
            raise StorageError("read_file", str(path), e)

    def _write_object_atomic(self, path: Path, data: bytes) -> None:
        """
        Write object file atomically.

        Uses temp file + rename for atomicity. Concurrent writers of the
        same hash write identical bytes, so the last rename wins harmlessly.
        """
        fd = None
        temp_path = None
        try:
            fd, temp_path = tempfile.mkstemp(
                dir=str(path.parent),
                prefix='.tmp_',
            )

            with os.fdopen(fd, 'wb') as handle:
                fd = None
                handle.write(data)
                handle.flush()
                os.fsync(handle.fileno())

            os.replace(temp_path, path)
            temp_path = None

        except OSError as e:
            if fd is not None:
                os.close(fd)
            if temp_path is not None and os.path.exists(temp_path):
                os.unlink(temp_path)
            raise StorageError("write_file", str(path), e)
