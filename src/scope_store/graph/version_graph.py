"""
Per-component version history of a scope.

Each component has an index file mapping version -> manifest hash.
The index is the last thing written by a commit, so an indexed
version always has its manifest and blobs in the object store.
"""

from contextlib import contextmanager
from typing import Dict, Iterable, Iterator, List, Optional
import copy
import json
import os
import tempfile
import threading
import weakref

from ..errors import (
    InvalidObjectError,
    NonMonotonicVersionError,
    StorageError,
    VersionConflictError,
)
from ..integrity.canonical import canonical_json
from ..logging_config import get_logger
from ..model.component_id import ComponentId
from ..model.version import Version
from ..storage.layout import StorageLayout

_LOGGER = get_logger(__name__)

# index path -> lock; an entry lives only while some caller holds its lock
_LOCKS = weakref.WeakValueDictionary()
_LOCKS_GUARD = threading.Lock()


def _component_lock(path_key: str) -> threading.Lock:
    with _LOCKS_GUARD:
        lock = _LOCKS.get(path_key)
        if lock is None:
            lock = threading.Lock()
            _LOCKS[path_key] = lock
        return lock


class VersionGraph:
    """
    Ordered version history of every component in one scope.

    A scope owns the canonical history of components bound to it
    (component scope equals the scope name). Appends to an owned
    component must be strictly increasing.
    """

    def __init__(self, layout: StorageLayout, scope_name: Optional[str]):
        self.layout = layout
        self.scope_name = scope_name

    def owns(self, component_id: ComponentId) -> bool:
        """Check whether this scope holds the canonical history of a component."""
        return component_id.scope == self.scope_name

    # ========== Queries ==========

    def all_versions(self, component_id: ComponentId) -> List[Version]:
        """All versions of a component, ascending."""
        record = self._read_index(component_id)
        return sorted(Version.parse(v) for v in record['versions'])

    def latest_version(self, component_id: ComponentId) -> Optional[Version]:
        versions = self.all_versions(component_id)
        return versions[-1] if versions else None

    def get_hash(self, component_id: ComponentId, version: Version) -> Optional[str]:
        """Manifest hash of a version, or None if not indexed."""
        record = self._read_index(component_id)
        return record['versions'].get(str(version))

    def has_version(self, component_id: ComponentId, version: Version) -> bool:
        return self.get_hash(component_id, version) is not None

    def list_components(self) -> List[ComponentId]:
        """Every component with at least one indexed version."""
        components = []
        for path in self.layout.list_index_files():
            record = self._read_index_file(path)
            if record.get('versions'):
                components.append(ComponentId.from_dict(record['id']))
        return sorted(components)

    def all_manifest_hashes(self) -> Dict[ComponentId, Dict[Version, str]]:
        """Full index: component -> version -> manifest hash."""
        result = {}
        for component_id in self.list_components():
            record = self._read_index(component_id)
            result[component_id] = {
                Version.parse(v): h for v, h in record['versions'].items()
            }
        return result

    def exported_versions(self, component_id: ComponentId) -> List[Version]:
        """Versions recorded as durable in a remote scope."""
        record = self._read_index(component_id)
        return sorted(Version.parse(v) for v in record.get('exported', []))

    # ========== Appends ==========

    def check_append(self, component_id: ComponentId, version: Version, manifest_hash: str) -> bool:
        """
        Validate an append without writing.

        Returns True if the append would write, False if it is a no-op
        because the identical manifest is already indexed.

        Raises VersionConflictError if the version holds different content.
        Raises NonMonotonicVersionError if an owned component would not grow.
        """
        record = self._read_index(component_id)
        return self._check(component_id, version, manifest_hash, record)

    def append(self, component_id: ComponentId, version: Version, manifest_hash: str) -> bool:
        """
        Append a version to a component's history.

        Idempotent for identical content. Returns True if written.
        """
        with self.lock(component_id):
            return self._append_locked(component_id, version, manifest_hash)

    def append_many(self, entries: Iterable[tuple]) -> List[tuple]:
        """
        Append (component_id, version, manifest_hash) entries in order.

        Per-component locks are taken up front in sorted order, every
        entry is validated, and only then are index files written.
        If an index write fails, every index already rewritten is put
        back, so the batch is either fully indexed or not at all.
        Returns the entries that were actually written.
        """
        entries = list(entries)
        component_ids = sorted({entry[0] for entry in entries})
        with self.lock_many(component_ids):
            records = {cid: self._read_index(cid) for cid in component_ids}
            previous = self._snapshot(records)
            pending = []
            for component_id, version, manifest_hash in entries:
                record = records[component_id]
                if self._check(component_id, version, manifest_hash, record):
                    record['versions'][str(version)] = manifest_hash
                    pending.append((component_id, version, manifest_hash))

            written_ids = []
            for component_id, version, manifest_hash in pending:
                if component_id not in written_ids:
                    written_ids.append(component_id)
            self._write_all(written_ids, records, previous)

        for component_id, version, manifest_hash in pending:
            _LOGGER.info(
                "version_appended",
                scope=self.scope_name,
                component=str(component_id),
                version=str(version),
                manifest=manifest_hash,
            )
        return pending

    def mark_exported(self, component_id: ComponentId, versions: Iterable[Version]) -> None:
        """Record versions as durable in a remote scope."""
        with self.lock(component_id):
            record = self._read_index(component_id)
            exported = {Version.parse(v) for v in record.get('exported', [])}
            exported.update(versions)
            record['exported'] = [str(v) for v in sorted(exported)]
            self._write_index(component_id, record)

    def promote(self, entries: Iterable[tuple], exported: Iterable[tuple] = ()) -> None:
        """
        Replace local drafts with their exported form.

        Used by a local scope after an export: an unexported version may
        be rewritten with its bound manifest (identity and origin set).
        Keys in exported are marked remote-durable.

        Raises VersionConflictError if a version that is already
        remote-durable would change.
        """
        entries = list(entries)
        exported = set(exported)
        component_ids = sorted({entry[0] for entry in entries})
        with self.lock_many(component_ids):
            records = {cid: self._read_index(cid) for cid in component_ids}
            previous = self._snapshot(records)
            for component_id, version, manifest_hash in entries:
                record = records[component_id]
                durable = set(record.get('exported', []))
                existing = record['versions'].get(str(version))
                if existing not in (None, manifest_hash) and str(version) in durable:
                    raise VersionConflictError(str(component_id), str(version), existing, manifest_hash)
                record['versions'][str(version)] = manifest_hash
                if (component_id, version) in exported:
                    durable.add(str(version))
                record['exported'] = sorted(durable, key=Version.parse)
            self._write_all(component_ids, records, previous)

    def remove_component(self, component_id: ComponentId) -> bool:
        """
        Drop a component's index file.

        Only used to move a local, unbound component to its bound id.
        """
        path = self.layout.get_index_path(component_id)
        with self.lock(component_id):
            if not path.exists():
                return False
            try:
                path.unlink()
            except OSError as e:
                raise StorageError("remove_index", str(path), e)
        return True

    # ========== Locking ==========

    @contextmanager
    def lock(self, component_id: ComponentId) -> Iterator[None]:
        """Hold the append lock of one component."""
        lock = _component_lock(str(self.layout.get_index_path(component_id)))
        with lock:
            yield

    @contextmanager
    def lock_many(self, component_ids: List[ComponentId]) -> Iterator[None]:
        """Hold the append locks of several components, acquired in sorted order."""
        locks = [
            _component_lock(str(self.layout.get_index_path(cid)))
            for cid in sorted(set(component_ids))
        ]
        acquired = []
        try:
            for lock in locks:
                lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()

    # ========== Internals ==========

    def _check(self, component_id: ComponentId, version: Version, manifest_hash: str, record: dict) -> bool:
        existing = record['versions'].get(str(version))
        if existing is not None:
            if existing == manifest_hash:
                return False
            raise VersionConflictError(str(component_id), str(version), existing, manifest_hash)

        if self.owns(component_id) and record['versions']:
            latest = max(Version.parse(v) for v in record['versions'])
            if version <= latest:
                raise NonMonotonicVersionError(str(component_id), str(version), str(latest))
        return True

    def _append_locked(self, component_id: ComponentId, version: Version, manifest_hash: str) -> bool:
        record = self._read_index(component_id)
        if not self._check(component_id, version, manifest_hash, record):
            return False
        record['versions'][str(version)] = manifest_hash
        self._write_index(component_id, record)
        _LOGGER.info(
            "version_appended",
            scope=self.scope_name,
            component=str(component_id),
            version=str(version),
            manifest=manifest_hash,
        )
        return True

    def _snapshot(self, records: Dict[ComponentId, dict]) -> Dict[ComponentId, Optional[dict]]:
        """Copies of records as they are on disk; None where no index exists yet."""
        return {
            cid: copy.deepcopy(record) if self.layout.get_index_path(cid).exists() else None
            for cid, record in records.items()
        }

    def _write_all(
        self,
        component_ids: List[ComponentId],
        records: Dict[ComponentId, dict],
        previous: Dict[ComponentId, Optional[dict]],
    ) -> None:
        """
        Write several index records as one unit.

        On failure the indexes touched so far are restored from previous
        before the error propagates. Callers hold every component's lock.
        """
        touched = []
        try:
            for component_id in component_ids:
                touched.append(component_id)
                self._write_index(component_id, records[component_id])
        except Exception:
            for component_id in reversed(touched):
                try:
                    self._restore_index(component_id, previous[component_id])
                except StorageError as e:
                    _LOGGER.error(
                        "index_rollback_failed",
                        scope=self.scope_name,
                        component=str(component_id),
                        error=str(e),
                    )
            _LOGGER.warning(
                "index_batch_rolled_back",
                scope=self.scope_name,
                components=[str(cid) for cid in touched],
            )
            raise

    def _restore_index(self, component_id: ComponentId, record: Optional[dict]) -> None:
        if record is not None:
            self._write_index(component_id, record)
            return
        path = self.layout.get_index_path(component_id)
        try:
            if path.exists():
                path.unlink()
        except OSError as e:
            raise StorageError("remove_index", str(path), e)

    def _read_index(self, component_id: ComponentId) -> dict:
        path = self.layout.get_index_path(component_id)
        if not path.exists():
            return {'id': component_id.to_dict(), 'versions': {}}
        return self._read_index_file(path)

    def _read_index_file(self, path) -> dict:
        try:
            record = json.loads(path.read_text(encoding='utf-8'))
        except OSError as e:
            raise StorageError("read_index", str(path), e)
        except json.JSONDecodeError as e:
            raise InvalidObjectError(f"index file {path} is not valid JSON: {e.msg}")
        if not isinstance(record, dict) or not isinstance(record.get('versions'), dict):
            raise InvalidObjectError(f"index file {path} has no versions mapping")
        return record

    def _write_index(self, component_id: ComponentId, record: dict) -> None:
        path = self.layout.get_index_path(component_id)
        temp_path = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, temp_path = tempfile.mkstemp(dir=str(path.parent), prefix='.tmp_')
            with os.fdopen(fd, 'wb') as handle:
                handle.write(canonical_json(record))
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(temp_path, path)
            temp_path = None
        except OSError as e:
            raise StorageError("write_index", str(path), e)
        finally:
            if temp_path is not None and os.path.exists(temp_path):
                os.unlink(temp_path)
