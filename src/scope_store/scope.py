"""
Scope: one object store plus its version graph.

Scopes are plain instances, so several of them can coexist in one
process. A local workspace scope has no name; remote scopes do.
"""

from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple, Union
import json
import threading
import weakref

from .config import ScopeStoreConfig
from .errors import (
    InvalidComponentIdError,
    ManifestNotFoundError,
    ObjectCorruptedError,
    ScopeStoreError,
    StorageError,
    TamperDetectedError,
)
from .graph.version_graph import VersionGraph
from .integrity.canonical import canonical_json
from .integrity.hashing import compute_hash
from .logging_config import get_logger
from .model.component_id import ComponentId, format_versioned
from .model.manifest import Dependency, VersionKey, VersionManifest
from .model.version import Version
from .storage.layout import StorageLayout
from .storage.object_store import ObjectStore, WriteBatch

_LOGGER = get_logger(__name__)

# store root -> lock; kept alive by the Scope instances that use it
_GC_LOCKS = weakref.WeakValueDictionary()
_GC_LOCKS_GUARD = threading.Lock()


def _store_lock(store_root: Path) -> threading.RLock:
    key = str(store_root)
    with _GC_LOCKS_GUARD:
        lock = _GC_LOCKS.get(key)
        if lock is None:
            lock = threading.RLock()
            _GC_LOCKS[key] = lock
        return lock


class Scope:
    """
    An independent object store and version-graph authority.

    A scope knows only what was pushed into it or fetched through it.
    """

    def __init__(self, store_path: Union[str, Path], name: Optional[str] = None, config: Optional[ScopeStoreConfig] = None):
        """
        Initialize a scope at a path.

        Args:
            store_path: filesystem path of the scope
            name: scope name, None for a local workspace scope
            config: runtime configuration
        """
        self.config = config or ScopeStoreConfig()
        self.layout = StorageLayout(Path(store_path))
        self.name = name
        self.object_store = ObjectStore(self.layout, verify_reads=self.config.verify_reads)
        self.version_graph = VersionGraph(self.layout, name)
        self._commit_lock = _store_lock(self.layout.store_root)

    @classmethod
    def create(cls, store_path: Union[str, Path], name: Optional[str] = None, config: Optional[ScopeStoreConfig] = None) -> 'Scope':
        """Create and initialize a scope, recording its name on disk."""
        scope = cls(store_path, name, config)
        scope.initialize()
        return scope

    @classmethod
    def open(cls, store_path: Union[str, Path], config: Optional[ScopeStoreConfig] = None) -> 'Scope':
        """
        Open an existing scope, reading its name from scope.json.

        Raises StorageError if the path is not an initialized scope.
        """
        layout = StorageLayout(Path(store_path))
        if not layout.scope_file.exists():
            raise StorageError("open_scope", str(layout.store_root))
        try:
            record = json.loads(layout.scope_file.read_text(encoding='utf-8'))
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError("open_scope", str(layout.scope_file), e)
        return cls(store_path, record.get('name'), config)

    def initialize(self) -> None:
        """
        Create the directory structure and scope record.

        Safe to call multiple times.
        """
        self.layout.initialize()
        if not self.layout.scope_file.exists():
            try:
                self.layout.scope_file.write_bytes(canonical_json({'name': self.name}))
            except OSError as e:
                raise StorageError("write_scope", str(self.layout.scope_file), e)

    @property
    def is_local(self) -> bool:
        return self.name is None

    # ========== Object Store ==========

    def put(self, data: bytes) -> str:
        """Store blob bytes and return their hash (idempotent)."""
        return self.object_store.put(data)

    def get(self, blob_hash: str) -> bytes:
        """Retrieve blob bytes by hash."""
        return self.object_store.get(blob_hash)

    def put_manifest(self, manifest: VersionManifest) -> bool:
        """
        Store a manifest and index it.

        All referenced blobs must already be present.
        Returns True if the version graph was extended.
        """
        with self._commit_lock:
            manifest_hash = self.object_store.put_manifest_object(manifest)
            return self.version_graph.append(manifest.component_id, manifest.version, manifest_hash)

    def has_manifest(self, component_id: ComponentId, version: Version) -> bool:
        return self.version_graph.has_version(component_id, Version.parse(version))

    def manifest_hash(self, component_id: ComponentId, version: Version) -> Optional[str]:
        return self.version_graph.get_hash(component_id, Version.parse(version))

    def get_manifest(self, component_id: ComponentId, version: Version) -> VersionManifest:
        """
        Load the manifest of a component version.

        Raises ManifestNotFoundError if the scope does not hold it.
        """
        version = Version.parse(version)
        manifest_hash = self.version_graph.get_hash(component_id, version)
        if manifest_hash is None:
            raise ManifestNotFoundError(str(component_id), str(version), self.name)
        return self.object_store.get_manifest_object(manifest_hash)

    def latest_version(self, component_id: ComponentId) -> Optional[Version]:
        return self.version_graph.latest_version(component_id)

    def all_versions(self, component_id: ComponentId) -> List[Version]:
        return self.version_graph.all_versions(component_id)

    def apply_batch(self, blobs: Dict[str, bytes], manifests: Iterable[VersionManifest]) -> List[VersionKey]:
        """
        Commit a batch of blobs and manifests.

        Order: validate, write blobs, write manifests, extend the
        version graph. Validation failures write nothing.

        Returns the version keys that were newly indexed.
        """
        manifests = dependency_order(manifests)

        batch = WriteBatch()
        for blob_hash, data in blobs.items():
            actual = compute_hash(data)
            if actual != blob_hash:
                raise ObjectCorruptedError(blob_hash, blob_hash, actual)
            batch.add_blob(data)
        for manifest in manifests:
            batch.add_manifest(manifest)

        with self._commit_lock:
            entries = []
            for manifest in manifests:
                manifest_hash = manifest.compute_hash()
                self.version_graph.check_append(manifest.component_id, manifest.version, manifest_hash)
                entries.append((manifest.component_id, manifest.version, manifest_hash))

            self.object_store.write_batch(batch)
            written = self.version_graph.append_many(entries)

        committed = [(cid, version) for cid, version, _ in written]
        _LOGGER.info(
            "batch_committed",
            scope=self.name,
            blobs=len(blobs),
            manifests=len(manifests),
            indexed=len(committed),
        )
        return committed

    # ========== Local commits ==========

    def commit(
        self,
        component: Union[str, ComponentId],
        files: Dict[str, bytes],
        dependencies: Optional[Iterable[Union[str, Dependency]]] = None,
        main_file: Optional[str] = None,
        version: Optional[Union[str, Version]] = None,
        force: bool = False,
    ) -> Optional[VersionManifest]:
        """
        Commit a new version of a component into this scope.

        Args:
            component: component id, e.g. 'bar/foo'
            files: relative path -> file bytes
            dependencies: pinned dependencies, Dependency or 'id@version'
            main_file: optional main file path
            version: explicit version; defaults to the next patch version
            force: commit even when content is unchanged

        Returns:
            The new manifest, or None when nothing changed and force is off.
        """
        if not files:
            raise ScopeStoreError("A component version needs at least one file")

        with self._commit_lock:
            component_id = self._commit_target(component)
            latest = self.latest_version(component_id)
            file_hashes = {path: self.put(data) for path, data in files.items()}
            pins = [self._pin(dep) for dep in (dependencies or [])]

            if latest is not None and not force:
                previous = self.get_manifest(component_id, latest)
                if (
                    previous.files == file_hashes
                    and set(previous.dependencies) == set(pins)
                    and previous.main_file == main_file
                ):
                    _LOGGER.info("nothing_to_commit", component=str(component_id), version=str(latest))
                    return None

            if version is not None:
                new_version = Version.parse(version)
            elif latest is not None:
                new_version = latest.bump_patch()
            else:
                new_version = Version.first()

            manifest = VersionManifest(
                component_id=component_id,
                version=new_version,
                files=file_hashes,
                dependencies=pins,
                main_file=main_file,
            )
            self.put_manifest(manifest)

        _LOGGER.info(
            "component_committed",
            scope=self.name,
            component=str(component_id),
            version=str(new_version),
            files=len(files),
            dependencies=len(pins),
        )
        return manifest

    def read_files(self, component_id: ComponentId, version: Version) -> Dict[str, bytes]:
        """Return the exact bytes of every file of a component version."""
        manifest = self.get_manifest(component_id, version)
        return {path: self.get(blob_hash) for path, blob_hash in manifest.files.items()}

    # ========== Identity and bindings ==========

    def list_components(self) -> List[Tuple[ComponentId, Version]]:
        """Every component with its latest version."""
        result = []
        for component_id in self.version_graph.list_components():
            result.append((component_id, self.version_graph.latest_version(component_id)))
        return result

    def resolve_id(self, text: Union[str, ComponentId]) -> ComponentId:
        """
        Find the component a user-supplied id refers to.

        Raises ManifestNotFoundError if nothing matches and
        InvalidComponentIdError if the id is ambiguous.
        """
        query = text if isinstance(text, ComponentId) else ComponentId.parse(text)
        matches = [cid for cid in self.version_graph.list_components() if cid.matches(query)]
        if not matches:
            raise ManifestNotFoundError(str(query), 'latest', self.name)
        if len(matches) > 1:
            raise InvalidComponentIdError(
                f"'{query}' is ambiguous: " + ', '.join(str(m) for m in matches)
            )
        return matches[0]

    def staged(self) -> List[VersionKey]:
        """Local versions not yet durable in any remote scope."""
        staged = []
        for component_id in self.version_graph.list_components():
            exported = set(self.version_graph.exported_versions(component_id))
            for version in self.version_graph.all_versions(component_id):
                if version not in exported:
                    staged.append((component_id, version))
        return staged

    def staged_versions(self, component_id: ComponentId) -> List[Version]:
        return [v for cid, v in self.staged() if cid == component_id]

    def bindings(self) -> Dict[str, str]:
        """Recorded scope bindings: 'namespace/name' -> scope name."""
        path = self.layout.bindings_file
        if not path.exists():
            return {}
        try:
            return json.loads(path.read_text(encoding='utf-8'))
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError("read_bindings", str(path), e)

    def bind_id(self, component_id: ComponentId) -> ComponentId:
        """Apply the recorded binding, if any, to an unbound id."""
        if component_id.is_bound:
            return component_id
        scope_name = self.bindings().get(component_id.local_name())
        return component_id.with_scope(scope_name) if scope_name else component_id

    def record_export(self, exported: Iterable[VersionManifest], bindings: Dict[ComponentId, ComponentId]) -> None:
        """
        Persist the outcome of a successful export in this local scope.

        Unbound components named in bindings move to their bound id,
        and every exported version is marked remote-durable.
        """
        exported = list(exported)
        by_key = {m.key: m for m in exported}
        binding_names = {old.local_name(): new.scope for old, new in bindings.items()}

        with self._commit_lock:
            all_bindings = self.bindings()
            all_bindings.update(binding_names)
            self._write_bindings(all_bindings)

            def rebind_dep(dep: Dependency) -> Dependency:
                return Dependency(self.bind_id(dep.component_id), dep.version)

            moved = []
            for old_id, new_id in sorted(bindings.items()):
                for version in self.version_graph.all_versions(old_id):
                    if (new_id, version) in by_key:
                        continue
                    draft = self.get_manifest(old_id, version)
                    moved.append(draft.rebind(
                        new_id,
                        [rebind_dep(d) for d in draft.dependencies],
                        draft.origin_scope,
                    ))

            batch = _batch_of(moved + exported)
            if not batch.is_empty():
                self.object_store.write_batch(batch)
            entries = [(m.component_id, m.version, m.compute_hash()) for m in dependency_order(moved + exported)]
            self.version_graph.promote(entries, exported=set(by_key))

            for old_id in bindings:
                self.version_graph.remove_component(old_id)

        _LOGGER.info(
            "export_recorded",
            versions=len(exported),
            bound=[str(new) for new in bindings.values()],
        )

    def _commit_target(self, component: Union[str, ComponentId]) -> ComponentId:
        query = component if isinstance(component, ComponentId) else ComponentId.parse(component)
        try:
            return self.resolve_id(query)
        except ManifestNotFoundError:
            return self.bind_id(query)

    def _pin(self, dependency: Union[str, Dependency]) -> Dependency:
        if isinstance(dependency, Dependency):
            return dependency
        component_id, version = ComponentId.parse_versioned(dependency)
        if version is None:
            raise InvalidComponentIdError(f"dependency '{dependency}' must pin an exact version")
        try:
            component_id = self.resolve_id(component_id)
        except ManifestNotFoundError:
            component_id = self.bind_id(component_id)
        return Dependency(component_id, version)

    def _write_bindings(self, bindings: Dict[str, str]) -> None:
        try:
            self.layout.bindings_file.write_bytes(canonical_json(bindings))
        except OSError as e:
            raise StorageError("write_bindings", str(self.layout.bindings_file), e)

    # ========== Maintenance ==========

    def verify(self, strict: bool = False) -> dict:
        """
        Verify every indexed manifest and the blobs it references.

        With strict, a failed verification raises TamperDetectedError
        instead of only being reported.
        """
        from .integrity.verification import verify_scope
        result = verify_scope(self)
        if strict and not result['valid']:
            raise TamperDetectedError("; ".join(result['errors']))
        return result

    def detect_tampering(self) -> dict:
        """Re-hash every stored object, indexed or not."""
        from .integrity.verification import detect_tampering
        return detect_tampering(self)

    def garbage_collect(self, dry_run: bool = False) -> dict:
        """Remove objects no indexed manifest reaches."""
        from .storage.gc import GarbageCollector
        with self._commit_lock:
            return GarbageCollector(self).collect(dry_run=dry_run)

    def get_statistics(self) -> dict:
        return self.object_store.get_stats()

    def __repr__(self) -> str:
        return f"Scope(name={self.name}, path={self.layout.store_root})"


def _batch_of(manifests: Iterable[VersionManifest]) -> WriteBatch:
    batch = WriteBatch()
    for manifest in manifests:
        batch.add_manifest(manifest)
    return batch


def dependency_order(manifests: Iterable[VersionManifest]) -> List[VersionManifest]:
    """
    Order manifests so that in-batch dependencies come first.

    Versions of one component stay ascending. Appending in this order
    means an indexed manifest never pins an unindexed in-batch version.
    """
    by_key = {}
    for manifest in manifests:
        by_key[manifest.key] = manifest

    ordered = []
    placed = set()
    for key in sorted(by_key, key=lambda k: (k[0], k[1])):
        stack = [(key, False)]
        while stack:
            current, expanded = stack.pop()
            if current in placed:
                continue
            if expanded:
                placed.add(current)
                ordered.append(by_key[current])
                continue
            stack.append((current, True))
            for dep_key in reversed(by_key[current].dependency_keys()):
                if dep_key in by_key and dep_key not in placed:
                    stack.append((dep_key, False))
    return ordered


def format_listing(entries: List[Tuple[ComponentId, Version]], scope_name: Optional[str] = None) -> str:
    """Render a scope listing, one 'id@version' per line."""
    where = f" in {scope_name}" if scope_name else " in local scope"
    lines = [f"found {len(entries)} components{where}"]
    for component_id, version in entries:
        lines.append(format_versioned(component_id, version))
    return '\n'.join(lines)
