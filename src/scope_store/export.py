"""
Export transaction.

Moves locally committed component versions, together with their
full dependency closure, into a target scope in one atomic step.

States:
    COLLECTING -> RESOLVING -> FETCHING -> VALIDATING -> COMMITTING -> DONE
    any state except DONE -> ABORTED
"""

from enum import Enum
from typing import Dict, Iterable, List, Optional, Union

from .config import ScopeStoreConfig
from .errors import (
    AlreadyExportedError,
    ExportNotRecordedError,
    ManifestNotFoundError,
    NonMonotonicVersionError,
    ScopeStoreError,
    VersionConflictError,
)
from .logging_config import get_logger
from .model.component_id import ComponentId
from .model.manifest import Dependency, VersionKey, VersionManifest
from .resolution.closure import Closure, ClosureResolver
from .resolution.source_locator import LOCAL_SOURCE, SourceLocator
from .scope import Scope
from .transport import RemoteRegistry, ScopeChannel

_LOGGER = get_logger(__name__)


class ExportState(Enum):
    COLLECTING = 'collecting'
    RESOLVING = 'resolving'
    FETCHING = 'fetching'
    VALIDATING = 'validating'
    COMMITTING = 'committing'
    DONE = 'done'
    ABORTED = 'aborted'


class ExportResult:
    """
    Outcome of a successful export.

    Attributes:
        scope_name: target scope
        exported: root versions requested by the caller
        committed: every version of the roots' closure, all present in
            the target once the export is done (dependencies the target
            already held included)
        indexed: the part of committed this export wrote; the rest was
            already there or indexed first by a concurrent export
        bindings: local unbound id -> id bound by this export
        nothing_to_export: True when there was nothing staged
    """

    def __init__(
        self,
        scope_name: str,
        exported: Optional[List[VersionKey]] = None,
        committed: Optional[List[VersionKey]] = None,
        bindings: Optional[Dict[ComponentId, ComponentId]] = None,
        nothing_to_export: bool = False,
        indexed: Optional[List[VersionKey]] = None,
    ):
        self.scope_name = scope_name
        self.exported = exported or []
        self.committed = committed or []
        self.indexed = indexed or []
        self.bindings = bindings or {}
        self.nothing_to_export = nothing_to_export

    @classmethod
    def nothing(cls, scope_name: str) -> 'ExportResult':
        return cls(scope_name, nothing_to_export=True)

    @property
    def component_count(self) -> int:
        return len({component_id for component_id, _ in self.exported})

    def summary(self) -> str:
        """One-line outcome, as a command would print it."""
        if self.nothing_to_export:
            return "nothing to export"
        return f"exported {self.component_count} components to scope {self.scope_name}"

    def __repr__(self) -> str:
        return f"ExportResult({self.summary()}, committed={len(self.committed)})"


class ExportTransaction:
    """
    One export of local component versions to a target scope.

    Nothing is written to the target before COMMITTING, so a failure
    in any earlier state leaves the target unchanged and the export
    can be retried as a whole.
    """

    def __init__(
        self,
        local: Scope,
        target: str,
        registry: RemoteRegistry,
        ids: Optional[Iterable[Union[str, ComponentId]]] = None,
        config: Optional[ScopeStoreConfig] = None,
    ):
        """
        Args:
            local: the workspace's local scope
            target: name of the destination scope
            registry: known remote scopes
            ids: components to export ('id' or 'id@version');
                None exports everything staged
            config: runtime configuration
        """
        self.local = local
        self.target = target
        self.registry = registry
        self.ids = None if ids is None else list(ids)
        self.config = config or local.config

        self.state = ExportState.COLLECTING
        self.history = [ExportState.COLLECTING]
        self.closure: Optional[Closure] = None
        self._channel: Optional[ScopeChannel] = None
        self._bindings: Dict[ComponentId, ComponentId] = {}
        self._local_manifests: List[VersionManifest] = []
        self.result: Optional[ExportResult] = None

    def run(self) -> ExportResult:
        """
        Run the transaction to completion.

        Raises the ScopeStoreError that aborted it, if any. Raises
        ExportNotRecordedError when the target committed but the local
        scope could not record it; see record_local().
        """
        if self.state is not ExportState.COLLECTING:
            raise ScopeStoreError(f"export transaction already ran (state: {self.state.value})")

        locator = None
        try:
            local_roots = self._collect()
            if not local_roots:
                self._transition(ExportState.DONE)
                _LOGGER.info("nothing_to_export", target=self.target)
                return ExportResult.nothing(self.target)

            channel = self.registry.connect(self.target)
            self._channel = channel
            self._bindings = self._plan_bindings(local_roots)
            roots = [(self._bind(cid), version) for cid, version in local_roots]

            self._transition(ExportState.RESOLVING)
            locator = SourceLocator(
                self.registry,
                local_lookup=self._local_lookup,
                local_blobs=self.local.get,
                config=self.config,
                exclude={self.target},
            )
            resolver = ClosureResolver(
                target_hash=lambda key: channel.list_manifest(key[0], key[1]),
                load_manifests=locator.locate_many,
            )
            self.closure = resolver.resolve(roots)

            self._transition(ExportState.FETCHING)
            blobs = locator.fetch_blobs(list(self.closure.missing), skip=channel.has_blob)

            self._transition(ExportState.VALIDATING)
            self._validate(self.closure)

            self._transition(ExportState.COMMITTING)
            indexed = channel.push_batch(blobs, list(self.closure.missing.values()))
            self._transition(ExportState.DONE)
        except ScopeStoreError as e:
            aborted_in = self.state
            self._transition(ExportState.ABORTED)
            _LOGGER.warning(
                "export_aborted",
                target=self.target,
                state=aborted_in.value,
                error_type=type(e).__name__,
                error=str(e),
            )
            raise
        finally:
            if locator is not None:
                locator.close()

        self._local_manifests = [
            manifest for key, manifest in self.closure.missing.items()
            if locator.source_of(key) == LOCAL_SOURCE
        ]
        self.result = ExportResult(
            self.target,
            exported=roots,
            committed=self.closure.all_keys(),
            indexed=indexed,
            bindings=dict(self._bindings),
        )
        _LOGGER.info(
            "export_committed",
            target=self.target,
            components=self.result.component_count,
            indexed=len(indexed),
            fetched_from=locator.consulted,
        )
        self.record_local()
        return self.result

    def record_local(self) -> None:
        """
        Record a committed export in the local scope.

        run() calls this once the target holds the export. When it fails
        there, run() raises ExportNotRecordedError and the transaction
        stays DONE; calling record_local() again completes the record.
        """
        if self.result is None:
            raise ScopeStoreError(f"export transaction has not committed (state: {self.state.value})")
        try:
            self.local.record_export(self._local_manifests, self._bindings)
        except ScopeStoreError as e:
            _LOGGER.error(
                "export_not_recorded",
                target=self.target,
                error_type=type(e).__name__,
                error=str(e),
            )
            raise ExportNotRecordedError(self.target, self.result, e) from e

    # ========== Collecting ==========

    def _collect(self) -> List[VersionKey]:
        """Local version keys to export."""
        if self.ids is None:
            return self.local.staged()

        keys = []
        for item in self.ids:
            if isinstance(item, ComponentId):
                query, version = item, None
            else:
                query, version = ComponentId.parse_versioned(item)
            component_id = self.local.resolve_id(query)

            if version is not None:
                if not self.local.has_manifest(component_id, version):
                    raise ManifestNotFoundError(str(component_id), str(version))
                keys.append((component_id, version))
                continue

            staged = self.local.staged_versions(component_id)
            if staged:
                keys.extend((component_id, v) for v in staged)
            else:
                # re-exporting an exported version is reported in VALIDATING
                keys.append((component_id, self.local.latest_version(component_id)))

        return list(dict.fromkeys(keys))

    def _plan_bindings(self, local_roots: List[VersionKey]) -> Dict[ComponentId, ComponentId]:
        """
        Decide the binding of every unbound component this export touches.

        Only local manifests can pin unbound components, so the walk
        follows unbound pins through the local scope.
        """
        bindings = {}
        visited = set()
        queue = [key for key in local_roots if not key[0].is_bound]
        while queue:
            component_id, version = queue.pop()
            if (component_id, version) in visited:
                continue
            visited.add((component_id, version))

            if component_id not in bindings:
                bound = self.local.bind_id(component_id)
                bindings[component_id] = bound if bound.is_bound else component_id.with_scope(self.target)

            if not self.local.has_manifest(component_id, version):
                continue
            for dep in self.local.get_manifest(component_id, version).dependencies:
                if not dep.component_id.is_bound and not self.local.bind_id(dep.component_id).is_bound:
                    queue.append(dep.key)

        return {
            old: new for old, new in bindings.items()
            if old != new and self.local.all_versions(old)
        }

    def _bind(self, component_id: ComponentId) -> ComponentId:
        if component_id.is_bound:
            return component_id
        if component_id in self._bindings:
            return self._bindings[component_id]
        return self.local.bind_id(component_id)

    def _local_lookup(self, key: VersionKey) -> Optional[VersionManifest]:
        """
        The local cache tier of source location.

        Local drafts are presented in their exported form: bound id,
        bound dependency pins, origin set to the target.
        """
        component_id, version = key
        draft = None
        if self.local.has_manifest(component_id, version):
            draft = self.local.get_manifest(component_id, version)
        else:
            for unbound, bound in self._bindings.items():
                if bound == component_id and self.local.has_manifest(unbound, version):
                    draft = self.local.get_manifest(unbound, version)
                    break
        if draft is None:
            return None

        if draft.origin_scope is not None and draft.component_id.is_bound:
            return draft
        return draft.rebind(
            component_id,
            [Dependency(self._bind(d.component_id), d.version) for d in draft.dependencies],
            draft.origin_scope or self.target,
        )

    # ========== Validating ==========

    def _validate(self, closure: Closure) -> None:
        """
        Reject exports of versions the target already holds.

        A requested root already in the target is AlreadyExported when
        its content matches and a VersionConflict when it does not. Any
        present dependency whose local copy differs is a VersionConflict.
        New versions of components owned by the target must extend its
        history (NonMonotonicVersion otherwise).
        """
        for key in closure.roots:
            if key not in closure.present:
                continue
            component_id, version = key
            local_copy = self._local_lookup(key)
            if local_copy is not None and local_copy.compute_hash() != closure.present[key]:
                raise VersionConflictError(
                    str(component_id), str(version), closure.present[key], local_copy.compute_hash()
                )
            raise AlreadyExportedError(str(component_id), str(version), self.target)

        for key, target_hash in closure.present.items():
            local_copy = self._local_lookup(key)
            if local_copy is not None and local_copy.compute_hash() != target_hash:
                raise VersionConflictError(
                    str(key[0]), str(key[1]), target_hash, local_copy.compute_hash()
                )

        owned = sorted(key for key in closure.missing if key[0].scope == self.target)
        latest = {}
        for component_id, version in owned:
            if component_id not in latest:
                latest[component_id] = self._channel.latest_version(component_id)
            current = latest[component_id]
            if current is not None and version <= current:
                raise NonMonotonicVersionError(str(component_id), str(version), str(current))
            latest[component_id] = version

    def _transition(self, state: ExportState) -> None:
        self.state = state
        self.history.append(state)
        _LOGGER.debug("export_state", target=self.target, state=state.value)


def export_components(
    local: Scope,
    target: str,
    registry: RemoteRegistry,
    ids: Optional[Iterable[Union[str, ComponentId]]] = None,
    config: Optional[ScopeStoreConfig] = None,
) -> ExportResult:
    """Export components (or everything staged) from a local scope."""
    return ExportTransaction(local, target, registry, ids=ids, config=config).run()

