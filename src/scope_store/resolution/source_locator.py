"""
Source location for missing component versions.

Candidates are tried in cache-hierarchy order:
local cache -> origin scope -> scopes already consulted this session.
There is no wider search; a version none of them holds is unavailable.
"""

from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from typing import Callable, Dict, Iterable, List, Optional, Tuple
import math
import threading

from ..config import ScopeStoreConfig
from ..errors import (
    ConnectivityError,
    DependencyUnavailableError,
    InvalidObjectError,
    ManifestNotFoundError,
    ObjectCorruptedError,
    ObjectNotFoundError,
    StorageError,
)
from ..integrity.hashing import compute_hash
from ..logging_config import get_logger
from ..model.component_id import format_versioned
from ..model.manifest import VersionKey, VersionManifest

_LOGGER = get_logger(__name__)

LOCAL_SOURCE = 'local'

# Failures that make one candidate unusable but leave others worth trying
_SOURCE_FAILURES = (
    ConnectivityError,
    ManifestNotFoundError,
    ObjectNotFoundError,
    ObjectCorruptedError,
    InvalidObjectError,
    StorageError,
)

LocalLookup = Callable[[VersionKey], Optional[VersionManifest]]
BlobReader = Callable[[str], bytes]


class SourceLocator:
    """
    Locates and fetches component versions a target scope lacks.

    One locator serves one session (one export or import). It keeps
    the manifests it located, where each came from, and which scopes
    answered, so later lookups in the session can reuse them.
    """

    def __init__(
        self,
        registry,
        local_lookup: Optional[LocalLookup] = None,
        local_blobs: Optional[BlobReader] = None,
        config: Optional[ScopeStoreConfig] = None,
        exclude: Iterable[str] = (),
    ):
        """
        Args:
            registry: RemoteRegistry used to open channels
            local_lookup: finds a manifest in the local cache
            local_blobs: reads blob bytes from the local cache
            config: runtime configuration (timeouts, workers, peers)
            exclude: scope names never used as a source (the target)
        """
        self.registry = registry
        self.local_lookup = local_lookup
        self.local_blobs = local_blobs
        self.config = config or ScopeStoreConfig()
        self.exclude = set(exclude)

        self._lock = threading.Lock()
        self._located: Dict[VersionKey, Tuple[VersionManifest, str]] = {}
        self._hints: Dict[VersionKey, List[str]] = {}
        self._consulted: List[str] = []
        self._channels = {}
        self._attempts: Dict[VersionKey, str] = {}
        self._executor = ThreadPoolExecutor(
            max_workers=self.config.fetch_workers,
            thread_name_prefix="scope-fetch",
        )

    # ========== Session ==========

    def close(self) -> None:
        """Release worker threads without waiting for stuck fetches."""
        self._executor.shutdown(wait=False, cancel_futures=True)

    def __enter__(self) -> 'SourceLocator':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def consulted(self) -> List[str]:
        with self._lock:
            return list(self._consulted)

    def source_of(self, key: VersionKey) -> Optional[str]:
        with self._lock:
            located = self._located.get(key)
        return located[1] if located else None

    # ========== Manifests ==========

    def locate_many(self, keys: List[VersionKey]) -> Dict[VersionKey, VersionManifest]:
        """
        Locate manifests for several keys concurrently.

        Raises DependencyUnavailableError for the first key that no
        candidate could supply, or that did not finish in time.
        """
        results = self._run_concurrently(keys, self.locate)
        return dict(results)

    def locate(self, key: VersionKey) -> VersionManifest:
        """Locate one manifest."""
        with self._lock:
            located = self._located.get(key)
        if located is not None:
            return located[0]

        if self.local_lookup is not None:
            manifest = self.local_lookup(key)
            if manifest is not None:
                self._remember(key, manifest, LOCAL_SOURCE)
                return manifest

        component_id, version = key
        last_source = None
        last_error = None
        for source in self._candidates(key):
            last_source = source
            self._note_attempt(key, source)
            try:
                channel = self._channel(source)
                advertised = channel.list_manifest(component_id, version)
                if advertised is None:
                    continue
                manifest = channel.fetch_manifest(component_id, version)
                actual = manifest.compute_hash()
                if actual != advertised:
                    raise ObjectCorruptedError(advertised, advertised, actual)
            except _SOURCE_FAILURES as e:
                last_error = e
                _LOGGER.warning(
                    "source_failed",
                    component=format_versioned(component_id, version),
                    source=source,
                    error=str(e),
                )
                continue

            self._remember(key, manifest, source)
            _LOGGER.info(
                "dependency_located",
                component=format_versioned(component_id, version),
                source=source,
            )
            return manifest

        raise DependencyUnavailableError(str(component_id), str(version), last_source, last_error)

    # ========== Blobs ==========

    def fetch_blobs(self, keys: List[VersionKey], skip: Callable[[str], bool]) -> Dict[str, bytes]:
        """
        Fetch the blobs of located versions, concurrently per version.

        Blobs for which skip(hash) is true (already in the target) are
        not fetched. Every blob is checked against its hash.
        """
        blobs: Dict[str, bytes] = {}
        for _, fetched in self._run_concurrently(keys, lambda k: self._fetch_version_blobs(k, skip)):
            blobs.update(fetched)
        return blobs

    def _fetch_version_blobs(self, key: VersionKey, skip: Callable[[str], bool]) -> Dict[str, bytes]:
        manifest = self.locate(key)
        needed = [h for h in manifest.blob_hashes() if not skip(h)]
        if not needed:
            return {}

        component_id, version = key
        sources = [self.source_of(key), manifest.origin_scope, component_id.scope]
        last_source = None
        last_error = None
        for source in dict.fromkeys(s for s in sources if s):
            if source != LOCAL_SOURCE and source in self.exclude:
                continue
            last_source = source
            self._note_attempt(key, source)
            try:
                fetched = {h: self._read_blob(source, h) for h in needed}
            except _SOURCE_FAILURES as e:
                last_error = e
                _LOGGER.warning(
                    "blob_fetch_failed",
                    component=format_versioned(component_id, version),
                    source=source,
                    error=str(e),
                )
                continue
            _LOGGER.info(
                "dependency_fetched",
                component=format_versioned(component_id, version),
                source=source,
                blobs=len(fetched),
            )
            return fetched

        raise DependencyUnavailableError(str(component_id), str(version), last_source, last_error)

    def _read_blob(self, source: str, blob_hash: str) -> bytes:
        if source == LOCAL_SOURCE:
            if self.local_blobs is None:
                raise ObjectNotFoundError(blob_hash)
            data = self.local_blobs(blob_hash)
        else:
            data = self._channel(source).fetch_blob(blob_hash)
        actual = compute_hash(data)
        if actual != blob_hash:
            raise ObjectCorruptedError(blob_hash, blob_hash, actual)
        return data

    # ========== Internals ==========

    def _candidates(self, key: VersionKey) -> List[str]:
        """
        Remote candidates for a key, in order.

        The binding scope of the component is its origin. When peers
        are enabled, the scopes that supplied a dependent of this key
        come next, then every other scope consulted this session.
        """
        component_id, _ = key
        candidates = [component_id.scope]
        if self.config.consult_session_peers:
            with self._lock:
                candidates.extend(self._hints.get(key, []))
                candidates.extend(self._consulted)
        return [
            c for c in dict.fromkeys(candidates)
            if c and c != LOCAL_SOURCE and c not in self.exclude
        ]

    def _remember(self, key: VersionKey, manifest: VersionManifest, source: str) -> None:
        with self._lock:
            self._located[key] = (manifest, source)
            if source != LOCAL_SOURCE and source not in self._consulted:
                self._consulted.append(source)
            for dep_key in manifest.dependency_keys():
                hints = self._hints.setdefault(dep_key, [])
                if source not in hints:
                    hints.append(source)
                if manifest.origin_scope and manifest.origin_scope not in hints:
                    hints.append(manifest.origin_scope)

    def _note_attempt(self, key: VersionKey, source: str) -> None:
        with self._lock:
            self._attempts[key] = source

    def _channel(self, source: str):
        with self._lock:
            channel = self._channels.get(source)
        if channel is None:
            channel = self.registry.connect(source)
            with self._lock:
                self._channels.setdefault(source, channel)
        return channel

    def _run_concurrently(self, keys: List[VersionKey], func) -> List[tuple]:
        """
        Run func over keys on the worker pool; a synchronous barrier.

        The wave is allowed fetch_timeout per round of workers. Keys
        still running when it expires are reported unavailable.
        """
        keys = list(dict.fromkeys(keys))
        if not keys:
            return []

        futures = {self._executor.submit(func, key): key for key in keys}
        rounds = math.ceil(len(keys) / self.config.fetch_workers)
        done, not_done = wait(
            futures,
            timeout=self.config.fetch_timeout * rounds,
            return_when=FIRST_EXCEPTION,
        )

        for future in done:
            error = future.exception()
            if error is not None:
                for pending in not_done:
                    pending.cancel()
                raise error

        if not_done:
            for pending in not_done:
                pending.cancel()
            key = min(futures[f] for f in not_done)
            component_id, version = key
            with self._lock:
                last_source = self._attempts.get(key)
            _LOGGER.warning(
                "fetch_timed_out",
                component=format_versioned(component_id, version),
                source=last_source,
                timeout=self.config.fetch_timeout,
            )
            raise DependencyUnavailableError(
                str(component_id),
                str(version),
                last_source,
                TimeoutError(f"no answer within {self.config.fetch_timeout}s"),
            )

        return [(futures[f], f.result()) for f in futures]
