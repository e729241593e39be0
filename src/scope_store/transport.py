"""
Transport to scopes.

A channel is an open connection to one scope. The engine only talks
to other scopes through channels, so a network implementation can
replace the in-process one without touching resolution or export.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple, Union

from .config import ScopeStoreConfig
from .errors import ConnectivityError, StorageError
from .model.component_id import ComponentId
from .model.manifest import VersionKey, VersionManifest
from .model.version import Version
from .scope import Scope


class ScopeChannel(ABC):
    """
    Open channel to one scope.

    Failures to reach the scope raise ConnectivityError, which is
    distinct from a missing object or version.
    """

    @property
    @abstractmethod
    def scope_name(self) -> str:
        """Name of the scope behind this channel."""
        ...

    @abstractmethod
    def list_manifest(self, component_id: ComponentId, version: Version) -> Optional[str]:
        """Manifest hash of a version, or None if the scope lacks it."""
        ...

    @abstractmethod
    def fetch_manifest(self, component_id: ComponentId, version: Version) -> VersionManifest:
        """Fetch a manifest. Raises ManifestNotFoundError if absent."""
        ...

    @abstractmethod
    def fetch_blob(self, blob_hash: str) -> bytes:
        """Fetch blob bytes. Raises ObjectNotFoundError if absent."""
        ...

    @abstractmethod
    def has_blob(self, blob_hash: str) -> bool:
        ...

    @abstractmethod
    def push_batch(self, blobs: Dict[str, bytes], manifests: Iterable[VersionManifest]) -> List[VersionKey]:
        """
        Commit blobs and manifests atomically on the remote side.

        Returns the version keys that were newly indexed.
        """
        ...

    @abstractmethod
    def latest_version(self, component_id: ComponentId) -> Optional[Version]:
        """Latest version of a component in the scope, or None."""
        ...

    @abstractmethod
    def list_components(self) -> List[Tuple[ComponentId, Version]]:
        """Every component of the scope with its latest version."""
        ...


class LocalScopeChannel(ScopeChannel):
    """Channel to a scope in the same process or on a local filesystem."""

    def __init__(self, scope: Scope):
        if scope.name is None:
            raise ConnectivityError('<local>', "a local workspace scope cannot be a remote")
        self.scope = scope

    @property
    def scope_name(self) -> str:
        return self.scope.name

    def list_manifest(self, component_id: ComponentId, version: Version) -> Optional[str]:
        return self.scope.manifest_hash(component_id, version)

    def fetch_manifest(self, component_id: ComponentId, version: Version) -> VersionManifest:
        return self.scope.get_manifest(component_id, version)

    def fetch_blob(self, blob_hash: str) -> bytes:
        return self.scope.get(blob_hash)

    def has_blob(self, blob_hash: str) -> bool:
        return self.scope.object_store.has(blob_hash)

    def push_batch(self, blobs: Dict[str, bytes], manifests: Iterable[VersionManifest]) -> List[VersionKey]:
        return self.scope.apply_batch(blobs, manifests)

    def latest_version(self, component_id: ComponentId) -> Optional[Version]:
        return self.scope.latest_version(component_id)

    def list_components(self) -> List[Tuple[ComponentId, Version]]:
        return self.scope.list_components()

    def __repr__(self) -> str:
        return f"LocalScopeChannel({self.scope_name})"


ChannelFactory = Callable[[], ScopeChannel]


class RemoteRegistry:
    """
    Known remote scopes, by name.

    Entries are channel factories, so a channel is opened per connect.
    """

    def __init__(self, config: Optional[ScopeStoreConfig] = None):
        self.config = config or ScopeStoreConfig()
        self._factories: Dict[str, ChannelFactory] = {}

    def add_scope(self, scope: Scope) -> None:
        """Register an in-process scope."""
        self._factories[scope.name] = lambda: LocalScopeChannel(scope)

    def add_path(self, store_path: Union[str, Path], name: Optional[str] = None) -> str:
        """
        Register a scope stored on the local filesystem.

        The scope is opened on each connect. Returns the scope name.
        """
        scope = Scope.open(store_path, self.config)
        scope_name = name or scope.name
        path = Path(store_path)

        def open_channel() -> ScopeChannel:
            try:
                return LocalScopeChannel(Scope.open(path, self.config))
            except (OSError, StorageError) as e:
                raise ConnectivityError(scope_name, str(e)) from e

        self._factories[scope_name] = open_channel
        return scope_name

    def add_channel(self, name: str, factory: ChannelFactory) -> None:
        """Register a custom channel factory."""
        self._factories[name] = factory

    def remove(self, name: str) -> None:
        self._factories.pop(name, None)

    def names(self) -> List[str]:
        return sorted(self._factories)

    def connect(self, name: str) -> ScopeChannel:
        """
        Open a channel to a scope.

        Raises ConnectivityError if the scope is unknown or unreachable.
        """
        factory = self._factories.get(name)
        if factory is None:
            raise ConnectivityError(name, "scope is not registered as a remote")
        return factory()

    def __contains__(self, name: str) -> bool:
        return name in self._factories
