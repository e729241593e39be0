"""
Import of component versions from a remote scope into a local scope.

The imported versions arrive with their whole dependency closure and
are marked remote-durable, so they are never staged for export.
"""

from typing import Dict, Iterable, List, Optional, Union

from .config import ScopeStoreConfig
from .errors import ManifestNotFoundError
from .logging_config import get_logger
from .model.component_id import ComponentId
from .model.manifest import VersionKey
from .resolution.closure import ClosureResolver
from .resolution.source_locator import SourceLocator
from .scope import Scope
from .transport import RemoteRegistry

_LOGGER = get_logger(__name__)


class ImportResult:
    """
    Outcome of an import.

    Attributes:
        scope_name: scope imported from
        imported: requested version keys
        fetched: every version newly indexed in the local scope
    """

    def __init__(self, scope_name: str, imported: List[VersionKey], fetched: List[VersionKey]):
        self.scope_name = scope_name
        self.imported = imported
        self.fetched = fetched

    def summary(self) -> str:
        return f"successfully imported {len(self.imported)} components"

    def __repr__(self) -> str:
        return f"ImportResult({self.summary()}, fetched={len(self.fetched)})"


def import_components(
    local: Scope,
    remote: str,
    ids: Iterable[Union[str, ComponentId]],
    registry: RemoteRegistry,
    config: Optional[ScopeStoreConfig] = None,
) -> ImportResult:
    """
    Fetch component versions and their closure into a local scope.

    Args:
        local: destination scope
        remote: scope to import from
        ids: 'id' or 'id@version'; unbound ids are bound to remote,
            a missing version means the remote's latest
        registry: known remote scopes
        config: runtime configuration

    Raises:
        ManifestNotFoundError: the remote has no such component
        DependencyUnavailableError: part of the closure cannot be fetched
    """
    config = config or local.config
    channel = registry.connect(remote)

    roots = []
    for item in ids:
        if isinstance(item, ComponentId):
            component_id, version = item, None
        else:
            component_id, version = ComponentId.parse_versioned(item)
        if not component_id.is_bound:
            component_id = component_id.with_scope(remote)
        if version is None:
            version = channel.latest_version(component_id)
            if version is None:
                raise ManifestNotFoundError(str(component_id), 'latest', remote)
        roots.append((component_id, version))

    with SourceLocator(registry, config=config) as locator:
        resolver = ClosureResolver(
            target_hash=lambda key: local.manifest_hash(key[0], key[1]),
            load_manifests=locator.locate_many,
        )
        closure = resolver.resolve(roots)
        blobs = locator.fetch_blobs(list(closure.missing), skip=local.object_store.has)

    fetched = local.apply_batch(blobs, closure.missing.values())

    durable: Dict[ComponentId, List] = {}
    for component_id, version in closure.missing:
        durable.setdefault(component_id, []).append(version)
    for component_id, versions in sorted(durable.items()):
        local.version_graph.mark_exported(component_id, versions)

    _LOGGER.info(
        "components_imported",
        remote=remote,
        roots=len(roots),
        fetched=len(fetched),
        sources=locator.consulted,
    )
    return ImportResult(remote, roots, fetched)
