"""
Garbage collection for unreachable objects.

An interrupted commit can leave blobs or manifest objects that no
index entry reaches. They are harmless but take space; this
collector reclaims them with a mark-and-sweep pass.
"""

from typing import Set
from collections import deque

from ..errors import GarbageCollectionError, ScopeStoreError
from ..integrity.verification import extract_references
from ..logging_config import get_logger

_LOGGER = get_logger(__name__)


class GarbageCollector:
    """
    Garbage collector for one scope's object store.

    Roots are the manifest hashes of every indexed version.
    1. Mark: every root and every blob a root manifest references
    2. Sweep: delete unmarked objects

    Safety guarantees:
    - Never deletes an object reachable from the index
    - Runs under the scope's commit lock, so no commit is in flight
    """

    def __init__(self, scope):
        self.scope = scope
        self.store = scope.object_store

    def collect(self, dry_run: bool = False) -> dict:
        """
        Run garbage collection.

        Args:
            dry_run: if True, only report what would be deleted

        Returns dict with:
            - reachable: set of reachable object hashes
            - unreachable: set of unreachable object hashes
            - deleted: list of deleted object hashes (empty if dry_run)
            - errors: list of error messages
        """
        result = {
            'reachable': set(),
            'unreachable': set(),
            'deleted': [],
            'errors': [],
        }

        reachable = self._mark_reachable(self._roots())
        result['reachable'] = reachable

        unreachable = set(self.store.list_all_objects()) - reachable
        result['unreachable'] = unreachable

        if not dry_run:
            deleted = []
            for obj_hash in sorted(unreachable):
                if obj_hash in reachable:
                    raise GarbageCollectionError(
                        f"attempted to delete reachable object {obj_hash}"
                    )
                if self.store.delete(obj_hash):
                    deleted.append(obj_hash)
            result['deleted'] = deleted

        _LOGGER.info(
            "gc_completed",
            scope=self.scope.name,
            reachable=len(reachable),
            unreachable=len(unreachable),
            deleted=len(result['deleted']),
            dry_run=dry_run,
        )
        return result

    def _roots(self) -> Set[str]:
        roots = set()
        for versions in self.scope.version_graph.all_manifest_hashes().values():
            roots.update(versions.values())
        return roots

    def _mark_reachable(self, roots: Set[str]) -> Set[str]:
        """
        Mark all objects reachable from the index.

        A root manifest that cannot be loaded aborts the collection:
        its blobs cannot be identified, so sweeping would be unsafe.
        """
        reachable = set()
        queue = deque(roots)

        while queue:
            manifest_hash = queue.popleft()

            if manifest_hash in reachable:
                continue

            reachable.add(manifest_hash)

            if not self.store.has(manifest_hash):
                continue

            try:
                manifest = self.store.get_manifest_object(manifest_hash)
            except ScopeStoreError as e:
                raise GarbageCollectionError(
                    f"cannot read indexed manifest {manifest_hash}: {e}"
                ) from e

            reachable.update(extract_references(manifest))

        return reachable
