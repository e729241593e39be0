"""
Dependency closure resolution.

Expands requested component versions into every version that must
exist in a target scope, split into what the target already holds
and what has to be fetched.
"""

from collections import deque
from typing import Callable, Dict, Iterable, List, Optional

from ..logging_config import get_logger
from ..model.manifest import VersionKey, VersionManifest

_LOGGER = get_logger(__name__)

TargetLookup = Callable[[VersionKey], Optional[str]]
ManifestLoader = Callable[[List[VersionKey]], Dict[VersionKey, VersionManifest]]


class Closure:
    """
    Result of a closure resolution.

    Attributes:
        roots: requested version keys, in request order
        present: keys the target already holds -> manifest hash there
        missing: keys the target lacks -> their manifest
    """

    def __init__(self, roots: List[VersionKey]):
        self.roots = roots
        self.present: Dict[VersionKey, str] = {}
        self.missing: Dict[VersionKey, VersionManifest] = {}

    def all_keys(self) -> List[VersionKey]:
        return sorted(set(self.present) | set(self.missing))

    def is_satisfied(self) -> bool:
        return not self.missing

    def __len__(self) -> int:
        return len(self.present) + len(self.missing)

    def __repr__(self) -> str:
        return f"Closure(roots={len(self.roots)}, present={len(self.present)}, missing={len(self.missing)})"


class ClosureResolver:
    """
    Worklist resolver over (component, version) keys.

    A key the target holds is recorded as present and not expanded.
    Presence is exact: another version of the same component in the
    target never satisfies a pin. A key the target lacks is recorded
    as missing and its manifest's dependencies are queued.

    Pins always point at earlier-committed versions, so the dependency
    relation has no cycles; the visited set only stops repeat work.
    """

    def __init__(self, target_hash: TargetLookup, load_manifests: ManifestLoader):
        """
        Args:
            target_hash: returns the target's manifest hash for a key, or None
            load_manifests: returns manifests for a frontier of missing
                keys; raises DependencyUnavailableError when one cannot
                be located
        """
        self.target_hash = target_hash
        self.load_manifests = load_manifests

    def resolve(self, roots: Iterable[VersionKey]) -> Closure:
        """Resolve the closure of the given roots."""
        roots = list(dict.fromkeys(roots))
        closure = Closure(roots)
        visited = set()
        queue = deque(roots)
        waves = 0

        while queue:
            frontier = []
            while queue:
                key = queue.popleft()
                if key in visited:
                    continue
                visited.add(key)

                target_hash = self.target_hash(key)
                if target_hash is not None:
                    closure.present[key] = target_hash
                else:
                    frontier.append(key)

            if not frontier:
                break

            waves += 1
            manifests = self.load_manifests(frontier)
            for key in frontier:
                manifest = manifests[key]
                closure.missing[key] = manifest
                for dep_key in manifest.dependency_keys():
                    if dep_key not in visited:
                        queue.append(dep_key)

        _LOGGER.info(
            "closure_resolved",
            roots=len(roots),
            present=len(closure.present),
            missing=len(closure.missing),
            waves=waves,
        )
        return closure
