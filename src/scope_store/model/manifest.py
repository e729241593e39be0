"""
Version manifest model.

A manifest is the immutable record of one component version:
its files, its pinned dependencies and the scope it was first
exported to.
"""

from typing import Dict, Iterable, List, Optional, Tuple

from ..integrity.canonical import canonical_json
from ..integrity.hashing import compute_object_hash, is_valid_hash
from .component_id import ComponentId, format_versioned
from .version import Version

VersionKey = Tuple[ComponentId, Version]


class Dependency:
    """A pinned dependency: one exact version of another component."""

    __slots__ = ('component_id', 'version')

    def __init__(self, component_id: ComponentId, version: Version):
        self.component_id = component_id
        self.version = Version.parse(version)

    @property
    def key(self) -> VersionKey:
        return (self.component_id, self.version)

    def to_dict(self) -> dict:
        return {'id': self.component_id.to_dict(), 'version': str(self.version)}

    @classmethod
    def from_dict(cls, data: dict) -> 'Dependency':
        return cls(ComponentId.from_dict(data['id']), Version.parse(data['version']))

    def __eq__(self, other) -> bool:
        if not isinstance(other, Dependency):
            return NotImplemented
        return self.key == other.key

    def __hash__(self) -> int:
        return hash(self.key)

    def __repr__(self) -> str:
        return f"Dependency({format_versioned(self.component_id, self.version)})"


class VersionManifest:
    """
    Immutable manifest of a component version.

    A manifest references:
    - A mapping of relative file path to blob hash
    - A list of pinned dependencies
    - Optional main file designation
    - The origin scope (set once, at first export)
    """

    def __init__(
        self,
        component_id: ComponentId,
        version: Version,
        files: Dict[str, str],
        dependencies: Optional[Iterable[Dependency]] = None,
        main_file: Optional[str] = None,
        origin_scope: Optional[str] = None,
    ):
        """
        Create a manifest.

        Args:
            component_id: identity of the component
            version: version of this manifest
            files: relative path -> blob hash
            dependencies: pinned dependency versions
            main_file: optional path of the main file
            origin_scope: scope this version was first exported to
        """
        self.component_id = component_id
        self.version = Version.parse(version)
        self.files = dict(files)
        self.dependencies = sorted(
            set(dependencies or []),
            key=lambda d: (d.component_id, d.version),
        )
        self.main_file = main_file
        self.origin_scope = origin_scope
        self._hash = None

    @property
    def key(self) -> VersionKey:
        return (self.component_id, self.version)

    def dependency_keys(self) -> List[VersionKey]:
        return [dep.key for dep in self.dependencies]

    def blob_hashes(self) -> List[str]:
        """Distinct blob hashes referenced by this manifest."""
        return sorted(set(self.files.values()))

    def to_dict(self) -> dict:
        """
        Convert manifest to storable dictionary representation.

        Returns canonical dict that can be hashed and stored.
        """
        content = {
            'id': self.component_id.to_dict(),
            'version': str(self.version),
            'files': self.files,
            'dependencies': [dep.to_dict() for dep in self.dependencies],
            'main_file': self.main_file,
            'origin_scope': self.origin_scope,
        }
        return {
            'type': 'manifest',
            'content': content,
        }

    def to_bytes(self) -> bytes:
        """Canonical serialized form, the bytes stored in a scope."""
        return canonical_json(self.to_dict())

    @classmethod
    def from_dict(cls, data: dict) -> 'VersionManifest':
        """
        Reconstruct manifest from stored dictionary.

        Raises ValueError if data is invalid.
        """
        if not isinstance(data, dict) or data.get('type') != 'manifest':
            raise ValueError(f"Invalid manifest type: {data.get('type') if isinstance(data, dict) else data!r}")

        content = data.get('content')
        if not isinstance(content, dict):
            raise ValueError("Manifest missing content field")

        for field in ('id', 'version', 'files', 'dependencies'):
            if field not in content:
                raise ValueError(f"Manifest content missing {field} field")

        files = content['files']
        if not isinstance(files, dict):
            raise ValueError("Manifest files must be a mapping")
        for path, blob_hash in files.items():
            if not is_valid_hash(blob_hash):
                raise ValueError(f"Manifest file {path} has invalid hash {blob_hash!r}")

        return cls(
            component_id=ComponentId.from_dict(content['id']),
            version=Version.parse(content['version']),
            files=files,
            dependencies=[Dependency.from_dict(d) for d in content['dependencies']],
            main_file=content.get('main_file'),
            origin_scope=content.get('origin_scope'),
        )

    def compute_hash(self) -> str:
        """Compute content hash of this manifest."""
        if self._hash is None:
            self._hash = compute_object_hash(self.to_dict())
        return self._hash

    def rebind(self, component_id: ComponentId, dependencies: Iterable[Dependency], origin_scope: Optional[str]) -> 'VersionManifest':
        """
        Create a copy with a new identity, dependency pins and origin.

        Returns new VersionManifest instance (immutable).
        """
        return VersionManifest(
            component_id=component_id,
            version=self.version,
            files=self.files,
            dependencies=dependencies,
            main_file=self.main_file,
            origin_scope=origin_scope,
        )

    def __eq__(self, other) -> bool:
        if not isinstance(other, VersionManifest):
            return NotImplemented
        return self.compute_hash() == other.compute_hash()

    def __hash__(self) -> int:
        return hash(self.compute_hash())

    def __repr__(self) -> str:
        return (
            f"VersionManifest({format_versioned(self.component_id, self.version)}, "
            f"files={len(self.files)}, deps={len(self.dependencies)}, "
            f"hash={self.compute_hash()[:8]}...)"
        )
