"""
Filesystem layout for a scope.

Implements content-addressed storage with directory sharding plus
a per-component index keyed by component identity.
"""

from pathlib import Path
from typing import List

from ..errors import StorageError
from ..integrity.hashing import get_hash_prefix
from ..model.component_id import ComponentId

# '@' is the version delimiter, so it never appears in an id segment
UNBOUND_SCOPE_DIR = '@local'
NO_NAMESPACE_DIR = '@root'


class StorageLayout:
    """
    Manages the on-disk layout of one scope.

    Layout:
        store_root/
            scope.json                  # {"name": <scope name>}
            objects/
                <prefix>/
                    <hash>              # raw blob bytes or manifest JSON
            index/
                <scope>/<namespace>/
                    <name>.json         # version -> manifest hash
    """

    def __init__(self, store_root: Path):
        """Initialize storage layout at given root."""
        self.store_root = Path(store_root).resolve()
        self.objects_dir = self.store_root / "objects"
        self.index_dir = self.store_root / "index"
        self.scope_file = self.store_root / "scope.json"
        self.bindings_file = self.store_root / "bindings.json"

    def initialize(self) -> None:
        """
        Initialize storage directory structure.

        Idempotent - safe to call multiple times.
        """
        try:
            self.store_root.mkdir(parents=True, exist_ok=True)
            self.objects_dir.mkdir(exist_ok=True)
            self.index_dir.mkdir(exist_ok=True)
        except OSError as e:
            raise StorageError("initialize", str(self.store_root), e)

    def get_object_path(self, obj_hash: str) -> Path:
        """
        Get filesystem path for an object by its hash.

        Uses 2-character prefix for directory sharding.
        """
        prefix = get_hash_prefix(obj_hash, 2)
        return self.objects_dir / prefix / obj_hash

    def ensure_object_directory(self, obj_hash: str) -> None:
        """Ensure the directory for an object exists."""
        prefix_dir = self.get_object_path(obj_hash).parent
        try:
            prefix_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError("mkdir", str(prefix_dir), e)

    def get_index_path(self, component_id: ComponentId) -> Path:
        """Get path of the version index file of a component."""
        scope_dir = component_id.scope or UNBOUND_SCOPE_DIR
        namespace_dir = component_id.namespace or NO_NAMESPACE_DIR
        return self.index_dir / scope_dir / namespace_dir / f"{component_id.name}.json"

    def list_all_objects(self) -> List[str]:
        """
        List all object hashes in the store.

        Scans all prefix directories. Temporary files are skipped.
        """
        objects = []

        if not self.objects_dir.exists():
            return objects

        try:
            for prefix_dir in self.objects_dir.iterdir():
                if not prefix_dir.is_dir():
                    continue

                for obj_file in prefix_dir.iterdir():
                    if obj_file.is_file() and not obj_file.name.startswith('.tmp_'):
                        objects.append(obj_file.name)

        except OSError as e:
            raise StorageError("list_objects", str(self.objects_dir), e)

        return objects

    def list_index_files(self) -> List[Path]:
        """List every component index file."""
        if not self.index_dir.exists():
            return []
        try:
            return sorted(p for p in self.index_dir.glob('*/*/*.json') if p.is_file())
        except OSError as e:
            raise StorageError("list_index", str(self.index_dir), e)

    def object_exists(self, obj_hash: str) -> bool:
        """Check if an object exists in storage."""
        return self.get_object_path(obj_hash).exists()

    def get_storage_stats(self) -> dict:
        """
        Get storage statistics.

        Returns dict with:
        - total_objects: number of objects
        - total_size_bytes: total size in bytes
        - components: number of indexed components
        """
        stats = {
            'total_objects': 0,
            'total_size_bytes': 0,
            'components': 0,
        }

        for obj_hash in self.list_all_objects():
            obj_path = self.get_object_path(obj_hash)
            try:
                stats['total_size_bytes'] += obj_path.stat().st_size
                stats['total_objects'] += 1
            except FileNotFoundError:
                # removed by a concurrent garbage collection
                continue

        stats['components'] = len(self.list_index_files())

        return stats
