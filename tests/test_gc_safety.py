"""
Test garbage collection safety.

Verifies that GC never deletes reachable objects.
"""

import pytest
import tempfile
import threading

from scope_store import GarbageCollectionError, Scope


class TestGarbageCollectionSafety:
    """Test that GC is safe and never deletes reachable objects."""

    @pytest.fixture
    def store(self):
        """Create a temporary scope for testing."""
        with tempfile.TemporaryDirectory() as tmpdir:
            yield Scope.create(tmpdir, 'remote')

    def test_gc_preserves_indexed_objects(self, store):
        """GC never deletes manifests or blobs of indexed versions."""
        manifest = store.commit('bar/foo', {'foo.js': b"foo", 'README.md': b"# foo"})

        result = store.garbage_collect(dry_run=False)

        assert store.object_store.has(manifest.compute_hash())
        for blob_hash in manifest.blob_hashes():
            assert store.object_store.has(blob_hash)
        assert result['deleted'] == []

    def test_gc_deletes_orphan_blobs(self, store):
        """Blobs no manifest references are reclaimed."""
        store.commit('bar/foo', {'foo.js': b"foo"})
        orphan = store.put(b"left behind by an interrupted commit")

        result = store.garbage_collect(dry_run=False)

        assert not store.object_store.has(orphan)
        assert result['deleted'] == [orphan]

    def test_gc_dry_run(self, store):
        """Dry run reports what would be deleted without deleting."""
        orphan = store.put(b"orphan")

        result = store.garbage_collect(dry_run=True)

        assert store.object_store.has(orphan)
        assert orphan in result['unreachable']
        assert result['deleted'] == []

    def test_gc_keeps_every_version(self, store):
        """Older versions stay reachable after newer ones are committed."""
        v1 = store.commit('bar/foo', {'foo.js': b"one"})
        v2 = store.commit('bar/foo', {'foo.js': b"two"})

        store.garbage_collect()

        assert store.read_files(v1.component_id, '0.0.1') == {'foo.js': b"one"}
        assert store.read_files(v2.component_id, '0.0.2') == {'foo.js': b"two"}

    def test_gc_shared_blob_survives(self, store):
        """A blob shared by two components is kept."""
        store.commit('bar/foo', {'index.js': b"shared"})
        store.commit('bar/baz', {'index.js': b"shared"})

        result = store.garbage_collect()

        assert result['deleted'] == []
        assert len(result['reachable']) == 3

    def test_gc_aborts_on_unreadable_manifest(self, store):
        """An indexed manifest that cannot be read stops the sweep."""
        manifest = store.commit('bar/foo', {'foo.js': b"foo"})
        orphan = store.put(b"orphan")
        store.layout.get_object_path(manifest.compute_hash()).write_bytes(b"garbage")

        with pytest.raises(GarbageCollectionError):
            store.garbage_collect()

        assert store.object_store.has(orphan)

    def test_gc_empty_store(self, store):
        result = store.garbage_collect()

        assert result['reachable'] == set()
        assert result['deleted'] == []

    def test_gc_waits_for_commit_in_progress(self, store, monkeypatch):
        """A collection started mid-commit cannot reclaim the commit's blobs."""
        collectors = []
        original_put = store.object_store.put

        def put_then_collect(data):
            blob_hash = original_put(data)
            collector = threading.Thread(target=store.garbage_collect)
            collector.start()
            collector.join(timeout=0.2)
            collectors.append(collector)
            return blob_hash

        monkeypatch.setattr(store.object_store, 'put', put_then_collect)
        manifest = store.commit('bar/foo', {'foo.js': b"foo"})
        for collector in collectors:
            collector.join()

        assert store.read_files(manifest.component_id, manifest.version) == {'foo.js': b"foo"}
        assert store.verify()['valid']
