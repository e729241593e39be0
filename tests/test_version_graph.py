"""
Test version graph append rules and per-component locking.
"""

import gc
import threading

import pytest

from scope_store import (
    ComponentId,
    NonMonotonicVersionError,
    Scope,
    StorageError,
    Version,
    VersionConflictError,
)
from scope_store.graph import version_graph
from scope_store.integrity.hashing import compute_hash


class TestVersionGraph:

    @pytest.fixture
    def graph(self, tmp_path):
        return Scope.create(tmp_path, 'remote').version_graph

    @pytest.fixture
    def owned(self):
        return ComponentId.parse('remote/bar/foo')

    def test_append_and_query(self, graph, owned):
        graph.append(owned, Version.parse('0.0.1'), compute_hash(b"1"))
        graph.append(owned, Version.parse('0.0.2'), compute_hash(b"2"))

        assert graph.latest_version(owned) == Version.parse('0.0.2')
        assert graph.all_versions(owned) == [Version.parse('0.0.1'), Version.parse('0.0.2')]
        assert graph.get_hash(owned, Version.parse('0.0.1')) == compute_hash(b"1")
        assert graph.list_components() == [owned]

    def test_identical_append_is_noop(self, graph, owned):
        assert graph.append(owned, Version.parse('0.0.1'), compute_hash(b"1"))
        assert not graph.append(owned, Version.parse('0.0.1'), compute_hash(b"1"))

    def test_conflicting_append(self, graph, owned):
        graph.append(owned, Version.parse('0.0.1'), compute_hash(b"1"))

        with pytest.raises(VersionConflictError):
            graph.append(owned, Version.parse('0.0.1'), compute_hash(b"other"))

    def test_owned_component_must_grow(self, graph, owned):
        graph.append(owned, Version.parse('0.0.3'), compute_hash(b"3"))

        with pytest.raises(NonMonotonicVersionError):
            graph.append(owned, Version.parse('0.0.2'), compute_hash(b"2"))

    def test_foreign_component_versions_coexist(self, graph):
        """A scope holding copies of another scope's component accepts any pinned version."""
        foreign = ComponentId.parse('other/utils/is-type')
        graph.append(foreign, Version.parse('0.0.2'), compute_hash(b"2"))
        graph.append(foreign, Version.parse('0.0.1'), compute_hash(b"1"))

        assert graph.all_versions(foreign) == [Version.parse('0.0.1'), Version.parse('0.0.2')]

    def test_check_append_writes_nothing(self, graph, owned):
        assert graph.check_append(owned, Version.parse('0.0.1'), compute_hash(b"1"))
        assert graph.all_versions(owned) == []

    def test_append_many_validates_before_writing(self, graph, owned):
        other = ComponentId.parse('remote/bar/baz')
        graph.append(owned, Version.parse('0.0.1'), compute_hash(b"1"))

        with pytest.raises(VersionConflictError):
            graph.append_many([
                (other, Version.parse('0.0.1'), compute_hash(b"baz")),
                (owned, Version.parse('0.0.1'), compute_hash(b"changed")),
            ])

        assert graph.all_versions(other) == []

    def test_concurrent_appends_resolve_deterministically(self, graph, owned):
        """Racing appends of one version: one writes, the rest conflict."""
        version = Version.parse('0.0.1')
        results = []
        barrier = threading.Barrier(8)

        def attempt(i):
            barrier.wait()
            try:
                results.append(graph.append(owned, version, compute_hash(f"{i}".encode())))
            except VersionConflictError:
                results.append('conflict')

        threads = [threading.Thread(target=attempt, args=(i,)) for i in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert results.count(True) == 1
        assert results.count('conflict') == 7

    def test_promote_replaces_drafts_only(self, graph, owned):
        version = Version.parse('0.0.1')
        graph.append(owned, version, compute_hash(b"draft"))

        graph.promote([(owned, version, compute_hash(b"bound"))], exported={(owned, version)})

        assert graph.get_hash(owned, version) == compute_hash(b"bound")
        assert graph.exported_versions(owned) == [version]
        with pytest.raises(VersionConflictError):
            graph.promote([(owned, version, compute_hash(b"again"))])

    def test_append_many_restores_indexes_when_a_write_fails(self, graph, owned, monkeypatch):
        other = ComponentId.parse('remote/bar/baz')
        graph.append(owned, Version.parse('0.0.1'), compute_hash(b"1"))
        original_write = graph._write_index
        writes = []

        def failing_second_write(component_id, record):
            writes.append(component_id)
            if len(writes) == 2:
                raise StorageError("write_index", str(component_id), OSError("disk full"))
            original_write(component_id, record)

        monkeypatch.setattr(graph, '_write_index', failing_second_write)

        with pytest.raises(StorageError):
            graph.append_many([
                (owned, Version.parse('0.0.2'), compute_hash(b"2")),
                (other, Version.parse('0.0.1'), compute_hash(b"baz")),
            ])

        assert graph.all_versions(owned) == [Version.parse('0.0.1')]
        assert graph.all_versions(other) == []
        assert graph.list_components() == [owned]

    def test_unused_locks_are_released(self, graph, owned):
        graph.append(owned, Version.parse('0.0.1'), compute_hash(b"1"))
        gc.collect()

        assert str(graph.layout.get_index_path(owned)) not in version_graph._LOCKS
