"""
Test dependency closure resolution over (component, version) keys.
"""

import pytest

from scope_store import (
    ClosureResolver,
    ComponentId,
    Dependency,
    DependencyUnavailableError,
    VersionManifest,
)
from scope_store.integrity.hashing import compute_hash


def key(text):
    cid, version = ComponentId.parse_versioned(text)
    return (cid, version)


def manifest(text, *deps):
    cid, version = key(text)
    return VersionManifest(
        cid,
        version,
        {'index.js': compute_hash(text.encode())},
        [Dependency(*key(d)) for d in deps],
    )


class FakeSources:
    """Manifest provider over a fixed catalogue, recording each frontier."""

    def __init__(self, *manifests):
        self.catalogue = {m.key: m for m in manifests}
        self.frontiers = []

    def load(self, keys):
        self.frontiers.append(sorted(keys))
        missing = [k for k in keys if k not in self.catalogue]
        if missing:
            cid, version = missing[0]
            raise DependencyUnavailableError(str(cid), str(version), 'fake')
        return {k: self.catalogue[k] for k in keys}


class TestClosureResolver:

    def test_missing_chain_is_expanded(self):
        sources = FakeSources(
            manifest('s1/ns/a@0.0.1', 's2/ns/b@0.0.1'),
            manifest('s2/ns/b@0.0.1', 's3/ns/c@0.0.1'),
            manifest('s3/ns/c@0.0.1'),
        )
        resolver = ClosureResolver(target_hash=lambda k: None, load_manifests=sources.load)

        closure = resolver.resolve([key('s1/ns/a@0.0.1')])

        assert set(closure.missing) == {key('s1/ns/a@0.0.1'), key('s2/ns/b@0.0.1'), key('s3/ns/c@0.0.1')}
        assert closure.present == {}
        assert len(sources.frontiers) == 3

    def test_present_keys_are_not_expanded(self):
        sources = FakeSources(manifest('s1/ns/a@0.0.1', 's2/ns/b@0.0.1'))
        target = {key('s2/ns/b@0.0.1'): compute_hash(b"b")}
        resolver = ClosureResolver(target_hash=target.get, load_manifests=sources.load)

        closure = resolver.resolve([key('s1/ns/a@0.0.1')])

        assert closure.present == target
        assert list(closure.missing) == [key('s1/ns/a@0.0.1')]

    def test_other_version_does_not_satisfy_pin(self):
        """Holding D@0.0.2 does not satisfy a pin on D@0.0.1."""
        sources = FakeSources(
            manifest('s/ns/e@0.0.1', 'r/ns/d@0.0.1'),
            manifest('r/ns/d@0.0.1'),
        )
        target = {key('r/ns/d@0.0.2'): compute_hash(b"d2")}
        resolver = ClosureResolver(target_hash=target.get, load_manifests=sources.load)

        closure = resolver.resolve([key('s/ns/e@0.0.1')])

        assert key('r/ns/d@0.0.1') in closure.missing
        assert closure.present == {}

    def test_shared_dependency_visited_once(self):
        sources = FakeSources(
            manifest('s/ns/a@0.0.1', 's/ns/b@0.0.1', 's/ns/c@0.0.1'),
            manifest('s/ns/b@0.0.1', 's/ns/d@0.0.1'),
            manifest('s/ns/c@0.0.1', 's/ns/d@0.0.1'),
            manifest('s/ns/d@0.0.1'),
        )
        resolver = ClosureResolver(target_hash=lambda k: None, load_manifests=sources.load)

        closure = resolver.resolve([key('s/ns/a@0.0.1')])

        loaded = [k for frontier in sources.frontiers for k in frontier]
        assert len(loaded) == len(set(loaded)) == 4
        assert len(closure) == 4

    def test_frontier_loaded_as_one_wave(self):
        sources = FakeSources(
            manifest('s/ns/a@0.0.1', 's/ns/b@0.0.1', 's/ns/c@0.0.1'),
            manifest('s/ns/b@0.0.1'),
            manifest('s/ns/c@0.0.1'),
        )
        resolver = ClosureResolver(target_hash=lambda k: None, load_manifests=sources.load)

        resolver.resolve([key('s/ns/a@0.0.1')])

        assert sources.frontiers[1] == [key('s/ns/b@0.0.1'), key('s/ns/c@0.0.1')]

    def test_unavailable_dependency_propagates(self):
        sources = FakeSources(manifest('s/ns/a@0.0.1', 'gone/ns/b@0.0.1'))
        resolver = ClosureResolver(target_hash=lambda k: None, load_manifests=sources.load)

        with pytest.raises(DependencyUnavailableError) as excinfo:
            resolver.resolve([key('s/ns/a@0.0.1')])

        assert excinfo.value.component == 'gone/ns/b'
        assert excinfo.value.version == '0.0.1'

    def test_present_root(self):
        target = {key('s/ns/a@0.0.1'): compute_hash(b"a")}
        resolver = ClosureResolver(target_hash=target.get, load_manifests=FakeSources().load)

        closure = resolver.resolve([key('s/ns/a@0.0.1')])

        assert closure.is_satisfied()
        assert closure.roots == [key('s/ns/a@0.0.1')]
