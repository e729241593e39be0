"""
Test identity, version and manifest models.
"""

import pytest

from scope_store import (
    ComponentId,
    Dependency,
    InvalidComponentIdError,
    Version,
    VersionManifest,
    dependency_order,
    format_listing,
)
from scope_store.integrity.hashing import compute_hash


class TestVersion:

    def test_parse_and_order(self):
        assert Version.parse('0.0.2') > Version.parse('0.0.1')
        assert Version.parse('0.1.0') > Version.parse('0.0.9')
        assert Version.parse('1.0.0') > Version.parse('0.10.10')

    def test_bare_integer_is_patch(self):
        assert Version.parse('3') == Version(0, 0, 3)
        assert Version.parse(2) == Version.parse('0.0.2')

    def test_first_and_bump(self):
        assert str(Version.first()) == '0.0.1'
        assert str(Version.first().bump_patch()) == '0.0.2'

    @pytest.mark.parametrize('text', ['', 'latest', '1.2', '1.2.3.4', '0.0.0', '-1', 'a.b.c'])
    def test_invalid_versions(self, text):
        with pytest.raises(InvalidComponentIdError):
            Version.parse(text)

    def test_immutable(self):
        with pytest.raises(AttributeError):
            Version.first().patch = 5


class TestComponentId:

    def test_parse_forms(self):
        assert ComponentId.parse('foo') == ComponentId('foo')
        assert ComponentId.parse('bar/foo') == ComponentId('foo', namespace='bar')
        assert ComponentId.parse('remote/bar/foo') == ComponentId('foo', 'bar', 'remote')

    def test_string_round_trip(self):
        for text in ('foo', 'bar/foo', 'remote/bar/foo'):
            assert str(ComponentId.parse(text)) == text

    def test_parse_versioned(self):
        cid, version = ComponentId.parse_versioned('remote/utils/is-type@0.0.1')

        assert cid == ComponentId('is-type', 'utils', 'remote')
        assert version == Version.parse('0.0.1')
        assert ComponentId.parse_versioned('utils/is-type')[1] is None

    def test_binding(self):
        cid = ComponentId.parse('utils/is-type')
        bound = cid.with_scope('remote')

        assert not cid.is_bound
        assert bound.is_bound
        assert bound.unbound() == cid
        assert bound.local_name() == 'utils/is-type'

    def test_unbound_query_matches_any_scope(self):
        bound = ComponentId.parse('remote/utils/is-type')

        assert bound.matches(ComponentId.parse('utils/is-type'))
        assert bound.matches(ComponentId.parse('remote/utils/is-type'))
        assert not bound.matches(ComponentId.parse('other/utils/is-type'))

    @pytest.mark.parametrize('text', ['', 'a/b/c/d', '-bad/name', 'bar/foo@1', 'bar/fo o'])
    def test_invalid_ids(self, text):
        with pytest.raises(InvalidComponentIdError):
            ComponentId.parse(text)

    def test_dict_round_trip(self):
        cid = ComponentId.parse('remote/bar/foo')

        assert ComponentId.from_dict(cid.to_dict()) == cid


class TestVersionManifest:

    def _manifest(self, name, version, deps=()):
        return VersionManifest(
            ComponentId.parse(name),
            version,
            {'index.js': compute_hash(name.encode())},
            [Dependency(ComponentId.parse(d), Version.parse(v)) for d, v in deps],
        )

    def test_dict_round_trip(self):
        manifest = self._manifest('remote/utils/is-string', '0.0.1', [('remote/utils/is-type', '0.0.1')])

        restored = VersionManifest.from_dict(manifest.to_dict())

        assert restored == manifest
        assert restored.dependency_keys() == manifest.dependency_keys()

    def test_from_dict_rejects_bad_hash(self):
        data = self._manifest('bar/foo', '0.0.1').to_dict()
        data['content']['files']['index.js'] = 'not-a-hash'

        with pytest.raises(ValueError):
            VersionManifest.from_dict(data)

    def test_from_dict_rejects_other_types(self):
        with pytest.raises(ValueError):
            VersionManifest.from_dict({'type': 'bundle', 'content': {}})

    def test_dependency_order_puts_pins_first(self):
        a = self._manifest('s/ns/a', '0.0.1', [('s/ns/b', '0.0.1')])
        b = self._manifest('s/ns/b', '0.0.1', [('s/ns/c', '0.0.1')])
        c = self._manifest('s/ns/c', '0.0.1')

        ordered = dependency_order([a, b, c])

        assert [m.component_id.name for m in ordered] == ['c', 'b', 'a']

    def test_dependency_order_keeps_versions_ascending(self):
        v2 = self._manifest('s/ns/a', '0.0.2')
        v1 = self._manifest('s/ns/a', '0.0.1')

        ordered = dependency_order([v2, v1])

        assert [str(m.version) for m in ordered] == ['0.0.1', '0.0.2']


def test_format_listing():
    entries = [
        (ComponentId.parse('remote/bar/foo'), Version.parse('0.0.2')),
        (ComponentId.parse('remote/utils/is-type'), Version.parse('0.0.1')),
    ]

    text = format_listing(entries, 'remote')

    assert text.splitlines() == [
        'found 2 components in remote',
        'remote/bar/foo@0.0.2',
        'remote/utils/is-type@0.0.1',
    ]
    assert format_listing([]) == 'found 0 components in local scope'
