"""
Test importing components from a remote scope into a workspace.
"""

import pytest

from scope_store import (
    ComponentId,
    ManifestNotFoundError,
    Version,
    export_components,
    import_components,
)

V1 = Version.parse('0.0.1')


def cid(text):
    return ComponentId.parse(text)


class TestImport:

    @pytest.fixture
    def remote(self, make_remote):
        return make_remote('remote')

    @pytest.fixture
    def author(self, make_workspace, remote, registry):
        author = make_workspace()
        author.commit('utils/is-type', {'is-type.js': b"module.exports = t => typeof t;"})
        author.commit(
            'utils/is-string',
            {'is-string.js': b"module.exports = s => typeof s === 'string';"},
            dependencies=['utils/is-type@0.0.1'],
        )
        export_components(author, 'remote', registry)
        return author

    def test_binary_file_round_trip(self, make_workspace, remote, registry):
        """A binary blob comes back with identical size and bytes."""
        payload = b"\x89PNG\r\n\x1a\n" + bytes(range(256)) * 64 + b"\x00\xff\r\n"
        author = make_workspace()
        author.commit('assets/logo', {'logo.png': payload, 'index.js': b"export default 1;"}, main_file='index.js')
        export_components(author, 'remote', registry)

        reader = make_workspace()
        result = import_components(reader, 'remote', ['assets/logo'], registry)
        files = reader.read_files(cid('remote/assets/logo'), V1)

        assert result.summary() == "successfully imported 1 components"
        assert len(files['logo.png']) == len(payload)
        assert files['logo.png'] == payload
        assert reader.get_manifest(cid('remote/assets/logo'), V1).main_file == 'index.js'

    def test_import_brings_closure(self, author, make_workspace, registry):
        reader = make_workspace()

        result = import_components(reader, 'remote', ['remote/utils/is-string@0.0.1'], registry)

        assert set(result.fetched) == {
            (cid('remote/utils/is-string'), V1),
            (cid('remote/utils/is-type'), V1),
        }
        assert reader.has_manifest(cid('remote/utils/is-type'), V1)
        assert reader.staged() == []
        assert reader.verify()['valid']

    def test_import_is_idempotent(self, author, make_workspace, registry):
        reader = make_workspace()
        import_components(reader, 'remote', ['utils/is-string'], registry)

        result = import_components(reader, 'remote', ['utils/is-string'], registry)

        assert result.fetched == []

    def test_import_unknown_component(self, remote, make_workspace, registry):
        with pytest.raises(ManifestNotFoundError) as excinfo:
            import_components(make_workspace(), 'remote', ['utils/nope'], registry)

        assert 'component was not found' in str(excinfo.value)

    def test_modify_imported_component_and_export(self, author, make_workspace, remote, registry):
        """An imported component keeps its binding and gets the next version."""
        reader = make_workspace()
        import_components(reader, 'remote', ['utils/is-type'], registry)

        manifest = reader.commit('utils/is-type', {'is-type.js': b"module.exports = t => t === null ? 'null' : typeof t;"})
        result = export_components(reader, 'remote', registry)

        assert manifest.component_id == cid('remote/utils/is-type')
        assert result.summary() == "exported 1 components to scope remote"
        assert remote.latest_version(cid('remote/utils/is-type')) == Version.parse('0.0.2')

    def test_export_imported_component_to_another_scope(self, author, make_workspace, make_remote, registry):
        """The bound id is kept, and its dependency travels along."""
        remote2 = make_remote('remote2')
        reader = make_workspace()
        import_components(reader, 'remote', ['utils/is-string'], registry)

        export_components(reader, 'remote2', registry, ids=['remote/utils/is-string'])

        assert remote2.has_manifest(cid('remote/utils/is-string'), V1)
        assert remote2.has_manifest(cid('remote/utils/is-type'), V1)
        assert not remote2.has_manifest(cid('remote2/utils/is-string'), V1)
