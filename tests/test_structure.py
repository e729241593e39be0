"""
Test package structure and exports.

Verifies that the package is correctly structured and exposes the right API.
"""

import json

import pytest

import scope_store
from scope_store import (
    ExportTransaction,
    RemoteRegistry,
    Scope,
    ScopeStoreError,
    StorageError,
    VersionManifest,
    import_components,
)


def test_package_exports():
    """Verify that the package exposes the expected classes."""
    assert Scope is not None
    assert ExportTransaction is not None
    assert RemoteRegistry is not None
    assert VersionManifest is not None
    assert import_components is not None
    assert issubclass(StorageError, ScopeStoreError)
    assert scope_store.__version__


def test_scope_initialization(tmp_path):
    """Verify that a scope creates its directory structure and record."""
    Scope.create(tmp_path, 'remote')

    assert (tmp_path / "objects").exists()
    assert (tmp_path / "index").exists()
    assert json.loads((tmp_path / "scope.json").read_text()) == {'name': 'remote'}


def test_open_reads_scope_name(tmp_path):
    Scope.create(tmp_path, 'remote')

    scope = Scope.open(tmp_path)

    assert scope.name == 'remote'
    assert not scope.is_local


def test_open_uninitialized_path_fails(tmp_path):
    with pytest.raises(StorageError):
        Scope.open(tmp_path / "missing")


def test_local_scope_has_no_name(tmp_path):
    scope = Scope.create(tmp_path)

    assert scope.is_local
    assert Scope.open(tmp_path).name is None


def test_subpackage_imports():
    """Verify that subpackages are importable (even if not exposed directly)."""
    import scope_store.storage.object_store
    import scope_store.integrity.hashing
    import scope_store.graph.version_graph
    import scope_store.resolution.source_locator

    assert scope_store.storage.object_store.ObjectStore is not None
    assert scope_store.integrity.hashing.compute_hash is not None
    assert scope_store.graph.version_graph.VersionGraph is not None
    assert scope_store.resolution.source_locator.SourceLocator is not None
