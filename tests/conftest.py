"""
Shared fixtures: scopes in a temporary directory and a registry
that connects them in-process.
"""

import itertools

import pytest

from scope_store import RemoteRegistry, Scope, ScopeStoreConfig


@pytest.fixture
def config():
    return ScopeStoreConfig(fetch_timeout=5.0, fetch_workers=4)


@pytest.fixture
def registry(config):
    return RemoteRegistry(config)


@pytest.fixture
def make_remote(tmp_path, registry, config):
    """Create a named scope and register it as a remote."""
    def _make(name):
        scope = Scope.create(tmp_path / 'scopes' / name, name, config)
        registry.add_scope(scope)
        return scope
    return _make


@pytest.fixture
def make_workspace(tmp_path, config):
    """Create a fresh local (unnamed) scope."""
    counter = itertools.count(1)

    def _make():
        return Scope.create(tmp_path / 'workspaces' / f"ws{next(counter)}", config=config)
    return _make


@pytest.fixture
def local(make_workspace):
    return make_workspace()
