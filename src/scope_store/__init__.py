from .config import ScopeStoreConfig
from .scope import Scope, dependency_order, format_listing
from .transport import LocalScopeChannel, RemoteRegistry, ScopeChannel
from .export import ExportResult, ExportState, ExportTransaction, export_components
from .importer import ImportResult, import_components
from .model.blob import Blob
from .model.component_id import ComponentId
from .model.manifest import Dependency, VersionManifest
from .model.version import Version
from .resolution.closure import Closure, ClosureResolver
from .resolution.source_locator import SourceLocator
from .errors import (
    ScopeStoreError,
    ObjectNotFoundError,
    ObjectCorruptedError,
    InvalidObjectError,
    ReferenceMissingError,
    TamperDetectedError,
    GarbageCollectionError,
    StorageError,
    InvalidComponentIdError,
    ManifestNotFoundError,
    AlreadyExportedError,
    VersionConflictError,
    NonMonotonicVersionError,
    DependencyUnavailableError,
    ExportNotRecordedError,
    ConnectivityError,
    ScopeConfigError,
)

__version__ = '0.1.0'

__all__ = [
    'ScopeStoreConfig',
    'Scope',
    'dependency_order',
    'format_listing',
    'ScopeChannel',
    'LocalScopeChannel',
    'RemoteRegistry',
    'ExportResult',
    'ExportState',
    'ExportTransaction',
    'export_components',
    'ImportResult',
    'import_components',
    'Blob',
    'ComponentId',
    'Dependency',
    'VersionManifest',
    'Version',
    'Closure',
    'ClosureResolver',
    'SourceLocator',
    'ScopeStoreError',
    'ObjectNotFoundError',
    'ObjectCorruptedError',
    'InvalidObjectError',
    'ReferenceMissingError',
    'TamperDetectedError',
    'GarbageCollectionError',
    'StorageError',
    'InvalidComponentIdError',
    'ManifestNotFoundError',
    'AlreadyExportedError',
    'VersionConflictError',
    'NonMonotonicVersionError',
    'DependencyUnavailableError',
    'ExportNotRecordedError',
    'ConnectivityError',
    'ScopeConfigError',
]
