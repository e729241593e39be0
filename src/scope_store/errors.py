"""
Error types for scope store operations.

All errors are explicit and never silent.
"""


class ScopeStoreError(Exception):
    """Base exception for all scope store errors."""
    pass


class ObjectNotFoundError(ScopeStoreError):
    """Raised when a requested object does not exist."""

    def __init__(self, object_hash: str):
        self.object_hash = object_hash
        super().__init__(f"Object not found: {object_hash}")


class ObjectCorruptedError(ScopeStoreError):
    """Raised when an object's content does not match its hash."""

    def __init__(self, object_hash: str, expected: str, actual: str):
        self.object_hash = object_hash
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Object corrupted: {object_hash}\n"
            f"Expected hash: {expected}\n"
            f"Actual hash: {actual}"
        )


class InvalidObjectError(ScopeStoreError):
    """Raised when an object is malformed or invalid."""

    def __init__(self, reason: str, object_hash: str = None):
        self.reason = reason
        self.object_hash = object_hash
        msg = f"Invalid object: {reason}"
        if object_hash:
            msg += f" (hash: {object_hash})"
        super().__init__(msg)


class ReferenceMissingError(ScopeStoreError):
    """Raised when a manifest references a missing blob."""

    def __init__(self, referencing: str, missing_hash: str):
        self.referencing = referencing
        self.missing_hash = missing_hash
        super().__init__(
            f"{referencing} references missing object {missing_hash}"
        )


class TamperDetectedError(ScopeStoreError):
    """Raised when tampering is detected in the object store."""

    def __init__(self, details: str):
        self.details = details
        super().__init__(f"Tampering detected: {details}")


class GarbageCollectionError(ScopeStoreError):
    """Raised when garbage collection encounters an error."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Garbage collection error: {reason}")


class StorageError(ScopeStoreError):
    """Raised when filesystem operations fail."""

    def __init__(self, operation: str, path: str, cause: Exception = None):
        self.operation = operation
        self.path = path
        self.cause = cause
        msg = f"Storage error during {operation}: {path}"
        if cause:
            msg += f"\nCause: {cause}"
        super().__init__(msg)


class InvalidComponentIdError(ScopeStoreError):
    """Raised when a component id or version string cannot be parsed."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid component id: {reason}")


class ManifestNotFoundError(ScopeStoreError):
    """Raised when a scope has no manifest for a component version."""

    def __init__(self, component: str, version: str, scope: str = None):
        self.component = component
        self.version = version
        self.scope = scope
        msg = f"component was not found: {component}@{version}"
        if scope:
            msg += f" (scope: {scope})"
        super().__init__(msg)


class AlreadyExportedError(ScopeStoreError):
    """Raised when an export targets a version the scope already holds."""

    def __init__(self, component: str, version: str, scope: str):
        self.component = component
        self.version = version
        self.scope = scope
        super().__init__(
            f"{component}@{version} has been already exported to {scope}"
        )


class VersionConflictError(ScopeStoreError):
    """Raised when two different contents claim the same version."""

    def __init__(self, component: str, version: str, existing: str, incoming: str):
        self.component = component
        self.version = version
        self.existing = existing
        self.incoming = incoming
        super().__init__(
            f"Version conflict for {component}@{version}\n"
            f"Existing manifest: {existing}\n"
            f"Incoming manifest: {incoming}"
        )


class NonMonotonicVersionError(ScopeStoreError):
    """Raised when an owned component receives a version not above its latest."""

    def __init__(self, component: str, version: str, latest: str):
        self.component = component
        self.version = version
        self.latest = latest
        super().__init__(
            f"Version {version} of {component} is not greater than "
            f"the latest version {latest}"
        )


class DependencyUnavailableError(ScopeStoreError):
    """Raised when a required version cannot be located at any known source."""

    def __init__(self, component: str, version: str, last_source: str = None, cause: Exception = None):
        self.component = component
        self.version = version
        self.last_source = last_source
        self.cause = cause
        msg = (
            f"Dependency unavailable: {component}@{version} "
            f"(last source tried: {last_source or 'none'})"
        )
        if cause:
            msg += f"\nCause: {cause}"
        super().__init__(msg)


class ExportNotRecordedError(ScopeStoreError):
    """Raised when the target committed an export but the local scope did not record it."""

    def __init__(self, scope: str, result=None, cause: Exception = None):
        self.scope = scope
        self.result = result
        self.cause = cause
        msg = f"Export to {scope} was committed but not recorded locally"
        if cause:
            msg += f"\nCause: {cause}"
        super().__init__(msg)


class ConnectivityError(ScopeStoreError):
    """Raised by a transport when a scope cannot be reached."""

    def __init__(self, scope: str, reason: str):
        self.scope = scope
        self.reason = reason
        super().__init__(f"Cannot reach scope {scope}: {reason}")


class ScopeConfigError(ScopeStoreError):
    """Raised for invalid runtime configuration."""
    pass
