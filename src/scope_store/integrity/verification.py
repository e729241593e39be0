"""
Integrity verification for scopes.

Provides tamper detection and reference checks over everything
a scope has indexed.
"""

from typing import Callable, List, Set, Tuple

from ..errors import (
    InvalidObjectError,
    ObjectCorruptedError,
    ObjectNotFoundError,
    ReferenceMissingError,
    StorageError,
)
from ..model.component_id import format_versioned
from ..model.manifest import VersionManifest
from .hashing import compute_hash


def verify_object_integrity(data: bytes, expected_hash: str) -> None:
    """
    Verify that an object's bytes match its hash.

    Raises ObjectCorruptedError if mismatch detected.
    """
    actual_hash = compute_hash(data)
    if actual_hash != expected_hash:
        raise ObjectCorruptedError(expected_hash, expected_hash, actual_hash)


def extract_references(manifest: VersionManifest) -> Set[str]:
    """
    Extract all blob references from a manifest.

    Dependencies are version references, not object references,
    so they are not included.
    """
    return set(manifest.files.values())


def verify_references_exist(label: str, references: Set[str], exists_func: Callable[[str], bool]) -> None:
    """
    Verify that all referenced objects exist.

    Raises ReferenceMissingError if any reference is missing.
    """
    for ref_hash in sorted(references):
        if not exists_func(ref_hash):
            raise ReferenceMissingError(label, ref_hash)


def verify_manifest(scope, component_id, version, manifest_hash: str) -> Tuple[bool, List[str]]:
    """
    Verify one indexed version of a scope.

    Checks that the manifest object exists and matches its hash, that
    it describes the version it is indexed under, and that every
    blob it references exists and matches its hash.

    Returns (is_valid, errors) where errors is list of error messages.
    """
    label = format_versioned(component_id, version)
    errors = []

    try:
        data = scope.object_store.get(manifest_hash, verify=False)
        verify_object_integrity(data, manifest_hash)
        manifest = scope.object_store.get_manifest_object(manifest_hash, verify=False)
    except (ObjectNotFoundError, ObjectCorruptedError, InvalidObjectError, StorageError) as e:
        errors.append(f"Manifest of {label} is unreadable: {e}")
        return False, errors

    if manifest.key != (component_id, version):
        errors.append(
            f"Manifest {manifest_hash} describes "
            f"{format_versioned(manifest.component_id, manifest.version)}, indexed as {label}"
        )
        return False, errors

    refs = extract_references(manifest)

    try:
        verify_references_exist(label, refs, scope.object_store.has)
    except ReferenceMissingError as e:
        errors.append(str(e))
        return False, errors

    for ref_hash in sorted(refs):
        try:
            verify_object_integrity(scope.object_store.get(ref_hash, verify=False), ref_hash)
        except (ObjectNotFoundError, ObjectCorruptedError, StorageError) as e:
            errors.append(f"Blob {ref_hash} of {label} failed verification: {e}")

    return not errors, errors


def verify_scope(scope) -> dict:
    """
    Verify every indexed version of a scope.

    Returns dict with:
        - valid: bool
        - verified: number of versions that passed
        - errors: list of error messages
    """
    result = {
        'valid': True,
        'verified': 0,
        'errors': [],
    }

    for component_id, versions in scope.version_graph.all_manifest_hashes().items():
        for version, manifest_hash in sorted(versions.items()):
            is_valid, errors = verify_manifest(scope, component_id, version, manifest_hash)
            if is_valid:
                result['verified'] += 1
            else:
                result['valid'] = False
                result['errors'].extend(errors)

    return result


def detect_tampering(scope) -> dict:
    """
    Detect tampering across all stored objects.

    Every object file is re-hashed and compared with its name.

    Returns dict with:
        - tampered: list of tampered object hashes
        - verified: count of verified objects
    """
    result = {
        'tampered': [],
        'verified': 0,
    }

    for obj_hash in sorted(scope.object_store.list_all_objects()):
        try:
            verify_object_integrity(scope.object_store.get(obj_hash, verify=False), obj_hash)
            result['verified'] += 1
        except (ObjectCorruptedError, StorageError):
            result['tampered'].append(obj_hash)

    return result
