"""
Canonical encoding for manifests and index records.

Every implementation that reads or writes a scope must produce
the same bytes for the same manifest, so encoding rules are fixed.
"""

import json
from typing import Any


def canonical_json(obj: Any) -> bytes:
    """
    Encode an object to canonical JSON bytes.
    
    Rules:
    - Keys sorted alphabetically
    - No whitespace
    - UTF-8 encoding
    - NaN and infinity rejected
    - No trailing newline
    
    Same input always produces same output.
    """
    return canonical_json_str(obj).encode('utf-8')


def canonical_json_str(obj: Any) -> str:
    """Encode an object to a canonical JSON string."""
    return json.dumps(
        obj,
        sort_keys=True,
        separators=(',', ':'),
        ensure_ascii=False,
        allow_nan=False,
    )


def load_canonical(data: bytes) -> Any:
    """
    Decode canonical JSON bytes.

    Raises ValueError if the bytes are not valid UTF-8 JSON.
    """
    try:
        return json.loads(data.decode('utf-8'))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ValueError(f"Not a canonical JSON document: {e}") from e
