"""
Component identity model.

A component is addressed by (scope, namespace, name). The scope is
empty until the first successful export binds it.
"""

import re
from typing import Optional, Tuple

from ..errors import InvalidComponentIdError
from .version import Version

VERSION_DELIMITER = '@'

_SEGMENT_PATTERN = re.compile(r'^[A-Za-z0-9][A-Za-z0-9._-]*$')


class ComponentId:
    """
    Immutable component identity.

    String forms:
        name
        namespace/name
        scope/namespace/name
    """

    __slots__ = ('scope', 'namespace', 'name')

    def __init__(self, name: str, namespace: Optional[str] = None, scope: Optional[str] = None):
        for label, segment in (('name', name), ('namespace', namespace), ('scope', scope)):
            if segment is None and label != 'name':
                continue
            if not isinstance(segment, str) or not _SEGMENT_PATTERN.match(segment):
                raise InvalidComponentIdError(f"invalid {label} segment '{segment}'")
        object.__setattr__(self, 'name', name)
        object.__setattr__(self, 'namespace', namespace)
        object.__setattr__(self, 'scope', scope)

    def __setattr__(self, name, value):
        raise AttributeError("ComponentId is immutable")

    @classmethod
    def parse(cls, text: str) -> 'ComponentId':
        """
        Parse a component id string without a version.

        Two segments are read as namespace/name, three as scope/namespace/name.
        """
        if not isinstance(text, str) or not text.strip():
            raise InvalidComponentIdError("component id cannot be empty")
        if VERSION_DELIMITER in text:
            raise InvalidComponentIdError(
                f"'{text}' contains a version; use parse_versioned"
            )

        parts = text.strip().strip('/').split('/')
        if len(parts) == 1:
            return cls(parts[0])
        if len(parts) == 2:
            return cls(parts[1], namespace=parts[0])
        if len(parts) == 3:
            return cls(parts[2], namespace=parts[1], scope=parts[0])
        raise InvalidComponentIdError(f"too many segments in '{text}'")

    @classmethod
    def parse_versioned(cls, text: str) -> Tuple['ComponentId', Optional[Version]]:
        """Parse 'id' or 'id@version'."""
        if VERSION_DELIMITER not in text:
            return cls.parse(text), None
        id_text, _, version_text = text.rpartition(VERSION_DELIMITER)
        return cls.parse(id_text), Version.parse(version_text)

    @property
    def is_bound(self) -> bool:
        return self.scope is not None

    def with_scope(self, scope: str) -> 'ComponentId':
        """Return a copy bound to the given scope."""
        return ComponentId(self.name, namespace=self.namespace, scope=scope)

    def unbound(self) -> 'ComponentId':
        return ComponentId(self.name, namespace=self.namespace)

    def local_name(self) -> str:
        """The namespace/name part, without scope."""
        if self.namespace:
            return f"{self.namespace}/{self.name}"
        return self.name

    def matches(self, other: 'ComponentId') -> bool:
        """
        Check whether a user-supplied id refers to this component.

        An unbound query matches any scope binding of the same
        namespace/name; a bound query must match exactly.
        """
        if other.scope is not None and other.scope != self.scope:
            return False
        return other.namespace == self.namespace and other.name == self.name

    def to_dict(self) -> dict:
        return {
            'scope': self.scope,
            'namespace': self.namespace,
            'name': self.name,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'ComponentId':
        if not isinstance(data, dict) or 'name' not in data:
            raise InvalidComponentIdError(f"malformed component id record: {data!r}")
        return cls(data['name'], namespace=data.get('namespace'), scope=data.get('scope'))

    def _key(self) -> tuple:
        return (self.scope or '', self.namespace or '', self.name)

    def __eq__(self, other) -> bool:
        if not isinstance(other, ComponentId):
            return NotImplemented
        return self._key() == other._key()

    def __lt__(self, other) -> bool:
        if not isinstance(other, ComponentId):
            return NotImplemented
        return self._key() < other._key()

    def __hash__(self) -> int:
        return hash(self._key())

    def __str__(self) -> str:
        if self.scope:
            return f"{self.scope}/{self.namespace or ''}/{self.name}".replace('//', '/')
        return self.local_name()

    def __repr__(self) -> str:
        return f"ComponentId('{self}')"


def format_versioned(component_id: ComponentId, version: Version) -> str:
    """Render 'id@version'."""
    return f"{component_id}{VERSION_DELIMITER}{version}"
