"""
Version model.

Versions are dotted ordinals (major.minor.patch) scoped to one component.
"""

from functools import total_ordering
from typing import Union

from ..errors import InvalidComponentIdError

FIRST_VERSION = '0.0.1'


@total_ordering
class Version:
    """
    Immutable component version.

    A bare positive integer N is accepted on parse and read as 0.0.N.
    """

    __slots__ = ('major', 'minor', 'patch')

    def __init__(self, major: int, minor: int, patch: int):
        if min(major, minor, patch) < 0:
            raise InvalidComponentIdError(
                f"version parts must be non-negative: {major}.{minor}.{patch}"
            )
        if (major, minor, patch) == (0, 0, 0):
            raise InvalidComponentIdError("version 0.0.0 is not a valid version")
        object.__setattr__(self, 'major', major)
        object.__setattr__(self, 'minor', minor)
        object.__setattr__(self, 'patch', patch)

    def __setattr__(self, name, value):
        raise AttributeError("Version is immutable")

    @classmethod
    def parse(cls, text: Union[str, int, 'Version']) -> 'Version':
        """
        Parse a version string.

        Raises InvalidComponentIdError if text is not a version.
        """
        if isinstance(text, Version):
            return text
        if isinstance(text, int):
            return cls(0, 0, text)

        raw = str(text).strip()
        parts = raw.split('.')
        if len(parts) == 1:
            parts = ['0', '0', parts[0]]
        if len(parts) != 3 or not all(p.isdigit() for p in parts):
            raise InvalidComponentIdError(f"invalid version '{text}'")
        return cls(int(parts[0]), int(parts[1]), int(parts[2]))

    @classmethod
    def first(cls) -> 'Version':
        return cls.parse(FIRST_VERSION)

    def bump_patch(self) -> 'Version':
        """Return the next patch version."""
        return Version(self.major, self.minor, self.patch + 1)

    def as_tuple(self) -> tuple:
        return (self.major, self.minor, self.patch)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self.as_tuple() == other.as_tuple()

    def __lt__(self, other) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self.as_tuple() < other.as_tuple()

    def __hash__(self) -> int:
        return hash(self.as_tuple())

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"

    def __repr__(self) -> str:
        return f"Version('{self}')"
