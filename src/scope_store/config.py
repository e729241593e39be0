"""
Runtime configuration for the scope store.

All environment variable parsing happens here. Other modules receive
a typed config object instead of reading the environment.
"""

from dataclasses import dataclass
import os

from .errors import ScopeConfigError

DEFAULT_FETCH_TIMEOUT = 30.0
DEFAULT_FETCH_WORKERS = 4

_TRUE_VALUES = {'1', 'true', 'yes', 'on'}
_FALSE_VALUES = {'0', 'false', 'no', 'off'}


@dataclass(frozen=True)
class ScopeStoreConfig:
    """
    Validated runtime configuration.

    Attributes:
        fetch_timeout: seconds a single dependency fetch may take
        fetch_workers: number of concurrent fetches during resolution
        consult_session_peers: whether scopes already consulted in an
            export session are tried after a dependency's origin scope
        verify_reads: whether objects are re-hashed when read
    """

    fetch_timeout: float = DEFAULT_FETCH_TIMEOUT
    fetch_workers: int = DEFAULT_FETCH_WORKERS
    consult_session_peers: bool = True
    verify_reads: bool = True

    def __post_init__(self):
        if self.fetch_timeout <= 0:
            raise ScopeConfigError(
                f"fetch_timeout must be positive, got {self.fetch_timeout}"
            )
        if self.fetch_workers < 1:
            raise ScopeConfigError(
                f"fetch_workers must be at least 1, got {self.fetch_workers}"
            )

    @classmethod
    def from_env(cls) -> 'ScopeStoreConfig':
        """
        Build config from process environment variables.

        Raises ScopeConfigError if a value cannot be parsed.
        """
        return cls(
            fetch_timeout=_parse_float(
                'SCOPE_STORE_FETCH_TIMEOUT', DEFAULT_FETCH_TIMEOUT
            ),
            fetch_workers=_parse_int(
                'SCOPE_STORE_FETCH_WORKERS', DEFAULT_FETCH_WORKERS
            ),
            consult_session_peers=_parse_bool('SCOPE_STORE_CONSULT_PEERS', True),
            verify_reads=_parse_bool('SCOPE_STORE_VERIFY_READS', True),
        )


def _parse_float(name: str, default: float) -> float:
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return float(raw_value)
    except ValueError as e:
        raise ScopeConfigError(
            f"Invalid {name} value: expected a number of seconds, got '{raw_value}'"
        ) from e


def _parse_int(name: str, default: int) -> int:
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    try:
        return int(raw_value)
    except ValueError as e:
        raise ScopeConfigError(
            f"Invalid {name} value: expected an integer, got '{raw_value}'"
        ) from e


def _parse_bool(name: str, default: bool) -> bool:
    raw_value = os.getenv(name)
    if raw_value is None:
        return default
    value = raw_value.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ScopeConfigError(
        f"Invalid {name} value: expected true or false, got '{raw_value}'"
    )
