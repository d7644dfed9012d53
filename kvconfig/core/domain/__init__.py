"""
Domain models for configuration sources.

Pure logic without I/O: key/path translation, namespace resolution, value
parsing, watch state and the error taxonomy.
"""

from .events import ChangeEvent
from .exceptions import (
    KVConfigError, BackendUnavailable, ProtocolError, FatalWatchError, InitializationFailure
)
from .keys import KeyCodec, split_key, join_segments, detect_list_size
from .values import (
    parse_boolean, parse_integer, parse_long, parse_double, parse_float, serialize_value
)
from .namespace import DeploymentMetadata, resolve_namespace
from .watch import Watch, WatchState, RetryBackoff

__all__ = [
    "ChangeEvent",
    "KVConfigError",
    "BackendUnavailable",
    "ProtocolError",
    "FatalWatchError",
    "InitializationFailure",
    "KeyCodec",
    "split_key",
    "join_segments",
    "detect_list_size",
    "parse_boolean",
    "parse_integer",
    "parse_long",
    "parse_double",
    "parse_float",
    "serialize_value",
    "DeploymentMetadata",
    "resolve_namespace",
    "Watch",
    "WatchState",
    "RetryBackoff",
]
