"""
Exception taxonomy for configuration sources.

Backend adapters translate native client errors into these types so the
watch engine and the facade can decide uniformly whether to return an absent
value, back off, re-arm or give up.
"""

from typing import Optional


class KVConfigError(Exception):
    """Base class for all configuration source errors."""

    def __init__(self, message: str, path: Optional[str] = None) -> None:
        super().__init__(message)
        self.path = path


class BackendUnavailable(KVConfigError):
    """Network or connection failure talking to the backend."""
    pass


class ProtocolError(KVConfigError):
    """The backend answered with something the adapter cannot interpret."""
    pass


class FatalWatchError(KVConfigError):
    """Unrecoverable watch condition; the key is not watched any further."""
    pass


class InitializationFailure(KVConfigError):
    """No hosts configured, or the initial connection could not be made."""
    pass
