"""
Backend client capability interface.

Each supported key-value store provides one implementation. The interface is
deliberately thin and synchronous: everything backend-agnostic (key mapping,
retry, fallback, dispatch) lives above it.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from ..domain.events import ChangeEvent


class IBackendClient(ABC):
    """
    Synchronous primitives over an existing backend connection.

    Error contract:
        - not found is never an error: ``read`` returns None
        - ``BackendUnavailable`` for connectivity failures
        - ``ProtocolError`` for responses that cannot be interpreted
        - ``FatalWatchError`` only from ``blocking_watch``, for conditions
          that retrying cannot fix
    """

    backend_name: str = "backend"
    """Short backend identifier used in configuration keys."""

    leading_separator: bool = False
    """Whether backend paths start with the separator."""

    escape_segments: bool = False
    """Whether path segments are URL-quoted."""

    supports_list_size: bool = True
    """Whether child listing can be used for array size detection."""

    @abstractmethod
    def connect(self) -> None:
        """
        Open the native client.

        Raises:
            InitializationFailure: No hosts configured or connection impossible
        """
        pass

    @abstractmethod
    def close(self) -> None:
        """Release the native client."""
        pass

    @abstractmethod
    def is_connected(self) -> bool:
        """Whether a native client handle exists."""
        pass

    @abstractmethod
    def read(self, path: str) -> Optional[str]:
        """Fetch the value stored at ``path``; None if the node does not exist."""
        pass

    @abstractmethod
    def write(self, path: str, value: str) -> None:
        """Store ``value`` at ``path``, creating intermediate nodes as needed."""
        pass

    @abstractmethod
    def list_children(self, path: str) -> List[str]:
        """Immediate child names of ``path`` in backend order, without duplicates."""
        pass

    @abstractmethod
    def blocking_watch(self, path: str, resume_token: int) -> Optional[ChangeEvent]:
        """
        Block until ``path`` changes after ``resume_token`` or the wait expires.

        Args:
            path: Backend path to watch
            resume_token: Last observed ordering marker, 0 initially

        Returns:
            ChangeEvent when a change was observed, None on timeout
        """
        pass
