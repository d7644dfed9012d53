"""
Host-facing lifecycle of a configuration source.

A source connects once, keeps one watch cycle per subscribed key running and
closes its backend connection on shutdown. Hosts drive it through
:class:`IManagedSource` and read its state back as a health report.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict


class SourceStatus(Enum):
    """Coarse state reported in a source health report."""
    STOPPED = "stopped"
    RUNNING = "running"
    DEGRADED = "degraded"


def health_report(status: SourceStatus, details: Dict[str, Any]) -> Dict[str, Any]:
    """Build the health report shape shared by every source."""
    return {
        'healthy': status == SourceStatus.RUNNING,
        'status': status.value,
        'details': details
    }


class IManagedSource(ABC):
    """A configuration source whose backend session is owned by the host."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Source name, e.g. ``consul-configuration-source``."""

    @abstractmethod
    async def start(self) -> None:
        """Resolve the namespace and connect to the backend."""

    @abstractmethod
    async def stop(self) -> None:
        """Cancel running watch cycles and close the backend connection."""

    @abstractmethod
    async def check_health(self) -> Dict[str, Any]:
        """
        Report the source state.

        Returns:
            A :func:`health_report` dict. ``details`` carries at least the
            backend name, the resolved namespace and the number of watches.
        """
