"""
Core interfaces defining the contracts between hosts, the configuration layer,
configuration sources and backend clients.
"""

from .lifecycle import IManagedSource, SourceStatus, health_report
from .sources import (
    IConfigAccessor, IChangeDispatcher, IConfigurationSource, IConfigurationSourceProvider,
    CONFIG_ORDINAL
)
from .backends import IBackendClient

__all__ = [
    "IManagedSource",
    "SourceStatus",
    "health_report",
    "IConfigAccessor",
    "IChangeDispatcher",
    "IConfigurationSource",
    "IConfigurationSourceProvider",
    "CONFIG_ORDINAL",
    "IBackendClient",
]
