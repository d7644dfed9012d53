"""
kvconfig - remote key-value configuration sources.

Serves configuration from Consul, etcd or ZooKeeper under a per-deployment
namespace, watches keys for changes and hands them to a dispatcher, falling
back to other configuration sources when a watched key disappears.
"""

__version__ = "1.0.0"

# Public API exports
from .core.domain.namespace import DeploymentMetadata
from .core.domain.exceptions import (
    KVConfigError, BackendUnavailable, ProtocolError, FatalWatchError, InitializationFailure
)
from .core.interfaces.sources import IConfigurationSource, IConfigurationSourceProvider
from .core.services.dispatcher import ConfigurationDispatcher
from .infrastructure.config.accessor import ConfigurationUtil
from .application.source import ConfigurationSource
from .application.extensions import get_provider, available_providers

__all__ = [
    "DeploymentMetadata",
    "KVConfigError",
    "BackendUnavailable",
    "ProtocolError",
    "FatalWatchError",
    "InitializationFailure",
    "IConfigurationSource",
    "IConfigurationSourceProvider",
    "ConfigurationDispatcher",
    "ConfigurationUtil",
    "ConfigurationSource",
    "get_provider",
    "available_providers",
]
