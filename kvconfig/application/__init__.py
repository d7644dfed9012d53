"""
Application layer: the remote configuration source and its providers.
"""

from .extensions import (
    BackendConfigExtension, ConsulConfigExtension, EtcdConfigExtension,
    ZookeeperConfigExtension, available_providers, get_provider
)
from .source import ConfigurationSource

__all__ = [
    "BackendConfigExtension",
    "ConsulConfigExtension",
    "EtcdConfigExtension",
    "ZookeeperConfigExtension",
    "available_providers",
    "get_provider",
    "ConfigurationSource",
]
