"""
Configuration source providers.

A host discovers providers by name, initialises them with its deployment
metadata and already-loaded configuration, and registers the source each
one builds.
"""

import logging
from abc import abstractmethod
from typing import Dict, List, Optional, Type

from ..core.domain.namespace import DeploymentMetadata
from ..core.interfaces.backends import IBackendClient
from ..core.interfaces.sources import (
    IConfigAccessor, IConfigurationSource, IConfigurationSourceProvider
)
from ..infrastructure.clients.consul_client import ConsulBackendClient
from ..infrastructure.clients.etcd_client import EtcdBackendClient
from ..infrastructure.clients.zookeeper_client import ZookeeperBackendClient
from ..infrastructure.config.models import ConsulSettings, EtcdSettings, ZookeeperSettings
from .source import ConfigurationSource

logger = logging.getLogger(__name__)


class BackendConfigExtension(IConfigurationSourceProvider):
    """Provider building a :class:`ConfigurationSource` over one backend."""

    display_name = "Backend"

    def __init__(self) -> None:
        self._source: Optional[ConfigurationSource] = None

    @property
    def name(self) -> str:
        return self.display_name.lower()

    def init(self, metadata: DeploymentMetadata, accessor: IConfigAccessor) -> None:
        logger.info(f"Initialising {self.display_name} configuration source.")
        self._source = ConfigurationSource(self.create_client(accessor), metadata, accessor)

    def load(self) -> None:
        pass

    def get_configuration_source(self) -> Optional[IConfigurationSource]:
        return self._source

    @abstractmethod
    def create_client(self, accessor: IConfigAccessor) -> IBackendClient:
        """Backend client configured from local configuration."""
        pass


class ConsulConfigExtension(BackendConfigExtension):
    display_name = "Consul"

    def create_client(self, accessor: IConfigAccessor) -> IBackendClient:
        return ConsulBackendClient(ConsulSettings.from_accessor(accessor))


class EtcdConfigExtension(BackendConfigExtension):
    display_name = "etcd"

    def create_client(self, accessor: IConfigAccessor) -> IBackendClient:
        return EtcdBackendClient(EtcdSettings.from_accessor(accessor))


class ZookeeperConfigExtension(BackendConfigExtension):
    display_name = "Zookeeper"

    def create_client(self, accessor: IConfigAccessor) -> IBackendClient:
        return ZookeeperBackendClient(ZookeeperSettings.from_accessor(accessor))


_PROVIDERS: Dict[str, Type[BackendConfigExtension]] = {
    "consul": ConsulConfigExtension,
    "etcd": EtcdConfigExtension,
    "zookeeper": ZookeeperConfigExtension,
}


def available_providers() -> List[str]:
    """Names accepted by :func:`get_provider`."""
    return sorted(_PROVIDERS)


def get_provider(name: str) -> BackendConfigExtension:
    """
    Create a provider by backend name.

    Raises:
        ValueError: If no provider is registered under ``name``
    """
    provider_class = _PROVIDERS.get(name.lower())
    if provider_class is None:
        raise ValueError(
            f"Unknown configuration backend {name!r}, expected one of: "
            f"{', '.join(available_providers())}")
    return provider_class()
