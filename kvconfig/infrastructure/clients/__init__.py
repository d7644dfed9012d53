"""
Backend client adapters.

Each adapter maps the backend-neutral primitives onto one native client
library and translates that library's errors into the kvconfig exception
taxonomy.
"""

from .base import BaseBackendClient, ClientMetrics, ClientStatus
from .consul_client import ConsulBackendClient
from .etcd_client import EtcdBackendClient
from .zookeeper_client import ZookeeperBackendClient

__all__ = [
    "BaseBackendClient",
    "ClientMetrics",
    "ClientStatus",
    "ConsulBackendClient",
    "EtcdBackendClient",
    "ZookeeperBackendClient",
]
