"""
Namespace resolution.

All keys of one deployment live under a namespace resolved once when a
configuration source is initialised. Resolution order, highest first:

1. ``kvconfig.config.namespace`` (applies to every backend)
2. ``kvconfig.config.<backend>.namespace``
3. ``environments/<env>/services/<name>/<version>/config`` if a service
   name is known, else ``environments/<env>/services/config``

Environment, service name and version come from the deployment metadata and
fall back to ``kvconfig.env``, ``kvconfig.service-name`` and
``kvconfig.version`` in already-loaded configuration.
"""

from dataclasses import dataclass
from typing import Optional

from ..interfaces.sources import IConfigAccessor

DEFAULT_ENVIRONMENT = "dev"
DEFAULT_VERSION = "1.0.0"
DEFAULT_START_RETRY_DELAY_MS = 500
DEFAULT_MAX_RETRY_DELAY_MS = 900000

CONFIG_PREFIX = "kvconfig.config"


@dataclass(frozen=True)
class DeploymentMetadata:
    """Identity of the running deployment as known to the host."""
    env: Optional[str] = None
    name: Optional[str] = None
    version: Optional[str] = None


def _first_present(*candidates: Optional[str]) -> Optional[str]:
    for candidate in candidates:
        if candidate:
            return candidate
    return None


def resolve_namespace(
    metadata: DeploymentMetadata,
    accessor: IConfigAccessor,
    backend: str
) -> str:
    """
    Resolve the namespace for a backend.

    Args:
        metadata: Deployment metadata supplied by the host
        accessor: Already-loaded configuration
        backend: Backend name used for the backend-specific override

    Returns:
        Non-empty namespace string
    """
    universal = accessor.get(f"{CONFIG_PREFIX}.namespace")
    if universal:
        return universal

    specific = accessor.get(f"{CONFIG_PREFIX}.{backend}.namespace")
    if specific:
        return specific

    env = _first_present(metadata.env, accessor.get("kvconfig.env")) or DEFAULT_ENVIRONMENT
    service_name = _first_present(metadata.name, accessor.get("kvconfig.service-name"))

    if service_name:
        version = _first_present(
            metadata.version, accessor.get("kvconfig.version")) or DEFAULT_VERSION
        return f"environments/{env}/services/{service_name}/{version}/config"

    return f"environments/{env}/services/config"


def get_start_retry_delay_ms(accessor: IConfigAccessor, backend: str) -> int:
    """Initial watch retry delay; the universal setting wins over the backend one."""
    universal = accessor.get_integer(f"{CONFIG_PREFIX}.start-retry-delay-ms")
    if universal is not None:
        return universal
    specific = accessor.get_integer(f"{CONFIG_PREFIX}.{backend}.start-retry-delay-ms")
    return specific if specific is not None else DEFAULT_START_RETRY_DELAY_MS


def get_max_retry_delay_ms(accessor: IConfigAccessor, backend: str) -> int:
    """Upper bound of the watch retry delay; the universal setting wins."""
    universal = accessor.get_integer(f"{CONFIG_PREFIX}.max-retry-delay-ms")
    if universal is not None:
        return universal
    specific = accessor.get_integer(f"{CONFIG_PREFIX}.{backend}.max-retry-delay-ms")
    return specific if specific is not None else DEFAULT_MAX_RETRY_DELAY_MS
