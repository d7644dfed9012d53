"""
Configuration source interfaces.

These are the narrow contracts between a host application, the generic
configuration layer that aggregates sources, and the remote sources
themselves.
"""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, List, Optional, Union

if TYPE_CHECKING:
    from ..domain.namespace import DeploymentMetadata

CONFIG_ORDINAL = "config_ordinal"


class IConfigAccessor(ABC):
    """Read access to already-loaded configuration, used during initialisation."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Raw string value for a flat key."""
        pass

    @abstractmethod
    def get_boolean(self, key: str) -> Optional[bool]:
        """Boolean value for a flat key."""
        pass

    @abstractmethod
    def get_integer(self, key: str) -> Optional[int]:
        """Integer value for a flat key."""
        pass


class IChangeDispatcher(ABC):
    """Receives change notifications and forwards them to bound consumers."""

    @abstractmethod
    async def notify_change(self, key: str, value: str) -> None:
        """
        Propagate a new value for a flat key.

        Args:
            key: Flat configuration key
            value: New value
        """
        pass


class IConfigurationSource(ABC):
    """A source of configuration values, possibly able to watch for changes."""

    @abstractmethod
    def init(self, dispatcher: Optional[IChangeDispatcher] = None) -> None:
        """Prepare the source; must not raise for steady-state problems."""
        pass

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    def get_boolean(self, key: str) -> Optional[bool]:
        pass

    @abstractmethod
    def get_integer(self, key: str) -> Optional[int]:
        pass

    @abstractmethod
    def get_long(self, key: str) -> Optional[int]:
        pass

    @abstractmethod
    def get_double(self, key: str) -> Optional[float]:
        pass

    @abstractmethod
    def get_float(self, key: str) -> Optional[float]:
        pass

    @abstractmethod
    def get_list_size(self, key: str) -> Optional[int]:
        """Number of contiguous array elements under a key."""
        pass

    @abstractmethod
    def get_map_keys(self, key: str) -> Optional[List[str]]:
        """Immediate child names under a key."""
        pass

    @abstractmethod
    async def watch(self, key: str) -> None:
        """Start watching a key; repeated calls for the same key are no-ops."""
        pass

    @abstractmethod
    def set(self, key: str, value: Union[str, bool, int, float]) -> None:
        pass

    @property
    @abstractmethod
    def ordinal(self) -> int:
        """Priority among sources, higher wins."""
        pass


class IConfigurationSourceProvider(ABC):
    """
    Host-facing plugin boundary.

    The host discovers providers, initialises them with its deployment
    metadata and asks them for the source they built.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name, e.g. ``consul``."""
        pass

    @abstractmethod
    def init(self, metadata: "DeploymentMetadata", accessor: IConfigAccessor) -> None:
        """Construct the configuration source."""
        pass

    @abstractmethod
    def load(self) -> None:
        """Hook invoked after every provider has been initialised."""
        pass

    @abstractmethod
    def get_configuration_source(self) -> Optional[IConfigurationSource]:
        """The source built by ``init``, if any."""
        pass
