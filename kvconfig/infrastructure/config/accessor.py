"""
Generic configuration resolution layer.

:class:`ConfigurationUtil` aggregates configuration sources by ordinal
(highest first). It always contains a local source built from files and
environment variables; remote sources are added once initialised. Lookups
never raise: a key missing everywhere resolves to None.

It also serves as the fallback provider for watches: when a watched remote
node disappears, the value is looked up here, where the remote source now
answers None and the next source in order takes over.
"""

import logging
from typing import Any, Callable, Dict, List, Optional, Union

from ...core.domain.keys import detect_list_size
from ...core.domain.values import (
    parse_boolean, parse_double, parse_float, parse_integer, parse_long, serialize_value
)
from ...core.interfaces.sources import (
    CONFIG_ORDINAL, IChangeDispatcher, IConfigAccessor, IConfigurationSource
)
from ...core.services.dispatcher import ConfigurationDispatcher
from .loader import ConfigLoader

logger = logging.getLogger(__name__)

LOCAL_ORDINAL = 100


class LocalConfigurationSource(IConfigurationSource):
    """In-memory source over flat keys loaded from files and environment."""

    def __init__(self, values: Optional[Dict[str, str]] = None) -> None:
        self._values: Dict[str, str] = dict(values or {})

    def init(self, dispatcher: Optional[IChangeDispatcher] = None) -> None:
        pass

    def get(self, key: str) -> Optional[str]:
        return self._values.get(key)

    def get_boolean(self, key: str) -> Optional[bool]:
        return parse_boolean(self.get(key))

    def get_integer(self, key: str) -> Optional[int]:
        return parse_integer(self.get(key))

    def get_long(self, key: str) -> Optional[int]:
        return parse_long(self.get(key))

    def get_double(self, key: str) -> Optional[float]:
        return parse_double(self.get(key))

    def get_float(self, key: str) -> Optional[float]:
        return parse_float(self.get(key))

    def get_list_size(self, key: str) -> Optional[int]:
        prefix = f"{key}["
        children = set()
        for flat_key in self._values:
            if flat_key.startswith(prefix):
                closing = flat_key.find("]", len(prefix))
                if closing != -1:
                    children.add(flat_key[len(prefix):closing])
        return detect_list_size(children)

    def get_map_keys(self, key: str) -> Optional[List[str]]:
        prefix = f"{key}." if key else ""
        names: Dict[str, None] = {}
        for flat_key in self._values:
            if not flat_key.startswith(prefix):
                continue
            remainder = flat_key[len(prefix):]
            name = remainder.replace("[", ".").split(".", 1)[0]
            if name:
                names[name] = None
        return list(names) or None

    async def watch(self, key: str) -> None:
        pass

    def set(self, key: str, value: Union[str, bool, int, float]) -> None:
        self._values[key] = serialize_value(value)

    @property
    def ordinal(self) -> int:
        ordinal = parse_integer(self._values.get(CONFIG_ORDINAL))
        return ordinal if ordinal is not None else LOCAL_ORDINAL


class ConfigurationUtil(IConfigAccessor):
    """
    Ordered collection of configuration sources with typed lookups.

    Args:
        values: Flat local configuration
        dispatcher: Dispatcher shared with every registered source
    """

    def __init__(
        self,
        values: Optional[Dict[str, str]] = None,
        dispatcher: Optional[ConfigurationDispatcher] = None
    ) -> None:
        self._local = LocalConfigurationSource(values)
        self._sources: List[IConfigurationSource] = [self._local]
        self._dispatcher = dispatcher or ConfigurationDispatcher()

    @classmethod
    def from_file(cls, config_file: Optional[str] = None) -> 'ConfigurationUtil':
        """Build from a configuration file plus ``KVCONFIG_*`` environment variables."""
        return cls(ConfigLoader().load_config(config_file))

    @property
    def dispatcher(self) -> ConfigurationDispatcher:
        return self._dispatcher

    @property
    def local(self) -> LocalConfigurationSource:
        return self._local

    @property
    def sources(self) -> List[IConfigurationSource]:
        return list(self._sources)

    def add_source(self, source: IConfigurationSource) -> None:
        """Register a source; sources are consulted in descending ordinal order."""
        if source in self._sources:
            return
        self._sources.append(source)
        self._sources.sort(key=self._safe_ordinal, reverse=True)
        logger.debug(f"Registered configuration source {type(source).__name__}")

    def get(self, key: str) -> Optional[str]:
        for source in self._sources:
            value = self._query(source, key, source.get)
            if value is not None:
                return value
        return None

    def get_boolean(self, key: str) -> Optional[bool]:
        return parse_boolean(self.get(key))

    def get_integer(self, key: str) -> Optional[int]:
        return parse_integer(self.get(key))

    def get_long(self, key: str) -> Optional[int]:
        return parse_long(self.get(key))

    def get_double(self, key: str) -> Optional[float]:
        return parse_double(self.get(key))

    def get_float(self, key: str) -> Optional[float]:
        return parse_float(self.get(key))

    def get_list_size(self, key: str) -> Optional[int]:
        for source in self._sources:
            size = self._query(source, key, source.get_list_size)
            if size is not None:
                return size
        return None

    def get_map_keys(self, key: str) -> Optional[List[str]]:
        for source in self._sources:
            keys = self._query(source, key, source.get_map_keys)
            if keys:
                return keys
        return None

    def set(self, key: str, value: Union[str, bool, int, float]) -> None:
        """Set a value in the local source."""
        self._local.set(key, value)

    async def subscribe(self, key: str, listener: Callable[[str, str], Any]) -> str:
        """
        Listen for changes of a key and start watching it in every source.

        Returns:
            Dispatcher subscription ID
        """
        subscription_id = self._dispatcher.subscribe(listener, key)
        for source in self._sources:
            try:
                await source.watch(key)
            except Exception as e:
                logger.error(f"Cannot watch key {key} in {type(source).__name__}: {e}")
        return subscription_id

    def unsubscribe(self, subscription_id: str) -> bool:
        """Stop delivering changes to a listener; watches keep running."""
        return self._dispatcher.unsubscribe(subscription_id)

    @staticmethod
    def _query(source: IConfigurationSource, key: str, method: Callable[[str], Any]) -> Any:
        try:
            return method(key)
        except Exception as e:
            logger.error(f"Configuration source {type(source).__name__} failed for {key}: {e}")
            return None

    @staticmethod
    def _safe_ordinal(source: IConfigurationSource) -> int:
        try:
            return source.ordinal
        except Exception as e:
            logger.warning(f"Cannot read ordinal of {type(source).__name__}: {e}")
            return 0
