"""
Remote configuration source.

Binds a backend client to the key codec and watch engine and exposes the
host-facing configuration source contract. This is the layer where backend
errors stop: reads degrade to an absent value and writes to a logged no-op,
so a backend outage never propagates into application code.
"""

import logging
from typing import Any, Dict, List, Optional, Union

from ..core.domain.exceptions import InitializationFailure, KVConfigError
from ..core.domain.keys import KeyCodec, detect_list_size
from ..core.domain.namespace import DeploymentMetadata, resolve_namespace
from ..core.domain.values import (
    parse_boolean, parse_double, parse_float, parse_integer, parse_long, serialize_value
)
from ..core.interfaces.backends import IBackendClient
from ..core.interfaces.lifecycle import IManagedSource, SourceStatus, health_report
from ..core.interfaces.sources import (
    CONFIG_ORDINAL, IChangeDispatcher, IConfigAccessor, IConfigurationSource
)
from ..core.services.watch_engine import WatchEngine
from ..infrastructure.config.models import SourceSettings

logger = logging.getLogger(__name__)

DEFAULT_ORDINAL = 110


class ConfigurationSource(IConfigurationSource, IManagedSource):
    """
    Configuration source backed by a remote key-value store.

    Args:
        client: Backend adapter, not yet connected
        metadata: Deployment identity used for namespace resolution
        accessor: Already-loaded configuration, also used for fallback lookups
    """

    def __init__(
        self,
        client: IBackendClient,
        metadata: DeploymentMetadata,
        accessor: IConfigAccessor
    ) -> None:
        self._client = client
        self._metadata = metadata
        self._accessor = accessor

        self._namespace: Optional[str] = None
        self._codec: Optional[KeyCodec] = None
        self._settings = SourceSettings()
        self._engine: Optional[WatchEngine] = None
        self._dispatcher: Optional[IChangeDispatcher] = None
        self._initialized = False
        self._init_error: Optional[str] = None

    @property
    def name(self) -> str:
        return f"{self._client.backend_name}-configuration-source"

    @property
    def client(self) -> IBackendClient:
        return self._client

    @property
    def namespace(self) -> Optional[str]:
        return self._namespace

    @property
    def codec(self) -> Optional[KeyCodec]:
        return self._codec

    @property
    def settings(self) -> SourceSettings:
        return self._settings

    @property
    def engine(self) -> Optional[WatchEngine]:
        return self._engine

    @property
    def available(self) -> bool:
        """Whether the source initialised and holds a backend connection."""
        return self._codec is not None and self._client.is_connected()

    def init(self, dispatcher: Optional[IChangeDispatcher] = None) -> None:
        """
        Resolve the namespace, connect and prepare the watch engine.

        Connection problems are logged and leave the source degraded, unless
        ``kvconfig.config.fail-on-init-error`` is set.

        Raises:
            InitializationFailure: Connection failed and failing is configured
        """
        if self._initialized:
            if dispatcher is not None:
                self._dispatcher = dispatcher
                if self._engine is not None:
                    self._engine.dispatcher = dispatcher
            return

        backend = self._client.backend_name
        self._dispatcher = dispatcher
        self._namespace = resolve_namespace(self._metadata, self._accessor, backend)
        logger.info(f"Using namespace: {self._namespace}")

        try:
            self._settings = SourceSettings.from_accessor(self._accessor, backend)
        except ValueError as e:
            logger.warning(f"Invalid {backend} source settings, using defaults: {e}")
            self._settings = SourceSettings()

        self._codec = KeyCodec(
            self._namespace,
            leading_separator=self._client.leading_separator,
            escape_segments=self._client.escape_segments
        )
        self._initialized = True

        try:
            self._client.connect()
        except InitializationFailure as e:
            self._init_error = str(e)
            logger.error(f"{backend} configuration source could not connect: {e}")
            if self._settings.fail_on_init_error:
                raise
            return

        self._engine = WatchEngine(
            self._client,
            self._codec,
            dispatcher=self._dispatcher,
            fallback=self._accessor.get,
            start_retry_delay_ms=self._settings.start_retry_delay_ms,
            max_retry_delay_ms=self._settings.max_retry_delay_ms
        )
        logger.info(f"{backend} configuration source successfully initialised")

    def get(self, key: str) -> Optional[str]:
        if not self.available:
            return None
        path = self._codec.encode(key)
        try:
            return self._client.read(path)
        except KVConfigError as e:
            logger.error(f"Cannot read key {key} from {self._client.backend_name}: {e}")
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
        if not self._client.supports_list_size:
            return None
        children = self._children(key)
        return detect_list_size(children) if children else None

    def get_map_keys(self, key: str) -> Optional[List[str]]:
        children = self._children(key)
        if not children:
            return None
        return [self._codec.unescape(child) for child in children]

    async def watch(self, key: str) -> None:
        if self._engine is None:
            logger.warning(f"Cannot watch key {key}: {self._client.backend_name} source is not connected")
            return
        try:
            await self._engine.watch(key)
        except RuntimeError as e:
            logger.warning(f"Cannot watch key {key}: {e}")

    def set(self, key: str, value: Union[str, bool, int, float]) -> None:
        serialized = serialize_value(value)
        if not self.available:
            logger.warning(f"Cannot set key {key}: {self._client.backend_name} source is not connected")
            return
        try:
            self._client.write(self._codec.encode(key), serialized)
        except KVConfigError as e:
            logger.error(f"Cannot set key {key} in {self._client.backend_name}: {e}")

    @property
    def ordinal(self) -> int:
        ordinal = self.get_integer(CONFIG_ORDINAL)
        return ordinal if ordinal is not None else DEFAULT_ORDINAL

    async def start(self) -> None:
        self.init(self._dispatcher)

    async def stop(self) -> None:
        if self._engine is not None:
            await self._engine.stop()
        self._client.close()
        logger.info(f"{self._client.backend_name} configuration source stopped")

    async def check_health(self) -> Dict[str, Any]:
        details: Dict[str, Any] = {
            'backend': self._client.backend_name,
            'namespace': self._namespace,
            'connected': self._client.is_connected(),
            'watches': len(self._engine.watches) if self._engine is not None else 0,
            'init_error': self._init_error
        }
        health_details = getattr(self._client, "health_details", None)
        if callable(health_details):
            details['client'] = health_details()

        if not self._initialized:
            status = SourceStatus.STOPPED
        elif self.available:
            status = SourceStatus.RUNNING
        else:
            status = SourceStatus.DEGRADED
        return health_report(status, details)

    def _children(self, key: str) -> List[str]:
        if not self.available:
            return []
        path = self._codec.encode(key)
        try:
            return self._client.list_children(path)
        except KVConfigError as e:
            logger.error(f"Cannot list children of key {key} in {self._client.backend_name}: {e}")
            return []
