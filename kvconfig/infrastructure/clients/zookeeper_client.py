"""
ZooKeeper backend.

Configuration lives in znode data; paths are absolute (``/<namespace>/...``).
ZooKeeper watches are one-shot callbacks, so a blocking watch arms an
``exists`` watch and waits for it to fire or for the wait time to elapse.
An armed watcher is reused across timeouts until it fires.
The znode's ``mzxid`` orders changes; a missing node is marked with ``-1``.
"""

import logging
import posixpath
import threading
from typing import Any, Dict, List, Optional, Tuple

from kazoo.client import KazooClient
from kazoo.exceptions import (
    AuthFailedError, ConnectionClosedError, ConnectionLoss, KazooException,
    NoAuthError, NoNodeError, NodeExistsError, OperationTimeoutError, SessionExpiredError
)
from kazoo.handlers.threading import KazooTimeoutError

from ...core.domain.events import ChangeEvent
from ...core.domain.exceptions import (
    BackendUnavailable, FatalWatchError, InitializationFailure, KVConfigError, ProtocolError
)
from ..config.models import ZookeeperSettings
from .base import BaseBackendClient, warn_even_hosts

logger = logging.getLogger(__name__)

ABSENT_TOKEN = -1

UNAVAILABLE_ERRORS = (
    ConnectionLoss, ConnectionClosedError, SessionExpiredError,
    OperationTimeoutError, KazooTimeoutError
)
AUTH_ERRORS = (NoAuthError, AuthFailedError)


def strip_scheme(host: str) -> str:
    """``zk://host:2181`` or ``host:2181`` to ``host:2181``."""
    return host.split("://", 1)[1] if "://" in host else host


class ZookeeperBackendClient(BaseBackendClient):
    """
    ZooKeeper adapter.

    Args:
        settings: Ensemble hosts, digest credentials, CA and timeouts
    """

    backend_name = "zookeeper"
    leading_separator = True

    def __init__(self, settings: ZookeeperSettings) -> None:
        super().__init__(settings.ca)
        self._settings = settings
        self._armed: Dict[str, threading.Event] = {}
        self._watch_lock = threading.Lock()

    @property
    def settings(self) -> ZookeeperSettings:
        return self._settings

    def _open(self) -> Any:
        hosts = self._settings.hosts
        if not hosts:
            raise InitializationFailure(
                "No Zookeeper server hosts provided. Specify hosts with configuration key "
                "kvconfig.config.zookeeper.hosts in format "
                "192.168.99.100:2181,192.168.99.101:2182,192.168.99.102:2183")
        warn_even_hosts(self.backend_name, hosts)

        options = {}
        if self._settings.has_credentials:
            options["auth_data"] = [("digest", f"{self._settings.username}:{self._settings.password}")]
        if self.ca_file:
            options["use_ssl"] = True
            options["ca"] = self.ca_file

        client = KazooClient(
            hosts=",".join(strip_scheme(host) for host in hosts),
            timeout=self._settings.session_timeout,
            **options
        )
        try:
            client.start(timeout=self._settings.connect_timeout)
        except KazooTimeoutError as e:
            client.close()
            raise InitializationFailure(f"Zookeeper ensemble is unreachable: {e}") from e
        return client

    def _close(self, connection: Any) -> None:
        with self._watch_lock:
            self._armed.clear()
        connection.stop()
        connection.close()

    def _read(self, path: str) -> Optional[str]:
        try:
            data, _ = self._connection.get(path)
        except NoNodeError:
            return None
        return data.decode("utf-8") if data is not None else None

    def _write(self, path: str, value: str) -> None:
        data = value.encode("utf-8")
        parent = posixpath.dirname(path)
        if parent and parent != "/":
            self._connection.ensure_path(parent)
        if self._connection.exists(path):
            self._connection.set(path, data)
            return
        try:
            self._connection.create(path, data)
        except NodeExistsError:
            self._connection.set(path, data)

    def _list_children(self, path: str) -> List[str]:
        try:
            return self._connection.get_children(path)
        except NoNodeError:
            return []

    def _blocking_watch(self, path: str, resume_token: int) -> Optional[ChangeEvent]:
        fired, arming = self._watch_event(path)

        def on_event(event: Any) -> None:
            self._disarm(path, fired)
            fired.set()

        try:
            if arming:
                stat = self._connection.exists(path, watch=on_event)
            else:
                stat = self._connection.exists(path)
        except Exception:
            if arming:
                self._disarm(path, fired)
            raise

        current = stat.mzxid if stat is not None else ABSENT_TOKEN
        if current == resume_token:
            if not fired.wait(self._settings.wait_seconds):
                return None
            stat = self._connection.exists(path)
            current = stat.mzxid if stat is not None else ABSENT_TOKEN
            if current == resume_token:
                return None

        if stat is None:
            return ChangeEvent(path, None, ABSENT_TOKEN)
        return ChangeEvent(path, self._read(path), current)

    def _watch_event(self, path: str) -> Tuple[threading.Event, bool]:
        """Event of the watcher armed on ``path`` and whether it must be registered now."""
        with self._watch_lock:
            fired = self._armed.get(path)
            if fired is not None:
                return fired, False
            fired = threading.Event()
            self._armed[path] = fired
            return fired, True

    def _disarm(self, path: str, fired: threading.Event) -> None:
        with self._watch_lock:
            if self._armed.get(path) is fired:
                del self._armed[path]

    def _translate_error(self, error: Exception, path: str, watching: bool) -> KVConfigError:
        if isinstance(error, UNAVAILABLE_ERRORS):
            return BackendUnavailable(f"Cannot reach Zookeeper: {error!r}", path)
        if isinstance(error, AUTH_ERRORS):
            if watching:
                return FatalWatchError(f"Zookeeper denies access to {path}: {error!r}", path)
            return ProtocolError(f"Zookeeper denies access to {path}: {error!r}", path)
        if isinstance(error, KazooException):
            return ProtocolError(f"Zookeeper error: {error!r}", path)
        return super()._translate_error(error, path, watching)
