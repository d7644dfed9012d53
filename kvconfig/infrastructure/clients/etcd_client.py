"""
etcd v3 key-value backend.

The v3 keyspace is flat, so the hierarchy exists only by convention: a
node's children are the keys sharing its path plus the separator as prefix.
Segments are URL-quoted so a dot or slash inside a key never creates a level.
"""

import logging
from typing import Any, List, Optional, Tuple
from urllib.parse import urlsplit

import etcd3
import etcd3.events
import etcd3.exceptions
import grpc

from ...core.domain.events import ChangeEvent
from ...core.domain.exceptions import (
    BackendUnavailable, FatalWatchError, InitializationFailure, KVConfigError, ProtocolError
)
from ..config.models import EtcdSettings
from .base import BaseBackendClient, warn_even_hosts

logger = logging.getLogger(__name__)

DEFAULT_ETCD_PORT = 2379

AUTH_CODES = (grpc.StatusCode.PERMISSION_DENIED, grpc.StatusCode.UNAUTHENTICATED)
UNAVAILABLE_CODES = (grpc.StatusCode.UNAVAILABLE, grpc.StatusCode.DEADLINE_EXCEEDED)


def parse_host(host: str) -> Tuple[str, int]:
    """Host name and port of an ``http://host:port`` or ``host:port`` entry."""
    url = urlsplit(host if "://" in host else f"http://{host}")
    if not url.hostname:
        raise ValueError(f"Invalid etcd host {host!r}")
    return url.hostname, url.port or DEFAULT_ETCD_PORT


class EtcdBackendClient(BaseBackendClient):
    """
    etcd v3 adapter.

    Args:
        settings: Cluster hosts, credentials, CA and watch wait time
    """

    backend_name = "etcd"
    escape_segments = True
    # A flat keyspace cannot distinguish array elements from map entries reliably.
    supports_list_size = False

    def __init__(self, settings: EtcdSettings) -> None:
        super().__init__(settings.ca)
        self._settings = settings

    @property
    def settings(self) -> EtcdSettings:
        return self._settings

    def _open(self) -> Any:
        hosts = self._settings.hosts
        if not hosts:
            raise InitializationFailure(
                "No etcd server hosts provided. Specify hosts with configuration key "
                "kvconfig.config.etcd.hosts in format http://etcd-1:2379,http://etcd-2:2379")
        warn_even_hosts(self.backend_name, hosts)

        last_error: Optional[Exception] = None
        for host in hosts:
            try:
                hostname, port = parse_host(host)
            except ValueError as e:
                logger.error(str(e))
                last_error = e
                continue

            client = etcd3.client(
                host=hostname,
                port=port,
                ca_cert=self.ca_file,
                timeout=self._settings.timeout,
                user=self._settings.username if self._settings.has_credentials else None,
                password=self._settings.password if self._settings.has_credentials else None
            )
            try:
                client.status()
            except (etcd3.exceptions.Etcd3Exception, grpc.RpcError) as e:
                logger.warning(f"etcd host {host} is not reachable: {e}")
                client.close()
                last_error = e
                continue

            logger.info(f"Connected to etcd host {host}")
            return client

        raise InitializationFailure(f"No etcd host is reachable: {last_error}")

    def _close(self, connection: Any) -> None:
        connection.close()

    def _read(self, path: str) -> Optional[str]:
        value, _ = self._connection.get(path)
        return value.decode("utf-8") if value is not None else None

    def _write(self, path: str, value: str) -> None:
        self._connection.put(path, value)

    def _list_children(self, path: str) -> List[str]:
        prefix = f"{path}/"
        children: List[str] = []
        for _, metadata in self._connection.get_prefix(prefix, keys_only=True):
            key = metadata.key.decode("utf-8")
            name = key[len(prefix):].split("/", 1)[0]
            if name and name not in children:
                children.append(name)
        return children

    def _blocking_watch(self, path: str, resume_token: int) -> Optional[ChangeEvent]:
        options = {"start_revision": resume_token + 1} if resume_token else {}
        try:
            response = self._connection.watch_once(
                path, timeout=self._settings.wait_seconds, **options)
        except etcd3.exceptions.WatchTimedOut:
            return None
        except etcd3.exceptions.RevisionCompactedError as e:
            return self._resync(path, e.compacted_revision)

        if isinstance(response, etcd3.exceptions.RevisionCompactedError):
            return self._resync(path, response.compacted_revision)
        if isinstance(response, Exception):
            raise response

        event = self._latest_event(response)
        if event is None:
            return None
        if isinstance(event, etcd3.events.DeleteEvent):
            return ChangeEvent(path, None, event.mod_revision)
        if isinstance(event, etcd3.events.PutEvent):
            return ChangeEvent(path, event.value.decode("utf-8"), event.mod_revision)
        raise ProtocolError(f"Unexpected etcd watch event {type(event).__name__}", path)

    def _resync(self, path: str, compacted_revision: int) -> ChangeEvent:
        """Re-read a key whose history was compacted past the resume revision."""
        logger.warning(f"etcd history of {path} compacted at revision {compacted_revision}, re-reading")
        value, metadata = self._connection.get(path)
        revision = metadata.mod_revision if metadata is not None else compacted_revision
        return ChangeEvent(
            path, value.decode("utf-8") if value is not None else None,
            max(revision, compacted_revision))

    @staticmethod
    def _latest_event(response: Any) -> Any:
        """Last event of a watch response, or the response if it is an event itself."""
        events = getattr(response, "events", None)
        if events is None:
            return response
        return events[-1] if events else None

    def _translate_error(self, error: Exception, path: str, watching: bool) -> KVConfigError:
        if isinstance(error, (etcd3.exceptions.ConnectionFailedError,
                              etcd3.exceptions.ConnectionTimeoutError)):
            return BackendUnavailable(f"Cannot reach etcd: {error}", path)
        if isinstance(error, grpc.RpcError):
            code = error.code() if callable(getattr(error, "code", None)) else None
            if code in AUTH_CODES:
                if watching:
                    return FatalWatchError(f"etcd denies access to {path}: {error}", path)
                return ProtocolError(f"etcd denies access to {path}: {error}", path)
            if code in UNAVAILABLE_CODES:
                return BackendUnavailable(f"Cannot reach etcd: {error}", path)
            return ProtocolError(f"etcd error: {error}", path)
        if isinstance(error, etcd3.exceptions.Etcd3Exception):
            return ProtocolError(f"etcd error: {error}", path)
        return super()._translate_error(error, path, watching)
