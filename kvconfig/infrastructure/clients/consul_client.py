"""
Consul key-value backend.

Watches use Consul blocking queries: the agent holds a ``GET`` open until the
key's modify index moves past the supplied index or the wait time elapses.
"""

import logging
from typing import Any, List, Optional
from urllib.parse import SplitResult, urlsplit

import consul
import requests

from ...core.domain.events import ChangeEvent
from ...core.domain.exceptions import (
    BackendUnavailable, FatalWatchError, KVConfigError, ProtocolError
)
from ..config.models import DEFAULT_CONSUL_AGENT, ConsulSettings
from .base import BaseBackendClient

logger = logging.getLogger(__name__)

DEFAULT_CONSUL_PORT = 8500


def read_timeout(wait_seconds: int) -> float:
    """HTTP read timeout for a blocking query, covering Consul's wait jitter."""
    return wait_seconds + wait_seconds / 16 + 1


def parse_agent_url(agent: str) -> SplitResult:
    """Split the agent URL, falling back to the local agent if it is malformed."""
    try:
        url = urlsplit(agent)
        if url.scheme not in ("http", "https") or not url.hostname:
            raise ValueError(f"unsupported agent URL {agent!r}")
        if url.port == 0:
            raise ValueError("port must not be 0")
    except ValueError as e:
        logger.warning(f"Provided Consul agent URL is not valid ({e}), defaulting to {DEFAULT_CONSUL_AGENT}")
        url = urlsplit(DEFAULT_CONSUL_AGENT)
    return url


class ConsulBackendClient(BaseBackendClient):
    """
    Consul adapter.

    Args:
        settings: Agent URL, ACL token, CA and blocking query wait time
    """

    backend_name = "consul"

    def __init__(self, settings: ConsulSettings) -> None:
        super().__init__(settings.ca)
        self._settings = settings

    @property
    def settings(self) -> ConsulSettings:
        return self._settings

    def _open(self) -> Any:
        url = parse_agent_url(self._settings.agent)
        logger.info(f"Connecting to Consul agent at {url.geturl()}")

        client = consul.Consul(
            host=url.hostname,
            port=url.port or DEFAULT_CONSUL_PORT,
            scheme=url.scheme,
            token=self._settings.token,
            verify=self.ca_file or True,
            timeout=read_timeout(self._settings.wait_seconds)
        )

        # An unreachable agent is not fatal: watches back off until it appears.
        try:
            client.agent.self()
        except (requests.exceptions.RequestException, consul.ConsulException) as e:
            logger.warning(f"Consul agent inaccessible, configuration source may not work as expected: {e}")
        return client

    def _close(self, connection: Any) -> None:
        session = getattr(getattr(connection, "http", None), "session", None)
        if session is not None:
            session.close()

    def _read(self, path: str) -> Optional[str]:
        _, data = self._connection.kv.get(path)
        return self._value_of(data)

    def _write(self, path: str, value: str) -> None:
        if not self._connection.kv.put(path, value):
            raise ProtocolError(f"Consul rejected write of {path}", path)

    def _list_children(self, path: str) -> List[str]:
        prefix = f"{path}/"
        _, keys = self._connection.kv.get(prefix, keys=True, separator="/")
        children: List[str] = []
        for key in keys or []:
            if not key.startswith(prefix):
                continue
            name = key[len(prefix):].split("/", 1)[0]
            if name and name not in children:
                children.append(name)
        return children

    def _blocking_watch(self, path: str, resume_token: int) -> Optional[ChangeEvent]:
        try:
            index, data = self._connection.kv.get(
                path,
                index=str(resume_token) if resume_token else None,
                wait=f"{self._settings.wait_seconds}s"
            )
        except requests.exceptions.ReadTimeout:
            return None

        if index is None:
            raise ProtocolError("Consul response carries no index", path)
        new_index = int(index)

        # Consul may hand back the same index when the wait expires.
        if resume_token and new_index == resume_token:
            return None
        return ChangeEvent(path, self._value_of(data), new_index)

    @staticmethod
    def _value_of(data: Any) -> Optional[str]:
        if not data:
            return None
        value = data.get("Value")
        if value is None:
            return None
        return value.decode("utf-8") if isinstance(value, bytes) else str(value)

    def _translate_error(self, error: Exception, path: str, watching: bool) -> KVConfigError:
        if isinstance(error, requests.exceptions.ConnectionError):
            return BackendUnavailable(f"Cannot reach Consul agent: {error}", path)
        if isinstance(error, (requests.exceptions.Timeout, consul.Timeout)):
            return BackendUnavailable(f"Consul request timed out: {error}", path)
        if isinstance(error, consul.ACLPermissionDenied):
            if watching:
                return FatalWatchError(f"Consul ACL denies access to {path}: {error}", path)
            return ProtocolError(f"Consul ACL denies access to {path}: {error}", path)
        if isinstance(error, consul.ConsulException):
            return ProtocolError(f"Consul error: {error}", path)
        return super()._translate_error(error, path, watching)
