"""
Base backend client implementation.

Provides the connection state, metrics and error translation shared by all
backend adapters. Adapters implement the ``_open``/``_close`` hooks and the
underscore-prefixed primitives; the public primitives wrap them so every
native library error leaves the adapter as a :class:`KVConfigError`.
"""

import logging
import time
from abc import abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, TypeVar

from ...core.domain.events import ChangeEvent
from ...core.domain.exceptions import (
    BackendUnavailable, InitializationFailure, KVConfigError, ProtocolError
)
from ...core.interfaces.backends import IBackendClient
from ..config.crypto import CertificateBundle, prepare_ca_bundle

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ClientStatus(Enum):
    """Connection status of a backend client."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


@dataclass
class ClientMetrics:
    """Backend request metrics."""
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    total_response_time: float = 0.0
    max_response_time: float = 0.0
    connection_count: int = 0
    error_count: int = 0
    last_error: Optional[str] = None

    @property
    def average_response_time(self) -> float:
        if self.total_requests == 0:
            return 0.0
        return self.total_response_time / self.total_requests

    def record_request(self, success: bool, response_time: float) -> None:
        """Record a request result."""
        self.total_requests += 1
        self.total_response_time += response_time
        if success:
            self.successful_requests += 1
        else:
            self.failed_requests += 1
        if response_time > self.max_response_time:
            self.max_response_time = response_time

    def record_error(self, error: str) -> None:
        """Record an error."""
        self.error_count += 1
        self.last_error = error


def warn_even_hosts(backend: str, hosts: List[str]) -> None:
    """Quorum-based clusters should run an odd number of members."""
    if hosts and len(hosts) % 2 == 0:
        logger.warning(
            f"Using an odd number of {backend} hosts is recommended, got {len(hosts)}")


class BaseBackendClient(IBackendClient):
    """
    Common behaviour of backend adapters.

    Args:
        ca: Configured CA certificate, base64 body optionally PEM-framed
    """

    def __init__(self, ca: Optional[str] = None) -> None:
        self._ca = ca
        self._ca_bundle: Optional[CertificateBundle] = None
        self._connection: Optional[Any] = None
        self._status = ClientStatus.DISCONNECTED
        self._metrics = ClientMetrics()

    def connect(self) -> None:
        if self.is_connected():
            return

        self._status = ClientStatus.CONNECTING
        self._ca_bundle = prepare_ca_bundle(self._ca)
        try:
            self._connection = self._open()
        except InitializationFailure as e:
            self._fail_connect(str(e))
            raise
        except Exception as e:
            self._fail_connect(str(e))
            raise InitializationFailure(
                f"Cannot connect to {self.backend_name}: {e}") from e

        self._status = ClientStatus.CONNECTED
        self._metrics.connection_count += 1
        logger.info(f"Connected to {self.backend_name}")

    def close(self) -> None:
        connection = self._connection
        self._connection = None
        self._status = ClientStatus.DISCONNECTED
        if connection is not None:
            try:
                self._close(connection)
            except Exception as e:
                logger.warning(f"Error closing {self.backend_name} client: {e}")
        if self._ca_bundle is not None:
            self._ca_bundle.cleanup()
            self._ca_bundle = None

    def is_connected(self) -> bool:
        return self._status == ClientStatus.CONNECTED and self._connection is not None

    def health_details(self) -> Dict[str, Any]:
        """Connection and request statistics for health reports."""
        return {
            "backend": self.backend_name,
            "status": self._status.value,
            "total_requests": self._metrics.total_requests,
            "failed_requests": self._metrics.failed_requests,
            "average_response_time": self._metrics.average_response_time,
            "last_error": self._metrics.last_error
        }

    @property
    def ca_file(self) -> Optional[str]:
        """Path of the PEM file holding the configured CA, if any."""
        return str(self._ca_bundle.path) if self._ca_bundle is not None else None

    def read(self, path: str) -> Optional[str]:
        return self._execute(path, self._read, path)

    def write(self, path: str, value: str) -> None:
        self._execute(path, self._write, path, value)

    def list_children(self, path: str) -> List[str]:
        return self._execute(path, self._list_children, path)

    def blocking_watch(self, path: str, resume_token: int) -> Optional[ChangeEvent]:
        return self._execute(path, self._blocking_watch, path, resume_token, watching=True)

    def _execute(self, path: str, operation: Callable[..., T], *args: Any, watching: bool = False) -> T:
        """Run a primitive, recording metrics and translating native errors."""
        if self._connection is None:
            raise BackendUnavailable(f"{self.backend_name} client is not connected", path)

        start_time = time.time()
        try:
            result = operation(*args)
        except KVConfigError as e:
            self._record_failure(start_time, e)
            raise
        except Exception as e:
            self._record_failure(start_time, e)
            raise self._translate_error(e, path, watching) from e

        self._metrics.record_request(True, time.time() - start_time)
        return result

    def _record_failure(self, start_time: float, error: Exception) -> None:
        self._metrics.record_request(False, time.time() - start_time)
        self._metrics.record_error(str(error))

    def _fail_connect(self, reason: str) -> None:
        self._status = ClientStatus.ERROR
        self._metrics.record_error(reason)
        logger.error(f"Cannot initialise {self.backend_name} client: {reason}")

    def _translate_error(self, error: Exception, path: str, watching: bool) -> KVConfigError:
        """Map a native library error into the exception taxonomy."""
        return ProtocolError(f"Unexpected {self.backend_name} error: {error}", path)

    @abstractmethod
    def _open(self) -> Any:
        """Create the native client and return it."""
        pass

    @abstractmethod
    def _close(self, connection: Any) -> None:
        """Release the native client."""
        pass

    @abstractmethod
    def _read(self, path: str) -> Optional[str]:
        pass

    @abstractmethod
    def _write(self, path: str, value: str) -> None:
        pass

    @abstractmethod
    def _list_children(self, path: str) -> List[str]:
        pass

    @abstractmethod
    def _blocking_watch(self, path: str, resume_token: int) -> Optional[ChangeEvent]:
        pass
