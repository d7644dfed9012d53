"""
Shared test doubles: an in-memory backend client with scripted watch outcomes
and a dispatcher recording every delivered change.
"""

import threading
import time
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import pytest

from kvconfig.core.domain.events import ChangeEvent
from kvconfig.core.domain.exceptions import FatalWatchError
from kvconfig.core.interfaces.backends import IBackendClient
from kvconfig.core.interfaces.sources import IChangeDispatcher

WatchOutcome = Union[ChangeEvent, Exception, None]


class FakeBackendClient(IBackendClient):
    """
    In-memory hierarchy keyed by full backend path.

    Watch outcomes are scripted per path. Once a path's script is exhausted
    the client raises FatalWatchError, ending that watch cycle, unless
    ``idle_when_exhausted`` is set, in which case it reports timeouts.
    """

    backend_name = "fake"

    def __init__(
        self,
        store: Optional[Dict[str, str]] = None,
        leading_separator: bool = False,
        escape_segments: bool = False,
        supports_list_size: bool = True,
        connect_error: Optional[Exception] = None,
        idle_when_exhausted: bool = False
    ) -> None:
        self.store: Dict[str, str] = dict(store or {})
        self.leading_separator = leading_separator
        self.escape_segments = escape_segments
        self.supports_list_size = supports_list_size
        self.connect_error = connect_error
        self.idle_when_exhausted = idle_when_exhausted
        self.read_error: Optional[Exception] = None
        self.write_error: Optional[Exception] = None
        self.outcomes: Dict[str, List[WatchOutcome]] = {}
        self.watch_calls: List[Tuple[str, int]] = []
        self.connected = False
        self.closed = False
        self._lock = threading.Lock()

    def script(self, path: str, *outcomes: WatchOutcome) -> None:
        self.outcomes.setdefault(path, []).extend(outcomes)

    def connect(self) -> None:
        if self.connect_error is not None:
            raise self.connect_error
        self.connected = True

    def close(self) -> None:
        self.connected = False
        self.closed = True

    def is_connected(self) -> bool:
        return self.connected

    def read(self, path: str) -> Optional[str]:
        if self.read_error is not None:
            raise self.read_error
        return self.store.get(path)

    def write(self, path: str, value: str) -> None:
        if self.write_error is not None:
            raise self.write_error
        self.store[path] = value

    def list_children(self, path: str) -> List[str]:
        if self.read_error is not None:
            raise self.read_error
        prefix = f"{path}/"
        children: List[str] = []
        for key in self.store:
            if key.startswith(prefix):
                name = key[len(prefix):].split("/", 1)[0]
                if name and name not in children:
                    children.append(name)
        return children

    def blocking_watch(self, path: str, resume_token: int) -> Optional[ChangeEvent]:
        with self._lock:
            self.watch_calls.append((path, resume_token))
            script = self.outcomes.get(path)
            if not script:
                outcome: Any = _EXHAUSTED
            else:
                outcome = script.pop(0)

        if outcome is _EXHAUSTED:
            if self.idle_when_exhausted:
                time.sleep(0.01)
                return None
            raise FatalWatchError("script exhausted", path)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


_EXHAUSTED = object()


class RecordingDispatcher(IChangeDispatcher):
    """Dispatcher collecting ``(key, value)`` pairs in delivery order."""

    def __init__(self, fail_on: Optional[Callable[[str, str], bool]] = None) -> None:
        self.changes: List[Tuple[str, str]] = []
        self._fail_on = fail_on

    async def notify_change(self, key: str, value: str) -> None:
        self.changes.append((key, value))
        if self._fail_on is not None and self._fail_on(key, value):
            raise RuntimeError(f"listener failed for {key}")


@pytest.fixture
def fake_client() -> FakeBackendClient:
    return FakeBackendClient()


@pytest.fixture
def client_factory() -> Callable[..., FakeBackendClient]:
    return FakeBackendClient


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def dispatcher_factory() -> Callable[..., RecordingDispatcher]:
    return RecordingDispatcher


@pytest.fixture
def sleep_recorder() -> Tuple[List[float], Callable[[float], Any]]:
    """Replacement for ``asyncio.sleep`` that records requested delays."""
    delays: List[float] = []

    async def fake_sleep(seconds: float) -> None:
        delays.append(seconds)

    return delays, fake_sleep
