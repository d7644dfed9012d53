"""
Tests for the watch engine.

Blocking watches are scripted through the fake backend client; each script
ends with a fatal error so the watch cycle terminates and the test can await
it deterministically.
"""

import asyncio
import threading
from typing import List, Optional, Set

import pytest

from kvconfig.core.domain.events import ChangeEvent
from kvconfig.core.domain.exceptions import BackendUnavailable, FatalWatchError, ProtocolError
from kvconfig.core.domain.keys import KeyCodec
from kvconfig.core.domain.watch import WatchState
from kvconfig.core.services.watch_engine import WatchEngine

NAMESPACE = "environments/dev/services/config"


class LongPollingClient:
    """Backend whose watches hold their thread until released."""

    def __init__(self) -> None:
        self.release = threading.Event()
        self.armed: Set[str] = set()
        self.daemon_threads: List[bool] = []
        self._lock = threading.Lock()

    def blocking_watch(self, path: str, resume_token: int) -> Optional[ChangeEvent]:
        with self._lock:
            self.armed.add(path)
            self.daemon_threads.append(threading.current_thread().daemon)
        self.release.wait(5)
        return None


class TestWatchEngine:
    """Test cases for watch cycles."""

    @pytest.fixture
    def codec(self) -> KeyCodec:
        return KeyCodec(NAMESPACE)

    @pytest.fixture
    def make_engine(self, fake_client, codec, dispatcher, sleep_recorder):
        _, fake_sleep = sleep_recorder

        def factory(**kwargs):
            options = {
                "dispatcher": dispatcher,
                "start_retry_delay_ms": 100,
                "max_retry_delay_ms": 250,
                "sleep": fake_sleep,
            }
            options.update(kwargs)
            return WatchEngine(fake_client, codec, **options)

        return factory

    @pytest.mark.asyncio
    async def test_delivers_new_value(self, make_engine, fake_client, codec, dispatcher) -> None:
        path = codec.encode("db.url")
        fake_client.script(path, ChangeEvent(path, "jdbc:a", 5))
        engine = make_engine()

        watch = await engine.watch("db.url")
        await engine.wait("db.url")

        assert dispatcher.changes == [("db.url", "jdbc:a")]
        assert watch.resume_token == 5
        assert watch.notifications == 1
        assert fake_client.watch_calls == [(path, 0), (path, 5)]

    @pytest.mark.asyncio
    async def test_timeout_rearms_without_delivery(
        self, make_engine, fake_client, codec, dispatcher, sleep_recorder
    ) -> None:
        path = codec.encode("db.url")
        fake_client.script(path, None, None, ChangeEvent(path, "x", 2))
        engine = make_engine()

        await engine.watch("db.url")
        await engine.wait("db.url")

        delays, _ = sleep_recorder
        assert dispatcher.changes == [("db.url", "x")]
        assert delays == []
        assert [token for _, token in fake_client.watch_calls] == [0, 0, 0, 2]

    @pytest.mark.asyncio
    async def test_feature_flag_deletion_falls_back_then_recovers(
        self, make_engine, fake_client, codec, dispatcher
    ) -> None:
        path = codec.encode("feature.flag")
        fake_client.script(
            path,
            ChangeEvent(path, "true", 1),
            ChangeEvent(path, None, 2),
            ChangeEvent(path, "false", 3),
        )
        engine = make_engine(fallback=lambda key: "default")

        await engine.watch("feature.flag")
        await engine.wait("feature.flag")

        assert dispatcher.changes == [
            ("feature.flag", "true"),
            ("feature.flag", "default"),
            ("feature.flag", "false"),
        ]

    @pytest.mark.asyncio
    async def test_repeated_deletion_notifies_once(
        self, make_engine, fake_client, codec, dispatcher
    ) -> None:
        path = codec.encode("feature.flag")
        lookups = []

        def fallback(key):
            lookups.append(key)
            return "local"

        fake_client.script(path, ChangeEvent(path, None, 6), ChangeEvent(path, None, 7))
        engine = make_engine(fallback=fallback)

        watch = await engine.watch("feature.flag")
        await engine.wait("feature.flag")

        assert dispatcher.changes == [("feature.flag", "local")]
        assert lookups == ["feature.flag"]
        assert watch.previously_deleted is True
        assert watch.resume_token == 7

    @pytest.mark.asyncio
    async def test_deletion_without_fallback_value_is_silent(
        self, make_engine, fake_client, codec, dispatcher
    ) -> None:
        path = codec.encode("feature.flag")
        fake_client.script(path, ChangeEvent(path, None, 3))
        engine = make_engine(fallback=lambda key: None)

        await engine.watch("feature.flag")
        await engine.wait("feature.flag")

        assert dispatcher.changes == []

    @pytest.mark.asyncio
    async def test_failing_fallback_is_treated_as_absent(
        self, make_engine, fake_client, codec, dispatcher
    ) -> None:
        path = codec.encode("feature.flag")

        def fallback(key):
            raise RuntimeError("lookup failed")

        fake_client.script(path, ChangeEvent(path, None, 3), ChangeEvent(path, "on", 4))
        engine = make_engine(fallback=fallback)

        await engine.watch("feature.flag")
        await engine.wait("feature.flag")

        assert dispatcher.changes == [("feature.flag", "on")]

    @pytest.mark.asyncio
    async def test_connection_failures_back_off_exponentially(
        self, make_engine, fake_client, codec, sleep_recorder
    ) -> None:
        path = codec.encode("db.url")
        fake_client.script(
            path,
            BackendUnavailable("down"),
            BackendUnavailable("down"),
            BackendUnavailable("down"),
            BackendUnavailable("down"),
            ChangeEvent(path, "up", 1),
            BackendUnavailable("down again"),
        )
        engine = make_engine()

        await engine.watch("db.url")
        await engine.wait("db.url")

        delays, _ = sleep_recorder
        assert delays == [0.1, 0.2, 0.25, 0.25, 0.1]

    @pytest.mark.asyncio
    async def test_protocol_errors_rearm_without_escalating(
        self, make_engine, fake_client, codec, sleep_recorder
    ) -> None:
        path = codec.encode("db.url")
        fake_client.script(
            path,
            ProtocolError("garbled"),
            ProtocolError("garbled"),
            ValueError("unexpected"),
        )
        engine = make_engine()

        watch = await engine.watch("db.url")
        await engine.wait("db.url")

        delays, _ = sleep_recorder
        assert delays == [0.1, 0.1, 0.1]
        assert watch.backoff.current_ms == 100

    @pytest.mark.asyncio
    async def test_fatal_error_terminates_watch(
        self, make_engine, fake_client, codec, dispatcher, sleep_recorder
    ) -> None:
        path = codec.encode("secret.key")
        fake_client.script(path, FatalWatchError("permission denied"))
        engine = make_engine()

        watch = await engine.watch("secret.key")
        await engine.wait("secret.key")

        delays, _ = sleep_recorder
        assert watch.state == WatchState.TERMINATED
        assert "permission denied" in watch.last_error
        assert fake_client.watch_calls == [(path, 0)]
        assert delays == []
        assert dispatcher.changes == []

    @pytest.mark.asyncio
    async def test_watch_is_idempotent_per_key(self, make_engine, fake_client, codec) -> None:
        path = codec.encode("db.url")
        fake_client.script(path, ChangeEvent(path, "a", 1))
        engine = make_engine()

        first = await engine.watch("db.url")
        second = await engine.watch("db.url")
        await engine.wait("db.url")

        assert first is second
        assert len(engine.watches) == 1

    @pytest.mark.asyncio
    async def test_keys_are_watched_independently(
        self, make_engine, fake_client, codec, dispatcher
    ) -> None:
        first = codec.encode("a.one")
        second = codec.encode("b.two")
        fake_client.script(first, ChangeEvent(first, "1", 1), ChangeEvent(first, "2", 2))
        fake_client.script(second, FatalWatchError("denied"))
        engine = make_engine()

        await engine.watch("a.one")
        await engine.watch("b.two")
        await engine.wait("a.one")
        await engine.wait("b.two")

        assert [change for change in dispatcher.changes if change[0] == "a.one"] == [
            ("a.one", "1"), ("a.one", "2")
        ]
        assert engine.get_watch("b.two").state == WatchState.TERMINATED

    @pytest.mark.asyncio
    async def test_dispatch_failure_does_not_stop_watch(
        self, make_engine, fake_client, codec, dispatcher_factory
    ) -> None:
        failing = dispatcher_factory(fail_on=lambda key, value: value == "bad")
        path = codec.encode("db.url")
        fake_client.script(path, ChangeEvent(path, "bad", 1), ChangeEvent(path, "good", 2))
        engine = make_engine(dispatcher=failing)

        watch = await engine.watch("db.url")
        await engine.wait("db.url")

        assert failing.changes == [("db.url", "bad"), ("db.url", "good")]
        assert watch.notifications == 1

    @pytest.mark.asyncio
    async def test_path_outside_namespace_uses_watched_key(
        self, make_engine, fake_client, codec, dispatcher
    ) -> None:
        path = codec.encode("db.url")
        fake_client.script(path, ChangeEvent("elsewhere/db/url", "x", 1))
        engine = make_engine()

        await engine.watch("db.url")
        await engine.wait("db.url")

        assert dispatcher.changes == [("db.url", "x")]

    @pytest.mark.asyncio
    async def test_without_dispatcher_changes_are_dropped(
        self, make_engine, fake_client, codec
    ) -> None:
        path = codec.encode("db.url")
        fake_client.script(path, ChangeEvent(path, "x", 1))
        engine = make_engine(dispatcher=None)

        watch = await engine.watch("db.url")
        await engine.wait("db.url")

        assert watch.resume_token == 1
        assert watch.notifications == 0

    @pytest.mark.asyncio
    async def test_stop_cancels_running_watches(self, client_factory, codec) -> None:
        client = client_factory(idle_when_exhausted=True)
        engine = WatchEngine(client, codec)

        await engine.watch("db.url")
        await asyncio.sleep(0.05)
        await engine.stop()

        assert all(task.done() for task in engine._tasks.values())
        with pytest.raises(RuntimeError):
            await engine.watch("other.key")

    @pytest.mark.asyncio
    async def test_every_key_long_polls_concurrently(self, codec) -> None:
        client = LongPollingClient()
        engine = WatchEngine(client, codec)
        keys = [f"service.key{i}" for i in range(40)]

        for key in keys:
            await engine.watch(key)
        for _ in range(200):
            if len(client.armed) == len(keys):
                break
            await asyncio.sleep(0.01)

        try:
            assert client.armed == {codec.encode(key) for key in keys}
            assert all(client.daemon_threads)
        finally:
            await engine.stop()
            client.release.set()

    @pytest.mark.asyncio
    async def test_fallback_not_held_up_by_long_polls(self, client_factory, codec, dispatcher) -> None:
        client = client_factory()
        deleted = codec.encode("db.url")
        client.script(deleted, ChangeEvent(deleted, None, 3))
        long_poller = LongPollingClient()
        original_watch = client.blocking_watch

        def blocking_watch(path: str, resume_token: int) -> Optional[ChangeEvent]:
            if path == deleted:
                return original_watch(path, resume_token)
            return long_poller.blocking_watch(path, resume_token)

        client.blocking_watch = blocking_watch
        engine = WatchEngine(client, codec, dispatcher=dispatcher, fallback=lambda key: "local")

        for i in range(40):
            await engine.watch(f"service.key{i}")
        await engine.watch("db.url")

        try:
            await asyncio.wait_for(engine.wait("db.url"), timeout=2)
            assert dispatcher.changes == [("db.url", "local")]
        finally:
            await engine.stop()
            long_poller.release.set()
