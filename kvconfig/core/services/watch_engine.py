"""
Backend-agnostic watch engine.

Every watched key gets its own long-running cycle:

    IDLE -> WATCHING -> (DELIVERING | BACKING_OFF) -> WATCHING -> ... -> TERMINATED

The cycle issues ``blocking_watch`` on a daemon thread of its own, so a
long-poll on one key never holds up another. It interprets the result,
applies the deletion fallback policy and re-arms. Connection failures are
retried with bounded exponential backoff; only a fatal watch error ends a
cycle before shutdown.
"""

import asyncio
import logging
import threading
from typing import Any, Awaitable, Callable, Dict, List, Optional

from ..domain.events import ChangeEvent
from ..domain.exceptions import BackendUnavailable, FatalWatchError, ProtocolError
from ..domain.keys import KeyCodec
from ..domain.namespace import DEFAULT_MAX_RETRY_DELAY_MS, DEFAULT_START_RETRY_DELAY_MS
from ..domain.watch import RetryBackoff, Watch, WatchState
from ..interfaces.backends import IBackendClient
from ..interfaces.sources import IChangeDispatcher

logger = logging.getLogger(__name__)

FallbackLookup = Callable[[str], Optional[str]]
Sleeper = Callable[[float], Awaitable[Any]]


class WatchEngine:
    """
    Runs one watch cycle per subscribed key.

    Cycles share only the backend client and the codec, both read-only here;
    each cycle owns its :class:`Watch` state exclusively.
    """

    def __init__(
        self,
        client: IBackendClient,
        codec: KeyCodec,
        dispatcher: Optional[IChangeDispatcher] = None,
        fallback: Optional[FallbackLookup] = None,
        start_retry_delay_ms: int = DEFAULT_START_RETRY_DELAY_MS,
        max_retry_delay_ms: int = DEFAULT_MAX_RETRY_DELAY_MS,
        sleep: Sleeper = asyncio.sleep
    ):
        """
        Initialize the watch engine.

        Args:
            client: Backend client issuing the blocking watches
            codec: Key codec bound to the resolved namespace
            dispatcher: Receiver of change notifications
            fallback: Lookup used when a watched node disappears
            start_retry_delay_ms: First backoff delay
            max_retry_delay_ms: Backoff cap
            sleep: Coroutine used for backoff waits
        """
        self._client = client
        self._codec = codec
        self._dispatcher = dispatcher
        self._fallback = fallback
        self._start_retry_delay_ms = start_retry_delay_ms
        self._max_retry_delay_ms = max_retry_delay_ms
        self._sleep = sleep

        self._watches: Dict[str, Watch] = {}
        self._tasks: Dict[str, asyncio.Task[None]] = {}
        self._stopped = False

    @property
    def dispatcher(self) -> Optional[IChangeDispatcher]:
        return self._dispatcher

    @dispatcher.setter
    def dispatcher(self, dispatcher: Optional[IChangeDispatcher]) -> None:
        self._dispatcher = dispatcher

    @property
    def watches(self) -> List[Watch]:
        """Snapshot of all watches created so far."""
        return list(self._watches.values())

    def get_watch(self, key: str) -> Optional[Watch]:
        return self._watches.get(key)

    async def watch(self, key: str) -> Watch:
        """
        Start watching a key.

        The first call for a key creates its cycle; later calls return the
        existing watch. There is no unwatch: cycles run until :meth:`stop`.
        """
        existing = self._watches.get(key)
        if existing is not None:
            return existing
        if self._stopped:
            raise RuntimeError("Watch engine has been stopped")

        watch = Watch(
            key=key,
            path=self._codec.encode(key),
            backoff=RetryBackoff(self._start_retry_delay_ms, self._max_retry_delay_ms)
        )
        self._watches[key] = watch
        self._tasks[key] = asyncio.create_task(self._run(watch), name=f"kvconfig-watch:{key}")

        logger.info(f"Initializing watch for key: {watch.path}")
        return watch

    async def wait(self, key: str) -> None:
        """Wait until the cycle for ``key`` ends (fatal error or shutdown)."""
        task = self._tasks.get(key)
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def stop(self) -> None:
        """
        Cancel every cycle.

        Blocking calls still in flight finish on their daemon threads and
        their results are discarded.
        """
        self._stopped = True
        tasks = [task for task in self._tasks.values() if not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.debug(f"Watch engine stopped ({len(tasks)} active watches cancelled)")

    async def _run(self, watch: Watch) -> None:
        """Watch cycle for a single key."""
        while True:
            watch.state = WatchState.WATCHING
            try:
                event = await self._blocking_watch(watch)

            except BackendUnavailable as e:
                await self._back_off(watch, e, escalate=True)
                continue

            except ProtocolError as e:
                logger.error(f"Watch error for key {watch.path}: {e}")
                await self._back_off(watch, e, escalate=False)
                continue

            except FatalWatchError as e:
                watch.state = WatchState.TERMINATED
                watch.last_error = str(e)
                logger.error(
                    f"Unrecoverable watch error for key {watch.path}, watch terminated: {e}")
                return

            except asyncio.CancelledError:
                raise

            except Exception as e:
                logger.error(f"Unexpected watch error for key {watch.path}: {e}")
                await self._back_off(watch, e, escalate=False)
                continue

            watch.backoff.reset()
            watch.last_error = None

            if event is None:
                continue

            await self._handle_change(watch, event)

    async def _blocking_watch(self, watch: Watch) -> Optional[ChangeEvent]:
        """Issue one blocking watch call on a dedicated daemon thread."""
        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()
        path, resume_token = watch.path, watch.resume_token

        def settle(outcome: Any, failed: bool) -> None:
            if future.done():
                return
            if failed:
                future.set_exception(outcome)
            else:
                future.set_result(outcome)

        def call() -> None:
            try:
                outcome, failed = self._client.blocking_watch(path, resume_token), False
            except Exception as e:
                outcome, failed = e, True
            try:
                loop.call_soon_threadsafe(settle, outcome, failed)
            except RuntimeError:
                logger.debug(f"Event loop closed, dropping watch result for {path}")

        threading.Thread(target=call, name=f"kvconfig-watch:{watch.key}", daemon=True).start()
        return await future

    async def _back_off(self, watch: Watch, error: Exception, escalate: bool) -> None:
        """Sleep before re-arming; connection failures double the next delay."""
        watch.state = WatchState.BACKING_OFF
        watch.last_error = str(error)

        if escalate:
            delay_ms = watch.backoff.next_delay()
            logger.warning(
                f"Cannot reach backend while watching {watch.path}: {error}. "
                f"Retrying in {delay_ms} ms")
        else:
            delay_ms = watch.backoff.current_ms

        await self._sleep(delay_ms / 1000.0)

    async def _handle_change(self, watch: Watch, event: ChangeEvent) -> None:
        """Deliver a change, or the fallback value on the first deletion."""
        watch.resume_token = event.resume_token
        watch.state = WatchState.DELIVERING

        if not event.deleted:
            key = self._decode(event.path, watch.key)
            logger.info(f"Watch callback for key {key} invoked. New value: {event.value}")
            watch.previously_deleted = False
            await self._deliver(watch, key, event.value)  # type: ignore[arg-type]
            return

        if watch.previously_deleted:
            return

        logger.info(
            f"Watch callback for key {watch.key} invoked. "
            "No value present, fallback to other configuration sources.")
        watch.previously_deleted = True

        fallback_value = await self._lookup_fallback(watch.key)
        if fallback_value is not None:
            await self._deliver(watch, watch.key, fallback_value)

    def _decode(self, path: str, default: str) -> str:
        try:
            return self._codec.decode(path)
        except ValueError:
            logger.warning(f"Watch reported path {path} outside the namespace")
            return default

    async def _lookup_fallback(self, key: str) -> Optional[str]:
        if self._fallback is None:
            return None
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, self._fallback, key)
        except Exception as e:
            logger.error(f"Fallback lookup failed for key {key}: {e}")
            return None

    async def _deliver(self, watch: Watch, key: str, value: str) -> None:
        if self._dispatcher is None:
            return
        try:
            await self._dispatcher.notify_change(key, value)
            watch.notifications += 1
        except Exception as e:
            logger.error(f"Change dispatch failed for key {key}: {e}")
