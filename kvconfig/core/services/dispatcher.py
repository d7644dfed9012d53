"""
Default change dispatcher.

Fans configuration change notifications out to subscribed listeners.
Listeners subscribe to an exact key, a wildcard pattern (``db.*``) or to
every key, and may be plain callables or coroutine functions.
"""

import asyncio
import fnmatch
import logging
import time
import uuid
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional

from ..interfaces.sources import IChangeDispatcher

logger = logging.getLogger(__name__)

ChangeListener = Callable[[str, str], Any]


class ChangeSubscription:
    """A listener bound to a key pattern."""

    def __init__(self, subscription_id: str, key_pattern: str, listener: ChangeListener):
        self.subscription_id = subscription_id
        self.key_pattern = key_pattern
        self.listener = listener
        self.created_at = time.time()
        self.call_count = 0
        self.last_called: Optional[float] = None
        self.error_count = 0


class ConfigurationDispatcher(IChangeDispatcher):
    """
    In-process change dispatcher.

    Notifications are delivered synchronously in subscription order, so a
    listener observes values for one key in the order the watch produced
    them. A failing listener is logged and does not affect the others.
    """

    def __init__(self) -> None:
        self._subscriptions: Dict[str, List[ChangeSubscription]] = defaultdict(list)
        self._wildcard_subscriptions: List[ChangeSubscription] = []
        self._metrics: Dict[str, int] = {
            'notifications': 0,
            'deliveries': 0,
            'listener_errors': 0
        }

    def subscribe(self, listener: ChangeListener, key: str = "*") -> str:
        """
        Register a listener.

        Args:
            listener: Called with ``(key, value)``
            key: Exact key or fnmatch-style pattern, ``*`` for all keys

        Returns:
            Subscription ID usable with :meth:`unsubscribe`
        """
        subscription_id = str(uuid.uuid4())
        subscription = ChangeSubscription(subscription_id, key, listener)

        if any(char in key for char in "*?"):
            self._wildcard_subscriptions.append(subscription)
        else:
            self._subscriptions[key].append(subscription)

        logger.debug(f"Added change listener for '{key}' (ID: {subscription_id})")
        return subscription_id

    def unsubscribe(self, subscription_id: str) -> bool:
        """Remove a listener by subscription ID."""
        for key, subscriptions in self._subscriptions.items():
            for i, subscription in enumerate(subscriptions):
                if subscription.subscription_id == subscription_id:
                    subscriptions.pop(i)
                    logger.debug(f"Removed change listener {subscription_id} for '{key}'")
                    return True

        for i, subscription in enumerate(self._wildcard_subscriptions):
            if subscription.subscription_id == subscription_id:
                self._wildcard_subscriptions.pop(i)
                logger.debug(f"Removed wildcard change listener {subscription_id}")
                return True

        return False

    async def notify_change(self, key: str, value: str) -> None:
        """Deliver a change to every matching listener."""
        self._metrics['notifications'] += 1

        matching = list(self._subscriptions.get(key, []))
        matching.extend(
            subscription for subscription in self._wildcard_subscriptions
            if fnmatch.fnmatchcase(key, subscription.key_pattern)
        )

        for subscription in matching:
            try:
                result = subscription.listener(key, value)
                if asyncio.iscoroutine(result):
                    await result
                subscription.call_count += 1
                subscription.last_called = time.time()
                self._metrics['deliveries'] += 1
            except Exception as e:
                subscription.error_count += 1
                self._metrics['listener_errors'] += 1
                logger.error(f"Change listener error for key {key}: {e}")

    def get_metrics(self) -> Dict[str, int]:
        """Dispatcher counters."""
        return {
            **self._metrics,
            'subscriptions': sum(len(s) for s in self._subscriptions.values())
            + len(self._wildcard_subscriptions)
        }
