"""
Core services: the watch engine and the default change dispatcher.
"""

from .dispatcher import ConfigurationDispatcher, ChangeSubscription
from .watch_engine import WatchEngine

__all__ = [
    "ConfigurationDispatcher",
    "ChangeSubscription",
    "WatchEngine",
]
