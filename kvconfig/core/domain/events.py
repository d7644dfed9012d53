"""
Change events produced by backend watches.
"""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class ChangeEvent:
    """
    Result of one completed blocking watch call that observed a change.

    A ``value`` of None means the watched node no longer exists.
    """

    path: str
    """Backend path the event refers to."""

    value: Optional[str]
    """New value, or None when the node was deleted."""

    resume_token: int
    """Backend ordering marker (index, revision or zxid) to resume from."""

    @property
    def deleted(self) -> bool:
        """Whether the event reports an absent node."""
        return self.value is None
