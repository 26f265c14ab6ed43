from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from threading import Lock
from typing import Deque, List, Protocol

from .logging_config import get_logger
from .utils import utcnow

logger = get_logger(__name__)


@dataclass(frozen=True)
class Notification:
    """A toast shown to the user of an editing session."""

    title: str
    description: str
    created_at: datetime = field(default_factory=utcnow)


class Notifier(Protocol):
    def notify(self, title: str, description: str) -> None:
        ...


# PUBLIC_INTERFACE
class NotificationCenter:
    """
    Bounded buffer of notifications for one session. The oldest entries are
    dropped once ``maxlen`` is reached; clients drain the buffer when polling.
    """

    def __init__(self, maxlen: int = 50) -> None:
        self._lock = Lock()
        self._items: Deque[Notification] = deque(maxlen=maxlen)

    def notify(self, title: str, description: str) -> None:
        logger.warning("Notification: %s - %s", title, description)
        with self._lock:
            self._items.append(Notification(title=title, description=description))

    def pending(self) -> List[Notification]:
        with self._lock:
            return list(self._items)

    def drain(self) -> List[Notification]:
        """Return and clear all buffered notifications, oldest first."""
        with self._lock:
            items = list(self._items)
            self._items.clear()
            return items

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)
