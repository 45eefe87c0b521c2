"""User-facing notifications (toasts).

Backend and validation errors are caught at the call site and turned into a
:class:`Notification` instead of propagating to the view layer.
"""

from __future__ import annotations

import logging
import time
from typing import Callable
from uuid import uuid4

from pydantic import Field as PydanticField

from schemaflow.architecture.base import ConfigBaseModel
from schemaflow.onto import Severity

logger = logging.getLogger(__name__)

DEFAULT_TTL = 5.0


class Notification(ConfigBaseModel):
    id: str = PydanticField(default_factory=lambda: uuid4().hex)
    message: str
    severity: Severity = Severity.INFO
    timestamp: float = PydanticField(default_factory=time.monotonic)


class NotificationCenter:
    """Holds active notifications; each expires ``ttl`` seconds after creation.

    Attributes:
        ttl: Lifetime of a notification in seconds
    """

    def __init__(
        self,
        ttl: float = DEFAULT_TTL,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl = ttl
        self._clock = clock
        self._items: list[Notification] = []

    def notify(self, message: str, severity: Severity = Severity.INFO) -> Notification:
        notification = Notification(
            message=message, severity=severity, timestamp=self._clock()
        )
        self._items.append(notification)
        if severity == Severity.ERROR:
            logger.error(message)
        else:
            logger.debug(f"[{severity}] {message}")
        return notification

    def info(self, message: str) -> Notification:
        return self.notify(message, Severity.INFO)

    def success(self, message: str) -> Notification:
        return self.notify(message, Severity.SUCCESS)

    def warning(self, message: str) -> Notification:
        return self.notify(message, Severity.WARNING)

    def error(self, message: str) -> Notification:
        return self.notify(message, Severity.ERROR)

    def remove(self, notification_id: str) -> None:
        self._items = [n for n in self._items if n.id != notification_id]

    def active(self) -> list[Notification]:
        """Notifications that have not expired yet, oldest first."""
        now = self._clock()
        self._items = [n for n in self._items if now - n.timestamp < self.ttl]
        return list(self._items)

    @property
    def last(self) -> Notification | None:
        return self._items[-1] if self._items else None
