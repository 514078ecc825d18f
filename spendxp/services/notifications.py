"""
Notification Queue

DESIGN DECISION: Alerts raised by a state change are queued rather than
pushed. A notification becomes due a short delay after the change that
produced it, so the user first sees the change and then the alert. The
queue is owned by the session; draining it is the host's job.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Optional
from uuid import UUID

import structlog

from spendxp.models.notification import Notification, NotificationKind


logger = structlog.get_logger("spendxp.notifications")


class NotificationSink(ABC):
    """Where due notifications are delivered (a UI toast, a push service...)."""

    @abstractmethod
    def deliver(self, notification: Notification) -> None:
        pass


class CollectingSink(NotificationSink):
    """Keeps delivered notifications in a list."""

    def __init__(self):
        self.delivered: list[Notification] = []

    def deliver(self, notification: Notification) -> None:
        self.delivered.append(notification)

    @property
    def messages(self) -> list[str]:
        return [n.message for n in self.delivered]


class NotificationQueue:
    """
    FIFO of pending notifications.

    Ordering is emission order; two notifications from the same submission
    (parental alert, then budget alert) are delivered in that order.
    """

    def __init__(self, delay_seconds: float = 0.5):
        self._delay = timedelta(seconds=delay_seconds)
        self._pending: list[Notification] = []

    def __len__(self) -> int:
        return len(self._pending)

    @property
    def pending(self) -> list[Notification]:
        return list(self._pending)

    def emit(
        self,
        kind: NotificationKind,
        message: str,
        now: datetime,
        correlation_id: Optional[UUID] = None,
    ) -> Notification:
        notification = Notification(
            kind=kind,
            message=message,
            created_at=now,
            deliver_after=now + self._delay,
            correlation_id=correlation_id,
        )
        self._pending.append(notification)
        return notification

    def due(self, now: datetime) -> list[Notification]:
        """Remove and return every notification whose delay has elapsed."""
        ready = [n for n in self._pending if n.deliver_after <= now]
        self._pending = [n for n in self._pending if n.deliver_after > now]
        return ready

    def drain(self, sink: NotificationSink, now: datetime) -> int:
        """
        Deliver due notifications to `sink`.

        Delivery is best-effort: a sink failure is logged and the
        notification is dropped. Returns the number delivered.
        """
        delivered = 0
        for notification in self.due(now):
            try:
                sink.deliver(notification)
                delivered += 1
            except Exception as e:
                logger.warning(
                    "notification_delivery_failed",
                    kind=notification.kind.value,
                    notification_id=str(notification.notification_id),
                    error=str(e),
                )
        return delivered

    def clear(self) -> None:
        self._pending.clear()
