"""Outbound notification records emitted by the engine."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class NotificationKind(str, Enum):
    PARENTAL_ALERT = "parental_alert"
    BUDGET_ALERT = "budget_alert"
    BUDGET_CHANGED = "budget_changed"


class Notification(BaseModel):
    """
    A user-visible message queued after a state change.

    Delivery is best-effort: the engine only guarantees the message is
    queued after the change it describes has been persisted.
    """

    notification_id: UUID = Field(default_factory=uuid4)
    kind: NotificationKind
    message: str = Field(..., min_length=1)
    created_at: datetime
    deliver_after: datetime
    correlation_id: Optional[UUID] = None
