"""
Audit Models for SpendXP

Every significant state transition in the engine is logged for audit purposes.
This provides:
1. Traceability of every xp award and every rejected transaction
2. Debugging information when a streak or level looks wrong
3. A history a parent can review

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditEventType(str, Enum):
    """
    Types of events we audit.
    """
    # Session lifecycle
    ACCOUNT_CREATED = "account_created"
    SESSION_OPENED = "session_opened"
    SESSION_CLOSED = "session_closed"

    # Transaction pipeline
    VALIDATION_FAILED = "validation_failed"
    TRANSACTION_REJECTED = "transaction_rejected"
    TRANSACTION_LOGGED = "transaction_logged"
    PARENTAL_ALERT_QUEUED = "parental_alert_queued"
    BUDGET_ALERT_QUEUED = "budget_alert_queued"

    # Progression
    XP_AWARDED = "xp_awarded"
    LEVEL_UP = "level_up"
    STREAK_UPDATED = "streak_updated"

    # Goals, quests, learning
    GOAL_CREATED = "goal_created"
    GOAL_CONTRIBUTED = "goal_contributed"
    GOAL_COMPLETED = "goal_completed"
    QUEST_CLAIMED = "quest_claimed"
    MODULE_COMPLETED = "module_completed"

    # Settings changed by the user or a parent
    BUDGET_CHANGED = "budget_changed"
    PARENTAL_CONTROLS_UPDATED = "parental_controls_updated"
    ACCOUNT_LINKED = "account_linked"
    INVESTMENT_CHANGED = "investment_changed"

    # System events
    PERSISTENCE_FAILED = "persistence_failed"
    ADVICE_FAILED = "advice_failed"
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Which account and entity is this about?
    account: Optional[str] = Field(
        default=None,
        description="Account key the event belongs to"
    )
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'goal', 'quest')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., everything one contribution caused)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "account": self.account,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, account, entity_type,
         entity_id, correlation_id, description, details_json, error_message,
         is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.account or "",
            self.entity_type or "",
            self.entity_id or "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.transaction_logged(account, tx_id, ...)
        event = AuditEventBuilder.level_up(account, 2, 3, correlation_id)
    """

    @staticmethod
    def account_created(account: str, currency: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_CREATED,
            account=account,
            entity_type="account",
            entity_id=account,
            description="Account created",
            details={"currency": currency},
            is_user_action=True,
        )

    @staticmethod
    def session_opened(account: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SESSION_OPENED,
            account=account,
            entity_type="account",
            entity_id=account,
            description="Session opened",
            is_user_action=True,
        )

    @staticmethod
    def session_closed(account: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SESSION_CLOSED,
            account=account,
            entity_type="account",
            entity_id=account,
            description="Session closed",
            is_user_action=True,
        )

    @staticmethod
    def validation_failed(
        account: Optional[str],
        operation: str,
        issues: list[dict],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            account=account,
            correlation_id=correlation_id,
            description=f"Input rejected for {operation}",
            details={"operation": operation, "issues": issues},
            is_user_action=True,
        )

    @staticmethod
    def transaction_rejected(
        account: str,
        amount: str,
        category_id: str,
        period: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_REJECTED,
            severity=AuditSeverity.WARNING,
            account=account,
            entity_type="transaction",
            correlation_id=correlation_id,
            description=f"Transaction rejected by the {period} spending limit",
            details={
                "amount": amount,
                "category_id": category_id,
                "period": period,
            },
            is_user_action=True,
        )

    @staticmethod
    def transaction_logged(
        account: str,
        transaction_id: str,
        amount: str,
        category_id: str,
        source: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_LOGGED,
            account=account,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transaction of {amount} logged",
            details={
                "amount": amount,
                "category_id": category_id,
                "source": source,
            },
            is_user_action=True,
        )

    @staticmethod
    def alert_queued(
        account: str,
        event_type: AuditEventType,
        message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=event_type,
            account=account,
            entity_type="notification",
            correlation_id=correlation_id,
            description=message[:500],
        )

    @staticmethod
    def xp_awarded(
        account: str,
        amount: int,
        reason: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.XP_AWARDED,
            account=account,
            entity_type="progression",
            correlation_id=correlation_id,
            description=f"+{amount} xp ({reason})",
            details={"xp": amount, "reason": reason},
        )

    @staticmethod
    def level_up(
        account: str,
        old_level: int,
        new_level: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LEVEL_UP,
            account=account,
            entity_type="progression",
            correlation_id=correlation_id,
            description=f"Level up: {old_level} -> {new_level}",
            details={"old_level": old_level, "new_level": new_level},
        )

    @staticmethod
    def streak_updated(
        account: str,
        old_streak: int,
        new_streak: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STREAK_UPDATED,
            account=account,
            entity_type="progression",
            correlation_id=correlation_id,
            description=f"Streak {old_streak} -> {new_streak}",
            details={"old_streak": old_streak, "new_streak": new_streak},
        )

    @staticmethod
    def goal_event(
        account: str,
        event_type: AuditEventType,
        goal_id: str,
        description: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=event_type,
            account=account,
            entity_type="goal",
            entity_id=goal_id,
            correlation_id=correlation_id,
            description=description,
            details=details or {},
            is_user_action=event_type is not AuditEventType.GOAL_COMPLETED,
        )

    @staticmethod
    def reward_claimed(
        account: str,
        event_type: AuditEventType,
        entity_type: str,
        entity_id: str,
        xp: int,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=event_type,
            account=account,
            entity_type=entity_type,
            entity_id=entity_id,
            description=f"{entity_type.title()} {entity_id} rewarded {xp} xp",
            details={"xp": xp},
            is_user_action=True,
        )

    @staticmethod
    def settings_changed(
        account: str,
        event_type: AuditEventType,
        entity_type: str,
        entity_id: Optional[str],
        description: str,
        details: Optional[dict] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=event_type,
            account=account,
            entity_type=entity_type,
            entity_id=entity_id,
            description=description,
            details=details or {},
            is_user_action=True,
        )

    @staticmethod
    def persistence_failed(
        account: Optional[str],
        field: str,
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PERSISTENCE_FAILED,
            severity=AuditSeverity.ERROR,
            account=account,
            entity_type="storage",
            entity_id=field,
            description=f"Failed to persist {field}",
            error_message=error_message,
        )

    @staticmethod
    def advice_failed(
        service: str,
        error_message: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ADVICE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="advice",
            entity_id=service,
            description=f"Advice service {service} failed",
            error_message=error_message,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            correlation_id=correlation_id,
            description=f"System error: {error_type}",
            details=details or {},
            error_message=error_message,
        )
