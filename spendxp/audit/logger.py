"""
Audit Logger

DESIGN DECISION: Every state transition of the engine is logged.
This provides:
1. Traceability of xp, levels and streaks back to the transactions that moved them
2. A record of what the parental gate rejected and why
3. Debugging capability when a persistence write fails

The audit logger:
- Is async so the session can await it alongside persistence
- Gracefully handles failures (never breaks a submission if logging fails)
- Supports correlation IDs to tie together the events of one user action
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from spendxp.models.audit import AuditEvent, AuditEventBuilder, AuditEventType, AuditSeverity
from spendxp.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log
    2. The configured audit storage, if any
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("spendxp.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity is AuditSeverity.ERROR:
            self._logger.error("audit_event", **log_dict)
        elif event.severity is AuditSeverity.WARNING:
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_transaction_logged(
        self,
        account: str,
        transaction_id: str,
        amount: str,
        category_id: str,
        source: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.transaction_logged(
            account=account,
            transaction_id=transaction_id,
            amount=amount,
            category_id=category_id,
            source=source,
            correlation_id=correlation_id,
        ))

    async def log_transaction_rejected(
        self,
        account: str,
        amount: str,
        category_id: str,
        period: str,
        correlation_id: UUID,
    ) -> None:
        """Log a submission stopped by the parental spending limit."""
        await self.log(AuditEventBuilder.transaction_rejected(
            account=account,
            amount=amount,
            category_id=category_id,
            period=period,
            correlation_id=correlation_id,
        ))

    async def log_validation_failed(
        self,
        account: Optional[str],
        operation: str,
        issues: list[dict],
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.validation_failed(
            account=account,
            operation=operation,
            issues=issues,
            correlation_id=correlation_id,
        ))

    async def log_alert_queued(
        self,
        account: str,
        event_type: AuditEventType,
        message: str,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.alert_queued(
            account=account,
            event_type=event_type,
            message=message,
            correlation_id=correlation_id,
        ))

    async def log_progression(
        self,
        account: str,
        xp: int,
        reason: str,
        old_level: int,
        new_level: int,
        correlation_id: UUID,
        old_streak: Optional[int] = None,
        new_streak: Optional[int] = None,
    ) -> None:
        """
        Log one progression change.

        Emits the xp award, a level-up event if the level moved and a streak
        event if the streak moved.
        """
        await self.log(AuditEventBuilder.xp_awarded(account, xp, reason, correlation_id))
        if new_level != old_level:
            await self.log(AuditEventBuilder.level_up(
                account, old_level, new_level, correlation_id
            ))
        if old_streak is not None and new_streak is not None and old_streak != new_streak:
            await self.log(AuditEventBuilder.streak_updated(
                account, old_streak, new_streak, correlation_id
            ))

    async def log_goal_event(
        self,
        account: str,
        event_type: AuditEventType,
        goal_id: str,
        description: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.goal_event(
            account=account,
            event_type=event_type,
            goal_id=goal_id,
            description=description,
            details=details,
            correlation_id=correlation_id,
        ))

    async def log_reward_claimed(
        self,
        account: str,
        event_type: AuditEventType,
        entity_type: str,
        entity_id: str,
        xp: int,
    ) -> None:
        await self.log(AuditEventBuilder.reward_claimed(
            account, event_type, entity_type, entity_id, xp
        ))

    async def log_settings_changed(
        self,
        account: str,
        event_type: AuditEventType,
        entity_type: str,
        entity_id: Optional[str],
        description: str,
        details: Optional[dict] = None,
    ) -> None:
        await self.log(AuditEventBuilder.settings_changed(
            account, event_type, entity_type, entity_id, description, details
        ))

    async def log_persistence_failed(
        self,
        account: Optional[str],
        field: str,
        error_message: str,
    ) -> None:
        """Log a failed write; the in-memory state stays authoritative."""
        await self.log(AuditEventBuilder.persistence_failed(account, field, error_message))

    async def log_advice_failed(
        self,
        service: str,
        error_message: str,
    ) -> None:
        await self.log(AuditEventBuilder.advice_failed(service, error_message))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., logging a transaction).
    Pass it through all subsequent operations.
    """
    return uuid4()
