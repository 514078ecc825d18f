"""
Data Models Package

This package contains all Pydantic models used by SpendXP.
All data flowing through the engine must conform to these schemas.
"""

from spendxp.models.finance import (
    AccountKind,
    Category,
    CategoryRole,
    CurrencyCode,
    Goal,
    Investment,
    InvestmentType,
    LimitPeriod,
    LinkedAccount,
    ParentalControls,
    Preferences,
    Progression,
    Security,
    Transaction,
    TransactionSource,
    UserProfile,
)
from spendxp.models.quest import (
    INVESTMENT_MODULES,
    QUESTS,
    InvestmentModule,
    Quest,
    QuestCategory,
    QuestType,
    QuizQuestion,
    get_module,
    get_quest,
)
from spendxp.models.notification import Notification, NotificationKind
from spendxp.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger and user models
    "AccountKind",
    "Category",
    "CategoryRole",
    "CurrencyCode",
    "Goal",
    "Investment",
    "InvestmentType",
    "LimitPeriod",
    "LinkedAccount",
    "ParentalControls",
    "Preferences",
    "Progression",
    "Security",
    "Transaction",
    "TransactionSource",
    "UserProfile",
    # Quests and modules
    "INVESTMENT_MODULES",
    "QUESTS",
    "InvestmentModule",
    "Quest",
    "QuestCategory",
    "QuestType",
    "QuizQuestion",
    "get_module",
    "get_quest",
    # Notifications
    "Notification",
    "NotificationKind",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
