"""
Core Data Models for SpendXP

These models define the strict schemas for all data flowing through the engine.
They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Serialize to the camelCase JSON shape the stored records have always used
4. Carry the invariants of the ledger and progression rules

DESIGN DECISION: Category semantics are carried by an explicit role tag
resolved once when the category is created or loaded. Nothing downstream
compares category names to decide whether a transaction is income or savings.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel


INCOME_CATEGORY_NAME = "Income"
SAVINGS_CATEGORY_NAME = "Savings"


def ensure_aware(value: datetime) -> datetime:
    """Interpret naive timestamps as local time."""
    if value.tzinfo is None:
        return value.astimezone()
    return value


class StoredModel(BaseModel):
    """Base for records that round-trip through persistence."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    def to_storage(self) -> dict:
        """Dump to the JSON-compatible shape written to persistence."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class CurrencyCode(str, Enum):
    """Supported display currencies."""
    USD = "USD"
    CAD = "CAD"
    INR = "INR"
    AUD = "AUD"
    SAR = "SAR"
    EUR = "EUR"
    GBP = "GBP"
    JPY = "JPY"
    CNY = "CNY"
    NZD = "NZD"
    BRL = "BRL"
    AED = "AED"
    SGD = "SGD"
    ZAR = "ZAR"
    MXN = "MXN"
    HKD = "HKD"
    KRW = "KRW"
    PHP = "PHP"
    IDR = "IDR"
    THB = "THB"
    VND = "VND"
    MYR = "MYR"
    TRY = "TRY"
    NGN = "NGN"
    RUB = "RUB"


class CategoryRole(str, Enum):
    """
    Semantic role of a category.

    INCOME is excluded from every spending aggregate and earns xp with the
    income formula. SAVINGS is excluded from spending aggregates and receives
    goal contributions. Everything else is STANDARD spending.
    """
    INCOME = "income"
    SAVINGS = "savings"
    STANDARD = "standard"

    @classmethod
    def for_name(cls, name: str) -> "CategoryRole":
        """Resolve the role of a category from its display name."""
        if name == INCOME_CATEGORY_NAME:
            return cls.INCOME
        if name == SAVINGS_CATEGORY_NAME:
            return cls.SAVINGS
        return cls.STANDARD


class TransactionSource(str, Enum):
    """Where a transaction came from."""
    MANUAL = "manual"
    LINKED = "linked"


class LimitPeriod(str, Enum):
    """Granularity of a parental spending limit."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class AccountKind(str, Enum):
    """Kind of an external account linked for transaction import."""
    BANK = "Bank"
    CARD = "Card"


class InvestmentType(str, Enum):
    STOCKS = "Stocks"
    CRYPTO = "Crypto"
    SAVINGS = "Savings"
    OTHER = "Other"


# =============================================================================
# LEDGER RECORDS
# =============================================================================

class Category(StoredModel):
    """
    A spending (or income) category, optionally with a monthly budget.
    """

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=50)
    emoji: str = Field(..., min_length=1)
    color: str = Field(default="bg-gray-500")
    budget: Optional[Decimal] = Field(
        default=None,
        ge=0,
        description="Monthly budget; absent means unbudgeted"
    )
    role: CategoryRole = Field(default=CategoryRole.STANDARD)

    @model_validator(mode="before")
    @classmethod
    def resolve_role(cls, data: Any) -> Any:
        """Tag the category with its role if the record predates roles."""
        if isinstance(data, dict) and data.get("role") is None:
            name = data.get("name")
            if isinstance(name, str):
                data = {**data, "role": CategoryRole.for_name(name.strip())}
        return data

    @property
    def is_income(self) -> bool:
        return self.role is CategoryRole.INCOME

    @property
    def is_savings(self) -> bool:
        return self.role is CategoryRole.SAVINGS

    @property
    def is_spending(self) -> bool:
        """Counts towards spending aggregates (neither income nor savings)."""
        return self.role is CategoryRole.STANDARD


class Transaction(StoredModel):
    """
    A single ledger entry.

    Transactions are immutable once created. The ledger orders them by
    insertion, newest first; `date` may be earlier than the insertion point
    for imported transactions.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0)
    category_id: str = Field(..., min_length=1)
    description: str = Field(..., max_length=200)
    date: datetime
    source: TransactionSource = Field(default=TransactionSource.MANUAL)

    @field_validator("date")
    @classmethod
    def validate_date(cls, v: datetime) -> datetime:
        return ensure_aware(v)


class Goal(StoredModel):
    """
    A savings goal.

    current_amount only grows through contributions and is clamped at
    target_amount.
    """

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=100)
    emoji: str = Field(default="🎯")
    target_amount: Decimal = Field(..., gt=0)
    current_amount: Decimal = Field(default=Decimal("0"), ge=0)
    video_url: Optional[str] = None

    @model_validator(mode="after")
    def validate_amounts(self) -> "Goal":
        if self.current_amount > self.target_amount:
            raise ValueError("Goal current amount cannot exceed its target")
        return self

    @property
    def is_complete(self) -> bool:
        return self.current_amount >= self.target_amount


# =============================================================================
# USER AGGREGATE
# =============================================================================

class Progression(StoredModel):
    """
    Level / xp / streak state.

    xp_to_next_level grows multiplicatively on every level-up and depends on
    the path taken, so it is stored rather than derived from the level.
    """

    level: int = Field(default=1, ge=1)
    xp: int = Field(default=0, ge=0)
    xp_to_next_level: int = Field(default=100, gt=0)
    streak: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def validate_xp(self) -> "Progression":
        if self.xp >= self.xp_to_next_level:
            raise ValueError("xp must stay below xp_to_next_level")
        return self


class ParentalControls(StoredModel):
    """Parent-configured spending limit and alerting."""

    spending_limit_enabled: bool = False
    spending_limit_amount: Optional[Decimal] = Field(default=None, ge=0)
    spending_limit_period: Optional[LimitPeriod] = None
    notifications_enabled: bool = False
    notification_threshold: Optional[Decimal] = Field(default=None, ge=0)

    @property
    def effective_period(self) -> LimitPeriod:
        """An unset period is treated as monthly."""
        return self.spending_limit_period or LimitPeriod.MONTHLY

    @property
    def effective_threshold(self) -> Decimal:
        """An unset threshold alerts on every transaction."""
        return self.notification_threshold or Decimal("0")


class Preferences(StoredModel):
    notifications: bool = True


class Security(StoredModel):
    """PIN digests; never the PINs themselves."""

    pin_hash: Optional[str] = None
    parent_pin_hash: Optional[str] = None
    two_factor_enabled: bool = False


class LinkedAccount(StoredModel):
    id: str
    provider: str = Field(..., min_length=1)
    type: AccountKind
    mask: str
    balance: Optional[Decimal] = None
    connected_at: datetime

    @field_validator("connected_at")
    @classmethod
    def validate_connected_at(cls, v: datetime) -> datetime:
        return ensure_aware(v)


class Investment(StoredModel):
    id: str
    account_name: str = Field(..., min_length=1, max_length=100)
    ticker: Optional[str] = Field(default=None, max_length=10)
    type: InvestmentType = InvestmentType.STOCKS
    current_value: Decimal = Field(..., ge=0)
    projected_growth: float = Field(
        default=0.0,
        ge=-100.0,
        description="Projected annual growth in percent"
    )

    @field_validator("ticker")
    @classmethod
    def normalize_ticker(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.upper() or None


class UserProfile(StoredModel):
    """
    The user aggregate: identity, progression and the settings that the
    parental control gate and the budget watch read.
    """

    schema_version: int = Field(default=2, ge=1)
    name: str = Field(..., min_length=1)
    email: str = Field(..., min_length=3)
    currency: CurrencyCode = CurrencyCode.USD
    progression: Progression = Field(default_factory=Progression)
    security: Security = Field(default_factory=Security)
    parental_controls: ParentalControls = Field(default_factory=ParentalControls)
    preferences: Preferences = Field(default_factory=Preferences)
    linked_accounts: list[LinkedAccount] = Field(default_factory=list)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.lower().strip()
