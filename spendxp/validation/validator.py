"""
Boundary Validation

DESIGN DECISION: Everything the user types is checked here, before it
reaches the ledger or the progression engine. The engine functions are
total over valid inputs and never raise for bad data, so anything they
could not handle must be stopped at this layer.

Validation NEVER silently fixes issues beyond trimming whitespace.
It reports them so the caller can show them.
"""

from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Union

from pydantic import BaseModel, Field

from spendxp.ledger.categories import CategoryStore
from spendxp.models.finance import Category, CurrencyCode, LimitPeriod


# Mirror the length limits of the stored records
CATEGORY_NAME_MAX = 50
GOAL_NAME_MAX = 100
INVESTMENT_NAME_MAX = 100


class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'unknown_reference')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )


class ValidationError(Exception):
    """Input was rejected before reaching the engine."""

    def __init__(self, issues: list[ValidationIssue]):
        self.issues = issues
        super().__init__("; ".join(issue.message for issue in issues))

    @property
    def user_message(self) -> str:
        return self.issues[0].message if self.issues else "Invalid input."

    def as_dicts(self) -> list[dict]:
        return [
            {"field": i.field, "type": i.issue_type, "message": i.message}
            for i in self.issues
        ]


def parse_amount(value: Union[str, int, float, Decimal, None]) -> Optional[Decimal]:
    """Parse a user-entered amount; None if it is not a finite number."""
    if value is None or isinstance(value, bool):
        return None
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not amount.is_finite():
        return None
    return amount


def _grapheme_count(text: str) -> int:
    # Variation selectors are not counted, so "🛍️" is a single emoji
    return len(text.replace("\ufe0f", ""))


class InputValidator:
    """
    Validates raw user input for each engine operation.

    Each `validate_*` method returns the cleaned values or raises
    ValidationError with every issue found.
    """

    def validate_transaction(
        self,
        amount: Any,
        category_id: Optional[str],
        description: Optional[str],
        categories: CategoryStore,
    ) -> tuple[Decimal, Category, str]:
        issues = []

        parsed = parse_amount(amount)
        if parsed is None or parsed <= 0:
            issues.append(ValidationIssue(
                field="amount",
                issue_type="invalid_value",
                message="Please enter a valid amount.",
            ))

        category = None
        if not category_id:
            issues.append(ValidationIssue(
                field="category_id",
                issue_type="missing",
                message="Please select a category.",
            ))
        else:
            category = categories.get(category_id)
            if category is None:
                issues.append(ValidationIssue(
                    field="category_id",
                    issue_type="unknown_reference",
                    message=f"Unknown category: {category_id}",
                ))

        cleaned = (description or "").strip()
        if not cleaned:
            issues.append(ValidationIssue(
                field="description",
                issue_type="missing",
                message="Please add a description.",
            ))
        elif len(cleaned) > 200:
            issues.append(ValidationIssue(
                field="description",
                issue_type="too_long",
                message="Description must be 200 characters or fewer.",
            ))

        if issues:
            raise ValidationError(issues)
        return parsed, category, cleaned

    def validate_goal(
        self,
        name: Optional[str],
        target_amount: Any,
    ) -> tuple[str, Decimal]:
        issues = []
        cleaned = (name or "").strip()
        if not cleaned:
            issues.append(ValidationIssue(
                field="name",
                issue_type="missing",
                message="Please give your goal a name.",
            ))
        elif len(cleaned) > GOAL_NAME_MAX:
            issues.append(ValidationIssue(
                field="name",
                issue_type="too_long",
                message=f"Goal name must be {GOAL_NAME_MAX} characters or fewer.",
            ))
        target = parse_amount(target_amount)
        if target is None or target <= 0:
            issues.append(ValidationIssue(
                field="target_amount",
                issue_type="invalid_value",
                message="Goal target must be greater than zero.",
            ))
        if issues:
            raise ValidationError(issues)
        return cleaned, target

    def validate_positive_amount(self, amount: Any, field: str = "amount") -> Decimal:
        parsed = parse_amount(amount)
        if parsed is None or parsed <= 0:
            raise ValidationError([ValidationIssue(
                field=field,
                issue_type="invalid_value",
                message="Amount must be greater than zero.",
            )])
        return parsed

    def validate_budget(self, budget: Any) -> Optional[Decimal]:
        """An empty value clears the budget."""
        if budget is None or (isinstance(budget, str) and not budget.strip()):
            return None
        parsed = parse_amount(budget)
        if parsed is None or parsed < 0:
            raise ValidationError([ValidationIssue(
                field="budget",
                issue_type="invalid_value",
                message="Budget must be zero or a positive number.",
            )])
        return parsed

    def validate_category(self, name: Optional[str], emoji: Optional[str]) -> tuple[str, str]:
        cleaned_name = (name or "").strip()
        cleaned_emoji = (emoji or "").strip()
        if not cleaned_name or not cleaned_emoji:
            raise ValidationError([ValidationIssue(
                field="name" if not cleaned_name else "emoji",
                issue_type="missing",
                message="Please provide a name and an emoji.",
            )])
        if _grapheme_count(cleaned_emoji) != 1:
            raise ValidationError([ValidationIssue(
                field="emoji",
                issue_type="invalid_value",
                message="Please use a single emoji character.",
            )])
        if len(cleaned_name) > CATEGORY_NAME_MAX:
            raise ValidationError([ValidationIssue(
                field="name",
                issue_type="too_long",
                message=f"Category name must be {CATEGORY_NAME_MAX} characters or fewer.",
            )])
        return cleaned_name, cleaned_emoji

    def validate_parental_changes(self, changes: dict[str, Any]) -> dict[str, Any]:
        """Check a partial parental-controls update; unknown keys are rejected."""
        allowed = {
            "spending_limit_enabled",
            "spending_limit_amount",
            "spending_limit_period",
            "notifications_enabled",
            "notification_threshold",
        }
        issues = []
        cleaned: dict[str, Any] = {}

        for key, value in changes.items():
            if key not in allowed:
                issues.append(ValidationIssue(
                    field=key,
                    issue_type="unknown_field",
                    message=f"Unknown parental control: {key}",
                ))
            elif key in ("spending_limit_amount", "notification_threshold"):
                if value is None or value == "":
                    cleaned[key] = None
                    continue
                parsed = parse_amount(value)
                if parsed is None or parsed < 0:
                    issues.append(ValidationIssue(
                        field=key,
                        issue_type="invalid_value",
                        message="Amounts must be zero or a positive number.",
                    ))
                else:
                    # A zero limit behaves like no limit
                    cleaned[key] = parsed or None
            elif key == "spending_limit_period":
                try:
                    cleaned[key] = LimitPeriod(value) if value else None
                except ValueError:
                    issues.append(ValidationIssue(
                        field=key,
                        issue_type="invalid_value",
                        message="Period must be daily, weekly or monthly.",
                    ))
            else:
                cleaned[key] = bool(value)

        if issues:
            raise ValidationError(issues)
        return cleaned

    def validate_account(
        self,
        name: Optional[str],
        email: Optional[str],
        currency: Any,
    ) -> tuple[str, str, CurrencyCode]:
        issues = []
        cleaned_name = (name or "").strip()
        if not cleaned_name:
            issues.append(ValidationIssue(
                field="name",
                issue_type="missing",
                message="Please tell us your name.",
            ))
        cleaned_email = (email or "").strip().lower()
        if "@" not in cleaned_email or cleaned_email.startswith("@"):
            issues.append(ValidationIssue(
                field="email",
                issue_type="invalid_value",
                message="Please enter a valid email address.",
            ))
        code = None
        try:
            code = CurrencyCode(currency)
        except ValueError:
            issues.append(ValidationIssue(
                field="currency",
                issue_type="invalid_value",
                message=f"Unsupported currency: {currency}",
            ))
        if issues:
            raise ValidationError(issues)
        return cleaned_name, cleaned_email, code

    def validate_investment(
        self,
        account_name: Optional[str],
        current_value: Any,
        ticker: Optional[str] = None,
        projected_growth: Any = 0,
    ) -> tuple[str, Decimal, Optional[str], float]:
        issues = []
        cleaned_name = (account_name or "").strip()
        if not cleaned_name:
            issues.append(ValidationIssue(
                field="account_name",
                issue_type="missing",
                message="Please name the account or asset.",
            ))
        elif len(cleaned_name) > INVESTMENT_NAME_MAX:
            issues.append(ValidationIssue(
                field="account_name",
                issue_type="too_long",
                message=f"Account name must be {INVESTMENT_NAME_MAX} characters or fewer.",
            ))
        value = parse_amount(current_value)
        if value is None or value < 0:
            issues.append(ValidationIssue(
                field="current_value",
                issue_type="invalid_value",
                message="Current value must be zero or a positive number.",
            ))
        cleaned_ticker = (ticker or "").strip().upper() or None
        if cleaned_ticker and len(cleaned_ticker) > 10:
            issues.append(ValidationIssue(
                field="ticker",
                issue_type="too_long",
                message="Ticker must be 10 characters or fewer.",
            ))
        growth = parse_amount(projected_growth if projected_growth != "" else 0)
        if growth is None or growth < -100:
            issues.append(ValidationIssue(
                field="projected_growth",
                issue_type="invalid_value",
                message="Projected growth must be a percentage above -100.",
            ))
        if issues:
            raise ValidationError(issues)
        return cleaned_name, value, cleaned_ticker, float(growth)

    def validate_pin(self, pin: Optional[str]) -> str:
        cleaned = (pin or "").strip()
        if len(cleaned) < 4 or not cleaned.isdigit():
            raise ValidationError([ValidationIssue(
                field="pin",
                issue_type="invalid_value",
                message="PIN must be at least 4 digits.",
            )])
        return cleaned
