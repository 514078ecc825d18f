"""Boundary validation package."""

from spendxp.validation.validator import (
    InputValidator,
    ValidationError,
    ValidationIssue,
    parse_amount,
)

__all__ = ["InputValidator", "ValidationError", "ValidationIssue", "parse_amount"]
