"""
Form and Validation Models

Raw command input (text fields from a form or CLI) is parsed into these
models before any engine function runs. A form that does not validate
never reaches the ledger.
"""

from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from subshare.models.ledger import ExpenseCategory


class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_format', 'suspicious_value')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggested fix if available"
    )


class ValidationResult(BaseModel):
    """Outcome of validating one form: issues found and whether it may proceed."""

    is_valid: bool
    issues: list[ValidationIssue] = Field(default_factory=list)

    @property
    def errors(self) -> list[ValidationIssue]:
        return [i for i in self.issues if i.severity == "error"]

    @property
    def warnings(self) -> list[str]:
        return [i.message for i in self.issues if i.severity == "warning"]


class ServiceForm(BaseModel):
    """A validated "create service" form. Credentials are still plain text."""
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., min_length=1, max_length=200)
    price: Decimal = Field(..., gt=0)
    max_slots: int = Field(..., gt=0)
    renewal_date: date
    credentials: str = ""
    currency: str = Field(default="IDR", min_length=3, max_length=3)
    payment_instructions: Optional[str] = None


class ExpenseForm(BaseModel):
    """A validated "add expense" form."""
    model_config = ConfigDict(frozen=True)

    amount: Decimal = Field(..., gt=0)
    category: ExpenseCategory
    description: str = ""
    spent_on: Optional[date] = None
