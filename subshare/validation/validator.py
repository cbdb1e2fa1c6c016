"""
Two-Stage Input Validation

DESIGN DECISION: Raw command input is validated in two stages:

STAGE 1 - SCHEMA VALIDATION:
- Required field presence
- Numeric / date / category parsing
- This catches typos and empty form fields

STAGE 2 - SEMANTIC VALIDATION:
- Renewal date already past
- Unusually large slot counts
- Ceiling rounding that overcharges the group
- These are warnings; the command still goes through

IMPORTANT: Validation NEVER silently fixes issues.
An error raises InputValidationError carrying every issue found, and the
ledger is left untouched.
"""

from datetime import date
from decimal import ROUND_CEILING, Decimal, InvalidOperation
from typing import Optional, Union

from subshare.config import LedgerSettings, get_settings
from subshare.errors import InputValidationError
from subshare.models.forms import (
    ExpenseForm,
    ServiceForm,
    ValidationIssue,
    ValidationResult,
)
from subshare.models.ledger import ExpenseCategory, MemberStatus


RawValue = Union[str, int, float, Decimal, None]

LARGE_SLOT_COUNT = 20


def _error(field: str, issue_type: str, message: str, fix: Optional[str] = None) -> ValidationIssue:
    return ValidationIssue(
        field=field,
        issue_type=issue_type,
        message=message,
        severity="error",
        suggested_fix=fix,
    )


def _warning(field: str, issue_type: str, message: str, fix: Optional[str] = None) -> ValidationIssue:
    return ValidationIssue(
        field=field,
        issue_type=issue_type,
        message=message,
        severity="warning",
        suggested_fix=fix,
    )


def _raise_if_errors(issues: list[ValidationIssue]) -> None:
    errors = [i for i in issues if i.severity == "error"]
    if errors:
        raise InputValidationError("; ".join(i.message for i in errors), issues=issues)


class InputValidator:
    """
    Parses raw form input into validated forms.

    Every public method either returns a parsed value or raises
    InputValidationError; nothing is coerced into a default.
    """

    def __init__(self, settings: Optional[LedgerSettings] = None):
        self._settings = settings or get_settings().ledger

    # ------------------------------------------------------------------
    # Field parsers
    # ------------------------------------------------------------------

    def _parse_amount(self, raw: RawValue, field: str, issues: list[ValidationIssue]) -> Optional[Decimal]:
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            issues.append(_error(field, "missing", f"{field} is required"))
            return None
        if isinstance(raw, bool):
            issues.append(_error(field, "invalid_format", f"{field} must be a number"))
            return None
        try:
            text = raw.strip().replace(",", "") if isinstance(raw, str) else str(raw)
            value = Decimal(text)
        except InvalidOperation:
            issues.append(_error(
                field,
                "invalid_format",
                f"{field} must be a number, got '{raw}'",
                "Enter digits only, e.g. 37200",
            ))
            return None
        if not value.is_finite():
            issues.append(_error(field, "invalid_format", f"{field} must be a finite number"))
            return None
        if value <= 0:
            issues.append(_error(field, "invalid_value", f"{field} must be greater than zero"))
            return None
        return value

    def _parse_date(self, raw: Union[str, date, None], field: str, issues: list[ValidationIssue]) -> Optional[date]:
        if isinstance(raw, date):
            return raw
        if raw is None or not str(raw).strip():
            issues.append(_error(field, "missing", f"{field} is required"))
            return None
        try:
            return date.fromisoformat(str(raw).strip())
        except ValueError:
            issues.append(_error(
                field,
                "invalid_format",
                f"{field} must be a date (YYYY-MM-DD), got '{raw}'",
            ))
            return None

    def parse_amount(self, raw: RawValue, field: str = "amount") -> Decimal:
        """Parse a positive money amount. Thousands separators are accepted."""
        issues: list[ValidationIssue] = []
        value = self._parse_amount(raw, field, issues)
        _raise_if_errors(issues)
        return value

    def parse_category(self, raw: Union[str, ExpenseCategory, None]) -> ExpenseCategory:
        """Match a category by value ("Late Fee") or name ("LATE_FEE")."""
        if isinstance(raw, ExpenseCategory):
            return raw
        text = (raw or "").strip()
        for category in ExpenseCategory:
            if text.lower() in (category.value.lower(), category.name.lower()):
                return category
        allowed = ", ".join(c.value for c in ExpenseCategory)
        raise InputValidationError(
            f"Unknown expense category '{text}'",
            issues=[_error("category", "invalid_value", f"Category must be one of: {allowed}")],
        )

    def parse_status(self, raw: Union[str, MemberStatus, None]) -> MemberStatus:
        if isinstance(raw, MemberStatus):
            return raw
        text = (raw or "").strip().lower()
        try:
            return MemberStatus(text)
        except ValueError:
            allowed = ", ".join(s.value for s in MemberStatus)
            raise InputValidationError(
                f"Unknown status '{raw}'",
                issues=[_error("status", "invalid_value", f"Status must be one of: {allowed}")],
            )

    def validate_claim_name(self, raw: Optional[str]) -> str:
        name = (raw or "").strip()
        if not name:
            raise InputValidationError(
                "Name is required to claim a slot",
                issues=[_error("name", "missing", "Name is required to claim a slot")],
            )
        if len(name) > 100:
            raise InputValidationError(
                "Name is too long",
                issues=[_error("name", "invalid_value", "Name must be at most 100 characters")],
            )
        return name

    # ------------------------------------------------------------------
    # Forms
    # ------------------------------------------------------------------

    def validate_service_form(
        self,
        name: Optional[str],
        price: RawValue,
        max_slots: Union[str, int, None],
        renewal_date: Union[str, date, None],
        credentials: Optional[str] = "",
        currency: Optional[str] = None,
        payment_instructions: Optional[str] = None,
        today: Optional[date] = None,
    ) -> tuple[ServiceForm, ValidationResult]:
        """
        Validate the manual "create service" form.

        Returns the parsed form and the result (warnings included).

        Raises:
            InputValidationError: any stage 1 error
        """
        issues: list[ValidationIssue] = []

        # Stage 1: schema
        clean_name = (name or "").strip()
        if not clean_name:
            issues.append(_error("name", "missing", "Service name is required"))

        parsed_price = self._parse_amount(price, "price", issues)

        slots: Optional[int] = None
        try:
            slots = int(str(max_slots).strip())
        except (TypeError, ValueError):
            issues.append(_error("max_slots", "invalid_format", f"max_slots must be a whole number, got '{max_slots}'"))
        if slots is not None and slots < 1:
            issues.append(_error("max_slots", "invalid_value", "A service needs at least one slot"))
            slots = None

        parsed_date = self._parse_date(renewal_date, "renewal_date", issues)

        clean_currency = (currency or self._settings.default_currency).strip().upper()
        if len(clean_currency) != 3 or not clean_currency.isalpha():
            issues.append(_error("currency", "invalid_format", f"Currency must be a 3-letter code, got '{currency}'"))

        _raise_if_errors(issues)

        # Stage 2: semantic
        today = today or date.today()
        if parsed_date < today:
            issues.append(_warning(
                "renewal_date",
                "past_date",
                f"Renewal date ({parsed_date}) is already past",
                "Set the next renewal date",
            ))
        if slots > LARGE_SLOT_COUNT:
            issues.append(_warning(
                "max_slots",
                "suspicious_value",
                f"{slots} slots is unusually many for a shared subscription",
            ))
        fee_total = (parsed_price / slots).to_integral_value(rounding=ROUND_CEILING) * slots
        if fee_total != parsed_price:
            issues.append(ValidationIssue(
                field="price",
                issue_type="rounding",
                message=(
                    f"Price does not split evenly; members pay {fee_total - parsed_price} "
                    f"more than the price in total"
                ),
                severity="info",
            ))

        form = ServiceForm(
            name=clean_name,
            price=parsed_price,
            max_slots=slots,
            renewal_date=parsed_date,
            credentials=(credentials or "").strip(),
            currency=clean_currency,
            payment_instructions=(payment_instructions or "").strip() or None,
        )
        return form, ValidationResult(is_valid=True, issues=issues)

    def validate_expense_form(
        self,
        amount: RawValue,
        category: Union[str, ExpenseCategory, None],
        description: Optional[str] = "",
        spent_on: Union[str, date, None] = None,
    ) -> ExpenseForm:
        """
        Validate the "add expense" form.

        Raises:
            InputValidationError: bad amount, unknown category or bad date
        """
        issues: list[ValidationIssue] = []
        parsed_amount = self._parse_amount(amount, "amount", issues)

        parsed_category: Optional[ExpenseCategory] = None
        try:
            parsed_category = self.parse_category(category)
        except InputValidationError as e:
            issues.extend(e.issues)

        parsed_date: Optional[date] = None
        if spent_on is not None and str(spent_on).strip():
            parsed_date = self._parse_date(spent_on, "date", issues)

        clean_description = (description or "").strip()
        if len(clean_description) > 200:
            issues.append(_error("description", "invalid_value", "Description must be at most 200 characters"))

        _raise_if_errors(issues)

        return ExpenseForm(
            amount=parsed_amount,
            category=parsed_category,
            description=clean_description,
            spent_on=parsed_date,
        )
